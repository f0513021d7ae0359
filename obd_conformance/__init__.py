"""OBD Conformance - J1939 diagnostic step execution and erasure verification"""

__version__ = "0.1.0"

from .errors import (
    ConformanceError,
    FreezeFrameFormatError,
    GatewayUnavailableError,
    PacketFormatError,
    UnrecoverableStepError,
)
from .packets import DiagnosticTroubleCode, MessageType
from .freeze_frame import FreezeFrame, Spn
from .results import BusResult, Outcome, OutcomeRecord, RequestResult, ResultKind, StepResult
from .registry import ModuleRegistry, ObdModuleInformation
from .config import ConformanceSettings, VehicleConfig, load_vehicle_config
from .step_controller import RunContext, StepController
from .erasure import ErasureVerifier, ModuleErasureRecord
from .scheduler import RunSummary, StepScheduler

__all__ = [
    "ConformanceError",
    "FreezeFrameFormatError",
    "GatewayUnavailableError",
    "PacketFormatError",
    "UnrecoverableStepError",
    "DiagnosticTroubleCode",
    "MessageType",
    "FreezeFrame",
    "Spn",
    "BusResult",
    "Outcome",
    "OutcomeRecord",
    "RequestResult",
    "ResultKind",
    "StepResult",
    "ModuleRegistry",
    "ObdModuleInformation",
    "ConformanceSettings",
    "VehicleConfig",
    "load_vehicle_config",
    "RunContext",
    "StepController",
    "ErasureVerifier",
    "ModuleErasureRecord",
    "RunSummary",
    "StepScheduler",
]
