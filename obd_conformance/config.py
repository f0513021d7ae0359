"""Run settings and simulated vehicle configuration

Both are read from a YAML file and validated with pydantic. A missing
file falls back to the built-in defaults.
"""

import logging
from enum import Enum
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from .packets import CompositeSystem, DiagnosticTroubleCode, MessageType
from .registry import MAX_MODULE_ADDRESS, ModuleRegistry, ObdModuleInformation

logger = logging.getLogger(__name__)


class ConformanceSettings(BaseModel):
    """Settings shared by every step of a run"""

    settle_seconds: int = Field(5, description="Wait before checking for erased data", ge=0)
    request_timeout: float = Field(2.0, description="Gateway request timeout in seconds", gt=0)
    gateway_url: str = Field("http://localhost:8000", description="Vehicle server base URL")
    address_names: Dict[int, str] = Field(default_factory=dict, description="Module name overrides")

    @field_validator("gateway_url")
    @classmethod
    def validate_gateway_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("gateway_url must be an http(s) URL")
        return v.rstrip("/")


class DtcConfig(BaseModel):
    """A DTC as written in the vehicle file"""

    spn: int = Field(..., ge=0, le=0x7FFFF)
    fmi: int = Field(..., ge=0, le=31)
    occurrence_count: int = Field(1, ge=0, le=127)
    conversion_method: int = Field(0, ge=0, le=1)

    def to_dtc(self) -> DiagnosticTroubleCode:
        return DiagnosticTroubleCode(self.spn, self.fmi, self.occurrence_count, self.conversion_method)


class ClearBehavior(str, Enum):
    """How a simulated module answers DM11"""

    ACCEPT = "accept"
    ACK = "ack"
    NACK = "nack"
    PARTIAL = "partial"
    IGNORE = "ignore"


class ModuleConfig(BaseModel):
    """One simulated module"""

    address: int = Field(..., ge=0, le=MAX_MODULE_ADDRESS)
    function: int = Field(0, ge=0, le=255)
    obd: bool = True
    active_dtcs: List[DtcConfig] = Field(default_factory=list)
    previously_active_dtcs: List[DtcConfig] = Field(default_factory=list)
    pending_dtcs: List[DtcConfig] = Field(default_factory=list)
    permanent_dtcs: List[DtcConfig] = Field(default_factory=list)
    supported_monitors: List[str] = Field(default_factory=list)
    complete_monitors: List[str] = Field(default_factory=list)
    warm_ups_since_clear: int = Field(0, ge=0, le=255)
    km_since_codes_cleared: int = Field(0, ge=0, le=0xFFFF)
    minutes_since_codes_cleared: int = Field(0, ge=0, le=0xFFFF)
    ignition_cycles: int = Field(0, ge=0, le=0xFFFF)
    obd_monitoring_conditions: int = Field(0, ge=0, le=0xFFFF)
    engine_hours: float = Field(0.0, ge=0)
    idle_hours: float = Field(0.0, ge=0)
    clear_behavior: ClearBehavior = ClearBehavior.ACCEPT
    accepts_directed_clear: bool = Field(False, description="Erase on a destination specific DM11")
    unsupported_messages: List[str] = Field(default_factory=list, description="Message types answered with NACK")

    @field_validator("supported_monitors", "complete_monitors")
    @classmethod
    def validate_monitors(cls, v: List[str]) -> List[str]:
        unknown = [name for name in v if name not in CompositeSystem.__members__]
        if unknown:
            raise ValueError(f"Unknown monitors: {', '.join(unknown)}")
        return v

    @field_validator("unsupported_messages")
    @classmethod
    def validate_messages(cls, v: List[str]) -> List[str]:
        unknown = [name for name in v if name not in MessageType.__members__]
        if unknown:
            raise ValueError(f"Unknown message types: {', '.join(unknown)}")
        return v


class VehicleConfig(BaseModel):
    """Simulated vehicle and the settings to test it with"""

    settings: ConformanceSettings = Field(default_factory=ConformanceSettings)
    modules: List[ModuleConfig] = Field(default_factory=list)

    @field_validator("modules")
    @classmethod
    def validate_unique_addresses(cls, v: List[ModuleConfig]) -> List[ModuleConfig]:
        addresses = [m.address for m in v]
        duplicates = sorted({a for a in addresses if addresses.count(a) > 1})
        if duplicates:
            raise ValueError(f"Duplicate module addresses: {duplicates}")
        return v

    def build_registry(self) -> ModuleRegistry:
        """Registry of the OBD modules in this vehicle"""
        return ModuleRegistry(
            (ObdModuleInformation(m.address, m.function) for m in self.modules if m.obd),
            address_names=self.settings.address_names,
        )


DEFAULT_VEHICLE = {
    "modules": [
        {
            "address": 0,
            "function": 0,
            "supported_monitors": ["MISFIRE", "FUEL_SYSTEM", "COMPREHENSIVE_COMPONENT", "CATALYST"],
            "engine_hours": 1520.5,
            "idle_hours": 310.25,
            "ignition_cycles": 412,
            "obd_monitoring_conditions": 388,
        },
        {
            "address": 61,
            "function": 69,
            "supported_monitors": ["COMPREHENSIVE_COMPONENT", "DIESEL_PARTICULATE_FILTER"],
        },
    ]
}


def load_vehicle_config(config_path: Optional[str] = None) -> VehicleConfig:
    """Load vehicle configuration from YAML file"""
    data = DEFAULT_VEHICLE

    if config_path:
        try:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.warning(f"Config file not found: {config_path}")

    return VehicleConfig(**data)
