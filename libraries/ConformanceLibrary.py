"""
Robot Framework Library for OBD Conformance Testing

This library provides keywords for running J1939 conformance steps
against a simulated vehicle, in process or over HTTP, and for checking
the outcomes they report.
"""

import logging
from typing import List, Optional

from robot.api.deco import keyword, library

from obd_conformance.config import VehicleConfig, load_vehicle_config
from obd_conformance.controllers import create_steps
from obd_conformance.erasure import ErasureVerifier
from obd_conformance.http_gateway import HttpDiagnosticGateway
from obd_conformance.listeners import CompositeResultsListener, LoggingResultsListener, RecordingResultsListener
from obd_conformance.packets import MessageType, Response
from obd_conformance.results import Outcome
from obd_conformance.scheduler import RunSummary, StepScheduler
from obd_conformance.step_controller import RunContext
from vehicle_simulation.vehicle_bus import SimulatedVehicleBus

logger = logging.getLogger(__name__)

# Part and step the keyword driven erasure checks report under
KEYWORD_PART = 12
KEYWORD_STEP = 9


@library
class ConformanceLibrary:
    """
    Robot Framework library for OBD conformance testing.

    Provides keywords for:
    - Loading a simulated vehicle or connecting to a vehicle server
    - Running conformance steps in order
    - Checking diagnostic information erasure
    - Verifying reported outcomes
    """

    ROBOT_LIBRARY_SCOPE = "SUITE"
    ROBOT_LIBRARY_VERSION = "0.1.0"

    def __init__(self):
        """Initialize the Conformance Library"""
        self._bus: Optional[SimulatedVehicleBus] = None
        self._context: Optional[RunContext] = None
        self._recorder = RecordingResultsListener()
        self._last_summary: Optional[RunSummary] = None

    def _require_context(self) -> RunContext:
        if self._context is None:
            raise RuntimeError("No vehicle loaded")
        return self._context

    def _build_context(self, gateway, config: VehicleConfig) -> RunContext:
        self._recorder.clear()
        listener = CompositeResultsListener(self._recorder, LoggingResultsListener())
        self._context = RunContext(gateway, config.build_registry(), listener, config.settings)
        return self._context

    # =========================================================================
    # Vehicle Keywords
    # =========================================================================

    @keyword
    def load_simulated_vehicle(self, config_path: Optional[str] = None) -> int:
        """
        Build an in-process simulated vehicle

        Arguments:
            config_path: Vehicle YAML file (default: built-in vehicle)

        Returns:
            Number of OBD modules

        Example:
            | ${count}= | Load Simulated Vehicle | config/vehicle.yaml |
        """
        config = load_vehicle_config(config_path)
        self._bus = SimulatedVehicleBus.from_config(config)
        context = self._build_context(self._bus, config)
        logger.info(f"Loaded simulated vehicle with {len(context.registry)} OBD modules")
        return len(context.registry)

    @keyword
    def connect_to_vehicle_server(self, base_url: Optional[str] = None, config_path: Optional[str] = None) -> int:
        """
        Run against a vehicle server over HTTP

        Arguments:
            base_url: Server URL (default: gateway_url from the settings)
            config_path: Vehicle YAML file describing the OBD modules

        Returns:
            Number of OBD modules

        Example:
            | Connect To Vehicle Server | http://localhost:8000 |
        """
        config = load_vehicle_config(config_path)
        gateway = HttpDiagnosticGateway(base_url or config.settings.gateway_url, config.settings.request_timeout)
        self._bus = None
        context = self._build_context(gateway, config)
        return len(context.registry)

    @keyword
    def get_simulated_bus(self) -> SimulatedVehicleBus:
        """
        Get the simulated bus, e.g. to hand to the FaultInjectionLibrary

        Example:
            | ${bus}= | Get Simulated Bus |
            | Set Vehicle Bus | ${bus} |
        """
        if self._bus is None:
            raise RuntimeError("No simulated vehicle loaded")
        return self._bus

    @keyword
    def set_settle_seconds(self, seconds: int):
        """
        Change the wait before checking for erased data

        Example:
            | Set Settle Seconds | 0 |
        """
        self._require_context().settings.settle_seconds = int(seconds)

    # =========================================================================
    # Step Keywords
    # =========================================================================

    @keyword
    def run_conformance_steps(self, *steps: str) -> int:
        """
        Run steps in (part, step) order

        Arguments:
            steps: Steps as "part.step", all known steps if none given

        Returns:
            Number of failures reported by the run

        Example:
            | ${failures}= | Run Conformance Steps | 2.9 | 12.9 |
        """
        context = self._require_context()
        keys = [tuple(int(n) for n in s.split(".")) for s in steps] if steps else None
        before = len(self._recorder.failures)
        with StepScheduler(create_steps(context, keys)) as scheduler:
            self._last_summary = scheduler.start().result()
        if self._last_summary.aborted:
            raise AssertionError(f"Run aborted: {self._last_summary.aborted.reason}")
        return len(self._recorder.failures) - before

    @keyword
    def capture_retained_data(self) -> int:
        """
        Record retained data of every OBD module before a clear

        Returns:
            Number of packets captured
        """
        context = self._require_context()
        return len(ErasureVerifier(context, KEYWORD_PART, KEYWORD_STEP).capture_retained_data())

    @keyword
    def send_global_clear(self) -> List[str]:
        """
        Send a global DM11

        Returns:
            Acknowledgments received, e.g. ["Engine #1 (0): NACK"]
        """
        context = self._require_context()
        acks = context.gateway.request_global(MessageType.DM11).acks
        return [f"{context.registry.name(a.source_address)}: {a.response.name}" for a in acks]

    @keyword
    def send_directed_clear(self, address: int) -> str:
        """
        Send a DM11 to one module

        Returns:
            ACK, NACK, DENIED, BUSY or NONE if the module did not answer
        """
        result = self._require_context().gateway.request_directed(MessageType.DM11, int(address))
        return result.ack.response.name if result.ack else "NONE"

    @keyword
    def verify_data_erased(self, section: str = "A.5"):
        """Report every module whose diagnostic information was not erased"""
        context = self._require_context()
        ErasureVerifier(context, KEYWORD_PART, KEYWORD_STEP).verify_data_erased(context.listener, section)

    @keyword
    def verify_data_not_erased(self, section: str = "A.5"):
        """Report every module whose diagnostic information was erased"""
        context = self._require_context()
        ErasureVerifier(context, KEYWORD_PART, KEYWORD_STEP).verify_data_not_erased(context.listener, section)

    @keyword
    def verify_data_not_partially_erased(self, section1: str = "A.5.a", section2: str = "A.5.b"):
        """Report partially erasing modules and an inconsistent fleet"""
        context = self._require_context()
        ErasureVerifier(context, KEYWORD_PART, KEYWORD_STEP).verify_data_not_partial_erased(
            context.listener, section1, section2
        )

    # =========================================================================
    # Outcome Keywords
    # =========================================================================

    @keyword
    def get_failures(self) -> List[str]:
        """Get the text of every failure reported so far"""
        return list(self._recorder.failures)

    @keyword
    def get_warnings(self) -> List[str]:
        """Get the text of every warning reported so far"""
        return list(self._recorder.warnings)

    @keyword
    def failure_count_should_be(self, expected: int):
        """
        Verify the number of failures reported so far

        Example:
            | Failure Count Should Be | 0 |
        """
        failures = self._recorder.failures
        if len(failures) != int(expected):
            raise AssertionError(f"Expected {expected} failures, got {len(failures)}: {failures}")

    @keyword
    def outcomes_should_contain(self, message: str, outcome: str = "FAIL"):
        """
        Verify an outcome with this exact text was reported

        Example:
            | Outcomes Should Contain | 6.12.9.4.a - Engine #1 (0) responded with a NACK |
        """
        messages = self._recorder.messages(Outcome[outcome.upper()])
        if message not in messages:
            raise AssertionError(f"{outcome} '{message}' not reported. Reported: {messages}")

    @keyword
    def outcomes_should_not_contain(self, text: str):
        """Verify no outcome mentions the text"""
        matching = [o.message for o in self._recorder.outcomes if text in o.message]
        if matching:
            raise AssertionError(f"Unexpected outcomes: {matching}")

    @keyword
    def clear_outcomes(self):
        """Forget the outcomes reported so far"""
        self._recorder.clear()

    @keyword
    def directed_clear_response_should_be(self, address: int, expected: str):
        """
        Send a DM11 to one module and verify its answer

        Example:
            | Directed Clear Response Should Be | 0 | NACK |
        """
        actual = self.send_directed_clear(address)
        if actual != Response[expected.upper()].name:
            raise AssertionError(f"Module {address} answered {actual}, expected {expected}")
