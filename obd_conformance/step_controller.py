"""Step Controller

Base class of every clause controller. A step knows its part and step
number, issues requests through the run's gateway and reports outcomes
to the run's listener. The correlation helpers that compare global and
destination specific responses live here too since every clause that
issues both kinds of request needs them.
"""

import logging
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from .clock import SystemClock
from .config import ConformanceSettings
from .errors import UnrecoverableStepError
from .interfaces import Clock, DiagnosticGateway, ResultsListener
from .packets import (
    AcknowledgmentPacket,
    CompositeSystem,
    DiagnosticReadinessPacket,
    MessageType,
    ParsedPacket,
    Response,
)
from .registry import ModuleRegistry
from .results import BusResult, Outcome, RequestResult, ResultKind, StepResult

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Everything a step needs, built once per run"""

    gateway: DiagnosticGateway
    registry: ModuleRegistry
    listener: ResultsListener
    settings: ConformanceSettings = field(default_factory=ConformanceSettings)
    clock: Clock = field(default_factory=SystemClock)


# =============================================================================
# Response shape adapters
# =============================================================================


def filter_request_result_packets(results: Iterable[RequestResult]) -> List[ParsedPacket]:
    """Packets of several global requests, in order"""
    return [packet for result in results for packet in result.packets]


def filter_request_result_acks(results: Iterable[RequestResult]) -> List[AcknowledgmentPacket]:
    """Acknowledgments of several global requests, in order"""
    return [ack for result in results for ack in result.acks]


def filter_packets(results: Iterable[BusResult]) -> List[ParsedPacket]:
    """Packets of several destination specific requests, in order"""
    return [result.packet for result in results if result.kind is ResultKind.PACKET]


def filter_acks(results: Iterable[BusResult]) -> List[AcknowledgmentPacket]:
    """Acknowledgments of several destination specific requests, in order"""
    return [result.ack for result in results if result.kind is ResultKind.ACK]


def missing_nack_addresses(
    global_packets: Iterable[ParsedPacket],
    ds_acks: Iterable[AcknowledgmentPacket],
    obd_addresses: Iterable[int],
) -> List[int]:
    """OBD addresses that neither answered globally nor sent a NACK, ascending"""
    addresses = set(obd_addresses)
    addresses.difference_update(p.source_address for p in global_packets)
    addresses.difference_update(a.source_address for a in ds_acks if a.response is Response.NACK)
    return sorted(addresses)


def duplicate_composite_systems(packets: Iterable[DiagnosticReadinessPacket]) -> List[CompositeSystem]:
    """Enabled systems claimed by more than one packet, sorted by name"""
    counts = Counter(
        system.system
        for packet in packets
        for system in packet.monitored_systems
        if system.enabled and system.system is not CompositeSystem.COMPREHENSIVE_COMPONENT
    )
    return sorted((s for s, n in counts.items() if n > 1), key=lambda s: s.system_name)


# =============================================================================
# Step Controller
# =============================================================================


class StepController(ABC):
    """
    One step of one part of the test procedure.

    Subclasses implement run(). A step that cannot continue raises
    UnrecoverableStepError, which execute() turns into an aborted
    StepResult; everything else a step finds is reported as an outcome.
    """

    def __init__(self, context: RunContext, part_number: int, step_number: int, total_steps: int):
        self.context = context
        self.part_number = part_number
        self.step_number = step_number
        self.total_steps = total_steps

    @property
    def display_name(self) -> str:
        return f"Part {self.part_number} Step {self.step_number}"

    @property
    def gateway(self) -> DiagnosticGateway:
        return self.context.gateway

    @property
    def registry(self) -> ModuleRegistry:
        return self.context.registry

    @property
    def listener(self) -> ResultsListener:
        return self.context.listener

    @abstractmethod
    def run(self):
        """Perform the step once"""

    def execute(self) -> StepResult:
        """Run the step and report how it ended"""
        logger.info(f"Starting {self.display_name}")
        try:
            self.run()
        except UnrecoverableStepError as e:
            reason = str(e) or type(e).__name__
            logger.error(f"{self.display_name} aborted: {reason}")
            self.listener.on_result(f"ABORTED: {self.display_name} - {reason}")
            return StepResult.aborted(self.part_number, self.step_number, reason)
        logger.info(f"Completed {self.display_name}")
        return StepResult.completed(self.part_number, self.step_number)

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def _add_outcome(self, outcome: Outcome, message: str):
        self.listener.add_outcome(self.part_number, self.step_number, outcome, message)
        level = logging.INFO if outcome in (Outcome.PASS, Outcome.INFO) else logging.WARNING
        logger.log(level, f"{self.display_name} {outcome.value}: {message}")

    def add_failure(self, message: str):
        self._add_outcome(Outcome.FAIL, message)

    def add_warning(self, message: str):
        self._add_outcome(Outcome.WARN, message)

    def add_info(self, message: str):
        self._add_outcome(Outcome.INFO, message)
        self.listener.on_result("INFO: " + message)

    def update_progress(self, note: str):
        self.listener.on_progress(self.step_number, self.total_steps, note)

    def wait_for_settle(self, section: str, seconds: Optional[int] = None):
        """Block for the settle delay, one progress note per second counting down"""
        if seconds is None:
            seconds = self.context.settings.settle_seconds
        for remaining in range(seconds, 0, -1):
            self.update_progress(f"Step {section} Waiting {remaining} seconds before checking for erased data.")
            self.context.clock.sleep(1)

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    def request_global(self, message_type: MessageType, data: bytes = b"") -> RequestResult:
        result = self.gateway.request_global(message_type, data)
        logger.debug(
            f"{self.display_name} global {message_type.label}: "
            f"{len(result.packets)} packets, {len(result.acks)} acks"
        )
        return result

    def request_directed_all(
        self, message_type: MessageType, addresses: Optional[Sequence[int]] = None, data: bytes = b""
    ) -> List[BusResult]:
        """Send a destination specific request to each OBD module in turn"""
        if addresses is None:
            addresses = self.registry.obd_addresses()
        return [self.gateway.request_directed(message_type, address, data) for address in addresses]

    # -------------------------------------------------------------------------
    # Correlation
    # -------------------------------------------------------------------------

    def compare_request_packets(
        self, global_packets: Sequence[ParsedPacket], ds_packets: Sequence[ParsedPacket], section: str
    ):
        """Report once if any module answered the DS request differently than the global one"""
        for global_packet in global_packets:
            ds_packet = next((p for p in ds_packets if p.source_address == global_packet.source_address), None)
            if ds_packet is not None and ds_packet.data != global_packet.data:
                self.add_failure(f"{section} - Difference compared to data received during global request")
                break

    def check_for_nacks(
        self,
        global_packets: Sequence[ParsedPacket],
        ds_acks: Sequence[AcknowledgmentPacket],
        obd_addresses: Iterable[int],
        section: str,
    ):
        for address in missing_nack_addresses(global_packets, ds_acks, obd_addresses):
            self.add_failure(
                f"{section} - OBD module {self.registry.name(address)} did not provide a response"
                " to Global query and did not provide a NACK for the DS query"
            )

    def report_duplicate_composite_systems(self, packets: Sequence[DiagnosticReadinessPacket], section: str):
        for system in duplicate_composite_systems(packets):
            self.add_warning(
                f"{section} - Required monitor {system.system_name.strip()} is supported by more than one OBD ECU"
            )
