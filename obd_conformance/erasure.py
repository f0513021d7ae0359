"""Diagnostic Information Erasure Verifier

Checks every OBD module against the criteria for erasing diagnostic
information after a DM11. Each probe asks one module for one message and
votes whether what came back is in the erased state for that message.

DM20, DM28, DM33, engine run time and engine idle time must survive a
DM11. Those probes compare against the values captured before the clear
and are only checked when the data is expected to be retained. When a
module is checked for partial erasure, retained data that survived does
not vote; retained data that was reset votes erased.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from .interfaces import ResultsListener
from .packets import MessageType, ParsedPacket
from .results import BusResult, Outcome, ResultKind
from .step_controller import RunContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ErasureProbe:
    """One message checked for the erased state"""

    label: str
    message_type: MessageType
    retained: bool = False

    def is_erased(self, result: BusResult, baseline: Optional[ParsedPacket] = None) -> bool:
        if self.retained:
            # Nothing to compare against means nothing could have been erased
            if baseline is None:
                return False
            if result.kind is not ResultKind.PACKET:
                return True
            return result.packet.is_reset_from(baseline)
        if result.kind is not ResultKind.PACKET:
            return True
        return result.packet.is_erased()


PROBES = (
    ErasureProbe("DM6", MessageType.DM6),
    ErasureProbe("DM12", MessageType.DM12),
    ErasureProbe("DM23", MessageType.DM23),
    ErasureProbe("DM29", MessageType.DM29),
    ErasureProbe("DM5", MessageType.DM5),
    ErasureProbe("DM25", MessageType.DM25),
    ErasureProbe("DM31", MessageType.DM31),
    ErasureProbe("DM21", MessageType.DM21),
    ErasureProbe("DM26", MessageType.DM26),
    ErasureProbe("test results", MessageType.DM30),
    ErasureProbe("DM20", MessageType.DM20, retained=True),
    ErasureProbe("DM28", MessageType.DM28, retained=True),
    ErasureProbe("DM33", MessageType.DM33, retained=True),
    ErasureProbe("engine run time", MessageType.ENGINE_HOURS, retained=True),
    ErasureProbe("engine idle time", MessageType.IDLE_OPERATION, retained=True),
)


@dataclass(frozen=True)
class ModuleErasureRecord:
    """
    All votes of one module at one instant.

    representative_erased is the first vote counted. It only means
    something on its own when is_mixed is False; a mixed module still
    contributes it to the fleet comparison so that comparison stays
    deterministic.
    """

    address: int
    representative_erased: bool
    is_mixed: bool


class ErasureVerifier:
    """Erasure checks on behalf of one step"""

    def __init__(
        self, context: RunContext, part_number: int, step_number: int, probes: Sequence[ErasureProbe] = PROBES
    ):
        self.context = context
        self.part_number = part_number
        self.step_number = step_number
        self.probes = tuple(probes)
        if not self.probes:
            raise ValueError("At least one erasure probe is required")

    def _add_failure(self, listener: ResultsListener, message: str):
        listener.add_outcome(self.part_number, self.step_number, Outcome.FAIL, message)
        logger.warning(f"Part {self.part_number} Step {self.step_number} FAIL: {message}")

    def _check(
        self,
        probe: ErasureProbe,
        address: int,
        listener: Optional[ResultsListener] = None,
        section: Optional[str] = None,
        expected: bool = False,
    ) -> bool:
        """
        Vote for one probe on one module.

        With a section the vote is verified against expected and a mismatch
        is reported; without one the vote is only returned.
        """
        result = self.context.gateway.request_directed(probe.message_type, address)
        baseline = self.context.registry.baseline(address, probe.message_type)
        erased = probe.is_erased(result, baseline)
        logger.debug(f"{probe.label} from {self.context.registry.name(address)}: erased={erased}")

        if section is not None and erased != expected:
            name = self.context.registry.name(address)
            if expected:
                self._add_failure(listener, f"{section} - {name} did not erase {probe.label} data")
            else:
                self._add_failure(listener, f"{section} - {name} erased {probe.label} data")
        return erased

    def _check_module(self, listener: ResultsListener, section: str, address: int, as_erased: bool):
        for probe in self.probes:
            if probe.retained and as_erased:
                continue
            self._check(probe, address, listener, section, as_erased)

    def verify_data_erased(self, listener: ResultsListener, section: str):
        """Report every probe of every OBD module that is not in the erased state"""
        listener.on_result(f"\n{section} - Checking for erased diagnostic information")
        for address in self.context.registry.obd_addresses():
            self._check_module(listener, section, address, True)

    def verify_data_not_erased(self, listener: ResultsListener, section: str):
        """Report every probe of every OBD module that is in the erased state"""
        listener.on_result(f"\n{section} - Checking for erased diagnostic information")
        for address in self.context.registry.obd_addresses():
            self._check_module(listener, section, address, False)

    def check_module_atomicity(self, address: int) -> ModuleErasureRecord:
        votes = []
        for probe in self.probes:
            erased = self._check(probe, address)
            # Retained data that survived the clear is not a vote either way
            if probe.retained and not erased:
                continue
            votes.append(erased)

        if not votes:
            return ModuleErasureRecord(address, False, False)
        return ModuleErasureRecord(address, votes[0], len(set(votes)) != 1)

    def verify_data_not_partial_erased(self, listener: ResultsListener, section1: str, section2: str):
        """
        Fail each module that erased only part of its data (section1), and
        fail once when some modules erased and others did not (section2).
        """
        listener.on_result(f"\n{section1} - Checking for erased diagnostic information")

        fleet_votes = set()
        for address in self.context.registry.obd_addresses():
            record = self.check_module_atomicity(address)
            if record.is_mixed:
                self._add_failure(
                    listener,
                    f"{section1} - {self.context.registry.name(address)} partially erased diagnostic information",
                )
            fleet_votes.add(record.representative_erased)

        if len(fleet_votes) > 1:
            self._add_failure(
                listener,
                f"{section2} - One or more than one ECU erased diagnostic information"
                " and one or more other ECUs did not erase diagnostic information",
            )

    def capture_retained_data(self, addresses: Optional[Iterable[int]] = None) -> List[ParsedPacket]:
        """
        Record the current retained data of each module as its baseline.

        Must run before the DM11 whose effect is verified later.
        """
        if addresses is None:
            addresses = self.context.registry.obd_addresses()

        captured = []
        for address in addresses:
            for probe in self.probes:
                if not probe.retained:
                    continue
                result = self.context.gateway.request_directed(probe.message_type, address)
                if result.kind is ResultKind.PACKET:
                    self.context.registry.set_baseline(result.packet)
                    captured.append(result.packet)
        logger.info(f"Captured {len(captured)} retained data baselines")
        return captured
