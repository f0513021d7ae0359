"""Request results, outcomes and step results"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .packets import AcknowledgmentPacket, ParsedPacket, Response


class Outcome(Enum):
    """Severity of a reported outcome"""

    PASS = "PASS"
    FAIL = "FAIL"
    WARN = "WARN"
    INFO = "INFO"


@dataclass(frozen=True)
class OutcomeRecord:
    """One reported outcome, never changed after it is recorded"""

    part_number: int
    step_number: int
    outcome: Outcome
    message: str

    def __str__(self) -> str:
        return f"{self.part_number}.{self.step_number} {self.outcome.value}: {self.message}"


@dataclass
class RequestResult:
    """Responses to one global request"""

    packets: List[ParsedPacket] = field(default_factory=list)
    acks: List[AcknowledgmentPacket] = field(default_factory=list)
    retry_used: bool = False

    def is_empty(self) -> bool:
        return not self.packets and not self.acks


class ResultKind(Enum):
    PACKET = "packet"
    ACK = "ack"
    ABSENT = "absent"


@dataclass(frozen=True)
class BusResult:
    """
    Response to one destination specific request.

    Exactly one of packet, acknowledgment or absent. An absent result and
    a NACK are different things and callers must not conflate them.
    """

    kind: ResultKind
    packet: Optional[ParsedPacket] = None
    ack: Optional[AcknowledgmentPacket] = None

    def __post_init__(self):
        if self.kind is ResultKind.PACKET and (self.packet is None or self.ack is not None):
            raise ValueError("PACKET result needs a packet and no acknowledgment")
        if self.kind is ResultKind.ACK and (self.ack is None or self.packet is not None):
            raise ValueError("ACK result needs an acknowledgment and no packet")
        if self.kind is ResultKind.ABSENT and (self.packet is not None or self.ack is not None):
            raise ValueError("ABSENT result carries nothing")

    @classmethod
    def of_packet(cls, packet: ParsedPacket) -> "BusResult":
        return cls(ResultKind.PACKET, packet=packet)

    @classmethod
    def of_ack(cls, ack: AcknowledgmentPacket) -> "BusResult":
        return cls(ResultKind.ACK, ack=ack)

    @classmethod
    def absent(cls) -> "BusResult":
        return cls(ResultKind.ABSENT)

    @property
    def is_absent(self) -> bool:
        return self.kind is ResultKind.ABSENT

    @property
    def is_nack(self) -> bool:
        return self.kind is ResultKind.ACK and self.ack.response is Response.NACK


class StepStatus(Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class StepResult:
    """Tagged result of executing one step"""

    part_number: int
    step_number: int
    status: StepStatus
    reason: Optional[str] = None

    @classmethod
    def completed(cls, part_number: int, step_number: int) -> "StepResult":
        return cls(part_number, step_number, StepStatus.COMPLETED)

    @classmethod
    def aborted(cls, part_number: int, step_number: int, reason: str) -> "StepResult":
        return cls(part_number, step_number, StepStatus.ABORTED, reason)

    @property
    def is_aborted(self) -> bool:
        return self.status is StepStatus.ABORTED
