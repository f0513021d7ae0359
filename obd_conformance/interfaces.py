"""Collaborator interfaces used by the step controllers"""

from typing import Protocol, runtime_checkable

from .packets import MessageType
from .results import BusResult, Outcome, RequestResult


@runtime_checkable
class DiagnosticGateway(Protocol):
    """
    Issues diagnostic requests on the vehicle bus.

    Neither method raises for a module that does not answer: a timeout
    is an empty RequestResult or an absent BusResult. GatewayUnavailableError
    is raised only when the bus itself cannot be reached.

    data is the request payload for command messages such as DM22; plain
    requests leave it empty.
    """

    def request_global(self, message_type: MessageType, data: bytes = b"") -> RequestResult: ...

    def request_directed(self, message_type: MessageType, address: int, data: bytes = b"") -> BusResult: ...


@runtime_checkable
class ResultsListener(Protocol):
    """Receives the outcome and progress stream of a run"""

    def add_outcome(self, part_number: int, step_number: int, outcome: Outcome, message: str) -> None: ...

    def on_result(self, line: str) -> None: ...

    def on_progress(self, step_index: int, total_steps: int, note: str) -> None: ...


class Clock(Protocol):
    """Time source used for settle delays"""

    def sleep(self, seconds: float) -> None: ...

    def now(self) -> float: ...
