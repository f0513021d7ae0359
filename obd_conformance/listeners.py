"""Results listener implementations"""

import logging
from typing import List, Tuple

from .results import Outcome, OutcomeRecord

logger = logging.getLogger(__name__)


class RecordingResultsListener:
    """Keeps everything it receives, in order"""

    def __init__(self):
        self.outcomes: List[OutcomeRecord] = []
        self.results: List[str] = []
        self.progress: List[Tuple[int, int, str]] = []

    def add_outcome(self, part_number: int, step_number: int, outcome: Outcome, message: str):
        self.outcomes.append(OutcomeRecord(part_number, step_number, outcome, message))

    def on_result(self, line: str):
        self.results.append(line)

    def on_progress(self, step_index: int, total_steps: int, note: str):
        self.progress.append((step_index, total_steps, note))

    def messages(self, outcome: Outcome) -> List[str]:
        return [o.message for o in self.outcomes if o.outcome is outcome]

    @property
    def failures(self) -> List[str]:
        return self.messages(Outcome.FAIL)

    @property
    def warnings(self) -> List[str]:
        return self.messages(Outcome.WARN)

    @property
    def notes(self) -> List[str]:
        return [note for _, _, note in self.progress]

    def clear(self):
        self.outcomes.clear()
        self.results.clear()
        self.progress.clear()


class LoggingResultsListener:
    """Forwards the listener stream to logging"""

    def __init__(self, name: str = "obd_conformance.report"):
        self._logger = logging.getLogger(name)

    def add_outcome(self, part_number: int, step_number: int, outcome: Outcome, message: str):
        level = logging.WARNING if outcome in (Outcome.FAIL, Outcome.WARN) else logging.INFO
        self._logger.log(level, f"{part_number}.{step_number} {outcome.value}: {message}")

    def on_result(self, line: str):
        self._logger.info(line)

    def on_progress(self, step_index: int, total_steps: int, note: str):
        self._logger.info(f"[{step_index}/{total_steps}] {note}")


class CompositeResultsListener:
    """Fans the stream out to several listeners"""

    def __init__(self, *listeners):
        self.listeners = list(listeners)

    def add_outcome(self, part_number: int, step_number: int, outcome: Outcome, message: str):
        for listener in self.listeners:
            listener.add_outcome(part_number, step_number, outcome, message)

    def on_result(self, line: str):
        for listener in self.listeners:
            listener.on_result(line)

    def on_progress(self, step_index: int, total_steps: int, note: str):
        for listener in self.listeners:
            listener.on_progress(step_index, total_steps, note)
