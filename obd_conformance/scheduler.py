"""Step Scheduler

Runs steps one at a time in (part, step) order on a single worker
thread. A run can be cancelled between steps; a step that aborts ends
the run.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .results import StepResult
from .step_controller import StepController

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """What happened to each step that was started"""

    results: List[StepResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def aborted(self) -> Optional[StepResult]:
        return next((r for r in self.results if r.is_aborted), None)

    @property
    def completed(self) -> bool:
        return not self.cancelled and self.aborted is None


class StepScheduler:
    """Executes steps strictly in order on one worker"""

    def __init__(self, steps: Iterable[StepController]):
        self.steps = sorted(steps, key=lambda s: (s.part_number, s.step_number))
        keys = [(s.part_number, s.step_number) for s in self.steps]
        if len(keys) != len(set(keys)):
            raise ValueError("Each (part, step) may only be scheduled once")
        self._cancel_event = threading.Event()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="obd-steps")

    def run(self) -> RunSummary:
        """Execute all steps on the calling thread"""
        summary = RunSummary()
        total = len(self.steps)
        for index, step in enumerate(self.steps, start=1):
            if self._cancel_event.is_set():
                logger.info(f"Run cancelled before {step.display_name}")
                step.listener.on_progress(index, total, f"Run cancelled before {step.display_name}")
                summary.cancelled = True
                break

            step.listener.on_progress(index, total, f"Starting {step.display_name}")
            result = step.execute()
            summary.results.append(result)

            if result.is_aborted:
                logger.error(f"Run terminated after {step.display_name}: {result.reason}")
                step.listener.on_progress(index, total, f"{step.display_name} aborted: {result.reason}")
                break

        logger.info(f"Run finished: {len(summary.results)} of {total} steps executed")
        return summary

    def start(self) -> "Future[RunSummary]":
        """Execute all steps on the worker thread"""
        return self._executor.submit(self.run)

    def cancel(self):
        """Stop before the next step starts"""
        self._cancel_event.set()

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False
