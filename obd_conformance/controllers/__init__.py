"""Clause controllers"""

from typing import Dict, Iterable, List, Optional, Tuple, Type

from ..step_controller import RunContext, StepController
from .part02_step09 import Part02Step09Controller
from .part03_step07 import Part03Step07Controller
from .part07_step04 import Part07Step04Controller
from .part08_step12 import Part08Step12Controller
from .part12_step09 import Part12Step09Controller

STEP_CONTROLLERS: Dict[Tuple[int, int], Type[StepController]] = {
    (2, 9): Part02Step09Controller,
    (3, 7): Part03Step07Controller,
    (7, 4): Part07Step04Controller,
    (8, 12): Part08Step12Controller,
    (12, 9): Part12Step09Controller,
}


def create_steps(context: RunContext, keys: Optional[Iterable[Tuple[int, int]]] = None) -> List[StepController]:
    """Instantiate the controllers for (part, step) keys, all of them by default"""
    if keys is None:
        keys = STEP_CONTROLLERS.keys()
    steps = []
    for key in keys:
        controller_class = STEP_CONTROLLERS.get(tuple(key))
        if controller_class is None:
            raise KeyError(f"No controller for Part {key[0]} Step {key[1]}")
        steps.append(controller_class(context))
    return steps


__all__ = [
    "STEP_CONTROLLERS",
    "create_steps",
    "Part02Step09Controller",
    "Part03Step07Controller",
    "Part07Step04Controller",
    "Part08Step12Controller",
    "Part12Step09Controller",
]
