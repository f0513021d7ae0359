"""OBD Conformance - Robot Framework Libraries"""

__version__ = "0.1.0"

from .ConformanceLibrary import ConformanceLibrary
from .FaultInjectionLibrary import FaultInjectionLibrary

__all__ = [
    "ConformanceLibrary",
    "FaultInjectionLibrary",
]
