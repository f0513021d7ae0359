"""OBD Conformance - Vehicle Simulation Module"""

__version__ = "0.1.0"

from .obd_ecu import BusMessage, DtcKind, SimulatedObdEcu
from .vehicle_bus import SimulatedVehicleBus

__all__ = [
    "BusMessage",
    "DtcKind",
    "SimulatedObdEcu",
    "SimulatedVehicleBus",
]
