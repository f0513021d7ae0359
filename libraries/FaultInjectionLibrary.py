"""
Robot Framework Library for Fault Injection

This library provides keywords for injecting faults into simulated
OBD modules for testing purposes in Robot Framework tests.
"""

import logging
from typing import List, Optional, Tuple

from robot.api.deco import keyword, library

from obd_conformance.config import ClearBehavior
from obd_conformance.packets import DiagnosticTroubleCode, MessageType
from vehicle_simulation.obd_ecu import DtcKind, SimulatedObdEcu
from vehicle_simulation.vehicle_bus import SimulatedVehicleBus

logger = logging.getLogger(__name__)


@library
class FaultInjectionLibrary:
    """
    Robot Framework library for fault injection testing.

    Provides keywords for:
    - Implanting DTCs
    - Silencing modules and taking the bus offline
    - Making modules mishandle DM11
    - Corrupting messages
    - Clearing faults
    """

    ROBOT_LIBRARY_SCOPE = "SUITE"
    ROBOT_LIBRARY_VERSION = "0.1.0"

    def __init__(self):
        """Initialize the Fault Injection Library"""
        self._bus: Optional[SimulatedVehicleBus] = None
        self._injected_faults: List[Tuple[str, int]] = []

    def _get_ecu(self, address) -> SimulatedObdEcu:
        if self._bus is None:
            raise RuntimeError("Vehicle bus not set")
        ecu = self._bus.get_ecu(int(address))
        if ecu is None:
            raise RuntimeError(f"No module at address {address}")
        return ecu

    @keyword
    def set_vehicle_bus(self, bus: SimulatedVehicleBus):
        """
        Set the simulated bus to inject faults into

        Example:
            | ${bus}= | Get Simulated Bus |
            | Set Vehicle Bus | ${bus} |
        """
        self._bus = bus

    @keyword
    def inject_dtc(self, address: int, spn: int, fmi: int, kind: str = "active", occurrence_count: int = 1):
        """
        Implant a DTC in a module

        Arguments:
            address: Module address
            spn: Suspect Parameter Number
            fmi: Failure Mode Indicator
            kind: active, previously_active, pending or permanent

        Example:
            | Inject DTC | 0 | 102 | 4 |
        """
        dtc = DiagnosticTroubleCode(int(spn), int(fmi), int(occurrence_count))
        self._get_ecu(address).implant_dtc(dtc, DtcKind(kind))
        self._injected_faults.append((f"dtc_{kind}", int(address)))
        logger.warning(f"Injected {kind} DTC {spn}:{fmi} in module {address}")

    @keyword
    def silence_module(self, address: int):
        """
        Make a module stop answering requests

        Example:
            | Silence Module | 61 |
        """
        self._get_ecu(address).online = False
        self._injected_faults.append(("silent", int(address)))
        logger.warning(f"Module {address} silenced")

    @keyword
    def set_clear_behavior(self, address: int, behavior: str):
        """
        Change how a module handles a global DM11

        Arguments:
            behavior: accept, ack, nack, partial or ignore

        Example:
            | Set Clear Behavior | 0 | partial |
        """
        self._get_ecu(address).clear_behavior = ClearBehavior(behavior.lower())
        self._injected_faults.append((f"clear_{behavior.lower()}", int(address)))
        logger.warning(f"Module {address} DM11 behavior set to {behavior}")

    @keyword
    def corrupt_message(self, address: int, message_type: str):
        """
        Make a module send a malformed payload for one message type

        Example:
            | Corrupt Message | 0 | DM25 |
        """
        self._get_ecu(address).corrupted.add(MessageType[message_type.upper()])
        self._injected_faults.append((f"corrupt_{message_type.upper()}", int(address)))
        logger.warning(f"Module {address} corrupts {message_type}")

    @keyword
    def reset_retained_data(self, address: int):
        """
        Reset counters that must survive a DM11 (non-compliant module)

        Example:
            | Reset Retained Data | 0 |
        """
        self._get_ecu(address).reset_retained_data()
        self._injected_faults.append(("retained_reset", int(address)))

    @keyword
    def take_bus_offline(self):
        """Make every request fail as if the vehicle adapter was unplugged"""
        if self._bus is None:
            raise RuntimeError("Vehicle bus not set")
        self._bus.online = False
        self._injected_faults.append(("bus_offline", -1))
        logger.warning("Vehicle bus taken offline")

    @keyword
    def get_injected_faults(self) -> List[str]:
        """
        Get the faults injected so far

        Example:
            | ${faults}= | Get Injected Faults |
        """
        return [f"{name}@{address}" for name, address in self._injected_faults]

    @keyword
    def clear_all_faults(self):
        """
        Restore every module to answer normally. Implanted DTCs stay
        until a DM11 erases them.
        """
        if self._bus is None:
            raise RuntimeError("Vehicle bus not set")
        self._bus.online = True
        for ecu in self._bus.ecus.values():
            ecu.online = True
            ecu.corrupted.clear()
            ecu.clear_behavior = ClearBehavior.ACCEPT
        self._injected_faults.clear()
        logger.info("All faults cleared")
