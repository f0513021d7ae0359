"""Simulated J1939 Vehicle Bus

Connects the simulated ECUs to the conformance steps. Requests are
answered by every online ECU (global) or by one ECU (destination
specific). Each answer is decoded from its raw bytes, so a malformed
message is dropped on its own without affecting the other modules.
"""

import logging
from typing import Dict, Iterable, List, Optional

from obd_conformance.codec import parse_packet
from obd_conformance.config import VehicleConfig
from obd_conformance.errors import GatewayUnavailableError, PacketFormatError
from obd_conformance.packets import AcknowledgmentPacket, MessageType, ParsedPacket
from obd_conformance.results import BusResult, RequestResult

from .obd_ecu import BusMessage, SimulatedObdEcu

logger = logging.getLogger(__name__)


class SimulatedVehicleBus:
    """
    In-process diagnostic gateway over a set of simulated ECUs.

    Features:
    - Global and destination specific requests
    - Per message decoding with malformed messages dropped
    - Bus offline simulation
    - Trace recording
    """

    def __init__(self, ecus: Iterable[SimulatedObdEcu] = ()):
        self.ecus: Dict[int, SimulatedObdEcu] = {}
        for ecu in ecus:
            self.add_ecu(ecu)
        self.online = True
        self.message_log: List[BusMessage] = []
        self.max_log_size = 10000
        self.tx_count = 0
        self.rx_count = 0
        self.dropped_count = 0

    @classmethod
    def from_config(cls, config: VehicleConfig) -> "SimulatedVehicleBus":
        return cls(SimulatedObdEcu(module) for module in config.modules)

    def add_ecu(self, ecu: SimulatedObdEcu):
        if ecu.address in self.ecus:
            raise ValueError(f"Duplicate ECU address: {ecu.address}")
        self.ecus[ecu.address] = ecu

    def get_ecu(self, address: int) -> Optional[SimulatedObdEcu]:
        return self.ecus.get(address)

    def _check_online(self):
        if not self.online:
            raise GatewayUnavailableError("Vehicle bus is offline")

    def _log_message(self, message: BusMessage):
        """Add message to log"""
        self.message_log.append(message)
        if len(self.message_log) > self.max_log_size:
            self.message_log.pop(0)

    # =========================================================================
    # Raw transmission
    # =========================================================================

    def transmit_global(self, message_type: MessageType, data: bytes = b"") -> List[BusMessage]:
        """Send a global request, collecting the raw answers in address order"""
        self._check_online()
        self.tx_count += 1
        logger.debug(f"TX: global request for {message_type.label}")

        messages = []
        for address in sorted(self.ecus):
            message = self.ecus[address].respond(message_type, directed=False, data=data)
            if message is not None:
                self.rx_count += 1
                self._log_message(message)
                messages.append(message)
        return messages

    def transmit_directed(self, message_type: MessageType, address: int, data: bytes = b"") -> Optional[BusMessage]:
        """Send a destination specific request, returning the raw answer if any"""
        self._check_online()
        self.tx_count += 1
        logger.debug(f"TX: DS request for {message_type.label} to {address}")

        ecu = self.ecus.get(address)
        message = ecu.respond(message_type, directed=True, data=data) if ecu else None
        if message is not None:
            self.rx_count += 1
            self._log_message(message)
        return message

    def _decode(self, message: BusMessage) -> Optional[ParsedPacket]:
        try:
            return parse_packet(message.message_type, message.source_address, message.data)
        except PacketFormatError as e:
            self.dropped_count += 1
            logger.error(f"Dropped malformed {message.message_type.label} from {message.source_address}: {e}")
            return None

    # =========================================================================
    # Gateway
    # =========================================================================

    def request_global(self, message_type: MessageType, data: bytes = b"") -> RequestResult:
        result = RequestResult()
        for message in self.transmit_global(message_type, data):
            packet = self._decode(message)
            if isinstance(packet, AcknowledgmentPacket):
                result.acks.append(packet)
            elif packet is not None:
                result.packets.append(packet)
        return result

    def request_directed(self, message_type: MessageType, address: int, data: bytes = b"") -> BusResult:
        message = self.transmit_directed(message_type, address, data)
        packet = self._decode(message) if message is not None else None
        if packet is None:
            return BusResult.absent()
        if isinstance(packet, AcknowledgmentPacket):
            return BusResult.of_ack(packet)
        return BusResult.of_packet(packet)

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_statistics(self) -> dict:
        """Get bus statistics"""
        return {
            "tx_count": self.tx_count,
            "rx_count": self.rx_count,
            "dropped_count": self.dropped_count,
            "online": self.online,
            "ecu_count": len(self.ecus),
        }

    def get_message_log(self, source_address: Optional[int] = None) -> List[BusMessage]:
        """Get message log, optionally filtered by source address"""
        if source_address is None:
            return self.message_log.copy()
        return [m for m in self.message_log if m.source_address == source_address]

    def clear_log(self):
        self.message_log.clear()
