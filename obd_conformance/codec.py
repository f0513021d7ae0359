"""Message type to packet class registry"""

import logging
from typing import Dict, Type

from .errors import PacketFormatError
from .freeze_frame import DM25Packet
from .packets import (
    AcknowledgmentPacket,
    DM1Packet,
    DM2Packet,
    DM5Packet,
    DM6Packet,
    DM12Packet,
    DM20Packet,
    DM21Packet,
    DM22Packet,
    DM23Packet,
    DM26Packet,
    DM28Packet,
    DM29Packet,
    DM30Packet,
    DM31Packet,
    DM33Packet,
    EngineHoursPacket,
    IdleOperationPacket,
    MessageType,
    ParsedPacket,
)

logger = logging.getLogger(__name__)

PACKET_TYPES: Dict[MessageType, Type[ParsedPacket]] = {
    MessageType.DM1: DM1Packet,
    MessageType.DM2: DM2Packet,
    MessageType.DM5: DM5Packet,
    MessageType.DM6: DM6Packet,
    MessageType.DM12: DM12Packet,
    MessageType.DM20: DM20Packet,
    MessageType.DM21: DM21Packet,
    MessageType.DM22: DM22Packet,
    MessageType.DM23: DM23Packet,
    MessageType.DM25: DM25Packet,
    MessageType.DM26: DM26Packet,
    MessageType.DM28: DM28Packet,
    MessageType.DM29: DM29Packet,
    MessageType.DM30: DM30Packet,
    MessageType.DM31: DM31Packet,
    MessageType.DM33: DM33Packet,
    MessageType.ENGINE_HOURS: EngineHoursPacket,
    MessageType.IDLE_OPERATION: IdleOperationPacket,
    MessageType.ACKNOWLEDGMENT: AcknowledgmentPacket,
}


def parse_packet(message_type: MessageType, source_address: int, data: bytes) -> ParsedPacket:
    """
    Decode one message.

    Raises:
        PacketFormatError: if the payload is malformed or the type has no decoder
    """
    packet_class = PACKET_TYPES.get(message_type)
    if packet_class is None:
        raise PacketFormatError(f"No decoder for {message_type.label}")
    return packet_class(source_address, data)
