"""Freeze Frame codec and the DM25 Expanded Freeze Frame packet"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .errors import FreezeFrameFormatError
from .packets import DiagnosticTroubleCode, MessageType, ParsedPacket

logger = logging.getLogger(__name__)

# A 0xFF length prefix is padding, so a frame body stops one short of it
MAX_BODY_LENGTH = 0xFE


@dataclass
class Spn:
    """Decoded view of one captured parameter"""

    id: int
    label: str
    data: bytes
    value: Optional[float] = None
    unit: str = ""

    def __str__(self) -> str:
        shown = "Not Available" if self.value is None else f"{self.value} {self.unit}".strip()
        return f"SPN {self.id:5d}, {self.label}: {shown}"


class FreezeFrame:
    """
    One DTC plus the parameter bytes captured when it was set.

    The raw bytes never change after construction. Decoded Spn views are
    attached separately through the spns attribute, since decoding them
    needs parameter metadata that is not known at capture time.
    """

    def __init__(self, dtc: DiagnosticTroubleCode, spn_data: bytes = b""):
        self.dtc = dtc
        self._spn_data = bytes(spn_data)
        self.spns: List[Spn] = []
        if len(self.dtc.to_bytes()) + len(self._spn_data) > MAX_BODY_LENGTH:
            raise FreezeFrameFormatError(f"Freeze frame for {dtc} is longer than {MAX_BODY_LENGTH} bytes")

    @classmethod
    def from_spns(cls, dtc: DiagnosticTroubleCode, spns: Sequence[Spn]) -> "FreezeFrame":
        frame = cls(dtc, b"".join(s.data for s in spns))
        frame.spns = list(spns)
        return frame

    @property
    def spn_data(self) -> bytes:
        return self._spn_data

    @property
    def total_length(self) -> int:
        """Length on the wire, including the length prefix"""
        return 1 + DiagnosticTroubleCode.LENGTH + len(self._spn_data)

    def to_bytes(self) -> bytes:
        body = self.dtc.to_bytes() + self._spn_data
        return bytes([len(body)]) + body

    @classmethod
    def from_bytes(cls, data: bytes) -> "FreezeFrame":
        """Decode exactly one freeze frame; the prefix must cover the rest of data"""
        if not data:
            raise FreezeFrameFormatError("Freeze frame is empty")
        length = data[0]
        if length != len(data) - 1:
            raise FreezeFrameFormatError(
                f"Freeze frame length {length} does not match payload of {len(data) - 1} bytes"
            )
        return cls._decode_body(data[1:])

    @classmethod
    def _decode_body(cls, body: bytes) -> "FreezeFrame":
        if len(body) < DiagnosticTroubleCode.LENGTH:
            raise FreezeFrameFormatError(f"Freeze frame of {len(body)} bytes cannot hold a DTC")
        dtc = DiagnosticTroubleCode.from_bytes(body[: DiagnosticTroubleCode.LENGTH])
        return cls(dtc, body[DiagnosticTroubleCode.LENGTH :])

    def get_spn(self, spn_id: int) -> Optional[Spn]:
        return next((s for s in self.spns if s.id == spn_id), None)

    def __eq__(self, other) -> bool:
        if not isinstance(other, FreezeFrame):
            return NotImplemented
        return self.dtc == other.dtc and self._spn_data == other._spn_data

    def __hash__(self) -> int:
        return hash((self.dtc, self._spn_data))

    def __str__(self) -> str:
        lines = ["Freeze Frame: {", str(self.dtc), "SPN Data: " + " ".join(f"{b:02X}" for b in self._spn_data)]
        lines.extend(str(s) for s in sorted(self.spns, key=lambda s: s.id))
        lines.append("}")
        return "\n".join(lines)


def decode_freeze_frames(data: bytes) -> List[FreezeFrame]:
    """Split a concatenation of length prefixed freeze frames"""
    frames = []
    offset = 0
    while offset < len(data):
        length = data[offset]
        # A zero length frame (or padding) marks the end of the list
        if length == 0 or length == 0xFF:
            break
        end = offset + 1 + length
        if end > len(data):
            raise FreezeFrameFormatError(
                f"Freeze frame length {length} at offset {offset} exceeds the {len(data) - offset - 1} bytes left"
            )
        frame = FreezeFrame._decode_body(data[offset + 1 : end])
        if not frame.dtc.is_placeholder:
            frames.append(frame)
        offset = end
    return frames


class DM25Packet(ParsedPacket):
    """DM25 Expanded Freeze Frame"""

    message_type = MessageType.DM25

    def _parse(self):
        self.freeze_frames = decode_freeze_frames(self.data)

    @classmethod
    def create(cls, source_address: int, *freeze_frames: FreezeFrame) -> "DM25Packet":
        if freeze_frames:
            data = b"".join(f.to_bytes() for f in freeze_frames)
        else:
            data = bytes(5) + b"\xFF\xFF\xFF"
        return cls(source_address, data)

    def is_erased(self) -> bool:
        return not self.freeze_frames
