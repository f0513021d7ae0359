"""
Unit tests for freeze frames and DM25
"""

import pytest

from obd_conformance.errors import FreezeFrameFormatError, PacketFormatError
from obd_conformance.freeze_frame import DM25Packet, FreezeFrame, Spn, decode_freeze_frames
from obd_conformance.packets import DiagnosticTroubleCode

DTC = DiagnosticTroubleCode(102, 4, 1)


class TestFreezeFrame:
    """Test the length prefixed freeze frame record"""

    def test_encoding(self):
        frame = FreezeFrame(DTC, b"\x10\x20\x30")
        assert frame.to_bytes() == bytes([7, 0x66, 0x00, 0x04, 0x01, 0x10, 0x20, 0x30])
        assert frame.total_length == 8
        assert FreezeFrame.from_bytes(frame.to_bytes()) == frame

    def test_length_prefix_must_match(self):
        data = bytes([9, 0x66, 0x00, 0x04, 0x01, 0x10])
        with pytest.raises(FreezeFrameFormatError):
            FreezeFrame.from_bytes(data)

    def test_format_error_is_packet_format_error(self):
        with pytest.raises(PacketFormatError):
            FreezeFrame.from_bytes(b"")

    def test_body_too_long(self):
        with pytest.raises(FreezeFrameFormatError):
            FreezeFrame(DTC, bytes(252))

    def test_length_prefix_never_reads_as_padding(self):
        with pytest.raises(FreezeFrameFormatError):
            FreezeFrame(DTC, bytes(251))
        frame = FreezeFrame(DTC, bytes(250))
        assert frame.to_bytes()[0] == 0xFE
        assert FreezeFrame.from_bytes(frame.to_bytes()) == frame

    def test_spn_data_is_a_copy(self):
        raw = bytearray(b"\x01\x02")
        frame = FreezeFrame(DTC, raw)
        raw[0] = 0xFF
        assert frame.spn_data == b"\x01\x02"

    def test_from_spns(self):
        spns = [Spn(190, "Engine Speed", b"\x00\x19", 800.0, "rpm"), Spn(84, "Vehicle Speed", b"\x00\x00", 0.0, "km/h")]
        frame = FreezeFrame.from_spns(DTC, spns)
        assert frame.spn_data == b"\x00\x19\x00\x00"
        assert frame.get_spn(190).value == 800.0
        assert frame.get_spn(91) is None

    def test_decoded_views_do_not_affect_equality(self):
        frame = FreezeFrame(DTC, b"\x00\x19")
        other = FreezeFrame(DTC, b"\x00\x19")
        other.spns.append(Spn(190, "Engine Speed", b"\x00\x19", 800.0, "rpm"))
        assert frame == other
        assert "SPN   190, Engine Speed: 800.0 rpm" in str(other)


class TestDecodeFreezeFrames:
    """Test splitting concatenated freeze frames"""

    def test_several_frames(self):
        first = FreezeFrame(DTC, b"\x01")
        second = FreezeFrame(DiagnosticTroubleCode(3226, 2, 1))
        assert decode_freeze_frames(first.to_bytes() + second.to_bytes()) == [first, second]

    def test_padding_ends_the_list(self):
        frame = FreezeFrame(DTC)
        assert decode_freeze_frames(frame.to_bytes() + b"\xFF\xFF\xFF") == [frame]

    def test_overrun_raises(self):
        with pytest.raises(FreezeFrameFormatError):
            decode_freeze_frames(bytes([20, 0x66, 0x00, 0x04, 0x01]))


class TestDM25Packet:
    """Test the DM25 Expanded Freeze Frame packet"""

    def test_no_frames(self):
        packet = DM25Packet.create(0)
        assert packet.data == bytes([0, 0, 0, 0, 0, 0xFF, 0xFF, 0xFF])
        assert packet.freeze_frames == []
        assert packet.is_erased()

    def test_longest_frame_survives_decoding(self):
        frame = FreezeFrame(DTC, bytes(range(250)))
        packet = DM25Packet(0, DM25Packet.create(0, frame).data)
        assert packet.freeze_frames == [frame]
        assert not packet.is_erased()

    def test_with_frame(self):
        frame = FreezeFrame(DTC, b"\x00\x19")
        packet = DM25Packet.create(0, frame)
        assert packet.freeze_frames == [frame]
        assert not packet.is_erased()

    def test_corrupt_payload_raises(self):
        with pytest.raises(PacketFormatError):
            DM25Packet(0, b"\x20")
