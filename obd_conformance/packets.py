"""J1939 Diagnostic Message Packets

Decoded views over the raw bytes of the diagnostic messages used by the
conformance steps. Every packet keeps the bytes it was received with so
global and destination specific responses can be compared byte for byte.
Malformed payloads raise PacketFormatError from the constructor, which
confines a decoding failure to the single message being parsed.
"""

import logging
import struct
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Dict, Iterable, List, Optional

from .errors import PacketFormatError
from .lookup import address_name

logger = logging.getLogger(__name__)

# Values at or above these are error indicators / not available
NOT_AVAILABLE_8 = 0xFB
NOT_AVAILABLE_16 = 0xFB00
NOT_AVAILABLE_32 = 0xFB000000


class MessageType(Enum):
    """Diagnostic messages by Parameter Group Number"""

    DM1 = 65226
    DM2 = 65227
    DM5 = 65230
    DM6 = 65231
    DM11 = 65235
    DM12 = 65236
    DM20 = 49664
    DM21 = 49408
    DM22 = 49920
    DM23 = 64949
    DM25 = 64951
    DM26 = 64952
    DM28 = 64896
    DM29 = 40448
    DM30 = 41984
    DM31 = 41728
    DM33 = 41216
    ENGINE_HOURS = 65253
    IDLE_OPERATION = 65244
    ACKNOWLEDGMENT = 59392

    @property
    def pgn(self) -> int:
        return self.value

    @property
    def label(self) -> str:
        """Human readable name used in report text"""
        return self.name.replace("_", " ").title() if not self.name.startswith("DM") else self.name


class LampStatus(Enum):
    """Two bit lamp status"""

    OFF = 0
    ON = 1
    OTHER = 2
    NOT_SUPPORTED = 3


def is_not_available(value: int, size: int = 16) -> bool:
    """Check whether a raw SPN value is an error / not available indicator"""
    limit = {8: NOT_AVAILABLE_8, 16: NOT_AVAILABLE_16, 32: NOT_AVAILABLE_32}[size]
    return value >= limit


class ParsedPacket:
    """
    Base class of all decoded diagnostic packets.

    Subclasses decode their payload in _parse() and raise PacketFormatError
    when the payload cannot be interpreted.
    """

    message_type: ClassVar[Optional[MessageType]] = None

    def __init__(self, source_address: int, data: bytes):
        if not 0 <= source_address <= 0xFF:
            raise PacketFormatError(f"Invalid source address: {source_address}")
        self.source_address = source_address
        self.data = bytes(data)
        self._parse()

    def _parse(self):
        """Decode self.data"""

    @property
    def module_name(self) -> str:
        return address_name(self.source_address)

    def _require_length(self, minimum: int):
        if len(self.data) < minimum:
            name = self.message_type.label if self.message_type else type(self).__name__
            raise PacketFormatError(
                f"{name} from {self.module_name} needs {minimum} bytes, got {len(self.data)}"
            )

    def __eq__(self, other) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.source_address == other.source_address and self.data == other.data

    def __hash__(self) -> int:
        return hash((type(self), self.source_address, self.data))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(source_address={self.source_address}, data={self.data.hex()})"


# =============================================================================
# Diagnostic Trouble Codes
# =============================================================================


@dataclass(frozen=True)
class DiagnosticTroubleCode:
    """J1939 DTC, compared by value"""

    spn: int
    fmi: int
    occurrence_count: int = 0
    conversion_method: int = 0

    LENGTH: ClassVar[int] = 4

    def __post_init__(self):
        if not 0 <= self.spn <= 0x7FFFF:
            raise ValueError(f"SPN out of range: {self.spn}")
        if not 0 <= self.fmi <= 0x1F:
            raise ValueError(f"FMI out of range: {self.fmi}")
        if not 0 <= self.occurrence_count <= 0x7F:
            raise ValueError(f"Occurrence count out of range: {self.occurrence_count}")
        if self.conversion_method not in (0, 1):
            raise ValueError(f"Conversion method must be 0 or 1: {self.conversion_method}")

    def to_bytes(self) -> bytes:
        return bytes(
            [
                self.spn & 0xFF,
                (self.spn >> 8) & 0xFF,
                ((self.spn >> 11) & 0xE0) | self.fmi,
                (self.conversion_method << 7) | self.occurrence_count,
            ]
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "DiagnosticTroubleCode":
        if len(data) != cls.LENGTH:
            raise PacketFormatError(f"DTC needs {cls.LENGTH} bytes, got {len(data)}")
        spn = data[0] | (data[1] << 8) | ((data[2] & 0xE0) << 11)
        return cls(
            spn=spn,
            fmi=data[2] & 0x1F,
            occurrence_count=data[3] & 0x7F,
            conversion_method=data[3] >> 7,
        )

    @property
    def is_placeholder(self) -> bool:
        """SPN 0 / FMI 0 is sent when no DTC is present"""
        return self.spn == 0 and self.fmi == 0

    def __str__(self) -> str:
        return f"DTC {self.spn}:{self.fmi} - {self.occurrence_count} times"


class DTCPacket(ParsedPacket):
    """Lamp status followed by a list of DTCs (DM1, DM2, DM6, DM12, DM23, DM28)"""

    def _parse(self):
        self._require_length(2)
        self.mil_status = LampStatus((self.data[0] >> 6) & 0x03)
        self.dtcs: List[DiagnosticTroubleCode] = []
        for i in range(2, len(self.data), DiagnosticTroubleCode.LENGTH):
            chunk = self.data[i : i + DiagnosticTroubleCode.LENGTH]
            if all(b == 0xFF for b in chunk):
                continue
            if len(chunk) < DiagnosticTroubleCode.LENGTH:
                raise PacketFormatError(f"Truncated DTC in packet from {self.module_name}")
            dtc = DiagnosticTroubleCode.from_bytes(chunk)
            if not dtc.is_placeholder:
                self.dtcs.append(dtc)

    @classmethod
    def create(
        cls, source_address: int, mil_status: LampStatus = LampStatus.OFF, *dtcs: DiagnosticTroubleCode
    ):
        data = bytearray([mil_status.value << 6, 0xFF])
        if dtcs:
            for dtc in dtcs:
                data.extend(dtc.to_bytes())
        else:
            data.extend(bytes(4))
        while len(data) < 8:
            data.append(0xFF)
        return cls(source_address, bytes(data))

    def is_erased(self) -> bool:
        return not self.dtcs


class DM1Packet(DTCPacket):
    """DM1 Active DTCs"""

    message_type = MessageType.DM1


class DM2Packet(DTCPacket):
    """DM2 Previously Active DTCs"""

    message_type = MessageType.DM2


class DM6Packet(DTCPacket):
    """DM6 Pending Emission DTCs"""

    message_type = MessageType.DM6


class DM12Packet(DTCPacket):
    """DM12 Emission Related Active DTCs"""

    message_type = MessageType.DM12


class DM23Packet(DTCPacket):
    """DM23 Previously MIL On Emission DTCs"""

    message_type = MessageType.DM23


class DM28Packet(DTCPacket):
    """DM28 Permanent DTCs. DM11 must not erase these."""

    message_type = MessageType.DM28

    def is_reset_from(self, baseline: "DM28Packet") -> bool:
        return not set(baseline.dtcs).issubset(self.dtcs)


# =============================================================================
# Readiness
# =============================================================================


class CompositeSystem(Enum):
    """Monitored systems reported by DM5 and DM26"""

    MISFIRE = ("Misfire", True, 0)
    FUEL_SYSTEM = ("Fuel System", True, 1)
    COMPREHENSIVE_COMPONENT = ("Comprehensive component", True, 2)
    CATALYST = ("Catalyst", False, 0)
    HEATED_CATALYST = ("Heated catalyst", False, 1)
    EVAPORATIVE_SYSTEM = ("Evaporative system", False, 2)
    SECONDARY_AIR_SYSTEM = ("Secondary air system", False, 3)
    AC_SYSTEM_REFRIGERANT = ("A/C system refrigerant", False, 4)
    EXHAUST_GAS_SENSOR = ("Exhaust Gas Sensor", False, 5)
    EXHAUST_GAS_SENSOR_HEATER = ("Exhaust Gas Sensor heater", False, 6)
    EGR_VVT_SYSTEM = ("EGR/VVT system", False, 7)
    COLD_START_AID_SYSTEM = ("Cold start aid system", False, 8)
    BOOST_PRESSURE_CONTROL_SYS = ("Boost pressure control sys", False, 9)
    DIESEL_PARTICULATE_FILTER = ("Diesel Particulate Filter", False, 10)
    NOX_CATALYST_ABSORBER = ("NOx catalyst/adsorber", False, 11)
    NMHC_CONVERTING_CATALYST = ("NMHC converting catalyst", False, 12)

    def __init__(self, system_name: str, continuous: bool, bit: int):
        self.system_name = system_name
        self.continuous = continuous
        self.bit = bit


@dataclass(frozen=True)
class MonitoredSystem:
    """Support and completion status of one composite system"""

    system: CompositeSystem
    enabled: bool
    complete: bool
    source_address: int


def decode_monitored_systems(block: bytes, source_address: int) -> List[MonitoredSystem]:
    """Decode the five byte support/status block shared by DM5 and DM26"""
    continuous_byte = block[0]
    support = block[1] | (block[2] << 8)
    status = block[3] | (block[4] << 8)

    systems = []
    for system in CompositeSystem:
        if system.continuous:
            enabled = bool((continuous_byte >> system.bit) & 0x01)
            not_complete = bool((continuous_byte >> (system.bit + 4)) & 0x01)
        else:
            enabled = bool((support >> system.bit) & 0x01)
            not_complete = bool((status >> system.bit) & 0x01)
        systems.append(MonitoredSystem(system, enabled, not not_complete, source_address))
    return systems


def encode_monitored_systems(
    enabled: Iterable[CompositeSystem], complete: Iterable[CompositeSystem]
) -> bytes:
    """Encode support/status bits; only enabled systems report not complete"""
    enabled = set(enabled)
    complete = set(complete)
    continuous_byte = 0
    support = 0
    status = 0
    for system in enabled:
        not_complete = system not in complete
        if system.continuous:
            continuous_byte |= 1 << system.bit
            if not_complete:
                continuous_byte |= 1 << (system.bit + 4)
        else:
            support |= 1 << system.bit
            if not_complete:
                status |= 1 << system.bit
    return bytes([continuous_byte]) + struct.pack("<HH", support, status)


class DiagnosticReadinessPacket(ParsedPacket):
    """Packets carrying a monitored system block at byte 3"""

    def _parse(self):
        self._require_length(8)
        self.monitored_systems = decode_monitored_systems(self.data[3:8], self.source_address)

    def _monitors_reset(self) -> bool:
        return all(not s.complete for s in self.monitored_systems if s.enabled)


class DM5Packet(DiagnosticReadinessPacket):
    """DM5 Diagnostic Readiness 1"""

    message_type = MessageType.DM5

    def _parse(self):
        super()._parse()
        self.active_count = self.data[0]
        self.previously_active_count = self.data[1]
        self.obd_compliance = self.data[2]

    @classmethod
    def create(
        cls,
        source_address: int,
        active_count: int = 0,
        previously_active_count: int = 0,
        obd_compliance: int = 0x13,
        enabled: Iterable[CompositeSystem] = (),
        complete: Iterable[CompositeSystem] = (),
    ) -> "DM5Packet":
        data = bytes([active_count, previously_active_count, obd_compliance])
        return cls(source_address, data + encode_monitored_systems(enabled, complete))

    def is_erased(self) -> bool:
        return self.active_count == 0 and self.previously_active_count == 0 and self._monitors_reset()


class DM26Packet(DiagnosticReadinessPacket):
    """DM26 Diagnostic Readiness 3"""

    message_type = MessageType.DM26

    def _parse(self):
        super()._parse()
        self.time_since_engine_start = struct.unpack_from("<H", self.data, 0)[0]
        self.warm_ups_since_clear = self.data[2]

    @classmethod
    def create(
        cls,
        source_address: int,
        warm_ups_since_clear: int = 0,
        time_since_engine_start: int = 0,
        enabled: Iterable[CompositeSystem] = (),
        complete: Iterable[CompositeSystem] = (),
    ) -> "DM26Packet":
        data = struct.pack("<HB", time_since_engine_start, warm_ups_since_clear)
        return cls(source_address, data + encode_monitored_systems(enabled, complete))

    def is_erased(self) -> bool:
        warm_ups_reset = self.warm_ups_since_clear == 0 or self.warm_ups_since_clear == 0xFF
        return warm_ups_reset and self._monitors_reset()


class DM21Packet(ParsedPacket):
    """DM21 Diagnostic Readiness 2"""

    message_type = MessageType.DM21

    def _parse(self):
        self._require_length(8)
        (
            self.km_while_mil_on,
            self.km_since_codes_cleared,
            self.minutes_while_mil_on,
            self.minutes_since_codes_cleared,
        ) = struct.unpack_from("<HHHH", self.data, 0)

    @classmethod
    def create(
        cls,
        source_address: int,
        km_while_mil_on: int = 0,
        km_since_codes_cleared: int = 0,
        minutes_while_mil_on: int = 0,
        minutes_since_codes_cleared: int = 0,
    ) -> "DM21Packet":
        data = struct.pack(
            "<HHHH",
            km_while_mil_on,
            km_since_codes_cleared,
            minutes_while_mil_on,
            minutes_since_codes_cleared,
        )
        return cls(source_address, data)

    def is_erased(self) -> bool:
        values = (
            self.km_while_mil_on,
            self.km_since_codes_cleared,
            self.minutes_while_mil_on,
            self.minutes_since_codes_cleared,
        )
        return all(v == 0 or is_not_available(v) for v in values)


class DM29Packet(ParsedPacket):
    """DM29 Regulated DTC Counts"""

    message_type = MessageType.DM29

    def _parse(self):
        self._require_length(5)
        (
            self.emission_pending_count,
            self.all_pending_count,
            self.mil_on_count,
            self.previously_mil_on_count,
            self.permanent_count,
        ) = self.data[:5]

    @classmethod
    def create(
        cls,
        source_address: int,
        emission_pending_count: int = 0,
        all_pending_count: int = 0,
        mil_on_count: int = 0,
        previously_mil_on_count: int = 0,
        permanent_count: int = 0,
    ) -> "DM29Packet":
        data = bytes(
            [
                emission_pending_count,
                all_pending_count,
                mil_on_count,
                previously_mil_on_count,
                permanent_count,
                0xFF,
                0xFF,
                0xFF,
            ]
        )
        return cls(source_address, data)

    def is_erased(self) -> bool:
        # Permanent DTCs survive a DM11
        return (
            self.emission_pending_count == 0
            and self.all_pending_count == 0
            and self.mil_on_count == 0
            and self.previously_mil_on_count == 0
        )


# =============================================================================
# Test results, ratios and lamp association
# =============================================================================


@dataclass(frozen=True)
class ScaledTestResult:
    """One DM30 test result"""

    test_identifier: int
    spn: int
    fmi: int
    slot: int
    value: int = NOT_AVAILABLE_16
    maximum: int = 0xFFFF
    minimum: int = 0xFFFF

    LENGTH: ClassVar[int] = 12

    @property
    def is_initialized(self) -> bool:
        """Test has not completed since the last code clear"""
        return self.value == NOT_AVAILABLE_16 and self.maximum == 0xFFFF and self.minimum == 0xFFFF

    def to_bytes(self) -> bytes:
        spn_fmi = (self.spn & 0x7FFFF) | (self.fmi << 19)
        return (
            bytes([self.test_identifier])
            + spn_fmi.to_bytes(3, "little")
            + struct.pack("<HHHH", self.slot, self.value, self.maximum, self.minimum)
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "ScaledTestResult":
        spn_fmi = int.from_bytes(data[1:4], "little")
        slot, value, maximum, minimum = struct.unpack_from("<HHHH", data, 4)
        return cls(data[0], spn_fmi & 0x7FFFF, spn_fmi >> 19, slot, value, maximum, minimum)


class DM30Packet(ParsedPacket):
    """DM30 Scaled Test Results"""

    message_type = MessageType.DM30

    def _parse(self):
        if len(self.data) % ScaledTestResult.LENGTH:
            raise PacketFormatError(
                f"DM30 from {self.module_name} has {len(self.data)} bytes,"
                f" not a multiple of {ScaledTestResult.LENGTH}"
            )
        self.test_results = [
            ScaledTestResult.from_bytes(self.data[i : i + ScaledTestResult.LENGTH])
            for i in range(0, len(self.data), ScaledTestResult.LENGTH)
        ]

    @classmethod
    def create(cls, source_address: int, *results: ScaledTestResult) -> "DM30Packet":
        return cls(source_address, b"".join(r.to_bytes() for r in results))

    def is_erased(self) -> bool:
        return all(r.is_initialized for r in self.test_results)


@dataclass(frozen=True)
class PerformanceRatio:
    """One DM20 monitor performance ratio"""

    spn: int
    numerator: int
    denominator: int

    LENGTH: ClassVar[int] = 7

    def to_bytes(self) -> bytes:
        return self.spn.to_bytes(3, "little") + struct.pack("<HH", self.numerator, self.denominator)


class DM20Packet(ParsedPacket):
    """DM20 Monitor Performance Ratio. DM11 must not erase these."""

    message_type = MessageType.DM20

    def _parse(self):
        self._require_length(4)
        self.ignition_cycles, self.obd_monitoring_conditions = struct.unpack_from("<HH", self.data, 0)
        self.ratios: List[PerformanceRatio] = []
        for i in range(4, len(self.data), PerformanceRatio.LENGTH):
            chunk = self.data[i : i + PerformanceRatio.LENGTH]
            if len(chunk) < PerformanceRatio.LENGTH:
                if all(b == 0xFF for b in chunk):
                    continue
                raise PacketFormatError(f"Truncated ratio in DM20 from {self.module_name}")
            spn = int.from_bytes(chunk[0:3], "little") & 0x7FFFF
            numerator, denominator = struct.unpack_from("<HH", chunk, 3)
            self.ratios.append(PerformanceRatio(spn, numerator, denominator))

    @classmethod
    def create(
        cls, source_address: int, ignition_cycles: int, obd_monitoring_conditions: int, *ratios: PerformanceRatio
    ) -> "DM20Packet":
        data = struct.pack("<HH", ignition_cycles, obd_monitoring_conditions)
        return cls(source_address, data + b"".join(r.to_bytes() for r in ratios))

    def is_reset_from(self, baseline: "DM20Packet") -> bool:
        if self.ignition_cycles < baseline.ignition_cycles:
            return True
        if self.obd_monitoring_conditions < baseline.obd_monitoring_conditions:
            return True
        current = {r.spn: r for r in self.ratios}
        for ratio in baseline.ratios:
            now = current.get(ratio.spn)
            if now is None or now.numerator < ratio.numerator or now.denominator < ratio.denominator:
                return True
        return False


class DM31Packet(ParsedPacket):
    """DM31 DTC to Lamp Association"""

    message_type = MessageType.DM31

    ENTRY_LENGTH = 6

    def _parse(self):
        self.dtcs: List[DiagnosticTroubleCode] = []
        self.mil_status: Dict[DiagnosticTroubleCode, LampStatus] = {}
        for i in range(0, len(self.data), self.ENTRY_LENGTH):
            chunk = self.data[i : i + self.ENTRY_LENGTH]
            if all(b == 0xFF for b in chunk):
                continue
            if len(chunk) < self.ENTRY_LENGTH:
                raise PacketFormatError(f"Truncated DM31 entry from {self.module_name}")
            dtc = DiagnosticTroubleCode.from_bytes(chunk[:4])
            if dtc.is_placeholder:
                continue
            self.dtcs.append(dtc)
            self.mil_status[dtc] = LampStatus((chunk[4] >> 6) & 0x03)

    @classmethod
    def create(cls, source_address: int, *dtcs: DiagnosticTroubleCode, mil_status: LampStatus = LampStatus.ON):
        data = bytearray()
        for dtc in dtcs:
            data.extend(dtc.to_bytes())
            data.extend([mil_status.value << 6, 0xFF])
        if not dtcs:
            data.extend(bytes(4) + b"\x00\xFF")
        return cls(source_address, bytes(data))

    def is_erased(self) -> bool:
        return not self.dtcs


@dataclass(frozen=True)
class AecdTimer:
    """Emission increasing AECD active timers, in minutes"""

    number: int
    timer1: int
    timer2: int

    LENGTH: ClassVar[int] = 9

    def to_bytes(self) -> bytes:
        return struct.pack("<BII", self.number, self.timer1, self.timer2)


class DM33Packet(ParsedPacket):
    """DM33 Emission Increasing AECD Active Time. DM11 must not erase these."""

    message_type = MessageType.DM33

    def _parse(self):
        if len(self.data) % AecdTimer.LENGTH:
            raise PacketFormatError(f"DM33 from {self.module_name} has {len(self.data)} bytes")
        self.timers = [
            AecdTimer(*struct.unpack_from("<BII", self.data, i))
            for i in range(0, len(self.data), AecdTimer.LENGTH)
        ]

    @classmethod
    def create(cls, source_address: int, *timers: AecdTimer) -> "DM33Packet":
        return cls(source_address, b"".join(t.to_bytes() for t in timers))

    def is_reset_from(self, baseline: "DM33Packet") -> bool:
        current = {t.number: t for t in self.timers}
        for timer in baseline.timers:
            now = current.get(timer.number)
            if now is None:
                return True
            for before, after in ((timer.timer1, now.timer1), (timer.timer2, now.timer2)):
                if not is_not_available(before, 32) and after < before:
                    return True
        return False


# =============================================================================
# Individual clear
# =============================================================================


class ControlByte(Enum):
    """DM22 control byte"""

    CLR_PA_REQ = 1
    CLR_PA_ACK = 2
    CLR_PA_NACK = 3
    CLR_ACT_REQ = 17
    CLR_ACT_ACK = 18
    CLR_ACT_NACK = 19

    @property
    def is_request(self) -> bool:
        return self in (ControlByte.CLR_PA_REQ, ControlByte.CLR_ACT_REQ)

    @property
    def is_nack(self) -> bool:
        return self in (ControlByte.CLR_PA_NACK, ControlByte.CLR_ACT_NACK)


class DM22Packet(ParsedPacket):
    """
    DM22 Individual Clear/Reset of Active and Previously Active DTC.

    The same layout carries the request and the answer: control byte,
    acknowledgement code (0xFF when not a NACK), three reserved bytes, then
    the SPN and FMI packed as in a DTC.
    """

    message_type = MessageType.DM22

    def _parse(self):
        self._require_length(8)
        try:
            self.control_byte = ControlByte(self.data[0])
        except ValueError as e:
            raise PacketFormatError(f"Unknown DM22 control byte {self.data[0]} from {self.module_name}") from e
        self.acknowledgement_code = self.data[1]
        self.spn = self.data[5] | (self.data[6] << 8) | ((self.data[7] & 0xE0) << 11)
        self.fmi = self.data[7] & 0x1F

    @classmethod
    def create(
        cls, source_address: int, control_byte: ControlByte, spn: int, fmi: int, acknowledgement_code: int = 0xFF
    ) -> "DM22Packet":
        data = bytes(
            [
                control_byte.value,
                acknowledgement_code,
                0xFF,
                0xFF,
                0xFF,
                spn & 0xFF,
                (spn >> 8) & 0xFF,
                ((spn >> 11) & 0xE0) | (fmi & 0x1F),
            ]
        )
        return cls(source_address, data)

    def matches(self, dtc: DiagnosticTroubleCode) -> bool:
        return self.spn == dtc.spn and self.fmi == dtc.fmi

    def __str__(self) -> str:
        return (
            f"DM22 from {self.module_name}: {self.control_byte.name}, SPN {self.spn}, FMI {self.fmi}, "
            f"Acknowledgement Code {self.acknowledgement_code}"
        )


# =============================================================================
# Engine counters
# =============================================================================


class EngineHoursPacket(ParsedPacket):
    """Engine Hours, Revolutions (SPN 247 / 249)"""

    message_type = MessageType.ENGINE_HOURS

    HOURS_RESOLUTION = 0.05

    def _parse(self):
        self._require_length(8)
        self.engine_hours_raw, self.engine_revolutions_raw = struct.unpack_from("<II", self.data, 0)

    @property
    def engine_hours(self) -> Optional[float]:
        if is_not_available(self.engine_hours_raw, 32):
            return None
        return self.engine_hours_raw * self.HOURS_RESOLUTION

    @classmethod
    def create(cls, source_address: int, engine_hours: float, engine_revolutions: int = 0):
        raw = round(engine_hours / cls.HOURS_RESOLUTION)
        return cls(source_address, struct.pack("<II", raw, engine_revolutions // 1000))

    def is_reset_from(self, baseline: "EngineHoursPacket") -> bool:
        if is_not_available(baseline.engine_hours_raw, 32):
            return False
        return self.engine_hours_raw < baseline.engine_hours_raw


class IdleOperationPacket(ParsedPacket):
    """Idle Operation (SPN 236 / 235)"""

    message_type = MessageType.IDLE_OPERATION

    HOURS_RESOLUTION = 0.05

    def _parse(self):
        self._require_length(8)
        self.idle_fuel_raw, self.idle_hours_raw = struct.unpack_from("<II", self.data, 0)

    @property
    def idle_hours(self) -> Optional[float]:
        if is_not_available(self.idle_hours_raw, 32):
            return None
        return self.idle_hours_raw * self.HOURS_RESOLUTION

    @classmethod
    def create(cls, source_address: int, idle_hours: float, idle_fuel_raw: int = 0xFFFFFFFF):
        raw = round(idle_hours / cls.HOURS_RESOLUTION)
        return cls(source_address, struct.pack("<II", idle_fuel_raw, raw))

    def is_reset_from(self, baseline: "IdleOperationPacket") -> bool:
        if is_not_available(baseline.idle_hours_raw, 32):
            return False
        return self.idle_hours_raw < baseline.idle_hours_raw


# =============================================================================
# Acknowledgment
# =============================================================================


class Response(Enum):
    """Acknowledgment control byte"""

    ACK = 0
    NACK = 1
    DENIED = 2
    BUSY = 3


class AcknowledgmentPacket(ParsedPacket):
    """J1939-21 Acknowledgment"""

    message_type = MessageType.ACKNOWLEDGMENT

    def _parse(self):
        self._require_length(8)
        try:
            self.response = Response(self.data[0])
        except ValueError as e:
            raise PacketFormatError(
                f"Unknown acknowledgment control byte {self.data[0]} from {self.module_name}"
            ) from e
        self.group_function = self.data[1]
        self.address_acknowledged = self.data[4]
        self.pgn_requested = int.from_bytes(self.data[5:8], "little")

    @classmethod
    def create(
        cls, source_address: int, response: Response, pgn: int = 0, address_acknowledged: int = 0xF9
    ) -> "AcknowledgmentPacket":
        data = bytes([response.value, 0xFF, 0xFF, 0xFF, address_acknowledged]) + pgn.to_bytes(3, "little")
        return cls(source_address, data)

    def __str__(self) -> str:
        return f"Acknowledgment from {self.module_name}: Response: {self.response.name}, PGN: {self.pgn_requested}"
