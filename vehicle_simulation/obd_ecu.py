"""OBD ECU Simulation Module"""

import logging
import struct
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Set

from obd_conformance.config import ClearBehavior, ModuleConfig
from obd_conformance.errors import PacketFormatError
from obd_conformance.freeze_frame import DM25Packet, FreezeFrame
from obd_conformance.packets import (
    AcknowledgmentPacket,
    AecdTimer,
    CompositeSystem,
    ControlByte,
    DiagnosticTroubleCode,
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
    LampStatus,
    MessageType,
    ParsedPacket,
    PerformanceRatio,
    Response,
    ScaledTestResult,
)

logger = logging.getLogger(__name__)

# Test identifier for scaled test results of the non-continuous monitors
TEST_IDENTIFIER = 247
MONITOR_SPN_BASE = 5000

# Too short for every message type, and a freeze frame length past its end
CORRUPTED_PAYLOAD = b"\x20"

# Source address of the service tool sending requests
TOOL_ADDRESS = 0xF9

# DM22 request -> (answer when cleared, answer when refused)
INDIVIDUAL_CLEAR_ANSWERS = {
    ControlByte.CLR_PA_REQ: (ControlByte.CLR_PA_ACK, ControlByte.CLR_PA_NACK),
    ControlByte.CLR_ACT_REQ: (ControlByte.CLR_ACT_ACK, ControlByte.CLR_ACT_NACK),
}


@dataclass
class BusMessage:
    """One message as put on the bus"""

    message_type: MessageType
    source_address: int
    data: bytes
    timestamp: float = 0.0

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = time.time()


class DtcKind(str, Enum):
    """Which DTC list a fault is stored in"""

    ACTIVE = "active"
    PREVIOUSLY_ACTIVE = "previously_active"
    PENDING = "pending"
    PERMANENT = "permanent"


class SimulatedObdEcu:
    """
    Simulates the diagnostic memory of one J1939 OBD module.

    Features:
    - Active, previously active, pending and permanent DTCs
    - Readiness monitors and scaled test results
    - Counters that DM11 resets and counters it must leave alone
    - Configurable DM11 handling for compliant and faulty modules
    """

    def __init__(self, config: ModuleConfig):
        """Initialize the ECU from its vehicle file entry"""
        self.address = config.address
        self.function = config.function
        self.obd = config.obd
        self.clear_behavior = config.clear_behavior
        self.accepts_directed_clear = config.accepts_directed_clear
        self.unsupported: Set[MessageType] = {MessageType[name] for name in config.unsupported_messages}
        self.corrupted: Set[MessageType] = set()
        self.online = True
        self.running = False

        self.active_dtcs: List[DiagnosticTroubleCode] = [d.to_dtc() for d in config.active_dtcs]
        self.previously_active_dtcs: List[DiagnosticTroubleCode] = [d.to_dtc() for d in config.previously_active_dtcs]
        self.pending_dtcs: List[DiagnosticTroubleCode] = [d.to_dtc() for d in config.pending_dtcs]
        self.permanent_dtcs: List[DiagnosticTroubleCode] = [d.to_dtc() for d in config.permanent_dtcs]
        self.freeze_frames: List[FreezeFrame] = [self._capture_freeze_frame(d) for d in self.active_dtcs]

        self.supported_monitors: Set[CompositeSystem] = {CompositeSystem[n] for n in config.supported_monitors}
        self.complete_monitors: Set[CompositeSystem] = {CompositeSystem[n] for n in config.complete_monitors}

        self.warm_ups_since_clear = config.warm_ups_since_clear
        self.km_since_codes_cleared = config.km_since_codes_cleared
        self.minutes_since_codes_cleared = config.minutes_since_codes_cleared
        self.km_while_mil_on = 0
        self.minutes_while_mil_on = 0

        self.ignition_cycles = config.ignition_cycles
        self.obd_monitoring_conditions = config.obd_monitoring_conditions
        self.engine_hours = config.engine_hours
        self.idle_hours = config.idle_hours
        self.aecd_timers: List[AecdTimer] = []
        if config.engine_hours:
            self.aecd_timers.append(AecdTimer(1, int(config.engine_hours * 6), 0))

    # =========================================================================
    # State
    # =========================================================================

    @property
    def mil_status(self) -> LampStatus:
        return LampStatus.ON if self.active_dtcs else LampStatus.OFF

    @property
    def test_results(self) -> List[ScaledTestResult]:
        """One result per non-continuous monitor, completed when the monitor is"""
        results = []
        for system in sorted(self.supported_monitors, key=lambda s: (s.continuous, s.bit)):
            if system.continuous:
                continue
            spn = MONITOR_SPN_BASE + system.bit
            if system in self.complete_monitors:
                results.append(ScaledTestResult(TEST_IDENTIFIER, spn, 31, 0x0100, 100, 200, 0))
            else:
                results.append(ScaledTestResult(TEST_IDENTIFIER, spn, 31, 0x0100))
        return results

    @property
    def performance_ratios(self) -> List[PerformanceRatio]:
        return [
            PerformanceRatio(MONITOR_SPN_BASE + s.bit, self.obd_monitoring_conditions // 2, self.obd_monitoring_conditions)
            for s in sorted(self.supported_monitors, key=lambda s: s.bit)
            if not s.continuous
        ]

    def _capture_freeze_frame(self, dtc: DiagnosticTroubleCode) -> FreezeFrame:
        """Engine speed (0.125 rpm/bit) and coolant temperature (+40 C offset)"""
        return FreezeFrame(dtc, struct.pack("<HB", 650 * 8, 85 + 40))

    def implant_dtc(self, dtc: DiagnosticTroubleCode, kind: DtcKind = DtcKind.ACTIVE):
        """Store a fault the way the module would when it detects one"""
        kind = DtcKind(kind)
        if kind == DtcKind.ACTIVE:
            if dtc not in self.active_dtcs:
                self.active_dtcs.append(dtc)
                self.freeze_frames.append(self._capture_freeze_frame(dtc))
            if dtc not in self.permanent_dtcs:
                self.permanent_dtcs.append(dtc)
        elif kind == DtcKind.PREVIOUSLY_ACTIVE:
            if dtc not in self.previously_active_dtcs:
                self.previously_active_dtcs.append(dtc)
        elif kind == DtcKind.PENDING:
            if dtc not in self.pending_dtcs:
                self.pending_dtcs.append(dtc)
        elif dtc not in self.permanent_dtcs:
            self.permanent_dtcs.append(dtc)
        logger.info(f"ECU {self.address}: implanted {kind.value} {dtc}")

    def complete_monitors_now(self, systems: Optional[Set[CompositeSystem]] = None):
        """Mark supported monitors complete, all of them by default"""
        systems = self.supported_monitors if systems is None else systems & self.supported_monitors
        self.complete_monitors |= systems

    def simulate_drive_cycle(self, hours: float, km: int = 0):
        """
        Advance the counters by one key-on/run/key-off cycle
        Args:
            hours: Engine run time of the cycle
            km: Distance driven
        """
        minutes = int(hours * 60)
        self.engine_hours += hours
        self.idle_hours += hours * 0.2
        self.ignition_cycles = min(0xFAFF, self.ignition_cycles + 1)
        self.obd_monitoring_conditions = min(0xFAFF, self.obd_monitoring_conditions + 1)
        self.warm_ups_since_clear = min(0xFA, self.warm_ups_since_clear + 1)
        self.minutes_since_codes_cleared = min(0xFAFF, self.minutes_since_codes_cleared + minutes)
        self.km_since_codes_cleared = min(0xFAFF, self.km_since_codes_cleared + km)
        if self.mil_status is LampStatus.ON:
            self.minutes_while_mil_on = min(0xFAFF, self.minutes_while_mil_on + minutes)
            self.km_while_mil_on = min(0xFAFF, self.km_while_mil_on + km)

    def erase_diagnostic_information(self, partial: bool = False):
        """
        Erase what a DM11 erases. A partial erase only drops the DTC lists.
        Permanent DTCs and the retained counters are left alone.
        """
        self.active_dtcs.clear()
        self.previously_active_dtcs.clear()
        self.pending_dtcs.clear()
        if partial:
            logger.info(f"ECU {self.address}: partially erased diagnostic information")
            return
        self.freeze_frames.clear()
        self.complete_monitors.clear()
        self.warm_ups_since_clear = 0
        self.km_since_codes_cleared = 0
        self.minutes_since_codes_cleared = 0
        self.km_while_mil_on = 0
        self.minutes_while_mil_on = 0
        logger.info(f"ECU {self.address}: erased diagnostic information")

    def reset_retained_data(self):
        """Reset counters a compliant module keeps through a DM11 (fault injection)"""
        self.permanent_dtcs.clear()
        self.ignition_cycles = 0
        self.obd_monitoring_conditions = 0
        self.engine_hours = 0.0
        self.idle_hours = 0.0
        self.aecd_timers = [AecdTimer(t.number, 0, 0) for t in self.aecd_timers]
        logger.info(f"ECU {self.address}: reset retained data")

    # =========================================================================
    # Bus
    # =========================================================================

    def _ack(self, response: Response, message_type: MessageType) -> BusMessage:
        packet = AcknowledgmentPacket.create(self.address, response, message_type.pgn)
        return BusMessage(MessageType.ACKNOWLEDGMENT, self.address, packet.data)

    def _handle_clear(self, directed: bool) -> Optional[BusMessage]:
        if directed and not self.accepts_directed_clear:
            return self._ack(Response.NACK, MessageType.DM11)

        match self.clear_behavior:
            case ClearBehavior.ACCEPT:
                self.erase_diagnostic_information()
                return self._ack(Response.ACK, MessageType.DM11) if directed else None
            case ClearBehavior.ACK:
                self.erase_diagnostic_information()
                return self._ack(Response.ACK, MessageType.DM11)
            case ClearBehavior.NACK:
                return self._ack(Response.NACK, MessageType.DM11)
            case ClearBehavior.PARTIAL:
                self.erase_diagnostic_information(partial=True)
                return None
            case _:
                return None

    def _handle_individual_clear(self, directed: bool, data: bytes) -> Optional[BusMessage]:
        """
        Answer a DM22. A compliant OBD module refuses with a DM22 NACK
        carrying acknowledgement code 0, and only to a DS request.
        """
        try:
            request = DM22Packet(TOOL_ADDRESS, data)
        except PacketFormatError as e:
            logger.warning(f"ECU {self.address}: malformed DM22 request: {e}")
            return self._ack(Response.NACK, MessageType.DM22) if directed else None
        if not request.control_byte.is_request:
            return self._ack(Response.NACK, MessageType.DM22) if directed else None

        accepted, refused = INDIVIDUAL_CLEAR_ANSWERS[request.control_byte]
        match self.clear_behavior:
            case ClearBehavior.ACK:
                if request.control_byte is ControlByte.CLR_ACT_REQ:
                    stored = self.active_dtcs
                else:
                    stored = self.previously_active_dtcs
                stored[:] = [d for d in stored if not request.matches(d)]
                answer = DM22Packet.create(self.address, accepted, request.spn, request.fmi)
            case ClearBehavior.NACK:
                return self._ack(Response.NACK, MessageType.DM22) if directed else None
            case ClearBehavior.IGNORE:
                return None
            case _:
                if not directed:
                    return None
                answer = DM22Packet.create(self.address, refused, request.spn, request.fmi, 0)
        return BusMessage(MessageType.DM22, self.address, answer.data)

    def build_packet(self, message_type: MessageType) -> Optional[ParsedPacket]:
        """Current state as a packet of the requested type"""
        sa = self.address
        match message_type:
            case MessageType.DM1:
                return DM1Packet.create(sa, self.mil_status, *self.active_dtcs)
            case MessageType.DM2:
                return DM2Packet.create(sa, self.mil_status, *self.previously_active_dtcs)
            case MessageType.DM6:
                return DM6Packet.create(sa, self.mil_status, *self.pending_dtcs)
            case MessageType.DM12:
                return DM12Packet.create(sa, self.mil_status, *self.active_dtcs)
            case MessageType.DM23:
                return DM23Packet.create(sa, self.mil_status, *self.previously_active_dtcs)
            case MessageType.DM28:
                return DM28Packet.create(sa, self.mil_status, *self.permanent_dtcs)
            case MessageType.DM5:
                return DM5Packet.create(
                    sa,
                    len(self.active_dtcs),
                    len(self.previously_active_dtcs),
                    enabled=self.supported_monitors,
                    complete=self.complete_monitors,
                )
            case MessageType.DM26:
                return DM26Packet.create(
                    sa, self.warm_ups_since_clear, enabled=self.supported_monitors, complete=self.complete_monitors
                )
            case MessageType.DM21:
                return DM21Packet.create(
                    sa,
                    self.km_while_mil_on,
                    self.km_since_codes_cleared,
                    self.minutes_while_mil_on,
                    self.minutes_since_codes_cleared,
                )
            case MessageType.DM29:
                mil_on = len(self.active_dtcs) if self.mil_status is LampStatus.ON else 0
                return DM29Packet.create(
                    sa,
                    len(self.pending_dtcs),
                    len(self.pending_dtcs),
                    mil_on,
                    len(self.previously_active_dtcs),
                    len(self.permanent_dtcs),
                )
            case MessageType.DM25:
                return DM25Packet.create(sa, *self.freeze_frames)
            case MessageType.DM30:
                return DM30Packet.create(sa, *self.test_results)
            case MessageType.DM31:
                return DM31Packet.create(sa, *self.active_dtcs, mil_status=self.mil_status)
            case MessageType.DM20:
                return DM20Packet.create(sa, self.ignition_cycles, self.obd_monitoring_conditions, *self.performance_ratios)
            case MessageType.DM33:
                return DM33Packet.create(sa, *self.aecd_timers)
            case MessageType.ENGINE_HOURS:
                return EngineHoursPacket.create(sa, self.engine_hours)
            case MessageType.IDLE_OPERATION:
                return IdleOperationPacket.create(sa, self.idle_hours)
            case _:
                return None

    def respond(self, message_type: MessageType, directed: bool, data: bytes = b"") -> Optional[BusMessage]:
        """
        Answer one request
        Args:
            message_type: Requested message
            directed: True for a destination specific request
            data: Request payload, used by DM22
        Returns:
            Message put on the bus, or None if the module stays silent
        """
        if not self.online:
            return None

        if message_type is MessageType.DM11:
            return self._handle_clear(directed)
        if message_type is MessageType.DM22 and message_type not in self.unsupported:
            return self._handle_individual_clear(directed, data)

        packet = None if message_type in self.unsupported else self.build_packet(message_type)
        if packet is None:
            # Global requests for unsupported messages go unanswered
            return self._ack(Response.NACK, message_type) if directed else None

        data = packet.data
        if message_type in self.corrupted:
            data = CORRUPTED_PAYLOAD
        return BusMessage(message_type, self.address, data)

    async def start(self):
        """Start the ECU simulation"""
        self.running = True
        logger.info(f"OBD ECU {self.address} simulation started")

    async def stop(self):
        """Stop the ECU simulation"""
        self.running = False
        logger.info(f"OBD ECU {self.address} simulation stopped")

    def to_dict(self) -> dict:
        """Export current state as dictionary"""
        return {
            "address": self.address,
            "function": self.function,
            "obd": self.obd,
            "online": self.online,
            "running": self.running,
            "mil_status": self.mil_status.name,
            "active_dtcs": [str(d) for d in self.active_dtcs],
            "previously_active_dtcs": [str(d) for d in self.previously_active_dtcs],
            "pending_dtcs": [str(d) for d in self.pending_dtcs],
            "permanent_dtcs": [str(d) for d in self.permanent_dtcs],
            "supported_monitors": sorted(s.name for s in self.supported_monitors),
            "complete_monitors": sorted(s.name for s in self.complete_monitors),
            "warm_ups_since_clear": self.warm_ups_since_clear,
            "minutes_since_codes_cleared": self.minutes_since_codes_cleared,
            "engine_hours": self.engine_hours,
            "idle_hours": self.idle_hours,
            "clear_behavior": self.clear_behavior.value,
        }
