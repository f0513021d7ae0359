"""
Tests for the simulated OBD modules and vehicle bus
"""

import asyncio

import pytest

from obd_conformance.config import ClearBehavior, ModuleConfig, load_vehicle_config
from obd_conformance.controllers import Part08Step12Controller, Part12Step09Controller, create_steps
from obd_conformance.controllers.part08_step12 import individual_clear_request
from obd_conformance.erasure import PROBES, ErasureVerifier
from obd_conformance.errors import GatewayUnavailableError
from obd_conformance.listeners import RecordingResultsListener
from obd_conformance.packets import (
    CompositeSystem,
    ControlByte,
    DiagnosticTroubleCode,
    DM1Packet,
    DM5Packet,
    DM22Packet,
    LampStatus,
    MessageType,
    Response,
)
from obd_conformance.results import Outcome, ResultKind
from obd_conformance.scheduler import StepScheduler
from obd_conformance.step_controller import RunContext
from vehicle_simulation.obd_ecu import CORRUPTED_PAYLOAD, DtcKind, SimulatedObdEcu
from vehicle_simulation.vehicle_bus import SimulatedVehicleBus

DTC = DiagnosticTroubleCode(102, 4, 1)


@pytest.fixture
def ecu():
    return SimulatedObdEcu(
        ModuleConfig(
            address=0,
            supported_monitors=["MISFIRE", "CATALYST"],
            warm_ups_since_clear=3,
            minutes_since_codes_cleared=100,
            ignition_cycles=10,
            obd_monitoring_conditions=8,
            engine_hours=100.0,
            idle_hours=20.0,
        )
    )


@pytest.fixture
def bus():
    return SimulatedVehicleBus.from_config(load_vehicle_config())


class TestSimulatedObdEcu:
    """Test the simulated diagnostic memory"""

    def test_implant_active_dtc(self, ecu):
        ecu.implant_dtc(DTC)
        assert ecu.mil_status is LampStatus.ON
        assert ecu.permanent_dtcs == [DTC]
        assert len(ecu.freeze_frames) == 1
        assert ecu.build_packet(MessageType.DM1).dtcs == [DTC]

    def test_implant_is_idempotent(self, ecu):
        ecu.implant_dtc(DTC)
        ecu.implant_dtc(DTC)
        assert ecu.active_dtcs == [DTC]
        assert len(ecu.freeze_frames) == 1

    def test_implant_pending(self, ecu):
        ecu.implant_dtc(DTC, DtcKind.PENDING)
        assert ecu.mil_status is LampStatus.OFF
        assert ecu.build_packet(MessageType.DM6).dtcs == [DTC]
        assert not ecu.build_packet(MessageType.DM29).is_erased()

    def test_full_erase_keeps_retained_data(self, ecu):
        ecu.implant_dtc(DTC)
        ecu.complete_monitors_now()
        ecu.erase_diagnostic_information()
        for message_type in (MessageType.DM6, MessageType.DM12, MessageType.DM5, MessageType.DM25, MessageType.DM26):
            assert ecu.build_packet(message_type).is_erased(), message_type
        assert ecu.build_packet(MessageType.DM28).dtcs == [DTC]
        assert ecu.build_packet(MessageType.ENGINE_HOURS).engine_hours == pytest.approx(100.0)

    def test_partial_erase(self, ecu):
        ecu.implant_dtc(DTC)
        ecu.erase_diagnostic_information(partial=True)
        assert ecu.build_packet(MessageType.DM12).is_erased()
        assert not ecu.build_packet(MessageType.DM25).is_erased()

    def test_test_results_follow_monitors(self, ecu):
        assert ecu.build_packet(MessageType.DM30).is_erased()
        ecu.complete_monitors_now({CompositeSystem.CATALYST})
        assert not ecu.build_packet(MessageType.DM30).is_erased()

    def test_drive_cycle(self, ecu):
        ecu.implant_dtc(DTC)
        ecu.simulate_drive_cycle(1.0, km=50)
        packet = ecu.build_packet(MessageType.DM21)
        assert packet.minutes_while_mil_on == 60
        assert packet.km_while_mil_on == 50
        assert ecu.ignition_cycles == 11

    def test_directed_clear_nack_by_default(self, ecu):
        ecu.implant_dtc(DTC)
        message = ecu.respond(MessageType.DM11, directed=True)
        assert message.message_type is MessageType.ACKNOWLEDGMENT
        assert message.data[0] == Response.NACK.value
        assert ecu.active_dtcs == [DTC]

    @pytest.mark.parametrize(
        "behavior, reply, erased",
        [
            (ClearBehavior.ACCEPT, None, True),
            (ClearBehavior.ACK, Response.ACK, True),
            (ClearBehavior.NACK, Response.NACK, False),
            (ClearBehavior.IGNORE, None, False),
        ],
    )
    def test_global_clear_behaviors(self, ecu, behavior, reply, erased):
        ecu.implant_dtc(DTC)
        ecu.clear_behavior = behavior
        message = ecu.respond(MessageType.DM11, directed=False)
        if reply is None:
            assert message is None
        else:
            assert message.data[0] == reply.value
        assert (not ecu.active_dtcs) == erased

    def test_individual_clear_refused_when_directed(self, ecu):
        ecu.implant_dtc(DTC)
        request = individual_clear_request(ControlByte.CLR_PA_REQ, DTC.spn, DTC.fmi)
        answer = DM22Packet(0, ecu.respond(MessageType.DM22, directed=True, data=request).data)
        assert answer.control_byte is ControlByte.CLR_PA_NACK
        assert answer.acknowledgement_code == 0
        assert answer.matches(DTC)
        assert ecu.active_dtcs == [DTC]

    def test_individual_clear_silent_when_global(self, ecu):
        request = individual_clear_request(ControlByte.CLR_ACT_REQ)
        assert ecu.respond(MessageType.DM22, directed=False, data=request) is None

    def test_individual_clear_acknowledged(self, ecu):
        ecu.implant_dtc(DTC)
        ecu.clear_behavior = ClearBehavior.ACK
        request = individual_clear_request(ControlByte.CLR_ACT_REQ, DTC.spn, DTC.fmi)
        answer = DM22Packet(0, ecu.respond(MessageType.DM22, directed=False, data=request).data)
        assert answer.control_byte is ControlByte.CLR_ACT_ACK
        assert ecu.active_dtcs == []

    def test_individual_clear_nack_behavior(self, ecu):
        ecu.clear_behavior = ClearBehavior.NACK
        request = individual_clear_request(ControlByte.CLR_ACT_REQ)
        assert ecu.respond(MessageType.DM22, directed=True, data=request).data[0] == Response.NACK.value
        assert ecu.respond(MessageType.DM22, directed=False, data=request) is None

    def test_malformed_individual_clear(self, ecu):
        message = ecu.respond(MessageType.DM22, directed=True, data=b"\x01")
        assert message.message_type is MessageType.ACKNOWLEDGMENT
        assert message.data[0] == Response.NACK.value
        answer = individual_clear_request(ControlByte.CLR_PA_ACK)
        assert ecu.respond(MessageType.DM22, directed=True, data=answer).message_type is MessageType.ACKNOWLEDGMENT
        assert ecu.respond(MessageType.DM22, directed=False, data=answer) is None

    def test_individual_clear_unsupported(self):
        ecu = SimulatedObdEcu(ModuleConfig(address=0, unsupported_messages=["DM22"]))
        request = individual_clear_request(ControlByte.CLR_ACT_REQ)
        assert ecu.respond(MessageType.DM22, directed=True, data=request).message_type is MessageType.ACKNOWLEDGMENT

    def test_unsupported_message(self):
        ecu = SimulatedObdEcu(ModuleConfig(address=0, unsupported_messages=["DM21"]))
        assert ecu.respond(MessageType.DM21, directed=False) is None
        assert ecu.respond(MessageType.DM21, directed=True).message_type is MessageType.ACKNOWLEDGMENT

    def test_offline_is_silent(self, ecu):
        ecu.online = False
        assert ecu.respond(MessageType.DM1, directed=True) is None

    def test_corrupted_payload(self, ecu):
        ecu.corrupted.add(MessageType.DM5)
        assert ecu.respond(MessageType.DM5, directed=True).data == CORRUPTED_PAYLOAD

    def test_start_stop(self, ecu):
        asyncio.run(ecu.start())
        assert ecu.to_dict()["running"]
        asyncio.run(ecu.stop())
        assert not ecu.to_dict()["running"]

    def test_to_dict(self, ecu):
        state = ecu.to_dict()
        assert state["address"] == 0
        assert state["mil_status"] == "OFF"
        assert state["supported_monitors"] == ["CATALYST", "MISFIRE"]


class TestSimulatedVehicleBus:
    """Test the in-process gateway"""

    def test_global_request(self, bus):
        result = bus.request_global(MessageType.DM1)
        assert [p.source_address for p in result.packets] == [0, 61]
        assert all(isinstance(p, DM1Packet) for p in result.packets)
        assert result.acks == []

    def test_directed_request(self, bus):
        result = bus.request_directed(MessageType.DM5, 0)
        assert result.kind is ResultKind.PACKET
        assert isinstance(result.packet, DM5Packet)

    def test_directed_to_missing_module(self, bus):
        assert bus.request_directed(MessageType.DM5, 99).is_absent

    def test_directed_clear_is_nacked(self, bus):
        assert bus.request_directed(MessageType.DM11, 0).is_nack

    def test_directed_individual_clear(self, bus):
        result = bus.request_directed(MessageType.DM22, 61, individual_clear_request(ControlByte.CLR_ACT_REQ))
        assert isinstance(result.packet, DM22Packet)
        assert result.packet.control_byte is ControlByte.CLR_ACT_NACK
        assert bus.request_global(MessageType.DM22, individual_clear_request(ControlByte.CLR_ACT_REQ)).is_empty()

    def test_corrupt_message_dropped_alone(self, bus):
        bus.get_ecu(0).corrupted.add(MessageType.DM5)
        result = bus.request_global(MessageType.DM5)
        assert [p.source_address for p in result.packets] == [61]
        assert bus.request_directed(MessageType.DM5, 0).is_absent
        assert bus.get_statistics()["dropped_count"] == 2

    def test_offline_raises(self, bus):
        bus.online = False
        with pytest.raises(GatewayUnavailableError):
            bus.request_global(MessageType.DM1)
        with pytest.raises(GatewayUnavailableError):
            bus.request_directed(MessageType.DM1, 0)

    def test_duplicate_ecu(self, bus):
        with pytest.raises(ValueError):
            bus.add_ecu(SimulatedObdEcu(ModuleConfig(address=0)))

    def test_message_log(self, bus):
        bus.request_global(MessageType.DM1)
        assert len(bus.get_message_log()) == 2
        assert len(bus.get_message_log(source_address=61)) == 1
        bus.clear_log()
        assert bus.get_message_log() == []


class TestSimulatedRun:
    """Run steps and erasure checks against the simulated vehicle"""

    @pytest.fixture
    def run_context(self, bus):
        config = load_vehicle_config()
        settings = config.settings.model_copy(update={"settle_seconds": 0})
        return RunContext(bus, config.build_registry(), RecordingResultsListener(), settings)

    def test_global_clear_erases(self, bus, run_context):
        bus.get_ecu(0).implant_dtc(DTC)
        verifier = ErasureVerifier(run_context, 12, 9)
        verifier.capture_retained_data()

        verifier.verify_data_erased(run_context.listener, "A.5")
        assert "A.5 - Engine #1 (0) did not erase DM12 data" in run_context.listener.failures

        run_context.listener.clear()
        bus.request_global(MessageType.DM11)
        verifier.verify_data_erased(run_context.listener, "A.5")
        assert run_context.listener.failures == []

    def test_reset_retained_data_detected(self, bus, run_context):
        verifier = ErasureVerifier(run_context, 12, 9, [p for p in PROBES if p.retained])
        verifier.capture_retained_data()
        bus.get_ecu(0).reset_retained_data()

        verifier.verify_data_not_erased(run_context.listener, "A.5")

        assert run_context.listener.failures == [
            "A.5 - Engine #1 (0) erased DM20 data",
            "A.5 - Engine #1 (0) erased DM33 data",
            "A.5 - Engine #1 (0) erased engine run time data",
            "A.5 - Engine #1 (0) erased engine idle time data",
        ]

    def test_compliant_clear_is_not_partial(self, bus, run_context):
        bus.get_ecu(0).implant_dtc(DTC)
        verifier = ErasureVerifier(run_context, 12, 9)
        verifier.capture_retained_data()
        bus.request_global(MessageType.DM11)

        verifier.verify_data_not_partial_erased(run_context.listener, "A.5.a", "A.5.b")

        assert run_context.listener.failures == []

    def test_dm11_step_passes_compliant_vehicle(self, run_context):
        Part12Step09Controller(run_context).run()
        assert run_context.listener.failures == []
        assert run_context.listener.warnings == []

    def test_partial_clear_not_atomic(self, bus, run_context):
        bus.get_ecu(0).implant_dtc(DTC)
        bus.get_ecu(0).clear_behavior = ClearBehavior.PARTIAL
        verifier = ErasureVerifier(run_context, 12, 9)
        verifier.capture_retained_data()
        bus.request_global(MessageType.DM11)

        verifier.verify_data_not_partial_erased(run_context.listener, "A.5.a", "A.5.b")

        assert run_context.listener.failures == ["A.5.a - Engine #1 (0) partially erased diagnostic information"]

    def test_partial_clear_detected(self, bus, run_context):
        bus.get_ecu(0).implant_dtc(DTC)
        bus.get_ecu(0).clear_behavior = ClearBehavior.PARTIAL
        bus.request_global(MessageType.DM11)

        ErasureVerifier(run_context, 12, 9).verify_data_erased(run_context.listener, "A.5")

        assert run_context.listener.failures == ["A.5 - Engine #1 (0) did not erase DM25 data"]

    def test_individual_clear_step_passes_compliant_vehicle(self, bus, run_context):
        bus.get_ecu(0).implant_dtc(DTC)

        Part08Step12Controller(run_context).run()

        listener = run_context.listener
        assert [f for f in listener.failures if not f.startswith("6.8.12.10.d")] == []
        assert "6.8.12.10.d - Engine #1 (0) erased DM12 data" not in listener.failures
        assert listener.warnings == []
        assert listener.messages(Outcome.INFO) == []
        assert bus.get_ecu(0).active_dtcs == [DTC]

    def test_individual_clear_step_detects_acknowledgments(self, bus, run_context):
        bus.get_ecu(0).implant_dtc(DTC)
        bus.get_ecu(0).clear_behavior = ClearBehavior.ACK

        Part08Step12Controller(run_context).run()

        failures = run_context.listener.failures
        assert "6.8.12.5.a - Engine #1 (0) provided CLR_PA_ACK" in failures
        assert "6.8.12.8.a - Engine #1 (0) provided DM22 with CLR_PA_ACK" in failures
        assert "6.8.12.10.a - Engine #1 (0) provided DM22 with CLR_ACT_ACK" in failures

    def test_offline_bus_aborts_run(self, bus, run_context):
        bus.online = False
        with StepScheduler(create_steps(run_context)) as scheduler:
            summary = scheduler.run()
        assert summary.aborted.part_number == 2
        assert len(summary.results) == 1
