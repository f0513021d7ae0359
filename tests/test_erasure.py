"""
Unit tests for the diagnostic information erasure verifier
"""

import pytest

from obd_conformance.erasure import PROBES, ErasureProbe, ErasureVerifier, ModuleErasureRecord
from obd_conformance.packets import AcknowledgmentPacket, DM6Packet, EngineHoursPacket, MessageType, Response
from obd_conformance.registry import ObdModuleInformation
from obd_conformance.results import BusResult

ERASABLE = [p for p in PROBES if not p.retained]
RETAINED = [p for p in PROBES if p.retained]

ALL_ERASED = [True] * len(PROBES)
NONE_ERASED = [False] * len(PROBES)
# What a compliant module looks like after a DM11
CLEARED = [not p.retained for p in PROBES]

PARTIAL_SECTION = "6.12.9.2.b - Engine #1 (0) partially erased diagnostic information"
FLEET_FAILURE = (
    "6.12.9.2.c - One or more than one ECU erased diagnostic information"
    " and one or more other ECUs did not erase diagnostic information"
)


def votes_with(base, **changes):
    votes = list(base)
    for label, value in changes.items():
        index = next(i for i, p in enumerate(PROBES) if p.message_type.name == label)
        votes[index] = value
    return votes


class TestProbes:
    """Test the probe set and single probe votes"""

    def test_probe_order(self):
        assert [p.label for p in PROBES] == [
            "DM6",
            "DM12",
            "DM23",
            "DM29",
            "DM5",
            "DM25",
            "DM31",
            "DM21",
            "DM26",
            "test results",
            "DM20",
            "DM28",
            "DM33",
            "engine run time",
            "engine idle time",
        ]
        assert len(ERASABLE) == 10
        assert len(RETAINED) == 5

    def test_absent_and_nack_vote_erased(self):
        probe = ErasureProbe("DM6", MessageType.DM6)
        assert probe.is_erased(BusResult.absent())
        assert probe.is_erased(BusResult.of_ack(AcknowledgmentPacket.create(0, Response.NACK)))

    def test_packet_vote(self):
        probe = ErasureProbe("DM6", MessageType.DM6)
        assert probe.is_erased(BusResult.of_packet(DM6Packet.create(0)))

    def test_retained_without_baseline_votes_not_erased(self):
        probe = ErasureProbe("engine run time", MessageType.ENGINE_HOURS, retained=True)
        assert not probe.is_erased(BusResult.of_packet(EngineHoursPacket.create(0, 0.0)))

    def test_retained_against_baseline(self):
        probe = ErasureProbe("engine run time", MessageType.ENGINE_HOURS, retained=True)
        baseline = EngineHoursPacket.create(0, 100.0)
        assert probe.is_erased(BusResult.of_packet(EngineHoursPacket.create(0, 0.0)), baseline)
        assert not probe.is_erased(BusResult.of_packet(EngineHoursPacket.create(0, 100.0)), baseline)
        assert probe.is_erased(BusResult.absent(), baseline)


class TestVerifyDataErased:
    """Test the expected erased check"""

    def test_cleared_fleet_passes(self, scripted_context, scripted_gateway, listener):
        scripted_gateway.set_votes(0, CLEARED)
        scripted_gateway.set_votes(1, CLEARED)
        ErasureVerifier(scripted_context, 12, 9).verify_data_erased(listener, "6.12.9.4.c")
        assert listener.failures == []
        assert listener.results == ["\n6.12.9.4.c - Checking for erased diagnostic information"]

    def test_retained_probes_are_not_requested(self, scripted_context, scripted_gateway, listener):
        scripted_gateway.set_votes(0, CLEARED)
        scripted_gateway.set_votes(1, CLEARED)
        ErasureVerifier(scripted_context, 12, 9).verify_data_erased(listener, "x")
        requested = {message_type for message_type, _ in scripted_gateway.requests}
        assert requested == {p.message_type for p in ERASABLE}

    def test_failure_per_probe(self, scripted_context, scripted_gateway, listener):
        scripted_gateway.set_votes(0, CLEARED)
        scripted_gateway.set_votes(1, votes_with(CLEARED, DM6=False, DM30=False))
        ErasureVerifier(scripted_context, 12, 9).verify_data_erased(listener, "6.12.9.4.c")
        assert listener.failures == [
            "6.12.9.4.c - Engine #2 (1) did not erase DM6 data",
            "6.12.9.4.c - Engine #2 (1) did not erase test results data",
        ]
        assert {o.part_number for o in listener.outcomes} == {12}


class TestVerifyDataNotErased:
    """Test the expected not erased check"""

    def test_untouched_fleet_passes(self, scripted_context, scripted_gateway, listener):
        scripted_gateway.set_votes(0, NONE_ERASED)
        scripted_gateway.set_votes(1, NONE_ERASED)
        ErasureVerifier(scripted_context, 12, 9).verify_data_not_erased(listener, "6.12.9.2.b")
        assert listener.failures == []

    def test_retained_data_reset(self, scripted_context, scripted_gateway, listener):
        scripted_gateway.set_votes(0, votes_with(NONE_ERASED, ENGINE_HOURS=True, DM21=True))
        scripted_gateway.set_votes(1, NONE_ERASED)
        ErasureVerifier(scripted_context, 12, 9).verify_data_not_erased(listener, "6.12.9.2.b")
        assert listener.failures == [
            "6.12.9.2.b - Engine #1 (0) erased DM21 data",
            "6.12.9.2.b - Engine #1 (0) erased engine run time data",
        ]


class TestPartialErasure:
    """Test module atomicity and fleet consistency"""

    def test_consistent_fleet(self, scripted_context, scripted_gateway, listener):
        scripted_gateway.set_votes(0, NONE_ERASED)
        scripted_gateway.set_votes(1, NONE_ERASED)
        ErasureVerifier(scripted_context, 12, 9).verify_data_not_partial_erased(listener, "6.12.9.2.b", "6.12.9.2.c")
        assert listener.failures == []

    def test_all_erased_everywhere(self, scripted_context, scripted_gateway, listener):
        scripted_gateway.set_votes(0, ALL_ERASED)
        scripted_gateway.set_votes(1, ALL_ERASED)
        ErasureVerifier(scripted_context, 12, 9).verify_data_not_partial_erased(listener, "6.12.9.2.b", "6.12.9.2.c")
        assert listener.failures == []

    def test_one_vote_different_is_partial(self, scripted_context, scripted_gateway, listener):
        scripted_gateway.set_votes(0, votes_with(ALL_ERASED, DM31=False))
        scripted_gateway.set_votes(1, ALL_ERASED)
        verifier = ErasureVerifier(scripted_context, 12, 9)
        record = verifier.check_module_atomicity(0)
        assert record.is_mixed
        assert record.representative_erased
        verifier.verify_data_not_partial_erased(listener, "6.12.9.2.b", "6.12.9.2.c")
        assert listener.failures == [PARTIAL_SECTION]

    def test_inconsistent_fleet_reported_once(self, scripted_context, scripted_gateway, listener, registry):
        registry.add(ObdModuleInformation(3))
        scripted_gateway.set_votes(0, ALL_ERASED)
        scripted_gateway.set_votes(1, NONE_ERASED)
        scripted_gateway.set_votes(3, NONE_ERASED)
        ErasureVerifier(scripted_context, 12, 9).verify_data_not_partial_erased(listener, "6.12.9.2.b", "6.12.9.2.c")
        assert listener.failures == [FLEET_FAILURE]

    def test_mixed_module_still_counts_in_fleet(self, scripted_context, scripted_gateway, listener):
        scripted_gateway.set_votes(0, votes_with(ALL_ERASED, DM25=False))
        scripted_gateway.set_votes(1, NONE_ERASED)
        ErasureVerifier(scripted_context, 12, 9).verify_data_not_partial_erased(listener, "6.12.9.2.b", "6.12.9.2.c")
        assert listener.failures == [PARTIAL_SECTION, FLEET_FAILURE]

    def test_compliant_clear_is_not_mixed(self, scripted_context, scripted_gateway, listener):
        """Retained data kept through the clear does not count against the module"""
        scripted_gateway.set_votes(0, CLEARED)
        scripted_gateway.set_votes(1, CLEARED)
        verifier = ErasureVerifier(scripted_context, 12, 9)
        assert verifier.check_module_atomicity(0) == ModuleErasureRecord(0, True, False)
        verifier.verify_data_not_partial_erased(listener, "6.12.9.2.b", "6.12.9.2.c")
        assert listener.failures == []

    def test_retained_reset_without_clear_is_mixed(self, scripted_context, scripted_gateway):
        scripted_gateway.set_votes(0, votes_with(NONE_ERASED, ENGINE_HOURS=True))
        record = ErasureVerifier(scripted_context, 12, 9).check_module_atomicity(0)
        assert record == ModuleErasureRecord(0, False, True)

    def test_retained_without_baseline_does_not_vote(self, context, mock_gateway):
        mock_gateway.request_directed.return_value = BusResult.of_packet(EngineHoursPacket.create(0, 0.0))
        probes = [ErasureProbe("engine run time", MessageType.ENGINE_HOURS, retained=True)]
        record = ErasureVerifier(context, 12, 9, probes).check_module_atomicity(0)
        assert record == ModuleErasureRecord(0, False, False)

    def test_single_module_one_vote_different(self, single_module_context, single_module_gateway, listener):
        single_module_gateway.set_votes(0, votes_with(ALL_ERASED, DM12=False))

        verifier = ErasureVerifier(single_module_context, 12, 9)
        verifier.verify_data_not_partial_erased(listener, "6.12.9.2.b", "6.12.9.2.c")

        assert listener.failures == [PARTIAL_SECTION]

    def test_empty_check_list_rejected(self, context):
        with pytest.raises(ValueError):
            ErasureVerifier(context, 12, 9, [])

    def test_repeatable(self, scripted_context, scripted_gateway, listener):
        scripted_gateway.set_votes(0, votes_with(NONE_ERASED, DM5=True))
        scripted_gateway.set_votes(1, NONE_ERASED)
        verifier = ErasureVerifier(scripted_context, 12, 9)
        assert verifier.check_module_atomicity(0) == verifier.check_module_atomicity(0)
        verifier.verify_data_not_partial_erased(listener, "a", "b")
        first = list(listener.failures)
        listener.clear()
        verifier.verify_data_not_partial_erased(listener, "a", "b")
        assert listener.failures == first

    def test_every_probe_requested_per_module(self, scripted_context, scripted_gateway, listener):
        scripted_gateway.set_votes(0, NONE_ERASED)
        scripted_gateway.set_votes(1, NONE_ERASED)
        ErasureVerifier(scripted_context, 12, 9).verify_data_not_partial_erased(listener, "a", "b")
        assert len(scripted_gateway.requests) == 2 * len(PROBES)
        assert [a for _, a in scripted_gateway.requests[: len(PROBES)]] == [0] * len(PROBES)


class TestCaptureRetainedData:
    """Test baseline capture"""

    def test_captures_retained_packets(self, scripted_context, scripted_gateway, registry):
        scripted_gateway.votes[0] = NONE_ERASED
        scripted_gateway.votes[1] = NONE_ERASED
        captured = ErasureVerifier(scripted_context, 12, 9).capture_retained_data()
        assert len(captured) == 2 * len(RETAINED)
        assert registry.baseline(1, MessageType.ENGINE_HOURS).engine_hours_raw == 2000
        assert {m for m, _ in scripted_gateway.requests} == {p.message_type for p in RETAINED}

    def test_absent_replies_are_not_captured(self, context, registry):
        assert ErasureVerifier(context, 12, 9).capture_retained_data([0]) == []
        assert registry.baseline(0, MessageType.DM20) is None
