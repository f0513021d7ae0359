"""Shared fixtures for the conformance tests"""

from typing import Dict, List
from unittest.mock import MagicMock

import pytest

from obd_conformance.config import ConformanceSettings
from obd_conformance.erasure import PROBES
from obd_conformance.freeze_frame import DM25Packet, FreezeFrame
from obd_conformance.interfaces import DiagnosticGateway
from obd_conformance.listeners import RecordingResultsListener
from obd_conformance.packets import (
    AecdTimer,
    CompositeSystem,
    DiagnosticTroubleCode,
    DM5Packet,
    DM6Packet,
    DM12Packet,
    DM20Packet,
    DM21Packet,
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
    PerformanceRatio,
    ScaledTestResult,
)
from obd_conformance.registry import ModuleRegistry, ObdModuleInformation
from obd_conformance.results import BusResult, RequestResult
from obd_conformance.step_controller import RunContext

DTC = DiagnosticTroubleCode(102, 4, 1)


class FakeClock:
    """Clock that records sleeps instead of sleeping"""

    def __init__(self):
        self.sleeps: List[float] = []
        self.time = 0.0

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.time += seconds

    def now(self) -> float:
        return self.time


def erasable_packet(message_type: MessageType, address: int, erased: bool):
    """A packet of an erasable message type in the requested state"""
    match message_type:
        case MessageType.DM6 | MessageType.DM12 | MessageType.DM23:
            cls = {MessageType.DM6: DM6Packet, MessageType.DM12: DM12Packet, MessageType.DM23: DM23Packet}[message_type]
            return cls.create(address, LampStatus.OFF) if erased else cls.create(address, LampStatus.ON, DTC)
        case MessageType.DM29:
            return DM29Packet.create(address) if erased else DM29Packet.create(address, 1, 1)
        case MessageType.DM5:
            if erased:
                return DM5Packet.create(address, enabled=[CompositeSystem.CATALYST])
            return DM5Packet.create(address, 1, 0, enabled=[CompositeSystem.CATALYST], complete=[CompositeSystem.CATALYST])
        case MessageType.DM25:
            return DM25Packet.create(address) if erased else DM25Packet.create(address, FreezeFrame(DTC, b"\x01\x02"))
        case MessageType.DM31:
            return DM31Packet.create(address) if erased else DM31Packet.create(address, DTC)
        case MessageType.DM21:
            return DM21Packet.create(address) if erased else DM21Packet.create(address, 0, 10, 0, 120)
        case MessageType.DM26:
            if erased:
                return DM26Packet.create(address, 0, enabled=[CompositeSystem.CATALYST])
            return DM26Packet.create(address, 5, enabled=[CompositeSystem.CATALYST], complete=[CompositeSystem.CATALYST])
        case MessageType.DM30:
            if erased:
                return DM30Packet.create(address, ScaledTestResult(247, 5000, 31, 0x0100))
            return DM30Packet.create(address, ScaledTestResult(247, 5000, 31, 0x0100, 100, 200, 0))
    raise ValueError(f"{message_type} is not erasable")


def retained_packet(message_type: MessageType, address: int, reset: bool = False):
    """A retained data packet, either the baseline value or a reset one"""
    match message_type:
        case MessageType.DM20:
            if reset:
                return DM20Packet.create(address, 0, 0)
            return DM20Packet.create(address, 10, 8, PerformanceRatio(5000, 4, 8))
        case MessageType.DM28:
            return DM28Packet.create(address, LampStatus.OFF) if reset else DM28Packet.create(address, LampStatus.OFF, DTC)
        case MessageType.DM33:
            return DM33Packet.create(address, AecdTimer(1, 0 if reset else 600, 0))
        case MessageType.ENGINE_HOURS:
            return EngineHoursPacket.create(address, 0.0 if reset else 100.0)
        case MessageType.IDLE_OPERATION:
            return IdleOperationPacket.create(address, 0.0 if reset else 20.0)
    raise ValueError(f"{message_type} is not retained")


class ScriptedGateway:
    """
    Answers destination specific requests from per module erasure votes,
    given in probe order. Counts requests per (type, address).
    """

    def __init__(self, registry: ModuleRegistry):
        self.registry = registry
        self.votes: Dict[int, List[bool]] = {}
        self.requests: List[tuple] = []

    def set_votes(self, address: int, votes: List[bool]):
        assert len(votes) == len(PROBES)
        self.votes[address] = list(votes)
        for probe in PROBES:
            if probe.retained:
                self.registry.set_baseline(retained_packet(probe.message_type, address))

    def request_global(self, message_type: MessageType, data: bytes = b"") -> RequestResult:
        return RequestResult()

    def request_directed(self, message_type: MessageType, address: int, data: bytes = b"") -> BusResult:
        self.requests.append((message_type, address))
        index = next(i for i, p in enumerate(PROBES) if p.message_type is message_type)
        erased = self.votes[address][index]
        if PROBES[index].retained:
            return BusResult.of_packet(retained_packet(message_type, address, reset=erased))
        return BusResult.of_packet(erasable_packet(message_type, address, erased))


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def listener():
    return RecordingResultsListener()


@pytest.fixture
def registry():
    return ModuleRegistry([ObdModuleInformation(0), ObdModuleInformation(1)])


@pytest.fixture
def mock_gateway():
    gateway = MagicMock(spec=DiagnosticGateway)
    gateway.request_global.return_value = RequestResult()
    gateway.request_directed.return_value = BusResult.absent()
    return gateway


@pytest.fixture
def context(mock_gateway, registry, listener, fake_clock):
    return RunContext(mock_gateway, registry, listener, ConformanceSettings(), fake_clock)


@pytest.fixture
def scripted_gateway(registry):
    return ScriptedGateway(registry)


@pytest.fixture
def scripted_context(scripted_gateway, registry, listener, fake_clock):
    return RunContext(scripted_gateway, registry, listener, ConformanceSettings(), fake_clock)


@pytest.fixture
def single_module_gateway():
    return ScriptedGateway(ModuleRegistry([ObdModuleInformation(0)]))


@pytest.fixture
def single_module_context(single_module_gateway, listener, fake_clock):
    return RunContext(
        single_module_gateway, single_module_gateway.registry, listener, ConformanceSettings(), fake_clock
    )
