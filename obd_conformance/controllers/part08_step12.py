"""6.8.12 DM22: Individual Clear/Reset of Active and Previously Active DTC"""

from typing import Dict, Iterable, List, Optional, Sequence

from ..erasure import ErasureVerifier
from ..packets import (
    AcknowledgmentPacket,
    ControlByte,
    DiagnosticTroubleCode,
    DM12Packet,
    DM22Packet,
    MessageType,
    ParsedPacket,
    Response,
)
from ..step_controller import RunContext, StepController, filter_acks, filter_packets

PART_NUMBER = 8
STEP_NUMBER = 12
TOTAL_STEPS = 0

TOOL_ADDRESS = 0xF9
# Sent when the module has no MIL on DTC to name
NO_DTC_SPN = 0x7FFFF
NO_DTC_FMI = 31

PGN = MessageType.DM22.value


def individual_clear_request(control_byte: ControlByte, spn: int = NO_DTC_SPN, fmi: int = NO_DTC_FMI) -> bytes:
    return DM22Packet.create(TOOL_ADDRESS, control_byte, spn, fmi).data


def dm22_packets(packets: Iterable[ParsedPacket]) -> List[DM22Packet]:
    return [p for p in packets if isinstance(p, DM22Packet)]


class Part08Step12Controller(StepController):
    def __init__(self, context: RunContext, verifier: Optional[ErasureVerifier] = None):
        super().__init__(context, PART_NUMBER, STEP_NUMBER, TOTAL_STEPS)
        self.verifier = verifier or ErasureVerifier(context, PART_NUMBER, STEP_NUMBER)

    def run(self):
        self.verifier.capture_retained_data()

        obd_addresses = self.registry.obd_addresses()
        mil_on_dtcs = self._mil_on_dtcs(obd_addresses)

        # 6.8.12.1.a DS DM22 (control byte = 17, Request to Clear/Reset Active DTC)
        # to each OBD ECU without a DM12 MIL on DTC
        addresses = [a for a in obd_addresses if not mil_on_dtcs[a]]
        ds_results = self.request_directed_all(
            MessageType.DM22, addresses, individual_clear_request(ControlByte.CLR_ACT_REQ)
        )
        packets = dm22_packets(filter_packets(ds_results))
        acks = filter_acks(ds_results)

        # 6.8.12.2.a Fail if any ECU provides CLR_PA_ACK or CLR_ACT_ACK
        self._report_clear_acks(packets, "6.8.12.2.a")
        # 6.8.12.2.b Fail if any ECU provides a J1939-21 ACK for PGN 49920
        self._report_j1939_acks(acks, "6.8.12.2.b")
        # 6.8.12.2.c Fail if any ECU provides CLR_ACT_NACK or CLR_PA_NACK with an acknowledgement code > 0
        self._report_nack_codes(packets, "6.8.12.2.c", (ControlByte.CLR_ACT_NACK, ControlByte.CLR_PA_NACK))
        # 6.8.12.3.a Info if any ECU does not provide a DM22 NACK with acknowledgement code 0
        for address in self._missing_clear_nacks(packets, addresses):
            self.add_info(
                f"6.8.12.3.a - {self.registry.name(address)} did not provide DM22 CLR_PA_NACK or CLR_ACT_NACK"
                " with acknowledgement code of 0"
            )
        # 6.8.12.3.b Info if any ECU provides a J1939-21 NACK for PGN 49920
        for ack in acks:
            if ack.response is Response.NACK:
                name = self.registry.name(ack.source_address)
                self.add_info(f"6.8.12.3.b - {name} provided J1939-21 NACK for PGN {PGN}")

        # 6.8.12.4.a DS DM22 (control byte = 1, Request to Clear/Reset Previously Active DTC)
        # for each DM12 MIL on DTC
        addresses = [a for a in obd_addresses if mil_on_dtcs[a]]
        ds_results = [
            self.gateway.request_directed(
                MessageType.DM22, address, individual_clear_request(ControlByte.CLR_PA_REQ, dtc.spn, dtc.fmi)
            )
            for address in addresses
            for dtc in mil_on_dtcs[address]
        ]
        packets = dm22_packets(filter_packets(ds_results))
        acks = filter_acks(ds_results)

        # 6.8.12.5.a Fail if any ECU provides CLR_PA_ACK or CLR_ACT_ACK
        self._report_clear_acks(packets, "6.8.12.5.a")
        # 6.8.12.5.b Fail if any ECU provides a J1939-21 ACK for PGN 49920
        self._report_j1939_acks(acks, "6.8.12.5.b")
        # 6.8.12.5.c Fail if any ECU provides CLR_ACT_NACK with an acknowledgement code > 0
        self._report_nack_codes(packets, "6.8.12.5.c", (ControlByte.CLR_ACT_NACK,))
        # 6.8.12.6.a Warn if any ECU does not provide a DM22 NACK with acknowledgement code 0
        for address in self._missing_clear_nacks(packets, addresses):
            self.add_warning(
                f"6.8.12.6.a - {self.registry.name(address)} did not provide DM22 CLR_PA_NACK or CLR_ACT_NACK"
                " with acknowledgement code of 0"
            )
        # 6.8.12.6.b Warn if any ECU provides a J1939-21 NACK for PGN 49920
        for ack in acks:
            if ack.response is Response.NACK:
                self.add_warning(
                    f"6.8.12.6.b - {self.registry.name(ack.source_address)} provided J1939-21 NACK for PGN {PGN}"
                )

        # 6.8.12.7.a Global DM22 (control byte = 1, Request to Clear/Reset Previously Active DTC)
        result = self.request_global(MessageType.DM22, individual_clear_request(ControlByte.CLR_PA_REQ))
        packets = dm22_packets(result.packets)
        # 6.8.12.8.a Fail if any ECU provides CLR_PA_ACK or CLR_ACT_ACK
        self._report_clear_acks(packets, "6.8.12.8.a", "DM22 with ")
        # 6.8.12.8.b Fail if any ECU provides a J1939-21 ACK for PGN 49920
        self._report_j1939_acks(result.acks, "6.8.12.8.b")
        # 6.8.12.8.c Fail if any ECU provides CLR_ACT_NACK or CLR_PA_NACK with an acknowledgement code > 0
        self._report_nack_codes(packets, "6.8.12.8.c", (ControlByte.CLR_ACT_NACK, ControlByte.CLR_PA_NACK))

        # 6.8.12.9.a Global DM22 (control byte = 17, Request to Clear/Reset Active DTC)
        result = self.request_global(MessageType.DM22, individual_clear_request(ControlByte.CLR_ACT_REQ))
        packets = dm22_packets(result.packets)
        # 6.8.12.10.a Fail if any ECU provides CLR_PA_ACK or CLR_ACT_ACK
        self._report_clear_acks(packets, "6.8.12.10.a", "DM22 with ")
        # 6.8.12.10.b Fail if any ECU provides a J1939-21 ACK for PGN 49920
        self._report_j1939_acks(result.acks, "6.8.12.10.b")
        # 6.8.12.10.c Fail if any ECU provides CLR_ACT_NACK or CLR_PA_NACK with an acknowledgement code > 0
        self._report_nack_codes(packets, "6.8.12.10.c", (ControlByte.CLR_ACT_NACK, ControlByte.CLR_PA_NACK))

        # 6.8.12.10.d Fail if any diagnostic information was erased
        self.verifier.verify_data_not_erased(self.listener, "6.8.12.10.d")

    def _mil_on_dtcs(self, addresses: Sequence[int]) -> Dict[int, List[DiagnosticTroubleCode]]:
        """DM12 DTCs of each OBD module, empty where it reports none or does not answer"""
        dtcs: Dict[int, List[DiagnosticTroubleCode]] = {address: [] for address in addresses}
        for packet in filter_packets(self.request_directed_all(MessageType.DM12, addresses)):
            if isinstance(packet, DM12Packet) and packet.source_address in dtcs:
                dtcs[packet.source_address] = list(packet.dtcs)
        return dtcs

    def _missing_clear_nacks(self, packets: Sequence[DM22Packet], addresses: Iterable[int]) -> List[int]:
        answered = {p.source_address for p in packets if p.control_byte.is_nack and p.acknowledgement_code == 0}
        return [address for address in addresses if address not in answered]

    def _report_clear_acks(self, packets: Sequence[DM22Packet], section: str, prefix: str = ""):
        for control_byte in (ControlByte.CLR_PA_ACK, ControlByte.CLR_ACT_ACK):
            for packet in packets:
                if packet.control_byte is control_byte:
                    name = self.registry.name(packet.source_address)
                    self.add_failure(f"{section} - {name} provided {prefix}{control_byte.name}")

    def _report_j1939_acks(self, acks: Sequence[AcknowledgmentPacket], section: str):
        for ack in acks:
            if ack.response is Response.ACK:
                name = self.registry.name(ack.source_address)
                self.add_failure(f"{section} - {name} provided J1939-21 ACK for PGN {PGN}")

    def _report_nack_codes(self, packets: Sequence[DM22Packet], section: str, control_bytes: Sequence[ControlByte]):
        for control_byte in control_bytes:
            for packet in packets:
                if packet.control_byte is control_byte and packet.acknowledgement_code > 0:
                    name = self.registry.name(packet.source_address)
                    self.add_failure(
                        f"{section} - {name} provided {control_byte.name} with an acknowledgement code greater than 0"
                    )
