"""6.2.9 DM21: Diagnostic Readiness 2"""

from ..packets import DM21Packet, MessageType, is_not_available
from ..step_controller import RunContext, StepController, filter_acks, filter_packets

PART_NUMBER = 2
STEP_NUMBER = 9
TOTAL_STEPS = 18


def _reported(value: int) -> bool:
    """Non-zero and not an error indicator"""
    return 0 < value and not is_not_available(value)


class Part02Step09Controller(StepController):
    def __init__(self, context: RunContext):
        super().__init__(context, PART_NUMBER, STEP_NUMBER, TOTAL_STEPS)

    def run(self):
        # 6.2.9.1.a Global DM21
        global_response = self.request_global(MessageType.DM21)
        global_packets = [p for p in global_response.packets if isinstance(p, DM21Packet)]

        # 6.2.9.2.a Fail if any ECU reports > 0 distance SCC (SPN 3294)
        for packet in global_packets:
            if _reported(packet.km_since_codes_cleared):
                name = self.registry.name(packet.source_address)
                self.add_failure(f"6.2.9.2.a - {name} reported > 0 distance SCC (SPN 3294)")

        # 6.2.9.2.b Fail if no ECU reports time (SPN 3295) or distance (SPN 3069) with MIL on
        time_reported = any(not is_not_available(p.minutes_while_mil_on) for p in global_packets)
        distance_reported = any(not is_not_available(p.km_while_mil_on) for p in global_packets)
        if not time_reported and not distance_reported:
            self.add_failure("6.2.9.2.b - No ECU reported time (SPN 3295) or distance (SPN 3069) with MIL on")

        # 6.2.9.2.c Fail if any ECU reports > 0 for time or distance with MIL on
        for packet in global_packets:
            if _reported(packet.minutes_while_mil_on):
                name = self.registry.name(packet.source_address)
                self.add_failure(f"6.2.9.2.c - {name} reported > 0 time with MIL on")
        for packet in global_packets:
            if _reported(packet.km_while_mil_on):
                name = self.registry.name(packet.source_address)
                self.add_failure(f"6.2.9.2.c - {name} reported > 0 distance with MIL on")

        # 6.2.9.2.d Fail if any ECU reports zero time SCC (SPN 3296)
        for packet in global_packets:
            if packet.minutes_since_codes_cleared == 0:
                name = self.registry.name(packet.source_address)
                self.add_failure(f"6.2.9.2.d - {name} reported zero time SCC (SPN 3296)")

        # 6.2.9.2.e Warn if no OBD ECU reports time SCC
        obd_packets = [p for p in global_packets if self.registry.is_obd_module(p.source_address)]
        if all(is_not_available(p.minutes_since_codes_cleared) for p in obd_packets):
            self.add_warning("6.2.9.2.e - No OBD ECU reported time (SPN 3296) for DM21")

        # 6.2.9.3.a DS DM21 to each OBD ECU
        obd_addresses = self.registry.obd_addresses()
        ds_results = self.request_directed_all(MessageType.DM21, obd_addresses)

        # 6.2.9.4.a Fail if any difference compared to data received from global request
        self.compare_request_packets(global_packets, filter_packets(ds_results), "6.2.9.4.a")

        # 6.2.9.4.b Fail if NACK not received from OBD ECUs that did not respond to global query
        self.check_for_nacks(global_packets, filter_acks(ds_results), obd_addresses, "6.2.9.4.b")
