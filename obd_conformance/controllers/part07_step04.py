"""6.7.4 DM12: Emissions Related Active DTCs"""

from ..packets import DM12Packet, LampStatus, MessageType
from ..step_controller import RunContext, StepController, filter_acks, filter_packets, missing_nack_addresses

PART_NUMBER = 7
STEP_NUMBER = 4
TOTAL_STEPS = 18


class Part07Step04Controller(StepController):
    def __init__(self, context: RunContext):
        super().__init__(context, PART_NUMBER, STEP_NUMBER, TOTAL_STEPS)

    def run(self):
        # 6.7.4.1.a DS DM12 to each OBD ECU
        obd_addresses = self.registry.obd_addresses()
        ds_results = self.request_directed_all(MessageType.DM12, obd_addresses)
        packets = [p for p in filter_packets(ds_results) if isinstance(p, DM12Packet)]

        for packet in packets:
            name = self.registry.name(packet.source_address)
            # 6.7.4.2.a Fail if any OBD ECU reports an active DTC
            if packet.dtcs:
                self.add_failure(f"6.7.4.2.a - OBD ECU {name} reported an active DTC")
            # 6.7.4.2.b Fail if any OBD ECU does not report MIL off
            if packet.mil_status is not LampStatus.OFF:
                self.add_failure(f"6.7.4.2.b - OBD ECU {name} did not report MIL off")

        # 6.7.4.2.c Fail if no OBD ECU supports DM12
        if not packets:
            self.add_failure("6.7.4.2.c - No OBD ECU supports DM12")

        # 6.7.4.1.d Fail if NACK not received from OBD ECUs that did not provide a DM12 message
        for address in missing_nack_addresses(packets, filter_acks(ds_results), obd_addresses):
            name = self.registry.name(address)
            self.add_failure(f"6.7.4.1.d - OBD ECU {name} did not provide a NACK for the DS query")
