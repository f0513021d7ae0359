"""6.3.7 DM2: Previously Active Diagnostic Trouble Codes"""

from ..packets import DM2Packet, LampStatus, MessageType
from ..step_controller import RunContext, StepController, filter_acks, filter_packets

PART_NUMBER = 3
STEP_NUMBER = 7
TOTAL_STEPS = 18


class Part03Step07Controller(StepController):
    def __init__(self, context: RunContext):
        super().__init__(context, PART_NUMBER, STEP_NUMBER, TOTAL_STEPS)

    def run(self):
        # 6.3.7.1.a Global DM2
        global_packets = [p for p in self.request_global(MessageType.DM2).packets if isinstance(p, DM2Packet)]

        for packet in global_packets:
            name = self.registry.name(packet.source_address)
            if self.registry.is_obd_module(packet.source_address):
                # 6.3.7.2.a Fail if any OBD ECU reports a previously active DTC
                if packet.dtcs:
                    self.add_failure(f"6.3.7.2.a - OBD ECU {name} reported a previously active DTC")
                # 6.3.7.2.b Fail if any OBD ECU does not report MIL off
                if packet.mil_status is not LampStatus.OFF:
                    self.add_failure(f"6.3.7.2.b - OBD ECU {name} did not report MIL off")
            elif packet.mil_status not in (LampStatus.OFF, LampStatus.NOT_SUPPORTED):
                # 6.3.7.2.c Fail if any non-OBD ECU does not report MIL off or not supported
                self.add_failure(f"6.3.7.2.c - Non-OBD ECU {name} did not report MIL off or not supported")

        # 6.3.7.3.a DS DM2 to each OBD ECU
        obd_addresses = self.registry.obd_addresses()
        ds_results = self.request_directed_all(MessageType.DM2, obd_addresses)

        # 6.3.7.4.a Fail if any difference compared to data received during global request
        self.compare_request_packets(global_packets, filter_packets(ds_results), "6.3.7.4.a")

        # 6.3.7.4.b Fail if NACK not received from OBD ECUs that did not respond to global query
        self.check_for_nacks(global_packets, filter_acks(ds_results), obd_addresses, "6.3.7.4.b")
