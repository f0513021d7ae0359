"""6.12.9 DM11: Diagnostic Data Clear/Reset for Active DTCs"""

from typing import Optional

from ..erasure import ErasureVerifier
from ..packets import MessageType, Response
from ..step_controller import RunContext, StepController

PART_NUMBER = 12
STEP_NUMBER = 9
TOTAL_STEPS = 12


class Part12Step09Controller(StepController):
    def __init__(self, context: RunContext, verifier: Optional[ErasureVerifier] = None):
        super().__init__(context, PART_NUMBER, STEP_NUMBER, TOTAL_STEPS)
        self.verifier = verifier or ErasureVerifier(context, PART_NUMBER, STEP_NUMBER)

    def run(self):
        self.verifier.capture_retained_data()

        # 6.12.9.1.a DS DM11 to each OBD ECU
        for address in self.registry.obd_addresses():
            result = self.gateway.request_directed(MessageType.DM11, address)
            # 6.12.9.2.a Fail if any OBD ECU does not NACK
            if not result.is_nack:
                self.add_failure(
                    f"6.12.9.2.a - OBD module {self.registry.name(address)} did not provide a NACK for the DS query"
                )

        # 6.12.9.1.b Wait 5 seconds before checking for erased information
        self.wait_for_settle("6.12.9.1.b")

        # 6.12.9.2.b Fail if any ECU partially erases diagnostic information
        # 6.12.9.2.c Fail if one or more ECUs erase and one or more others do not
        self.verifier.verify_data_not_partial_erased(self.listener, "6.12.9.2.b", "6.12.9.2.c")

        # 6.12.9.3.a Global DM11
        for ack in self.request_global(MessageType.DM11).acks:
            name = self.registry.name(ack.source_address)
            if ack.response is Response.NACK:
                # 6.12.9.4.a Fail if any ECU provides a NACK
                self.add_failure(f"6.12.9.4.a - {name} responded with a NACK")
            elif ack.response is Response.ACK:
                # 6.12.9.4.b Warn if any ECU provides an ACK
                self.add_warning(f"6.12.9.4.b - {name} responded with a ACK")

        # 6.12.9.3.b Wait 5 seconds before checking for erased information
        self.wait_for_settle("6.12.9.3.b")

        # 6.12.9.4.c Fail if any ECU partially erases diagnostic information
        # 6.12.9.4.d Fail if one or more ECUs erase and one or more others do not
        self.verifier.verify_data_not_partial_erased(self.listener, "6.12.9.4.c", "6.12.9.4.d")
