"""Exception types for the conformance core"""


class ConformanceError(Exception):
    """Base class for all conformance errors"""


class PacketFormatError(ConformanceError):
    """Raised when a single diagnostic message cannot be decoded"""


class FreezeFrameFormatError(PacketFormatError):
    """Raised when a freeze frame length prefix does not match its payload"""


class UnrecoverableStepError(ConformanceError):
    """
    Raised from a step when it cannot proceed.

    This is not a reported FAIL outcome: the step is aborted and the
    scheduler terminates the remaining steps of the run.
    """


class GatewayUnavailableError(UnrecoverableStepError):
    """Raised when the diagnostic gateway cannot reach the vehicle bus"""
