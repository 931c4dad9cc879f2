#
# exceptions.py: virtual_tracker exception classes
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Defines exceptions raised by zone, trial and synchronization components
#


class VirtualTrackerError(Exception):
    """Base class for all virtual_tracker errors."""


class InvalidRegion(VirtualTrackerError, ValueError):
    """Malformed polygon or non-positive cell size.

    Raised when a zone is added, never deferred to hit-testing time.
    """


class DeviceUnavailable(VirtualTrackerError):
    """Position source or serial device cannot be acquired."""


class IOFailure(VirtualTrackerError, OSError):
    """Appending to a log file failed."""


class ProtocolUnsupported(VirtualTrackerError):
    """Serial byte belongs to an unsupported protocol.

    Never propagated out of the decode loop: such bytes are dropped and counted.
    """

    def __init__(self, value: int):
        super().__init__(f"Unsupported protocol byte 0x{value:02X}")
        self.value = value
