"""Exception types raised by the fingerprinting engine.

Every failure the engine reports to its callers derives from
FingerprinterError so presentation code can catch one type.
"""

from typing import Optional


class FingerprinterError(Exception):
    """Base class for all fingerprinter failures."""


class AddressInvalidError(FingerprinterError):
    """The target could not be resolved or is not inside a mapped region."""

    def __init__(self, target, message: Optional[str] = None):
        self.target = target
        if message is None:
            if isinstance(target, int):
                message = f"Address 0x{target:X} is not in a valid memory region"
            else:
                message = f"Could not resolve address: '{target}'"
        super().__init__(message)


class ReadFailedError(FingerprinterError):
    """Memory in the requested range is not resident or not readable."""

    def __init__(self, address: int, length: int, reason: str = ""):
        self.address = address
        self.length = length
        message = f"Failed to read {length} bytes at 0x{address:X}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ScanCancelledError(FingerprinterError):
    """The scan observed its cancellation token and stopped."""

    def __init__(self, message: str = "Scan cancelled"):
        super().__init__(message)


class ScanBusyError(FingerprinterError):
    """A scan is already running on this worker."""

    def __init__(self, message: str = "A scan is already in progress"):
        super().__init__(message)


class ExportError(FingerprinterError):
    """A structure could not be registered with the sink."""


class ClaimConflictError(FingerprinterError):
    """A detector tried to claim bytes that another candidate already owns."""

    def __init__(self, offset: int, size: int):
        self.offset = offset
        self.size = size
        super().__init__(f"Span [0x{offset:X}, 0x{offset + size:X}) overlaps an existing claim")
