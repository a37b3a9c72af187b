"""Core scanning engine: claim map, detectors, controller and worker."""

from .address_space import Protection, StaticAddressSpace, resolve_target
from .claim_map import ClaimMap
from .detectors import DEFAULT_PASSES, PASS_ONE, PASS_TWO, PASS_THREE, Detector, ScanPass
from .errors import (
    FingerprinterError,
    AddressInvalidError,
    ReadFailedError,
    ScanCancelledError,
    ScanBusyError,
    ExportError,
    ClaimConflictError,
)
from .scan_controller import CancellationToken, ScanController, ScanRequest
from .scan_worker import ScanOutcome, ScanStatus, ScanWorker

__all__ = [
    'Protection',
    'StaticAddressSpace',
    'resolve_target',
    'ClaimMap',
    'DEFAULT_PASSES',
    'PASS_ONE',
    'PASS_TWO',
    'PASS_THREE',
    'Detector',
    'ScanPass',
    'FingerprinterError',
    'AddressInvalidError',
    'ReadFailedError',
    'ScanCancelledError',
    'ScanBusyError',
    'ExportError',
    'ClaimConflictError',
    'CancellationToken',
    'ScanController',
    'ScanRequest',
    'ScanOutcome',
    'ScanStatus',
    'ScanWorker',
]
