"""Scan orchestration: capture a window, run the passes, assemble the result."""

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence, Union

from ..config import ScanSettings
from ..data.field_candidate import FieldCandidate, ScanResult, ScanWindow
from .address_space import AddressSpace, resolve_target
from .claim_map import ClaimMap
from .detectors import DEFAULT_PASSES, DetectionContext, ScanPass
from .errors import AddressInvalidError, ReadFailedError, ScanCancelledError

logger = logging.getLogger(__name__)

ProgressSink = Callable[[int], None]

DEFAULT_SCAN_LENGTH = 4096


class CancellationToken:
    """Cooperative cancellation flag shared between requester and scan."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise ScanCancelledError()


@dataclass(frozen=True)
class ScanRequest:
    """What to scan: a numeric address or a symbol, and how many bytes."""
    target: Union[int, str]
    length: int = DEFAULT_SCAN_LENGTH

    def __post_init__(self):
        if self.length <= 0:
            raise ValueError(f"Scan length must be positive, got {self.length}")

    @classmethod
    def for_pointer(cls, candidate: FieldCandidate, length: int = DEFAULT_SCAN_LENGTH) -> 'ScanRequest':
        """Re-anchor a scan on the target of a previously found pointer."""
        if not candidate.pointer_target:
            raise ValueError(f"Candidate at 0x{candidate.offset:X} has no pointer target")
        return cls(target=candidate.pointer_target, length=length)


class ScanController:
    """Runs the detector passes over a scan window.

    Usage:
        controller = ScanController(address_space)
        result = controller.fingerprint(ScanRequest("game.exe+1A2B30", 256))
    """

    def __init__(self, address_space: AddressSpace,
                 settings: Optional[ScanSettings] = None,
                 passes: Sequence[ScanPass] = DEFAULT_PASSES):
        self.address_space = address_space
        self.settings = settings or ScanSettings()
        self.passes = tuple(passes)

    # =========================================================================
    # Acquisition
    # =========================================================================

    def capture(self, address: int, length: int) -> ScanWindow:
        """Read the window once, clamped to the region containing address.

        Raises:
            AddressInvalidError: if address is not inside a readable region.
            ReadFailedError: if the clamped read fails.
        """
        max_readable = self.address_space.valid_size(address)
        if max_readable <= 0:
            raise AddressInvalidError(address)

        safe_length = min(length, max_readable)
        if safe_length != length:
            logger.info(f"Clamped scan at 0x{address:X} from {length} to {safe_length} bytes")

        data = self.address_space.read(address, safe_length)
        if data is None or len(data) != safe_length:
            got = 0 if data is None else len(data)
            raise ReadFailedError(address, safe_length, f"short read ({got} bytes)")
        return ScanWindow(base_address=address, data=bytes(data))

    def fingerprint(self, request: ScanRequest,
                    token: Optional[CancellationToken] = None,
                    progress: Optional[ProgressSink] = None) -> ScanResult:
        """Resolve, capture and scan a request end to end."""
        address = resolve_target(request.target, self.address_space)
        window = self.capture(address, request.length)
        return self.scan(window, token=token, progress=progress)

    # =========================================================================
    # Analysis
    # =========================================================================

    def scan(self, window: ScanWindow,
             token: Optional[CancellationToken] = None,
             progress: Optional[ProgressSink] = None) -> ScanResult:
        """Classify every byte of window.

        Raises:
            ScanCancelledError: if token is cancelled; no partial result is kept.
        """
        token = token or CancellationToken()
        settings = self.settings
        if settings.scan_time is None:
            settings = replace(settings, scan_time=time.time())

        claims = ClaimMap(window.length)
        ctx = DetectionContext(window, claims, self.address_space, settings)
        candidates: List[FieldCandidate] = []

        started = time.time()
        logger.info(f"Scanning {window.length} bytes at 0x{window.base_address:X}")

        progress_base = 0
        for scan_pass in self.passes:
            self._run_pass(scan_pass, ctx, candidates, token, progress, progress_base)
            progress_base += scan_pass.weight

        if not claims.is_complete:
            missing = claims.first_unclaimed()
            raise RuntimeError(f"Scan left offset 0x{missing:X} unclaimed")

        candidates.sort(key=lambda c: c.offset)
        self._report(progress, 100)

        result = ScanResult(window=window, candidates=tuple(candidates))
        logger.info(
            f"Scan of 0x{window.base_address:X} finished: {len(result)} fields "
            f"in {time.time() - started:.3f}s"
        )
        return result

    def _run_pass(self, scan_pass: ScanPass, ctx: DetectionContext,
                  candidates: List[FieldCandidate], token: CancellationToken,
                  progress: Optional[ProgressSink], progress_base: int):
        length = ctx.window.length
        stride = ctx.settings.progress_stride
        claims = ctx.claims

        token.raise_if_cancelled()
        next_checkpoint = stride
        offset = 0

        while offset < length:
            if offset >= next_checkpoint:
                token.raise_if_cancelled()
                self._report(progress, progress_base + (offset * scan_pass.weight) // length)
                next_checkpoint = (offset // stride + 1) * stride

            if claims.is_claimed(offset):
                offset += 1
                continue

            if scan_pass.skip_filler_runs:
                resume = ctx.filler_skip_end(offset)
                if resume > offset:
                    offset = resume
                    continue

            candidate = self._first_match(scan_pass, ctx, offset)
            if candidate is None:
                offset += 1
                continue

            claims.claim(candidate.offset, candidate.size)
            candidates.append(candidate)
            offset = candidate.end

    def _first_match(self, scan_pass: ScanPass, ctx: DetectionContext,
                     offset: int) -> Optional[FieldCandidate]:
        for detector in scan_pass.detectors:
            if not detector.applies(ctx, offset):
                continue
            try:
                candidate = detector.detect(ctx, offset)
            except Exception as e:
                # A faulting heuristic is a non-match, never a failed scan
                logger.debug(f"{detector.name} failed at +0x{offset:X}: {e}")
                continue
            if candidate is not None:
                return candidate
        return None

    def _report(self, progress: Optional[ProgressSink], percent: int):
        if progress is None:
            return
        try:
            progress(max(0, min(100, int(percent))))
        except Exception as e:
            logger.warning(f"Progress callback error: {e}")
