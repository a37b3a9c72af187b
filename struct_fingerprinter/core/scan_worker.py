"""Background worker that runs one scan at a time off the presentation thread.

Usage:
    worker = ScanWorker(controller)
    worker.submit(
        ScanRequest("0x7FF6A0001000", 4096),
        on_progress=lambda pct: print(f"{pct}%"),
        on_complete=lambda outcome: print(outcome.status),
    )
    # ... later ...
    worker.cancel()
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from threading import Event, Thread
from typing import Callable, Optional

from ..data.field_candidate import ScanResult
from .errors import FingerprinterError, ScanBusyError, ScanCancelledError
from .scan_controller import CancellationToken, ScanController, ScanRequest

logger = logging.getLogger(__name__)


class ScanStatus(Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class ScanOutcome:
    """The single terminal notification of a scan request."""
    request: ScanRequest
    status: ScanStatus
    result: Optional[ScanResult] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status is ScanStatus.COMPLETED

    @property
    def message(self) -> str:
        if self.status is ScanStatus.COMPLETED:
            return f"Found {len(self.result)} fields"
        if self.status is ScanStatus.CANCELLED:
            return "Scan cancelled"
        return str(self.error)


class ScanWorker:
    """Runs ScanController.fingerprint on a dedicated thread.

    At most one scan is active; submitting while busy raises ScanBusyError
    instead of queueing. Callbacks run on the worker thread, presentation
    code is expected to marshal them (see ui.scan_bridge).
    """

    def __init__(self, controller: ScanController):
        self.controller = controller
        self._lock = threading.Lock()
        self._thread: Optional[Thread] = None
        self._token: Optional[CancellationToken] = None
        self._done = Event()
        self._done.set()

    def is_running(self) -> bool:
        """Check if a scan is currently in flight."""
        return not self._done.is_set()

    def submit(self, request: ScanRequest,
               on_complete: Callable[[ScanOutcome], None],
               on_progress: Optional[Callable[[int], None]] = None) -> CancellationToken:
        """Start scanning request in the background.

        Returns:
            The cancellation token of the new scan.

        Raises:
            ScanBusyError: if another scan has not finished yet.
        """
        with self._lock:
            if not self._done.is_set():
                raise ScanBusyError()
            self._done.clear()
            token = CancellationToken()
            self._token = token
            self._thread = Thread(
                target=self._run,
                args=(request, token, on_complete, on_progress),
                name="fingerprint-scan",
                daemon=True,
            )
            self._thread.start()

        logger.info(f"Scan submitted: {request.target!r} ({request.length} bytes)")
        return token

    def cancel(self):
        """Ask the in-flight scan to stop. It notices within one progress stride."""
        token = self._token
        if token is not None and self.is_running():
            logger.info("Scan cancellation requested")
            token.cancel()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the current scan (if any) delivered its outcome."""
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return self._done.is_set()
        thread.join(timeout)
        return not thread.is_alive()

    def _run(self, request: ScanRequest, token: CancellationToken,
             on_complete: Callable[[ScanOutcome], None],
             on_progress: Optional[Callable[[int], None]]):
        try:
            result = self.controller.fingerprint(request, token=token, progress=on_progress)
            outcome = ScanOutcome(request, ScanStatus.COMPLETED, result=result)
        except ScanCancelledError as e:
            logger.info("Scan cancelled, partial results discarded")
            outcome = ScanOutcome(request, ScanStatus.CANCELLED, error=e)
        except FingerprinterError as e:
            logger.warning(f"Scan failed: {e}")
            outcome = ScanOutcome(request, ScanStatus.FAILED, error=e)
        except Exception as e:
            logger.exception(f"Unexpected scan error: {e}")
            outcome = ScanOutcome(request, ScanStatus.FAILED, error=e)

        # Free the worker before notifying so the callback may submit a re-scan
        with self._lock:
            self._token = None
            self._done.set()

        try:
            on_complete(outcome)
        except Exception as e:
            logger.error(f"Scan completion callback error: {e}")
