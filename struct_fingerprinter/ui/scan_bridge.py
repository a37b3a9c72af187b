"""Qt adapter around ScanWorker.

Worker callbacks fire on the scan thread. Emitting a signal from there is
delivered to receivers living on the GUI thread through a queued
connection, so slots connected to these signals may touch widgets.
"""

import logging
from typing import Optional

from PyQt6.QtCore import QObject, pyqtSignal

from ..core.errors import ScanBusyError
from ..core.scan_controller import CancellationToken, ScanController, ScanRequest
from ..core.scan_worker import ScanOutcome, ScanWorker

logger = logging.getLogger(__name__)


class ScanBridge(QObject):
    """Runs scans in the background and reports back through signals."""

    progressChanged = pyqtSignal(int)
    scanFinished = pyqtSignal(object)  # ScanOutcome

    def __init__(self, controller: ScanController, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._worker = ScanWorker(controller)

    @property
    def controller(self) -> ScanController:
        return self._worker.controller

    def is_running(self) -> bool:
        return self._worker.is_running()

    def start(self, request: ScanRequest) -> Optional[CancellationToken]:
        """Submit request; returns None if a scan is already running."""
        try:
            return self._worker.submit(
                request,
                on_complete=self._on_complete,
                on_progress=self.progressChanged.emit,
            )
        except ScanBusyError as e:
            logger.warning(f"Scan request ignored: {e}")
            return None

    def cancel(self):
        self._worker.cancel()

    def shutdown(self, timeout: float = 2.0):
        """Cancel any running scan and wait briefly for it to stop."""
        self._worker.cancel()
        self._worker.wait(timeout)

    def _on_complete(self, outcome: ScanOutcome):
        self.scanFinished.emit(outcome)
