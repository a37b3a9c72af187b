"""Structure Fingerprinter - pyMHF entry point.

Injects into the host process and opens the fingerprinter window on its
own Qt thread. Launch with: pymhf run struct_fingerprinter/main.py

Set `exe` in the [tool.pymhf] block below to the executable (name or full
path) of the process to fingerprint before launching.
"""

# /// script
# [tool.pymhf]
# exe = "target.exe"
# start_exe = true
# ///

import sys
import logging
import threading
import traceback
from pathlib import Path
from datetime import datetime
from typing import Optional

# Add the parent directory to sys.path so pymhf can import our package
_this_dir = Path(__file__).parent
_parent_dir = _this_dir.parent
if str(_parent_dir) not in sys.path:
    sys.path.insert(0, str(_parent_dir))

from pymhf import Mod
from pymhf.gui.decorators import gui_button

from struct_fingerprinter import __version__
from struct_fingerprinter.config import load_config

# Configure file-based logging for debugging crashes
_log_dir = _parent_dir / "logs"
_log_dir.mkdir(exist_ok=True)
_log_file = _log_dir / f"fingerprinter_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

_file_handler = logging.FileHandler(_log_file, encoding='utf-8')
_file_handler.setLevel(logging.DEBUG)
_file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))

logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        _file_handler,
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)


def log_flush(msg: str, level: str = "info"):
    """Log a message and immediately flush to disk."""
    getattr(logger, level, logger.info)(msg)
    for handler in logging.root.handlers:
        handler.flush()


log_flush(f"=== Structure Fingerprinter {__version__} starting - Log: {_log_file} ===")


class GUIThread(threading.Thread):
    """Thread that runs the Qt event loop."""

    def __init__(self):
        super().__init__(daemon=True, name="fingerprinter-gui")
        self._app = None
        self._window = None
        self._ready = threading.Event()

    def run(self):
        try:
            log_flush("GUIThread: Starting Qt event loop thread...")
            from PyQt6.QtWidgets import QApplication

            # QApplication must live on the thread that runs its event loop
            self._app = QApplication([])

            from struct_fingerprinter.core.process_memory import ProcessAddressSpace
            from struct_fingerprinter.ui.fingerprinter_window import FingerprinterWindow

            address_space = ProcessAddressSpace()
            config = load_config()
            config.pointer_size = address_space.pointer_size

            self._window = FingerprinterWindow(address_space, config)
            self._window.show()
            self._window.raise_()
            self._window.activateWindow()

            self._ready.set()
            log_flush("GUIThread: Ready, starting event loop...")

            self._app.exec()
            log_flush("GUIThread: Event loop ended")

        except Exception as e:
            log_flush(f"GUIThread: FAILED - {e}", "error")
            log_flush(f"GUIThread: Traceback:\n{traceback.format_exc()}", "error")
            self._ready.set()  # Unblock waiting threads even on error

    def stop(self):
        """Request the thread to stop."""
        if self._app:
            self._app.quit()


class StructFingerprinter(Mod):
    """Structure Fingerprinter mod.

    Proposes a field layout for any block of memory in the host process.
    """

    __version__ = __version__
    __description__ = "Heuristic structure layout inference for live process memory"

    def __init__(self):
        super().__init__()
        self._gui_thread: Optional[GUIThread] = None

    @gui_button("Open Structure Fingerprinter")
    def open_fingerprinter(self):
        """Open the fingerprinter window."""
        log_flush("=== Open Structure Fingerprinter button clicked ===")

        if self._gui_thread and self._gui_thread.is_alive():
            log_flush("GUI thread already running, window should already be visible")
            return

        try:
            self._gui_thread = GUIThread()
            self._gui_thread.start()

            if self._gui_thread._ready.wait(timeout=10.0):
                log_flush("=== GUI thread started successfully ===")
            else:
                log_flush("GUI thread start timeout!", "error")
        except Exception as e:
            log_flush(f"Failed to open fingerprinter: {e}", "error")
            log_flush(f"Traceback:\n{traceback.format_exc()}", "error")

    @gui_button("Close Structure Fingerprinter")
    def close_fingerprinter(self):
        if self._gui_thread and self._gui_thread.is_alive():
            self._gui_thread.stop()
            log_flush("GUI thread stop requested")
