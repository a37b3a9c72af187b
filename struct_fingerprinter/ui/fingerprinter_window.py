"""Main window for the Structure Fingerprinter.

Address and size on top, results grid in the middle, structure creation at
the bottom. Scans run on a ScanBridge so the window stays responsive.
"""

import logging
from pathlib import Path
from typing import List, Optional

from PyQt6.QtWidgets import (
    QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QLabel, QLineEdit,
    QSpinBox, QPushButton, QCheckBox, QProgressBar, QTableWidget,
    QTableWidgetItem, QHeaderView, QAbstractItemView, QComboBox, QMenu,
    QMessageBox, QInputDialog, QFileDialog, QStatusBar
)
from PyQt6.QtCore import Qt, QPoint
from PyQt6.QtGui import QColor, QFont

from ..config import FingerprinterConfig, load_config, save_config
from ..core.address_space import AddressSpace
from ..core.errors import ExportError
from ..core.scan_controller import ScanController, ScanRequest
from ..core.scan_worker import ScanOutcome, ScanStatus
from ..data.field_candidate import FieldCandidate, FieldType, ScanResult
from ..export.json_exporter import JSONStructureSink, ScanResultExporter
from ..export.structure_exporter import StructureExporter, editable_types
from .scan_bridge import ScanBridge

logger = logging.getLogger(__name__)

# Column indices
COL_OFFSET = 0
COL_TYPE = 1
COL_VALUE = 2
COL_NAME = 3
COL_CONFIDENCE = 4

HEADERS = ["Offset", "Proposed Type", "Value", "Proposed Name", "Confidence"]
COLUMN_WIDTHS = [70, 110, 180, 150, 80]

BAND_COLORS = {
    'high': None,  # Default text color
    'medium': QColor(0, 0, 255),
    'low': QColor(128, 128, 128),
}

MAX_SCAN_LENGTH = 0x100000


class FingerprinterWindow(QMainWindow):
    """Scan a memory region and review the proposed layout."""

    def __init__(self, address_space: AddressSpace,
                 config: Optional[FingerprinterConfig] = None,
                 parent: Optional[QWidget] = None):
        super().__init__(parent)

        self._config = config or load_config()
        self._address_space = address_space

        controller = ScanController(address_space, self._config.scan_settings())
        self._bridge = ScanBridge(controller, self)
        self._bridge.progressChanged.connect(self._on_progress)
        self._bridge.scanFinished.connect(self._on_scan_finished)

        self._result: Optional[ScanResult] = None
        self._candidates: List[FieldCandidate] = []  # Edited copies, window order
        self._row_index: List[int] = []  # Table row -> index into _candidates
        self._populating = False

        self._setup_ui()
        self._setup_statusbar()
        self._set_scanning(False)

    # =========================================================================
    # Layout
    # =========================================================================

    def _setup_ui(self):
        self.setWindowTitle("Structure Fingerprinter")
        self.resize(self._config.window_width, self._config.window_height)

        central = QWidget()
        self.setCentralWidget(central)
        layout = QVBoxLayout(central)
        layout.setContentsMargins(4, 4, 4, 4)

        # Top row: target and scan controls
        top = QHBoxLayout()
        top.addWidget(QLabel("Address:"))
        self._address_edit = QLineEdit()
        self._address_edit.setPlaceholderText("0x7FF6A0001000 or module+offset")
        self._address_edit.returnPressed.connect(self._on_scan)
        top.addWidget(self._address_edit, 1)

        top.addWidget(QLabel("Size (bytes):"))
        self._size_spin = QSpinBox()
        self._size_spin.setRange(1, MAX_SCAN_LENGTH)
        self._size_spin.setValue(self._config.default_scan_length)
        top.addWidget(self._size_spin)

        self._scan_button = QPushButton("Scan")
        self._scan_button.clicked.connect(self._on_scan)
        top.addWidget(self._scan_button)

        self._cancel_button = QPushButton("Cancel")
        self._cancel_button.clicked.connect(self._bridge.cancel)
        top.addWidget(self._cancel_button)
        layout.addLayout(top)

        self._progress = QProgressBar()
        self._progress.setRange(0, 100)
        layout.addWidget(self._progress)

        # Results grid
        self._table = QTableWidget(0, len(HEADERS))
        self._table.setHorizontalHeaderLabels(HEADERS)
        self._table.verticalHeader().setVisible(False)
        self._table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        self._table.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        self._table.setContextMenuPolicy(Qt.ContextMenuPolicy.CustomContextMenu)
        self._table.customContextMenuRequested.connect(self._on_context_menu)
        self._table.itemChanged.connect(self._on_item_changed)
        header = self._table.horizontalHeader()
        for col, width in enumerate(COLUMN_WIDTHS):
            self._table.setColumnWidth(col, width)
        header.setSectionResizeMode(COL_VALUE, QHeaderView.ResizeMode.Stretch)

        font = QFont("Consolas", 9)
        font.setStyleHint(QFont.StyleHint.Monospace)
        self._table.setFont(font)
        layout.addWidget(self._table, 1)

        # Bottom row: structure creation and filters
        bottom = QHBoxLayout()
        self._create_button = QPushButton("Create Structure")
        self._create_button.clicked.connect(self._on_create_structure)
        bottom.addWidget(self._create_button)

        self._export_button = QPushButton("Export JSON")
        self._export_button.clicked.connect(self._on_export)
        bottom.addWidget(self._export_button)

        self._padding_check = QCheckBox("Show Padding")
        self._padding_check.setChecked(self._config.show_padding)
        self._padding_check.toggled.connect(self._populate_table)
        bottom.addWidget(self._padding_check)
        bottom.addStretch()
        layout.addLayout(bottom)

    def _setup_statusbar(self):
        self._statusbar = QStatusBar()
        self.setStatusBar(self._statusbar)
        self._status_label = QLabel("Ready")
        self._statusbar.addWidget(self._status_label)

    def _set_scanning(self, scanning: bool):
        self._scan_button.setEnabled(not scanning)
        self._cancel_button.setVisible(scanning)
        self._create_button.setEnabled(not scanning and self._result is not None)
        self._export_button.setEnabled(not scanning and self._result is not None)
        self._table.setEnabled(not scanning)

    # =========================================================================
    # Scanning
    # =========================================================================

    def _on_scan(self):
        target = self._address_edit.text().strip()
        if not target:
            QMessageBox.warning(self, "No Address", "Please enter an address or symbol to scan.")
            return
        self._start_scan(ScanRequest(target=target, length=self._size_spin.value()))

    def _start_scan(self, request: ScanRequest):
        if self._bridge.start(request) is None:
            self._status_label.setText("A scan is already running")
            return
        self._progress.setValue(0)
        self._status_label.setText(f"Scanning {request.length} bytes at {request.target}...")
        self._set_scanning(True)

    def _on_progress(self, percent: int):
        self._progress.setValue(percent)

    def _on_scan_finished(self, outcome: ScanOutcome):
        if outcome.status is ScanStatus.COMPLETED:
            self._show_result(outcome.result)
        elif outcome.status is ScanStatus.CANCELLED:
            self._progress.setValue(0)
        else:
            QMessageBox.warning(self, "Scan Failed", outcome.message)

        self._status_label.setText(outcome.message)
        self._set_scanning(False)

    def _show_result(self, result: ScanResult):
        self._result = result
        self._candidates = list(result.candidates)

        # The window may have been clamped to the readable region
        if result.length != self._size_spin.value():
            self._size_spin.setValue(result.length)
        self._address_edit.setText(f"0x{result.base_address:X}")
        self._populate_table()

    # =========================================================================
    # Results grid
    # =========================================================================

    def _populate_table(self):
        self._populating = True
        try:
            self._table.setRowCount(0)
            self._row_index = []
            show_padding = self._padding_check.isChecked()

            for index, candidate in enumerate(self._candidates):
                if candidate.field_type is FieldType.PADDING and not show_padding:
                    continue
                row = self._table.rowCount()
                self._table.insertRow(row)
                self._row_index.append(index)
                self._fill_row(row, candidate)
        finally:
            self._populating = False

    def _fill_row(self, row: int, candidate: FieldCandidate):
        color = BAND_COLORS[candidate.band]

        def cell(text: str, editable: bool = False) -> QTableWidgetItem:
            item = QTableWidgetItem(text)
            flags = item.flags()
            if not editable:
                flags &= ~Qt.ItemFlag.ItemIsEditable
            item.setFlags(flags)
            if color is not None:
                item.setForeground(color)
            return item

        self._table.setItem(row, COL_OFFSET, cell(f"{candidate.offset:X}"))
        self._table.setItem(row, COL_TYPE, cell(candidate.type_label))
        self._table.setItem(row, COL_VALUE, cell(candidate.display_value, editable=True))
        self._table.setItem(row, COL_NAME, cell(candidate.proposed_name, editable=True))
        self._table.setItem(row, COL_CONFIDENCE, cell(f"{candidate.confidence}%"))

        combo = QComboBox()
        types = editable_types()
        if candidate.field_type.value not in types:
            types.insert(0, candidate.field_type.value)
        combo.addItems(types)
        combo.setCurrentText(candidate.field_type.value)
        combo.currentTextChanged.connect(
            lambda text, r=row: self._on_type_changed(r, text)
        )
        self._table.setCellWidget(row, COL_TYPE, combo)

    def _candidate_for_row(self, row: int) -> Optional[FieldCandidate]:
        if 0 <= row < len(self._row_index):
            return self._candidates[self._row_index[row]]
        return None

    def _replace_row(self, row: int, candidate: FieldCandidate):
        self._candidates[self._row_index[row]] = candidate

    def _on_type_changed(self, row: int, text: str):
        candidate = self._candidate_for_row(row)
        if candidate is None or self._populating:
            return
        try:
            field_type = FieldType.from_display(text)
        except ValueError:
            return
        self._replace_row(row, candidate.with_edits(field_type=field_type))
        logger.debug(f"Retyped +0x{candidate.offset:X} to {text}")

    def _on_item_changed(self, item: QTableWidgetItem):
        if self._populating:
            return
        candidate = self._candidate_for_row(item.row())
        if candidate is None:
            return
        if item.column() == COL_NAME:
            self._replace_row(item.row(), candidate.with_edits(proposed_name=item.text()))
        elif item.column() == COL_VALUE:
            self._replace_row(item.row(), candidate.with_edits(display_value=item.text()))

    def _on_context_menu(self, pos: QPoint):
        row = self._table.rowAt(pos.y())
        candidate = self._candidate_for_row(row)
        if candidate is None:
            return

        menu = QMenu(self)
        action = menu.addAction("Fingerprint This Pointer")
        action.setEnabled(bool(candidate.pointer_target) and not self._bridge.is_running())
        chosen = menu.exec(self._table.viewport().mapToGlobal(pos))
        if chosen is action:
            self._fingerprint_pointer(candidate)

    def _fingerprint_pointer(self, candidate: FieldCandidate):
        request = ScanRequest.for_pointer(candidate, self._size_spin.value())
        self._address_edit.setText(f"0x{candidate.pointer_target:X}")
        self._start_scan(request)

    # =========================================================================
    # Structure creation and export
    # =========================================================================

    def _on_create_structure(self):
        if not self._candidates:
            QMessageBox.information(self, "Create Structure", "Please scan a memory region first.")
            return

        name, ok = QInputDialog.getText(
            self, "Create Structure", "Enter a name for the new structure:", text="MyNewStructure"
        )
        if not ok:
            return

        try:
            sink = JSONStructureSink(self._config.structures_path)
            elements = StructureExporter(sink).export(name, self._candidates)
        except ExportError as e:
            QMessageBox.warning(self, "Create Structure", str(e))
            return

        QMessageBox.information(
            self,
            "Create Structure",
            f"Structure '{name.strip()}' created with {len(elements)} elements."
        )

    def _on_export(self):
        if self._result is None:
            return

        default_path = self._config.export_dir / f"scan_{self._result.base_address:X}.json"
        filepath, _ = QFileDialog.getSaveFileName(
            self, "Export Scan", str(default_path), "JSON Files (*.json)"
        )
        if not filepath:
            return

        edited = ScanResult(window=self._result.window, candidates=tuple(self._candidates))
        options = {
            'show_padding': self._padding_check.isChecked(),
            'include_hex_dump': self._config.include_hex_dump,
        }
        if ScanResultExporter(edited).export(Path(filepath), options):
            self._status_label.setText(f"Exported to {filepath}")
        else:
            QMessageBox.critical(self, "Export Failed", f"Could not write {filepath}")

    def closeEvent(self, event):
        self._bridge.shutdown()

        self._config.window_width = self.width()
        self._config.window_height = self.height()
        self._config.show_padding = self._padding_check.isChecked()
        save_config(self._config)

        event.accept()
