"""JSON exporters for scan results and created structures."""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .. import __version__
from ..core.errors import ExportError
from ..data.field_candidate import ScanResult
from .schema import REGISTRY_VERSION, SCAN_SCHEMA
from .structure_exporter import ElementType

logger = logging.getLogger(__name__)


def format_hex_dump(data: bytes, base_address: int = 0, bytes_per_line: int = 16) -> str:
    """Generate a hex dump string with offsets relative to base_address."""
    lines = []
    for i in range(0, len(data), bytes_per_line):
        chunk = data[i:i + bytes_per_line]
        hex_part = ' '.join(f'{b:02X}' for b in chunk)
        # Pad hex part to consistent width
        hex_part = hex_part.ljust(bytes_per_line * 3 - 1)
        ascii_part = ''.join(chr(b) if 32 <= b < 127 else '.' for b in chunk)
        lines.append(f"0x{base_address + i:04X}: {hex_part}  {ascii_part}")
    return '\n'.join(lines)


class ScanResultExporter:
    """Exports a scan result to JSON format."""

    def __init__(self, result: ScanResult):
        self._result = result

    def export(self, filepath: Path, options: Optional[Dict[str, Any]] = None) -> bool:
        """Export the scan result to a JSON file.

        Args:
            filepath: Path to save the JSON file
            options: Export options (show_padding, include_hex_dump, pretty_print)

        Returns:
            True if export succeeded
        """
        options = options or {}

        try:
            data = self._build_export_data(options)
            filepath.parent.mkdir(parents=True, exist_ok=True)
            indent = 2 if options.get('pretty_print', True) else None

            with open(filepath, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=indent)

            logger.info(f"Exported scan result to {filepath}")
            return True

        except Exception as e:
            logger.error(f"Export failed: {e}")
            return False

    def to_string(self, options: Optional[Dict[str, Any]] = None) -> str:
        options = options or {}
        data = self._build_export_data(options)
        indent = 2 if options.get('pretty_print', True) else None
        return json.dumps(data, indent=indent)

    def _build_export_data(self, options: Dict[str, Any]) -> Dict[str, Any]:
        result = self._result
        fields = result.visible(show_padding=options.get('show_padding', True))

        data = {
            'version': SCAN_SCHEMA['version'],
            'metadata': {
                'timestamp': datetime.now().isoformat(),
                'base_address': f"0x{result.base_address:X}",
                'length': result.length,
                'field_count': len(result),
                'tool_version': __version__,
            },
            'fields': [candidate.to_dict() for candidate in fields],
            'summary': result.type_distribution(),
        }

        if options.get('include_hex_dump', False):
            data['hex_dump'] = format_hex_dump(result.window.data)

        return data


class JSONStructureSink:
    """Structure sink that keeps created structures in a JSON registry file.

    Elements are staged between begin_structure() and end_structure(); the
    file is only rewritten when a structure is complete, so a failed export
    never leaves a partial definition behind.
    """

    def __init__(self, filepath: Path):
        self.filepath = Path(filepath)
        self._structures: Dict[str, Dict[str, Any]] = self._load()
        self._pending_name: Optional[str] = None
        self._pending_elements: List[Dict[str, Any]] = []

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.filepath.exists():
            return {}
        try:
            with open(self.filepath, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return dict(data.get('structures', {}))
        except (OSError, ValueError) as e:
            raise ExportError(f"Could not read structure registry {self.filepath}: {e}") from e

    def structure_names(self) -> List[str]:
        return sorted(self._structures)

    def get(self, name: str) -> Optional[Dict[str, Any]]:
        return self._structures.get(name)

    def begin_structure(self, name: str):
        if self._pending_name is not None:
            raise ExportError(f"Structure '{self._pending_name}' is still being built")
        name = (name or "").strip()
        if not name:
            raise ExportError("Structure name must not be empty")
        if name in self._structures:
            raise ExportError(f"Structure '{name}' already exists")
        self._pending_name = name
        self._pending_elements = []

    def add_element(self, offset: int, element_type: ElementType, name: str,
                    byte_size: Optional[int] = None):
        if self._pending_name is None:
            raise ExportError("add_element() called outside begin/end_structure()")
        self._pending_elements.append({
            'offset': offset,
            'type': element_type.value,
            'name': name,
            'byte_size': byte_size,
        })

    def end_structure(self):
        if self._pending_name is None:
            raise ExportError("end_structure() called without begin_structure()")

        structures = dict(self._structures)
        structures[self._pending_name] = {
            'created': datetime.now().isoformat(),
            'elements': list(self._pending_elements),
        }
        self._write(structures)

        self._structures = structures
        logger.info(f"Registered structure '{self._pending_name}' in {self.filepath}")
        self.abort_structure()

    def abort_structure(self):
        self._pending_name = None
        self._pending_elements = []

    def _write(self, structures: Dict[str, Dict[str, Any]]):
        data = {'version': REGISTRY_VERSION, 'structures': structures}
        tmp_path = self.filepath.with_name(self.filepath.name + '.tmp')
        try:
            self.filepath.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.filepath)
        except OSError as e:
            raise ExportError(f"Could not write structure registry {self.filepath}: {e}") from e
