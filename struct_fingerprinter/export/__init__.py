"""Export functionality."""

from .json_exporter import JSONStructureSink, ScanResultExporter, format_hex_dump
from .schema import REGISTRY_SCHEMA, SCAN_SCHEMA
from .structure_exporter import (
    ElementType,
    StructureElement,
    StructureExporter,
    StructureSink,
    editable_types,
)

__all__ = [
    'JSONStructureSink',
    'ScanResultExporter',
    'format_hex_dump',
    'REGISTRY_SCHEMA',
    'SCAN_SCHEMA',
    'ElementType',
    'StructureElement',
    'StructureExporter',
    'StructureSink',
    'editable_types',
]
