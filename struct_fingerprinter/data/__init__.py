"""Data models for scan windows and field candidates."""

from .field_candidate import (
    FieldType,
    FieldCandidate,
    ScanWindow,
    ScanResult,
    confidence_band,
)

__all__ = [
    'FieldType',
    'FieldCandidate',
    'ScanWindow',
    'ScanResult',
    'confidence_band',
]
