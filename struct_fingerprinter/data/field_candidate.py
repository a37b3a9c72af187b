"""Field candidate data model.

A scan turns a ScanWindow into a ScanResult: an offset-ordered list of
FieldCandidates that covers every byte of the window exactly once.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


class FieldType(Enum):
    """Kinds of field the detectors can propose.

    Values are the names shown in the results grid.
    """
    POINTER = "Pointer"
    STRING = "String"
    UNICODE_STRING = "Unicode String"
    VECTOR3 = "Vector3"
    VECTOR4 = "Vector4"
    FLOAT_ARRAY = "Float[]"
    DWORD_ARRAY = "Dword[]"
    QWORD = "Qword"
    BOOLEAN = "Boolean"
    BOOLEAN32 = "Boolean32"
    DWORD = "Dword"
    BYTE_QUAD = "Byte[4]"
    PADDING = "Padding"
    BYTE = "Byte"
    # Only reachable through user retyping
    WORD = "Word"
    FLOAT = "Float"
    DOUBLE = "Double"

    @property
    def is_text(self) -> bool:
        return self in (FieldType.STRING, FieldType.UNICODE_STRING)

    @classmethod
    def from_display(cls, name: str) -> 'FieldType':
        """Look up a type by its display name (as edited in the grid)."""
        for member in cls:
            if member.value == name:
                return member
        raise ValueError(f"Unknown field type: {name}")


# Confidence thresholds used for coloring results
HIGH_CONFIDENCE = 85
MEDIUM_CONFIDENCE = 50


def confidence_band(confidence: int) -> str:
    """Bucket a confidence score into 'high', 'medium' or 'low'."""
    if confidence >= HIGH_CONFIDENCE:
        return "high"
    if confidence >= MEDIUM_CONFIDENCE:
        return "medium"
    return "low"


@dataclass(frozen=True)
class ScanWindow:
    """Immutable snapshot of the bytes being analyzed."""
    base_address: int
    data: bytes

    def __post_init__(self):
        if not self.data:
            raise ValueError("Scan window must contain at least one byte")
        if not isinstance(self.data, bytes):
            object.__setattr__(self, 'data', bytes(self.data))

    @property
    def length(self) -> int:
        return len(self.data)

    def address_of(self, offset: int) -> int:
        return self.base_address + offset

    def remaining(self, offset: int) -> int:
        """Number of bytes from offset to the end of the window."""
        return len(self.data) - offset


@dataclass(frozen=True)
class FieldCandidate:
    """A typed hypothesis about the bytes at [offset, offset + size)."""
    offset: int
    size: int
    field_type: FieldType
    display_value: str
    proposed_name: str
    confidence: int
    pointer_target: Optional[int] = None
    raw_text_length: Optional[int] = None  # Characters, as detected

    def __post_init__(self):
        if self.offset < 0:
            raise ValueError(f"Negative offset: {self.offset}")
        if self.size <= 0:
            raise ValueError(f"Candidate at 0x{self.offset:X} has non-positive size {self.size}")
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"Confidence out of range: {self.confidence}")

    @property
    def end(self) -> int:
        return self.offset + self.size

    @property
    def type_label(self) -> str:
        """Type as shown to the user, with the element count for arrays."""
        if self.field_type is FieldType.FLOAT_ARRAY:
            return f"Float[{self.size // 4}]"
        if self.field_type is FieldType.DWORD_ARRAY:
            return f"Dword[{self.size // 4}]"
        return self.field_type.value

    @property
    def band(self) -> str:
        return confidence_band(self.confidence)

    def with_edits(self, field_type: Optional[FieldType] = None,
                   display_value: Optional[str] = None,
                   proposed_name: Optional[str] = None) -> 'FieldCandidate':
        """Copy of this candidate with user edits applied.

        The detected raw_text_length is carried over untouched so the
        exporter can size text fields from what was actually in memory.
        """
        changes = {}
        if field_type is not None:
            changes['field_type'] = field_type
        if display_value is not None:
            changes['display_value'] = display_value
        if proposed_name is not None:
            changes['proposed_name'] = proposed_name
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            'offset': self.offset,
            'size': self.size,
            'type': self.field_type.value,
            'label': self.type_label,
            'value': self.display_value,
            'name': self.proposed_name,
            'confidence': self.confidence,
            'pointer_target': self.pointer_target,
            'raw_text_length': self.raw_text_length,
        }


@dataclass(frozen=True)
class ScanResult:
    """Offset-ordered candidates that tile the whole scan window."""
    window: ScanWindow
    candidates: Tuple[FieldCandidate, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, 'candidates', tuple(self.candidates))
        expected = 0
        for candidate in self.candidates:
            if candidate.offset != expected:
                raise ValueError(
                    f"Candidates do not tile the window: expected offset 0x{expected:X}, "
                    f"got 0x{candidate.offset:X}"
                )
            expected = candidate.end
        if expected != self.window.length:
            raise ValueError(
                f"Candidates cover 0x{expected:X} bytes, window is 0x{self.window.length:X}"
            )

    def __iter__(self) -> Iterator[FieldCandidate]:
        return iter(self.candidates)

    def __len__(self) -> int:
        return len(self.candidates)

    @property
    def base_address(self) -> int:
        return self.window.base_address

    @property
    def length(self) -> int:
        return self.window.length

    def visible(self, show_padding: bool = True) -> List[FieldCandidate]:
        """Candidates to display, optionally hiding padding runs."""
        if show_padding:
            return list(self.candidates)
        return [c for c in self.candidates if c.field_type is not FieldType.PADDING]

    def candidate_at(self, offset: int) -> Optional[FieldCandidate]:
        """Return the candidate owning the byte at offset."""
        for candidate in self.candidates:
            if candidate.offset <= offset < candidate.end:
                return candidate
        return None

    def pointers(self) -> List[FieldCandidate]:
        """Candidates that carry a resolved pointer target."""
        return [c for c in self.candidates if c.pointer_target]

    def type_distribution(self) -> dict:
        counts = {}
        for candidate in self.candidates:
            key = candidate.field_type.value
            counts[key] = counts.get(key, 0) + 1
        return counts
