"""Turn a finalized candidate list into a registered structure definition."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Protocol

from ..core.errors import ExportError
from ..data.field_candidate import FieldCandidate, FieldType

logger = logging.getLogger(__name__)


class ElementType(Enum):
    """Element types a structure definition can hold."""
    BYTE = "Byte"
    WORD = "Word"
    DWORD = "Dword"
    QWORD = "Qword"
    FLOAT = "Float"
    DOUBLE = "Double"
    STRING = "String"
    UNICODE_STRING = "Unicode String"
    POINTER = "Pointer"


# Padding has no element type and is left out of exported structures
TYPE_MAP: Dict[FieldType, ElementType] = {
    FieldType.BYTE: ElementType.BYTE,
    FieldType.WORD: ElementType.WORD,
    FieldType.DWORD: ElementType.DWORD,
    FieldType.QWORD: ElementType.QWORD,
    FieldType.FLOAT: ElementType.FLOAT,
    FieldType.DOUBLE: ElementType.DOUBLE,
    FieldType.STRING: ElementType.STRING,
    FieldType.UNICODE_STRING: ElementType.UNICODE_STRING,
    FieldType.POINTER: ElementType.POINTER,
    FieldType.VECTOR3: ElementType.FLOAT,
    FieldType.VECTOR4: ElementType.FLOAT,
    FieldType.FLOAT_ARRAY: ElementType.FLOAT,
    FieldType.DWORD_ARRAY: ElementType.DWORD,
    FieldType.BYTE_QUAD: ElementType.DWORD,
    FieldType.BOOLEAN: ElementType.BYTE,
    FieldType.BOOLEAN32: ElementType.DWORD,
}

# Kinds exported as a run of elements, sized by the candidate
_ARRAY_TYPES = (FieldType.VECTOR3, FieldType.VECTOR4, FieldType.FLOAT_ARRAY, FieldType.DWORD_ARRAY)


def editable_types() -> List[str]:
    """Sorted display names the results grid offers when retyping a field."""
    return sorted(field_type.value for field_type in TYPE_MAP)


@dataclass(frozen=True)
class StructureElement:
    offset: int
    element_type: ElementType
    name: str
    byte_size: Optional[int] = None


class StructureSink(Protocol):
    """Receiver of structure definitions (the host tool's structure list)."""

    def begin_structure(self, name: str):
        """Raise ExportError if name is empty or already registered."""
        ...

    def add_element(self, offset: int, element_type: ElementType, name: str,
                    byte_size: Optional[int] = None):
        ...

    def end_structure(self):
        ...

    def abort_structure(self):
        """Drop a structure begun but not ended."""
        ...


def text_byte_size(candidate: FieldCandidate, element_type: ElementType) -> int:
    """Bytes a text element occupies, from the length detected in memory.

    Falls back to the displayed text when the candidate was retyped to text
    and never had a detected length.
    """
    if candidate.raw_text_length is not None:
        chars = candidate.raw_text_length
    else:
        chars = len(candidate.display_value)

    if element_type is ElementType.UNICODE_STRING:
        return chars * 2 + 2
    return chars + 1


class StructureExporter:
    """Maps candidates to structure elements and registers them in one go."""

    def __init__(self, sink: StructureSink):
        self.sink = sink

    def build_elements(self, candidates: Iterable[FieldCandidate]) -> List[StructureElement]:
        """Elements for every candidate whose type has a structure mapping."""
        elements = []
        for candidate in sorted(candidates, key=lambda c: c.offset):
            element_type = TYPE_MAP.get(candidate.field_type)
            if element_type is None:
                continue

            byte_size = None
            if element_type in (ElementType.STRING, ElementType.UNICODE_STRING):
                byte_size = text_byte_size(candidate, element_type)
            elif candidate.field_type in _ARRAY_TYPES:
                byte_size = candidate.size

            elements.append(StructureElement(
                offset=candidate.offset,
                element_type=element_type,
                name=candidate.proposed_name,
                byte_size=byte_size,
            ))
        return elements

    def export(self, name: str, candidates: Iterable[FieldCandidate]) -> List[StructureElement]:
        """Register a structure called name built from candidates.

        Raises:
            ExportError: if name is empty or taken. Nothing is registered then.
        """
        name = (name or "").strip()
        if not name:
            raise ExportError("Structure name must not be empty")

        elements = self.build_elements(candidates)

        self.sink.begin_structure(name)
        try:
            for element in elements:
                self.sink.add_element(element.offset, element.element_type,
                                      element.name, element.byte_size)
            self.sink.end_structure()
        except Exception:
            self.sink.abort_structure()
            raise

        logger.info(f"Structure '{name}' created with {len(elements)} elements")
        return elements
