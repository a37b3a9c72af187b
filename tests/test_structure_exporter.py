"""Tests for mapping candidates to structure elements and atomic registration."""

import pytest

from struct_fingerprinter.core.errors import ExportError
from struct_fingerprinter.data.field_candidate import FieldCandidate, FieldType
from struct_fingerprinter.export.structure_exporter import (
    ElementType,
    StructureElement,
    StructureExporter,
    editable_types,
    text_byte_size,
)


def _field(offset, size, field_type, name="f", value="0", **kwargs):
    return FieldCandidate(
        offset=offset,
        size=size,
        field_type=field_type,
        display_value=value,
        proposed_name=name,
        confidence=50,
        **kwargs,
    )


class RecordingSink:
    """In-memory sink that records every call."""

    def __init__(self, fail_on_add: bool = False, taken=()):
        self.calls = []
        self.structures = {}
        self.fail_on_add = fail_on_add
        self.taken = set(taken)
        self._pending = None

    def begin_structure(self, name):
        self.calls.append(('begin', name))
        if name in self.taken:
            raise ExportError(f"Structure '{name}' already exists")
        self._pending = (name, [])

    def add_element(self, offset, element_type, name, byte_size=None):
        self.calls.append(('add', offset))
        if self.fail_on_add:
            raise ExportError("sink refused element")
        self._pending[1].append(StructureElement(offset, element_type, name, byte_size))

    def end_structure(self):
        self.calls.append(('end',))
        name, elements = self._pending
        self.structures[name] = elements
        self._pending = None

    def abort_structure(self):
        self.calls.append(('abort',))
        self._pending = None


LAYOUT = [
    _field(0, 8, FieldType.POINTER, "VTable"),
    _field(8, 6, FieldType.STRING, "sName", "Hello", raw_text_length=5),
    _field(14, 2, FieldType.PADDING, "_padding"),
    _field(16, 12, FieldType.VECTOR3, "vec3_Coords"),
    _field(28, 1, FieldType.BOOLEAN, "bFlag"),
    _field(29, 1, FieldType.BYTE, "_unk"),
    _field(30, 2, FieldType.PADDING, "_padding"),
    _field(32, 4, FieldType.BYTE_QUAD, "colorRGBA"),
    _field(36, 12, FieldType.DWORD_ARRAY, "arr_iIDsOrCounts"),
    _field(48, 4, FieldType.BOOLEAN32, "bFlag32"),
    _field(52, 10, FieldType.UNICODE_STRING, "wsName", "Name", raw_text_length=4),
]


def test_elements_follow_type_mapping():
    elements = StructureExporter(RecordingSink()).build_elements(LAYOUT)

    assert [(e.offset, e.element_type, e.byte_size) for e in elements] == [
        (0, ElementType.POINTER, None),
        (8, ElementType.STRING, 6),
        (16, ElementType.FLOAT, 12),
        (28, ElementType.BYTE, None),
        (29, ElementType.BYTE, None),
        (32, ElementType.DWORD, None),
        (36, ElementType.DWORD, 12),
        (48, ElementType.DWORD, None),
        (52, ElementType.UNICODE_STRING, 10),
    ]
    assert elements[0].name == "VTable"


def test_padding_is_not_exported():
    elements = StructureExporter(RecordingSink()).build_elements(LAYOUT)
    assert all(e.name != "_padding" for e in elements)


def test_text_size_uses_detected_length_not_display():
    ascii_field = LAYOUT[1].with_edits(display_value="a much longer edited value")
    wide_field = LAYOUT[10].with_edits(display_value="N")
    assert text_byte_size(ascii_field, ElementType.STRING) == 6
    assert text_byte_size(wide_field, ElementType.UNICODE_STRING) == 10


def test_retyped_text_falls_back_to_display_length():
    retyped = _field(0, 4, FieldType.DWORD, value="abc").with_edits(field_type=FieldType.STRING)
    (element,) = StructureExporter(RecordingSink()).build_elements([retyped])
    assert (element.element_type, element.byte_size) == (ElementType.STRING, 4)


def test_export_registers_structure():
    sink = RecordingSink()
    elements = StructureExporter(sink).export("  PlayerState ", LAYOUT)

    assert sink.calls[0] == ('begin', "PlayerState")
    assert sink.calls[-1] == ('end',)
    assert sink.structures["PlayerState"] == elements
    assert len(elements) == 9


def test_empty_name_never_reaches_sink():
    sink = RecordingSink()
    with pytest.raises(ExportError):
        StructureExporter(sink).export("   ", LAYOUT)
    assert sink.calls == []


def test_duplicate_name_leaves_nothing_behind():
    sink = RecordingSink(taken={"PlayerState"})
    with pytest.raises(ExportError):
        StructureExporter(sink).export("PlayerState", LAYOUT)
    assert sink.structures == {}
    assert ('add', 0) not in sink.calls


def test_failed_element_aborts_structure():
    sink = RecordingSink(fail_on_add=True)
    with pytest.raises(ExportError):
        StructureExporter(sink).export("PlayerState", LAYOUT)
    assert sink.calls[-1] == ('abort',)
    assert sink.structures == {}


def test_editable_types_are_sorted_and_mapped():
    types = editable_types()
    assert types == sorted(types)
    assert "Padding" not in types
    assert {"Pointer", "String", "Word", "Float", "Double"} <= set(types)
