"""Tests for the individual field heuristics, run through full scans."""

import pytest

from helpers import WINDOW_BASE, dword, floats, qword, summary
from struct_fingerprinter.data.field_candidate import FieldType

TARGET = 0x20000000


# =========================================================================
# Pass 1
# =========================================================================

def test_symbol_pointer(scan, space):
    space.add_symbol(0x7FF600001000, "Foo::Bar")
    result = scan(qword(0x7FF600001000))

    (pointer,) = result.candidates
    assert pointer.field_type is FieldType.POINTER
    assert (pointer.offset, pointer.size, pointer.confidence) == (0, 8, 95)
    assert pointer.display_value == "-> Foo::Bar"
    assert pointer.proposed_name == "pFooBar"
    assert pointer.pointer_target == 0x7FF600001000


def test_vtable_pointer_named_vtable(scan, space):
    space.add_symbol(0x7FF600002000, "Game::Player::vftable")
    result = scan(qword(0x7FF600002000))
    assert result.candidates[0].proposed_name == "VTable"


def test_module_offset_name_counts_as_symbol(scan, space):
    space.add_region(TARGET, bytes(0x2000), module="game.exe")
    result = scan(qword(TARGET + 0x1000))

    pointer = result.candidates[0]
    assert pointer.confidence == 95
    assert pointer.display_value == "-> game.exe+1000"
    assert pointer.proposed_name == "pgameexe1000"


def test_hex_only_name_is_not_a_symbol(scan, space):
    space.add_symbol(0x7FF600001000, "7FF600001000")
    result = scan(qword(0x7FF600001000))
    assert all(c.field_type is not FieldType.POINTER for c in result)


def test_ascii_string_with_terminator(scan):
    result = scan(b"Hello\x00\xAB\xCD")

    string = result.candidates[0]
    assert string.field_type is FieldType.STRING
    assert (string.offset, string.size, string.confidence) == (0, 6, 95)
    assert string.display_value == "Hello"
    assert string.raw_text_length == 5
    assert string.proposed_name == "sNameOrDesc"


def test_ascii_string_ending_at_window_boundary(scan):
    result = scan(b"\xAB\xCD\xEF\x01Tail")

    string = result.candidate_at(4)
    assert string.field_type is FieldType.STRING
    assert (string.offset, string.size) == (4, 4)
    assert string.display_value == "Tail"


def test_ascii_run_without_terminator_is_not_a_string(scan):
    result = scan(b"Abcd\x80\x80\x80\x80")
    assert all(c.field_type is not FieldType.STRING for c in result)


def test_three_printable_bytes_are_not_a_string(scan):
    result = scan(b"Abc\x00\xAB\xAB\xAB\xAB")
    assert all(c.field_type is not FieldType.STRING for c in result)


def test_ascii_string_capped_at_max_length(scan, settings):
    cap = settings.max_string_length
    result = scan(b"A" * (cap + 44) + b"\x00")

    first, second = result.candidates[:2]
    assert (first.field_type, first.size, first.raw_text_length) == (FieldType.STRING, cap, cap)
    assert (second.field_type, second.offset, second.size) == (FieldType.STRING, cap, 45)
    assert second.raw_text_length == 44


def test_utf16_string(scan):
    result = scan("Name".encode('utf-16-le') + b"\x00\x00\xAB\xCD")

    string = result.candidates[0]
    assert string.field_type is FieldType.UNICODE_STRING
    assert (string.offset, string.size, string.confidence) == (0, 10, 90)
    assert string.display_value == "Name"
    assert string.raw_text_length == 4
    assert string.proposed_name == "wsNameOrDesc"


def test_short_utf16_run_is_not_a_string(scan):
    result = scan("Abc".encode('utf-16-le') + b"\x00\x00\xAB\xCD\xAB\xCD")
    assert all(c.field_type is not FieldType.UNICODE_STRING for c in result)


# =========================================================================
# Pass 2
# =========================================================================

def test_vector3(scan):
    result = scan(floats(1.0, 2.0, 3.0) + bytes(4))

    assert summary(result) == [(0, 12, FieldType.VECTOR3), (12, 4, FieldType.PADDING)]
    vec = result.candidates[0]
    assert vec.display_value == "(1.0000,2.0000,3.0000)"
    assert vec.proposed_name == "vec3_Coords"
    assert vec.confidence == 75


def test_vector4(scan):
    result = scan(floats(1.0, 2.0, 3.0, 4.0) + bytes(4))

    vec = result.candidates[0]
    assert (vec.field_type, vec.size) == (FieldType.VECTOR4, 16)
    assert vec.display_value == "(1.0000,2.0000,3.0000,4.0000)"
    assert vec.proposed_name == "vec4_ColorOrQuat"


def test_float_array(scan):
    result = scan(floats(1.0, 2.0, 3.0, 4.0, 5.0) + bytes(4))

    arr = result.candidates[0]
    assert (arr.field_type, arr.size) == (FieldType.FLOAT_ARRAY, 20)
    assert arr.type_label == "Float[5]"
    assert arr.display_value == "Array of 5 floats"
    assert arr.proposed_name == "arr_fValues"


def test_dword_array(scan):
    result = scan(dword(1) + dword(2) + dword(3) + dword(0xFFFFFFFF))

    arr, quad = result.candidates
    assert (arr.field_type, arr.size, arr.confidence) == (FieldType.DWORD_ARRAY, 12, 65)
    assert arr.display_value == "Array of 3 dwords"
    assert arr.proposed_name == "arr_iIDsOrCounts"
    assert quad.field_type is FieldType.BYTE_QUAD
    assert quad.display_value == "255, 255, 255, 255"


def test_dword_array_beats_booleans(scan):
    result = scan(dword(1) + dword(0) + dword(1))
    assert summary(result) == [(0, 12, FieldType.DWORD_ARRAY)]


def test_pointer_to_pointer(scan, space):
    space.add_region(TARGET, qword(WINDOW_BASE))
    result = scan(qword(TARGET))

    pointer = result.candidates[0]
    assert pointer.field_type is FieldType.POINTER
    assert pointer.confidence == 70
    assert pointer.proposed_name == "ppNestedObject"
    assert pointer.display_value == "-> 0x20000000"
    assert pointer.pointer_target == TARGET


def test_pointer_to_writable_data(scan, space):
    space.add_region(TARGET, bytes(16), writable=True, executable=False)
    result = scan(qword(TARGET))

    pointer = result.candidates[0]
    assert pointer.confidence == 60
    assert pointer.proposed_name == "pDataObject"


def test_pointer_into_code_is_rejected(scan, space):
    space.add_region(TARGET, bytes(16), writable=False, executable=True)
    result = scan(qword(TARGET))
    assert all(c.field_type is not FieldType.POINTER for c in result)


def test_unmapped_pointer_is_rejected(scan):
    result = scan(qword(0x30000000))
    assert all(c.field_type is not FieldType.POINTER for c in result)


def test_timestamp(scan):
    result = scan(qword(1700000000))

    stamp = result.candidates[0]
    assert (stamp.field_type, stamp.size, stamp.confidence) == (FieldType.QWORD, 8, 65)
    assert stamp.display_value == "2023-11-14 22:13:20"
    assert stamp.proposed_name == "timestamp_unix"


def test_timestamp_past_horizon_rejected(scan):
    result = scan(qword(1950000000))
    assert all(c.proposed_name != "timestamp_unix" for c in result)


def test_small_qword(scan):
    result = scan(qword(1000))
    assert summary(result) == [(0, 8, FieldType.QWORD)]
    assert result.candidates[0].display_value == "1000"
    assert result.candidates[0].proposed_name == "i64ValueOrFlag"


def test_byte_boolean(scan):
    (flag,) = scan(b"\x01").candidates
    assert (flag.field_type, flag.display_value, flag.confidence) == (FieldType.BOOLEAN, "1", 50)
    assert flag.proposed_name == "bFlag"


def test_color_quad(scan):
    (quad,) = scan(bytes([0xFF, 0x80, 0x40, 0xFF])).candidates
    assert quad.field_type is FieldType.BYTE_QUAD
    assert quad.display_value == "255, 128, 64, 255"
    assert quad.proposed_name == "colorRGBA"
    assert quad.confidence == 35


# =========================================================================
# Pass 3
# =========================================================================

def test_padding_run_is_one_candidate(scan):
    (padding,) = scan(b"\xCC" * 10).candidates
    assert (padding.field_type, padding.size, padding.confidence) == (FieldType.PADDING, 10, 10)
    assert padding.display_value == "CC x 10"
    assert padding.proposed_name == "_padding"


def test_three_filler_bytes_are_not_padding(scan):
    result = scan(b"\xCC" * 3)
    assert summary(result) == [(0, 1, FieldType.BYTE), (1, 1, FieldType.BYTE), (2, 1, FieldType.BYTE)]


def test_three_zero_bytes_become_flags(scan):
    result = scan(bytes(3))
    assert [c.field_type for c in result] == [FieldType.BOOLEAN] * 3


def test_mixed_filler_is_not_one_run(scan):
    result = scan(b"\x00\x00\xCC\xCC\x00\x00\xCC\xCC")
    assert all(c.field_type is not FieldType.PADDING for c in result)


def test_padding_before_vector_keeps_vector(scan):
    # 10.5 is 00 00 28 41: the zero run spills into the first float
    result = scan(bytes(4) + floats(10.5, -3.25, 7.0))
    assert summary(result) == [(0, 4, FieldType.PADDING), (4, 12, FieldType.VECTOR3)]


def test_padding_before_aligned_dword_stops_at_word(scan):
    result = scan(bytes(8) + dword(0x4100) + b"\xAB\xCD\xEF\x12")

    assert summary(result)[0] == (0, 8, FieldType.PADDING)
    assert result.candidate_at(8).offset == 8
    assert result.candidate_at(8).field_type is not FieldType.PADDING


def test_padding_before_dword_array(scan):
    result = scan(bytes(8) + dword(0x100) + dword(0x200) + dword(0x300))
    assert summary(result) == [(0, 8, FieldType.PADDING), (8, 12, FieldType.DWORD_ARRAY)]


def test_padding_before_aligned_pointer(scan, space):
    space.add_region(TARGET, bytes(16), writable=True, executable=False)
    result = scan(bytes(8) + qword(TARGET))

    assert summary(result) == [(0, 8, FieldType.PADDING), (8, 8, FieldType.POINTER)]
    assert result.candidates[1].proposed_name == "pDataObject"


@pytest.mark.parametrize("data, expected", [
    (bytes(10), [(0, 10, FieldType.PADDING)]),
    (bytes(6) + b"\xCC" * 6, [(0, 6, FieldType.PADDING), (6, 6, FieldType.PADDING)]),
    (b"\xCC" * 10, [(0, 10, FieldType.PADDING)]),
])
def test_filler_run_ending_mid_word_stays_padding(scan, data, expected):
    assert summary(scan(data)) == expected


def test_unknown_byte(scan):
    (unknown,) = scan(b"\xAB").candidates
    assert unknown.field_type is FieldType.BYTE
    assert unknown.display_value == "171 (0xAB)"
    assert unknown.proposed_name == "_unk"
    assert unknown.confidence == 5
