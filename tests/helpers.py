"""Byte-building helpers shared by the test modules."""

import struct

WINDOW_BASE = 0x10000000
# 2025-06-15 15:06:40 UTC
SCAN_TIME = 1750000000.0


def qword(value: int) -> bytes:
    return struct.pack('<Q', value)


def dword(value: int) -> bytes:
    return struct.pack('<I', value)


def floats(*values: float) -> bytes:
    return struct.pack(f'<{len(values)}f', *values)


def summary(result):
    """(offset, size, type) triples for compact assertions."""
    return [(c.offset, c.size, c.field_type) for c in result]
