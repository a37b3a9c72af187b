"""Field detectors and the three ordered scan passes.

Each detector looks at one unclaimed offset and either proposes a
FieldCandidate for a span starting there or returns None. Detectors never
claim bytes themselves: they only look at the free run in front of the
offset, and the ScanController claims whatever the first matching
detector proposes.

Pass 1 holds the high-confidence detectors, Pass 2 the speculative ones,
and Pass 3 closes every remaining gap with padding runs or single unknown
bytes so the result always tiles the window.
"""

import logging
import re
import struct
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

from ..config import ScanSettings
from ..data.field_candidate import FieldCandidate, FieldType, ScanWindow
from .address_space import AddressSpace, is_hex_name
from .claim_map import ClaimMap
from .errors import AddressInvalidError, ReadFailedError

logger = logging.getLogger(__name__)

FILLER_BYTES = (0x00, 0xCC)
MIN_PADDING_RUN = 4

_NON_ALNUM_RE = re.compile(r'[^0-9A-Za-z]')


def _is_printable(b: int) -> bool:
    return 32 <= b <= 126


class DetectionContext:
    """What a detector may look at while classifying one offset."""

    def __init__(self, window: ScanWindow, claims: ClaimMap,
                 address_space: AddressSpace, settings: ScanSettings):
        self.window = window
        self.data = window.data
        self.claims = claims
        self.address_space = address_space
        self.settings = settings
        self.pointer_size = settings.pointer_size
        self.timestamp_min = settings.timestamp_min
        self.timestamp_max = settings.timestamp_max()
        self._pointer_format = '<Q' if settings.pointer_size == 8 else '<I'

    def free_extent(self, offset: int) -> int:
        """Unclaimed bytes available from offset to the next claim or window end."""
        return self.claims.free_run(offset)

    def u32(self, offset: int) -> int:
        return struct.unpack_from('<I', self.data, offset)[0]

    def u64(self, offset: int) -> int:
        return struct.unpack_from('<Q', self.data, offset)[0]

    def f32(self, offset: int) -> float:
        return struct.unpack_from('<f', self.data, offset)[0]

    def pointer(self, offset: int) -> int:
        return struct.unpack_from(self._pointer_format, self.data, offset)[0]

    def dereference(self, address: int) -> int:
        """Read a pointer-sized value from the target process.

        Raises:
            ReadFailedError: if the address is not readable.
        """
        raw = self.address_space.read(address, self.pointer_size)
        return struct.unpack(self._pointer_format, raw)[0]

    def filler_run(self, offset: int) -> int:
        """Length of the run of identical unclaimed filler bytes at offset (0 if none)."""
        first = self.data[offset]
        if first not in FILLER_BYTES:
            return 0
        limit = offset + self.free_extent(offset)
        end = offset + 1
        while end < limit and self.data[end] == first:
            end += 1
        return end - offset

    def filler_skip_end(self, offset: int) -> int:
        """Offset where the speculative pass resumes after a filler run at offset.

        Returns offset itself when no padding-length run starts there. A run
        that ends inside an aligned word holding a non-filler byte is only
        skipped up to that word, so a value with zero low bytes stays
        visible to the detectors.
        """
        run = self.filler_run(offset)
        if run < MIN_PADDING_RUN:
            return offset
        end = offset + run
        word = end - end % 4
        if word < end:
            limit = offset + self.free_extent(offset)
            tail = self.data[end:min(word + 4, limit)]
            if any(b not in FILLER_BYTES for b in tail):
                return word
        return end


class Detector:
    """Base class for a single field heuristic.

    Subclasses set alignment/min_size and implement detect(). The
    controller only calls detect() when the offset is aligned and at least
    min_size unclaimed bytes follow it.
    """
    name = "detector"
    alignment = 1
    min_size = 1
    confidence = 0

    def applies(self, ctx: DetectionContext, offset: int) -> bool:
        if offset % self._alignment(ctx):
            return False
        return ctx.free_extent(offset) >= self._min_size(ctx)

    def _alignment(self, ctx: DetectionContext) -> int:
        return self.alignment

    def _min_size(self, ctx: DetectionContext) -> int:
        return self.min_size

    def detect(self, ctx: DetectionContext, offset: int) -> Optional[FieldCandidate]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}>"


# =========================================================================
# Pass 1: high-confidence detectors
# =========================================================================

class SymbolPointerDetector(Detector):
    """Pointer whose target the symbol resolver can name."""
    name = "pointer"
    confidence = 95

    def _alignment(self, ctx):
        return ctx.pointer_size

    def _min_size(self, ctx):
        return ctx.pointer_size

    def detect(self, ctx, offset):
        target = ctx.pointer(offset)
        if target <= ctx.settings.low_memory_guard:
            return None

        symbol = ctx.address_space.name(target)
        if not symbol or is_hex_name(symbol):
            return None

        lowered = symbol.lower()
        if 'vtable' in lowered or 'vftable' in lowered:
            field_name = 'VTable'
        else:
            field_name = 'p' + _NON_ALNUM_RE.sub('', symbol)

        return FieldCandidate(
            offset=offset,
            size=ctx.pointer_size,
            field_type=FieldType.POINTER,
            display_value=f"-> {symbol}",
            proposed_name=field_name,
            confidence=self.confidence,
            pointer_target=target,
        )


class AsciiStringDetector(Detector):
    """Printable ASCII run ended by NUL or the window boundary."""
    name = "ascii_string"
    min_size = 4
    # Same tier as the symbol pointer
    confidence = 95

    def detect(self, ctx, offset):
        data = ctx.data
        free_end = offset + ctx.free_extent(offset)
        cap = ctx.settings.max_string_length
        limit = min(free_end, offset + cap)

        end = offset
        while end < limit and _is_printable(data[end]):
            end += 1
        length = end - offset
        if length <= 3:
            return None

        if end < free_end:
            if data[end] == 0:
                size = length + 1
            elif length == cap:
                size = length
            else:
                return None
        else:
            size = length

        text = data[offset:end].decode('ascii')
        return FieldCandidate(
            offset=offset,
            size=size,
            field_type=FieldType.STRING,
            display_value=text,
            proposed_name='sNameOrDesc',
            confidence=self.confidence,
            raw_text_length=length,
        )


class Utf16StringDetector(Detector):
    """UTF-16LE run of ASCII-range characters ended by a zero pair or the boundary."""
    name = "utf16_string"
    alignment = 2
    min_size = 8
    confidence = 90

    def detect(self, ctx, offset):
        data = ctx.data
        free_end = offset + ctx.free_extent(offset)
        cap = ctx.settings.max_string_length
        limit = min(free_end, offset + cap * 2)

        pos = offset
        while pos + 1 < limit and data[pos + 1] == 0 and _is_printable(data[pos]):
            pos += 2
        count = (pos - offset) // 2
        if count <= 3:
            return None

        if pos + 1 < free_end:
            if data[pos] == 0 and data[pos + 1] == 0:
                size = count * 2 + 2
            elif count == cap:
                size = count * 2
            else:
                return None
        else:
            size = count * 2

        text = data[offset:pos].decode('utf-16-le')
        return FieldCandidate(
            offset=offset,
            size=size,
            field_type=FieldType.UNICODE_STRING,
            display_value=text,
            proposed_name='wsNameOrDesc',
            confidence=self.confidence,
            raw_text_length=count,
        )


# =========================================================================
# Pass 2: speculative detectors
# =========================================================================

class FloatSequenceDetector(Detector):
    """Three or more plausible floats in a row: Vector3, Vector4 or a float array."""
    name = "float_sequence"
    alignment = 4
    min_size = 12
    confidence = 75

    MIN_MAGNITUDE = 0.001
    MAX_MAGNITUDE = 100000

    def _plausible(self, value: float) -> bool:
        return value != 0 and self.MIN_MAGNITUDE < abs(value) < self.MAX_MAGNITUDE

    def detect(self, ctx, offset):
        end = offset + ctx.free_extent(offset)
        floats = []
        pos = offset
        while pos + 4 <= end:
            value = ctx.f32(pos)
            if not self._plausible(value):
                break
            floats.append(value)
            pos += 4

        count = len(floats)
        if count < 3:
            return None

        if count == 3:
            field_type, field_name = FieldType.VECTOR3, 'vec3_Coords'
            display = '({:.4f},{:.4f},{:.4f})'.format(*floats)
        elif count == 4:
            field_type, field_name = FieldType.VECTOR4, 'vec4_ColorOrQuat'
            display = '({:.4f},{:.4f},{:.4f},{:.4f})'.format(*floats)
        else:
            field_type, field_name = FieldType.FLOAT_ARRAY, 'arr_fValues'
            display = f"Array of {count} floats"

        return FieldCandidate(
            offset=offset,
            size=count * 4,
            field_type=field_type,
            display_value=display,
            proposed_name=field_name,
            confidence=self.confidence,
        )


class BoundedDwordArrayDetector(Detector):
    """Three or more small dwords in a row, typically IDs or counts."""
    name = "dword_array"
    alignment = 4
    min_size = 12
    confidence = 65

    MAX_VALUE = 8192

    def detect(self, ctx, offset):
        end = offset + ctx.free_extent(offset)
        count = 0
        pos = offset
        while pos + 4 <= end and ctx.u32(pos) <= self.MAX_VALUE:
            count += 1
            pos += 4

        if count < 3:
            return None

        return FieldCandidate(
            offset=offset,
            size=count * 4,
            field_type=FieldType.DWORD_ARRAY,
            display_value=f"Array of {count} dwords",
            proposed_name='arr_iIDsOrCounts',
            confidence=self.confidence,
        )


class SpeculativePointerDetector(Detector):
    """Pointer validated by dereferencing it or by its target's page protection.

    Tier A: the target itself holds a pointer to an addressable location.
    Tier B: the target lives in writable, non-executable memory.
    """
    name = "speculative_pointer"
    nested_confidence = 70
    data_confidence = 60
    confidence = nested_confidence

    def _alignment(self, ctx):
        return ctx.pointer_size

    def _min_size(self, ctx):
        return ctx.pointer_size

    def _points_to_pointer(self, ctx, target: int) -> bool:
        try:
            nested = ctx.dereference(target)
        except ReadFailedError as e:
            logger.debug(f"Nested dereference of 0x{target:X} failed: {e}")
            return False
        if nested <= ctx.settings.low_memory_guard:
            return False
        return ctx.address_space.valid_size(nested) > 0

    def _points_to_data(self, ctx, target: int) -> bool:
        try:
            protection = ctx.address_space.protection(target)
        except AddressInvalidError as e:
            logger.debug(f"Protection query for 0x{target:X} failed: {e}")
            return False
        return protection.writable and not protection.executable

    def detect(self, ctx, offset):
        target = ctx.pointer(offset)
        if target <= ctx.settings.low_memory_guard:
            return None

        if self._points_to_pointer(ctx, target):
            confidence, field_name = self.nested_confidence, 'ppNestedObject'
        elif self._points_to_data(ctx, target):
            confidence, field_name = self.data_confidence, 'pDataObject'
        else:
            return None

        return FieldCandidate(
            offset=offset,
            size=ctx.pointer_size,
            field_type=FieldType.POINTER,
            display_value=f"-> 0x{target:X}",
            proposed_name=field_name,
            confidence=confidence,
            pointer_target=target,
        )


class TimestampDetector(Detector):
    """64-bit Unix timestamp between 2000 and a few years past the scan time."""
    name = "timestamp"
    alignment = 8
    min_size = 8
    confidence = 65

    def detect(self, ctx, offset):
        value = ctx.u64(offset)
        if not ctx.timestamp_min < value < ctx.timestamp_max:
            return None

        rendered = datetime.fromtimestamp(value, tz=timezone.utc).strftime('%Y-%m-%d %H:%M:%S')
        return FieldCandidate(
            offset=offset,
            size=8,
            field_type=FieldType.QWORD,
            display_value=rendered,
            proposed_name='timestamp_unix',
            confidence=self.confidence,
        )


class ByteBooleanDetector(Detector):
    name = "bool8"
    confidence = 50

    def detect(self, ctx, offset):
        value = ctx.data[offset]
        if value not in (0, 1):
            return None
        return FieldCandidate(
            offset=offset,
            size=1,
            field_type=FieldType.BOOLEAN,
            display_value=str(value),
            proposed_name='bFlag',
            confidence=self.confidence,
        )


class DwordBooleanDetector(Detector):
    name = "bool32"
    alignment = 4
    min_size = 4
    confidence = 45

    def detect(self, ctx, offset):
        value = ctx.u32(offset)
        if value not in (0, 1):
            return None
        return FieldCandidate(
            offset=offset,
            size=4,
            field_type=FieldType.BOOLEAN32,
            display_value=str(value),
            proposed_name='bFlag32',
            confidence=self.confidence,
        )


class SmallQwordDetector(Detector):
    name = "small_qword"
    alignment = 8
    min_size = 8
    confidence = 40

    MAX_VALUE = 4096

    def detect(self, ctx, offset):
        value = ctx.u64(offset)
        if value > self.MAX_VALUE:
            return None
        return FieldCandidate(
            offset=offset,
            size=8,
            field_type=FieldType.QWORD,
            display_value=str(value),
            proposed_name='i64ValueOrFlag',
            confidence=self.confidence,
        )


class SmallDwordDetector(Detector):
    name = "small_dword"
    alignment = 4
    min_size = 4
    confidence = 40

    MAX_VALUE = 2048

    def detect(self, ctx, offset):
        value = ctx.u32(offset)
        if value > self.MAX_VALUE:
            return None
        return FieldCandidate(
            offset=offset,
            size=4,
            field_type=FieldType.DWORD,
            display_value=str(value),
            proposed_name='iValueOrFlag',
            confidence=self.confidence,
        )


class ColorQuadDetector(Detector):
    """Four bytes with at least one 0xFF, usually an RGBA color or flag set."""
    name = "color_quad"
    alignment = 4
    min_size = 4
    confidence = 35

    def detect(self, ctx, offset):
        quad = ctx.data[offset:offset + 4]
        if 0xFF not in quad:
            return None
        return FieldCandidate(
            offset=offset,
            size=4,
            field_type=FieldType.BYTE_QUAD,
            display_value=', '.join(str(b) for b in quad),
            proposed_name='colorRGBA',
            confidence=self.confidence,
        )


# =========================================================================
# Pass 3: padding and fallback
# =========================================================================

class PaddingRunDetector(Detector):
    """Four or more identical 0x00 / 0xCC bytes."""
    name = "padding"
    confidence = 10

    def detect(self, ctx, offset):
        run = ctx.filler_run(offset)
        if run < MIN_PADDING_RUN:
            return None
        fill = ctx.data[offset]
        return FieldCandidate(
            offset=offset,
            size=run,
            field_type=FieldType.PADDING,
            display_value=f"{fill:02X} x {run}",
            proposed_name='_padding',
            confidence=self.confidence,
        )


class UnknownByteDetector(Detector):
    """Always matches: one opaque byte."""
    name = "unknown"
    confidence = 5

    def detect(self, ctx, offset):
        value = ctx.data[offset]
        return FieldCandidate(
            offset=offset,
            size=1,
            field_type=FieldType.BYTE,
            display_value=f"{value} (0x{value:02X})",
            proposed_name='_unk',
            confidence=self.confidence,
        )


@dataclass(frozen=True)
class ScanPass:
    """One sweep of the window with an ordered detector list."""
    name: str
    detectors: Tuple[Detector, ...]
    weight: int  # Share of the progress bar, in percent
    skip_filler_runs: bool = False


PASS_ONE = ScanPass(
    name="high-confidence",
    detectors=(
        SymbolPointerDetector(),
        AsciiStringDetector(),
        Utf16StringDetector(),
    ),
    weight=33,
)

PASS_TWO = ScanPass(
    name="speculative",
    detectors=(
        FloatSequenceDetector(),
        BoundedDwordArrayDetector(),
        SpeculativePointerDetector(),
        TimestampDetector(),
        ByteBooleanDetector(),
        DwordBooleanDetector(),
        SmallQwordDetector(),
        SmallDwordDetector(),
        ColorQuadDetector(),
    ),
    weight=33,
    # Runs of 0x00/0xCC are left for the padding pass
    skip_filler_runs=True,
)

PASS_THREE = ScanPass(
    name="padding",
    detectors=(
        PaddingRunDetector(),
        UnknownByteDetector(),
    ),
    weight=34,
)

DEFAULT_PASSES = (PASS_ONE, PASS_TWO, PASS_THREE)
