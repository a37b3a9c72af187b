"""Address-space oracles consumed by the fingerprinting engine.

The engine never touches process memory directly. It asks four questions
through the interfaces below: read bytes, how far a region extends, what
symbol (if any) names an address, and what protection a page carries.

StaticAddressSpace answers them from captured bytes, which is what offline
dump analysis and the test suite use. The live in-process implementation
lives in process_memory.py.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Union

from .errors import AddressInvalidError, ReadFailedError

logger = logging.getLogger(__name__)

_HEX_RE = re.compile(r'^(?:0[xX])?[0-9A-Fa-f]+$')
_MODULE_OFFSET_RE = re.compile(r'^(?P<module>[^+]+)\+(?:0[xX])?(?P<offset>[0-9A-Fa-f]+)$')


@dataclass(frozen=True)
class Protection:
    """Page protection of an address."""
    readable: bool
    writable: bool
    executable: bool

    def __str__(self) -> str:
        return ''.join((
            'r' if self.readable else '-',
            'w' if self.writable else '-',
            'x' if self.executable else '-',
        ))


class MemoryReader(Protocol):
    def read(self, address: int, length: int) -> bytes:
        """Return exactly length bytes or raise ReadFailedError."""
        ...


class RegionSizer(Protocol):
    def valid_size(self, address: int) -> int:
        """Largest readable length from address without crossing a region boundary."""
        ...


class SymbolResolver(Protocol):
    def name(self, address: int) -> Optional[str]:
        ...

    def address_of(self, symbol: str) -> Optional[int]:
        ...


class ProtectionQuery(Protocol):
    def protection(self, address: int) -> Protection:
        """Raise AddressInvalidError when the address is not mapped."""
        ...


class AddressSpace(MemoryReader, RegionSizer, SymbolResolver, ProtectionQuery, Protocol):
    """Everything a scan needs to know about the target process."""


def is_hex_name(name: str) -> bool:
    """True for names that are only a hex address rendering, e.g. '7FF6A0001000'."""
    return bool(_HEX_RE.match(name))


def resolve_target(target: Union[int, str], resolver: SymbolResolver) -> int:
    """Turn a numeric address or symbolic name into an address.

    Strings with a 0x prefix are parsed as hex; other strings are looked up
    as symbols first and fall back to bare hex.

    Raises:
        AddressInvalidError: if nothing resolves to a non-zero address.
    """
    if isinstance(target, int):
        if target <= 0:
            raise AddressInvalidError(target)
        return target

    text = target.strip()
    if not text:
        raise AddressInvalidError(target)

    address = None
    if text[:2].lower() == '0x' and _HEX_RE.match(text):
        address = int(text, 16)
    else:
        address = resolver.address_of(text)
        if address is None and _HEX_RE.match(text):
            address = int(text, 16)

    if not address:
        raise AddressInvalidError(target)
    return address


@dataclass
class MemoryRegion:
    """A captured, contiguous block of the target's memory."""
    base: int
    data: bytes
    protection: Protection = field(default_factory=lambda: Protection(True, True, False))
    module: str = ""

    @property
    def end(self) -> int:
        return self.base + len(self.data)

    def contains(self, address: int) -> bool:
        return self.base <= address < self.end


class StaticAddressSpace:
    """Address space backed by captured regions and a symbol table."""

    def __init__(self):
        self._regions: List[MemoryRegion] = []
        self._symbols: Dict[int, str] = {}

    @classmethod
    def from_dump(cls, path: Path, base_address: int, module: str = "") -> 'StaticAddressSpace':
        """Load a raw memory dump file as a single readable region."""
        space = cls()
        data = Path(path).read_bytes()
        space.add_region(base_address, data, module=module)
        logger.info(f"Loaded {len(data)} bytes from {path} at 0x{base_address:X}")
        return space

    def add_region(self, base: int, data: bytes, readable: bool = True,
                   writable: bool = True, executable: bool = False,
                   module: str = "") -> MemoryRegion:
        region = MemoryRegion(
            base=base,
            data=bytes(data),
            protection=Protection(readable, writable, executable),
            module=module,
        )
        for existing in self._regions:
            if region.base < existing.end and existing.base < region.end:
                raise ValueError(
                    f"Region 0x{base:X}-0x{region.end:X} overlaps 0x{existing.base:X}-0x{existing.end:X}"
                )
        self._regions.append(region)
        self._regions.sort(key=lambda r: r.base)
        return region

    def add_symbol(self, address: int, name: str):
        self._symbols[address] = name

    def region_at(self, address: int) -> Optional[MemoryRegion]:
        for region in self._regions:
            if region.contains(address):
                return region
        return None

    # MemoryReader

    def read(self, address: int, length: int) -> bytes:
        region = self.region_at(address)
        if region is None:
            raise ReadFailedError(address, length, "address is not mapped")
        if not region.protection.readable:
            raise ReadFailedError(address, length, "region is not readable")
        start = address - region.base
        if start + length > len(region.data):
            raise ReadFailedError(address, length, "read crosses the end of the region")
        return region.data[start:start + length]

    # RegionSizer

    def valid_size(self, address: int) -> int:
        region = self.region_at(address)
        if region is None or not region.protection.readable:
            return 0
        return region.end - address

    # SymbolResolver

    def name(self, address: int) -> Optional[str]:
        if address in self._symbols:
            return self._symbols[address]
        region = self.region_at(address)
        if region is not None and region.module:
            return f"{region.module}+{address - region.base:X}"
        return None

    def address_of(self, symbol: str) -> Optional[int]:
        for address, name in self._symbols.items():
            if name == symbol:
                return address
        match = _MODULE_OFFSET_RE.match(symbol)
        if match:
            for region in self._regions:
                if region.module and region.module.lower() == match.group('module').lower():
                    return region.base + int(match.group('offset'), 16)
        return None

    # ProtectionQuery

    def protection(self, address: int) -> Protection:
        region = self.region_at(address)
        if region is None:
            raise AddressInvalidError(address)
        return region.protection
