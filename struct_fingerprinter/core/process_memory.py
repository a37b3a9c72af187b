"""Live address space of the current (injected) process, via ctypes.

Windows only. Every read is validated with VirtualQuery first so a bad
pointer ends up as ReadFailedError instead of an access violation.
"""

import ctypes
import logging
import os
import struct
import sys
from typing import Optional

if sys.platform == 'win32':
    import ctypes.wintypes

from .address_space import Protection, is_hex_name
from .errors import AddressInvalidError, ReadFailedError

logger = logging.getLogger(__name__)


class MEMORY_BASIC_INFORMATION(ctypes.Structure):
    _fields_ = [
        ("BaseAddress", ctypes.c_void_p),
        ("AllocationBase", ctypes.c_void_p),
        ("AllocationProtect", ctypes.c_uint32),
        ("RegionSize", ctypes.c_size_t),
        ("State", ctypes.c_uint32),
        ("Protect", ctypes.c_uint32),
        ("Type", ctypes.c_uint32),
    ]


class ProcessAddressSpace:
    """Address space oracles for the process this code is running inside."""

    # Memory protection constants
    PAGE_NOACCESS = 0x01
    PAGE_READONLY = 0x02
    PAGE_READWRITE = 0x04
    PAGE_WRITECOPY = 0x08
    PAGE_EXECUTE = 0x10
    PAGE_EXECUTE_READ = 0x20
    PAGE_EXECUTE_READWRITE = 0x40
    PAGE_EXECUTE_WRITECOPY = 0x80
    PAGE_GUARD = 0x100

    READABLE = (PAGE_READONLY | PAGE_READWRITE | PAGE_WRITECOPY |
                PAGE_EXECUTE_READ | PAGE_EXECUTE_READWRITE | PAGE_EXECUTE_WRITECOPY)
    WRITABLE = PAGE_READWRITE | PAGE_WRITECOPY | PAGE_EXECUTE_READWRITE | PAGE_EXECUTE_WRITECOPY
    EXECUTABLE = PAGE_EXECUTE | PAGE_EXECUTE_READ | PAGE_EXECUTE_READWRITE | PAGE_EXECUTE_WRITECOPY

    # Memory state constants
    MEM_COMMIT = 0x1000

    GET_MODULE_HANDLE_EX_FLAG_UNCHANGED_REFCOUNT = 0x2
    GET_MODULE_HANDLE_EX_FLAG_FROM_ADDRESS = 0x4

    MIN_VALID_ADDRESS = 0x10000

    def __init__(self):
        if sys.platform != 'win32':
            raise OSError("ProcessAddressSpace requires Windows")

        self._kernel32 = ctypes.WinDLL('kernel32', use_last_error=True)

        self._VirtualQuery = self._kernel32.VirtualQuery
        self._VirtualQuery.argtypes = [ctypes.c_void_p, ctypes.POINTER(MEMORY_BASIC_INFORMATION), ctypes.c_size_t]
        self._VirtualQuery.restype = ctypes.c_size_t

        self._GetModuleHandleExW = self._kernel32.GetModuleHandleExW
        self._GetModuleHandleExW.argtypes = [ctypes.wintypes.DWORD, ctypes.c_void_p, ctypes.POINTER(ctypes.wintypes.HMODULE)]
        self._GetModuleHandleExW.restype = ctypes.wintypes.BOOL

        self._GetModuleHandleW = self._kernel32.GetModuleHandleW
        self._GetModuleHandleW.argtypes = [ctypes.wintypes.LPCWSTR]
        self._GetModuleHandleW.restype = ctypes.wintypes.HMODULE

        self._GetModuleFileNameW = self._kernel32.GetModuleFileNameW
        self._GetModuleFileNameW.argtypes = [ctypes.wintypes.HMODULE, ctypes.wintypes.LPWSTR, ctypes.wintypes.DWORD]
        self._GetModuleFileNameW.restype = ctypes.wintypes.DWORD

        self._pointer_size = ctypes.sizeof(ctypes.c_void_p)
        self._read_count = 0
        self._error_count = 0
        self._crash_addresses = set()  # Addresses that faulted despite VirtualQuery
        logger.info("ProcessAddressSpace initialized")

    @property
    def pointer_size(self) -> int:
        return self._pointer_size

    @property
    def stats(self) -> dict:
        """Get read statistics."""
        return {
            'read_count': self._read_count,
            'error_count': self._error_count,
        }

    def _query(self, address: int) -> Optional[MEMORY_BASIC_INFORMATION]:
        if address < self.MIN_VALID_ADDRESS:
            return None
        mbi = MEMORY_BASIC_INFORMATION()
        result = self._VirtualQuery(ctypes.c_void_p(address), ctypes.byref(mbi), ctypes.sizeof(mbi))
        if result == 0:
            return None
        return mbi

    def _is_readable(self, mbi: MEMORY_BASIC_INFORMATION) -> bool:
        if mbi.State != self.MEM_COMMIT:
            return False
        if mbi.Protect & (self.PAGE_NOACCESS | self.PAGE_GUARD):
            return False
        return bool(mbi.Protect & self.READABLE)

    # RegionSizer

    def valid_size(self, address: int) -> int:
        mbi = self._query(address)
        if mbi is None or not self._is_readable(mbi):
            return 0
        region_end = (mbi.BaseAddress or 0) + mbi.RegionSize
        return max(0, region_end - address)

    # MemoryReader

    def read(self, address: int, length: int) -> bytes:
        if address in self._crash_addresses:
            self._error_count += 1
            raise ReadFailedError(address, length, "address previously faulted")

        if self.valid_size(address) < length:
            self._error_count += 1
            raise ReadFailedError(address, length, "not inside a readable region")

        try:
            data = ctypes.string_at(address, length)
        except OSError as e:
            self._crash_addresses.add(address)
            self._error_count += 1
            logger.warning(f"Memory access error at 0x{address:X}: {e}")
            raise ReadFailedError(address, length, str(e)) from e

        self._read_count += 1
        return data

    # ProtectionQuery

    def protection(self, address: int) -> Protection:
        mbi = self._query(address)
        if mbi is None or mbi.State != self.MEM_COMMIT:
            raise AddressInvalidError(address)
        protect = mbi.Protect
        if protect & (self.PAGE_NOACCESS | self.PAGE_GUARD):
            return Protection(False, False, False)
        return Protection(
            readable=bool(protect & self.READABLE),
            writable=bool(protect & self.WRITABLE),
            executable=bool(protect & self.EXECUTABLE),
        )

    # SymbolResolver

    def name(self, address: int) -> Optional[str]:
        class_name = self._rtti_class_name(address)
        if class_name:
            return f"{class_name}::vftable"

        module_base = self._module_base(address)
        if module_base is None:
            return None
        module_name = self._module_name(module_base)
        if not module_name:
            return None
        return f"{module_name}+{address - module_base:X}"

    def address_of(self, symbol: str) -> Optional[int]:
        module, _, offset_text = symbol.partition('+')
        handle = self._GetModuleHandleW(module.strip())
        if not handle:
            return None
        offset = 0
        if offset_text:
            offset_text = offset_text.strip()
            if not is_hex_name(offset_text):
                return None
            offset = int(offset_text, 16)
        return handle + offset

    def _module_base(self, address: int) -> Optional[int]:
        handle = ctypes.wintypes.HMODULE()
        flags = self.GET_MODULE_HANDLE_EX_FLAG_FROM_ADDRESS | self.GET_MODULE_HANDLE_EX_FLAG_UNCHANGED_REFCOUNT
        if not self._GetModuleHandleExW(flags, ctypes.c_void_p(address), ctypes.byref(handle)):
            return None
        return handle.value

    def _module_name(self, module_base: int) -> str:
        buffer = ctypes.create_unicode_buffer(260)
        length = self._GetModuleFileNameW(module_base, buffer, len(buffer))
        if length == 0:
            return ""
        return os.path.basename(buffer.value)

    def _read_u32(self, address: int) -> int:
        return struct.unpack('<I', self.read(address, 4))[0]

    def _read_pointer(self, address: int) -> int:
        fmt = '<Q' if self._pointer_size == 8 else '<I'
        return struct.unpack(fmt, self.read(address, self._pointer_size))[0]

    def _rtti_class_name(self, vtable: int) -> Optional[str]:
        """Class name from MSVC RTTI when vtable is a virtual function table.

        The slot before a vftable points to a CompleteObjectLocator; on x64
        its fields are image-relative and the locator records its own RVA.
        """
        if self._pointer_size != 8:
            return None
        try:
            locator = self._read_pointer(vtable - 8)
            if locator < self.MIN_VALID_ADDRESS or self._read_u32(locator) != 1:
                return None
            type_rva = self._read_u32(locator + 12)
            self_rva = self._read_u32(locator + 20)
            image_base = locator - self_rva
            raw = self.read(image_base + type_rva + 16, 128)
        except ReadFailedError:
            return None

        mangled = raw.split(b'\x00', 1)[0].decode('ascii', errors='ignore')
        return demangle_rtti_name(mangled)


def demangle_rtti_name(mangled: str) -> Optional[str]:
    """Turn '.?AVPlayer@Game@@' into 'Game::Player'.

    Templates and other complex manglings are returned as-is after the
    prefix is stripped.
    """
    for prefix in ('.?AV', '.?AU'):
        if mangled.startswith(prefix):
            body = mangled[len(prefix):]
            break
    else:
        return None

    if body.endswith('@@'):
        body = body[:-2]
    if not body:
        return None
    if '?$' in body:
        return body
    return '::'.join(reversed([part for part in body.split('@') if part]))
