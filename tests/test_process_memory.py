"""Tests for the platform-independent parts of the live address space."""

import sys

import pytest

from struct_fingerprinter.core.process_memory import ProcessAddressSpace, demangle_rtti_name


@pytest.mark.parametrize("mangled, expected", [
    (".?AVPlayer@Game@@", "Game::Player"),
    (".?AUVector3@@", "Vector3"),
    (".?AVcGcApplication@@", "cGcApplication"),
    (".?AV?$TkList@VcGcPlayer@@@@", "?$TkList@VcGcPlayer@@"),
    ("Player", None),
    (".?AV@@", None),
])
def test_demangle_rtti_name(mangled, expected):
    assert demangle_rtti_name(mangled) == expected


@pytest.mark.skipif(sys.platform == 'win32', reason="only fails off Windows")
def test_requires_windows():
    with pytest.raises(OSError):
        ProcessAddressSpace()
