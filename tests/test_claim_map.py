"""Tests for the per-scan claim map."""

import pytest

from struct_fingerprinter.core.claim_map import ClaimMap
from struct_fingerprinter.core.errors import ClaimConflictError


def test_new_map_is_unclaimed():
    claims = ClaimMap(16)
    assert len(claims) == 16
    assert claims.claimed_count == 0
    assert not claims.is_complete
    assert claims.free_run(0) == 16
    assert claims.first_unclaimed() == 0


def test_claim_marks_span():
    claims = ClaimMap(16)
    claims.claim(4, 4)
    assert [claims.is_claimed(i) for i in range(3, 9)] == [False, True, True, True, True, False]
    assert claims.claimed_count == 4
    assert claims.first_unclaimed(4) == 8


def test_free_run_stops_at_next_claim():
    claims = ClaimMap(16)
    claims.claim(10, 2)
    assert claims.free_run(0) == 10
    assert claims.free_run(9) == 1
    assert claims.free_run(10) == 0
    assert claims.free_run(12) == 4


def test_overlapping_claim_is_rejected():
    claims = ClaimMap(16)
    claims.claim(0, 8)
    with pytest.raises(ClaimConflictError):
        claims.claim(7, 2)
    # Nothing from the rejected span was taken
    assert not claims.is_claimed(8)
    assert claims.claimed_count == 8


def test_claim_outside_window_is_rejected():
    claims = ClaimMap(8)
    with pytest.raises(ClaimConflictError):
        claims.claim(6, 4)
    assert not claims.is_span_free(-1, 2)
    assert not claims.is_span_free(0, 0)


def test_complete_after_full_cover():
    claims = ClaimMap(6)
    claims.claim(0, 2)
    claims.claim(2, 4)
    assert claims.is_complete
    assert claims.first_unclaimed() == 6


def test_zero_length_map_is_invalid():
    with pytest.raises(ValueError):
        ClaimMap(0)


def test_free_run_tracks_claims_made_after_lookup():
    claims = ClaimMap(32)
    assert claims.free_run(0) == 32
    claims.claim(10, 2)
    assert claims.free_run(0) == 10
    assert claims.free_run(12) == 20
    claims.claim(20, 4)
    assert claims.free_run(12) == 8
    assert claims.free_run(24) == 8
    claims.claim(0, 1)
    assert claims.free_run(1) == 9
    claims.claim(12, 8)
    assert claims.free_run(24) == 8
    assert claims.free_run(5) == 5


class _CountingFinds(bytearray):
    finds = 0

    def find(self, *args):
        _CountingFinds.finds += 1
        return super().find(*args)


def test_forward_sweep_does_not_rescan_the_map():
    claims = ClaimMap(4096)
    claims._claimed = _CountingFinds(4096)
    _CountingFinds.finds = 0

    # Claim byte by byte the way the fallback pass walks a window
    for offset in range(4096):
        assert claims.free_run(offset) == 4096 - offset
        claims.claim(offset, 1)

    assert claims.is_complete
    assert _CountingFinds.finds <= 1
