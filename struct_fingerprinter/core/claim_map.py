"""Per-scan record of which bytes already belong to an accepted candidate."""

from .errors import ClaimConflictError


class ClaimMap:
    """One flag per offset of the scan window.

    Claims only ever grow within a scan. A ClaimMap is created at scan
    start and dropped with the scan, it is never shared.
    """

    def __init__(self, length: int):
        if length <= 0:
            raise ValueError(f"ClaimMap length must be positive, got {length}")
        self._claimed = bytearray(length)
        self._claimed_count = 0
        # Last free_run lookup: [_free_from, _next_claim) holds no claims
        self._free_from = 0
        self._next_claim = length

    def __len__(self) -> int:
        return len(self._claimed)

    @property
    def claimed_count(self) -> int:
        return self._claimed_count

    @property
    def is_complete(self) -> bool:
        return self._claimed_count == len(self._claimed)

    def is_claimed(self, offset: int) -> bool:
        return bool(self._claimed[offset])

    def is_span_free(self, offset: int, size: int) -> bool:
        """True when [offset, offset + size) lies in the window and is unclaimed."""
        if offset < 0 or size <= 0 or offset + size > len(self._claimed):
            return False
        return not any(self._claimed[offset:offset + size])

    def claim(self, offset: int, size: int):
        """Mark [offset, offset + size) as owned.

        Raises:
            ClaimConflictError: if any byte in the span is already claimed
                or the span leaves the window.
        """
        if not self.is_span_free(offset, size):
            raise ClaimConflictError(offset, size)
        self._claimed[offset:offset + size] = b'\x01' * size
        self._claimed_count += size
        if offset < self._next_claim and offset + size > self._free_from:
            self._free_from = offset + size

    def free_run(self, offset: int) -> int:
        """Length of the unclaimed run starting at offset (0 if offset is claimed).

        Scans sweep forward, so the next claim found is remembered and
        reused until a claim lands in front of it.
        """
        if self._claimed[offset]:
            return 0
        if not self._free_from <= offset < self._next_claim:
            next_claim = self._claimed.find(1, offset)
            if next_claim < 0:
                next_claim = len(self._claimed)
            self._free_from = offset
            self._next_claim = next_claim
        return self._next_claim - offset

    def first_unclaimed(self, start: int = 0) -> int:
        """Offset of the first unclaimed byte at or after start, or len() if none."""
        index = self._claimed.find(0, start)
        return len(self._claimed) if index < 0 else index
