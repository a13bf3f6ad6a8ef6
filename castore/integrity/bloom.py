"""
Bloom filter over byte keys.

Sizing from the expected item count n and target false-positive rate p:
    m = ceil(-n * ln(p) / ln(2)^2)     bits
    k = ceil((m / n) * ln(2))          hash functions

Each hash function is a distinct HashAlgo; bit index is the first 8 digest
bytes read as a big-endian integer, modulo m. Only four algorithms exist,
so k is clamped to 4 when the formula asks for more. That costs accuracy
against the theoretical target and is logged, not raised.
"""

from __future__ import annotations

import logging
import math
import threading

from castore.integrity.hashing import HashAlgo, compute

log = logging.getLogger(__name__)

# Selection order when fewer than all algorithms are needed
_ALGORITHM_ORDER = (
    HashAlgo.SHA256,
    HashAlgo.SHA512,
    HashAlgo.SHA3_256,
    HashAlgo.SHA3_512,
)


def optimal_parameters(expected_items: int, false_positive_rate: float) -> tuple[int, int]:
    """Return the theoretical ``(m, k)`` for ``n`` items at rate ``p``."""
    if expected_items < 1:
        raise ValueError(f"expected_items must be >= 1, got {expected_items}")
    if not 0.0 < false_positive_rate < 1.0:
        raise ValueError(
            f"false_positive_rate must be in (0, 1), got {false_positive_rate}"
        )

    n = expected_items
    m = math.ceil(-n * math.log(false_positive_rate) / (math.log(2) ** 2))
    k = max(1, math.ceil((m / n) * math.log(2)))
    return m, k


class BloomFilter:
    """Probabilistic set membership: no false negatives, tunable false positives.

    Never resized, bits are never cleared.

    Usage:
        bloom = BloomFilter(1000, 0.01)
        bloom.add(b"/watch/report.pdf")
        assert bloom.contains(b"/watch/report.pdf")
    """

    def __init__(self, expected_items: int, false_positive_rate: float) -> None:
        m, k = optimal_parameters(expected_items, false_positive_rate)

        if k > len(_ALGORITHM_ORDER):
            log.warning(
                "Bloom filter wants %d hash functions, only %d algorithms "
                "available; clamping (target rate %.4g will not be reached)",
                k, len(_ALGORITHM_ORDER), false_positive_rate,
            )

        self._size = m
        self._requested_hashes = k
        self._algorithms = _ALGORITHM_ORDER[:k]
        self._bits = bytearray((m + 7) // 8)
        self._num_items = 0
        self._lock = threading.Lock()

    def _index(self, item: bytes, algo: HashAlgo) -> int:
        digest = compute(item, algo).digest
        return int.from_bytes(digest[:8], "big") % self._size

    def add(self, item: bytes) -> None:
        """Insert ``item`` into the filter."""
        positions = [self._index(item, algo) for algo in self._algorithms]
        with self._lock:
            for pos in positions:
                self._bits[pos >> 3] |= 1 << (pos & 7)
            self._num_items += 1

    def contains(self, item: bytes) -> bool:
        """Membership test. False is definite, True may be a false positive."""
        for algo in self._algorithms:
            pos = self._index(item, algo)
            if not self._bits[pos >> 3] & (1 << (pos & 7)):
                return False
        return True

    def __contains__(self, item: bytes) -> bool:
        return self.contains(item)

    def false_positive_rate(self) -> float:
        """Analytic estimate ``(1 - e^(-k*n/m))^k`` at the current item count."""
        k = len(self._algorithms)
        return (1.0 - math.exp(-k * self._num_items / self._size)) ** k

    @property
    def size(self) -> int:
        """Bit-array size m."""
        return self._size

    @property
    def num_hashes(self) -> int:
        """Hash functions actually used (after clamping)."""
        return len(self._algorithms)

    @property
    def requested_hashes(self) -> int:
        """Hash functions the sizing formula asked for."""
        return self._requested_hashes

    @property
    def algorithms(self) -> tuple[HashAlgo, ...]:
        return self._algorithms

    @property
    def num_items(self) -> int:
        return self._num_items

    def __len__(self) -> int:
        return self._num_items
