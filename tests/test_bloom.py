"""
Tests for castore.integrity.bloom — sizing, membership, clamping.
"""

from __future__ import annotations

import logging
import math
import random

import pytest

from castore.integrity.bloom import BloomFilter, optimal_parameters
from castore.integrity.hashing import HashAlgo, compute


class TestSizing:

    def test_reference_parameters(self):
        # n=1000, p=0.01 -> m=9586, k=7
        m, k = optimal_parameters(1000, 0.01)
        assert m == math.ceil(-1000 * math.log(0.01) / math.log(2) ** 2)
        assert m == 9586
        assert k == 7

    def test_loose_rate_fits_available_algorithms(self):
        m, k = optimal_parameters(100, 0.2)
        bloom = BloomFilter(100, 0.2)
        assert k <= 4
        assert bloom.num_hashes == k
        assert bloom.size == m

    def test_clamped_to_available_algorithms(self, caplog):
        with caplog.at_level(logging.WARNING, logger="castore.integrity.bloom"):
            bloom = BloomFilter(1000, 0.01)
        assert bloom.requested_hashes == 7
        assert bloom.num_hashes == 4
        assert len(set(bloom.algorithms)) == 4
        assert "clamping" in caplog.text

    def test_algorithm_order(self):
        bloom = BloomFilter(10, 0.5)
        assert bloom.algorithms[0] == HashAlgo.SHA256

    @pytest.mark.parametrize("n, p", [(0, 0.01), (-5, 0.01), (10, 0.0), (10, 1.0), (10, 1.5)])
    def test_invalid_parameters(self, n, p):
        with pytest.raises(ValueError):
            BloomFilter(n, p)


class TestMembership:

    def test_no_false_negatives(self):
        rng = random.Random(42)
        bloom = BloomFilter(500, 0.01)
        items = [rng.randbytes(rng.randint(0, 64)) for _ in range(500)]
        for item in items:
            bloom.add(item)
        for item in items:
            assert bloom.contains(item)
            assert item in bloom

    def test_empty_filter_contains_nothing(self):
        bloom = BloomFilter(100, 0.01)
        assert not bloom.contains(b"anything")
        assert bloom.num_items == 0

    def test_bit_index_folding(self):
        bloom = BloomFilter(10, 0.5)
        item = b"fold"
        bloom.add(item)
        for algo in bloom.algorithms:
            pos = int.from_bytes(compute(item, algo).digest[:8], "big") % bloom.size
            assert bloom._bits[pos >> 3] & (1 << (pos & 7))

    def test_num_items_counts_adds(self):
        bloom = BloomFilter(100, 0.01)
        bloom.add(b"a")
        bloom.add(b"a")
        assert bloom.num_items == 2
        assert len(bloom) == 2

    def test_observed_false_positives_are_rare(self):
        rng = random.Random(7)
        bloom = BloomFilter(1000, 0.01)
        for _ in range(1000):
            bloom.add(rng.randbytes(16))
        samples = [rng.randbytes(17) for _ in range(2000)]
        hits = sum(1 for p in samples if p in bloom)
        assert hits / len(samples) < 0.1


class TestFalsePositiveRate:

    def test_zero_when_empty(self):
        assert BloomFilter(100, 0.01).false_positive_rate() == 0.0

    def test_matches_formula(self):
        bloom = BloomFilter(100, 0.05)
        for i in range(50):
            bloom.add(str(i).encode())
        k, m, n = bloom.num_hashes, bloom.size, 50
        expected = (1 - math.exp(-k * n / m)) ** k
        assert bloom.false_positive_rate() == pytest.approx(expected)

    def test_grows_with_items(self):
        bloom = BloomFilter(100, 0.05)
        bloom.add(b"one")
        low = bloom.false_positive_rate()
        for i in range(200):
            bloom.add(str(i).encode())
        assert bloom.false_positive_rate() > low
