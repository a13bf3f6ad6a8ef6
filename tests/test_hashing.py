"""
Tests for castore.integrity.hashing — algorithm-tagged digests.
"""

from __future__ import annotations

import hashlib
from unittest import TestCase

import pytest

from castore.integrity.hashing import (
    COMMITMENT_ALGO,
    PRIMARY_ALGO,
    HashAlgo,
    HashValue,
    compute,
)


class TestCompute(TestCase):

    def test_matches_reference_digests(self):
        data = b"test data"
        assert compute(data, HashAlgo.SHA256).digest == hashlib.sha256(data).digest()
        assert compute(data, HashAlgo.SHA512).digest == hashlib.sha512(data).digest()
        assert compute(data, HashAlgo.SHA3_256).digest == hashlib.sha3_256(data).digest()
        assert compute(data, HashAlgo.SHA3_512).digest == hashlib.sha3_512(data).digest()

    def test_default_is_primary(self):
        assert compute(b"x").algo == PRIMARY_ALGO == HashAlgo.SHA256

    def test_commitment_algo_is_distinct(self):
        assert COMMITMENT_ALGO != PRIMARY_ALGO

    def test_digest_sizes(self):
        for algo in HashAlgo:
            assert compute(b"", algo).size() == algo.digest_size
        assert HashAlgo.SHA512.digest_size == 64
        assert HashAlgo.SHA3_256.digest_size == 32

    def test_deterministic(self):
        assert compute(b"same") == compute(b"same")
        assert compute(b"same") != compute(b"other")

    def test_empty_data(self):
        assert compute(b"").to_hex() == hashlib.sha256(b"").hexdigest()


class TestHashValue(TestCase):

    def test_algo_is_part_of_equality(self):
        digest = hashlib.sha256(b"x").digest()
        a = HashValue(HashAlgo.SHA256, digest)
        b = HashValue(HashAlgo.SHA3_256, digest)
        assert a != b
        assert len({a, b}) == 2

    def test_hashable_as_dict_key(self):
        index = {compute(b"k"): "v"}
        assert index[compute(b"k")] == "v"

    def test_wrong_width_rejected(self):
        with pytest.raises(ValueError, match="digest length"):
            HashValue(HashAlgo.SHA512, b"\x00" * 32)

    def test_prefix(self):
        h = compute(b"prefix")
        assert h.prefix(4) == h.to_hex()[:8]
        assert h.prefix(1000) == h.to_hex()
        assert h.prefix(0) == ""

    def test_from_hex(self):
        h = compute(b"hex")
        assert HashValue.from_hex(h.to_hex()) == h
        assert HashValue.from_hex(h.to_hex().upper()) == h
        assert HashValue.from_hex(f"sha256:{h.to_hex()}") == h

    def test_from_hex_rejects_bad_input(self):
        with pytest.raises(ValueError, match="Invalid hex"):
            HashValue.from_hex("not-hex")
        with pytest.raises(ValueError, match="digest length"):
            HashValue.from_hex("abcd")

    def test_dict_form(self):
        h = compute(b"dict", HashAlgo.SHA3_512)
        d = h.to_dict()
        assert d == {"algo": "sha3_512", "hex": h.to_hex()}
        assert HashValue.from_dict(d) == h

    def test_str(self):
        h = compute(b"s")
        assert str(h) == f"sha256:{h.to_hex()}"
