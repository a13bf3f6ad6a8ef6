"""
Multi-algorithm digests.

Two families, two widths each:
    SHA256, SHA512       — SHA-2
    SHA3_256, SHA3_512   — SHA-3 (Keccak)

Content addressing uses SHA256. Commitments use SHA3_256 so a commitment
digest can never be confused with a content address.

Digests come from the `cryptography` package's hash primitives.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from cryptography.hazmat.primitives import hashes


class HashAlgo(Enum):
    """Closed set of supported digest algorithms."""

    SHA256 = "sha256"
    SHA512 = "sha512"
    SHA3_256 = "sha3_256"
    SHA3_512 = "sha3_512"

    @property
    def digest_size(self) -> int:
        return _DIGEST_SIZES[self]


_DIGEST_SIZES = {
    HashAlgo.SHA256: 32,
    HashAlgo.SHA512: 64,
    HashAlgo.SHA3_256: 32,
    HashAlgo.SHA3_512: 64,
}

_PRIMITIVES = {
    HashAlgo.SHA256: hashes.SHA256,
    HashAlgo.SHA512: hashes.SHA512,
    HashAlgo.SHA3_256: hashes.SHA3_256,
    HashAlgo.SHA3_512: hashes.SHA3_512,
}

PRIMARY_ALGO = HashAlgo.SHA256
COMMITMENT_ALGO = HashAlgo.SHA3_256


@dataclass(frozen=True)
class HashValue:
    """A digest tagged with the algorithm that produced it.

    Two values with identical bytes but different algorithms are not equal.

    Attributes:
        algo: The algorithm tag.
        digest: Raw digest bytes, ``algo.digest_size`` long.
    """

    algo: HashAlgo
    digest: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.algo, HashAlgo):
            raise ValueError(f"Unknown hash algorithm: {self.algo!r}")
        if len(self.digest) != self.algo.digest_size:
            raise ValueError(
                f"Invalid {self.algo.value} digest length: {len(self.digest)} "
                f"(expected {self.algo.digest_size})"
            )

    def to_hex(self) -> str:
        return self.digest.hex()

    def prefix(self, n: int) -> str:
        """Hex of the first ``min(n, size)`` bytes. Display only."""
        return self.digest[: max(n, 0)].hex()

    def size(self) -> int:
        return len(self.digest)

    def __str__(self) -> str:
        return f"{self.algo.value}:{self.to_hex()}"

    @classmethod
    def from_hex(cls, value: str, algo: HashAlgo = PRIMARY_ALGO) -> HashValue:
        """Decode a hex digest received from outside (CLI, database row).

        Accepts an optional ``<algo>:`` prefix matching ``algo``.

        Raises:
            ValueError: On malformed hex or a width that does not fit ``algo``.
        """
        value = value.strip().lower()
        prefix = f"{algo.value}:"
        if value.startswith(prefix):
            value = value[len(prefix):]
        try:
            digest = bytes.fromhex(value)
        except ValueError:
            raise ValueError(f"Invalid hex digest: {value!r}")
        return cls(algo, digest)

    def to_dict(self) -> dict[str, str]:
        return {"algo": self.algo.value, "hex": self.to_hex()}

    @classmethod
    def from_dict(cls, d: dict[str, str]) -> HashValue:
        return cls.from_hex(d["hex"], HashAlgo(d["algo"]))


def compute(data: bytes, algo: HashAlgo = PRIMARY_ALGO) -> HashValue:
    """Digest ``data`` under ``algo``. Pure and deterministic."""
    hasher = hashes.Hash(_PRIMITIVES[algo]())
    hasher.update(data)
    return HashValue(algo, hasher.finalize())
