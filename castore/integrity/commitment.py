"""
Hiding hash commitment.

    commit(secret):  nonce = 32 random bytes
                     digest = SHA3-256(secret + nonce)
    verify(secret):  SHA3-256(secret + nonce) == digest

The secret is never stored. Serialized form handed to persistence layers:
nonce(32) + digest(32).
"""

from __future__ import annotations

import hmac
import os
from dataclasses import dataclass

from castore import COMMITMENT_NONCE_SIZE
from castore.integrity.hashing import COMMITMENT_ALGO, HashValue, compute


@dataclass(frozen=True)
class Commitment:
    """A commitment binding a secret to a digest without revealing it.

    Attributes:
        hash: SHA3-256 digest of ``secret + nonce``.
        nonce: The random nonce drawn at commit time.
    """

    hash: HashValue
    nonce: bytes

    @classmethod
    def commit(cls, secret: bytes) -> Commitment:
        """Commit to ``secret`` with a fresh nonce."""
        nonce = os.urandom(COMMITMENT_NONCE_SIZE)
        return cls(hash=compute(secret + nonce, COMMITMENT_ALGO), nonce=nonce)

    def verify(self, secret: bytes) -> bool:
        """Check that ``secret`` opens this commitment. Constant-time compare."""
        computed = compute(secret + self.nonce, self.hash.algo)
        return hmac.compare_digest(computed.digest, self.hash.digest)

    def to_bytes(self) -> bytes:
        """Serialize to bytes: nonce(32) + digest(32)."""
        return self.nonce + self.hash.digest

    @classmethod
    def from_bytes(cls, data: bytes) -> Commitment:
        """Deserialize from bytes."""
        expected = COMMITMENT_NONCE_SIZE + COMMITMENT_ALGO.digest_size
        if len(data) != expected:
            raise ValueError(
                f"Commitment blob must be {expected} bytes, got {len(data)}"
            )
        return cls(
            hash=HashValue(COMMITMENT_ALGO, data[COMMITMENT_NONCE_SIZE:]),
            nonce=data[:COMMITMENT_NONCE_SIZE],
        )
