"""
Integrity primitives for castore.

Provides:
    - HashAlgo / HashValue / compute — algorithm-tagged digests
    - MerkleTree / MerkleProof — chunk-integrity trees and inclusion proofs
    - BloomFilter — cheap negative pre-checks
    - Commitment — hiding commit/verify over SHA3-256

All digests come from the `cryptography` package.
"""

from castore.integrity.hashing import (
    COMMITMENT_ALGO,
    PRIMARY_ALGO,
    HashAlgo,
    HashValue,
    compute,
)
from castore.integrity.merkle import MerkleTree, MerkleProof, verify_proof
from castore.integrity.bloom import BloomFilter
from castore.integrity.commitment import Commitment

__all__ = [
    "HashAlgo",
    "HashValue",
    "compute",
    "PRIMARY_ALGO",
    "COMMITMENT_ALGO",
    "MerkleTree",
    "MerkleProof",
    "verify_proof",
    "BloomFilter",
    "Commitment",
]
