"""
Merkle tree over an ordered sequence of chunk digests.

    Level 0:   the leaf digests, unchanged
    Parent:    H(left.digest + right.digest)
    Odd level: the last node is paired with itself (Bitcoin convention)
    Empty:     root = H(b""), no levels

Only one physical copy of a self-paired node is stored, so a proof carries
no sibling entry for that level. The proof records the leaf index and leaf
count, which tells the verifier where those implicit self-pairs occur.
"""

from __future__ import annotations

import hmac
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from castore.integrity.hashing import PRIMARY_ALGO, HashAlgo, HashValue, compute


def _hash_pair(left: HashValue, right: HashValue, algo: HashAlgo) -> HashValue:
    """Hash two nodes together."""
    return compute(left.digest + right.digest, algo)


@dataclass(frozen=True)
class MerkleProof:
    """Inclusion proof for a leaf in a Merkle tree.

    Attributes:
        leaf_hash: The leaf digest being proven.
        leaf_index: Position of the leaf in the original sequence.
        leaf_count: Number of leaves in the tree.
        siblings: ``(hash, is_right)`` pairs from the leaf level upward.
            ``is_right`` is True when the sibling sits to the right.
            Levels where the node is self-paired have no entry.
        root_hash: The Merkle root the proof leads to.
    """

    leaf_hash: HashValue
    leaf_index: int
    leaf_count: int
    siblings: tuple[tuple[HashValue, bool], ...]
    root_hash: HashValue

    @property
    def root_hex(self) -> str:
        return self.root_hash.to_hex()

    def to_dict(self) -> dict[str, Any]:
        return {
            "leaf_hash": self.leaf_hash.to_dict(),
            "leaf_index": self.leaf_index,
            "leaf_count": self.leaf_count,
            "siblings": [
                {"hash": h.to_dict(), "is_right": is_right}
                for h, is_right in self.siblings
            ],
            "root_hash": self.root_hash.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> MerkleProof:
        return cls(
            leaf_hash=HashValue.from_dict(d["leaf_hash"]),
            leaf_index=int(d["leaf_index"]),
            leaf_count=int(d["leaf_count"]),
            siblings=tuple(
                (HashValue.from_dict(s["hash"]), bool(s["is_right"]))
                for s in d.get("siblings", [])
            ),
            root_hash=HashValue.from_dict(d["root_hash"]),
        )


def verify_proof(proof: MerkleProof) -> bool:
    """Verify a Merkle inclusion proof.

    Internal nodes are recomputed with the root's algorithm. At a level
    where the node is the unpaired last element it is hashed with itself.
    Fail-closed: returns False on any error.
    """
    try:
        algo = proof.root_hash.algo
        if not 0 <= proof.leaf_index < proof.leaf_count:
            return False

        current = proof.leaf_hash
        siblings = iter(proof.siblings)
        idx = proof.leaf_index
        width = proof.leaf_count

        while width > 1:
            if idx % 2 == 0 and idx + 1 >= width:
                current = _hash_pair(current, current, algo)
            else:
                sibling, is_right = next(siblings)
                if is_right:
                    current = _hash_pair(current, sibling, algo)
                else:
                    current = _hash_pair(sibling, current, algo)
            idx //= 2
            width = (width + 1) // 2

        # Every recorded sibling must be consumed
        if next(siblings, None) is not None:
            return False

        return current.algo == algo and hmac.compare_digest(
            current.digest, proof.root_hash.digest
        )
    except Exception:
        return False


class MerkleTree:
    """Binary hash tree built once from a leaf sequence.

    Usage:
        tree = MerkleTree.from_hashes(metadata.chunks)
        proof = tree.generate_proof(0)
        assert verify_proof(proof)
    """

    def __init__(
        self,
        leaves: list[HashValue],
        levels: list[list[HashValue]],
        root: HashValue,
    ) -> None:
        self._leaves = leaves
        self._levels = levels
        self._root = root

    @classmethod
    def from_hashes(
        cls,
        leaf_hashes: Sequence[HashValue],
        algo: HashAlgo = PRIMARY_ALGO,
    ) -> MerkleTree:
        """Build a tree from leaf digests.

        Args:
            leaf_hashes: Ordered leaf digests (e.g. per-chunk hashes).
            algo: Algorithm for internal nodes and the empty root.

        Returns:
            A MerkleTree. An empty input yields root ``H(b"")`` and no levels.
        """
        leaves = list(leaf_hashes)
        if not leaves:
            return cls([], [], compute(b"", algo))

        levels = [leaves]
        level = leaves

        while len(level) > 1:
            next_level = []
            for i in range(0, len(level), 2):
                left = level[i]
                right = level[i + 1] if i + 1 < len(level) else left
                next_level.append(_hash_pair(left, right, algo))
            levels.append(next_level)
            level = next_level

        return cls(leaves, levels, level[0])

    @classmethod
    def from_data(
        cls,
        items: Sequence[bytes],
        algo: HashAlgo = PRIMARY_ALGO,
    ) -> MerkleTree:
        """Build a tree whose leaves are the digests of raw data items."""
        return cls.from_hashes([compute(item, algo) for item in items], algo)

    @property
    def root(self) -> HashValue:
        return self._root

    @property
    def root_hex(self) -> str:
        return self._root.to_hex()

    @property
    def leaves(self) -> list[HashValue]:
        return list(self._leaves)

    @property
    def levels(self) -> list[list[HashValue]]:
        return [list(level) for level in self._levels]

    @property
    def leaf_count(self) -> int:
        return len(self._leaves)

    @property
    def height(self) -> int:
        """Number of stored levels, leaves and root included."""
        return len(self._levels)

    def generate_proof(self, leaf_index: int) -> MerkleProof | None:
        """Generate an inclusion proof for the leaf at ``leaf_index``.

        Returns:
            A MerkleProof, or None if the index is out of range.
        """
        if leaf_index < 0 or leaf_index >= len(self._leaves):
            return None

        siblings: list[tuple[HashValue, bool]] = []
        idx = leaf_index

        for level in self._levels[:-1]:
            sibling_idx = idx + 1 if idx % 2 == 0 else idx - 1
            if sibling_idx < len(level):
                siblings.append((level[sibling_idx], idx % 2 == 0))
            idx //= 2

        return MerkleProof(
            leaf_hash=self._leaves[leaf_index],
            leaf_index=leaf_index,
            leaf_count=len(self._leaves),
            siblings=tuple(siblings),
            root_hash=self._root,
        )
