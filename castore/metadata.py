"""
File metadata records.

FileMetadata is created once per unique content hash and persisted as a
JSON sidecar next to the chunks. FileRecord is the flat shape handed to a
relational layer (hex strings, chunk count).
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass, asdict
from typing import Any

from castore import CHUNK_SIZE
from castore.integrity.hashing import PRIMARY_ALGO, HashValue, compute
from castore.integrity.merkle import MerkleTree


@dataclass(frozen=True)
class FileChunk:
    """One fixed-size slice of a file."""

    index: int
    hash: HashValue
    data: bytes


def split_chunks(data: bytes, chunk_size: int = CHUNK_SIZE) -> Iterator[FileChunk]:
    """Yield ``data`` as ordered chunks; the last one may be shorter."""
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    for index, offset in enumerate(range(0, len(data), chunk_size)):
        piece = data[offset : offset + chunk_size]
        yield FileChunk(index=index, hash=compute(piece, PRIMARY_ALGO), data=piece)


@dataclass(frozen=True)
class FileRecord:
    """Row-shaped view of a stored file for a persistence layer."""

    hash: str
    filename: str
    size: int
    chunks: int
    merkle_root: str
    owner: str
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FileMetadata:
    """Integrity-bearing description of one unique stored file.

    Attributes:
        path: Filename given at first store.
        size: Total byte length.
        hash: Whole-file content hash.
        chunks: Per-chunk digests in order.
        merkle_root: Merkle root over ``chunks``.
        created_at: ISO 8601 UTC timestamp.
        modified_at: ISO 8601 UTC timestamp.
        owner: Opaque owner identifier.
    """

    path: str
    size: int
    hash: HashValue
    chunks: tuple[HashValue, ...]
    merkle_root: HashValue
    created_at: str
    modified_at: str
    owner: str

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)

    def verify_merkle_root(self) -> bool:
        """Check the recorded root against a tree rebuilt from ``chunks``."""
        tree = MerkleTree.from_hashes(self.chunks, self.merkle_root.algo)
        return tree.root == self.merkle_root

    def to_record(self) -> FileRecord:
        return FileRecord(
            hash=self.hash.to_hex(),
            filename=self.path,
            size=self.size,
            chunks=self.chunk_count,
            merkle_root=self.merkle_root.to_hex(),
            owner=self.owner,
            created_at=self.created_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "size": self.size,
            "hash": self.hash.to_dict(),
            "chunks": [c.to_dict() for c in self.chunks],
            "merkle_root": self.merkle_root.to_dict(),
            "created_at": self.created_at,
            "modified_at": self.modified_at,
            "owner": self.owner,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> FileMetadata:
        """Rebuild from a sidecar dict.

        Raises:
            KeyError, TypeError, ValueError: On malformed input.
        """
        size = d["size"]
        if not isinstance(size, int) or size < 0:
            raise ValueError(f"Invalid size: {size!r}")
        return cls(
            path=str(d["path"]),
            size=size,
            hash=HashValue.from_dict(d["hash"]),
            chunks=tuple(HashValue.from_dict(c) for c in d["chunks"]),
            merkle_root=HashValue.from_dict(d["merkle_root"]),
            created_at=str(d["created_at"]),
            modified_at=str(d["modified_at"]),
            owner=str(d["owner"]),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True)

    @classmethod
    def from_json(cls, s: str) -> FileMetadata:
        return cls.from_dict(json.loads(s))
