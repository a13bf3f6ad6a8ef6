"""
Storage engine — chunked, deduplicating, content-addressed file store.

Storage layout (flat, under storage_dir):
    <sha256>_<n>.chunk   — chunk n of the file, 1 MiB except the last
    <sha256>.meta        — JSON FileMetadata sidecar

Content-addressed by the SHA-256 of the whole file: storing identical bytes
again writes nothing and returns the existing metadata. Chunk digests are
re-checked on every retrieval.

All writes are atomic (temp file + os.replace). The in-memory indices are
rebuilt from the sidecars when the engine is opened, and every mutation runs
under a single lock.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from pathlib import Path

from castore import CHUNK_SIZE, CHUNK_SUFFIX, META_SUFFIX, STATS_FILE
from castore.errors import ConfigurationError, IntegrityError, NotFoundError
from castore.integrity.hashing import PRIMARY_ALGO, HashValue, compute
from castore.integrity.merkle import MerkleProof, MerkleTree
from castore.metadata import FileMetadata, split_chunks

log = logging.getLogger(__name__)


def atomic_write(dest: Path, content: bytes, mode: int = 0o644) -> None:
    """Write ``content`` to ``dest`` via temp file + fsync + os.replace."""
    fd, tmp_path = tempfile.mkstemp(
        dir=str(dest.parent), suffix=".tmp", prefix=f".{dest.stem[:16]}_"
    )
    try:
        # fdopen owns fd from here on and closes it exactly once
        with os.fdopen(fd, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, str(dest))
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


@dataclass
class DedupStats:
    """Running deduplication counters."""

    total_files: int = 0
    unique_files: int = 0
    total_bytes: int = 0
    saved_bytes: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class StorageEngine:
    """File-based, chunked, content-addressed store.

    Usage:
        engine = StorageEngine("/var/lib/castore")
        meta = engine.store_file(data, "report.pdf", "alice")
        assert engine.retrieve_file(meta.hash) == data
    """

    def __init__(self, storage_dir: str | Path, chunk_size: int = CHUNK_SIZE) -> None:
        self.storage_dir = Path(storage_dir)
        self.chunk_size = chunk_size
        self._stats_path = self.storage_dir / STATS_FILE
        self._hash_to_path: dict[HashValue, Path] = {}
        self._hash_to_metadata: dict[HashValue, FileMetadata] = {}
        self.dedup_stats = DedupStats()
        self._lock = threading.Lock()

        self._ensure_dir()
        self._rehydrate()

    def _ensure_dir(self) -> None:
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot create storage directory {self.storage_dir}: {e}"
            ) from e
        if not self.storage_dir.is_dir() or not os.access(self.storage_dir, os.W_OK | os.X_OK):
            raise ConfigurationError(f"Storage directory not writable: {self.storage_dir}")

    def _check_invariants(self, meta_path: Path, metadata: FileMetadata) -> None:
        """Reject sidecars whose fields contradict each other."""
        if metadata.hash.algo != PRIMARY_ALGO or meta_path.stem != metadata.hash.to_hex():
            raise ConfigurationError(
                f"Metadata file {meta_path.name} does not match its recorded hash"
            )
        if not metadata.verify_merkle_root():
            raise ConfigurationError(
                f"Metadata file {meta_path.name} has a Merkle root that does not "
                f"match its chunks"
            )

        n = metadata.chunk_count
        if n == 0:
            fits = metadata.size == 0
        else:
            fits = (n - 1) * self.chunk_size < metadata.size <= n * self.chunk_size
        if not fits:
            raise ConfigurationError(
                f"Metadata file {meta_path.name} records {metadata.size} bytes "
                f"in {n} chunk(s)"
            )

    def _rehydrate(self) -> None:
        """Rebuild the indices from the sidecars already on disk."""
        for meta_path in sorted(self.storage_dir.glob(f"*{META_SUFFIX}")):
            try:
                metadata = FileMetadata.from_json(meta_path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(f"Malformed metadata file {meta_path}: {e}") from e

            self._check_invariants(meta_path, metadata)

            self._hash_to_path[metadata.hash] = meta_path
            self._hash_to_metadata[metadata.hash] = metadata

        if self._hash_to_metadata:
            log.debug(
                "Loaded %d file(s) from %s", len(self._hash_to_metadata), self.storage_dir
            )
        self._load_stats()

    def _load_stats(self) -> None:
        """Restore the persisted counters, or seed them from the index."""
        seeded = DedupStats(
            total_files=len(self._hash_to_metadata),
            unique_files=len(self._hash_to_metadata),
            total_bytes=sum(m.size for m in self._hash_to_metadata.values()),
        )
        if not self._stats_path.is_file():
            self.dedup_stats = seeded
            return

        try:
            raw = json.loads(self._stats_path.read_text(encoding="utf-8"))
            stats = DedupStats(**{k: int(raw[k]) for k in seeded.to_dict()})
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            log.warning("Ignoring unreadable stats file %s: %s", self._stats_path, e)
            self.dedup_stats = seeded
            return

        if stats.unique_files != seeded.unique_files:
            log.warning(
                "Stats file %s is out of date (%d unique files, index has %d); reseeding",
                self._stats_path, stats.unique_files, seeded.unique_files,
            )
            stats = seeded
        self.dedup_stats = stats

    def _save_stats(self) -> None:
        """Persist the counters. Caller holds the lock."""
        atomic_write(
            self._stats_path,
            json.dumps(self.dedup_stats.to_dict(), indent=2, sort_keys=True).encode("utf-8"),
        )

    def _chunk_path(self, content_hash: HashValue, index: int) -> Path:
        return self.storage_dir / f"{content_hash.to_hex()}_{index}{CHUNK_SUFFIX}"

    def _meta_path(self, content_hash: HashValue) -> Path:
        return self.storage_dir / f"{content_hash.to_hex()}{META_SUFFIX}"

    def store_file(self, data: bytes, filename: str, owner: str) -> FileMetadata:
        """Store ``data`` once per unique content.

        Returns the existing metadata unchanged when the content is already
        known; nothing is rewritten in that case.
        """
        content_hash = compute(data, PRIMARY_ALGO)

        with self._lock:
            existing = self._hash_to_metadata.get(content_hash)
            if existing is not None:
                self.dedup_stats.total_files += 1
                self.dedup_stats.total_bytes += len(data)
                self.dedup_stats.saved_bytes += len(data)
                self._save_stats()
                log.debug(
                    "Duplicate content %s for %s (existing: %s)",
                    content_hash.prefix(8), filename, existing.path,
                )
                return existing

            chunk_hashes = []
            for chunk in split_chunks(data, self.chunk_size):
                atomic_write(self._chunk_path(content_hash, chunk.index), chunk.data)
                chunk_hashes.append(chunk.hash)

            tree = MerkleTree.from_hashes(chunk_hashes, PRIMARY_ALGO)
            now = datetime.now(timezone.utc).isoformat()
            metadata = FileMetadata(
                path=filename,
                size=len(data),
                hash=content_hash,
                chunks=tuple(chunk_hashes),
                merkle_root=tree.root,
                created_at=now,
                modified_at=now,
                owner=owner,
            )

            meta_path = self._meta_path(content_hash)
            atomic_write(meta_path, metadata.to_json().encode("utf-8"))

            self._hash_to_path[content_hash] = meta_path
            self._hash_to_metadata[content_hash] = metadata
            self.dedup_stats.total_files += 1
            self.dedup_stats.unique_files += 1
            self.dedup_stats.total_bytes += len(data)
            self._save_stats()

        log.info(
            "Stored %s (%d bytes, %d chunks) as %s",
            filename, len(data), len(chunk_hashes), content_hash.prefix(8),
        )
        return metadata

    def get_metadata(self, content_hash: HashValue) -> FileMetadata:
        """Return the metadata for ``content_hash``.

        Raises NotFoundError if unknown.
        """
        with self._lock:
            metadata = self._hash_to_metadata.get(content_hash)
        if metadata is None:
            raise NotFoundError(f"File not found: {content_hash.to_hex()}")
        return metadata

    def retrieve_file(self, content_hash: HashValue) -> bytes:
        """Reassemble and verify a stored file.

        Raises:
            NotFoundError: If ``content_hash`` is unknown.
            IntegrityError: If a chunk is missing or any digest disagrees.
                No partial data is returned.
        """
        metadata = self.get_metadata(content_hash)

        parts = []
        for index, expected in enumerate(metadata.chunks):
            chunk_path = self._chunk_path(content_hash, index)
            try:
                chunk_data = chunk_path.read_bytes()
            except FileNotFoundError:
                log.error("Chunk %d of %s is missing", index, content_hash.prefix(8))
                raise IntegrityError(
                    f"Chunk {index} of {content_hash.to_hex()} is missing"
                ) from None

            if compute(chunk_data, expected.algo) != expected:
                log.error("Chunk %d of %s failed integrity check", index, content_hash.prefix(8))
                raise IntegrityError(
                    f"Chunk {index} of {content_hash.to_hex()} integrity check failed"
                )
            parts.append(chunk_data)

        data = b"".join(parts)
        if compute(data, content_hash.algo) != content_hash:
            log.error("File %s failed whole-file integrity check", content_hash.prefix(8))
            raise IntegrityError(f"File {content_hash.to_hex()} integrity check failed")
        return data

    def verify_file(self, content_hash: HashValue) -> bool:
        """True if the stored file reassembles and verifies.

        Raises NotFoundError if unknown.
        """
        try:
            self.retrieve_file(content_hash)
        except IntegrityError:
            return False
        return True

    def generate_chunk_proof(self, content_hash: HashValue, index: int) -> MerkleProof | None:
        """Merkle inclusion proof for chunk ``index``, or None if out of range.

        Raises NotFoundError if the file is unknown.
        """
        metadata = self.get_metadata(content_hash)
        tree = MerkleTree.from_hashes(metadata.chunks, metadata.merkle_root.algo)
        return tree.generate_proof(index)

    def metadata_path(self, content_hash: HashValue) -> Path:
        """Location of the JSON sidecar for ``content_hash``."""
        with self._lock:
            path = self._hash_to_path.get(content_hash)
        if path is None:
            raise NotFoundError(f"File not found: {content_hash.to_hex()}")
        return path

    def contains(self, content_hash: HashValue) -> bool:
        with self._lock:
            return content_hash in self._hash_to_metadata

    def list(self) -> list[FileMetadata]:
        """All stored files, oldest first."""
        with self._lock:
            entries = list(self._hash_to_metadata.values())
        return sorted(entries, key=lambda m: (m.created_at, m.hash.to_hex()))

    @staticmethod
    def lookup(hex_hash: str) -> HashValue:
        """Decode an external hex content hash under the primary algorithm."""
        return HashValue.from_hex(hex_hash, PRIMARY_ALGO)

    def stats(self) -> float:
        """Percentage of submitted bytes that deduplication saved."""
        if self.dedup_stats.total_bytes == 0:
            return 0.0
        return self.dedup_stats.saved_bytes / self.dedup_stats.total_bytes * 100

    def __len__(self) -> int:
        with self._lock:
            return len(self._hash_to_metadata)
