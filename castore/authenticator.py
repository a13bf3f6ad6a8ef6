"""
File authenticator — registry of watched files and their content hashes.

register() records path -> SHA-256 and adds the path to a Bloom filter;
verify() re-hashes the file for bit-for-bit change detection; quick_check()
consults only the Bloom filter (false positives possible, never false
negatives).

The registry can optionally be persisted to JSON with atomic writes; the
Bloom filter is rebuilt from it on load.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

from castore import BLOOM_DEFAULT_FP_RATE, BLOOM_DEFAULT_ITEMS
from castore.errors import NotFoundError
from castore.integrity.bloom import BloomFilter
from castore.integrity.hashing import PRIMARY_ALGO, HashValue, compute
from castore.store import atomic_write

log = logging.getLogger(__name__)


class FileAuthenticator:
    """Track known-good hashes for files under a watch directory.

    Thread-safe for concurrent registrations.

    Usage:
        auth = FileAuthenticator(Path("/srv/watch"))
        auth.register("report.pdf")
        assert auth.quick_check("report.pdf")
        assert auth.verify("report.pdf")
    """

    def __init__(
        self,
        watch_dir: str | Path,
        registry_path: Path | None = None,
        expected_items: int = BLOOM_DEFAULT_ITEMS,
        false_positive_rate: float = BLOOM_DEFAULT_FP_RATE,
    ) -> None:
        self.watch_dir = Path(watch_dir)
        self.bloom = BloomFilter(expected_items, false_positive_rate)
        self._known: dict[str, HashValue] = {}
        self._registry_path = registry_path
        self._lock = threading.Lock()
        self._load()

    def _resolve(self, path: str | Path) -> Path:
        path = Path(path)
        if not path.is_absolute():
            path = self.watch_dir / path
        return path

    def _load(self) -> None:
        """Load the persisted registry, if any."""
        if self._registry_path is None or not self._registry_path.is_file():
            return
        try:
            raw = json.loads(self._registry_path.read_text(encoding="utf-8"))
            known = {key: HashValue.from_dict(value) for key, value in raw.items()}
        except (OSError, json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError) as e:
            log.warning("Ignoring unreadable registry %s: %s", self._registry_path, e)
            return

        self._known = known
        for key in known:
            self.bloom.add(key.encode("utf-8"))
        log.debug("Loaded %d registered file(s) from %s", len(known), self._registry_path)

    def _save(self, known: dict[str, HashValue]) -> None:
        """Atomically persist ``known`` as the registry."""
        if self._registry_path is None:
            return
        self._registry_path.parent.mkdir(parents=True, exist_ok=True)
        data = json.dumps(
            {key: value.to_dict() for key, value in known.items()},
            indent=2,
            sort_keys=True,
        )
        atomic_write(self._registry_path, data.encode("utf-8"), mode=0o600)

    def register(self, path: str | Path) -> HashValue:
        """Hash the file at ``path`` and remember it.

        The registry is written before the in-memory state changes, so a
        failed save leaves the path unregistered.

        Raises OSError if the file cannot be read or the registry cannot be
        written.
        """
        resolved = self._resolve(path)
        file_hash = compute(resolved.read_bytes(), PRIMARY_ALGO)
        key = str(resolved)

        with self._lock:
            updated = dict(self._known)
            updated[key] = file_hash
            self._save(updated)
            self._known = updated
            self.bloom.add(key.encode("utf-8"))

        log.info("Registered %s -> %s", resolved, file_hash.prefix(8))
        return file_hash

    def verify(self, path: str | Path) -> bool:
        """Re-hash ``path`` and compare with the registered digest.

        Raises:
            NotFoundError: If the path was never registered.
            OSError: If the file cannot be read.
        """
        resolved = self._resolve(path)
        with self._lock:
            expected = self._known.get(str(resolved))
        if expected is None:
            raise NotFoundError(f"File not registered: {resolved}")

        return compute(resolved.read_bytes(), expected.algo) == expected

    def quick_check(self, path: str | Path) -> bool:
        """Bloom-filter-only lookup. May report a false positive."""
        return self.bloom.contains(str(self._resolve(path)).encode("utf-8"))

    def scan(self) -> list[Path]:
        """Register every regular file under the watch directory."""
        registered = []
        for path in sorted(self.watch_dir.rglob("*")):
            if path.is_file():
                self.register(path)
                registered.append(path)
        return registered

    def changed(self) -> list[Path]:
        """Registered files whose content changed or which disappeared."""
        with self._lock:
            known = list(self._known.items())

        result = []
        for key, expected in sorted(known):
            path = Path(key)
            try:
                current = compute(path.read_bytes(), expected.algo)
            except OSError as e:
                log.debug("Cannot read %s: %s", path, e)
                result.append(path)
                continue
            if current != expected:
                result.append(path)
        return result

    @property
    def registered(self) -> list[Path]:
        with self._lock:
            return [Path(key) for key in sorted(self._known)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._known)
