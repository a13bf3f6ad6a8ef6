"""
castore — content-addressed, deduplicating file storage with integrity proofs.

Architecture:
    Store:      <storage_dir>/<sha256>_<n>.chunk  — 1 MiB chunks, immutable
                <storage_dir>/<sha256>.meta       — JSON FileMetadata sidecar
    Integrity:  per-chunk digests + Merkle root over the chunk digests
    Watching:   FileAuthenticator registry, Bloom filter pre-check
"""

__version__ = "0.1.0"

CHUNK_SIZE = 1024 * 1024  # 1 MiB, final chunk may be shorter
CHUNK_SUFFIX = ".chunk"
META_SUFFIX = ".meta"
STATS_FILE = "stats.json"

COMMITMENT_NONCE_SIZE = 32

BLOOM_DEFAULT_ITEMS = 1000
BLOOM_DEFAULT_FP_RATE = 0.01
