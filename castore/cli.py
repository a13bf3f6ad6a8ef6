"""
castore CLI — content-addressed file store with integrity proofs.

Commands:
  castore store <file>          - Store a file (deduplicated, chunked)
  castore get <hash>            - Retrieve and verify a file by content hash
  castore list                  - List stored files
  castore stats                 - Show deduplication statistics
  castore verify <hash>         - Check a stored file's chunk integrity
  castore proof <hash> <index>  - Merkle inclusion proof for one chunk
  castore commit <hash>         - Commit to a content hash (share record blob)
  castore open <blob> <hash>    - Check that a hash opens a commitment
  castore watch ...             - Watched-file registry (add, verify, check, scan, changed)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path


def _configure(args: argparse.Namespace) -> dict:
    """Load config and set up logging."""
    from castore.config import load_config

    config = load_config(Path(args.config) if args.config else None)
    level = logging.DEBUG if args.verbose else getattr(
        logging, str(config["log_level"]).upper(), logging.INFO
    )
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    return config


def _engine(config: dict):
    from castore.store import StorageEngine

    return StorageEngine(config["storage_dir"])


def _authenticator(config: dict):
    from castore.authenticator import FileAuthenticator

    return FileAuthenticator(
        config["watch_dir"],
        registry_path=config["registry"],
        expected_items=config["bloom_expected_items"],
        false_positive_rate=config["bloom_fp_rate"],
    )


def _fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def cmd_store(args: argparse.Namespace, config: dict) -> None:
    """Store a file in the content-addressed store."""
    path = Path(args.path)
    if not path.is_file():
        _fail(f"File not found: {args.path}")

    engine = _engine(config)
    meta = engine.store_file(path.read_bytes(), path.name, args.owner)
    print(f"Stored {args.path}")
    print(f"  hash:        {meta.hash.to_hex()}")
    print(f"  size:        {meta.size} bytes")
    print(f"  chunks:      {meta.chunk_count}")
    print(f"  merkle root: {meta.merkle_root.to_hex()}")


def cmd_get(args: argparse.Namespace, config: dict) -> None:
    """Retrieve and verify a file by content hash."""
    engine = _engine(config)
    content_hash = engine.lookup(args.hash)
    data = engine.retrieve_file(content_hash)

    output = args.output or engine.get_metadata(content_hash).path
    if ".." in Path(output).parts:
        _fail("Output path must not contain '..' (path traversal)")
    Path(output).write_bytes(data)
    print(f"Retrieved -> {output} ({len(data)} bytes, integrity verified)")


def cmd_list(args: argparse.Namespace, config: dict) -> None:
    """List stored files."""
    entries = _engine(config).list()
    if not entries:
        print("Store is empty.")
        return

    print(f"Store: {len(entries)} file(s)\n")
    for meta in entries:
        print(
            f"  {meta.hash.prefix(8)}...  {meta.size:>10}  "
            f"chunks={meta.chunk_count}  {meta.created_at[:19]}  {meta.path}"
        )


def cmd_stats(args: argparse.Namespace, config: dict) -> None:
    """Show deduplication statistics."""
    engine = _engine(config)
    stats = engine.dedup_stats
    print(f"Files:        {stats.total_files} ({stats.unique_files} unique)")
    print(f"Bytes:        {stats.total_bytes}")
    print(f"Saved bytes:  {stats.saved_bytes}")
    print(f"Dedup rate:   {engine.stats():.2f}%")


def cmd_verify(args: argparse.Namespace, config: dict) -> None:
    """Verify a stored file's chunks against recorded digests."""
    engine = _engine(config)
    content_hash = engine.lookup(args.hash)
    if engine.verify_file(content_hash):
        print(f"OK: {content_hash.prefix(8)} integrity check passed")
    else:
        print(f"FAIL: {content_hash.prefix(8)} is corrupted", file=sys.stderr)
        sys.exit(1)


def cmd_proof(args: argparse.Namespace, config: dict) -> None:
    """Print a Merkle inclusion proof for one chunk."""
    from castore.integrity.merkle import verify_proof

    engine = _engine(config)
    proof = engine.generate_chunk_proof(engine.lookup(args.hash), args.index)
    if proof is None:
        _fail(f"Chunk index {args.index} out of range")

    if args.json:
        print(json.dumps(proof.to_dict(), indent=2))
        return
    print(f"Merkle proof for chunk #{args.index}:")
    print(f"  leaf:     {proof.leaf_hash.to_hex()}")
    print(f"  root:     {proof.root_hex}")
    print(f"  siblings: {len(proof.siblings)}")
    print(f"  valid:    {'yes' if verify_proof(proof) else 'NO'}")


def cmd_commit(args: argparse.Namespace, config: dict) -> None:
    """Commit to a stored file's content hash."""
    from castore.integrity.commitment import Commitment

    engine = _engine(config)
    content_hash = engine.lookup(args.hash)
    engine.get_metadata(content_hash)

    commitment = Commitment.commit(content_hash.digest)
    print(commitment.to_bytes().hex())


def cmd_open(args: argparse.Namespace, config: dict) -> None:
    """Check whether a content hash opens a commitment blob."""
    from castore.integrity.commitment import Commitment
    from castore.store import StorageEngine

    try:
        blob = bytes.fromhex(args.blob)
    except ValueError:
        _fail("Commitment blob must be hex")
    commitment = Commitment.from_bytes(blob)
    if commitment.verify(StorageEngine.lookup(args.hash).digest):
        print("OK: commitment opens")
    else:
        print("FAIL: commitment does not open", file=sys.stderr)
        sys.exit(1)


def cmd_watch_add(args: argparse.Namespace, config: dict) -> None:
    file_hash = _authenticator(config).register(args.path)
    print(f"Registered {args.path} -> {file_hash.prefix(8)}")


def cmd_watch_verify(args: argparse.Namespace, config: dict) -> None:
    if _authenticator(config).verify(args.path):
        print(f"OK: {args.path} unchanged")
    else:
        print(f"FAIL: {args.path} changed", file=sys.stderr)
        sys.exit(1)


def cmd_watch_check(args: argparse.Namespace, config: dict) -> None:
    auth = _authenticator(config)
    known = auth.quick_check(args.path)
    print(f"{args.path}: {'possibly known' if known else 'not registered'}")
    print(f"  bloom fp rate: {auth.bloom.false_positive_rate():.6f}")


def cmd_watch_scan(args: argparse.Namespace, config: dict) -> None:
    registered = _authenticator(config).scan()
    print(f"Registered {len(registered)} file(s)")


def cmd_watch_changed(args: argparse.Namespace, config: dict) -> None:
    changed = _authenticator(config).changed()
    if not changed:
        print("No changes.")
        return
    for path in changed:
        print(f"  changed: {path}")
    sys.exit(1)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="castore",
        description="Content-addressed, deduplicating file store with integrity proofs.",
    )
    from castore import __version__
    parser.add_argument("--version", action="version", version=f"castore {__version__}")
    parser.add_argument("--config", help="Path to config.toml (or set CASTORE_CONFIG)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    p_store = sub.add_parser("store", help="Store a file")
    p_store.add_argument("path", help="File to store")
    p_store.add_argument("--owner", default="local", help="Owner identifier (default: local)")

    p_get = sub.add_parser("get", help="Retrieve a file by content hash")
    p_get.add_argument("hash", help="SHA-256 content hash")
    p_get.add_argument("-o", "--output", help="Output file path")

    sub.add_parser("list", help="List stored files")
    sub.add_parser("stats", help="Show deduplication statistics")

    p_verify = sub.add_parser("verify", help="Verify a stored file")
    p_verify.add_argument("hash", help="SHA-256 content hash")

    p_proof = sub.add_parser("proof", help="Merkle proof for one chunk")
    p_proof.add_argument("hash", help="SHA-256 content hash")
    p_proof.add_argument("index", type=int, help="Chunk index")
    p_proof.add_argument("--json", action="store_true", help="Print the proof as JSON")

    p_commit = sub.add_parser("commit", help="Commit to a content hash")
    p_commit.add_argument("hash", help="SHA-256 content hash")

    p_open = sub.add_parser("open", help="Check a commitment against a content hash")
    p_open.add_argument("blob", help="Commitment blob (hex)")
    p_open.add_argument("hash", help="SHA-256 content hash")

    p_watch = sub.add_parser("watch", help="Watched-file registry")
    watch_sub = p_watch.add_subparsers(dest="watch_command")
    for name, help_text in (
        ("add", "Register a file"),
        ("verify", "Re-hash a registered file"),
        ("check", "Bloom-filter pre-check"),
    ):
        p = watch_sub.add_parser(name, help=help_text)
        p.add_argument("path", help="File path (relative to watch_dir)")
    watch_sub.add_parser("scan", help="Register every file in watch_dir")
    watch_sub.add_parser("changed", help="List registered files that changed")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    if args.command == "watch":
        watch_commands = {
            "add": cmd_watch_add,
            "verify": cmd_watch_verify,
            "check": cmd_watch_check,
            "scan": cmd_watch_scan,
            "changed": cmd_watch_changed,
        }
        wc = getattr(args, "watch_command", None)
        if not wc:
            print("Usage: castore watch {add|verify|check|scan|changed}")
            sys.exit(0)
        handler = watch_commands[wc]
    else:
        handler = {
            "store": cmd_store,
            "get": cmd_get,
            "list": cmd_list,
            "stats": cmd_stats,
            "verify": cmd_verify,
            "proof": cmd_proof,
            "commit": cmd_commit,
            "open": cmd_open,
        }[args.command]

    from castore.errors import CastoreError

    config = _configure(args)
    try:
        handler(args, config)
    except (CastoreError, ValueError, OSError) as e:
        _fail(str(e))


if __name__ == "__main__":
    main()
