"""
Tests for castore.cli — end-to-end command runs against a temp config.
"""

from __future__ import annotations

import pytest

from castore.cli import main


@pytest.fixture
def config(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(f'root = "{(tmp_path / "home").as_posix()}"\n')
    return str(path)


def _run(config, *argv):
    main(["--config", config, *argv])


def _stored_hash(capsys):
    out = capsys.readouterr().out
    line = next(l for l in out.splitlines() if l.strip().startswith("hash:"))
    return line.split()[-1]


class TestCli:

    def test_store_get_roundtrip(self, config, tmp_path, capsys):
        src = tmp_path / "doc.txt"
        src.write_bytes(b"cli payload")
        _run(config, "store", str(src), "--owner", "alice")
        content_hash = _stored_hash(capsys)

        out_file = tmp_path / "out.txt"
        _run(config, "get", content_hash, "-o", str(out_file))
        assert out_file.read_bytes() == b"cli payload"
        assert "integrity verified" in capsys.readouterr().out

    def test_list_and_stats(self, config, tmp_path, capsys):
        src = tmp_path / "doc.txt"
        src.write_bytes(b"listed")
        _run(config, "store", str(src))
        capsys.readouterr()

        _run(config, "list")
        assert "doc.txt" in capsys.readouterr().out

        _run(config, "stats")
        assert "1 unique" in capsys.readouterr().out

    def test_stats_count_duplicates_across_invocations(self, config, tmp_path, capsys):
        src = tmp_path / "twice.txt"
        src.write_bytes(b"stored twice")
        _run(config, "store", str(src))
        _run(config, "store", str(src))
        capsys.readouterr()

        _run(config, "stats")
        out = capsys.readouterr().out
        assert "2 (1 unique)" in out
        assert f"Saved bytes:  {len(b'stored twice')}" in out
        assert "Dedup rate:   50.00%" in out

    def test_verify_and_proof(self, config, tmp_path, capsys):
        src = tmp_path / "doc.txt"
        src.write_bytes(b"proven")
        _run(config, "store", str(src))
        content_hash = _stored_hash(capsys)

        _run(config, "verify", content_hash)
        assert "OK" in capsys.readouterr().out

        _run(config, "proof", content_hash, "0")
        assert "valid:    yes" in capsys.readouterr().out

    def test_commit_and_open(self, config, tmp_path, capsys):
        src = tmp_path / "doc.txt"
        src.write_bytes(b"shared")
        _run(config, "store", str(src))
        content_hash = _stored_hash(capsys)

        _run(config, "commit", content_hash)
        blob = capsys.readouterr().out.strip()
        assert len(blob) == 128

        _run(config, "open", blob, content_hash)
        assert "OK" in capsys.readouterr().out

    def test_unknown_hash_exits_nonzero(self, config, capsys):
        with pytest.raises(SystemExit) as exc_info:
            _run(config, "get", "ab" * 32)
        assert exc_info.value.code == 1
        assert "not found" in capsys.readouterr().err

    def test_watch_flow(self, config, tmp_path, capsys):
        watch = tmp_path / "home" / "watch"
        watch.mkdir(parents=True)
        (watch / "w.txt").write_bytes(b"watched")

        _run(config, "watch", "add", "w.txt")
        _run(config, "watch", "verify", "w.txt")
        assert "unchanged" in capsys.readouterr().out

        (watch / "w.txt").write_bytes(b"edited")
        with pytest.raises(SystemExit):
            _run(config, "watch", "changed")
        assert "changed:" in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 0
