"""Tests for the on-disk archive cache."""

from __future__ import annotations

import hashlib
from pathlib import Path

from git_registry.domain.errors import ArchiveIOError, CommandFailed
from git_registry.domain.result import Err, Ok
from git_registry.storage.archive_store import ArchiveStore, cache_key, compute_sha256


class TestArchiveStore:
    def test_layout(self, tmp_path: Path) -> None:
        store = ArchiveStore(tmp_path / "archives")
        assert cache_key("mona", "LinkedList", "1.1.0") == "mona.LinkedList-1.1.0"
        assert store.path_for("mona", "LinkedList", "1.1.0") == tmp_path / "archives" / "mona.LinkedList-1.1.0.zip"
        assert not store.exists("mona", "LinkedList", "1.1.0")

    def test_checksum(self, tmp_path: Path) -> None:
        """Checksums are lowercase hex SHA-256 of the file bytes."""
        data = b"x" * 20000
        path = tmp_path / "blob.zip"
        path.write_bytes(data)

        assert compute_sha256(path) == hashlib.sha256(data).hexdigest()
        assert ArchiveStore(tmp_path / "archives").checksum(path) == Ok(hashlib.sha256(data).hexdigest())

    def test_checksum_of_missing_file(self, tmp_path: Path) -> None:
        result = ArchiveStore(tmp_path / "archives").checksum(tmp_path / "missing.zip")
        assert isinstance(result.error, ArchiveIOError)


class TestWriteAtomically:
    def test_success_moves_into_place(self, tmp_path: Path) -> None:
        store = ArchiveStore(tmp_path / "archives")
        target = store.path_for("mona", "LinkedList", "1.0.0")
        seen = []

        def produce(tmp: Path):
            seen.append(tmp)
            tmp.write_bytes(b"archive")
            return Ok(None)

        assert store.write_atomically(target, produce) == Ok(target)
        assert target.read_bytes() == b"archive"
        assert seen[0] != target
        assert seen[0].parent == target.parent
        assert list(store.archive_dir.iterdir()) == [target]

    def test_producer_error_is_returned(self, tmp_path: Path) -> None:
        """A failing producer leaves neither the target nor its temporary file."""
        store = ArchiveStore(tmp_path / "archives")
        target = store.path_for("mona", "LinkedList", "1.0.0")
        error = CommandFailed(command="git archive", returncode=1)

        def produce(tmp: Path):
            tmp.write_bytes(b"half an archive")
            return Err(error)

        assert store.write_atomically(target, produce) == Err(error)
        assert list(store.archive_dir.iterdir()) == []

    def test_no_output(self, tmp_path: Path) -> None:
        store = ArchiveStore(tmp_path / "archives")
        target = store.path_for("mona", "LinkedList", "1.0.0")

        result = store.write_atomically(target, lambda tmp: Ok(None))

        assert isinstance(result.error, ArchiveIOError)
        assert not target.exists()
