"""
On-disk cache of source archives.

Archives are immutable: once ``<scope>.<name>-<version>.zip`` exists under the
archive directory it is served as-is and never regenerated. Writers produce the
archive in a temporary sibling file and move it into place with ``os.replace``
so a failed or interrupted write never leaves a partial archive at the
canonical path.
"""

from __future__ import annotations

import hashlib
import logging
import os
import uuid
from pathlib import Path
from typing import Callable, TypeVar

from git_registry.domain.errors import ArchiveIOError
from git_registry.domain.result import Err, Ok, Result

logger = logging.getLogger(__name__)

ARCHIVE_EXTENSION = ".zip"

E = TypeVar("E")


def cache_key(scope: str, name: str, version: str) -> str:
    return f"{scope}.{name}-{version}"


def compute_sha256(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


class ArchiveStore:
    def __init__(self, archive_dir: Path):
        self.archive_dir = archive_dir
        self.archive_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, scope: str, name: str, version: str) -> Path:
        return self.archive_dir / f"{cache_key(scope, name, version)}{ARCHIVE_EXTENSION}"

    def exists(self, scope: str, name: str, version: str) -> bool:
        return self.path_for(scope, name, version).is_file()

    def checksum(self, path: Path) -> Result[str, ArchiveIOError]:
        try:
            return Ok(compute_sha256(path))
        except OSError as e:
            return Err(ArchiveIOError(path=str(path), reason=str(e)))

    def write_atomically(
        self,
        target: Path,
        produce: Callable[[Path], Result[None, E]],
    ) -> Result[Path, object]:
        """
        Call ``produce(tmp_path)`` and, if it succeeds, move the temporary file
        to ``target``. On any failure the temporary file is removed and the
        error is returned; ``target`` is left untouched.
        """
        tmp_path = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")
        try:
            result = produce(tmp_path)
            if not result.is_ok():
                return result
            if not tmp_path.is_file():
                return Err(ArchiveIOError(path=str(target), reason="archiver produced no output"))
            os.replace(tmp_path, target)
        except OSError as e:
            logger.error(f"Failed to store archive {target}: {e}")
            return Err(ArchiveIOError(path=str(target), reason=str(e)))
        finally:
            if tmp_path.exists():
                tmp_path.unlink(missing_ok=True)
        return Ok(target)
