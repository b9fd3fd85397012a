"""
Repository handle: one remote repository paired with its local checkout.

The local checkout is shared mutable state. Every operation that clones,
fetches, checks out or archives holds ``self.lock`` for its whole duration,
so two requests against the same checkout never interleave. Composite
operations (``archive_release``, ``read_release_file``) hold the lock across
checkout and the step that depends on it.
"""

from __future__ import annotations

import logging
import shutil
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from git_registry.domain.errors import (
    AmbiguousTag,
    GitError,
    LocalIOError,
    NoMatchingTag,
)
from git_registry.domain.result import Err, Ok, Result
from git_registry.domain.versions import classify, sort_versions
from git_registry.storage.vcs_backend import VersionControlBackend

logger = logging.getLogger(__name__)


class RepositoryHandle:
    def __init__(
        self,
        remote_url: str,
        local_path: Path,
        backend: VersionControlBackend,
        tag_prefix: Optional[str] = None,
    ):
        self.remote_url = remote_url
        self.local_path = local_path
        self.backend = backend
        self.tag_prefix = tag_prefix
        self.lock = threading.RLock()

    def __repr__(self) -> str:
        return f"RepositoryHandle({self.remote_url!r} -> {str(self.local_path)!r})"

    @contextmanager
    def exclusive(self) -> Iterator["RepositoryHandle"]:
        """Hold this repository's lock for the duration of the block."""
        with self.lock:
            yield self

    # ------------------------------------------------------------------
    # Primitive operations
    # ------------------------------------------------------------------

    def local_repository_exists(self) -> bool:
        return (self.local_path / ".git").exists()

    def ensure_local_clone(self) -> Result[None, GitError]:
        with self.lock:
            if self.local_repository_exists():
                return Ok(None)

            # A directory without .git is the leftover of a failed clone.
            if self.local_path.exists():
                removed = self._remove_local_checkout()
                if not removed.is_ok():
                    return removed

            logger.info(f"Cloning {self.remote_url} into {self.local_path}")
            result = self.backend.clone(self.remote_url, self.local_path)
            if not result.is_ok():
                self._remove_local_checkout()
            return result

    def _remove_local_checkout(self) -> Result[None, GitError]:
        try:
            if self.local_path.exists():
                shutil.rmtree(self.local_path)
        except OSError as e:
            logger.error(f"Failed to remove partial checkout {self.local_path}: {e}")
            return Err(LocalIOError(path=str(self.local_path), reason=str(e)))
        return Ok(None)

    def list_tags(self) -> Result[List[str], GitError]:
        """Raw tag names of the local clone, filtered by the package's tag prefix."""
        with self.lock:
            result = self.backend.list_tags(self.local_path)
        if self.tag_prefix:
            return result.map(lambda tags: [t for t in tags if t.startswith(self.tag_prefix)])
        return result

    def refresh_tags(self) -> Result[None, GitError]:
        with self.lock:
            return self.backend.fetch_tags(self.local_path)

    def list_releases(self) -> Result[List[str], GitError]:
        """
        Clone if needed, fetch tags, and return the canonical versions of all
        classifiable tags in ascending semantic-version order.

        A failed fetch fails the whole listing; previously known local tags
        are not used as a fallback.
        """
        with self.lock:
            return (
                self.ensure_local_clone()
                .and_then(lambda _: self.refresh_tags())
                .and_then(lambda _: self.list_tags())
                .map(lambda tags: sort_versions(self._strip_prefix(t) for t in tags))
            )

    def resolve_tag_for_version(self, version: str) -> Result[str, GitError]:
        """
        Find the tag that names ``version``.

        Only tags whose canonical classification equals ``version`` are
        candidates. An exact textual match wins, then ``v<version>``; any other
        tie is ambiguous.
        """
        canonical = classify(version)
        if canonical is None:
            return Err(NoMatchingTag(version=version))

        def select(tags: List[str]) -> Result[str, GitError]:
            candidates = [t for t in tags if classify(self._strip_prefix(t)) == canonical]
            if not candidates:
                return Err(NoMatchingTag(version=version))
            if len(candidates) == 1:
                return Ok(candidates[0])
            for preferred in (canonical, f"v{canonical}"):
                for tag in candidates:
                    if self._strip_prefix(tag) == preferred:
                        return Ok(tag)
            return Err(AmbiguousTag(version=version, candidates=tuple(candidates)))

        return self.list_tags().and_then(select)

    def _strip_prefix(self, tag: str) -> str:
        if self.tag_prefix and tag.startswith(self.tag_prefix):
            return tag[len(self.tag_prefix):]
        return tag

    def checkout(self, tag_or_version: str) -> Result[None, GitError]:
        """
        Switch the working tree to a release. A value that is itself a tag of
        this repository is used as-is; anything else is resolved as a version.
        """
        with self.lock:
            resolved = self.list_tags().and_then(
                lambda tags: Ok(tag_or_version) if tag_or_version in tags
                else self.resolve_tag_for_version(tag_or_version)
            )
            if not resolved.is_ok():
                return resolved
            tag = resolved.unwrap()
            logger.debug(f"Checking out {tag} in {self.local_path}")
            return self.backend.checkout(self.local_path, tag)

    def archive_source(self, subpath: str, output_path: Path, prefix: str = "") -> Result[None, GitError]:
        with self.lock:
            return self.backend.archive(self.local_path, subpath, output_path, prefix=prefix)

    # ------------------------------------------------------------------
    # Composite operations (checkout + dependent step under one lock)
    # ------------------------------------------------------------------

    def archive_release(
        self, version: str, subpath: str, output_path: Path, prefix: str = ""
    ) -> Result[None, GitError]:
        with self.lock:
            return (
                self.ensure_local_clone()
                .and_then(lambda _: self.checkout(version))
                .and_then(lambda _: self.archive_source(subpath, output_path, prefix=prefix))
            )

    def read_release_file(self, version: str, relative_path: str) -> Result[Optional[bytes], GitError]:
        """
        Check out ``version`` and read a file from the working tree.

        Returns ``Ok(None)`` when the file does not exist in that release; a
        filesystem failure while reading is returned as ``LocalIOError``.
        """
        with self.lock:
            checked_out = self.ensure_local_clone().and_then(lambda _: self.checkout(version))
            if not checked_out.is_ok():
                return checked_out
            target = self.local_path / relative_path.strip("/")
            if not target.is_file():
                return Ok(None)
            try:
                return Ok(target.read_bytes())
            except OSError as e:
                return Err(LocalIOError(path=str(target), reason=str(e)))

    def list_release_files(self, version: str, relative_dir: str) -> Result[List[str], GitError]:
        """Check out ``version`` and list the file names directly inside ``relative_dir``."""
        with self.lock:
            checked_out = self.ensure_local_clone().and_then(lambda _: self.checkout(version))
            if not checked_out.is_ok():
                return checked_out
            directory = self.local_path / relative_dir.strip("/")
            if not directory.is_dir():
                return Ok([])
            try:
                return Ok(sorted(p.name for p in directory.iterdir() if p.is_file()))
            except OSError as e:
                return Err(LocalIOError(path=str(directory), reason=str(e)))

