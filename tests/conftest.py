"""Shared fixtures: an in-memory version-control backend and registry factories."""

from __future__ import annotations

import shutil
import threading
import time
from collections import Counter
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from git_registry.domain.errors import CommandFailed, GitError
from git_registry.domain.models import PackageConfig, RegistryConfig, ScopeConfig
from git_registry.domain.result import Err, Ok, Result
from git_registry.services.registry import Registry
from git_registry.storage.vcs_backend import VersionControlBackend

REPOSITORY_URL = "https://github.com/mona/LinkedList.git"


class FakeBackend(VersionControlBackend):
    """
    Version-control backend that keeps the "remote" in memory.

    ``tags`` are the remote's tags; a clone or fetch copies them into the
    local checkout. ``files`` maps a tag to the working-tree files written on
    checkout. ``failures`` maps a method name to the error it returns.

    Every call is recorded in ``calls``. Calls that overlap on the same local
    checkout are counted in ``overlaps``; ``delay`` widens the window.
    """

    def __init__(
        self,
        tags: Optional[List[str]] = None,
        files: Optional[Dict[str, Dict[str, bytes]]] = None,
        delay: float = 0.0,
    ):
        self.tags = list(tags or [])
        self.files = files or {}
        self.delay = delay
        self.failures: Dict[str, GitError] = {}
        self.write_archives = True

        self.calls: List[tuple] = []
        self.overlaps = 0
        self._local_tags: Dict[Path, List[str]] = {}
        self._checked_out: Dict[Path, str] = {}
        self._busy: Counter = Counter()
        self._guard = threading.Lock()

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    def _enter(self, method: str, local_path: Path, *args) -> Optional[GitError]:
        with self._guard:
            self.calls.append((method, local_path, *args))
            if self._busy[local_path]:
                self.overlaps += 1
            self._busy[local_path] += 1
        if self.delay:
            time.sleep(self.delay)
        return self.failures.get(method)

    def _exit(self, local_path: Path) -> None:
        with self._guard:
            self._busy[local_path] -= 1

    def _run(self, method: str, local_path: Path, body: Callable[[], Result], *args) -> Result:
        failure = self._enter(method, local_path, *args)
        try:
            if failure is not None:
                if method == "clone":
                    # Leave a partial checkout behind, like an interrupted clone.
                    local_path.mkdir(parents=True, exist_ok=True)
                    (local_path / "partial").write_text("x")
                return Err(failure)
            return body()
        finally:
            self._exit(local_path)

    def clone(self, remote_url: str, local_path: Path) -> Result[None, GitError]:
        def body():
            (local_path / ".git").mkdir(parents=True)
            self._local_tags[local_path] = list(self.tags)
            return Ok(None)

        return self._run("clone", local_path, body, remote_url)

    def fetch_tags(self, local_path: Path) -> Result[None, GitError]:
        def body():
            self._local_tags[local_path] = list(self.tags)
            return Ok(None)

        return self._run("fetch_tags", local_path, body)

    def list_tags(self, local_path: Path) -> Result[List[str], GitError]:
        def body():
            if local_path not in self._local_tags:
                return Err(CommandFailed(command="git tag --list", returncode=128, stderr="not a git repository"))
            return Ok(list(self._local_tags[local_path]))

        return self._run("list_tags", local_path, body)

    def checkout(self, local_path: Path, ref: str) -> Result[None, GitError]:
        def body():
            if ref not in self._local_tags.get(local_path, []):
                return Err(CommandFailed(command=f"git checkout {ref}", returncode=1, stderr="unknown ref"))
            for child in local_path.iterdir():
                if child.name == ".git":
                    continue
                if child.is_dir():
                    shutil.rmtree(child)
                else:
                    child.unlink()
            for relative, content in self.files.get(ref, {}).items():
                target = local_path / relative
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(content)
            self._checked_out[local_path] = ref
            return Ok(None)

        return self._run("checkout", local_path, body, ref)

    def archive(
        self, local_path: Path, subpath: str, output_path: Path, prefix: str = ""
    ) -> Result[None, GitError]:
        def body():
            if self.write_archives:
                ref = self._checked_out.get(local_path, "")
                output_path.write_bytes(f"zip:{ref}:{subpath}:{prefix}".encode("utf-8"))
            return Ok(None)

        return self._run("archive", local_path, body, subpath, str(output_path))


def make_config(packages: Optional[Dict[str, PackageConfig]] = None, **options) -> RegistryConfig:
    if packages is None:
        packages = {"LinkedList": PackageConfig(repository=REPOSITORY_URL)}
    return RegistryConfig(scopes={"mona": ScopeConfig(packages=packages)}, **options)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend(
        tags=["v1.0.0", "v1.1.0", "release-2.0.0", "main-ci"],
        files={
            "v1.0.0": {"Package.swift": b"// swift-tools-version:5.3\n"},
            "v1.1.0": {
                "Package.swift": b"// swift-tools-version:5.5\n",
                "Package@swift-5.3.swift": b"// swift-tools-version:5.3\n",
                "Sources/LinkedList/List.swift": b"struct List {}\n",
            },
            "release-2.0.0": {"README.md": b"no manifest here\n"},
        },
    )


@pytest.fixture
def make_registry(tmp_path: Path) -> Callable[..., Registry]:
    def _make(backend: VersionControlBackend, config: Optional[RegistryConfig] = None) -> Registry:
        return Registry(root=tmp_path / "data", config=config or make_config(), backend=backend)

    return _make


@pytest.fixture
def registry(make_registry, backend) -> Registry:
    return make_registry(backend)
