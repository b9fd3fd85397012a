from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from git_registry.domain.models import PackageConfig


@dataclass(frozen=True)
class Package:
    """
    A package resolved from the catalog, identified by ``scope.name``.
    """

    scope: str
    name: str
    config: PackageConfig

    @property
    def identifier(self) -> str:
        return f"{self.scope}.{self.name}"

    @property
    def repository(self) -> str:
        return self.config.repository

    @property
    def path(self) -> str:
        return self.config.path

    @property
    def relative_path(self) -> str:
        """Package root relative to the repository root ('' for the root itself)."""
        return self.config.path.strip("/")

    @property
    def is_repository_root(self) -> bool:
        return self.relative_path == ""


@dataclass(frozen=True)
class Releases:
    """
    Ordered release set of a package, oldest first.

    All lookups are linear scans; release sets are small and recomputed per
    request, so no index is kept.
    """

    releases: List[str] = field(default_factory=list)

    @property
    def latest(self) -> Optional[str]:
        return self.releases[-1] if self.releases else None

    def contains(self, version: str) -> bool:
        return version in self.releases

    def __contains__(self, version: str) -> bool:
        return self.contains(version)

    def __iter__(self):
        return iter(self.releases)

    def __len__(self) -> int:
        return len(self.releases)

    def release_before(self, version: str) -> Optional[str]:
        try:
            index = self.releases.index(version)
        except ValueError:
            return None
        if index - 1 < 0:
            return None
        return self.releases[index - 1]

    def release_after(self, version: str) -> Optional[str]:
        try:
            index = self.releases.index(version)
        except ValueError:
            return None
        if index + 1 >= len(self.releases):
            return None
        return self.releases[index + 1]


@dataclass(frozen=True)
class SourceArchive:
    """
    An immutable, checksummed source archive of one release.

    ``checksum`` is the lowercase hex SHA-256 of the archive bytes.
    """

    scope: str
    name: str
    version: str
    path: Path
    checksum: str

    @property
    def filename(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class ReleaseDetails:
    """
    Everything the release-metadata endpoint needs about one release.
    """

    package: Package
    version: str
    archive: SourceArchive
    releases: Releases

    @property
    def latest(self) -> Optional[str]:
        return self.releases.latest

    @property
    def predecessor(self) -> Optional[str]:
        return self.releases.release_before(self.version)

    @property
    def successor(self) -> Optional[str]:
        return self.releases.release_after(self.version)
