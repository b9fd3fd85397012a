"""
Registry: catalog resolution plus release and archive orchestration.

The registry holds no state of its own beyond the catalog it was configured
with. Releases are recomputed from the backing repository on every call;
only source archives are cached, on disk, and a cached archive is served
without any version-control work or locking.
"""

from __future__ import annotations

import logging
import re
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from git_registry.domain.entities import Package, ReleaseDetails, Releases, SourceArchive
from git_registry.domain.errors import (
    ArchiveIOError,
    BackendError,
    LocalIOError,
    ManifestNotFound,
    ManifestReadError,
    NoMatchingTag,
    NoSuchPackage,
    NoSuchRelease,
    RegistryError,
)
from git_registry.domain.models import RegistryConfig
from git_registry.domain.result import Err, Ok, Result
from git_registry.domain.versions import classify
from git_registry.services.repository import RepositoryHandle
from git_registry.storage.archive_store import ArchiveStore
from git_registry.storage.git_backend import GitCommandBackend
from git_registry.storage.vcs_backend import VersionControlBackend

logger = logging.getLogger(__name__)

REPOSITORIES_DIRNAME = "repositories"
ARCHIVES_DIRNAME = "archives"

_SWIFT_VERSION_PATTERN = r"\d+(?:\.\d+){0,2}"
SWIFT_VERSION_RE = re.compile(_SWIFT_VERSION_PATTERN)
_MANIFEST_VARIANT_RE = re.compile(rf"^Package@swift-({_SWIFT_VERSION_PATTERN})\.swift$")


class Registry:
    def __init__(
        self,
        root: Path,
        config: RegistryConfig,
        backend: Optional[VersionControlBackend] = None,
    ):
        self.root = root.resolve()
        self.config = config
        self.root.mkdir(parents=True, exist_ok=True)
        self.repositories_dir = self.root / REPOSITORIES_DIRNAME
        self.repositories_dir.mkdir(parents=True, exist_ok=True)
        self.archives = ArchiveStore(self.root / ARCHIVES_DIRNAME)

        self.backend = backend or GitCommandBackend(
            git_executable=config.git_executable,
            archive_tool=config.archive_tool,
            swift_executable=config.swift_executable,
            timeout=config.command_timeout_seconds,
        )

        self._handles: Dict[Path, RepositoryHandle] = {}
        self._handles_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def resolve_package(self, scope: str, name: str) -> Optional[Package]:
        scope_config = self.config.scopes.get(scope)
        if scope_config is None:
            return None
        package_config = scope_config.packages.get(name)
        if package_config is None:
            return None
        return Package(scope=scope, name=name, config=package_config)

    def local_path_for(self, scope: str, name: str) -> Path:
        return self.repositories_dir / f"{scope}.{name}"

    def resolve_repository_handle(self, scope: str, name: str) -> Optional[RepositoryHandle]:
        """
        Return the handle bound to this package's local checkout. Repeated
        calls for the same package return the same handle (and lock).
        """
        package = self.resolve_package(scope, name)
        if package is None:
            return None

        local_path = self.local_path_for(scope, name)
        with self._handles_lock:
            handle = self._handles.get(local_path)
            if handle is None:
                handle = RepositoryHandle(
                    remote_url=package.repository,
                    local_path=local_path,
                    backend=self.backend,
                    tag_prefix=package.config.tag_prefix,
                )
                self._handles[local_path] = handle
            return handle

    def package_identifiers(self, url: str) -> List[str]:
        """
        Identifiers (``scope.name``) of packages at the root of the repository
        at ``url``. A trailing ``.git`` or ``/`` on either side is ignored.
        """
        wanted = _normalize_repository_url(url)
        identifiers = []
        for scope_name, scope in sorted(self.config.scopes.items()):
            for package_name, package_config in sorted(scope.packages.items()):
                package = Package(scope=scope_name, name=package_name, config=package_config)
                if package.is_repository_root and _normalize_repository_url(package.repository) == wanted:
                    identifiers.append(package.identifier)
        return identifiers

    # ------------------------------------------------------------------
    # Releases
    # ------------------------------------------------------------------

    def list_releases(self, scope: str, name: str) -> Result[Releases, RegistryError]:
        handle = self.resolve_repository_handle(scope, name)
        if handle is None:
            return Err(NoSuchPackage(scope=scope, name=name))

        return handle.list_releases().map(Releases).map_err(BackendError)

    def release_exists(self, scope: str, name: str, version: str) -> Result[bool, RegistryError]:
        return self.list_releases(scope, name).map(lambda releases: releases.contains(version))

    def get_release_details(self, scope: str, name: str, version: str) -> Result[ReleaseDetails, RegistryError]:
        package = self.resolve_package(scope, name)
        if package is None:
            return Err(NoSuchPackage(scope=scope, name=name))

        listed = self.list_releases(scope, name)
        if not listed.is_ok():
            return listed
        releases = listed.unwrap()
        if not releases.contains(version):
            return Err(NoSuchRelease(scope=scope, name=name, version=version))

        return self.get_source_archive(package, version).map(
            lambda archive: ReleaseDetails(package=package, version=version, archive=archive, releases=releases)
        )

    # ------------------------------------------------------------------
    # Source archives
    # ------------------------------------------------------------------

    def get_source_archive(self, package: Package, version: str) -> Result[SourceArchive, RegistryError]:
        """
        Return the cached archive for ``package`` at ``version``, producing it
        on first request.

        The cache hit path only hashes the existing file; it neither touches
        the repository handle nor takes its lock.
        """
        if self.resolve_package(package.scope, package.name) is None:
            return Err(NoSuchPackage(scope=package.scope, name=package.name))
        if classify(version) != version:
            return Err(NoSuchRelease(scope=package.scope, name=package.name, version=version))

        path = self.archives.path_for(package.scope, package.name, version)
        if path.is_file():
            logger.debug(f"Archive cache hit: {path.name}")
            return self._source_archive(package, version, path)

        handle = self.resolve_repository_handle(package.scope, package.name)
        if handle is None:
            return Err(NoSuchPackage(scope=package.scope, name=package.name))

        with handle.exclusive():
            # Another request may have produced it while we waited for the lock.
            if path.is_file():
                return self._source_archive(package, version, path)

            logger.info(f"Archive cache miss: building {path.name}")
            written = self.archives.write_atomically(
                path,
                lambda tmp: self._checkout_with_refresh(
                    handle,
                    lambda: handle.archive_release(version, package.relative_path, tmp, prefix=package.name),
                ),
            )

        if not written.is_ok():
            error = written.error
            if isinstance(error, ArchiveIOError):
                return Err(error)
            logger.error(f"Failed to archive {package.identifier} {version}: {error.message}")
            return Err(BackendError(error))

        return self._source_archive(package, version, path)

    def _source_archive(self, package: Package, version: str, path: Path) -> Result[SourceArchive, RegistryError]:
        return self.archives.checksum(path).map(
            lambda checksum: SourceArchive(
                scope=package.scope,
                name=package.name,
                version=version,
                path=path,
                checksum=checksum,
            )
        )

    @staticmethod
    def _checkout_with_refresh(handle: RepositoryHandle, operation):
        """
        Run ``operation``; if the release tag is unknown locally, fetch tags
        once and retry so releases tagged after the clone are still found.
        """
        result = operation()
        if not result.is_ok() and isinstance(result.error, NoMatchingTag):
            refreshed = handle.refresh_tags()
            if not refreshed.is_ok():
                return refreshed
            result = operation()
        return result

    # ------------------------------------------------------------------
    # Manifests
    # ------------------------------------------------------------------

    def manifest_path(self, package: Package, swift_version: Optional[str] = None) -> str:
        filename = self.config.manifest_filename
        if swift_version:
            filename = f"Package@swift-{swift_version}.swift"
        if package.relative_path:
            return f"{package.relative_path}/{filename}"
        return filename

    def get_release_manifest_contents(
        self,
        package: Package,
        version: str,
        swift_version: Optional[str] = None,
    ) -> Result[bytes, RegistryError]:
        """
        Check out ``version`` and read the package manifest (or the
        ``Package@swift-<swift_version>.swift`` variant) from the package root.
        """
        if swift_version and not is_valid_swift_version(swift_version):
            return Err(ManifestNotFound(path=self.config.manifest_filename))
        if classify(version) != version:
            return Err(NoSuchRelease(scope=package.scope, name=package.name, version=version))

        handle = self.resolve_repository_handle(package.scope, package.name)
        if handle is None:
            return Err(NoSuchPackage(scope=package.scope, name=package.name))

        relative = self.manifest_path(package, swift_version)
        with handle.exclusive():
            read = self._checkout_with_refresh(
                handle, lambda: handle.read_release_file(version, relative)
            )

        if not read.is_ok():
            return Err(self._map_release_error(package, version, read.error, relative))

        contents = read.unwrap()
        if contents is None:
            return Err(ManifestNotFound(path=relative))
        return Ok(contents)

    def list_manifest_variants(self, package: Package, version: str) -> Result[List[Tuple[str, str]], RegistryError]:
        """
        ``(filename, swift_version)`` pairs of the version-specific manifests
        (``Package@swift-X.Y.swift``) present in the release.
        """
        if classify(version) != version:
            return Err(NoSuchRelease(scope=package.scope, name=package.name, version=version))

        handle = self.resolve_repository_handle(package.scope, package.name)
        if handle is None:
            return Err(NoSuchPackage(scope=package.scope, name=package.name))

        with handle.exclusive():
            listed = self._checkout_with_refresh(
                handle, lambda: handle.list_release_files(version, package.relative_path)
            )

        if not listed.is_ok():
            return Err(self._map_release_error(package, version, listed.error, package.path))

        variants = []
        for filename in listed.unwrap():
            match = _MANIFEST_VARIANT_RE.match(filename)
            if match:
                variants.append((filename, match.group(1)))
        return Ok(variants)

    @staticmethod
    def _map_release_error(package: Package, version: str, error, path: str) -> RegistryError:
        if isinstance(error, NoMatchingTag):
            return NoSuchRelease(scope=package.scope, name=package.name, version=version)
        if isinstance(error, LocalIOError):
            return ManifestReadError(path=path, reason=error.reason)
        return BackendError(error)


def is_valid_swift_version(value: str) -> bool:
    """True for tools versions such as ``5``, ``5.9`` or ``5.9.1``."""
    return SWIFT_VERSION_RE.fullmatch(value) is not None


def _normalize_repository_url(url: str) -> str:
    url = url.strip().rstrip("/")
    if url.endswith(".git"):
        url = url[: -len(".git")]
    return url.rstrip("/")
