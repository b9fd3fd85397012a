"""
Pydantic models for the git-backed package registry.

This module defines the data models used throughout the application:
- Registry catalog configuration (scopes, packages, tooling options)
- Package registry API response bodies (SE-0292 wire format)

All models use Pydantic for validation, serialization, and type safety.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Identifier grammar of the package registry protocol.
SCOPE_RE = re.compile(r"^[a-zA-Z0-9](?:[a-zA-Z0-9]|-(?=[a-zA-Z0-9])){0,38}$")
PACKAGE_NAME_RE = re.compile(r"^[a-zA-Z0-9](?:[a-zA-Z0-9]|[-_](?=[a-zA-Z0-9])){0,99}$")


# ---------------------------------------------------------------------------
# Catalog Configuration Models
# ---------------------------------------------------------------------------


class PackageConfig(BaseModel):
    """
    A single package served by the registry.

    The package lives at ``path`` inside the git repository at ``repository``.
    Several packages may share one repository (e.g. a library and its
    backends), in which case ``path`` points at each package's root.
    """

    repository: str = Field(
        description="Remote URL of the git repository backing this package.",
    )
    path: str = Field(
        default="/",
        description="Package root relative to the repository root ('/' for the repository root itself).",
    )
    tag_prefix: Optional[str] = Field(
        default=None,
        description="If set, only tags starting with this prefix are considered releases of this package.",
    )

    @field_validator("path")
    @classmethod
    def _normalize_path(cls, value: str) -> str:
        value = value.strip() or "/"
        if ".." in value.split("/"):
            raise ValueError("package path must not contain '..'")
        return value


class ScopeConfig(BaseModel):
    """
    A scope groups related packages, much like an organization.
    """

    packages: Dict[str, PackageConfig] = Field(
        default_factory=dict,
        description="Packages in this scope, keyed by package name.",
    )


class RegistryConfig(BaseModel):
    """
    Top-level configuration for the registry.

    Contains the catalog of scopes and packages along with settings for the
    external tools used to talk to the backing repositories.

    Persisted at: <DATA_DIR>/registry.json (or the file named by GIT_REGISTRY_CONFIG)
    """

    scopes: Dict[str, ScopeConfig] = Field(
        default_factory=dict,
        description="Catalog of scopes, keyed by scope name.",
    )
    archive_tool: Literal["git", "swift"] = Field(
        default="git",
        description="Tool used to produce source archives: 'git' (git archive) or 'swift' (swift package archive-source).",
    )
    git_executable: str = Field(
        default="git",
        description="Name or path of the git executable.",
    )
    swift_executable: str = Field(
        default="swift",
        description="Name or path of the swift executable (only used when archive_tool is 'swift').",
    )
    command_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Optional timeout for each external command. None waits for completion.",
    )
    manifest_filename: str = Field(
        default="Package.swift",
        description="Name of the package manifest file inside each package root.",
    )
    canonical_links: bool = Field(
        default=True,
        description="If True, release listings include a 'canonical' Link to the backing repository.",
    )

    @field_validator("scopes")
    @classmethod
    def _validate_identifiers(cls, scopes: Dict[str, ScopeConfig]) -> Dict[str, ScopeConfig]:
        # Scope and package names end up in filesystem paths and URLs.
        for scope_name, scope in scopes.items():
            if not SCOPE_RE.match(scope_name):
                raise ValueError(f"invalid scope name: {scope_name!r}")
            for package_name in scope.packages:
                if not PACKAGE_NAME_RE.match(package_name):
                    raise ValueError(f"invalid package name: {scope_name}.{package_name}")
        return scopes


# ---------------------------------------------------------------------------
# API Response Models (package registry wire format)
# ---------------------------------------------------------------------------


class Problem(BaseModel):
    """
    Problem details body (RFC 7807) returned for every error response.
    """

    status: int
    title: str
    detail: str


class ReleaseSummary(BaseModel):
    """
    Entry in a release listing.

    If ``url`` is omitted the client infers it; a ``problem`` makes the client
    ignore the release during resolution.
    """

    url: Optional[str] = None
    problem: Optional[Problem] = None


class ReleasesResponse(BaseModel):
    releases: Dict[str, ReleaseSummary] = Field(default_factory=dict)


class Resource(BaseModel):
    name: str
    type: str
    checksum: str


class ReleaseResponse(BaseModel):
    """
    Metadata for a single release (``GET /{scope}/{name}/{version}``).
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    version: str
    resources: List[Resource] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    published_at: Optional[datetime] = Field(default=None, alias="publishedAt")


class IdentifiersResponse(BaseModel):
    identifiers: List[str] = Field(default_factory=list)
