"""
Package registry endpoints (Swift Package Registry protocol, SE-0292).

Endpoint functions are synchronous and block on git subprocesses; FastAPI
runs them in its worker thread pool.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import FileResponse, RedirectResponse

from git_registry.api.responses import (
    error_response,
    hex_digest_to_header,
    json_response,
    problem_response,
    registry_headers,
)
from git_registry.core.dependencies import get_registry
from git_registry.domain.errors import ManifestNotFound
from git_registry.domain.models import (
    IdentifiersResponse,
    ReleaseResponse,
    ReleasesResponse,
    ReleaseSummary,
    Resource,
)
from git_registry.services.registry import Registry, is_valid_swift_version

logger = logging.getLogger(__name__)
router = APIRouter()

ARCHIVE_SUFFIX = ".zip"


def _base_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")


# ---------------------------------------------------------------------------
# 1. GET /identifiers?url=...
# ---------------------------------------------------------------------------

@router.get("/identifiers")
def lookup_package_identifiers(
    url: Optional[str] = Query(default=None),
    registry: Registry = Depends(get_registry),
) -> Response:
    """
    Identifiers of the packages whose repository root is at ``url``.
    """
    if not url:
        return problem_response(status.HTTP_400_BAD_REQUEST, "missing 'url' query parameter")

    identifiers = registry.package_identifiers(url)
    if not identifiers:
        return problem_response(status.HTTP_404_NOT_FOUND, "no matching packages")
    return json_response(IdentifiersResponse(identifiers=identifiers))


@router.post("/login")
def login() -> Response:
    # Authentication is not supported; every package is public.
    return problem_response(status.HTTP_501_NOT_IMPLEMENTED, "unimplemented")


# ---------------------------------------------------------------------------
# 2. GET /{scope}/{name}
# ---------------------------------------------------------------------------

@router.get("/{scope}/{name}")
def list_package_releases(
    scope: str,
    name: str,
    request: Request,
    registry: Registry = Depends(get_registry),
) -> Response:
    package = registry.resolve_package(scope, name)
    if package is None:
        return problem_response(status.HTTP_404_NOT_FOUND, "non-existent package")

    result = registry.list_releases(scope, name)
    if not result.is_ok():
        return error_response(result.error)
    releases = result.unwrap()

    base_url = _base_url(request)
    body = ReleasesResponse(
        releases={
            version: ReleaseSummary(url=f"{base_url}/{scope}/{name}/{version}")
            for version in releases
        }
    )
    links = {
        "latest-version": f"{base_url}/{scope}/{name}/{releases.latest}" if releases.latest else None,
        "canonical": package.repository if registry.config.canonical_links else None,
    }
    return json_response(body, links=links)


# ---------------------------------------------------------------------------
# 3. GET /{scope}/{name}/{version} and /{scope}/{name}/{version}.zip
# ---------------------------------------------------------------------------

@router.get("/{scope}/{name}/{version}")
def get_release_details_or_source_archive(
    scope: str,
    name: str,
    version: str,
    request: Request,
    registry: Registry = Depends(get_registry),
) -> Response:
    """
    The protocol puts release metadata and the source archive under the same
    path, distinguished only by a ``.zip`` suffix.
    """
    if version.endswith(ARCHIVE_SUFFIX):
        return _download_source_archive(registry, scope, name, version[: -len(ARCHIVE_SUFFIX)])
    return _release_details(registry, request, scope, name, version)


def _release_details(
    registry: Registry, request: Request, scope: str, name: str, version: str
) -> Response:
    result = registry.get_release_details(scope, name, version)
    if not result.is_ok():
        return error_response(result.error)
    details = result.unwrap()

    base_url = _base_url(request)
    package = details.package
    body = ReleaseResponse(
        id=package.identifier,
        version=details.version,
        resources=[
            Resource(
                name="source-archive",
                type="application/zip",
                checksum=details.archive.checksum,
            )
        ],
        metadata={"repositoryURLs": [package.repository]},
    )

    def release_url(v: Optional[str]) -> Optional[str]:
        return f"{base_url}/{scope}/{name}/{v}" if v else None

    links = {
        "latest-version": release_url(details.latest),
        "successor-version": release_url(details.successor),
        "predecessor-version": release_url(details.predecessor),
    }
    return json_response(body, links=links)


def _download_source_archive(registry: Registry, scope: str, name: str, version: str) -> Response:
    package = registry.resolve_package(scope, name)
    if package is None:
        return problem_response(status.HTTP_404_NOT_FOUND, "non-existent package")

    result = registry.get_source_archive(package, version)
    if not result.is_ok():
        return error_response(result.error)
    archive = result.unwrap()

    headers = registry_headers(
        extra=[
            ("Digest", hex_digest_to_header(archive.checksum)),
            ("Cache-Control", "public, immutable"),
        ]
    )
    return FileResponse(
        path=str(archive.path),
        filename=f"{name}-{version}.zip",
        media_type="application/zip",
        headers=headers,
    )


# ---------------------------------------------------------------------------
# 4. GET /{scope}/{name}/{version}/Package.swift
# ---------------------------------------------------------------------------

@router.get("/{scope}/{name}/{version}/Package.swift")
def get_release_manifest(
    scope: str,
    name: str,
    version: str,
    request: Request,
    swift_version: Optional[str] = Query(default=None, alias="swift-version"),
    registry: Registry = Depends(get_registry),
) -> Response:
    if swift_version and not is_valid_swift_version(swift_version):
        return problem_response(status.HTTP_400_BAD_REQUEST, "invalid 'swift-version' query parameter")

    package = registry.resolve_package(scope, name)
    if package is None:
        return problem_response(status.HTTP_404_NOT_FOUND, "non-existent package")

    manifest_url = f"{_base_url(request)}/{scope}/{name}/{version}/Package.swift"

    result = registry.get_release_manifest_contents(package, version, swift_version=swift_version)
    if not result.is_ok():
        if swift_version and isinstance(result.error, ManifestNotFound):
            # No version-specific manifest: send the client to the default one.
            return RedirectResponse(
                url=manifest_url,
                status_code=status.HTTP_303_SEE_OTHER,
                headers=registry_headers(),
            )
        return error_response(result.error)

    filename = registry.manifest_path(package, swift_version).rsplit("/", 1)[-1]
    alternates = []
    if not swift_version:
        variants = registry.list_manifest_variants(package, version)
        if variants.is_ok():
            alternates = [
                (f"{manifest_url}?swift-version={tools_version}", variant_filename)
                for variant_filename, tools_version in variants.unwrap()
            ]
        else:
            logger.warning(f"Could not list manifest variants of {package.identifier} {version}")

    return Response(
        content=result.unwrap(),
        media_type="text/x-swift",
        headers=registry_headers(
            extra=[("Content-Disposition", f'attachment; filename="{filename}"')],
            alternates=alternates,
        ),
    )


# ---------------------------------------------------------------------------
# 5. PUT /{scope}/{name}/{version} (publishing is not supported)
# ---------------------------------------------------------------------------

@router.put("/{scope}/{name}/{version}")
def publish_release(scope: str, name: str, version: str) -> Response:
    return problem_response(status.HTTP_405_METHOD_NOT_ALLOWED, "publishing is unimplemented")
