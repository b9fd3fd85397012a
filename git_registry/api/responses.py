"""
Response helpers for the package registry API.

Every response carries ``Content-Version: 1``. Errors are RFC 7807 problem
documents built from the core's error values; the raw output of git or the
archiver never reaches clients.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from git_registry.domain.errors import ErrorKind, ManifestNotFound, error_kind
from git_registry.domain.models import Problem

logger = logging.getLogger(__name__)

CONTENT_VERSION = "1"
PROBLEM_MEDIA_TYPE = "application/problem+json"

_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.AMBIGUOUS_TAG: status.HTTP_404_NOT_FOUND,
    ErrorKind.BACKEND: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.IO: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

_TITLES = {
    status.HTTP_400_BAD_REQUEST: "Bad Request",
    status.HTTP_404_NOT_FOUND: "Not Found",
    status.HTTP_405_METHOD_NOT_ALLOWED: "Method Not Allowed",
    status.HTTP_500_INTERNAL_SERVER_ERROR: "Internal Server Error",
    status.HTTP_501_NOT_IMPLEMENTED: "Not Implemented",
}


def strip_nulls(value: Any) -> Any:
    """
    Recursively remove keys with value None from dictionaries.
    """
    if isinstance(value, dict):
        return {k: strip_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [strip_nulls(v) for v in value]
    return value


def link_header(
    links: Mapping[str, Optional[str]],
    alternates: Optional[List[Tuple[str, str]]] = None,
) -> Optional[str]:
    """
    Build a ``Link`` header value from relation -> URL pairs, skipping
    relations without a URL, plus ``rel="alternate"`` entries given as
    (url, filename) pairs. Returns None when nothing remains.
    """
    parts = [f'<{url}>; rel="{relation}"' for relation, url in links.items() if url]
    for url, filename in alternates or []:
        parts.append(f'<{url}>; rel="alternate"; filename="{filename}"')
    return ", ".join(parts) if parts else None


def registry_headers(
    links: Optional[Mapping[str, Optional[str]]] = None,
    extra: Optional[List[Tuple[str, str]]] = None,
    alternates: Optional[List[Tuple[str, str]]] = None,
) -> Dict[str, str]:
    headers = {"Content-Version": CONTENT_VERSION}
    value = link_header(links or {}, alternates)
    if value:
        headers["Link"] = value
    for key, value in extra or []:
        headers[key] = value
    return headers


def json_response(
    content: BaseModel,
    links: Optional[Mapping[str, Optional[str]]] = None,
    status_code: int = status.HTTP_200_OK,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=strip_nulls(content.model_dump(mode="json", by_alias=True)),
        headers=registry_headers(links),
    )


def problem_response(status_code: int, detail: str) -> JSONResponse:
    problem = Problem(
        status=status_code,
        title=_TITLES.get(status_code, "Error"),
        detail=detail,
    )
    return JSONResponse(
        status_code=status_code,
        content=problem.model_dump(),
        headers=registry_headers(),
        media_type=PROBLEM_MEDIA_TYPE,
    )


def error_response(error: object) -> JSONResponse:
    """
    Map a core error value onto a problem response.

    Not-found and ambiguous-tag errors become 404; version-control and
    filesystem failures become 500 with a generic detail, the specifics
    going to the log instead.
    """
    kind = error_kind(error)
    status_code = _STATUS_BY_KIND.get(kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    message = getattr(error, "message", str(error))

    if status_code == status.HTTP_404_NOT_FOUND:
        if isinstance(error, ManifestNotFound):
            return problem_response(status_code, "non-existent manifest")
        return problem_response(status_code, message)

    logger.error(f"Registry backend failure: {message}")
    return problem_response(status_code, "the registry failed to read the backing repository")


def hex_digest_to_header(checksum: str) -> str:
    """Render a hex SHA-256 checksum as a ``Digest`` header value."""
    return "sha-256=" + base64.b64encode(bytes.fromhex(checksum)).decode("ascii")
