"""
Error taxonomy for the registry core.

Errors are plain frozen dataclasses carried inside ``Err``; they are never
raised. Each one reports a coarse ``kind`` that the HTTP layer maps onto a
status code, and a ``message`` safe to show to clients. Raw subprocess output
(``stderr``) is kept on the error for logging only.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Union


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    BACKEND = "backend"
    AMBIGUOUS_TAG = "ambiguous_tag"
    IO = "io"


class CatalogError(Exception):
    """
    Raised when the registry catalog cannot be loaded or is inconsistent.

    The only exception raised by the core; everything else is returned in
    ``Err``.
    """


# ---------------------------------------------------------------------------
# Version-control errors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProcessLaunchFailed:
    command: str
    reason: str

    kind = ErrorKind.BACKEND

    @property
    def message(self) -> str:
        return f"Failed to run '{self.command}': {self.reason}"


@dataclass(frozen=True)
class CommandFailed:
    command: str
    returncode: int
    stderr: str = ""

    kind = ErrorKind.BACKEND

    @property
    def message(self) -> str:
        return f"'{self.command}' exited with status {self.returncode}"


@dataclass(frozen=True)
class CommandTimedOut:
    command: str
    timeout: float

    kind = ErrorKind.BACKEND

    @property
    def message(self) -> str:
        return f"'{self.command}' did not finish within {self.timeout:g}s"


@dataclass(frozen=True)
class OutputDecodeError:
    command: str

    kind = ErrorKind.BACKEND

    @property
    def message(self) -> str:
        return f"The output of '{self.command}' contained invalid utf-8 data"


@dataclass(frozen=True)
class NoMatchingTag:
    version: str

    kind = ErrorKind.NOT_FOUND

    @property
    def message(self) -> str:
        return f"Failed to locate tag for release '{self.version}'"


@dataclass(frozen=True)
class AmbiguousTag:
    version: str
    candidates: Sequence[str] = ()

    kind = ErrorKind.AMBIGUOUS_TAG

    @property
    def message(self) -> str:
        return (
            f"Release '{self.version}' matches several tags: "
            + ", ".join(self.candidates)
        )


@dataclass(frozen=True)
class LocalIOError:
    """Filesystem failure inside the local checkout (e.g. removing a partial clone)."""

    path: str
    reason: str

    kind = ErrorKind.IO

    @property
    def message(self) -> str:
        return f"Filesystem error at {self.path}: {self.reason}"


GitError = Union[
    ProcessLaunchFailed,
    CommandFailed,
    CommandTimedOut,
    OutputDecodeError,
    NoMatchingTag,
    AmbiguousTag,
    LocalIOError,
]


# ---------------------------------------------------------------------------
# Registry errors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NoSuchPackage:
    scope: str
    name: str

    kind = ErrorKind.NOT_FOUND

    @property
    def message(self) -> str:
        return f"Non-existent package '{self.scope}.{self.name}'"


@dataclass(frozen=True)
class NoSuchRelease:
    scope: str
    name: str
    version: str

    kind = ErrorKind.NOT_FOUND

    @property
    def message(self) -> str:
        return f"Non-existent release '{self.version}' of '{self.scope}.{self.name}'"


@dataclass(frozen=True)
class BackendError:
    """A version-control or archival step failed; ``cause`` holds the git-level error."""

    cause: GitError

    @property
    def kind(self) -> ErrorKind:
        # Tag resolution problems are reported as "not found".
        if isinstance(self.cause, (NoMatchingTag, AmbiguousTag)):
            return self.cause.kind
        return ErrorKind.BACKEND

    @property
    def message(self) -> str:
        return self.cause.message


@dataclass(frozen=True)
class ManifestNotFound:
    path: str

    kind = ErrorKind.NOT_FOUND

    @property
    def message(self) -> str:
        return f"No manifest at '{self.path}'"


@dataclass(frozen=True)
class ManifestReadError:
    path: str
    reason: str

    kind = ErrorKind.IO

    @property
    def message(self) -> str:
        return f"Failed to read manifest '{self.path}': {self.reason}"


@dataclass(frozen=True)
class ArchiveIOError:
    path: str
    reason: str

    kind = ErrorKind.IO

    @property
    def message(self) -> str:
        return f"Failed to access source archive '{self.path}': {self.reason}"


RegistryError = Union[
    NoSuchPackage,
    NoSuchRelease,
    BackendError,
    ManifestNotFound,
    ManifestReadError,
    ArchiveIOError,
]


def error_kind(error: Optional[object]) -> Optional[ErrorKind]:
    """Return the ``kind`` of any core error, or None for unknown objects."""
    return getattr(error, "kind", None)
