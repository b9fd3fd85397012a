"""
Tolerant semantic-version classification of git tags.

Tags in the wild carry all sorts of decoration: ``v1.2.3``, ``release-1.2.3``,
``Sources/Lib/1.2.3``. ``classify`` strips such a prefix and returns the
canonical ``major.minor.patch[-prerelease][+build]`` form, or None when the tag
is not a release (branches, CI markers and so on).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Iterable, List, Optional, Tuple

_CORE = r"""
    (?P<major>\d+)
    (?:\.(?P<minor>\d+)){minor}
    (?:\.(?P<patch>\d+))?
    (?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?
    (?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?
    $
"""

# A bare version (optionally "v"-prefixed) is tried first so that canonical
# strings always classify to themselves. It may be a lone major ("v2").
_BARE_RE = re.compile(r"^[vV]?" + _CORE.format(minor="?"), re.VERBOSE)

# Otherwise the prefix is anything ending in "-", "_" or "/", optionally
# followed by "v", and the minor component is required so that dated names
# like "nightly-2024" are not releases. Non-greedy so "release-2.0.0-1" keeps
# its pre-release.
_PREFIXED_RE = re.compile(r"^.*?[-_/][vV]?" + _CORE.format(minor=""), re.VERBOSE)


@total_ordering
@dataclass(frozen=True)
class SemanticVersion:
    major: int
    minor: int
    patch: int
    prerelease: Tuple[str, ...] = ()
    build: Tuple[str, ...] = ()

    @classmethod
    def parse(cls, tag: str) -> Optional["SemanticVersion"]:
        tag = tag.strip()
        match = _BARE_RE.match(tag) or _PREFIXED_RE.match(tag)
        if match is None:
            return None

        prerelease = match.group("prerelease")
        build = match.group("build")
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor") or 0),
            patch=int(match.group("patch") or 0),
            prerelease=tuple(_normalize_identifier(p) for p in prerelease.split(".")) if prerelease else (),
            build=tuple(build.split(".")) if build else (),
        )

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + ".".join(self.build)
        return text

    def sort_key(self) -> tuple:
        """
        Precedence per semver 2.0, with build metadata as a final tie-breaker
        so that ordering stays total for a fixed tag set.
        """
        if self.prerelease:
            pre = (0, tuple(_identifier_key(p) for p in self.prerelease))
        else:
            pre = (1, ())
        return (self.major, self.minor, self.patch, pre, self.build)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self.sort_key() < other.sort_key()


def _normalize_identifier(identifier: str) -> str:
    if identifier.isdigit():
        return str(int(identifier))
    return identifier


def _identifier_key(identifier: str) -> tuple:
    # Numeric identifiers sort before alphanumeric ones.
    if identifier.isdigit():
        return (0, int(identifier), "")
    return (1, 0, identifier)


def classify(tag: str) -> Optional[str]:
    """Return the canonical version string for ``tag``, or None."""
    version = SemanticVersion.parse(tag)
    return str(version) if version is not None else None


def sort_versions(versions: Iterable[str]) -> List[str]:
    """Classify, de-duplicate and sort version strings in ascending precedence."""
    parsed = {}
    for raw in versions:
        version = SemanticVersion.parse(raw)
        if version is not None:
            parsed[str(version)] = version
    return [str(v) for v in sorted(parsed.values())]
