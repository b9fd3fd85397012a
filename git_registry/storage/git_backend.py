"""
Subprocess-based version-control backend.

All git (and archiver) invocations go through ``CommandRunner.run`` so that
failures are reported consistently as ``GitError`` values:
- the executable cannot be started -> ProcessLaunchFailed
- the command exits non-zero -> CommandFailed
- the command exceeds the configured timeout -> CommandTimedOut
- stdout is not valid utf-8 -> OutputDecodeError
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Literal, Optional, Sequence

from git_registry.domain.errors import (
    CommandFailed,
    CommandTimedOut,
    GitError,
    OutputDecodeError,
    ProcessLaunchFailed,
)
from git_registry.domain.result import Err, Ok, Result
from git_registry.storage.vcs_backend import VersionControlBackend

logger = logging.getLogger(__name__)


@dataclass
class CommandRunner:
    """
    Runs external commands and turns their outcome into a ``Result``.
    """

    timeout: Optional[float] = None

    def run(self, args: Sequence[str], cwd: Optional[Path] = None) -> Result[str, GitError]:
        command = shlex.join(args)
        logger.debug(f"Running {command} (cwd={cwd})")

        try:
            completed = subprocess.run(
                list(args),
                cwd=str(cwd) if cwd is not None else None,
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.warning(f"Command timed out after {self.timeout}s: {command}")
            return Err(CommandTimedOut(command=command, timeout=self.timeout or 0))
        except OSError as e:
            logger.error(f"Failed to start {command}: {e}")
            return Err(ProcessLaunchFailed(command=command, reason=str(e)))

        stderr = completed.stderr.decode("utf-8", errors="replace").strip()
        if completed.returncode != 0:
            logger.warning(
                f"Command failed (rc={completed.returncode}): {command}: {stderr[:500]}"
            )
            return Err(CommandFailed(command=command, returncode=completed.returncode, stderr=stderr))

        try:
            return Ok(completed.stdout.decode("utf-8"))
        except UnicodeDecodeError:
            return Err(OutputDecodeError(command=command))


class GitCommandBackend(VersionControlBackend):
    """
    ``VersionControlBackend`` that shells out to the git executable.

    Source archives are produced with ``git archive --format=zip`` by default,
    or with ``swift package archive-source`` when ``archive_tool`` is "swift".
    """

    def __init__(
        self,
        git_executable: str = "git",
        archive_tool: Literal["git", "swift"] = "git",
        swift_executable: str = "swift",
        timeout: Optional[float] = None,
        runner: Optional[CommandRunner] = None,
    ):
        self.git_executable = git_executable
        self.archive_tool = archive_tool
        self.swift_executable = swift_executable
        self.runner = runner or CommandRunner(timeout=timeout)

    def _git(self, *args: str, cwd: Optional[Path] = None) -> Result[str, GitError]:
        return self.runner.run([self.git_executable, *args], cwd=cwd)

    def clone(self, remote_url: str, local_path: Path) -> Result[None, GitError]:
        # git resolves relative destinations against cwd, which is the parent here.
        local_path = local_path.absolute()
        local_path.parent.mkdir(parents=True, exist_ok=True)
        return self._git(
            "clone", "--quiet", "--no-checkout", remote_url, str(local_path),
            cwd=local_path.parent,
        ).map(_to_none)

    def fetch_tags(self, local_path: Path) -> Result[None, GitError]:
        # --force lets moved upstream tags replace stale local ones.
        return self._git("fetch", "--quiet", "--tags", "--force", cwd=local_path).map(_to_none)

    def list_tags(self, local_path: Path) -> Result[List[str], GitError]:
        return self._git("tag", "--list", cwd=local_path).map(_split_lines)

    def checkout(self, local_path: Path, ref: str) -> Result[None, GitError]:
        return self._git(
            "-c", "advice.detachedHead=false",
            "checkout", "--quiet", "--force", f"refs/tags/{ref}",
            cwd=local_path,
        ).map(_to_none)

    def archive(
        self, local_path: Path, subpath: str, output_path: Path, prefix: str = ""
    ) -> Result[None, GitError]:
        subpath = subpath.strip("/")
        output_path = output_path.absolute()

        if self.archive_tool == "swift":
            workdir = local_path / subpath if subpath else local_path
            return self.runner.run(
                [self.swift_executable, "package", "archive-source", "--output", str(output_path)],
                cwd=workdir,
            ).map(_to_none)

        # Archive the checked-out commit; "HEAD:<subpath>" makes the package
        # directory the root of the archive.
        tree = f"HEAD:{subpath}" if subpath else "HEAD"
        args = ["archive", "--format=zip", f"--output={output_path}"]
        if prefix:
            args.append(f"--prefix={prefix.strip('/')}/")
        args.append(tree)
        return self._git(*args, cwd=local_path).map(_to_none)


def _to_none(_value: object) -> None:
    return None


def _split_lines(output: str) -> List[str]:
    return [line.strip() for line in output.split("\n") if line.strip()]
