from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

from git_registry.domain.errors import GitError
from git_registry.domain.result import Result


class VersionControlBackend(ABC):
    """
    Abstract capability interface over the version-control and archival tools.

    Implementations never raise for tool failures; they return ``Err`` with a
    ``GitError``. None of these methods are safe to call concurrently against
    the same local checkout; callers serialize them per repository.
    """

    @abstractmethod
    def clone(self, remote_url: str, local_path: Path) -> Result[None, GitError]:
        """Clone ``remote_url`` into ``local_path`` (which must not exist yet)."""
        pass

    @abstractmethod
    def fetch_tags(self, local_path: Path) -> Result[None, GitError]:
        """Fetch tags from the remote into the local clone."""
        pass

    @abstractmethod
    def list_tags(self, local_path: Path) -> Result[List[str], GitError]:
        """List tag names of the local clone, in the order the tool reports them."""
        pass

    @abstractmethod
    def checkout(self, local_path: Path, ref: str) -> Result[None, GitError]:
        """Switch the working tree of the local clone to ``ref``."""
        pass

    @abstractmethod
    def archive(
        self, local_path: Path, subpath: str, output_path: Path, prefix: str = ""
    ) -> Result[None, GitError]:
        """
        Archive the package rooted at ``subpath`` of the checked-out tree into
        ``output_path``, with entries placed under the ``prefix`` directory.
        Must only be called after a successful checkout.
        """
        pass
