"""Abstract version-control backend.

The tracker only talks to git through this interface. Each method mirrors one
git command and returns that command's raw text output; turning the text into
values is the job of ``todotracks.git.parsing``. Failures raise
``BackendError``.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence


class VersionControlBackend(ABC):
    """Abstract base class for command-style git backends."""

    @abstractmethod
    def get_repo_root(self) -> str:
        pass

    @abstractmethod
    async def list_branches(self) -> str:
        """Output of ``git branch -av --list --abbrev=40 --no-color``."""

    @abstractmethod
    async def list_tree(self, revision: str, path: str | None = None) -> str:
        """Output of ``git ls-tree -r <revision> [-- <path>]``."""

    @abstractmethod
    async def read_blob(self, blob_id: str) -> str:
        """Raw content of a blob, without its trailing newline."""

    @abstractmethod
    async def blame_line(self, revision: str, path: str, line_number: int) -> str:
        """Output of ``git blame --root --line-porcelain -L n,+1``."""

    @abstractmethod
    async def show_format(self, revision: str, fmt: str) -> str:
        """Output of ``git show <revision> --format=<fmt> -s``."""

    @abstractmethod
    async def search_content_history(
        self, text: str, exclude: Sequence[str], include: Sequence[str]
    ) -> str:
        """Output of ``git log --pretty=oneline -S<text> ^<exclude>... <include>...``."""

    @abstractmethod
    async def show_patch(self, revision: str) -> str:
        """Unified diff introduced by ``revision``."""

    @abstractmethod
    async def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """Whether ``ancestor`` is reachable from ``descendant``."""

    @abstractmethod
    async def revision_exists(self, revision: str) -> bool:
        """Whether ``revision`` names a commit in this repository."""

    @abstractmethod
    async def list_remotes(self) -> str:
        """Output of ``git remote -v``."""
