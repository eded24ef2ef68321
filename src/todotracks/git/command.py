"""GitPython-based implementation of VersionControlBackend.

Every query shells out to the ``git`` binary through GitPython's command
wrapper. Calls run in the event loop's default executor so that several git
processes can run at once without blocking the loop.
"""

import asyncio
import functools
from collections.abc import Sequence
from pathlib import Path

import git
import structlog

from todotracks.exceptions import BackendError, RepositoryNotFoundError

from .base import VersionControlBackend

logger = structlog.get_logger(__name__)


class GitCommandBackend(VersionControlBackend):
    """Runs git commands against a local repository."""

    def __init__(self, repo_path: str) -> None:
        try:
            self.repo = git.Repo(repo_path)
            self.repo_path = Path(repo_path).resolve()
        except (git.InvalidGitRepositoryError, git.NoSuchPathError) as e:
            raise RepositoryNotFoundError(
                f"Not a valid git repository: {repo_path}"
            ) from e

    def get_repo_root(self) -> str:
        return str(self.repo_path)

    def _run_sync(self, *args: str) -> str:
        try:
            output: bytes = self.repo.git.execute(  # type: ignore[assignment]
                ["git", *args], stdout_as_string=False
            )
        except git.GitCommandError as e:
            logger.error(
                "backend.command_failed",
                repo_path=str(self.repo_path),
                command=list(args),
                status=e.status,
            )
            raise BackendError(["git", *args], e.status, str(e.stderr)) from e
        # File contents are not guaranteed to be UTF-8.
        return output.decode("utf-8", errors="replace")

    async def _run(self, *args: str) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, functools.partial(self._run_sync, *args)
        )

    async def list_branches(self) -> str:
        return await self._run("branch", "-av", "--list", "--abbrev=40", "--no-color")

    async def list_tree(self, revision: str, path: str | None = None) -> str:
        if path is None:
            return await self._run("ls-tree", "-r", "-z", "--full-tree", revision)
        return await self._run(
            "--literal-pathspecs",
            "ls-tree",
            "-r",
            "-z",
            "--full-tree",
            revision,
            "--",
            path,
        )

    async def read_blob(self, blob_id: str) -> str:
        return await self._run("cat-file", "-p", blob_id)

    async def blame_line(self, revision: str, path: str, line_number: int) -> str:
        return await self._run(
            "--literal-pathspecs",
            "blame",
            "--root",
            "--line-porcelain",
            "-L",
            f"{line_number},+1",
            revision,
            "--",
            path,
        )

    async def show_format(self, revision: str, fmt: str) -> str:
        return await self._run("show", revision, f"--format={fmt}", "-s")

    async def search_content_history(
        self, text: str, exclude: Sequence[str], include: Sequence[str]
    ) -> str:
        return await self._run(
            "log",
            "--pretty=oneline",
            "--no-abbrev-commit",
            "--no-color",
            f"-S{text}",
            *[f"^{revision}" for revision in exclude],
            *include,
            "--",
        )

    async def show_patch(self, revision: str) -> str:
        return await self._run(
            "show", "--no-color", "--format=", "--diff-merges=first-parent", revision
        )

    def _is_ancestor_sync(self, ancestor: str, descendant: str) -> bool:
        args = ["merge-base", "--is-ancestor", ancestor, descendant]
        try:
            self.repo.git.execute(["git", *args])
        except git.GitCommandError as e:
            # Exit status 1 is git's "no"; anything else is a real failure.
            if e.status == 1:
                return False
            raise BackendError(["git", *args], e.status, str(e.stderr)) from e
        return True

    async def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self._is_ancestor_sync, ancestor, descendant
        )

    def _revision_exists_sync(self, revision: str) -> bool:
        try:
            object_type = self.repo.git.execute(["git", "cat-file", "-t", revision])
        except git.GitCommandError:
            return False
        return object_type.strip() == "commit"

    async def revision_exists(self, revision: str) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._revision_exists_sync, revision)

    async def list_remotes(self) -> str:
        return await self._run("remote", "-v")
