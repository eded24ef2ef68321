"""Find git repositories on disk and open tracker handles for them."""

import os
from pathlib import Path

import structlog

from todotracks.git.command import GitCommandBackend

from .matcher import PatternMatcher
from .repository import TodoRepository

logger = structlog.get_logger(__name__)


def open_repository(
    path: str | Path, matcher: PatternMatcher, max_concurrency: int = 16
) -> TodoRepository:
    """Open a tracker handle for the git repository at ``path``.

    Raises:
        RepositoryNotFoundError: If ``path`` is not a git repository
    """
    backend = GitCommandBackend(str(path))
    return TodoRepository(backend, matcher, max_concurrency)


def discover_repositories(
    root: str | Path, matcher: PatternMatcher, max_concurrency: int = 16
) -> dict[str, TodoRepository]:
    """Open every repository at or below ``root``, keyed by repo id.

    Directories below a repository's top level are not searched further.
    """
    repositories: dict[str, TodoRepository] = {}
    for dirpath, dirnames, _ in os.walk(root):
        if ".git" in dirnames or (Path(dirpath) / ".git").is_file():
            repository = open_repository(dirpath, matcher, max_concurrency)
            repositories[repository.repo_id] = repository
            logger.info(
                "discovery.repository_found",
                path=repository.repo_path,
                repo_id=repository.repo_id,
            )
            dirnames.clear()
    return repositories
