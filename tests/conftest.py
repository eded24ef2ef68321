"""Pytest configuration and fixtures."""

import tempfile
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path

import git
import pytest

from todotracks.git.memory import InMemoryBackend
from todotracks.tracking.matcher import DEFAULT_TODO_REGEX, PatternMatcher
from todotracks.tracking.repository import TodoRepository

# Enable pytest-asyncio for all tests
pytest_plugins = ("pytest_asyncio",)

TODO_LINE = "    # TODO: handle the empty case"


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def matcher() -> PatternMatcher:
    return PatternMatcher(DEFAULT_TODO_REGEX)


@dataclass
class BranchHistory:
    """Revisions of the shared two-branch history.

    ::

        base --- todo --- main_head         (main)
                     \\
                      --- fixed             (feature)
        base                                (stale)
    """

    base: str
    todo: str
    main_head: str
    fixed: str


@pytest.fixture
def history(backend: InMemoryBackend) -> BranchHistory:
    """main adds a TODO, feature branches off and removes it, stale predates it."""
    base = backend.commit(
        "main",
        {"app.py": "def run(items):\n    return items\n", "README.md": "Demo\n"},
        subject="Initial commit",
    )
    backend.set_branch("stale", base)
    todo = backend.commit(
        "main",
        {"app.py": f"def run(items):\n{TODO_LINE}\n    return items\n"},
        subject="Add TODO",
        author_name="Ada",
        author_email="ada@example.com",
    )
    backend.set_branch("feature", todo)
    fixed = backend.commit(
        "feature",
        {"app.py": "def run(items):\n    if not items:\n        return []\n    return items\n"},
        subject="Handle the empty case",
    )
    main_head = backend.commit(
        "main", {"README.md": "Demo\n\nMore docs\n"}, subject="Docs"
    )
    return BranchHistory(base=base, todo=todo, main_head=main_head, fixed=fixed)


@pytest.fixture
def repository(backend: InMemoryBackend, matcher: PatternMatcher) -> TodoRepository:
    return TodoRepository(backend, matcher, max_concurrency=4)


@pytest.fixture
def temp_repo() -> Iterator[tuple[Path, git.Repo]]:
    """Create a temporary git repository for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        repo_path = Path(tmpdir)
        repo = git.Repo.init(repo_path, initial_branch="main")

        # Configure git for commits
        with repo.config_writer() as config:
            config.set_value("user", "name", "Test User")
            config.set_value("user", "email", "test@example.com")

        yield repo_path, repo


@pytest.fixture
def commit_file() -> Callable[[Path, git.Repo, str, str, str], str]:
    """Return a helper that writes a file, commits it and returns the revision."""

    def commit(
        repo_path: Path, repo: git.Repo, name: str, content: str, message: str
    ) -> str:
        path = repo_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        repo.index.add([name])
        return repo.index.commit(message).hexsha

    return commit
