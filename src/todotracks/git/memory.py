"""In-memory implementation of VersionControlBackend for testing.

Holds a small commit graph in memory and renders every query in the same
textual format real git produces, so the parsers and the tracker run
unchanged against it. Blame follows line matches through first parents (then
other parents) using difflib, which is close enough to git for tests.
"""

import asyncio
import difflib
import hashlib
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from todotracks.exceptions import BackendError

from .base import VersionControlBackend

DEFAULT_START_TIME = 1_400_000_000


@dataclass
class MemoryCommit:
    """A commit in the in-memory graph."""

    revision: str
    parents: tuple[str, ...]
    files: dict[str, str]
    subject: str
    author_name: str
    author_email: str
    timestamp: int


def blob_id_for(content: str) -> str:
    """Compute the git object id git would give ``content``."""
    data = content.encode("utf-8")
    return hashlib.sha1(b"blob %d\x00" % len(data) + data).hexdigest()


def _content_lines(content: str) -> list[str]:
    return content.removesuffix("\n").split("\n")


def _quote_path(path: str) -> str:
    """Quote ``path`` the way git does with core.quotePath on."""
    data = path.encode("utf-8")
    if all(0x20 <= b < 0x7F and b not in b'"\\' for b in data):
        return path
    escapes = {0x09: "\\t", 0x0A: "\\n", 0x22: '\\"', 0x5C: "\\\\"}
    body = "".join(
        escapes.get(b, chr(b) if 0x20 <= b < 0x7F else f"\\{b:03o}") for b in data
    )
    return f'"{body}"'


@dataclass
class InMemoryBackend(VersionControlBackend):
    """Deterministic in-memory git for tests.

    Build history with ``commit()`` and move branches with ``set_branch()``.
    ``calls`` counts every query by method name, and ``latency`` adds an
    ``asyncio.sleep`` to each query so tests can force interleaving.
    """

    repo_root: str = "/memory/repo"
    latency: float = 0.0
    commits: dict[str, MemoryCommit] = field(default_factory=dict)
    branches: dict[str, str] = field(default_factory=dict)
    remotes: dict[str, str] = field(default_factory=dict)
    calls: Counter[str] = field(default_factory=Counter)

    def commit(
        self,
        branch: str | None,
        changes: Mapping[str, str | None],
        subject: str = "Update files",
        parents: Sequence[str] | None = None,
        author_name: str = "Test User",
        author_email: str = "test@example.com",
    ) -> str:
        """Record a commit and return its revision.

        ``changes`` is applied on top of the first parent's files; a ``None``
        value deletes the path. Without explicit ``parents`` the commit goes
        on top of ``branch``'s head, and ``branch`` is moved to it.
        """
        if parents is None:
            parents = [self.branches[branch]] if branch in self.branches else []
        for parent in parents:
            self._get_commit(parent)

        files = dict(self.commits[parents[0]].files) if parents else {}
        for path, content in changes.items():
            if content is None:
                files.pop(path, None)
            else:
                files[path] = content

        sequence = len(self.commits)
        seed = f"{sequence}\n{' '.join(parents)}\n{subject}\n{sorted(files.items())}"
        revision = hashlib.sha1(seed.encode("utf-8")).hexdigest()
        self.commits[revision] = MemoryCommit(
            revision=revision,
            parents=tuple(parents),
            files=files,
            subject=subject,
            author_name=author_name,
            author_email=author_email,
            timestamp=DEFAULT_START_TIME + sequence * 60,
        )
        if branch is not None:
            self.branches[branch] = revision
        return revision

    def set_branch(self, branch: str, revision: str) -> None:
        self._get_commit(revision)
        self.branches[branch] = revision

    # -- helpers -------------------------------------------------------------

    def _get_commit(self, revision: str) -> MemoryCommit:
        commit = self.commits.get(revision)
        if commit is None:
            raise BackendError(
                ["git", "rev-parse", revision], 128, f"unknown revision {revision}"
            )
        return commit

    async def _record(self, name: str) -> None:
        self.calls[name] += 1
        await asyncio.sleep(self.latency)

    def _ancestors(self, revision: str) -> set[str]:
        seen: set[str] = set()
        pending = [revision]
        while pending:
            current = pending.pop()
            if current in seen:
                continue
            seen.add(current)
            pending.extend(self._get_commit(current).parents)
        return seen

    def _read_file(self, revision: str, path: str) -> str:
        commit = self._get_commit(revision)
        if path not in commit.files:
            raise BackendError(
                ["git", "show", f"{revision}:{path}"],
                128,
                f"path '{path}' does not exist in '{revision}'",
            )
        return commit.files[path]

    def _origin_of(self, revision: str, path: str, line_number: int) -> tuple[str, int]:
        current, number = revision, line_number
        while True:
            commit = self.commits[current]
            for parent_revision in commit.parents:
                parent = self.commits[parent_revision]
                if path not in parent.files:
                    continue
                mapped = _map_line(parent.files[path], commit.files[path], number)
                if mapped is not None:
                    current, number = parent_revision, mapped
                    break
            else:
                return current, number

    # -- VersionControlBackend ------------------------------------------------

    def get_repo_root(self) -> str:
        return self.repo_root

    async def list_branches(self) -> str:
        await self._record("list_branches")
        lines = []
        for index, (name, revision) in enumerate(sorted(self.branches.items())):
            marker = "*" if index == 0 else " "
            subject = self.commits[revision].subject
            lines.append(f"{marker} {name} {revision} {subject}")
        return "\n".join(lines)

    async def list_tree(self, revision: str, path: str | None = None) -> str:
        await self._record("list_tree")
        files = self._get_commit(revision).files
        paths = sorted(files) if path is None else [p for p in files if p == path]
        return "".join(
            f"100644 blob {blob_id_for(files[p])}\t{p}\0" for p in paths
        )

    async def read_blob(self, blob_id: str) -> str:
        await self._record("read_blob")
        for commit in self.commits.values():
            for content in commit.files.values():
                if blob_id_for(content) == blob_id:
                    return content.removesuffix("\n")
        raise BackendError(
            ["git", "cat-file", "-p", blob_id], 128, f"Not a valid object name {blob_id}"
        )

    async def blame_line(self, revision: str, path: str, line_number: int) -> str:
        await self._record("blame_line")
        lines = _content_lines(self._read_file(revision, path))
        if not 1 <= line_number <= len(lines):
            raise BackendError(
                ["git", "blame", "-L", f"{line_number},+1", revision, "--", path],
                128,
                f"file {path} has only {len(lines)} lines",
            )
        origin, origin_line = self._origin_of(revision, path, line_number)
        commit = self.commits[origin]
        return "\n".join(
            [
                f"{origin} {origin_line} {line_number} 1",
                f"author {commit.author_name}",
                f"author-mail <{commit.author_email}>",
                f"author-time {commit.timestamp}",
                "author-tz +0000",
                f"committer {commit.author_name}",
                f"committer-mail <{commit.author_email}>",
                f"committer-time {commit.timestamp}",
                "committer-tz +0000",
                f"summary {commit.subject}",
                f"filename {_quote_path(path)}",
                f"\t{lines[line_number - 1]}",
            ]
        )

    async def show_format(self, revision: str, fmt: str) -> str:
        await self._record("show_format")
        commit = self._get_commit(revision)
        return (
            fmt.replace("%s", commit.subject)
            .replace("%an", commit.author_name)
            .replace("%ae", commit.author_email)
            .replace("%ct", str(commit.timestamp))
        )

    async def search_content_history(
        self, text: str, exclude: Sequence[str], include: Sequence[str]
    ) -> str:
        await self._record("search_content_history")
        reachable: set[str] = set()
        for revision in include:
            reachable |= self._ancestors(revision)
        for revision in exclude:
            reachable -= self._ancestors(revision)

        matches = []
        for revision in reachable:
            commit = self.commits[revision]
            before = self.commits[commit.parents[0]].files if commit.parents else {}
            for path in set(before) | set(commit.files):
                if before.get(path, "").count(text) != commit.files.get(path, "").count(
                    text
                ):
                    matches.append(commit)
                    break
        matches.sort(key=lambda c: c.timestamp, reverse=True)
        return "\n".join(f"{c.revision} {c.subject}" for c in matches)

    async def show_patch(self, revision: str) -> str:
        await self._record("show_patch")
        commit = self._get_commit(revision)
        before = self.commits[commit.parents[0]].files if commit.parents else {}
        output: list[str] = []
        for path in sorted(set(before) | set(commit.files)):
            old, new = before.get(path), commit.files.get(path)
            if old == new:
                continue
            output.append(f"diff --git a/{path} b/{path}")
            output.extend(
                difflib.unified_diff(
                    _content_lines(old) if old is not None else [],
                    _content_lines(new) if new is not None else [],
                    fromfile=f"a/{path}" if old is not None else "/dev/null",
                    tofile=f"b/{path}" if new is not None else "/dev/null",
                    lineterm="",
                )
            )
        return "\n".join(output)

    async def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        await self._record("is_ancestor")
        self._get_commit(ancestor)
        return ancestor in self._ancestors(descendant)

    async def revision_exists(self, revision: str) -> bool:
        await self._record("revision_exists")
        return revision in self.commits

    async def list_remotes(self) -> str:
        await self._record("list_remotes")
        lines = []
        for name, url in self.remotes.items():
            lines.append(f"{name}\t{url} (fetch)")
            lines.append(f"{name}\t{url} (push)")
        return "\n".join(lines)


def _map_line(old: str, new: str, line_number: int) -> int | None:
    """Map a 1-based line of ``new`` to the matching line of ``old``, if any."""
    matcher = difflib.SequenceMatcher(
        None, _content_lines(old), _content_lines(new), autojunk=False
    )
    index = line_number - 1
    for a, b, size in matcher.get_matching_blocks():
        if b <= index < b + size:
            return a + (index - b) + 1
    return None
