"""Repository handle: the operations the dashboard and CLI are built on."""

import asyncio
import hashlib
from collections.abc import Iterable
from urllib.parse import quote

import structlog

from todotracks.exceptions import ValidationError
from todotracks.git.base import VersionControlBackend
from todotracks.git.parsing import (
    is_revision_hash,
    parse_remote_urls,
    parse_timestamp,
    parse_tree,
)
from todotracks.models import (
    Alias,
    BlobId,
    BranchStatus,
    MarkerDetails,
    MarkerId,
    MarkerLine,
    Revision,
    RevisionContents,
    RevisionMetadata,
)

from .aggregator import RevisionKey, RevisionTodoAggregator
from .cache import MemoCache
from .extractor import BlobTodoExtractor, read_blob_lines, resolve_blob
from .matcher import PathFilter, PatternMatcher
from .status import BranchStatusResolver

logger = structlog.get_logger(__name__)

GITHUB_HTTPS_PREFIX = "https://github.com/"
GITHUB_SSH_PREFIX = "git@github.com:"


class TodoRepository:
    """TODO tracking for one git repository.

    The handle owns its blob and revision caches for its whole lifetime;
    nothing is shared between handles. Methods that take user input
    (``validate_*``) raise ValidationError; every other failure is an
    InternalError.

    Call ``start()`` from a running event loop to warm the caches for all
    current branch heads in the background, and ``close()`` to stop it.
    """

    def __init__(
        self,
        backend: VersionControlBackend,
        matcher: PatternMatcher,
        max_concurrency: int = 16,
    ) -> None:
        self.backend = backend
        self.matcher = matcher
        self.blob_cache: MemoCache[BlobId, list[MarkerLine]] = MemoCache("blob")
        self.revision_cache: MemoCache[RevisionKey, list[MarkerLine]] = MemoCache(
            "revision"
        )
        self.extractor = BlobTodoExtractor(backend, matcher, self.blob_cache)
        self.aggregator = RevisionTodoAggregator(
            backend, self.extractor, self.revision_cache, max_concurrency
        )
        self.resolver = BranchStatusResolver(backend)
        self._warm_task: asyncio.Task[None] | None = None

    @property
    def repo_path(self) -> str:
        return self.backend.get_repo_root()

    @property
    def repo_id(self) -> str:
        """Opaque id for this repository on this machine."""
        return hashlib.sha1(self.repo_path.encode("utf-8")).hexdigest()

    # -- lifecycle -----------------------------------------------------------

    def start(self) -> None:
        """Start warming the caches for every current branch head."""
        if self._warm_task is None:
            self._warm_task = asyncio.get_running_loop().create_task(self._warm())

    async def _warm(self) -> None:
        try:
            for alias in await self.list_branches():
                await self.load_revision_todos(alias.revision)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("repository.warm_failed", repo_path=self.repo_path)
            return
        logger.info("repository.warmed", repo_path=self.repo_path)

    async def close(self) -> None:
        if self._warm_task is not None and not self._warm_task.done():
            self._warm_task.cancel()
            try:
                await self._warm_task
            except asyncio.CancelledError:
                pass

    # -- reading -------------------------------------------------------------

    async def list_branches(self) -> list[Alias]:
        """List branch aliases; never cached because branch heads move."""
        return await self.resolver.list_branches()

    async def is_ancestor(self, ancestor: Revision, descendant: Revision) -> bool:
        return await self.backend.is_ancestor(ancestor, descendant)

    async def read_revision_contents(self, revision: Revision) -> RevisionContents:
        paths = await self.aggregator.list_paths(revision)
        return RevisionContents(revision=revision, paths=paths)

    async def read_revision_metadata(self, revision: Revision) -> RevisionMetadata:
        timestamp, subject, author_name, author_email = await asyncio.gather(
            self.backend.show_format(revision, "%ct"),
            self.backend.show_format(revision, "%s"),
            self.backend.show_format(revision, "%an"),
            self.backend.show_format(revision, "%ae"),
        )
        return RevisionMetadata(
            revision=revision,
            timestamp=parse_timestamp(timestamp),
            subject=subject.strip(),
            author_name=author_name.strip(),
            author_email=author_email.strip(),
        )

    async def read_file_lines(self, revision: Revision, path: str) -> list[str]:
        blob_id = await resolve_blob(self.backend, revision, path)
        return await read_blob_lines(self.backend, blob_id)

    async def read_file_snippet(
        self,
        revision: Revision,
        path: str,
        first_line: int = 1,
        last_line: int | None = None,
    ) -> str:
        """Return lines ``first_line`` to ``last_line`` inclusive.

        The range is clamped to the file; ``last_line=None`` means the end of
        the file. Each returned line ends with a newline.
        """
        lines = await self.read_file_lines(revision, path)
        start = max(first_line, 1)
        end = len(lines) if last_line is None else max(0, min(last_line, len(lines)))
        return "".join(f"{line}\n" for line in lines[start - 1 : end])

    # -- TODOs ---------------------------------------------------------------

    async def load_revision_todos(
        self,
        revision: Revision,
        exclude_paths: Iterable[str] | str | None = None,
    ) -> list[MarkerLine]:
        """Load every TODO at ``revision``.

        ``exclude_paths`` overrides the repository's configured exclusions.
        """
        excludes = (
            self.matcher.excludes if exclude_paths is None else PathFilter(exclude_paths)
        )
        return await self.aggregator.aggregate(revision, excludes)

    async def load_file_todos(self, revision: Revision, path: str) -> list[MarkerLine]:
        return await self.extractor.extract(revision, path)

    async def load_todo_details(
        self, todo_id: MarkerId, lines_before: int = 5, lines_after: int = 5
    ) -> MarkerDetails:
        context, metadata = await asyncio.gather(
            self.read_file_snippet(
                todo_id.revision,
                todo_id.file_name,
                todo_id.line_number - lines_before,
                todo_id.line_number + lines_after,
            ),
            self.read_revision_metadata(todo_id.revision),
        )
        return MarkerDetails(id=todo_id, revision_metadata=metadata, context=context)

    async def find_closing_revisions(self, todo_id: MarkerId) -> list[Revision]:
        return await self.resolver.find_closing_revisions(todo_id)

    async def load_todo_status(self, todo_id: MarkerId) -> BranchStatus:
        return await self.resolver.resolve(todo_id)

    async def get_browse_url(self, revision: Revision, path: str, line_number: int) -> str:
        """Link to the line on GitHub if a remote points there, else to /raw."""
        suffix = f"/blob/{revision}/{path}#L{line_number}"
        for url in parse_remote_urls(await self.backend.list_remotes()):
            if url.startswith(GITHUB_HTTPS_PREFIX) and url.endswith(".git"):
                return url.removesuffix(".git") + suffix
            if url.startswith(GITHUB_SSH_PREFIX) and url.endswith(".git"):
                name = url.removeprefix(GITHUB_SSH_PREFIX).removesuffix(".git")
                return GITHUB_HTTPS_PREFIX + name + suffix
        return (
            f"/raw?repo={self.repo_id}&revision={revision}"
            f"&fileName={quote(path, safe='')}&lineNumber={line_number}"
        )

    # -- validation ----------------------------------------------------------

    async def validate_revision(self, revision_string: str) -> Revision:
        """Check that a user-supplied string is a full hash of a known commit."""
        if not is_revision_hash(revision_string):
            raise ValidationError(f"Invalid hash format: {revision_string}")
        if not await self.backend.revision_exists(revision_string):
            raise ValidationError(f"Unknown revision: {revision_string}")
        return revision_string

    async def validate_path_at_revision(self, revision: Revision, path: str) -> None:
        """Check that ``path`` is a file at an already validated revision."""
        entries = parse_tree(await self.backend.list_tree(revision, path))
        if not any(e.path == path and e.object_type == "blob" for e in entries):
            raise ValidationError(f"Path '{path}' not found at revision {revision}")

    async def validate_line_number(
        self, revision: Revision, path: str, line_number: int
    ) -> None:
        """Check that ``line_number`` exists in an already validated path."""
        lines = await self.read_file_lines(revision, path)
        if not 1 <= line_number <= len(lines):
            raise ValidationError(
                f"Line #{line_number}, not found at path {path} in revision {revision}"
            )
