"""Find and attribute the TODOs in one file."""

import structlog

from todotracks.exceptions import InternalError
from todotracks.git.base import VersionControlBackend
from todotracks.git.parsing import parse_blame, parse_tree, split_lines
from todotracks.models import BlobId, MarkerLine, Revision

from .cache import MemoCache
from .matcher import PatternMatcher

logger = structlog.get_logger(__name__)


async def resolve_blob(
    backend: VersionControlBackend, revision: Revision, path: str
) -> BlobId:
    """Look up the blob id of ``path`` at ``revision``.

    Raises:
        InternalError: If the path has no blob at that revision.
    """
    for entry in parse_tree(await backend.list_tree(revision, path)):
        if entry.path == path and entry.object_type == "blob":
            return entry.object_id
    raise InternalError(f"Failed to look up blob for {path} at {revision}")


async def read_blob_lines(backend: VersionControlBackend, blob_id: BlobId) -> list[str]:
    return split_lines(await backend.read_blob(blob_id))


class BlobTodoExtractor:
    """Extracts attributed TODO lines from a file, memoized by blob id.

    The same content at a different path or revision reuses the first
    result without scanning again.
    """

    def __init__(
        self,
        backend: VersionControlBackend,
        matcher: PatternMatcher,
        cache: MemoCache[BlobId, list[MarkerLine]],
    ) -> None:
        self.backend = backend
        self.matcher = matcher
        self.cache = cache

    async def extract(
        self, revision: Revision, path: str, blob_id: BlobId | None = None
    ) -> list[MarkerLine]:
        """Return the TODOs in ``path`` at ``revision``.

        Args:
            revision: Revision whose history attributes the lines
            path: Path of the file at that revision
            blob_id: Blob id of the file, when the caller already knows it

        Returns:
            Attributed TODO lines in ascending line order

        Raises:
            InternalError: If the path cannot be resolved or blame output
                cannot be parsed
        """
        if blob_id is None:
            blob_id = await resolve_blob(self.backend, revision, path)
        return await self.cache.get_or_compute(
            blob_id, lambda: self._scan(revision, path, blob_id)
        )

    async def _scan(
        self, revision: Revision, path: str, blob_id: BlobId
    ) -> list[MarkerLine]:
        todos: list[MarkerLine] = []
        for index, line in enumerate(await read_blob_lines(self.backend, blob_id)):
            if not self.matcher.matches(line):
                continue
            # Blame numbers lines from 1.
            out = await self.backend.blame_line(revision, path, index + 1)
            attributed = parse_blame(path, out)
            if not attributed:
                raise InternalError(
                    f"Empty blame output for {path}:{index + 1} at {revision}"
                )
            todos.extend(attributed)
        logger.debug(
            "extract.scanned", path=path, blob=blob_id, revision=revision, todos=len(todos)
        )
        return todos
