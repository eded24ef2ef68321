"""Collect the TODOs of a whole revision."""

import asyncio
import threading
import time
import weakref

import structlog

from todotracks.git.base import VersionControlBackend
from todotracks.git.parsing import TreeEntry, parse_tree
from todotracks.models import MarkerLine, Revision

from .cache import MemoCache
from .extractor import BlobTodoExtractor
from .matcher import PathFilter

logger = structlog.get_logger(__name__)

# Revision results are cached per exclusion set.
RevisionKey = tuple[Revision, frozenset[str]]


class RevisionTodoAggregator:
    """Fans TODO extraction out over a revision's files.

    At most ``max_concurrency`` files are extracted at once across every
    aggregation sharing this aggregator on one event loop. Each loop that
    uses the aggregator gets its own limit.
    """

    def __init__(
        self,
        backend: VersionControlBackend,
        extractor: BlobTodoExtractor,
        cache: MemoCache[RevisionKey, list[MarkerLine]],
        max_concurrency: int = 16,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be positive, got {max_concurrency}")
        self.backend = backend
        self.extractor = extractor
        self.cache = cache
        self.max_concurrency = max_concurrency
        self._slots: weakref.WeakKeyDictionary[
            asyncio.AbstractEventLoop, asyncio.Semaphore
        ] = weakref.WeakKeyDictionary()
        self._slots_lock = threading.Lock()

    async def list_paths(self, revision: Revision) -> list[str]:
        return [entry.path for entry in await self._list_blobs(revision)]

    async def aggregate(
        self, revision: Revision, excludes: PathFilter
    ) -> list[MarkerLine]:
        """Return every TODO at ``revision`` outside the excluded paths.

        Either the whole revision is scanned successfully or the first
        failure is raised; a partial result is never cached or returned.
        """
        key: RevisionKey = (revision, excludes.cache_key)
        return await self.cache.get_or_compute(
            key, lambda: self._aggregate(revision, excludes)
        )

    async def _list_blobs(self, revision: Revision) -> list[TreeEntry]:
        entries = parse_tree(await self.backend.list_tree(revision))
        return [e for e in entries if e.object_type == "blob"]

    async def _aggregate(
        self, revision: Revision, excludes: PathFilter
    ) -> list[MarkerLine]:
        start_time = time.time()
        entries = [e for e in await self._list_blobs(revision) if excludes.includes(e.path)]
        logger.info("aggregate.started", revision=revision, paths=len(entries))

        results = await asyncio.gather(
            *(self._extract(revision, entry) for entry in entries),
            return_exceptions=True,
        )

        todos: list[MarkerLine] = []
        for entry, result in zip(entries, results):
            if isinstance(result, BaseException):
                logger.error(
                    "aggregate.path_failed",
                    revision=revision,
                    path=entry.path,
                    error=str(result),
                )
                raise result
            todos.extend(result)

        logger.info(
            "aggregate.completed",
            revision=revision,
            todos=len(todos),
            duration_ms=int((time.time() - start_time) * 1000),
        )
        return todos

    def _loop_slots(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        with self._slots_lock:
            slots = self._slots.get(loop)
            if slots is None:
                slots = self._slots[loop] = asyncio.Semaphore(self.max_concurrency)
            return slots

    async def _extract(self, revision: Revision, entry: TreeEntry) -> list[MarkerLine]:
        async with self._loop_slots():
            return await self.extractor.extract(revision, entry.path, entry.object_id)
