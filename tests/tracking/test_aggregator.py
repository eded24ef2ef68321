"""Tests for RevisionTodoAggregator."""

import asyncio
import threading

import pytest

from todotracks.exceptions import BackendError
from todotracks.git.memory import InMemoryBackend
from todotracks.models import MarkerLine
from todotracks.tracking.aggregator import RevisionKey, RevisionTodoAggregator
from todotracks.tracking.cache import MemoCache
from todotracks.tracking.extractor import BlobTodoExtractor
from todotracks.tracking.matcher import PathFilter, PatternMatcher


def make_aggregator(
    backend: InMemoryBackend, matcher: PatternMatcher, max_concurrency: int = 4
) -> RevisionTodoAggregator:
    extractor = BlobTodoExtractor(backend, matcher, MemoCache("blob"))
    cache: MemoCache[RevisionKey, list[MarkerLine]] = MemoCache("revision")
    return RevisionTodoAggregator(backend, extractor, cache, max_concurrency)


@pytest.fixture
def project(backend: InMemoryBackend) -> str:
    return backend.commit(
        "main",
        {
            "src/app.py": "# TODO: app\nprint('app')\n",
            "src/util.py": "def f():\n    pass  # TODO(bob): util\n",
            "vendor/lib.js": "// TODO: vendored\n",
            "README.md": "No markers here\n",
        },
    )


class TestAggregate:
    """Test collecting the TODOs of a revision."""

    async def test_collects_every_file(
        self, backend: InMemoryBackend, matcher: PatternMatcher, project: str
    ) -> None:
        aggregator = make_aggregator(backend, matcher)

        todos = await aggregator.aggregate(project, PathFilter())

        assert sorted((t.file_name, t.line_number) for t in todos) == [
            ("src/app.py", 1),
            ("src/util.py", 2),
            ("vendor/lib.js", 1),
        ]
        assert all(t.revision == project for t in todos)

    async def test_excluded_paths_are_skipped(
        self, backend: InMemoryBackend, matcher: PatternMatcher, project: str
    ) -> None:
        aggregator = make_aggregator(backend, matcher)

        todos = await aggregator.aggregate(project, PathFilter("^vendor/"))

        assert {t.file_name for t in todos} == {"src/app.py", "src/util.py"}

    async def test_empty_revision(
        self, backend: InMemoryBackend, matcher: PatternMatcher
    ) -> None:
        revision = backend.commit("main", {})
        aggregator = make_aggregator(backend, matcher)

        assert await aggregator.aggregate(revision, PathFilter()) == []

    async def test_result_is_memoized(
        self, backend: InMemoryBackend, matcher: PatternMatcher, project: str
    ) -> None:
        aggregator = make_aggregator(backend, matcher)

        first = await aggregator.aggregate(project, PathFilter())
        calls = sum(backend.calls.values())
        second = await aggregator.aggregate(project, PathFilter())

        assert second is first
        assert sum(backend.calls.values()) == calls

    async def test_memoized_per_exclusion_set(
        self, backend: InMemoryBackend, matcher: PatternMatcher, project: str
    ) -> None:
        aggregator = make_aggregator(backend, matcher)

        everything = await aggregator.aggregate(project, PathFilter())
        without_vendor = await aggregator.aggregate(project, PathFilter("^vendor/"))
        again = await aggregator.aggregate(project, PathFilter(["^vendor/"]))

        assert len(everything) == 3
        assert len(without_vendor) == 2
        assert again is without_vendor
        # Files were scanned once; the second aggregation reused blob results.
        assert backend.calls["read_blob"] == 4

    async def test_unchanged_files_are_not_rescanned(
        self, backend: InMemoryBackend, matcher: PatternMatcher, project: str
    ) -> None:
        aggregator = make_aggregator(backend, matcher)
        await aggregator.aggregate(project, PathFilter())
        blames = backend.calls["blame_line"]

        head = backend.commit("main", {"src/new.py": "x = 1  # TODO: new\n"})
        todos = await aggregator.aggregate(head, PathFilter())

        assert len(todos) == 4
        assert backend.calls["blame_line"] == blames + 1

    async def test_concurrent_aggregations_scan_once(
        self, backend: InMemoryBackend, matcher: PatternMatcher, project: str
    ) -> None:
        backend.latency = 0.005
        aggregator = make_aggregator(backend, matcher)

        results = await asyncio.gather(
            *(aggregator.aggregate(project, PathFilter()) for _ in range(5))
        )

        assert all(result is results[0] for result in results)
        assert backend.calls["list_tree"] == 1
        assert backend.calls["blame_line"] == 3

    async def test_failure_is_not_cached(
        self, backend: InMemoryBackend, matcher: PatternMatcher, project: str
    ) -> None:
        aggregator = make_aggregator(backend, matcher)
        original = backend.blame_line

        async def failing_blame(revision: str, path: str, line_number: int) -> str:
            if path == "src/util.py":
                raise BackendError(["git", "blame"], 128, "boom")
            return await original(revision, path, line_number)

        backend.blame_line = failing_blame  # type: ignore[method-assign]
        with pytest.raises(BackendError):
            await aggregator.aggregate(project, PathFilter())
        assert len(aggregator.cache) == 0

        backend.blame_line = original  # type: ignore[method-assign]
        todos = await aggregator.aggregate(project, PathFilter())
        assert len(todos) == 3


class TestConcurrencyLimit:
    async def test_never_exceeds_max_concurrency(
        self, backend: InMemoryBackend, matcher: PatternMatcher
    ) -> None:
        revision = backend.commit(
            "main", {f"f{i}.py": f"# TODO: {i}\n" for i in range(12)}
        )
        aggregator = make_aggregator(backend, matcher, max_concurrency=3)
        original = backend.read_blob
        running = 0
        peak = 0

        async def tracked_read_blob(blob_id: str) -> str:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            try:
                await asyncio.sleep(0.01)
                return await original(blob_id)
            finally:
                running -= 1

        backend.read_blob = tracked_read_blob  # type: ignore[method-assign]

        todos = await aggregator.aggregate(revision, PathFilter())

        assert len(todos) == 12
        assert 1 < peak <= 3

    def test_rejects_non_positive_limit(
        self, backend: InMemoryBackend, matcher: PatternMatcher
    ) -> None:
        with pytest.raises(ValueError):
            make_aggregator(backend, matcher, max_concurrency=0)

    async def test_list_paths(
        self, backend: InMemoryBackend, matcher: PatternMatcher, project: str
    ) -> None:
        aggregator = make_aggregator(backend, matcher)

        assert await aggregator.list_paths(project) == [
            "README.md",
            "src/app.py",
            "src/util.py",
            "vendor/lib.js",
        ]


class TestSeveralEventLoops:
    def test_aggregations_on_two_loops_share_results(
        self, backend: InMemoryBackend, matcher: PatternMatcher, project: str
    ) -> None:
        backend.latency = 0.01
        aggregator = make_aggregator(backend, matcher, max_concurrency=2)
        results: list[list[MarkerLine]] = []
        errors: list[BaseException] = []

        def run() -> None:
            try:
                results.append(asyncio.run(aggregator.aggregate(project, PathFilter())))
            except BaseException as e:
                errors.append(e)

        threads = [threading.Thread(target=run) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(10)

        assert errors == []
        assert len(results) == 2
        assert results[0] is results[1]
        assert len(results[0]) == 3
