"""Memoization cache with at most one computation in flight per key.

Keys are content addressed (blob ids, revisions), so entries never go stale
and are never evicted. A repository handle owns one cache per result kind and
injects it into the components that need it.
"""

import asyncio
import concurrent.futures
import threading
from collections.abc import Awaitable, Callable, Hashable
from typing import Generic, TypeVar

import structlog

from todotracks.exceptions import InternalError

logger = structlog.get_logger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class MemoCache(Generic[K, V]):
    """Concurrency-safe key to result store.

    ``get_or_compute`` has an explicit claim step: under the lock a caller
    either finds a finished result, finds the future of a computation already
    running and waits on it, or registers its own future and becomes the only
    caller computing that key. Callers for different keys never wait on each
    other's computations.

    In-flight entries are ``concurrent.futures.Future`` objects, so a waiter
    may sit on a different thread and event loop than the computing caller.

    A failed computation is delivered to every waiter and is not cached, so a
    later call computes again. If the computing caller is cancelled, waiters
    get an ``InternalError`` rather than a cancellation of their own.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._results: dict[K, V] = {}
        self._in_flight: dict[K, concurrent.futures.Future[V]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._results

    async def get_or_compute(self, key: K, compute: Callable[[], Awaitable[V]]) -> V:
        with self._lock:
            if key in self._results:
                return self._results[key]
            future = self._in_flight.get(key)
            if future is None:
                future = concurrent.futures.Future()
                self._in_flight[key] = future
                owner = True
            else:
                owner = False

        if not owner:
            # Shielded so a cancelled waiter cannot cancel the shared result.
            return await asyncio.shield(asyncio.wrap_future(future))

        logger.debug("cache.miss", cache=self.name, key=str(key))
        try:
            value = await compute()
        except asyncio.CancelledError:
            with self._lock:
                del self._in_flight[key]
            future.set_exception(
                InternalError(f"Computation of {self.name} entry {key} was cancelled")
            )
            raise
        except BaseException as e:
            with self._lock:
                del self._in_flight[key]
            future.set_exception(e)
            raise

        with self._lock:
            self._results[key] = value
            del self._in_flight[key]
        future.set_result(value)
        return value
