"""
Keyed Sync Cache - Per-key cache entries fed by asynchronous fetches

Each key owns:
- an immutable CacheEntry, replaced wholesale on every transition
- a request generation counter, bumped when the key is abandoned
- at most one in-flight fetch task; refreshes while it runs piggyback on it

A fetch is tagged with the key's generation at dispatch. If the generation
has moved on by the time it resolves, the result is dropped.

Released keys keep nothing once their last fetch settles. Keys that are not
pinned (observed, or with a fetch in flight) are evicted oldest-first once
more than `max_entries` are cached.
"""
import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

from loguru import logger

from ..errors import AppError, NetworkError
from ..models.cache import CacheEntry


T = TypeVar('T')

UpdateListener = Callable[[str, CacheEntry], Awaitable[None]]


class KeyedSyncCache(Generic[T]):
    """Base class for the pool and ledger sync services."""

    name = "cache"

    def __init__(self, max_entries: Optional[int] = None):
        self.max_entries = max_entries
        self._entries: Dict[str, CacheEntry[T]] = {}
        self._generations: Dict[str, int] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self._running: Dict[str, int] = {}
        self._listeners: List[UpdateListener] = []

    async def _load(self, key: str) -> T:
        """Fetch and parse fresh data for a key. Raise AppError on failure."""
        raise NotImplementedError

    def _is_pinned(self, key: str) -> bool:
        """Keys that must survive eviction besides those with a fetch in flight."""
        return False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_entry(self, key: str) -> CacheEntry[T]:
        """Current snapshot for a key (an empty idle entry if never fetched)."""
        entry = self._entries.get(key)
        if entry is None:
            return CacheEntry(key=key, request_generation=self.generation(key))
        return entry

    def generation(self, key: str) -> int:
        return self._generations.get(key, 0)

    def is_inflight(self, key: str) -> bool:
        task = self._inflight.get(key)
        return task is not None and not task.done()

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def refresh(self, key: str) -> 'asyncio.Future[CacheEntry[T]]':
        """
        Fetch fresh data for a key.

        Returns an awaitable for the resulting entry. If a fetch for this key
        is already running, no new request is made and the awaitable resolves
        with that fetch's result. Cancelling the awaitable does not cancel the
        shared fetch.
        """
        task = self._inflight.get(key)
        if task is not None and not task.done():
            logger.debug(f"{self.name}: coalesced refresh for {key}")
            return asyncio.shield(task)

        generation = self.generation(key)
        self._entries[key] = replace(
            self.get_entry(key),
            is_loading=True,
            request_generation=generation,
        )
        task = asyncio.get_running_loop().create_task(self._run_fetch(key, generation))
        self._inflight[key] = task
        self._running[key] = self._running.get(key, 0) + 1
        return asyncio.shield(task)

    def _invalidate(self, key: str):
        """
        Abandon a key and drop its cached entry. Fetches still running for it
        will be discarded when they settle.
        """
        self._entries.pop(key, None)
        self._inflight.pop(key, None)
        self._generations[key] = self.generation(key) + 1
        self._forget_if_abandoned(key)

    def _forget_if_abandoned(self, key: str):
        if key not in self._entries and key not in self._running:
            self._generations.pop(key, None)

    def _prune(self, keep: Optional[str] = None):
        if self.max_entries is None:
            return
        excess = len(self._entries) - self.max_entries
        for key in list(self._entries):
            if excess <= 0:
                break
            if key == keep or key in self._running or self._is_pinned(key):
                continue
            del self._entries[key]
            self._generations.pop(key, None)
            excess -= 1
            logger.debug(f"{self.name}: evicted {key}")

    async def _run_fetch(self, key: str, generation: int) -> CacheEntry[T]:
        data: Optional[T] = None
        error: Optional[AppError] = None
        cancelled = False
        try:
            data = await self._load(key)
        except asyncio.CancelledError:
            cancelled = True
        except AppError as e:
            error = e
        except Exception as e:
            logger.exception(f"{self.name}: unexpected error fetching {key}")
            error = NetworkError(str(e) or type(e).__name__)
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]
            remaining = self._running.get(key, 1) - 1
            if remaining > 0:
                self._running[key] = remaining
            else:
                self._running.pop(key, None)

        if cancelled:
            if self.generation(key) == generation and key in self._entries:
                self._entries[key] = replace(self._entries[key], is_loading=False)
            self._forget_if_abandoned(key)
            raise asyncio.CancelledError()

        if self.generation(key) != generation:
            logger.debug(
                f"{self.name}: discarded stale response for {key} "
                f"(generation {generation}, now {self.generation(key)})"
            )
            self._forget_if_abandoned(key)
            return self.get_entry(key)

        entry = self.get_entry(key)
        if error is not None:
            logger.warning(f"{self.name}: fetch failed for {key}: {error.message}")
            entry = replace(entry, is_loading=False, error=error)
        else:
            entry = replace(
                entry,
                data=data,
                is_loading=False,
                error=None,
                updated_at=datetime.utcnow(),
            )
        # Most recently written keys go last, so eviction drops the oldest
        self._entries.pop(key, None)
        self._entries[key] = entry
        self._prune(keep=key)
        await self._notify(key, entry)
        return entry

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_update(self, callback: UpdateListener):
        """Register an async callback invoked after each resolved fetch."""
        self._listeners.append(callback)

    def remove_listener(self, callback: UpdateListener):
        if callback in self._listeners:
            self._listeners.remove(callback)

    async def _notify(self, key: str, entry: CacheEntry[T]):
        for listener in list(self._listeners):
            try:
                await listener(key, entry)
            except Exception as e:
                logger.warning(f"{self.name}: update listener failed for {key}: {e}")
