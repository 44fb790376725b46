"""
Cached Fetch Service

Stale-while-revalidate reads with retry, backoff and fallback.

DESIGN:
=======
1. Serve a fresh cached snapshot immediately, always fetch in the background
2. Retry transient failures with exponential backoff
3. After exhaustion prefer any cached snapshot (even stale) over the seed
4. Persist only successful reads - fallback data never overwrites the cache

Each query is a small state machine:

    IDLE -> CACHE_HIT | FETCHING
    CACHE_HIT -> FETCHING | SETTLED | DEGRADED
    FETCHING -> FETCHING | SETTLED | DEGRADED
    SETTLED | DEGRADED -> FETCHING   (refetch)
"""

from __future__ import annotations
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple
from datetime import datetime, timezone
import asyncio
import logging

import httpx

from .contracts import (
    CacheEntry, FetchConfig, FetchError, FetchErrorCode, FetchPhase,
    FetchState, QueryDescriptor
)
from .remote import RemoteStore, RemoteStoreError, RemoteNetworkError, QueryRejectedError
from .storage import PersistentCache, CacheSerializationError


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[Any]]
StateListener = Callable[[FetchState], Any]

# Failures a read may raise that count as a failed attempt; anything else
# is a bug and propagates through wait_settled().
FETCH_FAILURES = (RemoteStoreError, httpx.TransportError, OSError, asyncio.TimeoutError)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# STATE MACHINE
# =============================================================================

_TRANSITIONS: Dict[FetchPhase, FrozenSet[FetchPhase]] = {
    FetchPhase.IDLE: frozenset({FetchPhase.CACHE_HIT, FetchPhase.FETCHING}),
    FetchPhase.CACHE_HIT: frozenset({FetchPhase.FETCHING, FetchPhase.SETTLED, FetchPhase.DEGRADED}),
    FetchPhase.FETCHING: frozenset({FetchPhase.FETCHING, FetchPhase.SETTLED, FetchPhase.DEGRADED}),
    FetchPhase.SETTLED: frozenset({FetchPhase.FETCHING}),
    FetchPhase.DEGRADED: frozenset({FetchPhase.FETCHING}),
}


class InvalidTransition(Exception):
    """A query attempted a phase change outside the transition table."""

    def __init__(self, current: FetchPhase, target: FetchPhase):
        super().__init__(f"Invalid transition {current.value} -> {target.value}")
        self.current = current
        self.target = target


def can_transition(current: FetchPhase, target: FetchPhase) -> bool:
    return target in _TRANSITIONS[current]


# =============================================================================
# SERVICE
# =============================================================================

class CachedFetchService:
    """
    Produces FetchState streams for QueryDescriptors.

    GUARANTEES:
    ===========
    1. At most max_retries + 1 remote reads per run
    2. The n-th retry never starts before retry_delay * 2^(n-1)
    3. Cache writes happen only on success
    4. Malformed cache payloads behave as cache misses
    """

    def __init__(
        self,
        store: RemoteStore,
        cache: PersistentCache,
        config: Optional[FetchConfig] = None,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None
    ):
        self._store = store
        self._cache = cache
        self._config = config or FetchConfig()
        self._clock = clock or utc_now
        self._sleep = sleep or asyncio.sleep

    @property
    def config(self) -> FetchConfig:
        return self._config

    def query(
        self,
        descriptor: QueryDescriptor,
        fallback_seed: Iterable[Any] = ()
    ) -> QueryHandle:
        """
        Start a query. Must be called from a running event loop.

        The returned handle already reflects a fresh cache hit, if any;
        the remote fetch runs in the background.
        """
        handle = QueryHandle(self, descriptor, tuple(fallback_seed))
        handle.start()
        return handle

    def clear_cache(self, key: str):
        """Delete the persisted entry for key."""
        self._cache.delete(key)
        logger.info("Cleared cache for %s", key)

    # -------------------------------------------------------------------------
    # Collaborator access (used by QueryHandle)
    # -------------------------------------------------------------------------

    def now(self) -> datetime:
        return self._clock()

    async def sleep(self, delay: float):
        await self._sleep(delay)

    async def read(self, descriptor: QueryDescriptor) -> Tuple[Any, ...]:
        records = await self._store.read(
            descriptor.source,
            projection=descriptor.projection,
            ordering=descriptor.ordering,
            filter=descriptor.filter
        )
        return tuple(records)

    def load_cached(self, key: str) -> Optional[CacheEntry]:
        """Any cached entry for key regardless of age."""
        try:
            return self._cache.get(key)
        except CacheSerializationError as e:
            logger.warning("Ignoring cache entry for %s: %s", key, e)
            return None

    def load_fresh(self, key: str) -> Optional[CacheEntry]:
        entry = self.load_cached(key)
        if entry is not None and entry.is_fresh(self.now(), self._config.cache_ttl_seconds):
            return entry
        return None

    def persist(self, key: str, records: Tuple[Any, ...], stored_at: datetime):
        try:
            self._cache.set(key, records, stored_at)
        except CacheSerializationError as e:
            logger.warning("Failed to cache %s: %s", key, e)

    def error_from(self, exc: Exception) -> FetchError:
        """Classify a remote failure as error data."""
        if isinstance(exc, QueryRejectedError):
            code = FetchErrorCode.QUERY_REJECTED
        elif isinstance(exc, RemoteNetworkError):
            code = FetchErrorCode.NETWORK
        elif isinstance(exc, RemoteStoreError):
            code = FetchErrorCode.REMOTE_READ
        else:
            code = FetchErrorCode.NETWORK
        message = str(exc) or exc.__class__.__name__
        return FetchError(code=code, message=message, occurred_at=self.now())


# =============================================================================
# QUERY HANDLE
# =============================================================================

class QueryHandle:
    """
    One active query, owned by the consumer that issued it.

    State is pushed to subscribers on every transition. After close()
    pending backoff is cancelled and late resolutions are dropped.
    """

    def __init__(
        self,
        service: CachedFetchService,
        descriptor: QueryDescriptor,
        fallback_seed: Tuple[Any, ...]
    ):
        self._service = service
        self._descriptor = descriptor
        self._fallback_seed = fallback_seed
        self._state = FetchState.initial(fallback_seed)
        self._listeners: List[StateListener] = []
        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self._backoff_generation: Optional[int] = None
        self._closed = False

    @property
    def descriptor(self) -> QueryDescriptor:
        return self._descriptor

    @property
    def state(self) -> FetchState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it.

        A listener that raises is logged and skipped.
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def start(self):
        key = self._descriptor.cache_key
        entry = self._service.load_fresh(key)

        if entry is not None:
            logger.info("Serving cached %s while fetching fresh data", key)
            self._apply(
                self._generation,
                phase=FetchPhase.CACHE_HIT,
                records=entry.payload,
                loading=False,
                serving_from_cache=True,
                last_updated=entry.stored_at
            )

        self._launch(announce=entry is None)

    async def refetch(self) -> FetchState:
        """Re-run from attempt 0 immediately, ignoring cache freshness."""
        if self._closed:
            return self._state
        self._launch(announce=True)
        return await self.wait_settled()

    def clear_cache(self):
        self._service.clear_cache(self._descriptor.cache_key)

    async def wait_settled(self) -> FetchState:
        """Wait until the current run (including retries) finishes."""
        task = self._task
        while task is not None:
            await asyncio.wait({task})
            if task is self._task:
                break
            task = self._task

        if task is not None and not task.cancelled() and task.exception() is not None:
            raise task.exception()
        return self._state

    def close(self):
        """Detach the consumer. Pending retries and late results become no-ops."""
        if self._closed:
            return
        self._closed = True
        self._cancel_backoff()
        self._listeners.clear()

    # -------------------------------------------------------------------------
    # Run loop
    # -------------------------------------------------------------------------

    def _launch(self, announce: bool):
        self._cancel_backoff()
        self._generation += 1
        generation = self._generation

        if announce:
            self._apply(
                generation,
                phase=FetchPhase.FETCHING,
                loading=True,
                error=None,
                retry_attempt=0
            )

        self._task = asyncio.get_running_loop().create_task(self._run(generation))

    def _cancel_backoff(self):
        if self._backoff_generation is not None and self._task is not None and not self._task.done():
            self._task.cancel()
        self._backoff_generation = None

    async def _run(self, generation: int):
        config = self._service.config
        source = self._descriptor.source
        attempt = 0

        while True:
            logger.info(
                "Fetching %s (attempt %d/%d)", source, attempt + 1, config.max_retries + 1
            )
            try:
                records = await self._service.read(self._descriptor)
            except FETCH_FAILURES as e:
                if self._is_stale(generation):
                    return

                error = self._service.error_from(e)
                logger.warning("Fetch attempt %d for %s failed: %s", attempt + 1, source, error.message)

                transient = getattr(e, 'transient', True)
                if not transient or attempt >= config.max_retries:
                    self._resolve_fallback(generation, error, attempt)
                    return

                delay = config.backoff_delay(attempt)
                attempt += 1
                logger.info("Retrying %s in %.2fs", source, delay)
                self._apply(
                    generation,
                    phase=FetchPhase.FETCHING,
                    loading=True,
                    connected=False,
                    retry_attempt=attempt
                )

                self._backoff_generation = generation
                try:
                    await self._service.sleep(delay)
                finally:
                    if self._backoff_generation == generation:
                        self._backoff_generation = None

                if self._is_stale(generation):
                    return
                continue

            if self._is_stale(generation):
                return

            stored_at = self._service.now()
            logger.info("Fetched %d records from %s", len(records), source)
            self._service.persist(self._descriptor.cache_key, records, stored_at)
            self._apply(
                generation,
                phase=FetchPhase.SETTLED,
                records=records,
                loading=False,
                error=None,
                connected=True,
                serving_from_cache=False,
                retry_attempt=0,
                last_updated=stored_at
            )
            return

    def _resolve_fallback(self, generation: int, error: FetchError, attempt: int):
        """Stale cache first, then the caller's seed."""
        entry = self._service.load_cached(self._descriptor.cache_key)

        if entry is not None:
            logger.info("Using cached data for %s as fallback", self._descriptor.cache_key)
            self._apply(
                generation,
                phase=FetchPhase.DEGRADED,
                records=entry.payload,
                loading=False,
                error=error.as_degraded(),
                connected=False,
                serving_from_cache=True,
                retry_attempt=attempt,
                last_updated=entry.stored_at
            )
            return

        logger.info("Using fallback data for %s", self._descriptor.cache_key)
        self._apply(
            generation,
            phase=FetchPhase.DEGRADED,
            records=self._fallback_seed,
            loading=False,
            error=error,
            connected=False,
            serving_from_cache=False,
            retry_attempt=attempt,
            last_updated=None
        )

    def _is_stale(self, generation: int) -> bool:
        return self._closed or generation != self._generation

    def _apply(self, generation: int, **changes):
        if self._is_stale(generation):
            return

        target = changes.get('phase', self._state.phase)
        if not can_transition(self._state.phase, target):
            raise InvalidTransition(self._state.phase, target)

        if 'records' in changes:
            changes['records'] = tuple(changes['records'])

        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("State listener failed for %s", self._descriptor.cache_key)
