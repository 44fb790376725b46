"""
Link Health Cache

Classifies external URLs as reachable/trustworthy without probing
any URL more than once per TTL window.

GUARANTEES:
===========
1. Concurrent validations of one URL share a single probe
2. A fresh verdict is returned without touching the network
3. Probe failures become UNKNOWN verdicts - nothing is raised outward
4. Authority comes from static tables and never needs the network
"""

from __future__ import annotations
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional
from datetime import datetime, timezone
from functools import partial
from urllib.parse import urlsplit, urlunsplit
import asyncio
import logging
import time

from .contracts import (
    LinkVerdict, LinkCacheConfig, Reachability, FeedHealth, FeedStatus,
    ProbeResult, TrustedSourceRecord, FallbackArticle
)
from .registry import TrustedSourceRegistry, CategoryArg
from .prober import LinkProber, ProbeError
from .feeds import parse_feed_items, FeedParseError
from .fallback import generate_fallback_content


logger = logging.getLogger(__name__)

_DEFAULT_PORTS = {'http': 80, 'https': 443}


def normalize_url(url: str) -> str:
    """
    Cache key for a URL.

    Lower-cases scheme and host, drops default ports and fragments and
    strips the trailing slash of non-root paths. Strings that are not
    absolute URLs are returned trimmed but otherwise untouched.
    """
    stripped = url.strip()
    try:
        parts = urlsplit(stripped)
        port = parts.port
    except ValueError:
        return stripped

    if not parts.scheme or not parts.hostname:
        return stripped

    scheme = parts.scheme.lower()
    host = parts.hostname.lower()
    if ':' in host:
        host = f"[{host}]"

    netloc = host
    if parts.username:
        userinfo = parts.username
        if parts.password:
            userinfo += f":{parts.password}"
        netloc = f"{userinfo}@{netloc}"
    if port is not None and _DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{netloc}:{port}"

    path = parts.path or '/'
    if len(path) > 1:
        path = path.rstrip('/') or '/'

    return urlunsplit((scheme, netloc, path, parts.query, ''))


def classify_feed(valid_items: int, total_items: int) -> FeedStatus:
    """Feed status from the share of sampled links that validated."""
    if total_items == 0:
        return FeedStatus.OFFLINE

    ratio = valid_items / total_items
    if ratio >= 0.9:
        return FeedStatus.HEALTHY
    if ratio >= 0.7:
        return FeedStatus.WARNING
    if ratio >= 0.3:
        return FeedStatus.CRITICAL
    return FeedStatus.OFFLINE


class LinkHealthCache:
    """
    Memoized link validation backed by a prober and static trust tables.

    The verdict map and in-flight registry are plain dicts: safe under a
    single event loop only.
    """

    def __init__(
        self,
        prober: LinkProber,
        registry: Optional[TrustedSourceRegistry] = None,
        config: Optional[LinkCacheConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None
    ):
        self._prober = prober
        self._registry = registry or TrustedSourceRegistry.default()
        self._config = config or LinkCacheConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep or asyncio.sleep

        self._verdicts: Dict[str, LinkVerdict] = {}
        self._in_flight: Dict[str, asyncio.Future] = {}
        self._feed_health: Dict[str, FeedHealth] = {}

        self._hits = 0
        self._misses = 0
        self._probes = 0

    @property
    def registry(self) -> TrustedSourceRegistry:
        return self._registry

    # =========================================================================
    # VALIDATION
    # =========================================================================

    async def validate(self, url: str, use_cache: bool = True) -> LinkVerdict:
        """Verdict for url; probes at most once per TTL window."""
        key = normalize_url(url)

        if use_cache:
            cached = self._fresh(key)
            if cached is not None:
                self._hits += 1
                logger.debug("Link cache hit for %s", key)
                return cached

        self._misses += 1
        pending = self._in_flight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._probe(key))
            self._in_flight[key] = pending
            pending.add_done_callback(partial(self._release, key))

        # One caller being cancelled must not cancel the shared probe
        return await asyncio.shield(pending)

    def get_cached_result(self, url: str) -> Optional[LinkVerdict]:
        """Fresh verdict if one exists; never probes."""
        return self._fresh(normalize_url(url))

    async def validate_batch(self, urls: Iterable[str]) -> Dict[str, LinkVerdict]:
        """Validate many URLs, spacing new probes by the batch interval."""
        interval = self._config.batch_interval_seconds
        tasks: Dict[str, asyncio.Future] = {}

        for url in dict.fromkeys(urls):
            needs_probe = self._fresh(normalize_url(url)) is None
            if tasks and needs_probe and interval > 0:
                await self._sleep(interval)
            tasks[url] = asyncio.ensure_future(self.validate(url))

        results = await asyncio.gather(*tasks.values())
        return dict(zip(tasks.keys(), results))

    def authority_score(self, url: str) -> int:
        return self._registry.authority_for(url)

    # =========================================================================
    # STATIC TABLES
    # =========================================================================

    def get_trusted_sources(self, category: CategoryArg = None) -> List[TrustedSourceRecord]:
        return self._registry.trusted_sources(category)

    def generate_fallback_content(self, category: CategoryArg) -> List[FallbackArticle]:
        return generate_fallback_content(category, now=self._clock())

    # =========================================================================
    # FEEDS
    # =========================================================================

    async def validate_feed(self, feed_url: str) -> FeedHealth:
        """Fetch a feed and judge it by the links of its first items."""
        started = time.perf_counter()

        try:
            status_code, text = await self._prober.fetch_text(feed_url)
            if status_code >= 400:
                raise ProbeError(f"HTTP {status_code}")
            items = parse_feed_items(text)
        except (ProbeError, FeedParseError) as e:
            logger.warning("Feed %s is offline: %s", feed_url, e)
            health = FeedHealth(
                feed_url=feed_url,
                status=FeedStatus.OFFLINE,
                checked_at=self._clock(),
                total_items=0,
                valid_items=0,
                response_time_ms=(time.perf_counter() - started) * 1000,
                uptime=0.0,
                errors=(str(e),)
            )
            self._feed_health[feed_url] = health
            return health

        response_time_ms = (time.perf_counter() - started) * 1000
        sample = items[:self._config.feed_sample_size]
        verdicts = await asyncio.gather(*(self.validate(item.link) for item in sample))

        valid_items = sum(1 for v in verdicts if v.valid)
        health = FeedHealth(
            feed_url=feed_url,
            status=classify_feed(valid_items, len(sample)),
            checked_at=self._clock(),
            total_items=len(items),
            valid_items=valid_items,
            response_time_ms=response_time_ms,
            uptime=(valid_items / len(sample) * 100) if sample else 0.0,
            errors=tuple(v.failure_reason for v in verdicts if v.failure_reason)
        )
        self._feed_health[feed_url] = health
        return health

    def get_feed_health(self, feed_url: str) -> Optional[FeedHealth]:
        return self._feed_health.get(feed_url)

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def clear_cache(self):
        """Drop all verdicts and feed health. In-flight probes still complete."""
        self._verdicts.clear()
        self._feed_health.clear()

    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            'urls': len(self._verdicts),
            'feeds': len(self._feed_health),
            'in_flight': len(self._in_flight),
            'hits': self._hits,
            'misses': self._misses,
            'probes': self._probes,
            'hit_rate': self._hits / total if total > 0 else 0.0,
        }

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _fresh(self, key: str) -> Optional[LinkVerdict]:
        verdict = self._verdicts.get(key)
        if verdict is not None and verdict.is_fresh(self._clock(), self._config.ttl_seconds):
            return verdict
        return None

    def _release(self, key: str, future: asyncio.Future):
        if self._in_flight.get(key) is future:
            del self._in_flight[key]

    async def _probe(self, key: str) -> LinkVerdict:
        self._probes += 1
        authority = self._registry.authority_for(key)

        try:
            result = await self._prober.head(key)
        except ProbeError as e:
            verdict = self._unknown_verdict(key, authority, str(e))
        except Exception as e:
            logger.warning("Unexpected probe failure for %s: %r", key, e)
            verdict = self._unknown_verdict(key, authority, str(e) or e.__class__.__name__)
        else:
            verdict = self._verdict_from(key, authority, result)

        self._verdicts[key] = verdict
        return verdict

    def _verdict_from(self, key: str, authority: int, result: ProbeResult) -> LinkVerdict:
        valid = 200 <= result.status_code < 400
        redirect_target = None
        if normalize_url(result.final_url) != key:
            redirect_target = result.final_url

        return LinkVerdict(
            url=key,
            valid=valid,
            status_code=result.status_code,
            authority_score=authority,
            checked_at=self._clock(),
            reachability=Reachability.REACHABLE if valid else Reachability.BROKEN,
            redirect_target=redirect_target,
            failure_reason=None if valid else f"HTTP {result.status_code}",
            response_time_ms=result.elapsed_ms
        )

    def _unknown_verdict(self, key: str, authority: int, reason: str) -> LinkVerdict:
        logger.info("Probe for %s indeterminate: %s", key, reason)
        return LinkVerdict(
            url=key,
            valid=False,
            status_code=0,
            authority_score=authority,
            checked_at=self._clock(),
            reachability=Reachability.UNKNOWN,
            failure_reason=reason
        )
