"""
Test Fixtures

Deterministic fakes for the remote store, clock, sleep and prober.
Nothing here touches the network or waits on real time.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union

from datalayer.contracts import QueryDescriptor, Ordering
from datalayer.remote import RemoteStore
from datalayer.storage import SQLiteResponseCache
from linkhealth.contracts import ProbeResult
from linkhealth.prober import LinkProber


# =============================================================================
# FIXED TIMESTAMPS (deterministic)
# =============================================================================

T0 = datetime(2026, 1, 1, 10, 0, 0, tzinfo=timezone.utc)


def articles_query(cache_key: str = "articles") -> QueryDescriptor:
    return QueryDescriptor(
        source="articles",
        cache_key=cache_key,
        ordering=Ordering(field="published_at")
    )


# =============================================================================
# TIME
# =============================================================================

class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class RecordingSleep:
    """Records requested delays and returns at once."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)
        await asyncio.sleep(0)


class BlockingSleep:
    """Records requested delays and never returns (until cancelled)."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)
        await asyncio.Event().wait()


# =============================================================================
# REMOTE STORE
# =============================================================================

class Deferred:
    """Store outcome that resolves to records once released."""

    def __init__(self, records: List[Any]):
        self.records = records
        self.released = asyncio.Event()

    def release(self):
        self.released.set()


Outcome = Union[List[Any], Exception, Deferred]


class ScriptedStore(RemoteStore):
    """
    Returns scripted outcomes in order; the last outcome repeats.

    An Exception outcome is raised, a Deferred waits for release.
    """

    def __init__(self, *outcomes: Outcome):
        self.outcomes = list(outcomes)
        self.calls: List[Dict[str, Any]] = []

    async def read(self, source, projection="*", ordering=None, filter=None):
        self.calls.append({
            'source': source,
            'projection': projection,
            'ordering': ordering,
            'filter': filter,
        })
        index = min(len(self.calls), len(self.outcomes)) - 1
        outcome = self.outcomes[index]

        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, Deferred):
            await outcome.released.wait()
            return list(outcome.records)
        return list(outcome)


# =============================================================================
# PROBER
# =============================================================================

class FakeProber(LinkProber):
    """
    Answers HEAD probes from a table keyed by URL.

    Unlisted URLs answer 200 at their own address. An Exception value
    is raised. When gated, every probe waits until release().
    """

    def __init__(
        self,
        responses: Optional[Dict[str, Union[ProbeResult, Exception]]] = None,
        feeds: Optional[Dict[str, Union[tuple, Exception]]] = None,
        gated: bool = False
    ):
        self.responses = responses or {}
        self.feeds = feeds or {}
        self.calls: List[str] = []
        self.feed_calls: List[str] = []
        self._gate = asyncio.Event() if gated else None

    def release(self):
        if self._gate is not None:
            self._gate.set()

    async def head(self, url: str) -> ProbeResult:
        self.calls.append(url)
        if self._gate is not None:
            await self._gate.wait()

        response = self.responses.get(url)
        if isinstance(response, Exception):
            raise response
        if response is None:
            return ProbeResult(status_code=200, final_url=url, redirected=False, elapsed_ms=12.0)
        return response

    async def fetch_text(self, url: str):
        self.feed_calls.append(url)
        response = self.feeds[url]
        if isinstance(response, Exception):
            raise response
        return response


def rss_document(links: List[str]) -> str:
    items = "".join(
        f"<item><title>Item {i}</title><link>{link}</link></item>"
        for i, link in enumerate(links)
    )
    return f'<?xml version="1.0"?><rss version="2.0"><channel><title>Feed</title>{items}</channel></rss>'


# =============================================================================
# CACHE ROWS
# =============================================================================

def put_raw(cache, key: str, raw_payload: str, raw_stored_at: str):
    """Write an undecoded row straight into a cache's backing store."""
    if isinstance(cache, SQLiteResponseCache):
        with cache._get_conn() as conn:
            conn.execute(
                'INSERT OR REPLACE INTO response_cache (cache_key, payload, stored_at) VALUES (?, ?, ?)',
                (key, raw_payload, raw_stored_at)
            )
    else:
        cache._entries[key] = (raw_payload, raw_stored_at)
