"""
Data Layer Contracts

Immutable data structures for the cached remote-data access layer.

BOUNDARY: Cached Fetch Service
All records leave the remote store through these contracts.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Optional, Tuple
from datetime import datetime, timezone
from enum import Enum


# =============================================================================
# ENUMS
# =============================================================================

class FetchPhase(Enum):
    """Lifecycle phase of a single query."""
    IDLE = "idle"
    CACHE_HIT = "cache_hit"
    FETCHING = "fetching"
    DEGRADED = "degraded"
    SETTLED = "settled"


class FetchErrorCode(Enum):
    """
    Explicit error codes surfaced through FetchState.error.

    SERIALIZATION never reaches a caller as a failure: a malformed
    cache payload is a cache miss. It is enumerated for logging.
    """
    REMOTE_READ = "remote_read"
    NETWORK = "network"
    QUERY_REJECTED = "query_rejected"
    SERIALIZATION = "serialization"


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class FetchConfig:
    """
    Retry and cache policy for the Cached Fetch Service.

    Delays are in seconds. The n-th retry waits
    retry_delay_seconds * 2 ** (n - 1).
    """
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    cache_ttl_seconds: int = 10 * 60

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.retry_delay_seconds < 0:
            raise ValueError("retry_delay_seconds must be >= 0")
        if self.cache_ttl_seconds <= 0:
            raise ValueError("cache_ttl_seconds must be positive")

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after `attempt` failed retries (0-based)."""
        return self.retry_delay_seconds * (2 ** attempt)


# =============================================================================
# QUERY DESCRIPTION
# =============================================================================

@dataclass(frozen=True)
class Ordering:
    """Sort order for a remote read."""
    field: str
    ascending: bool = False


@dataclass(frozen=True)
class Filter:
    """Single-column filter, e.g. Filter("status", "published")."""
    field: str
    value: Any
    operator: str = "eq"


@dataclass(frozen=True)
class QueryDescriptor:
    """
    Describes one list read against the remote store.

    Distinct descriptors may share a cache_key to share one cache slot.
    """
    source: str
    cache_key: str
    projection: str = "*"
    ordering: Optional[Ordering] = None
    filter: Optional[Filter] = None

    def __post_init__(self):
        if not self.source or not isinstance(self.source, str):
            raise ValueError("source must be a non-empty string")
        if not self.cache_key or not isinstance(self.cache_key, str):
            raise ValueError("cache_key must be a non-empty string")


# =============================================================================
# CACHE CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class CacheEntry:
    """Last successfully fetched record set for a cache key."""
    payload: Tuple[Any, ...]
    stored_at: datetime

    def __post_init__(self):
        if self.stored_at.tzinfo is None:
            object.__setattr__(self, 'stored_at', self.stored_at.replace(tzinfo=timezone.utc))

    def age_seconds(self, now: datetime) -> float:
        return (now - self.stored_at).total_seconds()

    def is_fresh(self, now: datetime, ttl_seconds: float) -> bool:
        return self.age_seconds(now) < ttl_seconds


# =============================================================================
# FETCH STATE
# =============================================================================

@dataclass(frozen=True)
class FetchError:
    """
    Error as data. Carried next to the best available records,
    never in place of them.
    """
    code: FetchErrorCode
    message: str
    occurred_at: datetime
    degraded: bool = False

    def as_degraded(self) -> FetchError:
        """Same error, annotated as being shown next to cached data."""
        if self.degraded:
            return self
        return replace(
            self,
            message=f"{self.message} (showing cached data)",
            degraded=True
        )


@dataclass(frozen=True)
class FetchState:
    """
    Snapshot of one query as seen by its consumer.

    A new snapshot is published on every transition; snapshots are
    never mutated.
    """
    records: Tuple[Any, ...] = field(default_factory=tuple)
    loading: bool = True
    error: Optional[FetchError] = None
    connected: bool = False
    serving_from_cache: bool = False
    retry_attempt: int = 0
    phase: FetchPhase = FetchPhase.IDLE
    last_updated: Optional[datetime] = None

    @classmethod
    def initial(cls, fallback_seed: Tuple[Any, ...] = ()) -> FetchState:
        return cls(records=tuple(fallback_seed))

    @property
    def is_degraded(self) -> bool:
        return self.phase == FetchPhase.DEGRADED
