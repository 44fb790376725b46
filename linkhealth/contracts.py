"""
Link Health Contracts

Immutable data structures for link validation and trusted sources.

BOUNDARY: Link Health Cache
Every validation outcome, including failure, is one of these types.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Tuple
from datetime import datetime
from enum import Enum


# =============================================================================
# ENUMS
# =============================================================================

class SourceCategory(Enum):
    """Editorial categories of trusted content sources."""
    HEALTHCARE = "Healthcare"
    FINANCE = "Finance"
    REAL_ESTATE = "Real Estate"
    AI_AUTOMATION = "AI Automation"


class Reachability(Enum):
    """
    Outcome of a live probe.

    UNKNOWN means the probe itself could not run (network failure,
    blocked request). It is never reported as BROKEN.
    """
    REACHABLE = "reachable"
    BROKEN = "broken"
    UNKNOWN = "unknown"


class FeedStatus(Enum):
    """Health classification of an RSS/Atom feed."""
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    OFFLINE = "offline"


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class LinkCacheConfig:
    """Configuration for the Link Health Cache."""
    ttl_seconds: int = 24 * 60 * 60
    probe_timeout_seconds: float = 10.0
    user_agent: str = "ContentLinkValidator/1.0"
    batch_interval_seconds: float = 0.1
    feed_sample_size: int = 10


# =============================================================================
# TRUSTED SOURCES
# =============================================================================

@dataclass(frozen=True)
class TrustedSourceRecord:
    """Static reference data for one content source."""
    id: str
    display_name: str
    domain: str
    feed_url: str
    base_authority_score: int
    category: SourceCategory
    active: bool = True

    def __post_init__(self):
        if not 0 <= self.base_authority_score <= 100:
            raise ValueError("base_authority_score must be within 0-100")

    def __hash__(self):
        return hash(self.id)


# =============================================================================
# VERDICTS
# =============================================================================

@dataclass(frozen=True)
class ProbeResult:
    """Raw outcome of a HEAD request."""
    status_code: int
    final_url: str
    redirected: bool
    elapsed_ms: float = 0.0


@dataclass(frozen=True)
class LinkVerdict:
    """
    Validity and authority of one normalized URL.

    Produced once per TTL window; a later verdict supersedes it.
    """
    url: str
    valid: bool
    status_code: int
    authority_score: int
    checked_at: datetime
    reachability: Reachability
    redirect_target: Optional[str] = None
    failure_reason: Optional[str] = None
    response_time_ms: float = 0.0

    def age_seconds(self, now: datetime) -> float:
        return (now - self.checked_at).total_seconds()

    def is_fresh(self, now: datetime, ttl_seconds: float) -> bool:
        return self.age_seconds(now) < ttl_seconds


@dataclass(frozen=True)
class FeedHealth:
    """Health of a feed derived from validating a sample of its item links."""
    feed_url: str
    status: FeedStatus
    checked_at: datetime
    total_items: int
    valid_items: int
    response_time_ms: float
    uptime: float
    errors: Tuple[str, ...] = field(default_factory=tuple)


# =============================================================================
# FALLBACK CONTENT
# =============================================================================

@dataclass(frozen=True)
class FallbackArticle:
    """Editorial substitute shown when no validated live content exists."""
    title: str
    excerpt: str
    url: str
    source: str
    publish_date: datetime
    category: SourceCategory
