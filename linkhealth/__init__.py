"""
Link health checking for external content.

Memoized reachability verdicts, static domain authority, trusted
source tables and editorial fallback content.
"""

from .contracts import (
    SourceCategory, Reachability, FeedStatus, LinkCacheConfig,
    TrustedSourceRecord, ProbeResult, LinkVerdict, FeedHealth, FallbackArticle
)
from .registry import TrustedSourceRegistry, DEFAULT_AUTHORITY_SCORES, parse_category
from .prober import LinkProber, HttpProber, ProbeError
from .feeds import parse_feed_items, FeedItem, FeedParseError
from .fallback import generate_fallback_content
from .cache import LinkHealthCache, normalize_url, classify_feed

__all__ = [
    'SourceCategory', 'Reachability', 'FeedStatus', 'LinkCacheConfig',
    'TrustedSourceRecord', 'ProbeResult', 'LinkVerdict', 'FeedHealth', 'FallbackArticle',
    'TrustedSourceRegistry', 'DEFAULT_AUTHORITY_SCORES', 'parse_category',
    'LinkProber', 'HttpProber', 'ProbeError',
    'parse_feed_items', 'FeedItem', 'FeedParseError',
    'generate_fallback_content',
    'LinkHealthCache', 'normalize_url', 'classify_feed',
]
