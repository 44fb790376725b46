"""
API Mapper
==========

Transforms internal contracts into JSON-ready dicts.
Enums become their values, datetimes ISO 8601 with a trailing Z.
"""
from typing import Any, Dict, Optional
from datetime import datetime, timezone

from datalayer.contracts import FetchState, FetchError
from linkhealth.contracts import (
    LinkVerdict, TrustedSourceRecord, FallbackArticle, FeedHealth
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


def map_error(error: Optional[FetchError]) -> Optional[Dict[str, Any]]:
    if error is None:
        return None
    return {
        "code": error.code.value,
        "message": error.message,
        "occurred_at": _iso(error.occurred_at),
        "degraded": error.degraded,
    }


def map_fetch_state(state: FetchState) -> Dict[str, Any]:
    return {
        "records": list(state.records),
        "loading": state.loading,
        "error": map_error(state.error),
        "connected": state.connected,
        "serving_from_cache": state.serving_from_cache,
        "retry_attempt": state.retry_attempt,
        "phase": state.phase.value,
        "last_updated": _iso(state.last_updated),
    }


def map_verdict(verdict: LinkVerdict) -> Dict[str, Any]:
    return {
        "url": verdict.url,
        "valid": verdict.valid,
        "status_code": verdict.status_code,
        "redirect_target": verdict.redirect_target,
        "authority_score": verdict.authority_score,
        "checked_at": _iso(verdict.checked_at),
        "reachability": verdict.reachability.value,
        "failure_reason": verdict.failure_reason,
        "response_time_ms": round(verdict.response_time_ms, 2),
    }


def map_source(source: TrustedSourceRecord) -> Dict[str, Any]:
    return {
        "id": source.id,
        "display_name": source.display_name,
        "domain": source.domain,
        "feed_url": source.feed_url,
        "base_authority_score": source.base_authority_score,
        "category": source.category.value,
        "active": source.active,
    }


def map_article(article: FallbackArticle) -> Dict[str, Any]:
    return {
        "title": article.title,
        "excerpt": article.excerpt,
        "url": article.url,
        "source": article.source,
        "publish_date": _iso(article.publish_date),
        "category": article.category.value,
    }


def map_feed_health(health: FeedHealth) -> Dict[str, Any]:
    return {
        "feed_url": health.feed_url,
        "status": health.status.value,
        "checked_at": _iso(health.checked_at),
        "total_items": health.total_items,
        "valid_items": health.valid_items,
        "response_time_ms": round(health.response_time_ms, 2),
        "uptime": round(health.uptime, 2),
        "errors": list(health.errors),
    }
