"""
Service Settings

Environment-driven configuration for the HTTP service.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Mapping, Optional
import os

from datalayer.contracts import FetchConfig
from linkhealth.contracts import LinkCacheConfig


def _str(env: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    """Value of name, or default when it is unset or blank."""
    raw = (env.get(name) or "").strip() or None
    return default if raw is None else raw


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _str(env, name)
    return default if raw is None else int(raw)


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _str(env, name)
    return default if raw is None else float(raw)


@dataclass(frozen=True)
class ServiceSettings:
    """
    Settings for the data access service.

    store_url unset means no remote store is configured; collection
    reads then resolve straight to cache or fallback.
    """
    store_url: Optional[str] = None
    store_api_key: Optional[str] = None
    store_timeout_seconds: float = 10.0
    cache_db_path: Optional[str] = None
    trusted_sources_path: Optional[str] = None
    log_level: str = "INFO"

    fetch: FetchConfig = FetchConfig()
    links: LinkCacheConfig = LinkCacheConfig()

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> 'ServiceSettings':
        env = os.environ if env is None else env

        fetch = FetchConfig(
            max_retries=_int(env, "FETCH_MAX_RETRIES", 3),
            retry_delay_seconds=_float(env, "FETCH_RETRY_DELAY_SECONDS", 1.0),
            cache_ttl_seconds=_int(env, "FETCH_CACHE_TTL_SECONDS", 600),
        )
        links = LinkCacheConfig(
            ttl_seconds=_int(env, "LINK_CACHE_TTL_SECONDS", 86400),
            probe_timeout_seconds=_float(env, "LINK_PROBE_TIMEOUT_SECONDS", 10.0),
            user_agent=_str(env, "LINK_PROBE_USER_AGENT", LinkCacheConfig.user_agent),
        )

        return cls(
            store_url=_str(env, "STORE_URL"),
            store_api_key=_str(env, "STORE_API_KEY"),
            store_timeout_seconds=_float(env, "STORE_TIMEOUT_SECONDS", 10.0),
            cache_db_path=_str(env, "CACHE_DB_PATH"),
            trusted_sources_path=_str(env, "TRUSTED_SOURCES_PATH"),
            log_level=_str(env, "LOG_LEVEL", "INFO").upper(),
            fetch=fetch,
            links=links,
        )
