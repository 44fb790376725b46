"""
Cached remote-data access layer.

Fetches record lists from the hosted store with retry, exponential
backoff, a persisted snapshot cache and caller-supplied fallback data.
"""

from .contracts import (
    FetchPhase, FetchErrorCode, FetchConfig, Ordering, Filter,
    QueryDescriptor, CacheEntry, FetchError, FetchState
)
from .remote import (
    RemoteStore, PostgrestStore, UnavailableStore, RemoteStoreError, RemoteReadError,
    RemoteNetworkError, QueryRejectedError
)
from .storage import (
    PersistentCache, InMemoryResponseCache, SQLiteResponseCache,
    CacheSerializationError
)
from .service import CachedFetchService, QueryHandle, InvalidTransition

__all__ = [
    'FetchPhase', 'FetchErrorCode', 'FetchConfig', 'Ordering', 'Filter',
    'QueryDescriptor', 'CacheEntry', 'FetchError', 'FetchState',
    'RemoteStore', 'PostgrestStore', 'UnavailableStore', 'RemoteStoreError', 'RemoteReadError',
    'RemoteNetworkError', 'QueryRejectedError',
    'PersistentCache', 'InMemoryResponseCache', 'SQLiteResponseCache',
    'CacheSerializationError',
    'CachedFetchService', 'QueryHandle', 'InvalidTransition',
]
