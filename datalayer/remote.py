"""
Remote Store Client

Read-only access to the hosted data service.

PRINCIPLES:
===========
1. The store is a leaf dependency - it knows nothing about caching
2. Every failure is classified as transient or permanent
3. No retries here - retry policy belongs to the fetch service
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional

import httpx

from .contracts import Ordering, Filter


# =============================================================================
# ERRORS
# =============================================================================

class RemoteStoreError(Exception):
    """Base class for remote read failures."""

    transient = True

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RemoteReadError(RemoteStoreError):
    """The store answered with an error (5xx, 429, unreadable body)."""


class RemoteNetworkError(RemoteStoreError):
    """The request could not complete (timeout, connection failure)."""


class QueryRejectedError(RemoteStoreError):
    """The store rejected the query itself (bad filter, unknown table)."""

    transient = False


# =============================================================================
# INTERFACE
# =============================================================================

class RemoteStore:
    """
    Abstract read interface over the remote store.

    Implementations return a list of records or raise RemoteStoreError.
    """

    async def read(
        self,
        source: str,
        projection: str = "*",
        ordering: Optional[Ordering] = None,
        filter: Optional[Filter] = None
    ) -> List[Any]:
        raise NotImplementedError


# =============================================================================
# POSTGREST IMPLEMENTATION
# =============================================================================

def _format_filter_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (list, tuple, set, frozenset)):
        return "(" + ",".join(_format_filter_value(v) for v in value) + ")"
    return str(value)


def build_query_params(
    projection: str = "*",
    ordering: Optional[Ordering] = None,
    filter: Optional[Filter] = None
) -> Dict[str, str]:
    """Translate a read into PostgREST query parameters."""
    params = {'select': projection or "*"}

    if ordering:
        direction = "asc" if ordering.ascending else "desc"
        params['order'] = f"{ordering.field}.{direction}"

    if filter:
        params[filter.field] = f"{filter.operator}.{_format_filter_value(filter.value)}"

    return params


class PostgrestStore(RemoteStore):
    """
    Reads collections from a PostgREST endpoint (the hosted store's REST API).

    GUARANTEES:
    ===========
    1. Timeouts and connection failures raise RemoteNetworkError
    2. 5xx/429 and undecodable bodies raise RemoteReadError
    3. Other 4xx raise QueryRejectedError (never retried)
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self._base_url = base_url.rstrip('/')
        self._api_key = api_key
        self._timeout = timeout
        self._client = client

    def _headers(self) -> Dict[str, str]:
        headers = {'Accept': 'application/json'}
        if self._api_key:
            headers['apikey'] = self._api_key
            headers['Authorization'] = f"Bearer {self._api_key}"
        return headers

    def _url(self, source: str) -> str:
        return f"{self._base_url}/rest/v1/{source}"

    async def read(
        self,
        source: str,
        projection: str = "*",
        ordering: Optional[Ordering] = None,
        filter: Optional[Filter] = None
    ) -> List[Any]:
        params = build_query_params(projection, ordering, filter)

        try:
            if self._client is not None:
                response = await self._client.get(
                    self._url(source), params=params, headers=self._headers()
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(
                        self._url(source), params=params, headers=self._headers()
                    )
        except httpx.TimeoutException:
            raise RemoteNetworkError(f"Network error: request to {source} timed out")
        except httpx.TransportError as e:
            raise RemoteNetworkError(f"Network error: {e}")

        return self._decode(source, response)

    def _decode(self, source: str, response: httpx.Response) -> List[Any]:
        status = response.status_code

        if status >= 500 or status == 429:
            raise RemoteReadError(
                f"Database error: HTTP {status} reading {source}",
                status_code=status
            )
        if status >= 400:
            raise QueryRejectedError(
                f"Database error: {self._error_detail(response)}",
                status_code=status
            )

        try:
            body = response.json()
        except ValueError:
            raise RemoteReadError(
                f"Database error: malformed response from {source}",
                status_code=status
            )

        if not isinstance(body, list):
            raise RemoteReadError(
                f"Database error: expected a list of records from {source}",
                status_code=status
            )
        return body

    def _error_detail(self, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"HTTP {response.status_code}"
        if isinstance(body, dict) and body.get('message'):
            return str(body['message'])
        return f"HTTP {response.status_code}"


class UnavailableStore(RemoteStore):
    """Stand-in when no remote store is configured; every read is rejected."""

    def __init__(self, reason: str = "No remote store configured"):
        self._reason = reason

    async def read(
        self,
        source: str,
        projection: str = "*",
        ordering: Optional[Ordering] = None,
        filter: Optional[Filter] = None
    ) -> List[Any]:
        raise QueryRejectedError(f"Database error: {self._reason}")
