"""
Network Prober

Lightweight existence checks for external URLs.
"""

from __future__ import annotations
from typing import Optional, Tuple
import time

import httpx

from .contracts import ProbeResult


class ProbeError(Exception):
    """The probe could not produce a response (network, timeout, blocked)."""


class LinkProber:
    """Abstract prober interface."""

    async def head(self, url: str) -> ProbeResult:
        raise NotImplementedError

    async def fetch_text(self, url: str) -> Tuple[int, str]:
        raise NotImplementedError


class HttpProber(LinkProber):
    """
    httpx-backed prober.

    HEAD is tried first; servers answering 405/501 to HEAD are asked
    again with GET. Redirects are followed and reported.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        user_agent: str = "ContentLinkValidator/1.0",
        client: Optional[httpx.AsyncClient] = None
    ):
        self._timeout = timeout
        self._user_agent = user_agent
        self._client = client

    def _headers(self, accept: str = '*/*') -> dict:
        return {
            'User-Agent': self._user_agent,
            'Accept': accept,
            'Cache-Control': 'no-cache',
        }

    async def _request(self, method: str, url: str, accept: str = '*/*') -> httpx.Response:
        try:
            if self._client is not None:
                return await self._client.request(
                    method, url, headers=self._headers(accept), follow_redirects=True
                )
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.request(
                    method, url, headers=self._headers(accept), follow_redirects=True
                )
        except httpx.TimeoutException:
            raise ProbeError("Request timed out")
        except httpx.HTTPError as e:
            raise ProbeError(str(e) or e.__class__.__name__)
        except (httpx.InvalidURL, ValueError) as e:
            raise ProbeError(f"Invalid URL: {e}")

    async def head(self, url: str) -> ProbeResult:
        started = time.perf_counter()
        response = await self._request('HEAD', url)
        if response.status_code in (405, 501):
            response = await self._request('GET', url)
        elapsed_ms = (time.perf_counter() - started) * 1000

        final_url = str(response.url)
        return ProbeResult(
            status_code=response.status_code,
            final_url=final_url,
            redirected=bool(response.history),
            elapsed_ms=elapsed_ms
        )

    async def fetch_text(self, url: str) -> Tuple[int, str]:
        response = await self._request(
            'GET', url, accept='application/rss+xml, application/xml, text/xml'
        )
        return response.status_code, response.text
