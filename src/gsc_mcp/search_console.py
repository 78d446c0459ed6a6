"""
Async Search Console REST client.

Every non-2xx response, and every transport failure, is raised as
``UpstreamAPIError`` carrying the HTTP status (``None`` when no response was
received), so callers map failures by status alone.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote

import aiohttp

from gsc_common.errors import UpstreamAPIError

logger = logging.getLogger(__name__)

SEARCH_CONSOLE_BASE_URL = "https://searchconsole.googleapis.com"
DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=60)


class AuthorizationProvider(Protocol):
    async def authorization_header(self) -> str: ...


def _encode(segment: str) -> str:
    return quote(segment, safe="")


class SearchConsoleClient:
    def __init__(
        self,
        credentials: AuthorizationProvider,
        *,
        base_url: str = SEARCH_CONSOLE_BASE_URL,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: aiohttp.ClientTimeout = DEFAULT_TIMEOUT,
    ) -> None:
        self.credentials = credentials
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(self, method: str, path: str, *, json_body: Any = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        headers = {"Authorization": await self.credentials.authorization_header()}
        t0 = time.perf_counter()
        try:
            async with self._get_session().request(method, url, json=json_body, headers=headers) as resp:
                status = resp.status
                reason = resp.reason or ""
                text = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("HTTP %s %s failed before a response: %s", method, path, e)
            raise UpstreamAPIError(None, f"Request to Search Console failed: {str(e) or e.__class__.__name__}") from e

        ms = int((time.perf_counter() - t0) * 1000)
        try:
            body = json.loads(text) if text.strip() else {}
        except json.JSONDecodeError:
            body = {}

        if status >= 400:
            message = None
            if isinstance(body, dict) and isinstance(body.get("error"), dict):
                message = body["error"].get("message")
            message = message or text.strip() or reason or f"HTTP {status}"
            logger.warning("HTTP %s %s failed (status=%s, ms=%s): %s", method, path, status, ms, message)
            raise UpstreamAPIError(status, message)

        logger.debug("HTTP %s %s -> %s (%sms)", method, path, status, ms)
        return body if isinstance(body, dict) else {}

    def _site_path(self, site_url: str) -> str:
        return f"/webmasters/v3/sites/{_encode(site_url)}"

    async def list_sites(self) -> List[Dict[str, Any]]:
        body = await self._request("GET", "/webmasters/v3/sites")
        return list(body.get("siteEntry") or [])

    async def query_search_analytics(self, site_url: str, request_body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", f"{self._site_path(site_url)}/searchAnalytics/query", json_body=request_body)

    async def inspect_url(self, site_url: str, inspection_url: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/v1/urlInspection/index:inspect",
            json_body={"inspectionUrl": inspection_url, "siteUrl": site_url},
        )

    async def list_sitemaps(self, site_url: str) -> List[Dict[str, Any]]:
        body = await self._request("GET", f"{self._site_path(site_url)}/sitemaps")
        return list(body.get("sitemap") or [])

    async def submit_sitemap(self, site_url: str, feedpath: str) -> None:
        await self._request("PUT", f"{self._site_path(site_url)}/sitemaps/{_encode(feedpath)}")

    async def delete_sitemap(self, site_url: str, feedpath: str) -> None:
        await self._request("DELETE", f"{self._site_path(site_url)}/sitemaps/{_encode(feedpath)}")
