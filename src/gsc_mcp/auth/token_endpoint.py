"""
OAuth token endpoint client.

All three grants this package needs (authorization code, refresh token and
service-account JWT bearer) are form-encoded POSTs against the same endpoint,
made on the running event loop through aiohttp.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional, Tuple

import aiohttp

from gsc_common.errors import OAuthExchangeFailureError, TokenEndpointError
from gsc_mcp.auth.credentials import GOOGLE_TOKEN_URI
from gsc_mcp.auth.token_store import TokenRecord, now_ms

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN_S = 3600
DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=30)

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"


class GoogleTokenEndpoint:
    def __init__(
        self,
        *,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        token_uri: str = GOOGLE_TOKEN_URI,
        clock: Callable[[], int] = now_ms,
        timeout: aiohttp.ClientTimeout = DEFAULT_TIMEOUT,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.token_uri = token_uri
        self.clock = clock
        self.timeout = timeout

    async def _post(self, form: Dict[str, str], *, token_uri: Optional[str] = None) -> Dict[str, Any]:
        url = token_uri or self.token_uri
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(url, data=form) as resp:
                    status = resp.status
                    text = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TokenEndpointError(None, f"token endpoint unreachable: {e}") from e

        try:
            body = json.loads(text) if text else {}
        except json.JSONDecodeError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if status >= 400:
            message = body.get("error_description") or body.get("error") or text or f"HTTP {status}"
            logger.warning("Token endpoint rejected %s grant (status=%s)", form.get("grant_type"), status)
            raise TokenEndpointError(status, str(message))
        return body

    def _expiry_from(self, body: Dict[str, Any]) -> int:
        try:
            expires_in = int(body.get("expires_in", DEFAULT_EXPIRES_IN_S))
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN_S
        return self.clock() + expires_in * 1000

    async def exchange_code(self, code: str, *, code_verifier: Optional[str] = None) -> TokenRecord:
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.client_id or "",
            "client_secret": self.client_secret or "",
            "redirect_uri": self.redirect_uri or "",
        }
        if code_verifier:
            form["code_verifier"] = code_verifier

        try:
            body = await self._post(form)
        except TokenEndpointError as e:
            raise OAuthExchangeFailureError(e.message) from e

        access_token = body.get("access_token")
        refresh_token = body.get("refresh_token")
        if not access_token or not refresh_token:
            raise OAuthExchangeFailureError("response did not include both an access token and a refresh token")

        return TokenRecord(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type=body.get("token_type") or "Bearer",
            expiry_date=self._expiry_from(body),
            scope=body.get("scope"),
        )

    async def refresh(self, refresh_token: str) -> Dict[str, Any]:
        """Return ``access_token``, ``expiry_date`` and, when issued, a new ``refresh_token``."""
        body = await self._post(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.client_id or "",
                "client_secret": self.client_secret or "",
            }
        )
        access_token = body.get("access_token")
        if not access_token:
            raise TokenEndpointError(None, "refresh response did not include an access token")

        out: Dict[str, Any] = {"access_token": access_token, "expiry_date": self._expiry_from(body)}
        if body.get("refresh_token"):
            out["refresh_token"] = body["refresh_token"]
        if body.get("token_type"):
            out["token_type"] = body["token_type"]
        if body.get("scope"):
            out["scope"] = body["scope"]
        return out

    async def jwt_bearer(self, assertion: str, *, token_uri: Optional[str] = None) -> Tuple[str, int]:
        body = await self._post({"grant_type": JWT_BEARER_GRANT, "assertion": assertion}, token_uri=token_uri)
        access_token = body.get("access_token")
        if not access_token:
            raise TokenEndpointError(None, "JWT grant response did not include an access token")
        return access_token, self._expiry_from(body)
