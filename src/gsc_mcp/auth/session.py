from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol, Sequence

from google.auth import crypt, jwt

from gsc_common.errors import (
    DelegatedCredentialMalformedError,
    MissingCredentialsError,
    NoAuthConfiguredError,
    TokenEndpointError,
    TokenRefreshFailureError,
)
from gsc_config.settings import Settings
from gsc_mcp.auth.credentials import (
    SCOPES,
    CredentialResolver,
    DelegatedCredential,
    InteractiveCredentialConfig,
)
from gsc_mcp.auth.token_endpoint import GoogleTokenEndpoint
from gsc_mcp.auth.token_store import TokenRecord, TokenStore, now_ms
from gsc_mcp.search_console import AuthorizationProvider, SearchConsoleClient

logger = logging.getLogger(__name__)


class AuthMode(str, Enum):
    INTERACTIVE = "interactive"
    DELEGATED = "delegated"


class InteractiveCredentials:
    """Bearer credentials backed by the stored token; never refreshed per call."""

    def __init__(self, token: TokenRecord) -> None:
        self.token = token

    async def authorization_header(self) -> str:
        return f"{self.token.token_type or 'Bearer'} {self.token.access_token}"


class Signer(Protocol):
    def sign(self, message: bytes) -> bytes: ...


def _rsa_signer(credential: DelegatedCredential) -> Signer:
    try:
        return crypt.RSASigner.from_service_account_info(
            {"private_key": credential.private_key, "private_key_id": credential.private_key_id}
        )
    except ValueError as e:
        raise DelegatedCredentialMalformedError(credential.source, f"invalid private_key: {e}") from e


class DelegatedCredentials:
    """Service-account credentials: a signed JWT is traded for a short-lived access token.

    The token is cached until shortly before expiry; the lock keeps concurrent
    calls from each running their own exchange.
    """

    REFRESH_MARGIN_MS = 60_000
    ASSERTION_LIFETIME_S = 3600

    def __init__(
        self,
        credential: DelegatedCredential,
        token_endpoint: GoogleTokenEndpoint,
        *,
        scopes: Sequence[str] = SCOPES,
        clock: Callable[[], int] = now_ms,
        signer: Optional[Signer] = None,
    ) -> None:
        self.credential = credential
        self.token_endpoint = token_endpoint
        self.scopes = list(scopes)
        self.clock = clock
        self._signer = signer or _rsa_signer(credential)
        self._access_token: Optional[str] = None
        self._expiry_ms = 0
        self._lock = asyncio.Lock()

    def _assertion(self) -> str:
        issued = self.clock() // 1000
        payload = {
            "iss": self.credential.client_email,
            "scope": " ".join(self.scopes),
            "aud": self.credential.token_uri,
            "iat": issued,
            "exp": issued + self.ASSERTION_LIFETIME_S,
        }
        token = jwt.encode(self._signer, payload)
        return token.decode("utf-8") if isinstance(token, bytes) else token

    async def authorization_header(self) -> str:
        async with self._lock:
            if self._access_token is None or self.clock() >= self._expiry_ms - self.REFRESH_MARGIN_MS:
                logger.debug("Requesting service account access token for %s", self.credential.client_email)
                self._access_token, self._expiry_ms = await self.token_endpoint.jwt_bearer(
                    self._assertion(), token_uri=self.credential.token_uri
                )
            return f"Bearer {self._access_token}"


@dataclass
class AuthSession:
    mode: AuthMode
    client: SearchConsoleClient
    token: Optional[TokenRecord] = None

    async def aclose(self) -> None:
        await self.client.close()


ClientFactory = Callable[[AuthorizationProvider], SearchConsoleClient]
EndpointFactory = Callable[[Optional[InteractiveCredentialConfig]], GoogleTokenEndpoint]


def _default_endpoint(config: Optional[InteractiveCredentialConfig]) -> GoogleTokenEndpoint:
    if config is None:
        return GoogleTokenEndpoint()
    return GoogleTokenEndpoint(client_id=config.client_id, client_secret=config.client_secret)


class AuthSessionProvider:
    """Selects exactly one credential mode at startup and builds the client for it.

    Order: stored interactive token -> service account -> NoAuthConfiguredError.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        resolver: Optional[CredentialResolver] = None,
        token_store: Optional[TokenStore] = None,
        endpoint_factory: EndpointFactory = _default_endpoint,
        client_factory: ClientFactory = SearchConsoleClient,
        signer_factory: Optional[Callable[[DelegatedCredential], Signer]] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.settings = settings
        self.resolver = resolver or CredentialResolver(settings)
        self.token_store = token_store or TokenStore(settings.token_path)
        self.endpoint_factory = endpoint_factory
        self.client_factory = client_factory
        self.signer_factory = signer_factory
        self.clock = clock

    async def resolve(self) -> AuthSession:
        session = await self._interactive_session()
        if session is not None:
            logger.info("Using OAuth authentication")
            return session

        delegated = self.resolver.resolve_delegated_credential()
        if delegated is not None:
            logger.info("Using service account authentication (%s)", delegated.client_email)
            return self._delegated_session(delegated)

        raise NoAuthConfiguredError()

    async def _interactive_session(self) -> Optional[AuthSession]:
        try:
            config = self.resolver.resolve_interactive_config()
        except MissingCredentialsError:
            logger.debug("Interactive credentials not configured; trying service account")
            return None

        token = self.token_store.load()
        if token is None:
            logger.debug("No usable OAuth token at %s", self.token_store.path)
            return None

        if token.is_expired(self.clock()):
            token = await self._refresh(config, token)

        client = self.client_factory(InteractiveCredentials(token))
        return AuthSession(mode=AuthMode.INTERACTIVE, client=client, token=token)

    async def _refresh(self, config: InteractiveCredentialConfig, token: TokenRecord) -> TokenRecord:
        logger.info("Stored access token expired; refreshing")
        endpoint = self.endpoint_factory(config)
        try:
            fresh = await endpoint.refresh(token.refresh_token)
        except TokenEndpointError as e:
            raise TokenRefreshFailureError(e.message) from e

        merged = TokenRecord(
            access_token=fresh["access_token"],
            refresh_token=fresh.get("refresh_token") or token.refresh_token,
            token_type=fresh.get("token_type") or token.token_type,
            expiry_date=fresh["expiry_date"],
            scope=fresh.get("scope") or token.scope,
        )
        self.token_store.save(merged)
        return merged

    def _delegated_session(self, credential: DelegatedCredential) -> AuthSession:
        signer = self.signer_factory(credential) if self.signer_factory else None
        credentials = DelegatedCredentials(
            credential,
            self.endpoint_factory(None),
            clock=self.clock,
            signer=signer,
        )
        return AuthSession(mode=AuthMode.DELEGATED, client=self.client_factory(credentials))
