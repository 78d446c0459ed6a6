"""
Interactive authorization-code flow.

    IDLE -> AWAITING_CALLBACK -> {SUCCEEDED | FAILED | TIMED_OUT} -> CLOSED

The callback listener is an aiohttp app with a single GET route. Exactly one
terminal transition happens per run: the first of (callback error, missing
code, code exchanged, timeout) settles the result future, and every later
attempt is a no-op. The listener is closed once, by ``close()``, whichever
path gets there first.
"""

from __future__ import annotations

import asyncio
import html
import logging
import socket
import webbrowser
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence

from aiohttp import web
from google_auth_oauthlib.flow import Flow

from gsc_common.errors import (
    OAuthCallbackError,
    OAuthExchangeFailureError,
    OAuthFlowError,
    OAuthTimeoutError,
)
from gsc_config.settings import (
    DEFAULT_OAUTH_CALLBACK_PATH,
    DEFAULT_OAUTH_HOST,
    DEFAULT_OAUTH_PORT,
    DEFAULT_OAUTH_TIMEOUT_S,
    Settings,
)
from gsc_mcp.auth.credentials import GOOGLE_AUTH_URI, GOOGLE_TOKEN_URI, SCOPES, InteractiveCredentialConfig
from gsc_mcp.auth.token_endpoint import GoogleTokenEndpoint
from gsc_mcp.auth.token_store import TokenRecord, TokenStore

logger = logging.getLogger(__name__)

CallbackHandler = Callable[[web.Request], Awaitable[web.StreamResponse]]


class FlowState(str, Enum):
    IDLE = "idle"
    AWAITING_CALLBACK = "awaiting_callback"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CLOSED = "closed"


_TERMINAL = {FlowState.SUCCEEDED, FlowState.FAILED, FlowState.TIMED_OUT}


SUCCESS_PAGE = """<html>
  <head>
    <style>
      body { font-family: system-ui; text-align: center; padding: 50px; }
      h1 { color: #22c55e; }
    </style>
  </head>
  <body>
    <h1>Authentication Successful!</h1>
    <p>You can close this window and return to the terminal.</p>
  </body>
</html>
"""


def failure_page(message: str) -> str:
    return f"<h1>Authentication Failed</h1><p>{html.escape(message)}</p>"


class CallbackListener:
    """Local HTTP listener serving one GET route."""

    def __init__(self, host: str, port: int, path: str, handler: CallbackHandler) -> None:
        self.host = host
        self.port = port
        self.path = path
        self.handler = handler
        self._runner: Optional[web.AppRunner] = None

    async def start(self) -> int:
        """Bind and start serving; return the bound port (useful when port=0)."""
        app = web.Application()
        app.router.add_get(self.path, self.handler)
        runner = web.AppRunner(app, handle_signals=False)
        await runner.setup()

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
        except OSError:
            sock.close()
            await runner.cleanup()
            raise

        site = web.SockSite(runner, sock)
        await site.start()
        self._runner = runner
        self.port = sock.getsockname()[1]
        return self.port

    async def close(self) -> None:
        runner, self._runner = self._runner, None
        if runner is not None:
            await runner.cleanup()


ListenerFactory = Callable[[str, int, str, CallbackHandler], CallbackListener]


def _default_open_browser(url: str) -> bool:
    try:
        return webbrowser.open(url)
    except webbrowser.Error:
        return False


class OAuthFlowCoordinator:
    def __init__(
        self,
        config: InteractiveCredentialConfig,
        token_store: TokenStore,
        *,
        token_endpoint: Optional[GoogleTokenEndpoint] = None,
        host: str = DEFAULT_OAUTH_HOST,
        port: int = DEFAULT_OAUTH_PORT,
        callback_path: str = DEFAULT_OAUTH_CALLBACK_PATH,
        timeout: float = DEFAULT_OAUTH_TIMEOUT_S,
        scopes: Sequence[str] = SCOPES,
        listener_factory: ListenerFactory = CallbackListener,
        open_browser: Callable[[str], bool] = _default_open_browser,
    ) -> None:
        self.config = config
        self.token_store = token_store
        self.token_endpoint = token_endpoint or GoogleTokenEndpoint(
            client_id=config.client_id,
            client_secret=config.client_secret,
        )
        self.host = host
        self.port = port
        self.callback_path = callback_path
        self.timeout = timeout
        self.scopes = list(scopes)
        self.listener_factory = listener_factory
        self.open_browser = open_browser

        self._state = FlowState.IDLE
        self._listener: Optional[CallbackListener] = None
        self._result: Optional[asyncio.Future[TokenRecord]] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._callback_claimed = False
        self._closed = False
        self._code_verifier: Optional[str] = None
        self.failure: Optional[OAuthFlowError | Exception] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        config: InteractiveCredentialConfig,
        token_store: TokenStore,
        **kwargs,
    ) -> "OAuthFlowCoordinator":
        kwargs.setdefault("host", settings.oauth_host)
        kwargs.setdefault("port", settings.oauth_port)
        kwargs.setdefault("callback_path", settings.oauth_callback_path)
        kwargs.setdefault("timeout", settings.oauth_timeout)
        return cls(config, token_store, **kwargs)

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.host}:{self.port}{self.callback_path}"

    def build_consent_url(self) -> str:
        client_config = {
            "installed": {
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "auth_uri": GOOGLE_AUTH_URI,
                "token_uri": GOOGLE_TOKEN_URI,
                "redirect_uris": [self.redirect_uri],
            }
        }
        flow = Flow.from_client_config(client_config, scopes=self.scopes, redirect_uri=self.redirect_uri)
        # access_type='offline' ensures we get a refresh_token
        # prompt='consent' forces the consent screen so re-authorization issues a new one
        url, _state = flow.authorization_url(access_type="offline", prompt="consent")
        self._code_verifier = getattr(flow, "code_verifier", None)
        return url

    async def start(self) -> str:
        """IDLE -> AWAITING_CALLBACK. Returns the consent URL."""
        if self._state is not FlowState.IDLE:
            raise RuntimeError(f"OAuth flow already started (state={self._state.value})")

        loop = asyncio.get_running_loop()
        self._result = loop.create_future()
        self._listener = self.listener_factory(self.host, self.port, self.callback_path, self._handle_callback)
        self.port = await self._listener.start()

        # redirect URI depends on the bound port, so build the URL after binding
        self.token_endpoint.redirect_uri = self.redirect_uri
        url = self.build_consent_url()

        self._state = FlowState.AWAITING_CALLBACK
        self._timer = loop.call_later(self.timeout, self._on_timeout)
        logger.info("Waiting for OAuth callback on %s", self.redirect_uri)
        return url

    async def await_result(self) -> TokenRecord:
        if self._result is None:
            raise RuntimeError("OAuth flow has not been started")
        try:
            return await self._result
        finally:
            await self.close()

    async def close(self) -> None:
        """Shut the listener down. Safe to call from any path, any number of times."""
        if self._closed:
            return
        self._closed = True

        if self._timer is not None:
            self._timer.cancel()
        if self._result is not None and not self._result.done():
            self._result.cancel()
        if self._listener is not None:
            await self._listener.close()
        self._state = FlowState.CLOSED

    def _settle(
        self,
        state: FlowState,
        *,
        result: Optional[TokenRecord] = None,
        error: Optional[Exception] = None,
    ) -> bool:
        """Move to a terminal state exactly once. Returns False if already settled."""
        if self._state is not FlowState.AWAITING_CALLBACK or self._result is None or self._result.done():
            return False

        self._state = state
        if self._timer is not None:
            self._timer.cancel()
        if error is not None:
            self.failure = error
            self._result.set_exception(error)
        else:
            self._result.set_result(result)
        return True

    def _on_timeout(self) -> None:
        if self._callback_claimed:
            return
        if self._settle(FlowState.TIMED_OUT, error=OAuthTimeoutError(self.timeout)):
            logger.warning("OAuth flow timed out after %gs", self.timeout)

    async def _handle_callback(self, request: web.Request) -> web.StreamResponse:
        if self._callback_claimed or self._state is not FlowState.AWAITING_CALLBACK:
            return web.Response(text=failure_page("This authorization request was already handled."), status=409, content_type="text/html")
        self._callback_claimed = True
        if self._timer is not None:
            self._timer.cancel()

        error = request.query.get("error")
        code = request.query.get("code")

        if error:
            logger.warning("OAuth provider reported an error: %s", error)
            self._settle(FlowState.FAILED, error=OAuthCallbackError(error))
            return web.Response(text=failure_page(error), status=400, content_type="text/html")

        if not code:
            self._settle(FlowState.FAILED, error=OAuthCallbackError("No authorization code received"))
            return web.Response(text=failure_page("No code received"), status=400, content_type="text/html")

        try:
            token = await self.token_endpoint.exchange_code(code, code_verifier=self._code_verifier)
            self.token_store.save(token)
        except OAuthExchangeFailureError as e:
            self._settle(FlowState.FAILED, error=e)
            return web.Response(text=failure_page(str(e)), status=400, content_type="text/html")
        except Exception as e:
            # surfaced to the awaiting caller, not swallowed
            self._settle(FlowState.FAILED, error=e)
            return web.Response(text=failure_page(str(e)), status=500, content_type="text/html")

        self._settle(FlowState.SUCCEEDED, result=token)
        logger.info("OAuth flow completed; token saved to %s", self.token_store.path)
        return web.Response(text=SUCCESS_PAGE, content_type="text/html")
