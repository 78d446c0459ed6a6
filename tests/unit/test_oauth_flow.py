import asyncio
from urllib.parse import parse_qs, urlparse

import aiohttp
import pytest

from gsc_common.errors import OAuthCallbackError, OAuthExchangeFailureError, OAuthTimeoutError
from gsc_mcp.auth.credentials import InteractiveCredentialConfig
from gsc_mcp.auth.oauth_flow import FlowState, OAuthFlowCoordinator
from gsc_mcp.auth.token_store import TokenRecord, TokenStore


class FakeEndpoint:
    def __init__(self, *, fail=None, delay=0.0):
        self.fail = fail
        self.delay = delay
        self.redirect_uri = None
        self.calls = []

    async def exchange_code(self, code, *, code_verifier=None):
        self.calls.append((code, code_verifier))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail
        return TokenRecord(access_token="ya29.a", refresh_token="1//r", expiry_date=42)


def _coordinator(tmp_path, endpoint, *, timeout=5.0):
    return OAuthFlowCoordinator(
        InteractiveCredentialConfig(client_id="cid.apps.googleusercontent.com", client_secret="sec"),
        TokenStore(tmp_path / "token.json"),
        token_endpoint=endpoint,
        host="127.0.0.1",
        port=0,
        timeout=timeout,
        open_browser=lambda url: False,
    )


async def _get(url, **params):
    async with aiohttp.ClientSession() as session:
        async with session.get(url, params=params) as resp:
            return resp.status, await resp.text()


@pytest.mark.asyncio
async def test_consent_url_requests_offline_access(tmp_path):
    coord = _coordinator(tmp_path, FakeEndpoint())
    url = await coord.start()
    try:
        q = parse_qs(urlparse(url).query)
        assert q["access_type"] == ["offline"]
        assert q["prompt"] == ["consent"]
        assert q["scope"] == ["https://www.googleapis.com/auth/webmasters"]
        assert q["redirect_uri"] == [coord.redirect_uri]
        assert coord.port != 0
        assert coord.token_endpoint.redirect_uri == coord.redirect_uri
        assert coord.state is FlowState.AWAITING_CALLBACK
    finally:
        await coord.close()
    assert coord.state is FlowState.CLOSED


@pytest.mark.asyncio
async def test_successful_callback_persists_token(tmp_path):
    endpoint = FakeEndpoint()
    coord = _coordinator(tmp_path, endpoint)
    await coord.start()

    status, body = await _get(coord.redirect_uri, code="4/abc")
    assert status == 200
    assert "Authentication Successful" in body

    token = await coord.await_result()
    assert token.access_token == "ya29.a"
    assert TokenStore(tmp_path / "token.json").load() == token
    assert endpoint.calls[0][0] == "4/abc"
    assert coord.failure is None
    assert coord.state is FlowState.CLOSED


@pytest.mark.asyncio
async def test_only_first_callback_is_processed(tmp_path):
    endpoint = FakeEndpoint()
    coord = _coordinator(tmp_path, endpoint)
    await coord.start()

    first, _ = await _get(coord.redirect_uri, code="4/first")
    second, _ = await _get(coord.redirect_uri, code="4/second")
    await coord.await_result()

    assert first == 200
    assert second == 409
    assert [c for c, _ in endpoint.calls] == ["4/first"]


@pytest.mark.asyncio
async def test_provider_error_fails_the_flow(tmp_path):
    coord = _coordinator(tmp_path, FakeEndpoint())
    await coord.start()

    status, body = await _get(coord.redirect_uri, error="access_denied")
    assert status == 400
    assert "access_denied" in body

    with pytest.raises(OAuthCallbackError) as ei:
        await coord.await_result()
    assert str(ei.value) == "OAuth error: access_denied"
    assert not (tmp_path / "token.json").exists()


@pytest.mark.asyncio
async def test_callback_without_code_fails(tmp_path):
    coord = _coordinator(tmp_path, FakeEndpoint())
    await coord.start()

    status, _ = await _get(coord.redirect_uri)
    assert status == 400
    with pytest.raises(OAuthCallbackError, match="No authorization code received"):
        await coord.await_result()


@pytest.mark.asyncio
async def test_exchange_failure_is_reported(tmp_path):
    coord = _coordinator(tmp_path, FakeEndpoint(fail=OAuthExchangeFailureError("invalid_grant")))
    await coord.start()

    status, _ = await _get(coord.redirect_uri, code="4/abc")
    assert status == 400
    with pytest.raises(OAuthExchangeFailureError):
        await coord.await_result()
    assert isinstance(coord.failure, OAuthExchangeFailureError)


@pytest.mark.asyncio
async def test_timeout_without_callback(tmp_path):
    coord = _coordinator(tmp_path, FakeEndpoint(), timeout=0.05)
    await coord.start()
    port = coord.port

    with pytest.raises(OAuthTimeoutError):
        await coord.await_result()
    assert coord.state is FlowState.CLOSED

    # listener is gone once the flow ends
    with pytest.raises(aiohttp.ClientConnectionError):
        await _get(f"http://127.0.0.1:{port}/oauth/callback", code="late")


@pytest.mark.asyncio
async def test_timeout_does_not_interrupt_an_exchange_in_progress(tmp_path):
    coord = _coordinator(tmp_path, FakeEndpoint(delay=0.2), timeout=0.05)
    await coord.start()

    status, _ = await _get(coord.redirect_uri, code="4/slow")
    assert status == 200
    token = await coord.await_result()
    assert token.refresh_token == "1//r"


@pytest.mark.asyncio
async def test_start_twice_is_rejected_and_close_is_idempotent(tmp_path):
    coord = _coordinator(tmp_path, FakeEndpoint())
    await coord.start()
    with pytest.raises(RuntimeError):
        await coord.start()
    await coord.close()
    await coord.close()
    assert coord.state is FlowState.CLOSED


@pytest.mark.asyncio
async def test_callback_just_before_the_deadline_wins(tmp_path):
    window = 1.0
    coord = _coordinator(tmp_path, FakeEndpoint(), timeout=window)
    loop = asyncio.get_running_loop()
    await coord.start()
    started = loop.time()

    await asyncio.sleep(window - 0.2)
    status, _ = await _get(coord.redirect_uri, code="4/late-but-in-time")
    assert status == 200
    assert loop.time() - started < window

    token = await coord.await_result()
    assert token.access_token == "ya29.a"

    # the cancelled timer never fires afterwards
    await asyncio.sleep(0.3)
    assert coord.failure is None
    assert coord.state is FlowState.CLOSED
