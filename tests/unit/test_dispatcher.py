import json

import pytest

from gsc_common.errors import UpstreamAPIError
from gsc_common.telemetry import Telemetry
from gsc_mcp.dispatcher import RequestDispatcher, ResponseEnvelope
from gsc_mcp.registry import build_registry
from tests.helpers.fakes import FakeSearchConsole

SITE = "sc-domain:example.com"


def _dispatcher(client, tmp_path=None):
    telemetry = Telemetry(tmp_path) if tmp_path is not None else Telemetry(None, enabled=False)
    return RequestDispatcher(client, build_registry(), telemetry=telemetry)


@pytest.mark.asyncio
async def test_list_sites_with_no_properties_is_not_an_error():
    out = await _dispatcher(FakeSearchConsole()).dispatch("gsc.list_sites", {})
    assert out == ResponseEnvelope("No Search Console properties found.", is_error=False)


@pytest.mark.asyncio
async def test_unknown_tool_is_plain_text():
    client = FakeSearchConsole()
    out = await _dispatcher(client).dispatch("gsc.bogus", {})
    assert out.text == "Unknown tool: gsc.bogus"
    assert out.is_error is False
    assert client.calls == []


@pytest.mark.asyncio
async def test_tool_names_match_exactly():
    out = await _dispatcher(FakeSearchConsole()).dispatch("GSC.LIST_SITES", {})
    assert out.text == "Unknown tool: GSC.LIST_SITES"


@pytest.mark.asyncio
async def test_invalid_arguments_never_reach_upstream():
    client = FakeSearchConsole()
    out = await _dispatcher(client).dispatch("gsc.search_analytics", {"siteUrl": SITE, "rowLimit": 30000})
    assert out.is_error is True
    assert out.text.startswith("Invalid arguments for gsc.search_analytics: rowLimit:")
    assert client.calls == []


@pytest.mark.asyncio
async def test_upstream_error_is_described():
    client = FakeSearchConsole(error=UpstreamAPIError(403, "User does not have sufficient permission"))
    out = await _dispatcher(client).dispatch("gsc.list_sitemaps", {"siteUrl": SITE})
    assert out.is_error is True
    assert out.text.startswith("Error executing gsc.list_sitemaps: Permission denied.")
    assert "Details: User does not have sufficient permission" in out.text


@pytest.mark.asyncio
async def test_unexpected_exception_is_contained():
    client = FakeSearchConsole(error=RuntimeError("kaboom"))
    dispatcher = _dispatcher(client)
    out = await dispatcher.dispatch("gsc.list_sites", None)
    assert out == ResponseEnvelope("Error executing gsc.list_sites: kaboom", is_error=True)

    # the dispatcher keeps serving after a failure
    client.error = None
    assert (await dispatcher.dispatch("gsc.list_sites", {})).is_error is False


@pytest.mark.asyncio
async def test_each_call_writes_one_redacted_telemetry_record(tmp_path):
    dispatcher = _dispatcher(FakeSearchConsole(error=UpstreamAPIError(500, "backend")), tmp_path)
    await dispatcher.dispatch("gsc.list_sitemaps", {"siteUrl": SITE, "token": "ya29.secret"})

    lines = (tmp_path / "mcp-telemetry.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    rec = json.loads(lines[0])
    assert rec["kind"] == "tool"
    assert rec["name"] == "gsc.list_sitemaps"
    assert rec["ok"] is False
    assert rec["args"]["args"]["siteUrl"] == SITE
    assert rec["args"]["args"]["token"] == "***redacted***"
    assert rec["args"]["error"]["code"] == "tool_error"
    assert "ya29.secret" not in lines[0]


@pytest.mark.asyncio
async def test_non_mapping_arguments_are_rejected_as_envelope(tmp_path):
    client = FakeSearchConsole()
    out = await _dispatcher(client, tmp_path).dispatch("gsc.list_sites", ["x"])
    assert out.is_error is True
    assert out.text.startswith("Invalid arguments for gsc.list_sites")
    assert client.calls == []

    rec = json.loads((tmp_path / "mcp-telemetry.jsonl").read_text(encoding="utf-8"))
    assert rec["ok"] is False
    assert rec["args"]["args"] == {"_raw": "['x']"}
