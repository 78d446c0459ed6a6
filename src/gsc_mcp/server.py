from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, Dict, Iterable, List, Mapping, Optional

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server

from gsc_common.errors import ConfigurationError, GSCError
from gsc_common.telemetry import NULL_TELEMETRY, Telemetry
from gsc_config.settings import Settings, init_runtime
from gsc_mcp import SERVER_NAME, SERVER_VERSION
from gsc_mcp.auth.session import AuthSessionProvider
from gsc_mcp.dispatcher import RequestDispatcher, ResponseEnvelope
from gsc_mcp.registry import ToolDefinition, ToolRegistry, build_registry

logger = logging.getLogger(__name__)

SITE_URL_ARG = "siteUrl"


def tool_listing(registry: ToolRegistry) -> List[types.Tool]:
    return [
        types.Tool(name=d.name, description=d.description, inputSchema=d.input_schema)
        for d in registry.definitions()
    ]


def to_call_tool_result(envelope: ResponseEnvelope) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=envelope.text)],
        isError=envelope.is_error,
    )


def with_default_site(
    arguments: Optional[Mapping[str, Any]],
    definition: Optional[ToolDefinition],
    default_site: Optional[str],
) -> Dict[str, Any]:
    """Fill ``siteUrl`` from GSC_DEFAULT_SITE when the tool takes one and the caller left it out."""
    args = dict(arguments or {})
    if default_site and definition is not None and definition.declares(SITE_URL_ARG) and not args.get(SITE_URL_ARG):
        args[SITE_URL_ARG] = default_site
    return args


TELEMETRY_RECENT_PREFIX = "telemetry://recent/"


def telemetry_templates() -> List[types.ResourceTemplate]:
    return [
        types.ResourceTemplate(
            uriTemplate=TELEMETRY_RECENT_PREFIX + "{n}",
            name="telemetry-recent",
            description="Last n tool-call telemetry records (1..200), secrets masked.",
            mimeType="application/json",
        )
    ]


def read_telemetry_recent(telemetry: Telemetry, uri: str) -> str:
    if not uri.startswith(TELEMETRY_RECENT_PREFIX):
        raise ValueError(f"Unknown resource: {uri}")
    n = uri[len(TELEMETRY_RECENT_PREFIX):].strip("/") or "50"
    return json.dumps(telemetry.recent(n), ensure_ascii=False, default=str)


def build_server(
    dispatcher: RequestDispatcher,
    registry: ToolRegistry,
    *,
    default_site: Optional[str] = None,
) -> Server:
    server: Server = Server(SERVER_NAME, version=SERVER_VERSION)

    @server.list_tools()
    async def _list_tools() -> List[types.Tool]:
        return tool_listing(registry)

    # arguments are validated by the dispatcher so failures come back as tool errors
    @server.call_tool(validate_input=False)
    async def _call_tool(name: str, arguments: Optional[Dict[str, Any]]) -> types.CallToolResult:
        tool = registry.get(name)
        args = with_default_site(arguments, tool.definition if tool else None, default_site)
        envelope = await dispatcher.dispatch(name, args)
        return to_call_tool_result(envelope)

    @server.list_resource_templates()
    async def _list_resource_templates() -> List[types.ResourceTemplate]:
        return telemetry_templates()

    @server.read_resource()
    async def _read_resource(uri: Any) -> Iterable[ReadResourceContents]:
        text = read_telemetry_recent(dispatcher.telemetry, str(uri))
        return [ReadResourceContents(content=text, mime_type="application/json")]

    return server


def build_telemetry(settings: Settings) -> Telemetry:
    if settings.disable_telemetry:
        return NULL_TELEMETRY
    return Telemetry(settings.resolved_telemetry_dir())


async def serve(settings: Settings, *, provider: Optional[AuthSessionProvider] = None) -> None:
    """Pick a credential mode, then serve MCP over stdio until the client disconnects."""
    session = await (provider or AuthSessionProvider(settings)).resolve()
    logger.info("Authenticated in %s mode", session.mode.value)
    try:
        registry = build_registry()
        dispatcher = RequestDispatcher(session.client, registry, telemetry=build_telemetry(settings))
        server = build_server(dispatcher, registry, default_site=settings.default_site)

        async with stdio_server() as (read_stream, write_stream):
            logger.info("%s %s running on stdio", SERVER_NAME, SERVER_VERSION)
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        await session.aclose()


def main() -> int:
    # Entry points (console_scripts) call main() directly, so runtime
    # initialization (dotenv + logging) happens here.
    settings = init_runtime()
    try:
        asyncio.run(serve(settings))
    except ConfigurationError as e:
        logger.error("%s", e)
        return 1
    except GSCError as e:
        logger.error("Failed to start server: %s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
