from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from gsc_common.errors import SchemaValidationError, UpstreamAPIError, describe_error, error_code
from gsc_common.telemetry import NULL_TELEMETRY, Telemetry
from gsc_common.tooling import InstrumentConfig, instrument_dispatch
from gsc_mcp.registry import ToolRegistry
from gsc_mcp.schemas import validate_arguments
from gsc_mcp.search_console import SearchConsoleClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResponseEnvelope:
    text: str
    is_error: bool = False


def _error_envelope(text: str) -> ResponseEnvelope:
    return ResponseEnvelope(text, is_error=True)


class RequestDispatcher:
    """Routes one tool call to its handler and folds every outcome into an envelope.

    Nothing raised by a handler escapes ``dispatch``; the MCP session stays
    usable after a failed call.
    """

    def __init__(
        self,
        client: SearchConsoleClient,
        registry: ToolRegistry,
        *,
        telemetry: Telemetry = NULL_TELEMETRY,
    ) -> None:
        self.client = client
        self.registry = registry
        self.telemetry = telemetry

    @instrument_dispatch(InstrumentConfig(kind="tool", error_envelope=_error_envelope))
    async def dispatch(self, tool_name: str, arguments: Optional[Mapping[str, Any]] = None) -> ResponseEnvelope:
        tool = self.registry.get(tool_name)
        if tool is None:
            # reported as plain text, not as a failed call
            logger.warning("Unknown tool requested: %s", tool_name)
            return ResponseEnvelope(f"Unknown tool: {tool_name}")

        try:
            args = validate_arguments(tool_name, tool.model, arguments)
            text = await tool.handler(self.client, args)
        except SchemaValidationError as e:
            logger.info("Rejected arguments for %s: %s", tool_name, e)
            return ResponseEnvelope(str(e), is_error=True)
        except Exception as e:
            code = error_code(e) if isinstance(e, UpstreamAPIError) else e.__class__.__name__
            logger.error("Tool %s failed (%s): %s", tool_name, code, e, exc_info=logger.isEnabledFor(logging.DEBUG))
            return ResponseEnvelope(f"Error executing {tool_name}: {describe_error(e)}", is_error=True)

        return ResponseEnvelope(text)
