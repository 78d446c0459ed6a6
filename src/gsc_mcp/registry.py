from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Type

from gsc_mcp.schemas import ToolInput, json_schema
from gsc_mcp.tools import TOOL_SPECS, ToolHandler, ToolSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_schema: Dict[str, Any] = field(default_factory=dict)

    def declares(self, prop: str) -> bool:
        return prop in (self.input_schema.get("properties") or {})


@dataclass(frozen=True)
class RegisteredTool:
    definition: ToolDefinition
    model: Type[ToolInput]
    handler: ToolHandler


class ToolRegistry:
    """Name -> tool lookup. Names are matched exactly and registered once."""

    def __init__(self) -> None:
        self._tools: Dict[str, RegisteredTool] = {}

    def register(self, spec: ToolSpec) -> RegisteredTool:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        definition = ToolDefinition(spec.name, spec.description, json_schema(spec.model))
        tool = RegisteredTool(definition=definition, model=spec.model, handler=spec.handler)
        self._tools[spec.name] = tool
        logger.debug("Registered tool %s", spec.name)
        return tool

    def get(self, name: str) -> Optional[RegisteredTool]:
        return self._tools.get(name)

    def definitions(self) -> List[ToolDefinition]:
        return [t.definition for t in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


def build_registry(specs: Iterable[ToolSpec] = TOOL_SPECS) -> ToolRegistry:
    registry = ToolRegistry()
    for spec in specs:
        registry.register(spec)
    return registry
