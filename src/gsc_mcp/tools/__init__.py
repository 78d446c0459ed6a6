"""Catalog of the Search Console tools exposed over MCP."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, List, Type

from gsc_mcp.schemas import (
    DeleteSitemapInput,
    InspectUrlInput,
    ListSitemapsInput,
    ListSitesInput,
    SearchAnalyticsInput,
    SubmitSitemapInput,
    ToolInput,
)
from gsc_mcp.search_console import SearchConsoleClient
from gsc_mcp.tools import list_sites, search_analytics, sitemaps, url_inspection

ToolHandler = Callable[[SearchConsoleClient, ToolInput], Awaitable[str]]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    model: Type[ToolInput]
    handler: ToolHandler


TOOL_SPECS: List[ToolSpec] = [
    ToolSpec("gsc.list_sites", list_sites.DESCRIPTION, ListSitesInput, list_sites.list_sites),
    ToolSpec(
        "gsc.search_analytics",
        search_analytics.DESCRIPTION,
        SearchAnalyticsInput,
        search_analytics.search_analytics,
    ),
    ToolSpec("gsc.inspect_url", url_inspection.DESCRIPTION, InspectUrlInput, url_inspection.inspect_url),
    ToolSpec("gsc.list_sitemaps", sitemaps.LIST_DESCRIPTION, ListSitemapsInput, sitemaps.list_sitemaps),
    ToolSpec("gsc.submit_sitemap", sitemaps.SUBMIT_DESCRIPTION, SubmitSitemapInput, sitemaps.submit_sitemap),
    ToolSpec("gsc.delete_sitemap", sitemaps.DELETE_DESCRIPTION, DeleteSitemapInput, sitemaps.delete_sitemap),
]
