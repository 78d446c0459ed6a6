from __future__ import annotations

import logging

from gsc_mcp.formatting import format_sites_list
from gsc_mcp.schemas import ListSitesInput
from gsc_mcp.search_console import SearchConsoleClient

logger = logging.getLogger(__name__)

DESCRIPTION = "List all Google Search Console properties you have access to"


async def list_sites(client: SearchConsoleClient, args: ListSitesInput) -> str:
    sites = await client.list_sites()
    logger.debug("Found %d sites", len(sites))
    return format_sites_list(
        [{"siteUrl": s.get("siteUrl"), "permissionLevel": s.get("permissionLevel")} for s in sites]
    )
