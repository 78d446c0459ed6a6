from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from gsc_mcp.formatting import format_number, table_row, table_separator
from gsc_mcp.schemas import DeleteSitemapInput, ListSitemapsInput, SubmitSitemapInput
from gsc_mcp.search_console import SearchConsoleClient

logger = logging.getLogger(__name__)

LIST_DESCRIPTION = "List all sitemaps submitted to Google Search Console for a site"
SUBMIT_DESCRIPTION = "Submit a new sitemap to Google Search Console"
DELETE_DESCRIPTION = "Delete a sitemap from Google Search Console"

_HEADERS = ["Sitemap URL", "Type", "Submitted", "Last Downloaded", "Warnings", "Errors"]
_WIDTHS = [50, 12, 12, 16, 10, 10]


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _short_date(value: Optional[str]) -> str:
    if not value:
        return "N/A"
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return value


def format_sitemaps_list(site_url: str, sitemaps: List[Dict[str, Any]]) -> str:
    if not sitemaps:
        return f"No sitemaps found for {site_url}"

    plural = "" if len(sitemaps) == 1 else "s"
    lines = [
        f"Sitemaps for {site_url}",
        "=" * 50,
        "",
        f"Found {len(sitemaps)} sitemap{plural}:",
        "",
        table_row(_HEADERS, _WIDTHS),
        table_separator(_WIDTHS),
    ]
    for sitemap in sitemaps:
        lines.append(
            table_row(
                [
                    sitemap.get("path") or "Unknown",
                    sitemap.get("type") or "Unknown",
                    _short_date(sitemap.get("lastSubmitted")),
                    _short_date(sitemap.get("lastDownloaded")),
                    format_number(_as_int(sitemap.get("warnings"))),
                    format_number(_as_int(sitemap.get("errors"))),
                ],
                _WIDTHS,
            )
        )
        for content in sitemap.get("contents") or []:
            lines.append(
                f"    └─ {content.get('type')}: {format_number(_as_int(content.get('submitted')))} submitted, "
                f"{format_number(_as_int(content.get('indexed')))} indexed"
            )
    return "\n".join(lines) + "\n"


async def list_sitemaps(client: SearchConsoleClient, args: ListSitemapsInput) -> str:
    sitemaps = await client.list_sitemaps(args.site_url)
    logger.debug("Found %d sitemaps", len(sitemaps))
    return format_sitemaps_list(args.site_url, sitemaps)


async def submit_sitemap(client: SearchConsoleClient, args: SubmitSitemapInput) -> str:
    await client.submit_sitemap(args.site_url, args.sitemap_url)
    logger.debug("Sitemap submitted: %s", args.sitemap_url)
    return (
        f"Successfully submitted sitemap: {args.sitemap_url}\n\n"
        f"The sitemap has been added to Google Search Console for {args.site_url}.\n"
        "Google will process it shortly. Use 'gsc.list_sitemaps' to check the status."
    )


async def delete_sitemap(client: SearchConsoleClient, args: DeleteSitemapInput) -> str:
    await client.delete_sitemap(args.site_url, args.sitemap_url)
    logger.debug("Sitemap deleted: %s", args.sitemap_url)
    return (
        f"Successfully deleted sitemap: {args.sitemap_url}\n\n"
        f"The sitemap has been removed from Google Search Console for {args.site_url}."
    )
