from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from gsc_mcp.dates import parse_date_range
from gsc_mcp.formatting import format_analytics_table, format_number
from gsc_mcp.schemas import DimensionFilter, SearchAnalyticsInput
from gsc_mcp.search_console import SearchConsoleClient

logger = logging.getLogger(__name__)

DESCRIPTION = (
    "Query Google Search Console search analytics data including clicks, impressions, CTR, and position"
)


def convert_filters(filters: Optional[List[DimensionFilter]]) -> Optional[List[Dict[str, Any]]]:
    if not filters:
        return None
    return [
        {
            "groupType": "and",
            "filters": [
                {"dimension": f.dimension.upper(), "operator": f.operator, "expression": f.expression}
                for f in filters
            ],
        }
    ]


def build_request(args: SearchAnalyticsInput, start_date: str, end_date: str) -> Dict[str, Any]:
    request: Dict[str, Any] = {
        "startDate": start_date,
        "endDate": end_date,
        "dimensions": [d.upper() for d in args.dimensions],
        "rowLimit": args.row_limit,
        "startRow": args.start_row,
        "type": args.search_type.upper(),
        # include fresh, not-yet-finalized data like the GSC dashboard does
        "dataState": "all",
    }
    groups = convert_filters(args.filters)
    if groups:
        request["dimensionFilterGroups"] = groups
    # byProperty merges URL variants but is rejected together with the page dimension
    if "page" not in args.dimensions:
        request["aggregationType"] = "byProperty"
    return request


def _summary(rows: List[Dict[str, Any]], row_limit: int) -> str:
    total_clicks = sum(r.get("clicks") or 0 for r in rows)
    total_impressions = sum(r.get("impressions") or 0 for r in rows)
    avg_ctr = total_clicks / total_impressions if total_impressions > 0 else 0
    avg_position = sum(r.get("position") or 0 for r in rows) / len(rows)
    limit_note = " (limit reached)" if len(rows) == row_limit else ""
    return (
        "\n--- Summary ---\n"
        f"Total Clicks: {format_number(total_clicks)}\n"
        f"Total Impressions: {format_number(total_impressions)}\n"
        f"Average CTR: {avg_ctr * 100:.2f}%\n"
        f"Average Position: {avg_position:.1f}\n"
        f"Rows Returned: {len(rows)}{limit_note}\n"
    )


async def search_analytics(client: SearchConsoleClient, args: SearchAnalyticsInput) -> str:
    start_date, end_date = parse_date_range(args.start_date, args.end_date, args.days)
    request = build_request(args, start_date, end_date)
    logger.debug("Search analytics request for %s: %s", args.site_url, request)

    response = await client.query_search_analytics(args.site_url, request)
    rows = list(response.get("rows") or [])
    logger.debug("Search analytics returned %d rows", len(rows))

    output = f"Search Analytics for {args.site_url}\n"
    output += f"Period: {start_date} to {end_date}\n"
    output += f"Dimensions: {', '.join(args.dimensions)}\n"
    if args.filters:
        rendered = ", ".join(f'{f.dimension} {f.operator} "{f.expression}"' for f in args.filters)
        output += f"Filters: {rendered}\n"
    output += "\n"
    output += format_analytics_table(rows, args.dimensions)
    if rows:
        output += _summary(rows, args.row_limit)
    return output
