from __future__ import annotations

import logging
from typing import Any, Dict, List

from gsc_mcp.formatting import or_default
from gsc_mcp.schemas import InspectUrlInput
from gsc_mcp.search_console import SearchConsoleClient

logger = logging.getLogger(__name__)

DESCRIPTION = (
    "Inspect a URL to check its indexing status, crawl info, and mobile usability in Google Search"
)

_INDEX_STATUS_FIELDS = (
    ("lastCrawlTime", "Last Crawl"),
    ("pageFetchState", "Page Fetch"),
    ("googleCanonical", "Google Canonical"),
    ("userCanonical", "User Canonical"),
    ("robotsTxtState", "Robots.txt"),
    ("verdict", "Verdict"),
)


def _index_status(status: Dict[str, Any]) -> List[str]:
    lines = [
        "## Indexing Status",
        f"Coverage State: {or_default(status.get('coverageState'), 'Unknown')}",
        f"Indexing State: {or_default(status.get('indexingState'), 'Unknown')}",
    ]
    for key, label in _INDEX_STATUS_FIELDS:
        if status.get(key):
            lines.append(f"{label}: {status[key]}")
    return lines


def _mobile_usability(result: Dict[str, Any]) -> List[str]:
    lines = ["## Mobile Usability", f"Verdict: {or_default(result.get('verdict'), 'Unknown')}"]
    issues = result.get("issues") or []
    if issues:
        lines.append("Issues:")
        for issue in issues:
            lines.append(f"  - {issue.get('issueType')}: {or_default(issue.get('message'), 'No details')}")
    else:
        lines.append("No mobile usability issues found.")
    return lines


def _rich_results(result: Dict[str, Any]) -> List[str]:
    lines = ["## Rich Results", f"Verdict: {or_default(result.get('verdict'), 'Unknown')}"]
    detected = result.get("detectedItems") or []
    if detected:
        lines.append("Detected Items:")
        for item in detected:
            if not item.get("richResultType"):
                continue
            lines.append(f"  - {item['richResultType']}")
            for sub in item.get("items") or []:
                for issue in sub.get("issues") or []:
                    lines.append(
                        f"      Issue: {or_default(issue.get('issueMessage'), 'Unknown')} "
                        f"({or_default(issue.get('severity'), 'unknown severity')})"
                    )
    return lines


def _amp(result: Dict[str, Any]) -> List[str]:
    lines = ["## AMP", f"Verdict: {or_default(result.get('verdict'), 'Unknown')}"]
    if result.get("ampUrl"):
        lines.append(f"AMP URL: {result['ampUrl']}")
    issues = result.get("issues") or []
    if issues:
        lines.append("Issues:")
        for issue in issues:
            lines.append(
                f"  - {or_default(issue.get('issueMessage'), 'Unknown issue')} "
                f"({or_default(issue.get('severity'), 'unknown')})"
            )
    return lines


def format_inspection_result(url: str, response: Dict[str, Any]) -> str:
    inspection = response.get("inspectionResult")
    if not inspection:
        return f"No inspection data available for {url}"

    output = "URL Inspection Report\n" + "=" * 50 + "\n\n" + f"URL: {url}\n\n"
    sections = (
        ("indexStatusResult", _index_status),
        ("mobileUsabilityResult", _mobile_usability),
        ("richResultsResult", _rich_results),
        ("ampResult", _amp),
    )
    for key, render in sections:
        section = inspection.get(key)
        if section:
            output += "\n".join(render(section)) + "\n\n"
    return output


async def inspect_url(client: SearchConsoleClient, args: InspectUrlInput) -> str:
    response = await client.inspect_url(args.site_url, args.inspection_url)
    logger.debug("URL inspection completed for %s", args.inspection_url)
    return format_inspection_result(args.inspection_url, response)
