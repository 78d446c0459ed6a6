"""Plain-text table helpers shared by the tool formatters."""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence


def format_number(num: float | int | None) -> str:
    value = num or 0
    if isinstance(value, float) and not value.is_integer():
        return f"{value:,.3f}".rstrip("0").rstrip(".")
    return f"{int(value):,}"


def format_percent(value: float | None, decimals: int = 2) -> str:
    return f"{(value or 0) * 100:.{decimals}f}%"


def format_position(position: float | None) -> str:
    return f"{(position or 0):.1f}"


def table_row(columns: Sequence[str], widths: Sequence[int]) -> str:
    cells = []
    for i, col in enumerate(columns):
        width = widths[i] if i < len(widths) else 20
        cells.append(col[: width - 3] + "..." if len(col) > width else col.ljust(width))
    return " | ".join(cells)


def table_separator(widths: Iterable[int]) -> str:
    return "-+-".join("-" * w for w in widths)


def format_analytics_table(rows: Sequence[dict], dimensions: Sequence[str]) -> str:
    if not rows:
        return "No data found for the specified criteria."

    headers = [*dimensions, "Clicks", "Impressions", "CTR", "Position"]
    widths = [40] * len(dimensions) + [10, 12, 8, 10]

    lines: List[str] = [table_row(headers, widths), table_separator(widths)]
    for row in rows:
        keys = row.get("keys") or ["(unknown)"] * len(dimensions)
        values = [
            *[str(k) for k in keys],
            format_number(row.get("clicks")),
            format_number(row.get("impressions")),
            format_percent(row.get("ctr")),
            format_position(row.get("position")),
        ]
        lines.append(table_row(values, widths))
    return "\n".join(lines) + "\n"


def format_sites_list(sites: Sequence[dict]) -> str:
    if not sites:
        return "No Search Console properties found."

    noun = "property" if len(sites) == 1 else "properties"
    widths = [50, 20]
    lines = [
        f"Found {len(sites)} Search Console {noun}:",
        "",
        table_row(["Site URL", "Permission"], widths),
        table_separator(widths),
    ]
    for site in sites:
        lines.append(table_row([site.get("siteUrl") or "", site.get("permissionLevel") or ""], widths))
    return "\n".join(lines) + "\n"


def or_default(value: Optional[object], default: str) -> str:
    return default if value in (None, "") else str(value)
