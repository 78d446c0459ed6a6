from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Type
from urllib.parse import urlparse

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationError

from gsc_common.errors import SchemaValidationError
from gsc_mcp.dates import is_valid_date_string

Dimension = Literal["query", "page", "country", "device", "date"]
FilterOperator = Literal["equals", "contains", "notContains", "notEquals"]
SearchType = Literal["web", "image", "video", "news", "discover", "googleNews"]

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"

SITE_URL_DESCRIPTION = 'GSC property URL (e.g., "sc-domain:example.com" or "https://www.example.com/")'


def _require_absolute_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("must be an absolute http(s) URL")
    return value


AbsoluteUrl = Annotated[str, AfterValidator(_require_absolute_url)]


def _require_calendar_date(value: str) -> str:
    if not is_valid_date_string(value):
        raise ValueError("must be a real calendar date (YYYY-MM-DD)")
    return value


IsoDate = Annotated[str, AfterValidator(_require_calendar_date)]


class ToolInput(BaseModel):
    """Base for tool inputs: camelCase on the wire, unknown keys ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class DimensionFilter(ToolInput):
    dimension: Dimension = Field(description="The dimension to filter on")
    operator: FilterOperator = Field(description="The comparison operator")
    expression: str = Field(description="The value to compare against")


class ListSitesInput(ToolInput):
    """List all GSC properties"""


class SearchAnalyticsInput(ToolInput):
    site_url: str = Field(alias="siteUrl", description=SITE_URL_DESCRIPTION)
    days: Optional[int] = Field(
        default=None,
        ge=1,
        le=540,
        description=(
            "Number of days to look back from today (e.g., 7, 28, 90). Server calculates dates "
            "automatically. Preferred over explicit dates."
        ),
    )
    start_date: Optional[IsoDate] = Field(
        default=None,
        alias="startDate",
        pattern=DATE_PATTERN,
        description='Optional explicit start date (YYYY-MM-DD). Overrides "days" if both provided.',
    )
    end_date: Optional[IsoDate] = Field(
        default=None,
        alias="endDate",
        pattern=DATE_PATTERN,
        description="Optional explicit end date (YYYY-MM-DD). Defaults to today.",
    )
    dimensions: List[Dimension] = Field(
        default_factory=lambda: ["query"],
        description='Dimensions to group by. Default: ["query"]',
    )
    row_limit: int = Field(
        default=100,
        alias="rowLimit",
        ge=1,
        le=25000,
        description="Maximum rows to return (1-25000). Default: 100",
    )
    start_row: int = Field(default=0, alias="startRow", ge=0, description="Starting row for pagination. Default: 0")
    search_type: SearchType = Field(
        default="web",
        alias="searchType",
        description='Type of search results to query. Default: "web"',
    )
    filters: Optional[List[DimensionFilter]] = Field(default=None, description="Optional filters to apply")


class InspectUrlInput(ToolInput):
    site_url: str = Field(alias="siteUrl", description='GSC property URL (e.g., "sc-domain:example.com")')
    inspection_url: AbsoluteUrl = Field(
        alias="inspectionUrl",
        description='Full URL to inspect (e.g., "https://example.com/page")',
    )


class ListSitemapsInput(ToolInput):
    site_url: str = Field(alias="siteUrl", description='GSC property URL (e.g., "sc-domain:example.com")')


class SubmitSitemapInput(ToolInput):
    site_url: str = Field(alias="siteUrl", description='GSC property URL (e.g., "sc-domain:example.com")')
    sitemap_url: AbsoluteUrl = Field(alias="sitemapUrl", description="Full URL of the sitemap to submit")


class DeleteSitemapInput(ToolInput):
    site_url: str = Field(alias="siteUrl", description='GSC property URL (e.g., "sc-domain:example.com")')
    sitemap_url: AbsoluteUrl = Field(alias="sitemapUrl", description="Full URL of the sitemap to delete")


def json_schema(model: Type[ToolInput]) -> Dict[str, Any]:
    return model.model_json_schema(by_alias=True)


def validate_arguments(tool_name: str, model: Type[ToolInput], raw: Any) -> ToolInput:
    """Validate untrusted arguments; raise SchemaValidationError naming each bad field."""
    try:
        return model.model_validate(raw if raw is not None else {})
    except ValidationError as e:
        fields = []
        for err in e.errors(include_url=False):
            path = ".".join(str(part) for part in err.get("loc", ())) or "(arguments)"
            fields.append((path, err.get("msg", "invalid value")))
        raise SchemaValidationError(tool_name, fields) from e
