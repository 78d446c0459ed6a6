import pytest

from gsc_common.errors import UpstreamAPIError
from gsc_mcp.schemas import (
    DeleteSitemapInput,
    InspectUrlInput,
    ListSitemapsInput,
    ListSitesInput,
    SearchAnalyticsInput,
    SubmitSitemapInput,
)
from gsc_mcp.tools import list_sites, search_analytics, sitemaps, url_inspection
from gsc_mcp.tools.search_analytics import build_request
from tests.helpers.fakes import FakeSearchConsole

SITE = "sc-domain:example.com"


@pytest.mark.asyncio
async def test_list_sites_empty_account():
    text = await list_sites.list_sites(FakeSearchConsole(), ListSitesInput())
    assert text == "No Search Console properties found."


@pytest.mark.asyncio
async def test_list_sites_table():
    client = FakeSearchConsole(
        sites=[
            {"siteUrl": "sc-domain:example.com", "permissionLevel": "siteOwner"},
            {"siteUrl": "https://blog.example.com/", "permissionLevel": "siteFullUser"},
        ]
    )
    text = await list_sites.list_sites(client, ListSitesInput())
    lines = text.splitlines()
    assert lines[0] == "Found 2 Search Console properties:"
    assert "Site URL" in lines[2] and "Permission" in lines[2]
    assert lines[4].startswith("sc-domain:example.com")
    assert "siteFullUser" in lines[5]


def test_build_request_defaults_to_by_property():
    args = SearchAnalyticsInput.model_validate({"siteUrl": SITE, "searchType": "discover"})
    body = build_request(args, "2024-01-01", "2024-01-28")
    assert body == {
        "startDate": "2024-01-01",
        "endDate": "2024-01-28",
        "dimensions": ["QUERY"],
        "rowLimit": 100,
        "startRow": 0,
        "type": "DISCOVER",
        "dataState": "all",
        "aggregationType": "byProperty",
    }


def test_build_request_with_page_dimension_and_filters():
    args = SearchAnalyticsInput.model_validate(
        {
            "siteUrl": SITE,
            "dimensions": ["page", "device"],
            "filters": [{"dimension": "country", "operator": "equals", "expression": "usa"}],
        }
    )
    body = build_request(args, "2024-01-01", "2024-01-28")
    assert "aggregationType" not in body
    assert body["dimensionFilterGroups"] == [
        {"groupType": "and", "filters": [{"dimension": "COUNTRY", "operator": "equals", "expression": "usa"}]}
    ]


@pytest.mark.asyncio
async def test_search_analytics_report_and_summary():
    client = FakeSearchConsole(
        analytics={
            "rows": [
                {"keys": ["running shoes"], "clicks": 10, "impressions": 100, "ctr": 0.1, "position": 3.0},
                {"keys": ["trail boots"], "clicks": 5, "impressions": 400, "ctr": 0.0125, "position": 8.0},
            ]
        }
    )
    args = SearchAnalyticsInput.model_validate(
        {
            "siteUrl": SITE,
            "startDate": "2024-01-01",
            "endDate": "2024-01-28",
            "rowLimit": 2,
            "filters": [{"dimension": "query", "operator": "contains", "expression": "shoe"}],
        }
    )
    text = await search_analytics.search_analytics(client, args)

    assert text.startswith(f"Search Analytics for {SITE}\nPeriod: 2024-01-01 to 2024-01-28\nDimensions: query\n")
    assert 'Filters: query contains "shoe"' in text
    assert "running shoes" in text
    assert "10.00%" in text
    assert "Total Clicks: 15" in text
    assert "Total Impressions: 500" in text
    assert "Average CTR: 3.00%" in text
    assert "Average Position: 5.5" in text
    assert "Rows Returned: 2 (limit reached)" in text
    _, site_url, body = client.calls[0]
    assert site_url == SITE
    assert body["startDate"] == "2024-01-01"


@pytest.mark.asyncio
async def test_search_analytics_no_rows():
    args = SearchAnalyticsInput.model_validate({"siteUrl": SITE, "days": 7})
    text = await search_analytics.search_analytics(FakeSearchConsole(analytics={}), args)
    assert "No data found for the specified criteria." in text
    assert "Summary" not in text


@pytest.mark.asyncio
async def test_inspect_url_report_sections():
    client = FakeSearchConsole(
        inspection={
            "inspectionResult": {
                "indexStatusResult": {
                    "coverageState": "Submitted and indexed",
                    "indexingState": "INDEXING_ALLOWED",
                    "lastCrawlTime": "2024-01-05T10:00:00Z",
                    "verdict": "PASS",
                },
                "mobileUsabilityResult": {
                    "verdict": "FAIL",
                    "issues": [{"issueType": "TEXT_TOO_SMALL", "message": "Text too small to read"}],
                },
                "richResultsResult": {
                    "verdict": "PASS",
                    "detectedItems": [
                        {
                            "richResultType": "Breadcrumbs",
                            "items": [{"issues": [{"issueMessage": "Missing field", "severity": "WARNING"}]}],
                        }
                    ],
                },
            }
        }
    )
    args = InspectUrlInput.model_validate({"siteUrl": SITE, "inspectionUrl": "https://example.com/a"})
    text = await url_inspection.inspect_url(client, args)

    assert text.startswith("URL Inspection Report\n" + "=" * 50)
    assert "URL: https://example.com/a" in text
    assert "Coverage State: Submitted and indexed" in text
    assert "Last Crawl: 2024-01-05T10:00:00Z" in text
    assert "  - TEXT_TOO_SMALL: Text too small to read" in text
    assert "  - Breadcrumbs" in text
    assert "Issue: Missing field (WARNING)" in text
    assert "## AMP" not in text


@pytest.mark.asyncio
async def test_inspect_url_without_result():
    args = InspectUrlInput.model_validate({"siteUrl": SITE, "inspectionUrl": "https://example.com/a"})
    text = await url_inspection.inspect_url(FakeSearchConsole(inspection={}), args)
    assert text == "No inspection data available for https://example.com/a"


@pytest.mark.asyncio
async def test_list_sitemaps_table_and_contents():
    client = FakeSearchConsole(
        sitemaps=[
            {
                "path": "https://example.com/sitemap.xml",
                "type": "sitemap",
                "lastSubmitted": "2024-01-02T03:04:05.000Z",
                "warnings": "1",
                "errors": "0",
                "contents": [{"type": "web", "submitted": "1200", "indexed": "1100"}],
            }
        ]
    )
    text = await sitemaps.list_sitemaps(client, ListSitemapsInput.model_validate({"siteUrl": SITE}))
    lines = text.splitlines()
    assert lines[0] == f"Sitemaps for {SITE}"
    assert "Found 1 sitemap:" in lines
    row = next(line for line in lines if line.startswith("https://example.com/sitemap.xml"))
    assert "2024-01-02" in row
    assert "N/A" in row
    assert "    └─ web: 1,200 submitted, 1,100 indexed" in lines


@pytest.mark.asyncio
async def test_list_sitemaps_empty():
    text = await sitemaps.list_sitemaps(FakeSearchConsole(), ListSitemapsInput.model_validate({"siteUrl": SITE}))
    assert text == f"No sitemaps found for {SITE}"


@pytest.mark.asyncio
async def test_submit_and_delete_messages():
    client = FakeSearchConsole()
    raw = {"siteUrl": SITE, "sitemapUrl": "https://example.com/sitemap.xml"}

    submitted = await sitemaps.submit_sitemap(client, SubmitSitemapInput.model_validate(raw))
    deleted = await sitemaps.delete_sitemap(client, DeleteSitemapInput.model_validate(raw))

    assert submitted.startswith("Successfully submitted sitemap: https://example.com/sitemap.xml")
    assert "Use 'gsc.list_sitemaps' to check the status." in submitted
    assert deleted.startswith("Successfully deleted sitemap: https://example.com/sitemap.xml")
    assert [c[0] for c in client.calls] == ["submit_sitemap", "delete_sitemap"]


@pytest.mark.asyncio
async def test_handlers_propagate_upstream_errors():
    client = FakeSearchConsole(error=UpstreamAPIError(404, "Not found"))
    with pytest.raises(UpstreamAPIError):
        await sitemaps.list_sitemaps(client, ListSitemapsInput.model_validate({"siteUrl": SITE}))
