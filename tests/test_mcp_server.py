from __future__ import annotations

from sitesearch.api.search_service import SearchResponse, SearchResultItem
from sitesearch.common.errors import EmptyQueryError
from sitesearch.mcp import server


def test_search_tool_bounds_paging_and_renders_results(monkeypatch) -> None:
    captured: dict[str, object] = {}

    def _fake_perform_search(*, query: str, site: str | None, offset: int, limit: int):
        captured.update(query=query, site=site, offset=offset, limit=limit)
        item = SearchResultItem(
            site="http://test.local/",
            site_name="Test site",
            uri="/pets",
            title="Pets",
            snippet="<b>cats</b> and dogs",
            relevance=1.0,
        )
        return SearchResponse(result=True, count=1, data=[item])

    monkeypatch.setattr(server, "perform_search", _fake_perform_search)

    result = server.render_results("cats", None, limit=999, offset=-3)

    assert captured == {"query": "cats", "site": None, "offset": 0, "limit": 100}
    assert result == "1 matching page(s)\n\n[http://test.local/pets](Pets)\n<b>cats</b> and dogs"


def test_search_tool_reports_failures(monkeypatch) -> None:
    def _no_sites(**_kwargs):
        return SearchResponse(result=False, error="No indexed sites")

    def _blank(**_kwargs):
        raise EmptyQueryError()

    monkeypatch.setattr(server, "perform_search", _no_sites)
    assert server.render_results("cats", None, 10, 0) == "No indexed sites"

    monkeypatch.setattr(server, "perform_search", _blank)
    assert server.render_results("", None, 10, 0) == "Search query is empty"
