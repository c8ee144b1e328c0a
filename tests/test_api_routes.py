from __future__ import annotations

from conftest import ROOT, FakeWeb
from fastapi.testclient import TestClient

from sitesearch.api import main
from sitesearch.api.search_service import SearchResponse, SearchResultItem
from sitesearch.api.statistics_service import StatisticsService
from sitesearch.common.errors import ErrorKind
from sitesearch.indexing.coordinator import IndexingCoordinator, IndexingResponse
from sitesearch.storage.models import IndexingStatus, Site

client = TestClient(main.app)


class _BusyCoordinator:
    is_indexing = True

    async def start(self) -> IndexingResponse:
        return IndexingResponse(result=False, error="Indexing is already running", error_kind=ErrorKind.ALREADY_RUNNING)


def test_empty_query_is_a_bad_request() -> None:
    res = client.get("/api/search", params={"query": "  "})

    assert res.status_code == 400
    assert res.json() == {"result": False, "error": "Search query is empty", "count": 0, "data": []}


def test_search_delegates_and_uses_camel_case(monkeypatch) -> None:
    captured = {}

    def _fake_perform_search(*, query, site, offset, limit):
        captured.update(query=query, site=site, offset=offset, limit=limit)
        item = SearchResultItem(
            site=ROOT, site_name="Test site", uri="/a", title="A", snippet="<b>cat</b>", relevance=1.0
        )
        return SearchResponse(result=True, count=1, data=[item])

    monkeypatch.setattr(main, "perform_search", _fake_perform_search)

    res = client.get("/api/search", params={"query": "cat", "site": ROOT, "offset": 2, "limit": 5})

    assert res.status_code == 200
    assert captured == {"query": "cat", "site": ROOT, "offset": 2, "limit": 5}
    assert res.json()["data"][0]["siteName"] == "Test site"


def test_search_rejects_out_of_range_paging() -> None:
    assert client.get("/api/search", params={"query": "cat", "limit": 500}).status_code == 422
    assert client.get("/api/search", params={"query": "cat", "offset": -1}).status_code == 422


def test_index_page_errors_map_to_status_codes(monkeypatch, store, extractor, make_settings) -> None:
    coordinator = IndexingCoordinator(
        settings=make_settings(), store=store, extractor=extractor, client_factory=FakeWeb({}).client_factory
    )
    monkeypatch.setattr(main, "coordinator", coordinator)

    outside = client.post("/api/indexPage", params={"url": "http://elsewhere.local/page"})
    empty = client.post("/api/indexPage")
    missing = client.post("/api/indexPage", params={"url": ROOT + "missing"})

    assert outside.status_code == 404
    assert outside.json()["error_kind"] == "outside_configured_sites"
    assert empty.status_code == 400
    assert empty.json()["error_kind"] == "invalid_url"
    assert missing.status_code == 400
    assert missing.json()["error"] == "Page could not be loaded: HTTP 404"


def test_stop_when_idle_and_start_when_busy(monkeypatch, store, extractor, make_settings) -> None:
    idle = IndexingCoordinator(settings=make_settings(), store=store, extractor=extractor)
    monkeypatch.setattr(main, "coordinator", idle)

    stopped = client.get("/api/stopIndexing")

    assert stopped.status_code == 400
    assert stopped.json() == {"result": False, "error": "Indexing is not running", "error_kind": "not_running"}

    monkeypatch.setattr(main, "coordinator", _BusyCoordinator())

    started = client.get("/api/startIndexing")

    assert started.status_code == 400
    assert started.json()["error"] == "Indexing is already running"


def test_statistics_route(monkeypatch, store) -> None:
    store.save_site(Site(url=ROOT, name="Test site", status=IndexingStatus.INDEXED))
    monkeypatch.setattr(main, "statistics_service", StatisticsService(store))

    res = client.get("/api/statistics")

    assert res.status_code == 200
    body = res.json()
    assert body["result"] is True
    assert body["statistics"]["total"] == {"sites": 1, "pages": 0, "lemmas": 0, "indexing": False}
    assert body["statistics"]["detailed"][0]["status"] == "INDEXED"
    assert isinstance(body["statistics"]["detailed"][0]["statusTime"], int)
