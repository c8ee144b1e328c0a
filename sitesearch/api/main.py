from __future__ import annotations

import logging

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from sitesearch.api.search_service import SearchResponse, perform_search
from sitesearch.api.statistics_service import StatisticsResponse, StatisticsService
from sitesearch.common.errors import EmptyQueryError, ErrorKind
from sitesearch.indexing.coordinator import IndexingCoordinator, IndexingResponse

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Site Search API")

coordinator = IndexingCoordinator()
statistics_service = StatisticsService(is_indexing=lambda: coordinator.is_indexing)

ERROR_STATUS_CODES = {
    ErrorKind.OUTSIDE_CONFIGURED_SITES: 404,
}


def _indexing_reply(response: IndexingResponse) -> IndexingResponse | JSONResponse:
    if response.result:
        return response
    status_code = ERROR_STATUS_CODES.get(response.error_kind, 400)
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))


@app.exception_handler(EmptyQueryError)
async def empty_query_handler(request: Request, exc: EmptyQueryError) -> JSONResponse:
    logger.info("rejected empty query path=%s", request.url.path)
    body = SearchResponse(result=False, error=str(exc))
    return JSONResponse(status_code=400, content=body.model_dump(mode="json", by_alias=True))


@app.get("/api/startIndexing", response_model=IndexingResponse)
async def start_indexing():
    return _indexing_reply(await coordinator.start())


@app.get("/api/stopIndexing", response_model=IndexingResponse)
async def stop_indexing():
    return _indexing_reply(await coordinator.stop())


@app.post("/api/indexPage", response_model=IndexingResponse)
async def index_page(url: str = Query("")):
    return _indexing_reply(await coordinator.index_single_page(url))


@app.get("/api/search", response_model=SearchResponse)
def search(
    query: str = Query(""),
    site: str | None = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
) -> SearchResponse:
    return perform_search(query=query, site=site, offset=offset, limit=limit)


@app.get("/api/statistics", response_model=StatisticsResponse)
def statistics() -> StatisticsResponse:
    return statistics_service.get_statistics()
