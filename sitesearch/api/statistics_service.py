from __future__ import annotations

from typing import Callable

from pydantic import BaseModel, ConfigDict, Field

from sitesearch.storage.index_store import IndexStore
from sitesearch.storage.models import IndexingStatus


class TotalStatistics(BaseModel):
    sites: int
    pages: int
    lemmas: int
    indexing: bool


class DetailedStatisticsItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    name: str
    status: IndexingStatus
    status_time: int = Field(alias="statusTime")
    error: str | None = None
    pages: int
    lemmas: int


class StatisticsData(BaseModel):
    total: TotalStatistics
    detailed: list[DetailedStatisticsItem]


class StatisticsResponse(BaseModel):
    result: bool
    statistics: StatisticsData


class StatisticsService:
    def __init__(self, store: IndexStore | None = None, is_indexing: Callable[[], bool] | None = None) -> None:
        self.store = store or IndexStore()
        self._is_indexing = is_indexing or (lambda: False)

    def get_statistics(self) -> StatisticsResponse:
        detailed: list[DetailedStatisticsItem] = []
        for site in self.store.find_all_sites():
            detailed.append(
                DetailedStatisticsItem(
                    url=site.url,
                    name=site.name,
                    status=site.status,
                    status_time=int(site.status_time.timestamp() * 1000),
                    error=site.last_error or None,
                    pages=self.store.count_pages(site.id),
                    lemmas=self.store.count_lemmas(site.id),
                )
            )

        indexing = self._is_indexing() or any(item.status is IndexingStatus.INDEXING for item in detailed)
        total = TotalStatistics(
            sites=len(detailed),
            pages=sum(item.pages for item in detailed),
            lemmas=sum(item.lemmas for item in detailed),
            indexing=indexing,
        )
        return StatisticsResponse(result=True, statistics=StatisticsData(total=total, detailed=detailed))
