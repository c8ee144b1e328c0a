from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass, field
from typing import Callable

from bs4 import BeautifulSoup
from pydantic import BaseModel, ConfigDict, Field

from sitesearch.common.config import normalize_root
from sitesearch.common.errors import EmptyQueryError, ParseError
from sitesearch.crawler.normalization import strip_origin
from sitesearch.lemma import LemmaExtractor, default_extractor
from sitesearch.storage.index_store import IndexStore
from sitesearch.storage.models import IndexingStatus, Page, Site

logger = logging.getLogger(__name__)

# Lemmas found on more than this share of the pages in scope are ignored.
MAX_LEMMA_FREQUENCY_PERCENT = 70

SNIPPET_BEFORE = 50
SNIPPET_AFTER = 150
SNIPPET_FALLBACK_LENGTH = 200
UNTITLED = "Untitled"
EMPTY_SNIPPET = "..."
TEXT_UNAVAILABLE = "Text unavailable"

WORD_RE = re.compile(r"[^\W\d_]+")


class SearchResultItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    site: str
    site_name: str = Field(alias="siteName")
    uri: str
    title: str
    snippet: str
    relevance: float


class SearchResponse(BaseModel):
    result: bool
    error: str | None = None
    count: int = 0
    data: list[SearchResultItem] = Field(default_factory=list)


@dataclass
class QueryLemma:
    """One query lemma across the sites in scope (one lemma row per site)."""

    lemma: str
    frequency: int = 0
    lemma_ids: list[int] = field(default_factory=list)


def popularity_cutoff(total_pages: int) -> int:
    return total_pages * MAX_LEMMA_FREQUENCY_PERCENT // 100


def extract_title(markup: str) -> str:
    try:
        soup = BeautifulSoup(markup or "", "html.parser")
    except Exception:
        return UNTITLED
    title = soup.title.get_text(" ", strip=True) if soup.title else ""
    return title or UNTITLED


def build_snippet(text: str, query_lemmas: set[str], lemma_of: Callable[[str], str | None]) -> str:
    if not text:
        return EMPTY_SNIPPET

    cache: dict[str, bool] = {}

    def _is_match(word: str) -> bool:
        key = word.lower()
        if key not in cache:
            cache[key] = lemma_of(key) in query_lemmas
        return cache[key]

    first = next((m for m in WORD_RE.finditer(text) if _is_match(m.group())), None)
    if first is None:
        window = text[:SNIPPET_FALLBACK_LENGTH]
    else:
        window = text[max(0, first.start() - SNIPPET_BEFORE) : first.start() + SNIPPET_AFTER]

    parts: list[str] = []
    last = 0
    for match in WORD_RE.finditer(window):
        if not _is_match(match.group()):
            continue
        parts.append(html.escape(window[last : match.start()], quote=False))
        parts.append(f"<b>{html.escape(match.group(), quote=False)}</b>")
        last = match.end()
    parts.append(html.escape(window[last:], quote=False))
    return "".join(parts).strip()


class SearchService:
    def __init__(self, store: IndexStore | None = None, extractor: LemmaExtractor | None = None) -> None:
        self.store = store or IndexStore()
        self._extractor = extractor

    @property
    def extractor(self) -> LemmaExtractor:
        if self._extractor is None:
            self._extractor = default_extractor()
        return self._extractor

    def _failure(self, message: str) -> SearchResponse:
        return SearchResponse(result=False, error=message)

    def _empty(self) -> SearchResponse:
        return SearchResponse(result=True, count=0, data=[])

    def _resolve_scope(self, site_url: str | None) -> list[Site]:
        if not site_url:
            return self.store.find_sites_by_status(IndexingStatus.INDEXED)
        site = self.store.find_site_by_url(normalize_root(site_url))
        if site is None or site.status is not IndexingStatus.INDEXED:
            return []
        return [site]

    def _plan(self, query_lemmas: set[str], site_ids: list[int]) -> list[QueryLemma] | None:
        rows = self.store.find_lemmas(query_lemmas, site_ids)
        if not rows:
            return None

        grouped: dict[str, QueryLemma] = {}
        for row in rows:
            entry = grouped.setdefault(row.lemma, QueryLemma(lemma=row.lemma))
            entry.frequency += row.frequency
            entry.lemma_ids.append(row.id)

        cutoff = popularity_cutoff(self.store.count_pages_by_sites(site_ids))
        kept = [entry for entry in grouped.values() if entry.frequency <= cutoff]
        # Rarest first keeps the running intersection small.
        kept.sort(key=lambda entry: (entry.frequency, entry.lemma))
        logger.info(
            "search plan lemmas=%s kept=%s cutoff=%s",
            sorted(grouped), [e.lemma for e in kept], cutoff,
        )
        return kept

    def _postings(self, entry: QueryLemma) -> set[int]:
        pages: set[int] = set()
        for lemma_id in entry.lemma_ids:
            pages |= self.store.postings_by_lemma(lemma_id)
        return pages

    def _candidates(self, plan: list[QueryLemma]) -> set[int]:
        candidates = self._postings(plan[0])
        for entry in plan[1:]:
            if not candidates:
                break
            candidates &= self._postings(entry)
        return candidates

    def _relevance(self, candidates: set[int], plan: list[QueryLemma]) -> dict[int, float]:
        lemma_ids = [lemma_id for entry in plan for lemma_id in entry.lemma_ids]
        raw = {
            page_id: sum(p.rank for p in self.store.postings_by_page_and_lemmas(page_id, lemma_ids))
            for page_id in candidates
        }
        top = max(raw.values()) or 1.0
        return {page_id: score / top for page_id, score in raw.items()}

    def _page_text(self, page: Page) -> str:
        try:
            return self.extractor.extract_text(page.content)
        except Exception as exc:
            raise ParseError(f"could not extract text from {page.path}") from exc

    def _build_item(self, page: Page, site: Site, relevance: float, query_lemmas: set[str]) -> SearchResultItem:
        try:
            snippet = build_snippet(self._page_text(page), query_lemmas, self.extractor.lemma_of)
        except ParseError:
            logger.warning("snippet unavailable page_id=%s", page.id, exc_info=True)
            snippet = TEXT_UNAVAILABLE
        return SearchResultItem(
            site=site.url,
            site_name=site.name,
            uri=strip_origin(page.path),
            title=extract_title(page.content),
            snippet=snippet,
            relevance=relevance,
        )

    def search(self, query: str, site: str | None = None, offset: int = 0, limit: int = 20) -> SearchResponse:
        if not query or not query.strip():
            raise EmptyQueryError()

        if not self.store.exists_site_with_status(IndexingStatus.INDEXED):
            return self._failure("No indexed sites")

        query_lemmas = set(self.extractor.get_lemmas(query))
        if not query_lemmas:
            return self._failure("No matching words for search")

        sites = self._resolve_scope(site)
        if not sites:
            return self._failure("Site is not indexed or not found")
        sites_by_id = {s.id: s for s in sites}

        plan = self._plan(query_lemmas, list(sites_by_id))
        if not plan:
            return self._empty()

        candidates = self._candidates(plan)
        if not candidates:
            return self._empty()

        relevance = self._relevance(candidates, plan)
        pages = [p for p in self.store.find_pages_by_ids(candidates) if p.site_id in sites_by_id]
        pages.sort(key=lambda p: (-relevance[p.id], p.path))

        offset = max(0, offset)
        window = pages[offset : offset + max(0, limit)]
        items = [
            self._build_item(page, sites_by_id[page.site_id], relevance[page.id], query_lemmas)
            for page in window
        ]
        logger.info("search query=%r site=%s count=%s returned=%s", query, site, len(pages), len(items))
        return SearchResponse(result=True, count=len(pages), data=items)


search_service = SearchService()


def perform_search(*, query: str, site: str | None = None, offset: int = 0, limit: int = 20) -> SearchResponse:
    return search_service.search(query, site=site, offset=offset, limit=limit)
