from __future__ import annotations

import asyncio
import itertools
import re
import threading
from dataclasses import replace
from typing import Callable

import httpx
import pytest

from sitesearch.common.config import Settings, SiteConfig
from sitesearch.lemma import LemmaExtractor
from sitesearch.storage.models import IndexingStatus, Lemma, Page, Posting, Site

ROOT = "http://test.local/"


class FakeMorphology:
    word_pattern = re.compile(r"[a-z]+")

    TAGS = {"and": "CONJ", "or": "CONJ", "of": "PREP", "in": "PREP", "oh": "INTJ", "to": "PART"}
    FORMS = {"cats": "cat", "dogs": "dog", "running": "run", "ran": "run", "mice": "mouse"}

    def parts_of_speech(self, word: str) -> list[str]:
        return [self.TAGS.get(word, "NOUN")]

    def normal_forms(self, word: str) -> list[str]:
        return [self.FORMS.get(word, word)]


class MemoryIndexStore:
    """Dict-backed stand-in for IndexStore with the same semantics."""

    def __init__(self) -> None:
        self.sites: dict[int, Site] = {}
        self.pages: dict[int, Page] = {}
        self.lemmas: dict[int, Lemma] = {}
        self.postings: dict[int, Posting] = {}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    def find_site_by_url(self, url):
        with self._lock:
            return next((replace(s) for s in self.sites.values() if s.url == url), None)

    def find_sites_by_status(self, status):
        with self._lock:
            return [replace(s) for s in sorted(self.sites.values(), key=lambda s: s.id) if s.status is status]

    def exists_site_with_status(self, status):
        return bool(self.find_sites_by_status(status))

    def find_all_sites(self):
        with self._lock:
            return [replace(s) for s in sorted(self.sites.values(), key=lambda s: s.id)]

    def save_site(self, site):
        with self._lock:
            existing = next((s for s in self.sites.values() if s.url == site.url), None)
            site.id = existing.id if existing else next(self._ids)
            self.sites[site.id] = replace(site)
            return site

    def delete_site_cascade(self, site_id):
        with self._lock:
            page_ids = {p.id for p in self.pages.values() if p.site_id == site_id}
            self.postings = {k: p for k, p in self.postings.items() if p.page_id not in page_ids}
            self.lemmas = {k: l for k, l in self.lemmas.items() if l.site_id != site_id}
            self.pages = {k: p for k, p in self.pages.items() if p.site_id != site_id}

    def fail_indexing_sites(self, message):
        with self._lock:
            failed = []
            for site in self.sites.values():
                if site.status is IndexingStatus.INDEXING:
                    site.transition(IndexingStatus.FAILED, message)
                    failed.append(site.url)
            return failed

    def save_page(self, page):
        with self._lock:
            existing = next(
                (p for p in self.pages.values() if p.site_id == page.site_id and p.path == page.path), None
            )
            page.id = existing.id if existing else next(self._ids)
            self.pages[page.id] = replace(page)
            return page

    def find_page_by_path(self, path):
        with self._lock:
            matches = sorted((p for p in self.pages.values() if p.path == path), key=lambda p: p.id)
            return replace(matches[0]) if matches else None

    def find_pages_by_ids(self, page_ids):
        with self._lock:
            return [replace(self.pages[i]) for i in page_ids if i in self.pages]

    def delete_page_cascade(self, page_id):
        with self._lock:
            removed = [p for p in self.postings.values() if p.page_id == page_id]
            for posting in removed:
                del self.postings[posting.id]
                lemma = self.lemmas[posting.lemma_id]
                lemma.frequency -= 1
                if lemma.frequency <= 0:
                    del self.lemmas[lemma.id]
            self.pages.pop(page_id, None)

    def count_pages(self, site_id):
        with self._lock:
            return sum(1 for p in self.pages.values() if p.site_id == site_id)

    def count_pages_by_sites(self, site_ids):
        ids = set(site_ids)
        with self._lock:
            return sum(1 for p in self.pages.values() if p.site_id in ids)

    def upsert_lemma(self, site_id, lemma):
        with self._lock:
            for row in self.lemmas.values():
                if row.site_id == site_id and row.lemma == lemma:
                    row.frequency += 1
                    return row.id
            lemma_id = next(self._ids)
            self.lemmas[lemma_id] = Lemma(id=lemma_id, site_id=site_id, lemma=lemma, frequency=1)
            return lemma_id

    def find_lemma(self, site_id, lemma):
        with self._lock:
            return next(
                (replace(r) for r in self.lemmas.values() if r.site_id == site_id and r.lemma == lemma), None
            )

    def find_lemmas(self, lemmas, site_ids):
        wanted, ids = set(lemmas), set(site_ids)
        with self._lock:
            return [replace(r) for r in self.lemmas.values() if r.lemma in wanted and r.site_id in ids]

    def count_lemmas(self, site_id):
        with self._lock:
            return sum(1 for r in self.lemmas.values() if r.site_id == site_id)

    def postings_by_lemma(self, lemma_id):
        with self._lock:
            return {p.page_id for p in self.postings.values() if p.lemma_id == lemma_id}

    def postings_by_page_and_lemmas(self, page_id, lemma_ids):
        ids = set(lemma_ids)
        with self._lock:
            return [replace(p) for p in self.postings.values() if p.page_id == page_id and p.lemma_id in ids]

    def exists_posting(self, lemma_id, page_id):
        with self._lock:
            return any(p.lemma_id == lemma_id and p.page_id == page_id for p in self.postings.values())

    def create_posting(self, page_id, lemma_id, rank):
        with self._lock:
            if self.exists_posting(lemma_id, page_id):
                return
            posting_id = next(self._ids)
            self.postings[posting_id] = Posting(id=posting_id, page_id=page_id, lemma_id=lemma_id, rank=rank)


class FakeWeb:
    """Serves canned pages through httpx.MockTransport and records requests."""

    def __init__(self, pages: dict[str, tuple[int, str, str]], delay_s: float = 0.0) -> None:
        self.pages = pages
        self.delay_s = delay_s
        self.requested: list[str] = []
        self.failing: set[str] = set()
        self.redirects: dict[str, str] = {}

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requested.append(url)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if url in self.failing:
            raise httpx.ConnectError("connection refused", request=request)
        if url in self.redirects:
            return httpx.Response(301, headers={"location": self.redirects[url]})
        if url not in self.pages:
            return httpx.Response(404, text="not found", headers={"content-type": "text/html"})
        status, content_type, body = self.pages[url]
        return httpx.Response(status, text=body, headers={"content-type": content_type})

    def client_factory(self, _settings: Settings | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self._handle), follow_redirects=True)


def html_page(body: str, title: str | None = None, links: tuple[str, ...] = ()) -> tuple[int, str, str]:
    head = f"<head><title>{title}</title></head>" if title else "<head></head>"
    anchors = "".join(f'<a href="{href}">link</a>' for href in links)
    return 200, "text/html; charset=utf-8", f"<html>{head}<body><p>{body}</p>{anchors}</body></html>"


@pytest.fixture
def store() -> MemoryIndexStore:
    return MemoryIndexStore()


@pytest.fixture
def extractor() -> LemmaExtractor:
    return LemmaExtractor(FakeMorphology())


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    def _make(**overrides) -> Settings:
        values = {
            "sites": (SiteConfig(url=ROOT, name="Test site"),),
            "user_agent": "test-agent",
            "referrer": "http://referrer.local",
            "delay_min_ms": 0,
            "delay_max_ms": 0,
            "request_timeout_s": 10,
            "crawler_concurrency": 4,
            "stop_grace_s": 5.0,
        }
        values.update(overrides)
        return Settings(**values)

    return _make
