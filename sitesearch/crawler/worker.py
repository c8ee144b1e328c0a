from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass

import httpx
from bs4 import BeautifulSoup

from sitesearch.common.config import Settings
from sitesearch.common.errors import FetchError
from sitesearch.common.state import CancellationToken
from sitesearch.crawler.frontier import CrawlFrontier
from sitesearch.crawler.normalization import has_skipped_extension, is_within_site, resolve_link
from sitesearch.lemma import LemmaExtractor
from sitesearch.storage.index_store import IndexStore
from sitesearch.storage.models import Page, Site

logger = logging.getLogger(__name__)

TEXT_CONTENT_MARKERS = ("html", "xml", "json", "javascript")


@dataclass
class ParsedPage:
    links: list[str]


@dataclass
class CrawlContext:
    site: Site
    frontier: CrawlFrontier
    token: CancellationToken
    client: httpx.AsyncClient
    store: IndexStore
    extractor: LemmaExtractor
    settings: Settings


def build_client(settings: Settings) -> httpx.AsyncClient:
    concurrency = max(1, settings.crawler_concurrency)
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.request_timeout_s),
        limits=httpx.Limits(
            max_connections=max(32, concurrency * 8),
            max_keepalive_connections=max(16, concurrency * 4),
            keepalive_expiry=30.0,
        ),
        headers={
            "User-Agent": settings.user_agent,
            "Referer": settings.referrer,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        },
        follow_redirects=True,
    )


def is_indexable_content_type(content_type: str) -> bool:
    lowered = content_type.lower()
    return lowered.startswith("text/") or any(marker in lowered for marker in TEXT_CONTENT_MARKERS)


def politeness_delay_s(settings: Settings) -> float:
    low = max(0, settings.delay_min_ms)
    high = max(low, settings.delay_max_ms)
    return random.uniform(low, high) / 1000


def parse_html(url: str, html: str) -> ParsedPage:
    soup = BeautifulSoup(html, "html.parser")
    seen_links: set[str] = set()
    links: list[str] = []
    for a in soup.find_all("a", href=True):
        link = resolve_link(url, a["href"])
        if link and link not in seen_links:
            seen_links.add(link)
            links.append(link)
    return ParsedPage(links=links)


async def fetch_page(client: httpx.AsyncClient, url: str) -> httpx.Response:
    res = await client.get(url)
    logger.info("fetched url=%s status_code=%s", url, res.status_code)
    if res.status_code >= 400:
        raise FetchError(url, f"HTTP {res.status_code}")
    content_type = res.headers.get("content-type")
    if content_type and not is_indexable_content_type(content_type):
        raise FetchError(url, f"unsupported content type {content_type}")
    return res


def save_page_lemmas(store: IndexStore, page: Page, lemmas: dict[str, int]) -> int:
    """Add one unit of document frequency per lemma and a posting with its count.

    A lemma already posted for this page is left alone so that replaying a
    page never counts it twice. Returns the number of postings created.
    """
    created = 0
    # Sorted so concurrent writers lock lemma rows in the same order.
    for lemma in sorted(lemmas):
        try:
            existing = store.find_lemma(page.site_id, lemma)
            if existing and store.exists_posting(existing.id, page.id):
                continue
            lemma_id = store.upsert_lemma(page.site_id, lemma)
            store.create_posting(page.id, lemma_id, float(lemmas[lemma]))
            created += 1
        except Exception:
            logger.exception("failed to index lemma=%s page=%s", lemma, page.path)
    return created


def store_page(
    store: IndexStore,
    extractor: LemmaExtractor,
    site: Site,
    url: str,
    status_code: int,
    html: str,
) -> tuple[Page, int]:
    page = store.save_page(Page(site_id=site.id, path=url, code=status_code, content=html))
    lemmas = extractor.get_lemmas(extractor.extract_text(html))
    return page, save_page_lemmas(store, page, lemmas)


async def process_url(url: str, ctx: CrawlContext) -> None:
    if ctx.token.cancelled or not is_within_site(url, ctx.site.url) or has_skipped_extension(url):
        return

    await asyncio.sleep(politeness_delay_s(ctx.settings))
    if ctx.token.cancelled:
        return

    logger.info("fetching url=%s site=%s", url, ctx.site.url)
    try:
        res = await fetch_page(ctx.client, url)
        # Relative links resolve against the final url after redirects.
        parsed = await asyncio.to_thread(parse_html, str(res.url), res.text)
        page, postings = await asyncio.to_thread(
            store_page, ctx.store, ctx.extractor, ctx.site, url, res.status_code, res.text
        )

        queued = 0
        for link in parsed.links:
            if is_within_site(link, ctx.site.url) and ctx.frontier.offer(link):
                queued += 1
        logger.info(
            "finished url=%s page_id=%s postings=%s links=%s queued=%s",
            url, page.id, postings, len(parsed.links), queued,
        )
    except FetchError as exc:
        logger.warning("skipped url=%s reason=%s", url, exc.reason)
    except httpx.HTTPError:
        logger.warning("request timeout/error for %s", url, exc_info=True)
    except Exception:
        logger.exception("processing error for %s", url)
