from __future__ import annotations

import asyncio
import logging

import httpx

from sitesearch.common.config import Settings, SiteConfig
from sitesearch.common.state import CancellationToken
from sitesearch.crawler.frontier import CrawlFrontier
from sitesearch.crawler.worker import CrawlContext, process_url
from sitesearch.lemma import LemmaExtractor
from sitesearch.storage.index_store import IndexStore
from sitesearch.storage.models import IndexingStatus, Site

logger = logging.getLogger(__name__)

STOPPED_BY_USER = "stopped by user"


class SiteCrawler:
    """Runs one crawl session for one configured site.

    The site's previous pages, lemmas and postings are purged, then a pool
    of workers drains the site's frontier until every discovered url has
    been processed or the session is cancelled.
    """

    def __init__(
        self,
        *,
        store: IndexStore,
        extractor: LemmaExtractor,
        settings: Settings,
        client: httpx.AsyncClient,
    ) -> None:
        self.store = store
        self.extractor = extractor
        self.settings = settings
        self.client = client

    def _reset_site(self, config: SiteConfig) -> Site:
        site = self.store.find_site_by_url(config.url)
        if site is None:
            site = Site(url=config.url, name=config.name, status=IndexingStatus.INDEXING)
        else:
            self.store.delete_site_cascade(site.id)
            site.name = config.name
            site.transition(IndexingStatus.INDEXING)
        return self.store.save_site(site)

    async def crawl(self, config: SiteConfig, token: CancellationToken) -> Site:
        logger.info("crawl starting site=%s", config.url)
        site = await asyncio.to_thread(self._reset_site, config)

        ctx = CrawlContext(
            site=site,
            frontier=CrawlFrontier(),
            token=token,
            client=self.client,
            store=self.store,
            extractor=self.extractor,
            settings=self.settings,
        )
        ctx.frontier.offer(site.url)

        try:
            await self._drain(ctx)
            if token.cancelled:
                site.transition(IndexingStatus.FAILED, STOPPED_BY_USER)
            else:
                site.transition(IndexingStatus.INDEXED)
        except Exception as exc:
            logger.exception("crawl failed site=%s", site.url)
            site.transition(IndexingStatus.FAILED, f"crawl error: {exc}")

        await asyncio.to_thread(self.store.save_site, site)
        logger.info(
            "crawl finished site=%s status=%s visited=%s",
            site.url, site.status.value, ctx.frontier.visited_count,
        )
        return site

    async def _worker(self, ctx: CrawlContext) -> None:
        while True:
            url = await ctx.frontier.next()
            try:
                await process_url(url, ctx)
            finally:
                ctx.frontier.done()

    async def _drain(self, ctx: CrawlContext) -> None:
        concurrency = max(1, self.settings.crawler_concurrency)
        workers = [asyncio.create_task(self._worker(ctx)) for _ in range(concurrency)]
        joined = asyncio.create_task(ctx.frontier.join())
        try:
            done, _ = await asyncio.wait({joined, *workers}, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if task is not joined and task.exception() is not None:
                    raise task.exception()
        finally:
            for task in (joined, *workers):
                task.cancel()
            await asyncio.gather(joined, *workers, return_exceptions=True)
