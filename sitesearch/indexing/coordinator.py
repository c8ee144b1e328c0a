from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable

import httpx
from pydantic import BaseModel

from sitesearch.common.config import Settings, SiteConfig, settings as default_settings
from sitesearch.common.errors import ErrorKind, FetchError
from sitesearch.common.state import CancellationToken, SingleFlight
from sitesearch.crawler.normalization import normalize_url
from sitesearch.crawler.orchestrator import STOPPED_BY_USER, SiteCrawler
from sitesearch.crawler.worker import build_client, fetch_page, store_page
from sitesearch.lemma import LemmaExtractor, default_extractor
from sitesearch.storage.index_store import IndexStore
from sitesearch.storage.models import IndexingStatus, Page, Site

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Settings], httpx.AsyncClient]


class IndexingResponse(BaseModel):
    result: bool
    error: str | None = None
    error_kind: ErrorKind | None = None


def _failed(kind: ErrorKind, message: str) -> IndexingResponse:
    return IndexingResponse(result=False, error=message, error_kind=kind)


class IndexingCoordinator:
    """Entry point for crawling: start/stop the system-wide session and
    re-index single pages.

    A session crawls every configured site concurrently in a background
    task on the running event loop. Only one session may run at a time.
    """

    def __init__(
        self,
        *,
        settings: Settings = default_settings,
        store: IndexStore | None = None,
        extractor: LemmaExtractor | None = None,
        client_factory: ClientFactory = build_client,
    ) -> None:
        self.settings = settings
        self.store = store or IndexStore()
        self._extractor = extractor
        self._client_factory = client_factory
        self._flight = SingleFlight()
        self._token: CancellationToken | None = None
        self._session: asyncio.Task[None] | None = None

    @property
    def extractor(self) -> LemmaExtractor:
        if self._extractor is None:
            self._extractor = default_extractor()
        return self._extractor

    @property
    def is_indexing(self) -> bool:
        return self._flight.is_running

    async def start(self) -> IndexingResponse:
        if not self._flight.try_start():
            logger.info("start rejected: indexing already running")
            return _failed(ErrorKind.ALREADY_RUNNING, "Indexing is already running")

        token = CancellationToken()
        self._token = token
        self._session = asyncio.create_task(self._run_session(token))
        return IndexingResponse(result=True)

    async def _run_session(self, token: CancellationToken) -> None:
        sites = self.settings.sites
        logger.info("indexing session started sites=%s", len(sites))
        try:
            async with self._client_factory(self.settings) as client:
                crawler = SiteCrawler(
                    store=self.store,
                    extractor=self.extractor,
                    settings=self.settings,
                    client=client,
                )
                outcomes = await asyncio.gather(
                    *(crawler.crawl(site, token) for site in sites),
                    return_exceptions=True,
                )
            crashed = [
                (site, outcome) for site, outcome in zip(sites, outcomes) if isinstance(outcome, Exception)
            ]
            for site, exc in crashed:
                logger.error("site crawl crashed site=%s", site.url, exc_info=exc)
            if crashed:
                await asyncio.to_thread(self.store.fail_indexing_sites, f"crawl error: {crashed[0][1]}")
            logger.info("indexing session finished sites=%s crashed=%s", len(sites), len(crashed))
        finally:
            # A cancelled session is released by stop() once sites are finalized.
            if not token.cancelled:
                self._flight.finish()

    async def wait(self) -> None:
        if self._session is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._session

    async def stop(self) -> IndexingResponse:
        token, session = self._token, self._session
        if not self._flight.is_running or token is None or token.cancelled:
            logger.info("stop rejected: indexing not running")
            return _failed(ErrorKind.NOT_RUNNING, "Indexing is not running")

        logger.info("stopping indexing session")
        token.cancel()
        if session is not None:
            try:
                await asyncio.wait_for(asyncio.shield(session), timeout=self.settings.stop_grace_s)
            except asyncio.TimeoutError:
                logger.warning("session still busy after %ss, terminating", self.settings.stop_grace_s)
                session.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await session
            except Exception:
                logger.exception("indexing session failed while stopping")

        failed = await asyncio.to_thread(self.store.fail_indexing_sites, STOPPED_BY_USER)
        logger.info("indexing stopped sites_failed=%s", len(failed))
        self._flight.finish()
        return IndexingResponse(result=True)

    def _match_site(self, url: str) -> SiteConfig | None:
        return next((site for site in self.settings.sites if url.startswith(site.url)), None)

    def _reindex(self, config: SiteConfig, url: str, status_code: int, html: str) -> tuple[Page, int]:
        site = self.store.find_site_by_url(config.url)
        if site is None:
            site = self.store.save_site(Site(url=config.url, name=config.name, status=IndexingStatus.INDEXED))

        existing = self.store.find_page_by_path(url)
        if existing is not None:
            logger.info("removing previous version url=%s page_id=%s", url, existing.id)
            self.store.delete_page_cascade(existing.id)

        return store_page(self.store, self.extractor, site, url, status_code, html)

    async def index_single_page(self, url: str) -> IndexingResponse:
        if not url or not url.strip():
            return _failed(ErrorKind.INVALID_URL, "URL must not be empty")

        url = normalize_url(url)
        config = self._match_site(url)
        if config is None:
            logger.info("index_single_page rejected url=%s: outside configured sites", url)
            return _failed(
                ErrorKind.OUTSIDE_CONFIGURED_SITES,
                "This page is outside the sites listed in the configuration",
            )

        logger.info("re-indexing url=%s site=%s", url, config.url)
        try:
            async with self._client_factory(self.settings) as client:
                res = await fetch_page(client, url)
        except FetchError as exc:
            logger.warning("re-index fetch failed url=%s reason=%s", url, exc.reason)
            return _failed(ErrorKind.FETCH_ERROR, f"Page could not be loaded: {exc.reason}")
        except httpx.HTTPError as exc:
            logger.warning("re-index request failed url=%s", url, exc_info=True)
            return _failed(ErrorKind.FETCH_ERROR, f"Page could not be loaded: {exc}")

        page, postings = await asyncio.to_thread(self._reindex, config, url, res.status_code, res.text)
        logger.info("re-indexed url=%s page_id=%s postings=%s", url, page.id, postings)
        return IndexingResponse(result=True)


def main() -> None:
    logging.basicConfig(level=logging.INFO)

    async def _run() -> None:
        coordinator = IndexingCoordinator()
        response = await coordinator.start()
        if not response.result:
            logger.error("could not start indexing: %s", response.error)
            return
        await coordinator.wait()

    asyncio.run(_run())


if __name__ == "__main__":
    main()
