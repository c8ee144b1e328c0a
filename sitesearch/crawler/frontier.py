from __future__ import annotations

import asyncio


class CrawlFrontier:
    """Work queue of urls for one site crawl with a visited set.

    ``offer`` checks and marks a url in one step with no await in between,
    so on a single event loop the first caller wins and every url is queued
    at most once.
    """

    def __init__(self) -> None:
        self._visited: set[str] = set()
        self._queue: asyncio.Queue[str] = asyncio.Queue()

    def offer(self, url: str) -> bool:
        if url in self._visited:
            return False
        self._visited.add(url)
        self._queue.put_nowait(url)
        return True

    def seen(self, url: str) -> bool:
        return url in self._visited

    @property
    def visited_count(self) -> int:
        return len(self._visited)

    async def next(self) -> str:
        return await self._queue.get()

    def done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        await self._queue.join()
