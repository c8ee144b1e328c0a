from __future__ import annotations

import logging
from typing import Any, Iterable

from psycopg.rows import dict_row

from sitesearch.common.db import get_conn
from sitesearch.storage.models import IndexingStatus, Lemma, Page, Posting, Site

logger = logging.getLogger(__name__)

SITE_COLUMNS = "id, url, name, status, status_time, last_error"


def _site(row: dict[str, Any]) -> Site:
    return Site(
        id=row["id"],
        url=row["url"],
        name=row["name"],
        status=IndexingStatus(row["status"]),
        status_time=row["status_time"],
        last_error=row["last_error"],
    )


def _page(row: dict[str, Any]) -> Page:
    return Page(id=row["id"], site_id=row["site_id"], path=row["path"], code=row["code"], content=row["content"])


def _lemma(row: dict[str, Any]) -> Lemma:
    return Lemma(id=row["id"], site_id=row["site_id"], lemma=row["lemma"], frequency=row["frequency"])


class IndexStore:
    """Repository for sites, pages, lemmas and postings (``index_entry`` rows).

    Every method opens its own connection, so each call is one transaction.
    Records returned are flat; related rows are loaded by id, never implicitly.
    """

    # Sites

    def find_site_by_url(self, url: str) -> Site | None:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"SELECT {SITE_COLUMNS} FROM site WHERE url = %s", (url,))
                row = cur.fetchone()
                return _site(row) if row else None

    def find_sites_by_status(self, status: IndexingStatus) -> list[Site]:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {SITE_COLUMNS} FROM site WHERE status = %s::indexing_status ORDER BY id",
                    (status.value,),
                )
                return [_site(r) for r in cur.fetchall()]

    def exists_site_with_status(self, status: IndexingStatus) -> bool:
        with get_conn() as conn:
            cur = conn.execute(
                "SELECT EXISTS(SELECT 1 FROM site WHERE status = %s::indexing_status)",
                (status.value,),
            )
            return bool(cur.fetchone()[0])

    def find_all_sites(self) -> list[Site]:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"SELECT {SITE_COLUMNS} FROM site ORDER BY id")
                return [_site(r) for r in cur.fetchall()]

    def save_site(self, site: Site) -> Site:
        with get_conn() as conn:
            cur = conn.execute(
                """
                INSERT INTO site(url, name, status, status_time, last_error)
                VALUES (%s, %s, %s::indexing_status, %s, %s)
                ON CONFLICT (url) DO UPDATE SET
                  name = EXCLUDED.name,
                  status = EXCLUDED.status,
                  status_time = EXCLUDED.status_time,
                  last_error = EXCLUDED.last_error
                RETURNING id
                """,
                (site.url, site.name, site.status.value, site.status_time, site.last_error),
            )
            site.id = cur.fetchone()[0]
        logger.info("save_site url=%s status=%s", site.url, site.status.value)
        return site

    def delete_site_cascade(self, site_id: int) -> None:
        """Remove every page, lemma and posting of a site; the site row stays."""
        with get_conn() as conn:
            conn.execute(
                "DELETE FROM index_entry WHERE page_id IN (SELECT id FROM page WHERE site_id = %s)",
                (site_id,),
            )
            conn.execute("DELETE FROM lemma WHERE site_id = %s", (site_id,))
            cur = conn.execute("DELETE FROM page WHERE site_id = %s", (site_id,))
            logger.info("delete_site_cascade site_id=%s pages=%s", site_id, cur.rowcount)

    def fail_indexing_sites(self, message: str) -> list[str]:
        with get_conn() as conn:
            cur = conn.execute(
                """
                UPDATE site
                SET status = 'FAILED', last_error = %s, status_time = now()
                WHERE status = 'INDEXING'
                RETURNING url
                """,
                (message,),
            )
            return [r[0] for r in cur.fetchall()]

    # Pages

    def save_page(self, page: Page) -> Page:
        with get_conn() as conn:
            cur = conn.execute(
                """
                INSERT INTO page(site_id, path, code, content)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (site_id, path) DO UPDATE SET
                  code = EXCLUDED.code,
                  content = EXCLUDED.content
                RETURNING id
                """,
                (page.site_id, page.path, page.code, page.content),
            )
            page.id = cur.fetchone()[0]
        return page

    def find_page_by_path(self, path: str) -> Page | None:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    "SELECT id, site_id, path, code, content FROM page WHERE path = %s ORDER BY id LIMIT 1",
                    (path,),
                )
                row = cur.fetchone()
                return _page(row) if row else None

    def find_pages_by_ids(self, page_ids: Iterable[int]) -> list[Page]:
        ids = list(page_ids)
        if not ids:
            return []
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT id, site_id, path, code, content FROM page WHERE id = ANY(%s)", (ids,))
                return [_page(r) for r in cur.fetchall()]

    def delete_page_cascade(self, page_id: int) -> None:
        """Delete a page with its postings and release its lemma counts.

        Each lemma the page contributed to loses one unit of document
        frequency; lemmas left without pages are deleted.
        """
        with get_conn() as conn:
            cur = conn.execute("DELETE FROM index_entry WHERE page_id = %s RETURNING lemma_id", (page_id,))
            lemma_ids = [r[0] for r in cur.fetchall()]
            if lemma_ids:
                conn.execute(
                    "UPDATE lemma SET frequency = frequency - 1 WHERE id = ANY(%s)",
                    (lemma_ids,),
                )
                cur = conn.execute(
                    "DELETE FROM lemma WHERE id = ANY(%s) AND frequency <= 0",
                    (lemma_ids,),
                )
                logger.info(
                    "delete_page_cascade page_id=%s lemmas=%s lemmas_removed=%s",
                    page_id, len(lemma_ids), cur.rowcount,
                )
            conn.execute("DELETE FROM page WHERE id = %s", (page_id,))

    def count_pages(self, site_id: int) -> int:
        with get_conn() as conn:
            return conn.execute("SELECT COUNT(*) FROM page WHERE site_id = %s", (site_id,)).fetchone()[0]

    def count_pages_by_sites(self, site_ids: Iterable[int]) -> int:
        with get_conn() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM page WHERE site_id = ANY(%s)", (list(site_ids),)
            ).fetchone()[0]

    # Lemmas

    def upsert_lemma(self, site_id: int, lemma: str) -> int:
        with get_conn() as conn:
            cur = conn.execute(
                """
                INSERT INTO lemma(site_id, lemma, frequency)
                VALUES (%s, %s, 1)
                ON CONFLICT (site_id, lemma) DO UPDATE SET frequency = lemma.frequency + 1
                RETURNING id
                """,
                (site_id, lemma),
            )
            return cur.fetchone()[0]

    def find_lemma(self, site_id: int, lemma: str) -> Lemma | None:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    "SELECT id, site_id, lemma, frequency FROM lemma WHERE site_id = %s AND lemma = %s",
                    (site_id, lemma),
                )
                row = cur.fetchone()
                return _lemma(row) if row else None

    def find_lemmas(self, lemmas: Iterable[str], site_ids: Iterable[int]) -> list[Lemma]:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, site_id, lemma, frequency
                    FROM lemma
                    WHERE lemma = ANY(%s) AND site_id = ANY(%s)
                    """,
                    (list(lemmas), list(site_ids)),
                )
                return [_lemma(r) for r in cur.fetchall()]

    def count_lemmas(self, site_id: int) -> int:
        with get_conn() as conn:
            return conn.execute("SELECT COUNT(*) FROM lemma WHERE site_id = %s", (site_id,)).fetchone()[0]

    # Postings

    def postings_by_lemma(self, lemma_id: int) -> set[int]:
        with get_conn() as conn:
            cur = conn.execute("SELECT page_id FROM index_entry WHERE lemma_id = %s", (lemma_id,))
            return {r[0] for r in cur.fetchall()}

    def postings_by_page_and_lemmas(self, page_id: int, lemma_ids: Iterable[int]) -> list[Posting]:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, page_id, lemma_id, rank
                    FROM index_entry
                    WHERE page_id = %s AND lemma_id = ANY(%s)
                    """,
                    (page_id, list(lemma_ids)),
                )
                return [
                    Posting(id=r["id"], page_id=r["page_id"], lemma_id=r["lemma_id"], rank=float(r["rank"]))
                    for r in cur.fetchall()
                ]

    def exists_posting(self, lemma_id: int, page_id: int) -> bool:
        with get_conn() as conn:
            cur = conn.execute(
                "SELECT EXISTS(SELECT 1 FROM index_entry WHERE lemma_id = %s AND page_id = %s)",
                (lemma_id, page_id),
            )
            return bool(cur.fetchone()[0])

    def create_posting(self, page_id: int, lemma_id: int, rank: float) -> None:
        with get_conn() as conn:
            conn.execute(
                """
                INSERT INTO index_entry(page_id, lemma_id, rank)
                VALUES (%s, %s, %s)
                ON CONFLICT (page_id, lemma_id) DO NOTHING
                """,
                (page_id, lemma_id, rank),
            )
