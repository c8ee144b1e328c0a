import json
import os
from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class SiteConfig:
    url: str
    name: str


def normalize_root(url: str) -> str:
    parts = urlsplit(url.strip())
    url = urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, parts.query, parts.fragment))
    return url if url.endswith("/") else url + "/"


def _load_sites(raw: str) -> tuple[SiteConfig, ...]:
    return tuple(
        SiteConfig(url=normalize_root(entry["url"]), name=entry.get("name") or entry["url"])
        for entry in json.loads(raw or "[]")
    )


@dataclass(frozen=True)
class Settings:
    sites: tuple[SiteConfig, ...] = _load_sites(os.getenv("INDEXING_SITES", "[]"))
    user_agent: str = os.getenv("CRAWLER_USER_AGENT", "SiteSearchBot/1.0")
    referrer: str = os.getenv("CRAWLER_REFERRER", "https://www.google.com").strip()
    delay_min_ms: int = int(os.getenv("CRAWL_DELAY_MIN_MS", "500"))
    delay_max_ms: int = int(os.getenv("CRAWL_DELAY_MAX_MS", "1500"))
    request_timeout_s: int = int(os.getenv("REQUEST_TIMEOUT_S", "10"))
    crawler_concurrency: int = int(os.getenv("CRAWLER_CONCURRENCY", str(os.cpu_count() or 4)))
    stop_grace_s: float = float(os.getenv("STOP_GRACE_S", "15"))


settings = Settings()
