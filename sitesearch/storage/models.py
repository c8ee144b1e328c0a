from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class IndexingStatus(str, Enum):
    INDEXING = "INDEXING"
    INDEXED = "INDEXED"
    FAILED = "FAILED"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Site:
    url: str
    name: str
    status: IndexingStatus
    status_time: datetime = field(default_factory=utcnow)
    last_error: str | None = None
    id: int | None = None

    def transition(self, status: IndexingStatus, last_error: str | None = None) -> None:
        self.status = status
        self.last_error = last_error
        self.status_time = utcnow()


@dataclass
class Page:
    site_id: int
    path: str
    code: int
    content: str
    id: int | None = None


@dataclass
class Lemma:
    id: int
    site_id: int
    lemma: str
    frequency: int


@dataclass
class Posting:
    id: int
    page_id: int
    lemma_id: int
    rank: float
