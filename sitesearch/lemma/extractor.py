from __future__ import annotations

import logging
import re
from collections import Counter
from functools import lru_cache

from bs4 import BeautifulSoup

from sitesearch.lemma.morphology import CLOSED_CLASSES, Morphology, NltkMorphology

logger = logging.getLogger(__name__)

WHITESPACE_RE = re.compile(r"\s+")
EDGE_PUNCTUATION = "\"'.,;:!?()[]{}<>«»…-"
NON_CONTENT_TAGS = ["script", "style", "noscript", "template"]


class LemmaExtractor:
    """Turns markup into a mapping of lemma -> occurrence count.

    Stateless apart from the injected morphology, so one instance can be
    shared by every crawl worker and by the search service.
    """

    def __init__(self, morphology: Morphology) -> None:
        self.morphology = morphology

    def extract_text(self, markup: str) -> str:
        if not markup:
            return ""
        soup = BeautifulSoup(markup, "html.parser")
        for node in soup(NON_CONTENT_TAGS):
            node.decompose()
        return WHITESPACE_RE.sub(" ", soup.get_text(" ")).strip()

    def lemma_of(self, word: str) -> str | None:
        word = word.lower()
        if len(word) < 2 or not self.morphology.word_pattern.fullmatch(word):
            return None
        try:
            parts = self.morphology.parts_of_speech(word)
            if not parts or parts[0] in CLOSED_CLASSES:
                return None
            forms = self.morphology.normal_forms(word)
        except Exception:
            logger.debug("morphology failed word=%s", word, exc_info=True)
            return None
        return forms[0] if forms else None

    def get_lemmas(self, text: str) -> dict[str, int]:
        """Count lemmas in plain text; markup goes through ``extract_text`` first."""
        counts: Counter[str] = Counter()
        for token in (text or "").lower().split():
            lemma = self.lemma_of(token.strip(EDGE_PUNCTUATION))
            if lemma:
                counts[lemma] += 1
        return dict(counts)


@lru_cache(maxsize=1)
def default_extractor() -> LemmaExtractor:
    return LemmaExtractor(NltkMorphology())
