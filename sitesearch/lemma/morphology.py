from __future__ import annotations

import logging
import re
from typing import Protocol

import nltk
from nltk.stem import PorterStemmer, WordNetLemmatizer

logger = logging.getLogger(__name__)

CLOSED_CLASSES = frozenset({"CONJ", "PREP", "INTJ", "PART"})

# Penn Treebank tag prefixes -> coarse part of speech.
PENN_TO_COARSE = (
    ("CC", "CONJ"),
    ("IN", "PREP"),
    ("UH", "INTJ"),
    ("RP", "PART"),
    ("TO", "PART"),
    ("NN", "NOUN"),
    ("VB", "VERB"),
    ("MD", "VERB"),
    ("JJ", "ADJ"),
    ("RB", "ADV"),
    ("CD", "NUM"),
    ("PRP", "PRON"),
    ("WP", "PRON"),
    ("DT", "DET"),
    ("WDT", "DET"),
    ("PDT", "DET"),
)

WORDNET_POS = {"NOUN": "n", "VERB": "v", "ADJ": "a", "ADV": "r"}

# Used when the tagger model cannot be loaded.
DEFAULT_CLOSED_CLASS_WORDS = {
    **{w: "CONJ" for w in ("and", "but", "or", "nor", "yet", "so", "either", "neither", "both")},
    **{
        w: "PREP"
        for w in (
            "about", "above", "across", "after", "against", "along", "among", "around", "at",
            "before", "behind", "below", "beneath", "beside", "between", "beyond", "by", "despite",
            "down", "during", "except", "for", "from", "in", "inside", "into", "near", "of", "off",
            "on", "onto", "out", "outside", "over", "past", "since", "through", "throughout",
            "till", "toward", "towards", "under", "until", "upon", "via", "with", "within", "without",
            "if", "because", "although", "though", "unless", "whether", "while", "than", "as",
        )
    },
    **{w: "INTJ" for w in ("oh", "ah", "wow", "hey", "oops", "ouch", "alas", "hi", "hello", "yes")},
    **{w: "PART" for w in ("to", "not", "no")},
}


class Morphology(Protocol):
    """Language-specific morphological analysis used by the lemma extractor."""

    word_pattern: re.Pattern[str]

    def parts_of_speech(self, word: str) -> list[str]:
        ...

    def normal_forms(self, word: str) -> list[str]:
        ...


def _ensure_resource(path: str, package: str) -> bool:
    try:
        nltk.data.find(path)
        return True
    except LookupError:
        pass
    try:
        nltk.download(package, quiet=True)
        nltk.data.find(path)
        return True
    except Exception:
        logger.warning("nltk resource unavailable resource=%s", package)
        return False


def coarse_tag(penn_tag: str) -> str:
    for prefix, coarse in PENN_TO_COARSE:
        if penn_tag.startswith(prefix):
            return coarse
    return "X"


class NltkMorphology:
    """English morphology on top of nltk's perceptron tagger and WordNet."""

    word_pattern = re.compile(r"[a-z]+")

    def __init__(self, *, use_tagger: bool | None = None, use_wordnet: bool | None = None) -> None:
        if use_tagger is None:
            use_tagger = _ensure_resource("taggers/averaged_perceptron_tagger_eng", "averaged_perceptron_tagger_eng")
        if use_wordnet is None:
            use_wordnet = _ensure_resource("corpora/wordnet", "wordnet")
            if not use_wordnet:
                # An index built from stems does not match WordNet lemmas.
                logger.error("wordnet unavailable, normal forms fall back to porter stems")
        self._use_tagger = use_tagger
        self._lemmatizer = WordNetLemmatizer() if use_wordnet else None
        self._stemmer = PorterStemmer()
        self.normal_form_mode = "wordnet" if use_wordnet else "porter"

    def parts_of_speech(self, word: str) -> list[str]:
        if not self.word_pattern.fullmatch(word):
            return []
        if self._use_tagger:
            return [coarse_tag(tag) for _, tag in nltk.pos_tag([word])]
        return [DEFAULT_CLOSED_CLASS_WORDS.get(word, "NOUN")]

    def normal_forms(self, word: str) -> list[str]:
        if not self.word_pattern.fullmatch(word):
            return []
        if self._lemmatizer is None:
            return [self._stemmer.stem(word)]
        tags = self.parts_of_speech(word)
        pos = WORDNET_POS.get(tags[0] if tags else "", "n")
        forms = [self._lemmatizer.lemmatize(word, pos=pos)]
        if pos != "n":
            forms.append(self._lemmatizer.lemmatize(word))
        return list(dict.fromkeys(forms))
