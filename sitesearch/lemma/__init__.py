from .extractor import LemmaExtractor, default_extractor
from .morphology import CLOSED_CLASSES, Morphology, NltkMorphology, coarse_tag

__all__ = [
    "CLOSED_CLASSES",
    "LemmaExtractor",
    "Morphology",
    "NltkMorphology",
    "coarse_tag",
    "default_extractor",
]
