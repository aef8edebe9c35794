"""
Similarity Engine

similarity(a, b) → [0, 1]
  - cosine over embedding vectors when both sides carry one
  - otherwise 0.4 × word Jaccard + 0.6 × bigram Jaccard over the same
    normalised token stream (lower-cased, punctuation stripped, len > 3)
"""

import logging
import math
import re
from typing import List, Optional, Set, Tuple

log = logging.getLogger(__name__)

WORD_WEIGHT = 0.4
BIGRAM_WEIGHT = 0.6
MIN_TOKEN_LENGTH = 4

_PUNCT = re.compile(r"[^\w\s]|_")


# ─── Text normalisation ────────────────────────────────────────────────────────

def tokens(text: Optional[str]) -> List[str]:
    cleaned = _PUNCT.sub(" ", (text or "").lower())
    return [t for t in cleaned.split() if len(t) >= MIN_TOKEN_LENGTH]


def fingerprint(text: Optional[str]) -> str:
    """Normalised text signature; re-tokenises to the same token stream."""
    return " ".join(tokens(text))


def _bigrams(toks: List[str]) -> Set[Tuple[str, str]]:
    return set(zip(toks, toks[1:]))


def _jaccard(a: set, b: set) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


# ─── Measures ──────────────────────────────────────────────────────────────────

def lexical_similarity(a: Optional[str], b: Optional[str]) -> float:
    ta, tb = tokens(a), tokens(b)
    if not ta or not tb:
        return 0.0
    words = _jaccard(set(ta), set(tb))
    ba, bb = _bigrams(ta), _bigrams(tb)
    if not ba and not bb:
        return words
    return WORD_WEIGHT * words + BIGRAM_WEIGHT * _jaccard(ba, bb)


def cosine(a: List[float], b: List[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    na = math.sqrt(sum(x * x for x in a))
    nb = math.sqrt(sum(y * y for y in b))
    if not na or not nb:
        return 0.0
    return min(1.0, max(0.0, dot / (na * nb)))


class SimilarityEngine:
    """
    Text closeness with an optional embedding service.

    The embedder is anything with `embed(text) -> List[float]`. Without one
    (or when it fails) only the lexical measure is used.
    """

    def __init__(self, embedder=None):
        self.embedder = embedder

    def similarity(
        self,
        a: str,
        b: str,
        a_vector: Optional[List[float]] = None,
        b_vector: Optional[List[float]] = None,
    ) -> float:
        if a_vector and b_vector and len(a_vector) == len(b_vector):
            return cosine(a_vector, b_vector)
        return lexical_similarity(a, b)

    def embed(self, text: str) -> Optional[List[float]]:
        if self.embedder is None or not text or not text.strip():
            return None
        try:
            vector = self.embedder.embed(text)
        except Exception as e:
            log.warning(f"Embedding failed, using lexical similarity: {e}")
            return None
        # an all-zero vector is the embedder's failure value
        if not vector or not any(vector):
            return None
        return list(vector)
