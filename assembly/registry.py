"""
Generation Registry

Run-scoped bookkeeping that forces conceptual and lexical rotation:
which concepts a topic has used, which cognitive operations a topic×level
has used, which concept::operation pairs exist, and the fingerprints of
every accepted item text. Created by the caller per assembly run and
passed to each stage; never shared between runs.
"""

import re
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Set, Tuple

from assembly.fidelity import LEVEL_RULES
from assembly.schemas import RegistrySnapshot
from assembly.similarity import SimilarityEngine, fingerprint
from assembly.taxonomy import CognitiveLevel

DEFAULT_CONCEPT_POOL: List[str] = [
    "key factors",
    "trade-offs",
    "limitations",
    "decision criteria",
    "real-world constraints",
    "failure scenarios",
    "optimization priorities",
    "dependencies",
    "relationships",
    "components",
    "processes",
    "outcomes",
    "preconditions",
    "best practices",
    "anti-patterns",
    "edge cases",
    "performance considerations",
    "security implications",
    "scalability aspects",
    "maintenance concerns",
]

CONCEPT_MAX_LENGTH = 50

# Tried in order; the first capture wins
_CONCEPT_PATTERNS = [
    re.compile(r"(?:key|main|primary|important)\s+(?:factors?|elements?|components?|aspects?)\s+(?:of|in|for)\s+([^?.,]+)"),
    re.compile(r"what\s+(?:are|is)\s+(?:the\s+)?([^?.,]+)"),
    re.compile(r"how\s+(?:does|do|can|should)\s+([^?.,]+?)\s+(?:affect|influence|impact)"),
    re.compile(r"compare\s+([^?.,]+?)\s+(?:and|with|to)\b"),
    re.compile(r"differentiate\s+(?:between\s+)?([^?.,]+)"),
    re.compile(r"evaluate\s+(?:the\s+)?([^?.,]+)"),
    re.compile(r"design\s+(?:a\s+)?([^?.,]+)"),
    re.compile(r"(?:explain|describe|analyze|assess|discuss|examine)\s+(?:the\s+)?([^?.,]+)"),
]
_QUESTION_WORDS = {
    "what", "which", "when", "where", "does", "should", "would", "could",
}


def extract_concept(text: str) -> str:
    """Best-effort concept string for an item text ('general' if nothing fits)."""
    lowered = (text or "").lower()
    for pattern in _CONCEPT_PATTERNS:
        match = pattern.search(lowered)
        if match and match.group(1).strip():
            return match.group(1).strip()[:CONCEPT_MAX_LENGTH]
    words = [
        w for w in re.sub(r"[?.,!]", "", lowered).split()
        if len(w) > 3 and w not in _QUESTION_WORDS
    ]
    return " ".join(words[:3]) or "general"


def _key(value: str) -> str:
    return value.strip().lower()


def pair_key(concept: str, operation: str) -> str:
    return f"{_key(concept)}::{_key(operation)}"


class GenerationRegistry:
    """
    Mutable rotation state for one assembly run.

    next_concept / next_operation reserve what they return, so successive
    draws within a batch never repeat while the pool has unused entries.
    Once a pool is exhausted the least-used entry is offered again.
    """

    def __init__(
        self,
        concept_pools: Optional[Dict[str, Sequence[str]]] = None,
        operation_pools: Optional[Dict[CognitiveLevel, Sequence[str]]] = None,
    ):
        self.concept_pools = {_key(k): list(v) for k, v in (concept_pools or {}).items()}
        self.operation_pools = dict(operation_pools or {})
        self.used_concepts: Dict[str, List[str]] = defaultdict(list)
        self.used_operations: Dict[Tuple[str, CognitiveLevel], List[str]] = defaultdict(list)
        self.used_concept_operation_pairs: Set[str] = set()
        self.used_text_fingerprints: List[str] = []
        self._vectors: List[Optional[List[float]]] = []

    # ─── Pools ────────────────────────────────────────────────────────────────

    def concept_pool(self, topic: str) -> List[str]:
        return self.concept_pools.get(_key(topic), DEFAULT_CONCEPT_POOL)

    def operation_pool(self, level: CognitiveLevel) -> List[str]:
        if level in self.operation_pools:
            return list(self.operation_pools[level])
        return list(LEVEL_RULES[level].operations)

    @staticmethod
    def _draw(pool: List[str], used: List[str]) -> str:
        used_keys = [_key(u) for u in used]
        for entry in pool:
            if _key(entry) not in used_keys:
                return entry
        # exhausted: rotate through the least-used entries
        return min(pool, key=lambda e: (used_keys.count(_key(e)), pool.index(e)))

    # ─── Draws ────────────────────────────────────────────────────────────────

    def next_concept(self, topic: str) -> str:
        used = self.used_concepts[_key(topic)]
        concept = self._draw(self.concept_pool(topic), used)
        used.append(concept)
        return concept

    def next_operation(self, topic: str, level: CognitiveLevel) -> str:
        used = self.used_operations[(_key(topic), level)]
        operation = self._draw(self.operation_pool(level), used)
        used.append(operation)
        return operation

    def next_intent(self, topic: str, level: CognitiveLevel) -> Tuple[str, str]:
        """A concept plus an operation whose pair has not been accepted yet, where possible."""
        concept = self.next_concept(topic)
        operation = self.next_operation(topic, level)
        for _ in range(len(self.operation_pool(level)) - 1):
            if pair_key(concept, operation) not in self.used_concept_operation_pairs:
                break
            operation = self.next_operation(topic, level)
        return concept, operation

    # ─── Registration ─────────────────────────────────────────────────────────

    def register(
        self,
        topic: str,
        level: CognitiveLevel,
        item,
        concept: Optional[str] = None,
        operation: Optional[str] = None,
    ) -> None:
        """Record an accepted item (bank or generated)."""
        self.used_text_fingerprints.append(fingerprint(item.text))
        self._vectors.append(item.embedding_vector)

        concept = concept or extract_concept(item.text)
        used = self.used_concepts[_key(topic)]
        if _key(concept) not in [_key(c) for c in used]:
            used.append(concept)

        if operation:
            ops = self.used_operations[(_key(topic), level)]
            if _key(operation) not in [_key(o) for o in ops]:
                ops.append(operation)
            self.used_concept_operation_pairs.add(pair_key(concept, operation))

    def find_similar(
        self,
        text: str,
        similarity: SimilarityEngine,
        threshold: float,
        vector: Optional[List[float]] = None,
    ) -> Optional[Tuple[str, float]]:
        """First registered fingerprint at or above `threshold`, with its score."""
        candidate = fingerprint(text)
        for known, known_vector in zip(self.used_text_fingerprints, self._vectors):
            if candidate and candidate == known:
                return known, 1.0
            score = similarity.similarity(candidate, known, vector, known_vector)
            if score >= threshold:
                return known, score
        return None

    def snapshot(self) -> RegistrySnapshot:
        return RegistrySnapshot(
            used_concepts={k: list(v) for k, v in self.used_concepts.items()},
            used_operations={f"{t}_{lvl.value}": list(v) for (t, lvl), v in self.used_operations.items()},
            used_pairs=sorted(self.used_concept_operation_pairs),
            fingerprint_count=len(self.used_text_fingerprints),
        )
