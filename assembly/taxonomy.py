"""
Cognitive taxonomy tables

Deterministic lookups shared by every stage: level order, the level →
difficulty grouping, the level → knowledge-dimension mapping, the standard
level weights used when a plan is derived from hours, and alias
normalisation for loosely written level/difficulty strings.
"""

import enum
from typing import Dict, List, Optional


class CognitiveLevel(str, enum.Enum):
    REMEMBERING = "remembering"
    UNDERSTANDING = "understanding"
    APPLYING = "applying"
    ANALYZING = "analyzing"
    EVALUATING = "evaluating"
    CREATING = "creating"


class Difficulty(str, enum.Enum):
    EASY = "easy"
    AVERAGE = "average"
    DIFFICULT = "difficult"


class KnowledgeDimension(str, enum.Enum):
    FACTUAL = "factual"
    CONCEPTUAL = "conceptual"
    PROCEDURAL = "procedural"
    METACOGNITIVE = "metacognitive"


class ItemType(str, enum.Enum):
    MCQ = "mcq"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    ESSAY = "essay"


# ─── Ordering ──────────────────────────────────────────────────────────────────

LEVEL_ORDER: List[CognitiveLevel] = list(CognitiveLevel)
DIFFICULTY_ORDER: List[Difficulty] = list(Difficulty)

HIGHER_ORDER_LEVELS = {
    CognitiveLevel.ANALYZING,
    CognitiveLevel.EVALUATING,
    CognitiveLevel.CREATING,
}
LOWER_ORDER_LEVELS = {
    CognitiveLevel.REMEMBERING,
    CognitiveLevel.UNDERSTANDING,
}


# ─── Fixed lookups ─────────────────────────────────────────────────────────────

LEVEL_DIFFICULTY: Dict[CognitiveLevel, Difficulty] = {
    CognitiveLevel.REMEMBERING:   Difficulty.EASY,
    CognitiveLevel.UNDERSTANDING: Difficulty.EASY,
    CognitiveLevel.APPLYING:      Difficulty.AVERAGE,
    CognitiveLevel.ANALYZING:     Difficulty.AVERAGE,
    CognitiveLevel.EVALUATING:    Difficulty.DIFFICULT,
    CognitiveLevel.CREATING:      Difficulty.DIFFICULT,
}

KNOWLEDGE_DIMENSION: Dict[CognitiveLevel, KnowledgeDimension] = {
    CognitiveLevel.REMEMBERING:   KnowledgeDimension.FACTUAL,
    CognitiveLevel.UNDERSTANDING: KnowledgeDimension.CONCEPTUAL,
    CognitiveLevel.APPLYING:      KnowledgeDimension.PROCEDURAL,
    CognitiveLevel.ANALYZING:     KnowledgeDimension.CONCEPTUAL,
    CognitiveLevel.EVALUATING:    KnowledgeDimension.METACOGNITIVE,
    CognitiveLevel.CREATING:      KnowledgeDimension.PROCEDURAL,
}

# Share of total items per level when a plan is derived from hours
LEVEL_WEIGHTS: Dict[CognitiveLevel, float] = {
    CognitiveLevel.REMEMBERING:   0.15,
    CognitiveLevel.UNDERSTANDING: 0.15,
    CognitiveLevel.APPLYING:      0.20,
    CognitiveLevel.ANALYZING:     0.20,
    CognitiveLevel.EVALUATING:    0.15,
    CognitiveLevel.CREATING:      0.15,
}


# ─── Alias normalisation ───────────────────────────────────────────────────────

LEVEL_ALIASES: Dict[str, CognitiveLevel] = {
    "remember":      CognitiveLevel.REMEMBERING,
    "remembering":   CognitiveLevel.REMEMBERING,
    "recall":        CognitiveLevel.REMEMBERING,
    "knowledge":     CognitiveLevel.REMEMBERING,
    "understand":    CognitiveLevel.UNDERSTANDING,
    "understanding": CognitiveLevel.UNDERSTANDING,
    "comprehend":    CognitiveLevel.UNDERSTANDING,
    "comprehension": CognitiveLevel.UNDERSTANDING,
    "apply":         CognitiveLevel.APPLYING,
    "applying":      CognitiveLevel.APPLYING,
    "application":   CognitiveLevel.APPLYING,
    "analyze":       CognitiveLevel.ANALYZING,
    "analyse":       CognitiveLevel.ANALYZING,
    "analyzing":     CognitiveLevel.ANALYZING,
    "analysing":     CognitiveLevel.ANALYZING,
    "analysis":      CognitiveLevel.ANALYZING,
    "evaluate":      CognitiveLevel.EVALUATING,
    "evaluating":    CognitiveLevel.EVALUATING,
    "evaluation":    CognitiveLevel.EVALUATING,
    "create":        CognitiveLevel.CREATING,
    "creating":      CognitiveLevel.CREATING,
    "creation":      CognitiveLevel.CREATING,
    "synthesis":     CognitiveLevel.CREATING,
    "design":        CognitiveLevel.CREATING,
}

DIFFICULTY_ALIASES: Dict[str, Difficulty] = {
    "easy":      Difficulty.EASY,
    "average":   Difficulty.AVERAGE,
    "medium":    Difficulty.AVERAGE,
    "moderate":  Difficulty.AVERAGE,
    "difficult": Difficulty.DIFFICULT,
    "hard":      Difficulty.DIFFICULT,
}


def normalise_level(raw) -> Optional[CognitiveLevel]:
    if isinstance(raw, CognitiveLevel):
        return raw
    if raw is None:
        return None
    return LEVEL_ALIASES.get(str(raw).strip().lower())


def normalise_difficulty(raw) -> Optional[Difficulty]:
    if isinstance(raw, Difficulty):
        return raw
    if raw is None:
        return None
    return DIFFICULTY_ALIASES.get(str(raw).strip().lower())


def levels_for_difficulty(difficulty: Difficulty) -> List[CognitiveLevel]:
    """Levels grouped under a difficulty band, in taxonomy order."""
    return [lvl for lvl in LEVEL_ORDER if LEVEL_DIFFICULTY[lvl] == difficulty]
