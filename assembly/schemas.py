"""
Pydantic schemas for the assembly pipeline.

Plan layer:      TopicRequirement → CoveragePlan
Item layer:      McqItem | TrueFalseItem | ShortAnswerItem | EssayItem  (tagged on item_type)
Slot layer:      Slot (one typed requirement, filled exactly once)
Output layer:    TestForm, AssemblyReport, AssemblyResult
"""

from datetime import datetime
from typing import Annotated, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, computed_field, field_validator

from assembly.errors import SlotAlreadyFilled
from assembly.taxonomy import (
    CognitiveLevel, Difficulty, ItemType, KnowledgeDimension, KNOWLEDGE_DIMENSION,
    normalise_difficulty, normalise_level,
)

CHOICE_LABELS = ["A", "B", "C", "D", "E", "F"]
MIN_CHOICES = 4
TRUE_FALSE_VALUES = {
    "true": "True", "t": "True", "yes": "True",
    "false": "False", "f": "False", "no": "False",
}


# ─── Plan ──────────────────────────────────────────────────────────────────────

def _merge_aliases(counts, normalise):
    """Map alias keys ("recall", "hard") to enum members, summing collisions."""
    if not isinstance(counts, dict):
        return counts
    merged = {}
    for key, value in counts.items():
        key = normalise(key) or key
        if key in merged and isinstance(value, int) and isinstance(merged[key], int):
            merged[key] += value
        else:
            merged[key] = value
    return merged


class TopicRequirement(BaseModel):
    """One row of the coverage plan."""
    model_config = ConfigDict(frozen=True)

    topic: str = Field(..., min_length=1)
    hours: float = Field(..., ge=0)
    per_level_counts: Dict[CognitiveLevel, int] = Field(default_factory=dict)
    per_difficulty_counts: Dict[Difficulty, int] = Field(default_factory=dict)

    @field_validator("per_level_counts", mode="before")
    @classmethod
    def _level_aliases(cls, counts):
        return _merge_aliases(counts, normalise_level)

    @field_validator("per_difficulty_counts", mode="before")
    @classmethod
    def _difficulty_aliases(cls, counts):
        return _merge_aliases(counts, normalise_difficulty)

    @field_validator("per_level_counts", "per_difficulty_counts")
    @classmethod
    def _non_negative(cls, counts):
        for key, value in counts.items():
            if value < 0:
                raise ValueError(f"count for {getattr(key, 'value', key)} must be >= 0, got {value}")
        return counts

    @property
    def level_total(self) -> int:
        return sum(self.per_level_counts.values())

    @property
    def difficulty_total(self) -> int:
        return sum(self.per_difficulty_counts.values())

    @property
    def explicit_total(self) -> int:
        """Items this row asks for outright; 0 means it shares the remainder by hours."""
        return self.level_total or self.difficulty_total


class CoveragePlan(BaseModel):
    """Topic × level × difficulty targets. Immutable once built."""
    model_config = ConfigDict(frozen=True)

    topics: Tuple[TopicRequirement, ...]

    @property
    def total_hours(self) -> float:
        return sum(t.hours for t in self.topics)

    @property
    def explicit_total(self) -> int:
        return sum(t.explicit_total for t in self.topics if t.hours > 0)


# ─── Items ─────────────────────────────────────────────────────────────────────

class UsageRecord(BaseModel):
    test_id: str
    used_at: datetime


class ItemBase(BaseModel):
    id: Optional[str] = None
    text: str
    topic: str
    cognitive_level: CognitiveLevel
    difficulty: Difficulty
    embedding_vector: Optional[List[float]] = None
    quality_score: float = Field(0.7, ge=0.0, le=1.0)
    usage_history: List[UsageRecord] = Field(default_factory=list)
    approved: bool = True
    created_by: Literal["human", "ai"] = "human"
    # generation metadata, set only on AI-authored items
    concept: Optional[str] = None
    operation: Optional[str] = None
    answer_type: Optional[str] = None

    @property
    def knowledge_dimension(self) -> KnowledgeDimension:
        return KNOWLEDGE_DIMENSION[self.cognitive_level]

    @property
    def last_used_at(self) -> Optional[datetime]:
        if not self.usage_history:
            return None
        return max(u.used_at for u in self.usage_history)

    def _common_issues(self) -> List[str]:
        if not self.text or not self.text.strip():
            return ["empty item text"]
        return []


class McqItem(ItemBase):
    item_type: Literal["mcq"] = "mcq"
    choices: Dict[str, str] = Field(default_factory=dict)
    correct_answer: str = ""
    explanation: str = ""

    def structural_issues(self) -> List[str]:
        issues = self._common_issues()
        labels = sorted(self.choices)
        if labels != CHOICE_LABELS[:len(labels)] or len(labels) < MIN_CHOICES:
            issues.append(f"choices must be labelled A..D (up to F), got {labels}")
        if any(not (t or "").strip() for t in self.choices.values()):
            issues.append("empty choice text")
        normalised = [(t or "").strip().lower() for t in self.choices.values()]
        if len(set(normalised)) != len(normalised):
            issues.append("duplicate choice text")
        if self.correct_answer not in self.choices:
            issues.append(f"correct answer '{self.correct_answer}' is not a choice label")
        return issues

    def key_value(self) -> str:
        return self.correct_answer

    def answer_text(self) -> str:
        correct = self.choices.get(self.correct_answer, "")
        return f"{correct} {self.explanation}".strip()


class TrueFalseItem(ItemBase):
    item_type: Literal["true_false"] = "true_false"
    correct_answer: str = ""
    explanation: str = ""

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _canonical_bool(cls, value):
        if isinstance(value, bool):
            return "True" if value else "False"
        return TRUE_FALSE_VALUES.get(str(value).strip().lower(), str(value))

    def structural_issues(self) -> List[str]:
        issues = self._common_issues()
        if self.correct_answer not in ("True", "False"):
            issues.append(f"true/false answer must be True or False, got '{self.correct_answer}'")
        return issues

    def key_value(self) -> str:
        return self.correct_answer

    def answer_text(self) -> str:
        return self.explanation


class ShortAnswerItem(ItemBase):
    item_type: Literal["short_answer"] = "short_answer"
    model_answer: str = ""
    accepted_answers: List[str] = Field(default_factory=list)

    def structural_issues(self) -> List[str]:
        issues = self._common_issues()
        if not self.model_answer.strip():
            issues.append("short answer item has no model answer")
        return issues

    def key_value(self) -> str:
        return self.model_answer

    def answer_text(self) -> str:
        return self.model_answer


class EssayItem(ItemBase):
    item_type: Literal["essay"] = "essay"
    model_answer: str = ""
    rubric_points: List[str] = Field(default_factory=list)

    def structural_issues(self) -> List[str]:
        issues = self._common_issues()
        if not self.model_answer.strip() and not any(p.strip() for p in self.rubric_points):
            issues.append("essay item needs a model answer or rubric")
        return issues

    def key_value(self) -> str:
        if self.rubric_points:
            return "; ".join(p.strip() for p in self.rubric_points if p.strip())
        return self.model_answer

    def answer_text(self) -> str:
        return self.model_answer or " ".join(self.rubric_points)


Item = Annotated[
    Union[McqItem, TrueFalseItem, ShortAnswerItem, EssayItem],
    Field(discriminator="item_type"),
]

_item_adapter = TypeAdapter(Item)


def parse_item(data: dict):
    """Build the right Item variant from a plain dict (raises pydantic.ValidationError)."""
    return _item_adapter.validate_python(data)


# ─── Slots ─────────────────────────────────────────────────────────────────────

class Slot(BaseModel):
    """One discrete requirement. Filled at most once, by bank or generator."""
    id: str
    topic: str
    cognitive_level: CognitiveLevel
    difficulty: Difficulty
    item_type: ItemType
    point_value: int = 1
    filled: bool = False
    item: Optional[Item] = None
    source: Optional[Literal["bank", "generated"]] = None

    @computed_field
    @property
    def knowledge_dimension(self) -> KnowledgeDimension:
        return KNOWLEDGE_DIMENSION[self.cognitive_level]

    def fill(self, item, source: str) -> None:
        if self.filled:
            raise SlotAlreadyFilled(f"slot {self.id} is already filled from {self.source}")
        self.item = item
        self.source = source
        self.filled = True

    def describe(self) -> str:
        return (
            f"{self.id} {self.topic} / {self.cognitive_level.value} / "
            f"{self.difficulty.value} / {self.item_type.value}"
        )


# ─── Output ────────────────────────────────────────────────────────────────────

class TestForm(BaseModel):
    """One parallel version of the test. answer_key positions are 1-based."""
    model_config = ConfigDict(frozen=True)
    __test__ = False  # keep pytest from collecting this model

    version_label: str
    ordered_items: Tuple[Item, ...]
    answer_key: Dict[int, str]
    total_points: int


class AssemblyReport(BaseModel):
    test_id: str
    filled_slots: int = 0
    unfilled_slots: List[Slot] = Field(default_factory=list)
    generated_count: int = 0
    bank_count: int = 0
    warnings: List[str] = Field(default_factory=list)
    rejections: Dict[str, int] = Field(default_factory=dict)


class AssemblyResult(BaseModel):
    forms: List[TestForm]
    report: AssemblyReport


class RegistrySnapshot(BaseModel):
    used_concepts: Dict[str, List[str]]
    used_operations: Dict[str, List[str]]
    used_pairs: List[str]
    fingerprint_count: int


class Intent(BaseModel):
    """What one generated item must do, sent to the generative service."""
    slot_id: str
    concept: str
    operation: str
    answer_type: str
    difficulty: Difficulty
    knowledge_dimension: KnowledgeDimension
    point_value: int
    item_type: ItemType
    contract: str
    forbidden_phrases: List[str] = Field(default_factory=list)
