"""
Assembly configuration

Environment-level settings (read once from the process env / .env) and the
per-run AssemblyOptions a caller passes to assemble().

Model: gpt-4o-mini  (override with GPT_MODEL env var, e.g. "gpt-4o")
"""

import os
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from assembly.taxonomy import ItemType

load_dotenv()

# ── Environment ────────────────────────────────────────────────────────────────
GPT_MODEL = os.getenv("GPT_MODEL", "gpt-4o-mini")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
BATCH_DELAY_SECONDS = float(os.getenv("ASSEMBLY_BATCH_DELAY", "0.5"))

MAX_VERSIONS = 5
VERSION_LABELS = ["A", "B", "C", "D", "E"]

SECONDARY_TYPES = (ItemType.TRUE_FALSE, ItemType.SHORT_ANSWER)

DEFAULT_POINTS: Dict[ItemType, int] = {
    ItemType.MCQ: 1,
    ItemType.TRUE_FALSE: 1,
    ItemType.SHORT_ANSWER: 1,
    ItemType.ESSAY: 5,
}


class AssemblyOptions(BaseModel):
    """Per-run knobs. Defaults reproduce the standard 50-item format."""
    allow_unapproved: bool = False
    shuffle_items: bool = True
    shuffle_choices: bool = True
    seed: Optional[int] = None

    # Item-type quotas
    secondary_item_type: Optional[ItemType] = None
    secondary_ratio: float = Field(0.2, ge=0.0, le=0.5)
    points: Dict[ItemType, int] = Field(default_factory=lambda: dict(DEFAULT_POINTS))

    # Near-duplicate thresholds (bank dedup / generated-candidate dedup)
    bank_similarity_threshold: float = Field(0.70, gt=0.0, le=1.0)
    generation_similarity_threshold: float = Field(0.70, gt=0.0, le=1.0)

    # Fallback generation
    max_generation_attempts: int = Field(3, ge=1)
    batch_delay: float = Field(BATCH_DELAY_SECONDS, ge=0.0)

    # Post-run bookkeeping against the item store
    persist_generated: bool = True
    record_usage: bool = True
    test_id: Optional[str] = None

    @field_validator("secondary_item_type")
    @classmethod
    def _secondary_family(cls, value):
        if value is not None and value not in SECONDARY_TYPES:
            raise ValueError("secondary_item_type must be true_false or short_answer")
        return value

    @field_validator("points")
    @classmethod
    def _complete_points(cls, value):
        merged = dict(DEFAULT_POINTS)
        merged.update(value)
        if any(p <= 0 for p in merged.values()):
            raise ValueError("point values must be positive")
        return merged

    def points_for(self, item_type: ItemType) -> int:
        return self.points[item_type]
