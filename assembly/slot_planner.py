"""
Stage 1: Slot Planner

Expands a CoveragePlan into an ordered list of Slots:
  1. Per-topic item totals (explicit counts, else the topic's share of hours)
  2. Difficulty band counts by largest remainder (ties → easier band)
  3. Levels paired with bands in taxonomy order
  4. Item-type quotas: essays capped by test size, one secondary family per
     run, everything else multiple choice

Output is sorted (topic, level, difficulty) so later stages are
deterministic for a given seed.
"""

import logging
import math
import random
from typing import Callable, Dict, List, Optional

from assembly.config import AssemblyOptions, SECONDARY_TYPES
from assembly.coverage import distribute_largest_remainder
from assembly.schemas import CoveragePlan, Slot, TopicRequirement
from assembly.taxonomy import (
    CognitiveLevel, Difficulty, ItemType, DIFFICULTY_ORDER, HIGHER_ORDER_LEVELS,
    LEVEL_ORDER, LEVEL_WEIGHTS, LOWER_ORDER_LEVELS,
    levels_for_difficulty,
)

log = logging.getLogger("assembly.pipeline")

# ─── Essay quota ───────────────────────────────────────────────────────────────
ESSAY_MIN_TOTAL = 40      # no essay below this many items
ESSAY_PER_ITEMS = 50      # one essay per ~50 items
ESSAY_CAP = 2


def essay_quota(total: int) -> int:
    if total < ESSAY_MIN_TOTAL:
        return 0
    return min(ESSAY_CAP, max(1, total // ESSAY_PER_ITEMS))


def secondary_quota(total: int, ratio: float, essays: int) -> int:
    return max(0, min(int(math.floor(total * ratio + 0.5)), total - essays))


# ─── Affinity tiers (0 = natural fit, higher = weaker fit) ─────────────────────

def _essay_tier(slot: Slot) -> int:
    higher = slot.cognitive_level in HIGHER_ORDER_LEVELS
    hardest = slot.difficulty == Difficulty.DIFFICULT
    if higher and hardest:
        return 0
    if higher or hardest:
        return 1
    if slot.cognitive_level == CognitiveLevel.APPLYING:
        return 2
    return 3


def _true_false_tier(slot: Slot) -> int:
    lower = slot.cognitive_level in LOWER_ORDER_LEVELS
    easy = slot.difficulty == Difficulty.EASY
    if lower and easy:
        return 0
    if lower or easy:
        return 1
    return 2


def _short_answer_tier(slot: Slot) -> int:
    fits_level = slot.cognitive_level in LOWER_ORDER_LEVELS or slot.cognitive_level == CognitiveLevel.APPLYING
    fits_difficulty = slot.difficulty != Difficulty.DIFFICULT
    if fits_level and fits_difficulty:
        return 0
    if fits_level or fits_difficulty:
        return 1
    return 2


AFFINITY: Dict[ItemType, Callable[[Slot], int]] = {
    ItemType.ESSAY: _essay_tier,
    ItemType.TRUE_FALSE: _true_false_tier,
    ItemType.SHORT_ANSWER: _short_answer_tier,
}


# ─── Per-topic distribution ────────────────────────────────────────────────────

def _topic_totals(plan: CoveragePlan, total_items: int) -> List[int]:
    """Items per topic. Zero-hour topics get nothing; count-less topics share what is left by hours."""
    totals = [0] * len(plan.topics)
    implicit = []
    for i, req in enumerate(plan.topics):
        if req.hours <= 0:
            continue
        if req.explicit_total > 0:
            totals[i] = req.explicit_total
        else:
            implicit.append(i)
    if implicit:
        remaining = max(0, total_items - plan.explicit_total)
        shares = distribute_largest_remainder(remaining, [plan.topics[i].hours for i in implicit])
        for i, n in zip(implicit, shares):
            totals[i] = n
    return totals


def band_counts(req: TopicRequirement, topic_total: int) -> Dict[Difficulty, int]:
    """
    Split a topic total over the difficulty bands.

    Band weights come from the explicit difficulty counts, else from the
    level counts grouped by difficulty, else from the standard level
    weights. Rounding leftovers go to the largest remainder; an exact tie
    goes to the easier band (easy → average → difficult).
    """
    if req.difficulty_total > 0:
        weights = [req.per_difficulty_counts.get(d, 0) for d in DIFFICULTY_ORDER]
    elif req.level_total > 0:
        weights = [
            sum(req.per_level_counts.get(lvl, 0) for lvl in levels_for_difficulty(d))
            for d in DIFFICULTY_ORDER
        ]
    else:
        weights = [
            sum(LEVEL_WEIGHTS[lvl] for lvl in levels_for_difficulty(d))
            for d in DIFFICULTY_ORDER
        ]
    return dict(zip(DIFFICULTY_ORDER, distribute_largest_remainder(topic_total, weights)))


def level_counts(req: TopicRequirement, bands: Dict[Difficulty, int]) -> Dict[CognitiveLevel, int]:
    if req.level_total > 0:
        return {lvl: req.per_level_counts.get(lvl, 0) for lvl in LEVEL_ORDER}
    counts: Dict[CognitiveLevel, int] = {lvl: 0 for lvl in LEVEL_ORDER}
    for band, n in bands.items():
        members = levels_for_difficulty(band)
        for lvl, share in zip(members, distribute_largest_remainder(n, [LEVEL_WEIGHTS[m] for m in members])):
            counts[lvl] += share
    return counts


def _pair_levels_with_bands(levels: Dict[CognitiveLevel, int], bands: Dict[Difficulty, int]):
    """Lowest levels take the easiest bands first."""
    level_seq = [lvl for lvl in LEVEL_ORDER for _ in range(levels.get(lvl, 0))]
    band_seq = [d for d in DIFFICULTY_ORDER for _ in range(bands.get(d, 0))]
    return list(zip(level_seq, band_seq))


# ─── Item-type quotas ──────────────────────────────────────────────────────────

def _convert(slots: List[Slot], item_type: ItemType, quota: int) -> int:
    """
    Convert `quota` MCQ slots to `item_type`, best affinity tier first.

    Within a tier the slot whose topic has the fewest conversions so far
    wins, then taxonomy preference, then slot order. Returns how many of the
    conversions were natural-affinity (tier 0) placements.
    """
    tier_of = AFFINITY[item_type]
    prefer_high = item_type == ItemType.ESSAY
    per_topic: Dict[str, int] = {}
    natural = 0

    for _ in range(quota):
        candidates = [(i, s) for i, s in enumerate(slots) if s.item_type == ItemType.MCQ]
        if not candidates:
            break

        def rank(pair):
            i, s = pair
            lvl = LEVEL_ORDER.index(s.cognitive_level)
            return (
                tier_of(s),
                per_topic.get(s.topic, 0),
                -lvl if prefer_high else lvl,
                i,
            )

        _, chosen = min(candidates, key=rank)
        if tier_of(chosen) == 0:
            natural += 1
        chosen.item_type = item_type
        per_topic[chosen.topic] = per_topic.get(chosen.topic, 0) + 1
    return natural


def choose_secondary_type(options: AssemblyOptions, rng: random.Random) -> ItemType:
    if options.secondary_item_type is not None:
        return options.secondary_item_type
    return rng.choice(SECONDARY_TYPES)


def assign_item_types(slots: List[Slot], options: AssemblyOptions, rng: random.Random) -> Dict[ItemType, int]:
    total = len(slots)
    n_essay = essay_quota(total)
    secondary = choose_secondary_type(options, rng)
    n_secondary = secondary_quota(total, options.secondary_ratio, n_essay)

    natural_essay = _convert(slots, ItemType.ESSAY, n_essay)
    natural_secondary = _convert(slots, secondary, n_secondary)
    log.info(
        f"[PLAN] Quotas: essay={n_essay} ({natural_essay} natural), "
        f"{secondary.value}={n_secondary} ({natural_secondary} natural), "
        f"mcq={total - n_essay - n_secondary}"
    )

    for slot in slots:
        slot.point_value = options.points_for(slot.item_type)
    return {ItemType.ESSAY: n_essay, secondary: n_secondary}


# ─── Entry point ───────────────────────────────────────────────────────────────

def expand(
    plan: CoveragePlan,
    total_items: int,
    options: Optional[AssemblyOptions] = None,
    rng: Optional[random.Random] = None,
) -> List[Slot]:
    """
    Stage 1: turn a coverage plan into typed, point-valued slots.

    Args:
        plan:        Coverage plan (not modified)
        total_items: Requested test length; only used for topics without explicit counts
        options:     Quota and point settings
        rng:         Seeded RNG for the one-per-run secondary type choice

    Returns:
        Slots sorted by (topic, level, difficulty), ids S001..Snnn
    """
    options = options or AssemblyOptions()
    rng = rng or random.Random(options.seed)

    topic_index = {req.topic: i for i, req in enumerate(plan.topics)}
    slots: List[Slot] = []
    for req, topic_total in zip(plan.topics, _topic_totals(plan, total_items)):
        if topic_total <= 0:
            if req.hours <= 0:
                log.info(f"[PLAN] '{req.topic}' has zero hours, no slots")
            continue
        bands = band_counts(req, topic_total)
        levels = level_counts(req, bands)
        for level, difficulty in _pair_levels_with_bands(levels, bands):
            slots.append(Slot(
                id="",
                topic=req.topic,
                cognitive_level=level,
                difficulty=difficulty,
                item_type=ItemType.MCQ,
            ))

    slots.sort(key=lambda s: (
        topic_index[s.topic],
        LEVEL_ORDER.index(s.cognitive_level),
        DIFFICULTY_ORDER.index(s.difficulty),
    ))
    for n, slot in enumerate(slots, start=1):
        slot.id = f"S{n:03d}"

    assign_item_types(slots, options, rng)
    log.info(f"[PLAN] {len(slots)} slots across {len({s.topic for s in slots})} topic(s)")
    return slots
