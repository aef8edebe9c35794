"""
Stage 2: Bank Selector

Fills slots from the existing item bank:
  - One store query per (topic, level, difficulty, item_type) group, fanned
    out concurrently; a failed query leaves its whole group unfilled
  - Candidates ranked least-used first, then by quality discounted for
    recent use (linear decay over a 365-day window)
  - Greedy consumption per slot: structural check, then near-duplicate
    check against everything already accepted this run
"""

import asyncio
import logging
from collections import Counter, OrderedDict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from assembly.registry import GenerationRegistry
from assembly.schemas import Slot
from assembly.similarity import SimilarityEngine

log = logging.getLogger("assembly.pipeline")

RECENCY_WINDOW_DAYS = 365
RECENCY_WEIGHT = 0.5

GroupKey = Tuple[str, str, str, str]


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def recency_penalty(item, now: datetime) -> float:
    """1.0 if used just now, falling linearly to 0.0 at the edge of the window."""
    last = item.last_used_at
    if last is None:
        return 0.0
    days = (_aware(now) - _aware(last)).total_seconds() / 86400
    if days >= RECENCY_WINDOW_DAYS:
        return 0.0
    return 1.0 - max(days, 0.0) / RECENCY_WINDOW_DAYS


def selection_score(item, now: datetime) -> float:
    return item.quality_score * (1.0 - RECENCY_WEIGHT * recency_penalty(item, now))


def group_key(slot: Slot) -> GroupKey:
    return (slot.topic, slot.cognitive_level.value, slot.difficulty.value, slot.item_type.value)


def group_slots(slots: List[Slot]) -> "OrderedDict[GroupKey, List[Slot]]":
    groups: "OrderedDict[GroupKey, List[Slot]]" = OrderedDict()
    for slot in slots:
        if not slot.filled:
            groups.setdefault(group_key(slot), []).append(slot)
    return groups


class BankSelector:
    """
    Args:
        store:       item store with `search(topic, level, difficulty, item_type, approved_only)`
        similarity:  SimilarityEngine used for near-duplicate checks
        threshold:   similarity at or above which a candidate is a duplicate
    """

    def __init__(self, store, similarity: SimilarityEngine, threshold: float = 0.70, now: Optional[datetime] = None):
        self.store = store
        self.similarity = similarity
        self.threshold = threshold
        self.now = now or datetime.now(timezone.utc)
        self.rejections: Counter = Counter()
        self.failed_groups: Dict[GroupKey, str] = {}
        self._taken_ids = set()

    async def _query(self, key: GroupKey, approved_only: bool):
        topic, level, difficulty, item_type = key
        return await asyncio.to_thread(
            self.store.search, topic, level, difficulty, item_type, approved_only,
        )

    def rank(self, candidates: list) -> list:
        """Least-used first; ties broken by recency-discounted quality, then store order."""
        indexed = list(enumerate(candidates))
        indexed.sort(key=lambda p: (
            len(p[1].usage_history),
            -selection_score(p[1], self.now),
            p[0],
        ))
        return [c for _, c in indexed]

    def _reject(self, reason: str) -> None:
        self.rejections[f"bank: {reason}"] += 1

    def _take(self, pool: list, slot: Slot, registry: GenerationRegistry, allow_unapproved: bool):
        """Pop the first acceptable candidate from `pool`, discarding unusable ones on the way."""
        while pool:
            candidate = pool.pop(0)
            if candidate.id is not None and candidate.id in self._taken_ids:
                continue
            if candidate.item_type != slot.item_type.value:
                self._reject("wrong item type")
                continue
            if not allow_unapproved and not candidate.approved:
                self._reject("not approved")
                continue
            issues = candidate.structural_issues()
            if issues:
                log.debug(f"[BANK] {slot.id} skip {candidate.id}: {issues[0]}")
                self._reject("malformed")
                continue
            dup = registry.find_similar(
                candidate.text, self.similarity, self.threshold, candidate.embedding_vector,
            )
            if dup is not None:
                log.debug(f"[BANK] {slot.id} skip {candidate.id}: near-duplicate ({dup[1]:.2f})")
                self._reject("near-duplicate")
                continue
            return candidate
        return None

    async def fill(
        self,
        slots: List[Slot],
        registry: GenerationRegistry,
        allow_unapproved: bool = False,
    ) -> Tuple[List[Slot], List[Slot]]:
        """
        Stage 2: fill what the bank can.

        Returns:
            (filled, unfilled): slots filled here, and slots still empty,
            both in input order
        """
        pending = [s for s in slots if not s.filled]
        groups = group_slots(pending)
        keys = list(groups)
        log.info(f"[BANK] Querying {len(keys)} slot group(s) (approved_only={not allow_unapproved})")

        results = await asyncio.gather(
            *[self._query(k, not allow_unapproved) for k in keys],
            return_exceptions=True,
        )

        # consumption is sequential: pools and the registry are shared state
        for key, result in zip(keys, results):
            group = groups[key]
            if isinstance(result, Exception):
                log.warning(f"[BANK] Query failed for {'/'.join(key)}: {result}. {len(group)} slot(s) left unfilled")
                self.failed_groups[key] = str(result)
                continue
            pool = self.rank(list(result))
            for slot in group:
                item = self._take(pool, slot, registry, allow_unapproved)
                if item is None:
                    break
                slot.fill(item, "bank")
                if item.id is not None:
                    self._taken_ids.add(item.id)
                registry.register(slot.topic, slot.cognitive_level, item)

        filled = [s for s in pending if s.filled]
        unfilled = [s for s in pending if not s.filled]
        log.info(f"[BANK] OK, filled {len(filled)}/{len(pending)}")
        return filled, unfilled
