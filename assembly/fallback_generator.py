"""
Stage 3: Fallback Generator

Fills the slots the bank could not, by batched calls to a generative
service. Per (topic, level, item_type) group:

  attempt 1..N:
    draw a fresh concept + operation per pending slot (registry)
    → one service call carrying each intent's fidelity contract
    → per candidate: structure → cognitive fidelity → near-duplicate
    → accepted items fill their slot and are registered

Batches run one after another with a fixed delay, since every batch must
see the registry state left by the previous one. An unreachable service
stops generation for the rest of the run; the remaining slots are reported
as unfilled.
"""

import asyncio
import logging
import uuid
from collections import Counter, OrderedDict
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError

from assembly.errors import GenerationServiceError, GenerationServiceUnavailable
from assembly.fidelity import (
    default_answer_type, fidelity_contract, fidelity_violations, forbidden_phrases_for,
)
from assembly.registry import GenerationRegistry
from assembly.schemas import Intent, Slot, parse_item
from assembly.similarity import SimilarityEngine

log = logging.getLogger("assembly.pipeline")

GENERATED_QUALITY = 0.6

BatchKey = Tuple[str, str, str]


class FallbackGenerator:
    """
    Args:
        service:      GenerativeService (`generate(topic, level, intents) -> List[dict]`)
        similarity:   SimilarityEngine for near-duplicate checks (and embeddings)
        threshold:    similarity at or above which a candidate is a duplicate
        max_attempts: attempts per batch before its slots are given up
        batch_delay:  seconds to wait between service calls
    """

    def __init__(
        self,
        service,
        similarity: SimilarityEngine,
        threshold: float = 0.70,
        max_attempts: int = 3,
        batch_delay: float = 0.5,
    ):
        self.service = service
        self.similarity = similarity
        self.threshold = threshold
        self.max_attempts = max_attempts
        self.batch_delay = batch_delay
        self.rejections: Counter = Counter()
        self.failed_batches: Dict[BatchKey, str] = {}
        self.unavailable: Optional[str] = None
        self.generated_count = 0
        self._calls = 0

    # ─── Intents ──────────────────────────────────────────────────────────────

    def build_intent(self, slot: Slot, registry: GenerationRegistry) -> Intent:
        concept, operation = registry.next_intent(slot.topic, slot.cognitive_level)
        answer_type = default_answer_type(slot.cognitive_level)
        return Intent(
            slot_id=slot.id,
            concept=concept,
            operation=operation,
            answer_type=answer_type,
            difficulty=slot.difficulty,
            knowledge_dimension=slot.knowledge_dimension,
            point_value=slot.point_value,
            item_type=slot.item_type,
            contract=fidelity_contract(slot.cognitive_level, answer_type),
            forbidden_phrases=forbidden_phrases_for(slot.cognitive_level, answer_type),
        )

    # ─── Validation ───────────────────────────────────────────────────────────

    def _to_item(self, raw: dict, slot: Slot, intent: Intent):
        data = {k: v for k, v in raw.items() if k not in ("slot_id", "id")}
        data.update(
            id=str(uuid.uuid4()),
            topic=slot.topic,
            cognitive_level=slot.cognitive_level,
            difficulty=slot.difficulty,
            item_type=slot.item_type.value,
            quality_score=GENERATED_QUALITY,
            approved=False,
            created_by="ai",
            concept=intent.concept,
            operation=intent.operation,
            answer_type=intent.answer_type,
        )
        return parse_item(data)

    def _reject(self, slot: Slot, reason: str, detail: str = "") -> None:
        self.rejections[f"generated: {reason}"] += 1
        log.info(f"[GENERATE] {slot.id} candidate rejected ({reason}){': ' + detail if detail else ''}")

    async def validate(self, raw: dict, slot: Slot, intent: Intent, registry: GenerationRegistry):
        """Return an acceptable Item for `slot`, or None after recording why not."""
        try:
            item = self._to_item(raw, slot, intent)
        except ValidationError as e:
            self._reject(slot, "malformed", str(e.errors()[0].get("msg", "")))
            return None

        issues = item.structural_issues()
        if issues:
            self._reject(slot, "structural", issues[0])
            return None

        violations = fidelity_violations(slot.cognitive_level, intent.answer_type, item.answer_text())
        if violations:
            self._reject(slot, "cognitive fidelity", violations[0])
            return None

        item.embedding_vector = await asyncio.to_thread(self.similarity.embed, item.text)
        dup = registry.find_similar(item.text, self.similarity, self.threshold, item.embedding_vector)
        if dup is not None:
            self._reject(slot, "near-duplicate", f"{dup[1]:.2f}")
            return None
        return item

    def _match(self, candidates: List[dict], pending: List[Slot]) -> List[Tuple[Slot, dict]]:
        """Pair candidates with slots by echoed slot_id, falling back to position."""
        by_id = {s.id: s for s in pending}
        matched: Dict[str, dict] = {}
        loose: List[dict] = []
        for cand in candidates:
            if not isinstance(cand, dict):
                self.rejections["generated: malformed"] += 1
                log.info(f"[GENERATE] candidate rejected (malformed): {type(cand).__name__} is not an object")
                continue
            sid = cand.get("slot_id")
            if sid in by_id and sid not in matched:
                matched[sid] = cand
            else:
                loose.append(cand)
        for slot in pending:
            if slot.id not in matched and loose:
                matched[slot.id] = loose.pop(0)
        return [(by_id[sid], cand) for sid, cand in matched.items()]

    # ─── Batch loop ───────────────────────────────────────────────────────────

    async def _call(self, key: BatchKey, slot_level, intents: List[Intent]) -> Optional[List[dict]]:
        if self._calls and self.batch_delay > 0:
            await asyncio.sleep(self.batch_delay)
        self._calls += 1
        try:
            return await self.service.generate(key[0], slot_level, intents)
        except (GenerationServiceUnavailable, OSError, asyncio.TimeoutError) as e:
            reason = str(e) or type(e).__name__
            log.error(f"[GENERATE] Service unavailable: {reason}")
            self.unavailable = reason
            self.failed_batches[key] = reason
        except GenerationServiceError as e:
            log.warning(f"[GENERATE] Batch {'/'.join(key)} failed: {e}")
            self.failed_batches[key] = str(e)
        except Exception as e:
            log.warning(f"[GENERATE] Batch {'/'.join(key)} failed: {type(e).__name__}: {e}")
            self.failed_batches[key] = f"{type(e).__name__}: {e}"
        return None

    async def _fill_batch(self, key: BatchKey, group: List[Slot], registry: GenerationRegistry) -> None:
        pending = list(group)
        attempt = 0
        while pending and attempt < self.max_attempts and self.unavailable is None:
            attempt += 1
            intents = {s.id: self.build_intent(s, registry) for s in pending}
            log.info(f"[GENERATE] {'/'.join(key)} attempt {attempt}/{self.max_attempts}: {len(pending)} slot(s)")

            candidates = await self._call(key, pending[0].cognitive_level, list(intents.values()))
            if candidates is None:
                continue

            accepted = 0
            for slot, raw in self._match(candidates, pending):
                intent = intents[slot.id]
                item = await self.validate(raw, slot, intent, registry)
                if item is None:
                    continue
                slot.fill(item, "generated")
                registry.register(slot.topic, slot.cognitive_level, item, intent.concept, intent.operation)
                accepted += 1

            self.generated_count += accepted
            pending = [s for s in pending if not s.filled]
            log.info(f"[GENERATE] {'/'.join(key)} attempt {attempt}: accepted {accepted}, {len(pending)} pending")

        if pending:
            log.warning(f"[GENERATE] {'/'.join(key)}: {len(pending)} slot(s) unfilled after {attempt} attempt(s)")
        else:
            self.failed_batches.pop(key, None)

    async def fill(self, slots: List[Slot], registry: GenerationRegistry) -> List[Slot]:
        """
        Stage 3: generate items for every unfilled slot in `slots`.

        Mutates the slots in place and returns the same list.
        """
        groups: "OrderedDict[BatchKey, List[Slot]]" = OrderedDict()
        for slot in slots:
            if not slot.filled:
                key = (slot.topic, slot.cognitive_level.value, slot.item_type.value)
                groups.setdefault(key, []).append(slot)

        log.info(f"[GENERATE] {sum(len(g) for g in groups.values())} slot(s) in {len(groups)} batch(es)")
        for key, group in groups.items():
            if self.unavailable is not None:
                self.failed_batches.setdefault(key, self.unavailable)
                continue
            await self._fill_batch(key, group, registry)

        log.info(f"[GENERATE] OK, generated {self.generated_count}")
        return slots
