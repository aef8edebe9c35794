"""
Assembly pipeline: caller-facing entry point

assemble(plan, total_items, version_count, options) → AssemblyResult

  [PLAN]      slot_planner.expand
  [BANK]      BankSelector.fill          (mutates registry)
  [GENERATE]  FallbackGenerator.fill     (mutates registry)
  [ASSEMBLE]  version_assembler.assemble
  [USAGE]     persist generated items, record bank usage

Stages run strictly in order. Only configuration errors raise; every
shortage or collaborator failure comes back on the report.
"""

import asyncio
import logging
import random
import uuid
from collections import Counter
from typing import Optional, Union

from pydantic import ValidationError

from assembly import version_assembler
from assembly.bank_selector import BankSelector
from assembly.config import AssemblyOptions, MAX_VERSIONS
from assembly.errors import AssemblyConfigError
from assembly.fallback_generator import FallbackGenerator
from assembly.registry import GenerationRegistry
from assembly.schemas import AssemblyReport, AssemblyResult, CoveragePlan
from assembly.similarity import SimilarityEngine
from assembly.slot_planner import expand
from assembly.usage_tracker import persist_generated, record_usage

log = logging.getLogger("assembly.pipeline")

UNFILLED_LISTED = 10


# ─── Request validation ────────────────────────────────────────────────────────

def _coerce_plan(plan) -> CoveragePlan:
    if isinstance(plan, CoveragePlan):
        return plan
    try:
        if isinstance(plan, dict):
            return CoveragePlan.model_validate(plan)
        return CoveragePlan.model_validate({"topics": list(plan)})
    except (ValidationError, TypeError) as e:
        raise AssemblyConfigError(f"Invalid coverage plan: {e}") from e


def _coerce_options(options) -> AssemblyOptions:
    if options is None:
        return AssemblyOptions()
    if isinstance(options, AssemblyOptions):
        return options
    try:
        return AssemblyOptions.model_validate(options)
    except ValidationError as e:
        raise AssemblyConfigError(f"Invalid assembly options: {e}") from e


def validate_request(plan, total_items, version_count, options):
    """Return (plan, options) or raise AssemblyConfigError before any stage runs."""
    if isinstance(total_items, bool) or not isinstance(total_items, int) or total_items <= 0:
        raise AssemblyConfigError(f"total_items must be a positive integer, got {total_items!r}")
    if isinstance(version_count, bool) or not isinstance(version_count, int) or not 1 <= version_count <= MAX_VERSIONS:
        raise AssemblyConfigError(f"version_count must be between 1 and {MAX_VERSIONS}, got {version_count!r}")
    plan = _coerce_plan(plan)
    if not plan.topics:
        raise AssemblyConfigError("Coverage plan has no topics")
    if plan.total_hours <= 0:
        raise AssemblyConfigError("Coverage plan has no topic with positive hours")
    return plan, _coerce_options(options)


# ─── Engine ────────────────────────────────────────────────────────────────────

class AssemblyEngine:
    """
    Wires the collaborators into one pipeline.

    Args:
        store:             item store (search / insert_many / record_usage)
        generator_service: GenerativeService, or None to disable generation
        embedder:          optional `embed(text)` service for cosine similarity
        concept_pools:     optional topic → concept list overriding the default pool
    """

    def __init__(self, store, generator_service=None, embedder=None, concept_pools=None):
        self.store = store
        self.generator_service = generator_service
        self.embedder = embedder
        self.concept_pools = concept_pools

    async def assemble(
        self,
        plan: Union[CoveragePlan, list, dict],
        total_items: int,
        version_count: int = 1,
        options: Optional[Union[AssemblyOptions, dict]] = None,
        registry: Optional[GenerationRegistry] = None,
    ) -> AssemblyResult:
        plan, options = validate_request(plan, total_items, version_count, options)
        test_id = options.test_id or f"test-{uuid.uuid4().hex[:12]}"
        rng = random.Random(options.seed)
        registry = registry if registry is not None else GenerationRegistry(self.concept_pools)
        similarity = SimilarityEngine(self.embedder)
        warnings = []

        log.info("=" * 60)
        log.info(f"[RUN START] test={test_id} items={total_items} versions={version_count} topics={len(plan.topics)}")

        # ── Plan ──────────────────────────────────────────────────────────────
        slots = expand(plan, total_items, options, rng)
        if len(slots) != total_items:
            warnings.append(
                f"Coverage plan yields {len(slots)} item(s) but {total_items} were requested; "
                f"the plan's counts were used."
            )

        # ── Bank ──────────────────────────────────────────────────────────────
        selector = BankSelector(self.store, similarity, options.bank_similarity_threshold)
        bank_filled, unfilled = await selector.fill(slots, registry, options.allow_unapproved)
        for key, err in selector.failed_groups.items():
            warnings.append(f"Item bank query failed for {'/'.join(key)}: {err}")

        # ── Generate ──────────────────────────────────────────────────────────
        rejections = Counter(selector.rejections)
        generated = 0
        if unfilled and self.generator_service is None:
            warnings.append(f"No generative service configured; {len(unfilled)} slot(s) could not be generated.")
        elif unfilled:
            generator = FallbackGenerator(
                self.generator_service,
                similarity,
                threshold=options.generation_similarity_threshold,
                max_attempts=options.max_generation_attempts,
                batch_delay=options.batch_delay,
            )
            await generator.fill(unfilled, registry)
            generated = generator.generated_count
            rejections.update(generator.rejections)
            if generated:
                warnings.append(
                    f"Generated {generated} AI item(s) due to insufficient item bank; "
                    f"they are saved unapproved and should be reviewed."
                )
            if generator.unavailable is not None:
                warnings.append(f"Generative service unavailable: {generator.unavailable}")
            for key, err in generator.failed_batches.items():
                warnings.append(f"Generation failed for {'/'.join(key)}: {err}")

        still_unfilled = [s for s in slots if not s.filled]
        if still_unfilled:
            listed = ", ".join(s.describe() for s in still_unfilled[:UNFILLED_LISTED])
            more = len(still_unfilled) - UNFILLED_LISTED
            warnings.append(
                f"{len(still_unfilled)} of {len(slots)} slot(s) could not be filled: {listed}"
                + (f" (+{more} more)" if more > 0 else "")
            )

        # ── Assemble ──────────────────────────────────────────────────────────
        forms = version_assembler.assemble(
            slots, version_count, options.shuffle_items, options.shuffle_choices, rng,
        )
        warnings.extend(version_assembler.balance_warnings(slots, version_count))

        # ── Usage ─────────────────────────────────────────────────────────────
        if options.persist_generated:
            warnings.extend(persist_generated(self.store, slots))
        if options.record_usage:
            warnings.extend(record_usage(self.store, slots, test_id))

        report = AssemblyReport(
            test_id=test_id,
            filled_slots=len(slots) - len(still_unfilled),
            unfilled_slots=still_unfilled,
            generated_count=generated,
            bank_count=len(bank_filled),
            warnings=warnings,
            rejections=dict(rejections),
        )
        log.info(
            f"[DONE] filled={report.filled_slots}/{len(slots)} bank={report.bank_count} "
            f"generated={generated} unfilled={len(still_unfilled)} warnings={len(warnings)}"
        )
        log.info("=" * 60)
        return AssemblyResult(forms=forms, report=report)


def assemble(
    plan,
    total_items: int,
    version_count: int = 1,
    options=None,
    *,
    store,
    generator_service=None,
    embedder=None,
) -> AssemblyResult:
    """Synchronous entry point: run one assembly to completion."""
    engine = AssemblyEngine(store, generator_service=generator_service, embedder=embedder)
    return asyncio.run(engine.assemble(plan, total_items, version_count, options))
