"""
Test assembly pipeline

Stage 1 → Slot Planner       (slot_planner.py)
Stage 2 → Bank Selector      (bank_selector.py)
Stage 3 → Fallback Generator (fallback_generator.py)
Stage 4 → Version Assembler  (version_assembler.py)
Stage 5 → Usage Tracker      (usage_tracker.py)

Shared: Similarity Engine (similarity.py), Generation Registry (registry.py),
fidelity rule tables (fidelity.py).
"""

from assembly.config import AssemblyOptions
from assembly.coverage import plan_from_hours
from assembly.engine import AssemblyEngine, assemble
from assembly.errors import AssemblyConfigError, AssemblyError
from assembly.registry import GenerationRegistry
from assembly.schemas import AssemblyReport, AssemblyResult, CoveragePlan, TestForm, TopicRequirement

__all__ = [
    "AssemblyEngine",
    "AssemblyOptions",
    "AssemblyConfigError",
    "AssemblyError",
    "AssemblyReport",
    "AssemblyResult",
    "CoveragePlan",
    "GenerationRegistry",
    "TestForm",
    "TopicRequirement",
    "assemble",
    "plan_from_hours",
]
