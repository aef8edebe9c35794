"""
Bank sufficiency analysis

A dry run of the bank stage: for every slot group the plan would create,
how many items are needed and how many usable ones the bank holds. Lets a
caller see shortages (and how much generation a run will need) before
assembling.
"""

import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from assembly.bank_selector import group_slots
from assembly.config import AssemblyOptions
from assembly.schemas import CoveragePlan
from assembly.slot_planner import expand

log = logging.getLogger(__name__)


class GroupSufficiency(BaseModel):
    topic: str
    cognitive_level: str
    difficulty: str
    item_type: str
    needed: int
    available: int

    @property
    def shortage(self) -> int:
        return max(0, self.needed - self.available)


class SufficiencyReport(BaseModel):
    groups: List[GroupSufficiency] = Field(default_factory=list)
    total_needed: int = 0
    total_available: int = 0
    recommendations: List[str] = Field(default_factory=list)

    @property
    def sufficient(self) -> bool:
        return all(g.shortage == 0 for g in self.groups)

    @property
    def total_shortage(self) -> int:
        return sum(g.shortage for g in self.groups)


def analyze_sufficiency(
    store,
    plan: CoveragePlan,
    total_items: int,
    options: Optional[AssemblyOptions] = None,
) -> SufficiencyReport:
    """Compare planned slot groups against usable bank items, group by group."""
    options = options or AssemblyOptions()
    slots = expand(plan, total_items, options)
    report = SufficiencyReport()

    for (topic, level, difficulty, item_type), group in group_slots(slots).items():
        try:
            candidates = store.search(topic, level, difficulty, item_type, not options.allow_unapproved)
        except Exception as e:
            log.warning(f"Sufficiency query failed for {topic}/{level}/{difficulty}/{item_type}: {e}")
            candidates = []
        available = sum(1 for c in candidates if not c.structural_issues())
        g = GroupSufficiency(
            topic=topic,
            cognitive_level=level,
            difficulty=difficulty,
            item_type=item_type,
            needed=len(group),
            available=available,
        )
        report.groups.append(g)
        report.total_needed += g.needed
        report.total_available += min(g.needed, g.available)
        if g.shortage:
            report.recommendations.append(
                f"Add {g.shortage} {item_type} item(s) for '{topic}' at {level}/{difficulty} "
                f"(have {g.available}, need {g.needed}); otherwise they will be generated."
            )

    if report.sufficient:
        report.recommendations.append("The item bank can cover this plan without generation.")
    return report
