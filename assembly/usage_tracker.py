"""
Stage 5: Usage Tracker

After assembly: inserts accepted generated items into the store (as
unapproved AI items) and records a usage entry for every bank item that
made it onto the test, so later runs rotate away from it. Both steps are
bookkeeping: a store failure becomes a report warning, never an abort.
"""

import logging
from typing import List

from assembly.schemas import Slot

log = logging.getLogger("assembly.pipeline")


def persist_generated(store, slots: List[Slot]) -> List[str]:
    """Insert generated items. Returns warnings (empty on success)."""
    items = [s.item for s in slots if s.filled and s.source == "generated"]
    if not items:
        return []
    try:
        stored = store.insert_many(items)
    except Exception as e:
        log.warning(f"[USAGE] Failed to save {len(items)} generated item(s): {e}")
        return [f"Generated items could not be saved to the item bank: {e}"]
    log.info(f"[USAGE] Saved {len(stored)} generated item(s) for review")
    return []


def collect_bank_item_ids(slots: List[Slot]) -> List[str]:
    return [s.item.id for s in slots if s.filled and s.source == "bank" and s.item.id]


def record_usage(store, slots: List[Slot], test_id: str) -> List[str]:
    """Append a usage record for each bank item used. Returns warnings."""
    item_ids = collect_bank_item_ids(slots)
    if not item_ids:
        return []
    try:
        store.record_usage(item_ids, test_id)
    except Exception as e:
        log.warning(f"[USAGE] Failed to record usage for test {test_id}: {e}")
        return [f"Usage history could not be updated for {len(item_ids)} bank item(s): {e}"]
    log.info(f"[USAGE] Recorded usage of {len(item_ids)} bank item(s) for test {test_id}")
    return []
