"""
Stage 4: Version Assembler

Produces up to five parallel forms (A..E) from the filled slots. Per form:
item order is Fisher-Yates shuffled first, then each multiple-choice item's
options are shuffled, and only then is the answer key built from scratch
from the final item list. The key is checked against the unshuffled
correct option before a form is returned.
"""

import logging
import random
from collections import Counter
from typing import List, Optional

from assembly.config import MAX_VERSIONS, VERSION_LABELS
from assembly.errors import AnswerKeyMismatch, AssemblyConfigError
from assembly.schemas import McqItem, Slot, TestForm

log = logging.getLogger("assembly.pipeline")

MIN_ITEMS_PER_VERSION = 5


def fisher_yates(seq: list, rng: random.Random) -> None:
    for i in range(len(seq) - 1, 0, -1):
        j = rng.randint(0, i)
        seq[i], seq[j] = seq[j], seq[i]


def remap_choices(item: McqItem, rng: random.Random) -> McqItem:
    """
    Return a copy of `item` with options moved to new labels.

    The correct option keeps its text; only its visible label changes, so
    the correct label is recomputed from the option's new position.
    """
    labels = sorted(item.choices)
    texts = [item.choices[label] for label in labels]
    order = list(range(len(labels)))
    fisher_yates(order, rng)

    choices = {labels[new]: texts[old] for new, old in enumerate(order)}
    correct = labels[order.index(labels.index(item.correct_answer))]
    return item.model_copy(update={"choices": choices, "correct_answer": correct})


def _correct_option(item) -> str:
    """What the student must actually answer: option text for MCQ, the key otherwise."""
    if isinstance(item, McqItem):
        return item.choices[item.correct_answer]
    return item.key_value()


def check_answer_key(form: TestForm, expected: List[str]) -> None:
    """Raise AnswerKeyMismatch unless key[i] selects expected[i] on item i."""
    if len(form.answer_key) != len(form.ordered_items):
        raise AnswerKeyMismatch(
            f"Form {form.version_label}: {len(form.answer_key)} keys for {len(form.ordered_items)} items"
        )
    for pos, (item, want) in enumerate(zip(form.ordered_items, expected), start=1):
        key = form.answer_key.get(pos)
        if isinstance(item, McqItem):
            got = item.choices.get(key)
        else:
            got = key
        if got != want:
            raise AnswerKeyMismatch(f"Form {form.version_label} position {pos}: key {key!r} does not select the correct answer")


def assemble(
    filled_slots: List[Slot],
    version_count: int,
    shuffle_items: bool = True,
    shuffle_choices: bool = True,
    rng: Optional[random.Random] = None,
) -> List[TestForm]:
    """
    Stage 4: build `version_count` parallel forms.

    Args:
        filled_slots:    slots in planned order; unfilled ones are skipped
        version_count:   1..5
        shuffle_items:   shuffle item order per form
        shuffle_choices: shuffle MCQ option labels per form
        rng:             seeded RNG (forms are reproducible for a given seed)

    Returns:
        One TestForm per version label, A first
    """
    if not 1 <= version_count <= MAX_VERSIONS:
        raise AssemblyConfigError(f"version_count must be between 1 and {MAX_VERSIONS}, got {version_count}")
    rng = rng or random.Random()

    slots = [s for s in filled_slots if s.filled and s.item is not None]
    total_points = sum(s.point_value for s in slots)
    forms: List[TestForm] = []

    for label in VERSION_LABELS[:version_count]:
        order = list(range(len(slots)))
        if shuffle_items:
            fisher_yates(order, rng)

        items = [slots[i].item for i in order]
        expected = [_correct_option(it) for it in items]
        if shuffle_choices:
            items = [remap_choices(it, rng) if isinstance(it, McqItem) else it for it in items]

        answer_key = {pos: it.key_value() for pos, it in enumerate(items, start=1)}
        form = TestForm(
            version_label=label,
            ordered_items=tuple(items),
            answer_key=answer_key,
            total_points=total_points,
        )
        check_answer_key(form, expected)
        forms.append(form)
        log.info(f"[ASSEMBLE] Version {label}: {len(items)} items, {total_points} points")

    return forms


def balance_warnings(slots: List[Slot], version_count: int) -> List[str]:
    """Advisory notes on how much the versions can actually differ."""
    filled = [s for s in slots if s.filled]
    warnings: List[str] = []
    if version_count > 1:
        for topic, count in Counter(s.topic for s in filled).items():
            if count < 2:
                warnings.append(
                    f"Topic '{topic}' has only {count} item(s); versions cannot vary it meaningfully."
                )
    if len(filled) < version_count * MIN_ITEMS_PER_VERSION:
        warnings.append(
            f"With {len(filled)} items and {version_count} versions, each version will have limited variety."
        )
    return warnings
