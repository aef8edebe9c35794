import itertools

import pytest

from assembly.errors import ItemStoreError
from assembly.schemas import CoveragePlan, McqItem, Slot, TopicRequirement, TrueFalseItem
from assembly.taxonomy import CognitiveLevel, Difficulty, ItemType

# Made-up stems: suffixing a counter makes every item's tokens disjoint
STEM_WORDS = ["amber", "basalt", "cobalt", "dynamo", "ember", "fjord", "garnet", "harbor"]

# Passes every fidelity rule, including the evaluation verdict requirement
GOOD_ANSWER = "This response is better because the mechanism links each cause to its effect."


def unique_text(n: int, lead: str = "Which") -> str:
    return f"{lead} " + " ".join(f"{w}{n}" for w in STEM_WORDS) + "?"


def make_mcq(n, topic="Networking", level=CognitiveLevel.REMEMBERING, difficulty=Difficulty.EASY, **kw):
    data = dict(
        id=f"bank-{n}",
        text=unique_text(n),
        topic=topic,
        cognitive_level=level,
        difficulty=difficulty,
        choices={"A": f"north{n}", "B": f"south{n}", "C": f"east{n}", "D": f"west{n}"},
        correct_answer="B",
        explanation=GOOD_ANSWER,
    )
    data.update(kw)
    return McqItem(**data)


def make_true_false(n, topic="Networking", level=CognitiveLevel.REMEMBERING, difficulty=Difficulty.EASY, **kw):
    data = dict(
        id=f"bank-tf-{n}",
        text=unique_text(n, "True or false:"),
        topic=topic,
        cognitive_level=level,
        difficulty=difficulty,
        correct_answer="True",
        explanation=GOOD_ANSWER,
    )
    data.update(kw)
    return TrueFalseItem(**data)


def make_slot(n, topic="Networking", level=CognitiveLevel.REMEMBERING, difficulty=Difficulty.EASY,
              item_type=ItemType.MCQ, points=1):
    return Slot(
        id=f"S{n:03d}",
        topic=topic,
        cognitive_level=level,
        difficulty=difficulty,
        item_type=item_type,
        point_value=points,
    )


def single_topic_plan(topic="Networking", hours=3.0, **level_counts):
    counts = {CognitiveLevel(k): v for k, v in level_counts.items()}
    return CoveragePlan(topics=(TopicRequirement(topic=topic, hours=hours, per_level_counts=counts),))


def good_candidate(intent, n: int) -> dict:
    """A well-formed generated item for `intent`, textually unique per n."""
    base = {"slot_id": intent.slot_id, "text": unique_text(n, f"Regarding {intent.concept},")}
    if intent.item_type == ItemType.MCQ:
        base.update(
            choices={"A": f"alpha{n}", "B": f"bravo{n}", "C": f"charlie{n}", "D": f"delta{n}"},
            correct_answer="C",
            explanation=GOOD_ANSWER,
        )
    elif intent.item_type == ItemType.TRUE_FALSE:
        base.update(correct_answer="false", explanation=GOOD_ANSWER)
    elif intent.item_type == ItemType.SHORT_ANSWER:
        base.update(model_answer=GOOD_ANSWER)
    else:
        base.update(model_answer=GOOD_ANSWER, rubric_points=["clear verdict", "supporting evidence"])
    return base


class InMemoryStore:
    """Item store double. Groups listed in `fail_groups` raise on search."""

    def __init__(self, items=(), fail_groups=(), fail_writes=False):
        self.items = list(items)
        self.fail_groups = set(fail_groups)
        self.fail_writes = fail_writes
        self.queries = []
        self.inserted = []
        self.usage = []

    def search(self, topic, level, difficulty, item_type, approved_only=True):
        key = (topic, str(level), str(difficulty), str(item_type))
        self.queries.append(key)
        if (topic, level, difficulty, item_type) in self.fail_groups:
            raise ItemStoreError("connection reset")
        found = [
            i for i in self.items
            if i.topic == topic
            and i.cognitive_level == level
            and i.difficulty == difficulty
            and i.item_type == item_type
            and (i.approved or not approved_only)
        ]
        return sorted(found, key=lambda i: len(i.usage_history))

    def insert_many(self, items):
        if self.fail_writes:
            raise ItemStoreError("read-only replica")
        self.inserted.extend(items)
        return list(items)

    def record_usage(self, item_ids, test_id):
        if self.fail_writes:
            raise ItemStoreError("read-only replica")
        self.usage.append((list(item_ids), test_id))


class ScriptedService:
    """
    Generative service double.

    responder(intent, n) -> dict builds each candidate (defaults to a good
    one); `fail_with` is raised on every call instead.
    """

    def __init__(self, responder=None, fail_with=None):
        self.responder = responder or good_candidate
        self.fail_with = fail_with
        self.calls = []
        self._counter = itertools.count(1000)

    async def generate(self, topic, level, intents):
        self.calls.append((topic, level, list(intents)))
        if self.fail_with is not None:
            raise self.fail_with
        return [self.responder(intent, next(self._counter)) for intent in intents]


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def service():
    return ScriptedService()
