import pytest
from pydantic import ValidationError

from assembly.errors import SlotAlreadyFilled
from assembly.schemas import (
    CoveragePlan, EssayItem, McqItem, ShortAnswerItem, TopicRequirement, TrueFalseItem, parse_item,
)
from assembly.taxonomy import CognitiveLevel, Difficulty, KnowledgeDimension
from conftest import make_mcq, make_slot, make_true_false


def test_well_formed_mcq_has_no_issues():
    assert make_mcq(1).structural_issues() == []


@pytest.mark.parametrize("update,fragment", [
    ({"choices": {"A": "x", "B": "y", "C": "z"}}, "labelled A..D"),
    ({"choices": {"A": "w", "B": "x", "C": "y", "E": "z"}}, "labelled A..D"),
    ({"choices": {"A": "w", "B": " ", "C": "y", "D": "z"}}, "empty choice text"),
    ({"choices": {"A": "Same", "B": "same ", "C": "y", "D": "z"}}, "duplicate choice text"),
    ({"correct_answer": "E"}, "not a choice label"),
    ({"text": "  "}, "empty item text"),
])
def test_malformed_mcq(update, fragment):
    issues = make_mcq(1).model_copy(update=update).structural_issues()
    assert any(fragment in issue for issue in issues)


def test_six_choices_are_allowed():
    choices = {label: f"option{label}" for label in "ABCDEF"}
    assert make_mcq(1, choices=choices, correct_answer="F").structural_issues() == []


@pytest.mark.parametrize("raw,expected", [
    (True, "True"), (False, "False"), ("true", "True"), ("F", "False"), (" yes ", "True"),
])
def test_true_false_answer_is_canonical(raw, expected):
    assert make_true_false(1, correct_answer=raw).correct_answer == expected


def test_true_false_rejects_other_answers_structurally():
    item = make_true_false(1, correct_answer="maybe")
    assert item.structural_issues() == ["true/false answer must be True or False, got 'maybe'"]


def test_essay_key_is_its_rubric():
    base = dict(text="Assess the design.", topic="Networking",
                cognitive_level=CognitiveLevel.EVALUATING, difficulty=Difficulty.DIFFICULT)
    essay = EssayItem(**base, model_answer="A model answer.", rubric_points=["verdict ", "", "evidence"])
    assert essay.key_value() == "verdict; evidence"
    assert EssayItem(**base, model_answer="A model answer.").key_value() == "A model answer."
    assert EssayItem(**base).structural_issues() == ["essay item needs a model answer or rubric"]


def test_parse_item_picks_the_variant():
    common = {"text": "Define latency.", "topic": "Networking",
              "cognitive_level": "remembering", "difficulty": "easy"}
    assert isinstance(parse_item({**common, "item_type": "short_answer", "model_answer": "Delay."}), ShortAnswerItem)
    assert isinstance(parse_item({**common, "item_type": "true_false", "correct_answer": "t"}), TrueFalseItem)
    mcq = parse_item({**common, "item_type": "mcq", "choices": {"A": "a", "B": "b", "C": "c", "D": "d"},
                      "correct_answer": "A"})
    assert isinstance(mcq, McqItem)
    with pytest.raises(ValidationError):
        parse_item({**common, "item_type": "matching"})
    with pytest.raises(ValidationError):
        parse_item({**common, "item_type": "mcq", "cognitive_level": "memorising"})


def test_knowledge_dimension_follows_level():
    assert make_mcq(1).knowledge_dimension == KnowledgeDimension.FACTUAL
    slot = make_slot(1, level=CognitiveLevel.EVALUATING)
    assert slot.knowledge_dimension == KnowledgeDimension.METACOGNITIVE
    assert slot.model_dump()["knowledge_dimension"] == KnowledgeDimension.METACOGNITIVE


def test_slot_fills_only_once():
    slot = make_slot(1)
    slot.fill(make_mcq(1), "bank")
    assert slot.filled and slot.source == "bank"
    with pytest.raises(SlotAlreadyFilled):
        slot.fill(make_mcq(2), "generated")
    assert slot.item.id == "bank-1"


def test_plan_rejects_negative_counts():
    with pytest.raises(ValidationError):
        TopicRequirement(topic="Routing", hours=2, per_level_counts={"applying": -1})
    with pytest.raises(ValidationError):
        TopicRequirement(topic="Routing", hours=-1)


def test_plan_totals():
    plan = CoveragePlan(topics=(
        TopicRequirement(topic="Routing", hours=2, per_level_counts={"remembering": 3, "applying": 2}),
        TopicRequirement(topic="Storage", hours=0, per_level_counts={"remembering": 4}),
        TopicRequirement(topic="Security", hours=1.5),
    ))
    assert plan.total_hours == 3.5
    assert plan.explicit_total == 5


def test_plan_accepts_level_and_difficulty_aliases():
    row = TopicRequirement(
        topic="Routing",
        hours=2,
        per_level_counts={"recall": 2, "remembering": 1, "Analysis": 3},
        per_difficulty_counts={"medium": 4, "hard": 2},
    )
    assert row.per_level_counts == {CognitiveLevel.REMEMBERING: 3, CognitiveLevel.ANALYZING: 3}
    assert row.per_difficulty_counts == {Difficulty.AVERAGE: 4, Difficulty.DIFFICULT: 2}
