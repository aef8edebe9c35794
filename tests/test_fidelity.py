import pytest

from assembly.fidelity import (
    ANSWER_TYPE_RULES, LEVEL_RULES, default_answer_type, fidelity_contract, fidelity_violations,
    forbidden_phrases_for,
)
from assembly.taxonomy import CognitiveLevel


def test_every_level_has_rules_and_a_known_answer_type():
    for level in CognitiveLevel:
        rule = LEVEL_RULES[level]
        assert rule.operations
        assert rule.default_answer_type in ANSWER_TYPE_RULES


def test_definition_answers_are_exempt():
    text = "Key factors include latency, such as queueing delay."
    assert fidelity_violations(CognitiveLevel.REMEMBERING, "definition", text) == []


@pytest.mark.parametrize("answer", [
    "The main causes include congestion and faulty links.",
    "Protocols such as OSPF converge quickly.",
    "These are the components that matter.",
    "The key elements are cost and delay.",
])
def test_listing_answers_rejected_at_analyzing(answer):
    assert fidelity_violations(CognitiveLevel.ANALYZING, "analysis", answer)


def test_relational_analysis_passes():
    answer = "Queue growth raises delay, which in turn triggers retransmissions that deepen the queue."
    assert fidelity_violations(CognitiveLevel.ANALYZING, "analysis", answer) == []


def test_evaluation_requires_a_verdict():
    assert fidelity_violations(CognitiveLevel.EVALUATING, "evaluation", "The design uses two links.")
    assert fidelity_violations(
        CognitiveLevel.EVALUATING, "evaluation", "The redundant design is more effective because it removes the single point of failure."
    ) == []


def test_explanation_forbids_enumeration_below_higher_order():
    assert fidelity_violations(CognitiveLevel.UNDERSTANDING, "explanation", "Benefits include speed.")
    assert fidelity_violations(CognitiveLevel.UNDERSTANDING, "explanation", "Caching cuts latency because reads skip the disk.") == []


def test_default_answer_types():
    assert default_answer_type(CognitiveLevel.REMEMBERING) == "definition"
    assert default_answer_type(CognitiveLevel.EVALUATING) == "evaluation"
    assert default_answer_type(CognitiveLevel.CREATING) == "design"


def test_contract_lists_forbidden_phrases_and_mental_action():
    contract = fidelity_contract(CognitiveLevel.ANALYZING, "analysis")
    assert "relationships between components" in contract
    assert '"such as"' in contract
    assert "key factors" in forbidden_phrases_for(CognitiveLevel.ANALYZING, "analysis")
    assert "FORBIDDEN" not in fidelity_contract(CognitiveLevel.REMEMBERING, "definition")
