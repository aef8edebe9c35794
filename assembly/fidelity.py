"""
Cognitive-fidelity rule tables

A generated item labelled "analyzing" must actually demand analysis. The
rules live here as data (per-level contract, operations, verbs, forbidden
listing patterns; per-answer-type structure) so the generation loop only
asks `fidelity_violations(...)` and never hard-codes a rule.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Pattern, Tuple

from assembly.taxonomy import CognitiveLevel, HIGHER_ORDER_LEVELS


@dataclass(frozen=True)
class LevelRule:
    mental_action: str
    operations: Tuple[str, ...]
    verbs: Tuple[str, ...]
    forbidden_phrases: Tuple[str, ...] = ()
    default_answer_type: str = "definition"


@dataclass(frozen=True)
class AnswerTypeRule:
    requirement: str
    structural_rule: str
    forbidden_phrases: Tuple[str, ...] = ()
    # at least one marker must appear in the answer (empty = no requirement)
    required_markers: Tuple[str, ...] = field(default_factory=tuple)


# ─── Per-level rules ───────────────────────────────────────────────────────────

LEVEL_RULES: Dict[CognitiveLevel, LevelRule] = {
    CognitiveLevel.REMEMBERING: LevelRule(
        mental_action="must recall or recognise a specific fact, term or detail",
        operations=("recall", "recognize", "identify", "list", "name"),
        verbs=("define", "list", "identify", "name", "state", "recall", "recognize"),
        default_answer_type="definition",
    ),
    CognitiveLevel.UNDERSTANDING: LevelRule(
        mental_action="must explain how or why something works in their own words",
        operations=("explain", "summarize", "interpret", "classify", "infer"),
        verbs=("explain", "summarize", "describe", "interpret", "classify"),
        default_answer_type="explanation",
    ),
    CognitiveLevel.APPLYING: LevelRule(
        mental_action="must use a method or principle on a concrete, unseen scenario",
        operations=("execute", "implement", "solve", "use", "demonstrate"),
        verbs=("apply", "solve", "implement", "demonstrate", "use", "execute"),
        default_answer_type="application",
    ),
    CognitiveLevel.ANALYZING: LevelRule(
        mental_action="must identify relationships between components, not list them",
        operations=("differentiate", "organize", "attribute", "deconstruct", "compare"),
        verbs=("analyze", "compare", "differentiate", "examine", "deconstruct"),
        forbidden_phrases=("include", "includes", "such as", "key factors include"),
        default_answer_type="analysis",
    ),
    CognitiveLevel.EVALUATING: LevelRule(
        mental_action="must render a verdict against explicit criteria and justify it",
        operations=("check", "critique", "judge", "prioritize", "justify", "defend"),
        verbs=("evaluate", "justify", "critique", "assess", "defend"),
        forbidden_phrases=("include", "includes", "such as", "key factors include"),
        default_answer_type="evaluation",
    ),
    CognitiveLevel.CREATING: LevelRule(
        mental_action="must produce a new, concrete plan, design or artefact",
        operations=("generate", "plan", "produce", "design", "construct", "formulate"),
        verbs=("design", "create", "compose", "formulate", "construct"),
        forbidden_phrases=("include", "includes", "such as"),
        default_answer_type="design",
    ),
}


# ─── Per-answer-type structure ─────────────────────────────────────────────────

ANSWER_TYPE_RULES: Dict[str, AnswerTypeRule] = {
    "definition": AnswerTypeRule(
        requirement="State what something IS: terminology, facts, specific details.",
        structural_rule="Direct statement of meaning or identification. May use listing.",
    ),
    "explanation": AnswerTypeRule(
        requirement="Describe HOW or WHY something works, occurs, or is connected.",
        structural_rule="Must show cause-effect or mechanism. Cannot merely enumerate.",
        forbidden_phrases=("include", "such as"),
    ),
    "comparison": AnswerTypeRule(
        requirement="Explicitly compare at least TWO elements, stating similarities and differences.",
        structural_rule="Must mention Element A vs Element B. Cannot list features of only one.",
        forbidden_phrases=("include", "such as", "factors"),
    ),
    "procedure": AnswerTypeRule(
        requirement="Outline ordered STEPS or PROCESSES to accomplish something.",
        structural_rule="Must be sequential (Step 1, Step 2...). Cannot be an unordered list.",
        forbidden_phrases=("include", "such as"),
    ),
    "application": AnswerTypeRule(
        requirement="USE knowledge to solve a new problem or address a specific scenario.",
        structural_rule="Must reference the specific scenario. Cannot be abstract.",
        forbidden_phrases=("include", "such as", "factors are"),
    ),
    "evaluation": AnswerTypeRule(
        requirement="Make a JUDGMENT based on criteria: effective, valid, or optimal.",
        structural_rule="Must contain a verdict (better/worse, effective/ineffective). Cannot merely describe.",
        forbidden_phrases=("include", "such as", "factors"),
        required_markers=(
            "better", "worse", "more effective", "less effective", "effective",
            "ineffective", "optimal", "suboptimal", "preferable", "superior",
            "inferior", "should", "valid", "invalid", "justified", "outweigh",
        ),
    ),
    "justification": AnswerTypeRule(
        requirement="Provide REASONS and EVIDENCE for a position, decision, or approach.",
        structural_rule='Must contain "because", "therefore", "this works because". Cannot merely list points.',
        forbidden_phrases=("include", "such as"),
        required_markers=("because", "therefore", "since", "thus"),
    ),
    "analysis": AnswerTypeRule(
        requirement="BREAK DOWN information into components and explain their RELATIONSHIPS.",
        structural_rule="Must identify parts AND how they interact. Cannot list parts without relationships.",
        forbidden_phrases=("include", "such as", "key factors"),
    ),
    "design": AnswerTypeRule(
        requirement="CREATE a plan, blueprint, or specification for something new.",
        structural_rule="Must have structure (sections, components) and purpose. Cannot be abstract description.",
        forbidden_phrases=("include", "such as"),
    ),
    "construction": AnswerTypeRule(
        requirement="BUILD or PRODUCE something original and concrete.",
        structural_rule="Must be a tangible output (example, prototype, solution). Cannot be theoretical.",
        forbidden_phrases=("include",),
    ),
}

# Enumeration-style phrasing that higher-order answers may never use
FORBIDDEN_LISTING_PATTERNS: List[Pattern] = [
    re.compile(r"\b(include|includes)\b", re.IGNORECASE),
    re.compile(r"\bsuch as\b", re.IGNORECASE),
    re.compile(r"\bfactors\s+(are|include)\b", re.IGNORECASE),
    re.compile(r"\bkey\s+(factors|elements|components)\s+(are|include)\b", re.IGNORECASE),
    re.compile(r"\bthe\s+(main|key|primary)\s+\w+\s+(are|include)\b", re.IGNORECASE),
    re.compile(r"\bthese\s+(are|include)\b", re.IGNORECASE),
]

KNOWLEDGE_INSTRUCTIONS = {
    "factual": "Target FACTUAL knowledge: terminology, specific details, basic elements.",
    "conceptual": "Target CONCEPTUAL knowledge: theories, principles, models, classifications.",
    "procedural": "Target PROCEDURAL knowledge: methods, techniques, algorithms, processes.",
    "metacognitive": "Target METACOGNITIVE knowledge: self-awareness, strategic thinking, reflection.",
}

DIFFICULTY_INSTRUCTIONS = {
    "easy": "Simple, straightforward questions with clear answers.",
    "average": "Moderate complexity requiring thought and understanding.",
    "difficult": "Complex questions requiring deep analysis or synthesis.",
}


def default_answer_type(level: CognitiveLevel) -> str:
    return LEVEL_RULES[level].default_answer_type


def forbidden_phrases_for(level: CognitiveLevel, answer_type: str) -> List[str]:
    """Literal phrases sent to the generator as 'never write this'."""
    phrases = list(LEVEL_RULES[level].forbidden_phrases)
    rule = ANSWER_TYPE_RULES.get(answer_type)
    if rule:
        for p in rule.forbidden_phrases:
            if p not in phrases:
                phrases.append(p)
    return phrases


def fidelity_contract(level: CognitiveLevel, answer_type: str) -> str:
    """Natural-language contract for one intent, embedded in the prompt."""
    level_rule = LEVEL_RULES[level]
    type_rule = ANSWER_TYPE_RULES.get(answer_type, ANSWER_TYPE_RULES["definition"])
    forbidden = forbidden_phrases_for(level, answer_type)
    lines = [
        f"The student {level_rule.mental_action}.",
        f"Answer type '{answer_type}': {type_rule.requirement}",
        f"Structure: {type_rule.structural_rule}",
        f"Preferred verbs: {', '.join(level_rule.verbs)}.",
    ]
    if forbidden:
        quoted = ", ".join(f'"{p}"' for p in forbidden)
        lines.append(f"FORBIDDEN phrasing in the answer: {quoted}.")
    return "\n".join(lines)


def fidelity_violations(level: CognitiveLevel, answer_type: str, answer: str) -> List[str]:
    """
    Check an answer against the level and answer-type rules.

    Returns a list of human-readable reasons; empty means the answer passes.
    Definition-type answers are exempt, as listing is what a definition does.
    """
    if answer_type == "definition":
        return []

    reasons: List[str] = []
    text = answer or ""
    lowered = text.lower()

    if level in HIGHER_ORDER_LEVELS:
        for pattern in FORBIDDEN_LISTING_PATTERNS:
            if pattern.search(text):
                reasons.append(f"listing pattern '{pattern.pattern}' not allowed at {level.value} level")
                break

    rule = ANSWER_TYPE_RULES.get(answer_type)
    if rule:
        for phrase in rule.forbidden_phrases:
            if phrase in lowered:
                reasons.append(f"phrase '{phrase}' not allowed for {answer_type} answers")
                break
        if rule.required_markers and not any(m in lowered for m in rule.required_markers):
            reasons.append(f"{answer_type} answer lacks a required marker ({rule.structural_rule})")

    return reasons
