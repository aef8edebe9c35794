"""
OpenAI generative service for the fallback generator.

One chat completion per (topic, level, item_type) batch. The prompt carries
each intent's concept, operation and cognitive-fidelity contract; the model
answers with a JSON object holding one candidate per intent.

Model: gpt-4o-mini  (override with GPT_MODEL env var, e.g. "gpt-4o")
"""

import json
import os
import re
from typing import List, Optional, Protocol

import openai
from openai import AsyncOpenAI

from assembly import config
from assembly.errors import GenerationServiceError, GenerationServiceUnavailable
from assembly.fidelity import DIFFICULTY_INSTRUCTIONS, KNOWLEDGE_INSTRUCTIONS
from assembly.schemas import Intent
from assembly.taxonomy import CognitiveLevel, ItemType


class GenerativeService(Protocol):
    async def generate(self, topic: str, level: CognitiveLevel, intents: List[Intent]) -> List[dict]:
        ...


QUOTA_EXHAUSTED = "insufficient_quota"

# Lazy singleton
_client: Optional[AsyncOpenAI] = None


def _get_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise GenerationServiceUnavailable(
                "OPENAI_API_KEY is not set. Add it to your .env file."
            )
        _client = AsyncOpenAI(api_key=api_key)
    return _client


async def call_gpt(
    prompt: str,
    system: str = "You are an expert exam item writer. Output only valid JSON.",
    temperature: float = 0.7,
    max_tokens: int = 4096,
    client: Optional[AsyncOpenAI] = None,
) -> str:
    """
    Call OpenAI Chat Completions and return the assistant message text.

    Connection, credential and exhausted-quota failures raise
    GenerationServiceUnavailable; any other API failure (including an
    ordinary rate limit) raises GenerationServiceError.
    """
    client = client or _get_client()
    try:
        response = await client.chat.completions.create(
            model=config.GPT_MODEL,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
    except (openai.APIConnectionError, openai.AuthenticationError, openai.PermissionDeniedError) as e:
        raise GenerationServiceUnavailable(str(e)) from e
    except openai.RateLimitError as e:
        # insufficient_quota ends generation for the run; plain 429s are retried
        if getattr(e, "code", None) == QUOTA_EXHAUSTED:
            raise GenerationServiceUnavailable(str(e)) from e
        raise GenerationServiceError(str(e)) from e
    except openai.OpenAIError as e:
        raise GenerationServiceError(str(e)) from e
    return response.choices[0].message.content or ""


# ─── Prompt ────────────────────────────────────────────────────────────────────

BATCH_PROMPT = """You are writing {count} exam item(s) on the topic "{topic}".

COGNITIVE LEVEL: {level}
ITEM TYPE: {item_type}

HARD CONSTRAINTS:
1. Write exactly one item per intent below, in the same order, echoing its slot_id
2. Each item must use its assigned concept and cognitive operation
3. Each item must satisfy its cognitive-fidelity contract; an item that only
   looks like {level} but does not require it will be rejected
4. Never reuse a stem, scenario or wording across items
5. The answer text must never contain the forbidden phrasing listed for its intent

INTENTS:
{intents}

FORMAT for each item ({item_type}):
{format_hint}

OUTPUT: respond with ONLY a JSON object, no markdown, no explanation:
{{"items": [ ... one object per intent ... ]}}
"""

FORMAT_HINTS = {
    ItemType.MCQ: (
        '{"slot_id": "...", "text": "<question stem>", '
        '"choices": {"A": "...", "B": "...", "C": "...", "D": "..."}, '
        '"correct_answer": "<A|B|C|D>", "explanation": "<why the answer is correct>"}\n'
        "Exactly one correct option; plausible distractors; no 'All/None of the above'."
    ),
    ItemType.TRUE_FALSE: (
        '{"slot_id": "...", "text": "<declarative statement>", '
        '"correct_answer": "<True|False>", "explanation": "<why>"}'
    ),
    ItemType.SHORT_ANSWER: (
        '{"slot_id": "...", "text": "<question>", "model_answer": "<one to three sentences>", '
        '"accepted_answers": ["<acceptable variants>"]}'
    ),
    ItemType.ESSAY: (
        '{"slot_id": "...", "text": "<essay prompt>", "model_answer": "<model answer>", '
        '"rubric_points": ["<criterion 1>", "<criterion 2>", "..."]}'
    ),
}


def build_prompt(topic: str, level: CognitiveLevel, intents: List[Intent]) -> str:
    item_type = intents[0].item_type
    blocks = []
    for n, intent in enumerate(intents, start=1):
        blocks.append(
            f"[{n}] slot_id={intent.slot_id}\n"
            f"    concept: {intent.concept}\n"
            f"    operation: {intent.operation}\n"
            f"    difficulty: {intent.difficulty.value} ({DIFFICULTY_INSTRUCTIONS[intent.difficulty.value]})\n"
            f"    knowledge: {KNOWLEDGE_INSTRUCTIONS[intent.knowledge_dimension.value]}\n"
            f"    points: {intent.point_value}\n"
            f"    contract:\n      " + intent.contract.replace("\n", "\n      ")
        )
    return BATCH_PROMPT.format(
        count=len(intents),
        topic=topic,
        level=level.value,
        item_type=item_type.value,
        intents="\n\n".join(blocks),
        format_hint=FORMAT_HINTS[item_type],
    )


def extract_json_obj(raw: str) -> dict:
    raw = raw.strip()
    raw = re.sub(r"^```(?:json)?\s*", "", raw, flags=re.MULTILINE)
    raw = re.sub(r"\s*```$", "", raw, flags=re.MULTILINE)
    start = raw.find("{")
    end = raw.rfind("}") + 1
    if start == -1 or end == 0:
        raise ValueError(f"No JSON object found: {raw[:200]}")
    return json.loads(raw[start:end])


class OpenAIGenerativeService:
    """GenerativeService backed by OpenAI chat completions."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, temperature: float = 0.7):
        self.client = client
        self.temperature = temperature

    async def generate(self, topic: str, level: CognitiveLevel, intents: List[Intent]) -> List[dict]:
        if not intents:
            return []
        raw = await call_gpt(
            build_prompt(topic, level, intents),
            temperature=self.temperature,
            client=self.client,
        )
        try:
            data = extract_json_obj(raw)
        except ValueError as e:
            raise GenerationServiceError(f"Unparseable generation response: {e}") from e
        items = data.get("items", [])
        if not isinstance(items, list):
            raise GenerationServiceError("Generation response 'items' is not a list")
        return [c for c in items if isinstance(c, dict)]
