import json
import os
from typing import Any, List, Optional

from .errors import UpstreamGenerationFailure

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"

SCENARIO_SYSTEM_PROMPT = """You write one short scenario ("quizit") that tests one or two concepts.
Priorities: 1) follow the constraints, 2) be concise.
Rules:
- Write in the second person ("you...").
- Keep the given items in ORDER: they must appear in the scenario in the order listed.
  Consecutive items may be merged into one sentence; items that are not next to each other may not.
- At most one sentence per item (fewer when items are merged).
- No filler, no labels, no headings.
- Banned phrases are case-insensitive; also avoid their inflections and near-variants."""

REASONING_SYSTEM_PROMPT = """You write the reasoning behind a given scenario.
Priorities: 1) behavioural constraints, 2) concision.
The reasoning explains the situation and nothing else:
- Describe the events, causes and implications inside the scenario.
- Never talk about the text, its structure, the prompt, fields, lists or your own process.
- Never mention sentences, components, order, bullets, arrays, JSON, schemas or placeholders.
- Write two paragraphs separated by exactly one blank line.
- Paragraph 1: how the situation unfolds so every required element is present, using temporal and causal cues
  ("at first... then... as a result...").
- Paragraph 2: how the situation expresses the underlying idea, discussing the considerations in practical terms."""

SEED_SYSTEM_PROMPT = """You generate seed sets: short lists of concrete, vivid words or phrases
(people, places, objects, situations) that inspire varied everyday scenarios.
Each seed set should point towards a different setting. Avoid abstract nouns and avoid
repeating seeds that were already generated. Return ONLY valid JSON."""


def _seed_section(seed_items: List[str]) -> str:
    if not seed_items:
        return ""
    return (f"seed_bundle: {', '.join(seed_items)}\n\n"
            "Weave these seeds into the scenario naturally and add concrete details beyond them. "
            "Use the seed bundle as the setting and build the scenario around it.")


def _banned(words_to_avoid: List[str]) -> str:
    return ", ".join(words_to_avoid) if words_to_avoid else "(none)"


def build_scenario_prompt(scenario_items: List[str], words_to_avoid: List[str], seed_items: List[str]) -> str:
    return f"""items_in_order: {', '.join(scenario_items)}
banned_phrases: {_banned(words_to_avoid)}
{_seed_section(seed_items)}

Return the scenario text directly."""


def build_paired_scenario_prompt(scenario_items_1: List[str], words_to_avoid_1: List[str],
                                 scenario_items_2: List[str], words_to_avoid_2: List[str],
                                 seed_items: List[str]) -> str:
    """One scenario that satisfies both cards' orderings and both ban lists."""
    return f"""Write ONE scenario that tests two concepts at once.

concept_1_items_in_order: {', '.join(scenario_items_1)}
concept_1_banned_phrases: {_banned(words_to_avoid_1)}

concept_2_items_in_order: {', '.join(scenario_items_2)}
concept_2_banned_phrases: {_banned(words_to_avoid_2)}

Each concept's items must keep their own order; items of the two concepts may alternate.
Every banned phrase from both lists applies to the whole scenario.
{_seed_section(seed_items)}

Return the scenario text directly."""


def build_reasoning_prompt(generated_scenario: str, card_idea: str, reasoning_items: List[str]) -> str:
    return f"""scenario: {generated_scenario}
idea_hint: {card_idea}        (do not name it explicitly)
considerations: {', '.join(reasoning_items)}

Return the reasoning text directly."""


def build_seed_prompt(theme: str, card_title: str, card_description: str, count: int,
                      previous_seeds: Optional[List[List[str]]] = None) -> str:
    return f"""Theme: {theme}
Card: {card_title} - {card_description}

Generate {count} different seed sets (3-5 items each) that combine this theme with the card's concept
in varied situations.

Seed sets already generated: {json.dumps(previous_seeds or [], ensure_ascii=False)}

Return a JSON array of arrays: [["item1", "item2", "item3"], ...]"""


def complete(model: Any, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int,
             purpose: str = "completion") -> str:
    """Single request/response call to the text-generation model. No retries."""
    if model is None:
        raise UpstreamGenerationFailure("AI model is not configured. Please ensure OpenAI credentials are set.")

    if DEBUG_MODE:
        print(f"🤖 {purpose}: system={len(system_prompt)} chars, user={len(user_prompt)} chars, "
              f"temperature={temperature}, max_tokens={max_tokens}")
    try:
        response = model.prompt(user_prompt, system=system_prompt, temperature=temperature, max_tokens=max_tokens)
        text = (response.text() or "").strip()
    except UpstreamGenerationFailure:
        raise
    except Exception as e:
        print(f"❌ {purpose} failed: {e} ({type(e).__name__})")
        raise UpstreamGenerationFailure(f"{purpose} failed: {e}") from e

    if not text:
        print(f"❌ {purpose} returned no content")
        raise UpstreamGenerationFailure(f"{purpose} returned no content")
    return text
