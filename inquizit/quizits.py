"""
Content Assembly Pipeline

Turns a chosen card (or pair of cards) into a stored quizit:

1. derive the next permutation and seed history indices from the card's last generation record
2. pick a seed (default bundle rotation or the session's theme seed sets)
3. pick the permutation and split the card's components into ordered scenario and reasoning items
4. ask the model for one scenario and one reasoning text per card
5. persist the quizit and return its presentable faces
"""

import os
from typing import Any, Dict, List, Optional, Tuple

from . import db
from .prompts import (
    REASONING_SYSTEM_PROMPT,
    SCENARIO_SYSTEM_PROMPT,
    build_paired_scenario_prompt,
    build_reasoning_prompt,
    build_scenario_prompt,
    complete,
)
from .seeds import choose_seed, select_rotation_index
from .session_store import SessionRecord, SessionStore
from .structured import CardContent, ConceptData, Face, GeneratedQuizit, GenerationIndices, QuizitData

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"

SCENARIO_TEMPERATURE = 0.7
SCENARIO_MAX_TOKENS = 500
REASONING_TEMPERATURE = 0.7
REASONING_MAX_TOKENS = 600


def next_history_indices(card_id: str) -> Tuple[int, int]:
    """(next permutation index, next seed history index) for a card; both start at 0."""
    history = db.get_generation_history(card_id)
    if history is None:
        return 0, 0
    permutation_index = (history.last_permutation_index or 0) + 1
    if history.last_seed_bundle_index is None:
        seed_index = 0
    else:
        seed_index = history.last_seed_bundle_index + 1
    return permutation_index, seed_index


def _last_seed_index(card_id: str) -> int:
    history = db.get_generation_history(card_id)
    if history is None or history.last_seed_bundle_index is None:
        return -1
    return history.last_seed_bundle_index


def compute_indices(card_id_1: str, card_id_2: Optional[str] = None) -> GenerationIndices:
    """
    Work out permutation and seed indices for one card or a pair.

    For a pair the seed indices must stay in lock-step, so the card whose seed
    history is further behind becomes the seed source (ties go to the first card).
    """
    permutation_index_1, seed_index_1 = next_history_indices(card_id_1)
    if card_id_2 is None:
        return GenerationIndices(permutation_index_1=permutation_index_1,
                                 seed_history_index=seed_index_1,
                                 chosen_card_for_seed=card_id_1)

    permutation_index_2, seed_index_2 = next_history_indices(card_id_2)
    if _last_seed_index(card_id_2) < _last_seed_index(card_id_1):
        chosen, seed_index = card_id_2, seed_index_2
    else:
        chosen, seed_index = card_id_1, seed_index_1

    return GenerationIndices(permutation_index_1=permutation_index_1,
                             permutation_index_2=permutation_index_2,
                             seed_history_index=seed_index,
                             chosen_card_for_seed=chosen)


def select_permutation(card: CardContent, history_index: int) -> Tuple[int, List[str]]:
    """Return (stored permutation index, ordered component ids)."""
    if not card.valid_permutations:
        # No declared permutations: scenario components in declaration order
        order = [c["id"] for c in card.components if c.get("type") == "scenario"]
        return 0, order
    index = select_rotation_index(history_index, len(card.valid_permutations))
    return index, card.valid_permutations[index].split()


def extract_components(card: CardContent, permutation: List[str]) -> Tuple[List[str], List[str]]:
    """Scenario texts in permutation order and every reasoning text."""
    by_id: Dict[str, Dict[str, str]] = {c["id"]: c for c in card.components}
    scenario_items = [by_id[cid]["text"] for cid in permutation
                      if cid in by_id and by_id[cid].get("type") == "scenario"]
    reasoning_items = [c["text"] for c in card.components if c.get("type") == "reasoning"]
    return scenario_items, reasoning_items


def _generate_reasoning(model: Any, scenario: str, card: CardContent, reasoning_items: List[str]) -> str:
    return complete(model, REASONING_SYSTEM_PROMPT,
                    build_reasoning_prompt(scenario, card.card_idea, reasoning_items),
                    REASONING_TEMPERATURE, REASONING_MAX_TOKENS,
                    purpose=f"Reasoning generation for {card.card_id}")


def _concept_face(card: CardContent, reasoning: str) -> Face:
    return Face(faceType="concept", conceptData=ConceptData(
        id=card.card_id,
        banner=card.banner,
        title=card.title,
        description=card.description,
        reasoning=reasoning,
    ))


def _quizit_face(scenario: str, quizit_id: str) -> Face:
    return Face(faceType="quizit", quizitData=QuizitData(quizit=scenario, quizitId=quizit_id))


def generate_single_card_quizit(card_id: str, model: Any, record: Optional[SessionRecord] = None,
                                store: Optional[SessionStore] = None) -> GeneratedQuizit:
    card = db.get_card_content(card_id)
    indices = compute_indices(card_id)
    seed = choose_seed(card, indices.seed_history_index, model, store, record)
    permutation_index, permutation = select_permutation(card, indices.permutation_index_1)
    scenario_items, reasoning_items = extract_components(card, permutation)

    if DEBUG_MODE:
        print(f"   {card_id}: permutation {permutation_index} {permutation}, seed {seed.bundle_index} {seed.items}")

    scenario = complete(model, SCENARIO_SYSTEM_PROMPT,
                        build_scenario_prompt(scenario_items, card.words_to_avoid, seed.items),
                        SCENARIO_TEMPERATURE, SCENARIO_MAX_TOKENS,
                        purpose=f"Scenario generation for {card_id}")
    reasoning = _generate_reasoning(model, scenario, card, reasoning_items)

    quizit_id = db.store_quizit(
        card_id_1=card_id,
        card_id_2=None,
        scenario=scenario,
        reasoning1=reasoning,
        reasoning2=None,
        permutation_index_1=permutation_index,
        permutation_index_2=None,
        seed_bundle_index=seed.bundle_index,
        chosen_card_for_seed=seed.source_card_id,
        session_id=record.session_id if record is not None else None,
    )
    print(f"✅ Quizit {quizit_id} generated for {card_id}")
    return GeneratedQuizit(quizit_id=quizit_id,
                           faces=[_quizit_face(scenario, quizit_id), _concept_face(card, reasoning)])


def generate_paired_quizit(card_id_1: str, card_id_2: str, model: Any, record: Optional[SessionRecord] = None,
                           store: Optional[SessionStore] = None) -> GeneratedQuizit:
    card1 = db.get_card_content(card_id_1)
    card2 = db.get_card_content(card_id_2)
    indices = compute_indices(card_id_1, card_id_2)

    seed_card = card1 if indices.chosen_card_for_seed == card_id_1 else card2
    seed = choose_seed(seed_card, indices.seed_history_index, model, store, record)

    permutation_index_1, permutation_1 = select_permutation(card1, indices.permutation_index_1)
    permutation_index_2, permutation_2 = select_permutation(card2, indices.permutation_index_2 or 0)
    scenario_items_1, reasoning_items_1 = extract_components(card1, permutation_1)
    scenario_items_2, reasoning_items_2 = extract_components(card2, permutation_2)

    if DEBUG_MODE:
        print(f"   Pair {card_id_1} + {card_id_2}: seed source {indices.chosen_card_for_seed}, "
              f"seed {seed.bundle_index}, permutations {permutation_index_1}/{permutation_index_2}")

    scenario = complete(model, SCENARIO_SYSTEM_PROMPT,
                        build_paired_scenario_prompt(scenario_items_1, card1.words_to_avoid,
                                                     scenario_items_2, card2.words_to_avoid, seed.items),
                        SCENARIO_TEMPERATURE, SCENARIO_MAX_TOKENS,
                        purpose=f"Scenario generation for {card_id_1} + {card_id_2}")
    reasoning1 = _generate_reasoning(model, scenario, card1, reasoning_items_1)
    reasoning2 = _generate_reasoning(model, scenario, card2, reasoning_items_2)

    quizit_id = db.store_quizit(
        card_id_1=card_id_1,
        card_id_2=card_id_2,
        scenario=scenario,
        reasoning1=reasoning1,
        reasoning2=reasoning2,
        permutation_index_1=permutation_index_1,
        permutation_index_2=permutation_index_2,
        seed_bundle_index=seed.bundle_index,
        chosen_card_for_seed=seed.source_card_id,
        session_id=record.session_id if record is not None else None,
    )
    print(f"✅ Quizit {quizit_id} generated for {card_id_1} + {card_id_2}")
    return GeneratedQuizit(quizit_id=quizit_id, faces=[
        _quizit_face(scenario, quizit_id),
        _concept_face(card1, reasoning1),
        _concept_face(card2, reasoning2),
    ])


def generate_quizit(card_ids: List[str], model: Any, record: Optional[SessionRecord] = None,
                    store: Optional[SessionStore] = None) -> GeneratedQuizit:
    if len(card_ids) == 2:
        return generate_paired_quizit(card_ids[0], card_ids[1], model, record, store)
    if len(card_ids) == 1:
        return generate_single_card_quizit(card_ids[0], model, record, store)
    raise ValueError(f"A quizit needs one or two cards, got {len(card_ids)}")
