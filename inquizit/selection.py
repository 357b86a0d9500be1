import math
import os
import random
from typing import List, Optional, Sequence, Tuple

from .errors import NoEligibleCard
from .session_store import SessionRecord, SessionStore
from .structured import CardUsage

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"

REASONING_COOLDOWN_TURNS = 2
RECOGNITION_COOLDOWN_TURNS = 4
TIMING_DECAY_TURNS = 3.0
MIN_WEIGHT = 0.01


def exclude_visible(cards: List[CardUsage], visible_card_ids: Sequence[str]) -> List[CardUsage]:
    """Drop cards currently on screen, unless that would leave nothing."""
    if not visible_card_ids:
        return cards
    remaining = [card for card in cards if card.card_id not in visible_card_ids]
    if not remaining:
        print("⚠️ Excluding visible cards left no candidates, keeping all cards")
        return cards
    return remaining


def passes_timing_gate(card: CardUsage, current_turn: int) -> bool:
    """
    Reasoning needs REASONING_COOLDOWN_TURNS turns to cool down and recognition
    needs RECOGNITION_COOLDOWN_TURNS, unless the matching score is already perfect.
    """
    if card.recognition_score >= 1.0 and card.reasoning_score >= 1.0:
        return True
    turns_since = card.turns_since_last_use(current_turn)
    if card.reasoning_score < 1.0 and turns_since < REASONING_COOLDOWN_TURNS:
        return False
    if card.recognition_score < 1.0 and turns_since < RECOGNITION_COOLDOWN_TURNS:
        return False
    return True


def apply_timing_gate(cards: List[CardUsage], current_turn: int) -> List[CardUsage]:
    gated = [card for card in cards if passes_timing_gate(card, current_turn)]
    if DEBUG_MODE:
        print(f"   Timing gate: {len(cards)} -> {len(gated)} cards")
    return gated


def calculate_weights(cards: List[CardUsage], current_turn: int) -> List[Tuple[CardUsage, float]]:
    """Weight each candidate: under-used, low-scoring cards are favoured."""
    if not cards:
        return []
    max_uses = max(card.total_uses for card in cards)

    weighted = []
    for card in cards:
        weight = 1.0

        if max_uses > 0:
            weight *= (1.0 - card.total_uses / max_uses) + 0.1

        recognition_weight = (1.0 - card.recognition_score) + 0.1
        reasoning_weight = (1.0 - card.reasoning_score) + 0.1
        weight *= (recognition_weight + reasoning_weight) / 2

        weight *= 1.0 + math.exp(-card.turns_since_last_use(current_turn) / TIMING_DECAY_TURNS)

        if card.total_uses == 0:
            weight *= 2.0

        weighted.append((card, max(weight, MIN_WEIGHT)))

    if DEBUG_MODE:
        print("   Weights: " + ", ".join(f"{card.card_id}:{weight:.3f}" for card, weight in weighted))
    return weighted


def select_by_weight(weighted: List[Tuple[CardUsage, float]], rng: random.Random) -> Optional[CardUsage]:
    """Cumulative-weight roulette draw."""
    if not weighted:
        return None
    if len(weighted) == 1:
        return weighted[0][0]

    total = sum(weight for _, weight in weighted)
    point = rng.random() * total
    running = 0.0
    for card, weight in weighted:
        running += weight
        if point <= running:
            return card
    return weighted[-1][0]


def select_card(cards: List[CardUsage], current_turn: int, visible_card_ids: Sequence[str],
                rng: random.Random) -> Optional[CardUsage]:
    """One weighted draw behind the visible-card exclusion and timing gate, with fallbacks."""
    if not cards:
        return None

    not_visible = exclude_visible(cards, visible_card_ids)
    gated = apply_timing_gate(not_visible, current_turn)

    if gated:
        candidates = gated
    elif not_visible:
        print(f"⚠️ Timing gate emptied the candidates, falling back to {len(not_visible)} ungated cards")
        candidates = not_visible
    else:
        print("🚨 No candidates after filtering, falling back to the full pool")
        candidates = cards

    return select_by_weight(calculate_weights(candidates, current_turn), rng)


def choose_cards(usage: List[CardUsage], current_turn: int, visible_card_ids: Sequence[str],
                 paired: bool, rng: random.Random) -> List[CardUsage]:
    """Pick one card, or two distinct cards in paired mode (degrading to one if no partner remains)."""
    primary = select_card(usage, current_turn, visible_card_ids, rng)
    if primary is None:
        return []
    chosen = [primary]

    if paired:
        remaining = [card for card in usage if card.card_id != primary.card_id]
        secondary = select_card(remaining, current_turn, visible_card_ids, rng)
        if secondary is not None:
            chosen.append(secondary)
        else:
            print("⚠️ No partner card available, generating a single-card quizit")
    return chosen


def select_next_cards(store: SessionStore, record: SessionRecord,
                      visible_card_ids: Optional[Sequence[str]] = None,
                      rng: Optional[random.Random] = None) -> Tuple[int, List[str]]:
    """
    Run one free-form turn: advance the turn counter, choose card(s) from the
    session's usage table and commit their usage before any generation starts.

    Returns:
        (current_turn, chosen_card_ids)
    """
    if not record.card_ids:
        raise NoEligibleCard("Session has no cards to select from")
    rng = rng or random.Random()
    visible = list(visible_card_ids or [])

    current_turn = store.next_turn(record)
    usage = store.get_card_usage(record)
    if DEBUG_MODE:
        for card in usage:
            print(f"   {card.card_id}: uses={card.total_uses} rec={card.recognition_score} "
                  f"reas={card.reasoning_score} last={card.last_used_turn}")

    chosen = choose_cards(usage, current_turn, visible, record.is_paired_mode, rng)
    if not chosen:
        raise NoEligibleCard("No eligible card found")

    chosen_ids = [card.card_id for card in chosen]
    store.record_usage(record, chosen_ids, current_turn)
    print(f"🎯 Turn {current_turn}: selected {' + '.join(chosen_ids)}")
    return current_turn, chosen_ids
