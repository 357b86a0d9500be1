"""
Seed selection for quizit generation.

Default path: rotate through a card's pre-populated seed bundles by history index.
Theme path: per-session, per-card seed sets authored by the model on demand,
generated in small batches up to a cap and then cycled from the start.
"""

import json
import os
from typing import Any, List, Optional

from . import db
from .errors import UpstreamGenerationFailure
from .prompts import SEED_SYSTEM_PROMPT, build_seed_prompt, complete
from .session_store import SessionRecord, SessionStore
from .structured import CardContent, SeedChoice

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"

MIN_THEME_LENGTH = 3
CUSTOM_SEED_BATCH_SIZE = 5
MAX_CUSTOM_SEED_SETS = 20
SEED_TEMPERATURE = 0.9
SEED_MAX_TOKENS = 800


def select_rotation_index(history_index: int, count: int) -> int:
    """Wrap an ever-growing history index onto a fixed-size list."""
    if count <= 0:
        raise ValueError("count must be positive")
    return history_index % count


def usable_theme(theme: Optional[str]) -> Optional[str]:
    if theme is None:
        return None
    theme = theme.strip()
    return theme if len(theme) >= MIN_THEME_LENGTH else None


def select_default_seed(card_id: str, history_index: int) -> SeedChoice:
    bundle_count = db.count_seed_bundles(card_id)
    if bundle_count == 0:
        print(f"⚠️ Card {card_id} has no seed bundles, generating without a seed")
        return SeedChoice(items=[], bundle_index=None, source_card_id=card_id)

    bundle_index = select_rotation_index(history_index, bundle_count)
    items = db.get_seed_bundle(card_id, bundle_index)
    if DEBUG_MODE:
        print(f"   Seed bundle {bundle_index}/{bundle_count} for {card_id}: {items}")
    return SeedChoice(items=items, bundle_index=bundle_index, source_card_id=card_id)


def parse_seed_sets(text: str) -> List[List[str]]:
    """Parse a JSON array of string arrays, tolerating a surrounding code fence."""
    raw = text.strip()

    # Strip markdown code fences if present
    if raw.startswith("```"):
        lines = raw.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        raw = "\n".join(lines)

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise UpstreamGenerationFailure(f"Seed generation returned invalid JSON: {e}") from e

    if not isinstance(data, list):
        raise UpstreamGenerationFailure("Seed generation did not return a list")

    seed_sets: List[List[str]] = []
    for entry in data:
        if isinstance(entry, list):
            items = [str(item).strip() for item in entry if str(item).strip()]
            if items:
                seed_sets.append(items)
    if not seed_sets:
        raise UpstreamGenerationFailure("Seed generation returned no usable seed sets")
    return seed_sets


def generate_seed_sets(model: Any, theme: str, card: CardContent, count: int,
                       previous_seeds: List[List[str]]) -> List[List[str]]:
    prompt = build_seed_prompt(theme, card.title, card.description, count, previous_seeds)
    text = complete(model, SEED_SYSTEM_PROMPT, prompt, SEED_TEMPERATURE, SEED_MAX_TOKENS,
                    purpose="Seed generation")
    return parse_seed_sets(text)[:count]


def select_theme_seed(store: SessionStore, record: SessionRecord, card: CardContent,
                      theme: str, model: Any) -> SeedChoice:
    seed_sets = store.get_custom_seed_sets(record, card.card_id)
    index = store.get_custom_seed_index(record, card.card_id)
    if index >= MAX_CUSTOM_SEED_SETS:
        index = 0

    if index >= len(seed_sets) and len(seed_sets) < MAX_CUSTOM_SEED_SETS:
        count = min(CUSTOM_SEED_BATCH_SIZE, MAX_CUSTOM_SEED_SETS - len(seed_sets))
        print(f"🌱 Generating {count} '{theme}' seed sets for {card.card_id} ({len(seed_sets)} so far)")
        seed_sets = seed_sets + generate_seed_sets(model, theme, card, count, seed_sets)
        store.save_custom_seed_sets(record, card.card_id, seed_sets)

    if index >= len(seed_sets):
        index = 0
    items = seed_sets[index]
    store.set_custom_seed_index(record, card.card_id, (index + 1) % MAX_CUSTOM_SEED_SETS)

    if DEBUG_MODE:
        print(f"   Theme seed {index}/{len(seed_sets)} for {card.card_id}: {items}")
    return SeedChoice(items=items, bundle_index=None, source_card_id=card.card_id)


def choose_seed(card: CardContent, history_index: int, model: Any,
                store: Optional[SessionStore] = None, record: Optional[SessionRecord] = None) -> SeedChoice:
    """Theme seed when the session carries a usable theme, otherwise the default bundle rotation."""
    theme = usable_theme(record.theme) if record is not None else None
    if theme and store is not None:
        return select_theme_seed(store, record, card, theme, model)
    return select_default_seed(card.card_id, history_index)
