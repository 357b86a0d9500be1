"""
Session entry points: create sessions, serve the next item, record scores.

The session mode is dispatched once here; the selection engine, scheduler and
assembly pipeline each receive the already-resolved record.
"""

import datetime
import os
import random
from typing import Any, Dict, List, Optional, Sequence

from . import db
from .errors import NoEligibleCard, ValidationError
from .quizits import generate_quizit
from .scheduler import build_queue, next_scheduled_cards
from .selection import select_next_cards
from .session_store import (
    FREE_FORM,
    SPACED_REPETITION,
    FreeFormMode,
    SessionRecord,
    SessionStore,
    SpacedRepetitionMode,
    get_store,
)

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"


def _validate_theme(theme: Any) -> Optional[str]:
    if theme is None:
        return None
    if not isinstance(theme, str):
        raise ValidationError("theme must be a string")
    return theme.strip() or None


def _validate_flag(value: Any, name: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be a boolean")
    return value


def _validate_card_ids(card_ids: Any) -> List[str]:
    if not isinstance(card_ids, list) or not card_ids:
        raise ValidationError("cardIds must be a non-empty list")
    unique: List[str] = []
    for card_id in card_ids:
        if not isinstance(card_id, str) or not card_id:
            raise ValidationError("cardIds must contain non-empty strings")
        if card_id not in unique:
            unique.append(card_id)
    missing = db.find_missing_cards(unique)
    if missing:
        raise ValidationError(f"Unknown card ids: {', '.join(missing)}")
    return unique


def _validate_score(value: Any, name: str) -> float:
    # bool is an int subclass; True is not a score
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number")
    score = float(value)
    if not 0.0 <= score <= 1.0:
        raise ValidationError(f"{name} must be between 0.0 and 1.0, got {value}")
    return score


def create_free_form_session(card_ids: Any, theme: Any = None, is_paired_mode: Any = False,
                             store: Optional[SessionStore] = None) -> Dict[str, Any]:
    card_ids = _validate_card_ids(card_ids)
    theme = _validate_theme(theme)
    is_paired_mode = _validate_flag(is_paired_mode, "isPairedMode")
    store = store or get_store()

    session_id = store.create(FreeFormMode(), card_ids, is_paired_mode=is_paired_mode, theme=theme)
    print(f"✅ Free-form session {session_id} created with {len(card_ids)} cards"
          f"{' (paired)' if is_paired_mode else ''}{f', theme: {theme}' if theme else ''}")
    return {
        "sessionId": session_id,
        "sessionType": FREE_FORM,
        "cardCount": len(card_ids),
        "theme": theme,
        "isPairedMode": is_paired_mode,
    }


def create_spaced_repetition_session(user_id: str, theme: Any = None, is_paired_mode: Any = False,
                                     review_card_order: Any = "ordered", card_interleaving: Any = "review-first",
                                     store: Optional[SessionStore] = None, today: Optional[datetime.date] = None,
                                     rng: Optional[random.Random] = None) -> Dict[str, Any]:
    if not user_id:
        raise ValidationError("A user id is required for spaced-repetition sessions")
    theme = _validate_theme(theme)
    is_paired_mode = _validate_flag(is_paired_mode, "isPairedMode")
    store = store or get_store()

    plan = build_queue(user_id, review_card_order or "ordered", card_interleaving or "review-first",
                       today=today, rng=rng)
    if not plan.queue:
        raise NoEligibleCard("No cards are due for review and no new cards are available")

    mode = SpacedRepetitionMode(
        user_id=user_id,
        queue=tuple(plan.queue),
        new_card_ids=tuple(plan.new_card_ids),
        review_card_ids=tuple(plan.review_card_ids),
        review_card_order=review_card_order or "ordered",
        card_interleaving=card_interleaving or "review-first",
        initial_states=plan.initial_states,
    )
    session_id = store.create(mode, plan.queue, is_paired_mode=is_paired_mode, theme=theme)
    print(f"✅ Spaced-repetition session {session_id} for {user_id}: "
          f"{len(plan.review_card_ids)} review + {len(plan.new_card_ids)} new cards")
    return {
        "sessionId": session_id,
        "sessionType": SPACED_REPETITION,
        "cardCount": len(plan.queue),
        "reviewCardCount": len(plan.review_card_ids),
        "newCardCount": len(plan.new_card_ids),
        "theme": theme,
        "isPairedMode": is_paired_mode,
    }


def _next_free_form_item(store: SessionStore, record: SessionRecord, current_card_ids: Sequence[str],
                         model: Any, rng: Optional[random.Random]) -> Dict[str, Any]:
    _, card_ids = select_next_cards(store, record, current_card_ids, rng)
    quizit = generate_quizit(card_ids, model, record, store)
    return {
        "items": [face.to_dict() for face in quizit.faces],
        "sessionComplete": False,
    }


def _next_spaced_repetition_item(store: SessionStore, record: SessionRecord, model: Any) -> Dict[str, Any]:
    scheduled, complete = next_scheduled_cards(store, record)
    if complete is not None:
        return {"items": [], "sessionComplete": True, "stats": complete.to_dict()}

    # The claimed queue position doubles as the turn; usage is spent before generation
    store.record_usage(record, scheduled.card_ids, scheduled.current_index - len(scheduled.card_ids))
    quizit = generate_quizit(scheduled.card_ids, model, record, store)
    for face in quizit.faces:
        if face.conceptData is not None:
            card_id = face.conceptData.id
            face.conceptData.isNewCard = scheduled.is_new.get(card_id, False)
            face.conceptData.initialCardState = scheduled.initial_states.get(card_id)
    return {
        "items": [face.to_dict() for face in quizit.faces],
        "sessionComplete": False,
        "progress": {
            "currentIndex": scheduled.current_index,
            "totalCards": scheduled.total_cards,
            "remainingCards": scheduled.remaining_cards,
        },
    }


def get_next_item(session_id: Any, current_card_ids: Any = None, model: Any = None,
                  store: Optional[SessionStore] = None, rng: Optional[random.Random] = None) -> Dict[str, Any]:
    if not isinstance(session_id, str) or not session_id:
        raise ValidationError("sessionId is required")
    if current_card_ids is None:
        current_card_ids = []
    if not isinstance(current_card_ids, list) or not all(isinstance(c, str) for c in current_card_ids):
        raise ValidationError("currentCardIds must be a list of card ids")

    store = store or get_store()
    record = store.get(session_id)
    if DEBUG_MODE:
        print(f"   Next item for {session_id} ({record.mode_name}, revision {record.revision})")

    if isinstance(record.mode, SpacedRepetitionMode):
        return _next_spaced_repetition_item(store, record, model)
    return _next_free_form_item(store, record, current_card_ids, model, rng)


def update_scores(session_id: Any, quizit_id: Any, card_id: Any, recognition_score: Any, reasoning_score: Any,
                  store: Optional[SessionStore] = None, today: Optional[datetime.date] = None) -> Dict[str, Any]:
    """Record a user's self-assessment on both the session usage row and the stored quizit."""
    if not isinstance(session_id, str) or not session_id:
        raise ValidationError("sessionId is required")
    if quizit_id is None or quizit_id == "":
        raise ValidationError("quizitId is required")
    if not isinstance(card_id, str) or not card_id:
        raise ValidationError("cardId is required")
    recognition = _validate_score(recognition_score, "recognitionScore")
    reasoning = _validate_score(reasoning_score, "reasoningScore")

    store = store or get_store()
    record = store.get(session_id)
    if card_id not in record.card_ids:
        raise ValidationError(f"Card {card_id} is not part of session {session_id}")
    quizit = db.get_quizit(str(quizit_id))
    if quizit is not None and quizit.session_id and quizit.session_id != session_id:
        raise ValidationError(f"Quizit {quizit_id} belongs to another session")

    slot = db.update_quizit_scores(str(quizit_id), card_id, recognition, reasoning)
    store.set_scores(record, card_id, recognition, reasoning)

    mode = record.mode
    if isinstance(mode, SpacedRepetitionMode) and card_id in mode.new_card_ids:
        if store.mark_new_card_counted(record, card_id):
            count = db.increment_new_cards_reviewed(mode.user_id, today or datetime.date.today())
            if DEBUG_MODE:
                print(f"   New card {card_id} counted for {mode.user_id}: {count} today")

    print(f"✅ Scores for {card_id} on quizit {quizit_id} (slot {slot}): "
          f"recognition={recognition}, reasoning={reasoning}")
    return {"success": True}
