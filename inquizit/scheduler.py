import datetime
import os
import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from . import db
from .errors import ValidationError
from .session_store import SessionRecord, SessionStore, SpacedRepetitionMode

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"

DAILY_NEW_CARD_LIMIT = 10
REVIEW_ORDERS = ("ordered", "random")
CARD_INTERLEAVINGS = ("review-first", "interleaved")


@dataclass
class ScheduledCards:
    """The card(s) served by one spaced-repetition step."""
    card_ids: List[str]
    is_new: Dict[str, bool]
    initial_states: Dict[str, Optional[Dict[str, Any]]]
    current_index: int
    total_cards: int

    @property
    def remaining_cards(self) -> int:
        return self.total_cards - self.current_index


@dataclass
class SessionComplete:
    total_cards: int
    new_cards: int
    review_cards: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalCards": self.total_cards,
            "newCardsReviewed": self.new_cards,
            "reviewCardsReviewed": self.review_cards,
        }


@dataclass
class QueuePlan:
    queue: List[str]
    review_card_ids: List[str]
    new_card_ids: List[str]
    initial_states: Dict[str, Dict[str, Any]] = field(default_factory=dict)


def combine_cards(review_card_ids: List[str], new_card_ids: List[str], interleaving: str) -> List[str]:
    """
    Merge review and new cards into one queue.

    "review-first" concatenates; "interleaved" alternates review, new, review, new...
    and continues with the longer list once the shorter one runs out.
    """
    if interleaving == "interleaved":
        combined: List[str] = []
        for i in range(max(len(review_card_ids), len(new_card_ids))):
            if i < len(review_card_ids):
                combined.append(review_card_ids[i])
            if i < len(new_card_ids):
                combined.append(new_card_ids[i])
    else:
        combined = list(review_card_ids) + list(new_card_ids)

    # A card may only appear once per queue
    queue: List[str] = []
    for card_id in combined:
        if card_id not in queue:
            queue.append(card_id)
    return queue


def new_cards_left(user_id: str, today: datetime.date) -> int:
    already = db.get_new_cards_reviewed(user_id, today)
    return max(0, DAILY_NEW_CARD_LIMIT - already)


def build_queue(user_id: str, review_card_order: str = "ordered", card_interleaving: str = "review-first",
                today: Optional[datetime.date] = None, rng: Optional[random.Random] = None) -> QueuePlan:
    """Build the once-per-session ordered queue of due review cards and capped new cards."""
    if review_card_order not in REVIEW_ORDERS:
        raise ValidationError(f"reviewCardOrder must be one of {', '.join(REVIEW_ORDERS)}")
    if card_interleaving not in CARD_INTERLEAVINGS:
        raise ValidationError(f"cardInterleaving must be one of {', '.join(CARD_INTERLEAVINGS)}")

    today = today or datetime.date.today()
    rng = rng or random.Random()

    review_card_ids = db.get_review_card_ids(user_id, today)
    if review_card_order == "random":
        rng.shuffle(review_card_ids)

    limit = new_cards_left(user_id, today)
    new_card_ids = db.get_new_card_ids(user_id, limit)

    queue = combine_cards(review_card_ids, new_card_ids, card_interleaving)
    initial_states = db.get_user_card_states(user_id, queue)

    if DEBUG_MODE:
        print(f"   Queue for {user_id}: {len(review_card_ids)} review, {len(new_card_ids)} new "
              f"(limit left {limit}), order={review_card_order}, interleaving={card_interleaving}")
    return QueuePlan(queue=queue, review_card_ids=review_card_ids, new_card_ids=new_card_ids,
                     initial_states=initial_states)


def next_scheduled_cards(store: SessionStore, record: SessionRecord) -> Tuple[Optional[ScheduledCards], Optional[SessionComplete]]:
    """
    Serve the queue strictly in order: one card, or two in paired mode while a
    second one remains. Exactly one of the returned values is set.
    """
    mode = record.mode
    if not isinstance(mode, SpacedRepetitionMode):
        raise TypeError("next_scheduled_cards requires a spaced-repetition session")

    total = len(mode.queue)
    start, step = store.advance_cursor(record, record.is_paired_mode)
    if step == 0:
        print(f"✅ Session {record.session_id} complete ({total} cards)")
        return None, SessionComplete(total_cards=total, new_cards=len(mode.new_card_ids),
                                     review_cards=len(mode.review_card_ids))

    card_ids = list(mode.queue[start:start + step])
    new_ids = set(mode.new_card_ids)
    scheduled = ScheduledCards(
        card_ids=card_ids,
        is_new={cid: cid in new_ids for cid in card_ids},
        initial_states={cid: mode.initial_states.get(cid) for cid in card_ids},
        current_index=start + step,
        total_cards=total,
    )
    print(f"🎯 Position {start}/{total}: {' + '.join(card_ids)}")
    return scheduled, None
