"""
Session Store

Time-bounded per-session state kept in Redis: the card pool, mode flags, the
free-form turn counter, the spaced-repetition cursor and per-card usage rows.

Counters are only ever changed with atomic Redis operations (INCR, HINCRBY,
or a WATCH/MULTI transaction for the cursor), so concurrent "next item" calls
for the same session never lose an increment. Every write refreshes the TTL of
all of the session's keys; there is no explicit deletion.
"""

import datetime
import json
import os
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import redis

from .errors import SessionExpiredOrNotFound
from .structured import CardUsage

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"

REDIS_URL: str = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
SESSION_TTL_SECONDS: int = int(os.environ.get("SESSION_TTL_SECONDS", "86400"))
KEY_PREFIX = "quizit-session"
RECORD_VERSION = 1

FREE_FORM = "free-form"
SPACED_REPETITION = "spaced-repetition"

redis_client: Optional[redis.Redis] = None


def get_redis() -> redis.Redis:
    global redis_client
    if redis_client is None:
        redis_client = redis.Redis.from_url(REDIS_URL, decode_responses=True)
    return redis_client


@dataclass(frozen=True)
class FreeFormMode:
    turn_counter: int = 0


@dataclass(frozen=True)
class SpacedRepetitionMode:
    user_id: str
    queue: Tuple[str, ...]
    new_card_ids: Tuple[str, ...]
    review_card_ids: Tuple[str, ...]
    cursor: int = 0
    review_card_order: str = "ordered"
    card_interleaving: str = "review-first"
    initial_states: Dict[str, Any] = field(default_factory=dict)


SessionMode = Union[FreeFormMode, SpacedRepetitionMode]


@dataclass(frozen=True)
class SessionRecord:
    """Snapshot of a session as committed in the store. Stages pass it by value."""
    session_id: str
    mode: SessionMode
    card_ids: Tuple[str, ...]
    is_paired_mode: bool
    theme: Optional[str]
    created_at: str
    revision: int
    version: int = RECORD_VERSION

    @property
    def mode_name(self) -> str:
        return SPACED_REPETITION if isinstance(self.mode, SpacedRepetitionMode) else FREE_FORM


class SessionStore:
    def __init__(self, client: Optional[redis.Redis] = None, ttl: int = SESSION_TTL_SECONDS) -> None:
        self.client = client if client is not None else get_redis()
        self.ttl = ttl

    # ── keys ──────────────────────────────────────────────────────

    @staticmethod
    def _key(session_id: str, *parts: str) -> str:
        return ":".join((KEY_PREFIX, session_id) + parts)

    def _card_key(self, session_id: str, card_id: str) -> str:
        return self._key(session_id, "card", card_id)

    def _session_keys(self, session_id: str, card_ids: List[str]) -> List[str]:
        keys = [
            self._key(session_id),
            self._key(session_id, "turn"),
            self._key(session_id, "cursor"),
        ]
        for card_id in card_ids:
            keys.append(self._card_key(session_id, card_id))
            keys.append(self._key(session_id, "seeds", card_id))
            keys.append(self._key(session_id, "seed-index", card_id))
            keys.append(self._key(session_id, "new-counted", card_id))
        return keys

    def _touch(self, pipe: Any, session_id: str, card_ids: List[str]) -> None:
        """Queue a revision bump and a TTL refresh for every key of the session."""
        pipe.hincrby(self._key(session_id), "revision", 1)
        for key in self._session_keys(session_id, card_ids):
            pipe.expire(key, self.ttl)

    # ── create / get ──────────────────────────────────────────────

    def create(self, mode: SessionMode, card_ids: List[str], is_paired_mode: bool = False,
               theme: Optional[str] = None) -> str:
        session_id = str(uuid.uuid4())
        fields: Dict[str, str] = {
            "version": str(RECORD_VERSION),
            "revision": "0",
            "mode": SPACED_REPETITION if isinstance(mode, SpacedRepetitionMode) else FREE_FORM,
            "cardIds": json.dumps(list(card_ids)),
            "isPairedMode": "1" if is_paired_mode else "0",
            "theme": theme or "",
            "createdAt": datetime.datetime.now(datetime.UTC).isoformat(),
        }
        if isinstance(mode, SpacedRepetitionMode):
            fields.update({
                "userId": mode.user_id,
                "newCardIds": json.dumps(list(mode.new_card_ids)),
                "reviewCardIds": json.dumps(list(mode.review_card_ids)),
                "reviewCardOrder": mode.review_card_order,
                "cardInterleaving": mode.card_interleaving,
                "initialStates": json.dumps(mode.initial_states),
            })

        pipe = self.client.pipeline()
        pipe.hset(self._key(session_id), mapping=fields)
        if isinstance(mode, SpacedRepetitionMode):
            pipe.set(self._key(session_id, "cursor"), 0)
        else:
            pipe.set(self._key(session_id, "turn"), 0)
        self._touch(pipe, session_id, list(card_ids))
        pipe.execute()

        if DEBUG_MODE:
            print(f"   Session {session_id} stored ({fields['mode']}, {len(card_ids)} cards, ttl={self.ttl}s)")
        return session_id

    def exists(self, session_id: str) -> bool:
        return bool(self.client.hexists(self._key(session_id), "mode"))

    def get(self, session_id: str) -> SessionRecord:
        if not session_id:
            raise SessionExpiredOrNotFound(str(session_id))
        pipe = self.client.pipeline()
        pipe.hgetall(self._key(session_id))
        pipe.get(self._key(session_id, "turn"))
        pipe.get(self._key(session_id, "cursor"))
        fields, turn, cursor = pipe.execute()
        # A stray revision bump can recreate the hash after expiry; without a mode it is not a session
        if not fields or "mode" not in fields:
            raise SessionExpiredOrNotFound(session_id)

        mode: SessionMode
        if fields.get("mode") == SPACED_REPETITION:
            mode = SpacedRepetitionMode(
                user_id=fields.get("userId", ""),
                queue=tuple(json.loads(fields.get("cardIds", "[]"))),
                new_card_ids=tuple(json.loads(fields.get("newCardIds", "[]"))),
                review_card_ids=tuple(json.loads(fields.get("reviewCardIds", "[]"))),
                cursor=int(cursor or 0),
                review_card_order=fields.get("reviewCardOrder", "ordered"),
                card_interleaving=fields.get("cardInterleaving", "review-first"),
                initial_states=json.loads(fields.get("initialStates", "{}")),
            )
        else:
            mode = FreeFormMode(turn_counter=int(turn or 0))

        return SessionRecord(
            session_id=session_id,
            mode=mode,
            card_ids=tuple(json.loads(fields.get("cardIds", "[]"))),
            is_paired_mode=fields.get("isPairedMode") == "1",
            theme=fields.get("theme") or None,
            created_at=fields.get("createdAt", ""),
            revision=int(fields.get("revision", 0)),
            version=int(fields.get("version", RECORD_VERSION)),
        )

    # ── free-form counters ────────────────────────────────────────

    def next_turn(self, record: SessionRecord) -> int:
        """Atomically advance the turn counter; returns the pre-increment value (the current turn)."""
        pipe = self.client.pipeline()
        pipe.incr(self._key(record.session_id, "turn"))
        self._touch(pipe, record.session_id, list(record.card_ids))
        results = pipe.execute()
        return int(results[0]) - 1

    def get_card_usage(self, record: SessionRecord) -> List[CardUsage]:
        pipe = self.client.pipeline()
        for card_id in record.card_ids:
            pipe.hgetall(self._card_key(record.session_id, card_id))
        rows = pipe.execute()

        usage: List[CardUsage] = []
        for card_id, row in zip(record.card_ids, rows):
            last_used = row.get("lastUsedTurn") if row else None
            usage.append(CardUsage(
                card_id=card_id,
                total_uses=int(row.get("totalUses", 0)) if row else 0,
                recognition_score=float(row.get("recognitionScore", 0.0)) if row else 0.0,
                reasoning_score=float(row.get("reasoningScore", 0.0)) if row else 0.0,
                last_used_turn=int(last_used) if last_used is not None else None,
            ))
        return usage

    def record_usage(self, record: SessionRecord, card_ids: List[str], turn: int) -> None:
        """Spend a turn on each chosen card: totalUses += 1 and lastUsedTurn = turn."""
        pipe = self.client.pipeline()
        for card_id in card_ids:
            key = self._card_key(record.session_id, card_id)
            pipe.hincrby(key, "totalUses", 1)
            pipe.hset(key, "lastUsedTurn", turn)
        self._touch(pipe, record.session_id, list(record.card_ids))
        pipe.execute()

    def set_scores(self, record: SessionRecord, card_id: str, recognition_score: float, reasoning_score: float) -> None:
        pipe = self.client.pipeline()
        pipe.hset(self._card_key(record.session_id, card_id), mapping={
            "recognitionScore": repr(float(recognition_score)),
            "reasoningScore": repr(float(reasoning_score)),
        })
        self._touch(pipe, record.session_id, list(record.card_ids))
        pipe.execute()

    # ── spaced-repetition cursor ──────────────────────────────────

    def advance_cursor(self, record: SessionRecord, paired: bool) -> Tuple[int, int]:
        """Claim the next one (or two) queue positions.

        Returns ``(start, step)`` where ``step`` is 0 once the queue is exhausted.
        """
        if not isinstance(record.mode, SpacedRepetitionMode):
            raise TypeError("advance_cursor requires a spaced-repetition session")
        length = len(record.mode.queue)
        cursor_key = self._key(record.session_id, "cursor")
        claimed: Dict[str, int] = {}

        def claim(pipe: Any) -> None:
            start = int(pipe.get(cursor_key) or 0)
            if start >= length:
                claimed.update(start=start, step=0)
                return
            step = 2 if paired and start + 1 < length else 1
            pipe.multi()
            pipe.set(cursor_key, start + step)
            self._touch(pipe, record.session_id, list(record.card_ids))
            claimed.update(start=start, step=step)

        self.client.transaction(claim, cursor_key)
        return claimed["start"], claimed["step"]

    def mark_new_card_counted(self, record: SessionRecord, card_id: str) -> bool:
        """True the first time a new card is reported for this session, False afterwards."""
        key = self._key(record.session_id, "new-counted", card_id)
        return bool(self.client.set(key, "1", nx=True, ex=self.ttl))

    # ── theme seed sets ───────────────────────────────────────────

    def get_custom_seed_sets(self, record: SessionRecord, card_id: str) -> List[List[str]]:
        raw = self.client.get(self._key(record.session_id, "seeds", card_id))
        return json.loads(raw) if raw else []

    def save_custom_seed_sets(self, record: SessionRecord, card_id: str, seed_sets: List[List[str]]) -> None:
        pipe = self.client.pipeline()
        pipe.set(self._key(record.session_id, "seeds", card_id), json.dumps(seed_sets))
        self._touch(pipe, record.session_id, list(record.card_ids))
        pipe.execute()

    def get_custom_seed_index(self, record: SessionRecord, card_id: str) -> int:
        return int(self.client.get(self._key(record.session_id, "seed-index", card_id)) or 0)

    def set_custom_seed_index(self, record: SessionRecord, card_id: str, index: int) -> None:
        pipe = self.client.pipeline()
        pipe.set(self._key(record.session_id, "seed-index", card_id), index)
        self._touch(pipe, record.session_id, list(record.card_ids))
        pipe.execute()


def get_store() -> SessionStore:
    return SessionStore(get_redis())
