from __future__ import annotations
from sqlalchemy import create_engine, Date, Integer, Float as SAFloat, String, DateTime, Text, JSON, UniqueConstraint, or_
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session, Mapped, mapped_column
import datetime
import json
import os
from typing import Optional, List, Any, Dict, Iterable

from .errors import ValidationError
from .structured import CardContent

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"


class Base(DeclarativeBase):
    pass
DB_PATH: str = os.environ.get("INQUIZIT_DB", "inquizit.db")
engine = create_engine(f"sqlite:///{DB_PATH}")
# Prevent attribute expiration on commit so returned objects remain accessible
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


class Card(Base):
    __tablename__ = "cards"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    card_idea: Mapped[str] = mapped_column(Text, nullable=False, default="")  # never shown verbatim
    words_to_avoid: Mapped[List[str]] = mapped_column(JSON, default=list)
    component_structure: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    valid_permutations: Mapped[List[str]] = mapped_column(JSON, default=list)  # e.g. ["s1 s2 s3", "s2 s1 s3"]
    title: Mapped[str] = mapped_column(String, default="")
    description: Mapped[str] = mapped_column(Text, default="")
    banner: Mapped[str] = mapped_column(String, default="")


class SeedBundle(Base):
    __tablename__ = "seed_bundles"
    __table_args__ = (UniqueConstraint("card_id", "bundle_index"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    card_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    bundle_index: Mapped[int] = mapped_column(Integer, nullable=False)
    bundle_items: Mapped[List[str]] = mapped_column(JSON, default=list)


class Quizit(Base):
    __tablename__ = "quizits"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=lambda: datetime.datetime.now(datetime.UTC))
    session_id: Mapped[Optional[str]] = mapped_column(String)
    card_id_1: Mapped[str] = mapped_column(String, nullable=False, index=True)
    card_id_2: Mapped[Optional[str]] = mapped_column(String, index=True)
    scenario: Mapped[str] = mapped_column(Text, nullable=False)
    reasoning1: Mapped[str] = mapped_column(Text, nullable=False)
    reasoning2: Mapped[Optional[str]] = mapped_column(Text)
    card_1_recognition_score: Mapped[float] = mapped_column(SAFloat, default=0.0)
    card_1_reasoning_score: Mapped[float] = mapped_column(SAFloat, default=0.0)
    card_2_recognition_score: Mapped[Optional[float]] = mapped_column(SAFloat)
    card_2_reasoning_score: Mapped[Optional[float]] = mapped_column(SAFloat)
    permutation_index_1: Mapped[int] = mapped_column(Integer, default=0)
    permutation_index_2: Mapped[Optional[int]] = mapped_column(Integer)
    seed_bundle_index: Mapped[Optional[int]] = mapped_column(Integer)  # null when a theme seed was used
    chosen_card_for_seed: Mapped[Optional[str]] = mapped_column(String)


class CardGenerationHistory(Base):
    """Latest generation record per card, kept in step with every stored quizit."""
    __tablename__ = "card_generation_history"
    card_id: Mapped[str] = mapped_column(String, primary_key=True)
    last_quizit_id: Mapped[int] = mapped_column(Integer, nullable=False)
    last_permutation_index: Mapped[int] = mapped_column(Integer, default=0)
    last_seed_bundle_index: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=lambda: datetime.datetime.now(datetime.UTC), onupdate=lambda: datetime.datetime.now(datetime.UTC))


class UserCard(Base):
    """Spaced-repetition memory state, owned by the review collaborator. Read-only here."""
    __tablename__ = "user_cards"
    __table_args__ = (UniqueConstraint("user_id", "card_id"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    card_id: Mapped[str] = mapped_column(String, nullable=False)
    ease_factor: Mapped[float] = mapped_column(SAFloat, default=2.5)
    interval_days: Mapped[int] = mapped_column(Integer, default=0)
    repetitions: Mapped[int] = mapped_column(Integer, default=0)
    due: Mapped[Optional[datetime.date]] = mapped_column(Date)  # null = never reviewed
    last_reviewed_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)
    queue: Mapped[int] = mapped_column(Integer, default=-1)  # new-card ordinal, -1 = not yet assigned


class UserDailyReview(Base):
    __tablename__ = "user_daily_reviews"
    __table_args__ = (UniqueConstraint("user_id", "review_date"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    review_date: Mapped[datetime.date] = mapped_column(Date, default=lambda: datetime.date.today())
    new_cards_reviewed: Mapped[int] = mapped_column(Integer, default=0)


def is_db_initialized() -> bool:
    """Check if the database is already initialized by checking if tables exist."""
    from sqlalchemy import inspect
    inspector = inspect(engine)
    table_names = inspector.get_table_names()

    required_tables = {'cards', 'seed_bundles', 'quizits', 'card_generation_history', 'user_cards', 'user_daily_reviews'}
    return required_tables.issubset(set(table_names))


def init_db() -> None:
    """Initialize the database by creating all tables."""
    Base.metadata.create_all(bind=engine)


def get_session() -> Session:
    return SessionLocal()


# ── Cards ─────────────────────────────────────────────────────────

def validate_card_structure(component_structure: Dict[str, Any], valid_permutations: List[str]) -> None:
    """Every fragment ID named by a permutation must exist in the component structure."""
    components = component_structure.get("components", [])
    known_ids = set()
    for component in components:
        if "id" not in component or "text" not in component:
            raise ValidationError("Each component needs an 'id' and a 'text'")
        if component.get("type") not in ("scenario", "reasoning"):
            raise ValidationError(f"Component {component['id']} has unknown type {component.get('type')!r}")
        known_ids.add(component["id"])

    for permutation in valid_permutations:
        missing = [pid for pid in permutation.split() if pid not in known_ids]
        if missing:
            raise ValidationError(f"Permutation '{permutation}' references unknown components: {', '.join(missing)}")


def add_card(card_id: str, card_idea: str, words_to_avoid: Iterable[str],
             component_structure: Dict[str, Any], valid_permutations: List[str],
             title: str = "", description: str = "", banner: str = "",
             seed_bundles: Optional[List[List[str]]] = None) -> bool:
    """Add a card (and its seed bundles). Returns False if the card already exists."""
    validate_card_structure(component_structure, valid_permutations)

    session: Session = get_session()
    if session.get(Card, card_id) is not None:
        session.close()
        return False

    session.add(Card(
        id=card_id,
        card_idea=card_idea,
        words_to_avoid=list(words_to_avoid),
        component_structure=component_structure,
        valid_permutations=list(valid_permutations),
        title=title,
        description=description,
        banner=banner,
    ))
    for index, items in enumerate(seed_bundles or []):
        session.add(SeedBundle(card_id=card_id, bundle_index=index, bundle_items=list(items)))
    session.commit()
    session.close()
    return True


def import_cards_json(json_path: str) -> int:
    """Import cards from a JSON file (a list of card objects). Returns the number of new cards."""
    with open(json_path, encoding="utf-8") as f:
        payload = json.load(f)

    if isinstance(payload, dict):
        payload = payload.get("cards", [])

    imported = 0
    for entry in payload:
        words = entry.get("wordsToAvoid", [])
        if isinstance(words, str):
            words = [w.strip() for w in words.split(",") if w.strip()]
        is_new = add_card(
            card_id=str(entry["id"]),
            card_idea=entry.get("cardIdea", ""),
            words_to_avoid=words,
            component_structure=entry.get("componentStructure", {"components": []}),
            valid_permutations=entry.get("validPermutations", []),
            title=entry.get("title", ""),
            description=entry.get("description", ""),
            banner=entry.get("banner", ""),
            seed_bundles=entry.get("seedBundles", []),
        )
        if is_new:
            imported += 1

    print(f"✅ Imported {imported} cards")
    return imported


def find_missing_cards(card_ids: List[str]) -> List[str]:
    session: Session = get_session()
    found = {row.id for row in session.query(Card.id).filter(Card.id.in_(card_ids)).all()}
    session.close()
    return [cid for cid in card_ids if cid not in found]


def get_card_content(card_id: str) -> CardContent:
    session: Session = get_session()
    card: Optional[Card] = session.get(Card, card_id)
    session.close()
    if card is None:
        raise ValidationError(f"Card not found: {card_id}")

    return CardContent(
        card_id=card.id,
        card_idea=card.card_idea or "",
        words_to_avoid=list(card.words_to_avoid or []),
        components=list((card.component_structure or {}).get("components", [])),
        valid_permutations=list(card.valid_permutations or []),
        title=card.title or "",
        description=card.description or "",
        banner=card.banner or "",
    )


# ── Seed bundles ──────────────────────────────────────────────────

def count_seed_bundles(card_id: str) -> int:
    session: Session = get_session()
    total = session.query(SeedBundle).filter_by(card_id=card_id).count()
    session.close()
    return total


def get_seed_bundle(card_id: str, bundle_index: int) -> List[str]:
    session: Session = get_session()
    bundle = session.query(SeedBundle).filter_by(card_id=card_id, bundle_index=bundle_index).one_or_none()
    session.close()
    if bundle is None:
        raise ValidationError(f"Seed bundle {bundle_index} not found for card {card_id}")
    return list(bundle.bundle_items or [])


# ── Quizit history ────────────────────────────────────────────────

def get_generation_history(card_id: str) -> Optional[CardGenerationHistory]:
    """Most recent generation record for a card, or None if it was never generated."""
    session: Session = get_session()
    history = session.get(CardGenerationHistory, card_id)
    if history is not None:
        session.expunge(history)
    session.close()
    return history


def _touch_history(session: Session, card_id: str, quizit: Quizit, permutation_index: int) -> None:
    history = session.get(CardGenerationHistory, card_id)
    if history is None:
        history = CardGenerationHistory(card_id=card_id, last_quizit_id=quizit.id,
                                        last_permutation_index=permutation_index)
        session.add(history)
    history.last_quizit_id = quizit.id
    history.last_permutation_index = permutation_index
    # Theme seeds do not advance the default bundle rotation
    if quizit.seed_bundle_index is not None:
        history.last_seed_bundle_index = quizit.seed_bundle_index


def store_quizit(card_id_1: str, card_id_2: Optional[str], scenario: str,
                 reasoning1: str, reasoning2: Optional[str],
                 permutation_index_1: int, permutation_index_2: Optional[int],
                 seed_bundle_index: Optional[int], chosen_card_for_seed: Optional[str],
                 session_id: Optional[str] = None) -> str:
    """Persist a generated quizit and advance each card's generation history."""
    session: Session = get_session()
    quizit = Quizit(
        session_id=session_id,
        card_id_1=card_id_1,
        card_id_2=card_id_2,
        scenario=scenario,
        reasoning1=reasoning1,
        reasoning2=reasoning2,
        card_1_recognition_score=0.0,
        card_1_reasoning_score=0.0,
        card_2_recognition_score=0.0 if card_id_2 else None,
        card_2_reasoning_score=0.0 if card_id_2 else None,
        permutation_index_1=permutation_index_1,
        permutation_index_2=permutation_index_2,
        seed_bundle_index=seed_bundle_index,
        chosen_card_for_seed=chosen_card_for_seed,
    )
    session.add(quizit)
    session.flush()

    _touch_history(session, card_id_1, quizit, permutation_index_1)
    if card_id_2:
        _touch_history(session, card_id_2, quizit, permutation_index_2 or 0)

    session.commit()
    quizit_id = str(quizit.id)
    session.close()
    if DEBUG_MODE:
        print(f"   Stored quizit {quizit_id} (cards: {card_id_1}{', ' + card_id_2 if card_id_2 else ''})")
    return quizit_id


def get_quizit(quizit_id: str) -> Optional[Quizit]:
    try:
        pk = int(quizit_id)
    except (TypeError, ValueError):
        return None
    session: Session = get_session()
    quizit = session.get(Quizit, pk)
    session.close()
    return quizit


def update_quizit_scores(quizit_id: str, card_id: str, recognition_score: float, reasoning_score: float) -> int:
    """Write scores into the card's slot on a stored quizit. Returns the slot number (1 or 2)."""
    session: Session = get_session()
    quizit: Optional[Quizit] = None
    try:
        quizit = session.get(Quizit, int(quizit_id))
    except (TypeError, ValueError):
        pass
    if quizit is None:
        session.close()
        raise ValidationError(f"Quizit not found: {quizit_id}")

    if quizit.card_id_1 == card_id:
        quizit.card_1_recognition_score = recognition_score
        quizit.card_1_reasoning_score = reasoning_score
        slot = 1
    elif quizit.card_id_2 is not None and quizit.card_id_2 == card_id:
        quizit.card_2_recognition_score = recognition_score
        quizit.card_2_reasoning_score = reasoning_score
        slot = 2
    else:
        session.close()
        raise ValidationError(f"Card {card_id} is not part of quizit {quizit_id}")

    session.commit()
    session.close()
    return slot


# ── Spaced-repetition reads ───────────────────────────────────────

def get_review_card_ids(user_id: str, today: datetime.date) -> List[str]:
    """Cards due today or overdue, earliest due first."""
    session: Session = get_session()
    rows = (session.query(UserCard.card_id)
            .filter(UserCard.user_id == user_id,
                    UserCard.due.isnot(None),
                    UserCard.due <= today)
            .order_by(UserCard.due.asc(), UserCard.id.asc())
            .all())
    session.close()
    return [str(row.card_id) for row in rows]


def get_new_card_ids(user_id: str, limit: int) -> List[str]:
    """Never-reviewed cards with an assigned queue ordinal, lowest ordinal first."""
    if limit <= 0:
        return []
    session: Session = get_session()
    rows = (session.query(UserCard.card_id)
            .filter(UserCard.user_id == user_id,
                    UserCard.due.is_(None),
                    UserCard.queue >= 0)
            .order_by(UserCard.queue.asc())
            .limit(limit)
            .all())
    session.close()
    return [str(row.card_id) for row in rows]


def get_new_cards_reviewed(user_id: str, review_date: datetime.date) -> int:
    session: Session = get_session()
    daily = session.query(UserDailyReview).filter_by(user_id=user_id, review_date=review_date).one_or_none()
    session.close()
    return daily.new_cards_reviewed if daily and daily.new_cards_reviewed else 0


def increment_new_cards_reviewed(user_id: str, review_date: datetime.date) -> int:
    session: Session = get_session()
    daily = session.query(UserDailyReview).filter_by(user_id=user_id, review_date=review_date).one_or_none()
    if daily is None:
        daily = UserDailyReview(user_id=user_id, review_date=review_date, new_cards_reviewed=0)
        session.add(daily)
    if daily.new_cards_reviewed is None:
        daily.new_cards_reviewed = 0
    daily.new_cards_reviewed += 1
    session.commit()
    count = daily.new_cards_reviewed
    session.close()
    return count


def get_user_card_states(user_id: str, card_ids: List[str]) -> Dict[str, Dict[str, Any]]:
    """Memory-model fields for the given cards, keyed by card id (JSON-friendly values)."""
    if not card_ids:
        return {}
    session: Session = get_session()
    rows = session.query(UserCard).filter(UserCard.user_id == user_id, UserCard.card_id.in_(card_ids)).all()
    session.close()

    states: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        states[str(row.card_id)] = {
            "ease_factor": row.ease_factor,
            "interval_days": row.interval_days,
            "repetitions": row.repetitions,
            "due": row.due.isoformat() if row.due else None,
            "last_reviewed_at": row.last_reviewed_at.isoformat() if row.last_reviewed_at else None,
            "queue": row.queue,
        }
    return states


def get_quizits_for_card(card_id: str, limit: int = 20) -> List[Quizit]:
    """Recent quizits that reference a card, newest first."""
    session: Session = get_session()
    rows = (session.query(Quizit)
            .filter(or_(Quizit.card_id_1 == card_id, Quizit.card_id_2 == card_id))
            .order_by(Quizit.created_at.desc(), Quizit.id.desc())
            .limit(limit)
            .all())
    session.close()
    return rows
