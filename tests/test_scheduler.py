import datetime
import random

import pytest

from inquizit import db, scheduler
from inquizit.db import UserCard, UserDailyReview, get_session
from inquizit.errors import ValidationError
from inquizit.session_store import SpacedRepetitionMode

TODAY = datetime.date(2026, 3, 10)


def make_user_card(card_id, due=None, queue=-1, user_id="tester", repetitions=0):
    session = get_session()
    session.add(UserCard(user_id=user_id, card_id=card_id, due=due, queue=queue,
                         repetitions=repetitions, ease_factor=2.5, interval_days=repetitions))
    session.commit()
    session.close()


def set_reviewed_today(count, user_id="tester"):
    session = get_session()
    session.add(UserDailyReview(user_id=user_id, review_date=TODAY, new_cards_reviewed=count))
    session.commit()
    session.close()


def create_sr_session(store, plan, paired=False):
    mode = SpacedRepetitionMode(
        user_id="tester",
        queue=tuple(plan.queue),
        new_card_ids=tuple(plan.new_card_ids),
        review_card_ids=tuple(plan.review_card_ids),
        initial_states=plan.initial_states,
    )
    return store.get(store.create(mode, plan.queue, is_paired_mode=paired))


def test_combine_review_first():
    assert scheduler.combine_cards(["r1", "r2"], ["n1", "n2"], "review-first") == ["r1", "r2", "n1", "n2"]


def test_combine_interleaved_continues_with_longer_list():
    assert scheduler.combine_cards(["r1", "r2", "r3"], ["n1"], "interleaved") == ["r1", "n1", "r2", "r3"]
    assert scheduler.combine_cards(["r1"], ["n1", "n2", "n3"], "interleaved") == ["r1", "n1", "n2", "n3"]


def test_combine_never_repeats_a_card():
    queue = scheduler.combine_cards(["x", "y"], ["y", "z"], "interleaved")
    assert queue == ["x", "y", "z"]


def test_review_cards_ordered_by_due_date():
    make_user_card("late", due=TODAY - datetime.timedelta(days=1), repetitions=2)
    make_user_card("oldest", due=TODAY - datetime.timedelta(days=5), repetitions=4)
    make_user_card("today", due=TODAY, repetitions=1)
    make_user_card("future", due=TODAY + datetime.timedelta(days=3), repetitions=1)

    plan = scheduler.build_queue("tester", today=TODAY)
    assert plan.review_card_ids == ["oldest", "late", "today"]
    assert plan.queue == ["oldest", "late", "today"]


def test_random_review_order_is_a_shuffle():
    due_ids = [f"r{i}" for i in range(8)]
    for i, card_id in enumerate(due_ids):
        make_user_card(card_id, due=TODAY - datetime.timedelta(days=i), repetitions=1)

    plan = scheduler.build_queue("tester", review_card_order="random", today=TODAY, rng=random.Random(3))
    assert sorted(plan.review_card_ids) == sorted(due_ids)


def test_new_cards_ordered_by_queue_and_unassigned_skipped():
    make_user_card("second", queue=2)
    make_user_card("first", queue=1)
    make_user_card("unassigned", queue=-1)

    plan = scheduler.build_queue("tester", today=TODAY)
    assert plan.new_card_ids == ["first", "second"]


def test_daily_new_card_limit_counts_todays_reviews():
    for i in range(5):
        make_user_card(f"n{i}", queue=i)
    set_reviewed_today(7)

    plan = scheduler.build_queue("tester", today=TODAY)
    assert plan.new_card_ids == ["n0", "n1", "n2"]


def test_daily_limit_caps_at_ten():
    for i in range(15):
        make_user_card(f"n{i:02d}", queue=i)

    plan = scheduler.build_queue("tester", today=TODAY)
    assert len(plan.new_card_ids) == scheduler.DAILY_NEW_CARD_LIMIT


def test_no_new_cards_once_limit_reached():
    make_user_card("n0", queue=0)
    set_reviewed_today(10)
    assert scheduler.build_queue("tester", today=TODAY).new_card_ids == []


def test_interleaving_flag_applied():
    make_user_card("r1", due=TODAY, repetitions=1)
    make_user_card("r2", due=TODAY, repetitions=1)
    make_user_card("n1", queue=0)

    plan = scheduler.build_queue("tester", card_interleaving="interleaved", today=TODAY)
    assert plan.queue == ["r1", "n1", "r2"]


def test_invalid_flags_rejected():
    with pytest.raises(ValidationError):
        scheduler.build_queue("tester", review_card_order="sideways", today=TODAY)
    with pytest.raises(ValidationError):
        scheduler.build_queue("tester", card_interleaving="shuffled", today=TODAY)


def test_initial_states_snapshot(store):
    make_user_card("r1", due=TODAY, repetitions=3)
    plan = scheduler.build_queue("tester", today=TODAY)
    record = create_sr_session(store, plan)

    # The review collaborator moves the card on mid-session
    session = get_session()
    row = session.query(UserCard).filter_by(card_id="r1").one()
    row.repetitions = 4
    row.due = TODAY + datetime.timedelta(days=6)
    session.commit()
    session.close()

    scheduled, complete = scheduler.next_scheduled_cards(store, record)
    assert complete is None
    state = scheduled.initial_states["r1"]
    assert state["repetitions"] == 3
    assert state["due"] == TODAY.isoformat()


def test_cursor_serves_queue_in_order_then_completes(store):
    make_user_card("r1", due=TODAY, repetitions=1)
    make_user_card("r2", due=TODAY, repetitions=1)
    make_user_card("n1", queue=0)
    plan = scheduler.build_queue("tester", today=TODAY)
    record = create_sr_session(store, plan)

    served = []
    for expected_index in (1, 2, 3):
        scheduled, complete = scheduler.next_scheduled_cards(store, record)
        assert complete is None
        assert scheduled.current_index == expected_index
        assert scheduled.total_cards == 3
        served.extend(scheduled.card_ids)

    assert served == ["r1", "r2", "n1"]
    scheduled, complete = scheduler.next_scheduled_cards(store, record)
    assert scheduled is None
    assert complete.to_dict() == {"totalCards": 3, "newCardsReviewed": 1, "reviewCardsReviewed": 2}


def test_paired_cursor_advances_by_two(store):
    for i in range(3):
        make_user_card(f"r{i}", due=TODAY, repetitions=1)
    plan = scheduler.build_queue("tester", today=TODAY)
    record = create_sr_session(store, plan, paired=True)

    first, _ = scheduler.next_scheduled_cards(store, record)
    assert first.card_ids == ["r0", "r1"]
    assert first.remaining_cards == 1

    second, _ = scheduler.next_scheduled_cards(store, record)
    assert second.card_ids == ["r2"]

    third, complete = scheduler.next_scheduled_cards(store, record)
    assert third is None
    assert complete.total_cards == 3


def test_new_card_flags(store):
    make_user_card("r1", due=TODAY, repetitions=1)
    make_user_card("n1", queue=0)
    plan = scheduler.build_queue("tester", today=TODAY)
    record = create_sr_session(store, plan, paired=True)

    scheduled, _ = scheduler.next_scheduled_cards(store, record)
    assert scheduled.is_new == {"r1": False, "n1": True}


def test_new_cards_reviewed_counter():
    assert db.get_new_cards_reviewed("tester", TODAY) == 0
    assert db.increment_new_cards_reviewed("tester", TODAY) == 1
    assert db.increment_new_cards_reviewed("tester", TODAY) == 2
    assert scheduler.new_cards_left("tester", TODAY) == 8
