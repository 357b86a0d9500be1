import pytest

from inquizit.errors import SessionExpiredOrNotFound
from inquizit.session_store import (
    FREE_FORM,
    SPACED_REPETITION,
    FreeFormMode,
    SessionStore,
    SpacedRepetitionMode,
)


def make_sr_mode(queue=("r1", "n1", "r2")):
    return SpacedRepetitionMode(
        user_id="tester",
        queue=tuple(queue),
        new_card_ids=("n1",),
        review_card_ids=tuple(c for c in queue if c != "n1"),
        initial_states={"r1": {"repetitions": 3}},
    )


def test_create_and_get_free_form(store):
    session_id = store.create(FreeFormMode(), ["A", "B"], is_paired_mode=True, theme="space travel")
    record = store.get(session_id)

    assert record.session_id == session_id
    assert record.mode_name == FREE_FORM
    assert record.mode == FreeFormMode(turn_counter=0)
    assert record.card_ids == ("A", "B")
    assert record.is_paired_mode is True
    assert record.theme == "space travel"
    assert record.revision >= 1


def test_create_and_get_spaced_repetition(store):
    session_id = store.create(make_sr_mode(), ["r1", "n1", "r2"])
    record = store.get(session_id)

    assert record.mode_name == SPACED_REPETITION
    assert record.mode.user_id == "tester"
    assert record.mode.queue == ("r1", "n1", "r2")
    assert record.mode.new_card_ids == ("n1",)
    assert record.mode.cursor == 0
    assert record.mode.initial_states == {"r1": {"repetitions": 3}}
    assert record.theme is None


def test_missing_session_is_distinct_error(store):
    with pytest.raises(SessionExpiredOrNotFound) as exc_info:
        store.get("does-not-exist")
    assert exc_info.value.status == 404
    assert exc_info.value.kind == "session_not_found"
    assert store.exists("does-not-exist") is False


def test_expired_session_is_not_found(store, fake_redis):
    session_id = store.create(FreeFormMode(), ["A"])
    for key in fake_redis.keys(f"quizit-session:{session_id}*"):
        fake_redis.delete(key)

    with pytest.raises(SessionExpiredOrNotFound):
        store.get(session_id)


def test_writes_refresh_ttl_on_all_keys(fake_redis):
    store = SessionStore(fake_redis, ttl=600)
    session_id = store.create(FreeFormMode(), ["A", "B"])
    record = store.get(session_id)
    store.record_usage(record, ["A"], 0)

    for key in (f"quizit-session:{session_id}", f"quizit-session:{session_id}:turn",
                f"quizit-session:{session_id}:card:A"):
        ttl = fake_redis.ttl(key)
        assert 0 < ttl <= 600


def test_next_turn_returns_pre_increment_value(store):
    record = store.get(store.create(FreeFormMode(), ["A"]))
    assert [store.next_turn(record) for _ in range(3)] == [0, 1, 2]
    assert store.get(record.session_id).mode.turn_counter == 3


def test_usage_rows_default_and_update(store):
    record = store.get(store.create(FreeFormMode(), ["A", "B"]))
    usage = {u.card_id: u for u in store.get_card_usage(record)}
    assert usage["A"].total_uses == 0
    assert usage["A"].last_used_turn is None

    store.record_usage(record, ["A"], 4)
    store.record_usage(record, ["A"], 7)
    store.set_scores(record, "A", 0.5, 1.0)

    usage = {u.card_id: u for u in store.get_card_usage(record)}
    assert usage["A"].total_uses == 2
    assert usage["A"].last_used_turn == 7
    assert usage["A"].recognition_score == 0.5
    assert usage["A"].reasoning_score == 1.0
    assert usage["B"].total_uses == 0


def test_revision_increases_on_every_write(store):
    record = store.get(store.create(FreeFormMode(), ["A"]))
    before = record.revision
    store.record_usage(record, ["A"], 0)
    store.set_scores(record, "A", 1.0, 1.0)
    assert store.get(record.session_id).revision == before + 2


def test_advance_cursor_single(store):
    record = store.get(store.create(make_sr_mode(), ["r1", "n1", "r2"]))
    assert store.advance_cursor(record, paired=False) == (0, 1)
    assert store.advance_cursor(record, paired=False) == (1, 1)
    assert store.advance_cursor(record, paired=False) == (2, 1)
    assert store.advance_cursor(record, paired=False) == (3, 0)
    assert store.get(record.session_id).mode.cursor == 3


def test_advance_cursor_paired_degrades_at_end(store):
    record = store.get(store.create(make_sr_mode(), ["r1", "n1", "r2"]))
    assert store.advance_cursor(record, paired=True) == (0, 2)
    assert store.advance_cursor(record, paired=True) == (2, 1)
    assert store.advance_cursor(record, paired=True) == (3, 0)


def test_new_card_flag_is_set_once(store):
    record = store.get(store.create(make_sr_mode(), ["r1", "n1", "r2"]))
    assert store.mark_new_card_counted(record, "n1") is True
    assert store.mark_new_card_counted(record, "n1") is False


def test_custom_seed_sets_round_trip(store):
    record = store.get(store.create(FreeFormMode(), ["A"], theme="pirates"))
    assert store.get_custom_seed_sets(record, "A") == []
    assert store.get_custom_seed_index(record, "A") == 0

    store.save_custom_seed_sets(record, "A", [["ship", "parrot"], ["map"]])
    store.set_custom_seed_index(record, "A", 1)

    assert store.get_custom_seed_sets(record, "A") == [["ship", "parrot"], ["map"]]
    assert store.get_custom_seed_index(record, "A") == 1
    assert store.get_custom_seed_sets(record, "B") == []
