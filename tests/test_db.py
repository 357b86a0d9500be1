import json

import click
import pytest
from click.testing import CliRunner

from conftest import MockAIModel, make_card
from inquizit import db, plugin, quizits
from inquizit.errors import ValidationError
from inquizit.session_store import FreeFormMode


CARDS_JSON = [
    {
        "id": "budgeting",
        "cardIdea": "Plan spending before the money arrives",
        "wordsToAvoid": "budget, plan",
        "componentStructure": {"components": [
            {"id": "s1", "type": "scenario", "text": "you get paid"},
            {"id": "s2", "type": "scenario", "text": "you set money aside"},
            {"id": "r1", "type": "reasoning", "text": "future expenses are predictable"},
        ]},
        "validPermutations": ["s1 s2"],
        "title": "Budgeting",
        "description": "Deciding where money goes",
        "banner": "budget.png",
        "seedBundles": [["payday", "rent"], ["groceries"]],
    },
]


def write_cards(tmp_path, cards):
    path = tmp_path / "cards.json"
    path.write_text(json.dumps(cards), encoding="utf-8")
    return str(path)


def test_import_cards_json(tmp_path):
    path = write_cards(tmp_path, CARDS_JSON)
    assert db.import_cards_json(path) == 1
    # Re-importing skips existing cards
    assert db.import_cards_json(path) == 0

    content = db.get_card_content("budgeting")
    assert content.words_to_avoid == ["budget", "plan"]
    assert [c["id"] for c in content.components] == ["s1", "s2", "r1"]
    assert db.count_seed_bundles("budgeting") == 2
    assert db.get_seed_bundle("budgeting", 1) == ["groceries"]


def test_permutation_must_reference_known_components():
    with pytest.raises(ValidationError):
        db.add_card("bad", "idea", [], {"components": [{"id": "s1", "type": "scenario", "text": "x"}]},
                    ["s1 s9"])
    assert db.find_missing_cards(["bad"]) == ["bad"]


def test_component_type_is_checked():
    with pytest.raises(ValidationError):
        db.add_card("bad", "idea", [], {"components": [{"id": "s1", "type": "aside", "text": "x"}]}, [])


def test_missing_card_content_is_validation_error():
    with pytest.raises(ValidationError):
        db.get_card_content("ghost")


def test_history_tracks_latest_quizit():
    make_card("A")
    first = db.store_quizit("A", None, "scenario", "reasoning", None, 0, None, 0, "A")
    second = db.store_quizit("A", None, "scenario", "reasoning", None, 1, None, None, "A")

    history = db.get_generation_history("A")
    assert history.last_quizit_id == int(second)
    assert history.last_permutation_index == 1
    # A theme-seeded quizit leaves the bundle rotation where it was
    assert history.last_seed_bundle_index == 0
    assert [q.id for q in db.get_quizits_for_card("A")] == [int(second), int(first)]


@pytest.fixture
def cli():
    @click.group()
    def cli() -> None:
        pass

    plugin.register_commands(cli)
    return cli


def test_plugin_import_cards(cli, tmp_path):
    path = write_cards(tmp_path, CARDS_JSON)
    result = CliRunner().invoke(cli, ["qz-import-cards", path])
    assert result.exit_code == 0
    assert "1 new cards imported" in result.output


def test_plugin_init_db(cli):
    result = CliRunner().invoke(cli, ["qz-init-db"])
    assert result.exit_code == 0
    assert db.is_db_initialized()


def test_plugin_history(cli):
    make_card("A")
    quizits.generate_single_card_quizit("A", MockAIModel())
    result = CliRunner().invoke(cli, ["qz-history", "A"])
    assert result.exit_code == 0
    assert "perm=0 seed=0" in result.output


def test_plugin_session(cli, store):
    session_id = store.create(FreeFormMode(), ["A", "B"], theme="harbour")
    store.record_usage(store.get(session_id), ["A"], 0)

    result = CliRunner().invoke(cli, ["qz-session", session_id])
    assert result.exit_code == 0
    assert "Theme: harbour" in result.output
    assert "A: uses=1 last=0" in result.output
    assert "B: uses=0 last=-" in result.output

    missing = CliRunner().invoke(cli, ["qz-session", "gone"])
    assert missing.exit_code != 0
