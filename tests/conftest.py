"""
Shared fixtures: a transient SQLite database, an in-memory Redis and a mock AI model.
"""

import os
import sys
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import fakeredis
import pytest
from sqlalchemy import create_engine

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))
os.environ.setdefault("TEST_MODE", "1")

from inquizit import db, session_store
from inquizit.prompts import REASONING_SYSTEM_PROMPT, SCENARIO_SYSTEM_PROMPT, SEED_SYSTEM_PROMPT


class MockResponse:
    def __init__(self, content: str) -> None:
        self.content = content

    def text(self) -> str:
        return self.content


class MockAIModel:
    """Mock AI model for consistent testing without actual API calls."""

    def __init__(self, seed_sets: Optional[List[List[str]]] = None, fenced: bool = True) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.seed_sets = seed_sets
        self.fenced = fenced

    def prompt(self, prompt_text: str, system: str = "", temperature: float = 1.0, max_tokens: int = 1024) -> Any:
        self.calls.append({
            "prompt": prompt_text,
            "system": system,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if system == SCENARIO_SYSTEM_PROMPT:
            return MockResponse(f"You notice something happening. (scenario {len(self.calls)})")
        if system == REASONING_SYSTEM_PROMPT:
            return MockResponse("At first it starts, then it unfolds.\n\nThis shows the idea in practice.")
        if system == SEED_SYSTEM_PROMPT:
            count = int(prompt_text.split("Generate ")[1].split(" ")[0])
            sets = self.seed_sets or [[f"seed {i}a", f"seed {i}b", f"seed {i}c"] for i in range(count)]
            payload = json.dumps(sets[:count])
            return MockResponse(f"```json\n{payload}\n```" if self.fenced else payload)
        return MockResponse("Mock response")

    def calls_for(self, system: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["system"] == system]


class FailingAIModel:
    def prompt(self, prompt_text: str, system: str = "", temperature: float = 1.0, max_tokens: int = 1024) -> Any:
        raise RuntimeError("upstream timeout")


class EmptyAIModel:
    def prompt(self, prompt_text: str, system: str = "", temperature: float = 1.0, max_tokens: int = 1024) -> Any:
        return MockResponse("   ")


@pytest.fixture(autouse=True)
def temp_db(tmp_path):
    """Use a temporary SQLite DB, and rebind engine/session to it."""
    test_db = str(tmp_path / "test.db")
    db.engine = create_engine(f"sqlite:///{test_db}")
    db.SessionLocal = db.sessionmaker(bind=db.engine, expire_on_commit=False)
    db.init_db()
    yield
    db.engine.dispose()


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    client = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(session_store, "redis_client", client)
    return client


@pytest.fixture
def store(fake_redis):
    return session_store.SessionStore(fake_redis)


@pytest.fixture
def mock_model():
    return MockAIModel()


def make_card(card_id: str, permutations: Optional[List[str]] = None,
              seed_bundles: Optional[List[List[str]]] = None,
              words_to_avoid: Optional[List[str]] = None) -> str:
    """Add a card with two scenario components and one reasoning component."""
    db.add_card(
        card_id=card_id,
        card_idea=f"The idea behind {card_id}",
        words_to_avoid=words_to_avoid if words_to_avoid is not None else [f"banned-{card_id}"],
        component_structure={"components": [
            {"id": "s1", "type": "scenario", "text": f"{card_id} opening"},
            {"id": "s2", "type": "scenario", "text": f"{card_id} turn"},
            {"id": "r1", "type": "reasoning", "text": f"{card_id} consideration"},
        ]},
        valid_permutations=permutations if permutations is not None else ["s1 s2", "s2 s1"],
        title=f"Title {card_id}",
        description=f"Description {card_id}",
        banner=f"banner-{card_id}.png",
        seed_bundles=seed_bundles if seed_bundles is not None else [[f"{card_id} seed {i}"] for i in range(3)],
    )
    return card_id


@pytest.fixture
def cards():
    return [make_card(card_id) for card_id in ("A", "B", "C")]
