"""
Shared fixtures: temp-file SQLite pools, a seeded repository, and a scripted
JSON client that stands in for Gemini.
"""

from __future__ import annotations

from collections import deque
from typing import Any

import pytest

from biosynth.automation.repository import AutomationRepository
from biosynth.infrastructure.database import DatabaseConnectionPool
from biosynth.infrastructure.database_schema import init_database
from biosynth.observability.telemetry import reset_telemetry


class ScriptedJsonClient:
    """
    Returns queued responses in order. An exception instance in the queue is
    raised instead of returned; a callable is called with the prompt.
    """

    def __init__(self, responses: list[Any] | None = None):
        self.responses: deque[Any] = deque(responses or [])
        self.calls: list[tuple[str, dict[str, Any] | None]] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    def generate_json(self, prompt: str, response_schema: dict[str, Any] | None = None) -> Any:
        self.calls.append((prompt, response_schema))
        if not self.responses:
            raise AssertionError(f"Unexpected model call: {prompt[:80]!r}")
        response = self.responses.popleft()
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(prompt)
        return response


@pytest.fixture(autouse=True)
def _clean_telemetry():
    reset_telemetry()
    yield
    reset_telemetry()


@pytest.fixture
def pool(tmp_path):
    db_pool = DatabaseConnectionPool(tmp_path / "biosynth-test.db", pool_size=2)
    init_database(db_pool)
    yield db_pool
    db_pool.close_all()


@pytest.fixture
def repository(pool):
    return AutomationRepository(pool)


@pytest.fixture
def scripted_client():
    return ScriptedJsonClient()


def algorithm_payload(name: str = "Mycelial Router", **overrides: Any) -> dict[str, Any]:
    payload = {
        "name": name,
        "inspiration": "Fungal mycelium networks",
        "domain": "Network Routing",
        "description": "Routes packets along reinforced hyphae.",
        "principle": "Nutrient flow strengthens used paths",
        "steps": ["Explore", "Reinforce", "Prune"],
        "applications": ["Mesh networks"],
        "pseudoCode": "while true: grow()",
        "tags": ["routing", "bio"],
    }
    payload.update(overrides)
    return payload


def insert_algorithm(
    pool: DatabaseConnectionPool,
    name: str,
    user_id: int | None = None,
    visibility: str = "public",
    like_count: int = 0,
    view_count: int = 0,
    domain: str = "Optimization",
) -> int:
    with pool.transaction() as conn:
        if user_id is None:
            conn.execute(
                "INSERT OR IGNORE INTO users (email, password_hash, name) VALUES (?, ?, ?)",
                ("someone@example.com", "x", "Someone"),
            )
            user_id = conn.execute(
                "SELECT id FROM users WHERE email = 'someone@example.com'"
            ).fetchone()["id"]
        cursor = conn.execute(
            """
            INSERT INTO algorithms (
                user_id, name, inspiration, domain, description, principle,
                steps, applications, pseudo_code, tags, type, visibility, like_count, view_count
            ) VALUES (?, ?, 'Ants', ?, 'desc', 'stigmergy', '["a","b"]', '["x"]', '', '["t"]',
                      'generated', ?, ?, ?)
            """,
            (user_id, name, domain, visibility, like_count, view_count),
        )
        return int(cursor.lastrowid)


@pytest.fixture
def make_payload():
    return algorithm_payload


@pytest.fixture
def add_algorithm(pool):
    def _add(name: str, **kwargs: Any) -> int:
        return insert_algorithm(pool, name, **kwargs)

    return _add
