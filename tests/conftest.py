"""Shared test fixtures for askdb."""

from __future__ import annotations

from typing import Any, Dict, List

import pytest
from langchain_core.messages import AIMessage
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from askdb.policies import compile_policy


class FakeLLM:
    """Chat-model stand-in that replays canned responses and records every call."""

    def __init__(self, responses: List[str] | None = None, error: Exception | None = None) -> None:
        self.responses = list(responses or [])
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def invoke(self, input, stop=None, **kwargs):
        self.calls.append({"input": input, "stop": stop, **kwargs})
        if self.error is not None:
            raise self.error
        return AIMessage(content=self.responses.pop(0) if self.responses else "")


SCHEMA = [
    "CREATE TABLE chat_bots (id INTEGER PRIMARY KEY, secret_key VARCHAR(64), company_id INTEGER)",
    "CREATE TABLE companies (id INTEGER PRIMARY KEY, name VARCHAR(64), user_id INTEGER)",
    "CREATE TABLE customers (id INTEGER PRIMARY KEY, company_id INTEGER, name VARCHAR(64))",
    "CREATE TABLE orders (id INTEGER PRIMARY KEY, company_id INTEGER, user_id INTEGER, "
    "customer_id INTEGER, total NUMERIC, status VARCHAR(16))",
]

ROWS = [
    "INSERT INTO chat_bots VALUES (1, 'sk-acme', 7), (2, 'sk-globex', 8), (3, 'sk-orphan', 9)",
    "INSERT INTO companies VALUES (7, 'Acme', 70), (8, 'Globex', 80)",
    "INSERT INTO customers VALUES (1, 7, 'Wile'), (2, 8, 'Homer')",
    "INSERT INTO orders VALUES "
    "(1, 7, 70, 1, 10.0, 'shipped'), (2, 7, 70, 1, 25.5, 'pending'), (3, 8, 80, 2, 99.0, 'shipped')",
]


@pytest.fixture
def fake_llm():
    """Factory: fake_llm(["first response", ...])."""
    return FakeLLM


@pytest.fixture
def engine():
    """In-memory SQLite store with a tenant directory and two tenants (7 and 8)."""
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    with eng.begin() as conn:
        for stmt in SCHEMA + ROWS:
            conn.execute(text(stmt))
    yield eng
    eng.dispose()


@pytest.fixture
def empty_engine():
    """In-memory SQLite store with no tables at all."""
    eng = create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    yield eng
    eng.dispose()


@pytest.fixture
def policy():
    return compile_policy(
        {
            "strict_mode": True,
            "max_tables_before_performing_lookup": 10,
            "shared_tables": ["orders", "customers"],
        }
    )
