"""Tests for prompt rendering."""

from __future__ import annotations

from askdb.prompt import build_prompt, build_tables_prompt
from askdb.schema import TableInfo

TABLES = [
    TableInfo("orders", (("id", "INTEGER"), ("total", "NUMERIC"))),
    TableInfo("customers", (("id", "INTEGER"), ("name", "VARCHAR"))),
]


class TestBuildPrompt:
    """Pass 1 and pass 2 rendering."""

    def test_question_to_sql(self) -> None:
        """Pass 1 ends on the opening quote of SQLQuery."""
        prompt = build_prompt("How many orders?", TABLES, "sqlite")

        assert "syntactically correct sqlite query" in prompt
        assert "- orders(id:INTEGER, total:NUMERIC)" in prompt
        assert 'Question: "How many orders?"' in prompt
        assert prompt.endswith('SQLQuery: "')
        assert "SQLResult" not in prompt.split('Question: "How many orders?"')[1]

    def test_result_to_answer(self) -> None:
        """Pass 2 embeds the executed query and its result, ending on Answer."""
        prompt = build_prompt(
            "How many orders?", TABLES, "sqlite", query="SELECT COUNT(*) FROM orders", result='{"n": 3}'
        )

        assert 'SQLQuery: "SELECT COUNT(*) FROM orders"' in prompt
        assert 'SQLResult: "{"n": 3}"' in prompt
        assert prompt.endswith('Answer: "')

    def test_no_trailing_newline(self) -> None:
        assert not build_prompt("q", [], "sqlite").endswith("\n")

    def test_placeholder_rule(self) -> None:
        """The placeholder strategy tells the model which token means 'current user'."""
        assert ":user_id" in build_prompt("q", TABLES, "sqlite", user_placeholder=":user_id")
        assert ":user_id" not in build_prompt("q", TABLES, "sqlite")

    def test_tables_prompt(self) -> None:
        prompt = build_tables_prompt("Who buys most?", TABLES)

        assert "Table Names: orders, customers" in prompt
        assert "Question: Who buys most?" in prompt
        assert prompt.endswith("Relevant Table Names:")
