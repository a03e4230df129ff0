"""Tests for the completion / chat oracle wrappers."""

from __future__ import annotations

import httpx
import openai
import pytest
from langchain_core.messages import HumanMessage, SystemMessage

from askdb.errors import OracleTimeoutError
from askdb.generate import FALLBACK_ANSWER, chat, clean_completion, complete


def _timeout() -> openai.APITimeoutError:
    return openai.APITimeoutError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))


class TestCleanCompletion:
    """Whitespace / quote / fence stripping."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ('  SELECT * FROM orders"  ', "SELECT * FROM orders"),
            ('"SELECT 1"', "SELECT 1"),
            ("```sql\nSELECT 1\n```", "SELECT 1"),
            ("SELECT name FROM t WHERE name = 'x'", "SELECT name FROM t WHERE name = 'x'"),
        ],
    )
    def test_cleanup(self, raw: str, expected: str) -> None:
        assert clean_completion(raw) == expected

    def test_single_layer_only(self) -> None:
        """Only one quote is removed from each end."""
        assert clean_completion('""hi""') == '"hi"'


class TestComplete:
    """Completion oracle calls."""

    def test_passes_sampling_parameters(self, fake_llm) -> None:
        """Temperature, token budget and stop sequence reach the model."""
        llm = fake_llm(["SELECT 1"])

        assert complete(llm, "prompt", stop="\n", temperature=0.0, max_tokens=100) == "SELECT 1"
        assert llm.calls == [{"input": "prompt", "stop": ["\n"], "temperature": 0.0, "max_tokens": 100}]

    def test_empty_completion_falls_back(self, fake_llm) -> None:
        """An empty reply becomes the fixed apology."""
        assert complete(fake_llm(["   "]), "prompt") == FALLBACK_ANSWER

    def test_timeout_is_distinct(self, fake_llm) -> None:
        """Timeouts surface as a retryable OracleTimeoutError."""
        with pytest.raises(OracleTimeoutError) as exc:
            complete(fake_llm(error=_timeout()), "prompt")
        assert exc.value.retryable


class TestChat:
    """Chat oracle calls."""

    def test_roles_converted(self, fake_llm) -> None:
        llm = fake_llm(["  Sorry, no such data.  "])

        reply = chat(llm, [{"role": "system", "content": "be nice"}, {"role": "user", "content": "q"}])

        assert reply == "Sorry, no such data."
        sent = llm.calls[0]["input"]
        assert isinstance(sent[0], SystemMessage) and sent[0].content == "be nice"
        assert isinstance(sent[1], HumanMessage) and sent[1].content == "q"

    def test_timeout_is_distinct(self, fake_llm) -> None:
        with pytest.raises(OracleTimeoutError):
            chat(fake_llm(error=_timeout()), [{"role": "user", "content": "q"}])
