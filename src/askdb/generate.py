"""
askdb/generate.py

LLM interaction layer: the completion oracle and the chat oracle.

Why this module exists:
- Encapsulates the LLM client initialization and call pattern.
- Keeps the rest of the codebase independent of a specific LLM provider.

Current implementation:
- Uses LangChain ChatOpenAI for both oracles.
- Completion calls pass temperature / max_tokens / stop per call, so one client
  serves SQL synthesis (temperature 0) and answers (warmer).
- Timeouts surface as OracleTimeoutError; there are no retries.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

import openai
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from askdb.errors import OracleTimeoutError

logger = logging.getLogger(__name__)

FALLBACK_ANSWER = "I'm sorry, I don't know the answer to that question."

_FENCE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")
_ROLES = {"system": SystemMessage, "user": HumanMessage, "assistant": AIMessage}


def make_llm(
    model: str = "gpt-4o-mini",
    temperature: float = 0.0,
    timeout: Optional[float] = 30.0,
    api_key: Optional[str] = None,
) -> ChatOpenAI:
    """
    Create an LLM client.

    Args:
      model:
        Model name (OpenAI). Ex: "gpt-4o-mini"
      temperature:
        Default sampling temperature; complete() overrides it per call.
      timeout:
        Request timeout in seconds. Bounded so a stuck call cannot hang a session.
      api_key:
        Falls back to OPENAI_API_KEY from the environment when omitted.
    """
    kwargs = {"api_key": api_key} if api_key else {}
    return ChatOpenAI(model=model, temperature=temperature, timeout=timeout, max_retries=0, **kwargs)


def clean_completion(text: str) -> str:
    """Trim whitespace, markdown fences and a single layer of double quotes."""
    text = _FENCE.sub("", (text or "").strip()).strip()
    if text.startswith('"'):
        text = text[1:]
    if text.endswith('"'):
        text = text[:-1]
    return text.strip()


def complete(
    llm,
    prompt: str,
    stop: str = "\n",
    temperature: float = 0.0,
    max_tokens: int = 100,
) -> str:
    """
    Call the completion oracle and return its raw text.

    An empty completion is replaced by FALLBACK_ANSWER instead of propagating
    emptiness to later stages.
    """
    logger.debug("Completion call: %d prompt chars, temperature=%s", len(prompt), temperature)
    try:
        resp = llm.invoke(prompt, stop=[stop], temperature=temperature, max_tokens=max_tokens)
    except openai.APITimeoutError as e:
        raise OracleTimeoutError(getattr(llm, "request_timeout", None)) from e

    text = resp.content if isinstance(resp.content, str) else ""
    if not text.strip():
        logger.warning("Completion oracle returned no text; using fallback answer")
        return FALLBACK_ANSWER
    return text


def chat(llm, messages: List[Dict[str, str]]) -> str:
    """
    Call the chat oracle with [{"role": ..., "content": ...}, ...].

    Roles are system / user / assistant.
    """
    converted: List[BaseMessage] = [_ROLES[m["role"]](content=m["content"]) for m in messages]
    try:
        resp = llm.invoke(converted)
    except openai.APITimeoutError as e:
        raise OracleTimeoutError(getattr(llm, "request_timeout", None)) from e

    text = resp.content if isinstance(resp.content, str) else ""
    return text.strip() or FALLBACK_ANSWER
