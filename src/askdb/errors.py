"""
askdb/errors.py

Exceptions raised by the question-answering pipeline.

Two families matter to callers:
- UnsafeQueryError (and TenantScopeError) mean the pipeline REFUSED a query.
  These escape DatabaseOracle.ask() so the host can tell "refused" from "failed".
- Everything else is a failure. ask() logs it and returns a generic apology.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class AskDatabaseError(Exception):
    """Base exception for all askdb errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Return the error as a JSON-serializable dict (for logs / API responses)."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class UnsafeQueryError(AskDatabaseError):
    """Candidate SQL contains a forbidden keyword or is not a single SELECT."""

    def __init__(self, query: str, reason: str = "Potentially unsafe query") -> None:
        super().__init__(f"{reason}: {query}" if query else reason, {"query": query})
        self.query = query


class TenantScopeError(UnsafeQueryError):
    """Candidate SQL cannot be restricted to the bound tenant."""

    def __init__(self, query: str, reason: str = "Query cannot be scoped to the current tenant") -> None:
        super().__init__(query, reason)


class TenantNotFoundError(AskDatabaseError):
    """The tenant directory could not resolve a secret key."""

    def __init__(self, cause: Optional[BaseException] = None) -> None:
        super().__init__(
            "Sorry, I could not find the company you are looking for.",
            {"cause": str(cause) if cause else None},
        )


class QueryValidationError(AskDatabaseError):
    """The existence-check COUNT(*) query failed to execute."""

    def __init__(self, query: str, cause: BaseException) -> None:
        super().__init__(
            f"Failed to validate data existence with query '{query}': {cause}",
            {"query": query, "cause": str(cause)},
        )
        self.query = query
        self.cause = cause


class OracleTimeoutError(AskDatabaseError):
    """A language-model call did not finish within the configured timeout."""

    retryable = True

    def __init__(self, timeout: Optional[float] = None) -> None:
        super().__init__(
            f"Language model call timed out after {timeout}s" if timeout else "Language model call timed out",
            {"timeout": timeout},
        )
