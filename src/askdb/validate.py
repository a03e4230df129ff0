"""
askdb/validate.py

SQL safety checks for synthesized queries.

- ensure_safe(): strict-mode keyword blocklist. A plain case-insensitive
  substring scan, not a parser: "updated_at" or a literal containing "drop"
  also trips it. That false-positive rate is accepted.
- parse_sql() / enforce_select_only(): sqlglot helpers used by the tenant
  scoper, which needs an AST anyway.
"""

from __future__ import annotations

import logging

import sqlglot
from sqlglot import exp
from sqlglot.errors import ParseError

from askdb.errors import UnsafeQueryError

logger = logging.getLogger(__name__)

FORBIDDEN_WORDS = ("insert", "update", "delete", "alter", "drop", "truncate", "create", "replace")

# SQLAlchemy dialect name -> sqlglot dialect name
_SQLGLOT_DIALECTS = {
    "postgresql": "postgres",
    "mssql": "tsql",
    "mysql": "mysql",
    "mariadb": "mysql",
    "sqlite": "sqlite",
    "oracle": "oracle",
    "snowflake": "snowflake",
    "bigquery": "bigquery",
    "duckdb": "duckdb",
}


def sqlglot_dialect(name: str) -> str:
    """Map a SQLAlchemy dialect name to the sqlglot one (empty string = generic)."""
    return _SQLGLOT_DIALECTS.get((name or "").lower(), "")


def ensure_safe(sql: str, strict_mode: bool) -> None:
    """
    Refuse mutating / DDL statements when strict mode is on.

    Raises:
      UnsafeQueryError carrying the offending query text.
    """
    if not strict_mode:
        return

    lowered = sql.lower()
    hits = [w for w in FORBIDDEN_WORDS if w in lowered]
    if hits:
        logger.warning("Refusing query containing %s", hits)
        raise UnsafeQueryError(sql)


def parse_sql(sql: str, dialect: str = "") -> exp.Expression:
    """Parse SQL into a sqlglot AST; ParseError propagates to the caller."""
    tree = sqlglot.parse_one(sql, read=dialect or None)
    if tree is None:
        raise ParseError(f"Empty statement: {sql!r}")
    return tree


def is_select(tree: exp.Expression) -> bool:
    """True for SELECT, WITH ... SELECT and set operations of SELECTs."""
    if isinstance(tree, exp.Select):
        return True
    if isinstance(tree, (exp.Union, exp.Intersect, exp.Except)):
        return is_select(tree.left) and is_select(tree.right)
    if isinstance(tree, exp.Subquery):
        return is_select(tree.this)
    return False


def enforce_select_only(tree: exp.Expression, sql: str) -> None:
    """Refuse anything that is not a read-only SELECT."""
    if not is_select(tree):
        raise UnsafeQueryError(sql, "Only SELECT queries are allowed")
