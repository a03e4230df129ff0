"""
askdb/policies.py

Oracle policy loading + compilation.

Why this exists:
- YAML is user-friendly, but the pipeline wants a typed, immutable object it can
  pass to every stage without re-reading or re-validating anything.
- We keep the "policy model" (OraclePolicy) separate from UI code so it can be
  reused across Streamlit, tests, and batch jobs.

Policy features supported:
- connection (named store to target, see config.resolve_db_url)
- strict_mode (enable the forbidden-keyword blocklist)
- max_tables_before_performing_lookup (catalog size that triggers relevance filtering)
- require_tenant + scoping strategy (multi-tenant isolation)
- table_owners / shared_tables (which tables a tenant may see)
- tenant directory table/column names
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

import yaml

SCOPING_STRATEGIES = ("clause", "placeholder")


@dataclass(frozen=True)
class DirectoryConfig:
    """Where the tenant directory lives in the store."""
    secret_table: str = "chat_bots"
    secret_column: str = "secret_key"
    company_column: str = "company_id"
    company_table: str = "companies"
    company_id_column: str = "id"
    user_column: str = "user_id"


@dataclass(frozen=True)
class OraclePolicy:
    """
    Immutable, runtime-friendly representation of the oracle policy.

    Fields:
      strict_mode:
        - when True, queries containing insert/update/delete/... are refused
      max_tables_before_performing_lookup:
        - catalogs with at least this many tables go through the relevance filter
      require_tenant:
        - ask() answers with a clarification request until a tenant is bound
      scoping:
        - "clause": drop secret-key predicates, AND in `<tenant_column> = <company_id>`
        - "placeholder": the model writes `user_placeholder`, bound to the user id
      table_owners:
        - table name -> owning company id; tenants only see their own tables
      shared_tables:
        - tables every tenant may see (e.g. tables carrying a company_id column)
    """
    connection: str = "default"
    strict_mode: bool = True
    max_tables_before_performing_lookup: int = 15
    require_tenant: bool = False

    scoping: str = "clause"
    tenant_column: str = "company_id"
    secret_key_column: str = "secret_key"
    user_placeholder: str = ":user_id"

    table_owners: Dict[str, str] = field(default_factory=dict)
    shared_tables: List[str] = field(default_factory=list)

    max_tokens: int = 100
    answer_temperature: float = 0.7

    directory: DirectoryConfig = field(default_factory=DirectoryConfig)

    @property
    def placeholder_name(self) -> str:
        """Bind-parameter name for the user placeholder (":user_id" -> "user_id")."""
        return self.user_placeholder.lstrip(":")


def load_policy(path: str) -> Dict[str, Any]:
    """
    Load policy YAML from disk into a plain Python dict.

    Kept separate from compile_policy() so unit tests can feed in dicts directly.
    """
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def compile_policy(raw: Dict[str, Any]) -> OraclePolicy:
    """
    Compile a raw policy dict into OraclePolicy.

    This fills defaults, coerces types and rejects unknown scoping strategies.
    Table owner ids are stored as strings so they compare equal to ids read
    back from the directory regardless of the column type.
    """
    scoping = str(raw.get("scoping", "clause")).lower()
    if scoping not in SCOPING_STRATEGIES:
        raise ValueError(f"Unknown scoping strategy '{scoping}', expected one of {SCOPING_STRATEGIES}")

    placeholder = str(raw.get("user_placeholder", ":user_id"))
    if not placeholder.startswith(":"):
        placeholder = f":{placeholder}"

    owners = raw.get("table_owners") or {}
    directory = raw.get("directory") or {}

    return OraclePolicy(
        connection=str(raw.get("connection", "default")),
        strict_mode=bool(raw.get("strict_mode", True)),
        max_tables_before_performing_lookup=int(raw.get("max_tables_before_performing_lookup", 15)),
        require_tenant=bool(raw.get("require_tenant", False)),
        scoping=scoping,
        tenant_column=str(raw.get("tenant_column", "company_id")),
        secret_key_column=str(raw.get("secret_key_column", "secret_key")),
        user_placeholder=placeholder,
        table_owners={str(t).lower(): str(owner) for t, owner in owners.items()},
        shared_tables=[str(t).lower() for t in raw.get("shared_tables") or []],
        max_tokens=int(raw.get("max_tokens", 100)),
        answer_temperature=float(raw.get("answer_temperature", 0.7)),
        directory=DirectoryConfig(**directory),
    )
