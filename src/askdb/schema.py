"""
askdb/schema.py

Database schema introspection utilities.

Why this module exists:
- Text-to-SQL needs grounding: the model must know what tables/columns exist.
- We use SQLAlchemy's Inspector API so this works across many databases:
  SQLite, Postgres, MySQL, etc.

What it provides:
- SchemaCatalog: list_tables() + dialect_name() over one Engine
- tables_for_tenant(): keep only the tables a tenant may see
- schema_to_text(): compact, prompt-friendly rendering of TableInfo objects

Introspection is not cached here; callers memoize per question (see relevance.TableResolver).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from askdb.policies import OraclePolicy
from askdb.tenancy import TenantContext


@dataclass(frozen=True)
class TableInfo:
    """
    Simple immutable container for table metadata.

    Fields:
      name:
        Table name as reported by SQLAlchemy inspector.
      columns:
        List of (column_name, column_type_string). Types are strings because they
        are easy to display in prompts and vary per DB dialect.
      tenant_id:
        Owning company id, or None for tables without an owner.
    """
    name: str
    columns: Tuple[Tuple[str, str], ...] = ()
    tenant_id: Optional[str] = None


class SchemaCatalog:
    """Lists the tables and the SQL dialect of one store."""

    def __init__(
        self,
        engine: Engine,
        table_owners: Optional[Dict[str, str]] = None,
        exclude: Iterable[str] = (),
    ) -> None:
        self.engine = engine
        self.table_owners = {k.lower(): v for k, v in (table_owners or {}).items()}
        self.exclude = {t.lower() for t in exclude}

    def list_tables(self) -> List[TableInfo]:
        """Introspect every table (minus excluded ones) with its columns."""
        insp = inspect(self.engine)
        out: List[TableInfo] = []
        for name in insp.get_table_names():
            if name.lower() in self.exclude:
                continue
            cols = tuple((c["name"], str(c["type"])) for c in insp.get_columns(name))
            out.append(TableInfo(name=name, columns=cols, tenant_id=self.table_owners.get(name.lower())))
        return out

    def dialect_name(self) -> str:
        """SQLAlchemy dialect name, e.g. "sqlite", "postgresql", "mysql"."""
        return self.engine.dialect.name


def tables_for_tenant(
    tables: List[TableInfo], tenant: Optional[TenantContext], policy: OraclePolicy
) -> List[TableInfo]:
    """
    Filter tables to the ones a tenant may see.

    Unscoped sessions (tenant is None) see everything. Scoped sessions see the
    tables they own (equality on tenant id) plus the policy's shared_tables.
    """
    if tenant is None:
        return list(tables)

    shared = set(policy.shared_tables)
    return [
        t for t in tables
        if t.tenant_id == tenant.company_id or t.name.lower() in shared
    ]


def schema_to_text(schema: List[TableInfo]) -> str:
    """
    Convert TableInfo objects into a compact schema string suitable for LLM prompts.

    Format example:
      - customers(customer_id:INTEGER, first_name:VARCHAR, ...)
      - invoices(invoice_id:INTEGER, customer_id:INTEGER, ...)
    """
    lines = []
    for t in schema:
        cols = ", ".join([f"{c}:{typ}" for c, typ in t.columns])
        lines.append(f"- {t.name}({cols})")
    return "\n".join(lines)
