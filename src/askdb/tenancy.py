"""
askdb/tenancy.py

Tenant resolution: secret key -> (company_id, user_id).

A session is either unscoped (tenant is None) or scoped to exactly one
TenantContext. The context is immutable and passed explicitly to every stage
that filters by tenant, so concurrent sessions never share mutable identity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from askdb.errors import TenantNotFoundError
from askdb.policies import DirectoryConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantContext:
    """Identity every schema listing and query must be filtered by."""
    company_id: str
    user_id: Optional[str] = None

    def __repr__(self) -> str:
        return f"TenantContext(company_id={self.company_id!r}, user_id={self.user_id!r})"


class SqlTenantDirectory:
    """
    Tenant directory backed by two tables in the target store.

    Defaults mirror the usual chatbot layout:
      chat_bots(secret_key, company_id)  and  companies(id, user_id)
    Identifiers come from the policy, values are always bound parameters.
    """

    def __init__(self, engine: Engine, config: Optional[DirectoryConfig] = None) -> None:
        self.engine = engine
        self.config = config or DirectoryConfig()

    def find_by_secret_key(self, secret_key: str) -> Optional[str]:
        c = self.config
        sql = text(
            f"SELECT {c.company_column} FROM {c.secret_table} "
            f"WHERE {c.secret_column} = :secret_key"
        )
        with self.engine.connect() as conn:
            row = conn.execute(sql, {"secret_key": secret_key}).first()
        return None if row is None else str(row[0])

    def find_company(self, company_id: str) -> Optional[str]:
        c = self.config
        sql = text(
            f"SELECT {c.user_column} FROM {c.company_table} "
            f"WHERE {c.company_id_column} = :company_id"
        )
        with self.engine.connect() as conn:
            row = conn.execute(sql, {"company_id": company_id}).first()
        if row is None or row[0] is None:
            return None
        return str(row[0])


def resolve_tenant(directory: SqlTenantDirectory, secret_key: str) -> Optional[TenantContext]:
    """
    Look up the tenant owning `secret_key`.

    Returns:
      TenantContext on a match, None when the key is unknown (or blank).

    Raises:
      TenantNotFoundError if the directory itself fails (missing table, DB down).
      There is no retry.
    """
    secret_key = (secret_key or "").strip()
    if not secret_key:
        return None

    try:
        company_id = directory.find_by_secret_key(secret_key)
        if company_id is None:
            logger.info("No tenant matches the supplied secret key")
            return None
        user_id = directory.find_company(company_id)
    except SQLAlchemyError as e:
        logger.error("Tenant directory lookup failed: %s", e)
        raise TenantNotFoundError(e) from e

    tenant = TenantContext(company_id=company_id, user_id=user_id)
    logger.info(
        "Bound tenant company_id=%s user_id=%s",
        tenant.company_id,
        tenant.user_id,
        extra={"company_id": tenant.company_id, "user_id": tenant.user_id},
    )
    return tenant
