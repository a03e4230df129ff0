"""Tests for secret-key tenant resolution."""

from __future__ import annotations

import logging

import pytest

from askdb.errors import TenantNotFoundError
from askdb.tenancy import SqlTenantDirectory, TenantContext, resolve_tenant


class TestResolveTenant:
    """Directory lookups."""

    def test_known_key(self, engine) -> None:
        """Secret key resolves to company and its user."""
        tenant = resolve_tenant(SqlTenantDirectory(engine), "sk-acme")
        assert tenant == TenantContext(company_id="7", user_id="70")

    def test_unknown_key(self, engine) -> None:
        assert resolve_tenant(SqlTenantDirectory(engine), "sk-nope") is None

    def test_blank_key(self, engine) -> None:
        assert resolve_tenant(SqlTenantDirectory(engine), "   ") is None

    def test_company_without_record(self, engine) -> None:
        """A company missing from the companies table has no user."""
        tenant = resolve_tenant(SqlTenantDirectory(engine), "sk-orphan")
        assert tenant == TenantContext(company_id="9", user_id=None)

    def test_directory_failure(self, empty_engine) -> None:
        """A broken directory is a terminal TenantNotFoundError."""
        with pytest.raises(TenantNotFoundError, match="could not find the company"):
            resolve_tenant(SqlTenantDirectory(empty_engine), "sk-acme")

    def test_binding_is_audited(self, engine, caplog) -> None:
        """Binding logs the identity with structured fields."""
        with caplog.at_level(logging.INFO, logger="askdb.tenancy"):
            resolve_tenant(SqlTenantDirectory(engine), "sk-globex")

        record = next(r for r in caplog.records if "Bound tenant" in r.getMessage())
        assert record.company_id == "8"
        assert record.user_id == "80"
