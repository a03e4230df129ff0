"""
askdb/pipeline.py

DatabaseOracle: the question-answering pipeline.

    question
      -> tables (tenant filter, relevance filter)      relevance.TableResolver
      -> prompt pass 1 -> SQL                          prompt / generate
      -> strict-mode blocklist                         validate.ensure_safe
      -> tenant scoping                                scoping.scope_query
      -> COUNT(*) pre-check (may answer "no data")     existence.ensure_has_data
      -> execute, first row                            execute.fetch_first_row
      -> prompt pass 2 -> answer                       prompt / generate

One instance per session: it holds the bound tenant, and each call snapshots
that binding and passes it explicitly to every stage. Instances must not be
shared between concurrent sessions.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from sqlalchemy.engine import Engine

from askdb.config import Settings, resolve_db_url
from askdb.errors import TenantScopeError, UnsafeQueryError
from askdb.execute import fetch_first_row, make_engine
from askdb.existence import ensure_has_data
from askdb.generate import FALLBACK_ANSWER, clean_completion, complete, make_llm
from askdb.policies import OraclePolicy
from askdb.prompt import build_prompt
from askdb.relevance import TableResolver
from askdb.schema import SchemaCatalog
from askdb.scoping import scope_query
from askdb.tenancy import SqlTenantDirectory, TenantContext, resolve_tenant
from askdb.validate import ensure_safe, sqlglot_dialect

logger = logging.getLogger(__name__)

CLARIFICATION = "Please provide me the secret key to answer to your question?"
GENERIC_APOLOGY = "Sorry, something went wrong while answering your question."


class DatabaseOracle:
    """Answers natural-language questions about one database, for one session."""

    def __init__(
        self,
        engine: Engine,
        llm,
        policy: Optional[OraclePolicy] = None,
        chat_llm=None,
        directory: Optional[SqlTenantDirectory] = None,
    ) -> None:
        self.engine = engine
        self.llm = llm
        self.chat_llm = chat_llm or llm
        self.policy = policy or OraclePolicy()
        self.directory = directory or SqlTenantDirectory(engine, self.policy.directory)
        # the secret-key table is never shown to the model
        self.catalog = SchemaCatalog(
            engine,
            self.policy.table_owners,
            exclude=[self.policy.directory.secret_table],
        )
        self.tenant: Optional[TenantContext] = None

    @classmethod
    def from_settings(cls, settings: Settings, policy: OraclePolicy) -> "DatabaseOracle":
        engine = make_engine(resolve_db_url(settings, policy.connection))
        llm = make_llm(settings.llm_model, timeout=settings.llm_timeout, api_key=settings.openai_api_key)
        return cls(engine, llm, policy)

    # ----------------------------
    # Tenant binding
    # ----------------------------

    def authenticate_with_secret_key(self, secret_key: str) -> bool:
        """
        Bind the tenant owning `secret_key`. Rebinding replaces the previous
        tenant; an unknown key leaves the session unbound.

        Raises:
          TenantNotFoundError when the directory lookup itself fails; the
          session is left unbound.
        """
        self.tenant = None
        self.tenant = resolve_tenant(self.directory, secret_key)
        return self.tenant is not None

    # ----------------------------
    # Host operations
    # ----------------------------

    def get_query(self, question: str) -> str:
        """Return the safety-checked, tenant-scoped SQL for `question` without running it."""
        tenant = self.tenant
        if self.policy.require_tenant and tenant is None:
            raise TenantScopeError("", "A tenant must be authenticated before generating SQL")

        dialect = self.catalog.dialect_name()
        resolver = TableResolver(self.catalog, self.llm, self.policy, tenant)
        sql = self._synthesize(question, resolver, dialect)
        if sql == FALLBACK_ANSWER:
            return sql
        return scope_query(sql, tenant, self.policy, sqlglot_dialect(dialect)).sql

    def ask(self, question: str) -> str:
        """
        Answer `question` in natural language.

        UnsafeQueryError propagates so callers can tell a refusal apart.
        Any other failure is logged and turned into GENERIC_APOLOGY.
        """
        tenant = self.tenant
        if self.policy.require_tenant and tenant is None:
            return CLARIFICATION

        try:
            return self._answer(question, tenant)
        except UnsafeQueryError:
            raise
        except Exception:
            logger.exception("Failed to answer question %r", question)
            return GENERIC_APOLOGY

    # ----------------------------
    # Stages
    # ----------------------------

    def _user_placeholder(self) -> Optional[str]:
        return self.policy.user_placeholder if self.policy.scoping == "placeholder" else None

    def _synthesize(self, question: str, resolver: TableResolver, dialect: str) -> str:
        prompt = build_prompt(
            question,
            resolver.resolve(question),
            dialect,
            user_placeholder=self._user_placeholder(),
        )
        raw = complete(self.llm, prompt, stop="\n", temperature=0.0, max_tokens=self.policy.max_tokens)
        if raw == FALLBACK_ANSWER:
            return raw

        sql = clean_completion(raw)
        logger.debug("Synthesized SQL: %s", sql)
        ensure_safe(sql, self.policy.strict_mode)
        return sql

    def _answer(self, question: str, tenant: Optional[TenantContext]) -> str:
        dialect = self.catalog.dialect_name()
        resolver = TableResolver(self.catalog, self.llm, self.policy, tenant)

        sql = self._synthesize(question, resolver, dialect)
        if sql == FALLBACK_ANSWER:
            return sql

        scoped = scope_query(sql, tenant, self.policy, sqlglot_dialect(dialect))
        checked = ensure_has_data(self.engine, self.chat_llm, question, scoped)
        if isinstance(checked, str):
            return checked

        row = fetch_first_row(self.engine, checked.sql, checked.params)
        prompt = build_prompt(
            question,
            resolver.resolve(question),
            dialect,
            query=checked.sql,
            result=json.dumps(row, default=str),
            user_placeholder=self._user_placeholder(),
        )
        answer = complete(
            self.llm,
            prompt,
            stop="\n",
            temperature=self.policy.answer_temperature,
            max_tokens=self.policy.max_tokens,
        )
        return clean_completion(answer)
