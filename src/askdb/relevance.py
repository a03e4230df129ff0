"""
askdb/relevance.py

Table resolution for one question: catalog -> tenant filter -> relevance filter.

Large catalogs blow up the prompt, so past `max_tables_before_performing_lookup`
tables the completion oracle is asked which tables matter for the question.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from askdb.generate import complete
from askdb.policies import OraclePolicy
from askdb.prompt import build_tables_prompt
from askdb.schema import SchemaCatalog, TableInfo, tables_for_tenant
from askdb.tenancy import TenantContext

logger = logging.getLogger(__name__)


def narrow_tables(llm, question: str, tables: List[TableInfo], max_tokens: int = 100) -> List[TableInfo]:
    """
    Keep only the tables the oracle names as relevant to `question`.

    The oracle answers with a comma-separated list. Matching is
    case-insensitive on the table name and the catalog order is preserved.
    Unrecognized names are ignored, so the result may be empty.
    """
    prompt = build_tables_prompt(question, tables)
    answer = complete(llm, prompt, stop="\n", temperature=0.0, max_tokens=max_tokens)

    wanted = {name.strip().strip('"').lower() for name in answer.split(",")}
    wanted.discard("")

    narrowed = [t for t in tables if t.name.lower() in wanted]
    logger.debug("Relevance filter kept %d of %d tables: %s", len(narrowed), len(tables), [t.name for t in narrowed])
    return narrowed


class TableResolver:
    """
    Resolves the tables for a question, memoized for the life of the resolver.

    DatabaseOracle creates one per ask() call, so pass 1 and pass 2 share the
    introspection result while separate calls see a fresh catalog.
    """

    def __init__(
        self,
        catalog: SchemaCatalog,
        llm,
        policy: OraclePolicy,
        tenant: Optional[TenantContext] = None,
    ) -> None:
        self.catalog = catalog
        self.llm = llm
        self.policy = policy
        self.tenant = tenant
        self._cache: Dict[str, List[TableInfo]] = {}

    def resolve(self, question: str) -> List[TableInfo]:
        if question in self._cache:
            return self._cache[question]

        tables = tables_for_tenant(self.catalog.list_tables(), self.tenant, self.policy)
        if len(tables) >= self.policy.max_tables_before_performing_lookup:
            tables = narrow_tables(self.llm, question, tables, self.policy.max_tokens)

        self._cache[question] = tables
        return tables
