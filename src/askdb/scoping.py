"""
askdb/scoping.py

Tenant scoping of synthesized SQL.

Two strategies, selected by OraclePolicy.scoping:

clause (default)
  Parse the query with sqlglot and drop every predicate that mentions the
  secret key column from WHERE, HAVING and JOIN ... ON (the model likes to
  hallucinate `WHERE secret_key = '...'`). Then, for every SELECT in the tree,
  subqueries and CTE bodies included, drop its predicates on the tenant column
  and AND in `<table>.<tenant_column> = <company_id>` for each base table in
  its FROM and JOINs. Re-scoping an already scoped query yields the same query.
  Tables listed in table_owners need no predicate when the tenant owns them and
  are refused when another tenant does.

placeholder
  The model is told to write the user placeholder (default `:user_id`). Every
  outer SELECT must compare a column to the placeholder as a top-level AND
  conjunct of its WHERE. The placeholder is bound as a parameter for both the
  existence check and the execution.

Unscoped sessions (tenant is None) get the query back unchanged apart from
trailing semicolons/whitespace.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from sqlglot import exp
from sqlglot.errors import ParseError

from askdb.errors import QueryValidationError, TenantScopeError
from askdb.policies import OraclePolicy
from askdb.tenancy import TenantContext
from askdb.validate import enforce_select_only, parse_sql

logger = logging.getLogger(__name__)

SET_OPERATIONS = (exp.Union, exp.Intersect, exp.Except)


@dataclass(frozen=True)
class ScopedQuery:
    """Final SQL plus the bind parameters it must be executed with."""
    sql: str
    params: Dict[str, Any] = field(default_factory=dict)


def trim_query(sql: str) -> str:
    """Strip surrounding whitespace and trailing semicolons."""
    return sql.strip().rstrip(";").strip()


def scope_query(
    sql: str,
    tenant: Optional[TenantContext],
    policy: OraclePolicy,
    dialect: str = "",
) -> ScopedQuery:
    """
    Rewrite `sql` so it only returns rows belonging to `tenant`.

    Raises:
      QueryValidationError if the query cannot be parsed.
      UnsafeQueryError if it is not a SELECT.
      TenantScopeError if the query reads another tenant's table, or the
      placeholder strategy finds no usable placeholder filter.
    """
    sql = trim_query(sql)
    if tenant is None:
        return ScopedQuery(sql)

    try:
        tree = parse_sql(sql, dialect)
    except ParseError as e:
        raise QueryValidationError(sql, e) from e
    enforce_select_only(tree, sql)

    _drop_predicates(tree, {policy.secret_key_column.lower()})

    if policy.scoping == "placeholder":
        scoped = _bind_placeholder(tree, tenant, policy, dialect)
    else:
        _scope_selects(tree, policy, tenant.company_id, sql)
        scoped = ScopedQuery(tree.sql(dialect=dialect or None))

    logger.debug("Scoped query for company_id=%s: %s", tenant.company_id, scoped.sql)
    return scoped


def _bind_placeholder(
    tree: exp.Expression, tenant: TenantContext, policy: OraclePolicy, dialect: str
) -> ScopedQuery:
    sql = tree.sql(dialect=dialect or None)
    name = policy.placeholder_name
    for select in _outer_selects(tree):
        if not _has_placeholder_filter(select, name):
            raise TenantScopeError(
                sql, f"Every SELECT must filter with `<column> = {policy.user_placeholder}` in its WHERE"
            )
    if tenant.user_id is None:
        raise TenantScopeError(sql, "No user is bound to the current company")
    return ScopedQuery(sql, {name: tenant.user_id})


# ----------------------------
# AST helpers
# ----------------------------

def _conjuncts(condition: exp.Expression) -> List[exp.Expression]:
    condition = condition.unnest()
    if isinstance(condition, exp.And):
        return list(condition.flatten())
    return [condition]


def _references(node: exp.Expression, columns: Set[str], scope: Optional[exp.Expression] = None) -> bool:
    """True if `node` mentions one of `columns`; with `scope`, only columns of that SELECT count."""
    for c in node.find_all(exp.Column):
        if c.name.lower() in columns and (scope is None or c.find_ancestor(exp.Select) is scope):
            return True
    return False


def _filter_condition(node: exp.Expression, columns: Set[str], scope: Optional[exp.Expression] = None) -> None:
    """
    Remove conjuncts referencing `columns` from a WHERE, HAVING or JOIN ... ON.
    An emptied WHERE/HAVING is dropped; an emptied ON is removed from the join.
    """
    arg = "on" if isinstance(node, exp.Join) else "this"
    condition = node.args.get(arg)
    if condition is None:
        return

    conds = _conjuncts(condition)
    kept = [c for c in conds if not _references(c, columns, scope)]
    if len(kept) == len(conds):
        return
    if kept:
        node.set(arg, exp.and_(*kept, copy=False))
    elif isinstance(node, exp.Join):
        node.set("on", None)
    else:
        node.pop()


def _drop_predicates(tree: exp.Expression, columns: Set[str]) -> None:
    """Apply _filter_condition to every WHERE, HAVING and JOIN, innermost first."""
    for node in reversed(list(tree.find_all(exp.Where, exp.Having, exp.Join))):
        _filter_condition(node, columns)


def _literal(value: str) -> exp.Literal:
    if re.fullmatch(r"-?\d+", value):
        return exp.Literal.number(value)
    return exp.Literal.string(value)


def _outer_selects(node: exp.Expression) -> List[exp.Expression]:
    if isinstance(node, SET_OPERATIONS):
        return _outer_selects(node.left) + _outer_selects(node.right)
    if isinstance(node, exp.Subquery):
        return _outer_selects(node.this)
    return [node]


def _base_tables(select: exp.Select, cte_names: Set[str]) -> List[exp.Table]:
    """Physical tables read directly by `select` (FROM + JOINs, CTE references excluded)."""
    sources: List[exp.Expression] = []
    from_ = select.args.get("from") or select.args.get("from_")
    if from_ is not None:
        sources.append(from_.this)
        sources.extend(from_.args.get("expressions") or [])
    sources.extend(join.this for join in select.args.get("joins") or [])

    # a CTE reference is never schema-qualified
    return [
        s for s in sources
        if isinstance(s, exp.Table) and (s.args.get("db") or s.name.lower() not in cte_names)
    ]


def _scope_selects(tree: exp.Expression, policy: OraclePolicy, company_id: str, sql: str) -> None:
    """Filter every SELECT in `tree` on the tenant column of each table it reads."""
    column = policy.tenant_column
    cte_names = {cte.alias_or_name.lower() for cte in tree.find_all(exp.CTE)}

    # innermost first, so rewriting an outer WHERE carries already scoped subqueries along
    for select in reversed(list(tree.find_all(exp.Select))):
        where = select.args.get("where")
        if where is not None:
            _filter_condition(where, {column.lower()}, scope=select)

        tables = _base_tables(select, cte_names)
        qualify = len(tables) > 1 or bool(select.args.get("joins"))
        predicates = []
        for table in tables:
            owner = policy.table_owners.get(table.name.lower())
            if owner is not None:
                if owner != company_id:
                    raise TenantScopeError(sql, f"Table {table.name} belongs to another tenant")
                continue
            qualifier = table.alias_or_name if qualify else None
            predicates.append(exp.EQ(this=exp.column(column, table=qualifier), expression=_literal(company_id)))

        if predicates:
            select.where(*predicates, append=True, copy=False)


def _has_placeholder_filter(select: exp.Expression, name: str) -> bool:
    """True if a top-level AND conjunct of the WHERE is `<column> = :name`."""
    where = select.args.get("where")
    if where is None:
        return False
    for cond in _conjuncts(where.this):
        if not isinstance(cond, exp.EQ):
            continue
        sides = (cond.this, cond.expression)
        if any(isinstance(s, exp.Placeholder) and s.name == name for s in sides) and any(
            isinstance(s, exp.Column) for s in sides
        ):
            return True
    return False
