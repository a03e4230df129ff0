"""
askdb/execute.py

Query execution against the configured store.

All SQL goes through sqlalchemy.text() with bound parameters; the pipeline
issues one statement at a time and never holds a transaction across stages.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import pandas as pd
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine


def make_engine(db_url: str) -> Engine:
    return create_engine(db_url, pool_pre_ping=True)


def run_query(engine: Engine, sql: str, params: Optional[Dict[str, Any]] = None) -> pd.DataFrame:
    with engine.connect() as conn:
        result = conn.execute(text(sql), params or {})
        rows = result.fetchall()
        cols = result.keys()
    return pd.DataFrame(rows, columns=cols)


def fetch_first_row(engine: Engine, sql: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Execute the final query and return its first row as a plain dict.

    An empty result gives {}; that only happens when the data changed between
    the existence check and this call.
    """
    df = run_query(engine, sql, params)
    if df.empty:
        return {}
    return df.head(1).to_dict(orient="records")[0]


def count_rows(engine: Engine, sql: str, params: Optional[Dict[str, Any]] = None) -> int:
    """Row count of `sql`, computed as SELECT COUNT(*) over it as a subquery."""
    count_sql = f"SELECT COUNT(*) AS count FROM ({sql}) AS sub"
    with engine.connect() as conn:
        return int(conn.execute(text(count_sql), params or {}).scalar() or 0)
