"""
askdb/existence.py

Existence pre-check: run COUNT(*) over the scoped query before executing it.

When nothing matches, the chat oracle writes a polite "no data" reply and the
pipeline stops there; the query itself is never executed.
"""

from __future__ import annotations

import logging
from typing import Union

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from askdb.errors import QueryValidationError
from askdb.execute import count_rows
from askdb.generate import chat
from askdb.scoping import ScopedQuery, trim_query

logger = logging.getLogger(__name__)

NO_DATA_INSTRUCTION = (
    "You are a helpful assistant. A user asked '{question}', but the data they are "
    "looking for does not exist in the system. How would you inform the user politely?"
)


def ensure_has_data(engine: Engine, chat_llm, question: str, query: ScopedQuery) -> Union[ScopedQuery, str]:
    """
    Returns:
      the (trimmed) ScopedQuery when it matches at least one row, otherwise the
      chat oracle's reply as the final answer.

    Raises:
      QueryValidationError when the count query fails, e.g. malformed SQL
      from the model.
    """
    sql = trim_query(query.sql)
    try:
        count = count_rows(engine, sql, query.params)
    except SQLAlchemyError as e:
        raise QueryValidationError(sql, e) from e

    logger.debug("Existence check matched %d rows", count)
    if count > 0:
        return ScopedQuery(sql, query.params)

    return chat(
        chat_llm,
        [
            {"role": "system", "content": NO_DATA_INSTRUCTION.format(question=question)},
            {"role": "user", "content": question},
        ],
    )
