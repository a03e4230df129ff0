"""
askdb/prompt.py

Prompt construction for the question-answering pipeline.

Why this module exists:
- Prompts are "policy": they define what the LLM is allowed to do.
- Keeping them in a dedicated module makes them easy to tune and test.

One builder serves both passes:
- pass 1 ends at `SQLQuery: "` so the completion is the SQL statement
- pass 2 fills in SQLQuery/SQLResult and ends at `Answer: "`
Every field is a double-quoted single line, which is why completions are
requested with a "\\n" stop sequence and stripped of one layer of quotes.
"""

from __future__ import annotations

from typing import List, Optional

from askdb.schema import TableInfo, schema_to_text


QUERY_TEMPLATE = """Given an input question, first create a syntactically correct {dialect} query to run, then look at the results of the query and return the answer.
Use the following format:

Question: "Question here"
SQLQuery: "SQL Query to run"
SQLResult: "Result of the SQLQuery"
Answer: "Final answer here"

Rules:
- Only generate a single SELECT statement on one line.
- Use only the tables and columns listed below.
- Never filter on secret keys or credentials.
{tenant_rule}
Only use the following tables:

{schema}

Question: "{question}"
SQLQuery: \""""

RESULT_SUFFIX = """{query}"
SQLResult: "{result}"
Answer: \""""

TABLES_TEMPLATE = """Given the below input question and list of potential tables, output a comma separated list of the table names that may be necessary to answer this question.

Question: {question}

Table Names: {tables}

Relevant Table Names:"""

PLACEHOLDER_RULE = "- Restrict rows to the current user by comparing the owning user column to {placeholder}.\n"


def build_prompt(
    question: str,
    tables: List[TableInfo],
    dialect: str,
    query: Optional[str] = None,
    result: Optional[str] = None,
    user_placeholder: Optional[str] = None,
) -> str:
    """
    Build the question -> SQL prompt, or the SQL result -> answer prompt.

    Args:
      question:
        The user's natural-language question.
      tables:
        Tables the model may use (already tenant-filtered / narrowed).
      dialect:
        Dialect name shown to the model ("sqlite", "postgresql", ...).
      query, result:
        When both are given the prompt continues past SQLQuery into the
        pass-2 "Answer:" cue.
      user_placeholder:
        Set when the placeholder scoping strategy is active; tells the model
        which token stands for the current user.

    Returns:
      Prompt text with trailing newlines stripped.
    """
    tenant_rule = PLACEHOLDER_RULE.format(placeholder=user_placeholder) if user_placeholder else ""
    prompt = QUERY_TEMPLATE.format(
        dialect=dialect,
        tenant_rule=tenant_rule,
        schema=schema_to_text(tables),
        question=question,
    )
    if query is not None and result is not None:
        prompt += RESULT_SUFFIX.format(query=query, result=result)
    return prompt.rstrip("\n")


def build_tables_prompt(question: str, tables: List[TableInfo]) -> str:
    """Prompt asking which of `tables` are relevant to `question`."""
    names = ", ".join(t.name for t in tables)
    return TABLES_TEMPLATE.format(question=question, tables=names).rstrip("\n")
