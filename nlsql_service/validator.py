"""
Post-build validation of generated SQL text.

Purely syntactic: nothing is executed and no types are checked against the
live database.  Two rules apply:

1. A SELECT without a FROM clause becomes a ``Guarded`` result.
2. A joined ``SELECT *`` is expanded into an explicit column list (key and
   descriptive columns of every table in FROM / JOIN), so joined tables do
   not return ambiguous duplicate column names.
"""

import re
from typing import List

from .errors import ValidationError
from .language import LanguageProfile
from .logger import logger
from .models import BuildResult, Guarded, Ok
from .schema_utils import SchemaSnapshot, Table

_SELECT_RE = re.compile(r"^\s*SELECT\b", re.IGNORECASE)
_FROM_RE = re.compile(r"\bFROM\s+(\w+)", re.IGNORECASE)
_JOIN_RE = re.compile(r"\bJOIN\s+(\w+)", re.IGNORECASE)
_STAR_RE = re.compile(r"^(\s*SELECT\s+(?:DISTINCT\s+)?)\*(\s+FROM\b)", re.IGNORECASE)

_DISPLAY_HINTS = ("name", "title", "created_at", "nome", "titulo")


def _display_columns(table: Table) -> List[str]:
    cols: List[str] = []
    pk = table.primary_key()
    if pk is not None:
        cols.append(f"{table.name}.{pk.name}")
    for col in table.columns:
        qualified = f"{table.name}.{col.name}"
        if qualified in cols:
            continue
        if any(h in col.name.lower() for h in _DISPLAY_HINTS):
            cols.append(qualified)
    return cols


def expand_star(sql: str, schema: SchemaSnapshot) -> str:
    """Replace ``SELECT *`` with explicit columns for every joined table."""
    if not _STAR_RE.match(sql):
        return sql
    names = _FROM_RE.findall(sql) + _JOIN_RE.findall(sql)
    columns: List[str] = []
    for name in names:
        table = schema.table(name)
        if table is None:
            continue
        for qualified in _display_columns(table):
            if qualified not in columns:
                columns.append(qualified)
    if not columns:
        return sql
    return _STAR_RE.sub(lambda m: m.group(1) + ", ".join(columns) + m.group(2), sql, count=1)


def validate(result: BuildResult, schema: SchemaSnapshot, profile: LanguageProfile) -> BuildResult:
    if not isinstance(result, Ok):
        return result

    sql = result.sql
    if _SELECT_RE.match(sql) and not _FROM_RE.search(sql):
        logger.warning("validate — SELECT without FROM: %s", sql)
        return Guarded(
            message=profile.message("incomplete_select"),
            reason=ValidationError.kind,
            language=profile.code,
            operation=result.operation,
        )

    if _SELECT_RE.match(sql) and _JOIN_RE.search(sql):
        expanded = expand_star(sql, schema)
        if expanded != sql:
            logger.info("validate — expanded SELECT * over joined tables")
            return Ok(sql=expanded, language=result.language, operation=result.operation)

    return result
