"""
Live-database schema introspection.

Reads tables, columns, primary / unique / foreign keys and comments through
the SQLAlchemy inspector and emits the JSON payload accepted by
``SQLAssistant.init``::

    {"tables": [{"name", "columns", "foreignKeys", "description"}],
     "dbType": "<dialect name>"}
"""

from typing import Any, Dict, List, Optional, Set, Union

from sqlalchemy import Integer, create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .config import DATABASE_URL
from .errors import InitializationError
from .logger import logger


def _table_comment(inspector, table_name: str) -> str:
    try:
        comment = inspector.get_table_comment(table_name)
    except NotImplementedError:
        return ""
    return (comment or {}).get("text") or ""


def _is_auto_increment(col: Dict[str, Any], pk_columns: List[str]) -> bool:
    """SQLAlchemy's ``autoincrement="auto"`` rule: a lone integer primary key."""
    flag = col.get("autoincrement", "auto")
    if flag is True:
        return True
    if flag is False:
        return False
    return (
        pk_columns == [col["name"]]
        and isinstance(col["type"], Integer)
    )


def _column_key(name: str, pk: Set[str], unique: Set[str], referencing: Set[str]) -> str:
    if name in pk:
        return "PRI"
    if name in unique:
        return "UNI"
    if name in referencing:
        return "MUL"
    return ""


def _describe_table(inspector, table_name: str) -> Dict[str, Any]:
    pk_columns = list(inspector.get_pk_constraint(table_name).get("constrained_columns") or [])
    unique: Set[str] = set()
    for uc in inspector.get_unique_constraints(table_name):
        cols = uc.get("column_names") or []
        if len(cols) == 1:
            unique.add(cols[0])

    foreign_keys = []
    referencing: Set[str] = set()
    for fk in inspector.get_foreign_keys(table_name):
        constrained = fk.get("constrained_columns") or []
        referred = fk.get("referred_columns") or []
        if not constrained or not referred or not fk.get("referred_table"):
            continue
        referencing.add(constrained[0])
        foreign_keys.append({
            "columnName": constrained[0],
            "referencedTable": fk["referred_table"],
            "referencedColumn": referred[0],
            "constraintName": fk.get("name") or "",
        })

    columns = []
    for col in inspector.get_columns(table_name):
        name = col["name"]
        columns.append({
            "name": name,
            "type": str(col["type"]),
            "nullable": bool(col.get("nullable", True)),
            "key": _column_key(name, set(pk_columns), unique, referencing),
            "default": None if col.get("default") is None else str(col["default"]),
            "extra": "auto_increment" if _is_auto_increment(col, pk_columns) else "",
            "isPrimary": name in pk_columns,
            "isUnique": name in unique,
            "description": col.get("comment") or "",
        })

    return {
        "name": table_name,
        "columns": columns,
        "foreignKeys": foreign_keys,
        "description": _table_comment(inspector, table_name),
    }


def introspect_schema(
    url_or_engine: Union[str, Engine, None] = None,
    db_type: Optional[str] = None,
) -> Dict[str, Any]:
    """Introspect a live database into a schema payload.

    *url_or_engine* falls back to ``DATABASE_URL``.  ``dbType`` defaults to
    the engine's dialect name (``mysql``, ``postgresql``, ``sqlite``, ...).
    Raises ``InitializationError`` when the database cannot be reached.
    """
    target = url_or_engine or DATABASE_URL
    if not target:
        raise InitializationError("No database URL given and DATABASE_URL is not set")

    try:
        engine = create_engine(target) if isinstance(target, str) else target
        inspector = inspect(engine)
        tables = [_describe_table(inspector, name) for name in inspector.get_table_names()]
    except SQLAlchemyError as e:
        raise InitializationError(f"Schema introspection failed: {e}") from e

    payload = {"tables": tables, "dbType": db_type or engine.dialect.name}
    logger.info(
        "introspect_schema — %d tables from %s database", len(tables), payload["dbType"],
    )
    return payload
