"""
Schema utilities: snapshot models, payload parsing, dialect selection and
lookup helpers shared by every pipeline stage.

A snapshot is produced externally (see ``introspection.py``) as JSON::

    {"tables": [{"name": ..., "columns": [...], "foreignKeys": [...],
                 "description": ...}],
     "dbType": "mysql"}

and is immutable once parsed.  Re-scanning replaces it wholesale.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InitializationError
from .logger import logger


# ---------------------- SNAPSHOT MODELS ----------------------


class _SnapshotModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class Column(_SnapshotModel):
    name: str
    type: str = ""
    nullable: bool = True
    key: str = ""
    default: Optional[Any] = None
    extra: str = ""
    is_primary: bool = Field(default=False, alias="isPrimary")
    is_unique: bool = Field(default=False, alias="isUnique")
    description: str = ""
    sample_values: List[Any] = Field(default_factory=list, alias="sampleValues")

    @field_validator("type", "key", "extra", "description", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value

    @field_validator("sample_values", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return [] if value is None else value

    @property
    def primary(self) -> bool:
        return self.is_primary or self.key.upper() == "PRI"

    @property
    def auto_increment(self) -> bool:
        return "auto_increment" in self.extra.lower()


class ForeignKey(_SnapshotModel):
    column_name: str = Field(alias="columnName")
    referenced_table: str = Field(alias="referencedTable")
    referenced_column: str = Field(alias="referencedColumn")
    constraint_name: str = Field(default="", alias="constraintName")

    @field_validator("constraint_name", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value


class Table(_SnapshotModel):
    name: str
    columns: List[Column] = Field(default_factory=list)
    foreign_keys: List[ForeignKey] = Field(default_factory=list, alias="foreignKeys")
    description: str = ""

    @field_validator("columns", "foreign_keys", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return [] if value is None else value

    @field_validator("description", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value

    def column(self, name: str) -> Optional[Column]:
        lowered = name.lower()
        for col in self.columns:
            if col.name.lower() == lowered:
                return col
        return None

    def primary_key(self) -> Optional[Column]:
        for col in self.columns:
            if col.primary:
                return col
        return self.column("id")


class SchemaSnapshot(_SnapshotModel):
    tables: List[Table] = Field(default_factory=list)
    db_type: str = Field(default="", alias="dbType")

    @field_validator("tables", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return [] if value is None else value

    @field_validator("db_type", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value

    def table(self, name: str) -> Optional[Table]:
        lowered = name.lower()
        for tbl in self.tables:
            if tbl.name.lower() == lowered:
                return tbl
        return None


def parse_schema(payload: Union[str, bytes, Dict[str, Any]]) -> SchemaSnapshot:
    """Parse a schema payload into an immutable snapshot.

    Raises ``InitializationError`` when the payload is empty, is not valid
    JSON / does not match the expected shape, or declares no tables.
    """
    if payload is None:
        raise InitializationError("Schema payload is empty")
    if isinstance(payload, (str, bytes)):
        if not payload.strip():
            raise InitializationError("Schema payload is empty")
        try:
            payload = json.loads(payload)
        except ValueError as e:
            raise InitializationError(f"Schema payload is not valid JSON: {e}") from e
    if not isinstance(payload, dict) or not payload:
        raise InitializationError("Schema payload must be a non-empty JSON object")

    try:
        snapshot = SchemaSnapshot.model_validate(payload)
    except ValidationError as e:
        raise InitializationError(f"Schema payload has an invalid shape: {e}") from e

    if not snapshot.tables:
        raise InitializationError("Schema payload declares no tables")

    logger.info(
        "parse_schema — %d tables, dbType='%s'",
        len(snapshot.tables), snapshot.db_type,
    )
    return snapshot


def describe_schema(schema: SchemaSnapshot) -> List[str]:
    """Render primary-key and foreign-key relationships as readable lines.

    Examples:
        'users: primary key id'
        'orders.user_id references users.id'
    """
    lines: List[str] = []
    for tbl in schema.tables:
        pk = tbl.primary_key()
        if pk is not None:
            lines.append(f"{tbl.name}: primary key {pk.name}")
        for fk in tbl.foreign_keys:
            lines.append(
                f"{tbl.name}.{fk.column_name} references "
                f"{fk.referenced_table}.{fk.referenced_column}"
            )
    return lines


# ---------------------- DIALECTS ----------------------

LIMIT_OFFSET = "LIMIT {limit} OFFSET {offset}"
OFFSET_FETCH = "OFFSET {offset} ROWS FETCH NEXT {limit} ROWS ONLY"


@dataclass(frozen=True)
class Dialect:
    name: str
    limit_syntax: str
    supports_cte: bool
    supports_window_functions: bool

    def paginate(self, limit: int, offset: int = 0) -> str:
        if self.limit_syntax == LIMIT_OFFSET and offset <= 0:
            return f"LIMIT {limit}"
        return self.limit_syntax.format(limit=limit, offset=offset)


MYSQL = Dialect("MySQL", LIMIT_OFFSET, True, True)
POSTGRESQL = Dialect("PostgreSQL", LIMIT_OFFSET, True, True)
SQLITE = Dialect("SQLite", LIMIT_OFFSET, True, True)
SQLSERVER = Dialect("SQL Server", OFFSET_FETCH, True, True)
ORACLE = Dialect("Oracle", OFFSET_FETCH, True, True)
GENERIC = Dialect("Generic SQL", LIMIT_OFFSET, False, False)

_DIALECTS = {
    "mysql": MYSQL,
    "postgresql": POSTGRESQL,
    "postgres": POSTGRESQL,
    "sqlite": SQLITE,
    "mssql": SQLSERVER,
    "sqlserver": SQLSERVER,
    "oracle": ORACLE,
}


def select_dialect(db_type: Optional[str]) -> Dialect:
    """Map a declared database type onto its dialect, GENERIC when unknown."""
    return _DIALECTS.get((db_type or "").strip().lower(), GENERIC)


# ---------------------- TYPE CLASSIFICATION ----------------------

_NUMERIC_TYPE_MARKERS = ("int", "float", "decimal", "double", "numeric", "real", "number", "money")
_DATE_TYPE_MARKERS = ("date", "time")
_TEXT_TYPE_MARKERS = ("char", "text", "string", "enum")


def is_numeric_type(type_name: str) -> bool:
    t = (type_name or "").lower()
    return any(m in t for m in _NUMERIC_TYPE_MARKERS)


def is_date_type(type_name: str) -> bool:
    t = (type_name or "").lower()
    return any(m in t for m in _DATE_TYPE_MARKERS)


def is_text_type(type_name: str) -> bool:
    t = (type_name or "").lower()
    return any(m in t for m in _TEXT_TYPE_MARKERS)


# ---------------------- SINGULAR / PLURAL ----------------------

_INVARIANT_PLURALS = {"status", "analysis", "chassis", "bus", "news", "series"}
_VOWELS = "aeiou"


def singularize(word: str) -> str:
    """Naive singular form: strips trailing 's' / 'es'."""
    w = word.lower()
    if w in _INVARIANT_PLURALS:
        return w
    if w.endswith("ies") and len(w) > 3:
        return w[:-3] + "y"
    if w.endswith("ses") or w.endswith("xes") or w.endswith("zes"):
        return w[:-2]
    if w.endswith("s") and not w.endswith("ss") and len(w) > 2:
        return w[:-1]
    return w


def pluralize(word: str) -> str:
    w = word.lower()
    if w.endswith("s"):
        return w
    if w.endswith("y") and len(w) > 1 and w[-2] not in _VOWELS:
        return w[:-1] + "ies"
    if w.endswith("x") or w.endswith("z") or w.endswith("ch") or w.endswith("sh"):
        return w + "es"
    return w + "s"
