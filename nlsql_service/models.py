"""Value types passed between pipeline stages."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import ClassVar, List, Optional, Union


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------- CANDIDATES ----------------------


@dataclass
class TableCandidate:
    name: str
    confidence: float


@dataclass
class ColumnCandidate:
    name: str
    table_name: str
    type: str = ""
    is_primary: bool = False
    confidence: float = 0.0
    aggregate_function: Optional[str] = None

    @property
    def qualified(self) -> str:
        return f"{self.table_name}.{self.name}" if self.table_name else self.name


@dataclass
class Condition:
    """A single predicate, or a pre-formatted compound expression."""

    column_name: str
    operator: str
    value: str = ""
    table_name: Optional[str] = None
    conjunction: str = "AND"
    is_complex: bool = False
    complex_expr: str = ""

    def render(self) -> str:
        if self.is_complex:
            return self.complex_expr
        column = f"{self.table_name}.{self.column_name}" if self.table_name else self.column_name
        if self.operator in ("IS NULL", "IS NOT NULL"):
            return f"{column} {self.operator}"
        return f"{column} {self.operator} {self.value}"


@dataclass
class Classification:
    operation: str
    secondary: List[str] = field(default_factory=list)
    scores: dict = field(default_factory=dict)


# ---------------------- TAGGED RESULTS ----------------------


@dataclass(frozen=True)
class Ok:
    sql: str
    language: str = "en"
    operation: str = ""

    kind: ClassVar[str] = "ok"

    def to_text(self) -> str:
        return self.sql


@dataclass(frozen=True)
class Guarded:
    """A statement was deliberately withheld; ``message`` is localized."""

    message: str
    reason: str = "unresolved_entity"
    language: str = "en"
    operation: str = ""

    kind: ClassVar[str] = "guarded"

    def to_text(self) -> str:
        return f"-- {self.message}"


@dataclass(frozen=True)
class Err:
    error: str
    message: str

    kind: ClassVar[str] = "error"

    def to_text(self) -> str:
        return f"-- {self.message}"


GenerateResult = Union[Ok, Guarded, Err]
BuildResult = Union[Ok, Guarded]


# ---------------------- HISTORY / FEEDBACK ----------------------


@dataclass
class HistoryEntry:
    sql: str
    prompt: str
    created_at: datetime = field(default_factory=_utcnow)
    success: Optional[bool] = None
    result_count: int = 0
    execution_time: float = 0.0
    error_message: str = ""


@dataclass(frozen=True)
class Feedback:
    sql: str
    was_successful: bool
    error_message: str = ""
    row_count: int = 0
    execution_time: float = 0.0
    created_at: datetime = field(default_factory=_utcnow)
