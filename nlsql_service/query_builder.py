"""
Query builder: assembles SQL text from the resolved pipeline state.

One ``build_<operation>_query`` method exists per operation; ``build``
dispatches on the classifier's verdict.  SELECT-family statements are laid
out as::

    SELECT [DISTINCT] <projection>
    FROM <primary> [<JOIN other ON predicate> ...]
    [WHERE ...] [GROUP BY ... [HAVING ...]] [ORDER BY ...] [<pagination>]

Columns are always table-qualified.  Pagination syntax comes from the
dialect alone.  Destructive statements are never produced without a WHERE
clause: a ``Guarded`` result carrying a localized message is returned
instead.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .config import Settings
from .errors import UnresolvedEntityError, UnsafeOperationError
from .language import (
    LanguageProfile,
    contains_phrase,
    explicit_columns,
    projection_segment,
)
from .logger import logger
from .models import BuildResult, ColumnCandidate, Condition, Guarded, Ok, TableCandidate
from .schema_utils import (
    OFFSET_FETCH,
    Column,
    Dialect,
    SchemaSnapshot,
    Table,
    is_date_type,
    is_numeric_type,
    pluralize,
    singularize,
)

_SET_CLAUSE_RE = re.compile(r"\bset\s+(.*?)(?=\b(?:where|onde)\b|$)", re.IGNORECASE)
_ASSIGNMENT_RE = re.compile(r"(?:COLUMN:)?(\w+)\s*=")
_AGGREGATE_NAME_RE = re.compile(r"^(\w+)")

MAX_DEFAULT_SET_COLUMNS = 3

_NAME_HINTS = ("name", "title", "nome", "titulo")


@dataclass
class QueryRequest:
    """Everything the earlier stages learned about one prompt."""

    prompt: str
    operation: str
    tables: List[TableCandidate] = field(default_factory=list)
    columns: List[ColumnCandidate] = field(default_factory=list)
    conditions: List[Condition] = field(default_factory=list)
    secondary: List[str] = field(default_factory=list)

    def wants(self, op: str) -> bool:
        return self.operation == op or op in self.secondary


def _aggregate_alias(template: str) -> str:
    if "DISTINCT" in template:
        return "count_distinct"
    if template.startswith("PERCENTILE_CONT"):
        return "median"
    return _AGGREGATE_NAME_RE.match(template).group(1).lower()


class QueryBuilder:

    def __init__(
        self,
        schema: SchemaSnapshot,
        dialect: Dialect,
        profile: LanguageProfile,
        settings: Optional[Settings] = None,
    ):
        self.schema = schema
        self.dialect = dialect
        self.profile = profile
        self.settings = settings or Settings()

    # ---------------------- DISPATCH ----------------------

    def build(
        self,
        operation: str,
        secondary: List[str],
        tables: List[TableCandidate],
        columns: List[ColumnCandidate],
        conditions: List[Condition],
        prompt: str,
    ) -> BuildResult:
        req = QueryRequest(
            prompt=prompt,
            operation=operation,
            tables=tables,
            columns=columns,
            conditions=conditions,
            secondary=list(secondary),
        )
        if operation == "insert":
            result = self.build_insert_query(req)
        elif operation == "update":
            result = self.build_update_query(req)
        elif operation == "delete":
            result = self.build_delete_query(req)
        elif req.wants("group") and operation in ("select", "count", "group"):
            result = self.build_group_query(req)
        elif operation == "count":
            result = self.build_count_query(req)
        elif operation == "join":
            result = self.build_join_query(req)
        elif operation == "order":
            result = self.build_order_query(req)
        elif operation == "limit":
            result = self.build_limit_query(req)
        elif operation == "distinct":
            result = self.build_distinct_query(req)
        else:
            result = self.build_select_query(req)

        logger.info("build — %s → [%s] %s", operation, result.kind, result.to_text())
        return result

    def _guard(self, key: str, reason: str, operation: str, *args) -> Guarded:
        return Guarded(
            message=self.profile.message(key, *args),
            reason=reason,
            language=self.profile.code,
            operation=operation,
        )

    def _no_table(self, operation: str) -> Guarded:
        if operation in ("insert", "update", "delete"):
            return self._guard("no_table_for", UnresolvedEntityError.kind, operation, operation.upper())
        return self._guard("no_table", UnresolvedEntityError.kind, operation)

    # ---------------------- SELECT FAMILY ----------------------

    def build_select_query(
        self,
        req: QueryRequest,
        distinct: bool = False,
        order: bool = False,
        limit: bool = False,
    ) -> BuildResult:
        if not req.tables:
            return self._no_table(req.operation)

        table_names = self._query_tables(req)
        from_clause = self._from_clause(table_names, req.prompt)
        projection = self._projection(req, table_names)

        distinct = distinct or req.wants("distinct")
        parts = [
            "SELECT " + ("DISTINCT " if distinct else "") + projection,
            "FROM " + from_clause,
        ]
        where = self._where(req.conditions)
        if where:
            parts.append(where)

        pagination = self._pagination(req, force=limit or req.wants("limit"))
        order_clause = self._order_clause(
            req, table_names, force=order or req.wants("order") or self._needs_order(pagination),
        )
        if order_clause:
            parts.append(order_clause)
        if pagination:
            parts.append(pagination)

        return Ok(sql=" ".join(parts), language=self.profile.code, operation=req.operation)

    def build_join_query(self, req: QueryRequest) -> BuildResult:
        if "join" not in req.secondary:
            req.secondary.append("join")
        return self.build_select_query(req)

    def build_order_query(self, req: QueryRequest) -> BuildResult:
        return self.build_select_query(req, order=True)

    def build_limit_query(self, req: QueryRequest) -> BuildResult:
        return self.build_select_query(req, limit=True)

    def build_distinct_query(self, req: QueryRequest) -> BuildResult:
        return self.build_select_query(req, distinct=True)

    def build_count_query(self, req: QueryRequest) -> BuildResult:
        if not req.tables:
            return self._no_table("count")

        table_names = self._query_tables(req)
        target = "*"
        if req.wants("distinct"):
            free = self._non_condition_columns(req, table_names)
            if free:
                target = "DISTINCT " + free[0].qualified

        parts = [f"SELECT COUNT({target})", "FROM " + self._from_clause(table_names, req.prompt)]
        where = self._where(req.conditions)
        if where:
            parts.append(where)
        return Ok(sql=" ".join(parts), language=self.profile.code, operation="count")

    def build_group_query(self, req: QueryRequest) -> BuildResult:
        if not req.tables:
            return self._no_table("group")

        table_names = self._query_tables(req)
        group_expr = self._group_expression(req, table_names)
        if group_expr is None:
            logger.info("build_group_query — no grouping column found, falling back to SELECT")
            return self.build_select_query(req)

        agg_expr, alias = self._group_aggregate(req, table_names, group_expr)

        parts = [
            f"SELECT {group_expr}, {agg_expr} AS {alias}",
            "FROM " + self._from_clause(table_names, req.prompt),
        ]
        where = self._where(req.conditions)
        if where:
            parts.append(where)
        parts.append(f"GROUP BY {group_expr}")

        m = self.profile.having_pattern.search(req.prompt)
        if m:
            operator = m.group(2) or ">"
            parts.append(f"HAVING {agg_expr} {operator} {m.group(3)}")

        pagination = self._pagination(req, force=False)
        order_clause = self._order_clause(req, table_names, force=False)
        if not order_clause and self._needs_order(pagination):
            order_clause = f"ORDER BY {group_expr} ASC"
        if order_clause:
            parts.append(order_clause)
        if pagination:
            parts.append(pagination)
        return Ok(sql=" ".join(parts), language=self.profile.code, operation="group")

    # ---------------------- WRITES ----------------------

    def build_insert_query(self, req: QueryRequest) -> BuildResult:
        if not req.tables:
            return self._no_table("insert")
        table = self.schema.table(req.tables[0].name)
        cols = [c.name for c in table.columns if not c.auto_increment]
        if not cols:
            return self._guard("no_insert_columns", UnresolvedEntityError.kind, "insert", table.name)
        placeholders = ", ".join("?" for _ in cols)
        return Ok(
            sql=f"INSERT INTO {table.name} ({', '.join(cols)}) VALUES ({placeholders})",
            language=self.profile.code,
            operation="insert",
        )

    def build_update_query(self, req: QueryRequest) -> BuildResult:
        if not req.tables:
            return self._no_table("update")
        table = self.schema.table(req.tables[0].name)
        if not req.conditions:
            return self._guard("unsafe_update", UnsafeOperationError.kind, "update", table.name)

        set_cols = self._update_columns(req, table)
        if not set_cols:
            return self._guard("no_update_columns", UnresolvedEntityError.kind, "update", table.name)

        assignments = ", ".join(f"{c} = ?" for c in set_cols)
        return Ok(
            sql=f"UPDATE {table.name} SET {assignments} {self._where(req.conditions)}",
            language=self.profile.code,
            operation="update",
        )

    def build_delete_query(self, req: QueryRequest) -> BuildResult:
        if not req.tables:
            return self._no_table("delete")
        table = self.schema.table(req.tables[0].name)
        if not req.conditions:
            return self._guard("unsafe_delete", UnsafeOperationError.kind, "delete", table.name)
        return Ok(
            sql=f"DELETE FROM {table.name} {self._where(req.conditions)}",
            language=self.profile.code,
            operation="delete",
        )

    def _update_columns(self, req: QueryRequest, table: Table) -> List[str]:
        eligible = [c for c in table.columns if not c.primary and not c.auto_increment]
        eligible_names = {c.name.lower(): c.name for c in eligible}

        m = _SET_CLAUSE_RE.search(req.prompt)
        if m:
            named = [
                eligible_names[w.lower()]
                for w in _ASSIGNMENT_RE.findall(m.group(1))
                if w.lower() in eligible_names
            ]
            if named:
                return list(dict.fromkeys(named))

        condition_cols = {c.column_name.lower() for c in req.conditions}
        resolved = [
            eligible_names[c.name.lower()]
            for c in req.columns
            if c.table_name == table.name
            and c.name.lower() in eligible_names
            and c.name.lower() not in condition_cols
        ]
        if resolved:
            return list(dict.fromkeys(resolved))
        return [c.name for c in eligible[:MAX_DEFAULT_SET_COLUMNS]]

    # ---------------------- TABLES & JOINS ----------------------

    def _query_tables(self, req: QueryRequest) -> List[str]:
        """Primary table first, then every table that gets joined in."""
        primary = req.tables[0].name
        selected = [primary]
        wants_join = req.wants("join")

        for candidate in req.tables[1:]:
            if wants_join or self._related_predicate(selected, candidate.name):
                selected.append(candidate.name)

        if wants_join and len(selected) == 1:
            related = self.related_tables(primary)
            if related:
                logger.info("build — join requested, discovered related table '%s'", related[0])
                selected.append(related[0])

        for cond in req.conditions:
            if cond.table_name and cond.table_name not in selected:
                selected.append(cond.table_name)
        return selected

    def _related_predicate(self, selected: List[str], other: str) -> Optional[str]:
        for name in selected:
            predicate = self.join_predicate(name, other, guess=False)
            if predicate:
                return predicate
        return None

    def join_predicate(self, left: str, right: str, guess: bool = True) -> Optional[str]:
        """Find the ON predicate joining two tables.

        Declared foreign keys win over ``<table>_id`` naming, which wins over
        the ``a.id = b.id`` guess.
        """
        a, b = self.schema.table(left), self.schema.table(right)
        if a is None or b is None:
            return None

        for owner, other in ((a, b), (b, a)):
            for fk in owner.foreign_keys:
                if fk.referenced_table.lower() == other.name.lower():
                    return f"{owner.name}.{fk.column_name} = {other.name}.{fk.referenced_column}"

        for owner, other in ((a, b), (b, a)):
            col = self._reference_column(owner, other)
            if col is not None:
                pk = other.primary_key()
                return f"{owner.name}.{col.name} = {other.name}.{pk.name if pk else 'id'}"

        if guess:
            return f"{a.name}.id = {b.name}.id"
        return None

    @staticmethod
    def _reference_column(owner: Table, other: Table) -> Optional[Column]:
        name = other.name.lower()
        for stem in (singularize(name), pluralize(name), name):
            col = owner.column(stem + "_id")
            if col is not None:
                return col
        return None

    def related_tables(self, table_name: str) -> List[str]:
        """Tables linked to *table_name* by foreign key, then by naming."""
        table = self.schema.table(table_name)
        if table is None:
            return []
        related: List[str] = []

        def add(name: str):
            if name.lower() != table.name.lower() and name not in related:
                related.append(name)

        for fk in table.foreign_keys:
            ref = self.schema.table(fk.referenced_table)
            if ref is not None:
                add(ref.name)
        for other in self.schema.tables:
            if any(fk.referenced_table.lower() == table.name.lower() for fk in other.foreign_keys):
                add(other.name)
        for other in self.schema.tables:
            if other.name.lower() == table.name.lower():
                continue
            if self._reference_column(table, other) or self._reference_column(other, table):
                add(other.name)
        return related

    def _join_keyword(self, prompt: str) -> str:
        for pattern, keyword in self.profile.join_types:
            if pattern.search(prompt):
                return keyword
        return "JOIN"

    def _from_clause(self, table_names: List[str], prompt: str) -> str:
        clause = table_names[0]
        if len(table_names) == 1:
            return clause
        keyword = self._join_keyword(prompt)
        joined = [table_names[0]]
        for name in table_names[1:]:
            predicate = self._related_predicate(joined, name) or self.join_predicate(joined[0], name)
            clause += f" {keyword} {name} ON {predicate}"
            joined.append(name)
        return clause

    # ---------------------- PROJECTION ----------------------

    def _locate(self, word: str, table_names: List[str]) -> Optional[str]:
        for name in table_names:
            table = self.schema.table(name)
            if table is None:
                continue
            col = table.column(word)
            if col is not None:
                return f"{table.name}.{col.name}"
        return None

    def _non_condition_columns(self, req: QueryRequest, table_names: List[str]) -> List[ColumnCandidate]:
        condition_keys = {
            (c.table_name, c.column_name.lower()) for c in req.conditions if not c.is_complex
        }
        return [
            c for c in req.columns
            if c.table_name in table_names and (c.table_name, c.name.lower()) not in condition_keys
        ]

    def _aggregate_function(self, req: QueryRequest, table_names: List[str]) -> Optional[str]:
        column_words = {
            col.name.lower()
            for name in table_names
            for col in self.schema.table(name).columns
        }
        for phrase, template in self.profile.aggregates:
            if phrase.lower() in column_words:
                continue
            if contains_phrase(req.prompt, phrase):
                return template
        return None

    def _aggregate_column(
        self,
        req: QueryRequest,
        table_names: List[str],
        exclude: Tuple[str, ...] = (),
    ) -> Optional[str]:
        for c in req.columns:
            if c.table_name in table_names and is_numeric_type(c.type) and not c.is_primary:
                if c.qualified not in exclude:
                    return c.qualified
        for name in table_names:
            table = self.schema.table(name)
            for col in table.columns:
                qualified = f"{table.name}.{col.name}"
                if is_numeric_type(col.type) and not col.primary and not col.name.lower().endswith("_id"):
                    if qualified not in exclude:
                        return qualified
        return None

    def _projection(self, req: QueryRequest, table_names: List[str]) -> str:
        """Choose the SELECT list.

        Explicit ``COLUMN:`` markers named before the filter win, then
        resolved columns that are not only used in conditions, then ``*``.
        Aggregate vocabulary wraps the first numeric column.
        """
        if not (req.wants("order") or req.wants("limit")):
            template = self._aggregate_function(req, table_names)
            if template:
                column = self._aggregate_column(req, table_names)
                if column:
                    return template.format(col=column)

        segment = projection_segment(req.prompt, self.profile)
        explicit = [
            q for q in (self._locate(w, table_names) for w in explicit_columns(segment)) if q
        ]
        if explicit:
            return ", ".join(dict.fromkeys(explicit))

        # a column only named as the sort key is not projected
        m = self.profile.order_by_pattern.search(req.prompt)
        sort_word = m.group(1).lower() if m else None
        free = [c for c in self._non_condition_columns(req, table_names) if c.name.lower() != sort_word]
        covered = {c.table_name for c in free}
        if free and all(name in covered for name in table_names):
            return ", ".join(dict.fromkeys(c.qualified for c in free))
        return "*"

    # ---------------------- CLAUSES ----------------------

    @staticmethod
    def _where(conditions: List[Condition]) -> str:
        if not conditions:
            return ""
        rendered = conditions[0].render()
        for cond in conditions[1:]:
            rendered += f" {cond.conjunction} {cond.render()}"
        return "WHERE " + rendered

    def _group_expression(self, req: QueryRequest, table_names: List[str]) -> Optional[str]:
        prompt = req.prompt
        for pattern in (self.profile.group_by_pattern, self.profile.group_per_pattern):
            for m in pattern.finditer(prompt):
                located = self._locate(m.group(1).replace("COLUMN:", ""), table_names)
                if located:
                    return located

        date_col = self._first_column(table_names, lambda c: is_date_type(c.type))
        if date_col:
            for pattern, unit in self.profile.date_granularity:
                if pattern.search(prompt):
                    return f"EXTRACT({unit} FROM {date_col})"

        categorical = self._first_column(
            table_names,
            lambda c: any(w in c.name.lower() for w in self.profile.categorical_words),
        )
        if categorical:
            return categorical
        if date_col:
            return date_col
        return self._first_column(
            table_names, lambda c: c.name.lower().endswith("_id") and not c.primary,
        )

    def _first_column(self, table_names: List[str], predicate) -> Optional[str]:
        for name in table_names:
            table = self.schema.table(name)
            for col in table.columns:
                if predicate(col):
                    return f"{table.name}.{col.name}"
        return None

    def _group_aggregate(self, req: QueryRequest, table_names: List[str], group_expr: str) -> Tuple[str, str]:
        template = self._aggregate_function(req, table_names)
        if template:
            column = self._aggregate_column(req, table_names, exclude=(group_expr,))
            if column:
                return template.format(col=column), _aggregate_alias(template)
        return "COUNT(*)", "count"

    def _needs_order(self, pagination: str) -> bool:
        return bool(pagination) and self.dialect.limit_syntax == OFFSET_FETCH

    def _order_clause(self, req: QueryRequest, table_names: List[str], force: bool) -> str:
        prompt = req.prompt
        m = self.profile.order_by_pattern.search(prompt)
        if m:
            located = self._locate(m.group(1).replace("COLUMN:", ""), table_names)
            if located:
                direction = "ASC"
                if m.group(2) and m.group(2).lower() in self.profile.descending_direction_words:
                    direction = "DESC"
                elif any(contains_phrase(prompt, w) for w in self.profile.descending_words):
                    direction = "DESC"
                return f"ORDER BY {located} {direction}"
        if not force and not m:
            return ""

        direction = "DESC" if any(
            contains_phrase(prompt, w) for w in self.profile.descending_words
        ) else "ASC"
        column = self._order_column(req, table_names)
        if column is None:
            return ""
        return f"ORDER BY {column} {direction}"

    def _order_column(self, req: QueryRequest, table_names: List[str]) -> Optional[str]:
        for c in self._non_condition_columns(req, table_names):
            if not c.is_primary:
                return c.qualified
        primary = self.schema.table(table_names[0])
        for col in primary.columns:
            if is_date_type(col.type):
                return f"{primary.name}.{col.name}"
        pk = primary.primary_key()
        if pk is not None:
            return f"{primary.name}.{pk.name}"
        for col in primary.columns:
            if any(h in col.name.lower() for h in _NAME_HINTS):
                return f"{primary.name}.{col.name}"
        return None

    def _pagination(self, req: QueryRequest, force: bool) -> str:
        limit = None
        for pattern in self.profile.limit_patterns:
            m = pattern.search(req.prompt)
            if m:
                limit = int(m.group(1))
                break
        if limit is None and not force:
            return ""
        if limit is None:
            limit = self.settings.default_limit
        limit = max(1, min(limit, self.settings.max_limit))

        m = self.profile.offset_pattern.search(req.prompt)
        offset = int(m.group(1)) if m else 0
        return self.dialect.paginate(limit, offset)
