"""
Condition extractor: turns filter language into structured predicates.

Works on the *normalized* prompt, where comparison idioms are already
symbolic (``price > 100``, ``name != João``, ``age BETWEEN 18 AND 30``).
Each predicate's column must belong to a resolved table, otherwise the
match is dropped.  A second pass rewrites relative-date language into
date-function expressions bound to the first date column of a resolved
table (date-typed first, then date-named).
"""

import re
from typing import List, Optional, Tuple

from .language import LanguageProfile
from .logger import logger
from .models import ColumnCandidate, Condition, TableCandidate
from .schema_utils import SchemaSnapshot, Table, is_date_type, pluralize, singularize

_NUMERIC_RE = re.compile(r"^-?\d+(\.\d+)?$")
_BOOLEAN_VALUES = {"true", "false"}

_VALUE = r"('[^']*'|\"[^\"]*\"|[^\s,;()?!]+)"

_BETWEEN_RE = re.compile(r"\b(\w+)\s+BETWEEN\s+" + _VALUE + r"\s+AND\s+" + _VALUE)
_IN_RE = re.compile(r"\b(\w+)\s+(NOT\s+)?IN\s*\(([^)]*)\)")
_NULL_RE = re.compile(r"\b(\w+)\s+(IS NOT NULL|IS NULL)\b")
_COMPARISON_RE = re.compile(r"\b(\w+)\s*(>=|<=|!=|<>|=|>|<)\s*" + _VALUE)
# Commas inside quotes belong to the element.
_IN_ITEM_RE = re.compile(r"\s*('[^']*'|\"[^\"]*\"|[^,]+)")

# Names that mark a text-typed column as holding dates.
_DATE_NAME_HINTS = ("created", "updated", "date", "_at")

# UPDATE assignments are not predicates.
_SET_CLAUSE_RE = re.compile(r"\bset\s+.*?(?=\b(?:where|onde)\b|$)", re.IGNORECASE)

Span = Tuple[int, int]


# ---------------------- VALUE FORMATTING ----------------------


def _strip_quotes(value: str) -> str:
    v = value.strip()
    if len(v) >= 2 and v[0] == v[-1] and v[0] in ("'", '"'):
        return v[1:-1]
    return v.rstrip(".")


def format_value(value: str) -> str:
    """Render a literal for SQL by sniffing its type.

    Examples:
        '100'     → 100
        '3.5'     → 3.5
        'true'    → true
        'João'    → 'João'
        "O'Hara"  → 'O''Hara'
    """
    v = _strip_quotes(value)
    if _NUMERIC_RE.match(v):
        return v
    if v.lower() in _BOOLEAN_VALUES:
        return v.lower()
    return "'" + v.replace("'", "''") + "'"


def format_like(value: str, variant: str) -> str:
    v = _strip_quotes(value).replace("'", "''")
    if variant == "starts":
        return f"'{v}%'"
    if variant == "ends":
        return f"'%{v}'"
    return f"'%{v}%'"


def format_in_list(raw: str) -> str:
    items = [i.strip() for i in _IN_ITEM_RE.findall(raw)]
    return "(" + ", ".join(format_value(i) for i in items if i) + ")"


# ---------------------- EXTRACTOR ----------------------


class ConditionExtractor:

    def __init__(self, schema: SchemaSnapshot):
        self.schema = schema

    def _locate(
        self,
        word: str,
        tables: List[TableCandidate],
        columns: List[ColumnCandidate],
    ) -> Optional[Tuple[str, str]]:
        """Find ``(table, column)`` for a column word, resolved columns first."""
        lowered = word.lower()
        for col in columns:
            if col.name.lower() == lowered:
                return col.table_name, col.name

        variants = (lowered, singularize(lowered), pluralize(lowered))
        for variant in variants:
            for candidate in tables:
                table = self.schema.table(candidate.name)
                if table is None:
                    continue
                col = table.column(variant)
                if col is not None:
                    return table.name, col.name
        return None

    def _date_column(
        self,
        tables: List[TableCandidate],
        columns: List[ColumnCandidate],
    ) -> Optional[Tuple[str, str]]:
        """Date-typed columns first, then date-named ones, across resolved tables."""
        for col in columns:
            if is_date_type(col.type):
                return col.table_name, col.name
        resolved: List[Table] = [
            t for t in (self.schema.table(c.name) for c in tables) if t is not None
        ]
        for table in resolved:
            for col in table.columns:
                if is_date_type(col.type):
                    return table.name, col.name
        for table in resolved:
            for col in table.columns:
                if any(h in col.name.lower() for h in _DATE_NAME_HINTS):
                    return table.name, col.name
        return None

    def extract(
        self,
        prompt: str,
        tables: List[TableCandidate],
        columns: List[ColumnCandidate],
        profile: LanguageProfile,
    ) -> List[Condition]:
        """Return predicates in prompt order, deduplicated.

        A bracketed compound (``where A and (B or C)``) short-circuits into a
        single verbatim ``is_complex`` condition.
        """
        complex_match = profile.complex_expression.search(prompt)
        if complex_match:
            left, conj, right = complex_match.groups()
            conjunction = "OR" if conj.lower() in ("or", "ou") else "AND"
            expr = f"({left.strip()}) {conjunction} ({right.strip()})"
            logger.info("extract_conditions — complex expression: %s", expr)
            return [Condition(column_name="", operator="", is_complex=True, complex_expr=expr)]

        text = _SET_CLAUSE_RE.sub(lambda m: " " * len(m.group(0)), prompt)
        found: List[Tuple[int, Condition]] = []
        consumed: List[Span] = []

        def free(span: Span) -> bool:
            return all(span[1] <= s or span[0] >= e for s, e in consumed)

        def add(match, word: str, operator: str, value: str):
            span = match.span()
            if not free(span):
                return
            located = self._locate(word, tables, columns)
            if located is None:
                logger.info("extract_conditions — '%s' is not a column of the resolved tables", word)
                return
            consumed.append(span)
            table_name, column_name = located
            found.append((span[0], Condition(
                column_name=column_name,
                table_name=table_name,
                operator=operator,
                value=value,
            )))

        for m in _BETWEEN_RE.finditer(text):
            add(m, m.group(1), "BETWEEN", f"{format_value(m.group(2))} AND {format_value(m.group(3))}")
        for m in _IN_RE.finditer(text):
            add(m, m.group(1), "NOT IN" if m.group(2) else "IN", format_in_list(m.group(3)))
        for m in _NULL_RE.finditer(text):
            add(m, m.group(1), m.group(2), "")
        for pattern, variant in profile.like_templates:
            for m in pattern.finditer(text):
                add(m, m.group(1), "LIKE", format_like(m.group(2), variant))
        for m in _COMPARISON_RE.finditer(text):
            operator = "!=" if m.group(2) == "<>" else m.group(2)
            add(m, m.group(1), operator, format_value(m.group(3)))

        found.extend(self._date_conditions(text, tables, columns, profile, consumed))

        found.sort(key=lambda item: item[0])
        conditions = _dedupe([c for _, c in found])

        if len(conditions) > 1 and profile.disjunction.search(prompt):
            for cond in conditions[1:]:
                cond.conjunction = "OR"

        logger.info(
            "extract_conditions — %d condition(s): %s",
            len(conditions), [c.render() for c in conditions],
        )
        return conditions

    # ---- relative dates ----

    def _date_conditions(
        self,
        text: str,
        tables: List[TableCandidate],
        columns: List[ColumnCandidate],
        profile: LanguageProfile,
        consumed: List[Span],
    ) -> List[Tuple[int, Condition]]:
        hits: List[Tuple[int, str, str]] = []

        for m in profile.last_n_pattern.finditer(text):
            unit = profile.date_units[m.group(2).lower()]
            hits.append((m.start(), ">=", f"DATE_SUB(CURRENT_DATE(), INTERVAL {int(m.group(1))} {unit})"))

        for phrase, operator, expression in profile.relative_dates:
            m = re.search(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)", text, re.IGNORECASE)
            if m and not any(s <= m.start() < e for s, e in consumed):
                hits.append((m.start(), operator, expression))

        func_hits: List[Tuple[int, str, str]] = []
        m = profile.weekday_pattern.search(text)
        if m:
            day = next(g for g in m.groups() if g).lower()
            func_hits.append((m.start(), "DAYOFWEEK({col}) = %d" % profile.weekdays[day], "weekday"))
        m = profile.month_pattern.search(text)
        if m:
            func_hits.append((m.start(), "MONTH({col}) = %d" % profile.months[m.group(1).lower()], "month"))
        m = profile.quarter_pattern.search(text)
        if m:
            token = next(g for g in m.groups() if g).lower()
            quarter = profile.ordinals.get(token) or int(token.rstrip("º"))
            func_hits.append((m.start(), "QUARTER({col}) = %d" % quarter, "quarter"))
        m = profile.semester_pattern.search(text)
        if m:
            first_half = profile.ordinals.get(m.group(1).lower()) == 1
            months = "1 AND 6" if first_half else "7 AND 12"
            func_hits.append((m.start(), "MONTH({col}) BETWEEN " + months, "semester"))

        if not hits and not func_hits:
            return []

        located = self._date_column(tables, columns)
        if located is None:
            logger.warning(
                "extract_conditions — date filter dropped, no date column in %s",
                [t.name for t in tables],
            )
            return []
        table_name, column_name = located
        qualified = f"{table_name}.{column_name}"

        result: List[Tuple[int, Condition]] = []
        for pos, operator, expression in hits:
            result.append((pos, Condition(
                column_name=column_name,
                table_name=table_name,
                operator=operator,
                value=expression,
            )))
        for pos, template, _kind in func_hits:
            result.append((pos, Condition(
                column_name=column_name,
                table_name=table_name,
                operator="",
                is_complex=True,
                complex_expr=template.format(col=qualified),
            )))
        return result


def _dedupe(conditions: List[Condition]) -> List[Condition]:
    seen = set()
    unique: List[Condition] = []
    for cond in conditions:
        key = (cond.table_name, cond.column_name, cond.operator, cond.value, cond.complex_expr)
        if key in seen:
            continue
        seen.add(key)
        unique.append(cond)
    return unique