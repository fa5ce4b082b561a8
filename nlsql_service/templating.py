"""
Templated SQL: one statement per data row.

A template such as::

    INSERT INTO users (name) VALUES ('{{ name }}');

is rendered once per row, each ``{{ placeholder }}`` replaced by the row
value of the field the matching variable points at.  Placeholders without
a variable, or whose field is missing from the row, are left untouched.
"""

import re
from typing import Any, Dict, List, Mapping, Sequence, Union

from pydantic import BaseModel

from .logger import logger

_PLACEHOLDER_RE = re.compile(r"\{\{ (\w+) \}\}")


class TemplateVariable(BaseModel):
    field: str
    value: str
    position: int = 0


VariableLike = Union[TemplateVariable, Mapping[str, Any]]


def _as_variable(raw: VariableLike) -> TemplateVariable:
    if isinstance(raw, TemplateVariable):
        return raw
    return TemplateVariable.model_validate(raw)


def render_template(
    query: str,
    rows: Sequence[Mapping[str, Any]],
    variables: Sequence[VariableLike],
    minify: bool = False,
) -> str:
    """Render *query* for each row; rows are joined by newlines.

    With ``minify`` every newline in the output, including those inside the
    template itself, becomes a single space.
    """
    by_placeholder: Dict[str, str] = {}
    for raw in variables:
        var = _as_variable(raw)
        by_placeholder.setdefault(var.value, var.field)

    rendered: List[str] = []
    for row in rows:
        def substitute(match):
            field_name = by_placeholder.get(match.group(1))
            if field_name is None or field_name not in row:
                return match.group(0)
            return str(row[field_name])

        rendered.append(_PLACEHOLDER_RE.sub(substitute, query))

    result = "\n".join(rendered)
    logger.info("render_template — %d row(s) rendered", len(rendered))
    if minify:
        return result.replace("\n", " ")
    return result
