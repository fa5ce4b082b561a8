"""
Language detection, per-language vocabulary, and prompt normalization.

Every language-dependent table used by the pipeline lives on a
``LanguageProfile``.  The profile is chosen once per request by
``detect_language`` and threaded through every stage, so no stage branches
on the language tag itself.

Normalization is best-effort: it rewrites known idioms into a canonical
vocabulary and passes everything else through unchanged.

    'selecione a coluna id da tabela clan onde id for menor que 100'
        → 'select COLUMN:id TABLE:clan onde id < 100'
    'How many products have a price greater than 100'
        → 'count products have a price > 100'
"""

import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Pattern, Tuple

from .logger import logger

_I = re.IGNORECASE

LANG_EN = "en"
LANG_PT = "pt"

TABLE_MARKER = "TABLE:"
COLUMN_MARKER = "COLUMN:"

Rewrite = Tuple[Pattern, str]


def _rules(*pairs: Tuple[str, str]) -> Tuple[Rewrite, ...]:
    return tuple((re.compile(p, _I), r) for p, r in pairs)


def _patterns(*raw: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(p, _I) for p in raw)


@dataclass(frozen=True)
class LanguageProfile:
    code: str
    detect_keywords: FrozenSet[str]

    # --- normalization ---
    mention_rules: Tuple[Rewrite, ...]
    operator_rules: Tuple[Rewrite, ...]
    verb_rules: Tuple[Rewrite, ...]
    filter_keyword: Pattern

    # --- operation classifier ---
    operation_patterns: Dict[str, Tuple[Pattern, ...]]
    operation_keywords: Dict[str, Tuple[str, ...]]
    filter_markers: Tuple[str, ...]

    # --- condition extractor ---
    disjunction: Pattern
    complex_expression: Pattern
    like_templates: Tuple[Tuple[Pattern, str], ...]
    relative_dates: Tuple[Tuple[str, str, str], ...]
    last_n_pattern: Pattern
    date_units: Dict[str, str]
    weekday_pattern: Pattern
    weekdays: Dict[str, int]
    month_pattern: Pattern
    months: Dict[str, int]
    quarter_pattern: Pattern
    semester_pattern: Pattern
    ordinals: Dict[str, int]

    # --- query builder ---
    aggregates: Tuple[Tuple[str, str], ...]
    group_by_pattern: Pattern
    group_per_pattern: Pattern
    categorical_words: Tuple[str, ...]
    date_granularity: Tuple[Tuple[Pattern, str], ...]
    having_pattern: Pattern
    order_by_pattern: Pattern
    descending_words: Tuple[str, ...]
    descending_direction_words: Tuple[str, ...]
    limit_patterns: Tuple[Pattern, ...]
    offset_pattern: Pattern
    join_types: Tuple[Tuple[Pattern, str], ...]

    # --- entity resolver ---
    identifier_words: Tuple[str, ...]
    temporal_words: Tuple[str, ...]
    descriptive_words: Tuple[str, ...]
    stop_words: FrozenSet[str]

    # --- guard messages ---
    messages: Dict[str, str] = field(default_factory=dict)

    def message(self, key: str, *args) -> str:
        template = self.messages[key]
        return template % args if args else template


# ---------------------- SHARED VOCABULARY ----------------------

# Canonical verbs are English in both profiles once normalized, so the
# patterns that look for them are shared.
_CANONICAL_PATTERNS: Dict[str, Tuple[str, ...]] = {
    "select": (r"^\s*select\b",),
    "count": (r"^\s*count\b", r"\bcount\s+(?:of\s+)?(?:the\s+)?\w+"),
    "insert": (r"^\s*insert\b", r"\binsert\s+(?:a\s+|an\s+|um\s+|uma\s+)?(?:new\s+|novo\s+|nova\s+)?\w+"),
    "update": (r"^\s*update\b", r"\bset\s+\w+\s*="),
    "delete": (r"^\s*delete\b", r"\bdelete\s+(?:the\s+|all\s+|o\s+|a\s+|os\s+|as\s+)?\w+"),
    "join": (r"\b(?:left|right|inner|full)\s+(?:outer\s+)?join\b",),
    "group": (),
    "order": (),
    "limit": (r"\blimit\s+\d+\b",),
    "distinct": (r"\bdistinct\b",),
}

# Literal SQL already typed into the prompt; matched case-sensitively.
SQL_FRAGMENTS: Dict[str, Tuple[Pattern, ...]] = {
    "join": (re.compile(r"\bJOIN\b"),),
    "group": (re.compile(r"\bGROUP\s+BY\b"),),
    "order": (re.compile(r"\bORDER\s+BY\b"),),
    "limit": (re.compile(r"\bLIMIT\s+\d+"),),
    "distinct": (re.compile(r"\bSELECT\s+DISTINCT\b"),),
    "count": (re.compile(r"\bCOUNT\s*\("),),
}

# Concept → words that name it, in both languages.  A table whose name
# belongs to a group is matched by any other word of that group.
DOMAIN_SYNONYMS: Tuple[Tuple[str, ...], ...] = (
    ("user", "usuário", "usuario", "customer", "cliente", "client", "person",
     "people", "pessoa", "member", "membro", "account", "conta"),
    ("product", "produto", "item", "merchandise", "mercadoria", "goods"),
    ("order", "pedido", "purchase", "compra", "sale", "venda"),
    ("category", "categoria", "classification", "classificação"),
    ("payment", "pagamento", "transaction", "transação", "transacao"),
    ("comment", "comentário", "comentario", "review", "avaliação", "avaliacao"),
    ("post", "postagem", "article", "artigo", "publication", "publicação"),
    ("address", "endereço", "endereco", "location", "localização"),
    ("inventory", "estoque", "warehouse", "armazém", "stock"),
    ("employee", "funcionário", "funcionario", "worker", "trabalhador", "staff"),
)

# Reused as normalization rule fragments.
_VALUE = r"('[^']*'|\"[^\"]*\"|[\w.@:-]+)"

_JOIN_TYPES_COMMON = (
    (r"\bleft\s+(?:outer\s+)?join\b", "LEFT JOIN"),
    (r"\bright\s+(?:outer\s+)?join\b", "RIGHT JOIN"),
    (r"\bfull\s+(?:outer\s+)?join\b", "FULL JOIN"),
    (r"\binner\s+join\b", "INNER JOIN"),
)

_MONTH_NUMBERS_EN = {
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11,
    "december": 12,
}
_MONTH_NUMBERS_PT = {
    "janeiro": 1, "fevereiro": 2, "março": 3, "marco": 3, "abril": 4, "maio": 5,
    "junho": 6, "julho": 7, "agosto": 8, "setembro": 9, "outubro": 10,
    "novembro": 11, "dezembro": 12,
}

# DAYOFWEEK numbering: Sunday = 1.
_WEEKDAY_NUMBERS_EN = {
    "sunday": 1, "monday": 2, "tuesday": 3, "wednesday": 4, "thursday": 5,
    "friday": 6, "saturday": 7,
}
_WEEKDAY_NUMBERS_PT = {
    "domingo": 1, "segunda": 2, "terça": 3, "terca": 3, "quarta": 4,
    "quinta": 5, "sexta": 6, "sábado": 7, "sabado": 7,
}


def _previous(unit: str) -> str:
    """BETWEEN bounds covering the whole previous calendar *unit*."""
    start = f"DATE_TRUNC('{unit}', CURRENT_DATE())"
    return (
        f"DATE_SUB({start}, INTERVAL 1 {unit.upper()}) "
        f"AND DATE_SUB({start}, INTERVAL 1 DAY)"
    )


# ---------------------- ENGLISH ----------------------

ENGLISH = LanguageProfile(
    code=LANG_EN,
    detect_keywords=frozenset({
        "show", "get", "find", "what", "which", "how", "many", "where", "when",
        "list", "select", "all", "the", "from", "with", "table", "column",
        "give", "me", "count", "delete", "update", "insert", "and", "of",
        "have", "has", "is", "are", "than", "greater", "less", "order", "by",
    }),
    mention_rules=_rules(
        (r"\b(?:(?:from|in|on|into)\s+)?the\s+(\w+)\s+table\b", TABLE_MARKER + r"\1"),
        (r"\b(?:(?:from|in|on|into)\s+)?(?:the\s+)?table\s+(?:of\s+|named\s+|called\s+)?(\w+)", TABLE_MARKER + r"\1"),
        (r"\bthe\s+(\w+)\s+column\b", COLUMN_MARKER + r"\1"),
        (r"\b(?:the\s+)?columns?\s+(?:named\s+|called\s+)?(\w+)", COLUMN_MARKER + r"\1"),
    ),
    operator_rules=_rules(
        (r"\b(?:is\s+)?not\s+null\b|\bis\s+not\s+empty\b|\bhas\s+a\s+value\b", "IS NOT NULL"),
        (r"\bis\s+(?:null|empty|missing)\b", "IS NULL"),
        (r"\b(?:is\s+)?(?:greater|more|higher|bigger|larger)\s+than\s+or\s+equal\s+to\b", ">="),
        (r"\b(?:is\s+)?(?:less|lower|smaller|fewer)\s+than\s+or\s+equal\s+to\b", "<="),
        (r"\b(?:is\s+)?at\s+least\b", ">="),
        (r"\b(?:is\s+)?at\s+most\b|\b(?:is\s+)?no\s+more\s+than\b", "<="),
        (r"\b(?:is\s+)?(?:greater|more|higher|bigger|larger)\s+than\b", ">"),
        (r"\b(?:is\s+)?(?:above|over|after)\s+(?=[\d'\"])", "> "),
        (r"\b(?:is\s+)?(?:less|lower|smaller|fewer)\s+than\b", "<"),
        (r"\b(?:is\s+)?(?:below|under|before)\s+(?=[\d'\"])", "< "),
        (r"\b(?:is\s+)?not\s+equal\s+to\b|\bdoes\s+not\s+equal\b|\bis\s+different\s+from\b|\bdifferent\s+from\b|\bisn't\b|\bis\s+not\b(?!\s+NULL\b)", "!="),
        (r"\b(?:is\s+)?equal\s+to\b|\bequals\b", "="),
        (r"\b(?:contains|containing|includes|including\s+the\s+text)\b", "LIKE"),
        (r"\bbetween\s+" + _VALUE + r"\s+and\s+" + _VALUE, r"BETWEEN \1 AND \2"),
        (r"\b(?:is\s+)?(?:in|one\s+of)\s*\(", "IN ("),
        (r"\b(where|and|or|with|whose)\s+((?:COLUMN:)?\w+)\s+is\s+(?!(?:NOT\s+)?NULL\b)", r"\1 \2 = "),
        (r"\b(where|with|whose)\s+(id|\w+_id)\s+(\d+)\b", r"\1 \2 = \3"),
    ),
    verb_rules=_rules(
        (r"\bhow\s+many\b|\bnumber\s+of\b|\bcount\s+of\b", "count"),
        (r"\b(?:show|give|get|tell)\s+me\b", "select"),
        (r"^\s*(?:show|list|display|fetch|retrieve|find|get|return)\b", "select"),
        (r"\b(?:add|create)\s+(?:a\s+|an\s+)?new\b", "insert"),
        (r"^\s*(?:add|create)\b", "insert"),
        (r"^\s*(?:remove|erase)\b", "delete"),
        (r"^\s*(?:change|modify|edit)\b", "update"),
    ),
    filter_keyword=re.compile(r"\b(?:where|whose|with|having)\b", _I),
    operation_patterns={
        **{op: _patterns(*p) for op, p in _CANONICAL_PATTERNS.items()},
        "select": _patterns(r"^\s*select\b", r"\bwhat\s+(?:are|is)\b", r"\bwhich\b"),
        "join": _patterns(
            r"\b(?:left|right|inner|full)\s+(?:outer\s+)?join\b",
            r"\balong\s+with\b", r"\btogether\s+with\b", r"\bcombined\s+with\b",
        ),
        "group": _patterns(r"\bgroup(?:ed)?\s+by\b", r"\bfor\s+each\b", r"\bper\s+\w+"),
        "order": _patterns(r"\b(?:order|sort)(?:ed)?\s+by\b"),
        "limit": _patterns(r"\b(?:top|first|limit)\s+\d+\b"),
        "distinct": _patterns(r"\bdistinct\b", r"\bunique\s+\w+"),
    },
    operation_keywords={
        "select": ("select", "show", "list", "display", "find", "get"),
        "count": ("count", "total number", "how many"),
        "insert": ("insert", "add", "create", "new", "register"),
        "update": ("update", "change", "modify", "set", "edit"),
        "delete": ("delete", "remove", "erase"),
        "join": ("join", "along with", "together with", "combined", "related", "including their"),
        "group": ("group", "grouped", "per", "each", "breakdown"),
        "order": ("order by", "sort", "sorted", "ascending", "descending", "newest", "oldest", "latest"),
        "limit": ("limit", "top", "first"),
        "distinct": ("distinct", "unique"),
    },
    filter_markers=("where", "whose", "with", ">", "<", "=", "!=", "LIKE", "BETWEEN", "IN (", "IS NULL", "IS NOT NULL"),
    disjunction=re.compile(r"\b(?:or|either)\b", _I),
    complex_expression=re.compile(r"\bwhere\s+(.+?)\s+(and|or)\s+\((.+?)\)", _I),
    like_templates=(
        (re.compile(r"\b(\w+)\s+(?:starts|begins)\s+with\s+" + _VALUE, _I), "starts"),
        (re.compile(r"\b(\w+)\s+ends\s+with\s+" + _VALUE, _I), "ends"),
        (re.compile(r"\b(\w+)\s+LIKE\s+" + _VALUE), "contains"),
    ),
    relative_dates=(
        ("today", "=", "CURRENT_DATE()"),
        ("yesterday", "=", "DATE_SUB(CURRENT_DATE(), INTERVAL 1 DAY)"),
        ("tomorrow", "=", "DATE_ADD(CURRENT_DATE(), INTERVAL 1 DAY)"),
        ("this week", ">=", "DATE_TRUNC('week', CURRENT_DATE())"),
        ("last week", "BETWEEN", _previous("week")),
        ("next week", ">=", "DATE_ADD(DATE_TRUNC('week', CURRENT_DATE()), INTERVAL 1 WEEK)"),
        ("this month", ">=", "DATE_TRUNC('month', CURRENT_DATE())"),
        ("last month", "BETWEEN", _previous("month")),
        ("next month", ">=", "DATE_ADD(DATE_TRUNC('month', CURRENT_DATE()), INTERVAL 1 MONTH)"),
        ("this year", ">=", "DATE_TRUNC('year', CURRENT_DATE())"),
        ("last year", "BETWEEN", _previous("year")),
        ("next year", ">=", "DATE_ADD(DATE_TRUNC('year', CURRENT_DATE()), INTERVAL 1 YEAR)"),
    ),
    last_n_pattern=re.compile(r"\b(?:last|past|previous)\s+(\d+)\s+(days?|weeks?|months?|years?|hours?|minutes?)\b", _I),
    date_units={
        "day": "DAY", "days": "DAY", "week": "WEEK", "weeks": "WEEK",
        "month": "MONTH", "months": "MONTH", "year": "YEAR", "years": "YEAR",
        "hour": "HOUR", "hours": "HOUR", "minute": "MINUTE", "minutes": "MINUTE",
    },
    weekday_pattern=re.compile(r"\bon\s+(sunday|monday|tuesday|wednesday|thursday|friday|saturday)s?\b", _I),
    weekdays=_WEEKDAY_NUMBERS_EN,
    month_pattern=re.compile(
        r"\b(?:in|during)\s+(" + "|".join(_MONTH_NUMBERS_EN) + r")\b", _I,
    ),
    months=_MONTH_NUMBERS_EN,
    quarter_pattern=re.compile(
        r"\b(?:q([1-4])|(first|second|third|fourth|1st|2nd|3rd|4th)\s+quarter|quarter\s+([1-4]))\b", _I,
    ),
    semester_pattern=re.compile(r"\b(first|second|1st|2nd)\s+(?:semester|half)\b", _I),
    ordinals={
        "first": 1, "1st": 1, "second": 2, "2nd": 2, "third": 3, "3rd": 3,
        "fourth": 4, "4th": 4,
    },
    aggregates=(
        ("count distinct", "COUNT(DISTINCT {col})"),
        ("unique count", "COUNT(DISTINCT {col})"),
        ("standard deviation", "STDDEV({col})"),
        ("variance", "VARIANCE({col})"),
        ("median", "PERCENTILE_CONT(0.5) WITHIN GROUP (ORDER BY {col})"),
        ("average", "AVG({col})"),
        ("mean", "AVG({col})"),
        ("avg", "AVG({col})"),
        ("sum", "SUM({col})"),
        ("total", "SUM({col})"),
        ("maximum", "MAX({col})"),
        ("highest", "MAX({col})"),
        ("max", "MAX({col})"),
        ("minimum", "MIN({col})"),
        ("lowest", "MIN({col})"),
        ("min", "MIN({col})"),
    ),
    group_by_pattern=re.compile(r"\bgroup(?:ed)?\s+by\s+(\w+)", _I),
    group_per_pattern=re.compile(r"\b(?:per|by|for\s+each)\s+(\w+)", _I),
    categorical_words=("type", "category", "status", "group", "class", "level", "state", "country", "region"),
    date_granularity=(
        (re.compile(r"\b(?:by|per)\s+year\b|\byearly\b", _I), "YEAR"),
        (re.compile(r"\b(?:by|per)\s+quarter\b|\bquarterly\b", _I), "QUARTER"),
        (re.compile(r"\b(?:by|per)\s+month\b|\bmonthly\b", _I), "MONTH"),
        (re.compile(r"\b(?:by|per)\s+week\b|\bweekly\b", _I), "WEEK"),
        (re.compile(r"\b(?:by|per)\s+day\b|\bdaily\b", _I), "DAY"),
    ),
    having_pattern=re.compile(r"\bhaving\s+(?:(\w+)\s+)?(>=|<=|!=|>|<|=)?\s*(\d+(?:\.\d+)?)", _I),
    order_by_pattern=re.compile(
        r"\b(?:order|sort)(?:ed)?\s+by\s+(\w+)(?:\s+(asc|desc|ascending|descending))?", _I,
    ),
    descending_words=("desc", "descending", "newest", "latest", "most recent", "highest", "largest"),
    descending_direction_words=("desc", "descending"),
    limit_patterns=_patterns(
        r"\blimit\s+(?:to\s+)?(\d+)",
        r"\b(?:top|first)\s+(\d+)",
        r"\b(\d+)\s+(?:rows|records|results|items)\b",
    ),
    offset_pattern=re.compile(r"\b(?:offset|skip(?:ping)?)\s+(?:the\s+first\s+)?(\d+)", _I),
    join_types=tuple((re.compile(p, _I), kw) for p, kw in _JOIN_TYPES_COMMON),
    identifier_words=("id", "ids", "identifier", "key", "code"),
    temporal_words=("date", "time", "when", "today", "yesterday", "day", "month", "year", "recent", "created", "updated"),
    descriptive_words=("name", "names", "title", "titles", "description", "label"),
    stop_words=frozenset({
        "the", "a", "an", "and", "but", "or", "for", "nor", "on", "at", "to",
        "from", "by", "with", "about", "between", "into", "of", "in", "out",
        "all", "any", "each", "every", "some", "that", "this", "these",
        "those", "which", "who", "what", "when", "where", "why", "how",
        "not", "only", "more", "most", "less", "as", "if", "then", "get",
        "select", "find", "show", "tell", "give", "list", "me", "us", "you",
        "they", "them", "it", "its", "table", "column", "row", "value",
        "field", "record", "records", "data", "sql", "query", "having",
        "join", "left", "right", "inner", "outer", "full", "count", "sum",
        "avg", "min", "max", "like", "group", "order", "limit", "offset",
        "can", "could", "would", "should", "may", "might", "have", "has",
        "is", "are", "was", "were", "along", "information", "info",
        "delete", "update", "insert", "new", "specified", "condition", "no",
    }),
    messages={
        "no_table": "Unable to determine which table to query. Please specify the table in your query.",
        "no_table_for": "Unable to identify the table for %s. Please specify the table in your query.",
        "unsafe_delete": "DELETE on %s requires a WHERE condition. Please specify which records to delete.",
        "unsafe_update": "UPDATE on %s requires a WHERE condition. Please specify which records to update.",
        "no_insert_columns": "Table %s has no columns available for INSERT.",
        "no_update_columns": "Table %s has no columns available for UPDATE.",
        "incomplete_select": "Incomplete SELECT query. Missing table specification (FROM).",
        "not_initialized": "The assistant has no schema loaded. Scan or load a database schema first.",
    },
)


# ---------------------- PORTUGUESE ----------------------

_PT_VERB = r"(?:\b(?:for|forem|seja|sejam|é|são|está|estão|esteja)\s+)?\b"

PORTUGUESE = LanguageProfile(
    code=LANG_PT,
    detect_keywords=frozenset({
        "mostrar", "mostre", "obter", "obtenha", "encontrar", "encontre",
        "qual", "quais", "como", "quantos", "quantas", "onde", "quando",
        "listar", "liste", "selecionar", "selecione", "exiba", "exibir",
        "tabela", "coluna", "colunas", "todos", "todas", "da", "do", "dos",
        "das", "de", "com", "para", "igual", "maior", "menor", "diferente",
        "é", "entre", "ou", "que", "excluir", "exclua", "atualizar",
        "atualize", "inserir", "insira", "os", "as", "um", "uma",
    }),
    mention_rules=_rules(
        (r"\b(?:(?:da|de|na|em|a)\s+)?tabela\s+(?:de\s+|dos\s+|das\s+)?(\w+)", TABLE_MARKER + r"\1"),
        (r"\b(?:(?:a|as)\s+)?colunas?\s+(\w+)", COLUMN_MARKER + r"\1"),
        (r"\b(?:o|os)\s+campos?\s+(\w+)", COLUMN_MARKER + r"\1"),
    ),
    operator_rules=_rules(
        (r"\bnão\s+(?:for|é|seja|está|esteja)?\s*(?:nulo|nula|vazio|vazia)\b", "IS NOT NULL"),
        (_PT_VERB + r"(?:nulo|nula|vazio|vazia)\b", "IS NULL"),
        (_PT_VERB + r"maior\s+ou\s+igual\s+(?:a|que)\b", ">="),
        (_PT_VERB + r"menor\s+ou\s+igual\s+(?:a|que)\b", "<="),
        (_PT_VERB + r"(?:no\s+mínimo|pelo\s+menos)\b", ">="),
        (_PT_VERB + r"no\s+máximo\b", "<="),
        (_PT_VERB + r"maior\s+(?:do\s+)?que\b", ">"),
        (_PT_VERB + r"(?:acima|depois)\s+de\b", ">"),
        (_PT_VERB + r"menor\s+(?:do\s+)?que\b", "<"),
        (_PT_VERB + r"(?:abaixo|antes)\s+de\b", "<"),
        (_PT_VERB + r"diferente\s+(?:de|que)\b", "!="),
        (r"\bnão\s+(?:for\s+|é\s+|seja\s+)?igual\s+(?:a|à)\b", "!="),
        (_PT_VERB + r"igual\s+(?:a|à)\b", "="),
        (r"\b(?:que\s+)?(?:contém|contem|contendo|contenha|contenham)\b", "LIKE"),
        (r"\b(?:está\s+|estiver\s+)?entre\s+" + _VALUE + r"\s+e\s+" + _VALUE, r"BETWEEN \1 AND \2"),
        (r"\b(?:está\s+|estiver\s+)?(?:em|dentre)\s*\(", "IN ("),
        (r"\b(onde|e|ou|com|cujo|cuja)\s+((?:COLUMN:)?\w+)\s+(?:é|for|seja)\s+", r"\1 \2 = "),
        (r"\b(onde|com|cujo|cuja)\s+(id|\w+_id)\s+(\d+)\b", r"\1 \2 = \3"),
    ),
    verb_rules=_rules(
        (r"\b(?:quantos|quantas|número\s+de|numero\s+de|contar|conte)\b", "count"),
        (r"\b(?:selecione|selecionar|mostre|mostrar|exiba|exibir|liste|listar|busque|buscar|traga|trazer|obtenha|obter|encontre|encontrar|consulte|consultar)\b", "select"),
        (r"\b(?:insira|inserir|adicione|adicionar|crie|criar|cadastre|cadastrar)\b", "insert"),
        (r"\b(?:atualize|atualizar|altere|alterar|modifique|modificar|edite|editar)\b", "update"),
        (r"\b(?:exclua|excluir|deletar|delete|remova|remover|apague|apagar)\b", "delete"),
    ),
    filter_keyword=re.compile(r"\b(?:onde|cujo|cuja|com|tendo)\b", _I),
    operation_patterns={
        **{op: _patterns(*p) for op, p in _CANONICAL_PATTERNS.items()},
        "select": _patterns(r"^\s*select\b", r"\bqua(?:l|is)\s+(?:é|são)\b"),
        "join": _patterns(
            r"\b(?:left|right|inner|full)\s+(?:outer\s+)?join\b",
            r"\bjunto\s+com\b", r"\bjuntamente\s+com\b", r"\bjunção\b",
            r"\bcombinad[oa]s?\s+com\b",
        ),
        "group": _patterns(r"\bagrupad[oa]s?\s+por\b", r"\bagrupar\s+por\b", r"\bpara\s+cada\b", r"\bpor\s+cada\b"),
        "order": _patterns(r"\b(?:ordenad[oa]s?|ordenar|ordene|classificad[oa]s?|classificar)\s+por\b"),
        "limit": _patterns(r"\b(?:primeir[oa]s|limite|limitar\s+a|apenas)\s+\d+\b"),
        "distinct": _patterns(r"\bdistint[oa]s\b", r"\búnic[oa]s\b", r"\bdiferentes\b"),
    },
    operation_keywords={
        "select": ("select", "mostrar", "listar", "exibir", "buscar", "consultar"),
        "count": ("count", "quantidade", "total de"),
        "insert": ("insert", "novo", "nova", "cadastro"),
        "update": ("update", "alteração", "atualização", "modificação"),
        "delete": ("delete", "exclusão", "remoção"),
        "join": ("junção", "junto com", "juntamente", "combinado", "relacionado", "relacionados"),
        "group": ("agrupar", "agrupado", "agrupados", "para cada", "por cada"),
        "order": ("ordenar", "ordenado", "ordenados", "crescente", "decrescente", "mais recente", "mais antigo"),
        "limit": ("limite", "limitar", "primeiros", "primeiras"),
        "distinct": ("distinto", "distintos", "únicos", "diferentes"),
    },
    filter_markers=("onde", "cujo", "cuja", ">", "<", "=", "!=", "LIKE", "BETWEEN", "IN (", "IS NULL", "IS NOT NULL"),
    disjunction=re.compile(r"\b(?:ou|um\s+dos)\b", _I),
    complex_expression=re.compile(r"\bonde\s+(.+?)\s+(e|ou)\s+\((.+?)\)", _I),
    like_templates=(
        (re.compile(r"\b(\w+)\s+(?:começa|comece|inicia|inicie)\s+com\s+" + _VALUE, _I), "starts"),
        (re.compile(r"\b(\w+)\s+(?:termina|termine)\s+com\s+" + _VALUE, _I), "ends"),
        (re.compile(r"\b(\w+)\s+LIKE\s+" + _VALUE), "contains"),
    ),
    relative_dates=(
        ("hoje", "=", "CURRENT_DATE()"),
        ("ontem", "=", "DATE_SUB(CURRENT_DATE(), INTERVAL 1 DAY)"),
        ("amanhã", "=", "DATE_ADD(CURRENT_DATE(), INTERVAL 1 DAY)"),
        ("esta semana", ">=", "DATE_TRUNC('week', CURRENT_DATE())"),
        ("semana passada", "BETWEEN", _previous("week")),
        ("próxima semana", ">=", "DATE_ADD(DATE_TRUNC('week', CURRENT_DATE()), INTERVAL 1 WEEK)"),
        ("este mês", ">=", "DATE_TRUNC('month', CURRENT_DATE())"),
        ("mês passado", "BETWEEN", _previous("month")),
        ("próximo mês", ">=", "DATE_ADD(DATE_TRUNC('month', CURRENT_DATE()), INTERVAL 1 MONTH)"),
        ("este ano", ">=", "DATE_TRUNC('year', CURRENT_DATE())"),
        ("ano passado", "BETWEEN", _previous("year")),
        ("próximo ano", ">=", "DATE_ADD(DATE_TRUNC('year', CURRENT_DATE()), INTERVAL 1 YEAR)"),
    ),
    last_n_pattern=re.compile(
        r"\b(?:n[oa]s\s+)?(?:últim[oa]s|ultim[oa]s)\s+(\d+)\s+(dias?|semanas?|mês|mes|meses|anos?|horas?|minutos?)\b", _I,
    ),
    date_units={
        "dia": "DAY", "dias": "DAY", "semana": "WEEK", "semanas": "WEEK",
        "mês": "MONTH", "mes": "MONTH", "meses": "MONTH", "ano": "YEAR",
        "anos": "YEAR", "hora": "HOUR", "horas": "HOUR", "minuto": "MINUTE",
        "minutos": "MINUTE",
    },
    weekday_pattern=re.compile(
        r"\b(?:(domingo|sábado|sabado)s?|(segunda|terça|terca|quarta|quinta|sexta)s?-feiras?)\b",
        _I,
    ),
    weekdays=_WEEKDAY_NUMBERS_PT,
    month_pattern=re.compile(
        r"\b(?:em|durante|de)\s+(" + "|".join(_MONTH_NUMBERS_PT) + r")\b", _I,
    ),
    months=_MONTH_NUMBERS_PT,
    quarter_pattern=re.compile(
        r"\b(?:(primeiro|segundo|terceiro|quarto|[1-4]º?)\s+trimestre|trimestre\s+([1-4]))\b", _I,
    ),
    semester_pattern=re.compile(r"\b(primeiro|segundo|1º|2º)\s+semestre\b", _I),
    ordinals={
        "primeiro": 1, "1º": 1, "1": 1, "segundo": 2, "2º": 2, "2": 2,
        "terceiro": 3, "3º": 3, "3": 3, "quarto": 4, "4º": 4, "4": 4,
    },
    aggregates=(
        ("contagem distinta", "COUNT(DISTINCT {col})"),
        ("contagem única", "COUNT(DISTINCT {col})"),
        ("desvio padrão", "STDDEV({col})"),
        ("variância", "VARIANCE({col})"),
        ("mediana", "PERCENTILE_CONT(0.5) WITHIN GROUP (ORDER BY {col})"),
        ("média", "AVG({col})"),
        ("soma", "SUM({col})"),
        ("total", "SUM({col})"),
        ("máximo", "MAX({col})"),
        ("maior", "MAX({col})"),
        ("mínimo", "MIN({col})"),
        ("menor", "MIN({col})"),
    ),
    group_by_pattern=re.compile(r"\b(?:agrupad[oa]s?|agrupar)\s+por\s+(\w+)", _I),
    group_per_pattern=re.compile(r"\b(?:por|para\s+cada|por\s+cada)\s+(\w+)", _I),
    categorical_words=("tipo", "categoria", "status", "grupo", "classe", "nivel", "estado", "pais", "regiao",
                       "type", "category", "group", "class", "level", "state", "country", "region"),
    date_granularity=(
        (re.compile(r"\bpor\s+ano\b|\banual\b", _I), "YEAR"),
        (re.compile(r"\bpor\s+trimestre\b|\btrimestral\b", _I), "QUARTER"),
        (re.compile(r"\bpor\s+(?:mês|mes)\b|\bmensal\b", _I), "MONTH"),
        (re.compile(r"\bpor\s+semana\b|\bsemanal\b", _I), "WEEK"),
        (re.compile(r"\bpor\s+dia\b|\bdiário\b|\bdiario\b", _I), "DAY"),
    ),
    having_pattern=re.compile(r"\b(?:tendo|com)\s+(?:(\w+)\s+)?(>=|<=|!=|>|<|=)\s*(\d+(?:\.\d+)?)", _I),
    order_by_pattern=re.compile(
        r"\b(?:ordenad[oa]s?|ordenar|ordene|classificad[oa]s?|classificar)\s+por\s+(\w+)(?:\s+(asc|desc|crescente|decrescente))?",
        _I,
    ),
    descending_words=("desc", "decrescente", "mais recente", "mais recentes", "último", "últimos", "mais alto"),
    descending_direction_words=("desc", "decrescente"),
    limit_patterns=_patterns(
        r"\blimit(?:e|ar)?\s+(?:a\s+|para\s+|em\s+)?(\d+)",
        r"\b(?:primeir[oa]s|apenas|somente)\s+(\d+)",
        r"\b(\d+)\s+(?:registros|linhas|resultados|itens)\b",
    ),
    offset_pattern=re.compile(
        r"\b(?:pul(?:e|ar|ando)|ignor(?:e|ar|ando)|deslocamento|offset)\s+(?:os\s+primeiros\s+|as\s+primeiras\s+)?(\d+)", _I,
    ),
    join_types=tuple(
        (re.compile(p, _I), kw) for p, kw in _JOIN_TYPES_COMMON + (
            (r"\bjunção\s+(?:à\s+)?esquerda\b", "LEFT JOIN"),
            (r"\bjunção\s+(?:à\s+)?direita\b", "RIGHT JOIN"),
            (r"\bjunção\s+(?:completa|total)\b", "FULL JOIN"),
            (r"\bjunção\s+interna\b", "INNER JOIN"),
        )
    ),
    identifier_words=("id", "ids", "identificador", "código", "codigo", "chave"),
    temporal_words=("data", "hora", "quando", "período", "periodo", "hoje", "ontem", "dia", "mês", "ano", "recente", "criado", "atualizado"),
    descriptive_words=("nome", "nomes", "título", "titulo", "descrição", "descricao", "name", "title"),
    stop_words=frozenset({
        "o", "a", "os", "as", "um", "uma", "uns", "umas", "de", "do", "da",
        "dos", "das", "no", "na", "nos", "nas", "ao", "aos", "à", "às",
        "pelo", "pela", "pelos", "pelas", "com", "sem", "para", "por", "em",
        "sobre", "entre", "e", "mas", "ou", "que", "quando", "como", "onde",
        "se", "eu", "ele", "ela", "eles", "elas", "meu", "minha", "seu",
        "sua", "este", "esta", "esse", "essa", "isto", "isso", "todos",
        "todas", "todo", "toda", "algum", "alguma", "alguns", "algumas",
        "me", "tabela", "coluna", "linha", "valor", "campo", "registro",
        "registros", "banco", "dados", "quero", "select", "count", "insert",
        "update", "delete", "for", "é", "são", "informações", "novo", "nova",
    }),
    messages={
        "no_table": "Não foi possível determinar qual tabela consultar. Especifique a tabela na sua consulta.",
        "no_table_for": "Não foi possível identificar a tabela para o %s. Especifique a tabela na sua consulta.",
        "unsafe_delete": "DELETE em %s requer uma condição WHERE. Especifique quais registros deseja excluir.",
        "unsafe_update": "UPDATE em %s requer uma condição WHERE. Especifique quais registros deseja atualizar.",
        "no_insert_columns": "A tabela %s não possui colunas disponíveis para INSERT.",
        "no_update_columns": "A tabela %s não possui colunas disponíveis para UPDATE.",
        "incomplete_select": "Consulta SELECT incompleta. Falta especificar a tabela (FROM).",
        "not_initialized": "O assistente não possui um esquema carregado. Escaneie ou carregue o esquema do banco primeiro.",
    },
)

PROFILES: Dict[str, LanguageProfile] = {LANG_EN: ENGLISH, LANG_PT: PORTUGUESE}


# ---------------------- DETECTION ----------------------

_WORD_RE = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str) -> List[str]:
    return [w.lower() for w in _WORD_RE.findall(text)]


def detect_language(prompt: str) -> str:
    """Pick EN or PT by counting keyword hits; PT only wins outright."""
    words = tokenize(prompt or "")
    en_hits = sum(1 for w in words if w in ENGLISH.detect_keywords)
    pt_hits = sum(1 for w in words if w in PORTUGUESE.detect_keywords)
    lang = LANG_PT if pt_hits > en_hits else LANG_EN
    logger.debug("detect_language — en=%d pt=%d → %s", en_hits, pt_hits, lang)
    return lang


def get_profile(tag: Optional[str]) -> LanguageProfile:
    return PROFILES.get((tag or "").lower(), ENGLISH)


# ---------------------- NORMALIZATION ----------------------


def _apply(rules: Tuple[Rewrite, ...], text: str) -> str:
    for pattern, replacement in rules:
        text = pattern.sub(replacement, text)
    return text


def normalize(prompt: str, profile: LanguageProfile) -> str:
    """Rewrite idioms into the canonical vocabulary.

    Order matters: explicit table/column mentions are tagged first so the
    operator rules can see ``COLUMN:x`` after a filter keyword, operator
    idioms run longest-first, and operation verbs are canonicalized last.
    Case and quoted literals are preserved.
    """
    text = re.sub(r"\s+", " ", (prompt or "").strip())
    text = _apply(profile.mention_rules, text)
    text = _apply(profile.operator_rules, text)
    text = _apply(profile.verb_rules, text)
    text = re.sub(r"\s+", " ", text).strip()
    logger.info("normalize[%s] — '%s' → '%s'", profile.code, prompt, text)
    return text


def contains_phrase(text: str, phrase: str) -> bool:
    """Case-insensitive whole-word phrase test."""
    return re.search(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)", text, _I) is not None


def explicit_tables(normalized: str) -> List[str]:
    return re.findall(re.escape(TABLE_MARKER) + r"(\w+)", normalized)


def explicit_columns(normalized: str) -> List[str]:
    return re.findall(re.escape(COLUMN_MARKER) + r"(\w+)", normalized)


def projection_segment(normalized: str, profile: LanguageProfile) -> str:
    """Text before the first filter keyword, where projections are named."""
    m = profile.filter_keyword.search(normalized)
    return normalized[:m.start()] if m else normalized
