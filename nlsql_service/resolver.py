"""
Entity resolver: maps prompt words onto schema tables and columns.

Every signal produces a confidence in [0, 1] and each entity keeps its best
signal.  Candidates below the confidence threshold are dropped; survivors
are sorted by confidence, ties keeping schema declaration order.

Table signals (highest first):
    explicit ``TABLE:x`` marker          1.00
    exact word-boundary name             0.95
    singular / plural variant            0.90
    underscore parts all present         0.85
    description substring                0.85
    domain synonym (customer → users)    0.85
    underscore parts partially present   0.50 + 0.30 × fraction

When no table clears the threshold two fallbacks run in order: fuzzy
similarity over the prompt's content words, then inference from column
names found in the prompt.
"""

from difflib import SequenceMatcher
from typing import Dict, List, Optional, Set, Tuple

from .config import CONFIDENCE_THRESHOLD, FUZZY_THRESHOLD
from .language import (
    DOMAIN_SYNONYMS,
    LanguageProfile,
    contains_phrase,
    explicit_columns,
    explicit_tables,
    tokenize,
)
from .logger import logger
from .models import ColumnCandidate, TableCandidate
from .schema_utils import Column, SchemaSnapshot, Table, is_date_type, pluralize, singularize


# ---------------------- SCORING WEIGHTS ----------------------

EXPLICIT_MARKER_SCORE = 1.0
EXACT_MATCH_SCORE = 0.95
SINGULAR_PLURAL_SCORE = 0.9
UNDERSCORE_ALL_PARTS_SCORE = 0.85
UNDERSCORE_PARTIAL_BASE = 0.5
UNDERSCORE_PARTIAL_WEIGHT = 0.3
DESCRIPTION_SCORE = 0.85
SYNONYM_SCORE = 0.85

FUZZY_TABLE_SCORE = 0.75
COLUMN_OWNER_SCORE = 0.7

COLUMN_BASE_FACTOR = 0.8
COLUMN_PARTIAL_WEIGHT = 0.2
COLUMN_DESCRIPTION_SCORE = 0.85
SAMPLE_VALUE_SCORE = 0.85
IDENTIFIER_BOOST = 0.15
DESCRIPTIVE_BOOST = 0.2
TEMPORAL_BOOST = 0.2

_MIN_FUZZY_WORD = 3
_MIN_SAMPLE_LENGTH = 3

_DESCRIPTIVE_COLUMN_HINTS = ("name", "title", "description", "descricao", "nome", "titulo", "label")
_TEMPORAL_COLUMN_HINTS = ("date", "time", "data", "hora", "timestamp", "created", "updated")


# ---------------------- HELPERS ----------------------


def _similarity(a: str, b: str) -> float:
    return SequenceMatcher(None, a.lower(), b.lower()).ratio()


def _word_forms(words: List[str]) -> Set[str]:
    forms: Set[str] = set()
    for w in words:
        forms.add(w)
        forms.add(singularize(w))
    return forms


def _underscore_fraction(name: str, forms: Set[str]) -> Optional[float]:
    """Fraction of a snake_case name's parts present in the prompt.

    Returns ``None`` for names without underscores.
    """
    parts = [p for p in name.lower().split("_") if p]
    if len(parts) < 2:
        return None
    matched = sum(1 for p in parts if p in forms or singularize(p) in forms)
    return matched / len(parts)


def _synonym_hit(table_name: str, prompt: str) -> bool:
    """True when another word naming the same concept as the table occurs."""
    lowered = table_name.lower()
    own_forms = {lowered, singularize(lowered), pluralize(lowered)}
    for group in DOMAIN_SYNONYMS:
        concept = group[0]
        if singularize(lowered) not in group and concept not in lowered:
            continue
        for word in group:
            if word in own_forms:
                continue
            if contains_phrase(prompt, word) or contains_phrase(prompt, pluralize(word)):
                return True
    return False


def _sorted_by_confidence(items, order_key):
    return sorted(items, key=lambda c: (-c.confidence, order_key(c)))


# ---------------------- RESOLVER ----------------------


class EntityResolver:
    """Scores schema tables and columns against a normalized prompt."""

    def __init__(
        self,
        schema: SchemaSnapshot,
        confidence_threshold: float = CONFIDENCE_THRESHOLD,
        fuzzy_threshold: float = FUZZY_THRESHOLD,
    ):
        self.schema = schema
        self.confidence_threshold = confidence_threshold
        self.fuzzy_threshold = fuzzy_threshold
        self._table_order = {t.name: i for i, t in enumerate(schema.tables)}

    # ---- tables ----

    def _score_table(self, table: Table, prompt: str, forms: Set[str], marked: Set[str]) -> Tuple[float, str]:
        name = table.name.lower()
        best, reason = 0.0, ""

        def keep(score: float, why: str):
            nonlocal best, reason
            if score > best:
                best, reason = score, why

        if name in marked:
            keep(EXPLICIT_MARKER_SCORE, "explicit")
        if contains_phrase(prompt, name):
            keep(EXACT_MATCH_SCORE, "exact")
        else:
            singular, plural = singularize(name), pluralize(name)
            if (singular != name and contains_phrase(prompt, singular)) or (
                plural != name and contains_phrase(prompt, plural)
            ):
                keep(SINGULAR_PLURAL_SCORE, "singular/plural")
            elif " " not in name and contains_phrase(prompt, name.replace("_", " ")):
                keep(SINGULAR_PLURAL_SCORE, "spaced name")

        fraction = _underscore_fraction(name, forms)
        if fraction:
            if fraction >= 1.0:
                keep(UNDERSCORE_ALL_PARTS_SCORE, "underscore parts")
            else:
                keep(UNDERSCORE_PARTIAL_BASE + UNDERSCORE_PARTIAL_WEIGHT * fraction, "partial parts")

        description = table.description.strip().lower()
        if len(description) > 3 and description in prompt.lower():
            keep(DESCRIPTION_SCORE, "description")

        if _synonym_hit(table.name, prompt):
            keep(SYNONYM_SCORE, "synonym")

        return best, reason

    def _resolve_marked(self, marked: List[str]) -> Set[str]:
        """Map explicit ``TABLE:x`` markers onto schema table names."""
        names: Set[str] = set()
        for raw in marked:
            raw_lower = raw.lower()
            tbl = self.schema.table(raw_lower)
            if tbl is None:
                for candidate in self.schema.tables:
                    cand = candidate.name.lower()
                    if singularize(cand) == singularize(raw_lower) or raw_lower in cand:
                        tbl = candidate
                        break
            if tbl is not None:
                names.add(tbl.name.lower())
            else:
                logger.info("resolve_tables — explicit table '%s' not in schema", raw)
        return names

    def resolve_tables(self, prompt: str, profile: LanguageProfile) -> List[TableCandidate]:
        """Return tables relevant to *prompt*, most confident first."""
        forms = _word_forms(tokenize(prompt))
        marked = self._resolve_marked(explicit_tables(prompt))

        candidates: List[TableCandidate] = []
        for table in self.schema.tables:
            score, reason = self._score_table(table, prompt, forms, marked)
            if score > 0:
                logger.info("resolve_tables — '%s' scored %.2f (%s)", table.name, score, reason)
            if score >= self.confidence_threshold:
                candidates.append(TableCandidate(name=table.name, confidence=round(score, 4)))

        if candidates:
            return _sorted_by_confidence(candidates, lambda c: self._table_order[c.name])

        fuzzy = self._fuzzy_tables(prompt, profile)
        if fuzzy:
            return fuzzy
        return self._tables_from_columns(prompt)

    def _fuzzy_tables(self, prompt: str, profile: LanguageProfile) -> List[TableCandidate]:
        words = [
            w for w in tokenize(prompt)
            if len(w) >= _MIN_FUZZY_WORD and not w.isdigit() and w not in profile.stop_words
        ]
        scored: List[Tuple[float, int, str]] = []
        for table in self.schema.tables:
            name = table.name.lower()
            variants = {name, singularize(name), pluralize(name)}
            best = 0.0
            for w in words:
                for v in variants:
                    best = max(best, _similarity(w, v))
            if best >= self.fuzzy_threshold:
                scored.append((best, self._table_order[table.name], table.name))

        scored.sort(key=lambda s: (-s[0], s[1]))
        for sim, _, name in scored:
            logger.info("resolve_tables — fuzzy match '%s' (similarity %.2f)", name, sim)
        return [TableCandidate(name=name, confidence=FUZZY_TABLE_SCORE) for _, _, name in scored]

    def _tables_from_columns(self, prompt: str) -> List[TableCandidate]:
        marked_cols = {c.lower() for c in explicit_columns(prompt)}
        hits: Dict[str, int] = {}
        for table in self.schema.tables:
            for col in table.columns:
                name = col.name.lower()
                if name in marked_cols or contains_phrase(prompt, name):
                    hits[table.name] = hits.get(table.name, 0) + 1
        if not hits:
            logger.info("resolve_tables — no table could be inferred")
            return []
        best = max(hits.values())
        owner = next(t.name for t in self.schema.tables if hits.get(t.name) == best)
        logger.info("resolve_tables — inferred '%s' from %d column hits", owner, best)
        return [TableCandidate(name=owner, confidence=COLUMN_OWNER_SCORE)]

    # ---- columns ----

    def _score_column(
        self,
        col: Column,
        base: float,
        prompt: str,
        forms: Set[str],
        marked: Set[str],
        hints: Dict[str, bool],
    ) -> float:
        name = col.name.lower()
        score = 0.0

        if name in marked:
            return EXPLICIT_MARKER_SCORE
        if contains_phrase(prompt, name):
            score = max(score, EXACT_MATCH_SCORE)
        elif "_" in name and contains_phrase(prompt, name.replace("_", " ")):
            score = max(score, EXACT_MATCH_SCORE)
        else:
            singular, plural = singularize(name), pluralize(name)
            if (singular != name and contains_phrase(prompt, singular)) or (
                plural != name and contains_phrase(prompt, plural)
            ):
                score = max(score, SINGULAR_PLURAL_SCORE)

        description = col.description.strip().lower()
        if len(description) > 3 and description in prompt.lower():
            score = max(score, COLUMN_DESCRIPTION_SCORE)

        fraction = _underscore_fraction(name, forms)
        if fraction:
            if fraction >= 1.0:
                score = max(score, UNDERSCORE_ALL_PARTS_SCORE)
            else:
                score = max(score, base + COLUMN_PARTIAL_WEIGHT * fraction)

        if hints["identifier"] and (col.primary or name == "id" or name.endswith("_id")):
            score = max(score, base + IDENTIFIER_BOOST)
        if hints["descriptive"] and any(h in name for h in _DESCRIPTIVE_COLUMN_HINTS):
            score = max(score, base + DESCRIPTIVE_BOOST)
        if hints["temporal"] and (
            is_date_type(col.type) or any(h in name for h in _TEMPORAL_COLUMN_HINTS)
        ):
            score = max(score, base + TEMPORAL_BOOST)

        for sample in col.sample_values:
            text = str(sample).strip()
            if len(text) >= _MIN_SAMPLE_LENGTH and contains_phrase(prompt, text):
                score = max(score, SAMPLE_VALUE_SCORE)
                break

        return min(score, 1.0)

    def resolve_columns(
        self,
        tables: List[TableCandidate],
        prompt: str,
        profile: LanguageProfile,
    ) -> List[ColumnCandidate]:
        """Score the columns of the resolved *tables*; threshold-filtered."""
        forms = _word_forms(tokenize(prompt))
        marked = {c.lower() for c in explicit_columns(prompt)}
        hints = {
            "identifier": any(contains_phrase(prompt, w) for w in profile.identifier_words),
            "descriptive": any(contains_phrase(prompt, w) for w in profile.descriptive_words),
            "temporal": any(contains_phrase(prompt, w) for w in profile.temporal_words),
        }

        resolved: List[Tuple[ColumnCandidate, Tuple[int, int]]] = []
        for t_idx, candidate in enumerate(tables):
            table = self.schema.table(candidate.name)
            if table is None:
                continue
            base = candidate.confidence * COLUMN_BASE_FACTOR
            for c_idx, col in enumerate(table.columns):
                score = self._score_column(col, base, prompt, forms, marked, hints)
                if score >= self.confidence_threshold:
                    logger.info(
                        "resolve_columns — '%s.%s' scored %.2f", table.name, col.name, score,
                    )
                    resolved.append((
                        ColumnCandidate(
                            name=col.name,
                            table_name=table.name,
                            type=col.type,
                            is_primary=col.primary,
                            confidence=round(score, 4),
                        ),
                        (t_idx, c_idx),
                    ))

        resolved.sort(key=lambda item: (-item[0].confidence, item[1]))
        return [c for c, _ in resolved]
