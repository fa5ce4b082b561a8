"""
Operation classifier: decides which SQL statement the prompt asks for.

Scores accumulate from three independent signal sources, then a few
contextual modifiers nudge ``select`` / ``count``:

    language pattern hit     +0.5 each
    keyword hit              +0.3 each
    literal SQL fragment     +0.4 each
    resolved entity          +0.3 per entity   (select)
    question mark            +0.2              (select, count)
    filter marker present    +0.2              (select)
"""

from typing import Dict, List

from .language import LanguageProfile, SQL_FRAGMENTS, contains_phrase
from .logger import logger
from .models import Classification

OPERATIONS = (
    "select", "count", "insert", "update", "delete",
    "join", "group", "order", "limit", "distinct",
)

PATTERN_WEIGHT = 0.5
KEYWORD_WEIGHT = 0.3
SQL_FRAGMENT_WEIGHT = 0.4
ENTITY_WEIGHT = 0.3
QUESTION_WEIGHT = 0.2
FILTER_WEIGHT = 0.2
SELECT_BASE_WEIGHT = 0.1

COUNT_REFINE_THRESHOLD = 0.6
SECONDARY_THRESHOLD = 0.7


class OperationClassifier:

    def score(self, prompt: str, profile: LanguageProfile, entity_count: int = 0) -> Dict[str, float]:
        scores: Dict[str, float] = {op: 0.0 for op in OPERATIONS}
        scores["select"] = SELECT_BASE_WEIGHT

        for op in OPERATIONS:
            for pattern in profile.operation_patterns.get(op, ()):
                if pattern.search(prompt):
                    scores[op] += PATTERN_WEIGHT
            for keyword in profile.operation_keywords.get(op, ()):
                if contains_phrase(prompt, keyword):
                    scores[op] += KEYWORD_WEIGHT
            for fragment in SQL_FRAGMENTS.get(op, ()):
                if fragment.search(prompt):
                    scores[op] += SQL_FRAGMENT_WEIGHT

        scores["select"] += ENTITY_WEIGHT * entity_count
        if "?" in prompt:
            scores["select"] += QUESTION_WEIGHT
            scores["count"] += QUESTION_WEIGHT
        if any(
            (marker in prompt) if not marker.isalpha() else contains_phrase(prompt, marker)
            for marker in profile.filter_markers
        ):
            scores["select"] += FILTER_WEIGHT

        return {op: round(s, 4) for op, s in scores.items()}

    def classify(self, prompt: str, profile: LanguageProfile, entity_count: int = 0) -> Classification:
        """Return the winning operation plus any strong secondary ones.

        Ties resolve to the operation declared first in ``OPERATIONS``, so an
        empty score sheet yields ``select``.
        """
        scores = self.score(prompt, profile, entity_count)

        operation = OPERATIONS[0]
        for op in OPERATIONS:
            if scores[op] > scores[operation]:
                operation = op

        if operation == "select" and scores["count"] > COUNT_REFINE_THRESHOLD:
            operation = "count"

        secondary: List[str] = [
            op for op in OPERATIONS
            if op != operation and scores[op] > SECONDARY_THRESHOLD
        ]
        logger.info(
            "classify — operation=%s secondary=%s scores=%s", operation, secondary, scores,
        )
        return Classification(operation=operation, secondary=secondary, scores=scores)
