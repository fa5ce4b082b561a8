"""
SQLAssistant: the stateful orchestrator around the translation pipeline.

States::

    Uninitialized ──init()──▶ Ready ──generate_sql()──▶ Ready
          ▲                     │
          └──────reset()────────┘

The schema snapshot sits behind a read-write lock: ``generate_sql`` runs
under the read side so requests proceed in parallel, while ``init`` and
``reset`` take the write side and wait for in-flight requests.  The
prompt cache, history and feedback log are guarded by a separate mutex.
"""

import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Union

from .classifier import OperationClassifier
from .conditions import ConditionExtractor
from .config import Settings
from .errors import NotInitializedError
from .language import detect_language, get_profile, normalize
from .logger import logger
from .models import Err, Feedback, GenerateResult, HistoryEntry, Ok
from .query_builder import QueryBuilder
from .resolver import EntityResolver
from .schema_utils import Dialect, SchemaSnapshot, parse_schema, select_dialect
from .validator import validate


class ReadWriteLock:
    """Many readers or one writer; writers are not starved by new readers."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read(self):
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            self._waiting_writers += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


def _cache_key(prompt: str) -> str:
    return prompt.strip().lower()


class SQLAssistant:
    """Translate natural-language prompts into SQL against one schema."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self._lock = ReadWriteLock()
        self._state_lock = threading.Lock()

        self._schema: Optional[SchemaSnapshot] = None
        self._dialect: Optional[Dialect] = None
        self._resolver: Optional[EntityResolver] = None
        self._classifier = OperationClassifier()
        self._extractor: Optional[ConditionExtractor] = None

        self._cache: Dict[str, Ok] = {}
        self._history: List[HistoryEntry] = []
        self._feedback: List[Feedback] = []

    # ---------------------- LIFECYCLE ----------------------

    @property
    def is_ready(self) -> bool:
        return self._schema is not None

    @property
    def schema(self) -> Optional[SchemaSnapshot]:
        return self._schema

    @property
    def dialect(self) -> Optional[Dialect]:
        return self._dialect

    def init(self, payload: Union[str, bytes, Dict[str, Any]]) -> SchemaSnapshot:
        """Load a schema snapshot; raises ``InitializationError`` on bad input.

        A failed init leaves the previous state untouched.
        """
        schema = parse_schema(payload)
        dialect = select_dialect(schema.db_type)
        with self._lock.write():
            self._schema = schema
            self._dialect = dialect
            self._resolver = EntityResolver(
                schema,
                confidence_threshold=self.settings.confidence_threshold,
                fuzzy_threshold=self.settings.fuzzy_threshold,
            )
            self._extractor = ConditionExtractor(schema)
            with self._state_lock:
                self._cache.clear()
                self._history.clear()
        logger.info(
            "init — %d tables loaded, dialect=%s", len(schema.tables), dialect.name,
        )
        return schema

    def reset(self):
        with self._lock.write():
            self._schema = None
            self._dialect = None
            self._resolver = None
            self._extractor = None
            with self._state_lock:
                self._cache.clear()
                self._history.clear()
                self._feedback.clear()
        logger.info("reset — assistant returned to uninitialized state")

    # ---------------------- GENERATION ----------------------

    def generate_sql(self, prompt: str) -> GenerateResult:
        key = _cache_key(prompt or "")
        with self._lock.read():
            if self._schema is None:
                return Err(
                    error=NotInitializedError.kind,
                    message=get_profile(detect_language(prompt or "")).message("not_initialized"),
                )

            with self._state_lock:
                cached = self._cache.get(key)
            if cached is not None:
                logger.info("generate_sql — cache hit for '%s'", key)
                return cached

            result = self._run_pipeline(prompt or "")

            if isinstance(result, Ok):
                with self._state_lock:
                    self._cache[key] = result
                    self._history.append(HistoryEntry(sql=result.sql, prompt=prompt))
            return result

    def _run_pipeline(self, prompt: str) -> GenerateResult:
        language = detect_language(prompt)
        profile = get_profile(language)
        normalized = normalize(prompt, profile)

        tables = self._resolver.resolve_tables(normalized, profile)
        columns = self._resolver.resolve_columns(tables, normalized, profile)
        classification = self._classifier.classify(
            normalized, profile, entity_count=len(tables) + len(columns),
        )
        conditions = self._extractor.extract(normalized, tables, columns, profile)

        builder = QueryBuilder(self._schema, self._dialect, profile, self.settings)
        built = builder.build(
            classification.operation,
            classification.secondary,
            tables,
            columns,
            conditions,
            normalized,
        )
        return validate(built, self._schema, profile)

    # ---------------------- FEEDBACK / HISTORY ----------------------

    def record_feedback(
        self,
        sql: str,
        was_successful: bool,
        error_message: str = "",
        row_count: int = 0,
        execution_time: float = 0.0,
    ) -> int:
        """Annotate history entries whose SQL text equals *sql*.

        Returns the number of entries annotated.  With the ``latest``
        strategy only the most recent match is touched; with ``all`` every
        match is.
        """
        matched = 0
        with self._state_lock:
            self._feedback.append(Feedback(
                sql=sql,
                was_successful=was_successful,
                error_message=error_message,
                row_count=row_count,
                execution_time=execution_time,
            ))
            for entry in reversed(self._history):
                if entry.sql != sql:
                    continue
                entry.success = was_successful
                entry.result_count = row_count
                entry.execution_time = execution_time
                entry.error_message = error_message
                matched += 1
                if self.settings.feedback_match == "latest":
                    break
        logger.info(
            "record_feedback — success=%s matched=%d entries", was_successful, matched,
        )
        return matched

    def history(self) -> List[HistoryEntry]:
        with self._state_lock:
            return [HistoryEntry(**vars(e)) for e in self._history]

    def feedback(self) -> List[Feedback]:
        with self._state_lock:
            return list(self._feedback)
