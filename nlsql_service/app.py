"""
FastAPI service — natural-language to SQL translation.

Features:
- Schema loading from a JSON snapshot or by introspecting a live database
- Rule-based EN/PT prompt translation with a per-prompt cache
- Guarded responses instead of unsafe UPDATE / DELETE statements
- Execution feedback recorded against generated SQL
- Templated SQL rendering over data rows
"""

from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .assistant import SQLAssistant
from .config import Settings
from .errors import NLSQLError
from .introspection import introspect_schema
from .logger import logger
from .models import Err, Ok
from .schema_utils import describe_schema
from .templating import TemplateVariable, render_template


app = FastAPI(title="NL to SQL Service", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

assistant = SQLAssistant(Settings.from_env())

# ---------------------- REQUEST MODELS ----------------------


class InitSchemaRequest(BaseModel):
    schema_payload: Union[Dict[str, Any], str] = Field(alias="schema")


class ScanSchemaRequest(BaseModel):
    database_url: Optional[str] = None
    db_type: Optional[str] = None


class GenerateRequest(BaseModel):
    prompt: str = Field(min_length=1, description="Natural-language request")


class FeedbackRequest(BaseModel):
    sql: str = Field(min_length=1)
    was_successful: bool
    error_message: str = ""
    row_count: int = Field(default=0, ge=0)
    execution_time: float = Field(default=0.0, ge=0.0, description="Seconds")


class TemplateRequest(BaseModel):
    query: str
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    variables: List[TemplateVariable] = Field(default_factory=list)
    minify: bool = False


# ---------------------- HELPERS ----------------------


def _schema_summary() -> Dict[str, Any]:
    schema = assistant.schema
    return {
        "tables": [t.name for t in schema.tables],
        "dialect": assistant.dialect.name,
        "relationships": describe_schema(schema),
    }


def _history_entry(entry) -> Dict[str, Any]:
    return {
        "prompt": entry.prompt,
        "sql": entry.sql,
        "created_at": entry.created_at.isoformat(),
        "success": entry.success,
        "result_count": entry.result_count,
        "execution_time": entry.execution_time,
        "error_message": entry.error_message,
    }


# ---------------------- ENDPOINTS ----------------------


@app.post("/init-schema")
def init_schema(request: InitSchemaRequest):
    try:
        assistant.init(request.schema_payload)
        return _schema_summary()
    except NLSQLError as e:
        logger.error("init-schema error: %s", e)
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/scan-schema")
def scan_schema(request: ScanSchemaRequest):
    """Introspect a live database and load the result as the active schema."""
    try:
        payload = introspect_schema(request.database_url, request.db_type)
        assistant.init(payload)
        return _schema_summary()
    except NLSQLError as e:
        logger.error("scan-schema error: %s", e)
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/generate-sql")
def generate_sql(request: GenerateRequest):
    result = assistant.generate_sql(request.prompt)

    if isinstance(result, Err):
        raise HTTPException(status_code=409, detail=result.message)

    return {
        "kind": result.kind,
        "sql": result.sql if isinstance(result, Ok) else None,
        "message": None if isinstance(result, Ok) else result.message,
        "reason": None if isinstance(result, Ok) else result.reason,
        "language": result.language,
        "operation": result.operation,
        "text": result.to_text(),
    }


@app.post("/feedback")
def feedback(request: FeedbackRequest):
    matched = assistant.record_feedback(
        request.sql,
        request.was_successful,
        error_message=request.error_message,
        row_count=request.row_count,
        execution_time=request.execution_time,
    )
    return {"matched": matched}


@app.post("/reset")
def reset():
    assistant.reset()
    return {"status": "reset"}


@app.get("/history")
def history():
    return {"history": [_history_entry(e) for e in assistant.history()]}


@app.post("/render-template")
def render(request: TemplateRequest):
    sql = render_template(request.query, request.rows, request.variables, minify=request.minify)
    return {"sql": sql}


@app.get("/health")
def health():
    """Liveness check; reports whether a schema is loaded."""
    return {
        "status": "ok",
        "initialized": assistant.is_ready,
        "dialect": assistant.dialect.name if assistant.dialect else None,
    }
