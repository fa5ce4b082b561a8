import pytest
from sqlalchemy import create_engine, text

from nlsql_service import introspection
from nlsql_service.assistant import SQLAssistant
from nlsql_service.errors import InitializationError
from nlsql_service.introspection import introspect_schema
from nlsql_service.models import Ok

DDL = (
    "CREATE TABLE users ("
    " id INTEGER PRIMARY KEY,"
    " name VARCHAR(50) NOT NULL,"
    " email VARCHAR(120),"
    " CONSTRAINT uq_users_email UNIQUE (email))",
    "CREATE TABLE orders ("
    " id INTEGER PRIMARY KEY,"
    " user_id INTEGER REFERENCES users(id),"
    " total NUMERIC(10, 2))",
)


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'shop.db'}")
    with engine.begin() as conn:
        for stmt in DDL:
            conn.execute(text(stmt))
    yield engine
    engine.dispose()


def _by_name(items):
    return {item["name"]: item for item in items}


def test_tables_columns_and_keys(engine):
    payload = introspect_schema(engine)

    assert payload["dbType"] == "sqlite"
    tables = _by_name(payload["tables"])
    assert set(tables) == {"users", "orders"}

    users = _by_name(tables["users"]["columns"])
    assert users["id"]["isPrimary"] is True
    assert users["id"]["key"] == "PRI"
    assert users["name"]["nullable"] is False
    assert users["email"]["isUnique"] is True
    assert users["email"]["key"] == "UNI"
    assert tables["users"]["description"] == ""

    orders = tables["orders"]
    assert orders["foreignKeys"] == [{
        "columnName": "user_id",
        "referencedTable": "users",
        "referencedColumn": "id",
        "constraintName": "",
    }]
    assert _by_name(orders["columns"])["user_id"]["key"] == "MUL"


def test_payload_loads_into_assistant(engine):
    assistant = SQLAssistant()
    assistant.init(introspect_schema(str(engine.url), db_type="mysql"))

    assert assistant.dialect.name == "MySQL"
    result = assistant.generate_sql("How many orders have a total greater than 10")
    assert isinstance(result, Ok)
    assert result.sql == "SELECT COUNT(*) FROM orders WHERE orders.total > 10"


def test_unreachable_database():
    with pytest.raises(InitializationError):
        introspect_schema("nosuchdriver://localhost/db")


def test_missing_url(monkeypatch):
    monkeypatch.setattr(introspection, "DATABASE_URL", "")
    with pytest.raises(InitializationError):
        introspect_schema()
