import pytest

from nlsql_service.assistant import SQLAssistant
from nlsql_service.config import Settings
from nlsql_service.schema_utils import parse_schema


def _col(name, type_="int", primary=False, extra=""):
    return {
        "name": name,
        "type": type_,
        "nullable": not primary,
        "key": "PRI" if primary else "",
        "extra": extra,
        "isPrimary": primary,
    }


# Schema used by the Portuguese acceptance cases
RFAM_SCHEMA = {
    "dbType": "mysql",
    "tables": [
        {"name": "clan", "columns": [_col("id", primary=True), _col("name", "varchar(255)")]},
        {"name": "family", "columns": [_col("rfam_id", "varchar(12)", primary=True), _col("rfam_acc", "int")]},
        {"name": "author", "columns": [_col("id", primary=True), _col("name", "varchar(255)")]},
    ],
}

SHOP_SCHEMA = {
    "dbType": "mysql",
    "tables": [
        {
            "name": "users",
            "columns": [
                _col("id", primary=True, extra="auto_increment"),
                _col("name", "varchar(100)"),
                _col("email", "varchar(255)"),
            ],
        },
        {
            "name": "orders",
            "columns": [
                _col("id", primary=True, extra="auto_increment"),
                _col("user_id", "int"),
                _col("total", "decimal(10,2)"),
                _col("status", "varchar(20)"),
                _col("created_at", "datetime"),
            ],
            "foreignKeys": [
                {"columnName": "user_id", "referencedTable": "users", "referencedColumn": "id",
                 "constraintName": "fk_orders_users"},
            ],
        },
        {
            "name": "products",
            "columns": [
                _col("id", primary=True, extra="auto_increment"),
                _col("name", "varchar(100)"),
                _col("price", "decimal(10,2)"),
                _col("category", "varchar(50)"),
            ],
        },
    ],
}


@pytest.fixture
def rfam_schema():
    return parse_schema(RFAM_SCHEMA)


@pytest.fixture
def shop_schema():
    return parse_schema(SHOP_SCHEMA)


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def rfam_assistant(settings):
    assistant = SQLAssistant(settings)
    assistant.init(RFAM_SCHEMA)
    return assistant


@pytest.fixture
def shop_assistant(settings):
    assistant = SQLAssistant(settings)
    assistant.init(SHOP_SCHEMA)
    return assistant


@pytest.fixture
def make_assistant(settings):
    """Build a ready assistant over the shop schema for a given dbType."""
    def _make(db_type="mysql", **overrides):
        assistant = SQLAssistant(Settings(**overrides) if overrides else settings)
        assistant.init(dict(SHOP_SCHEMA, dbType=db_type))
        return assistant
    return _make


@pytest.fixture
def shop_payload():
    return dict(SHOP_SCHEMA)
