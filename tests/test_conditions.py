import logging

import pytest

from nlsql_service.conditions import ConditionExtractor, format_in_list, format_like, format_value
from nlsql_service.language import ENGLISH, PORTUGUESE
from nlsql_service.models import ColumnCandidate, TableCandidate
from nlsql_service.schema_utils import parse_schema


def _rendered(conditions):
    return [c.render() for c in conditions]


@pytest.fixture
def extractor(shop_schema):
    return ConditionExtractor(shop_schema)


ORDERS = [TableCandidate("orders", 0.95)]
PRODUCTS = [TableCandidate("products", 0.95)]
USERS = [TableCandidate("users", 0.95)]


def test_format_value_sniffs_types():
    assert format_value("100") == "100"
    assert format_value("-3.5") == "-3.5"
    assert format_value("TRUE") == "true"
    assert format_value("João") == "'João'"
    assert format_value("'Ana Maria'") == "'Ana Maria'"
    assert format_value("O'Hara") == "'O''Hara'"
    assert format_value("100.") == "100"


def test_like_and_in_formatting():
    assert format_like("jo", "starts") == "'jo%'"
    assert format_like("son", "ends") == "'%son'"
    assert format_like("'an'", "contains") == "'%an%'"
    assert format_in_list("'paid', 'shipped', 3") == "('paid', 'shipped', 3)"
    assert format_in_list("'a,b', 'c'") == "('a,b', 'c')"


def test_symbolic_comparison_binds_to_resolved_column(extractor):
    price = ColumnCandidate("price", "products", "decimal(10,2)", confidence=0.95)
    conditions = extractor.extract("count products have a price > 100", PRODUCTS, [price], ENGLISH)

    assert _rendered(conditions) == ["products.price > 100"]
    assert conditions[0].conjunction == "AND"


def test_unknown_column_is_dropped(extractor):
    assert extractor.extract("select users where foo = 3", USERS, [], ENGLISH) == []


def test_between_in_and_null(extractor):
    assert _rendered(extractor.extract(
        "select products with price BETWEEN 10 AND 50", PRODUCTS, [], ENGLISH,
    )) == ["products.price BETWEEN 10 AND 50"]

    assert _rendered(extractor.extract(
        "select orders where status IN ('paid', 'shipped')", ORDERS, [], ENGLISH,
    )) == ["orders.status IN ('paid', 'shipped')"]

    assert _rendered(extractor.extract(
        "select orders where status IN ('a,b', 'c')", ORDERS, [], ENGLISH,
    )) == ["orders.status IN ('a,b', 'c')"]

    assert _rendered(extractor.extract(
        "select users where email IS NULL", USERS, [], ENGLISH,
    )) == ["users.email IS NULL"]


def test_like_variants(extractor):
    assert _rendered(extractor.extract(
        "select users whose name LIKE john", USERS, [], ENGLISH,
    )) == ["users.name LIKE '%john%'"]

    assert _rendered(extractor.extract(
        "select users whose name starts with 'Jo'", USERS, [], ENGLISH,
    )) == ["users.name LIKE 'Jo%'"]


def test_disjunction_switches_conjunction(extractor):
    conditions = extractor.extract(
        "select users where name = 'a' or name = 'b'", USERS, [], ENGLISH,
    )

    assert _rendered(conditions) == ["users.name = 'a'", "users.name = 'b'"]
    assert [c.conjunction for c in conditions] == ["AND", "OR"]


def test_duplicates_are_removed(extractor):
    conditions = extractor.extract(
        "select users where name = 'a' and name = 'a'", USERS, [], ENGLISH,
    )
    assert _rendered(conditions) == ["users.name = 'a'"]


def test_bracketed_compound_is_captured_verbatim(extractor):
    conditions = extractor.extract(
        "select users where name = 'a' and (id = 1 or id = 2)", USERS, [], ENGLISH,
    )

    assert len(conditions) == 1
    assert conditions[0].is_complex
    assert conditions[0].render() == "(name = 'a') AND (id = 1 or id = 2)"


def test_update_assignments_are_not_conditions(extractor):
    conditions = extractor.extract(
        "update users set name = 'Bob' where id = 5", USERS, [], ENGLISH,
    )
    assert _rendered(conditions) == ["users.id = 5"]


def test_portuguese_inequality_with_text_value(rfam_schema):
    extractor = ConditionExtractor(rfam_schema)
    name = ColumnCandidate("name", "author", "varchar(255)", confidence=1.0)
    conditions = extractor.extract(
        "select COLUMN:name TABLE:author onde name != João",
        [TableCandidate("author", 1.0)], [name], PORTUGUESE,
    )
    assert _rendered(conditions) == ["author.name != 'João'"]


# ---------------------- RELATIVE DATES ----------------------


def test_last_n_days(extractor):
    conditions = extractor.extract("select orders from the last 7 days", ORDERS, [], ENGLISH)
    assert _rendered(conditions) == [
        "orders.created_at >= DATE_SUB(CURRENT_DATE(), INTERVAL 7 DAY)",
    ]


def test_relative_phrase(extractor):
    conditions = extractor.extract("select orders created today", ORDERS, [], ENGLISH)
    assert _rendered(conditions) == ["orders.created_at = CURRENT_DATE()"]


def test_month_quarter_and_semester(extractor):
    assert _rendered(extractor.extract("select orders in march", ORDERS, [], ENGLISH)) == [
        "MONTH(orders.created_at) = 3",
    ]
    assert _rendered(extractor.extract("select orders in q2", ORDERS, [], ENGLISH)) == [
        "QUARTER(orders.created_at) = 2",
    ]
    assert _rendered(extractor.extract("select orders in the second half", ORDERS, [], ENGLISH)) == [
        "MONTH(orders.created_at) BETWEEN 7 AND 12",
    ]


def test_portuguese_weekday(extractor):
    conditions = extractor.extract("select pedidos das segundas-feiras", ORDERS, [], PORTUGUESE)
    assert _rendered(conditions) == ["DAYOFWEEK(orders.created_at) = 2"]


def test_date_language_without_date_column_is_ignored(extractor):
    assert extractor.extract("select products from the last 7 days", PRODUCTS, [], ENGLISH) == []


def test_date_language_without_date_column_logs_a_warning(extractor, caplog):
    with caplog.at_level(logging.WARNING):
        assert extractor.extract("select users created last month", USERS, [], ENGLISH) == []
    assert any("date filter dropped" in r.getMessage() for r in caplog.records)


def test_previous_period_is_bounded(extractor):
    conditions = extractor.extract("select orders created last month", ORDERS, [], ENGLISH)
    assert _rendered(conditions) == [
        "orders.created_at BETWEEN DATE_SUB(DATE_TRUNC('month', CURRENT_DATE()), INTERVAL 1 MONTH) "
        "AND DATE_SUB(DATE_TRUNC('month', CURRENT_DATE()), INTERVAL 1 DAY)",
    ]

    conditions = extractor.extract("select pedidos do ano passado", ORDERS, [], PORTUGUESE)
    assert _rendered(conditions) == [
        "orders.created_at BETWEEN DATE_SUB(DATE_TRUNC('year', CURRENT_DATE()), INTERVAL 1 YEAR) "
        "AND DATE_SUB(DATE_TRUNC('year', CURRENT_DATE()), INTERVAL 1 DAY)",
    ]


def test_date_column_is_searched_across_resolved_tables(extractor):
    tables = [TableCandidate("users", 0.95), TableCandidate("orders", 0.9)]
    conditions = extractor.extract("select users and orders from the last 7 days", tables, [], ENGLISH)
    assert _rendered(conditions) == [
        "orders.created_at >= DATE_SUB(CURRENT_DATE(), INTERVAL 7 DAY)",
    ]


def test_date_named_text_column_is_used_as_fallback():
    schema = parse_schema({
        "dbType": "mysql",
        "tables": [{
            "name": "events",
            "columns": [
                {"name": "id", "type": "int", "nullable": False, "key": "PRI", "extra": "", "isPrimary": True},
                {"name": "signup_date", "type": "varchar(10)", "nullable": True, "key": "", "extra": "",
                 "isPrimary": False},
            ],
        }],
    })
    conditions = ConditionExtractor(schema).extract(
        "select events from the last 7 days", [TableCandidate("events", 0.95)], [], ENGLISH,
    )
    assert _rendered(conditions) == [
        "events.signup_date >= DATE_SUB(CURRENT_DATE(), INTERVAL 7 DAY)",
    ]
