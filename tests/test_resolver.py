from nlsql_service.language import ENGLISH, PORTUGUESE
from nlsql_service.models import TableCandidate
from nlsql_service.resolver import (
    COLUMN_OWNER_SCORE,
    EXACT_MATCH_SCORE,
    EXPLICIT_MARKER_SCORE,
    FUZZY_TABLE_SCORE,
    SYNONYM_SCORE,
    EntityResolver,
)


def _names(candidates):
    return [c.name for c in candidates]


def test_exact_name_and_synonym(shop_schema):
    resolver = EntityResolver(shop_schema)
    tables = resolver.resolve_tables("select all orders along with customer information", ENGLISH)

    assert _names(tables) == ["orders", "users"]
    assert tables[0].confidence == EXACT_MATCH_SCORE
    assert tables[1].confidence == SYNONYM_SCORE


def test_singular_form_matches_plural_table(shop_schema):
    resolver = EntityResolver(shop_schema)
    tables = resolver.resolve_tables("delete the user with no condition specified", ENGLISH)

    assert _names(tables) == ["users"]
    assert tables[0].confidence == 0.9


def test_explicit_marker_wins(rfam_schema):
    resolver = EntityResolver(rfam_schema)
    prompt = "select COLUMN:rfam_id TABLE:family onde COLUMN:rfam_acc = 3"
    tables = resolver.resolve_tables(prompt, PORTUGUESE)

    assert _names(tables) == ["family"]
    assert tables[0].confidence == EXPLICIT_MARKER_SCORE

    columns = resolver.resolve_columns(tables, prompt, PORTUGUESE)
    assert [c.qualified for c in columns] == ["family.rfam_id", "family.rfam_acc"]
    assert all(c.confidence == EXPLICIT_MARKER_SCORE for c in columns)


def test_fuzzy_fallback_for_misspelled_table(shop_schema):
    resolver = EntityResolver(shop_schema)
    tables = resolver.resolve_tables("select all prodcts", ENGLISH)

    assert _names(tables) == ["products"]
    assert tables[0].confidence == FUZZY_TABLE_SCORE


def test_fuzzy_threshold_is_configurable(shop_schema):
    strict = EntityResolver(shop_schema, fuzzy_threshold=0.99)
    assert strict.resolve_tables("select all prodcts", ENGLISH) == []


def test_column_owner_fallback(shop_schema):
    resolver = EntityResolver(shop_schema)
    tables = resolver.resolve_tables("select email where name = 'Bob'", ENGLISH)

    assert tables == [TableCandidate(name="users", confidence=COLUMN_OWNER_SCORE)]


def test_nothing_resolves(shop_schema):
    resolver = EntityResolver(shop_schema)
    assert resolver.resolve_tables("select something nice", ENGLISH) == []


def test_resolve_columns_only_scores_resolved_tables(shop_schema):
    resolver = EntityResolver(shop_schema)
    prompt = "count products have a price > 100"
    tables = resolver.resolve_tables(prompt, ENGLISH)
    columns = resolver.resolve_columns(tables, prompt, ENGLISH)

    assert [c.qualified for c in columns] == ["products.price"]
    assert columns[0].confidence == EXACT_MATCH_SCORE


def test_temporal_words_boost_date_columns(shop_schema):
    resolver = EntityResolver(shop_schema)
    prompt = "select orders created this month"
    tables = resolver.resolve_tables(prompt, ENGLISH)
    columns = resolver.resolve_columns(tables, prompt, ENGLISH)

    assert "orders.created_at" in [c.qualified for c in columns]


def test_results_are_deterministic(shop_schema):
    resolver = EntityResolver(shop_schema)
    prompt = "select all orders along with customer information"
    first = resolver.resolve_tables(prompt, ENGLISH)
    for _ in range(5):
        assert resolver.resolve_tables(prompt, ENGLISH) == first
