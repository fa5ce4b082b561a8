from nlsql_service.language import (
    ENGLISH,
    PORTUGUESE,
    contains_phrase,
    detect_language,
    explicit_columns,
    explicit_tables,
    get_profile,
    normalize,
    projection_segment,
)


def test_detect_language_picks_portuguese_on_majority():
    prompt = "selecione a coluna rfam_id da tabela family onde a coluna rfam_acc é igual a 3"
    assert detect_language(prompt) == "pt"


def test_detect_language_defaults_to_english():
    assert detect_language("How many products have a price greater than 100") == "en"
    assert detect_language("") == "en"
    # one hit each: ties go to English
    assert detect_language("onde where") == "en"


def test_get_profile_falls_back_to_english():
    assert get_profile("pt") is PORTUGUESE
    assert get_profile("PT") is PORTUGUESE
    assert get_profile("fr") is ENGLISH
    assert get_profile(None) is ENGLISH


def test_normalize_tags_explicit_mentions_and_equality():
    prompt = "selecione a coluna rfam_id da tabela family onde a coluna rfam_acc é igual a 3"
    assert normalize(prompt, PORTUGUESE) == (
        "select COLUMN:rfam_id TABLE:family onde COLUMN:rfam_acc = 3"
    )


def test_normalize_prefers_longer_portuguese_idioms():
    base = "selecione a coluna id da tabela clan onde id for "
    assert normalize(base + "menor ou igual a 100", PORTUGUESE).endswith("onde id <= 100")
    assert normalize(base + "menor que 100", PORTUGUESE).endswith("onde id < 100")
    assert normalize(base + "maior ou igual a 50", PORTUGUESE).endswith("onde id >= 50")
    assert normalize(base + "maior que 50", PORTUGUESE).endswith("onde id > 50")
    assert normalize(base + "diferente de 50", PORTUGUESE).endswith("onde id != 50")


def test_normalize_english_count_and_comparison():
    prompt = "How many products have a price greater than 100"
    assert normalize(prompt, ENGLISH) == "count products have a price > 100"


def test_normalize_english_null_and_like_idioms():
    assert normalize("users where email is null", ENGLISH) == "users where email IS NULL"
    assert normalize("users where email is not null", ENGLISH) == "users where email IS NOT NULL"
    assert normalize("users whose name contains john", ENGLISH) == "users whose name LIKE john"
    assert normalize("products with price between 10 and 50", ENGLISH) == (
        "products with price BETWEEN 10 AND 50"
    )


def test_normalize_keeps_quoted_literals_and_collapses_whitespace():
    out = normalize("show me   users where name is 'Ana Maria'", ENGLISH)
    assert out == "select users where name = 'Ana Maria'"


def test_normalize_passes_unknown_text_through():
    assert normalize("zebra quux", ENGLISH) == "zebra quux"


def test_marker_helpers():
    text = "select COLUMN:id TABLE:clan onde id <= 100"
    assert explicit_tables(text) == ["clan"]
    assert explicit_columns(text) == ["id"]
    assert projection_segment(text, PORTUGUESE) == "select COLUMN:id TABLE:clan "


def test_contains_phrase_is_whole_word():
    assert contains_phrase("order by name", "order by")
    assert not contains_phrase("list orders", "order")
    assert contains_phrase("Show ME", "show me")


def test_guard_messages_are_localized():
    assert ENGLISH.message("unsafe_delete", "users").startswith("DELETE on users requires")
    assert PORTUGUESE.message("no_table").startswith("Não foi possível determinar")
