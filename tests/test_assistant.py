import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from nlsql_service.assistant import SQLAssistant
from nlsql_service.config import Settings
from nlsql_service.errors import InitializationError
from nlsql_service.models import Err, Guarded, Ok
from nlsql_service.resolver import EntityResolver


# ---------------------- PORTUGUESE PROMPTS ----------------------

PT_CASES = [
    (
        "selecione a coluna rfam_id da tabela family onde a coluna rfam_acc é igual a 3",
        "SELECT family.rfam_id FROM family WHERE family.rfam_acc = 3",
    ),
    (
        "selecione a coluna id da tabela clan onde id for menor ou igual a 100",
        "SELECT clan.id FROM clan WHERE clan.id <= 100",
    ),
    (
        "selecione a coluna id da tabela clan onde id for menor que 100",
        "SELECT clan.id FROM clan WHERE clan.id < 100",
    ),
    (
        "selecione a coluna id da tabela clan onde id for maior que 50",
        "SELECT clan.id FROM clan WHERE clan.id > 50",
    ),
    (
        "selecione a coluna id da tabela clan onde id for maior ou igual a 50",
        "SELECT clan.id FROM clan WHERE clan.id >= 50",
    ),
    (
        "selecione a coluna id da tabela clan onde id for diferente de 50",
        "SELECT clan.id FROM clan WHERE clan.id != 50",
    ),
    (
        "selecione a coluna name da tabela author onde name for diferente de João",
        "SELECT author.name FROM author WHERE author.name != 'João'",
    ),
]


@pytest.mark.parametrize("prompt,expected", PT_CASES)
def test_portuguese_prompts(rfam_assistant, prompt, expected):
    result = rfam_assistant.generate_sql(prompt)

    assert isinstance(result, Ok)
    assert result.sql == expected
    assert result.language == "pt"


# ---------------------- ENGLISH SCENARIOS ----------------------


def test_join_with_customer_synonym(shop_assistant):
    result = shop_assistant.generate_sql("Show me all orders along with customer information")

    assert result.sql == (
        "SELECT orders.id, orders.created_at, users.id, users.name "
        "FROM orders JOIN users ON orders.user_id = users.id"
    )


def test_count_with_comparison(shop_assistant):
    result = shop_assistant.generate_sql("How many products have a price greater than 100")

    assert result.sql == "SELECT COUNT(*) FROM products WHERE products.price > 100"
    assert result.operation == "count"


def test_unsafe_delete_is_guarded_and_not_recorded(shop_assistant):
    result = shop_assistant.generate_sql("delete the user with no condition specified")

    assert isinstance(result, Guarded)
    assert result.reason == "unsafe_operation"
    assert result.to_text().startswith("-- DELETE on users requires")
    assert shop_assistant.history() == []


def test_unresolvable_prompt(shop_assistant):
    result = shop_assistant.generate_sql("show me something nice")

    assert isinstance(result, Guarded)
    assert result.reason == "unresolved_entity"


def test_dialect_pagination(make_assistant):
    prompt = "show the top 5 products"
    assert make_assistant("mysql").generate_sql(prompt).sql == "SELECT * FROM products LIMIT 5"
    assert make_assistant("sqlserver").generate_sql(prompt).sql == (
        "SELECT * FROM products ORDER BY products.id ASC OFFSET 0 ROWS FETCH NEXT 5 ROWS ONLY"
    )
    assert make_assistant("informix").dialect.name == "Generic SQL"


def test_generation_is_deterministic(make_assistant):
    prompts = [
        "Show me all orders along with customer information",
        "How many products have a price greater than 100",
        "show the top 5 products",
    ]
    first, second = make_assistant(), make_assistant()
    for prompt in prompts:
        assert first.generate_sql(prompt) == second.generate_sql(prompt)


# ---------------------- CACHE / HISTORY ----------------------


def test_cache_skips_pipeline(shop_assistant, monkeypatch):
    calls = []
    original = EntityResolver.resolve_tables

    def counting(self, *args, **kwargs):
        calls.append(args)
        return original(self, *args, **kwargs)

    monkeypatch.setattr(EntityResolver, "resolve_tables", counting)

    first = shop_assistant.generate_sql("How many products have a price greater than 100")
    second = shop_assistant.generate_sql("  how many products have a price greater than 100 ")

    assert first == second
    assert len(calls) == 1
    assert len(shop_assistant.history()) == 1


def test_history_records_prompt(shop_assistant):
    shop_assistant.generate_sql("show the top 5 products")
    entry = shop_assistant.history()[0]

    assert entry.prompt == "show the top 5 products"
    assert entry.sql == "SELECT * FROM products LIMIT 5"
    assert entry.success is None


def test_history_returns_copies(shop_assistant):
    shop_assistant.generate_sql("show the top 5 products")
    shop_assistant.history()[0].success = True
    assert shop_assistant.history()[0].success is None


# ---------------------- FEEDBACK ----------------------


def _two_matching_entries(assistant):
    a = assistant.generate_sql("show the top 5 products")
    b = assistant.generate_sql("list the top 5 products")
    assert a.sql == b.sql
    return a.sql


def test_feedback_latest_annotates_one_entry(make_assistant):
    assistant = make_assistant(feedback_match="latest")
    sql = _two_matching_entries(assistant)

    assert assistant.record_feedback(sql, True, row_count=5, execution_time=0.02) == 1
    older, newer = assistant.history()
    assert newer.success is True
    assert newer.result_count == 5
    assert older.success is None


def test_feedback_all_annotates_every_entry(make_assistant):
    assistant = make_assistant(feedback_match="all")
    sql = _two_matching_entries(assistant)

    assert assistant.record_feedback(sql, False, error_message="timeout") == 2
    assert all(e.error_message == "timeout" for e in assistant.history())


def test_feedback_for_unknown_sql_is_still_logged(shop_assistant):
    assert shop_assistant.record_feedback("SELECT 42", True) == 0
    assert [f.sql for f in shop_assistant.feedback()] == ["SELECT 42"]


def test_settings_reject_bad_values():
    with pytest.raises(ValueError):
        Settings(feedback_match="first")
    with pytest.raises(ValueError):
        Settings(confidence_threshold=1.5)


# ---------------------- LIFECYCLE ----------------------


def test_not_initialized_is_an_error():
    assistant = SQLAssistant()
    result = assistant.generate_sql("show users")

    assert isinstance(result, Err)
    assert result.error == "not_initialized"
    assert result.to_text().startswith("-- The assistant has no schema loaded")

    pt = assistant.generate_sql("selecione a coluna id da tabela clan")
    assert pt.message.startswith("O assistente não possui")


@pytest.mark.parametrize("payload", ["", "   ", "{not json", {"tables": []}, {}, None])
def test_invalid_payloads_are_rejected(payload):
    with pytest.raises(InitializationError):
        SQLAssistant().init(payload)


def test_json_string_payload(settings, shop_payload):
    assistant = SQLAssistant(settings)
    schema = assistant.init(json.dumps(shop_payload))

    assert [t.name for t in schema.tables] == ["users", "orders", "products"]
    assert assistant.dialect.name == "MySQL"


def test_failed_init_keeps_previous_state(shop_assistant):
    shop_assistant.generate_sql("show the top 5 products")
    with pytest.raises(InitializationError):
        shop_assistant.init("{not json")

    assert shop_assistant.is_ready
    assert len(shop_assistant.history()) == 1
    assert shop_assistant.generate_sql("show the top 5 products").sql == "SELECT * FROM products LIMIT 5"


def test_init_clears_cache_and_history(shop_assistant, shop_payload):
    shop_assistant.generate_sql("show the top 5 products")
    shop_assistant.init(dict(shop_payload, dbType="sqlserver"))

    assert shop_assistant.history() == []
    assert "FETCH NEXT 5 ROWS ONLY" in shop_assistant.generate_sql("show the top 5 products").sql


def test_reset(shop_assistant):
    shop_assistant.generate_sql("show the top 5 products")
    shop_assistant.record_feedback("SELECT * FROM products LIMIT 5", True)
    shop_assistant.reset()

    assert not shop_assistant.is_ready
    assert shop_assistant.history() == []
    assert shop_assistant.feedback() == []
    assert isinstance(shop_assistant.generate_sql("show the top 5 products"), Err)


# ---------------------- CONCURRENCY ----------------------


def test_concurrent_requests_match_sequential(make_assistant, shop_payload):
    prompts = [
        "Show me all orders along with customer information",
        "How many products have a price greater than 100",
        "show the top 5 products",
        "delete the user with no condition specified",
    ] * 10
    expected = {p: make_assistant().generate_sql(p) for p in set(prompts)}
    assistant = make_assistant()

    def run(i):
        if i % 15 == 0:
            assistant.init(shop_payload)
        return prompts[i], assistant.generate_sql(prompts[i])

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(run, range(len(prompts))))

    for prompt, result in results:
        assert result == expected[prompt]
