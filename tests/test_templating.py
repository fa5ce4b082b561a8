from nlsql_service.templating import TemplateVariable, render_template

QUERY = "INSERT INTO users (name, email)\nVALUES ('{{ name }}', '{{ email }}');"

ROWS = [
    {"full_name": "Ana", "mail": "ana@example.com"},
    {"full_name": "Bruno", "mail": "bruno@example.com"},
]

VARIABLES = [
    TemplateVariable(field="full_name", value="name", position=0),
    {"field": "mail", "value": "email", "position": 1},
]


def test_one_statement_per_row():
    out = render_template(QUERY, ROWS, VARIABLES)

    assert out.split("\n") == [
        "INSERT INTO users (name, email)",
        "VALUES ('Ana', 'ana@example.com');",
        "INSERT INTO users (name, email)",
        "VALUES ('Bruno', 'bruno@example.com');",
    ]


def test_minify_collapses_newlines():
    out = render_template(QUERY, ROWS[:1], VARIABLES, minify=True)
    assert out == "INSERT INTO users (name, email) VALUES ('Ana', 'ana@example.com');"


def test_unknown_placeholders_are_left_alone():
    out = render_template("SELECT '{{ name }}', '{{ other }}'", [{"full_name": 7}], VARIABLES)
    assert out == "SELECT '7', '{{ other }}'"


def test_missing_row_field_keeps_placeholder():
    out = render_template("SELECT '{{ email }}'", [{"full_name": "Ana"}], VARIABLES)
    assert out == "SELECT '{{ email }}'"


def test_no_rows_renders_nothing():
    assert render_template(QUERY, [], VARIABLES) == ""
