from __future__ import annotations

from typing import Any, List, Optional

import pytest

from weeorm.errors import InvalidIdentifierError
from weeorm.query.builder import QueryBuilder

GENERATED_ID = 42


class _FakeConnection:
    """Records every call; returns canned rows."""

    def __init__(
        self,
        rows: Optional[List[dict]] = None,
        placeholder: str = "?",
        returning_keys: bool = False,
    ) -> None:
        self.rows = rows or []
        self.placeholder = placeholder
        self.returning_keys = returning_keys
        self.calls: List[tuple] = []
        self.rowcount = 3

    def fetch_all(self, sql: str, bindings: List[Any]) -> List[dict]:
        self.calls.append(("fetch_all", sql, list(bindings)))
        return list(self.rows)

    def fetch_one(self, sql: str, bindings: List[Any]) -> Optional[dict]:
        self.calls.append(("fetch_one", sql, list(bindings)))
        return self.rows[0] if self.rows else None

    def query(self, sql: str, bindings: List[Any]) -> None:
        self.calls.append(("query", sql, list(bindings)))

    def execute(self, sql: str, bindings: List[Any]) -> int:
        self.calls.append(("execute", sql, list(bindings)))
        return self.rowcount

    def last_insert_id(self) -> int:
        self.calls.append(("last_insert_id",))
        return GENERATED_ID


def _builder(table: str = "users", **kwargs) -> QueryBuilder:
    return QueryBuilder(table, _FakeConnection(**kwargs))


def test_default_select_renders_all_columns() -> None:
    sql, bindings = _builder().to_sql()

    assert sql == "SELECT * FROM users"
    assert bindings == []


def test_full_select_renders_clauses_in_fixed_order() -> None:
    builder = (
        _builder()
        .select("users.id", "users.name")
        .where("users.active", 1)
        .join("posts", "posts.user_id", "=", "users.id")
        .or_where("users.role", "admin")
        .order_by("users.name", "desc")
        .left_join("profiles", "profiles.user_id", "=", "users.id")
        .where("users.age", ">", 18)
        .limit(10)
        .offset(20)
    )

    sql, bindings = builder.to_sql()

    assert sql == (
        "SELECT users.id, users.name FROM users"
        " INNER JOIN posts ON posts.user_id = users.id"
        " LEFT JOIN profiles ON profiles.user_id = users.id"
        " WHERE users.active = ? OR users.role = ? AND users.age > ?"
        " ORDER BY users.name DESC"
        " LIMIT 10 OFFSET 20"
    )
    assert bindings == [1, "admin", 18]


def test_bindings_match_placeholders_and_are_not_accumulated_across_renders() -> None:
    builder = _builder().where("a", 1).join("b", "b.a_id", "=", "a.id").where("c", "<=", 3)

    first_sql, first_bindings = builder.to_sql()
    second_sql, second_bindings = builder.to_sql()

    assert first_sql.count("?") == len(first_bindings) == 2
    assert (first_sql, first_bindings) == (second_sql, second_bindings)


def test_get_executes_select_with_bindings_each_time() -> None:
    conn = _FakeConnection(rows=[{"id": 1}, {"id": 2}])
    builder = QueryBuilder("users", conn).where("name", "a")

    assert builder.get() == [{"id": 1}, {"id": 2}]
    builder.get()

    assert conn.calls == [
        ("fetch_all", "SELECT * FROM users WHERE name = ?", ["a"]),
        ("fetch_all", "SELECT * FROM users WHERE name = ?", ["a"]),
    ]


def test_update_binds_set_values_before_where_values() -> None:
    conn = _FakeConnection()
    builder = QueryBuilder("t", conn).where("c1", 10).where("c2", "x")

    affected = builder.update({"a": 1, "b": 2})

    assert affected == conn.rowcount
    assert conn.calls == [
        ("execute", "UPDATE t SET a = ?, b = ? WHERE c1 = ? AND c2 = ?", [1, 2, 10, "x"]),
    ]


def test_update_without_conditions_touches_whole_table() -> None:
    sql, bindings = _builder().to_update_sql({"role": "member"})

    assert sql == "UPDATE users SET role = ?"
    assert bindings == ["member"]


def test_update_with_no_columns_is_rejected() -> None:
    with pytest.raises(ValueError):
        _builder().where("id", 1).update({})


def test_delete_renders_where_clause() -> None:
    conn = _FakeConnection()
    QueryBuilder("users", conn).where("id", 5).or_where("email", "LIKE", "%@spam").delete()

    assert conn.calls == [
        ("execute", "DELETE FROM users WHERE id = ? OR email LIKE ?", [5, "%@spam"]),
    ]


def test_insert_keeps_key_order_and_returns_generated_id() -> None:
    conn = _FakeConnection()

    generated = QueryBuilder("users", conn).insert({"name": "a", "email": "a@x.io"})

    assert generated == GENERATED_ID
    assert conn.calls == [
        ("query", "INSERT INTO users (name, email) VALUES (?, ?)", ["a", "a@x.io"]),
        ("last_insert_id",),
    ]


def test_insert_with_supplied_key_skips_key_lookup() -> None:
    conn = _FakeConnection()

    result = QueryBuilder("users", conn).insert({"id": 5, "name": "a"}, return_key=False)

    assert result is None
    assert conn.calls == [
        ("query", "INSERT INTO users (id, name) VALUES (?, ?)", [5, "a"]),
    ]


def test_insert_reads_key_from_returning_clause_when_supported() -> None:
    conn = _FakeConnection(rows=[{"uuid": "k-1"}], placeholder="%s", returning_keys=True)

    generated = QueryBuilder("tokens", conn, primary_key="uuid").insert({"scope": "read"})

    assert generated == "k-1"
    assert conn.calls == [
        ("fetch_one", "INSERT INTO tokens (scope) VALUES (%s) RETURNING uuid", ["read"]),
    ]


def test_insert_without_columns_uses_default_values() -> None:
    sql, bindings = _builder().to_insert_sql({})

    assert sql == "INSERT INTO users DEFAULT VALUES"
    assert bindings == []

    sql, _ = _builder().to_insert_sql({}, returning="id")

    assert sql == "INSERT INTO users DEFAULT VALUES RETURNING id"


def test_first_forces_limit_one_and_returns_none_when_empty() -> None:
    conn = _FakeConnection()
    builder = QueryBuilder("users", conn).limit(50)

    assert builder.first() is None
    assert conn.calls[-1] == ("fetch_one", "SELECT * FROM users LIMIT 1", [])


def test_find_filters_on_configured_primary_key() -> None:
    conn = _FakeConnection(rows=[{"uuid": "abc"}])

    row = QueryBuilder("tokens", conn, primary_key="uuid").find("abc")

    assert row == {"uuid": "abc"}
    assert conn.calls[-1] == ("fetch_one", "SELECT * FROM tokens WHERE uuid = ? LIMIT 1", ["abc"])


def test_count_replaces_select_list_and_casts_to_int() -> None:
    conn = _FakeConnection(rows=[{"count": "7"}])

    assert QueryBuilder("users", conn).select("name").where("role", "admin").count() == 7
    assert conn.calls[-1] == (
        "fetch_one",
        "SELECT COUNT(*) AS count FROM users WHERE role = ? LIMIT 1",
        ["admin"],
    )


def test_count_drops_ordering() -> None:
    conn = _FakeConnection(rows=[{"count": 2}])

    assert QueryBuilder("users", conn).where("role", "admin").order_by("name").count() == 2
    assert conn.calls[-1] == (
        "fetch_one",
        "SELECT COUNT(*) AS count FROM users WHERE role = ? LIMIT 1",
        ["admin"],
    )


def test_count_is_zero_without_a_row() -> None:
    assert _builder().count() == 0


def test_none_values_render_null_checks_without_bindings() -> None:
    builder = (
        _builder()
        .where("deleted_at", None)
        .where("email", "!=", None)
        .where_null("banned_at")
        .where_not_null("confirmed_at")
        .where("name", "a")
    )

    sql, bindings = builder.to_sql()

    assert sql == (
        "SELECT * FROM users WHERE deleted_at IS NULL AND email IS NOT NULL"
        " AND banned_at IS NULL AND confirmed_at IS NOT NULL AND name = ?"
    )
    assert bindings == ["a"]


def test_falsy_values_are_still_bound() -> None:
    sql, bindings = _builder().where("active", 0).where("name", "").to_sql()

    assert sql == "SELECT * FROM users WHERE active = ? AND name = ?"
    assert bindings == [0, ""]


def test_placeholder_follows_connection_style() -> None:
    builder = _builder(placeholder="%s").where("id", 1)

    assert builder.to_update_sql({"name": "b"}) == (
        "UPDATE users SET name = %s WHERE id = %s",
        ["b", 1],
    )


def test_limit_and_offset_overwrite_previous_values() -> None:
    sql, _ = _builder().limit(5).offset(1).limit(2).offset(0).to_sql()

    assert sql == "SELECT * FROM users LIMIT 2 OFFSET 0"


@pytest.mark.parametrize("value", [-1, 1.5, "10", True])
def test_limit_rejects_non_natural_numbers(value) -> None:
    with pytest.raises(ValueError):
        _builder().limit(value)


def test_select_without_columns_resets_to_star() -> None:
    sql, _ = _builder().select("id").select().to_sql()

    assert sql == "SELECT * FROM users"


def test_hydrator_applies_to_get_first_and_find_but_not_count() -> None:
    conn = _FakeConnection(rows=[{"id": 1, "count": 1}])
    builder = QueryBuilder("users", conn, hydrate=lambda row: ("hydrated", row["id"]))

    assert builder.get() == [("hydrated", 1)]
    assert builder.first() == ("hydrated", 1)
    assert builder.find(1) == ("hydrated", 1)
    assert builder.count() == 1


@pytest.mark.parametrize(
    "call",
    [
        lambda b: b.where("id; DROP TABLE users", 1),
        lambda b: b.where("id", "===", 1),
        lambda b: b.where("age", ">", None),
        lambda b: b.order_by("name", "sideways"),
        lambda b: b.order_by("name desc"),
        lambda b: b.join("posts p", "p.user_id", "=", "users.id"),
        lambda b: b.left_join("posts", "posts.user_id", "=", "1"),
        lambda b: b.to_insert_sql({"name) VALUES ('x'); --": "a"}),
        lambda b: b.to_update_sql({"a b": 1}),
    ],
)
def test_unsafe_identifiers_and_operators_are_rejected(call) -> None:
    with pytest.raises(InvalidIdentifierError):
        call(_builder())


def test_table_name_is_validated() -> None:
    with pytest.raises(InvalidIdentifierError):
        QueryBuilder("users; DROP TABLE users", _FakeConnection())
