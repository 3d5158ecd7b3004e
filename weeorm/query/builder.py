"""
Fluent SQL statement assembler for a single table.

The builder accumulates select columns, WHERE conditions, joins, ordering and
LIMIT/OFFSET, renders SELECT/INSERT/UPDATE/DELETE text with an ordered list of
bind values, and hands execution to its Connection.

Bind values are collected afresh on every render, and in exactly the order the
placeholders appear in the statement: for UPDATE the SET values come first and
the WHERE values follow. Joins and ordering never bind.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Tuple

from weeorm.query.grammar import Condition, Join, Ordering, build_clause, validate_identifier

if TYPE_CHECKING:
    from weeorm.infrastructure.connection import Connection

Row = Dict[str, Any]

_MISSING: Any = object()


class QueryBuilder:
    """
    Mutable, chainable statement builder bound to one table and one Connection.

    Every clause method returns the builder itself; ``get``, ``first``,
    ``find``, ``insert``, ``update``, ``delete`` and ``count`` execute.

    Parameters
    ----------
    table : str
        Target table name (plain or schema-qualified identifier).
    connection : Connection
        Executes rendered statements and supplies the placeholder style.
    primary_key : str
        Column used by ``find``.
    hydrate : callable, optional
        Applied to each fetched row by ``get``/``first``/``find``, e.g. to turn
        rows into model instances.
    """

    def __init__(
        self,
        table: str,
        connection: "Connection",
        primary_key: str = "id",
        hydrate: Optional[Callable[[Row], Any]] = None,
    ) -> None:
        self.table = validate_identifier(table)
        self.primary_key = validate_identifier(primary_key)
        self._connection = connection
        self._hydrate = hydrate
        self._columns: List[str] = ["*"]
        self._conditions: List[Condition] = []
        self._joins: List[Join] = []
        self._orderings: List[Ordering] = []
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None

    @property
    def connection(self) -> "Connection":
        return self._connection

    @property
    def placeholder(self) -> str:
        return getattr(self._connection, "placeholder", "?")

    # Clauses

    def select(self, *columns: str) -> "QueryBuilder":
        """Replace the selected expressions. Expressions are not validated."""
        self._columns = list(columns) or ["*"]
        return self

    def where(self, column: str, operator: Any, value: Any = _MISSING) -> "QueryBuilder":
        """
        Append an AND condition.

        ``where("name", "a")`` compares with ``=``;
        ``where("age", ">", 18)`` uses the given operator.
        """
        return self._add_condition("AND", column, operator, value)

    def or_where(self, column: str, operator: Any, value: Any = _MISSING) -> "QueryBuilder":
        """Append an OR condition; same call forms as ``where``."""
        return self._add_condition("OR", column, operator, value)

    def where_null(self, column: str) -> "QueryBuilder":
        return self._add_condition("AND", column, "IS", None)

    def where_not_null(self, column: str) -> "QueryBuilder":
        return self._add_condition("AND", column, "IS NOT", None)

    def _add_condition(self, connector: str, column: str, operator: Any, value: Any) -> "QueryBuilder":
        if value is _MISSING:
            value, operator = operator, "="
        self._conditions.append(
            build_clause(
                Condition, connector=connector, column=column, operator=operator, value=value
            )
        )
        return self

    def join(self, table: str, left: str, operator: str, right: str) -> "QueryBuilder":
        self._joins.append(
            build_clause(Join, kind="INNER", table=table, left=left, operator=operator, right=right)
        )
        return self

    def left_join(self, table: str, left: str, operator: str, right: str) -> "QueryBuilder":
        self._joins.append(
            build_clause(Join, kind="LEFT", table=table, left=left, operator=operator, right=right)
        )
        return self

    def order_by(self, column: str, direction: str = "ASC") -> "QueryBuilder":
        self._orderings.append(build_clause(Ordering, column=column, direction=direction))
        return self

    def limit(self, limit: int) -> "QueryBuilder":
        self._limit = _non_negative("LIMIT", limit)
        return self

    def offset(self, offset: int) -> "QueryBuilder":
        self._offset = _non_negative("OFFSET", offset)
        return self

    # Rendering

    def _compile_where(self, bindings: List[Any]) -> str:
        """Render the WHERE body, appending each bound value to ``bindings`` in order."""
        parts: List[str] = []
        for index, condition in enumerate(self._conditions):
            fragment = condition.render(self.placeholder)
            parts.append(fragment if index == 0 else f"{condition.connector} {fragment}")
            if condition.binds_value:
                bindings.append(condition.value)
        return " ".join(parts)

    def to_sql(self) -> Tuple[str, List[Any]]:
        """Render the SELECT statement and its bind values without executing."""
        bindings: List[Any] = []
        sql = f"SELECT {', '.join(self._columns)} FROM {self.table}"
        for join in self._joins:
            sql += f" {join.render()}"
        if self._conditions:
            sql += f" WHERE {self._compile_where(bindings)}"
        if self._orderings:
            sql += " ORDER BY " + ", ".join(ordering.render() for ordering in self._orderings)
        if self._limit is not None:
            sql += f" LIMIT {self._limit}"
        if self._offset is not None:
            sql += f" OFFSET {self._offset}"
        return sql, bindings

    def to_insert_sql(
        self, data: Mapping[str, Any], returning: Optional[str] = None
    ) -> Tuple[str, List[Any]]:
        """Render an INSERT for one row, optionally with ``RETURNING <column>``."""
        if data:
            columns = [validate_identifier(column) for column in data]
            placeholders = ", ".join([self.placeholder] * len(columns))
            sql = f"INSERT INTO {self.table} ({', '.join(columns)}) VALUES ({placeholders})"
        else:
            sql = f"INSERT INTO {self.table} DEFAULT VALUES"
        if returning is not None:
            sql += f" RETURNING {validate_identifier(returning)}"
        return sql, list(data.values())

    def to_update_sql(self, data: Mapping[str, Any]) -> Tuple[str, List[Any]]:
        if not data:
            raise ValueError("update() requires at least one column to set")
        bindings: List[Any] = []
        assignments = []
        for column, value in data.items():
            assignments.append(f"{validate_identifier(column)} = {self.placeholder}")
            bindings.append(value)
        sql = f"UPDATE {self.table} SET {', '.join(assignments)}"
        if self._conditions:
            sql += f" WHERE {self._compile_where(bindings)}"
        return sql, bindings

    def to_delete_sql(self) -> Tuple[str, List[Any]]:
        bindings: List[Any] = []
        sql = f"DELETE FROM {self.table}"
        if self._conditions:
            sql += f" WHERE {self._compile_where(bindings)}"
        return sql, bindings

    # Execution

    def get(self) -> List[Any]:
        """Execute the SELECT and return every row (hydrated if configured)."""
        sql, bindings = self.to_sql()
        rows = self._connection.fetch_all(sql, bindings)
        if self._hydrate is None:
            return rows
        return [self._hydrate(row) for row in rows]

    def first(self) -> Optional[Any]:
        """Force LIMIT 1, execute, and return the row or None."""
        row = self._first_row()
        if row is None or self._hydrate is None:
            return row
        return self._hydrate(row)

    def _first_row(self) -> Optional[Row]:
        self.limit(1)
        sql, bindings = self.to_sql()
        return self._connection.fetch_one(sql, bindings)

    def find(self, id: Any) -> Optional[Any]:
        return self.where(self.primary_key, id).first()

    def insert(self, data: Mapping[str, Any], *, return_key: bool = True) -> Any:
        """
        Insert one row, columns and values in ``data``'s iteration order.

        Parameters
        ----------
        data : Mapping
            Column values for the new row.
        return_key : bool
            Fetch the generated primary key. Pass False when ``data`` already
            carries the key, so no key lookup is issued.

        Returns
        -------
        Any
            The generated primary-key value, or None when ``return_key`` is False.
            Connections with ``returning_keys`` read it from ``INSERT ... RETURNING``;
            others ask ``last_insert_id()``.
        """
        if not return_key:
            sql, bindings = self.to_insert_sql(data)
            self._connection.query(sql, bindings)
            return None
        if getattr(self._connection, "returning_keys", False):
            sql, bindings = self.to_insert_sql(data, returning=self.primary_key)
            row = self._connection.fetch_one(sql, bindings)
            return row[self.primary_key] if row else None
        sql, bindings = self.to_insert_sql(data)
        self._connection.query(sql, bindings)
        return self._connection.last_insert_id()

    def update(self, data: Mapping[str, Any]) -> int:
        """Update rows matched by the accumulated WHERE clause; returns affected rows."""
        sql, bindings = self.to_update_sql(data)
        return self._connection.execute(sql, bindings)

    def delete(self) -> int:
        """Delete rows matched by the accumulated WHERE clause; returns affected rows."""
        sql, bindings = self.to_delete_sql()
        return self._connection.execute(sql, bindings)

    def count(self) -> int:
        """Replace the select list with ``COUNT(*)`` and drop any ORDER BY terms."""
        self._columns = ["COUNT(*) AS count"]
        self._orderings = []
        row = self._first_row()
        return int(row["count"]) if row else 0

    def __repr__(self) -> str:
        sql, bindings = self.to_sql()
        return f"<QueryBuilder {sql!r} bindings={bindings!r}>"


def _non_negative(clause: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{clause} must be a non-negative integer, got {value!r}")
    return value


__all__ = ["QueryBuilder"]
