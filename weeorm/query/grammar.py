"""
Clause value objects and identifier validation for the query builder.

Table and column names are spliced into SQL text, so every identifier that
reaches a rendered statement is checked against a plain or dotted identifier
grammar first. Literal values are never spliced; they travel as bind values.
"""

from __future__ import annotations

import re
from typing import Any, Literal, Type, TypeVar

from pydantic import BaseModel, ValidationError, field_validator, model_validator

from weeorm.errors import InvalidIdentifierError

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")

OPERATORS = frozenset(
    {"=", "!=", "<>", "<", ">", "<=", ">=", "LIKE", "NOT LIKE", "ILIKE", "IS", "IS NOT"}
)
_NULL_EQUAL = frozenset({"=", "IS"})
_NULL_NOT_EQUAL = frozenset({"!=", "<>", "IS NOT"})

ClauseT = TypeVar("ClauseT", bound=BaseModel)


def validate_identifier(name: str) -> str:
    """
    Return ``name`` unchanged if it is a plain (``col``) or qualified
    (``table.col``) identifier.

    Raises
    ------
    InvalidIdentifierError
        For anything else, e.g. ``"id; DROP TABLE users"``.
    """
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise InvalidIdentifierError(f"Invalid SQL identifier: {name!r}")
    return name


def normalize_operator(operator: str) -> str:
    normalized = " ".join(str(operator).split()).upper()
    if normalized not in OPERATORS:
        raise InvalidIdentifierError(
            f"Unsupported operator {operator!r}. Allowed: {', '.join(sorted(OPERATORS))}"
        )
    return normalized


class Condition(BaseModel):
    """
    One WHERE term. The connector of the first condition is ignored at render time.

    A None value compared with ``=``/``IS`` renders ``IS NULL`` and with
    ``!=``/``<>``/``IS NOT`` renders ``IS NOT NULL``; neither binds a value.
    """

    connector: Literal["AND", "OR"]
    column: str
    operator: str
    value: Any = None

    model_config = {"frozen": True}

    @field_validator("column")
    @classmethod
    def _check_column(cls, value: str) -> str:
        return validate_identifier(value)

    @field_validator("operator")
    @classmethod
    def _check_operator(cls, value: str) -> str:
        return normalize_operator(value)

    @model_validator(mode="after")
    def _check_null_operator(self) -> "Condition":
        if self.value is None and self.operator not in _NULL_EQUAL | _NULL_NOT_EQUAL:
            raise InvalidIdentifierError(
                f"Operator {self.operator!r} cannot be compared with NULL"
            )
        return self

    @property
    def binds_value(self) -> bool:
        return self.value is not None

    def render(self, placeholder: str) -> str:
        if self.value is None:
            if self.operator in _NULL_EQUAL:
                return f"{self.column} IS NULL"
            return f"{self.column} IS NOT NULL"
        return f"{self.column} {self.operator} {placeholder}"


class Join(BaseModel):
    """A JOIN clause. Both operands are column references and never bind."""

    kind: Literal["INNER", "LEFT"]
    table: str
    left: str
    operator: str
    right: str

    model_config = {"frozen": True}

    @field_validator("table", "left", "right")
    @classmethod
    def _check_identifier(cls, value: str) -> str:
        return validate_identifier(value)

    @field_validator("operator")
    @classmethod
    def _check_operator(cls, value: str) -> str:
        return normalize_operator(value)

    def render(self) -> str:
        return f"{self.kind} JOIN {self.table} ON {self.left} {self.operator} {self.right}"


class Ordering(BaseModel):
    column: str
    direction: Literal["ASC", "DESC"] = "ASC"

    model_config = {"frozen": True}

    @field_validator("column")
    @classmethod
    def _check_column(cls, value: str) -> str:
        return validate_identifier(value)

    @field_validator("direction", mode="before")
    @classmethod
    def _upper_direction(cls, value: Any) -> Any:
        if isinstance(value, str) and value.upper() in ("ASC", "DESC"):
            return value.upper()
        raise InvalidIdentifierError(f"Invalid ORDER BY direction: {value!r}")

    def render(self) -> str:
        return f"{self.column} {self.direction}"


def build_clause(clause: Type[ClauseT], **fields: Any) -> ClauseT:
    """
    Construct a clause value object, surfacing validation failures as
    InvalidIdentifierError rather than pydantic's ValidationError.
    """
    try:
        return clause(**fields)
    except ValidationError as exc:
        first = exc.errors()[0]
        message = str(first.get("ctx", {}).get("error") or first["msg"])
        raise InvalidIdentifierError(message) from exc


__all__ = [
    "build_clause",
    "Condition",
    "Join",
    "OPERATORS",
    "Ordering",
    "normalize_operator",
    "validate_identifier",
]
