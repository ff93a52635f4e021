from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pg_browser.services.errors import QueryValidationError
from pg_browser.services.sql_quoting import quote_identifier, quote_literal


class FilterOperator(str, Enum):
    EQ = "="
    NE = "!="
    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    CONTAINS = "CONTAINS"
    CONTAINS_CI = "CONTAINS (case-insensitive)"
    LIKE = "LIKE"
    ILIKE = "ILIKE"
    IN = "IN"
    NOT_IN = "NOT IN"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"

    @classmethod
    def parse(cls, raw: str | FilterOperator) -> FilterOperator:
        if isinstance(raw, FilterOperator):
            return raw
        text = str(raw or "").strip()
        for operator in cls:
            if text == operator.value or text.upper() == operator.value.upper():
                return operator
            if text.upper() == operator.name:
                return operator
        raise QueryValidationError(f"Unsupported filter operator '{raw}'.")

    @property
    def takes_value(self) -> bool:
        return self not in NULL_OPERATORS


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"

    @classmethod
    def parse(cls, raw: str | LogicalOperator | None) -> LogicalOperator | None:
        if raw is None or isinstance(raw, LogicalOperator):
            return raw
        text = str(raw).strip().upper()
        if not text:
            return None
        try:
            return cls(text)
        except ValueError as error:
            raise QueryValidationError(f"Unsupported logical operator '{raw}'.") from error


NULL_OPERATORS = frozenset({FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL})
LIST_OPERATORS = frozenset({FilterOperator.IN, FilterOperator.NOT_IN})


def _new_condition_id() -> str:
    return uuid.uuid4().hex


@dataclass(slots=True)
class FilterCondition:
    column: str
    operator: FilterOperator = FilterOperator.EQ
    value: str = ""
    logical_op: LogicalOperator | None = None
    id: str = field(default_factory=_new_condition_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "column": self.column,
            "operator": self.operator.value,
            "value": self.value,
            "logical_op": self.logical_op.value if self.logical_op else None,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> FilterCondition:
        return cls(
            id=str(payload.get("id") or _new_condition_id()),
            column=str(payload.get("column") or ""),
            operator=FilterOperator.parse(payload.get("operator") or FilterOperator.EQ),
            value="" if payload.get("value") is None else str(payload.get("value")),
            logical_op=LogicalOperator.parse(payload.get("logical_op")),
        )


def _split_list_value(value: str) -> list[str]:
    return [token.strip() for token in value.split(",") if token.strip()]


def compile_condition(condition: FilterCondition) -> str:
    column = quote_identifier(condition.column)
    operator = condition.operator

    if operator in NULL_OPERATORS:
        return f"{column} {operator.value}"
    if operator in LIST_OPERATORS:
        tokens = ", ".join(quote_literal(token) for token in _split_list_value(condition.value))
        return f"{column} {operator.value} ({tokens})"
    if operator == FilterOperator.CONTAINS:
        return f"{column} LIKE {quote_literal('%' + condition.value + '%')}"
    if operator == FilterOperator.CONTAINS_CI:
        return f"{column} ILIKE {quote_literal('%' + condition.value + '%')}"
    return f"{column} {operator.value} {quote_literal(condition.value)}"


def compile_where(conditions: Sequence[FilterCondition]) -> str:
    """Compile an ordered condition chain into WHERE clause text (without the keyword).

    The first condition's connective is ignored; later ones default to AND.
    Wildcards typed into CONTAINS values are passed through unescaped.
    """
    parts: list[str] = []
    for index, condition in enumerate(conditions):
        if index > 0:
            connective = (condition.logical_op or LogicalOperator.AND).value
            parts.append(f" {connective} ")
        parts.append(compile_condition(condition))
    return "".join(parts)


def active_conditions(conditions: Sequence[FilterCondition]) -> list[FilterCondition]:
    """Drop conditions that have no column chosen yet."""
    return [condition for condition in conditions if condition.column and condition.column.strip()]


def describe_filters(conditions: Sequence[FilterCondition]) -> str:
    """Human-readable summary of a condition chain for display above the grid."""
    if not conditions:
        return "No filters applied"
    parts: list[str] = []
    for index, condition in enumerate(conditions):
        fragment = f"{condition.column} {condition.operator.value}"
        if condition.operator.takes_value:
            fragment += f' "{condition.value}"'
        if index > 0:
            fragment = f"{(condition.logical_op or LogicalOperator.AND).value} {fragment}"
        parts.append(fragment)
    return " ".join(parts)


def snapshot_conditions(conditions: Sequence[FilterCondition]) -> list[dict[str, Any]]:
    return [condition.to_dict() for condition in conditions]


def restore_conditions(snapshot: Sequence[Mapping[str, Any]]) -> list[FilterCondition]:
    return [FilterCondition.from_dict(entry) for entry in snapshot]
