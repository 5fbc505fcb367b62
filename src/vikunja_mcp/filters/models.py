"""Data model for the task filter language.

This module defines the closed set of filterable fields and operators, the value
kind carried by each field, and the abstract syntax tree produced by the parser
and builder. The tree is an explicit tagged variant: every node is either a
``Condition`` leaf or a ``BinaryNode`` joining two sub-expressions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

FilterScalar = str | int | float | bool
FilterValue = FilterScalar | tuple[str | int, ...]


class FilterField(StrEnum):
    """Task attributes that can be referenced in a filter expression."""

    DONE = "done"
    PRIORITY = "priority"
    PERCENT_DONE = "percentDone"
    DUE_DATE = "dueDate"
    ASSIGNEES = "assignees"
    LABELS = "labels"
    CREATED = "created"
    UPDATED = "updated"
    TITLE = "title"
    DESCRIPTION = "description"


class FilterOperator(StrEnum):
    """Comparison operators supported by the filter language."""

    EQ = "="
    NE = "!="
    GT = ">"
    GE = ">="
    LT = "<"
    LE = "<="
    LIKE = "like"
    IN = "in"
    NOT_IN = "not in"


class Combinator(StrEnum):
    """Boolean combinator joining two expressions."""

    AND = "&&"
    OR = "||"


class ValueKind(StrEnum):
    """Intrinsic value kind of a filter field."""

    BOOLEAN = "boolean"
    NUMBER = "number"
    DATE = "date"
    STRING = "string"
    ARRAY = "array"


FIELD_KINDS: dict[FilterField, ValueKind] = {
    FilterField.DONE: ValueKind.BOOLEAN,
    FilterField.PRIORITY: ValueKind.NUMBER,
    FilterField.PERCENT_DONE: ValueKind.NUMBER,
    FilterField.DUE_DATE: ValueKind.DATE,
    FilterField.ASSIGNEES: ValueKind.ARRAY,
    FilterField.LABELS: ValueKind.ARRAY,
    FilterField.CREATED: ValueKind.DATE,
    FilterField.UPDATED: ValueKind.DATE,
    FilterField.TITLE: ValueKind.STRING,
    FilterField.DESCRIPTION: ValueKind.STRING,
}

# Vikunja task payload keys for each filter field
FIELD_TASK_KEYS: dict[FilterField, str] = {
    FilterField.DONE: "done",
    FilterField.PRIORITY: "priority",
    FilterField.PERCENT_DONE: "percent_done",
    FilterField.DUE_DATE: "due_date",
    FilterField.ASSIGNEES: "assignees",
    FilterField.LABELS: "labels",
    FilterField.CREATED: "created",
    FilterField.UPDATED: "updated",
    FilterField.TITLE: "title",
    FilterField.DESCRIPTION: "description",
}

MEMBERSHIP_OPERATORS = frozenset({FilterOperator.IN, FilterOperator.NOT_IN})

# Value kinds each operator is meaningful for
OPERATOR_KINDS: dict[FilterOperator, frozenset[ValueKind]] = {
    FilterOperator.EQ: frozenset(ValueKind),
    FilterOperator.NE: frozenset(ValueKind),
    FilterOperator.GT: frozenset({ValueKind.NUMBER, ValueKind.DATE}),
    FilterOperator.GE: frozenset({ValueKind.NUMBER, ValueKind.DATE}),
    FilterOperator.LT: frozenset({ValueKind.NUMBER, ValueKind.DATE}),
    FilterOperator.LE: frozenset({ValueKind.NUMBER, ValueKind.DATE}),
    FilterOperator.LIKE: frozenset({ValueKind.STRING}),
    FilterOperator.IN: frozenset({ValueKind.ARRAY}),
    FilterOperator.NOT_IN: frozenset({ValueKind.ARRAY}),
}


@dataclass(frozen=True, slots=True)
class Condition:
    """Leaf node: a single ``field operator value`` comparison."""

    field: FilterField
    operator: FilterOperator
    value: FilterValue

    @property
    def kind(self) -> ValueKind:
        """Value kind of the referenced field."""
        return FIELD_KINDS[self.field]


@dataclass(frozen=True, slots=True)
class BinaryNode:
    """Branch node joining two expressions with a combinator."""

    combinator: Combinator
    left: FilterExpression
    right: FilterExpression


FilterExpression = Condition | BinaryNode


def iter_conditions(expression: FilterExpression) -> list[Condition]:
    """Return the leaf conditions of an expression in left-to-right order."""
    if isinstance(expression, Condition):
        return [expression]
    return [*iter_conditions(expression.left), *iter_conditions(expression.right)]


def iter_combinators(expression: FilterExpression) -> list[Combinator]:
    """Return the combinators of an expression in left-to-right order."""
    if isinstance(expression, Condition):
        return []
    return [
        *iter_combinators(expression.left),
        expression.combinator,
        *iter_combinators(expression.right),
    ]


_FIELD_LOOKUP: dict[str, FilterField] = {
    **{field.value.lower(): field for field in FilterField},
    **{key: field for field, key in FIELD_TASK_KEYS.items()},
}


def resolve_field(name: str) -> FilterField | None:
    """Resolve a field name case-insensitively, accepting Vikunja's snake_case keys."""
    return _FIELD_LOOKUP.get(name.strip().lower())
