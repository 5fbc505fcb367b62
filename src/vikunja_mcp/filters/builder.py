"""Fluent construction and canonical serialization of filter expressions.

Example:
    builder = FilterBuilder()
    builder.where("priority", ">=", 3).and_().where("done", "=", False)
    builder.to_string()  # 'priority >= 3 && done = false'
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Self, assert_never

from vikunja_mcp.filters.models import (
    BinaryNode,
    Combinator,
    Condition,
    FilterExpression,
    FilterField,
    FilterOperator,
    FilterValue,
    resolve_field,
)
from vikunja_mcp.filters.parser import parse_literal

_BARE_UNSAFE = set(" \t\r\n\"'<>=!()&|,")
_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\t": "\\t", "\r": "\\r"}


class FilterBuilder:
    """Accumulates conditions into a left-associative expression chain.

    Each ``where()`` after the first is joined to the chain built so far using
    the combinator requested immediately before it, or AND if none was.
    """

    def __init__(self) -> None:
        self._expression: FilterExpression | None = None
        self._pending: Combinator | None = None

    def where(
        self,
        field: FilterField | str,
        operator: FilterOperator | str,
        value: FilterValue | Sequence[str | int],
    ) -> Self:
        """Append a condition to the chain.

        Args:
            field: Field name, e.g. ``"priority"``
            operator: Operator token, e.g. ``">="``
            value: Scalar value, or a sequence for ``in``/``not in``

        Returns:
            Self: The builder, for chaining

        Raises:
            ValueError: If the field or operator is not part of the language, or a
                value list is empty
        """
        condition = make_condition(field, operator, value)
        if self._expression is None:
            self._expression = condition
        else:
            combinator = self._pending or Combinator.AND
            self._expression = BinaryNode(combinator, self._expression, condition)
        self._pending = None
        return self

    def and_(self) -> Self:
        """Join the next condition with AND."""
        self._pending = Combinator.AND
        return self

    def or_(self) -> Self:
        """Join the next condition with OR."""
        self._pending = Combinator.OR
        return self

    def build(self) -> FilterExpression | None:
        """Return the accumulated expression, or None if no condition was added."""
        return self._expression

    def to_string(self) -> str:
        """Serialize the accumulated expression; empty string when there is none."""
        if self._expression is None:
            return ""
        return serialize_expression(self._expression)

    def __str__(self) -> str:
        return self.to_string()


def make_condition(
    field: FilterField | str,
    operator: FilterOperator | str,
    value: FilterValue | Sequence[str | int],
) -> Condition:
    """Create a condition from loosely typed parts."""
    resolved_field = field if isinstance(field, FilterField) else resolve_field(field)
    if resolved_field is None:
        msg = f"Unknown filter field: {field}"
        raise ValueError(msg)
    try:
        resolved_operator = FilterOperator(operator)
    except ValueError:
        msg = f"Unknown filter operator: {operator}"
        raise ValueError(msg) from None

    if isinstance(value, Sequence) and not isinstance(value, str):
        value = tuple(value)
        if not value:
            msg = f"Empty value list for filter field: {resolved_field.value}"
            raise ValueError(msg)
    return Condition(resolved_field, resolved_operator, value)


def build_filter_string(
    conditions: Sequence[Condition], group_operator: Combinator | str = Combinator.AND
) -> str:
    """Join conditions into a flat chain using a single combinator.

    Args:
        conditions: Conditions in the order they should appear
        group_operator: ``"&&"`` or ``"||"`` applied between every pair

    Returns:
        str: Canonical filter string ("" when no conditions were given)
    """
    combinator = Combinator(group_operator)
    builder = FilterBuilder()
    for index, condition in enumerate(conditions):
        if index > 0 and combinator is Combinator.OR:
            builder.or_()
        builder.where(condition.field, condition.operator, condition.value)
    return builder.to_string()


def serialize_expression(expression: FilterExpression) -> str:
    """Serialize an expression to the canonical filter string form.

    Right-nested chains that use a single combinator are flattened, since
    ``a && (b && c)`` equals ``(a && b) && c``. Other right-nested shapes need
    grouping, which the language does not have.

    Raises:
        ValueError: If the expression cannot be written without parentheses
    """
    if isinstance(expression, Condition):
        return _serialize_condition(expression)
    if isinstance(expression, BinaryNode):
        right = expression.right
        if isinstance(right, BinaryNode):
            if right.combinator is not expression.combinator:
                msg = "Expression requires grouping parentheses, which filters do not support"
                raise ValueError(msg)
            rotated = BinaryNode(
                right.combinator,
                BinaryNode(expression.combinator, expression.left, right.left),
                right.right,
            )
            return serialize_expression(rotated)
        left = serialize_expression(expression.left)
        return f"{left} {expression.combinator.value} {_serialize_condition(right)}"
    assert_never(expression)


def _serialize_condition(condition: Condition) -> str:
    return f"{condition.field.value} {condition.operator.value} {format_value(condition.value)}"


def format_value(value: FilterValue) -> str:
    """Format a literal so that re-parsing yields the same typed value."""
    if isinstance(value, tuple):
        return "(" + ", ".join(format_value(item) for item in value) + ")"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return repr(value)
    return _format_string(value)


def _format_string(value: str) -> str:
    if value and not _BARE_UNSAFE.intersection(value) and isinstance(parse_literal(value), str):
        return value
    escaped = "".join(_ESCAPES.get(ch, ch) for ch in value)
    return f'"{escaped}"'
