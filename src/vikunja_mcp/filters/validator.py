"""Semantic validation of parsed filter expressions.

The validator inspects a tree produced by the parser or builder and checks
field/operator compatibility and value types. Errors block execution; warnings
are advisory and travel with otherwise successful responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import assert_never

from vikunja_mcp.filters.dates import parse_filter_date
from vikunja_mcp.filters.models import (
    MEMBERSHIP_OPERATORS,
    OPERATOR_KINDS,
    BinaryNode,
    Combinator,
    Condition,
    FilterExpression,
    FilterField,
    FilterOperator,
    ValueKind,
    iter_combinators,
)

# Inclusive bounds Vikunja enforces for numeric task attributes
_NUMERIC_BOUNDS: dict[FilterField, tuple[int, int]] = {
    FilterField.PRIORITY: (0, 5),
    FilterField.PERCENT_DONE: (0, 100),
}


@dataclass(slots=True)
class ValidationResult:
    """Outcome of validating a filter expression."""

    valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-friendly representation."""
        return {"valid": self.valid, "errors": self.errors, "warnings": self.warnings}


def coerce_boolean(value: object) -> bool | None:
    """Coerce a filter value to a boolean, or None if it cannot be."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def coerce_number(value: object) -> float | None:
    """Coerce a filter value to a number, or None if it cannot be."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def validate_filter_expression(expression: FilterExpression) -> ValidationResult:
    """Validate an expression against field, operator and value rules.

    Args:
        expression: Parsed or built filter expression

    Returns:
        ValidationResult: ``valid`` is False when any error was recorded
    """
    result = ValidationResult()
    _validate_node(expression, result)

    combinators = set(iter_combinators(expression))
    if len(combinators) > 1:
        result.warnings.append(
            f"Expression mixes '{Combinator.AND.value}' and '{Combinator.OR.value}' without "
            "grouping; conditions are combined strictly left to right"
        )

    result.valid = not result.errors
    return result


def _validate_node(node: FilterExpression, result: ValidationResult) -> None:
    if isinstance(node, Condition):
        _validate_condition(node, result)
    elif isinstance(node, BinaryNode):
        _validate_node(node.left, result)
        _validate_node(node.right, result)
    else:
        assert_never(node)


def _validate_condition(condition: Condition, result: ValidationResult) -> None:
    field_name = condition.field.value
    operator = condition.operator
    kind = condition.kind

    if kind not in OPERATOR_KINDS[operator]:
        if operator in MEMBERSHIP_OPERATORS:
            suggestion = "=" if operator is FilterOperator.IN else "!="
            result.warnings.append(
                f"Operator '{operator.value}' is meant for array fields; field '{field_name}' "
                f"is {kind.value}, consider '{suggestion}' instead"
            )
        else:
            result.errors.append(
                f"Operator '{operator.value}' is not valid for field '{field_name}' "
                f"({kind.value})"
            )
            return

    if isinstance(condition.value, tuple):
        if operator not in MEMBERSHIP_OPERATORS:
            result.errors.append(
                f"Field '{field_name}' with operator '{operator.value}' does not accept a "
                "list value; lists are only valid with 'in' and 'not in'"
            )
            return
        for item in condition.value:
            _validate_value(condition.field, kind, item, result)
        return

    if operator in MEMBERSHIP_OPERATORS:
        result.warnings.append(
            f"Operator '{operator.value}' on field '{field_name}' expects a list; "
            "the single value is treated as a one-element list"
        )
    _validate_value(condition.field, kind, condition.value, result)


def _validate_value(  # noqa: C901
    field_: FilterField, kind: ValueKind, value: object, result: ValidationResult
) -> None:
    field_name = field_.value

    if kind is ValueKind.BOOLEAN:
        if coerce_boolean(value) is None:
            result.errors.append(
                f"Field '{field_name}' expects a boolean value (true/false), got '{value}'"
            )
    elif kind is ValueKind.NUMBER:
        number = coerce_number(value)
        if number is None:
            result.errors.append(f"Field '{field_name}' expects a numeric value, got '{value}'")
            return
        low, high = _NUMERIC_BOUNDS[field_]
        if not low <= number <= high:
            result.warnings.append(
                f"Value {value} for field '{field_name}' is outside the range {low}-{high}"
            )
    elif kind is ValueKind.DATE:
        if isinstance(value, bool) or parse_filter_date(value) is None:
            result.errors.append(
                f"Field '{field_name}' expects a date (YYYY-MM-DD, ISO 8601 or now[+-]N"
                f"[smhdw]), got '{value}'"
            )
    elif kind is ValueKind.STRING:
        if isinstance(value, bool):
            result.warnings.append(
                f"Boolean value '{str(value).lower()}' for text field '{field_name}' is "
                "compared as text"
            )
    elif kind is ValueKind.ARRAY:
        if isinstance(value, bool) or not isinstance(value, int | str) or value == "":
            result.errors.append(
                f"Field '{field_name}' expects numeric or string ids, got '{value}'"
            )
    else:
        assert_never(kind)
