"""Client-side evaluation of filter expressions against Vikunja task payloads.

Evaluation is total: it never raises. A condition on a field the task does not
carry (missing key, ``None`` or Vikunja's zero date) is False for every
operator, including ``!=`` and ``not in``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, assert_never

from vikunja_mcp.filters.dates import is_date_only, parse_filter_date
from vikunja_mcp.filters.models import (
    FIELD_TASK_KEYS,
    BinaryNode,
    Combinator,
    Condition,
    FilterExpression,
    FilterField,
    FilterOperator,
    ValueKind,
)
from vikunja_mcp.filters.validator import coerce_boolean, coerce_number

logger = logging.getLogger(__name__)

_MISSING = object()


def evaluate_filter(expression: FilterExpression, task: Mapping[str, Any]) -> bool:
    """Evaluate an expression against one task.

    Args:
        expression: Parsed or built filter expression
        task: Task payload as returned by the Vikunja API (snake_case keys);
            camelCase field names are accepted as well

    Returns:
        bool: True when the task matches
    """
    if isinstance(expression, Condition):
        try:
            return _evaluate_condition(expression, task)
        except Exception as error:  # noqa: BLE001
            logger.debug("Condition %s evaluated to False after error: %s", expression, error)
            return False
    if isinstance(expression, BinaryNode):
        if expression.combinator is Combinator.AND:
            return evaluate_filter(expression.left, task) and evaluate_filter(
                expression.right, task
            )
        return evaluate_filter(expression.left, task) or evaluate_filter(expression.right, task)
    assert_never(expression)


def filter_tasks(
    expression: FilterExpression, tasks: list[Mapping[str, Any]]
) -> list[Mapping[str, Any]]:
    """Return the tasks that match an expression, preserving order."""
    return [task for task in tasks if evaluate_filter(expression, task)]


def _task_value(task: Mapping[str, Any], field: FilterField) -> Any:
    key = FIELD_TASK_KEYS[field]
    if key in task:
        value = task[key]
    else:
        value = task.get(field.value, _MISSING)
    if value is None:
        return _MISSING
    return value


def _evaluate_condition(condition: Condition, task: Mapping[str, Any]) -> bool:
    actual = _task_value(task, condition.field)
    if actual is _MISSING:
        return False

    kind = condition.kind
    if kind is ValueKind.ARRAY:
        return _compare_array(condition.operator, _id_set(actual), condition.value)
    if kind is ValueKind.BOOLEAN:
        return _compare_scalar(
            condition.operator, coerce_boolean(actual), condition.value, coerce_boolean
        )
    if kind is ValueKind.NUMBER:
        if condition.field is FilterField.PERCENT_DONE:
            return _compare_scalar(
                condition.operator, _task_percent(task, actual), condition.value, _coerce_percent
            )
        return _compare_scalar(
            condition.operator, coerce_number(actual), condition.value, coerce_number
        )
    if kind is ValueKind.DATE:
        coerce = _date_coercer(condition.value)
        return _compare_scalar(condition.operator, coerce(actual), condition.value, coerce)
    if kind is ValueKind.STRING:
        return _compare_text(condition.operator, str(actual), condition.value)
    assert_never(kind)


def _compare_scalar(operator: FilterOperator, actual: Any, expected: Any, coerce: Any) -> bool:
    """Compare a coerced task value with one or more coerced filter values."""
    if actual is None:
        return False

    if operator in (FilterOperator.IN, FilterOperator.NOT_IN):
        items = expected if isinstance(expected, tuple) else (expected,)
        candidates = [coerce(item) for item in items]
        contained = any(candidate is not None and actual == candidate for candidate in candidates)
        return contained if operator is FilterOperator.IN else not contained

    target = coerce(expected)
    if target is None:
        return False

    match operator:
        case FilterOperator.EQ:
            return actual == target
        case FilterOperator.NE:
            return actual != target
        case FilterOperator.GT:
            return actual > target
        case FilterOperator.GE:
            return actual >= target
        case FilterOperator.LT:
            return actual < target
        case FilterOperator.LE:
            return actual <= target
        case _:
            return False


def _task_percent(task: Mapping[str, Any], actual: Any) -> float | None:
    """Read task progress on the 0-100 scale.

    Vikunja payloads (``percent_done``) carry a 0-1 fraction; camelCase records
    (``percentDone``) are already percentages.
    """
    number = coerce_number(actual)
    if number is None:
        return None
    if FIELD_TASK_KEYS[FilterField.PERCENT_DONE] in task:
        number *= 100
    return round(number, 6)


def _coerce_percent(value: Any) -> float | None:
    """Coerce a progress filter value, reading fractions below 1 as percentages."""
    number = coerce_number(value)
    if number is None:
        return None
    if 0 < number < 1:
        number *= 100
    return round(number, 6)


def _date_coercer(expected: Any) -> Any:
    """Build a coercer for date filter values.

    A date-only filter value (``2024-05-01``) compares calendar days, so the
    task value is reduced to its date as well.
    """
    date_only = is_date_only(expected) or (
        isinstance(expected, tuple) and any(is_date_only(item) for item in expected)
    )
    if not date_only:
        return parse_filter_date

    def coerce(value: Any) -> Any:
        parsed = parse_filter_date(value)
        return parsed.date() if parsed is not None else None

    return coerce


def _compare_text(operator: FilterOperator, actual: str, expected: Any) -> bool:
    if operator is FilterOperator.LIKE:
        if isinstance(expected, tuple):
            return False
        return _as_text(expected).lower() in actual.lower()
    if operator in (FilterOperator.IN, FilterOperator.NOT_IN):
        items = expected if isinstance(expected, tuple) else (expected,)
        contained = actual in {_as_text(item) for item in items}
        return contained if operator is FilterOperator.IN else not contained
    if operator is FilterOperator.EQ:
        return actual == _as_text(expected)
    if operator is FilterOperator.NE:
        return actual != _as_text(expected)
    return False


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _normalize_id(value: Any) -> int | str | None:
    """Normalize an id or an object carrying one; numeric strings become ints."""
    if isinstance(value, Mapping):
        value = value.get("id")
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        return int(text) if text.lstrip("-").isdigit() else text
    return None


def _id_set(actual: Any) -> set[int | str]:
    items = actual if isinstance(actual, list | tuple | set) else [actual]
    return {normalized for item in items if (normalized := _normalize_id(item)) is not None}


def _compare_array(operator: FilterOperator, actual: set[int | str], expected: Any) -> bool:
    if isinstance(expected, tuple):
        wanted = {normalized for item in expected if (normalized := _normalize_id(item)) is not None}
    else:
        normalized = _normalize_id(expected)
        wanted = {normalized} if normalized is not None else set()

    match operator:
        case FilterOperator.IN:
            return bool(actual & wanted)
        case FilterOperator.NOT_IN:
            return not actual & wanted
        case FilterOperator.EQ:
            if isinstance(expected, tuple):
                return actual == wanted
            return bool(actual & wanted)
        case FilterOperator.NE:
            if isinstance(expected, tuple):
                return actual != wanted
            return not actual & wanted
        case _:
            return False
