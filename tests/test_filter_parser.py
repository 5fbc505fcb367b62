"""Tests for the filter string tokenizer and parser."""

import pytest

from vikunja_mcp.filters.exceptions import (
    EmptyExpressionError,
    FilterParseError,
    UnexpectedTokenError,
    UnknownFieldError,
    UnknownOperatorError,
    UnterminatedLiteralError,
)
from vikunja_mcp.filters.models import (
    BinaryNode,
    Combinator,
    Condition,
    FilterField,
    FilterOperator,
    iter_combinators,
    iter_conditions,
)
from vikunja_mcp.filters.parser import parse_filter, parse_filter_string, parse_literal


class TestParseConditions:
    """Single conditions and literal typing."""

    def test_parses_numeric_comparison(self) -> None:
        expression = parse_filter("priority >= 3")

        assert expression == Condition(FilterField.PRIORITY, FilterOperator.GE, 3)

    def test_parses_boolean_literal(self) -> None:
        expression = parse_filter("done = false")

        assert expression == Condition(FilterField.DONE, FilterOperator.EQ, False)

    def test_parses_float_literal(self) -> None:
        expression = parse_filter("percentDone > 0.5")

        assert isinstance(expression, Condition)
        assert expression.value == 0.5

    def test_parses_bare_date_as_string(self) -> None:
        expression = parse_filter("dueDate < 2025-01-31")

        assert expression == Condition(FilterField.DUE_DATE, FilterOperator.LT, "2025-01-31")

    def test_parses_relative_date(self) -> None:
        expression = parse_filter("dueDate <= now+7d")

        assert isinstance(expression, Condition)
        assert expression.value == "now+7d"

    def test_quoted_string_keeps_whitespace(self) -> None:
        expression = parse_filter('title like "weekly report"')

        assert expression == Condition(FilterField.TITLE, FilterOperator.LIKE, "weekly report")

    def test_single_quoted_string(self) -> None:
        expression = parse_filter("title = 'a && b'")

        assert isinstance(expression, Condition)
        assert expression.value == "a && b"

    def test_quoted_number_stays_string(self) -> None:
        expression = parse_filter('title = "42"')

        assert isinstance(expression, Condition)
        assert expression.value == "42"

    def test_backslash_escapes_are_resolved(self) -> None:
        expression = parse_filter(r'title = "say \"hi\"\n"')

        assert isinstance(expression, Condition)
        assert expression.value == 'say "hi"\n'

    def test_interpolation_syntax_is_kept_literally(self) -> None:
        expression = parse_filter('title = "${process.exit()}"')

        assert isinstance(expression, Condition)
        assert expression.value == "${process.exit()}"

    def test_parses_array_value(self) -> None:
        expression = parse_filter("labels in (1, 2, urgent)")

        assert expression == Condition(FilterField.LABELS, FilterOperator.IN, (1, 2, "urgent"))

    def test_parses_not_in_operator(self) -> None:
        expression = parse_filter("assignees not in (3)")

        assert expression == Condition(FilterField.ASSIGNEES, FilterOperator.NOT_IN, (3,))

    def test_operator_words_are_case_insensitive(self) -> None:
        expression = parse_filter("title LIKE report")

        assert isinstance(expression, Condition)
        assert expression.operator is FilterOperator.LIKE

    def test_snake_case_field_names_are_accepted(self) -> None:
        expression = parse_filter("due_date > 2025-01-01")

        assert isinstance(expression, Condition)
        assert expression.field is FilterField.DUE_DATE

    def test_operators_without_spaces(self) -> None:
        expression = parse_filter("priority>=3&&done=false")

        assert iter_conditions(expression) == [
            Condition(FilterField.PRIORITY, FilterOperator.GE, 3),
            Condition(FilterField.DONE, FilterOperator.EQ, False),
        ]


class TestParseChains:
    """Combinator chains."""

    def test_chain_is_left_associative(self) -> None:
        expression = parse_filter("done = false && priority > 2 || title like x")

        assert isinstance(expression, BinaryNode)
        assert expression.combinator is Combinator.OR
        assert isinstance(expression.left, BinaryNode)
        assert expression.left.combinator is Combinator.AND
        assert expression.right == Condition(FilterField.TITLE, FilterOperator.LIKE, "x")

    def test_combinators_are_reported_in_order(self) -> None:
        expression = parse_filter("done = true || priority = 1 && priority = 2")

        assert iter_combinators(expression) == [Combinator.OR, Combinator.AND]

    def test_parsing_is_deterministic(self) -> None:
        text = "priority >= 3 && labels in (1, 2) || title like 'a b'"

        assert parse_filter(text) == parse_filter(text)


class TestParseErrors:
    """Malformed input never yields a partial tree."""

    @pytest.mark.parametrize("text", ["", "   ", "\t\n"])
    def test_blank_input_is_empty_expression(self, text: str) -> None:
        with pytest.raises(EmptyExpressionError):
            parse_filter(text)

    def test_unknown_symbolic_operator(self) -> None:
        with pytest.raises(UnknownOperatorError) as exc_info:
            parse_filter("priority >>> 3")

        assert exc_info.value.operator == ">>>"
        assert exc_info.value.position == 9
        assert "'>>>'" in str(exc_info.value)

    def test_unknown_word_operator(self) -> None:
        with pytest.raises(UnknownOperatorError) as exc_info:
            parse_filter("title contains x")

        assert exc_info.value.operator == "contains"

    def test_unknown_field(self) -> None:
        with pytest.raises(UnknownFieldError) as exc_info:
            parse_filter("done = false && color = red")

        assert exc_info.value.field == "color"
        assert exc_info.value.position == 16
        assert "done" in exc_info.value.expected

    def test_earliest_error_is_reported(self) -> None:
        with pytest.raises(UnknownFieldError) as exc_info:
            parse_filter("foo = 1 && priority >>> 3")

        assert exc_info.value.field == "foo"
        assert exc_info.value.position == 0

    def test_lexical_error_wins_when_prefix_is_valid(self) -> None:
        with pytest.raises(UnknownOperatorError) as exc_info:
            parse_filter("done = true && priority >>> 3")

        assert exc_info.value.position == 24

    def test_unterminated_literal(self) -> None:
        with pytest.raises(UnterminatedLiteralError) as exc_info:
            parse_filter('title = "open')

        assert exc_info.value.position == 8

    def test_missing_value(self) -> None:
        with pytest.raises(UnexpectedTokenError) as exc_info:
            parse_filter("priority >=")

        assert exc_info.value.found == ""
        assert "value" in exc_info.value.expected

    def test_trailing_combinator(self) -> None:
        with pytest.raises(UnexpectedTokenError):
            parse_filter("done = true &&")

    def test_single_ampersand(self) -> None:
        with pytest.raises(UnexpectedTokenError) as exc_info:
            parse_filter("done = true & priority = 1")

        assert exc_info.value.found == "&"

    def test_unclosed_array(self) -> None:
        with pytest.raises(UnexpectedTokenError) as exc_info:
            parse_filter("labels in (1, 2")

        assert ")" in exc_info.value.expected

    def test_grouping_parentheses_are_rejected(self) -> None:
        with pytest.raises(FilterParseError):
            parse_filter("(done = true)")

    def test_two_conditions_without_combinator(self) -> None:
        with pytest.raises(UnexpectedTokenError) as exc_info:
            parse_filter("done = true priority = 1")

        assert exc_info.value.found == "priority"
        assert "&&" in exc_info.value.expected


class TestParseFilterString:
    """Result-returning wrapper."""

    def test_success_holds_expression(self) -> None:
        result = parse_filter_string("done = true")

        assert result.ok
        assert result.error is None
        assert result.expression == Condition(FilterField.DONE, FilterOperator.EQ, True)

    def test_failure_holds_error(self) -> None:
        result = parse_filter_string("priority >>> 3")

        assert not result.ok
        assert result.expression is None
        assert isinstance(result.error, UnknownOperatorError)
        assert result.error.to_dict()["found"] == ">>>"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("3", 3),
        ("-2", -2),
        ("1.5", 1.5),
        ("TRUE", True),
        ("false", False),
        ("2025-01-01", "2025-01-01"),
        ("now-2h", "now-2h"),
    ],
)
def test_parse_literal_types_by_shape(raw: str, expected: object) -> None:
    value = parse_literal(raw)

    assert value == expected
    assert type(value) is type(expected)
