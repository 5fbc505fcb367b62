"""Tokenizer and recursive descent parser for task filter strings.

Grammar::

    expression := condition ( combinator condition )*
    condition  := FIELD OPERATOR value
    combinator := "&&" | "||"
    value      := string | number | boolean | "(" value ("," value)* ")"

Conditions are chained left-associatively; parentheses only delimit array values.
Parsing is all-or-nothing: any lexical or structural problem yields a
``FilterParseError`` and never a partial tree.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum, auto

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
    FilterExpression,
    FilterField,
    FilterOperator,
    FilterValue,
    resolve_field,
)

logger = logging.getLogger(__name__)

_WHITESPACE = " \t\r\n"
_QUOTES = "\"'"
_OPERATOR_CHARS = "<>=!"
# Characters that end a bare (unquoted) literal
_BARE_STOP_CHARS = _WHITESPACE + _QUOTES + _OPERATOR_CHARS + "()&|,"
_IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_WORD_RE = re.compile(r"[A-Za-z]+")
_NUMBER_RE = re.compile(r"-?\d+(\.\d+)?")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}

_SYMBOLIC_OPERATORS = {op.value: op for op in FilterOperator if op.value[0] in _OPERATOR_CHARS}
_KNOWN_OPERATORS = tuple(op.value for op in FilterOperator)
_KNOWN_FIELDS = tuple(field.value for field in FilterField)


class _TokenType(Enum):
    """Token types produced by the tokenizer."""

    WORD = auto()  # identifier in field position
    OPERATOR = auto()
    VALUE = auto()  # typed literal
    LPAREN = auto()
    RPAREN = auto()
    COMMA = auto()
    COMBINATOR = auto()
    EOF = auto()


@dataclass(frozen=True, slots=True)
class _Token:
    """A token with its source position."""

    type: _TokenType
    text: str
    pos: int
    value: FilterValue | None = None


@dataclass(frozen=True, slots=True)
class ParseResult:
    """Outcome of parsing a filter string: exactly one of the fields is set."""

    expression: FilterExpression | None = None
    error: FilterParseError | None = None

    @property
    def ok(self) -> bool:
        """Whether parsing produced an expression."""
        return self.expression is not None


class _Tokenizer:
    """Context-sensitive tokenizer.

    The lexical rule applied at each point depends on the previous token: an
    operator is read after a field name, a literal after an operator, an opening
    parenthesis or a comma. Everywhere else field names, combinators and
    punctuation are recognized.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0
        self.length = len(text)
        self.tokens: list[_Token] = []

    def _skip_whitespace(self) -> None:
        while self.pos < self.length and self.text[self.pos] in _WHITESPACE:
            self.pos += 1

    def tokenize(self) -> list[_Token]:
        """Tokenize the whole input.

        Tokens read before a lexical error stay available in ``self.tokens``.
        """
        tokens = self.tokens
        previous: _TokenType | None = None

        while True:
            self._skip_whitespace()
            if self.pos >= self.length:
                tokens.append(_Token(_TokenType.EOF, "", self.pos))
                return tokens

            if previous is _TokenType.WORD:
                token = self._read_operator()
            elif previous in (_TokenType.OPERATOR, _TokenType.LPAREN, _TokenType.COMMA):
                token = self._read_value()
            else:
                token = self._read_general()
            tokens.append(token)
            previous = token.type

    def _read_general(self) -> _Token:
        """Read a field name, combinator or punctuation token."""
        start = self.pos
        ch = self.text[start]
        pair = self.text[start : start + 2]

        if pair in (Combinator.AND.value, Combinator.OR.value):
            self.pos += 2
            return _Token(_TokenType.COMBINATOR, pair, start)
        if ch in "&|":
            raise UnexpectedTokenError(start, ch, (Combinator.AND.value, Combinator.OR.value))
        if ch in "(),":
            return self._read_punctuation()
        if ch in _QUOTES:
            text = self._read_quoted()
            return _Token(_TokenType.VALUE, text, start, text)
        if ch in _OPERATOR_CHARS:
            run = self._read_run(_OPERATOR_CHARS)
            return _Token(_TokenType.OPERATOR, run, start)

        match = _IDENTIFIER_RE.match(self.text, start)
        if match:
            self.pos = match.end()
            return _Token(_TokenType.WORD, match.group(), start)

        raw = self._read_bare()
        return _Token(_TokenType.VALUE, raw, start, parse_literal(raw))

    def _read_operator(self) -> _Token:
        """Read an operator following a field name."""
        start = self.pos
        ch = self.text[start]

        if ch in _OPERATOR_CHARS:
            run = self._read_run(_OPERATOR_CHARS)
            if run not in _SYMBOLIC_OPERATORS:
                raise UnknownOperatorError(start, run, _KNOWN_OPERATORS)
            return _Token(_TokenType.OPERATOR, run, start)

        if ch in "&|(),":
            return self._read_general()

        word_match = _WORD_RE.match(self.text, start)
        if word_match is None:
            raise UnknownOperatorError(start, self._read_bare() or ch, _KNOWN_OPERATORS)

        word = word_match.group().lower()
        self.pos = word_match.end()
        if word in (FilterOperator.LIKE.value, FilterOperator.IN.value):
            return _Token(_TokenType.OPERATOR, word, start)
        if word == "not":
            self._skip_whitespace()
            follow = _WORD_RE.match(self.text, self.pos)
            if follow and follow.group().lower() == FilterOperator.IN.value:
                self.pos = follow.end()
                return _Token(_TokenType.OPERATOR, FilterOperator.NOT_IN.value, start)
            found = f"not {follow.group()}" if follow else "not"
            raise UnknownOperatorError(start, found, _KNOWN_OPERATORS)
        raise UnknownOperatorError(start, word_match.group(), _KNOWN_OPERATORS)

    def _read_value(self) -> _Token:
        """Read a literal following an operator, '(' or ','."""
        start = self.pos
        ch = self.text[start]

        if ch in _QUOTES:
            text = self._read_quoted()
            return _Token(_TokenType.VALUE, text, start, text)
        if ch in "&|(),":
            return self._read_general()
        if ch in _OPERATOR_CHARS:
            run = self._read_run(_OPERATOR_CHARS)
            return _Token(_TokenType.OPERATOR, run, start)

        raw = self._read_bare()
        return _Token(_TokenType.VALUE, raw, start, parse_literal(raw))

    def _read_punctuation(self) -> _Token:
        start = self.pos
        ch = self.text[start]
        self.pos += 1
        token_type = {
            "(": _TokenType.LPAREN,
            ")": _TokenType.RPAREN,
            ",": _TokenType.COMMA,
        }[ch]
        return _Token(token_type, ch, start)

    def _read_run(self, chars: str) -> str:
        start = self.pos
        while self.pos < self.length and self.text[self.pos] in chars:
            self.pos += 1
        return self.text[start : self.pos]

    def _read_bare(self) -> str:
        start = self.pos
        while self.pos < self.length and self.text[self.pos] not in _BARE_STOP_CHARS:
            self.pos += 1
        return self.text[start : self.pos]

    def _read_quoted(self) -> str:
        """Read a quoted literal, resolving backslash escapes.

        Escapes are resolved character by character; nothing inside the literal
        is interpreted, so sequences such as ``${...}`` stay verbatim.
        """
        quote = self.text[self.pos]
        start = self.pos
        self.pos += 1
        result: list[str] = []

        while self.pos < self.length:
            ch = self.text[self.pos]
            if ch == quote:
                self.pos += 1
                return "".join(result)
            if ch == "\\":
                self.pos += 1
                if self.pos >= self.length:
                    break
                escaped = self.text[self.pos]
                result.append(_ESCAPES.get(escaped, escaped))
            else:
                result.append(ch)
            self.pos += 1

        raise UnterminatedLiteralError(start, quote)


def parse_literal(raw: str) -> FilterValue:
    """Type a bare literal by its shape: number, boolean, or plain string."""
    if _NUMBER_RE.fullmatch(raw):
        return float(raw) if "." in raw else int(raw)
    lowered = raw.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    return raw


def _describe(token: _Token) -> str:
    return token.text if token.type is not _TokenType.EOF else ""


class _Parser:
    """Recursive descent parser over the token stream."""

    def __init__(self, tokens: list[_Token]) -> None:
        self.tokens = tokens
        self.pos = 0

    def _current(self) -> _Token:
        return self.tokens[self.pos]

    def _advance(self) -> _Token:
        token = self.tokens[self.pos]
        if self.pos < len(self.tokens) - 1:
            self.pos += 1
        return token

    def _expect(self, token_type: _TokenType, expected: tuple[str, ...]) -> _Token:
        token = self._current()
        if token.type is not token_type:
            raise UnexpectedTokenError(token.pos, _describe(token), expected)
        return self._advance()

    def parse(self) -> FilterExpression:
        """Parse a complete expression and require end of input."""
        if self._current().type is _TokenType.EOF:
            raise EmptyExpressionError

        expression: FilterExpression = self._parse_condition()
        while self._current().type is _TokenType.COMBINATOR:
            combinator = Combinator(self._advance().text)
            right = self._parse_condition()
            expression = BinaryNode(combinator, expression, right)

        token = self._current()
        if token.type is not _TokenType.EOF:
            raise UnexpectedTokenError(
                token.pos,
                _describe(token),
                (Combinator.AND.value, Combinator.OR.value, "end of input"),
            )
        return expression

    def _parse_condition(self) -> Condition:
        field_token = self._expect(_TokenType.WORD, ("field",))
        field = resolve_field(field_token.text)
        if field is None:
            raise UnknownFieldError(field_token.pos, field_token.text, _KNOWN_FIELDS)

        operator_token = self._current()
        if operator_token.type is not _TokenType.OPERATOR:
            raise UnexpectedTokenError(
                operator_token.pos, _describe(operator_token), ("operator",)
            )
        operator = _operator(operator_token)
        self._advance()

        return Condition(field, operator, self._parse_value())

    def _parse_value(self) -> FilterValue:
        token = self._current()
        if token.type is _TokenType.LPAREN:
            self._advance()
            items = [self._parse_list_item()]
            while self._current().type is _TokenType.COMMA:
                self._advance()
                items.append(self._parse_list_item())
            self._expect(_TokenType.RPAREN, (",", ")"))
            return tuple(items)
        if token.type is _TokenType.VALUE:
            self._advance()
            return token.value  # type: ignore[return-value]
        raise UnexpectedTokenError(token.pos, _describe(token), ("value", "("))

    def _parse_list_item(self) -> str | int:
        token = self._expect(_TokenType.VALUE, ("value",))
        return token.value  # type: ignore[return-value]


def _operator(token: _Token) -> FilterOperator:
    """Resolve an operator token, rejecting unknown symbolic runs."""
    try:
        return FilterOperator(token.text)
    except ValueError:
        raise UnknownOperatorError(token.pos, token.text, _KNOWN_OPERATORS) from None


def parse_filter(text: str) -> FilterExpression:
    """Parse a filter string into an expression tree.

    Args:
        text: Filter string, e.g. ``"priority >= 3 && done = false"``

    Returns:
        FilterExpression: The parsed tree

    Raises:
        FilterParseError: If the input is blank or malformed
    """
    if not text or not text.strip():
        raise EmptyExpressionError
    tokenizer = _Tokenizer(text)
    try:
        tokens = tokenizer.tokenize()
    except FilterParseError as lexical_error:
        _raise_earlier_syntax_error(tokenizer.tokens, lexical_error)
        raise
    return _Parser(tokens).parse()


def _raise_earlier_syntax_error(prefix: list[_Token], lexical_error: FilterParseError) -> None:
    """Raise the parser error found before a lexical error, if any.

    A bad field name at the start of the input is reported ahead of a
    malformed operator further along.
    """
    if not prefix:
        return
    truncated = [*prefix, _Token(_TokenType.EOF, "", lexical_error.position)]
    try:
        _Parser(truncated).parse()
    except FilterParseError as syntax_error:
        if syntax_error.position < lexical_error.position:
            raise syntax_error from None


def parse_filter_string(text: str) -> ParseResult:
    """Parse a filter string, returning the error instead of raising it.

    Args:
        text: Filter string to parse

    Returns:
        ParseResult: Holds the expression on success or the error on failure
    """
    try:
        expression = parse_filter(text)
    except FilterParseError as error:
        logger.debug("Filter parse failed: %s", error)
        return ParseResult(error=error)
    return ParseResult(expression=expression)
