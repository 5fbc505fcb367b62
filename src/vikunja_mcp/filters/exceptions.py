"""Exceptions raised by the filter expression engine and task filtering.

Every error carries enough structure (position, offending token, field name)
for a caller to correct its input. Evaluation never raises; see
``vikunja_mcp.filters.evaluator``.
"""

from __future__ import annotations

from collections.abc import Iterable


class FilterError(Exception):
    """Base exception for all filter-related errors."""

    error_code = "filter_error"

    def __init__(self, message: str) -> None:
        """Initialize filter error.

        Args:
            message: Human readable description of the problem
        """
        self.message = message
        super().__init__(message)


class FilterParseError(FilterError):
    """Raised when a filter string is malformed.

    Attributes:
        position: Zero-based character offset where the problem was detected
        found: The offending token text ("" at end of input)
        expected: Sorted token descriptions that would have been accepted
    """

    error_code = "parse_error"

    def __init__(
        self,
        message: str,
        position: int,
        found: str = "",
        expected: Iterable[str] = (),
    ) -> None:
        """Initialize parse error.

        Args:
            message: Error message without position information
            position: Character offset of the offending token
            found: Offending token text
            expected: Token descriptions that would have been valid here
        """
        self.position = position
        self.found = found
        self.expected = tuple(sorted(set(expected)))
        super().__init__(f"{message} at position {position}")

    def to_dict(self) -> dict[str, object]:
        """Return a structured representation for tool responses."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "position": self.position,
            "found": self.found,
            "expected": list(self.expected),
        }


class UnexpectedTokenError(FilterParseError):
    """Raised when a token appears where the grammar does not allow it."""

    def __init__(self, position: int, found: str, expected: Iterable[str]) -> None:
        """Initialize unexpected token error.

        Args:
            position: Character offset of the token
            found: Offending token text ("" at end of input)
            expected: Token descriptions that would have been valid here
        """
        expected_set = tuple(sorted(set(expected)))
        shown = f"'{found}'" if found else "end of input"
        message = f"Unexpected {shown}, expected one of: {', '.join(expected_set)}"
        super().__init__(message, position, found, expected_set)


class UnterminatedLiteralError(FilterParseError):
    """Raised when a quoted string literal is not closed."""

    def __init__(self, position: int, quote: str) -> None:
        """Initialize unterminated literal error.

        Args:
            position: Character offset of the opening quote
            quote: The quote character that was never closed
        """
        super().__init__(
            f"Unterminated string literal starting with {quote}", position, quote, (quote,)
        )


class UnknownFieldError(FilterParseError):
    """Raised when a condition references a field outside the supported set."""

    def __init__(self, position: int, field: str, known: Iterable[str]) -> None:
        """Initialize unknown field error.

        Args:
            position: Character offset of the field name
            field: The unrecognized field name
            known: Supported field names
        """
        self.field = field
        super().__init__(f"Unknown field '{field}'", position, field, known)


class UnknownOperatorError(FilterParseError):
    """Raised when a condition uses an operator outside the supported set."""

    def __init__(self, position: int, operator: str, known: Iterable[str]) -> None:
        """Initialize unknown operator error.

        Args:
            position: Character offset of the operator
            operator: The unrecognized operator token
            known: Supported operators
        """
        self.operator = operator
        super().__init__(f"Unknown operator '{operator}'", position, operator, known)


class EmptyExpressionError(FilterParseError):
    """Raised when the filter string is blank."""

    def __init__(self) -> None:
        """Initialize empty expression error."""
        super().__init__("Filter expression is empty", 0)


class FilterValidationError(FilterError):
    """Raised when a well-formed expression is semantically invalid."""

    error_code = "validation_error"

    def __init__(self, errors: Iterable[str], warnings: Iterable[str] = ()) -> None:
        """Initialize validation error.

        Args:
            errors: Blocking validation messages
            warnings: Advisory messages collected alongside the errors
        """
        self.errors = list(errors)
        self.warnings = list(warnings)
        super().__init__("Invalid filter: " + "; ".join(self.errors))


class OrchestrationError(FilterError):
    """Raised when both server-side filtering and the local fallback fetch fail."""

    error_code = "orchestration_error"

    @classmethod
    def fallback_failed(cls, server_error: str | None) -> OrchestrationError:
        """Create an error for a failed client-side fallback.

        Args:
            server_error: Description of the earlier server-side failure

        Returns:
            OrchestrationError with both failures summarized
        """
        detail = f" (server-side attempt: {server_error})" if server_error else ""
        return cls(f"Unable to fetch tasks for client-side filtering{detail}")
