"""Exception hierarchy for Vikunja API operations.

Errors raised here never carry the API token: messages are built from status
codes, endpoints and safe context only.
"""


class VikunjaAPIError(Exception):
    """Base exception for all Vikunja API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """Initialize Vikunja API error.

        Args:
            message: Error message (must not contain the API token)
            status_code: HTTP status code if applicable
        """
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def create_unexpected_error(cls, method: str, endpoint: str) -> "VikunjaAPIError":
        """Create an error for unexpected failures with safe context.

        Args:
            method: HTTP method used
            endpoint: API endpoint called

        Returns:
            VikunjaAPIError with contextual message
        """
        return cls(f"Unexpected API error (method={method}, endpoint={endpoint}, status_unknown)")

    @classmethod
    def create_parse_error(cls, endpoint: str, **context: str | int) -> "VikunjaAPIError":
        """Create an error for response parsing failures with safe context.

        Args:
            endpoint: API endpoint that failed
            **context: Additional safe context information

        Returns:
            VikunjaAPIError with contextual message
        """
        context_parts = [f"endpoint={endpoint}"]
        context_parts.extend(f"{key}={value}" for key, value in context.items())
        return cls(f"Failed to parse response ({', '.join(context_parts)})")


class VikunjaBadRequestError(VikunjaAPIError):
    """Raised for 400 Bad Request, e.g. a filter string Vikunja cannot handle."""

    def __init__(self, message: str = "Bad request - invalid parameters") -> None:
        super().__init__(message, status_code=400)

    @classmethod
    def invalid_project_id(cls, project_id: object) -> "VikunjaBadRequestError":
        """Create an error for a non-positive project id."""
        return cls(f"Invalid project id: {project_id}")


class VikunjaAuthenticationError(VikunjaAPIError):
    """Raised when the API token is rejected (401 Unauthorized)."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message, status_code=401)


class VikunjaForbiddenError(VikunjaAPIError):
    """Raised when the token lacks access to a resource (403 Forbidden)."""

    def __init__(self, message: str = "Access to resource forbidden") -> None:
        super().__init__(message, status_code=403)


class VikunjaNotFoundError(VikunjaAPIError):
    """Raised when a resource is not found (404 Not Found)."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message, status_code=404)


class VikunjaValidationError(VikunjaAPIError):
    """Raised when the request entity is rejected (422 Unprocessable Entity)."""

    def __init__(self, message: str = "Entity validation failed") -> None:
        super().__init__(message, status_code=422)


class VikunjaRateLimitError(VikunjaAPIError):
    """Raised when the rate limit is exceeded (429 Too Many Requests)."""

    def __init__(self, message: str = "Rate limit exceeded") -> None:
        super().__init__(message, status_code=429)


class VikunjaServerError(VikunjaAPIError):
    """Raised when the server returns a 5xx error."""

    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message, status_code=status_code)


class VikunjaServiceUnavailableError(VikunjaAPIError):
    """Raised when Vikunja is temporarily unavailable (503 Service Unavailable)."""

    def __init__(self, message: str = "Service temporarily unavailable") -> None:
        super().__init__(message, status_code=503)


class VikunjaNetworkError(VikunjaAPIError):
    """Raised when the connection to Vikunja fails."""

    def __init__(self, message: str = "Network error occurred") -> None:
        super().__init__(message, status_code=None)


class VikunjaTimeoutError(VikunjaAPIError):
    """Raised on client timeouts or a 524 gateway timeout."""

    def __init__(self, message: str = "Request timeout", status_code: int | None = None) -> None:
        super().__init__(message, status_code=status_code)
