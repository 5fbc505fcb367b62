"""HTTP plumbing shared by the Vikunja API client.

``BaseClient`` owns the httpx connection, token authentication, status code
mapping, client-side rate limiting and retries with exponential backoff.
Feature mixins build on ``make_request``.
"""

import asyncio
import logging
import types
from dataclasses import dataclass
from typing import Any, NoReturn

import httpx

from vikunja_mcp.api.exceptions import (
    VikunjaAPIError,
    VikunjaAuthenticationError,
    VikunjaBadRequestError,
    VikunjaForbiddenError,
    VikunjaNetworkError,
    VikunjaNotFoundError,
    VikunjaRateLimitError,
    VikunjaServerError,
    VikunjaServiceUnavailableError,
    VikunjaTimeoutError,
    VikunjaValidationError,
)
from vikunja_mcp.config import ServerConfig
from vikunja_mcp.rate_limiter import TokenBucketLimiter

_HTTP_NO_CONTENT = 204
_HTTP_INTERNAL_SERVER_ERROR = 500
_HTTP_BAD_GATEWAY = 502
_HTTP_SERVICE_UNAVAILABLE = 503
_HTTP_GATEWAY_TIMEOUT = 504
_HTTP_CLOUDFLARE_TIMEOUT = 524
_HTTP_MAX_SERVER_ERROR = 600

_RETRYABLE_STATUS_CODES = frozenset(
    {
        _HTTP_INTERNAL_SERVER_ERROR,
        _HTTP_BAD_GATEWAY,
        _HTTP_SERVICE_UNAVAILABLE,
        _HTTP_GATEWAY_TIMEOUT,
        _HTTP_CLOUDFLARE_TIMEOUT,
    }
)

# Status codes with a dedicated exception and the log line emitted for them
_STATUS_ERRORS: dict[int, tuple[type[VikunjaAPIError], str]] = {
    400: (VikunjaBadRequestError, "Bad request to Vikunja API"),
    401: (VikunjaAuthenticationError, "Authentication failed with Vikunja API"),
    403: (VikunjaForbiddenError, "Vikunja API denied access to resource"),
    404: (VikunjaNotFoundError, "Vikunja resource not found"),
    422: (VikunjaValidationError, "Vikunja API rejected entity"),
    429: (VikunjaRateLimitError, "Rate limit exceeded for Vikunja API"),
    503: (VikunjaServiceUnavailableError, "Vikunja API temporarily unavailable"),
}

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Attempt:
    """Retry bookkeeping for one request attempt."""

    number: int
    max_attempts: int
    backoff: float
    method: str
    url: str

    @property
    def is_last(self) -> bool:
        return self.number >= self.max_attempts - 1


class BaseClient:
    """Authenticated async HTTP client for the Vikunja REST API."""

    def __init__(self, config: ServerConfig) -> None:
        """Initialize the client.

        Args:
            config: Server configuration holding the API token and base URL
        """
        self._config = config
        self._base_url = str(config.vikunja_base_url).rstrip("/")
        self._api_token = config.vikunja_api_token
        self._http_client: httpx.AsyncClient | None = None
        self._rate_limiter = TokenBucketLimiter(
            rpm=config.rate_limit_rpm, burst=config.rate_limit_burst
        )

    @property
    def base_url(self) -> str:
        """Vikunja API base URL without trailing slash."""
        return self._base_url

    def __str__(self) -> str:
        return f"{type(self).__name__}(base_url={self._base_url}, token=***redacted***)"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(base_url='{self._base_url}', token='***redacted***')"

    async def __aenter__(self) -> "BaseClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or lazily create the configured httpx client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    connect=self._config.timeout_connect,
                    read=self._config.timeout_read,
                    write=10.0,
                    pool=10.0,
                ),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                follow_redirects=True,
                headers={"User-Agent": self._config.http_user_agent},
            )
        return self._http_client

    def _get_auth_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_token}",
            "Content-Type": "application/json",
        }

    def _get_redacted_headers(self) -> dict[str, str]:
        return {
            "Authorization": "Bearer ***redacted***",
            "Content-Type": "application/json",
        }

    def _handle_http_error(self, error: httpx.HTTPStatusError) -> NoReturn:
        """Translate an HTTP status error into the matching ``VikunjaAPIError``.

        Raises:
            VikunjaBadRequestError: For 400 Bad Request
            VikunjaAuthenticationError: For 401 Unauthorized
            VikunjaForbiddenError: For 403 Forbidden
            VikunjaNotFoundError: For 404 Not Found
            VikunjaValidationError: For 422 Unprocessable Entity
            VikunjaRateLimitError: For 429 Too Many Requests
            VikunjaServiceUnavailableError: For 503 Service Unavailable
            VikunjaTimeoutError: For 504 and 524 gateway timeouts
            VikunjaServerError: For other 5xx responses
            VikunjaAPIError: For any other status
        """
        status_code = error.response.status_code

        if status_code in _STATUS_ERRORS:
            exc_type, log_message = _STATUS_ERRORS[status_code]
            logger.error("%s (status %s, url %s)", log_message, status_code, error.request.url)
            raise exc_type from error
        if status_code in (_HTTP_GATEWAY_TIMEOUT, _HTTP_CLOUDFLARE_TIMEOUT):
            logger.error("Vikunja API request timed out upstream (status %s)", status_code)
            raise VikunjaTimeoutError(status_code=status_code) from error
        if _HTTP_INTERNAL_SERVER_ERROR <= status_code < _HTTP_MAX_SERVER_ERROR:
            logger.error("Vikunja API server error: %s", status_code)
            raise VikunjaServerError(f"Vikunja server error {status_code}", status_code) from error
        logger.error("Vikunja API error: %s", status_code)
        raise VikunjaAPIError(f"Vikunja API error {status_code}", status_code) from error

    def _should_retry(self, error: Exception, attempt: _Attempt) -> bool:
        """Decide whether a failed attempt is retried; raise the final error otherwise."""
        if isinstance(error, httpx.HTTPStatusError):
            status_code = error.response.status_code
            if attempt.is_last or status_code not in _RETRYABLE_STATUS_CODES:
                self._handle_http_error(error)
            reason = f"HTTP status {status_code}"
        elif isinstance(error, httpx.TimeoutException):
            if attempt.is_last:
                logger.exception("Request to Vikunja timed out")
                raise VikunjaTimeoutError from error
            reason = "timeout"
        else:
            if attempt.is_last:
                logger.exception("Network error talking to Vikunja")
                raise VikunjaNetworkError from error
            reason = "network error"

        logger.warning(
            "Retrying %s %s after %s in %.2fs (attempt %d of %d)",
            attempt.method,
            attempt.url,
            reason,
            attempt.backoff,
            attempt.number + 1,
            attempt.max_attempts,
        )
        return True

    async def make_request(
        self,
        method: str,
        endpoint: str,
        data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        *,
        retry: bool = True,
    ) -> Any:
        """Make an authenticated request to the Vikunja API.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            endpoint: API endpoint relative to the base URL
            data: JSON request body
            params: Query parameters; list values are sent as repeated keys
            retry: Whether transient failures are retried with backoff

        Returns:
            Any: Decoded JSON response ({} for 204 No Content)

        Raises:
            VikunjaAPIError: Or one of its subclasses for every failure
        """
        method_upper = method.upper()
        url = f"{self._base_url}/{endpoint.lstrip('/')}"
        max_attempts = self._config.http_retries + 1 if retry else 1
        backoff = self._config.http_backoff_start_seconds

        for number in range(max_attempts):
            await self._rate_limiter.acquire()
            logger.debug(
                "Making %s request to %s with headers: %s",
                method_upper,
                url,
                self._get_redacted_headers(),
            )

            try:
                response = await self._get_http_client().request(
                    method=method_upper,
                    url=url,
                    headers=self._get_auth_headers(),
                    json=data,
                    params=params,
                )
                response.raise_for_status()
            except (httpx.HTTPStatusError, httpx.TimeoutException, httpx.NetworkError) as error:
                attempt = _Attempt(number, max_attempts, backoff, method_upper, url)
                if self._should_retry(error, attempt):
                    await asyncio.sleep(backoff)
                    backoff *= 2.0
                    continue
            except Exception as error:
                logger.exception("Unexpected error during Vikunja API request")
                raise VikunjaAPIError.create_unexpected_error(method_upper, endpoint) from error
            else:
                logger.debug("Vikunja API response: %s", response.status_code)
                if response.status_code == _HTTP_NO_CONTENT:
                    return {}
                try:
                    return response.json()
                except ValueError as error:
                    raise VikunjaAPIError.create_parse_error(
                        endpoint, status=response.status_code
                    ) from error

        msg = f"Exhausted retry attempts for {method_upper} {url}"
        logger.error(msg)
        raise VikunjaAPIError(msg)

    async def test_connectivity(self) -> bool:
        """Check that Vikunja is reachable and the token is accepted.

        Requests the ``info`` endpoint, which reports the server version.

        Returns:
            bool: True if the check succeeded
        """
        try:
            result = await self.make_request("GET", "info")
        except VikunjaAPIError as error:
            logger.warning("Vikunja API connectivity test failed: %s", error)
            return False

        if isinstance(result, dict) and "version" in result:
            logger.info("Vikunja API connectivity test successful (version %s)", result["version"])
            return True
        logger.warning("Vikunja API connectivity test failed: unexpected response")
        return False
