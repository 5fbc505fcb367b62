"""Typing protocols that let client mixins reach the base client."""

from typing import Any, Protocol


class BaseClientProtocol(Protocol):
    """Interface mixins depend on, implemented by ``BaseClient``."""

    async def make_request(
        self,
        method: str,
        endpoint: str,
        data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        *,
        retry: bool = True,
    ) -> Any:
        """Make an authenticated request to the Vikunja API."""
        ...
