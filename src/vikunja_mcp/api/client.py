"""Composed Vikunja API client."""

from vikunja_mcp.api.client_base import BaseClient
from vikunja_mcp.api.client_tasks import TasksClientMixin


class VikunjaClient(BaseClient, TasksClientMixin):
    """Vikunja API client: HTTP plumbing plus task listing."""

    async def __aenter__(self) -> "VikunjaClient":
        return self


__all__ = ["VikunjaClient"]
