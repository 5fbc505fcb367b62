"""Task tools for the Vikunja MCP server.

``TaskTools`` registers the ``list_tasks`` tool and delegates to the handler
in ``vikunja_mcp.tools.tasks_list``.
"""

import logging
from typing import Any

from fastmcp import FastMCP
from fastmcp.server.context import Context as ServerContext

from vikunja_mcp.api.client import VikunjaClient
from vikunja_mcp.storage import SavedFilterStorage
from vikunja_mcp.tools.tasks_filtering import TaskFilteringOrchestrator
from vikunja_mcp.tools.tasks_list import list_tasks_tool as list_tasks_tool_fn

logger = logging.getLogger(__name__)


class TaskTools:
    """MCP tools for reading Vikunja tasks."""

    def __init__(
        self,
        mcp_instance: FastMCP,
        vikunja_client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator | None = None,
    ) -> None:
        """Initialize TaskTools and register its tools.

        Args:
            mcp_instance: FastMCP server instance for registering tools
            vikunja_client: Vikunja API client
            storage: Session storage used to resolve saved filters
            orchestrator: Filtering orchestrator (a default one when omitted)
        """
        self.mcp = mcp_instance
        self.vikunja_client = vikunja_client
        self.storage = storage
        self.orchestrator = orchestrator or TaskFilteringOrchestrator()
        self._register_tools()

    async def list_tasks_tool(  # noqa: PLR0913
        self,
        ctx: ServerContext,
        filter: str | None = None,  # noqa: A002
        filter_id: str | None = None,
        page: int = 1,
        per_page: int = 50,
        sort: str | None = None,
        search: str | None = None,
        all_projects: bool = False,
        done: bool | None = None,
        project_id: int | None = None,
    ) -> dict[str, Any]:
        """List Vikunja tasks, optionally narrowed by a filter expression."""
        return await list_tasks_tool_fn(
            self.vikunja_client,
            self.storage,
            self.orchestrator,
            ctx,
            filter=filter,
            filter_id=filter_id,
            page=page,
            per_page=per_page,
            sort=sort,
            search=search,
            all_projects=all_projects,
            done=done,
            project_id=project_id,
        )

    def _register_tools(self) -> None:
        async def _list_tasks_tool(  # noqa: PLR0913
            ctx: ServerContext,
            filter: str | None = None,  # noqa: A002
            filter_id: str | None = None,
            page: int = 1,
            per_page: int = 50,
            sort: str | None = None,
            search: str | None = None,
            all_projects: bool = False,
            done: bool | None = None,
            project_id: int | None = None,
        ) -> dict[str, Any]:
            """List Vikunja tasks.

            Filters use `field operator value` conditions joined by && or ||,
            e.g. `priority >= 3 && done = false` or `labels in (1, 2)`. Fields:
            done, priority, percentDone, dueDate, assignees, labels, created,
            updated, title, description. Dates accept YYYY-MM-DD, ISO 8601 and
            now[+-]N[smhdw]. Sort with `field.dir[,field.dir]`.
            """
            return await self.list_tasks_tool(
                ctx,
                filter=filter,
                filter_id=filter_id,
                page=page,
                per_page=per_page,
                sort=sort,
                search=search,
                all_projects=all_projects,
                done=done,
                project_id=project_id,
            )

        self.mcp.tool("list_tasks")(_list_tasks_tool)
        logger.debug("Registered list_tasks tool")
