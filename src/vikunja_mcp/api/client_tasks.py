"""Task listing mixin for the Vikunja API client."""

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, cast

from vikunja_mcp.api.exceptions import VikunjaAPIError, VikunjaBadRequestError
from vikunja_mcp.api.models import TaskResponse

if TYPE_CHECKING:
    from vikunja_mcp.api.protocols import BaseClientProtocol

logger = logging.getLogger(__name__)

# Vikunja caps per_page at its configured maximum (50 by default)
MAX_PER_PAGE = 50


class TasksClientMixin:
    """Mixin providing task listing for the Vikunja API client."""

    def _get_base_client(self) -> "BaseClientProtocol":
        """Get type-safe access to base client methods."""
        return cast("BaseClientProtocol", self)

    @staticmethod
    def _tasks_endpoint(project_id: int | None) -> str:
        if project_id is None:
            return "tasks/all"
        if project_id <= 0:
            raise VikunjaBadRequestError.invalid_project_id(project_id)
        return f"projects/{project_id}/tasks"

    @staticmethod
    def _build_list_params(
        *,
        filter: str | None,
        page: int,
        per_page: int,
        search: str | None,
        sort_by: Sequence[str],
        order_by: Sequence[str],
    ) -> dict[str, Any]:
        """Assemble query parameters, dropping empty values."""
        params: dict[str, Any] = {"page": page, "per_page": min(per_page, MAX_PER_PAGE)}
        if filter:
            params["filter"] = filter
        if search:
            params["s"] = search
        if sort_by:
            params["sort_by"] = list(sort_by)
            params["order_by"] = list(order_by)
        return params

    def _extract_task_list(self, endpoint: str, response_data: object) -> list[TaskResponse]:
        """Parse a task list response, which Vikunja sends as a bare JSON array."""
        if response_data is None:
            return []
        if not isinstance(response_data, list):
            logger.error("Expected a JSON array of tasks from %s", endpoint)
            raise VikunjaAPIError.create_parse_error(endpoint, reason="not a list")
        try:
            return [TaskResponse(**task_data) for task_data in response_data]
        except Exception as e:
            logger.exception("Failed to parse task response data")
            raise VikunjaAPIError.create_parse_error(
                endpoint, task_count=len(response_data)
            ) from e

    async def get_tasks(  # noqa: PLR0913
        self,
        *,
        filter: str | None = None,
        page: int = 1,
        per_page: int = MAX_PER_PAGE,
        search: str | None = None,
        sort_by: Sequence[str] = (),
        order_by: Sequence[str] = (),
        project_id: int | None = None,
        retry: bool = True,
    ) -> list[TaskResponse]:
        """Retrieve one page of tasks.

        Args:
            filter: Vikunja filter query evaluated server-side
            page: 1-based page number
            per_page: Page size (capped at ``MAX_PER_PAGE``)
            search: Free-text search, sent as ``s``
            sort_by: Fields to sort by, in priority order
            order_by: ``asc``/``desc`` for each entry of ``sort_by``
            project_id: Limit the listing to one project
            retry: Whether transient failures are retried

        Returns:
            list[TaskResponse]: Tasks on the requested page

        Raises:
            VikunjaBadRequestError: Invalid parameters or filter rejected by Vikunja
            VikunjaAPIError: Other API failures
        """
        endpoint = self._tasks_endpoint(project_id)
        params = self._build_list_params(
            filter=filter,
            page=page,
            per_page=per_page,
            search=search,
            sort_by=sort_by,
            order_by=order_by,
        )
        response_data = await self._get_base_client().make_request(
            "GET", endpoint, params=params, retry=retry
        )
        tasks = self._extract_task_list(endpoint, response_data)
        logger.debug("Retrieved %d tasks from %s (page %d)", len(tasks), endpoint, page)
        return tasks

    async def get_all_tasks(
        self,
        *,
        project_id: int | None = None,
        search: str | None = None,
        page_size: int = MAX_PER_PAGE,
        max_pages: int = 20,
    ) -> list[TaskResponse]:
        """Fetch tasks page by page until a short page or ``max_pages`` is reached.

        Args:
            project_id: Limit the listing to one project
            search: Free-text search, sent as ``s``
            page_size: Tasks requested per page
            max_pages: Upper bound on the number of requests

        Returns:
            list[TaskResponse]: All fetched tasks, in server order
        """
        page_size = min(page_size, MAX_PER_PAGE)
        collected: list[TaskResponse] = []
        for page in range(1, max_pages + 1):
            batch = await self.get_tasks(
                page=page, per_page=page_size, search=search, project_id=project_id
            )
            collected.extend(batch)
            if len(batch) < page_size:
                break
        else:
            logger.warning(
                "Stopped fetching tasks after %d pages (%d tasks); results may be incomplete",
                max_pages,
                len(collected),
            )
        return collected
