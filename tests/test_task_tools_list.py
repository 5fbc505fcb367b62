"""Tests for the list_tasks tool handler."""

import pytest
from pytest_mock import AsyncMockType, MockerFixture

from vikunja_mcp.api.client import VikunjaClient
from vikunja_mcp.api.exceptions import (
    VikunjaAPIError,
    VikunjaAuthenticationError,
    VikunjaBadRequestError,
    VikunjaNetworkError,
    VikunjaRateLimitError,
    VikunjaServerError,
    VikunjaTimeoutError,
)
from vikunja_mcp.tools.tasks import TaskTools
from vikunja_mcp.tools.tasks_filtering import FilteringMetadata
from vikunja_mcp.tools.tasks_list import describe_filtering
from tests.factories import create_task_responses


class TestListTasksSuccess:
    """Successful listings."""

    @pytest.mark.asyncio
    async def test_server_side_listing(
        self,
        mocker: MockerFixture,
        task_tools: TaskTools,
        client: VikunjaClient,
        async_ctx: AsyncMockType,
    ) -> None:
        mocker.patch.object(
            client, "get_tasks", return_value=create_task_responses({"priority": 4})
        )

        result = await task_tools.list_tasks_tool(async_ctx, filter="priority >= 3")

        assert result["success"] is True
        assert result["message"] == "Found 1 task (filtered server-side)"
        assert result["tasks"][0]["id"] == 1
        assert result["metadata"]["serverSideFilteringUsed"] is True
        assert result["metadata"]["serverSideFilteringAttempted"] is True
        assert result["metadata"]["count"] == 1
        async_ctx.info.assert_any_call("Found 1 task (filtered server-side)")

    @pytest.mark.asyncio
    async def test_fallback_listing(
        self,
        mocker: MockerFixture,
        task_tools: TaskTools,
        client: VikunjaClient,
        async_ctx: AsyncMockType,
    ) -> None:
        mocker.patch.object(client, "get_tasks", side_effect=VikunjaBadRequestError())
        mocker.patch.object(
            client,
            "get_all_tasks",
            return_value=create_task_responses({"priority": 4}, {"priority": 5}, {}),
        )

        result = await task_tools.list_tasks_tool(async_ctx, filter="priority >= 3")

        assert result["success"] is True
        assert result["message"] == "Found 2 tasks (filtered client-side - server-side fallback)"
        assert result["metadata"]["serverSideFilteringUsed"] is False
        assert result["metadata"]["serverSideFilteringAttempted"] is True
        assert result["metadata"]["fetchedCount"] == 3

    @pytest.mark.asyncio
    async def test_tasks_are_json_compatible(
        self,
        mocker: MockerFixture,
        task_tools: TaskTools,
        client: VikunjaClient,
        async_ctx: AsyncMockType,
    ) -> None:
        mocker.patch.object(
            client,
            "get_tasks",
            return_value=create_task_responses({"due_date": "2025-01-31T10:00:00Z"}),
        )

        result = await task_tools.list_tasks_tool(async_ctx)

        assert result["message"] == "Found 1 task"
        assert result["tasks"][0]["due_date"] == "2025-01-31T10:00:00Z"
        assert result["metadata"]["filterSource"] == "none"


class TestListTasksErrors:
    """Error mapping to ``{success: False, error, message}``."""

    @pytest.mark.asyncio
    async def test_parse_error_includes_details(
        self,
        mocker: MockerFixture,
        task_tools: TaskTools,
        client: VikunjaClient,
        async_ctx: AsyncMockType,
    ) -> None:
        mock_get_tasks = mocker.patch.object(client, "get_tasks")

        result = await task_tools.list_tasks_tool(async_ctx, filter="priority >>> 3")

        assert result["success"] is False
        assert result["error"] == "parse_error"
        assert result["details"]["position"] == 9
        assert result["details"]["found"] == ">>>"
        mock_get_tasks.assert_not_called()
        async_ctx.error.assert_called_once()

    @pytest.mark.asyncio
    async def test_validation_error(
        self, task_tools: TaskTools, async_ctx: AsyncMockType
    ) -> None:
        result = await task_tools.list_tasks_tool(async_ctx, filter="title > abc")

        assert result["error"] == "validation_error"
        assert result["errors"]

    @pytest.mark.asyncio
    async def test_missing_saved_filter(
        self, task_tools: TaskTools, async_ctx: AsyncMockType
    ) -> None:
        result = await task_tools.list_tasks_tool(async_ctx, filter_id="missing")

        assert result["error"] == "not_found_error"
        assert result["message"] == "Filter with id missing not found"

    @pytest.mark.asyncio
    async def test_invalid_sort(self, task_tools: TaskTools, async_ctx: AsyncMockType) -> None:
        result = await task_tools.list_tasks_tool(async_ctx, sort="priority.sideways")

        assert result["error"] == "validation_error"
        assert "sideways" in result["message"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("page", "per_page"), [(0, 10), (1, 0), (1, 51)])
    async def test_invalid_paging(
        self, task_tools: TaskTools, async_ctx: AsyncMockType, page: int, per_page: int
    ) -> None:
        result = await task_tools.list_tasks_tool(async_ctx, page=page, per_page=per_page)

        assert result["success"] is False
        assert result["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_orchestration_error(
        self,
        mocker: MockerFixture,
        task_tools: TaskTools,
        client: VikunjaClient,
        async_ctx: AsyncMockType,
    ) -> None:
        mocker.patch.object(client, "get_tasks", side_effect=VikunjaBadRequestError())
        mocker.patch.object(client, "get_all_tasks", side_effect=VikunjaNetworkError())

        result = await task_tools.list_tasks_tool(async_ctx, filter="done = false")

        assert result["error"] == "orchestration_error"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("error", "kind"),
        [
            (VikunjaAuthenticationError(), "authentication_error"),
            (VikunjaRateLimitError(), "rate_limit_error"),
            (VikunjaTimeoutError(), "timeout_error"),
            (VikunjaServerError("boom", 502), "server_error"),
            (VikunjaNetworkError(), "api_error"),
            (RuntimeError("surprise"), "unexpected_error"),
        ],
    )
    async def test_api_errors_on_unfiltered_listing(
        self,
        mocker: MockerFixture,
        task_tools: TaskTools,
        client: VikunjaClient,
        async_ctx: AsyncMockType,
        error: Exception,
        kind: str,
    ) -> None:
        mocker.patch.object(client, "get_tasks", side_effect=error)

        result = await task_tools.list_tasks_tool(async_ctx)

        assert result["success"] is False
        assert result["error"] == kind

    @pytest.mark.asyncio
    async def test_api_error_message_has_no_token(
        self,
        mocker: MockerFixture,
        task_tools: TaskTools,
        client: VikunjaClient,
        async_ctx: AsyncMockType,
    ) -> None:
        mocker.patch.object(
            client, "get_tasks", side_effect=VikunjaAPIError("Vikunja API error 418", 418)
        )

        result = await task_tools.list_tasks_tool(async_ctx)

        assert result["error"] == "api_error"
        assert "test_token" not in result["message"]


def test_list_tasks_is_registered(mocker: MockerFixture, task_tools: TaskTools) -> None:
    mock_mcp = mocker.MagicMock()

    TaskTools(mock_mcp, task_tools.vikunja_client, task_tools.storage)

    mock_mcp.tool.assert_called_once_with("list_tasks")


@pytest.mark.parametrize(
    ("fields", "expected"),
    [
        ({"count": 0}, "Found 0 tasks"),
        (
            {"count": 1, "server_side_filtering_used": True, "server_side_filtering_attempted": True},
            "Found 1 task (filtered server-side)",
        ),
        (
            {"count": 3, "server_side_filtering_attempted": True},
            "Found 3 tasks (filtered client-side - server-side fallback)",
        ),
    ],
)
def test_describe_filtering(fields: dict, expected: str) -> None:
    assert describe_filtering(FilteringMetadata(**fields)) == expected
