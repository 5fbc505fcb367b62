"""Tests for TaskFilteringOrchestrator: server-side attempt and client-side fallback."""

import pytest
from pytest_mock import MockerFixture

from vikunja_mcp.api.client import VikunjaClient
from vikunja_mcp.api.exceptions import VikunjaBadRequestError, VikunjaNetworkError
from vikunja_mcp.filters.exceptions import (
    EmptyExpressionError,
    FilterValidationError,
    OrchestrationError,
    UnknownOperatorError,
)
from vikunja_mcp.storage import SavedFilterNotFoundError, SavedFilterStorage
from vikunja_mcp.tools.tasks_filtering import TaskFilteringOrchestrator, TaskListingArgs
from tests.factories import create_task_response, create_task_responses


class TestServerSideFiltering:
    """Vikunja accepts the filter."""

    @pytest.mark.asyncio
    async def test_server_success_is_used_as_is(
        self,
        mocker: MockerFixture,
        client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator,
    ) -> None:
        server_tasks = [create_task_response(7, priority=4)]
        mock_get_tasks = mocker.patch.object(client, "get_tasks", return_value=server_tasks)
        mock_get_all = mocker.patch.object(client, "get_all_tasks")
        args = TaskListingArgs(filter="priority >= 3 && done = false", sort="priority.desc")

        result = await orchestrator.execute_task_filtering(args, storage, client)

        assert result.tasks == server_tasks
        assert result.metadata.server_side_filtering_used is True
        assert result.metadata.server_side_filtering_attempted is True
        assert result.metadata.count == 1
        assert result.metadata.filter_source == "inline"
        mock_get_tasks.assert_awaited_once_with(
            filter="priority >= 3 && done = false",
            page=1,
            per_page=50,
            search=None,
            sort_by=["priority"],
            order_by=["desc"],
            project_id=None,
            retry=False,
        )
        mock_get_all.assert_not_called()

    @pytest.mark.asyncio
    async def test_project_scope_is_forwarded(
        self,
        mocker: MockerFixture,
        client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator,
    ) -> None:
        mock_get_tasks = mocker.patch.object(client, "get_tasks", return_value=[])
        args = TaskListingArgs(filter="done = true", project_id=3)

        await orchestrator.execute_task_filtering(args, storage, client)

        assert mock_get_tasks.await_args.kwargs["project_id"] == 3

    @pytest.mark.asyncio
    async def test_all_projects_overrides_project_id(
        self,
        mocker: MockerFixture,
        client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator,
    ) -> None:
        mock_get_tasks = mocker.patch.object(client, "get_tasks", return_value=[])
        args = TaskListingArgs(filter="done = true", project_id=3, all_projects=True)

        await orchestrator.execute_task_filtering(args, storage, client)

        assert mock_get_tasks.await_args.kwargs["project_id"] is None


class TestClientSideFallback:
    """Vikunja rejects the filter; evaluation happens locally."""

    @pytest.mark.asyncio
    async def test_fallback_filters_tasks_locally(
        self,
        mocker: MockerFixture,
        client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator,
    ) -> None:
        mock_get_tasks = mocker.patch.object(
            client, "get_tasks", side_effect=VikunjaBadRequestError("invalid filter")
        )
        mocker.patch.object(
            client,
            "get_all_tasks",
            return_value=create_task_responses(
                {"priority": 4},
                {"priority": 4, "done": True},
                {"priority": 1},
            ),
        )
        args = TaskListingArgs(filter="priority >= 3 && done = false")

        result = await orchestrator.execute_task_filtering(args, storage, client)

        assert [task.id for task in result.tasks] == [1]
        assert result.metadata.server_side_filtering_used is False
        assert result.metadata.server_side_filtering_attempted is True
        assert result.metadata.server_side_error == "invalid filter"
        assert result.metadata.fetched_count == 3
        assert result.metadata.count == 1
        mock_get_tasks.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fallback_matches_array_membership(
        self,
        mocker: MockerFixture,
        client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator,
    ) -> None:
        mocker.patch.object(client, "get_tasks", side_effect=VikunjaNetworkError())
        mocker.patch.object(
            client,
            "get_all_tasks",
            return_value=create_task_responses({"labels": [2, 9]}, {"labels": [5]}),
        )
        args = TaskListingArgs(filter="labels in (1, 2)")

        result = await orchestrator.execute_task_filtering(args, storage, client)

        assert [task.id for task in result.tasks] == [1]

    @pytest.mark.asyncio
    async def test_fallback_result_equals_server_result(
        self,
        mocker: MockerFixture,
        client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator,
    ) -> None:
        collection = create_task_responses(
            {"priority": 5, "title": "B"},
            {"priority": 1, "title": "A"},
            {"priority": 3, "title": "C"},
        )
        expected = [collection[0], collection[2]]
        args = TaskListingArgs(filter="priority >= 3", sort="priority.desc")

        mocker.patch.object(client, "get_tasks", return_value=expected)
        server = await orchestrator.execute_task_filtering(args, storage, client)

        mocker.patch.object(client, "get_tasks", side_effect=VikunjaBadRequestError())
        mocker.patch.object(client, "get_all_tasks", return_value=collection)
        fallback = await orchestrator.execute_task_filtering(args, storage, client)

        assert [task.id for task in fallback.tasks] == [task.id for task in server.tasks]
        assert server.metadata.server_side_filtering_used is True
        assert fallback.metadata.server_side_filtering_used is False

    @pytest.mark.asyncio
    async def test_fallback_sorts_and_paginates(
        self,
        mocker: MockerFixture,
        client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator,
    ) -> None:
        mocker.patch.object(client, "get_tasks", side_effect=VikunjaBadRequestError())
        mocker.patch.object(
            client,
            "get_all_tasks",
            return_value=create_task_responses(
                {"title": "c"}, {"title": "a"}, {"title": "d"}, {"title": "b"}
            ),
        )
        args = TaskListingArgs(filter="done = false", sort="title.asc", page=2, per_page=2)

        result = await orchestrator.execute_task_filtering(args, storage, client)

        assert [task.title for task in result.tasks] == ["c", "d"]
        assert result.metadata.count == 2
        assert result.metadata.fetched_count == 4

    @pytest.mark.asyncio
    async def test_fallback_uses_configured_paging(
        self,
        mocker: MockerFixture,
        client: VikunjaClient,
        storage: SavedFilterStorage,
    ) -> None:
        orchestrator = TaskFilteringOrchestrator(fallback_page_size=20, fallback_max_pages=3)
        mocker.patch.object(client, "get_tasks", side_effect=VikunjaBadRequestError())
        mock_get_all = mocker.patch.object(client, "get_all_tasks", return_value=[])
        args = TaskListingArgs(filter="done = false", search="report", project_id=4)

        await orchestrator.execute_task_filtering(args, storage, client)

        mock_get_all.assert_awaited_once_with(
            project_id=4, search="report", page_size=20, max_pages=3
        )

    @pytest.mark.asyncio
    async def test_failed_fallback_raises_orchestration_error(
        self,
        mocker: MockerFixture,
        client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator,
    ) -> None:
        mocker.patch.object(client, "get_tasks", side_effect=VikunjaBadRequestError("bad filter"))
        mocker.patch.object(client, "get_all_tasks", side_effect=VikunjaNetworkError())

        with pytest.raises(OrchestrationError) as exc_info:
            await orchestrator.execute_task_filtering(
                TaskListingArgs(filter="done = false"), storage, client
            )

        assert "bad filter" in exc_info.value.message


class TestFilterErrorsStopEarly:
    """Parse and validation errors are raised before any fetch."""

    @pytest.mark.asyncio
    async def test_parse_error_makes_no_remote_call(
        self,
        mocker: MockerFixture,
        client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator,
    ) -> None:
        mock_get_tasks = mocker.patch.object(client, "get_tasks")
        mock_get_all = mocker.patch.object(client, "get_all_tasks")

        with pytest.raises(UnknownOperatorError):
            await orchestrator.execute_task_filtering(
                TaskListingArgs(filter="priority >>> 3"), storage, client
            )

        mock_get_tasks.assert_not_called()
        mock_get_all.assert_not_called()

    @pytest.mark.asyncio
    async def test_validation_error_makes_no_remote_call(
        self,
        mocker: MockerFixture,
        client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator,
    ) -> None:
        mock_get_tasks = mocker.patch.object(client, "get_tasks")

        with pytest.raises(FilterValidationError) as exc_info:
            await orchestrator.execute_task_filtering(
                TaskListingArgs(filter="done > true"), storage, client
            )

        assert "'done'" in exc_info.value.errors[0]
        mock_get_tasks.assert_not_called()

    @pytest.mark.asyncio
    async def test_blank_inline_filter_is_empty_expression(
        self,
        mocker: MockerFixture,
        client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator,
    ) -> None:
        mock_get_tasks = mocker.patch.object(client, "get_tasks")

        with pytest.raises(EmptyExpressionError):
            await orchestrator.execute_task_filtering(
                TaskListingArgs(filter="   "), storage, client
            )

        mock_get_tasks.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_sort_raises_value_error(
        self,
        client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator,
    ) -> None:
        with pytest.raises(ValueError, match="Unknown sort field"):
            await orchestrator.execute_task_filtering(
                TaskListingArgs(sort="colour.asc"), storage, client
            )

    @pytest.mark.asyncio
    async def test_warnings_are_reported(
        self,
        mocker: MockerFixture,
        client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator,
    ) -> None:
        mocker.patch.object(client, "get_tasks", return_value=[])

        result = await orchestrator.execute_task_filtering(
            TaskListingArgs(filter="priority > 9", done=True), storage, client
        )

        assert any("0-5" in warning for warning in result.metadata.warnings)
        assert any("'done'" in warning for warning in result.metadata.warnings)


class TestSavedFilters:
    """Resolving ``filter_id``."""

    @pytest.mark.asyncio
    async def test_saved_filter_is_used(
        self,
        mocker: MockerFixture,
        client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator,
    ) -> None:
        saved = await storage.create(name="urgent", filter="priority >= 4")
        mock_get_tasks = mocker.patch.object(client, "get_tasks", return_value=[])

        result = await orchestrator.execute_task_filtering(
            TaskListingArgs(filter_id=saved.id), storage, client
        )

        assert mock_get_tasks.await_args.kwargs["filter"] == "priority >= 4"
        assert result.metadata.filter_source == "saved"
        assert result.metadata.filter_id == saved.id

    @pytest.mark.asyncio
    async def test_inline_filter_wins_over_saved(
        self,
        mocker: MockerFixture,
        client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator,
    ) -> None:
        saved = await storage.create(name="urgent", filter="priority >= 4")
        mock_get_tasks = mocker.patch.object(client, "get_tasks", return_value=[])

        result = await orchestrator.execute_task_filtering(
            TaskListingArgs(filter="done = true", filter_id=saved.id), storage, client
        )

        assert mock_get_tasks.await_args.kwargs["filter"] == "done = true"
        assert result.metadata.filter_source == "inline"

    @pytest.mark.asyncio
    async def test_missing_saved_filter_raises(
        self,
        client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator,
    ) -> None:
        with pytest.raises(SavedFilterNotFoundError):
            await orchestrator.execute_task_filtering(
                TaskListingArgs(filter_id="missing"), storage, client
            )


class TestUnfilteredListing:
    """No filter at all."""

    @pytest.mark.asyncio
    async def test_lists_without_filter(
        self,
        mocker: MockerFixture,
        client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator,
    ) -> None:
        mock_get_tasks = mocker.patch.object(
            client, "get_tasks", return_value=create_task_responses({}, {})
        )

        result = await orchestrator.execute_task_filtering(
            TaskListingArgs(page=2, per_page=10, search="x"), storage, client
        )

        assert result.metadata.count == 2
        assert result.metadata.server_side_filtering_attempted is False
        assert result.metadata.server_side_filtering_used is False
        assert result.metadata.filter_source == "none"
        mock_get_tasks.assert_awaited_once_with(
            page=2, per_page=10, search="x", sort_by=[], order_by=[], project_id=None
        )

    @pytest.mark.asyncio
    async def test_done_narrows_unfiltered_listing(
        self,
        mocker: MockerFixture,
        client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator,
    ) -> None:
        mocker.patch.object(
            client,
            "get_tasks",
            return_value=create_task_responses({"done": True}, {"done": False}),
        )

        result = await orchestrator.execute_task_filtering(
            TaskListingArgs(done=False), storage, client
        )

        assert [task.id for task in result.tasks] == [2]

    @pytest.mark.asyncio
    async def test_api_error_propagates(
        self,
        mocker: MockerFixture,
        client: VikunjaClient,
        storage: SavedFilterStorage,
        orchestrator: TaskFilteringOrchestrator,
    ) -> None:
        mocker.patch.object(client, "get_tasks", side_effect=VikunjaNetworkError())

        with pytest.raises(VikunjaNetworkError):
            await orchestrator.execute_task_filtering(TaskListingArgs(), storage, client)
