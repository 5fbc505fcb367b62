"""Task filtering orchestration: server-side attempt with client-side fallback.

``TaskFilteringOrchestrator.execute_task_filtering`` resolves the effective
filter (inline string or saved filter), parses and validates it, then runs two
explicit phases:

1. ``_attempt_server_side`` forwards the filter string to Vikunja exactly once.
2. ``_client_side_fallback`` runs only if that attempt failed: it fetches the
   broader task collection, evaluates the parsed expression per task and
   applies sorting and pagination locally.

Parse and validation errors surface before anything is fetched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from vikunja_mcp.api.client import VikunjaClient
from vikunja_mcp.api.models import TaskResponse
from vikunja_mcp.filters.evaluator import evaluate_filter
from vikunja_mcp.filters.exceptions import FilterValidationError, OrchestrationError
from vikunja_mcp.filters.models import FilterExpression
from vikunja_mcp.filters.parser import parse_filter
from vikunja_mcp.filters.validator import validate_filter_expression
from vikunja_mcp.storage import SavedFilterNotFoundError, SavedFilterStorage
from vikunja_mcp.tools.tasks_common import (
    SortKey,
    paginate,
    parse_sort,
    sort_tasks,
    to_vikunja_sort,
)

logger = logging.getLogger(__name__)

DEFAULT_PER_PAGE = 50
MAX_PER_PAGE = 50

FilterSource = Literal["inline", "saved", "none"]


class TaskListingArgs(BaseModel):
    """Arguments accepted by the task listing tool."""

    filter: str | None = Field(default=None, description="Inline filter string")
    filter_id: str | None = Field(default=None, description="Saved filter ID")
    page: int = Field(default=1, ge=1, description="1-based page number")
    per_page: int = Field(default=DEFAULT_PER_PAGE, ge=1, le=MAX_PER_PAGE)
    sort: str | None = Field(default=None, description="field.dir[,field.dir]")
    search: str | None = Field(default=None, description="Free-text search")
    all_projects: bool = Field(default=False, description="Ignore project_id")
    done: bool | None = Field(default=None, description="Completion state, unfiltered only")
    project_id: int | None = Field(default=None, ge=1, description="Project to list")

    @property
    def scoped_project_id(self) -> int | None:
        """Project to list, or None for all projects."""
        return None if self.all_projects else self.project_id


class FilteringMetadata(BaseModel):
    """Diagnostics describing how a listing was produced; serialized in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    server_side_filtering_used: bool = False
    server_side_filtering_attempted: bool = False
    count: int = 0
    filter: str | None = None
    filter_source: FilterSource = "none"
    filter_id: str | None = None
    page: int = 1
    per_page: int = DEFAULT_PER_PAGE
    sort: str | None = None
    warnings: list[str] = Field(default_factory=list)
    server_side_error: str | None = None
    fetched_count: int | None = None


class FilteringResult(BaseModel):
    """Tasks selected by one listing request plus its metadata."""

    tasks: list[TaskResponse]
    metadata: FilteringMetadata

    def to_response(self) -> dict[str, object]:
        """JSON-compatible form used by tool responses."""
        return {
            "tasks": [task.to_response() for task in self.tasks],
            "metadata": self.metadata.model_dump(mode="json", by_alias=True),
        }


@dataclass(slots=True)
class _ResolvedFilter:
    text: str | None
    source: FilterSource
    filter_id: str | None = None


@dataclass(slots=True)
class _ServerAttempt:
    """Outcome of the single server-side filtering attempt."""

    tasks: list[TaskResponse] | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.tasks is not None


class TaskFilteringOrchestrator:
    """Decides between server-side filtering and local evaluation."""

    def __init__(self, fallback_page_size: int = 50, fallback_max_pages: int = 20) -> None:
        """Initialize the orchestrator.

        Args:
            fallback_page_size: Page size used to fetch tasks for local evaluation
            fallback_max_pages: Maximum pages fetched for local evaluation
        """
        self.fallback_page_size = fallback_page_size
        self.fallback_max_pages = fallback_max_pages

    async def execute_task_filtering(
        self,
        args: TaskListingArgs,
        storage: SavedFilterStorage,
        client: VikunjaClient,
    ) -> FilteringResult:
        """Run one task listing request.

        Args:
            args: Listing arguments
            storage: Session storage used to resolve ``filter_id``
            client: Vikunja API client

        Returns:
            FilteringResult: Selected tasks and metadata

        Raises:
            SavedFilterNotFoundError: ``filter_id`` does not exist
            FilterParseError: The filter string is malformed
            FilterValidationError: The filter is semantically invalid
            ValueError: The sort string is malformed
            OrchestrationError: Server-side attempt and fallback fetch both failed
            VikunjaAPIError: An unfiltered listing failed
        """
        sort_keys = parse_sort(args.sort)
        resolved = await self._resolve_filter(args, storage)
        metadata = FilteringMetadata(
            filter=resolved.text,
            filter_source=resolved.source,
            filter_id=resolved.filter_id,
            page=args.page,
            per_page=args.per_page,
            sort=args.sort,
        )

        if resolved.text is None:
            tasks = await self._list_unfiltered(args, sort_keys, client)
            metadata.count = len(tasks)
            return FilteringResult(tasks=tasks, metadata=metadata)

        expression = parse_filter(resolved.text)
        validation = validate_filter_expression(expression)
        if not validation.valid:
            raise FilterValidationError(validation.errors, validation.warnings)
        metadata.warnings.extend(validation.warnings)
        if args.done is not None:
            metadata.warnings.append("'done' is ignored when a filter is given")

        attempt = await self._attempt_server_side(resolved.text, args, sort_keys, client)
        metadata.server_side_filtering_attempted = True
        if attempt.succeeded:
            assert attempt.tasks is not None
            metadata.server_side_filtering_used = True
            metadata.count = len(attempt.tasks)
            return FilteringResult(tasks=attempt.tasks, metadata=metadata)

        metadata.server_side_error = attempt.error
        matched, fetched = await self._client_side_fallback(
            expression, args, sort_keys, client, attempt.error
        )
        metadata.fetched_count = fetched
        metadata.count = len(matched)
        return FilteringResult(tasks=matched, metadata=metadata)

    async def _resolve_filter(
        self, args: TaskListingArgs, storage: SavedFilterStorage
    ) -> _ResolvedFilter:
        """Pick the effective filter; an inline string wins over a saved filter."""
        saved_text: str | None = None
        if args.filter_id is not None:
            saved = await storage.get(args.filter_id)
            if saved is None:
                raise SavedFilterNotFoundError(args.filter_id)
            saved_text = saved.filter

        if args.filter is not None and args.filter.strip():
            if saved_text is not None:
                logger.debug("Inline filter overrides saved filter %s", args.filter_id)
            return _ResolvedFilter(args.filter, "inline")
        if saved_text is not None:
            return _ResolvedFilter(saved_text, "saved", args.filter_id)
        if args.filter is not None:
            # Blank inline filter: surface as an empty expression
            return _ResolvedFilter(args.filter, "inline")
        return _ResolvedFilter(None, "none")

    async def _list_unfiltered(
        self, args: TaskListingArgs, sort_keys: list[SortKey], client: VikunjaClient
    ) -> list[TaskResponse]:
        sort_by, order_by = to_vikunja_sort(sort_keys)
        tasks = await client.get_tasks(
            page=args.page,
            per_page=args.per_page,
            search=args.search,
            sort_by=sort_by,
            order_by=order_by,
            project_id=args.scoped_project_id,
        )
        if args.done is not None:
            tasks = [task for task in tasks if task.done is args.done]
        return tasks

    async def _attempt_server_side(
        self,
        filter_text: str,
        args: TaskListingArgs,
        sort_keys: list[SortKey],
        client: VikunjaClient,
    ) -> _ServerAttempt:
        """Forward the filter to Vikunja once; failures are recorded, not raised."""
        sort_by, order_by = to_vikunja_sort(sort_keys)
        try:
            tasks = await client.get_tasks(
                filter=filter_text,
                page=args.page,
                per_page=args.per_page,
                search=args.search,
                sort_by=sort_by,
                order_by=order_by,
                project_id=args.scoped_project_id,
                retry=False,
            )
        except Exception as error:  # noqa: BLE001
            logger.warning(
                "Server-side filtering failed, falling back to local evaluation: %s", error
            )
            return _ServerAttempt(error=str(error) or type(error).__name__)
        logger.debug("Server-side filtering returned %d tasks", len(tasks))
        return _ServerAttempt(tasks=tasks)

    async def _client_side_fallback(
        self,
        expression: FilterExpression,
        args: TaskListingArgs,
        sort_keys: list[SortKey],
        client: VikunjaClient,
        server_error: str | None,
    ) -> tuple[list[TaskResponse], int]:
        """Fetch the broader collection and evaluate the expression locally.

        Returns:
            tuple[list[TaskResponse], int]: The requested page of matches and the
                number of tasks fetched

        Raises:
            OrchestrationError: If fetching the task collection fails
        """
        try:
            candidates = await client.get_all_tasks(
                project_id=args.scoped_project_id,
                search=args.search,
                page_size=self.fallback_page_size,
                max_pages=self.fallback_max_pages,
            )
        except Exception as error:
            logger.exception("Client-side fallback fetch failed")
            raise OrchestrationError.fallback_failed(server_error) from error

        matched = [
            task for task in candidates if evaluate_filter(expression, task.to_filter_mapping())
        ]
        logger.info(
            "Client-side filtering matched %d of %d tasks", len(matched), len(candidates)
        )
        ordered = sort_tasks(matched, sort_keys)
        return paginate(ordered, args.page, args.per_page), len(candidates)
