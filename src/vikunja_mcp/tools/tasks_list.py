"""Task listing tool handler."""

import logging
from typing import Any

from fastmcp import Context
from pydantic import ValidationError

from vikunja_mcp.api.client import VikunjaClient
from vikunja_mcp.api.exceptions import (
    VikunjaAPIError,
    VikunjaAuthenticationError,
    VikunjaRateLimitError,
    VikunjaServerError,
    VikunjaTimeoutError,
)
from vikunja_mcp.filters.exceptions import (
    FilterParseError,
    FilterValidationError,
    OrchestrationError,
)
from vikunja_mcp.storage import SavedFilterNotFoundError, SavedFilterStorage
from vikunja_mcp.tools.tasks_filtering import (
    FilteringMetadata,
    TaskFilteringOrchestrator,
    TaskListingArgs,
)

logger = logging.getLogger(__name__)


def describe_filtering(metadata: FilteringMetadata) -> str:
    """Summarize how a listing was produced."""
    noun = "task" if metadata.count == 1 else "tasks"
    summary = f"Found {metadata.count} {noun}"
    if metadata.server_side_filtering_used:
        return f"{summary} (filtered server-side)"
    if metadata.server_side_filtering_attempted:
        return f"{summary} (filtered client-side - server-side fallback)"
    return summary


def _error(kind: str, message: str, **extra: Any) -> dict[str, Any]:
    return {"success": False, "error": kind, "message": message, **extra}


async def list_tasks_tool(  # noqa: PLR0911, PLR0913
    client: VikunjaClient,
    storage: SavedFilterStorage,
    orchestrator: TaskFilteringOrchestrator,
    ctx: Context,
    *,
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
    """List Vikunja tasks, optionally narrowed by a filter expression.

    Args:
        client: Vikunja API client
        storage: Session storage holding saved filters
        orchestrator: Filtering orchestrator
        ctx: MCP context for logging and communication
        filter: Inline filter string, e.g. ``priority >= 3 && done = false``
        filter_id: ID of a saved filter (an inline filter takes precedence)
        page: 1-based page number
        per_page: Page size (1-50)
        sort: ``field.dir[,field.dir]``, e.g. ``priority.desc,due_date.asc``
        search: Free-text search
        all_projects: List across all projects even if ``project_id`` is set
        done: Completion state (only applied when no filter is given)
        project_id: Project to list

    Returns:
        dict[str, Any]: ``{success, message, tasks, metadata}`` on success, or
            ``{success: False, error, message}``
    """
    try:
        args = TaskListingArgs(
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
    except ValidationError as e:
        error_msg = f"Invalid listing parameters: {e}"
        await ctx.error(error_msg)
        logger.warning("Invalid task listing parameters: %s", e)
        return _error("validation_error", error_msg)

    await ctx.info("Listing tasks" + (" with filter" if filter or filter_id else ""))

    try:
        result = await orchestrator.execute_task_filtering(args, storage, client)

    except SavedFilterNotFoundError as e:
        await ctx.error(str(e))
        logger.warning("Saved filter not found: %s", e.filter_id)
        return _error(e.error_code, str(e))

    except FilterParseError as e:
        error_msg = f"Invalid filter syntax: {e}"
        await ctx.error(error_msg)
        logger.warning("Filter parse error: %s", e)
        return _error(e.error_code, error_msg, details=e.to_dict())

    except FilterValidationError as e:
        await ctx.error(e.message)
        logger.warning("Filter validation failed: %s", e.errors)
        return _error(e.error_code, e.message, errors=e.errors, warnings=e.warnings)

    except ValueError as e:
        await ctx.error(str(e))
        logger.warning("Invalid task listing request: %s", e)
        return _error("validation_error", str(e))

    except OrchestrationError as e:
        await ctx.error(e.message)
        logger.warning("Task filtering failed: %s", e)
        return _error(e.error_code, e.message)

    except VikunjaAuthenticationError as e:
        error_msg = f"Authentication failed: {e}"
        await ctx.error(error_msg)
        logger.warning("Authentication error during task listing: %s", e)
        return _error("authentication_error", error_msg)

    except VikunjaRateLimitError as e:
        error_msg = f"Rate limit exceeded: {e}"
        await ctx.error(error_msg)
        logger.warning("Rate limit exceeded during task listing: %s", e)
        return _error("rate_limit_error", error_msg)

    except VikunjaTimeoutError as e:
        error_msg = f"Request timeout: {e}"
        await ctx.error(error_msg)
        logger.warning("Timeout during task listing: %s", e)
        return _error("timeout_error", error_msg)

    except VikunjaServerError as e:
        error_msg = f"Server error: {e}"
        await ctx.error(error_msg)
        logger.warning("Server error during task listing: %s", e)
        return _error("server_error", error_msg)

    except VikunjaAPIError as e:
        error_msg = f"API error: {e}"
        await ctx.error(error_msg)
        logger.warning("API error during task listing: %s", e)
        return _error("api_error", error_msg)

    except Exception as e:
        error_msg = f"Unexpected error listing tasks: {e}"
        await ctx.error(error_msg)
        logger.exception("Unexpected error during task listing")
        return _error("unexpected_error", error_msg)

    else:
        message = describe_filtering(result.metadata)
        await ctx.info(message)
        return {"success": True, "message": message, **result.to_response()}
