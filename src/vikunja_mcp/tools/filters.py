"""Saved filter management tool.

A single ``filters`` tool dispatches on ``action``:

* ``list``, ``get``, ``create``, ``update``, ``delete`` manage the session's
  saved filters;
* ``build`` turns structured conditions into a filter string;
* ``validate`` parses and validates a filter string.

Parameters for each action are validated with the pydantic models below and
accept both snake_case and camelCase keys.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Literal

from fastmcp import Context, FastMCP
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    model_validator,
)
from pydantic.alias_generators import to_camel

from vikunja_mcp.filters.builder import FilterBuilder, build_filter_string, make_condition
from vikunja_mcp.filters.exceptions import FilterParseError, FilterValidationError
from vikunja_mcp.filters.models import Combinator, Condition, FilterField, FilterOperator
from vikunja_mcp.filters.parser import parse_filter, parse_filter_string
from vikunja_mcp.filters.validator import validate_filter_expression
from vikunja_mcp.storage import (
    DuplicateFilterNameError,
    SavedFilter,
    SavedFilterNotFoundError,
    SavedFilterStorage,
)

logger = logging.getLogger(__name__)

FilterAction = Literal["list", "get", "create", "update", "delete", "build", "validate"]

# Legacy condition fields whose values are sent as strings but compared as numbers
_NUMERIC_LEGACY_FIELDS = frozenset({FilterField.PRIORITY.value, FilterField.PERCENT_DONE.value})


class _Params(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class ListFiltersParams(_Params):
    project_id: int | None = None
    global_only: bool | None = Field(
        default=None, validation_alias=AliasChoices("global_only", "globalOnly", "global")
    )


class FilterIdParams(_Params):
    id: str = Field(..., min_length=1)


class LegacyFilterConditions(BaseModel):
    """Parallel-array condition format kept for older clients."""

    model_config = ConfigDict(extra="forbid")

    filter_by: list[str] = Field(default_factory=list)
    filter_value: list[str] = Field(default_factory=list)
    filter_comparator: list[str] = Field(default_factory=list)
    filter_concat: str | None = None


class CreateFilterParams(_Params):
    name: str | None = None
    title: str | None = None
    description: str | None = None
    filter: str | None = None
    filters: LegacyFilterConditions | None = None
    project_id: int | None = None
    is_global: bool = False
    is_favorite: bool | None = Field(
        default=None, validation_alias=AliasChoices("is_favorite", "isFavorite")
    )

    @model_validator(mode="after")
    def _require_name_and_filter(self) -> CreateFilterParams:
        if not (self.name or self.title):
            msg = "Either name or title must be provided"
            raise ValueError(msg)
        if not (self.filter or self.filters):
            msg = "Either filter or filters must be provided"
            raise ValueError(msg)
        return self


class UpdateFilterParams(_Params):
    id: str = Field(..., min_length=1)
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    filter: str | None = None
    project_id: int | None = None
    is_global: bool | None = None


class ConditionParams(_Params):
    field: FilterField
    operator: FilterOperator
    value: bool | int | float | str | list[str | int]


class BuildFilterParams(_Params):
    conditions: list[ConditionParams]
    group_operator: Combinator = Combinator.AND


class ValidateFilterParams(_Params):
    filter: str


def serialize_saved_filter(saved: SavedFilter) -> dict[str, Any]:
    """Convert a saved filter to a JSON-compatible dictionary."""
    return saved.model_dump(mode="json")


def _error(kind: str, message: str, **extra: Any) -> dict[str, Any]:
    return {"success": False, "error": kind, "message": message, **extra}


def _check_filter_string(text: str) -> list[str]:
    """Parse and validate a filter string, returning its warnings.

    Raises:
        FilterParseError: If the string is malformed
        FilterValidationError: If the expression is invalid
    """
    result = validate_filter_expression(parse_filter(text))
    if not result.valid:
        raise FilterValidationError(result.errors, result.warnings)
    return result.warnings


def _coerce_legacy_value(field: str, value: str) -> bool | int | float | str:
    if field in _NUMERIC_LEGACY_FIELDS:
        try:
            number = float(value)
        except ValueError:
            return value
        return int(number) if number.is_integer() else number
    if field == FilterField.DONE.value:
        return value == "true"
    return value


def legacy_conditions_to_filter(conditions: LegacyFilterConditions) -> str:
    """Build a filter string from the parallel-array condition format.

    Entries with an empty value are skipped.

    Raises:
        ValueError: For unknown fields or operators
    """
    builder = FilterBuilder()
    use_or = conditions.filter_concat == Combinator.OR.value
    entries = zip(
        conditions.filter_by,
        conditions.filter_value,
        conditions.filter_comparator,
        strict=False,
    )
    first = True
    for field, value, comparator in entries:
        if not value:
            continue
        if not first and use_or:
            builder.or_()
        builder.where(field, comparator, _coerce_legacy_value(field, value))
        first = False
    return builder.to_string()


async def _list_filters(storage: SavedFilterStorage, params: ListFiltersParams) -> dict[str, Any]:
    if params.project_id is not None:
        filters = await storage.get_by_project(params.project_id)
    else:
        filters = await storage.list()
        if params.global_only is not None:
            filters = [saved for saved in filters if saved.is_global is params.global_only]
    noun = "filter" if len(filters) == 1 else "filters"
    return {
        "success": True,
        "message": f"Found {len(filters)} saved {noun}",
        "filters": [serialize_saved_filter(saved) for saved in filters],
        "count": len(filters),
    }


async def _get_filter(storage: SavedFilterStorage, params: FilterIdParams) -> dict[str, Any]:
    saved = await storage.get(params.id)
    if saved is None:
        raise SavedFilterNotFoundError(params.id)
    return {
        "success": True,
        "message": f'Retrieved filter "{saved.name}"',
        "filter": serialize_saved_filter(saved),
    }


async def _create_filter(
    storage: SavedFilterStorage, params: CreateFilterParams
) -> dict[str, Any]:
    name = params.name or params.title
    assert name is not None
    filter_text = params.filter
    if not filter_text and params.filters is not None:
        filter_text = legacy_conditions_to_filter(params.filters)
    if not filter_text:
        return _error("validation_error", "No filter conditions provided")

    warnings = _check_filter_string(filter_text)
    saved = await storage.create(
        name=name,
        filter=filter_text,
        description=params.description,
        project_id=params.project_id,
        is_global=params.is_global or bool(params.is_favorite),
    )
    return {
        "success": True,
        "message": f'Filter "{saved.name}" saved successfully',
        "filter": serialize_saved_filter(saved),
        "warnings": warnings,
    }


async def _update_filter(
    storage: SavedFilterStorage, params: UpdateFilterParams
) -> dict[str, Any]:
    changes = params.model_dump(exclude={"id"}, exclude_none=True)
    if not changes:
        return _error("validation_error", "No fields to update")

    warnings: list[str] = []
    if "filter" in changes:
        warnings = _check_filter_string(changes["filter"])
    saved = await storage.update(params.id, **changes)
    return {
        "success": True,
        "message": f'Filter "{saved.name}" updated successfully',
        "filter": serialize_saved_filter(saved),
        "affected_fields": list(changes),
        "warnings": warnings,
    }


async def _delete_filter(storage: SavedFilterStorage, params: FilterIdParams) -> dict[str, Any]:
    saved = await storage.get(params.id)
    if saved is None:
        raise SavedFilterNotFoundError(params.id)
    await storage.delete(params.id)
    return {
        "success": True,
        "message": f'Filter "{saved.name}" deleted successfully',
        "filter_id": params.id,
    }


async def _build_filter(_storage: SavedFilterStorage, params: BuildFilterParams) -> dict[str, Any]:
    conditions: list[Condition] = [
        make_condition(item.field, item.operator, item.value) for item in params.conditions
    ]
    filter_text = build_filter_string(conditions, params.group_operator)
    if not filter_text:
        return _error("validation_error", "No filter conditions provided")

    validation = validate_filter_expression(parse_filter(filter_text))
    return {
        "success": True,
        "message": "Filter built successfully",
        "filter": filter_text,
        "condition_count": len(conditions),
        **validation.to_dict(),
    }


async def _validate_filter(
    _storage: SavedFilterStorage, params: ValidateFilterParams
) -> dict[str, Any]:
    parsed = parse_filter_string(params.filter)
    if not parsed.ok:
        assert parsed.error is not None
        return {
            "success": True,
            "message": "Filter validation failed",
            "filter": params.filter,
            "valid": False,
            "errors": [str(parsed.error)],
            "warnings": [],
            "parse_error": parsed.error.to_dict(),
        }

    assert parsed.expression is not None
    validation = validate_filter_expression(parsed.expression)
    return {
        "success": True,
        "message": "Filter is valid" if validation.valid else "Filter validation failed",
        "filter": params.filter,
        **validation.to_dict(),
    }


_Handler = Callable[[SavedFilterStorage, Any], Awaitable[dict[str, Any]]]

_ACTIONS: dict[str, tuple[type[BaseModel], _Handler]] = {
    "list": (ListFiltersParams, _list_filters),
    "get": (FilterIdParams, _get_filter),
    "create": (CreateFilterParams, _create_filter),
    "update": (UpdateFilterParams, _update_filter),
    "delete": (FilterIdParams, _delete_filter),
    "build": (BuildFilterParams, _build_filter),
    "validate": (ValidateFilterParams, _validate_filter),
}


async def filters_tool(  # noqa: PLR0911
    storage: SavedFilterStorage,
    ctx: Context,
    action: str,
    parameters: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Run one saved-filter action.

    Args:
        storage: Session storage for saved filters
        ctx: MCP context for logging and communication
        action: One of list, get, create, update, delete, build, validate
        parameters: Action parameters

    Returns:
        dict[str, Any]: Action result with ``success: True``, or
            ``{success: False, error, message}``
    """
    entry = _ACTIONS.get(action)
    if entry is None:
        error_msg = f"Unknown action: {action}; expected one of: {', '.join(_ACTIONS)}"
        await ctx.error(error_msg)
        return _error("validation_error", error_msg)

    params_model, handler = entry
    await ctx.info(f"Executing filters action: {action}")

    try:
        params = params_model.model_validate(parameters or {})
        result = await handler(storage, params)

    except ValidationError as e:
        error_msg = f"Invalid parameters for {action}: {e}"
        await ctx.error(error_msg)
        logger.warning("Invalid filters parameters for %s: %s", action, e)
        return _error("validation_error", error_msg)

    except SavedFilterNotFoundError as e:
        await ctx.error(str(e))
        logger.warning("Saved filter not found: %s", e.filter_id)
        return _error(e.error_code, str(e))

    except DuplicateFilterNameError as e:
        await ctx.error(str(e))
        logger.warning("Duplicate saved filter name: %s", e.name)
        return _error(e.error_code, str(e))

    except FilterParseError as e:
        error_msg = f"Invalid filter: {e}"
        await ctx.error(error_msg)
        logger.warning("Filter parse error in %s: %s", action, e)
        return _error(e.error_code, error_msg, details=e.to_dict())

    except FilterValidationError as e:
        await ctx.error(e.message)
        logger.warning("Filter validation failed in %s: %s", action, e.errors)
        return _error(e.error_code, e.message, errors=e.errors, warnings=e.warnings)

    except ValueError as e:
        await ctx.error(str(e))
        logger.warning("Invalid filters request for %s: %s", action, e)
        return _error("validation_error", str(e))

    except Exception as e:
        error_msg = f"Unexpected error in filters {action}: {e}"
        await ctx.error(error_msg)
        logger.exception("Unexpected error in filters tool")
        return _error("unexpected_error", error_msg)

    else:
        if result.get("success"):
            await ctx.info(result["message"])
        else:
            await ctx.error(result["message"])
        return result


class FilterTools:
    """Registers the ``filters`` tool with a FastMCP server."""

    def __init__(self, mcp_instance: FastMCP, storage: SavedFilterStorage) -> None:
        self.mcp = mcp_instance
        self.storage = storage
        self._register_tools()

    async def filters_tool(
        self,
        ctx: Context,
        action: FilterAction,
        parameters: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Manage saved filters and build or validate filter strings."""
        return await filters_tool(self.storage, ctx, action, parameters)

    def _register_tools(self) -> None:
        async def _filters_tool(
            ctx: Context,
            action: FilterAction,
            parameters: dict[str, Any] | None = None,
        ) -> dict[str, Any]:
            """Manage saved task filters and build or validate filter strings.

            Actions and parameters:
            - list: project_id?, global_only?
            - get / delete: id
            - create: name (or title), filter (or legacy filters object),
              description?, project_id?, is_global?
            - update: id, name?, description?, filter?, project_id?, is_global?
            - build: conditions [{field, operator, value}], group_operator? (&& or ||)
            - validate: filter
            """
            return await self.filters_tool(ctx, action, parameters)

        self.mcp.tool("filters")(_filters_tool)
        logger.debug("Registered filters tool")
