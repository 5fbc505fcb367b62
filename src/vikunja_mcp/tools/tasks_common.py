"""Shared helpers for the task tools.

Sort strings use the ``field.dir[,field.dir]`` form. They are either handed to
Vikunja as ``sort_by``/``order_by`` or applied locally when tasks were filtered
client-side.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from vikunja_mcp.api.models import TaskResponse

# Sortable task attributes, keyed by every accepted spelling
SORT_FIELDS: dict[str, str] = {
    "id": "id",
    "title": "title",
    "description": "description",
    "done": "done",
    "priority": "priority",
    "percent_done": "percent_done",
    "percentDone": "percent_done",
    "due_date": "due_date",
    "dueDate": "due_date",
    "created": "created",
    "updated": "updated",
    "project_id": "project_id",
    "position": "position",
}
SORT_DIRECTIONS = ("asc", "desc")


@dataclass(frozen=True, slots=True)
class SortKey:
    """One ``field.direction`` entry of a sort string."""

    field: str
    direction: str = "asc"

    @property
    def descending(self) -> bool:
        """Whether this key sorts in descending order."""
        return self.direction == "desc"


def parse_sort(sort: str | None) -> list[SortKey]:
    """Parse ``field.dir[,field.dir]`` into sort keys.

    The direction defaults to ``asc`` when omitted. Field names accept both
    snake_case and camelCase spellings.

    Args:
        sort: Sort string such as ``"priority.desc,due_date.asc"``, or None

    Returns:
        list[SortKey]: Keys from most to least significant (empty when unset)

    Raises:
        ValueError: For unknown fields or directions
    """
    if not sort or not sort.strip():
        return []

    keys: list[SortKey] = []
    for part in sort.split(","):
        entry = part.strip()
        if not entry:
            continue
        name, _, direction = entry.partition(".")
        field = SORT_FIELDS.get(name.strip())
        if field is None:
            known = ", ".join(sorted(set(SORT_FIELDS.values())))
            msg = f"Unknown sort field '{name}'; expected one of: {known}"
            raise ValueError(msg)
        direction = (direction.strip() or "asc").lower()
        if direction not in SORT_DIRECTIONS:
            msg = f"Unknown sort direction '{direction}' for field '{name}'; use asc or desc"
            raise ValueError(msg)
        keys.append(SortKey(field, direction))
    return keys


def to_vikunja_sort(keys: Sequence[SortKey]) -> tuple[list[str], list[str]]:
    """Split sort keys into Vikunja's parallel ``sort_by``/``order_by`` lists.

    Args:
        keys: Parsed sort keys

    Returns:
        tuple[list[str], list[str]]: Field names and their directions, index-aligned
    """
    return [key.field for key in keys], [key.direction for key in keys]


def sort_tasks(tasks: Sequence[TaskResponse], keys: Sequence[SortKey]) -> list[TaskResponse]:
    """Sort tasks locally; unset values go last for either direction.

    Args:
        tasks: Tasks to sort
        keys: Sort keys, most significant first

    Returns:
        list[TaskResponse]: A new, sorted list
    """
    ordered = list(tasks)
    # Apply keys from least to most significant; list.sort is stable
    for key in reversed(keys):
        present = [task for task in ordered if _sort_value(task, key.field) is not None]
        missing = [task for task in ordered if _sort_value(task, key.field) is None]
        present.sort(key=lambda task, f=key.field: _sort_value(task, f), reverse=key.descending)
        ordered = present + missing
    return ordered


def _sort_value(task: TaskResponse, field: str) -> Any:
    """Comparable value of a task attribute; strings compare case-insensitively."""
    value = getattr(task, field, None)
    if value is None and task.model_extra:
        value = task.model_extra.get(field)
    if isinstance(value, str):
        return value.lower()
    return value


def paginate(tasks: Sequence[TaskResponse], page: int, per_page: int) -> list[TaskResponse]:
    """Return one 1-based page of tasks.

    Args:
        tasks: Tasks in display order
        page: 1-based page number
        per_page: Page size

    Returns:
        list[TaskResponse]: The tasks on the page (empty past the end)
    """
    start = (page - 1) * per_page
    return list(tasks[start : start + per_page])
