"""Pydantic models for Vikunja task payloads.

Only the fields the filter engine and the listing tool read are declared;
everything else Vikunja sends is kept as extra data so tool responses can
return the task unchanged.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic.config import ConfigDict

from vikunja_mcp.filters.dates import VIKUNJA_NULL_DATE_PREFIX

MIN_PRIORITY = 0
MAX_PRIORITY = 5


class Label(BaseModel):
    """Label attached to a task."""

    model_config = ConfigDict(extra="allow")

    id: int = Field(description="Label ID")
    title: str = Field(default="", description="Label title")


class User(BaseModel):
    """Vikunja user, as embedded in task assignees."""

    model_config = ConfigDict(extra="allow")

    id: int = Field(description="User ID")
    username: str = Field(default="", description="Login name")
    name: str = Field(default="", description="Display name")


class TaskResponse(BaseModel):
    """A task as returned by ``GET /tasks/all`` and ``GET /projects/{id}/tasks``."""

    model_config = ConfigDict(extra="allow")

    id: int = Field(description="Task ID")
    title: str = Field(default="", description="Task title")
    description: str = Field(default="", description="Task description (HTML)")
    done: bool = Field(default=False, description="Whether the task is completed")
    priority: int = Field(
        default=0,
        ge=MIN_PRIORITY,
        le=MAX_PRIORITY,
        description=f"Task priority [{MIN_PRIORITY}, {MAX_PRIORITY}]",
    )
    percent_done: float = Field(default=0.0, description="Progress as a 0-1 fraction")
    due_date: datetime | None = Field(default=None, description="Due date, None when unset")
    created: datetime | None = Field(default=None, description="Creation timestamp")
    updated: datetime | None = Field(default=None, description="Last update timestamp")
    project_id: int | None = Field(default=None, description="Owning project ID")
    labels: list[Label] = Field(default_factory=list, description="Attached labels")
    assignees: list[User] = Field(default_factory=list, description="Assigned users")

    @field_validator("due_date", "created", "updated", mode="before")
    @classmethod
    def _null_zero_date(cls, value: object) -> object:
        """Map Vikunja's zero time to None."""
        if isinstance(value, str) and value.startswith(VIKUNJA_NULL_DATE_PREFIX):
            return None
        return value

    @field_validator("labels", "assignees", mode="before")
    @classmethod
    def _null_to_empty(cls, value: object) -> object:
        """Vikunja sends ``null`` instead of an empty list."""
        return [] if value is None else value

    def to_filter_mapping(self) -> dict[str, Any]:
        """Return the task as a plain mapping for filter evaluation."""
        return self.model_dump()

    def to_response(self) -> dict[str, Any]:
        """Return the task as a JSON-compatible dictionary for tool responses."""
        return self.model_dump(mode="json")
