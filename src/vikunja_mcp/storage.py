"""Session-scoped storage for saved filters.

Each session (one Vikunja URL and token pair) gets its own
``SavedFilterStorage``. Storage is in memory unless a JSON file path is
configured, in which case every mutation is written back to disk.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

# Fields a caller may change through ``update``
UPDATABLE_FIELDS = ("name", "description", "filter", "project_id", "is_global")


class StorageError(Exception):
    """Base exception for saved-filter storage errors."""

    error_code = "storage_error"


class SavedFilterNotFoundError(StorageError):
    """Raised when a saved filter id does not exist in the session's storage."""

    error_code = "not_found_error"

    def __init__(self, filter_id: str) -> None:
        self.filter_id = filter_id
        super().__init__(f"Filter with id {filter_id} not found")


class DuplicateFilterNameError(StorageError):
    """Raised when a saved filter name is already taken in the session."""

    error_code = "duplicate_name_error"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f'Filter with name "{name}" already exists')


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SavedFilter(BaseModel):
    """A named, persisted filter string."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Filter ID")
    name: str = Field(..., min_length=1, description="Unique name within the session")
    description: str | None = Field(default=None, description="Free-text description")
    filter: str = Field(..., min_length=1, description="Filter query string")
    project_id: int | None = Field(default=None, description="Project the filter belongs to")
    is_global: bool = Field(default=False, description="Whether the filter applies to all projects")
    created: datetime = Field(default_factory=_utcnow)
    updated: datetime = Field(default_factory=_utcnow)


class SavedFilterStorage:
    """Saved filters for one session, serialized with an ``asyncio.Lock``."""

    def __init__(self, session_id: str, path: Path | None = None) -> None:
        self.session_id = session_id
        self._path = path
        self._filters: dict[str, SavedFilter] = {}
        self._lock = asyncio.Lock()
        if path is not None:
            self._load()

    def _load(self) -> None:
        assert self._path is not None
        if not self._path.exists():
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            entries = raw.get(self.session_id, []) if isinstance(raw, dict) else []
            for entry in entries:
                saved = SavedFilter.model_validate(entry)
                self._filters[saved.id] = saved
        except (OSError, ValueError, ValidationError):
            logger.exception("Failed to load saved filters from %s", self._path)
            raise
        logger.debug("Loaded %d saved filters for session", len(self._filters))

    def _commit(self, filters: dict[str, SavedFilter]) -> None:
        """Write the staged filters, then make them current.

        Memory is left untouched when the write fails, so it never runs ahead of disk.
        """
        self._persist(filters)
        self._filters = filters

    def _persist(self, filters: dict[str, SavedFilter]) -> None:
        if self._path is None:
            return
        existing: dict[str, Any] = {}
        if self._path.exists():
            existing = json.loads(self._path.read_text(encoding="utf-8"))
        existing[self.session_id] = [
            saved.model_dump(mode="json") for saved in filters.values()
        ]
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(existing, indent=2), encoding="utf-8")

    def _name_taken(self, name: str, exclude_id: str | None = None) -> bool:
        return any(
            saved.name == name and saved.id != exclude_id for saved in self._filters.values()
        )

    async def list(self) -> list[SavedFilter]:
        """Return all saved filters, oldest first."""
        async with self._lock:
            return sorted(self._filters.values(), key=lambda saved: saved.created)

    async def get(self, filter_id: str) -> SavedFilter | None:
        """Return a saved filter by id, or None."""
        async with self._lock:
            return self._filters.get(filter_id)

    async def find_by_name(self, name: str) -> SavedFilter | None:
        """Return the saved filter with the given name, or None."""
        async with self._lock:
            return next((s for s in self._filters.values() if s.name == name), None)

    async def get_by_project(self, project_id: int) -> list[SavedFilter]:
        """Return the filters attached to a project, plus global ones."""
        async with self._lock:
            return sorted(
                (
                    saved
                    for saved in self._filters.values()
                    if saved.project_id == project_id or saved.is_global
                ),
                key=lambda saved: saved.created,
            )

    async def create(
        self,
        *,
        name: str,
        filter: str,
        description: str | None = None,
        project_id: int | None = None,
        is_global: bool = False,
    ) -> SavedFilter:
        """Store a new filter.

        Raises:
            DuplicateFilterNameError: If the name is already used in this session
        """
        async with self._lock:
            if self._name_taken(name):
                raise DuplicateFilterNameError(name)
            saved = SavedFilter(
                name=name,
                filter=filter,
                description=description,
                project_id=project_id,
                is_global=is_global,
            )
            self._commit({**self._filters, saved.id: saved})
        logger.info("Saved filter created: %s", saved.id)
        return saved

    async def update(self, filter_id: str, **changes: Any) -> SavedFilter:
        """Apply changes to a saved filter and bump its ``updated`` timestamp.

        Raises:
            SavedFilterNotFoundError: If the id does not exist
            DuplicateFilterNameError: If renaming onto another filter's name
            ValueError: If a change names a field that cannot be updated
        """
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            msg = f"Cannot update fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        async with self._lock:
            current = self._filters.get(filter_id)
            if current is None:
                raise SavedFilterNotFoundError(filter_id)
            new_name = changes.get("name")
            if new_name is not None and self._name_taken(new_name, exclude_id=filter_id):
                raise DuplicateFilterNameError(new_name)
            updated = current.model_copy(update={**changes, "updated": _utcnow()})
            self._commit(
                {**self._filters, filter_id: SavedFilter.model_validate(updated.model_dump())}
            )
        logger.info("Saved filter updated: %s", filter_id)
        return self._filters[filter_id]

    async def delete(self, filter_id: str) -> None:
        """Remove a saved filter.

        Raises:
            SavedFilterNotFoundError: If the id does not exist
        """
        async with self._lock:
            if filter_id not in self._filters:
                raise SavedFilterNotFoundError(filter_id)
            self._commit({k: v for k, v in self._filters.items() if k != filter_id})
        logger.info("Saved filter deleted: %s", filter_id)

    async def clear(self) -> None:
        """Remove every saved filter of the session."""
        async with self._lock:
            self._commit({})


def session_id_for(api_url: str, api_token: str) -> str:
    """Derive a session id from the API URL and a digest of the token."""
    digest = hashlib.sha256(api_token.encode("utf-8")).hexdigest()[:16]
    return f"{api_url.rstrip('/')}:{digest}"


class StorageManager:
    """Hands out one ``SavedFilterStorage`` per session id."""

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path).expanduser() if path is not None else None
        self._storages: dict[str, SavedFilterStorage] = {}

    def get_storage(self, session_id: str) -> SavedFilterStorage:
        """Return the storage for a session, creating it on first use."""
        storage = self._storages.get(session_id)
        if storage is None:
            storage = SavedFilterStorage(session_id, self._path)
            self._storages[session_id] = storage
        return storage

    def get_session_storage(self, api_url: str, api_token: str) -> SavedFilterStorage:
        """Return the storage for the session identified by URL and token."""
        return self.get_storage(session_id_for(api_url, api_token))

    @property
    def session_count(self) -> int:
        return len(self._storages)
