"""Pytest fixtures and configuration for the test suite."""

from collections.abc import Generator
from pathlib import Path

import pytest
from fastmcp import FastMCP
from pydantic import HttpUrl
from pytest_mock import AsyncMockType, MockerFixture

from vikunja_mcp.api.client import VikunjaClient
from vikunja_mcp.config import ServerConfig
from vikunja_mcp.storage import SavedFilterStorage, StorageManager
from vikunja_mcp.tools.filters import FilterTools
from vikunja_mcp.tools.tasks import TaskTools
from vikunja_mcp.tools.tasks_filtering import TaskFilteringOrchestrator


@pytest.fixture
def config() -> ServerConfig:
    """Provide a ServerConfig instance for testing."""
    return ServerConfig(
        vikunja_api_token="test_token",
        vikunja_base_url=HttpUrl("https://vikunja.example.com/api/v1"),
    )


@pytest.fixture
def mcp() -> FastMCP:
    """Provide a FastMCP instance for testing."""
    return FastMCP("test-server")


@pytest.fixture
def client(config: ServerConfig) -> VikunjaClient:
    """Provide a VikunjaClient instance for testing."""
    return VikunjaClient(config)


@pytest.fixture
def storage() -> SavedFilterStorage:
    """Provide an empty in-memory saved filter storage."""
    return StorageManager().get_storage("test-session")


@pytest.fixture
def orchestrator() -> TaskFilteringOrchestrator:
    """Provide an orchestrator with a small fallback page size."""
    return TaskFilteringOrchestrator(fallback_page_size=50, fallback_max_pages=5)


@pytest.fixture
def task_tools(
    mcp: FastMCP,
    client: VikunjaClient,
    storage: SavedFilterStorage,
    orchestrator: TaskFilteringOrchestrator,
) -> TaskTools:
    """Provide a TaskTools instance for testing."""
    return TaskTools(mcp, client, storage, orchestrator)


@pytest.fixture
def filter_tools(mcp: FastMCP, storage: SavedFilterStorage) -> FilterTools:
    """Provide a FilterTools instance for testing."""
    return FilterTools(mcp, storage)


@pytest.fixture
def async_ctx(mocker: MockerFixture) -> AsyncMockType:
    """Provide an async MCP context mock."""
    mock_ctx = mocker.AsyncMock()
    mock_ctx.session_id = "test-session-123"
    return mock_ctx


@pytest.fixture
def temp_config_file(tmp_path: Path) -> Generator[str, None, None]:
    """Write a minimal TOML config file and yield its path."""
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        'vikunja_api_token = "file_token"\n'
        'vikunja_base_url = "https://vikunja.example.com/api/v1"\n'
        'log_level = "INFO"\n'
    )
    yield str(config_path)
