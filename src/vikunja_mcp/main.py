"""Main application entry point for the Vikunja MCP server.

Exit Codes:
    0: Normal termination
    1: Configuration failures (TOML parse errors, validation failures, a missing
       explicitly given config file, unknown configuration keys) or unhandled
       exceptions
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
import tomllib
from pathlib import Path
from typing import Any

from fastmcp import Context, FastMCP

from vikunja_mcp import __version__
from vikunja_mcp.api.client import VikunjaClient
from vikunja_mcp.config import ServerConfig
from vikunja_mcp.storage import SavedFilterStorage, StorageManager
from vikunja_mcp.tools.filters import FilterTools
from vikunja_mcp.tools.tasks import TaskTools
from vikunja_mcp.tools.tasks_filtering import TaskFilteringOrchestrator

logger = logging.getLogger(__name__)


class CoreServer:
    """Builds the FastMCP server, wires the tools and runs it over stdio."""

    def __init__(self, config: ServerConfig) -> None:
        """Initialize the server.

        Args:
            config: Validated server configuration
        """
        self.config = config
        self._setup_logging()
        self.app = self._create_fastmcp_instance()
        self._vikunja_client: VikunjaClient | None = None
        self.storage_manager = StorageManager(config.saved_filters_path)
        self._register_tools()
        self._sigint_count = 0
        self._setup_signal_handlers()

    def _setup_logging(self) -> None:
        """Send all log output to stderr; stdout carries MCP JSON-RPC."""
        logging.basicConfig(
            level=getattr(logging, self.config.log_level),
            format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
            stream=sys.stderr,
        )

    def _create_fastmcp_instance(self) -> FastMCP:
        return FastMCP(name="vikunja-mcp", version=__version__)

    def _register_tools(self) -> None:
        """Register the ping, task listing and saved-filter tools."""
        self.app.tool(self.ping_tool, name="ping")

        client = self.get_vikunja_client()
        storage = self.get_session_storage()
        orchestrator = TaskFilteringOrchestrator(
            fallback_page_size=self.config.fallback_page_size,
            fallback_max_pages=self.config.fallback_max_pages,
        )
        TaskTools(self.app, client, storage, orchestrator)
        FilterTools(self.app, storage)

    def _setup_signal_handlers(self) -> None:
        """Exit immediately on SIGINT/SIGTERM so stdout is never left half-written."""

        def signal_handler(signum: int, _: object | None) -> None:
            if signum == signal.SIGINT:
                self._sigint_count += 1
                if self._sigint_count > 1:
                    logger.warning("Second SIGINT received; forcing immediate exit")
                    os._exit(1)
            logger.info("Received signal %s, shutting down", signum)
            os._exit(0)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def get_vikunja_client(self) -> VikunjaClient:
        """Get or create the shared Vikunja API client."""
        if self._vikunja_client is None:
            self._vikunja_client = VikunjaClient(self.config)
        return self._vikunja_client

    def get_session_storage(self) -> SavedFilterStorage:
        """Saved-filter storage for the configured URL and token."""
        return self.storage_manager.get_session_storage(
            str(self.config.vikunja_base_url), self.config.vikunja_api_token
        )

    async def ping_tool(self, ctx: Context) -> str:
        """Health check returning ``pong``."""
        try:
            await ctx.info("Ping tool called, returning pong")
        except asyncio.CancelledError:
            await ctx.info("Ping tool execution cancelled")
            raise
        else:
            return "pong"

    async def _test_connectivity_if_enabled(self) -> None:
        if not self.config.test_connectivity_on_startup:
            return

        logger.info("Testing Vikunja API connectivity...")
        client = self.get_vikunja_client()
        try:
            success = await client.test_connectivity()
        finally:
            # The client is reused inside the server's own event loop
            await client.aclose()
        if not success:
            logger.warning("Vikunja API connectivity test failed; continuing startup")

    def run(self) -> None:
        """Run the MCP server with stdio transport."""
        logger.info("Starting Vikunja MCP server with stdio transport")

        if self.config.test_connectivity_on_startup:
            try:
                asyncio.run(self._test_connectivity_if_enabled())
            except Exception:
                logger.exception("Connectivity test failed during startup")

        try:
            self.app.run(transport="stdio")
        except KeyboardInterrupt:
            logger.info("Server shutdown requested via KeyboardInterrupt")
            raise
        except Exception:
            logger.exception("Unhandled exception in server run method")
            raise


def _get_known_config_fields() -> set[str]:
    """Configuration keys accepted in the TOML file."""
    return set(ServerConfig.model_fields)


def _load_config_from_file(config_file: str) -> dict[str, Any]:
    """Load configuration values from a TOML file if it exists.

    Raises:
        SystemExit: On parse or read errors and on unknown keys
    """
    config_path = Path(config_file)
    if not config_path.exists():
        return {}

    try:
        with config_path.open("rb") as f:
            file_config = tomllib.load(f)
    except tomllib.TOMLDecodeError:
        logger.exception("Failed to parse TOML configuration file %s", config_path)
        sys.exit(1)
    except OSError:
        logger.exception("Failed to read configuration file %s", config_path)
        sys.exit(1)

    unknown_keys = set(file_config) - _get_known_config_fields()
    if unknown_keys:
        logger.error(
            "Unknown configuration keys in %s: %s",
            config_path,
            ", ".join(sorted(unknown_keys)),
        )
        sys.exit(1)

    logger.info("Loaded configuration from %s", config_path)
    return dict(file_config)


# CLI argument name -> configuration field
_CLI_OVERRIDES = {
    "log_level": "log_level",
    "base_url": "vikunja_base_url",
    "token": "vikunja_api_token",
    "rate_limit_rpm": "rate_limit_rpm",
    "rate_limit_burst": "rate_limit_burst",
    "saved_filters_path": "saved_filters_path",
}


def _apply_cli_overrides(config_data: dict[str, Any], args: argparse.Namespace) -> None:
    """Overlay CLI arguments on file values; CLI wins."""
    for arg_name, field_name in _CLI_OVERRIDES.items():
        value = getattr(args, arg_name, None)
        if value is not None:
            config_data[field_name] = value
    if getattr(args, "test_connectivity", False):
        config_data["test_connectivity_on_startup"] = True


def _create_validated_config(config_data: dict[str, Any]) -> ServerConfig:
    """Validate configuration data, exiting with status 1 on failure."""
    try:
        config = ServerConfig(**config_data)
    except Exception:
        logger.exception("Configuration validation failed")
        sys.exit(1)
    else:
        logger.info("Effective configuration: %s", config.to_redacted_dict())
        return config


def load_configuration(args: argparse.Namespace) -> ServerConfig:
    """Load configuration with precedence CLI > file > defaults.

    Raises:
        SystemExit: On validation errors, parse errors or a missing explicit file
    """
    config_file = args.config_file or "./config.toml"
    if args.config_file and not Path(config_file).exists():
        logger.error("Configuration file not found: %s", config_file)
        sys.exit(1)

    config_data = _load_config_from_file(config_file)
    _apply_cli_overrides(config_data, args)
    config_data["config_file"] = config_file
    return _create_validated_config(config_data)


def parse_cli_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Vikunja MCP Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config-file",
        type=str,
        help="Path to configuration file (default: ./config.toml)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )
    parser.add_argument(
        "--base-url",
        type=str,
        help="Vikunja API base URL (e.g., https://vikunja.example.com/api/v1)",
    )
    parser.add_argument(
        "--token",
        type=str,
        help="Vikunja API token",
    )
    parser.add_argument(
        "--rate-limit-rpm",
        type=int,
        help="Rate limit: requests per minute (1-10000)",
    )
    parser.add_argument(
        "--rate-limit-burst",
        type=int,
        help="Rate limit: burst capacity (1-100)",
    )
    parser.add_argument(
        "--saved-filters-path",
        type=str,
        help="JSON file for saved filters (in-memory when omitted)",
    )
    parser.add_argument(
        "--test-connectivity",
        action="store_true",
        help="Check Vikunja API connectivity at startup",
    )
    return parser.parse_args(argv)


def main() -> None:
    """Console entry point: parse arguments, load configuration and run."""
    try:
        args = parse_cli_args()
        config = load_configuration(args)
        server = CoreServer(config)
        server.run()
    except KeyboardInterrupt:
        logger.info("Server shutdown requested via KeyboardInterrupt")
    except Exception:
        logger.exception("Unhandled exception in server")
        sys.exit(1)
    finally:
        logger.info("Server shutdown complete")


if __name__ == "__main__":
    main()
