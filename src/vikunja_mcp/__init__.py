"""Vikunja MCP - task filtering for Vikunja over the Model Context Protocol."""

__version__ = "0.1.0"
