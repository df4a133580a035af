"""MCP server for the MySQL databases of Local WordPress sites."""

from __future__ import annotations

__version__ = "1.0.0"

__all__ = ["__version__"]
