"""MCP tool surface backed by :class:`LocalWPApp`."""

from __future__ import annotations

import datetime as dt
import decimal
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping

from mcp.server.fastmcp import FastMCP

from .app import LocalWPApp
from .commands import ParamValue, decode_command
from .errors import LocalWPError

LOG = logging.getLogger(__name__)

SERVER_NAME = "mcp-local-wp"


def _json_default(value: Any) -> Any:
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    if isinstance(value, decimal.Decimal):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def render(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, indent=2, default=_json_default)


async def call_tool(app: LocalWPApp, name: str, arguments: Mapping[str, Any] | None = None) -> str:
    """Decode, run and render one tool call; errors become structured responses."""

    try:
        command = decode_command(name, arguments)
        payload = await app.handle(command)
    except LocalWPError as exc:
        LOG.debug("Tool %s failed: %s", name, exc)
        return render({"error": exc.to_dict()})
    return render(payload)


def create_server(app: LocalWPApp) -> FastMCP:
    """Register the tools on a FastMCP server bound to ``app``."""

    @asynccontextmanager
    async def lifespan(_server: FastMCP) -> AsyncIterator[None]:
        try:
            yield
        finally:
            await app.close()

    server = FastMCP(SERVER_NAME, lifespan=lifespan)
    site = app.selection.site_name
    writes = (
        "INSERT, UPDATE and DELETE are allowed; UPDATE/DELETE need bound params."
        if app.service.allow_writes
        else "Read-only: SELECT, SHOW, DESCRIBE and EXPLAIN."
    )

    @server.tool(
        description=(
            f"Execute one SQL statement against the database of the Local site '{site}'. "
            f"{writes} Use %s placeholders with the params list."
        )
    )
    async def mysql_query(sql: str, params: list[ParamValue] | None = None) -> str:
        return await call_tool(app, "mysql_query", {"sql": sql, "params": params})

    @server.tool(description="List tables in the selected site's database with row estimates.")
    async def mysql_list_tables() -> str:
        return await call_tool(app, "mysql_list_tables")

    @server.tool(description="Describe the columns of a table in the selected site's database.")
    async def mysql_describe_table(table: str) -> str:
        return await call_tool(app, "mysql_describe_table", {"table": table})

    @server.tool(description="Show which Local site is connected and how it was selected.")
    async def local_site_info() -> str:
        return await call_tool(app, "local_site_info")

    @server.tool(description="List every Local site with its running status.")
    async def local_list_sites() -> str:
        return await call_tool(app, "local_list_sites")

    return server


__all__ = ["SERVER_NAME", "call_tool", "create_server", "render"]
