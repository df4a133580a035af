"""Application wiring and command-line entry point for mcp-local-wp."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Sequence

from dotenv import load_dotenv

from .commands import (
    Command,
    DescribeTableCommand,
    ListSitesCommand,
    ListTablesCommand,
    QueryCommand,
    SiteInfoCommand,
)
from .config import Settings, load_settings
from .connections import MySQLConnection, build_connection_config
from .errors import CommandError, SiteDetectionError
from .models import SiteSelectionResult
from .query import QueryService
from .selection import SiteSelector

LOG = logging.getLogger(__name__)

LOG_FORMAT = "[mcp-local-wp] %(levelname)s %(name)s: %(message)s"


def configure_logging(debug: bool = False) -> None:
    """Send logs to stderr; stdout carries the MCP protocol."""

    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if debug else logging.WARNING,
        format=LOG_FORMAT,
        force=True,
    )


class LocalWPApp:
    """Owns the resolved site, its connection and the query service."""

    def __init__(
        self,
        settings: Settings,
        selection: SiteSelectionResult,
        *,
        selector: SiteSelector | None = None,
        connection: MySQLConnection | None = None,
    ) -> None:
        self._settings = settings
        self._selection = selection
        self._selector = selector or SiteSelector(settings)
        self._connection = connection or MySQLConnection(
            build_connection_config(selection, database=settings.database)
        )
        self._service = QueryService(self._connection, allow_writes=settings.allow_writes)

    @property
    def selection(self) -> SiteSelectionResult:
        return self._selection

    @property
    def service(self) -> QueryService:
        return self._service

    async def handle(self, command: Command) -> dict[str, Any]:
        """Run a decoded command and return a JSON-ready payload."""

        if isinstance(command, QueryCommand):
            result = await self._service.run(command.sql, command.params)
            return result.to_dict()
        if isinstance(command, ListTablesCommand):
            return (await self._service.list_tables()).to_dict()
        if isinstance(command, DescribeTableCommand):
            result = await self._service.describe_table(command.table)
            return {"table": command.table, **result.to_dict()}
        if isinstance(command, SiteInfoCommand):
            return {**self._selection.to_dict(), "writes_enabled": self._service.allow_writes}
        if isinstance(command, ListSitesCommand):
            return {"sites": [site.to_dict() for site in self._selector.list_sites()]}
        raise CommandError(f"Unsupported command: {type(command).__name__}")

    async def close(self) -> None:
        await self._connection.close()


def build_app(settings: Settings, *, selector: SiteSelector | None = None) -> LocalWPApp:
    """Resolve the target site once and wire the application around it."""

    selector = selector or SiteSelector(settings)
    selection = selector.resolve()
    LOG.info(
        "Selected site %s via %s (socket %s)",
        selection.site_name,
        selection.selection_method.value,
        selection.site_info.socket_path,
    )
    return LocalWPApp(settings, selection, selector=selector)


def main(argv: Sequence[str] | None = None) -> None:
    """Run the MCP server, or one of the diagnostic commands."""

    parser = argparse.ArgumentParser(
        prog="mcp-local-wp",
        description="MCP server for the MySQL database of a Local WordPress site.",
    )
    parser.add_argument("--list-sites", action="store_true", help="list Local sites and exit")
    parser.add_argument(
        "--show-selection",
        action="store_true",
        help="print which site would be selected and exit",
    )
    args = parser.parse_args(argv)

    load_dotenv()
    settings = load_settings()
    configure_logging(settings.debug)
    selector = SiteSelector(settings)

    try:
        if args.list_sites:
            sites = [site.to_dict() for site in selector.list_sites()]
            print(json.dumps(sites, indent=2))
            return
        app = build_app(settings, selector=selector)
    except SiteDetectionError as exc:
        LOG.error("Could not select a Local site: %s", exc)
        for stage, reason in getattr(exc, "attempts", ()):
            LOG.error("  %s: %s", stage, reason)
        raise SystemExit(1) from exc

    if args.show_selection:
        print(json.dumps(app.selection.to_dict(), indent=2))
        return

    from .server import create_server

    create_server(app).run(transport="stdio")


if __name__ == "__main__":
    main()
