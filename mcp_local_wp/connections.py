"""Connection settings and the MySQL connection handle."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

import aiomysql
from pymysql.constants import CLIENT
from pymysql.err import InterfaceError, OperationalError

from .config import DEFAULT_DATABASE
from .errors import DatabaseConnectionError, QueryFailedError
from .models import QueryResult, SiteSelectionResult, WriteSummary

LOG = logging.getLogger(__name__)

LOCAL_MYSQL_USER = "root"
LOCAL_MYSQL_PASSWORD = "root"


@dataclass(frozen=True, slots=True)
class ConnectionConfig:
    """Driver-ready description of the selected site's database."""

    socket_path: Path
    user: str = LOCAL_MYSQL_USER
    password: str = LOCAL_MYSQL_PASSWORD
    database: str = DEFAULT_DATABASE
    multiple_statements: bool = False
    timezone: str = "Z"

    def driver_kwargs(self, *, connect_timeout: float | None = None) -> dict[str, object]:
        """Keyword arguments for :func:`aiomysql.connect`."""

        offset = "+00:00" if self.timezone.upper() == "Z" else self.timezone
        kwargs: dict[str, object] = {
            "unix_socket": str(self.socket_path),
            "user": self.user,
            "password": self.password,
            "db": self.database,
            "autocommit": True,
            "client_flag": CLIENT.MULTI_STATEMENTS if self.multiple_statements else 0,
            "init_command": f"SET time_zone = '{offset}'",
        }
        if connect_timeout is not None:
            kwargs["connect_timeout"] = connect_timeout
        return kwargs


def build_connection_config(
    selection: SiteSelectionResult,
    *,
    database: str | None = None,
) -> ConnectionConfig:
    """Derive connection settings for a resolved site."""

    config = ConnectionConfig(
        socket_path=selection.site_info.socket_path,
        database=database or DEFAULT_DATABASE,
    )
    LOG.debug(
        "Connection for %s via %s: socket=%s database=%s",
        selection.site_name,
        selection.selection_method.value,
        config.socket_path,
        config.database,
    )
    return config


class MySQLConnection:
    """Single lazily-opened connection; statements run one at a time."""

    def __init__(self, config: ConnectionConfig, *, connect_timeout: float = 5.0) -> None:
        self._config = config
        self._connect_timeout = connect_timeout
        self._conn: Any | None = None
        self._lock = asyncio.Lock()

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        """Connect if not already connected."""

        async with self._lock:
            await self._ensure_open()

    async def close(self) -> None:
        async with self._lock:
            await self._drop()

    async def fetch(self, sql: str, params: Sequence[Any] | None = None) -> QueryResult:
        """Run a read statement and return its rows."""

        async with self._lock:
            started = time.perf_counter()
            conn = await self._ensure_open()
            try:
                async with conn.cursor(aiomysql.DictCursor) as cursor:
                    await cursor.execute(sql, _args(params))
                    records = await cursor.fetchall()
                    description = cursor.description or ()
            except Exception as exc:
                await self._handle_failure(exc)
                raise QueryFailedError(f"Query failed: {exc}") from exc
        columns = tuple(str(column[0]) for column in description)
        rows = tuple(dict(record) for record in records or ())
        return QueryResult(
            columns=columns,
            rows=rows,
            row_count=len(rows),
            elapsed_ms=_elapsed_ms(started),
        )

    async def execute(self, sql: str, params: Sequence[Any] | None = None) -> WriteSummary:
        """Run a write statement and summarize its effect."""

        async with self._lock:
            started = time.perf_counter()
            conn = await self._ensure_open()
            try:
                async with conn.cursor() as cursor:
                    await cursor.execute(sql, _args(params))
                    affected = max(cursor.rowcount or 0, 0)
                    insert_id = cursor.lastrowid or None
            except Exception as exc:
                await self._handle_failure(exc)
                raise QueryFailedError(f"Query failed: {exc}") from exc
        # Without CLIENT.FOUND_ROWS MySQL counts only rows it actually changed.
        return WriteSummary(
            affected_rows=affected,
            changed_rows=affected,
            insert_id=insert_id,
            elapsed_ms=_elapsed_ms(started),
        )

    async def _ensure_open(self) -> Any:
        if self._conn is not None:
            return self._conn
        try:
            self._conn = await aiomysql.connect(
                **self._config.driver_kwargs(connect_timeout=self._connect_timeout)
            )
        except Exception as exc:
            raise DatabaseConnectionError(f"Failed to connect to MySQL: {exc}") from exc
        LOG.info("Connected to MySQL at %s", self._config.socket_path)
        return self._conn

    async def _handle_failure(self, exc: Exception) -> None:
        if isinstance(exc, (OperationalError, InterfaceError)):
            LOG.warning("Dropping MySQL connection after error: %s", exc)
            await self._drop()

    async def _drop(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            await conn.ensure_closed()
        except Exception:  # pragma: no cover - best effort cleanup
            conn.close()
        LOG.info("Disconnected from MySQL")


def _args(params: Sequence[Any] | None) -> tuple[Any, ...] | None:
    return tuple(params) if params else None


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


__all__ = [
    "ConnectionConfig",
    "LOCAL_MYSQL_PASSWORD",
    "LOCAL_MYSQL_USER",
    "MySQLConnection",
    "build_connection_config",
]
