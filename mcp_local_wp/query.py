"""Query execution service: classify, then hand the statement to MySQL."""

from __future__ import annotations

import logging
from typing import Any, Protocol, Sequence, cast

from .errors import QueryFailedError, QueryRejectedError
from .models import QueryResult, WriteSummary
from .safety import Category, Classification, classify, validate_identifier

LOG = logging.getLogger(__name__)

_LIST_TABLES_SQL = """
    SELECT TABLE_NAME AS table_name, TABLE_ROWS AS row_estimate, ENGINE AS engine
    FROM information_schema.TABLES
    WHERE TABLE_SCHEMA = DATABASE()
    ORDER BY TABLE_NAME
"""

_DESCRIBE_TABLE_SQL = """
    SELECT COLUMN_NAME AS name, COLUMN_TYPE AS type, IS_NULLABLE AS nullable,
           COLUMN_KEY AS `key`, COLUMN_DEFAULT AS `default`, EXTRA AS extra
    FROM information_schema.COLUMNS
    WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = %s
    ORDER BY ORDINAL_POSITION
"""


class StatementRunner(Protocol):
    """Interface implemented by connection handles."""

    async def fetch(self, sql: str, params: Sequence[Any] | None = None) -> QueryResult: ...

    async def execute(self, sql: str, params: Sequence[Any] | None = None) -> WriteSummary: ...


class QueryService:
    """Gates every statement through the safety classifier."""

    def __init__(self, runner: StatementRunner, *, allow_writes: bool = False) -> None:
        self._runner = runner
        self._allow_writes = allow_writes

    @property
    def allow_writes(self) -> bool:
        return self._allow_writes

    def classify(self, sql: str, params: Sequence[Any] | None = None) -> Classification:
        return classify(sql, params, self._allow_writes)

    async def run(self, sql: str, params: Sequence[Any] | None = None) -> QueryResult | WriteSummary:
        """Classify ``sql`` and execute it if allowed."""

        verdict = self.classify(sql, params)
        if not verdict.allowed:
            LOG.info("Rejected statement (%s): %s", verdict.reason.value if verdict.reason else "-", verdict.message)
            raise QueryRejectedError(verdict)
        LOG.debug("Executing %s statement (%s)", verdict.category.value, verdict.keyword)
        if verdict.category is Category.WRITE:
            return await self._runner.execute(sql, params)
        return await self._runner.fetch(sql, params)

    async def list_tables(self) -> QueryResult:
        return cast(QueryResult, await self.run(_LIST_TABLES_SQL))

    async def describe_table(self, table: str) -> QueryResult:
        """Column details for ``table`` in the current database."""

        name = validate_identifier(table)
        result = cast(QueryResult, await self.run(_DESCRIBE_TABLE_SQL, [name]))
        if not result.rows:
            raise QueryFailedError(f"Table {name!r} not found in the current database.")
        return result


__all__ = ["QueryService", "StatementRunner"]
