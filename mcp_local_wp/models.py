"""Shared dataclasses used across selection, connection and query modules."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

DEFAULT_MYSQL_PORT = 3306


class SelectionMethod(str, Enum):
    """Strategy that produced a site selection."""

    EXPLICIT_ID = "explicit-id"
    EXPLICIT_NAME = "explicit-name"
    CWD_MATCH = "cwd-match"
    PROCESS_SCAN = "process-scan"
    FILESYSTEM_SCAN = "filesystem-scan"


@dataclass(frozen=True, slots=True)
class SiteInfo:
    """One running MySQL instance belonging to a Local site."""

    socket_path: Path
    port: int
    site_id: str
    config_path: Path


@dataclass(frozen=True, slots=True)
class SiteSelectionResult:
    """Outcome of the site selection chain."""

    site_info: SiteInfo
    site_name: str
    site_path: str
    domain: str
    selection_method: SelectionMethod

    def to_dict(self) -> dict[str, Any]:
        return {
            "site_id": self.site_info.site_id,
            "site_name": self.site_name,
            "site_path": self.site_path,
            "domain": self.domain,
            "selection_method": self.selection_method.value,
            "socket_path": str(self.site_info.socket_path),
            "port": self.site_info.port,
            "config_path": str(self.site_info.config_path),
        }


@dataclass(frozen=True, slots=True)
class SiteStatus:
    """Registry entry annotated with whether its database is up."""

    id: str
    name: str
    path: str
    domain: str
    running: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Rows returned by a read statement."""

    columns: tuple[str, ...]
    rows: tuple[Mapping[str, Any], ...]
    row_count: int
    elapsed_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "columns": list(self.columns),
            "rows": [dict(row) for row in self.rows],
            "row_count": self.row_count,
            "elapsed_ms": self.elapsed_ms,
        }


@dataclass(frozen=True, slots=True)
class WriteSummary:
    """Summary of a write statement."""

    affected_rows: int
    changed_rows: int
    insert_id: int | None
    elapsed_ms: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


__all__ = [
    "DEFAULT_MYSQL_PORT",
    "QueryResult",
    "SelectionMethod",
    "SiteInfo",
    "SiteSelectionResult",
    "SiteStatus",
    "WriteSummary",
]
