"""Exception hierarchy shared by site detection and query handling."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from .safety import Classification


class LocalWPError(RuntimeError):
    """Base class for every error surfaced by mcp-local-wp."""

    kind = "error"

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "message": str(self)}


class SiteDetectionError(LocalWPError):
    """Raised when a Local site cannot be identified."""

    kind = "site-detection"


class ConfigNotFoundError(SiteDetectionError):
    """Raised when Local's sites.json is missing or unreadable."""

    kind = "config-not-found"


class RunDirectoryNotFoundError(ConfigNotFoundError):
    """Raised when Local's run directory cannot be located."""

    kind = "run-directory-not-found"


class NoActiveProcessError(SiteDetectionError):
    """Raised when no mysqld process started by Local is running."""

    kind = "no-active-process"


class NoRunningSitesError(SiteDetectionError):
    """Raised when the run directory holds no live site."""

    kind = "no-running-sites"


class SiteNotFoundError(SiteDetectionError):
    """Raised when an explicitly requested site is not in the registry."""

    kind = "site-not-found"


class SiteNotRunningError(SiteDetectionError):
    """Raised when a site's MySQL socket does not exist."""

    kind = "site-not-running"


class CombinedScanFailureError(SiteDetectionError):
    """Raised when both process and filesystem detection came up empty."""

    kind = "combined-scan-failure"

    def __init__(self, message: str, attempts: Sequence[tuple[str, str]] = ()) -> None:
        super().__init__(message)
        self.attempts = tuple(attempts)


class QueryError(LocalWPError):
    """Base class for per-request query failures."""

    kind = "query-error"


class QueryRejectedError(QueryError):
    """Raised when the safety classifier refuses a statement."""

    def __init__(self, classification: "Classification") -> None:
        super().__init__(classification.message or "Statement rejected.")
        self.classification = classification

    @property
    def kind(self) -> str:  # type: ignore[override]
        reason = self.classification.reason
        return reason.value if reason is not None else "rejected"


class IdentifierInvalidError(QueryError):
    """Raised when a table or column name is not a plain identifier."""

    kind = "identifier-invalid"


class DatabaseConnectionError(QueryError):
    """Raised when the MySQL connection cannot be opened."""

    kind = "connection-failed"


class QueryFailedError(QueryError):
    """Raised when the driver fails while executing a statement."""

    kind = "query-failed"


class CommandError(LocalWPError):
    """Raised for unknown tools or malformed tool arguments."""

    kind = "invalid-command"


__all__ = [
    "CombinedScanFailureError",
    "CommandError",
    "ConfigNotFoundError",
    "DatabaseConnectionError",
    "IdentifierInvalidError",
    "LocalWPError",
    "NoActiveProcessError",
    "NoRunningSitesError",
    "QueryError",
    "QueryFailedError",
    "QueryRejectedError",
    "RunDirectoryNotFoundError",
    "SiteDetectionError",
    "SiteNotFoundError",
    "SiteNotRunningError",
]
