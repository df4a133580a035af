"""Environment configuration loading helpers."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field

LOG = logging.getLogger(__name__)

DEBUG_NAMESPACE = "mcp-local-wp"
DEFAULT_DATABASE = "local"
DEFAULT_SCAN_TIMEOUT = 10.0

_TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Runtime settings derived from the process environment."""

    model_config = ConfigDict(frozen=True)

    site_id: str | None = None
    site_name: str | None = None
    run_dir: Path | None = None
    sites_json: Path | None = None
    database: str = DEFAULT_DATABASE
    allow_writes: bool = False
    debug: bool = False
    scan_timeout: float = Field(default=DEFAULT_SCAN_TIMEOUT, gt=0)
    platform: str = Field(default_factory=lambda: sys.platform)
    home: Path = Field(default_factory=Path.home)
    local_appdata: Path | None = None
    appdata: Path | None = None

    def local_app_dirs(self) -> tuple[Path, ...]:
        """Candidate Local application data directories, in lookup order."""

        if self.platform == "darwin":
            return (self.home / "Library" / "Application Support" / "Local",)
        if self.platform == "win32":
            dirs: list[Path] = []
            if self.local_appdata:
                dirs.append(self.local_appdata / "Local")
            if self.appdata:
                dirs.append(self.appdata / "Local")
            return tuple(dirs)
        return (
            self.home / ".config" / "Local",
            self.home / ".local" / "share" / "Local",
        )

    def sites_json_candidates(self) -> tuple[Path, ...]:
        """Registry file locations; an override replaces the defaults."""

        if self.sites_json is not None:
            return (self.sites_json,)
        return tuple(path / "sites.json" for path in self.local_app_dirs())

    def run_dir_candidates(self) -> tuple[Path, ...]:
        """Runtime directory locations; an override replaces the defaults."""

        if self.run_dir is not None:
            return (self.run_dir,)
        return tuple(path / "run" for path in self.local_app_dirs())


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build settings from environment variables."""

    env = os.environ if environ is None else environ
    values: dict[str, object] = {}

    for key, field in (("SITE_ID", "site_id"), ("SITE_NAME", "site_name")):
        value = _clean(env.get(key))
        if value:
            values[field] = value
    for key, field in (
        ("LOCAL_RUN_DIR", "run_dir"),
        ("LOCAL_SITES_JSON", "sites_json"),
        ("LOCALAPPDATA", "local_appdata"),
        ("APPDATA", "appdata"),
    ):
        value = _clean(env.get(key))
        if value:
            values[field] = Path(value).expanduser()

    database = _clean(env.get("MYSQL_DB"))
    if database:
        values["database"] = database
    values["allow_writes"] = _flag(env.get("ALLOW_WRITES"))
    values["debug"] = _debug_enabled(env.get("DEBUG"))

    timeout = _clean(env.get("LOCAL_SCAN_TIMEOUT"))
    if timeout:
        try:
            parsed = float(timeout)
        except ValueError:
            parsed = 0.0
        if parsed > 0:
            values["scan_timeout"] = parsed
        else:
            LOG.warning("Ignoring invalid LOCAL_SCAN_TIMEOUT=%r", timeout)

    return Settings(**values)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _flag(value: str | None) -> bool:
    return (_clean(value) or "").lower() in _TRUTHY


def _debug_enabled(value: str | None) -> bool:
    cleaned = _clean(value)
    if not cleaned:
        return False
    if cleaned.lower() in _TRUTHY:
        return True
    return DEBUG_NAMESPACE in cleaned or cleaned == "*"


__all__ = ["DEBUG_NAMESPACE", "Settings", "load_settings"]
