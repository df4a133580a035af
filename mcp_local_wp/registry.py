"""Loading and querying Local's site registry (sites.json)."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import Settings
from .errors import ConfigNotFoundError

LOG = logging.getLogger(__name__)


class ServiceEntry(BaseModel):
    """Service block of a registry row (mysql, nginx, php, ...)."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str | None = None
    version: str | None = None
    ports: dict[str, list[int]] = Field(default_factory=dict)


class SiteEntry(BaseModel):
    """One site as recorded in sites.json."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    name: str
    path: str
    domain: str = "unknown"
    services: dict[str, ServiceEntry] = Field(default_factory=dict)

    def mysql_port(self) -> int | None:
        """Port advertised for the site's MySQL service, if any."""

        service = self.services.get("mysql")
        if service is None:
            return None
        ports = service.ports.get("MYSQL")
        if not ports:
            return None
        return ports[0]


SitesConfig = dict[str, SiteEntry]


def normalize_site_path(site_path: str, *, home: Path | None = None) -> Path:
    """Expand a leading ``~`` and make the path absolute."""

    if site_path.startswith("~"):
        base = home if home is not None else Path.home()
        site_path = str(base) + site_path[1:]
    return Path(os.path.normpath(os.path.abspath(site_path)))


class SiteRegistry:
    """Reads sites.json fresh on every call; callers cache if they need to."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def locate(self) -> Path:
        """Return the first registry file candidate that exists."""

        candidates = self._settings.sites_json_candidates()
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        if self._settings.sites_json is not None:
            raise ConfigNotFoundError(
                f"Local sites.json not found at LOCAL_SITES_JSON={self._settings.sites_json}."
            )
        searched = ", ".join(str(path) for path in candidates) or "<no candidates>"
        raise ConfigNotFoundError(
            f"Local sites.json not found (searched: {searched}). "
            "Set LOCAL_SITES_JSON to specify the path."
        )

    def load(self) -> SitesConfig:
        """Parse the registry into site entries keyed by id."""

        path = self.locate()
        LOG.debug("Loading sites.json from %s", path)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ConfigNotFoundError(f"Could not read Local sites.json at {path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigNotFoundError(f"Local sites.json at {path} is not an object of sites.")
        sites: SitesConfig = {}
        for site_id, row in raw.items():
            if not isinstance(row, Mapping):
                raise ConfigNotFoundError(f"Local sites.json entry {site_id!r} is not an object.")
            try:
                sites[str(site_id)] = SiteEntry.model_validate({**row, "id": str(site_id)})
            except ValidationError as exc:
                raise ConfigNotFoundError(
                    f"Local sites.json entry {site_id!r} could not be parsed: {exc}"
                ) from exc
        return sites

    def find_by_id(self, site_id: str, sites: SitesConfig | None = None) -> SiteEntry | None:
        sites = self.load() if sites is None else sites
        return sites.get(site_id)

    def find_by_name(self, name: str, sites: SitesConfig | None = None) -> SiteEntry | None:
        """Case-insensitive lookup by human-readable name; first match wins."""

        sites = self.load() if sites is None else sites
        wanted = name.casefold()
        for site in sites.values():
            if site.name.casefold() == wanted:
                return site
        return None

    def find_by_path(self, cwd: str | Path, sites: SitesConfig | None = None) -> SiteEntry | None:
        """Return the site whose directory contains ``cwd``."""

        sites = self.load() if sites is None else sites
        current = Path(os.path.normpath(os.path.abspath(cwd)))
        for site in sites.values():
            site_path = self.normalize(site.path)
            if current == site_path or site_path in current.parents:
                LOG.debug("CWD matches site %s at %s", site.name, site_path)
                return site
        return None

    def normalize(self, site_path: str) -> Path:
        return normalize_site_path(site_path, home=self._settings.home)


__all__ = [
    "ServiceEntry",
    "SiteEntry",
    "SiteRegistry",
    "SitesConfig",
    "normalize_site_path",
]
