"""Layout of Local's run directory and SiteInfo builders."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from .config import Settings
from .errors import RunDirectoryNotFoundError, SiteNotRunningError
from .models import DEFAULT_MYSQL_PORT, SiteInfo
from .registry import SiteEntry

LOG = logging.getLogger(__name__)

SOCKET_RELATIVE_PATH = Path("mysql") / "mysqld.sock"
CONFIG_RELATIVE_PATH = Path("conf") / "mysql" / "my.cnf"

_PORT_PATTERN = re.compile(r"port\s*=\s*(\d+)")


def locate_run_dir(settings: Settings) -> Path:
    """Return the first existing run directory candidate."""

    candidates = settings.run_dir_candidates()
    for candidate in candidates:
        if candidate.is_dir():
            return candidate
    if settings.run_dir is not None:
        raise RunDirectoryNotFoundError(
            f"Local run directory not found at LOCAL_RUN_DIR={settings.run_dir}."
        )
    raise RunDirectoryNotFoundError("Local run directory not found. Set LOCAL_RUN_DIR to override.")


def socket_path_for(site_dir: Path) -> Path:
    return site_dir / SOCKET_RELATIVE_PATH


def config_path_for(site_dir: Path) -> Path:
    return site_dir / CONFIG_RELATIVE_PATH


def read_port(config_path: Path) -> int | None:
    """Extract ``port = N`` from a my.cnf file."""

    try:
        content = config_path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    match = _PORT_PATTERN.search(content)
    return int(match.group(1)) if match else None


def build_site_info(config_path: str | Path) -> SiteInfo:
    """Derive SiteInfo from a site's effective my.cnf path.

    The config lives at ``<run>/<site id>/conf/mysql/my.cnf`` so the site
    directory is three levels up.
    """

    config_path = Path(config_path)
    site_dir = config_path.parent.parent.parent
    site_id = site_dir.name
    socket_path = socket_path_for(site_dir)
    if not socket_path.exists():
        raise SiteNotRunningError(f"MySQL socket not found at {socket_path}")

    port = read_port(config_path) or DEFAULT_MYSQL_PORT
    LOG.debug("Found active Local site %s (socket=%s, port=%s)", site_id, socket_path, port)
    return SiteInfo(socket_path=socket_path, port=port, site_id=site_id, config_path=config_path)


def build_site_info_from_entry(entry: SiteEntry, run_dir: Path) -> SiteInfo:
    """Build SiteInfo for a registry entry, verifying the site is running."""

    site_dir = run_dir / entry.id
    socket_path = socket_path_for(site_dir)
    config_path = config_path_for(site_dir)
    if not socket_path.exists():
        raise SiteNotRunningError(
            f'Site "{entry.name}" ({entry.id}) is not running. '
            f"Expected socket at: {socket_path}. Please start the site in Local."
        )

    port = entry.mysql_port() or read_port(config_path) or DEFAULT_MYSQL_PORT
    return SiteInfo(socket_path=socket_path, port=port, site_id=entry.id, config_path=config_path)


__all__ = [
    "CONFIG_RELATIVE_PATH",
    "SOCKET_RELATIVE_PATH",
    "build_site_info",
    "build_site_info_from_entry",
    "config_path_for",
    "locate_run_dir",
    "read_port",
    "socket_path_for",
]
