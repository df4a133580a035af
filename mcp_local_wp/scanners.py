"""Detection of running Local sites from processes and the run directory."""

from __future__ import annotations

import logging
import re
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from .config import Settings
from .errors import NoActiveProcessError, NoRunningSitesError, RunDirectoryNotFoundError
from .models import SiteInfo
from .runtime import build_site_info, config_path_for, locate_run_dir, socket_path_for

LOG = logging.getLogger(__name__)

ProcessLister = Callable[[], Sequence[str]]

DAEMON_NAME = "mysqld"

_DEFAULTS_FILE = re.compile(r"--defaults-file=(?:\"([^\"]+)\"|'([^']+)'|(.+?))(?=\s+--|\s*$)")
_LOCAL_RUN_SEGMENT = re.compile(r"Local[/\\]run[/\\]")

_WINDOWS_QUERY = (
    "Get-CimInstance Win32_Process -Filter \"Name like 'mysqld%'\" "
    "| ForEach-Object { $_.CommandLine }"
)


def list_command_lines(*, platform: str | None = None, timeout: float | None = None) -> list[str]:
    """Return the command line of every live process."""

    platform = platform or sys.platform
    if platform == "win32":
        cmd = ["powershell", "-NoProfile", "-NonInteractive", "-Command", _WINDOWS_QUERY]
    else:
        cmd = ["ps", "-eo", "args"]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        raise NoActiveProcessError(f"Process listing timed out after {exc.timeout}s.") from exc
    except (OSError, subprocess.CalledProcessError) as exc:
        raise NoActiveProcessError(f"Could not list processes: {exc}") from exc
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


def extract_defaults_file(command_line: str) -> Path | None:
    """Return the ``--defaults-file`` argument of a mysqld command line."""

    match = _DEFAULTS_FILE.search(command_line)
    if not match:
        return None
    value = next(group for group in match.groups() if group is not None).strip()
    return Path(value) if value else None


class ProcessScanner:
    """Finds the effective my.cnf of a mysqld started by Local."""

    def __init__(
        self,
        *,
        list_processes: ProcessLister | None = None,
        platform: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._platform = platform or sys.platform
        self._timeout = timeout
        self._list_processes = list_processes or self._default_lister

    def find_config_path(self) -> Path:
        """Prefer a mysqld launched from Local's run directory, else the first one."""

        lines = [line for line in self._list_processes() if DAEMON_NAME in line]
        LOG.debug("mysqld process lines: %d", len(lines))
        if not lines:
            raise NoActiveProcessError("No active MySQL process found. Please start a Local site first.")

        fallback: Path | None = None
        for line in lines:
            config_path = extract_defaults_file(line)
            if config_path is None:
                continue
            if _LOCAL_RUN_SEGMENT.search(line):
                return config_path
            if fallback is None:
                fallback = config_path
        if fallback is None:
            raise NoActiveProcessError("No MySQL process was started with a --defaults-file.")
        return fallback

    def scan(self) -> SiteInfo:
        return build_site_info(self.find_config_path())

    def _default_lister(self) -> list[str]:
        return list_command_lines(platform=self._platform, timeout=self._timeout)


@dataclass(frozen=True, slots=True)
class RunDirCandidate:
    """Site directory with a live socket and config."""

    site_id: str
    site_dir: Path
    socket_path: Path
    config_path: Path
    mtime: float


class FilesystemScanner:
    """Picks the most recently active site under Local's run directory."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def candidates(self) -> list[RunDirCandidate]:
        """Running sites ordered by socket modification time, newest first."""

        try:
            run_dir = locate_run_dir(self._settings)
        except RunDirectoryNotFoundError as exc:
            raise NoRunningSitesError(str(exc)) from exc
        LOG.debug("Scanning Local run directory: %s", run_dir)

        try:
            entries = list(run_dir.iterdir())
        except OSError as exc:
            raise NoRunningSitesError(f"Cannot read Local run directory {run_dir}: {exc}") from exc

        found: list[RunDirCandidate] = []
        for site_dir in entries:
            socket_path = socket_path_for(site_dir)
            config_path = config_path_for(site_dir)
            try:
                if not (site_dir.is_dir() and socket_path.exists() and config_path.exists()):
                    continue
                mtime = socket_path.stat().st_mtime
            except OSError as exc:
                LOG.debug("Skipping unreadable site directory %s: %s", site_dir, exc)
                continue
            found.append(
                RunDirCandidate(
                    site_id=site_dir.name,
                    site_dir=site_dir,
                    socket_path=socket_path,
                    config_path=config_path,
                    mtime=mtime,
                )
            )
        found.sort(key=lambda candidate: candidate.mtime, reverse=True)
        return found

    def find_most_recent_running_site(self) -> SiteInfo:
        candidates = self.candidates()
        if not candidates:
            raise NoRunningSitesError("No running Local sites found via filesystem scan.")
        chosen = candidates[0]
        LOG.debug("Filesystem scan selected site: %s", chosen.site_id)
        return build_site_info(chosen.config_path)

    def scan(self) -> SiteInfo:
        return self.find_most_recent_running_site()


__all__ = [
    "FilesystemScanner",
    "ProcessLister",
    "ProcessScanner",
    "RunDirCandidate",
    "extract_defaults_file",
    "list_command_lines",
]
