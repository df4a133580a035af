"""Priority-ordered selection of the Local site to connect to.

Stages run in order and each returns a :class:`StageOutcome`:

1. ``SITE_ID``: explicit registry id, terminal when it cannot be honoured.
2. ``SITE_NAME``: explicit registry name (case-insensitive), terminal likewise.
3. Working directory inside a registered site path.
4. Scan of running mysqld processes.
5. Scan of Local's run directory for the most recently touched socket.

Stages 3-5 defer to the next stage on failure. When the last stage defers the
selector raises :class:`CombinedScanFailureError` listing every attempt.
"""

from __future__ import annotations

import concurrent.futures
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Callable, TypeVar

from .config import Settings
from .errors import (
    CombinedScanFailureError,
    ConfigNotFoundError,
    SiteDetectionError,
    SiteNotFoundError,
)
from .models import SelectionMethod, SiteInfo, SiteSelectionResult, SiteStatus
from .registry import SiteEntry, SiteRegistry
from .runtime import build_site_info_from_entry, locate_run_dir, socket_path_for
from .scanners import FilesystemScanner, ProcessScanner

LOG = logging.getLogger(__name__)

T = TypeVar("T")

UNKNOWN = "unknown"


class StageStatus(str, Enum):
    """How a selection stage ended."""

    RESOLVED = "resolved"
    DEFERRED = "deferred"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class StageOutcome:
    """Result of one selection stage."""

    stage: str
    status: StageStatus
    result: SiteSelectionResult | None = None
    error: SiteDetectionError | None = None
    reason: str | None = None

    @classmethod
    def resolved(cls, stage: str, result: SiteSelectionResult) -> StageOutcome:
        return cls(stage=stage, status=StageStatus.RESOLVED, result=result)

    @classmethod
    def deferred(cls, stage: str, reason: str, error: SiteDetectionError | None = None) -> StageOutcome:
        return cls(stage=stage, status=StageStatus.DEFERRED, error=error, reason=reason)

    @classmethod
    def failed(cls, stage: str, error: SiteDetectionError) -> StageOutcome:
        return cls(stage=stage, status=StageStatus.FAILED, error=error, reason=str(error))


class SiteSelector:
    """Resolves exactly one running Local site."""

    def __init__(
        self,
        settings: Settings,
        *,
        registry: SiteRegistry | None = None,
        process_scanner: ProcessScanner | None = None,
        filesystem_scanner: FilesystemScanner | None = None,
        cwd: Callable[[], str] | None = None,
    ) -> None:
        self._settings = settings
        self._registry = registry or SiteRegistry(settings)
        self._process_scanner = process_scanner or ProcessScanner(timeout=settings.scan_timeout)
        self._filesystem_scanner = filesystem_scanner or FilesystemScanner(settings)
        self._cwd = cwd or os.getcwd

    def resolve(self) -> SiteSelectionResult:
        """Run the stages in priority order and return the first resolution."""

        stages: tuple[Callable[[], StageOutcome], ...] = (
            self._explicit_id_stage,
            self._explicit_name_stage,
            self._cwd_stage,
            self._process_scan_stage,
            self._filesystem_scan_stage,
        )
        attempts: list[StageOutcome] = []
        for stage in stages:
            outcome = stage()
            if outcome.status is StageStatus.RESOLVED and outcome.result is not None:
                result = outcome.result
                LOG.debug("Selected site %s via %s", result.site_name, result.selection_method.value)
                return result
            if outcome.status is StageStatus.FAILED and outcome.error is not None:
                raise outcome.error
            LOG.debug("Stage %s deferred: %s", outcome.stage, outcome.reason)
            attempts.append(outcome)
        raise self._combined_failure(attempts)

    def list_sites(self) -> list[SiteStatus]:
        """Every registered site with whether its MySQL socket is present."""

        sites = self._registry.load()
        run_dir = locate_run_dir(self._settings)
        return [
            SiteStatus(
                id=site_id,
                name=site.name,
                path=str(self._registry.normalize(site.path)),
                domain=site.domain,
                running=socket_path_for(run_dir / site_id).exists(),
            )
            for site_id, site in sites.items()
        ]

    def _explicit_id_stage(self) -> StageOutcome:
        stage = SelectionMethod.EXPLICIT_ID.value
        site_id = self._settings.site_id
        if not site_id:
            return StageOutcome.deferred(stage, "SITE_ID not set")
        LOG.debug("Checking SITE_ID: %s", site_id)
        try:
            sites = self._registry.load()
            site = sites.get(site_id)
            if site is None:
                available = ", ".join(sites) or "<none>"
                raise SiteNotFoundError(
                    f'Site ID "{site_id}" not found in Local configuration. Available IDs: {available}'
                )
            return StageOutcome.resolved(stage, self._from_entry(site, SelectionMethod.EXPLICIT_ID))
        except SiteDetectionError as exc:
            return StageOutcome.failed(stage, exc)

    def _explicit_name_stage(self) -> StageOutcome:
        stage = SelectionMethod.EXPLICIT_NAME.value
        site_name = self._settings.site_name
        if not site_name:
            return StageOutcome.deferred(stage, "SITE_NAME not set")
        LOG.debug("Checking SITE_NAME: %s", site_name)
        try:
            sites = self._registry.load()
            site = self._registry.find_by_name(site_name, sites)
            if site is None:
                available = ", ".join(entry.name for entry in sites.values()) or "<none>"
                raise SiteNotFoundError(f'Site name "{site_name}" not found. Available sites: {available}')
            return StageOutcome.resolved(stage, self._from_entry(site, SelectionMethod.EXPLICIT_NAME))
        except SiteDetectionError as exc:
            return StageOutcome.failed(stage, exc)

    def _cwd_stage(self) -> StageOutcome:
        stage = SelectionMethod.CWD_MATCH.value
        try:
            cwd = self._cwd()
        except OSError as exc:
            return StageOutcome.deferred(stage, f"working directory unavailable: {exc}")
        LOG.debug("Checking CWD for site match: %s", cwd)
        try:
            site = self._registry.find_by_path(cwd)
            if site is None:
                return StageOutcome.deferred(stage, f"{cwd} is not inside a Local site")
            return StageOutcome.resolved(stage, self._from_entry(site, SelectionMethod.CWD_MATCH))
        except SiteDetectionError as exc:
            return StageOutcome.deferred(stage, str(exc), exc)

    def _process_scan_stage(self) -> StageOutcome:
        return self._scan_stage(SelectionMethod.PROCESS_SCAN, self._process_scanner.scan)

    def _filesystem_scan_stage(self) -> StageOutcome:
        return self._scan_stage(SelectionMethod.FILESYSTEM_SCAN, self._filesystem_scanner.scan)

    def _scan_stage(self, method: SelectionMethod, scan: Callable[[], SiteInfo]) -> StageOutcome:
        try:
            site_info = _call_with_timeout(scan, self._settings.scan_timeout)
        except concurrent.futures.TimeoutError:
            return StageOutcome.deferred(
                method.value, f"timed out after {self._settings.scan_timeout:g}s"
            )
        except SiteDetectionError as exc:
            return StageOutcome.deferred(method.value, str(exc), exc)
        return StageOutcome.resolved(method.value, self._enrich(site_info, method))

    def _from_entry(self, site: SiteEntry, method: SelectionMethod) -> SiteSelectionResult:
        run_dir = locate_run_dir(self._settings)
        return SiteSelectionResult(
            site_info=build_site_info_from_entry(site, run_dir),
            site_name=site.name,
            site_path=str(self._registry.normalize(site.path)),
            domain=site.domain,
            selection_method=method,
        )

    def _enrich(self, site_info: SiteInfo, method: SelectionMethod) -> SiteSelectionResult:
        """Attach registry metadata when available, otherwise degrade."""

        site: SiteEntry | None = None
        try:
            site = self._registry.find_by_id(site_info.site_id)
        except ConfigNotFoundError as exc:
            LOG.debug("Registry unavailable for metadata lookup: %s", exc)
        if site is None:
            return SiteSelectionResult(
                site_info=site_info,
                site_name=site_info.site_id,
                site_path=UNKNOWN,
                domain=UNKNOWN,
                selection_method=method,
            )
        return SiteSelectionResult(
            site_info=site_info,
            site_name=site.name,
            site_path=str(self._registry.normalize(site.path)),
            domain=site.domain,
            selection_method=method,
        )

    @staticmethod
    def _combined_failure(attempts: list[StageOutcome]) -> CombinedScanFailureError:
        labels = {
            SelectionMethod.PROCESS_SCAN.value: "process scan",
            SelectionMethod.FILESYSTEM_SCAN.value: "filesystem scan",
        }
        parts = [f"{labels.get(attempt.stage, attempt.stage)}: {attempt.reason}" for attempt in attempts]
        message = f"Error finding active Local socket ({' | '.join(parts)})"
        return CombinedScanFailureError(
            message,
            attempts=[(attempt.stage, attempt.reason or "") for attempt in attempts],
        )


def _call_with_timeout(func: Callable[[], T], timeout: float | None) -> T:
    """Run ``func`` in a worker thread, raising TimeoutError past ``timeout``."""

    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="mcp-local-wp-scan")
    try:
        future = executor.submit(func)
        return future.result(timeout=timeout)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


__all__ = ["SiteSelector", "StageOutcome", "StageStatus"]
