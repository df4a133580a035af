"""Tests for the site selection priority chain."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable

import pytest

from mcp_local_wp.config import Settings
from mcp_local_wp.errors import (
    CombinedScanFailureError,
    ConfigNotFoundError,
    NoActiveProcessError,
    NoRunningSitesError,
    SiteNotFoundError,
    SiteNotRunningError,
)
from mcp_local_wp.models import SelectionMethod, SiteInfo
from mcp_local_wp.runtime import build_site_info
from mcp_local_wp.selection import SiteSelector


class _ScannerStub:
    def __init__(self, result: Callable[[], SiteInfo] | None = None, error: Exception | None = None) -> None:
        self._result = result
        self._error = error
        self.calls = 0

    def scan(self) -> SiteInfo:
        self.calls += 1
        if self._error is not None:
            raise self._error
        assert self._result is not None
        return self._result()


def _failing_process() -> _ScannerStub:
    return _ScannerStub(error=NoActiveProcessError("No active MySQL process found."))


def _failing_filesystem() -> _ScannerStub:
    return _ScannerStub(error=NoRunningSitesError("No running Local sites found via filesystem scan."))


def _selector(
    settings: Settings,
    *,
    process: _ScannerStub | None = None,
    filesystem: _ScannerStub | None = None,
    cwd: str = "/",
) -> SiteSelector:
    return SiteSelector(
        settings,
        process_scanner=process or _failing_process(),  # type: ignore[arg-type]
        filesystem_scanner=filesystem or _failing_filesystem(),  # type: ignore[arg-type]
        cwd=lambda: cwd,
    )


def test_explicit_name_is_case_insensitive(settings: Settings, make_site, write_registry, row) -> None:
    make_site("abc")
    make_site("xyz")
    write_registry({"abc": row("My Site", "/srv/my-site", "my-site.local"), "xyz": row("Other", "/srv/other")})
    process, filesystem = _failing_process(), _failing_filesystem()
    selector = _selector(settings.model_copy(update={"site_name": "my site"}), process=process, filesystem=filesystem)

    result = selector.resolve()

    assert result.site_info.site_id == "abc"
    assert result.selection_method is SelectionMethod.EXPLICIT_NAME
    assert result.site_name == "My Site"
    assert result.domain == "my-site.local"
    assert result.site_path == str(Path("/srv/my-site"))
    assert process.calls == 0 and filesystem.calls == 0


def test_explicit_id_resolves_from_registry(settings: Settings, make_site, write_registry, row) -> None:
    make_site("abc", port=10004)
    write_registry({"abc": row("My Site", "/srv/my-site", mysql_port=10011)})

    result = _selector(settings.model_copy(update={"site_id": "abc"})).resolve()

    assert result.selection_method is SelectionMethod.EXPLICIT_ID
    assert result.site_info.port == 10011
    assert result.site_info.socket_path.exists()


def test_unknown_explicit_id_never_scans(settings: Settings, make_site, write_registry, row) -> None:
    make_site("abc")
    write_registry({"abc": row("My Site", "/srv/my-site")})
    process = _ScannerStub(result=lambda: build_site_info(Path("/unused")))
    filesystem = _ScannerStub(result=lambda: build_site_info(Path("/unused")))
    selector = _selector(
        settings.model_copy(update={"site_id": "missing"}),
        process=process,
        filesystem=filesystem,
        cwd="/srv/my-site",
    )

    with pytest.raises(SiteNotFoundError, match='Site ID "missing" not found.*Available IDs: abc'):
        selector.resolve()

    assert process.calls == 0
    assert filesystem.calls == 0


def test_unknown_explicit_name_never_scans(settings: Settings, write_registry, row) -> None:
    write_registry({"abc": row("My Site", "/srv/my-site"), "xyz": row("Other", "/srv/other")})
    process, filesystem = _failing_process(), _failing_filesystem()
    selector = _selector(settings.model_copy(update={"site_name": "nope"}), process=process, filesystem=filesystem)

    with pytest.raises(SiteNotFoundError, match="Available sites: My Site, Other"):
        selector.resolve()

    assert process.calls == 0 and filesystem.calls == 0


def test_explicit_id_for_stopped_site_is_terminal(settings: Settings, make_site, write_registry, row) -> None:
    make_site("abc", running=False)
    make_site("other")
    write_registry({"abc": row("My Site", "/srv/my-site")})
    filesystem = _ScannerStub(result=lambda: build_site_info(make_site("other")))
    selector = _selector(settings.model_copy(update={"site_id": "abc"}), filesystem=filesystem)

    with pytest.raises(SiteNotRunningError):
        selector.resolve()

    assert filesystem.calls == 0


def test_explicit_id_without_registry_is_terminal(settings: Settings) -> None:
    process = _failing_process()
    selector = _selector(settings.model_copy(update={"site_id": "abc"}), process=process)

    with pytest.raises(ConfigNotFoundError):
        selector.resolve()

    assert process.calls == 0


def test_explicit_id_takes_priority_over_name(settings: Settings, make_site, write_registry, row) -> None:
    make_site("abc")
    make_site("xyz")
    write_registry({"abc": row("My Site", "/srv/a"), "xyz": row("Other", "/srv/b")})

    result = _selector(settings.model_copy(update={"site_id": "xyz", "site_name": "My Site"})).resolve()

    assert result.site_info.site_id == "xyz"
    assert result.selection_method is SelectionMethod.EXPLICIT_ID


def test_cwd_inside_site_selects_it(settings: Settings, tmp_path: Path, make_site, write_registry, row) -> None:
    make_site("abc")
    make_site("xyz")
    write_registry({"abc": row("My Site", "~/Local Sites/a"), "xyz": row("Other", "~/Local Sites/b")})
    process = _failing_process()
    selector = _selector(settings, process=process, cwd=str(tmp_path / "Local Sites" / "b" / "app" / "public"))

    result = selector.resolve()

    assert result.site_info.site_id == "xyz"
    assert result.selection_method is SelectionMethod.CWD_MATCH
    assert result.site_path == str(tmp_path / "Local Sites" / "b")
    assert process.calls == 0


def test_cwd_match_on_stopped_site_falls_through(
    settings: Settings, tmp_path: Path, make_site, write_registry, row
) -> None:
    make_site("abc", running=False)
    live = make_site("xyz")
    write_registry({"abc": row("My Site", "~/a"), "xyz": row("Other", "~/b", "other.local")})
    process = _ScannerStub(result=lambda: build_site_info(live))

    result = _selector(settings, process=process, cwd=str(tmp_path / "a")).resolve()

    assert result.selection_method is SelectionMethod.PROCESS_SCAN
    assert result.site_name == "Other"
    assert result.domain == "other.local"


def test_process_scan_without_registry_degrades_metadata(settings: Settings, make_site) -> None:
    live = make_site("abc")
    process = _ScannerStub(result=lambda: build_site_info(live))

    result = _selector(settings, process=process).resolve()

    assert result.selection_method is SelectionMethod.PROCESS_SCAN
    assert result.site_name == "abc"
    assert result.site_path == "unknown"
    assert result.domain == "unknown"


def test_process_scan_site_missing_from_registry_degrades(settings: Settings, make_site, write_registry, row) -> None:
    live = make_site("ghost")
    write_registry({"abc": row("My Site", "/srv/a")})

    result = _selector(settings, process=_ScannerStub(result=lambda: build_site_info(live))).resolve()

    assert result.site_name == "ghost"
    assert result.domain == "unknown"


def test_filesystem_scan_used_when_process_scan_fails(settings: Settings, make_site, write_registry, row) -> None:
    live = make_site("abc")
    write_registry({"abc": row("My Site", "/srv/a", "a.local")})
    process = _failing_process()
    filesystem = _ScannerStub(result=lambda: build_site_info(live))

    result = _selector(settings, process=process, filesystem=filesystem).resolve()

    assert result.selection_method is SelectionMethod.FILESYSTEM_SCAN
    assert result.site_name == "My Site"
    assert process.calls == 1 and filesystem.calls == 1


def test_both_scans_failing_raises_combined_error(settings: Settings) -> None:
    selector = _selector(settings)

    with pytest.raises(CombinedScanFailureError) as excinfo:
        selector.resolve()

    message = str(excinfo.value)
    assert "process scan: No active MySQL process found." in message
    assert "filesystem scan: No running Local sites found via filesystem scan." in message
    assert "explicit-id: SITE_ID not set" in message
    assert "explicit-name: SITE_NAME not set" in message
    assert "cwd-match: " in message
    stages = [stage for stage, _ in excinfo.value.attempts]
    assert stages == ["explicit-id", "explicit-name", "cwd-match", "process-scan", "filesystem-scan"]


def test_hung_process_scan_times_out_and_falls_through(settings: Settings, make_site) -> None:
    live = make_site("abc")
    release = threading.Event()

    def _hang() -> SiteInfo:
        release.wait(5)
        raise NoActiveProcessError("released")

    process = _ScannerStub(result=_hang)
    filesystem = _ScannerStub(result=lambda: build_site_info(live))
    selector = _selector(settings.model_copy(update={"scan_timeout": 0.2}), process=process, filesystem=filesystem)

    try:
        result = selector.resolve()
    finally:
        release.set()

    assert result.selection_method is SelectionMethod.FILESYSTEM_SCAN


def test_real_scanners_are_used_by_default(settings: Settings, make_site, monkeypatch: pytest.MonkeyPatch) -> None:
    make_site("old", mtime=1_000_000)
    make_site("new", mtime=2_000_000)
    monkeypatch.setattr("mcp_local_wp.scanners.list_command_lines", lambda **kwargs: ["bash"])
    selector = SiteSelector(settings, cwd=lambda: "/")

    result = selector.resolve()

    assert result.site_info.site_id == "new"
    assert result.selection_method is SelectionMethod.FILESYSTEM_SCAN


def test_list_sites_reports_running_state(settings: Settings, tmp_path: Path, make_site, write_registry, row) -> None:
    make_site("abc")
    make_site("xyz", running=False)
    write_registry({"abc": row("My Site", "~/a", "a.local"), "xyz": row("Other", "~/b", "b.local")})

    sites = _selector(settings).list_sites()

    assert [(site.id, site.running) for site in sites] == [("abc", True), ("xyz", False)]
    assert sites[0].path == str(tmp_path / "a")
    assert sites[1].to_dict()["domain"] == "b.local"


def test_unreadable_run_dir_becomes_combined_failure(settings: Settings, make_site, monkeypatch: pytest.MonkeyPatch) -> None:
    make_site("abc")

    def _deny(self: Path):
        raise PermissionError(13, "Permission denied", str(self))

    monkeypatch.setattr(Path, "iterdir", _deny)
    selector = SiteSelector(settings, process_scanner=_failing_process(), cwd=lambda: "/")  # type: ignore[arg-type]

    with pytest.raises(CombinedScanFailureError) as excinfo:
        selector.resolve()

    assert "filesystem scan: Cannot read Local run directory" in str(excinfo.value)


def test_deleted_working_directory_falls_through(settings: Settings, make_site) -> None:
    live = make_site("abc")

    def _gone() -> str:
        raise FileNotFoundError(2, "No such file or directory")

    selector = SiteSelector(
        settings,
        process_scanner=_ScannerStub(result=lambda: build_site_info(live)),  # type: ignore[arg-type]
        filesystem_scanner=_failing_filesystem(),  # type: ignore[arg-type]
        cwd=_gone,
    )

    result = selector.resolve()

    assert result.selection_method is SelectionMethod.PROCESS_SCAN
