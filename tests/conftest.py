"""Shared fixtures building a fake Local installation under tmp_path."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Callable

import pytest

from mcp_local_wp.config import Settings


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def local_root(tmp_path: Path) -> Path:
    root = tmp_path / "Local"
    (root / "run").mkdir(parents=True)
    return root


@pytest.fixture
def settings(tmp_path: Path, local_root: Path) -> Settings:
    return Settings(
        run_dir=local_root / "run",
        sites_json=local_root / "sites.json",
        home=tmp_path,
        platform="linux",
        scan_timeout=5.0,
    )


@pytest.fixture
def make_site(local_root: Path) -> Callable[..., Path]:
    """Create ``run/<id>`` with a my.cnf and optionally a socket; returns the my.cnf path."""

    def _make(
        site_id: str,
        *,
        port: int | None = 10004,
        running: bool = True,
        mtime: float | None = None,
    ) -> Path:
        site_dir = local_root / "run" / site_id
        config_path = site_dir / "conf" / "mysql" / "my.cnf"
        config_path.parent.mkdir(parents=True, exist_ok=True)
        lines = ["[mysqld]", "bind-address = 127.0.0.1"]
        if port is not None:
            lines.append(f"port = {port}")
        config_path.write_text("\n".join(lines) + "\n")
        if running:
            socket_path = site_dir / "mysql" / "mysqld.sock"
            socket_path.parent.mkdir(parents=True, exist_ok=True)
            socket_path.write_text("")
            if mtime is not None:
                os.utime(socket_path, (mtime, mtime))
        return config_path

    return _make


@pytest.fixture
def write_registry(local_root: Path) -> Callable[[dict[str, Any]], Path]:
    def _write(sites: dict[str, Any]) -> Path:
        path = local_root / "sites.json"
        path.write_text(json.dumps(sites))
        return path

    return _write


def site_row(name: str, path: str, domain: str | None = None, mysql_port: int | None = None) -> dict[str, Any]:
    row: dict[str, Any] = {"name": name, "path": path, "domain": domain or f"{name.lower()}.local"}
    if mysql_port is not None:
        row["services"] = {"mysql": {"name": "mysql", "version": "8.0.16", "ports": {"MYSQL": [mysql_port]}}}
    return row


@pytest.fixture
def row() -> Callable[..., dict[str, Any]]:
    return site_row
