"""Module entrypoint to run `python -m mcp_local_wp`."""

from __future__ import annotations

from .app import main

if __name__ == "__main__":
    main()
