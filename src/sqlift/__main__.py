"""Module entrypoint for ``python -m sqlift``."""

from __future__ import annotations

from sqlift.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
