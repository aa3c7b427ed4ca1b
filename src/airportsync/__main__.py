"""Console entrypoint for airportsync.

Delegates to :mod:`airportsync.cli` so that ``python -m airportsync`` and
the installed ``airportsync`` console script run the same code.
"""

from __future__ import annotations

from airportsync.cli import main as cli_main


def main() -> None:
    """Application entrypoint (delegates to :func:`airportsync.cli.main`)."""
    raise SystemExit(cli_main())


if __name__ == "__main__":
    main()
