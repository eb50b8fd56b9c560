"""Entry point for `python -m procsync` and the `procsync` console script."""

from __future__ import annotations

from procsync.cli.app import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
