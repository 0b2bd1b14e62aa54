"""Entry point for `python -m gardenwatch`.

Usage:
    python -m gardenwatch
    uv run python -m gardenwatch
"""

from __future__ import annotations

import asyncio

from gardenwatch.app import main


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
