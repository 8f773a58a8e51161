"""
Daemon that periodically deletes expired admin sessions.
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from portfolio.dependencies import get_auth_service

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Expired session cleanup")
    parser.add_argument(
        "--interval-seconds",
        type=int,
        default=3600,
        help="Seconds between cleanup runs",
    )
    parser.add_argument(
        "--jitter-seconds",
        type=int,
        default=60,
        help="Max random jitter added to sleep",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cleanup and exit",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    auth = get_auth_service()

    while True:
        try:
            removed = auth.cleanup_expired()
            logger.info("Cleanup complete, removed %d sessions", removed)
        except Exception as exc:
            logger.exception("Cleanup failed: %s", exc)

        if args.once:
            return 0

        sleep_for = args.interval_seconds + random.uniform(0, args.jitter_seconds)
        logger.info("Sleeping for %.1fs", sleep_for)
        time.sleep(sleep_for)


if __name__ == "__main__":
    raise SystemExit(main())
