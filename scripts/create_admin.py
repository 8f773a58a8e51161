"""
Create the admin account, or reset its password.

Resetting a password also revokes every session of that user.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from portfolio.config import get_settings
from portfolio.dependencies import get_auth_service
from portfolio.errors import PortfolioError

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Create or reset the admin user")
    parser.add_argument("username", help="Admin username")
    parser.add_argument(
        "--password",
        default=None,
        help="Password (prompted for when omitted)",
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Reset the password of an existing user instead of creating one",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    if not get_settings().database_url:
        logger.warning("DATABASE_URL is not set; the account will not persist")

    password = args.password or getpass.getpass("Password: ")
    auth = get_auth_service()
    try:
        if args.reset:
            auth.reset_password(args.username, password)
            logger.info("Password reset for %s", args.username)
        else:
            auth.create_admin(args.username, password)
            logger.info("Admin %s created", args.username)
    except PortfolioError as exc:
        logger.error("%s", exc.message)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
