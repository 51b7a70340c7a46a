#!/usr/bin/env python3
"""Initialise leave balances for a year.

Creates the missing balance rows (one per leave type, allotted the type's
default days) for every active user, or for a single user. Existing rows are
never touched, so the script is safe to re-run.

Usage:
    python scripts/init_leave_balances.py --year 2026
    python scripts/init_leave_balances.py --year 2026 --user-id <uuid>

Exit codes:
    0 = all users initialised
    1 = unknown user or storage failure (the failing user's changes are rolled back)
"""

import argparse
import asyncio
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path

# ── Path setup ────────────────────────────────────────────────────────
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

from dotenv import load_dotenv

load_dotenv(PROJECT_ROOT / ".env")

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from leavedesk.auth.models import User
from leavedesk.common.exceptions import NotFoundException
from leavedesk.database import async_session_factory, engine
from leavedesk.leave.ledger import LeaveLedger

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger("init_leave_balances")


async def _user_ids(user_id: uuid.UUID | None) -> list[uuid.UUID]:
    if user_id is not None:
        return [user_id]
    async with async_session_factory() as session:
        result = await session.execute(
            select(User.id).where(User.is_active.is_(True)).order_by(User.username)
        )
        return list(result.scalars().all())


async def run(year: int, user_id: uuid.UUID | None) -> int:
    failures = 0
    ids = await _user_ids(user_id)
    logger.info("Initialising %d user(s) for %d", len(ids), year)

    for uid in ids:
        # One transaction per user; a failure leaves the others committed.
        async with async_session_factory() as session:
            try:
                balances = await LeaveLedger.initialize(session, uid, year)
                await session.commit()
            except SQLAlchemyError:
                await session.rollback()
                logger.exception("Failed to initialise balances for user %s", uid)
                failures += 1
                continue
            except NotFoundException:
                await session.rollback()
                logger.error("User %s does not exist", uid)
                failures += 1
                continue
        logger.info("User %s: %d balance(s) for %d", uid, len(balances), year)

    await engine.dispose()
    return 1 if failures else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Initialise leave balances for a year")
    parser.add_argument(
        "--year",
        type=int,
        default=datetime.now(timezone.utc).year,
        help="Ledger year (default: current UTC year)",
    )
    parser.add_argument(
        "--user-id",
        type=uuid.UUID,
        default=None,
        help="Only initialise this user",
    )
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args.year, args.user_id)))


if __name__ == "__main__":
    main()
