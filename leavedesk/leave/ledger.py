"""Leave balance ledger — per (user, leave type, year) allotment rows.

Owns balance creation, the read projection, the admin allotment override,
and the locked read the workflow uses before mutating ``used_days`` /
``pending_days``. The counters themselves are only changed by
``leavedesk.leave.workflow``.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import Select, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import contains_eager

from leavedesk.auth.models import User
from leavedesk.common.audit import create_audit_entry
from leavedesk.common.exceptions import NotFoundException
from leavedesk.leave.exceptions import InvalidBalanceTotal
from leavedesk.leave.models import LeaveBalance, LeaveType
from leavedesk.leave.schemas import LeaveBalanceOut, LeaveTypeBrief

logger = logging.getLogger(__name__)

_BALANCE_KEY = ["user_id", "leave_type_id", "year"]


def satisfies_invariant(total_days: int, used_days: int, pending_days: int) -> bool:
    """``used >= 0 and pending >= 0 and used + pending <= total``."""
    return used_days >= 0 and pending_days >= 0 and used_days + pending_days <= total_days


class LeaveLedger:
    """Async balance operations: read, initialise, lock, override."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def balance_lock_query(
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
    ) -> Select:
        """SELECT … FOR UPDATE on one balance row, bypassing the identity map."""
        return (
            select(LeaveBalance)
            .where(
                LeaveBalance.user_id == user_id,
                LeaveBalance.leave_type_id == leave_type_id,
                LeaveBalance.year == year,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    @staticmethod
    def build_balance_response(bal: LeaveBalance) -> LeaveBalanceOut:
        """Build LeaveBalanceOut from ORM, embedding the leave type if loaded."""
        out = LeaveBalanceOut(
            id=bal.id,
            user_id=bal.user_id,
            leave_type_id=bal.leave_type_id,
            year=bal.year,
            total_days=bal.total_days,
            used_days=bal.used_days,
            pending_days=bal.pending_days,
            available_days=bal.available_days,
            updated_at=bal.updated_at,
        )
        if "leave_type" not in sa.inspect(bal).unloaded and bal.leave_type is not None:
            out.leave_type = LeaveTypeBrief.model_validate(bal.leave_type)
        return out

    @staticmethod
    def _insert_ignoring_duplicates(db: AsyncSession):
        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(LeaveBalance).on_conflict_do_nothing(index_elements=_BALANCE_KEY)
        if dialect == "sqlite":
            return sqlite_insert(LeaveBalance).on_conflict_do_nothing(index_elements=_BALANCE_KEY)
        return sa.insert(LeaveBalance)

    # ─────────────────────────────────────────────────────────────────
    # Locked read (workflow only)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def lock_balance(
        db: AsyncSession,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
    ) -> Optional[LeaveBalance]:
        """Return the balance row locked for the rest of the transaction."""
        result = await db.execute(
            LeaveLedger.balance_lock_query(user_id, leave_type_id, year)
        )
        return result.scalars().first()

    # ─────────────────────────────────────────────────────────────────
    # Read projection
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        user_id: uuid.UUID,
        year: int,
    ) -> list[LeaveBalanceOut]:
        """All balances of a user for *year*, with leave type name/colour."""

        result = await db.execute(
            select(LeaveBalance)
            .join(LeaveBalance.leave_type)
            .where(
                LeaveBalance.user_id == user_id,
                LeaveBalance.year == year,
            )
            .options(contains_eager(LeaveBalance.leave_type))
            .order_by(LeaveType.name)
            .execution_options(populate_existing=True)
        )
        return [
            LeaveLedger.build_balance_response(bal)
            for bal in result.unique().scalars().all()
        ]

    # ─────────────────────────────────────────────────────────────────
    # Initialise
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def initialize(
        db: AsyncSession,
        user_id: uuid.UUID,
        year: int,
    ) -> list[LeaveBalanceOut]:
        """Create missing balance rows for every leave type; never overwrite.

        Repeated or concurrent calls are no-ops for rows that already exist.
        """

        known = await db.execute(select(User.id).where(User.id == user_id))
        if known.scalar_one_or_none() is None:
            raise NotFoundException("User", str(user_id))

        existing = await db.execute(
            select(LeaveBalance.leave_type_id).where(
                LeaveBalance.user_id == user_id,
                LeaveBalance.year == year,
            )
        )
        existing_type_ids = set(existing.scalars().all())

        types = await db.execute(select(LeaveType.id, LeaveType.default_days))
        now = datetime.now(timezone.utc)
        new_rows = [
            {
                "id": uuid.uuid4(),
                "user_id": user_id,
                "leave_type_id": type_id,
                "year": year,
                "total_days": default_days,
                "used_days": 0,
                "pending_days": 0,
                "updated_at": now,
            }
            for type_id, default_days in types.all()
            if type_id not in existing_type_ids
        ]

        if new_rows:
            await db.execute(LeaveLedger._insert_ignoring_duplicates(db), new_rows)
            logger.info(
                "Initialised %d leave balance(s) for user %s in %d",
                len(new_rows), user_id, year,
            )

        return await LeaveLedger.get_balances(db, user_id, year)

    # ─────────────────────────────────────────────────────────────────
    # Admin override
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def override_total(
        db: AsyncSession,
        balance_id: uuid.UUID,
        new_total: int,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalanceOut:
        """Replace a balance's allotment, refusing to go below committed days."""

        result = await db.execute(
            select(LeaveBalance)
            .where(LeaveBalance.id == balance_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        balance = result.scalars().first()
        if balance is None:
            raise NotFoundException("LeaveBalance", str(balance_id))

        committed = balance.used_days + balance.pending_days
        if not satisfies_invariant(new_total, balance.used_days, balance.pending_days):
            logger.info(
                "Rejected allotment override on %s: %s < committed %s",
                balance_id, new_total, committed,
            )
            raise InvalidBalanceTotal(new_total, committed)

        old_total = balance.total_days
        balance.total_days = new_total
        balance.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action="override",
            entity_type="leave_balance",
            entity_id=balance.id,
            actor_id=actor_id,
            old_values={"total_days": old_total},
            new_values={"total_days": new_total},
        )
        logger.info(
            "Balance %s allotment changed %s → %s by %s",
            balance_id, old_total, new_total, actor_id,
        )

        return LeaveLedger.build_balance_response(balance)
