"""Leave request workflow — the state machine that drives the ledger.

Every transition runs inside the caller's transaction: the request row and
the balance row are locked, checked, mutated and flushed together, and
``get_db`` commits or rolls back the whole unit.

Lock order is fixed so concurrent operations cannot deadlock:
    submit                    → users row, then leave_balances row
    approve / reject / cancel → leave_requests row, then leave_balances row
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import NamedTuple, Optional

import sqlalchemy as sa
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.models import User
from leavedesk.common.audit import create_audit_entry
from leavedesk.common.constants import LeaveEvent, LeaveStatus
from leavedesk.common.exceptions import ForbiddenException, NotFoundException
from leavedesk.config import settings
from leavedesk.leave.days import compute_chargeable_days
from leavedesk.leave.exceptions import (
    BalanceNotFound,
    CrossYearRequest,
    InsufficientBalance,
    InvalidRange,
    InvalidStateTransition,
    LedgerInvariantViolation,
    OverlappingRequest,
)
from leavedesk.leave.ledger import LeaveLedger, satisfies_invariant
from leavedesk.leave.models import LeaveBalance, LeaveRequest, LeaveType
from leavedesk.leave.overlap import has_conflict
from leavedesk.leave.schemas import LeaveRequestOut, LeaveTypeBrief, UserBrief

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════
# Transition table
# ═════════════════════════════════════════════════════════════════════


class LedgerEffect(NamedTuple):
    """Multipliers of the request's ``total_days`` applied to a balance."""

    used: int
    pending: int


TRANSITIONS: dict[tuple[Optional[LeaveStatus], LeaveEvent], tuple[LeaveStatus, LedgerEffect]] = {
    (None, LeaveEvent.submit): (LeaveStatus.pending, LedgerEffect(used=0, pending=1)),
    (LeaveStatus.pending, LeaveEvent.approve): (LeaveStatus.approved, LedgerEffect(used=1, pending=-1)),
    (LeaveStatus.pending, LeaveEvent.reject): (LeaveStatus.rejected, LedgerEffect(used=0, pending=-1)),
    (LeaveStatus.pending, LeaveEvent.cancel): (LeaveStatus.cancelled, LedgerEffect(used=0, pending=-1)),
    (LeaveStatus.approved, LeaveEvent.cancel): (LeaveStatus.cancelled, LedgerEffect(used=-1, pending=0)),
}


def transition(
    current: Optional[LeaveStatus],
    event: LeaveEvent,
) -> tuple[LeaveStatus, LedgerEffect]:
    """Look up the target status and ledger effect, or raise InvalidStateTransition."""
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidStateTransition(current, event) from None


class LeaveWorkflow:
    """Async submit / approve / reject / cancel operations."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def build_request_response(
        req: LeaveRequest,
        leave_type: Optional[LeaveType] = None,
        *,
        user: Optional[User] = None,
        approver: Optional[User] = None,
    ) -> LeaveRequestOut:
        """Build LeaveRequestOut from ORM without triggering lazy loads."""
        out = LeaveRequestOut(
            id=req.id,
            user_id=req.user_id,
            leave_type_id=req.leave_type_id,
            start_date=req.start_date,
            end_date=req.end_date,
            total_days=req.total_days,
            reason=req.reason,
            status=req.status,
            approved_by=req.approved_by,
            approved_at=req.approved_at,
            rejection_reason=req.rejection_reason,
            cancelled_at=req.cancelled_at,
            created_at=req.created_at,
            updated_at=req.updated_at,
        )
        if leave_type is None and "leave_type" not in sa.inspect(req).unloaded:
            leave_type = req.leave_type
        if leave_type is not None:
            out.leave_type = LeaveTypeBrief.model_validate(leave_type)
        if user is not None:
            out.user = UserBrief.model_validate(user)
        if approver is not None:
            out.approver = UserBrief.model_validate(approver)
        return out

    @staticmethod
    def _apply_effect(
        balance: LeaveBalance,
        effect: LedgerEffect,
        days: int,
        now: datetime,
    ) -> None:
        used = balance.used_days + effect.used * days
        pending = balance.pending_days + effect.pending * days
        if not satisfies_invariant(balance.total_days, used, pending):
            logger.error(
                "Ledger invariant violated on balance %s: total=%s used=%s pending=%s",
                balance.id, balance.total_days, used, pending,
            )
            raise LedgerInvariantViolation(balance.id)
        balance.used_days = used
        balance.pending_days = pending
        balance.updated_at = now

    @staticmethod
    def request_lock_query(request_id: uuid.UUID) -> Select:
        """Row-locking select for one leave request, refreshed from the database."""
        return (
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    @staticmethod
    def user_lock_query(user_id: uuid.UUID) -> Select:
        """Row-locking select that serialises one user's submissions."""
        return select(User.id).where(User.id == user_id).with_for_update()

    @staticmethod
    async def _lock_request(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
        result = await db.execute(LeaveWorkflow.request_lock_query(request_id))
        req = result.scalars().first()
        if req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return req

    @staticmethod
    async def _lock_balance_for(db: AsyncSession, req: LeaveRequest) -> LeaveBalance:
        balance = await LeaveLedger.lock_balance(
            db, req.user_id, req.leave_type_id, req.year,
        )
        if balance is None:
            raise BalanceNotFound(req.year)
        return balance

    @staticmethod
    async def _finish(
        db: AsyncSession,
        req: LeaveRequest,
        *,
        event: LeaveEvent,
        actor_id: uuid.UUID,
        old_status: Optional[LeaveStatus],
    ) -> LeaveRequestOut:
        await db.flush()
        await create_audit_entry(
            db,
            action=event.value,
            entity_type="leave_request",
            entity_id=req.id,
            actor_id=actor_id,
            old_values={"status": old_status.value if old_status else None},
            new_values={"status": req.status.value, "total_days": req.total_days},
        )
        logger.info(
            "Leave request %s: %s → %s by %s (%d day(s))",
            req.id,
            old_status.value if old_status else "new",
            req.status.value,
            actor_id,
            req.total_days,
        )
        leave_type = await db.get(LeaveType, req.leave_type_id)
        user = await db.get(User, req.user_id)
        approver = None
        if req.approved_by is not None:
            approver = await db.get(User, req.approved_by)
        return LeaveWorkflow.build_request_response(
            req, leave_type, user=user, approver=approver,
        )

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit(
        db: AsyncSession,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        start_date: date,
        end_date: date,
        reason: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Create a pending request and reserve its days on the balance.

        Validation order: range, year, chargeable days, balance, availability,
        overlap. Nothing is written unless every check passes.
        """

        if start_date > end_date:
            raise InvalidRange()
        if start_date.year != end_date.year:
            raise CrossYearRequest(start_date, end_date)

        total_days = compute_chargeable_days(start_date, end_date)
        if total_days == 0:
            raise InvalidRange(
                "The selected range contains no working days.",
                reason="no_working_days",
            )

        # Serialise one user's submissions before touching the balance
        locked_user = await db.execute(LeaveWorkflow.user_lock_query(user_id))
        if locked_user.scalar_one_or_none() is None:
            raise NotFoundException("User", str(user_id))

        balance = await LeaveLedger.lock_balance(
            db, user_id, leave_type_id, start_date.year,
        )
        if balance is None:
            raise BalanceNotFound(start_date.year)

        if total_days > balance.available_days:
            logger.info(
                "Submission refused for user %s: requested %d, available %d",
                user_id, total_days, balance.available_days,
            )
            raise InsufficientBalance(balance.available_days, total_days)

        if await has_conflict(db, user_id, start_date, end_date):
            raise OverlappingRequest()

        new_status, effect = transition(None, LeaveEvent.submit)
        now = datetime.now(timezone.utc)

        req = LeaveRequest(
            id=uuid.uuid4(),
            user_id=user_id,
            leave_type_id=leave_type_id,
            start_date=start_date,
            end_date=end_date,
            total_days=total_days,
            reason=reason,
            status=new_status,
            created_at=now,
            updated_at=now,
        )
        db.add(req)
        LeaveWorkflow._apply_effect(balance, effect, total_days, now)

        return await LeaveWorkflow._finish(
            db, req, event=LeaveEvent.submit, actor_id=user_id, old_status=None,
        )

    # ─────────────────────────────────────────────────────────────────
    # Approve / Reject (admin)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
    ) -> LeaveRequestOut:
        """Move pending days to used."""
        return await LeaveWorkflow._decide(
            db, request_id, approver_id, LeaveEvent.approve,
        )

    @staticmethod
    async def reject(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Release pending days and record the rejection reason."""
        return await LeaveWorkflow._decide(
            db, request_id, approver_id, LeaveEvent.reject, reason=reason,
        )

    @staticmethod
    async def _decide(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        event: LeaveEvent,
        reason: Optional[str] = None,
    ) -> LeaveRequestOut:
        req = await LeaveWorkflow._lock_request(db, request_id)
        old_status = req.status
        new_status, effect = transition(old_status, event)
        balance = await LeaveWorkflow._lock_balance_for(db, req)

        now = datetime.now(timezone.utc)
        LeaveWorkflow._apply_effect(balance, effect, req.total_days, now)
        req.status = new_status
        req.approved_by = approver_id
        req.approved_at = now
        req.updated_at = now
        if event == LeaveEvent.reject:
            req.rejection_reason = reason or settings.DEFAULT_REJECTION_REASON

        return await LeaveWorkflow._finish(
            db, req, event=event, actor_id=approver_id, old_status=old_status,
        )

    # ─────────────────────────────────────────────────────────────────
    # Cancel (owner)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel(
        db: AsyncSession,
        request_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> LeaveRequestOut:
        """Cancel a pending or approved request, returning its days to the balance."""

        req = await LeaveWorkflow._lock_request(db, request_id)
        if req.user_id != user_id:
            raise ForbiddenException("You can only cancel your own leave requests.")

        old_status = req.status
        new_status, effect = transition(old_status, LeaveEvent.cancel)
        balance = await LeaveWorkflow._lock_balance_for(db, req)

        now = datetime.now(timezone.utc)
        LeaveWorkflow._apply_effect(balance, effect, req.total_days, now)
        req.status = new_status
        req.cancelled_at = now
        req.updated_at = now

        return await LeaveWorkflow._finish(
            db, req, event=LeaveEvent.cancel, actor_id=user_id, old_status=old_status,
        )
