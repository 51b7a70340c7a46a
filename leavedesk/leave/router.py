"""Leave router — submit, approve/reject/cancel, balances, catalog, summary.

All endpoints require authentication. Approval, admin listings, allotment
overrides and the summary require the admin role; cancel is owner-only.
"""


import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.dependencies import get_current_user, require_admin
from leavedesk.auth.models import User
from leavedesk.common.constants import LeaveStatus
from leavedesk.common.pagination import PaginationParams
from leavedesk.common.rate_limit import limiter
from leavedesk.config import settings
from leavedesk.database import get_db
from leavedesk.leave.ledger import LeaveLedger
from leavedesk.leave.reports import LeaveReports
from leavedesk.leave.schemas import (
    BalanceOverrideRequest,
    LeaveBalanceOut,
    LeaveRejectRequest,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveRequestPage,
    LeaveSummaryOut,
    LeaveTypeOut,
)
from leavedesk.leave.workflow import LeaveWorkflow

router = APIRouter(prefix="", tags=["leave"])


def _current_year() -> int:
    return datetime.now(timezone.utc).year


# ── POST /requests ──────────────────────────────────────────────────

@router.post("/requests", response_model=LeaveRequestOut)
@limiter.limit(settings.SUBMIT_RATE_LIMIT)
async def submit_leave(
    request: Request,
    body: LeaveRequestCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Submit a leave request. Reserves its working days on the balance."""
    return await LeaveWorkflow.submit(
        db,
        user.id,
        body.leave_type_id,
        body.start_date,
        body.end_date,
        reason=body.reason,
    )


# ── GET /requests ───────────────────────────────────────────────────

@router.get("/requests", response_model=list[LeaveRequestOut])
async def my_requests(
    status: Optional[LeaveStatus] = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The authenticated user's leave requests."""
    return await LeaveReports.list_user_requests(db, user.id, status=status)


# ── GET /requests/all ───────────────────────────────────────────────

@router.get("/requests/all", response_model=LeaveRequestPage)
async def all_requests(
    status: Optional[LeaveStatus] = Query(None),
    pagination: PaginationParams = Depends(),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Every user's leave requests (admin)."""
    return await LeaveReports.list_requests(
        db, status=status, page=pagination.page, page_size=pagination.page_size,
    )


# ── PUT /requests/{id}/approve ──────────────────────────────────────

@router.put("/requests/{request_id}/approve", response_model=LeaveRequestOut)
async def approve_leave(
    request_id: uuid.UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Approve a pending leave request."""
    return await LeaveWorkflow.approve(db, request_id, admin.id)


# ── PUT /requests/{id}/reject ───────────────────────────────────────

@router.put("/requests/{request_id}/reject", response_model=LeaveRequestOut)
async def reject_leave(
    request_id: uuid.UUID,
    body: Optional[LeaveRejectRequest] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Reject a pending leave request."""
    reason = body.reason if body is not None else None
    return await LeaveWorkflow.reject(db, request_id, admin.id, reason=reason)


# ── PUT /requests/{id}/cancel ───────────────────────────────────────

@router.put("/requests/{request_id}/cancel", response_model=LeaveRequestOut)
async def cancel_leave(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel your own pending or approved leave request."""
    return await LeaveWorkflow.cancel(db, request_id, user.id)


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=list[LeaveBalanceOut])
async def my_balances(
    year: Optional[int] = Query(None, ge=1900, le=9999),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The authenticated user's balances for *year*."""
    return await LeaveLedger.get_balances(db, user.id, year or _current_year())


# ── POST /balances/initialize ───────────────────────────────────────

@router.post("/balances/initialize", response_model=list[LeaveBalanceOut])
async def initialize_my_balances(
    year: Optional[int] = Query(None, ge=1900, le=9999),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Create any missing balances for the authenticated user."""
    return await LeaveLedger.initialize(db, user.id, year or _current_year())


# ── POST /users/{user_id}/balances/initialize ───────────────────────

@router.post(
    "/users/{user_id}/balances/initialize",
    response_model=list[LeaveBalanceOut],
)
async def initialize_user_balances(
    user_id: uuid.UUID,
    year: Optional[int] = Query(None, ge=1900, le=9999),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create any missing balances for another user (admin)."""
    return await LeaveLedger.initialize(db, user_id, year or _current_year())


# ── PUT /balances/{id} ──────────────────────────────────────────────

@router.put("/balances/{balance_id}", response_model=LeaveBalanceOut)
async def override_balance(
    balance_id: uuid.UUID,
    body: BalanceOverrideRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Replace a balance's yearly allotment (admin)."""
    return await LeaveLedger.override_total(
        db, balance_id, body.total_days, actor_id=admin.id,
    )


# ── GET /types ──────────────────────────────────────────────────────

@router.get("/types", response_model=list[LeaveTypeOut])
async def leave_types(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Leave categories available for requests."""
    return await LeaveReports.get_leave_types(db)


# ── GET /summary ────────────────────────────────────────────────────

@router.get("/summary", response_model=LeaveSummaryOut)
async def leave_summary(
    year: Optional[int] = Query(None, ge=1900, le=9999),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Yearly request counts by status, leave type and month (admin)."""
    return await LeaveReports.get_summary(db, year or _current_year())
