"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
  - *Brief              → compact embedded representations
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from leavedesk.common.constants import LeaveStatus
from leavedesk.common.pagination import PaginationMeta


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeBrief(BaseModel):
    """Display-only leave type info embedded in balances and requests."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    color: str


class UserBrief(BaseModel):
    """Requester or approver identity embedded in leave requests."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    username: str
    email: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Type
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeOut(BaseModel):
    """Full leave type representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: Optional[str] = None
    default_days: int
    requires_approval: bool = True
    color: str
    created_at: datetime
    updated_at: datetime


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """Balance for a single leave type.

    ``available_days`` is ``total_days - used_days - pending_days``; it is the
    figure submissions are checked against.
    """

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int
    total_days: int
    used_days: int
    pending_days: int
    available_days: int
    updated_at: Optional[datetime] = None

    leave_type: Optional[LeaveTypeBrief] = None


class BalanceOverrideRequest(BaseModel):
    """Admin payload for replacing a balance's allotment."""

    total_days: int = Field(..., ge=0, description="New allotment for the year")


# ═════════════════════════════════════════════════════════════════════
# Leave Request
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting a leave request.

    Date ordering is checked by the workflow so the caller receives an
    ``InvalidRange`` outcome rather than a schema error.
    """

    leave_type_id: uuid.UUID
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    reason: Optional[str] = Field(None, max_length=1000)


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    total_days: int
    reason: Optional[str] = None
    status: LeaveStatus
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    leave_type: Optional[LeaveTypeBrief] = None
    user: Optional[UserBrief] = None
    approver: Optional[UserBrief] = None


class LeaveRejectRequest(BaseModel):
    """Payload for rejecting a leave request."""

    reason: Optional[str] = Field(None, max_length=500)


class LeaveRequestPage(BaseModel):
    """Paginated admin listing."""

    data: list[LeaveRequestOut]
    meta: PaginationMeta


# ═════════════════════════════════════════════════════════════════════
# Summary
# ═════════════════════════════════════════════════════════════════════


class StatusCount(BaseModel):
    status: LeaveStatus
    count: int


class LeaveTypeCount(BaseModel):
    leave_type_id: uuid.UUID
    leave_type_name: str
    count: int
    total_days: int


class MonthCount(BaseModel):
    month: int
    count: int


class LeaveSummaryOut(BaseModel):
    """Dashboard aggregates for one calendar year."""

    year: int
    by_status: list[StatusCount]
    by_type: list[LeaveTypeCount]
    by_month: list[MonthCount]
