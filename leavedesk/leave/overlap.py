"""Overlap check between a candidate date range and a user's active requests."""

from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.constants import ACTIVE_LEAVE_STATUSES
from leavedesk.leave.models import LeaveRequest


async def has_conflict(
    db: AsyncSession,
    user_id: uuid.UUID,
    start: date,
    end: date,
) -> bool:
    """True if a pending/approved request of *user_id* intersects ``[start, end]``.

    Not scoped by leave type: any active request blocks the dates.
    """
    result = await db.execute(
        select(func.count()).select_from(LeaveRequest).where(
            LeaveRequest.user_id == user_id,
            LeaveRequest.status.in_(ACTIVE_LEAVE_STATUSES),
            LeaveRequest.start_date <= end,
            LeaveRequest.end_date >= start,
        )
    )
    return result.scalar_one() > 0
