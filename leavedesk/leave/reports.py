"""Read-only leave reporting: request listings, catalog, yearly summary."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leavedesk.auth.models import User
from leavedesk.common.constants import LeaveStatus
from leavedesk.common.pagination import paginate
from leavedesk.leave.models import LeaveRequest, LeaveType
from leavedesk.leave.schemas import (
    LeaveRequestOut,
    LeaveRequestPage,
    LeaveSummaryOut,
    LeaveTypeCount,
    LeaveTypeOut,
    MonthCount,
    StatusCount,
)
from leavedesk.leave.workflow import LeaveWorkflow


def _year_bounds(year: int) -> tuple[date, date]:
    return date(year, 1, 1), date(year, 12, 31)


async def _load_people(
    db: AsyncSession, requests: list[LeaveRequest]
) -> dict[uuid.UUID, User]:
    """Requesters and approvers of *requests*, keyed by id, in one query."""
    ids = {req.user_id for req in requests}
    ids.update(req.approved_by for req in requests if req.approved_by is not None)
    if not ids:
        return {}
    result = await db.execute(select(User).where(User.id.in_(ids)))
    return {u.id: u for u in result.scalars().all()}


class LeaveReports:

    # ─────────────────────────────────────────────────────────────────
    # Catalog
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave_types(db: AsyncSession) -> list[LeaveTypeOut]:
        result = await db.execute(select(LeaveType).order_by(LeaveType.name))
        return [LeaveTypeOut.model_validate(lt) for lt in result.scalars().all()]

    # ─────────────────────────────────────────────────────────────────
    # Listings
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def list_user_requests(
        db: AsyncSession,
        user_id: uuid.UUID,
        status: Optional[LeaveStatus] = None,
    ) -> list[LeaveRequestOut]:
        """A user's own requests, latest start date first."""
        query = (
            select(LeaveRequest)
            .where(LeaveRequest.user_id == user_id)
            .options(selectinload(LeaveRequest.leave_type))
            .order_by(LeaveRequest.start_date.desc(), LeaveRequest.created_at.desc())
            .execution_options(populate_existing=True)
        )
        if status is not None:
            query = query.where(LeaveRequest.status == status)

        result = await db.execute(query)
        requests = list(result.scalars().all())
        people = await _load_people(db, requests)
        return [
            LeaveWorkflow.build_request_response(
                req,
                user=people.get(req.user_id),
                approver=people.get(req.approved_by),
            )
            for req in requests
        ]

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        *,
        status: Optional[LeaveStatus] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> LeaveRequestPage:
        """Every user's requests for admins, newest first, paginated."""
        query = select(LeaveRequest).order_by(
            LeaveRequest.created_at.desc(), LeaveRequest.id
        )
        if status is not None:
            query = query.where(LeaveRequest.status == status)

        rows, meta = await paginate(db, query, page=page, page_size=page_size)

        type_ids = {req.leave_type_id for req in rows}
        types: dict[uuid.UUID, LeaveType] = {}
        if type_ids:
            result = await db.execute(select(LeaveType).where(LeaveType.id.in_(type_ids)))
            types = {lt.id: lt for lt in result.scalars().all()}
        people = await _load_people(db, rows)

        return LeaveRequestPage(
            data=[
                LeaveWorkflow.build_request_response(
                    req,
                    types.get(req.leave_type_id),
                    user=people.get(req.user_id),
                    approver=people.get(req.approved_by),
                )
                for req in rows
            ],
            meta=meta,
        )

    # ─────────────────────────────────────────────────────────────────
    # Summary
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_summary(db: AsyncSession, year: int) -> LeaveSummaryOut:
        """Request counts for *year* grouped by status, by leave type and by month.

        A request belongs to the year of its start date. The per-type figure
        also sums the chargeable days of those requests.
        """
        first_day, last_day = _year_bounds(year)
        in_year = sa.and_(
            LeaveRequest.start_date >= first_day,
            LeaveRequest.start_date <= last_day,
        )

        status_rows = await db.execute(
            select(LeaveRequest.status, func.count())
            .where(in_year)
            .group_by(LeaveRequest.status)
        )
        by_status = sorted(
            (StatusCount(status=status, count=count) for status, count in status_rows.all()),
            key=lambda row: list(LeaveStatus).index(row.status),
        )

        type_rows = await db.execute(
            select(
                LeaveType.id,
                LeaveType.name,
                func.count(LeaveRequest.id),
                func.coalesce(func.sum(LeaveRequest.total_days), 0),
            )
            .join(LeaveRequest, LeaveRequest.leave_type_id == LeaveType.id)
            .where(in_year)
            .group_by(LeaveType.id, LeaveType.name)
            .order_by(LeaveType.name)
        )
        by_type = [
            LeaveTypeCount(
                leave_type_id=type_id,
                leave_type_name=name,
                count=count,
                total_days=int(total_days),
            )
            for type_id, name, count, total_days in type_rows.all()
        ]

        month = sa.extract("month", LeaveRequest.start_date)
        month_rows = await db.execute(
            select(month, func.count())
            .where(in_year)
            .group_by(month)
            .order_by(month)
        )
        by_month = [
            MonthCount(month=int(m), count=count) for m, count in month_rows.all()
        ]

        return LeaveSummaryOut(
            year=year,
            by_status=by_status,
            by_type=by_type,
            by_month=by_month,
        )
