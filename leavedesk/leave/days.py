"""Chargeable-day calculation for leave requests."""

from __future__ import annotations

from datetime import date, timedelta

from leavedesk.common.constants import WEEKEND_DAYS


def compute_chargeable_days(start: date, end: date) -> int:
    """Count Monday–Friday dates in the closed interval ``[start, end]``.

    Callers reject ``start > end`` beforehand; such a call returns 0. The
    result is stored on the request at submission and never recomputed.
    """
    if start > end:
        return 0

    span = (end - start).days + 1
    full_weeks, remainder = divmod(span, 7)
    days = full_weeks * 5

    current = start + timedelta(days=full_weeks * 7)
    for _ in range(remainder):
        if current.weekday() not in WEEKEND_DAYS:
            days += 1
        current += timedelta(days=1)
    return days
