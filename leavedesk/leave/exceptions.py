"""Typed leave-ledger failures.

Each class maps one expected business outcome to a stable ``kind`` and HTTP
status. They are raised by the workflow and ledger, and rendered by the
handlers in ``leavedesk.common.exceptions``.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from leavedesk.common.constants import LeaveEvent, LeaveStatus
from leavedesk.common.exceptions import AppException


class InvalidRange(AppException):
    kind = "InvalidRange"

    def __init__(
        self,
        detail: str = "Start date must be on or before end date.",
        reason: str = "start_after_end",
    ) -> None:
        self.reason = reason
        super().__init__(
            status_code=422,
            error_type="invalid-range",
            title="Invalid Date Range",
            detail=detail,
            errors={"reason": reason},
        )


class CrossYearRequest(AppException):
    kind = "CrossYearRequest"

    def __init__(self, start: date, end: date) -> None:
        super().__init__(
            status_code=422,
            error_type="cross-year-request",
            title="Cross-Year Request",
            detail=(
                f"Leave requests across different years are not supported "
                f"({start.isoformat()} – {end.isoformat()})."
            ),
        )


class BalanceNotFound(AppException):
    kind = "BalanceNotFound"

    def __init__(self, year: int) -> None:
        super().__init__(
            status_code=404,
            error_type="balance-not-found",
            title="Leave Balance Not Found",
            detail=f"No leave balance found for this leave type in {year}.",
        )


class InsufficientBalance(AppException):
    kind = "InsufficientBalance"

    def __init__(self, available_days: int, requested_days: int) -> None:
        self.available_days = available_days
        self.requested_days = requested_days
        super().__init__(
            status_code=422,
            error_type="insufficient-balance",
            title="Insufficient Leave Balance",
            detail=(
                f"Insufficient leave balance. Available: {available_days} days, "
                f"Requested: {requested_days} days."
            ),
            errors={
                "available_days": available_days,
                "requested_days": requested_days,
            },
        )


class OverlappingRequest(AppException):
    kind = "OverlappingRequest"

    def __init__(self) -> None:
        super().__init__(
            status_code=409,
            error_type="overlapping-request",
            title="Overlapping Leave Request",
            detail="You already have an overlapping leave request for this period.",
        )


class InvalidStateTransition(AppException):
    kind = "InvalidStateTransition"

    def __init__(self, current: Optional[LeaveStatus], event: LeaveEvent) -> None:
        self.current = current
        self.event = event
        state = current.value if current is not None else "new"
        super().__init__(
            status_code=409,
            error_type="invalid-state-transition",
            title="Invalid State Transition",
            detail=f"Cannot {event.value} request in '{state}' status.",
            errors={"current_status": state, "event": event.value},
        )


class InvalidBalanceTotal(AppException):
    kind = "InvalidBalanceTotal"

    def __init__(self, requested_total: int, committed_days: int) -> None:
        super().__init__(
            status_code=422,
            error_type="invalid-balance-total",
            title="Invalid Balance Total",
            detail=(
                f"Total days ({requested_total}) cannot be below the "
                f"{committed_days} days already used or pending."
            ),
            errors={
                "requested_total": requested_total,
                "committed_days": committed_days,
            },
        )


class LedgerInvariantViolation(AppException):
    """Fatal: a balance row would break ``used, pending >= 0, used + pending <= total``.

    Never an expected outcome; the surrounding transaction is rolled back.
    """

    kind = "LedgerInvariantViolation"

    def __init__(self, balance_id: object) -> None:
        super().__init__(
            status_code=500,
            error_type="ledger-invariant-violation",
            title="Ledger Invariant Violation",
            detail=f"Leave balance '{balance_id}' is inconsistent; no change was applied.",
        )
