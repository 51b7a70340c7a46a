"""Enums and constants for LeaveDesk — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    admin = "admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


class LeaveEvent(str, enum.Enum):
    submit = "submit"
    approve = "approve"
    reject = "reject"
    cancel = "cancel"


# Statuses that still hold days on a balance and block overlapping dates.
ACTIVE_LEAVE_STATUSES: tuple[LeaveStatus, ...] = (
    LeaveStatus.pending,
    LeaveStatus.approved,
)

# ── Misc constants ──────────────────────────────────────────────────

SATURDAY = 5
SUNDAY = 6
WEEKEND_DAYS = frozenset({SATURDAY, SUNDAY})
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
