"""Common module — shared utilities for LeaveDesk."""

from leavedesk.common.audit import AuditTrail, create_audit_entry
from leavedesk.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    WEEKEND_DAYS,
    LeaveEvent,
    LeaveStatus,
    UserRole,
)
from leavedesk.common.exceptions import (
    AppException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from leavedesk.common.pagination import (
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "LeaveEvent",
    "LeaveStatus",
    "UserRole",
    "ACTIVE_LEAVE_STATUSES",
    "WEEKEND_DAYS",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ForbiddenException",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
