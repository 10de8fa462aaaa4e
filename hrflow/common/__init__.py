"""Common module — shared enums, exceptions and pagination for HR Flow.

``hrflow.common.audit`` is imported directly by its users; it depends on the
core HR models, which themselves import from this package.
"""

from hrflow.common.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    ExpenseCategory,
    LeaveStatus,
    LeaveType,
    ReimbursementStatus,
    TargetType,
    UserRole,
)
from hrflow.common.exceptions import (
    AppException,
    AuthorizationError,
    ConflictError,
    ForbiddenException,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from hrflow.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    build_meta,
)

__all__ = [
    # Constants / Enums
    "ExpenseCategory",
    "LeaveStatus",
    "LeaveType",
    "ReimbursementStatus",
    "TargetType",
    "UserRole",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "AuthorizationError",
    "ConflictError",
    "ForbiddenException",
    "InvalidStateError",
    "InvalidTransitionError",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "build_meta",
]
