"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Response / *Out    → response bodies (read)
  - *Brief              → compact embedded representations
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from hrflow.common.constants import LeaveStatus, LeaveType
from hrflow.common.pagination import PaginationMeta


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class EmployeeBrief(BaseModel):
    """Minimal employee info embedded in leave and claim responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    full_name: str
    email: str
    department_name: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Create
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for applying a leave request."""

    leave_type: LeaveType
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    reason: str = Field(..., min_length=1, max_length=500, description="Reason for leave")
    attachment_ref: Optional[str] = Field(
        None, max_length=500, description="Opaque reference to an uploaded document",
    )

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaveRequestCreate":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date.")
        return self


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: LeaveType
    start_date: date
    end_date: date
    total_days: int
    reason: str
    status: LeaveStatus
    reviewed_by: Optional[uuid.UUID] = None
    reviewed_at: Optional[datetime] = None
    review_comment: Optional[str] = None
    attachment_ref: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    employee: Optional[EmployeeBrief] = None
    reviewer: Optional[EmployeeBrief] = None


class LeaveSubmitResponse(BaseModel):
    """Created request plus the advisory department conflict, if any."""

    leave: LeaveRequestOut
    conflict_warning: Optional[str] = None


class LeaveListResponse(BaseModel):
    data: list[LeaveRequestOut]
    meta: PaginationMeta


# ═════════════════════════════════════════════════════════════════════
# Review
# ═════════════════════════════════════════════════════════════════════


class LeaveReviewRequest(BaseModel):
    """Payload for reviewing a leave request.

    ``approved`` from a manager moves the request to ``pending_hr``; from an
    HR admin it is final.
    """

    status: LeaveStatus
    review_comment: str = Field("", max_length=1000)


class BulkReviewRequest(BaseModel):
    request_ids: list[uuid.UUID] = Field(..., min_length=1, max_length=200)
    status: LeaveStatus
    review_comment: str = Field("", max_length=1000)


class BulkReviewFailureOut(BaseModel):
    request_id: uuid.UUID
    error: str
    detail: str


class BulkReviewResponse(BaseModel):
    reviewed: list[LeaveRequestOut]
    failed: list[BulkReviewFailureOut]


# ═════════════════════════════════════════════════════════════════════
# Stats / balances
# ═════════════════════════════════════════════════════════════════════


class LeaveStatsOut(BaseModel):
    total: int
    by_status: dict[str, int]
    by_type: dict[str, int]


class LeaveBalanceOut(BaseModel):
    """Current balance per category."""

    model_config = ConfigDict(from_attributes=True)

    employee_id: uuid.UUID
    sl: Decimal
    cl: Decimal
    el: Decimal
    ml: Decimal
    pl: Decimal
    last_leave_date: Optional[date] = None
    last_accrual_period: Optional[str] = None
    updated_at: Optional[datetime] = None
