"""Reimbursement Pydantic v2 schemas — request/response validation."""

import datetime as dt
import uuid
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from hrflow.common.constants import DEFAULT_CURRENCY, ExpenseCategory, ReimbursementStatus
from hrflow.common.pagination import PaginationMeta
from hrflow.leave.schemas import EmployeeBrief


# ═════════════════════════════════════════════════════════════════════
# Items
# ═════════════════════════════════════════════════════════════════════


class ReimbursementItem(BaseModel):
    """One expense line. ``receipt_ref`` is an opaque storage reference."""

    title: str = Field(..., min_length=1, max_length=300)
    category: ExpenseCategory
    amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    currency: str = Field(DEFAULT_CURRENCY, max_length=10)
    date: dt.date
    receipt_ref: str = Field("", max_length=500)


class ApprovalOut(BaseModel):
    approved: Optional[bool] = None
    approver_id: Optional[uuid.UUID] = None
    comment: str = ""
    timestamp: Optional[dt.datetime] = None


# ═════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════


class ClaimCreate(BaseModel):
    """Create a claim. ``submit=True`` sends it straight to the manager."""

    title: str = Field(..., min_length=1, max_length=500)
    items: List[ReimbursementItem] = Field(default_factory=list)
    submit: bool = False


class ClaimUpdate(BaseModel):
    """Replace a draft's title and items; ``submit=True`` sends it on."""

    title: str = Field(..., min_length=1, max_length=500)
    items: List[ReimbursementItem] = Field(default_factory=list)
    submit: bool = False


class ClaimReviewRequest(BaseModel):
    approved: bool
    comment: str = Field("", max_length=2000)


# ═════════════════════════════════════════════════════════════════════
# Responses
# ═════════════════════════════════════════════════════════════════════


class ClaimOut(BaseModel):
    """Full claim representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    title: str
    items: List[ReimbursementItem] = []
    total_amount: Decimal
    status: ReimbursementStatus
    manager_approval: Optional[ApprovalOut] = None
    finance_approval: Optional[ApprovalOut] = None
    created_at: dt.datetime
    updated_at: dt.datetime

    employee: Optional[EmployeeBrief] = None


class ClaimListResponse(BaseModel):
    data: List[ClaimOut]
    meta: PaginationMeta
