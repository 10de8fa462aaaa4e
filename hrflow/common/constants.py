"""Enums and constants for HR Flow — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    finance = "finance"
    admin = "admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveType(str, enum.Enum):
    annual = "annual"
    sick = "sick"
    casual = "casual"
    unpaid = "unpaid"
    earned = "earned"
    maternity = "maternity"
    paternity = "paternity"


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    pending_hr = "pending_hr"
    approved = "approved"
    rejected = "rejected"


# Statuses that occupy the calendar (count for overlap and conflicts)
ACTIVE_LEAVE_STATUSES: tuple[LeaveStatus, ...] = (
    LeaveStatus.pending,
    LeaveStatus.pending_hr,
    LeaveStatus.approved,
)

TERMINAL_LEAVE_STATUSES: frozenset[LeaveStatus] = frozenset(
    {LeaveStatus.approved, LeaveStatus.rejected}
)


class BalanceCategory(str, enum.Enum):
    SL = "sl"
    CL = "cl"
    EL = "el"
    ML = "ml"
    PL = "pl"


# Which balance an approved leave draws from; unpaid draws from none
LEAVE_BALANCE_CATEGORY: dict[LeaveType, BalanceCategory | None] = {
    LeaveType.annual: BalanceCategory.EL,
    LeaveType.earned: BalanceCategory.EL,
    LeaveType.sick: BalanceCategory.SL,
    LeaveType.casual: BalanceCategory.CL,
    LeaveType.maternity: BalanceCategory.ML,
    LeaveType.paternity: BalanceCategory.PL,
    LeaveType.unpaid: None,
}

DEFAULT_BALANCES: dict[BalanceCategory, float] = {
    BalanceCategory.SL: 12,
    BalanceCategory.CL: 12,
    BalanceCategory.EL: 15,
    BalanceCategory.ML: 0,
    BalanceCategory.PL: 0,
}


# ── Reimbursements ──────────────────────────────────────────────────

class ReimbursementStatus(str, enum.Enum):
    draft = "draft"
    pending_manager = "pending_manager"
    pending_finance = "pending_finance"
    approved = "approved"
    rejected = "rejected"


class ExpenseCategory(str, enum.Enum):
    travel = "travel"
    meals = "meals"
    internet_wifi = "internet_wifi"
    medical = "medical"
    office_supplies = "office_supplies"
    other = "other"


# ── Audit / notifications ───────────────────────────────────────────

class TargetType(str, enum.Enum):
    leave_request = "leave_request"
    reimbursement_claim = "reimbursement_claim"
    holiday = "holiday"
    employee_balance = "employee_balance"


# ── Misc constants ──────────────────────────────────────────────────

DEFAULT_CURRENCY = "INR"
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20
