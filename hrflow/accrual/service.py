"""Accrual engine — scheduled leave credits and approved-leave consumption.

Business logic:
  - Monthly accrual: +1.5 EL per active employee, once per ``YYYY-MM`` period
  - Year-end carry-forward: CL and SL reset to 12, EL += 15, once per year
  - Burnout scan: active employees with no leave in the last six months
  - Consumption: debit the matching balance when a leave request is finally approved

The scheduled jobs are idempotent: each balance row remembers the last period
(and year) it was credited for, and the credit is a single conditional UPDATE
guarded by that marker.
"""

from __future__ import annotations

import logging
import re
import uuid
from calendar import monthrange
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hrflow.accrual.models import EmployeeBalance
from hrflow.common.constants import (
    DEFAULT_BALANCES,
    LEAVE_BALANCE_CATEGORY,
    BalanceCategory,
    LeaveType,
)
from hrflow.common.exceptions import ValidationException
from hrflow.config import settings
from hrflow.core_hr.models import Employee

logger = logging.getLogger(__name__)

_PERIOD_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

# Dialect-specific INSERT constructs that support ON CONFLICT DO NOTHING
_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def months_before(as_of: date, months: int) -> date:
    """Same day ``months`` earlier, clamped to the end of shorter months."""
    total = as_of.year * 12 + (as_of.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    _, last_day = monthrange(year, month)
    return date(year, month, min(as_of.day, last_day))


def current_period(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"{today.year:04d}-{today.month:02d}"


@dataclass(frozen=True)
class BurnoutFlag:
    employee_id: uuid.UUID
    employee_code: str
    name: str
    email: str
    department: Optional[str]
    last_leave_date: Optional[date]
    date_of_joining: date

    @property
    def reference_date(self) -> date:
        return self.last_leave_date or self.date_of_joining


# ═════════════════════════════════════════════════════════════════════
# AccrualEngine
# ═════════════════════════════════════════════════════════════════════


class AccrualEngine:
    """Owns every mutation of ``EmployeeBalance``."""

    def __init__(
        self,
        db: AsyncSession,
        *,
        monthly_el: Optional[Decimal] = None,
        cl_baseline: Optional[Decimal] = None,
        sl_baseline: Optional[Decimal] = None,
        annual_el: Optional[Decimal] = None,
        burnout_months: Optional[int] = None,
    ) -> None:
        self.db = db
        self.monthly_el = monthly_el if monthly_el is not None else Decimal(str(settings.MONTHLY_EL_ACCRUAL))
        self.cl_baseline = cl_baseline if cl_baseline is not None else Decimal(str(settings.YEAR_END_CL_BASELINE))
        self.sl_baseline = sl_baseline if sl_baseline is not None else Decimal(str(settings.YEAR_END_SL_BASELINE))
        self.annual_el = annual_el if annual_el is not None else Decimal(str(settings.ANNUAL_EL_CREDIT))
        self.burnout_months = burnout_months if burnout_months is not None else settings.BURNOUT_MONTHS

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _active_employee_ids():
        return select(Employee.id).where(Employee.is_active.is_(True))

    async def _ensure_balances(self) -> int:
        """Create default balance rows for active employees that have none."""
        result = await self.db.execute(
            select(Employee.id).where(
                Employee.is_active.is_(True),
                Employee.id.not_in(select(EmployeeBalance.employee_id)),
            )
        )
        missing = result.scalars().all()
        if missing:
            await self.insert_default_balances(missing)
            logger.info("Created default balances for %d employees", len(missing))
        return len(missing)

    async def insert_default_balances(self, employee_ids: Sequence[uuid.UUID]) -> None:
        """INSERT … ON CONFLICT (employee_id) DO NOTHING for each employee.

        Rows created concurrently by another transaction are left as they are.
        """
        insert = _DIALECT_INSERTS[self.db.bind.dialect.name]
        defaults = {cat.value: Decimal(str(amount)) for cat, amount in DEFAULT_BALANCES.items()}
        await self.db.execute(
            insert(EmployeeBalance).on_conflict_do_nothing(index_elements=["employee_id"]),
            [{"employee_id": employee_id, **defaults} for employee_id in employee_ids],
        )

    # ─────────────────────────────────────────────────────────────────
    # Balances
    # ─────────────────────────────────────────────────────────────────

    async def balance_for(self, employee_id: uuid.UUID) -> EmployeeBalance:
        """Return the employee's balance row, creating it with defaults if absent."""
        query = select(EmployeeBalance).where(EmployeeBalance.employee_id == employee_id)
        balance = (await self.db.execute(query)).scalars().first()
        if balance is None:
            await self.insert_default_balances([employee_id])
            balance = (await self.db.execute(query)).scalars().one()
        return balance

    async def consume_leave(
        self,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        days: int,
        last_day: date,
    ) -> EmployeeBalance:
        """Debit an approved leave from the matching category.

        Unpaid leave debits nothing but still counts as time off for the
        burnout scan. Balances are allowed to go negative.
        """
        balance = await self.balance_for(employee_id)
        category: Optional[BalanceCategory] = LEAVE_BALANCE_CATEGORY[leave_type]

        values: dict = {}
        if category is not None:
            column = getattr(EmployeeBalance, category.value)
            values[category.value] = column - Decimal(days)
        if balance.last_leave_date is None or last_day > balance.last_leave_date:
            values["last_leave_date"] = last_day

        if values:
            await self.db.execute(
                update(EmployeeBalance)
                .where(EmployeeBalance.id == balance.id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await self.db.refresh(balance)
        return balance

    # ─────────────────────────────────────────────────────────────────
    # Scheduled jobs
    # ─────────────────────────────────────────────────────────────────

    async def monthly_accrual(self, period: Optional[str] = None) -> int:
        """Credit monthly EL to every active employee not yet credited for ``period``.

        Returns:
            Number of employees credited by this invocation.
        """
        period = period or current_period()
        if not _PERIOD_RE.match(period):
            raise ValidationException({"period": [f"Expected YYYY-MM, got '{period}'."]})

        await self._ensure_balances()
        result = await self.db.execute(
            update(EmployeeBalance)
            .where(
                EmployeeBalance.employee_id.in_(self._active_employee_ids()),
                or_(
                    EmployeeBalance.last_accrual_period.is_(None),
                    EmployeeBalance.last_accrual_period < period,
                ),
            )
            .values(
                el=EmployeeBalance.el + self.monthly_el,
                last_accrual_period=period,
            )
            .execution_options(synchronize_session=False)
        )
        credited = result.rowcount
        logger.info("Monthly accrual %s: credited %s EL to %d employees", period, self.monthly_el, credited)
        return credited

    async def year_end_carry_forward(self, year: Optional[int] = None) -> int:
        """CL and SL reset to their baselines, EL carries over plus the annual credit."""
        year = year or date.today().year
        await self._ensure_balances()
        result = await self.db.execute(
            update(EmployeeBalance)
            .where(
                EmployeeBalance.employee_id.in_(self._active_employee_ids()),
                or_(
                    EmployeeBalance.last_carry_forward_year.is_(None),
                    EmployeeBalance.last_carry_forward_year < year,
                ),
            )
            .values(
                cl=self.cl_baseline,
                sl=self.sl_baseline,
                el=EmployeeBalance.el + self.annual_el,
                last_carry_forward_year=year,
            )
            .execution_options(synchronize_session=False)
        )
        updated = result.rowcount
        logger.info("Year-end carry-forward %d: updated %d employees", year, updated)
        return updated

    async def burnout_scan(self, as_of: Optional[date] = None) -> Sequence[BurnoutFlag]:
        """Active employees whose last leave (or joining date) precedes the cutoff. Read-only."""
        as_of = as_of or date.today()
        cutoff = months_before(as_of, self.burnout_months)

        result = await self.db.execute(
            select(Employee, EmployeeBalance.last_leave_date)
            .outerjoin(EmployeeBalance, EmployeeBalance.employee_id == Employee.id)
            .where(
                Employee.is_active.is_(True),
                or_(
                    EmployeeBalance.last_leave_date < cutoff,
                    (EmployeeBalance.last_leave_date.is_(None)) & (Employee.date_of_joining < cutoff),
                ),
            )
            .options(selectinload(Employee.department))
            .order_by(Employee.employee_code)
        )
        flags = [
            BurnoutFlag(
                employee_id=emp.id,
                employee_code=emp.employee_code,
                name=emp.full_name,
                email=emp.email,
                department=emp.department.name if emp.department else None,
                last_leave_date=last_leave,
                date_of_joining=emp.date_of_joining,
            )
            for emp, last_leave in result.all()
        ]
        if flags:
            logger.info("Burnout alert: %d employees without leave since %s", len(flags), cutoff)
        return flags
