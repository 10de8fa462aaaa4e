"""RequestLedger: durable store for leave requests and reimbursement claims.

All writes go through the caller's ``AsyncSession``; nothing here commits
except the explicit ``commit()`` used by the engine's unit of work.

Concurrency guarantees:
  - Leave inserts lock the owning employee row (``SELECT … FOR UPDATE``)
    before the overlap check, and PostgreSQL backs this with the
    ``ex_leave_requests_employee_active_range`` exclusion constraint.
  - Every status change is a compare-and-swap ``UPDATE … WHERE status = :expected``.
    Zero affected rows means another writer got there first.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hrflow.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    LeaveStatus,
    LeaveType,
    ReimbursementStatus,
)
from hrflow.common.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundException,
)
from hrflow.core_hr.models import Employee
from hrflow.leave.models import LeaveRequest
from hrflow.reimbursements.models import ReimbursementClaim, items_total

logger = logging.getLogger(__name__)

_OVERLAP_DETAIL = "You already have a leave request overlapping those dates."


def _leave_options():
    return (
        selectinload(LeaveRequest.employee).selectinload(Employee.department),
        selectinload(LeaveRequest.reviewer).selectinload(Employee.department),
    )


def _claim_options():
    return (selectinload(ReimbursementClaim.employee).selectinload(Employee.department),)


class RequestLedger:
    """Persistence for the two workflows, one instance per session."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ─────────────────────────────────────────────────────────────────
    # Unit of work
    # ─────────────────────────────────────────────────────────────────

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()

    # ─────────────────────────────────────────────────────────────────
    # Employees / departments
    # ─────────────────────────────────────────────────────────────────

    async def lock_employee(self, employee_id: uuid.UUID) -> Employee:
        """Take the per-employee write lock that serialises leave inserts."""
        result = await self.db.execute(
            select(Employee).where(Employee.id == employee_id).with_for_update()
        )
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    async def department_headcount(self, department_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(Employee).where(
                Employee.department_id == department_id,
                Employee.is_active.is_(True),
            )
        )
        return result.scalar_one()

    async def overlapping_department_employees(
        self,
        department_id: uuid.UUID,
        start: date,
        end: date,
        *,
        exclude_employee_id: Optional[uuid.UUID] = None,
    ) -> list[uuid.UUID]:
        """Distinct employees of the department with an active request in [start, end]."""
        query = (
            select(LeaveRequest.employee_id)
            .join(Employee, Employee.id == LeaveRequest.employee_id)
            .where(
                Employee.department_id == department_id,
                Employee.is_active.is_(True),
                LeaveRequest.status.in_(ACTIVE_LEAVE_STATUSES),
                LeaveRequest.start_date <= end,
                LeaveRequest.end_date >= start,
            )
            .distinct()
        )
        if exclude_employee_id is not None:
            query = query.where(LeaveRequest.employee_id != exclude_employee_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ─────────────────────────────────────────────────────────────────
    # Leave requests
    # ─────────────────────────────────────────────────────────────────

    async def get_leave(self, request_id: uuid.UUID, *, refresh: bool = False) -> LeaveRequest:
        query = select(LeaveRequest).where(LeaveRequest.id == request_id).options(*_leave_options())
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await self.db.execute(query)
        leave_req = result.scalars().first()
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return leave_req

    async def find_overlapping(
        self,
        employee_id: uuid.UUID,
        start: date,
        end: date,
    ) -> Optional[LeaveRequest]:
        """First non-rejected request of the employee intersecting [start, end]."""
        result = await self.db.execute(
            select(LeaveRequest)
            .where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status != LeaveStatus.rejected,
                LeaveRequest.start_date <= end,
                LeaveRequest.end_date >= start,
            )
            .limit(1)
        )
        return result.scalars().first()

    async def create_leave(
        self,
        *,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        start: date,
        end: date,
        total_days: int,
        reason: str,
        attachment_ref: Optional[str] = None,
    ) -> LeaveRequest:
        """Atomic check-and-insert of a pending request.

        Raises:
            ConflictError: an overlapping non-rejected request exists, either
                found under the employee lock or reported by the database.
        """
        await self.lock_employee(employee_id)

        existing = await self.find_overlapping(employee_id, start, end)
        if existing is not None:
            raise ConflictError(
                "dates", f"{start.isoformat()}..{end.isoformat()}", detail=_OVERLAP_DETAIL,
            )

        leave_req = LeaveRequest(
            employee_id=employee_id,
            leave_type=leave_type,
            start_date=start,
            end_date=end,
            total_days=total_days,
            reason=reason,
            status=LeaveStatus.pending,
            attachment_ref=attachment_ref,
        )
        self.db.add(leave_req)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            logger.info("Overlap rejected by the store for employee %s: %s", employee_id, exc.orig)
            raise ConflictError(
                "dates", f"{start.isoformat()}..{end.isoformat()}", detail=_OVERLAP_DETAIL,
            ) from exc
        return await self.get_leave(leave_req.id, refresh=True)

    async def transition_leave(
        self,
        request_id: uuid.UUID,
        *,
        expected: LeaveStatus,
        new_status: LeaveStatus,
        reviewer_id: uuid.UUID,
        comment: str = "",
    ) -> LeaveRequest:
        """Compare-and-swap the status; InvalidStateError when it moved underneath us."""
        result = await self.db.execute(
            update(LeaveRequest)
            .where(LeaveRequest.id == request_id, LeaveRequest.status == expected)
            .values(
                status=new_status,
                reviewed_by=reviewer_id,
                reviewed_at=datetime.now(timezone.utc),
                review_comment=comment,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = await self.get_leave(request_id, refresh=True)
            raise InvalidStateError(
                "LeaveRequest",
                current.status,
                f"Leave request is now '{current.status.value}', expected '{expected.value}'.",
            )
        return await self.get_leave(request_id, refresh=True)

    async def delete_leave(self, request_id: uuid.UUID, *, expected: LeaveStatus) -> None:
        result = await self.db.execute(
            delete(LeaveRequest)
            .where(LeaveRequest.id == request_id, LeaveRequest.status == expected)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = await self.get_leave(request_id, refresh=True)
            raise InvalidStateError(
                "LeaveRequest",
                current.status,
                f"Only {expected.value} leave requests can be cancelled.",
            )

    async def leaves_for_employee(self, employee_id: uuid.UUID) -> Sequence[LeaveRequest]:
        result = await self.db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.employee_id == employee_id)
            .options(*_leave_options())
            .order_by(LeaveRequest.created_at.desc())
        )
        return result.scalars().all()

    async def leaves_by_status(
        self,
        statuses: Sequence[LeaveStatus],
        *,
        department_id: Optional[uuid.UUID] = None,
    ) -> Sequence[LeaveRequest]:
        if not statuses:
            return []
        query = (
            select(LeaveRequest)
            .where(LeaveRequest.status.in_(statuses))
            .options(*_leave_options())
            .order_by(LeaveRequest.created_at.desc())
        )
        if department_id is not None:
            query = query.join(Employee, Employee.id == LeaveRequest.employee_id).where(
                Employee.department_id == department_id
            )
        result = await self.db.execute(query)
        return result.scalars().all()

    async def page_leaves(
        self,
        *,
        offset: int,
        limit: int,
        status: Optional[LeaveStatus] = None,
        leave_type: Optional[LeaveType] = None,
        department_id: Optional[uuid.UUID] = None,
    ) -> tuple[Sequence[LeaveRequest], int]:
        filters: list[Any] = []
        if status is not None:
            filters.append(LeaveRequest.status == status)
        if leave_type is not None:
            filters.append(LeaveRequest.leave_type == leave_type)
        if department_id is not None:
            filters.append(Employee.department_id == department_id)

        base = select(LeaveRequest).join(Employee, Employee.id == LeaveRequest.employee_id)
        if filters:
            base = base.where(*filters)

        total = (
            await self.db.execute(select(func.count()).select_from(base.subquery()))
        ).scalar_one()

        result = await self.db.execute(
            base.options(*_leave_options())
            .order_by(LeaveRequest.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return result.scalars().all(), total

    async def leave_counts(
        self,
        *,
        department_id: Optional[uuid.UUID] = None,
    ) -> tuple[dict[LeaveStatus, int], dict[LeaveType, int]]:
        """(count by status, count by leave type)."""
        counts: list[dict] = []
        for column in (LeaveRequest.status, LeaveRequest.leave_type):
            query = select(column, func.count()).group_by(column)
            if department_id is not None:
                query = query.join(Employee, Employee.id == LeaveRequest.employee_id).where(
                    Employee.department_id == department_id
                )
            result = await self.db.execute(query)
            counts.append({key: count for key, count in result.all()})
        return counts[0], counts[1]

    # ─────────────────────────────────────────────────────────────────
    # Reimbursement claims
    # ─────────────────────────────────────────────────────────────────

    async def get_claim(self, claim_id: uuid.UUID, *, refresh: bool = False) -> ReimbursementClaim:
        query = (
            select(ReimbursementClaim)
            .where(ReimbursementClaim.id == claim_id)
            .options(*_claim_options())
        )
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await self.db.execute(query)
        claim = result.scalars().first()
        if claim is None:
            raise NotFoundException("ReimbursementClaim", str(claim_id))
        return claim

    async def create_claim(
        self,
        *,
        employee_id: uuid.UUID,
        title: str,
        items: list[dict[str, Any]],
        status: ReimbursementStatus,
    ) -> ReimbursementClaim:
        claim = ReimbursementClaim(
            employee_id=employee_id,
            title=title,
            items=items,
            total_amount=items_total(items),
            status=status,
        )
        self.db.add(claim)
        await self.db.flush()
        return await self.get_claim(claim.id, refresh=True)

    async def update_draft(
        self,
        claim_id: uuid.UUID,
        *,
        title: str,
        items: list[dict[str, Any]],
        new_status: ReimbursementStatus,
    ) -> ReimbursementClaim:
        """Rewrite a draft in place; the total is always recomputed from items."""
        result = await self.db.execute(
            update(ReimbursementClaim)
            .where(
                ReimbursementClaim.id == claim_id,
                ReimbursementClaim.status == ReimbursementStatus.draft,
            )
            .values(
                title=title,
                items=items,
                total_amount=items_total(items),
                status=new_status,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = await self.get_claim(claim_id, refresh=True)
            raise InvalidStateError(
                "ReimbursementClaim",
                current.status,
                "Only draft reimbursements can be edited.",
            )
        return await self.get_claim(claim_id, refresh=True)

    async def transition_claim(
        self,
        claim_id: uuid.UUID,
        *,
        expected: ReimbursementStatus,
        new_status: ReimbursementStatus,
        approval_field: str,
        approval: dict[str, Any],
    ) -> ReimbursementClaim:
        result = await self.db.execute(
            update(ReimbursementClaim)
            .where(
                ReimbursementClaim.id == claim_id,
                ReimbursementClaim.status == expected,
            )
            .values({"status": new_status, approval_field: approval})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = await self.get_claim(claim_id, refresh=True)
            raise InvalidStateError(
                "ReimbursementClaim",
                current.status,
                f"Reimbursement is now '{current.status.value}', expected '{expected.value}'.",
            )
        return await self.get_claim(claim_id, refresh=True)

    async def claims_for_employee(self, employee_id: uuid.UUID) -> Sequence[ReimbursementClaim]:
        result = await self.db.execute(
            select(ReimbursementClaim)
            .where(ReimbursementClaim.employee_id == employee_id)
            .options(*_claim_options())
            .order_by(ReimbursementClaim.created_at.desc())
        )
        return result.scalars().all()

    async def claims_by_status(
        self,
        statuses: Sequence[ReimbursementStatus],
        *,
        department_id: Optional[uuid.UUID] = None,
    ) -> Sequence[ReimbursementClaim]:
        if not statuses:
            return []
        query = (
            select(ReimbursementClaim)
            .where(ReimbursementClaim.status.in_(statuses))
            .options(*_claim_options())
            .order_by(ReimbursementClaim.created_at.desc())
        )
        if department_id is not None:
            query = query.join(Employee, Employee.id == ReimbursementClaim.employee_id).where(
                Employee.department_id == department_id
            )
        result = await self.db.execute(query)
        return result.scalars().all()

    async def page_claims(
        self,
        *,
        offset: int,
        limit: int,
        status: Optional[ReimbursementStatus] = None,
        department_id: Optional[uuid.UUID] = None,
    ) -> tuple[Sequence[ReimbursementClaim], int]:
        base = select(ReimbursementClaim).join(
            Employee, Employee.id == ReimbursementClaim.employee_id
        )
        if status is not None:
            base = base.where(ReimbursementClaim.status == status)
        if department_id is not None:
            base = base.where(Employee.department_id == department_id)

        total = (
            await self.db.execute(select(func.count()).select_from(base.subquery()))
        ).scalar_one()

        result = await self.db.execute(
            base.options(*_claim_options())
            .order_by(ReimbursementClaim.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return result.scalars().all(), total
