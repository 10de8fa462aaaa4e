"""Request workflow engine — leave and reimbursement state machines.

Business logic:
  - Leave submission with business-day counting, advisory department conflict
    check and atomic per-employee overlap exclusion
  - Two-stage leave approval (manager → HR admin), rejection, cancellation
  - Bulk leave review with per-request outcomes
  - Reimbursement drafts, submission and manager → finance approval
  - Audit entry for every mutation, written in the same transaction
  - Status notifications dispatched after commit, best-effort

Every mutating operation follows the same unit of work:
read → validate → write through the ledger → audit → commit → notify.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, AsyncIterator, Mapping, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hrflow.accrual.service import AccrualEngine
from hrflow.common.audit import AuditRecorder
from hrflow.common.constants import (
    TERMINAL_LEAVE_STATUSES,
    LeaveStatus,
    LeaveType,
    ReimbursementStatus,
    TargetType,
    UserRole,
)
from hrflow.common.exceptions import (
    AppException,
    AuthorizationError,
    InvalidStateError,
    ValidationException,
)
from hrflow.config import settings
from hrflow.holidays.service import HolidayRegistry
from hrflow.leave.models import LeaveRequest
from hrflow.reimbursements.models import ReimbursementClaim, items_total
from hrflow.workflow.calendar import BusinessDayCalculator, ConflictDetector
from hrflow.workflow.events import NotificationDispatcher, TransitionEvent
from hrflow.workflow.ledger import RequestLedger
from hrflow.workflow.roles import (
    DEPARTMENT_SCOPED,
    PENDING_CLAIM_SCOPE,
    PENDING_LEAVE_SCOPE,
    can_review_claims,
    can_review_leave,
    resolve_claim_stage,
    resolve_leave_transition,
)

if TYPE_CHECKING:
    from hrflow.core_hr.models import Employee

logger = logging.getLogger(__name__)

# Item amounts must fit the NUMERIC(12, 2) total column exactly
_CENT = Decimal("0.01")
_AMOUNT_CEILING = Decimal("1E10")


# ═════════════════════════════════════════════════════════════════════
# Value objects
# ═════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Actor:
    """The authenticated employee performing an operation."""

    id: uuid.UUID
    role: UserRole
    department_id: Optional[uuid.UUID] = None
    department_name: Optional[str] = None

    @classmethod
    def from_employee(cls, employee: "Employee") -> "Actor":
        # employee.department must already be loaded
        return cls(
            id=employee.id,
            role=employee.role,
            department_id=employee.department_id,
            department_name=employee.department.name if employee.department else None,
        )


@dataclass(frozen=True)
class LeaveSubmission:
    request: LeaveRequest
    conflict_warning: Optional[str] = None


@dataclass(frozen=True)
class BulkReviewFailure:
    request_id: uuid.UUID
    error: str
    detail: str


@dataclass
class BulkReviewResult:
    reviewed: list[LeaveRequest] = field(default_factory=list)
    failed: list[BulkReviewFailure] = field(default_factory=list)


@dataclass(frozen=True)
class LeaveStats:
    by_status: dict[str, int]
    by_type: dict[str, int]

    @property
    def total(self) -> int:
        return sum(self.by_status.values())


# ═════════════════════════════════════════════════════════════════════
# WorkflowEngine
# ═════════════════════════════════════════════════════════════════════


class WorkflowEngine:
    """Stateless coordinator: every collaborator is passed in."""

    def __init__(
        self,
        ledger: RequestLedger,
        *,
        calculator: BusinessDayCalculator,
        detector: ConflictDetector,
        recorder: AuditRecorder,
        dispatcher: NotificationDispatcher,
        balances: AccrualEngine,
        holidays: HolidayRegistry,
        reason_max_length: int = 500,
    ) -> None:
        self.ledger = ledger
        self.calculator = calculator
        self.detector = detector
        self.recorder = recorder
        self.dispatcher = dispatcher
        self.balances = balances
        self.holidays = holidays
        self.reason_max_length = reason_max_length

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @asynccontextmanager
    async def _unit_of_work(self) -> AsyncIterator[None]:
        try:
            yield
            await self.ledger.commit()
        except Exception:
            await self.ledger.rollback()
            raise

    async def _notify(self, event: TransitionEvent) -> None:
        # EventBus already isolates subscribers; this guards bare dispatchers
        try:
            await self.dispatcher.dispatch(event)
        except Exception:
            logger.exception(
                "Notification dispatch failed for %s %s", event.entity_type, event.entity_id,
            )

    @staticmethod
    def _department_scope(actor: Actor) -> Optional[uuid.UUID]:
        """Department filter for list queries; None means organisation-wide."""
        if not DEPARTMENT_SCOPED[actor.role]:
            return None
        if actor.department_id is None:
            raise AuthorizationError("You must belong to a department to review its requests.")
        return actor.department_id

    @staticmethod
    def _check_same_department(actor: Actor, owner_department_id: Optional[uuid.UUID]) -> None:
        if DEPARTMENT_SCOPED[actor.role] and (
            actor.department_id is None or owner_department_id != actor.department_id
        ):
            raise AuthorizationError("You can only review requests from your own department.")

    def _validate_leave_input(self, start: date, end: date, reason: str) -> None:
        errors: dict[str, list[str]] = {}
        if end < start:
            errors["end_date"] = ["End date must be on or after the start date."]
        if not reason or not reason.strip():
            errors["reason"] = ["Reason is required."]
        elif len(reason) > self.reason_max_length:
            errors["reason"] = [f"Reason must be at most {self.reason_max_length} characters."]
        if errors:
            raise ValidationException(errors)

    @staticmethod
    def _normalise_items(items: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
        """Copy items into their stored shape, amounts as decimal strings."""
        normalised: list[dict[str, Any]] = []
        errors: dict[str, list[str]] = {}
        for index, item in enumerate(items):
            try:
                amount = Decimal(str(item.get("amount")))
            except (InvalidOperation, ValueError):
                errors[f"items.{index}.amount"] = ["Amount must be a number."]
                continue
            if not amount.is_finite() or amount < 0:
                errors[f"items.{index}.amount"] = ["Amount cannot be negative."]
                continue
            if amount >= _AMOUNT_CEILING:
                errors[f"items.{index}.amount"] = ["Amount must have at most 10 digits before the decimal point."]
                continue
            if amount != amount.quantize(_CENT):
                errors[f"items.{index}.amount"] = ["Amount must have at most 2 decimal places."]
                continue
            stored = dict(item)
            stored["amount"] = str(amount)
            normalised.append(stored)
        if not errors and items_total(normalised) >= _AMOUNT_CEILING:
            errors["items"] = ["Claim total must be below 10,000,000,000."]
        if errors:
            raise ValidationException(errors)
        return normalised

    @staticmethod
    def _validate_claim(title: str, items: list[dict[str, Any]], submit: bool) -> None:
        errors: dict[str, list[str]] = {}
        if not title or not title.strip():
            errors["title"] = ["Claim title is required."]
        if submit and not items:
            errors["items"] = ["A submitted claim needs at least one item."]
        if errors:
            raise ValidationException(errors)

    # ─────────────────────────────────────────────────────────────────
    # Leave: submit
    # ─────────────────────────────────────────────────────────────────

    async def submit_leave(
        self,
        actor: Actor,
        *,
        leave_type: LeaveType,
        start: date,
        end: date,
        reason: str,
        attachment_ref: Optional[str] = None,
    ) -> LeaveSubmission:
        """Create a pending leave request for the actor.

        Raises:
            ValidationException: bad range, bad reason, or no business days.
            ConflictError: overlaps another non-rejected request of the actor.
        """
        self._validate_leave_input(start, end, reason)

        holiday_dates = await self.holidays.dates_between(start, end)
        total_days = self.calculator.count(start, end, holiday_dates)
        if total_days == 0:
            raise ValidationException(
                {"dates": ["Selected dates consist only of weekends and public holidays."]}
            )

        # ── Advisory department conflict ────────────────────────────
        warning: Optional[str] = None
        if actor.department_id is not None:
            headcount = await self.ledger.department_headcount(actor.department_id)
            overlapping = await self.ledger.overlapping_department_employees(
                actor.department_id, start, end, exclude_employee_id=actor.id,
            )
            warning = self.detector.assess(actor.department_name, headcount, overlapping).warning

        # ── Atomic insert + audit ───────────────────────────────────
        async with self._unit_of_work():
            leave_req = await self.ledger.create_leave(
                employee_id=actor.id,
                leave_type=leave_type,
                start=start,
                end=end,
                total_days=total_days,
                reason=reason.strip(),
                attachment_ref=attachment_ref,
            )
            details = f"Applied for {total_days} days of {leave_type.value}."
            if warning:
                details = f"{details} {warning}"
            await self.recorder.record(
                actor_id=actor.id,
                action="apply_leave",
                target_type=TargetType.leave_request.value,
                target_id=leave_req.id,
                details=details,
            )

        logger.info(
            "Leave %s submitted by %s: %s..%s (%d days)",
            leave_req.id, actor.id, start, end, total_days,
        )
        return LeaveSubmission(request=leave_req, conflict_warning=warning)

    # ─────────────────────────────────────────────────────────────────
    # Leave: review
    # ─────────────────────────────────────────────────────────────────

    async def review_leave(
        self,
        actor: Actor,
        request_id: uuid.UUID,
        target_status: LeaveStatus,
        comment: str = "",
    ) -> LeaveRequest:
        """Apply one review decision.

        A manager's approval only advances the request to ``pending_hr``;
        an admin's approval is final. Final approval debits the balance.
        """
        if not can_review_leave(actor.role):
            raise AuthorizationError("Only managers and HR admins can review leave requests.")

        leave_req = await self.ledger.get_leave(request_id)
        self._check_same_department(actor, leave_req.employee.department_id)
        current = leave_req.status
        new_status = resolve_leave_transition(actor.role, current, target_status)

        async with self._unit_of_work():
            updated = await self.ledger.transition_leave(
                request_id,
                expected=current,
                new_status=new_status,
                reviewer_id=actor.id,
                comment=comment or "",
            )
            if new_status == LeaveStatus.approved:
                await self.balances.consume_leave(
                    updated.employee_id, updated.leave_type, updated.total_days, updated.end_date,
                )
            await self.recorder.record(
                actor_id=actor.id,
                action=f"review_leave:{new_status.value}",
                target_type=TargetType.leave_request.value,
                target_id=updated.id,
                details=f"Status set to {new_status.value}. Comment: {comment or ''}",
            )

        logger.info(
            "Leave %s: %s → %s by %s (%s)",
            request_id, current.value, new_status.value, actor.id, actor.role.value,
        )

        if new_status in TERMINAL_LEAVE_STATUSES:
            await self._notify(TransitionEvent(
                recipient_id=updated.employee_id,
                entity_type=TargetType.leave_request.value,
                entity_id=updated.id,
                status=new_status.value,
                title=f"Leave Request {new_status.value.capitalize()}",
                message=(
                    f"Your leave request for {updated.leave_type.value} has been "
                    f"{new_status.value}."
                ),
            ))
        return updated

    async def bulk_review_leave(
        self,
        actor: Actor,
        request_ids: Sequence[uuid.UUID],
        target_status: LeaveStatus,
        comment: str = "",
    ) -> BulkReviewResult:
        """Review each id independently; one failure never undoes another id."""
        if not request_ids:
            raise ValidationException({"request_ids": ["At least one leave request id is required."]})
        if target_status not in TERMINAL_LEAVE_STATUSES:
            raise ValidationException({"status": ["Bulk review target must be approved or rejected."]})
        if not can_review_leave(actor.role):
            raise AuthorizationError("Only managers and HR admins can review leave requests.")

        result = BulkReviewResult()
        reviewed_ids: list[uuid.UUID] = []
        for request_id in dict.fromkeys(request_ids):
            try:
                await self.review_leave(actor, request_id, target_status, comment)
            except AppException as exc:
                result.failed.append(BulkReviewFailure(request_id, exc.error_type, exc.detail))
            except SQLAlchemyError:
                logger.exception("Storage failure reviewing leave %s in bulk", request_id)
                await self.ledger.rollback()
                result.failed.append(
                    BulkReviewFailure(request_id, "internal-error", "Storage failure; request not reviewed.")
                )
            else:
                reviewed_ids.append(request_id)

        # A rollback for a later id expires the rows committed before it
        for request_id in reviewed_ids:
            result.reviewed.append(await self.ledger.get_leave(request_id, refresh=True))

        logger.info(
            "Bulk review by %s: %d reviewed, %d failed",
            actor.id, len(result.reviewed), len(result.failed),
        )
        return result

    # ─────────────────────────────────────────────────────────────────
    # Leave: cancel
    # ─────────────────────────────────────────────────────────────────

    async def cancel_leave(self, actor: Actor, request_id: uuid.UUID) -> None:
        leave_req = await self.ledger.get_leave(request_id)
        if leave_req.employee_id != actor.id:
            raise AuthorizationError("Not authorized to cancel this leave request.")
        if leave_req.status != LeaveStatus.pending:
            raise InvalidStateError(
                "LeaveRequest", leave_req.status, "Only pending leave requests can be cancelled.",
            )

        async with self._unit_of_work():
            await self.ledger.delete_leave(request_id, expected=LeaveStatus.pending)
            await self.recorder.record(
                actor_id=actor.id,
                action="cancel_leave",
                target_type=TargetType.leave_request.value,
                target_id=request_id,
                details=(
                    f"Cancelled {leave_req.leave_type.value} leave "
                    f"{leave_req.start_date.isoformat()}..{leave_req.end_date.isoformat()}."
                ),
            )
        logger.info("Leave %s cancelled by %s", request_id, actor.id)

    # ─────────────────────────────────────────────────────────────────
    # Leave: reads
    # ─────────────────────────────────────────────────────────────────

    async def my_leaves(self, actor: Actor) -> Sequence[LeaveRequest]:
        return await self.ledger.leaves_for_employee(actor.id)

    async def pending_leaves(self, actor: Actor) -> Sequence[LeaveRequest]:
        """Manager: pending in own department. Admin: pending and pending_hr everywhere."""
        statuses = PENDING_LEAVE_SCOPE[actor.role]
        if not statuses:
            raise AuthorizationError("Only managers and HR admins have a leave approval queue.")
        return await self.ledger.leaves_by_status(
            statuses, department_id=self._department_scope(actor),
        )

    async def all_leaves(
        self,
        actor: Actor,
        *,
        offset: int,
        limit: int,
        status: Optional[LeaveStatus] = None,
        leave_type: Optional[LeaveType] = None,
    ) -> tuple[Sequence[LeaveRequest], int]:
        if not can_review_leave(actor.role):
            raise AuthorizationError("Only managers and HR admins can list all leave requests.")
        return await self.ledger.page_leaves(
            offset=offset,
            limit=limit,
            status=status,
            leave_type=leave_type,
            department_id=self._department_scope(actor),
        )

    async def leave_stats(self, actor: Actor) -> LeaveStats:
        if not can_review_leave(actor.role):
            raise AuthorizationError("Only managers and HR admins can view leave statistics.")
        by_status, by_type = await self.ledger.leave_counts(
            department_id=self._department_scope(actor),
        )
        return LeaveStats(
            by_status={s.value: by_status.get(s, 0) for s in LeaveStatus},
            by_type={t.value: by_type.get(t, 0) for t in LeaveType},
        )

    # ─────────────────────────────────────────────────────────────────
    # Reimbursements: submit / edit
    # ─────────────────────────────────────────────────────────────────

    async def submit_claim(
        self,
        actor: Actor,
        *,
        title: str,
        items: Sequence[Mapping[str, Any]],
        submit: bool = False,
    ) -> ReimbursementClaim:
        """Create a claim as a draft, or straight into the manager queue when ``submit``."""
        stored_items = self._normalise_items(items)
        self._validate_claim(title, stored_items, submit)
        status = ReimbursementStatus.pending_manager if submit else ReimbursementStatus.draft

        async with self._unit_of_work():
            claim = await self.ledger.create_claim(
                employee_id=actor.id,
                title=title.strip(),
                items=stored_items,
                status=status,
            )
            await self.recorder.record(
                actor_id=actor.id,
                action="apply_reimbursement",
                target_type=TargetType.reimbursement_claim.value,
                target_id=claim.id,
                details=(
                    f"Applied for reimbursement: {claim.title}. "
                    f"Total: {claim.total_amount}. Status: {status.value}"
                ),
            )
        logger.info("Claim %s created by %s (%s)", claim.id, actor.id, status.value)
        return claim

    async def update_claim(
        self,
        actor: Actor,
        claim_id: uuid.UUID,
        *,
        title: str,
        items: Sequence[Mapping[str, Any]],
        submit: bool = False,
    ) -> ReimbursementClaim:
        """Replace a draft's title and items; only the owner, only while draft."""
        claim = await self.ledger.get_claim(claim_id)
        if claim.employee_id != actor.id:
            raise AuthorizationError("You can only edit your own reimbursements.")
        if claim.status != ReimbursementStatus.draft:
            raise InvalidStateError(
                "ReimbursementClaim", claim.status, "Only draft reimbursements can be edited.",
            )

        stored_items = self._normalise_items(items)
        self._validate_claim(title, stored_items, submit)
        new_status = ReimbursementStatus.pending_manager if submit else ReimbursementStatus.draft

        async with self._unit_of_work():
            updated = await self.ledger.update_draft(
                claim_id, title=title.strip(), items=stored_items, new_status=new_status,
            )
            await self.recorder.record(
                actor_id=actor.id,
                action="update_reimbursement",
                target_type=TargetType.reimbursement_claim.value,
                target_id=claim_id,
                details=f"Total: {updated.total_amount}. Status: {new_status.value}",
            )
        logger.info("Claim %s updated by %s (%s)", claim_id, actor.id, new_status.value)
        return updated

    # ─────────────────────────────────────────────────────────────────
    # Reimbursements: review
    # ─────────────────────────────────────────────────────────────────

    async def review_claim(
        self,
        actor: Actor,
        claim_id: uuid.UUID,
        *,
        approved: bool,
        comment: str = "",
    ) -> ReimbursementClaim:
        """Record the decision for whichever stage the actor's role covers."""
        if not can_review_claims(actor.role):
            raise AuthorizationError(
                "Only managers, finance and HR admins can review reimbursements."
            )

        claim = await self.ledger.get_claim(claim_id)
        current = claim.status
        approval_field, new_status = resolve_claim_stage(actor.role, current, approved)
        if current == ReimbursementStatus.pending_manager:
            self._check_same_department(actor, claim.employee.department_id)

        approval = {
            "approved": approved,
            "approver_id": str(actor.id),
            "comment": comment or "",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        async with self._unit_of_work():
            updated = await self.ledger.transition_claim(
                claim_id,
                expected=current,
                new_status=new_status,
                approval_field=approval_field,
                approval=approval,
            )
            await self.recorder.record(
                actor_id=actor.id,
                action=f"review_reimbursement:{new_status.value}",
                target_type=TargetType.reimbursement_claim.value,
                target_id=claim_id,
                details=(
                    f"Approval: {approved}. Status set to {new_status.value}. "
                    f"Comment: {comment or ''}"
                ),
            )

        logger.info(
            "Claim %s: %s → %s by %s (%s)",
            claim_id, current.value, new_status.value, actor.id, actor.role.value,
        )
        await self._notify(TransitionEvent(
            recipient_id=updated.employee_id,
            entity_type=TargetType.reimbursement_claim.value,
            entity_id=updated.id,
            status=new_status.value,
            title="Reimbursement Update",
            message=f"Your reimbursement '{updated.title}' is now {new_status.value.replace('_', ' ')}.",
        ))
        return updated

    # ─────────────────────────────────────────────────────────────────
    # Reimbursements: reads
    # ─────────────────────────────────────────────────────────────────

    async def my_claims(self, actor: Actor) -> Sequence[ReimbursementClaim]:
        return await self.ledger.claims_for_employee(actor.id)

    async def pending_claims(self, actor: Actor) -> Sequence[ReimbursementClaim]:
        """Manager: pending_manager in own department. Finance: pending_finance. Admin: both."""
        statuses = PENDING_CLAIM_SCOPE[actor.role]
        if not statuses:
            raise AuthorizationError("Not authorized to view pending reimbursements.")
        return await self.ledger.claims_by_status(
            statuses, department_id=self._department_scope(actor),
        )

    async def all_claims(
        self,
        actor: Actor,
        *,
        offset: int,
        limit: int,
        status: Optional[ReimbursementStatus] = None,
    ) -> tuple[Sequence[ReimbursementClaim], int]:
        if not can_review_claims(actor.role):
            raise AuthorizationError("Not authorized to list all reimbursements.")
        return await self.ledger.page_claims(
            offset=offset,
            limit=limit,
            status=status,
            department_id=self._department_scope(actor),
        )


def build_workflow_engine(
    db: AsyncSession,
    dispatcher: NotificationDispatcher,
    *,
    conflict_threshold: Optional[float] = None,
) -> WorkflowEngine:
    """Wire the engine's collaborators onto one session."""
    recorder = AuditRecorder(db)
    return WorkflowEngine(
        RequestLedger(db),
        calculator=BusinessDayCalculator(),
        detector=ConflictDetector(
            conflict_threshold
            if conflict_threshold is not None
            else settings.DEPARTMENT_CONFLICT_THRESHOLD
        ),
        recorder=recorder,
        dispatcher=dispatcher,
        balances=AccrualEngine(db),
        holidays=HolidayRegistry(db, recorder),
        reason_max_length=settings.LEAVE_REASON_MAX_LENGTH,
    )
