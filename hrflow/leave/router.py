"""Leave router — apply, cancel, review (single and bulk), listings, stats, balances.

All endpoints require authentication. Review and organisation-wide listings
are limited to managers (own department) and HR admins.
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from hrflow.accrual.service import AccrualEngine
from hrflow.auth.dependencies import get_current_actor, require_role
from hrflow.common.constants import LeaveStatus, LeaveType, UserRole
from hrflow.common.pagination import PaginationParams, build_meta
from hrflow.common.rate_limit import SUBMISSION_LIMIT, limiter
from hrflow.dependencies import get_accrual_engine, get_workflow_engine
from hrflow.leave.schemas import (
    BulkReviewFailureOut,
    BulkReviewRequest,
    BulkReviewResponse,
    LeaveBalanceOut,
    LeaveListResponse,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveReviewRequest,
    LeaveStatsOut,
    LeaveSubmitResponse,
)
from hrflow.workflow.engine import Actor, WorkflowEngine

router = APIRouter(prefix="", tags=["leave"])

_reviewer = require_role(UserRole.manager, UserRole.admin)


# ── POST /apply ─────────────────────────────────────────────────────

@router.post("/apply", response_model=LeaveSubmitResponse, status_code=201)
@limiter.limit(SUBMISSION_LIMIT)
async def apply_leave(
    request: Request,
    body: LeaveRequestCreate,
    actor: Actor = Depends(get_current_actor),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    """Apply for leave. Returns the request and an advisory department conflict warning."""
    submission = await engine.submit_leave(
        actor,
        leave_type=body.leave_type,
        start=body.start_date,
        end=body.end_date,
        reason=body.reason,
        attachment_ref=body.attachment_ref,
    )
    return LeaveSubmitResponse(
        leave=LeaveRequestOut.model_validate(submission.request),
        conflict_warning=submission.conflict_warning,
    )


# ── GET /my-leaves ──────────────────────────────────────────────────

@router.get("/my-leaves", response_model=list[LeaveRequestOut])
async def my_leaves(
    actor: Actor = Depends(get_current_actor),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    """The authenticated user's leave requests, newest first."""
    return await engine.my_leaves(actor)


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=LeaveBalanceOut)
async def my_balances(
    actor: Actor = Depends(get_current_actor),
    balances: AccrualEngine = Depends(get_accrual_engine),
):
    """Current SL/CL/EL/ML/PL balance of the authenticated user."""
    return await balances.balance_for(actor.id)


# ── GET /pending ────────────────────────────────────────────────────
# NOTE: static paths are registered before /{request_id} routes.

@router.get("/pending", response_model=list[LeaveRequestOut])
async def pending_leaves(
    actor: Actor = Depends(_reviewer),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    """Approval queue: managers see their department's pending requests,
    HR admins see pending and pending_hr across the organisation."""
    return await engine.pending_leaves(actor)


# ── GET /stats ──────────────────────────────────────────────────────

@router.get("/stats", response_model=LeaveStatsOut)
async def leave_stats(
    actor: Actor = Depends(_reviewer),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    stats = await engine.leave_stats(actor)
    return LeaveStatsOut(total=stats.total, by_status=stats.by_status, by_type=stats.by_type)


# ── PUT /bulk-review ────────────────────────────────────────────────

@router.put("/bulk-review", response_model=BulkReviewResponse)
async def bulk_review(
    body: BulkReviewRequest,
    actor: Actor = Depends(_reviewer),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    """Approve or reject many requests; each id succeeds or fails on its own."""
    result = await engine.bulk_review_leave(
        actor, body.request_ids, body.status, body.review_comment,
    )
    return BulkReviewResponse(
        reviewed=[LeaveRequestOut.model_validate(r) for r in result.reviewed],
        failed=[
            BulkReviewFailureOut(request_id=f.request_id, error=f.error, detail=f.detail)
            for f in result.failed
        ],
    )


# ── GET / (all, paginated) ──────────────────────────────────────────

@router.get("/", response_model=LeaveListResponse)
async def all_leaves(
    status: Optional[LeaveStatus] = Query(None),
    leave_type: Optional[LeaveType] = Query(None),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(_reviewer),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    """All leave requests (department-scoped for managers), newest first."""
    rows, total = await engine.all_leaves(
        actor,
        offset=pagination.offset,
        limit=pagination.page_size,
        status=status,
        leave_type=leave_type,
    )
    return LeaveListResponse(
        data=[LeaveRequestOut.model_validate(r) for r in rows],
        meta=build_meta(total, pagination.page, pagination.page_size),
    )


# ── PUT /{request_id}/review ────────────────────────────────────────

@router.put("/{request_id}/review", response_model=LeaveRequestOut)
async def review_leave(
    request_id: uuid.UUID,
    body: LeaveReviewRequest,
    actor: Actor = Depends(_reviewer),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    """Approve or reject one request. A manager's approval forwards it to HR."""
    return await engine.review_leave(actor, request_id, body.status, body.review_comment)


# ── DELETE /{request_id} ────────────────────────────────────────────

@router.delete("/{request_id}")
async def cancel_leave(
    request_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    """Cancel (delete) one of your own pending requests."""
    await engine.cancel_leave(actor, request_id)
    return {"message": "Leave cancelled successfully"}
