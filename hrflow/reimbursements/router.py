"""Reimbursement router — drafts, submission, manager/finance review, listings."""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from hrflow.auth.dependencies import get_current_actor, require_role
from hrflow.common.constants import ReimbursementStatus, UserRole
from hrflow.common.pagination import PaginationParams, build_meta
from hrflow.common.rate_limit import SUBMISSION_LIMIT, limiter
from hrflow.dependencies import get_workflow_engine
from hrflow.reimbursements.schemas import (
    ClaimCreate,
    ClaimListResponse,
    ClaimOut,
    ClaimReviewRequest,
    ClaimUpdate,
)
from hrflow.workflow.engine import Actor, WorkflowEngine

router = APIRouter(prefix="", tags=["reimbursements"])

_reviewer = require_role(UserRole.manager, UserRole.finance, UserRole.admin)


# ── POST / ──────────────────────────────────────────────────────────

@router.post("/", response_model=ClaimOut, status_code=201)
@limiter.limit(SUBMISSION_LIMIT)
async def create_claim(
    request: Request,
    body: ClaimCreate,
    actor: Actor = Depends(get_current_actor),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    """Create a claim as draft, or submit it to the manager with ``submit: true``."""
    return await engine.submit_claim(
        actor,
        title=body.title,
        items=[item.model_dump(mode="json") for item in body.items],
        submit=body.submit,
    )


# ── GET /my ─────────────────────────────────────────────────────────

@router.get("/my", response_model=list[ClaimOut])
async def my_claims(
    actor: Actor = Depends(get_current_actor),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    return await engine.my_claims(actor)


# ── GET /pending ────────────────────────────────────────────────────

@router.get("/pending", response_model=list[ClaimOut])
async def pending_claims(
    actor: Actor = Depends(_reviewer),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    """Claims waiting on the caller's stage of approval."""
    return await engine.pending_claims(actor)


# ── GET / (all, paginated) ──────────────────────────────────────────

@router.get("/", response_model=ClaimListResponse)
async def all_claims(
    status: Optional[ReimbursementStatus] = Query(None),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(_reviewer),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    rows, total = await engine.all_claims(
        actor,
        offset=pagination.offset,
        limit=pagination.page_size,
        status=status,
    )
    return ClaimListResponse(
        data=[ClaimOut.model_validate(c) for c in rows],
        meta=build_meta(total, pagination.page, pagination.page_size),
    )


# ── PUT /{claim_id} ─────────────────────────────────────────────────

@router.put("/{claim_id}", response_model=ClaimOut)
async def update_claim(
    claim_id: uuid.UUID,
    body: ClaimUpdate,
    actor: Actor = Depends(get_current_actor),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    """Edit your own draft. Non-draft claims are immutable."""
    return await engine.update_claim(
        actor,
        claim_id,
        title=body.title,
        items=[item.model_dump(mode="json") for item in body.items],
        submit=body.submit,
    )


# ── PUT /{claim_id}/review ──────────────────────────────────────────

@router.put("/{claim_id}/review", response_model=ClaimOut)
async def review_claim(
    claim_id: uuid.UUID,
    body: ClaimReviewRequest,
    actor: Actor = Depends(_reviewer),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    """Approve or reject at the stage the caller's role covers."""
    return await engine.review_claim(
        actor, claim_id, approved=body.approved, comment=body.comment,
    )
