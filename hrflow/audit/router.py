"""Audit log router — admin-only search and CSV export."""


from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from hrflow.auth.dependencies import require_role
from hrflow.audit.schemas import AuditEntryOut
from hrflow.common.audit import AuditRecorder
from hrflow.common.constants import UserRole
from hrflow.config import settings
from hrflow.dependencies import get_audit_recorder
from hrflow.workflow.engine import Actor

router = APIRouter(prefix="", tags=["audit"])

_admin = require_role(UserRole.admin)


@router.get("/", response_model=list[AuditEntryOut])
async def recent_entries(
    limit: int = Query(settings.AUDIT_RECENT_LIMIT, ge=1, le=1000),
    search: Optional[str] = Query(None, max_length=200, description="Matches action, details, actor name/email"),
    actor: Actor = Depends(_admin),
    recorder: AuditRecorder = Depends(get_audit_recorder),
):
    """Most recent audit entries, newest first."""
    return await recorder.recent_entries(limit=limit, search=search)


@router.get("/export")
async def export_entries(
    search: Optional[str] = Query(None, max_length=200),
    actor: Actor = Depends(_admin),
    recorder: AuditRecorder = Depends(get_audit_recorder),
):
    """Download matching entries as CSV."""
    body = await recorder.export_csv(search=search)
    filename = f"audit-log-{date.today().isoformat()}.csv"
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
