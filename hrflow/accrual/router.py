"""Accrual router — burnout report for HR admins.

The crediting jobs themselves run from ``scripts/run_accrual.py``.
"""


from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from hrflow.accrual.schemas import BurnoutFlagOut, BurnoutReport
from hrflow.accrual.service import AccrualEngine, months_before
from hrflow.auth.dependencies import require_role
from hrflow.common.constants import UserRole
from hrflow.dependencies import get_accrual_engine
from hrflow.workflow.engine import Actor

router = APIRouter(prefix="", tags=["accruals"])


@router.get("/burnout", response_model=BurnoutReport)
async def burnout_report(
    as_of: Optional[date] = Query(None),
    actor: Actor = Depends(require_role(UserRole.admin)),
    accruals: AccrualEngine = Depends(get_accrual_engine),
):
    """Active employees who have not taken leave for the configured number of months."""
    as_of = as_of or date.today()
    flags = await accruals.burnout_scan(as_of)
    return BurnoutReport(
        as_of=as_of,
        cutoff=months_before(as_of, accruals.burnout_months),
        count=len(flags),
        employees=[BurnoutFlagOut.model_validate(f) for f in flags],
    )
