"""Holiday router — public calendar reads, admin-only writes."""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query

from hrflow.auth.dependencies import get_current_actor, require_role
from hrflow.common.constants import UserRole
from hrflow.dependencies import get_holiday_registry
from hrflow.holidays.schemas import HolidayCreate, HolidayOut
from hrflow.holidays.service import HolidayRegistry
from hrflow.workflow.engine import Actor

router = APIRouter(prefix="", tags=["holidays"])


@router.get("/", response_model=list[HolidayOut])
async def list_holidays(
    year: Optional[int] = Query(None, ge=1900, le=2200),
    actor: Actor = Depends(get_current_actor),
    registry: HolidayRegistry = Depends(get_holiday_registry),
):
    return await registry.list_holidays(year)


@router.post("/", response_model=HolidayOut, status_code=201)
async def add_holiday(
    body: HolidayCreate,
    actor: Actor = Depends(require_role(UserRole.admin)),
    registry: HolidayRegistry = Depends(get_holiday_registry),
):
    """Register a holiday. Existing leave requests keep their day counts."""
    return await registry.add_holiday(
        actor_id=actor.id, name=body.name, date=body.date, description=body.description,
    )


@router.delete("/{holiday_id}")
async def delete_holiday(
    holiday_id: uuid.UUID,
    actor: Actor = Depends(require_role(UserRole.admin)),
    registry: HolidayRegistry = Depends(get_holiday_registry),
):
    await registry.delete_holiday(actor_id=actor.id, holiday_id=holiday_id)
    return {"message": "Holiday deleted"}
