"""Holiday registry: the organisation-wide calendar of non-working days."""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from typing import Optional, Sequence

from sqlalchemy import extract, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hrflow.common.audit import AuditRecorder
from hrflow.common.constants import TargetType
from hrflow.common.exceptions import ConflictError, NotFoundException
from hrflow.holidays.models import Holiday

logger = logging.getLogger(__name__)


class HolidayRegistry:
    """Holiday CRUD plus the date-set lookup used for business-day counting.

    Changing the calendar never touches existing leave requests; their
    ``total_days`` was fixed when they were submitted.
    """

    def __init__(self, db: AsyncSession, recorder: Optional[AuditRecorder] = None) -> None:
        self.db = db
        self.recorder = recorder or AuditRecorder(db)

    async def list_holidays(self, year: Optional[int] = None) -> Sequence[Holiday]:
        query = select(Holiday).order_by(Holiday.date)
        if year is not None:
            query = query.where(extract("year", Holiday.date) == year)
        result = await self.db.execute(query)
        return result.scalars().all()

    async def dates_between(self, start: dt.date, end: dt.date) -> set[dt.date]:
        result = await self.db.execute(
            select(Holiday.date).where(Holiday.date >= start, Holiday.date <= end)
        )
        return set(result.scalars().all())

    async def add_holiday(
        self,
        *,
        actor_id: uuid.UUID,
        name: str,
        date: dt.date,
        description: Optional[str] = None,
    ) -> Holiday:
        existing = await self.db.execute(select(Holiday.id).where(Holiday.date == date))
        if existing.scalar() is not None:
            raise ConflictError(
                "date", date.isoformat(), detail="Holiday already exists on this date.",
            )

        holiday = Holiday(name=name, date=date, description=description)
        self.db.add(holiday)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise ConflictError(
                "date", date.isoformat(), detail="Holiday already exists on this date.",
            ) from exc

        await self.recorder.record(
            actor_id=actor_id,
            action="add_holiday",
            target_type=TargetType.holiday.value,
            target_id=holiday.id,
            details=f"{name} on {date.isoformat()}",
        )
        logger.info("Holiday %s added on %s", name, date)
        return holiday

    async def delete_holiday(self, *, actor_id: uuid.UUID, holiday_id: uuid.UUID) -> None:
        holiday = await self.db.get(Holiday, holiday_id)
        if holiday is None:
            raise NotFoundException("Holiday", str(holiday_id))

        await self.db.delete(holiday)
        await self.db.flush()
        await self.recorder.record(
            actor_id=actor_id,
            action="delete_holiday",
            target_type=TargetType.holiday.value,
            target_id=holiday_id,
            details=f"{holiday.name} on {holiday.date.isoformat()}",
        )
        logger.info("Holiday %s on %s deleted", holiday.name, holiday.date)
