"""Accrual report schemas."""

import uuid
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict


class BurnoutFlagOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: uuid.UUID
    employee_code: str
    name: str
    email: str
    department: Optional[str] = None
    last_leave_date: Optional[date] = None
    date_of_joining: date
    reference_date: date


class BurnoutReport(BaseModel):
    as_of: date
    cutoff: date
    count: int
    employees: list[BurnoutFlagOut]
