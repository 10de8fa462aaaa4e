"""Holiday Pydantic schemas."""

import datetime as dt
import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class HolidayCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    date: dt.date
    description: Optional[str] = Field(None, max_length=2000)


class HolidayOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    date: dt.date
    description: Optional[str] = None
    created_at: dt.datetime
