"""Balance ORM model: EmployeeBalance.

Mutated only by ``AccrualEngine`` (scheduled credits, carry-forward and
approved-leave consumption).
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrflow.database import Base

if TYPE_CHECKING:
    from hrflow.core_hr.models import Employee


class EmployeeBalance(Base):
    __tablename__ = "employee_balances"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    sl: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), nullable=False, default=Decimal("12"))
    cl: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), nullable=False, default=Decimal("12"))
    el: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), nullable=False, default=Decimal("15"))
    ml: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), nullable=False, default=Decimal("0"))
    pl: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), nullable=False, default=Decimal("0"))
    last_leave_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    # Idempotency markers for the scheduled jobs
    last_accrual_period: Mapped[Optional[str]] = mapped_column(sa.String(7))
    last_carry_forward_year: Mapped[Optional[int]] = mapped_column(sa.Integer)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    employee: Mapped["Employee"] = relationship(back_populates="balance")

    def __repr__(self) -> str:
        return (
            f"<EmployeeBalance {self.employee_id} SL={self.sl} CL={self.cl} "
            f"EL={self.el} ML={self.ml} PL={self.pl}>"
        )
