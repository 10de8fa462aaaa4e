"""Reimbursement ORM model: ReimbursementClaim.

Items are stored as an ordered JSON array; amounts are serialised as
decimal strings so ``total_amount`` can be recomputed exactly.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrflow.common.constants import ReimbursementStatus
from hrflow.database import Base

if TYPE_CHECKING:
    from hrflow.core_hr.models import Employee

JSONColumn = sa.JSON().with_variant(JSONB(), "postgresql")


def items_total(items: list[dict[str, Any]] | None) -> Decimal:
    """Sum of item amounts; the only way ``total_amount`` is ever derived."""
    return sum((Decimal(str(item.get("amount", "0"))) for item in items or []), Decimal("0"))


class ReimbursementClaim(Base):
    """Employee expense claim moving draft → manager → finance."""

    __tablename__ = "reimbursement_claims"
    __table_args__ = (
        sa.Index("ix_reimbursement_claims_status", "status"),
        sa.Index("ix_reimbursement_claims_employee", "employee_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(sa.String(500), nullable=False)
    items: Mapped[list] = mapped_column(JSONColumn, nullable=False, default=list)
    total_amount: Mapped[Decimal] = mapped_column(
        sa.Numeric(12, 2), nullable=False, default=Decimal("0"),
    )
    status: Mapped[ReimbursementStatus] = mapped_column(
        sa.Enum(ReimbursementStatus, name="reimbursement_status"),
        nullable=False,
        default=ReimbursementStatus.draft,
    )
    manager_approval: Mapped[Optional[dict]] = mapped_column(JSONColumn)
    finance_approval: Mapped[Optional[dict]] = mapped_column(JSONColumn)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    employee: Mapped["Employee"] = relationship(back_populates="claims")

    def __repr__(self) -> str:
        return f"<ReimbursementClaim '{self.title[:30]}' {self.total_amount} {self.status.value}>"
