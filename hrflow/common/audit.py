"""Immutable audit trail: model, recorder, and read helpers.

Entries are written through ``AuditRecorder.record`` inside the same
session as the state change they document, so both commit or roll back
together. Nothing in the codebase updates or deletes an ``AuditEntry``.
"""

from __future__ import annotations

import csv
import io
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    event,
    or_,
    select,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column, relationship, selectinload

from hrflow.core_hr.models import Employee
from hrflow.database import Base

logger = logging.getLogger(__name__)


# ── Immutable audit-trail table ─────────────────────────────────────

class AuditEntry(Base):
    """Append-only log of every state-changing workflow operation."""

    __tablename__ = "audit_entries"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("employees.id"),
        nullable=True,
    )
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    target_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    details: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    actor: Mapped[Optional[Employee]] = relationship()

    __table_args__ = (
        Index("ix_audit_entries_actor_id", "actor_id"),
        Index("ix_audit_entries_target", "target_type", "target_id"),
        Index("ix_audit_entries_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditEntry {self.action} {self.target_type}"
            f"/{self.target_id} by {self.actor_id}>"
        )


@event.listens_for(AuditEntry, "before_update")
def _refuse_update(mapper, connection, target) -> None:
    raise RuntimeError(f"Audit entries are immutable: {target!r}")


@event.listens_for(AuditEntry, "before_delete")
def _refuse_delete(mapper, connection, target) -> None:
    raise RuntimeError(f"Audit entries are immutable: {target!r}")


EXPORT_COLUMNS = ("created_at", "actor", "action", "target_type", "target_id", "details")


# ── Recorder ────────────────────────────────────────────────────────

class AuditRecorder:
    """Writes and reads audit entries on a caller-supplied session."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def record(
        self,
        *,
        actor_id: Optional[uuid.UUID],
        action: str,
        target_type: str,
        target_id: Optional[uuid.UUID],
        details: str = "",
    ) -> AuditEntry:
        """
        Add and flush an audit entry in the current transaction.

        Args:
            actor_id: Employee performing the action.
            action: Human-readable label, e.g. "Review Leave: approved".
            target_type: e.g. "leave_request", "reimbursement_claim".
            target_id: UUID of the affected entity.
            details: Free text searched by ``recent_entries``.

        A failed flush is logged as a data-integrity problem and re-raised;
        the caller's transaction must not commit the state change alone.
        """
        entry = AuditEntry(
            actor_id=actor_id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            details=details,
        )
        self.db.add(entry)
        try:
            await self.db.flush()
        except SQLAlchemyError:
            logger.error(
                "Data integrity: audit write failed for %s %s/%s by %s",
                action, target_type, target_id, actor_id,
            )
            raise
        return entry

    def _search_query(self, search: Optional[str]):
        query = (
            select(AuditEntry)
            .options(selectinload(AuditEntry.actor))
            .order_by(AuditEntry.created_at.desc())
        )
        if search and search.strip():
            term = f"%{search.strip()}%"
            query = query.outerjoin(Employee, AuditEntry.actor_id == Employee.id).where(
                or_(
                    AuditEntry.action.ilike(term),
                    AuditEntry.details.ilike(term),
                    Employee.first_name.ilike(term),
                    Employee.last_name.ilike(term),
                    Employee.email.ilike(term),
                )
            )
        return query

    async def recent_entries(
        self,
        limit: int = 100,
        search: Optional[str] = None,
    ) -> Sequence[AuditEntry]:
        """Newest first, optionally filtered by free text over action/actor/details."""
        result = await self.db.execute(self._search_query(search).limit(limit))
        return result.scalars().all()

    async def entries_for(self, target_id: uuid.UUID) -> Sequence[AuditEntry]:
        result = await self.db.execute(
            select(AuditEntry)
            .where(AuditEntry.target_id == target_id)
            .order_by(AuditEntry.created_at)
        )
        return result.scalars().all()

    async def export_csv(self, search: Optional[str] = None) -> str:
        """Render every matching entry as CSV text, newest first."""
        result = await self.db.execute(self._search_query(search))
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(EXPORT_COLUMNS)
        for entry in result.scalars().all():
            writer.writerow([
                entry.created_at.isoformat() if entry.created_at else "",
                entry.actor.email if entry.actor else "",
                entry.action,
                entry.target_type,
                str(entry.target_id) if entry.target_id else "",
                entry.details,
            ])
        return buffer.getvalue()
