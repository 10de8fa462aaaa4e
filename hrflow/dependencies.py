"""Shared FastAPI dependencies for the workflow services."""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hrflow.accrual.service import AccrualEngine
from hrflow.common.audit import AuditRecorder
from hrflow.database import get_db
from hrflow.holidays.service import HolidayRegistry
from hrflow.workflow.engine import WorkflowEngine, build_workflow_engine
from hrflow.workflow.events import EventBus


def get_event_bus(request: Request) -> EventBus:
    """The application-wide bus created at startup (see ``create_app``)."""
    return request.app.state.event_bus


def get_workflow_engine(
    db: AsyncSession = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus),
) -> WorkflowEngine:
    return build_workflow_engine(db, event_bus)


def get_audit_recorder(db: AsyncSession = Depends(get_db)) -> AuditRecorder:
    return AuditRecorder(db)


def get_holiday_registry(db: AsyncSession = Depends(get_db)) -> HolidayRegistry:
    return HolidayRegistry(db)


def get_accrual_engine(db: AsyncSession = Depends(get_db)) -> AccrualEngine:
    return AccrualEngine(db)
