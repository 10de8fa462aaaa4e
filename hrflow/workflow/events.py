"""Transition events and the best-effort notification bus.

The engine publishes a ``TransitionEvent`` after the state change has been
committed. Delivery failures are logged and swallowed here; they never reach
the workflow.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionEvent:
    """One status change, addressed to the request's owner."""

    recipient_id: uuid.UUID
    entity_type: str
    entity_id: uuid.UUID
    status: str
    title: str
    message: str
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def payload(self) -> dict[str, str]:
        """The wire shape sent to the employee: ``{request_id, status, message}``."""
        return {
            "request_id": str(self.entity_id),
            "status": self.status,
            "message": self.message,
        }


@runtime_checkable
class NotificationDispatcher(Protocol):
    async def dispatch(self, event: TransitionEvent) -> None:
        ...


class EventBus:
    """Fans an event out to every subscriber, isolating their failures."""

    def __init__(self, subscribers: Iterable[NotificationDispatcher] = ()) -> None:
        self._subscribers: list[NotificationDispatcher] = list(subscribers)

    def subscribe(self, subscriber: NotificationDispatcher) -> None:
        self._subscribers.append(subscriber)

    @property
    def subscribers(self) -> tuple[NotificationDispatcher, ...]:
        return tuple(self._subscribers)

    async def dispatch(self, event: TransitionEvent) -> None:
        for subscriber in self._subscribers:
            try:
                await subscriber.dispatch(event)
            except Exception:
                logger.exception(
                    "Notification delivery failed for %s %s (%s) via %s",
                    event.entity_type,
                    event.entity_id,
                    event.status,
                    type(subscriber).__name__,
                )
