"""
Status notifications

Best-effort pipeline status events published to an organization-scoped
channel. Sink failures are logged and never abort a run.
"""

import logging
from typing import Any, Literal, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

Status = Literal["processing", "completed", "failed"]


class StatusEvent(BaseModel):
    """One status update for a pipeline run."""

    data_source_id: str
    organization_id: str | None = None
    status: Status
    metrics: dict[str, Any] | None = None
    error: str | None = None

    @property
    def channel(self) -> str:
        return channel_for(self.organization_id)


def channel_for(organization_id: str | None) -> str:
    return f"organization:{organization_id or 'default'}"


class StatusNotifier(Protocol):
    async def notify(self, event: StatusEvent) -> None: ...


class LoggingStatusNotifier:
    """Notifier that writes events to the log."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    async def notify(self, event: StatusEvent) -> None:
        logger.log(
            self.level,
            f"[{event.channel}] {event.data_source_id}: {event.status}",
            extra={
                "channel": event.channel,
                "data_source_id": event.data_source_id,
                "status": event.status,
                "metrics": event.metrics,
                "error": event.error,
            },
        )


async def safe_notify(notifier: StatusNotifier | None, event: StatusEvent) -> bool:
    """Deliver an event, absorbing sink failures. Returns True when delivered."""
    if notifier is None:
        return False
    try:
        await notifier.notify(event)
        return True
    except Exception as e:
        logger.warning(
            f"Status notification to {event.channel} failed: {e}",
            extra={"status": event.status, "error_type": type(e).__name__},
        )
        return False
