"""
Base Notifier for Daily Rhythm.

Defines the base interface for all notifiers and the mapping from tick
signals to notifications.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from core.models import DayRolled, EstimateReached, IdleAutoPaused, IdleCheckDue
from core.time_tracking import format_duration


class NotificationPriority(Enum):
    """Notification priority levels."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


@dataclass
class Notification:
    """A notification to be sent."""
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.NORMAL
    created_at: Optional[str] = None
    action_required: bool = False
    data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = datetime.now().isoformat()


def notification_for(event: object) -> Optional[Notification]:
    """把 tick 信号翻译成通知；不需要通知的信号返回 None。"""
    if isinstance(event, EstimateReached):
        return Notification(
            title="Estimate reached",
            message=(
                f"{event.title}: {format_duration(event.elapsed)} of "
                f"{format_duration(event.estimate)}. Done, extend, pause or postpone?"
            ),
            priority=NotificationPriority.HIGH,
            action_required=True,
            data={"entity_id": event.entity_id, "kind": "estimate_reached"},
        )
    if isinstance(event, IdleCheckDue):
        return Notification(
            title="Still working?",
            message=f"{len(event.running_ids)} timer(s) running. Confirm or they will be paused.",
            priority=NotificationPriority.HIGH,
            action_required=True,
            data={"entity_ids": list(event.running_ids), "kind": "idle_check"},
        )
    if isinstance(event, IdleAutoPaused):
        return Notification(
            title="Timers paused",
            message=f"No answer to the idle check, paused {len(event.paused_ids)} timer(s).",
            data={"entity_ids": list(event.paused_ids), "kind": "idle_paused"},
        )
    if isinstance(event, DayRolled):
        return Notification(
            title="New day",
            message=f"Carried {event.migrated} task(s) over from {event.previous_date.isoformat()}.",
            priority=NotificationPriority.LOW,
            data={"kind": "day_rolled"},
        )
    return None


class BaseNotifier(ABC):
    """Base class for all notifiers."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.enabled = self.config.get("enabled", True)

    @abstractmethod
    def send(self, notification: Notification) -> bool:
        """
        Send a notification.

        Args:
            notification: The notification to send.

        Returns:
            True if sent successfully, False otherwise.
        """

    @abstractmethod
    def get_name(self) -> str:
        """Return the notifier name."""

    def is_available(self) -> bool:
        """Check if this notifier is available for use."""
        return self.enabled
