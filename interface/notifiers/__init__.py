"""
Notification fan-out for Daily Rhythm.
"""
from typing import Iterable, List, Optional

from core.config_manager import SystemConfig, config
from core.logger import get_logger
from interface.notifiers.base import BaseNotifier, Notification, notification_for

logger = get_logger("notify")


class NotificationCenter:
    """把 tick 信号分发给所有可用的通知器；单个通知器失败不影响其他。"""

    def __init__(self, notifiers: Optional[Iterable[BaseNotifier]] = None):
        self.notifiers: List[BaseNotifier] = list(notifiers or [])

    @classmethod
    def from_config(cls, cfg: Optional[SystemConfig] = None) -> "NotificationCenter":
        cfg = cfg or config
        notifiers: List[BaseNotifier] = []
        if cfg.NOTIFY_DESKTOP:
            from interface.notifiers.desktop_notifier import DesktopNotifier
            notifiers.append(DesktopNotifier())
        if cfg.WEBHOOK_URL:
            from interface.notifiers.webhook_notifier import WebhookNotifier
            notifiers.append(WebhookNotifier({"webhook_url": cfg.WEBHOOK_URL, "type": cfg.WEBHOOK_TYPE}))
        return cls(notifiers)

    def publish(self, events: Iterable[object]) -> List[Notification]:
        sent = []
        for event in events:
            notification = notification_for(event)
            if notification is None:
                continue
            for notifier in self.notifiers:
                if notifier.is_available() and notifier.send(notification):
                    logger.debug("Sent '%s' via %s", notification.title, notifier.get_name())
            sent.append(notification)
        return sent
