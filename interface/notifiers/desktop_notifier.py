"""
Desktop Notifier for Daily Rhythm.

Sends system notifications through plyer.
"""
from plyer import notification as plyer_notification

from core.logger import get_logger
from interface.notifiers.base import BaseNotifier, Notification

logger = get_logger("notify.desktop")

# 根据优先级设置显示时长 (秒)
TIMEOUTS = {"low": 3, "normal": 5, "high": 10}


class DesktopNotifier(BaseNotifier):
    """Send notifications via system desktop notifications."""

    def send(self, notification: Notification) -> bool:
        if not self.enabled:
            return False
        try:
            plyer_notification.notify(
                title=notification.title,
                message=notification.message,
                app_name="Daily Rhythm",
                timeout=TIMEOUTS.get(notification.priority.value, 5),
            )
            return True
        except (NotImplementedError, OSError, ValueError) as e:
            # 无桌面环境时 plyer 没有可用后端
            logger.warning("Desktop notification failed: %s", e)
            return False

    def get_name(self) -> str:
        return "desktop"
