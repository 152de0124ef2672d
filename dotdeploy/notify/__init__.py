"""部署通知"""

from dotdeploy.notify.telegram import TelegramNotifier

__all__ = ["TelegramNotifier"]
