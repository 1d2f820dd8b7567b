"""
A service that watches Discord and Telegram direct messages for pings and
monitored users and forwards notifications to a Telegram chat.
"""

from . import config
from .monitor import Monitor, create_monitors
from .notifier import NotificationService
from .supervisor import MonitorSupervisor, run_forever
