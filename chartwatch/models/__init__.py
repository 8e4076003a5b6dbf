"""Database models."""

from chartwatch.models.automation_schedule import AutomationSchedule
from chartwatch.models.job_log import JobLog
from chartwatch.models.telegram_config import TelegramConfig

__all__ = [
    "AutomationSchedule",
    "JobLog",
    "TelegramConfig",
]
