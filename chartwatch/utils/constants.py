"""Shared constants: schedule frequencies, signal actions, job statuses."""

from datetime import timedelta
from enum import Enum


class Frequency(str, Enum):
    FIFTEEN_MINUTES = "15m"
    ONE_HOUR = "1h"
    FOUR_HOURS = "4h"
    ONE_DAY = "1d"
    ONE_WEEK = "1w"

    @property
    def interval(self) -> timedelta:
        return FREQUENCY_INTERVALS[self]


FREQUENCY_INTERVALS: dict[Frequency, timedelta] = {
    Frequency.FIFTEEN_MINUTES: timedelta(minutes=15),
    Frequency.ONE_HOUR: timedelta(hours=1),
    Frequency.FOUR_HOURS: timedelta(hours=4),
    Frequency.ONE_DAY: timedelta(days=1),
    Frequency.ONE_WEEK: timedelta(weeks=1),
}

VALID_FREQUENCIES = [f.value for f in Frequency]


class SignalAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class JobStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


TERMINAL_STATUSES = (JobStatus.SUCCESS.value, JobStatus.FAILED.value, JobStatus.SKIPPED.value)

# Statuses whose action counts as the "previous signal"
SIGNAL_STATUSES = (JobStatus.SUCCESS.value, JobStatus.SKIPPED.value)

SKIP_HOLD_SUPPRESSED = "hold suppressed"
SKIP_SIGNAL_UNCHANGED = "signal unchanged"
SKIP_LOW_CONFIDENCE = "confidence below threshold"

TELEGRAM_NOT_CONFIGURED = "telegram not configured"
ABANDONED_RUN_MESSAGE = "abandoned: run lease expired"
CANCELLED_RUN_MESSAGE = "cancelled on shutdown"
