"""JobLog model: audit record of one automation run."""

from datetime import datetime

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlmodel import SQLModel, Field

from chartwatch.models.types import UTCDateTime, utcnow


class JobLog(SQLModel, table=True):
    __tablename__ = "automation_job_log"

    id: int | None = Field(default=None, primary_key=True)
    schedule_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("automation_schedule.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        )
    )
    started_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)
    completed_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    duration_ms: int | None = None
    status: str = "running"  # "running", "success", "failed", "skipped"

    # Signal
    action: str | None = None  # "BUY", "SELL", "HOLD"
    confidence: int | None = None
    previous_action: str | None = None
    signal_changed: bool = False
    met_min_confidence: bool = False
    analysis_id: str | None = None

    # Notification outcome, independent of status
    telegram_sent: bool = False
    telegram_chat_id: str | None = None
    telegram_error: str | None = None

    skip_reason: str | None = None
    error_message: str | None = None
    error_stack: str | None = Field(default=None, sa_column=Column(Text))
