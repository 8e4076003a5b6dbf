"""AutomationSchedule model: one user's recurring analysis job for one chart."""

from datetime import datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field

from chartwatch.models.types import UTCDateTime, utcnow


class AutomationSchedule(SQLModel, table=True):
    __tablename__ = "automation_schedule"
    __table_args__ = (UniqueConstraint("user_id", "target_ref", name="uq_schedule_user_target"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    target_ref: str  # chart layout reference, opaque to the engine
    label: str = ""  # display name for notifications, e.g. "EURUSD 1h"

    # Scheduling
    enabled: bool = True
    frequency: str = "1h"  # "15m", "1h", "4h", "1d", "1w"

    # Dispatch filters
    send_to_telegram: bool = True
    only_on_signal_change: bool = False
    min_confidence: int = 50  # 0-100
    send_on_hold: bool = False

    # Runtime state, written only by the run lease holder
    last_run_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    next_run_at: datetime | None = Field(default=None, sa_type=UTCDateTime, index=True)
    lease_token: str | None = None
    lease_expires_at: datetime | None = Field(default=None, sa_type=UTCDateTime)

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    @property
    def display_name(self) -> str:
        return self.label or self.target_ref
