"""Pydantic schemas for automation schedules, job logs and Telegram settings."""

from datetime import datetime
from pydantic import BaseModel, Field, field_validator

from chartwatch.utils.constants import VALID_FREQUENCIES


def _check_frequency(value: str | None) -> str | None:
    if value is None:
        return None
    if value not in VALID_FREQUENCIES:
        allowed = ", ".join(VALID_FREQUENCIES)
        raise ValueError(f"must be one of: {allowed}")
    return value


class ScheduleUpsert(BaseModel):
    target_ref: str = Field(min_length=1, max_length=200)
    label: str | None = Field(default=None, max_length=120)
    enabled: bool | None = None
    frequency: str | None = None
    send_to_telegram: bool | None = None
    only_on_signal_change: bool | None = None
    min_confidence: int | None = Field(default=None, ge=0, le=100)
    send_on_hold: bool | None = None

    @field_validator("target_ref")
    @classmethod
    def _trim_target(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("must not be empty")
        return text

    @field_validator("frequency")
    @classmethod
    def _validate_frequency(cls, value: str | None) -> str | None:
        return _check_frequency(value)


class ScheduleUpdate(BaseModel):
    label: str | None = Field(default=None, max_length=120)
    enabled: bool | None = None
    frequency: str | None = None
    send_to_telegram: bool | None = None
    only_on_signal_change: bool | None = None
    min_confidence: int | None = Field(default=None, ge=0, le=100)
    send_on_hold: bool | None = None

    @field_validator("frequency")
    @classmethod
    def _validate_frequency(cls, value: str | None) -> str | None:
        return _check_frequency(value)


class ScheduleRead(BaseModel):
    id: int
    target_ref: str
    label: str
    enabled: bool
    frequency: str
    send_to_telegram: bool
    only_on_signal_change: bool
    min_confidence: int
    send_on_hold: bool
    last_run_at: datetime | None
    next_run_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class JobLogRead(BaseModel):
    id: int
    schedule_id: int
    started_at: datetime
    completed_at: datetime | None
    duration_ms: int | None
    status: str
    action: str | None
    confidence: int | None
    previous_action: str | None
    signal_changed: bool
    met_min_confidence: bool
    telegram_sent: bool
    telegram_chat_id: str | None
    telegram_error: str | None
    skip_reason: str | None
    error_message: str | None
    error_stack: str | None
    analysis_id: str | None

    model_config = {"from_attributes": True}


class TelegramConfigUpsert(BaseModel):
    chat_id: str = Field(min_length=1, max_length=64)
    username: str | None = None
    is_active: bool | None = None
    include_economic: bool | None = None


class TelegramConfigRead(BaseModel):
    chat_id: str
    username: str | None
    is_active: bool
    include_economic: bool
    verified_at: datetime | None

    model_config = {"from_attributes": True}
