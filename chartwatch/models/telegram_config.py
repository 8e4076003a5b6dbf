"""TelegramConfig model: per-user notification destination."""

from datetime import datetime

from sqlmodel import SQLModel, Field

from chartwatch.models.types import UTCDateTime, utcnow


class TelegramConfig(SQLModel, table=True):
    __tablename__ = "telegram_config"

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(unique=True, index=True)
    chat_id: str
    username: str | None = None
    is_active: bool = True
    include_economic: bool = True
    verified_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
