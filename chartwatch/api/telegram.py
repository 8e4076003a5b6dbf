"""Telegram settings API: per-user destination and connection test."""

from fastapi import APIRouter, Depends, HTTPException, Request

from chartwatch.api.deps import get_current_user, get_store
from chartwatch.engine.store import ScheduleStore
from chartwatch.models.types import utcnow
from chartwatch.schemas.automation import TelegramConfigRead, TelegramConfigUpsert

router = APIRouter(prefix="/api/telegram", tags=["telegram"])


@router.get("", response_model=TelegramConfigRead | None)
def get_config(
    user_id: str = Depends(get_current_user),
    store: ScheduleStore = Depends(get_store),
):
    return store.get_telegram_config(user_id)


@router.post("", response_model=TelegramConfigRead)
def upsert_config(
    data: TelegramConfigUpsert,
    user_id: str = Depends(get_current_user),
    store: ScheduleStore = Depends(get_store),
):
    fields = data.model_dump(exclude={"chat_id"})
    return store.upsert_telegram_config(user_id, data.chat_id.strip(), **fields)


@router.post("/test")
async def test_connection(
    request: Request,
    user_id: str = Depends(get_current_user),
    store: ScheduleStore = Depends(get_store),
):
    """Send a test message to the configured chat and mark it verified."""
    config = store.get_telegram_config(user_id)
    if not config:
        raise HTTPException(status_code=404, detail="Telegram is not configured")

    result = await request.app.state.notifier.test_connection(config.chat_id)
    if not result.success:
        raise HTTPException(status_code=502, detail=f"Telegram test failed: {result.error}")

    store.upsert_telegram_config(user_id, config.chat_id, verified_at=utcnow())
    return {"success": True, "message": "Test message sent"}
