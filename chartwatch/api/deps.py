"""Shared API dependencies."""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from chartwatch.engine.scheduler import AutomationScheduler
from chartwatch.engine.store import ScheduleStore
from chartwatch.services.auth import decode_access_token

bearer_scheme = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> str:
    """Validate JWT and return the caller's user id."""
    user_id = decode_access_token(credentials.credentials)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return user_id


def get_store(request: Request) -> ScheduleStore:
    return request.app.state.store


def get_scheduler(request: Request) -> AutomationScheduler:
    return request.app.state.scheduler
