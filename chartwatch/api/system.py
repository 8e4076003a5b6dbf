"""System API: health check and scheduler status."""

from fastapi import APIRouter, Depends

from chartwatch.api.deps import get_current_user, get_scheduler
from chartwatch.engine.scheduler import AutomationScheduler

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.get("/scheduler", dependencies=[Depends(get_current_user)])
def scheduler_status(scheduler: AutomationScheduler = Depends(get_scheduler)):
    """Current scheduler state with in-flight runs."""
    return scheduler.status()
