"""Automation API: schedules, run history and manual trigger."""

from fastapi import APIRouter, Depends, HTTPException

from chartwatch.api.deps import get_current_user, get_scheduler, get_store
from chartwatch.engine.scheduler import AutomationScheduler
from chartwatch.engine.store import ScheduleStore
from chartwatch.schemas.automation import JobLogRead, ScheduleRead, ScheduleUpdate, ScheduleUpsert

router = APIRouter(prefix="/api/automation", tags=["automation"])


@router.get("", response_model=list[ScheduleRead])
def list_schedules(
    user_id: str = Depends(get_current_user),
    store: ScheduleStore = Depends(get_store),
):
    return store.list_schedules(user_id)


@router.post("", response_model=ScheduleRead)
def upsert_schedule(
    data: ScheduleUpsert,
    user_id: str = Depends(get_current_user),
    store: ScheduleStore = Depends(get_store),
):
    """Create the schedule for a chart target, or update the existing one."""
    fields = data.model_dump(exclude={"target_ref"}, exclude_none=True)
    return store.upsert_schedule(user_id, data.target_ref, **fields)


@router.get("/logs", response_model=list[JobLogRead])
def job_logs(
    schedule_id: int | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
    user_id: str = Depends(get_current_user),
    store: ScheduleStore = Depends(get_store),
):
    if schedule_id is not None:
        if store.get_schedule(schedule_id, user_id) is None:
            raise HTTPException(status_code=404, detail="Schedule not found")
        schedule_ids = [schedule_id]
    else:
        schedule_ids = [s.id for s in store.list_schedules(user_id)]
    limit = max(1, min(limit, 500))
    return store.list_job_logs(schedule_ids, status=status, limit=limit, offset=offset)


@router.post("/trigger")
async def trigger_all(
    user_id: str = Depends(get_current_user),
    scheduler: AutomationScheduler = Depends(get_scheduler),
):
    """Run every enabled schedule now (for testing)."""
    submitted = await scheduler.trigger_all()
    return {
        "success": True,
        "submitted": len(submitted),
        "message": "Automation jobs triggered successfully",
    }


@router.get("/{schedule_id}", response_model=ScheduleRead)
def get_schedule(
    schedule_id: int,
    user_id: str = Depends(get_current_user),
    store: ScheduleStore = Depends(get_store),
):
    schedule = store.get_schedule(schedule_id, user_id)
    if not schedule:
        raise HTTPException(status_code=404, detail="Schedule not found")
    return schedule


@router.put("/{schedule_id}", response_model=ScheduleRead)
def update_schedule(
    schedule_id: int,
    data: ScheduleUpdate,
    user_id: str = Depends(get_current_user),
    store: ScheduleStore = Depends(get_store),
):
    schedule = store.update_schedule(schedule_id, user_id, **data.model_dump(exclude_unset=True))
    if not schedule:
        raise HTTPException(status_code=404, detail="Schedule not found")
    return schedule


@router.post("/{schedule_id}/toggle", response_model=ScheduleRead)
def toggle_schedule(
    schedule_id: int,
    user_id: str = Depends(get_current_user),
    store: ScheduleStore = Depends(get_store),
):
    schedule = store.toggle_schedule(schedule_id, user_id)
    if not schedule:
        raise HTTPException(status_code=404, detail="Schedule not found")
    return schedule


@router.delete("/{schedule_id}", status_code=204)
def delete_schedule(
    schedule_id: int,
    user_id: str = Depends(get_current_user),
    store: ScheduleStore = Depends(get_store),
):
    if not store.delete_schedule(schedule_id, user_id):
        raise HTTPException(status_code=404, detail="Schedule not found")
