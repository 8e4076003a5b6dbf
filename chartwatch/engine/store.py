"""Schedule store: persistence for schedules, run leases and job logs.

All queries the engine and the API need go through ScheduleStore so the
scheduler can be pointed at any SQLAlchemy engine (tests use in-memory SQLite).
"""

import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy import delete, or_, update
from sqlmodel import Session, select

from chartwatch.models.automation_schedule import AutomationSchedule
from chartwatch.models.job_log import JobLog
from chartwatch.models.telegram_config import TelegramConfig
from chartwatch.models.types import utcnow
from chartwatch.utils.constants import (
    ABANDONED_RUN_MESSAGE,
    SIGNAL_STATUSES,
    Frequency,
    JobStatus,
)

logger = logging.getLogger(__name__)

# Fields a user may change
SCHEDULE_FIELDS = (
    "label",
    "enabled",
    "frequency",
    "send_to_telegram",
    "only_on_signal_change",
    "min_confidence",
    "send_on_hold",
)

# Editing any of these runs the schedule on the next tick with the new settings
RESCHEDULE_FIELDS = frozenset({
    "frequency",
    "send_to_telegram",
    "only_on_signal_change",
    "min_confidence",
    "send_on_hold",
})


class JobLogFinalizedError(Exception):
    """Raised when trying to complete a job log that is no longer running."""


class ScheduleStore:
    def __init__(self, engine):
        self.engine = engine

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    def list_schedules(self, user_id: str | None = None) -> list[AutomationSchedule]:
        with Session(self.engine) as session:
            stmt = select(AutomationSchedule).order_by(AutomationSchedule.created_at.desc())
            if user_id is not None:
                stmt = stmt.where(AutomationSchedule.user_id == user_id)
            return list(session.exec(stmt).all())

    def get_schedule(self, schedule_id: int, user_id: str | None = None) -> AutomationSchedule | None:
        with Session(self.engine) as session:
            schedule = session.get(AutomationSchedule, schedule_id)
            if schedule is None or (user_id is not None and schedule.user_id != user_id):
                return None
            return schedule

    def upsert_schedule(self, user_id: str, target_ref: str, **fields) -> AutomationSchedule:
        """Create the user's schedule for a target, or update the existing one."""
        with Session(self.engine) as session:
            schedule = session.exec(
                select(AutomationSchedule).where(
                    AutomationSchedule.user_id == user_id,
                    AutomationSchedule.target_ref == target_ref,
                )
            ).first()
            if schedule is None:
                schedule = AutomationSchedule(user_id=user_id, target_ref=target_ref)
            self._apply_fields(schedule, fields)
            session.add(schedule)
            session.commit()
            session.refresh(schedule)
            return schedule

    def update_schedule(self, schedule_id: int, user_id: str | None = None, **fields) -> AutomationSchedule | None:
        with Session(self.engine) as session:
            schedule = session.get(AutomationSchedule, schedule_id)
            if schedule is None or (user_id is not None and schedule.user_id != user_id):
                return None
            self._apply_fields(schedule, fields)
            session.add(schedule)
            session.commit()
            session.refresh(schedule)
            return schedule

    def toggle_schedule(self, schedule_id: int, user_id: str | None = None) -> AutomationSchedule | None:
        schedule = self.get_schedule(schedule_id, user_id)
        if schedule is None:
            return None
        return self.update_schedule(schedule_id, user_id, enabled=not schedule.enabled)

    def delete_schedule(self, schedule_id: int, user_id: str | None = None) -> bool:
        """Delete a schedule together with its job log history."""
        with Session(self.engine) as session:
            schedule = session.get(AutomationSchedule, schedule_id)
            if schedule is None or (user_id is not None and schedule.user_id != user_id):
                return False
            session.execute(delete(JobLog).where(JobLog.schedule_id == schedule_id))
            session.delete(schedule)
            session.commit()
            return True

    @staticmethod
    def _apply_fields(schedule: AutomationSchedule, fields: dict):
        changed = set()
        for key, value in fields.items():
            if key not in SCHEDULE_FIELDS:
                raise ValueError(f"Unknown schedule field: {key}")
            if value is None:
                continue
            if key == "frequency":
                value = Frequency(value).value
            if getattr(schedule, key) != value:
                setattr(schedule, key, value)
                changed.add(key)
        if not schedule.label:
            schedule.label = schedule.target_ref
        if changed:
            schedule.updated_at = utcnow()
        if changed & RESCHEDULE_FIELDS:
            schedule.next_run_at = None

    def due_schedules(self, now: datetime) -> list[AutomationSchedule]:
        """Enabled schedules that have never run or whose next run is due."""
        with Session(self.engine) as session:
            stmt = (
                select(AutomationSchedule)
                .where(AutomationSchedule.enabled == True)  # noqa: E712
                .where(or_(AutomationSchedule.next_run_at.is_(None), AutomationSchedule.next_run_at <= now))
                .order_by(AutomationSchedule.id)
            )
            return list(session.exec(stmt).all())

    def enabled_schedules(self) -> list[AutomationSchedule]:
        with Session(self.engine) as session:
            stmt = (
                select(AutomationSchedule)
                .where(AutomationSchedule.enabled == True)  # noqa: E712
                .order_by(AutomationSchedule.id)
            )
            return list(session.exec(stmt).all())

    # ------------------------------------------------------------------
    # Run lease
    # ------------------------------------------------------------------

    def acquire_lease(self, schedule_id: int, now: datetime, ttl: timedelta) -> str | None:
        """Take the run lease if it is free or expired. Returns the lease token or None.

        A single conditional UPDATE, so two processes cannot both win.
        """
        token = secrets.token_hex(16)
        stmt = (
            update(AutomationSchedule)
            .where(AutomationSchedule.id == schedule_id)
            .where(or_(
                AutomationSchedule.lease_expires_at.is_(None),
                AutomationSchedule.lease_expires_at <= now,
            ))
            .values(lease_token=token, lease_expires_at=now + ttl)
        )
        with Session(self.engine) as session:
            result = session.execute(stmt)
            session.commit()
            if result.rowcount != 1:
                return None
        return token

    def release_lease(self, schedule_id: int, token: str) -> bool:
        """Release the lease, unless it has since been reclaimed by another holder."""
        stmt = (
            update(AutomationSchedule)
            .where(AutomationSchedule.id == schedule_id)
            .where(AutomationSchedule.lease_token == token)
            .values(lease_token=None, lease_expires_at=None)
        )
        with Session(self.engine) as session:
            result = session.execute(stmt)
            session.commit()
            return result.rowcount == 1

    def record_run(self, schedule_id: int, token: str, ran_at: datetime) -> datetime | None:
        """Write last/next run times. Only the current lease holder may do this."""
        with Session(self.engine) as session:
            schedule = session.get(AutomationSchedule, schedule_id)
            if schedule is None or schedule.lease_token != token:
                logger.warning(f"[schedule_{schedule_id}] Lease lost; not recording run")
                return None
            next_run_at = ran_at + Frequency(schedule.frequency).interval
            schedule.last_run_at = ran_at
            schedule.next_run_at = next_run_at
            session.add(schedule)
            session.commit()
            return next_run_at

    # ------------------------------------------------------------------
    # Job logs
    # ------------------------------------------------------------------

    def start_job_log(self, schedule_id: int, started_at: datetime) -> JobLog:
        with Session(self.engine) as session:
            log = JobLog(schedule_id=schedule_id, started_at=started_at, status=JobStatus.RUNNING.value)
            session.add(log)
            session.commit()
            session.refresh(log)
            return log

    def complete_job_log(self, log_id: int, completed_at: datetime, **fields) -> JobLog:
        """Move a running job log to its terminal state."""
        with Session(self.engine) as session:
            log = session.get(JobLog, log_id)
            if log is None:
                raise LookupError(f"JobLog {log_id} not found")
            if log.status != JobStatus.RUNNING.value:
                raise JobLogFinalizedError(f"JobLog {log_id} is already {log.status}")
            for key, value in fields.items():
                setattr(log, key, value)
            log.completed_at = completed_at
            log.duration_ms = max(0, int((completed_at - log.started_at).total_seconds() * 1000))
            session.add(log)
            session.commit()
            session.refresh(log)
            return log

    def fail_abandoned_runs(self, schedule_id: int, now: datetime) -> int:
        """Close job logs left running by a holder whose lease expired."""
        with Session(self.engine) as session:
            orphans = session.exec(
                select(JobLog).where(
                    JobLog.schedule_id == schedule_id,
                    JobLog.status == JobStatus.RUNNING.value,
                )
            ).all()
            for log in orphans:
                log.status = JobStatus.FAILED.value
                log.error_message = ABANDONED_RUN_MESSAGE
                log.completed_at = max(now, log.started_at)
                log.duration_ms = int((log.completed_at - log.started_at).total_seconds() * 1000)
                session.add(log)
            session.commit()
            return len(orphans)

    def previous_action(self, schedule_id: int) -> str | None:
        """Action of the most recent success/skipped run; failed runs carry no signal."""
        with Session(self.engine) as session:
            log = session.exec(
                select(JobLog)
                .where(JobLog.schedule_id == schedule_id)
                .where(JobLog.status.in_(SIGNAL_STATUSES))
                .order_by(JobLog.started_at.desc(), JobLog.id.desc())
                .limit(1)
            ).first()
            return log.action if log else None

    def list_job_logs(
        self,
        schedule_ids: list[int] | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[JobLog]:
        with Session(self.engine) as session:
            stmt = select(JobLog).order_by(JobLog.started_at.desc(), JobLog.id.desc())
            if schedule_ids is not None:
                stmt = stmt.where(JobLog.schedule_id.in_(schedule_ids))
            if status is not None:
                stmt = stmt.where(JobLog.status == status)
            stmt = stmt.offset(offset).limit(limit)
            return list(session.exec(stmt).all())

    # ------------------------------------------------------------------
    # Telegram destinations
    # ------------------------------------------------------------------

    def get_telegram_config(self, user_id: str) -> TelegramConfig | None:
        with Session(self.engine) as session:
            return session.exec(
                select(TelegramConfig).where(TelegramConfig.user_id == user_id)
            ).first()

    def upsert_telegram_config(self, user_id: str, chat_id: str, **fields) -> TelegramConfig:
        with Session(self.engine) as session:
            config = session.exec(
                select(TelegramConfig).where(TelegramConfig.user_id == user_id)
            ).first()
            if config is None:
                config = TelegramConfig(user_id=user_id, chat_id=chat_id)
            config.chat_id = chat_id
            for key, value in fields.items():
                if value is not None:
                    setattr(config, key, value)
            config.updated_at = utcnow()
            session.add(config)
            session.commit()
            session.refresh(config)
            return config
