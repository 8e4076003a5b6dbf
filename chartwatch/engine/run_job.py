"""Single automation run.

This is what the scheduler calls for each due schedule. It orchestrates:
lease → analysis → dispatch filters → notification → job log → reschedule.
Every outcome ends in exactly one terminal JobLog row.
"""

import asyncio
import logging
import traceback
from datetime import datetime, timedelta
from typing import Callable

from chartwatch.config import settings
from chartwatch.engine.lease import schedule_lease
from chartwatch.engine.store import JobLogFinalizedError, ScheduleStore
from chartwatch.models.automation_schedule import AutomationSchedule
from chartwatch.models.job_log import JobLog
from chartwatch.models.types import utcnow
from chartwatch.services.analysis import AnalysisProvider, AnalysisResult
from chartwatch.services.signal_filter import DispatchFilters, evaluate_dispatch
from chartwatch.services.telegram_bot import Notifier, render_error_message, render_signal_message
from chartwatch.utils.constants import CANCELLED_RUN_MESSAGE, TELEGRAM_NOT_CONFIGURED, JobStatus

logger = logging.getLogger(__name__)


class RunExecutor:
    def __init__(
        self,
        store: ScheduleStore,
        provider: AnalysisProvider,
        notifier: Notifier,
        analysis_timeout: float | None = None,
        notify_timeout: float | None = None,
        lease_ttl: timedelta | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.provider = provider
        self.notifier = notifier
        self.analysis_timeout = analysis_timeout if analysis_timeout is not None else settings.analysis_timeout_seconds
        self.notify_timeout = notify_timeout if notify_timeout is not None else settings.notify_timeout_seconds
        self.lease_ttl = lease_ttl if lease_ttl is not None else timedelta(seconds=settings.lease_timeout_seconds)
        self.clock = clock

    async def run(self, schedule_id: int) -> JobLog | None:
        """Run one attempt for a schedule.

        Returns the terminal JobLog, or None when no run happened (lease held
        elsewhere, schedule deleted or disabled).
        """
        with schedule_lease(self.store, schedule_id, self.clock(), self.lease_ttl) as token:
            if token is None:
                return None

            schedule = self.store.get_schedule(schedule_id)
            if schedule is None or not schedule.enabled:
                logger.info(f"[schedule_{schedule_id}] Deleted or disabled since selection, not running")
                return None

            abandoned = self.store.fail_abandoned_runs(schedule_id, self.clock())
            if abandoned:
                logger.warning(f"[schedule_{schedule_id}] Closed {abandoned} abandoned run(s)")

            return await self._run_leased(schedule, token)

    async def _run_leased(self, schedule: AutomationSchedule, token: str) -> JobLog:
        log = self.store.start_job_log(schedule.id, self.clock())
        logger.info(f"[schedule_{schedule.id}] Starting run for {schedule.display_name}")
        try:
            return await self._execute(schedule, token, log)
        except asyncio.CancelledError:
            self._cancel(schedule, log)
            raise

    def _cancel(self, schedule: AutomationSchedule, log: JobLog):
        """Close the row of a run cancelled mid-flight. The schedule keeps its next run time."""
        logger.warning(f"[schedule_{schedule.id}] Run cancelled")
        try:
            self.store.complete_job_log(
                log.id, self.clock(),
                status=JobStatus.FAILED.value,
                error_message=CANCELLED_RUN_MESSAGE,
            )
        except JobLogFinalizedError:
            # Cancelled while sending the failure alert; the row already holds the real outcome
            logger.debug(f"[schedule_{schedule.id}] JobLog {log.id} already final")

    async def _execute(self, schedule: AutomationSchedule, token: str, log: JobLog) -> JobLog:
        name = f"schedule_{schedule.id}"
        try:
            result = await asyncio.wait_for(
                self.provider.analyze(schedule.target_ref),
                timeout=self.analysis_timeout,
            )
        except Exception as e:
            if isinstance(e, asyncio.TimeoutError):
                message = f"Analysis timed out after {self.analysis_timeout:g}s"
            else:
                message = str(e) or type(e).__name__
            logger.error(f"[{name}] Analysis failed: {message}", exc_info=True)
            failed = self._finish(
                schedule, token, log,
                status=JobStatus.FAILED.value,
                error_message=message,
                error_stack=traceback.format_exc(),
            )
            await self._send_error_alert(schedule, message)
            return failed

        previous_action = self.store.previous_action(schedule.id)
        decision = evaluate_dispatch(
            action=result.action,
            confidence=result.confidence,
            previous_action=previous_action,
            filters=DispatchFilters.from_schedule(schedule),
        )
        audit = dict(
            action=result.action,
            confidence=result.confidence,
            previous_action=previous_action,
            signal_changed=decision.signal_changed,
            met_min_confidence=decision.met_min_confidence,
            analysis_id=result.analysis_id,
        )

        if not decision.should_dispatch:
            logger.info(f"[{name}] {result.action} ({result.confidence}%) skipped: {decision.skip_reason}")
            return self._finish(
                schedule, token, log,
                status=JobStatus.SKIPPED.value,
                skip_reason=decision.skip_reason,
                telegram_sent=False,
                **audit,
            )

        notification = {"telegram_sent": False}
        if schedule.send_to_telegram:
            notification = await self._notify(schedule, result)

        logger.info(
            f"[{name}] {result.action} ({result.confidence}%) dispatched, "
            f"telegram_sent={notification['telegram_sent']}"
        )
        return self._finish(
            schedule, token, log,
            status=JobStatus.SUCCESS.value,
            **audit,
            **notification,
        )

    async def _notify(self, schedule: AutomationSchedule, result: AnalysisResult) -> dict:
        """Best-effort notification; the outcome is recorded, never raised."""
        config = self.store.get_telegram_config(schedule.user_id)
        if config is None or not config.is_active:
            return {"telegram_sent": False, "telegram_error": TELEGRAM_NOT_CONFIGURED}

        message = render_signal_message(
            schedule.display_name,
            result,
            include_economic=config.include_economic,
        )
        outcome = {"telegram_sent": False, "telegram_chat_id": config.chat_id}
        try:
            sent = await asyncio.wait_for(
                self.notifier.send(config.chat_id, message),
                timeout=self.notify_timeout,
            )
        except asyncio.TimeoutError:
            outcome["telegram_error"] = f"Notification timed out after {self.notify_timeout:g}s"
        except Exception as e:
            outcome["telegram_error"] = str(e) or type(e).__name__
        else:
            outcome["telegram_sent"] = sent.success
            if not sent.success:
                outcome["telegram_error"] = sent.error or "unknown notification error"

        if outcome.get("telegram_error"):
            logger.warning(f"[schedule_{schedule.id}] Notification failed: {outcome['telegram_error']}")
        return outcome

    async def _send_error_alert(self, schedule: AutomationSchedule, error: str):
        """Tell the owner a run failed. Outcome is logged only, the job log is already final."""
        if not schedule.send_to_telegram:
            return
        config = self.store.get_telegram_config(schedule.user_id)
        if config is None or not config.is_active:
            return

        message = render_error_message(schedule.display_name, error)
        try:
            sent = await asyncio.wait_for(
                self.notifier.send(config.chat_id, message),
                timeout=self.notify_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"[schedule_{schedule.id}] Error alert timed out after {self.notify_timeout:g}s")
        except Exception as e:
            logger.warning(f"[schedule_{schedule.id}] Error alert failed: {e}")
        else:
            if not sent.success:
                logger.warning(f"[schedule_{schedule.id}] Error alert failed: {sent.error}")

    def _finish(self, schedule: AutomationSchedule, token: str, log: JobLog, **fields) -> JobLog:
        """Complete the job log and advance the schedule from now, whatever the outcome."""
        now = self.clock()
        completed = self.store.complete_job_log(log.id, now, **fields)
        next_run_at = self.store.record_run(schedule.id, token, now)
        logger.info(
            f"[schedule_{schedule.id}] Run {completed.status} in {completed.duration_ms}ms, "
            f"next run at {next_run_at}"
        )
        return completed
