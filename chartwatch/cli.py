"""CLI tool for operator tasks.

Usage:
    python -m chartwatch.cli issue-token <user_id>
    python -m chartwatch.cli trigger-all
"""

import asyncio
import sys

from chartwatch.database import create_db_and_tables, engine
from chartwatch.engine.store import ScheduleStore
from chartwatch.services.auth import create_access_token
from chartwatch.utils.logging import setup_logging


def issue_token(user_id: str):
    """Print an API bearer token for a user id."""
    print(create_access_token(subject=user_id))


def trigger_all():
    """Run every enabled schedule once and print what happened."""
    from chartwatch.main import build_scheduler

    setup_logging()
    create_db_and_tables()
    store = ScheduleStore(engine)

    async def _run():
        scheduler = build_scheduler(store)
        try:
            return await scheduler.trigger_all(wait=True)
        finally:
            await scheduler.executor.notifier.close()

    submitted = asyncio.run(_run())
    if not submitted:
        print("No enabled schedules.")
        return

    for log in store.list_job_logs(submitted, limit=len(submitted)):
        detail = log.skip_reason or log.error_message or log.telegram_error or ""
        print(
            f"schedule {log.schedule_id}: {log.status:<8} "
            f"{log.action or '-':<5} {log.confidence if log.confidence is not None else '-':>3}  {detail}"
        )


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m chartwatch.cli <command>")
        print("Commands: issue-token <user_id>, trigger-all")
        sys.exit(1)

    command = sys.argv[1]
    if command == "issue-token":
        if len(sys.argv) != 3:
            print("Usage: python -m chartwatch.cli issue-token <user_id>")
            sys.exit(1)
        issue_token(sys.argv[2])
    elif command == "trigger-all":
        trigger_all()
    else:
        print(f"Unknown command: {command}")
        sys.exit(1)


if __name__ == "__main__":
    main()
