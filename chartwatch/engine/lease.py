"""Per-schedule run lease.

The lease is an exclusive, time-bounded right to run one schedule. It lives on
the schedule row so it survives restarts; a holder that crashes simply lets it
expire, after which the next run reclaims it.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterator

from chartwatch.engine.store import ScheduleStore

logger = logging.getLogger(__name__)


@contextmanager
def schedule_lease(
    store: ScheduleStore,
    schedule_id: int,
    now: datetime,
    ttl: timedelta,
) -> Iterator[str | None]:
    """Hold the run lease for the duration of the block.

    Yields the lease token, or None when another run holds it. The lease is
    released on every exit path.
    """
    token = store.acquire_lease(schedule_id, now, ttl)
    if token is None:
        logger.debug(f"[schedule_{schedule_id}] Lease held elsewhere, skipping run")
        yield None
        return

    try:
        yield token
    finally:
        if not store.release_lease(schedule_id, token):
            logger.warning(f"[schedule_{schedule_id}] Lease expired before release (reclaimed by another run)")
