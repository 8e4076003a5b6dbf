"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chartwatch.config import settings
from chartwatch.database import create_db_and_tables, engine
from chartwatch.engine.run_job import RunExecutor
from chartwatch.engine.scheduler import AutomationScheduler
from chartwatch.engine.store import ScheduleStore
from chartwatch.services.analysis import HttpAnalysisProvider
from chartwatch.services.telegram_bot import TelegramNotifier
from chartwatch.utils.logging import setup_logging
from chartwatch.api import automation, system, telegram


def build_scheduler(store: ScheduleStore, notifier=None, provider=None) -> AutomationScheduler:
    """Wire the executor and scheduler from settings."""
    executor = RunExecutor(
        store=store,
        provider=provider or HttpAnalysisProvider(),
        notifier=notifier or TelegramNotifier(),
    )
    return AutomationScheduler(executor)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables(app.state.store.engine)
    if settings.scheduler_enabled:
        app.state.scheduler.start()

    yield

    await app.state.scheduler.stop()
    await app.state.notifier.close()


def create_app(
    store: ScheduleStore | None = None,
    notifier=None,
    scheduler: AutomationScheduler | None = None,
) -> FastAPI:
    app = FastAPI(
        title="Chartwatch Automation",
        description="Scheduled chart analysis with Telegram alerts and run audit log",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.store = store or ScheduleStore(engine)
    app.state.notifier = notifier or TelegramNotifier()
    app.state.scheduler = scheduler or build_scheduler(app.state.store, app.state.notifier)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Mount routers
    app.include_router(automation.router)
    app.include_router(telegram.router)
    app.include_router(system.router)
    return app


app = create_app()
