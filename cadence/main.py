"""Main FastAPI application for the recurring task and habit engine."""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from cadence import __version__
from cadence.middleware.cors import add_cors_middleware
from cadence.db.init import init_db
from cadence.routers import calendar, habits, tasks
from cadence.utils.logger import get_logger
from cadence.utils.metrics import metrics_collector

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    try:
        init_db()
    except Exception:
        logger.exception("Database initialization failed; database operations may fail")
    logger.info("Application startup complete", version=__version__)
    yield


app = FastAPI(
    title="Cadence API",
    description="Recurring tasks, habit streaks and calendar feeds",
    version=__version__,
    lifespan=lifespan,
)

add_cors_middleware(app)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


@app.get("/metrics")
async def get_metrics():
    """Spawner counters and timers."""
    return metrics_collector.get_metrics()


app.include_router(tasks.router, prefix="/api")  # /api/{user_id}/tasks, /api/{user_id}/recurring-tasks
app.include_router(habits.router, prefix="/api")  # /api/{user_id}/habits
app.include_router(calendar.router, prefix="/api")  # /api/calendar/feed.ics, /api/{user_id}/calendar/...


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "cadence.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
