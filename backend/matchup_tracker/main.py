from fastapi import FastAPI

from matchup_tracker.api.router import api_router
from matchup_tracker.config import get_settings
from matchup_tracker.core.scheduler import PipelineScheduler
from matchup_tracker.db import SessionLocal
from matchup_tracker.services.pipeline import AutomatedPerformancePipeline

settings = get_settings()
app = FastAPI(title=settings.app_name)
app.include_router(api_router)
app.state.scheduler = PipelineScheduler(
    AutomatedPerformancePipeline(SessionLocal, settings),
    require_db=settings.sched_require_db,
)


@app.on_event("startup")
def startup_event() -> None:
    if settings.enable_scheduler:
        app.state.scheduler.start()


@app.on_event("shutdown")
def shutdown_event() -> None:
    app.state.scheduler.stop()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "environment": settings.app_env}
