from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from matchup_tracker.core.scheduler import PipelineScheduler
from matchup_tracker.db import get_db
from matchup_tracker.services.pipeline import list_pipeline_runs

router = APIRouter(tags=["pipeline"])


def get_scheduler(request: Request) -> PipelineScheduler:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="pipeline scheduler is not configured")
    return scheduler


@router.post("/pipeline/run")
def pipeline_run(scheduler: PipelineScheduler = Depends(get_scheduler)) -> dict[str, object]:
    return scheduler.run_once().as_dict()


@router.get("/pipeline/status")
def pipeline_status(scheduler: PipelineScheduler = Depends(get_scheduler)) -> dict[str, object]:
    return scheduler.status()


@router.get("/pipeline/runs")
def pipeline_runs(limit: int = Query(50, ge=1, le=500), db: Session = Depends(get_db)) -> list[dict[str, object]]:
    return list_pipeline_runs(db, limit=limit)
