from __future__ import annotations

import logging
from dataclasses import asdict, replace
from datetime import datetime, timedelta, timezone
from typing import Any

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy import text

from matchup_tracker.services.pipeline import AutomatedPerformancePipeline, PipelineRunResult

logger = logging.getLogger(__name__)

JOB_ID = "performance_pipeline"


class PipelineScheduler:
    """Owns the interval job that drives one pipeline instance.

    Built once per process and handed to whatever hosts it; there is no
    module-level scheduler state.
    """

    def __init__(self, pipeline: AutomatedPerformancePipeline, require_db: bool = False) -> None:
        self.pipeline = pipeline
        self.require_db = require_db
        self._scheduler: BackgroundScheduler | None = None

    @property
    def is_scheduled(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def can_reach_db(self) -> bool:
        try:
            with self.pipeline.session_factory() as session:
                session.execute(text("SELECT 1"))
            return True
        except Exception:  # noqa: BLE001
            return False

    def _tick(self) -> None:
        result = self.pipeline.run_once()
        if not result.success:
            logger.warning("Scheduled pipeline run %s did not succeed: %s", result.run_id, result.error)

    def start(self) -> bool:
        config = self.pipeline.config
        if not config.enabled:
            logger.info("Pipeline scheduler disabled by configuration")
            return False
        if self.is_scheduled:
            logger.info("Pipeline scheduler already running")
            return True
        if self.require_db and not self.can_reach_db():
            logger.warning("Pipeline scheduler not started: database unavailable")
            return False

        self._scheduler = BackgroundScheduler(timezone=timezone.utc)
        self._scheduler.add_job(
            self._tick,
            "interval",
            id=JOB_ID,
            minutes=config.check_interval_minutes,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("Pipeline scheduler started (every %s minutes)", config.check_interval_minutes)
        return True

    def stop(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Pipeline scheduler stopped")

    def run_once(self) -> PipelineRunResult:
        return self.pipeline.run_once()

    def next_run_time(self) -> datetime | None:
        if self._scheduler is not None:
            job = self._scheduler.get_job(JOB_ID)
            if job is not None and job.next_run_time is not None:
                return job.next_run_time
        last_run = self.pipeline.last_run_time
        if last_run is not None and self.is_scheduled:
            return last_run + timedelta(minutes=self.pipeline.config.check_interval_minutes)
        return None

    def status(self) -> dict[str, Any]:
        return {
            "is_running": self.pipeline.is_running,
            "is_enabled": self.pipeline.config.enabled,
            "is_scheduled": self.is_scheduled,
            "last_run_time": self.pipeline.last_run_time,
            "next_run_time": self.next_run_time(),
            "config": asdict(self.pipeline.config),
        }

    def update_config(self, **changes: Any) -> None:
        was_enabled = self.pipeline.config.enabled
        self.pipeline.config = replace(self.pipeline.config, **changes)
        now_enabled = self.pipeline.config.enabled

        if not was_enabled and now_enabled:
            self.start()
        elif was_enabled and not now_enabled:
            self.stop()
        elif self.is_scheduled and "check_interval_minutes" in changes:
            self.stop()
            self.start()
