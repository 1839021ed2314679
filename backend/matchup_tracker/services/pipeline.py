from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from matchup_tracker.config import Settings
from matchup_tracker.integrations.analysis_api import analyze_filter_performance
from matchup_tracker.integrations.webhook import post_notification
from matchup_tracker.models import PipelineRun
from matchup_tracker.services import store
from matchup_tracker.services.performance import FilterPerformanceUpdate, update_historical_performance
from matchup_tracker.services.results import MatchupResultProcessor, ProcessorOptions
from matchup_tracker.services.round_completion import CompletionCriteria, RoundCompletionDetector

logger = logging.getLogger(__name__)

ALREADY_RUNNING = "Pipeline already running"


@dataclass(frozen=True)
class PipelineConfig:
    enabled: bool = True
    check_interval_minutes: int = 60
    min_completion_percentage: float = 80.0
    process_only_new_rounds: bool = True
    enable_historical_update: bool = True
    notification_webhook_url: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineConfig":
        return cls(
            enabled=settings.pipeline_enabled,
            check_interval_minutes=settings.check_interval_minutes,
            min_completion_percentage=settings.min_completion_percentage,
            process_only_new_rounds=settings.process_only_new_rounds,
            enable_historical_update=settings.enable_historical_update,
            notification_webhook_url=settings.notification_webhook_url or None,
        )


@dataclass
class RoundOutcome:
    event_id: int
    round_num: int
    success: bool
    results_count: int = 0
    snapshots_count: int = 0
    error: str | None = None


@dataclass
class PipelineRunResult:
    run_id: str
    start_time: datetime
    end_time: datetime
    success: bool
    error: str | None = None
    rounds_checked: int = 0
    rounds_completed: int = 0
    rounds_processed: int = 0
    rounds_skipped: int = 0
    results_ingested: int = 0
    performance_snapshots_created: int = 0
    processed_rounds: list[RoundOutcome] = field(default_factory=list)
    filter_performance_updates: list[FilterPerformanceUpdate] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def errors_count(self) -> int:
        return len(self.errors)

    @property
    def status(self) -> str:
        if not self.success:
            return "error"
        return "partial" if self.errors else "ok"

    def as_dict(self) -> dict[str, object]:
        payload = asdict(self)
        payload["errors_count"] = self.errors_count
        payload["status"] = self.status
        return payload


def _round_key(event_id: int, round_num: int) -> str:
    return f"{event_id}:{round_num}"


def build_notification_payload(result: PipelineRunResult) -> dict[str, object]:
    duration = round((result.end_time - result.start_time).total_seconds())
    return {
        "text": "Filter Performance Pipeline Update",
        "blocks": [
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": (
                        "*Pipeline Run Completed*\n"
                        f"• Rounds processed: {result.rounds_processed}\n"
                        f"• Results ingested: {result.results_ingested}\n"
                        f"• Performance snapshots: {result.performance_snapshots_created}\n"
                        f"• Duration: {duration}s"
                    ),
                },
            }
        ],
    }


class AutomatedPerformancePipeline:
    """Settles completed rounds and refreshes rolling filter performance.

    A run is safe to repeat: rounds with stored results are skipped and every
    write is an upsert on its natural key. There is no retry inside a run; a
    failed round is attempted again on the next scheduled run.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: Settings,
        config: PipelineConfig | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings
        self.config = config or PipelineConfig.from_settings(settings)
        self.last_run_time: datetime | None = None
        self._run_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def run_once(self) -> PipelineRunResult:
        start_time = datetime.now(timezone.utc)
        run_id = f"run-{int(start_time.timestamp() * 1000)}"

        if not self._run_lock.acquire(blocking=False):
            logger.info("Skipping pipeline run %s because another run is in progress", run_id)
            return PipelineRunResult(
                run_id=run_id,
                start_time=start_time,
                end_time=datetime.now(timezone.utc),
                success=False,
                error=ALREADY_RUNNING,
            )

        logger.info("Starting pipeline run %s", run_id)
        try:
            with self.session_factory() as session:
                result = self._run(session, run_id, start_time)
            self.last_run_time = result.end_time
            logger.info(
                "Pipeline run %s finished: %s/%s rounds processed, %s results, %s snapshots, %s errors",
                run_id,
                result.rounds_processed,
                result.rounds_completed,
                result.results_ingested,
                result.performance_snapshots_created,
                result.errors_count,
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("Pipeline run %s failed", run_id)
            result = PipelineRunResult(
                run_id=run_id,
                start_time=start_time,
                end_time=datetime.now(timezone.utc),
                success=False,
                error=str(exc),
            )
        finally:
            self._run_lock.release()

        self._record_run(result)
        if result.success:
            self._notify(result)
        return result

    def _run(self, session: Session, run_id: str, start_time: datetime) -> PipelineRunResult:
        criteria = replace(
            CompletionCriteria.from_settings(self.settings),
            min_completion_percentage=self.config.min_completion_percentage,
        )
        detector = RoundCompletionDetector(session, criteria)
        processor = MatchupResultProcessor(session, ProcessorOptions.from_settings(self.settings))

        all_rounds = detector.check_all_active_rounds()
        completed_rounds = [status for status in all_rounds if status.is_complete]
        logger.info("Found %s completed rounds out of %s active", len(completed_rounds), len(all_rounds))

        result = PipelineRunResult(
            run_id=run_id,
            start_time=start_time,
            end_time=start_time,
            success=True,
            rounds_checked=len(all_rounds),
            rounds_completed=len(completed_rounds),
        )

        for status in completed_rounds:
            outcome = self._process_round(session, processor, status.event_id, status.round_num, result)
            result.processed_rounds.append(outcome)
            result.results_ingested += outcome.results_count
            result.performance_snapshots_created += outcome.snapshots_count

        if self.config.enable_historical_update and result.performance_snapshots_created > 0:
            logger.info("Updating historical filter performance")
            updates, preset_errors = update_historical_performance(session, self.settings)
            result.filter_performance_updates = updates
            result.errors.update({f"preset:{preset}": message for preset, message in preset_errors.items()})

        result.rounds_processed = sum(1 for outcome in result.processed_rounds if outcome.success)
        result.rounds_skipped = sum(1 for outcome in result.processed_rounds if outcome.results_count == 0)
        result.end_time = datetime.now(timezone.utc)
        return result

    def _process_round(
        self,
        session: Session,
        processor: MatchupResultProcessor,
        event_id: int,
        round_num: int,
        result: PipelineRunResult,
    ) -> RoundOutcome:
        key = _round_key(event_id, round_num)
        try:
            if self.config.process_only_new_rounds and store.exists_matchup_result(session, event_id, round_num):
                logger.info("Skipping event %s round %s: already processed", event_id, round_num)
                return RoundOutcome(event_id=event_id, round_num=round_num, success=True)

            logger.info("Processing event %s round %s", event_id, round_num)
            summary = processor.ingest_event_round_results(event_id, round_num)
        except Exception as exc:  # noqa: BLE001
            session.rollback()
            logger.exception("Error processing event %s round %s", event_id, round_num)
            result.errors[key] = str(exc)
            return RoundOutcome(event_id=event_id, round_num=round_num, success=False, error=str(exc))

        if summary.errors:
            result.errors[key] = "; ".join(summary.errors)
        outcome = RoundOutcome(
            event_id=event_id,
            round_num=round_num,
            success=summary.processed > 0 or not summary.errors,
            results_count=summary.saved,
            error="; ".join(summary.errors) or None,
        )
        if summary.saved == 0:
            logger.info("No new results for event %s round %s", event_id, round_num)
            return outcome

        try:
            outcome.snapshots_count = analyze_filter_performance(event_id, round_num)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Filter analysis failed for event %s round %s: %s", event_id, round_num, exc)
            result.errors[f"analysis:{key}"] = str(exc)
        return outcome

    def _record_run(self, result: PipelineRunResult) -> None:
        if result.error == ALREADY_RUNNING:
            return
        try:
            with self.session_factory() as session:
                session.add(
                    PipelineRun(
                        run_id=result.run_id,
                        status=result.status,
                        stats_json=json.dumps(result.as_dict(), sort_keys=True, default=str),
                        error=result.error,
                    )
                )
                session.commit()
        except Exception:  # noqa: BLE001
            logger.exception("Could not record pipeline run %s", result.run_id)

    def _notify(self, result: PipelineRunResult) -> None:
        url = self.config.notification_webhook_url
        if not url or (result.results_ingested == 0 and result.performance_snapshots_created == 0):
            return
        try:
            post_notification(url, build_notification_payload(result), timeout=self.settings.external_timeout_sec)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Pipeline notification failed for run %s: %s", result.run_id, exc)


def list_pipeline_runs(session: Session, limit: int = 50) -> list[dict[str, object]]:
    rows = (
        session.execute(select(PipelineRun).order_by(desc(PipelineRun.created_at), desc(PipelineRun.id)).limit(limit))
        .scalars()
        .all()
    )
    return [
        {
            "id": row.id,
            "created_at": row.created_at,
            "run_id": row.run_id,
            "status": row.status,
            "stats_json": row.stats_json,
            "error": row.error,
        }
        for row in rows
    ]
