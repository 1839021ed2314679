from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from matchup_tracker.config import get_settings
from matchup_tracker.models import (
    Base,
    FilterHistoricalPerformance,
    FilterPerformanceSnapshot,
    Matchup,
    MatchupResult,
    PipelineRun,
    TournamentRoundSnapshot,
)
from matchup_tracker.services import pipeline
from matchup_tracker.services.pipeline import AutomatedPerformancePipeline, PipelineConfig

NOW = datetime.now(timezone.utc)


def _setup(monkeypatch, **env: str):
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    get_settings.cache_clear()
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    Base.metadata.create_all(engine)
    return engine, sessionmaker(bind=engine)


def _seed_round(session: Session, *, event_id: int, round_num: int, players: int = 60, finished: int = 60) -> None:
    for player_id in range(1, players + 1):
        session.add(
            TournamentRoundSnapshot(
                event_id=event_id,
                round_num=round_num,
                player_id=player_id,
                player_name=f"Player {player_id}",
                holes_thru=18 if player_id <= finished else 6,
                position=str(player_id),
                today_score=player_id - 30,
                total_score=player_id - 40,
                captured_at=NOW - timedelta(minutes=10),
            )
        )


def _seed_matchups(session: Session, *, event_id: int, round_num: int, pairs: list[tuple[int | None, int]]) -> None:
    for first, second in pairs:
        session.add(
            Matchup(
                event_id=event_id,
                round_num=round_num,
                matchup_type="2ball",
                player1_id=first,
                player1_name=f"Player {first}" if first is not None else None,
                player2_id=second,
                player2_name=f"Player {second}",
            )
        )


def _seed_performance(session: Session, preset: str, edge: float) -> None:
    session.add(
        FilterPerformanceSnapshot(
            event_id=1,
            round_num=1,
            filter_preset=preset,
            analyzed_at=NOW,
            total_matchups_analyzed=30,
            matchups_flagged=12,
            flagged_won=8,
            flagged_lost=4,
            win_rate=8 / 12,
            expected_win_rate=0.5,
            edge=edge,
            roi_percentage=12.5,
        )
    )


def test_run_ingests_completed_rounds_once(monkeypatch) -> None:
    engine, factory = _setup(monkeypatch, FILTER_PRESETS="fade-chalk,value")
    settings = get_settings()

    analysis_calls: list[tuple[int, int]] = []

    def fake_analysis(event_id: int, round_num: int) -> int:
        analysis_calls.append((event_id, round_num))
        with factory() as session:
            _seed_performance(session, "fade-chalk", 0.08)
            session.commit()
        return 1

    monkeypatch.setattr(pipeline, "analyze_filter_performance", fake_analysis)

    with factory() as session:
        _seed_round(session, event_id=1, round_num=2)
        _seed_round(session, event_id=2, round_num=1, finished=20)
        _seed_matchups(session, event_id=1, round_num=2, pairs=[(1, 2), (3, 4), (5, 6)])
        _seed_matchups(session, event_id=2, round_num=1, pairs=[(1, 2)])
        session.commit()

    runner = AutomatedPerformancePipeline(factory, settings)
    first = runner.run_once()
    second = runner.run_once()

    assert first.success is True
    assert first.status == "ok"
    assert first.rounds_checked == 2
    assert first.rounds_completed == 1
    assert first.rounds_processed == 1
    assert first.results_ingested == 3
    assert first.performance_snapshots_created == 1
    assert [u.filter_preset for u in first.filter_performance_updates] == ["fade-chalk"]
    assert analysis_calls == [(1, 2)]

    assert second.success is True
    assert second.results_ingested == 0
    assert second.rounds_skipped == 1
    assert second.filter_performance_updates == []
    assert runner.last_run_time == second.end_time

    with factory() as session:
        assert session.query(MatchupResult).count() == 3
        assert session.query(FilterHistoricalPerformance).count() == 1
        runs = session.query(PipelineRun).order_by(PipelineRun.id).all()
        assert [run.status for run in runs] == ["ok", "ok"]
        assert json.loads(runs[0].stats_json)["results_ingested"] == 3


def test_reprocesses_rounds_when_only_new_disabled(monkeypatch) -> None:
    engine, factory = _setup(monkeypatch)
    settings = get_settings()
    monkeypatch.setattr(pipeline, "analyze_filter_performance", lambda _e, _r: 0)

    with factory() as session:
        _seed_round(session, event_id=1, round_num=1)
        _seed_matchups(session, event_id=1, round_num=1, pairs=[(1, 2)])
        session.commit()

    runner = AutomatedPerformancePipeline(factory, settings, PipelineConfig(process_only_new_rounds=False))
    runner.run_once()
    replay = runner.run_once()

    assert replay.success is True
    assert replay.rounds_processed == 1
    assert replay.results_ingested == 0
    with factory() as session:
        assert session.query(MatchupResult).count() == 1


def test_partial_failures_are_recorded_not_fatal(monkeypatch) -> None:
    engine, factory = _setup(monkeypatch)
    settings = get_settings()

    def failing_analysis(_event_id: int, _round_num: int) -> int:
        raise TimeoutError("analysis endpoint timed out")

    monkeypatch.setattr(pipeline, "analyze_filter_performance", failing_analysis)

    with factory() as session:
        _seed_round(session, event_id=7, round_num=3)
        _seed_matchups(session, event_id=7, round_num=3, pairs=[(1, 2), (3, 4), (None, 6), (7, 8), (9, 10)])
        session.commit()

    result = AutomatedPerformancePipeline(factory, settings).run_once()

    assert result.success is True
    assert result.status == "partial"
    assert result.results_ingested == 4
    assert result.performance_snapshots_created == 0
    assert set(result.errors) == {"7:3", "analysis:7:3"}
    assert result.processed_rounds[0].success is True
    assert "missing player1" in (result.processed_rounds[0].error or "")


def test_already_running_returns_immediately(monkeypatch) -> None:
    engine, factory = _setup(monkeypatch)
    runner = AutomatedPerformancePipeline(factory, get_settings())

    runner._run_lock.acquire()
    try:
        assert runner.is_running is True
        result = runner.run_once()
    finally:
        runner._run_lock.release()

    assert result.success is False
    assert result.error == "Pipeline already running"
    assert runner.is_running is False
    with factory() as session:
        assert session.query(PipelineRun).count() == 0


def test_fatal_error_reports_failure_and_clears_flag(monkeypatch) -> None:
    engine, factory = _setup(monkeypatch)
    runner = AutomatedPerformancePipeline(factory, get_settings())

    def explode(self):
        raise RuntimeError("snapshot store unreachable")

    monkeypatch.setattr(pipeline.RoundCompletionDetector, "check_all_active_rounds", explode)

    result = runner.run_once()

    assert result.success is False
    assert result.error == "snapshot store unreachable"
    assert result.run_id.startswith("run-")
    assert runner.is_running is False
    assert runner.last_run_time is None
    with factory() as session:
        run = session.query(PipelineRun).one()
        assert run.status == "error"
        assert run.run_id == result.run_id


def test_notification_failure_does_not_fail_run(monkeypatch) -> None:
    engine, factory = _setup(monkeypatch, NOTIFICATION_WEBHOOK_URL="https://hooks.example.test/pipeline")
    settings = get_settings()
    sent: list[dict] = []

    def broken_webhook(url: str, payload: dict, timeout: float) -> None:
        sent.append(payload)
        raise ConnectionError("webhook down")

    monkeypatch.setattr(pipeline, "analyze_filter_performance", lambda _e, _r: 0)
    monkeypatch.setattr(pipeline, "post_notification", broken_webhook)

    with factory() as session:
        _seed_round(session, event_id=3, round_num=4)
        _seed_matchups(session, event_id=3, round_num=4, pairs=[(11, 12)])
        session.commit()

    result = AutomatedPerformancePipeline(factory, settings).run_once()

    assert result.success is True
    assert len(sent) == 1
    assert "Results ingested: 1" in sent[0]["blocks"][0]["text"]["text"]


def test_pipeline_config_from_settings(monkeypatch) -> None:
    for key in ["CHECK_INTERVAL_MINUTES", "MIN_COMPLETION_PERCENTAGE", "PROCESS_ONLY_NEW_ROUNDS",
                "ENABLE_HISTORICAL_UPDATE", "NOTIFICATION_WEBHOOK_URL", "PIPELINE_ENABLED"]:
        monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()

    config = PipelineConfig.from_settings(get_settings())

    assert config == PipelineConfig()
