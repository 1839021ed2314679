from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from statistics import mean, pstdev

from sqlalchemy.orm import Session

from matchup_tracker.config import Settings
from matchup_tracker.domain.enums import TrendDirection
from matchup_tracker.models import FilterPerformanceSnapshot
from matchup_tracker.services import store

logger = logging.getLogger(__name__)

ANALYSIS_PERIOD = "last_30_days"
EXPECTED_WIN_RATE = 0.5


@dataclass(frozen=True)
class FilterPerformanceUpdate:
    filter_preset: str
    new_edge: float
    confidence_change: float


def edge_consistency(edges: list[float]) -> float:
    """Population standard deviation of per-run edges; lower is steadier."""
    if len(edges) <= 1:
        return 0.0
    return pstdev(edges)


def confidence_score(total_flagged: int, edge_stdev: float, settings: Settings) -> float:
    sample_size_score = min(1.0, total_flagged / settings.confidence_sample_target)
    weight = settings.confidence_sample_weight
    return (sample_size_score * weight) + ((1.0 - edge_stdev) * (1.0 - weight))


def trend_direction(edges_newest_first: list[float], window: int, threshold: float) -> tuple[TrendDirection, float]:
    if not edges_newest_first:
        return TrendDirection.STABLE, 0.0
    recent_avg = mean(edges_newest_first[:window])
    older_avg = mean(edges_newest_first[-window:])
    delta = recent_avg - older_avg
    if delta > threshold:
        return TrendDirection.IMPROVING, abs(delta)
    if delta < -threshold:
        return TrendDirection.DECLINING, abs(delta)
    return TrendDirection.STABLE, abs(delta)


def aggregate_snapshots(
    filter_preset: str,
    snapshots: list[FilterPerformanceSnapshot],
    settings: Settings,
    now: datetime,
) -> dict[str, object]:
    """Roll per-run snapshots (newest first) into one historical row."""
    edges = [s.edge or 0.0 for s in snapshots]
    total_flagged = sum(s.matchups_flagged for s in snapshots)
    stdev = edge_consistency(edges)
    trend, strength = trend_direction(edges, settings.trend_window, settings.trend_threshold)
    window_start = now - timedelta(days=settings.historical_window_days)

    return {
        "filter_preset": filter_preset,
        "analysis_period": ANALYSIS_PERIOD,
        "start_date": window_start.date(),
        "end_date": now.date(),
        "total_events_analyzed": len({s.event_id for s in snapshots}),
        "total_rounds_analyzed": len(snapshots),
        "total_matchups_analyzed": sum(s.total_matchups_analyzed for s in snapshots),
        "total_matchups_flagged": total_flagged,
        "total_flagged_wins": sum(s.flagged_won for s in snapshots),
        "overall_win_rate": mean(s.win_rate or 0.0 for s in snapshots),
        "overall_expected_win_rate": EXPECTED_WIN_RATE,
        "overall_edge": mean(edges),
        "overall_roi": mean(s.roi_percentage or 0.0 for s in snapshots),
        "confidence_score": confidence_score(total_flagged, stdev, settings),
        "consistency_score": 1.0 - stdev,
        "trend_direction": trend.value,
        "trend_strength": strength,
        "last_updated": now,
    }


def update_preset_performance(
    session: Session, filter_preset: str, settings: Settings, now: datetime | None = None
) -> FilterPerformanceUpdate | None:
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=settings.historical_window_days)
    snapshots = store.get_recent_filter_snapshots(session, filter_preset, since)
    if not snapshots:
        logger.info("No recent performance snapshots for filter %s", filter_preset)
        return None

    current = store.get_historical_performance(session, filter_preset, ANALYSIS_PERIOD)
    previous_confidence = current.confidence_score if current is not None else 0.0

    record = aggregate_snapshots(filter_preset, snapshots, settings, now)
    store.upsert_historical_performance(session, record)
    return FilterPerformanceUpdate(
        filter_preset=filter_preset,
        new_edge=float(record["overall_edge"]),
        confidence_change=float(record["confidence_score"]) - previous_confidence,
    )


def update_historical_performance(
    session: Session, settings: Settings
) -> tuple[list[FilterPerformanceUpdate], dict[str, str]]:
    updates: list[FilterPerformanceUpdate] = []
    errors: dict[str, str] = {}
    for preset in settings.filter_presets:
        try:
            update = update_preset_performance(session, preset, settings)
        except Exception as exc:  # noqa: BLE001
            session.rollback()
            logger.exception("Historical performance update failed for filter %s", preset)
            errors[preset] = str(exc)
            continue
        if update is not None:
            updates.append(update)
    return updates, errors
