from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from statistics import mean

from sqlalchemy.orm import Session

from matchup_tracker.config import Settings
from matchup_tracker.domain.types import RoundCompletionStatus, SnapshotRecord
from matchup_tracker.services import store

logger = logging.getLogger(__name__)

WITHDRAWN_PATTERN = re.compile(r"^(CUT|WD|DQ|DNS)")


@dataclass(frozen=True)
class CompletionCriteria:
    min_completion_percentage: float = 80.0
    min_players_required: int = 50
    holes_required: int = 18
    consider_withdrawn_complete: bool = True
    minutes_per_hole: int = 12
    active_window_days: int = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompletionCriteria":
        return cls(
            min_completion_percentage=settings.min_completion_percentage,
            min_players_required=settings.min_players_required,
            holes_required=settings.round_completion_threshold,
            consider_withdrawn_complete=settings.consider_withdrawn_complete,
            minutes_per_hole=settings.minutes_per_hole,
            active_window_days=settings.active_round_window_days,
        )


@dataclass(frozen=True)
class PlayerCompletionCounts:
    total: int
    completed: int
    in_progress: int
    not_started: int
    in_progress_holes: tuple[int, ...]

    @property
    def completion_percentage(self) -> float:
        return (self.completed / self.total) * 100.0 if self.total else 0.0


def is_withdrawn(position: str | None) -> bool:
    return bool(position) and WITHDRAWN_PATTERN.match(position.strip().upper()) is not None


def _is_player_complete(snapshot: SnapshotRecord, criteria: CompletionCriteria) -> bool:
    if snapshot.holes_thru >= criteria.holes_required:
        return True
    position = (snapshot.position or "").strip()
    if is_withdrawn(position):
        return criteria.consider_withdrawn_complete
    # A cleared "thru" with an untied position means the card is in.
    return bool(position) and "T" not in position.upper() and snapshot.holes_thru == 0


def count_player_completion(
    snapshots: list[SnapshotRecord], criteria: CompletionCriteria
) -> PlayerCompletionCounts:
    completed = 0
    not_started = 0
    in_progress_holes: list[int] = []
    for snapshot in snapshots:
        if _is_player_complete(snapshot, criteria):
            completed += 1
        elif snapshot.holes_thru > 0:
            in_progress_holes.append(snapshot.holes_thru)
        else:
            not_started += 1
    return PlayerCompletionCounts(
        total=len(snapshots),
        completed=completed,
        in_progress=len(in_progress_holes),
        not_started=not_started,
        in_progress_holes=tuple(in_progress_holes),
    )


def meets_completion_criteria(counts: PlayerCompletionCounts, criteria: CompletionCriteria) -> bool:
    if counts.total < criteria.min_players_required:
        return False
    return counts.completion_percentage >= criteria.min_completion_percentage


def estimate_completion_time(
    counts: PlayerCompletionCounts, criteria: CompletionCriteria, now: datetime
) -> datetime | None:
    if not counts.in_progress_holes:
        return None
    remaining = mean(max(0, criteria.holes_required - holes) for holes in counts.in_progress_holes)
    return now + timedelta(minutes=remaining * criteria.minutes_per_hole)


class RoundCompletionDetector:
    """Decides whether an event round has progressed far enough to settle matchups.

    Snapshots are polled repeatedly, so every check collapses them to the most
    recent row per player before counting. Nothing is cached between calls.
    """

    def __init__(self, session: Session, criteria: CompletionCriteria | None = None) -> None:
        self.session = session
        self.criteria = criteria or CompletionCriteria()

    def check_round_completion(self, event_id: int, round_num: int) -> RoundCompletionStatus:
        now = datetime.now(timezone.utc)
        event_name = store.get_tournament_name(self.session, event_id)
        snapshots = store.get_latest_snapshots(self.session, event_id, round_num)

        if not snapshots:
            logger.info("No snapshots for event %s round %s", event_id, round_num)
            return RoundCompletionStatus(
                event_id=event_id,
                event_name=event_name,
                round_num=round_num,
                is_complete=False,
                completion_percentage=0.0,
                total_players=0,
                completed_players=0,
                in_progress_players=0,
                not_started_players=0,
                last_updated=now,
            )

        counts = count_player_completion(snapshots, self.criteria)
        is_complete = meets_completion_criteria(counts, self.criteria)
        return RoundCompletionStatus(
            event_id=event_id,
            event_name=event_name,
            round_num=round_num,
            is_complete=is_complete,
            completion_percentage=counts.completion_percentage,
            total_players=counts.total,
            completed_players=counts.completed,
            in_progress_players=counts.in_progress,
            not_started_players=counts.not_started,
            last_updated=now,
            estimated_completion_time=None if is_complete else estimate_completion_time(counts, self.criteria, now),
        )

    def check_all_active_rounds(self) -> list[RoundCompletionStatus]:
        since = datetime.now(timezone.utc) - timedelta(days=self.criteria.active_window_days)
        statuses: list[RoundCompletionStatus] = []
        for event_id, round_num in store.list_active_rounds(self.session, since):
            try:
                statuses.append(self.check_round_completion(event_id, round_num))
            except Exception:  # noqa: BLE001
                self.session.rollback()
                logger.exception("Completion check failed for event %s round %s", event_id, round_num)
        return statuses

    def get_recently_completed_rounds(self) -> list[RoundCompletionStatus]:
        return [
            status
            for status in self.check_all_active_rounds()
            if status.is_complete
            and not store.exists_matchup_result(self.session, status.event_id, status.round_num)
        ]
