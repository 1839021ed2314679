from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from matchup_tracker.domain.types import SnapshotRecord
from matchup_tracker.models import (
    FilterHistoricalPerformance,
    FilterPerformanceSnapshot,
    Matchup,
    MatchupResult,
    Tournament,
    TournamentRoundSnapshot,
)

MATCHUP_RESULT_KEY = ("matchup_id", "event_id", "round_num")
HISTORICAL_PERFORMANCE_KEY = ("filter_preset", "analysis_period")


def _dialect_insert(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise ValueError(f"Upsert is not supported for dialect '{dialect}'")
    return insert


def _to_record(row: TournamentRoundSnapshot) -> SnapshotRecord:
    return SnapshotRecord(
        event_id=row.event_id,
        round_num=row.round_num,
        player_id=row.player_id,
        name=row.player_name,
        holes_thru=row.holes_thru or 0,
        position=row.position,
        today_score=row.today_score,
        total_score=row.total_score,
        captured_at=row.captured_at,
    )


def get_tournament_name(session: Session, event_id: int) -> str:
    name = session.execute(
        select(Tournament.name).where(Tournament.event_id == event_id)
    ).scalar_one_or_none()
    return name or f"Event {event_id}"


def get_latest_snapshots(session: Session, event_id: int, round_num: int) -> list[SnapshotRecord]:
    rows = (
        session.execute(
            select(TournamentRoundSnapshot)
            .where(
                TournamentRoundSnapshot.event_id == event_id,
                TournamentRoundSnapshot.round_num == round_num,
            )
            .order_by(desc(TournamentRoundSnapshot.captured_at), desc(TournamentRoundSnapshot.id))
        )
        .scalars()
        .all()
    )
    latest: dict[int, SnapshotRecord] = {}
    for row in rows:
        if row.player_id not in latest:
            latest[row.player_id] = _to_record(row)
    return list(latest.values())


def list_active_rounds(session: Session, since: datetime) -> list[tuple[int, int]]:
    last_seen = func.max(TournamentRoundSnapshot.captured_at)
    rows = session.execute(
        select(TournamentRoundSnapshot.event_id, TournamentRoundSnapshot.round_num, last_seen)
        .where(TournamentRoundSnapshot.captured_at >= since)
        .group_by(TournamentRoundSnapshot.event_id, TournamentRoundSnapshot.round_num)
        .order_by(desc(last_seen))
    ).all()
    return [(event_id, round_num) for event_id, round_num, _ in rows]


def get_matchups(session: Session, event_id: int, round_num: int) -> list[Matchup]:
    return list(
        session.execute(
            select(Matchup)
            .where(Matchup.event_id == event_id, Matchup.round_num == round_num)
            .order_by(Matchup.id.asc())
        )
        .scalars()
        .all()
    )


def exists_matchup_result(session: Session, event_id: int, round_num: int) -> bool:
    found = session.execute(
        select(MatchupResult.id)
        .where(MatchupResult.event_id == event_id, MatchupResult.round_num == round_num)
        .limit(1)
    ).scalar_one_or_none()
    return found is not None


def existing_result_keys(session: Session, keys: Iterable[tuple[int, int, int]]) -> set[tuple[int, int, int]]:
    wanted = set(keys)
    rounds = {(event_id, round_num) for _, event_id, round_num in wanted}
    found: set[tuple[int, int, int]] = set()
    for event_id, round_num in sorted(rounds):
        matchup_ids = sorted(m for m, e, r in wanted if (e, r) == (event_id, round_num))
        rows = session.execute(
            select(MatchupResult.matchup_id).where(
                MatchupResult.event_id == event_id,
                MatchupResult.round_num == round_num,
                MatchupResult.matchup_id.in_(matchup_ids),
            )
        ).scalars()
        found.update((matchup_id, event_id, round_num) for matchup_id in rows)
    return found


def upsert_matchup_results(session: Session, records: list[dict[str, object]]) -> None:
    if not records:
        return
    insert = _dialect_insert(session)
    stmt = insert(MatchupResult).values(records)
    update_columns = {
        key: stmt.excluded[key] for key in records[0].keys() if key not in MATCHUP_RESULT_KEY
    }
    session.execute(stmt.on_conflict_do_update(index_elements=list(MATCHUP_RESULT_KEY), set_=update_columns))
    session.commit()


def get_recent_filter_snapshots(
    session: Session, filter_preset: str, since: datetime
) -> list[FilterPerformanceSnapshot]:
    return list(
        session.execute(
            select(FilterPerformanceSnapshot)
            .where(
                FilterPerformanceSnapshot.filter_preset == filter_preset,
                FilterPerformanceSnapshot.analyzed_at >= since,
            )
            .order_by(desc(FilterPerformanceSnapshot.analyzed_at), desc(FilterPerformanceSnapshot.id))
        )
        .scalars()
        .all()
    )


def get_historical_performance(
    session: Session, filter_preset: str, analysis_period: str
) -> FilterHistoricalPerformance | None:
    return session.execute(
        select(FilterHistoricalPerformance).where(
            FilterHistoricalPerformance.filter_preset == filter_preset,
            FilterHistoricalPerformance.analysis_period == analysis_period,
        )
    ).scalar_one_or_none()


def upsert_historical_performance(session: Session, record: dict[str, object]) -> None:
    insert = _dialect_insert(session)
    stmt = insert(FilterHistoricalPerformance).values(record)
    update_columns = {
        key: stmt.excluded[key] for key in record.keys() if key not in HISTORICAL_PERFORMANCE_KEY
    }
    session.execute(
        stmt.on_conflict_do_update(index_elements=list(HISTORICAL_PERFORMANCE_KEY), set_=update_columns)
    )
    session.commit()
