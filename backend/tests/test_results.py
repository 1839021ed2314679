from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from matchup_tracker.domain.enums import ResultConfidence, WinMethod
from matchup_tracker.domain.types import PlayerOutcome, WinnerDecision
from matchup_tracker.models import Base, Matchup, MatchupResult, Tournament, TournamentRoundSnapshot
from matchup_tracker.services.results import (
    MatchupResultProcessor,
    ProcessorOptions,
    accept_result,
    determine_winner,
    parse_position,
)

T0 = datetime(2025, 8, 7, 22, 0, tzinfo=timezone.utc)


def _outcome(
    player_id: int,
    score: int | None = None,
    position: int | None = None,
    total_score: int | None = None,
) -> PlayerOutcome:
    return PlayerOutcome(
        player_id=player_id,
        name=f"P{player_id}",
        bookmaker_odds=None,
        model_odds=None,
        score=score,
        total_score=total_score,
        position=position,
    )


def _snapshot(session: Session, player_id: int, today: int | None, position: str | None, total: int | None = None) -> None:
    session.add(
        TournamentRoundSnapshot(
            event_id=10,
            round_num=2,
            player_id=player_id,
            player_name=f"P{player_id}",
            holes_thru=18,
            position=position,
            today_score=today,
            total_score=total,
            captured_at=T0,
        )
    )


def _matchup(session: Session, *player_ids: int | None, matchup_type: str = "2ball") -> Matchup:
    names = [f"P{pid}" if pid is not None else None for pid in player_ids]
    padded_ids = list(player_ids) + [None] * (3 - len(player_ids))
    padded_names = names + [None] * (3 - len(names))
    matchup = Matchup(
        event_id=10,
        round_num=2,
        matchup_type=matchup_type,
        player1_id=padded_ids[0],
        player1_name=padded_names[0],
        player2_id=padded_ids[1],
        player2_name=padded_names[1],
        player3_id=padded_ids[2],
        player3_name=padded_names[2],
        odds1=1.91,
        odds2=1.95,
        model_odds1=1.85,
        model_odds2=2.05,
    )
    session.add(matchup)
    session.flush()
    return matchup


def _engine():
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    Base.metadata.create_all(engine)
    return engine


def test_parse_position_variants() -> None:
    assert parse_position("T5") == 5
    assert parse_position("3") == 3
    assert parse_position("CUT") == 999
    assert parse_position("wd") == 999
    assert parse_position("DNS") == 999
    assert parse_position("") is None
    assert parse_position(None) is None
    assert parse_position("--") is None


def test_lowest_round_score_wins_with_high_confidence() -> None:
    decision = determine_winner([_outcome(1, score=-3), _outcome(2, score=-1)], ProcessorOptions())

    assert decision == WinnerDecision(player_id=1, name="P1", method=WinMethod.SCORE, confidence=ResultConfidence.HIGH)


def test_score_tie_falls_back_to_position_of_tied_players() -> None:
    decision = determine_winner(
        [_outcome(1, score=-2, position=parse_position("T5")), _outcome(2, score=-2, position=parse_position("3"))],
        ProcessorOptions(),
    )

    assert decision is not None
    assert decision.player_id == 2
    assert decision.method == WinMethod.POSITION
    assert decision.confidence == ResultConfidence.MEDIUM


def test_three_ball_tie_only_compares_tied_subset() -> None:
    players = [
        _outcome(1, score=-4, position=8),
        _outcome(2, score=-4, position=6),
        _outcome(3, score=-1, position=1),
    ]

    decision = determine_winner(players, ProcessorOptions())

    assert decision is not None
    assert decision.player_id == 2


def test_score_tie_without_position_fallback_has_no_winner() -> None:
    players = [_outcome(1, score=-2, position=1), _outcome(2, score=-2, position=4)]

    assert determine_winner(players, ProcessorOptions(fallback_to_position=False)) is None


def test_shared_position_is_low_confidence() -> None:
    decision = determine_winner([_outcome(1, position=7), _outcome(2, position=7)], ProcessorOptions())

    assert decision is not None
    assert decision.method == WinMethod.POSITION
    assert decision.confidence == ResultConfidence.LOW


def test_total_score_is_last_resort() -> None:
    players = [_outcome(1, total_score=-6), _outcome(2, total_score=-8)]

    decision = determine_winner(players, ProcessorOptions())

    assert decision is not None
    assert decision.player_id == 2
    assert decision.method == WinMethod.SCORE
    assert decision.confidence == ResultConfidence.LOW
    assert determine_winner([_outcome(1, total_score=-6), _outcome(2)], ProcessorOptions()) is None


def test_policy_gate() -> None:
    players = [_outcome(1, score=-2), _outcome(2)]
    medium = WinnerDecision(1, "P1", WinMethod.POSITION, ResultConfidence.MEDIUM)
    low = WinnerDecision(1, "P1", WinMethod.SCORE, ResultConfidence.LOW)
    high = WinnerDecision(1, "P1", WinMethod.SCORE, ResultConfidence.HIGH)

    assert accept_result(players, high, ProcessorOptions()) is True
    assert accept_result(players, medium, ProcessorOptions()) is True
    assert accept_result(players, low, ProcessorOptions()) is False
    assert accept_result(players, low, ProcessorOptions(allow_low_confidence=True)) is True
    assert accept_result(players, medium, ProcessorOptions(require_complete_round=True)) is False


def test_ingest_is_idempotent() -> None:
    engine = _engine()
    with Session(engine) as session:
        session.add(Tournament(event_id=10, name="Wyndham Championship"))
        _snapshot(session, 1, -3, "T4", total=-7)
        _snapshot(session, 2, -1, "T20", total=-2)
        _snapshot(session, 3, 0, "T33", total=1)
        _snapshot(session, 4, -2, "T12", total=-4)
        first = _matchup(session, 1, 2)
        _matchup(session, 3, 4)
        session.commit()

        processor = MatchupResultProcessor(session)
        summary1 = processor.ingest_event_round_results(10, 2)
        summary2 = processor.ingest_event_round_results(10, 2)
        rows = session.query(MatchupResult).order_by(MatchupResult.matchup_id).all()

        assert summary1.processed == 2
        assert summary1.saved == 2
        assert summary1.errors == []
        assert summary2.processed == 2
        assert summary2.saved == 0
        assert len(rows) == 2
        assert rows[0].matchup_id == first.id
        assert rows[0].winner_id == 1
        assert rows[0].event_name == "Wyndham Championship"
        assert rows[0].win_method == "score"
        assert rows[0].confidence == "high"
        assert rows[0].player1_odds == 1.91
        assert rows[0].player2_total_score == -2
        assert rows[0].player3_id is None
        assert rows[1].winner_id == 4


def test_malformed_matchup_does_not_abort_batch() -> None:
    engine = _engine()
    with Session(engine) as session:
        for player_id in range(1, 11):
            _snapshot(session, player_id, -player_id, str(player_id))
        _matchup(session, 1, 2)
        _matchup(session, 3, 4)
        _matchup(session, 5, None)
        _matchup(session, 7, 8)
        _matchup(session, 9, 10)
        session.commit()

        summary = MatchupResultProcessor(session).ingest_event_round_results(10, 2)

        assert summary.processed == 4
        assert summary.saved == 4
        assert len(summary.errors) == 1
        assert "missing player2" in summary.errors[0]
        assert session.query(MatchupResult).count() == 4


def test_three_ball_and_unresolvable_matchups() -> None:
    engine = _engine()
    with Session(engine) as session:
        _snapshot(session, 1, -1, "T10")
        _snapshot(session, 2, -5, "T2")
        _snapshot(session, 3, -2, "T8")
        _snapshot(session, 4, None, None)
        _snapshot(session, 5, None, None)
        _matchup(session, 1, 2, 3, matchup_type="3ball")
        _matchup(session, 4, 5)
        session.commit()

        processor = MatchupResultProcessor(session)
        results = processor.process_event_round_results(10, 2)
        summary = processor.ingest_event_round_results(10, 2)

    assert len(results) == 1
    assert results[0].winner_id == 2
    assert len(results[0].players) == 3
    assert summary.skipped == 1
    assert summary.saved == 1


def test_no_matchups_yields_empty_summary() -> None:
    engine = _engine()
    with Session(engine) as session:
        summary = MatchupResultProcessor(session).ingest_event_round_results(99, 1)

    assert summary.as_dict() == {"processed": 0, "saved": 0, "skipped": 0, "errors": []}
