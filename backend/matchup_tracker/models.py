from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class Tournament(Base):
    __tablename__ = "tournaments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)


class TournamentRoundSnapshot(Base):
    __tablename__ = "tournament_round_snapshots"
    __table_args__ = (
        Index("ix_round_snapshots_event_round", "event_id", "round_num"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(Integer, nullable=False)
    round_num: Mapped[int] = mapped_column(Integer, nullable=False)
    player_id: Mapped[int] = mapped_column(Integer, nullable=False)
    player_name: Mapped[str] = mapped_column(Text, nullable=False)
    holes_thru: Mapped[int | None] = mapped_column(Integer, nullable=True)
    position: Mapped[str | None] = mapped_column(String(16), nullable=True)
    today_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class Matchup(Base):
    __tablename__ = "matchups"
    __table_args__ = (
        Index("ix_matchups_event_round", "event_id", "round_num"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(Integer, nullable=False)
    round_num: Mapped[int] = mapped_column(Integer, nullable=False)
    matchup_type: Mapped[str] = mapped_column(String(8), nullable=False)
    player1_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    player1_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    player2_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    player2_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    player3_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    player3_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    odds1: Mapped[float | None] = mapped_column(Float, nullable=True)
    odds2: Mapped[float | None] = mapped_column(Float, nullable=True)
    odds3: Mapped[float | None] = mapped_column(Float, nullable=True)
    model_odds1: Mapped[float | None] = mapped_column(Float, nullable=True)
    model_odds2: Mapped[float | None] = mapped_column(Float, nullable=True)
    model_odds3: Mapped[float | None] = mapped_column(Float, nullable=True)


class MatchupResult(Base):
    __tablename__ = "matchup_results"
    __table_args__ = (
        UniqueConstraint("matchup_id", "event_id", "round_num", name="uq_matchup_result"),
        Index("ix_matchup_results_event_round", "event_id", "round_num"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    matchup_id: Mapped[int] = mapped_column(Integer, nullable=False)
    event_id: Mapped[int] = mapped_column(Integer, nullable=False)
    event_name: Mapped[str] = mapped_column(Text, nullable=False)
    round_num: Mapped[int] = mapped_column(Integer, nullable=False)
    matchup_type: Mapped[str] = mapped_column(String(8), nullable=False)
    player1_id: Mapped[int] = mapped_column(Integer, nullable=False)
    player1_name: Mapped[str] = mapped_column(Text, nullable=False)
    player2_id: Mapped[int] = mapped_column(Integer, nullable=False)
    player2_name: Mapped[str] = mapped_column(Text, nullable=False)
    player3_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    player3_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    player1_odds: Mapped[float | None] = mapped_column(Float, nullable=True)
    player2_odds: Mapped[float | None] = mapped_column(Float, nullable=True)
    player3_odds: Mapped[float | None] = mapped_column(Float, nullable=True)
    player1_model_odds: Mapped[float | None] = mapped_column(Float, nullable=True)
    player2_model_odds: Mapped[float | None] = mapped_column(Float, nullable=True)
    player3_model_odds: Mapped[float | None] = mapped_column(Float, nullable=True)
    player1_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    player2_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    player3_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    player1_total_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    player2_total_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    player3_total_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    winner_id: Mapped[int] = mapped_column(Integer, nullable=False)
    winner_name: Mapped[str] = mapped_column(Text, nullable=False)
    win_method: Mapped[str] = mapped_column(String(16), nullable=False)
    confidence: Mapped[str] = mapped_column(String(8), nullable=False)
    determined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class FilterPerformanceSnapshot(Base):
    __tablename__ = "filter_performance_snapshots"
    __table_args__ = (
        UniqueConstraint("event_id", "round_num", "filter_preset", name="uq_filter_snapshot_round"),
        Index("ix_filter_snapshots_preset_time", "filter_preset", "analyzed_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(Integer, nullable=False)
    round_num: Mapped[int] = mapped_column(Integer, nullable=False)
    filter_preset: Mapped[str] = mapped_column(String(32), nullable=False)
    analyzed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_matchups_analyzed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    matchups_flagged: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    flagged_won: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    flagged_lost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    win_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    expected_win_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    edge: Mapped[float | None] = mapped_column(Float, nullable=True)
    roi_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)


class FilterHistoricalPerformance(Base):
    __tablename__ = "filter_historical_performance"
    __table_args__ = (
        UniqueConstraint("filter_preset", "analysis_period", name="uq_filter_historical_scope"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    filter_preset: Mapped[str] = mapped_column(String(32), nullable=False)
    analysis_period: Mapped[str] = mapped_column(String(32), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_events_analyzed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_rounds_analyzed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_matchups_analyzed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_matchups_flagged: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_flagged_wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overall_win_rate: Mapped[float] = mapped_column(Float, nullable=False)
    overall_expected_win_rate: Mapped[float] = mapped_column(Float, nullable=False)
    overall_edge: Mapped[float] = mapped_column(Float, nullable=False)
    overall_roi: Mapped[float] = mapped_column(Float, nullable=False)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False)
    consistency_score: Mapped[float] = mapped_column(Float, nullable=False)
    trend_direction: Mapped[str] = mapped_column(String(16), nullable=False)
    trend_strength: Mapped[float] = mapped_column(Float, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class PipelineRun(Base):
    __tablename__ = "pipeline_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    run_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    stats_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
