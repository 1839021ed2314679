from dataclasses import dataclass, field
from datetime import datetime

from matchup_tracker.domain.enums import (
    MatchupType,
    PickOutcome,
    PickStatus,
    ResultConfidence,
    WinMethod,
)


@dataclass(frozen=True, slots=True)
class SnapshotRecord:
    event_id: int
    round_num: int
    player_id: int
    name: str
    holes_thru: int
    position: str | None
    today_score: int | None
    total_score: int | None
    captured_at: datetime


@dataclass(frozen=True, slots=True)
class MatchupPlayer:
    player_id: int
    name: str
    bookmaker_odds: float | None = None
    model_odds: float | None = None


@dataclass(frozen=True, slots=True)
class MatchupRecord:
    matchup_id: int
    event_id: int
    round_num: int
    matchup_type: MatchupType
    players: tuple[MatchupPlayer, ...]

    def __post_init__(self) -> None:
        if not 2 <= len(self.players) <= 3:
            raise ValueError("a matchup must have 2 or 3 players")


@dataclass(frozen=True, slots=True)
class PlayerOutcome:
    """A matchup participant joined with their latest round snapshot."""

    player_id: int
    name: str
    bookmaker_odds: float | None
    model_odds: float | None
    score: int | None
    total_score: int | None
    position: int | None


@dataclass(frozen=True, slots=True)
class WinnerDecision:
    player_id: int
    name: str
    method: WinMethod
    confidence: ResultConfidence


@dataclass(frozen=True, slots=True)
class ProcessedMatchupResult:
    matchup_id: int
    event_id: int
    event_name: str
    round_num: int
    matchup_type: MatchupType
    players: tuple[PlayerOutcome, ...]
    winner_id: int
    winner_name: str
    win_method: WinMethod
    confidence: ResultConfidence
    determined_at: datetime


@dataclass(frozen=True, slots=True)
class RoundCompletionStatus:
    event_id: int
    event_name: str
    round_num: int
    is_complete: bool
    completion_percentage: float
    total_players: int
    completed_players: int
    in_progress_players: int
    not_started_players: int
    last_updated: datetime
    estimated_completion_time: datetime | None = None


@dataclass(frozen=True, slots=True)
class ParlayPlayer:
    name: str
    is_user_pick: bool = False
    round_score: int | None = None
    holes_played: int | None = None
    current_position: str | None = None


@dataclass(frozen=True, slots=True)
class ParlayPick:
    players: tuple[ParlayPlayer, ...] = ()
    outcome: PickOutcome | None = None


@dataclass(frozen=True, slots=True)
class PickConfidence:
    pick_index: int
    player_name: str
    status: PickStatus
    confidence: int
    holes_remaining: int
    score_differential: int | None
    reasoning: str


@dataclass(frozen=True, slots=True)
class ParlayConfidence:
    overall_confidence: int
    is_alive: bool
    picks_analysis: list[PickConfidence] = field(default_factory=list)
    summary: dict[str, int] = field(default_factory=dict)
    risk_factors: list[str] = field(default_factory=list)
