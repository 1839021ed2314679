from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from matchup_tracker.config import Settings
from matchup_tracker.domain.enums import MatchupType, ResultConfidence, WinMethod
from matchup_tracker.domain.types import (
    MatchupPlayer,
    MatchupRecord,
    PlayerOutcome,
    ProcessedMatchupResult,
    SnapshotRecord,
    WinnerDecision,
)
from matchup_tracker.models import Matchup
from matchup_tracker.services import store
from matchup_tracker.services.round_completion import is_withdrawn

logger = logging.getLogger(__name__)

NON_FINISHER_RANK = 999
DIGITS_PATTERN = re.compile(r"\d+")


@dataclass(frozen=True)
class ProcessorOptions:
    round_completion_threshold: int = 18
    fallback_to_position: bool = True
    require_complete_round: bool = False
    allow_low_confidence: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProcessorOptions":
        return cls(
            round_completion_threshold=settings.round_completion_threshold,
            fallback_to_position=settings.fallback_to_position,
            require_complete_round=settings.require_complete_round,
            allow_low_confidence=settings.allow_low_confidence,
        )


@dataclass
class IngestionSummary:
    processed: int = 0
    saved: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return {
            "processed": self.processed,
            "saved": self.saved,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


def parse_position(position: str | None) -> int | None:
    if not position:
        return None
    normalized = position.strip().upper()
    if is_withdrawn(normalized):
        return NON_FINISHER_RANK
    match = DIGITS_PATTERN.search(normalized)
    return int(match.group(0)) if match else None


def matchup_from_row(row: Matchup) -> MatchupRecord:
    slots = [
        (row.player1_id, row.player1_name, row.odds1, row.model_odds1),
        (row.player2_id, row.player2_name, row.odds2, row.model_odds2),
    ]
    matchup_type = MatchupType(row.matchup_type)
    if matchup_type == MatchupType.THREE_BALL:
        slots.append((row.player3_id, row.player3_name, row.odds3, row.model_odds3))

    players: list[MatchupPlayer] = []
    for index, (player_id, name, odds, model_odds) in enumerate(slots, start=1):
        if player_id is None or not name:
            raise ValueError(f"matchup {row.id} is missing player{index} id or name")
        players.append(MatchupPlayer(player_id=player_id, name=name, bookmaker_odds=odds, model_odds=model_odds))

    return MatchupRecord(
        matchup_id=row.id,
        event_id=row.event_id,
        round_num=row.round_num,
        matchup_type=matchup_type,
        players=tuple(players),
    )


def join_player_outcomes(matchup: MatchupRecord, snapshots: Sequence[SnapshotRecord]) -> tuple[PlayerOutcome, ...]:
    by_player = {snapshot.player_id: snapshot for snapshot in snapshots}
    outcomes: list[PlayerOutcome] = []
    for player in matchup.players:
        snapshot = by_player.get(player.player_id)
        outcomes.append(
            PlayerOutcome(
                player_id=player.player_id,
                name=player.name,
                bookmaker_odds=player.bookmaker_odds,
                model_odds=player.model_odds,
                score=snapshot.today_score if snapshot else None,
                total_score=snapshot.total_score if snapshot else None,
                position=parse_position(snapshot.position) if snapshot else None,
            )
        )
    return tuple(outcomes)


# Winner classifiers. Each one returns a decision or None so the next can try.

def _lowest(players: Sequence[PlayerOutcome], value: Callable[[PlayerOutcome], int]) -> list[PlayerOutcome]:
    best = min(value(player) for player in players)
    return [player for player in players if value(player) == best]


def classify_by_position(players: Sequence[PlayerOutcome]) -> WinnerDecision | None:
    ranked = [player for player in players if player.position is not None]
    if len(ranked) < 2:
        return None
    leaders = _lowest(ranked, lambda p: p.position)
    winner = leaders[0]
    return WinnerDecision(
        player_id=winner.player_id,
        name=winner.name,
        method=WinMethod.POSITION,
        confidence=ResultConfidence.MEDIUM if len(leaders) == 1 else ResultConfidence.LOW,
    )


def classify_by_round_score(
    players: Sequence[PlayerOutcome], fallback_to_position: bool
) -> WinnerDecision | None:
    if any(player.score is None for player in players):
        return None
    leaders = _lowest(players, lambda p: p.score)
    if len(leaders) == 1:
        winner = leaders[0]
        return WinnerDecision(
            player_id=winner.player_id,
            name=winner.name,
            method=WinMethod.SCORE,
            confidence=ResultConfidence.HIGH,
        )
    if not fallback_to_position:
        return None
    return classify_by_position(leaders)


def classify_by_total_score(players: Sequence[PlayerOutcome]) -> WinnerDecision | None:
    if any(player.total_score is None for player in players):
        return None
    winner = _lowest(players, lambda p: p.total_score)[0]
    return WinnerDecision(
        player_id=winner.player_id,
        name=winner.name,
        method=WinMethod.SCORE,
        confidence=ResultConfidence.LOW,
    )


def determine_winner(players: Sequence[PlayerOutcome], options: ProcessorOptions) -> WinnerDecision | None:
    # A round-score tie is terminal: it either resolves on position among the
    # tied players or produces no winner at all.
    if all(player.score is not None for player in players):
        return classify_by_round_score(players, options.fallback_to_position)

    classifiers: list[Callable[[Sequence[PlayerOutcome]], WinnerDecision | None]] = []
    if options.fallback_to_position:
        classifiers.append(classify_by_position)
    classifiers.append(classify_by_total_score)

    for classifier in classifiers:
        decision = classifier(players)
        if decision is not None:
            return decision
    return None


def accept_result(
    players: Sequence[PlayerOutcome], decision: WinnerDecision, options: ProcessorOptions
) -> bool:
    if options.require_complete_round and any(player.score is None for player in players):
        return False
    if decision.confidence == ResultConfidence.HIGH:
        return True
    if decision.confidence == ResultConfidence.MEDIUM:
        return decision.method == WinMethod.POSITION
    return options.allow_low_confidence


def result_to_record(result: ProcessedMatchupResult) -> dict[str, object]:
    record: dict[str, object] = {
        "matchup_id": result.matchup_id,
        "event_id": result.event_id,
        "event_name": result.event_name,
        "round_num": result.round_num,
        "matchup_type": result.matchup_type.value,
        "winner_id": result.winner_id,
        "winner_name": result.winner_name,
        "win_method": result.win_method.value,
        "confidence": result.confidence.value,
        "determined_at": result.determined_at,
    }
    for slot in (1, 2, 3):
        player = result.players[slot - 1] if slot <= len(result.players) else None
        record[f"player{slot}_id"] = player.player_id if player else None
        record[f"player{slot}_name"] = player.name if player else None
        record[f"player{slot}_odds"] = player.bookmaker_odds if player else None
        record[f"player{slot}_model_odds"] = player.model_odds if player else None
        record[f"player{slot}_score"] = player.score if player else None
        record[f"player{slot}_total_score"] = player.total_score if player else None
    return record


class MatchupResultProcessor:
    def __init__(self, session: Session, options: ProcessorOptions | None = None) -> None:
        self.session = session
        self.options = options or ProcessorOptions()

    def process_matchup(
        self, row: Matchup, snapshots: Sequence[SnapshotRecord], event_name: str
    ) -> ProcessedMatchupResult | None:
        matchup = matchup_from_row(row)
        players = join_player_outcomes(matchup, snapshots)

        decision = determine_winner(players, self.options)
        if decision is None:
            logger.info("Could not determine winner for matchup %s", matchup.matchup_id)
            return None
        if not accept_result(players, decision, self.options):
            logger.info(
                "Skipping matchup %s: %s/%s result rejected by policy",
                matchup.matchup_id,
                decision.method.value,
                decision.confidence.value,
            )
            return None

        return ProcessedMatchupResult(
            matchup_id=matchup.matchup_id,
            event_id=matchup.event_id,
            event_name=event_name,
            round_num=matchup.round_num,
            matchup_type=matchup.matchup_type,
            players=players,
            winner_id=decision.player_id,
            winner_name=decision.name,
            win_method=decision.method,
            confidence=decision.confidence,
            determined_at=datetime.now(timezone.utc),
        )

    def _process(self, event_id: int, round_num: int, summary: IngestionSummary) -> list[ProcessedMatchupResult]:
        matchups = store.get_matchups(self.session, event_id, round_num)
        if not matchups:
            logger.info("No matchups found for event %s round %s", event_id, round_num)
            return []

        snapshots = store.get_latest_snapshots(self.session, event_id, round_num)
        event_name = store.get_tournament_name(self.session, event_id)

        results: list[ProcessedMatchupResult] = []
        for row in matchups:
            try:
                result = self.process_matchup(row, snapshots, event_name)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Error processing matchup %s: %s", row.id, exc)
                summary.errors.append(f"matchup {row.id}: {exc}")
                continue
            if result is None:
                summary.skipped += 1
            else:
                results.append(result)
        return results

    def process_event_round_results(self, event_id: int, round_num: int) -> list[ProcessedMatchupResult]:
        return self._process(event_id, round_num, IngestionSummary())

    def save_results(self, results: Sequence[ProcessedMatchupResult]) -> int:
        """Upsert results on (matchup_id, event_id, round_num); returns how many keys were new."""
        if not results:
            return 0
        keys = [(r.matchup_id, r.event_id, r.round_num) for r in results]
        already_stored = store.existing_result_keys(self.session, keys)
        store.upsert_matchup_results(self.session, [result_to_record(result) for result in results])
        saved = len(set(keys) - already_stored)
        logger.info("Saved %s matchup results (%s replayed)", saved, len(results) - saved)
        return saved

    def ingest_event_round_results(self, event_id: int, round_num: int) -> IngestionSummary:
        summary = IngestionSummary()
        try:
            results = self._process(event_id, round_num, summary)
            summary.processed = len(results)
            summary.saved = self.save_results(results)
        except Exception as exc:  # noqa: BLE001
            self.session.rollback()
            logger.exception("Result ingestion failed for event %s round %s", event_id, round_num)
            return IngestionSummary(errors=[*summary.errors, str(exc)])
        return summary
