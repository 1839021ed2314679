from __future__ import annotations

import math

from matchup_tracker.domain.enums import PickOutcome, PickStatus
from matchup_tracker.domain.types import ParlayConfidence, ParlayPick, PickConfidence

HOLES_PER_ROUND = 18
ALL_OPPONENTS_WITHDRAWN_CONFIDENCE = 95
RISK_THRESHOLD = 30
WITHDRAWN = "WD"

SETTLED_CONFIDENCE = {
    PickOutcome.WIN: (PickStatus.WON, 100),
    PickOutcome.LOSS: (PickStatus.LOST, 0),
    PickOutcome.PUSH: (PickStatus.PUSH, 50),
    PickOutcome.VOID: (PickStatus.VOID, 0),
}

# Win probability (%) keyed by (strokes vs best opponent, holes-remaining bucket).
# Negative differential means the pick is ahead.
WIN_PROBABILITY: dict[tuple[int, int], int] = {
    (-4, 18): 85, (-4, 9): 95, (-4, 3): 98,
    (-3, 18): 75, (-3, 9): 90, (-3, 3): 95,
    (-2, 18): 65, (-2, 9): 80, (-2, 3): 90,
    (-1, 18): 55, (-1, 9): 65, (-1, 3): 75,
    (0, 18): 45, (0, 9): 45, (0, 3): 45,
    (1, 18): 35, (1, 9): 25, (1, 3): 15,
    (2, 18): 25, (2, 9): 15, (2, 3): 8,
    (3, 18): 15, (3, 9): 8, (3, 3): 3,
    (4, 18): 10, (4, 9): 5, (4, 3): 1,
}

ACTIVE_STATUSES = {PickStatus.LEADING, PickStatus.TRAILING, PickStatus.TIED, PickStatus.PENDING}


def holes_bucket(holes_remaining: int) -> int:
    if holes_remaining >= 15:
        return 18
    if holes_remaining >= 6:
        return 9
    return 3


def pick_probability(score_differential: int, holes_remaining: int, status: PickStatus) -> int:
    if holes_remaining == 0:
        if status == PickStatus.WON:
            return 100
        if status == PickStatus.LOST:
            return 0
        return 50

    capped = max(-4, min(4, score_differential))
    fallback = 60 if score_differential < 0 else 30
    return WIN_PROBABILITY.get((capped, holes_bucket(holes_remaining)), fallback)


def _plural(count: int, word: str) -> str:
    return word if count == 1 else f"{word}s"


def describe_position(score_differential: int, holes_remaining: int, status: PickStatus, opponents: int) -> str:
    margin = abs(score_differential)
    if holes_remaining == 0:
        if status == PickStatus.WON:
            return f"Won by {margin} {_plural(margin, 'stroke')}"
        if status == PickStatus.LOST:
            return f"Lost by {margin} {_plural(margin, 'stroke')}"
        return "Tied - push result"

    strokes = _plural(margin, "stroke")
    if score_differential < 0:
        if holes_remaining >= 10:
            return f"Leading by {margin} {strokes}, {holes_remaining} holes left - good position"
        if holes_remaining >= 5:
            return f"Leading by {margin} {strokes}, {holes_remaining} holes left - strong position"
        return f"Leading by {margin} {strokes}, only {holes_remaining} holes left - very strong"
    if score_differential > 0:
        if holes_remaining >= 10:
            return f"Trailing by {margin} {strokes}, {holes_remaining} holes left - can recover"
        if holes_remaining >= 5:
            return f"Trailing by {margin} {strokes}, {holes_remaining} holes left - needs strong finish"
        return f"Trailing by {margin} {strokes}, only {holes_remaining} holes left - very difficult"
    return f"Tied with {_plural(opponents, 'opponent')}, {holes_remaining} holes left - anyone's game"


def analyze_pick(pick: ParlayPick, pick_index: int) -> PickConfidence:
    user = next((player for player in pick.players if player.is_user_pick), None)
    if user is None:
        return PickConfidence(
            pick_index=pick_index,
            player_name="Unknown",
            status=PickStatus.PENDING,
            confidence=0,
            holes_remaining=HOLES_PER_ROUND,
            score_differential=0,
            reasoning="No player data available",
        )

    if pick.outcome is not None:
        status, confidence = SETTLED_CONFIDENCE[pick.outcome]
        return PickConfidence(
            pick_index=pick_index,
            player_name=user.name,
            status=status,
            confidence=confidence,
            holes_remaining=0,
            score_differential=0,
            reasoning=f"Officially settled: {pick.outcome.value}",
        )

    user_score = user.round_score or 0
    holes_remaining = max(0, HOLES_PER_ROUND - (user.holes_played or 0))
    opponents = [
        player
        for player in pick.players
        if not player.is_user_pick and (player.current_position or "").strip().upper() != WITHDRAWN
    ]

    if not opponents:
        return PickConfidence(
            pick_index=pick_index,
            player_name=user.name,
            status=PickStatus.LEADING if holes_remaining > 0 else PickStatus.WON,
            confidence=ALL_OPPONENTS_WITHDRAWN_CONFIDENCE,
            holes_remaining=holes_remaining,
            score_differential=None,
            reasoning="All opponents withdrew",
        )

    best_opponent = min(player.round_score or 0 for player in opponents)
    differential = user_score - best_opponent
    if holes_remaining == 0:
        status = PickStatus.WON if differential < 0 else PickStatus.LOST if differential > 0 else PickStatus.PUSH
    else:
        status = PickStatus.LEADING if differential < 0 else PickStatus.TRAILING if differential > 0 else PickStatus.TIED

    return PickConfidence(
        pick_index=pick_index,
        player_name=user.name,
        status=status,
        confidence=pick_probability(differential, holes_remaining, status),
        holes_remaining=holes_remaining,
        score_differential=differential,
        reasoning=describe_position(differential, holes_remaining, status, len(opponents)),
    )


def calculate_parlay_confidence(picks: list[ParlayPick]) -> ParlayConfidence:
    """Live probability that every leg of a parlay hits.

    Legs are treated as independent, so the overall figure is the product of
    the still-open legs. A single lost leg ends the parlay.
    """
    summary = {status.value: 0 for status in PickStatus}
    if not picks:
        return ParlayConfidence(
            overall_confidence=0,
            is_alive=False,
            summary=summary,
            risk_factors=["No picks available"],
        )

    analysis = [analyze_pick(pick, index) for index, pick in enumerate(picks)]
    risk_factors: list[str] = []
    for item in analysis:
        summary[item.status.value] += 1
        if item.status in ACTIVE_STATUSES and item.confidence < RISK_THRESHOLD:
            risk_factors.append(f"{item.player_name}: {item.reasoning}")

    is_alive = summary[PickStatus.LOST.value] == 0
    if not is_alive:
        overall = 0.0
    else:
        overall = math.prod(item.confidence / 100 for item in analysis if item.status in ACTIVE_STATUSES) * 100

    return ParlayConfidence(
        overall_confidence=round(overall),
        is_alive=is_alive,
        picks_analysis=analysis,
        summary=summary,
        risk_factors=risk_factors,
    )


def confidence_label(confidence: int) -> str:
    if confidence >= 90:
        return "Excellent"
    if confidence >= 75:
        return "Very Good"
    if confidence >= 60:
        return "Good"
    if confidence >= 40:
        return "Fair"
    if confidence >= 20:
        return "Poor"
    return "Very Poor"
