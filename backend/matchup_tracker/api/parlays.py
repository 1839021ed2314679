from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter
from pydantic import BaseModel, Field

from matchup_tracker.core.parlay import calculate_parlay_confidence, confidence_label
from matchup_tracker.domain.enums import PickOutcome
from matchup_tracker.domain.types import ParlayPick, ParlayPlayer

router = APIRouter(tags=["parlays"])


class ParlayPlayerIn(BaseModel):
    name: str
    is_user_pick: bool = False
    round_score: int | None = None
    holes_played: int | None = Field(default=None, ge=0, le=18)
    current_position: str | None = None


class ParlayPickIn(BaseModel):
    players: list[ParlayPlayerIn] = Field(default_factory=list)
    pick_outcome: PickOutcome | None = None


class ParlayIn(BaseModel):
    picks: list[ParlayPickIn] = Field(default_factory=list)


def to_domain(parlay: ParlayIn) -> list[ParlayPick]:
    return [
        ParlayPick(
            players=tuple(ParlayPlayer(**player.model_dump()) for player in pick.players),
            outcome=pick.pick_outcome,
        )
        for pick in parlay.picks
    ]


@router.post("/parlays/confidence")
def parlay_confidence(parlay: ParlayIn) -> dict[str, object]:
    result = calculate_parlay_confidence(to_domain(parlay))
    return {**asdict(result), "label": confidence_label(result.overall_confidence)}
