from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from matchup_tracker.config import get_settings
from matchup_tracker.db import get_db
from matchup_tracker.services.results import MatchupResultProcessor, ProcessorOptions
from matchup_tracker.services.round_completion import CompletionCriteria, RoundCompletionDetector

router = APIRouter(tags=["rounds"])


def _detector(db: Session) -> RoundCompletionDetector:
    return RoundCompletionDetector(db, CompletionCriteria.from_settings(get_settings()))


@router.get("/rounds/completion")
def active_round_completion(
    only_new: bool = Query(False),
    db: Session = Depends(get_db),
) -> list[dict[str, object]]:
    detector = _detector(db)
    statuses = detector.get_recently_completed_rounds() if only_new else detector.check_all_active_rounds()
    return [asdict(status) for status in statuses]


@router.get("/rounds/{event_id}/{round_num}/completion")
def round_completion(event_id: int, round_num: int, db: Session = Depends(get_db)) -> dict[str, object]:
    return asdict(_detector(db).check_round_completion(event_id, round_num))


@router.post("/results/ingest")
def ingest_results(
    event_id: int = Query(...),
    round_num: int = Query(..., ge=1, le=4),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    processor = MatchupResultProcessor(db, ProcessorOptions.from_settings(get_settings()))
    return processor.ingest_event_round_results(event_id, round_num).as_dict()
