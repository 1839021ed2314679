from fastapi import APIRouter

from matchup_tracker.api.parlays import router as parlays_router
from matchup_tracker.api.pipeline import router as pipeline_router
from matchup_tracker.api.rounds import router as rounds_router

api_router = APIRouter()
api_router.include_router(pipeline_router)
api_router.include_router(rounds_router)
api_router.include_router(parlays_router)
