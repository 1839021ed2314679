from __future__ import annotations

import requests

from matchup_tracker.config import get_settings


def analyze_filter_performance(event_id: int, round_num: int) -> int:
    """Trigger filter analysis for a settled round and return how many snapshots it wrote."""
    settings = get_settings()
    if not settings.analysis_api_base_url:
        raise ValueError("ANALYSIS_API_BASE_URL is required for filter analysis")

    response = requests.post(
        f"{settings.analysis_api_base_url.rstrip('/')}/filter-analysis/{event_id}/{round_num}",
        json={"forceReanalysis": False},
        timeout=settings.external_timeout_sec,
    )
    response.raise_for_status()
    return int(response.json().get("snapshotsCreated") or 0)
