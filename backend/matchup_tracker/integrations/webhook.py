from __future__ import annotations

import requests


def post_notification(url: str, payload: dict[str, object], timeout: float) -> None:
    response = requests.post(url, json=payload, timeout=timeout)
    response.raise_for_status()
