from __future__ import annotations

import time
from threading import Lock
from typing import Tuple

from fastapi import HTTPException, Request, status

from .config import get_settings


_window_counts: dict[Tuple[str, str, int], int] = {}
_lock = Lock()


def rate_limit_check(request: Request, token: str) -> None:
    settings = get_settings()
    if not settings.rate_limit_enabled:
        return
    ip = request.client.host if request.client else "unknown"
    minute = int(time.time() // 60)
    key = (token, ip, minute)
    with _lock:
        # drop windows from previous minutes so the table stays bounded
        for stale in [k for k in _window_counts if k[2] < minute]:
            del _window_counts[stale]
        count = _window_counts.get(key, 0) + 1
        _window_counts[key] = count
    if count > settings.rate_limit_per_minute:
        retry_after = 60 - int(time.time() % 60)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded",
            headers={"Retry-After": str(retry_after)},
        )
