import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

import config


@dataclass(frozen=True)
class RateDecision:
    admitted: bool
    retry_after_seconds: Optional[int] = None


class RateLimiter:
    """
    Sliding-window limiter: at most `max_attempts` per key per `window_seconds`.

    State lives in process memory and resets on restart. Buckets are pruned
    lazily on each check.
    """

    def __init__(
        self,
        max_attempts: int = config.RATE_LIMIT_MAX,
        window_seconds: float = config.RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._buckets: dict[str, list[float]] = {}

    def check(self, key: str) -> RateDecision:
        now = self._clock()
        kept = [ts for ts in self._buckets.get(key, []) if now - ts < self.window_seconds]
        if len(kept) >= self.max_attempts:
            self._buckets[key] = kept
            wait = self.window_seconds - (now - min(kept))
            return RateDecision(admitted=False, retry_after_seconds=max(1, math.ceil(wait)))
        kept.append(now)
        self._buckets[key] = kept
        return RateDecision(admitted=True)

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self._buckets.clear()
        else:
            self._buckets.pop(key, None)
