import time
from collections import deque
from typing import Deque, Dict, Callable

from fastapi import Request

from evote.config import VOTE_RATE_LIMIT, VOTE_RATE_WINDOW_SECONDS
from evote.errors import TooManyAttempts


class AttemptLimiter:
    """
    Sliding-window limit on vote submissions per caller.
    In-memory and per process; put a gateway limit in front for multi-instance setups.
    Callers with nothing left in their window are forgotten, at most one full
    sweep per window length.
    """

    def __init__(
        self,
        max_attempts: int = VOTE_RATE_LIMIT,
        window_seconds: float = VOTE_RATE_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.clock = clock
        self.attempts: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()

    def _prune(self, window: Deque[float], now: float) -> None:
        while window and now - window[0] >= self.window_seconds:
            window.popleft()

    def _sweep(self, now: float) -> None:
        for caller in list(self.attempts):
            self._prune(self.attempts[caller], now)
            if not self.attempts[caller]:
                del self.attempts[caller]
        self._last_sweep = now

    def allow(self, caller: str) -> bool:
        if self.max_attempts <= 0:
            return True
        now = self.clock()
        if now - self._last_sweep >= self.window_seconds:
            self._sweep(now)
        window = self.attempts.setdefault(caller, deque())
        self._prune(window, now)
        if len(window) >= self.max_attempts:
            return False
        window.append(now)
        return True

    def reset(self) -> None:
        self.attempts.clear()


def enforce_vote_limit(request: Request) -> None:
    limiter: AttemptLimiter = request.app.state.limiter
    caller = request.client.host if request.client else "unknown"
    if not limiter.allow(caller):
        raise TooManyAttempts()
