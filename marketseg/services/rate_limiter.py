"""Per-provider request pacing shared by every outbound API call."""
from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")

RATE_LIMIT_BACKOFF_SECONDS = 60.0
MAX_ATTEMPTS = 3
_CAPACITY_POLL_SECONDS = 0.05


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    max_requests: int
    window_seconds: float
    delay_seconds: float


DEFAULT_CONFIGS: dict[str, RateLimitConfig] = {
    "claude": RateLimitConfig(max_requests=40, window_seconds=60.0, delay_seconds=2.0),
    "serper": RateLimitConfig(max_requests=100, window_seconds=60.0, delay_seconds=0.6),
}


@dataclass(slots=True)
class _WindowState:
    completions: deque[float] = field(default_factory=deque)
    in_flight: int = 0


def is_rate_limit_error(error: BaseException) -> bool:
    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if status == 429:
        return True
    return "rate limit" in str(error).lower()


class RateLimiter:
    """Sliding-window gate with a delay floor and 429 backoff.

    A slot is reserved before the operation runs and converted into a
    completion timestamp only when the operation succeeds, so concurrent
    callers never push more than ``max_requests`` completions into any
    ``window_seconds`` interval.
    """

    def __init__(
        self,
        configs: dict[str, RateLimitConfig] | None = None,
        *,
        backoff_seconds: float = RATE_LIMIT_BACKOFF_SECONDS,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        self.configs = dict(DEFAULT_CONFIGS if configs is None else configs)
        self.backoff_seconds = backoff_seconds
        self.max_attempts = max(int(max_attempts), 1)
        self._windows: dict[str, _WindowState] = {}

    def _state(self, provider: str) -> _WindowState:
        state = self._windows.get(provider)
        if state is None:
            state = _WindowState()
            self._windows[provider] = state
        return state

    @staticmethod
    def _prune(state: _WindowState, config: RateLimitConfig, now: float) -> None:
        horizon = now - config.window_seconds
        while state.completions and state.completions[0] <= horizon:
            state.completions.popleft()

    async def _acquire(self, provider: str, config: RateLimitConfig) -> None:
        state = self._state(provider)
        while True:
            now = time.monotonic()
            self._prune(state, config, now)
            if len(state.completions) + state.in_flight < config.max_requests:
                state.in_flight += 1
                return
            if state.completions:
                wait = max(state.completions[0] + config.window_seconds - now, 0.0)
            else:
                wait = _CAPACITY_POLL_SECONDS
            logger.info(f"[RateLimiter] Waiting {wait:.2f}s for {provider} rate limit reset")
            await asyncio.sleep(max(wait, _CAPACITY_POLL_SECONDS))

    async def execute(self, provider: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` under the provider's gate, retrying on rate-limit errors."""
        config = self.configs.get(provider)
        if config is None:
            return await operation()

        state = self._state(provider)
        for attempt in range(1, self.max_attempts + 1):
            await self._acquire(provider, config)
            try:
                await asyncio.sleep(config.delay_seconds)
                result = await operation()
            except asyncio.CancelledError:
                state.in_flight -= 1
                raise
            except Exception as e:
                state.in_flight -= 1
                if is_rate_limit_error(e) and attempt < self.max_attempts:
                    logger.warning(
                        f"[RateLimiter] Rate limit hit for {provider}, retrying in "
                        f"{self.backoff_seconds:.0f}s (attempt {attempt}/{self.max_attempts})"
                    )
                    await asyncio.sleep(self.backoff_seconds)
                    continue
                raise
            state.in_flight -= 1
            state.completions.append(time.monotonic())
            return result

        # Unreachable: the final attempt either returns or raises.
        raise RuntimeError("rate limiter exhausted attempts without a result")

    def get_status(self, provider: str) -> dict[str, Any]:
        """Remaining requests in the current window and seconds until a slot frees."""
        config = self.configs.get(provider)
        state = self._windows.get(provider)
        if config is None or state is None:
            return {"remaining": -1, "reset_in": 0.0}

        now = time.monotonic()
        self._prune(state, config, now)
        used = len(state.completions) + state.in_flight
        remaining = max(0, config.max_requests - used)
        reset_in = (
            max(0.0, state.completions[0] + config.window_seconds - now)
            if state.completions
            else 0.0
        )
        return {"remaining": remaining, "reset_in": reset_in}

    def reset(self) -> None:
        self._windows.clear()


rate_limiter = RateLimiter()
