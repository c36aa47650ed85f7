from __future__ import annotations

import os
import random
from collections.abc import Callable, Mapping
from dataclasses import dataclass

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for unprocessed batch entries.

    ``max_retries`` counts re-issues after the first attempt, so a chunk is
    sent at most ``max_retries + 1`` times. The delay before retry ``n`` is
    ``min(max_delay_seconds, base_delay_seconds * 2 ** (n - 1))``; with
    ``jitter`` enabled a uniform value in ``[0, delay]`` is used instead.
    """

    max_retries: int = 5
    base_delay_seconds: float = 0.05
    max_delay_seconds: float = 1.0
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must be >= 0")
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")

    def backoff_seconds(self, attempt: int, *, rand: Callable[[], float] = random.random) -> float:
        if attempt <= 0:
            raise ValueError("attempt must be > 0")
        seconds = min(self.max_delay_seconds, self.base_delay_seconds * (2.0 ** (attempt - 1)))
        if self.jitter:
            return seconds * rand()
        return seconds

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> RetryPolicy:
        defaults = cls()
        return cls(
            max_retries=_env_int(environ, "DYNAKEY_MAX_RETRIES", defaults.max_retries),
            base_delay_seconds=_env_float(environ, "DYNAKEY_BASE_DELAY_SECONDS", defaults.base_delay_seconds),
            max_delay_seconds=_env_float(environ, "DYNAKEY_MAX_DELAY_SECONDS", defaults.max_delay_seconds),
            jitter=_env_bool(environ, "DYNAKEY_RETRY_JITTER", defaults.jitter),
        )


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as err:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from err


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as err:
        raise ValueError(f"{name} must be a number (got {raw!r})") from err


def _env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = (environ.get(name) or "").strip().lower()
    if not raw:
        return default
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")
