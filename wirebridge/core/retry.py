"""Retry policy for non-streaming upstream calls.

Streaming calls must never go through ``RetryPolicy.execute_with_retry``: once
bytes have been forwarded downstream a stream cannot be replayed safely.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar

from .exceptions import (
    CONNECTION_REFUSED,
    CONNECTION_RESET,
    TIMED_OUT,
    ConfigurationError,
    UpstreamFatalError,
)

logger = logging.getLogger("wirebridge")

T = TypeVar("T")

RETRYABLE_STATUSES = frozenset({429, 502, 503, 504})
RETRYABLE_ERROR_KINDS = frozenset({CONNECTION_REFUSED, TIMED_OUT, CONNECTION_RESET})

STRATEGIES = ("exponential", "linear", "fixed")


@dataclass(frozen=True)
class RetryConfig:
    """Retry settings. Delays are in milliseconds."""

    max_retries: int = 3
    initial_delay: float = 1000
    max_delay: float = 30000
    backoff_factor: float = 2
    jitter: bool = True
    strategy: str = "exponential"

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "RetryConfig":
        if not data:
            return cls()
        try:
            config = cls(
                max_retries=int(data.get("max_retries", cls.max_retries)),
                initial_delay=float(data.get("initial_delay", cls.initial_delay)),
                max_delay=float(data.get("max_delay", cls.max_delay)),
                backoff_factor=float(data.get("backoff_factor", cls.backoff_factor)),
                jitter=bool(data.get("jitter", cls.jitter)),
                strategy=str(data.get("strategy", cls.strategy)).strip().lower(),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid retry settings: {exc}") from exc
        if config.strategy not in STRATEGIES:
            raise ConfigurationError(
                f"Invalid retry strategy {config.strategy!r}; expected one of {', '.join(STRATEGIES)}"
            )
        if config.max_retries < 1:
            raise ConfigurationError("retry.max_retries must be at least 1")
        return config


def compute_delay(
    attempt: int,
    config: RetryConfig,
    rng: Callable[[], float] = random.random,
) -> int:
    """Delay in milliseconds before retrying after ``attempt`` failed."""
    if config.strategy == "linear":
        delay = config.initial_delay * attempt
    elif config.strategy == "fixed":
        delay = config.initial_delay
    else:
        delay = config.initial_delay * config.backoff_factor ** (attempt - 1)

    delay = min(delay, config.max_delay)

    if config.jitter:
        delay = delay * (0.5 + rng() * 0.5)

    return int(delay)


def should_retry(
    error_kind: Optional[str],
    http_status: Optional[int],
    attempt: int,
    max_attempts: int,
    custom: Optional[Callable[[BaseException, int], bool]] = None,
    error: Optional[BaseException] = None,
) -> bool:
    if attempt >= max_attempts:
        return False
    if http_status is not None and http_status in RETRYABLE_STATUSES:
        return True
    if error_kind is not None and error_kind in RETRYABLE_ERROR_KINDS:
        return True
    if custom is not None and error is not None:
        return bool(custom(error, attempt))
    return False


class RetryPolicy:
    """Decides whether and when to retry a failed upstream call."""

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        custom_condition: Optional[Callable[[BaseException, int], bool]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.config = config or RetryConfig()
        self.custom_condition = custom_condition
        self._sleep = sleep
        self._rng = rng

    @property
    def max_attempts(self) -> int:
        return self.config.max_retries

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        if isinstance(error, UpstreamFatalError):
            return False
        return should_retry(
            getattr(error, "error_kind", None),
            getattr(error, "upstream_status", None),
            attempt,
            self.max_attempts,
            custom=self.custom_condition,
            error=error,
        )

    def compute_delay(self, attempt: int) -> int:
        return compute_delay(attempt, self.config, self._rng)

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        context: str = "upstream request",
    ) -> T:
        """Run ``operation`` until it succeeds or retries are exhausted."""
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                last_error = exc
                if not self.should_retry(exc, attempt):
                    if attempt > 1:
                        logger.error(
                            "%s failed on attempt %d/%d: %s",
                            context,
                            attempt,
                            self.max_attempts,
                            exc,
                        )
                    raise

                delay = self.compute_delay(attempt)
                logger.warning(
                    "%s attempt %d/%d failed (%s); retrying in %dms",
                    context,
                    attempt,
                    self.max_attempts,
                    exc,
                    delay,
                )
                await self._sleep(delay / 1000)

        if last_error is not None:
            raise last_error
        raise RuntimeError(f"{context} exhausted without an attempt")
