"""
Backoff computation and the per-session circuit breaker.

This module provides:
- Capped exponential backoff with jitter for rate-limited items
- Different strategies for different error kinds
- A failure-streak circuit breaker that stays open for the rest of a session
"""

import random
from typing import Optional, Callable, Dict, Any
from dataclasses import dataclass
from enum import Enum


class RetryStrategy(Enum):
    """Retry strategies for different error kinds."""
    EXPONENTIAL = "exponential"  # Growing, capped backoff
    IMMEDIATE = "immediate"  # No delay, retry immediately
    NONE = "none"  # Don't retry


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of retry attempts
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        backoff_factor: Multiplier applied per further attempt
        jitter: Random extra delay in seconds, uniformly drawn from [0, jitter)
        strategy: Retry strategy to use
    """
    max_attempts: int = 3
    initial_delay: float = 2.0
    max_delay: float = 20.0
    backoff_factor: float = 1.5
    jitter: float = 2.0
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL


def rate_limit_retry_config(max_attempts: int = 3, max_delay: float = 20.0) -> RetryConfig:
    """Retry policy for items whose batch was rate limited."""
    return RetryConfig(
        max_attempts=max_attempts,
        initial_delay=2.0,
        max_delay=max_delay,
        backoff_factor=1.5,
        jitter=2.0,
        strategy=RetryStrategy.EXPONENTIAL
    )


RETRYABLE_RETRY_CONFIG = RetryConfig(
    max_attempts=1,
    initial_delay=0.0,
    jitter=0.0,
    strategy=RetryStrategy.IMMEDIATE
)


def calculate_delay(
    attempt: int,
    config: RetryConfig,
    ceiling: Optional[float] = None,
    rng: Callable[[], float] = random.random
) -> float:
    """Calculate delay before the given (1-based) attempt.

    Args:
        attempt: Attempt number, starting at 1
        config: Retry configuration
        ceiling: Extra cap applied after jitter (e.g. the current sweep delay)
        rng: Source of uniform [0, 1) values

    Returns:
        Delay in seconds
    """
    if config.strategy in (RetryStrategy.IMMEDIATE, RetryStrategy.NONE):
        return 0.0

    delay = config.initial_delay * (config.backoff_factor ** (attempt - 1))
    if config.jitter > 0:
        delay += config.jitter * rng()

    delay = min(delay, config.max_delay)
    if ceiling is not None:
        delay = min(delay, ceiling)
    return max(0.0, delay)


class CircuitBreaker:
    """Consecutive-failure breaker for one provider within one session.

    Unlike a time-based breaker, an open circuit never half-opens on its own:
    it is only closed again by a new session (or an explicit reset on restore).
    """

    def __init__(self, name: str, failure_threshold: int = 5):
        """
        Args:
            name: Provider name this breaker guards
            failure_threshold: Consecutive failures before opening
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.failure_streak = 0
        self.ever_succeeded = False

    def record_success(self):
        """Record a successful call."""
        self.failure_streak = 0
        self.ever_succeeded = True

    def record_failure(self):
        """Record a failed call."""
        self.failure_streak += 1

    @property
    def is_open(self) -> bool:
        return self.failure_streak >= self.failure_threshold

    def can_attempt(self) -> bool:
        """Check if an attempt is allowed."""
        return not self.is_open

    @property
    def state(self) -> str:
        """Current circuit state."""
        return "open" if self.is_open else "closed"

    def reset(self):
        self.failure_streak = 0
        self.ever_succeeded = False

    def snapshot(self) -> Dict[str, Any]:
        return {
            'provider': self.name,
            'failure_streak': self.failure_streak,
            'ever_succeeded': self.ever_succeeded,
            'state': self.state,
        }
