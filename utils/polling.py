"""
Bounded polling with a fixed delay.

The polled operation reports one of three outcomes instead of signalling
through exceptions:
- done: return the carried value
- pending: not finished yet, sleep and try again
- failed: raise the carried exception without retrying

Example:
    def poll():
        job = fetch()
        if job.finished:
            return PollOutcome.done(job)
        return PollOutcome.pending(f"status={job.status}")

    result = run_until_done(poll, max_attempts=60, interval=5.0)
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

from models.errors import ConfigurationError, PollingExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class PollState(Enum):
    DONE = "done"
    PENDING = "pending"
    FAILED = "failed"


@dataclass(frozen=True)
class PollOutcome(Generic[T]):
    """Result of a single poll attempt."""
    state: PollState
    value: Optional[T] = None
    error: Optional[Exception] = None
    reason: str = ''

    @classmethod
    def done(cls, value: T) -> "PollOutcome[T]":
        return cls(PollState.DONE, value=value)

    @classmethod
    def pending(cls, reason: str = '') -> "PollOutcome[T]":
        return cls(PollState.PENDING, reason=reason)

    @classmethod
    def failed(cls, error: Exception) -> "PollOutcome[T]":
        return cls(PollState.FAILED, error=error)


def run_until_done(
    operation: Callable[[], PollOutcome[T]],
    max_attempts: int,
    interval: float,
    sleep: Optional[Callable[[float], None]] = None
) -> T:
    """
    Call `operation` until it is done, fails, or attempts run out.

    Args:
        operation: Zero-argument callable returning a PollOutcome
        max_attempts: Total number of invocations allowed (first call included)
        interval: Seconds to sleep between attempts
        sleep: Sleep function (default: time.sleep)

    Returns:
        The value carried by the first done outcome

    Raises:
        PollingExhaustedError: If every attempt came back pending
        ConfigurationError: If max_attempts or interval is out of range
        Exception: Whatever a failed outcome carries, or `operation` raises
    """
    if max_attempts < 1:
        raise ConfigurationError("max_attempts must be positive")
    if interval < 0:
        raise ConfigurationError("interval must not be negative")

    sleep = sleep or time.sleep
    last_reason = ''
    for attempt in range(1, max_attempts + 1):
        outcome = operation()

        if outcome.state is PollState.DONE:
            return outcome.value
        if outcome.state is PollState.FAILED:
            raise outcome.error

        last_reason = outcome.reason
        logger.debug("Polling: attempt %d/%d %s", attempt, max_attempts, last_reason)
        if attempt < max_attempts:
            sleep(interval)

    message = f"Gave up after {max_attempts} attempts"
    if last_reason:
        message += f" ({last_reason})"
    raise PollingExhaustedError(message, attempts=max_attempts)
