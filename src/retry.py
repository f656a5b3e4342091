"""
Retry Module

Bounded exponential backoff for rate-limited provider calls. The backoff
schedule and the failure classifier are plain functions; the controller
wires them to an awaitable operation and reports its progress to an
optional observer. Nothing here knows about providers or parsing.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar
import asyncio
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5
BASE_DELAY_SECONDS = 5.0
MAX_DELAY_SECONDS = 60.0

RATE_LIMIT_MARKERS = ("rate", "quota", "too many")


class RunCancelled(Exception):
    """Raised when a run is cancelled while waiting."""


@dataclass(frozen=True)
class RetryStatus:
    """Progress snapshot published while waiting to retry."""
    attempt: int
    max_attempts: int
    wait_seconds: float

    def to_dict(self) -> dict:
        return {
            "attempt": self.attempt,
            "max_attempts": self.max_attempts,
            "wait_seconds": self.wait_seconds
        }


RetryObserver = Callable[[Optional[RetryStatus]], None]


def is_rate_limited(error: BaseException) -> bool:
    """
    Decide whether a failure is transient rate limiting.

    Args:
        error: The raised exception

    Returns:
        True if the message mentions 429, rate, quota or too many
    """
    message = str(error)
    if "429" in message:
        return True
    lowered = message.lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS)


def backoff_delay(
    attempt: int,
    base: float = BASE_DELAY_SECONDS,
    cap: float = MAX_DELAY_SECONDS
) -> float:
    """Seconds to wait after failed attempt number `attempt` (1-indexed)."""
    return min(base * 2 ** (attempt - 1), cap)


class CancellationToken:
    """
    Cooperative cancellation flag with an interruptible sleep.

    The run loop polls `is_cancelled()` between steps; waits made through
    `sleep()` return early once `cancel()` is called.
    """

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def sleep(self, seconds: float) -> None:
        """Wait up to `seconds`, returning early if cancelled."""
        if seconds <= 0 or self.is_cancelled():
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass


class RetryController:
    """
    Runs an async operation, retrying rate-limit failures with backoff.
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = BASE_DELAY_SECONDS,
        max_delay: float = MAX_DELAY_SECONDS,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        observer: Optional[RetryObserver] = None,
        cancel_token: Optional[CancellationToken] = None
    ):
        """
        Initialize the controller.

        Args:
            max_attempts: Total attempts including the first call
            base_delay: Wait after the first failure, in seconds
            max_delay: Upper bound for any single wait
            sleep: Awaitable sleep function (defaults to the token's sleep, else asyncio.sleep)
            observer: Called with a RetryStatus before each wait and None when done
            cancel_token: If given, cancellation during a wait aborts further attempts
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.observer = observer
        self.cancel_token = cancel_token
        if sleep is None:
            sleep = cancel_token.sleep if cancel_token else asyncio.sleep
        self._sleep = sleep
        self.status: Optional[RetryStatus] = None

    def _publish(self, status: Optional[RetryStatus]) -> None:
        self.status = status
        if self.observer:
            try:
                self.observer(status)
            except Exception as e:
                logger.error(f"Error in retry observer: {e}", exc_info=True)

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Call `operation` until it succeeds, fails permanently, or attempts run out.

        Args:
            operation: Zero-argument callable returning an awaitable

        Returns:
            The operation's result

        Raises:
            RunCancelled: If cancellation is requested during a backoff wait
            Exception: The last failure, once retrying is not allowed
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await operation()
            except Exception as e:
                if not is_rate_limited(e) or attempt == self.max_attempts:
                    self._publish(None)
                    raise

                wait = backoff_delay(attempt, self.base_delay, self.max_delay)
                logger.warning(
                    f"Rate limited (attempt {attempt}/{self.max_attempts}), "
                    f"retrying in {wait:.0f}s: {e}"
                )
                self._publish(RetryStatus(attempt, self.max_attempts, wait))
                await self._sleep(wait)

                if self.cancel_token and self.cancel_token.is_cancelled():
                    self._publish(None)
                    raise RunCancelled("Cancelled while waiting to retry") from e
                continue

            self._publish(None)
            return result

        raise RuntimeError("unreachable")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    **kwargs
) -> T:
    """Convenience wrapper around RetryController.run."""
    return await RetryController(max_attempts=max_attempts, **kwargs).run(operation)
