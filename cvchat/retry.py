"""Explicit retry policy for engine model loading."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from .config import config
from .errors import ModelLoadFailureError

logger = config.get_logger(__name__)

T = TypeVar("T")


def linear_backoff(base_delay: float, attempt: int) -> float:
    """Delay before retrying after ``attempt`` failed: base × attempt."""
    return base_delay * attempt


@dataclass(frozen=True)
class RetryPolicy:
    """Maximum attempts, base delay and the backoff function between attempts."""

    max_attempts: int = 3
    base_delay: float = 2.0
    backoff: Callable[[float, int], float] = field(default=linear_backoff)
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            msg = "max_attempts must be at least 1"
            raise ValueError(msg)
        if self.base_delay < 0:
            msg = "base_delay must not be negative"
            raise ValueError(msg)

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        return cls(
            max_attempts=config.MODEL_LOAD_MAX_ATTEMPTS,
            base_delay=config.MODEL_LOAD_BASE_DELAY,
        )

    def delays(self) -> list[float]:
        """Waits between consecutive attempts, in order."""
        return [
            self.backoff(self.base_delay, attempt)
            for attempt in range(1, self.max_attempts)
        ]


async def retry_with_policy(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    description: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or the policy is exhausted.

    Args:
        operation: Zero-argument coroutine function.
        policy: Retry policy to apply.
        description: Name used in log messages.
        sleep: Awaitable sleep, replaceable in tests.

    Returns:
        The operation's result.

    Raises:
        ModelLoadFailureError: After the last attempt failed.
    """
    last_error: BaseException | None = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except policy.retry_on as exc:
            last_error = exc
            if attempt < policy.max_attempts:
                delay = policy.backoff(policy.base_delay, attempt)
                logger.warning(
                    "Attempt %d/%d for %s failed: %s. Retrying in %.2fs",
                    attempt,
                    policy.max_attempts,
                    description,
                    exc,
                    delay,
                )
                await sleep(delay)
            else:
                logger.error(
                    "All %d attempts for %s failed: %s",
                    policy.max_attempts,
                    description,
                    exc,
                )

    msg = f"{description} failed after {policy.max_attempts} attempts"
    raise ModelLoadFailureError(msg, attempts=policy.max_attempts) from last_error
