"""
Caller-side retry around single-attempt sends, using tenacity.

Only FAILED outcomes are retried. A SKIPPED outcome means the circuit is
open, and retrying would just skip again.
"""
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar
import structlog
from tenacity import RetryCallState, Retrying, retry_if_result, stop_after_attempt, wait_fixed

from ..config import Config
from .http_client import SendResult

logger = structlog.get_logger(component="transmission")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry settings for batch delivery.

    attempts is the TOTAL number of tries, so attempts=3 means
    try, retry, retry.
    """

    attempts: int = 3
    delay_s: float = 1.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")

    @classmethod
    def from_config(cls, config: Config) -> "RetryPolicy":
        return cls(attempts=config.retry_attempts, delay_s=config.retry_delay_ms / 1000)


def _log_retry(retry_state: RetryCallState) -> None:
    logger.info(
        "transmission_retrying",
        attempt=retry_state.attempt_number,
        delay_s=retry_state.next_action.sleep if retry_state.next_action else None
    )


def _last_result(retry_state: RetryCallState) -> SendResult:
    return retry_state.outcome.result()


def send_with_retry(
    send: Callable[[T], SendResult],
    item: T,
    policy: RetryPolicy,
    sleep: Optional[Callable[[float], None]] = None
) -> SendResult:
    """
    Call send(item) until it stops failing or attempts run out.

    Args:
        send: Single-attempt send function (e.g. TransmissionClient.send_batch)
        item: What to send
        policy: Attempt count and delay
        sleep: Sleep function override (tests)

    Returns:
        Result of the last attempt
    """
    kwargs = {}
    if sleep is not None:
        kwargs['sleep'] = sleep

    retrying = Retrying(
        stop=stop_after_attempt(policy.attempts),
        wait=wait_fixed(policy.delay_s),
        retry=retry_if_result(lambda result: result is SendResult.FAILED),
        before_sleep=_log_retry,
        retry_error_callback=_last_result,
        **kwargs
    )
    return retrying(send, item)
