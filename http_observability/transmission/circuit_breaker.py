"""
Circuit breaker for HTTP transmission.

Opens after 5 consecutive failures, closes again after a 5 minute cooldown.
There is no half-open probing: once the cooldown elapses the breaker is
fully closed with a zero failure count, and a fresh run of failures is
needed to open it again.
"""
import threading
import time
from enum import Enum
from typing import Any, Callable, Optional
import pybreaker
import structlog

logger = structlog.get_logger(component="transmission")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"


class _TransmissionListener(pybreaker.CircuitBreakerListener):
    """Logs state changes and tracks open periods for the owning breaker."""

    def __init__(self, owner: "CircuitBreaker"):
        self.owner = owner

    def failure(self, cb: pybreaker.CircuitBreaker, exc: BaseException) -> None:
        self.owner._last_failure_at = time.time()
        logger.warning(
            "transmission_failure_recorded",
            breaker=cb.name,
            failures=cb.fail_counter,
            threshold=cb.fail_max
        )

    def state_change(self, cb: pybreaker.CircuitBreaker, old_state, new_state) -> None:
        old_name = old_state.name if old_state is not None else None
        if old_name == new_state.name:
            return

        if new_state.name == pybreaker.STATE_OPEN:
            self.owner._start_cooldown()
        else:
            self.owner._cancel_timer()

        logger.warning(
            "circuit_breaker_state_change",
            breaker=cb.name,
            old_state=old_name,
            new_state=new_state.name
        )


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker built on pybreaker.

    Thread-safe; one instance per transmission client. Guarded calls go
    through call(). pybreaker would move to half-open once reset_timeout
    passes, so the cooldown is ended here first: a one-shot timer and an
    elapsed-time check in allow_request() both close the breaker outright.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown_s: float = 300.0,
        name: str = "collector_http",
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize breaker in the closed state.

        Args:
            failure_threshold: Consecutive failures before opening (default: 5)
            cooldown_s: Seconds to stay open before closing (default: 300)
            name: Name used in log events
            clock: Monotonic time source for the cooldown check
        """
        self.failure_threshold = failure_threshold
        self.cooldown_s = cooldown_s
        self.name = name
        self._clock = clock
        # Always taken before pybreaker's own lock
        self._lock = threading.RLock()
        self._last_failure_at: Optional[float] = None
        self._opened_at: Optional[float] = None
        self._timer: Optional[threading.Timer] = None

        self._breaker = pybreaker.CircuitBreaker(
            fail_max=failure_threshold,
            reset_timeout=cooldown_s,
            name=name
        )
        self._breaker.add_listener(_TransmissionListener(self))

        logger.info(
            "circuit_breaker_created",
            breaker=name,
            failure_threshold=failure_threshold,
            cooldown_s=cooldown_s
        )

    @property
    def state(self) -> CircuitState:
        if self._breaker.current_state == pybreaker.STATE_OPEN:
            return CircuitState.OPEN
        return CircuitState.CLOSED

    @property
    def failure_count(self) -> int:
        return self._breaker.fail_counter

    @property
    def last_failure_at(self) -> Optional[float]:
        """Wall-clock time (epoch seconds) of the most recent failure."""
        return self._last_failure_at

    def allow_request(self) -> bool:
        """
        Check whether a request may be attempted.

        Closes the circuit first if the cooldown has elapsed.

        Returns:
            True if closed (attempt the request)
        """
        with self._lock:
            current = self._breaker.current_state
            if current == pybreaker.STATE_HALF_OPEN or (
                current == pybreaker.STATE_OPEN
                and self._opened_at is not None
                and self._clock() - self._opened_at >= self.cooldown_s
            ):
                self._close("cooldown_elapsed")
            return self._breaker.current_state == pybreaker.STATE_CLOSED

    def call(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        """
        Run func through the breaker.

        Any exception raised by func counts as a failure and is re-raised;
        the call reaching the threshold raises pybreaker.CircuitBreakerError.
        While open, raises pybreaker.CircuitBreakerError without calling func.
        """
        with self._lock:
            return self._breaker.call(func, *args, **kwargs)

    def reset(self) -> None:
        """Force the circuit closed."""
        with self._lock:
            self._close("reset")

    def shutdown(self) -> None:
        """Cancel any pending cooldown timer."""
        with self._lock:
            self._cancel_timer()

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                'state': self.state.value,
                'failure_count': self.failure_count,
                'last_failure_at': self._last_failure_at,
            }

    def _close(self, reason: str) -> None:
        if self._breaker.current_state != pybreaker.STATE_CLOSED:
            logger.info("circuit_breaker_closing", breaker=self.name, reason=reason)
        # pybreaker zeroes the failure counter on close
        self._breaker.close()
        self._opened_at = None

    def _start_cooldown(self) -> None:
        self._cancel_timer()
        self._opened_at = self._clock()
        self._timer = threading.Timer(
            self.cooldown_s, self._on_cooldown, args=(self._opened_at,)
        )
        self._timer.daemon = True
        self._timer.start()

    def _on_cooldown(self, opened_at: float) -> None:
        with self._lock:
            # A timer left over from an earlier open period does nothing
            if self._breaker.current_state == pybreaker.STATE_OPEN and self._opened_at == opened_at:
                self._close("cooldown_elapsed")

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
