"""
Resilience Infrastructure.

Breaker listener, retry callback and breaker factory for the event
forwarding pipeline. Every resilience event is logged with a
`resilience_event` field so it can be filtered:

    jq 'select(.resilience_event != null)' logs/system.jsonl

Applied per envelope (outside-in):
    Retry (tenacity) → Timeout → Recipient resolver
    Circuit Breaker (aiobreaker) → Transport publish

Usage:
    from modules.fabric.core.resilience import create_circuit_breaker, retry_logger

    breaker = create_circuit_breaker("gateway-transport")
    await breaker.call_async(transport.publish, ...)

    async for attempt in AsyncRetrying(..., before_sleep=retry_logger("resolver:task.created")):
        with attempt:
            ...
"""

from collections.abc import Callable
from datetime import timedelta
from typing import Any

import aiobreaker

from modules.fabric.core.logging import get_logger

logger = get_logger(__name__)

_STATE_EVENTS = {
    "open": "circuit_breaker_opened",
    "half-open": "circuit_breaker_half_open",
    "closed": "circuit_breaker_closed",
}


def _state_name(state: Any) -> str:
    """'open', 'half-open' or 'closed' for aiobreaker state objects, enum members or strings."""
    state = getattr(state, "state", state)
    name = getattr(state, "name", state)
    return str(name).lower().replace("_", "-")


class ResilienceLogger(aiobreaker.CircuitBreakerListener):
    """Logs breaker transitions and recorded failures for one dependency."""

    def __init__(self, dependency: str) -> None:
        self.dependency = dependency

    def state_change(self, cb: aiobreaker.CircuitBreaker, old_state: Any, new_state: Any) -> None:
        old_name, new_name = _state_name(old_state), _state_name(new_state)
        log = logger.error if new_name == "open" else logger.info
        log(
            f"Circuit breaker {self.dependency}: {old_name} → {new_name}",
            extra={
                "resilience_event": _STATE_EVENTS.get(new_name, f"circuit_breaker_{new_name}"),
                "dependency": self.dependency,
                "failure_count": cb.fail_counter,
            },
        )

    def failure(self, cb: aiobreaker.CircuitBreaker, exception: Exception) -> None:
        logger.warning(
            f"Circuit breaker {self.dependency}: failure recorded",
            extra={
                "resilience_event": "circuit_breaker_failure",
                "dependency": self.dependency,
                "failure_count": cb.fail_counter,
                "error": str(exception),
            },
        )


def retry_logger(dependency: str) -> Callable[[Any], None]:
    """
    Tenacity before_sleep callback naming the dependency being retried.

    AsyncRetrying used as an iterator wraps no function, so the name has to
    be supplied by the caller.
    """

    def before_sleep(retry_state: Any) -> None:
        duration_ms = None
        if retry_state.outcome_timestamp and retry_state.start_time:
            duration_ms = round((retry_state.outcome_timestamp - retry_state.start_time) * 1000)

        error = None
        if retry_state.outcome is not None and retry_state.outcome.failed:
            error = str(retry_state.outcome.exception())

        logger.warning(
            f"Retrying {dependency} (attempt {retry_state.attempt_number})",
            extra={
                "resilience_event": "retry_attempt",
                "dependency": dependency,
                "attempt": retry_state.attempt_number,
                "duration_ms": duration_ms,
                "error": error,
            },
        )

    return before_sleep


def create_circuit_breaker(
    dependency: str,
    fail_max: int = 5,
    timeout_duration: int = 30,
) -> aiobreaker.CircuitBreaker:
    """Circuit breaker with structured logging.

    Args:
        dependency: Name of the guarded dependency (for logging)
        fail_max: Consecutive failures before opening
        timeout_duration: Seconds open before a half-open trial call
    """
    return aiobreaker.CircuitBreaker(
        fail_max=fail_max,
        timeout_duration=timedelta(seconds=timeout_duration),
        listeners=[ResilienceLogger(dependency)],
    )
