"""
Consumer Context Middleware.

Cross-cutting middleware applied to every FastStream consumer (RPC channels,
domain event and gateway channels). Binds structlog context (event_id,
correlation_id, pattern, source) for every consumed message and measures
processing duration.
"""

import time
from typing import Any

import structlog
from faststream import BaseMiddleware

from modules.fabric.contracts.correlation import CorrelationContext
from modules.fabric.core.logging import get_logger

logger = get_logger(__name__)

_BOUND_KEYS = ("event_id", "correlation_id", "pattern", "source")


def _message_fields(msg: Any) -> dict:
    # FastStream hands over a StreamMessage, a dict, or a model depending on
    # the serializer in use.
    body = getattr(msg, "decoded_body", msg)
    if isinstance(body, dict):
        return body
    if hasattr(body, "model_dump"):
        return body.model_dump(by_alias=True)
    return {}


def _correlation_id(msg: Any, data: dict) -> str | None:
    from_headers = CorrelationContext.from_headers(getattr(msg, "headers", None))
    if from_headers is not None:
        return from_headers.id
    correlation = data.get("correlation")
    if isinstance(correlation, dict) and correlation.get("id"):
        return correlation["id"]
    # Not msg.correlation_id: the broker invents one when the producer sent none.
    return data.get("correlationId")


class EventContextMiddleware(BaseMiddleware):
    """Binds correlation context for the duration of one consumed message."""

    async def on_consume(self, msg):
        data = _message_fields(msg)
        structlog.contextvars.bind_contextvars(
            event_id=data.get("eventId", "unknown"),
            correlation_id=_correlation_id(msg, data) or "unknown",
            pattern=data.get("pattern", "unknown"),
            source="events",
        )
        self._start_time = time.monotonic()
        return await super().on_consume(msg)

    async def after_consume(self, err):
        duration_ms = round((time.monotonic() - getattr(self, "_start_time", time.monotonic())) * 1000, 1)

        if err:
            logger.error(
                "Message processing failed",
                extra={"duration_ms": duration_ms, "error": str(err)},
            )
        else:
            logger.debug(
                "Message processed",
                extra={"duration_ms": duration_ms},
            )

        structlog.contextvars.unbind_contextvars(*_BOUND_KEYS)
        return await super().after_consume(err)
