"""
Event Forwarding Pipeline.

Turns raised domain event envelopes into recipient-addressed forwarding
events for the gateway. Runs as an independent worker consuming a queue,
so raising an event never waits for forwarding.

State machine per envelope:

    RAISED → RESOLVING → FORWARDED
                       → DROPPED   (no rule, no recipients, or any failure)

Resilience stack, applied per envelope:
    Retry (tenacity) → Timeout → Recipient resolver
    Circuit Breaker (aiobreaker) → Transport publish

Failures end in DROPPED with a ForwardingFailed logged. Nothing on this
path propagates back to the RPC that caused the event.

Ordering: envelopes that share a correlation id are forwarded in the order
they were raised. Envelopes of unrelated operations run concurrently.

Usage:
    pipeline = EventForwardingPipeline.from_config(
        transport,
        rules=default_task_rules(TaskAudienceResolver(), CommentAudienceResolver(load_task)),
    )
    await pipeline.start()
    publisher = TaskEventPublisher(pipeline.raise_event)
    ...
    await pipeline.stop()
"""

import asyncio
import inspect
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

import aiobreaker
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from modules.fabric.contracts.correlation import CorrelationContext, correlation_scope
from modules.fabric.contracts.gateway import GatewayEventPattern, build_gateway_events_registry
from modules.fabric.contracts.registry import ContractRegistry, pattern_key
from modules.fabric.contracts.tasks import TaskEventPattern
from modules.fabric.core.exceptions import (
    ConfigurationError,
    ContractViolation,
    ForwardingFailed,
    ResolverUnavailable,
)
from modules.fabric.core.logging import get_logger
from modules.fabric.core.resilience import create_circuit_breaker, retry_logger
from modules.fabric.events.recipients import RecipientResolver
from modules.fabric.events.schemas import (
    DomainEventEnvelope,
    ForwardingEvent,
    ForwardingResult,
    ForwardingState,
)
from modules.fabric.rpc.transport import Transport

logger = get_logger(__name__)

PayloadBuilder = Callable[[DomainEventEnvelope, list[str]], dict[str, Any]]
ResultCallback = Callable[[ForwardingResult], Any]


# =============================================================================
# Forwarding rules
# =============================================================================


@dataclass(frozen=True)
class ForwardingRule:
    """How one domain event pattern becomes one gateway event."""

    source: str
    target: str
    build_payload: PayloadBuilder
    resolver: RecipientResolver | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "source", pattern_key(self.source))
        object.__setattr__(self, "target", pattern_key(self.target))


def task_forward_payload(envelope: DomainEventEnvelope, recipients: list[str]) -> dict[str, Any]:
    changes = envelope.changes
    if isinstance(changes, list):
        changes = [change.to_wire() for change in changes]
    return {
        "task": envelope.entity,
        "recipients": recipients,
        "actor": envelope.actor.to_wire() if envelope.actor else None,
        "changes": changes,
    }


def comment_forward_payload(envelope: DomainEventEnvelope, recipients: list[str]) -> dict[str, Any]:
    return {"comment": envelope.entity, "recipients": recipients}


def default_task_rules(
    task_resolver: RecipientResolver,
    comment_resolver: RecipientResolver,
) -> tuple[ForwardingRule, ...]:
    """Rules for every event raised by the tasks service."""
    return (
        ForwardingRule(TaskEventPattern.CREATED, GatewayEventPattern.TASK_CREATED, task_forward_payload, task_resolver),
        ForwardingRule(TaskEventPattern.UPDATED, GatewayEventPattern.TASK_UPDATED, task_forward_payload, task_resolver),
        ForwardingRule(TaskEventPattern.DELETED, GatewayEventPattern.TASK_DELETED, task_forward_payload, task_resolver),
        ForwardingRule(
            TaskEventPattern.COMMENT_CREATED,
            GatewayEventPattern.COMMENT_NEW,
            comment_forward_payload,
            comment_resolver,
        ),
    )


# =============================================================================
# Pipeline
# =============================================================================


class EventForwardingPipeline:
    """Queue worker that resolves recipients and forwards events."""

    def __init__(
        self,
        transport: Transport,
        rules: Iterable[ForwardingRule],
        *,
        resolver: RecipientResolver | None = None,
        gateway_registry: ContractRegistry | None = None,
        resolve_timeout: float = 5.0,
        retry_attempts: int = 3,
        backoff_multiplier: float = 0.5,
        backoff_max: float = 5.0,
        breaker: aiobreaker.CircuitBreaker | None = None,
        on_result: ResultCallback | None = None,
        enabled: bool = True,
    ) -> None:
        self._transport = transport
        self._gateway_registry = gateway_registry or build_gateway_events_registry()
        self._rules: dict[str, ForwardingRule] = {}
        for rule in rules:
            if rule.source in self._rules:
                raise ConfigurationError(f"Two forwarding rules for '{rule.source}'")
            if rule.resolver is None and resolver is None:
                raise ConfigurationError(f"Forwarding rule '{rule.source}' has no recipient resolver")
            if rule.target not in self._gateway_registry:
                raise ConfigurationError(f"Forwarding target '{rule.target}' is not a gateway event")
            self._rules[rule.source] = rule

        self._resolver = resolver
        self._resolve_timeout = resolve_timeout
        self._retry_attempts = retry_attempts
        self._backoff_multiplier = backoff_multiplier
        self._backoff_max = backoff_max
        self._breaker = breaker or create_circuit_breaker("gateway-transport")
        self._on_result = on_result
        self._enabled = enabled

        self._queue: asyncio.Queue[DomainEventEnvelope] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._lanes: dict[str, asyncio.Task] = {}
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_config(
        cls,
        transport: Transport,
        rules: Iterable[ForwardingRule],
        **kwargs: Any,
    ) -> "EventForwardingPipeline":
        """Pipeline tuned by config/settings/events.yaml and features.yaml."""
        from modules.fabric.core.config import get_app_config

        config = get_app_config()
        settings = config.events.pipeline
        breaker = create_circuit_breaker(
            "gateway-transport",
            fail_max=settings.delivery_circuit_breaker.fail_max,
            timeout_duration=settings.delivery_circuit_breaker.timeout_duration,
        )
        options: dict[str, Any] = {
            "resolve_timeout": settings.resolve_timeout,
            "retry_attempts": settings.resolver_retry.max_attempts,
            "backoff_multiplier": settings.resolver_retry.backoff_multiplier,
            "backoff_max": settings.resolver_retry.backoff_max,
            "breaker": breaker,
            "enabled": config.features.events_forwarding_enabled,
        }
        options.update(kwargs)
        return cls(transport, rules, **options)

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        """Envelopes queued or in flight."""
        return self._queue.qsize() + len(self._tasks)

    # -------------------------------------------------------------------------
    # Producer side
    # -------------------------------------------------------------------------

    def raise_event(self, envelope: DomainEventEnvelope) -> bool:
        """
        Hand an envelope to the pipeline. Never waits.

        Returns:
            False if forwarding is disabled and the envelope was discarded
        """
        if not self._enabled:
            return False
        self._queue.put_nowait(envelope)
        logger.debug(
            "Event queued for forwarding",
            extra={
                "state": ForwardingState.RAISED.value,
                "pattern": envelope.pattern,
                "event_id": envelope.event_id,
                "correlation_id": envelope.correlation_id,
            },
        )
        return True

    # -------------------------------------------------------------------------
    # Worker lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._consume(), name="event-forwarding")
        logger.info("Event forwarding pipeline started", extra={"rules": sorted(self._rules)})

    async def drain(self) -> None:
        """Wait until every envelope raised so far reached a terminal state."""
        if not self.running:
            while not self._queue.empty():
                self._schedule(self._queue.get_nowait())
                self._queue.task_done()
        await self._queue.join()
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def stop(self, *, drain: bool = True) -> None:
        if drain:
            await self.drain()

        if self._worker is not None:
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
            self._worker = None

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        logger.info("Event forwarding pipeline stopped")

    async def _consume(self) -> None:
        while True:
            envelope = await self._queue.get()
            try:
                self._schedule(envelope)
            finally:
                self._queue.task_done()

    def _schedule(self, envelope: DomainEventEnvelope) -> None:
        key = envelope.correlation_id
        previous = self._lanes.get(key) if key else None

        task = asyncio.create_task(self._run_after(previous, envelope))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        if key:
            self._lanes[key] = task
            task.add_done_callback(lambda done, lane=key: self._release_lane(lane, done))

    def _release_lane(self, key: str, task: asyncio.Task) -> None:
        if self._lanes.get(key) is task:
            del self._lanes[key]

    async def _run_after(self, previous: asyncio.Task | None, envelope: DomainEventEnvelope) -> None:
        if previous is not None:
            await asyncio.wait([previous])
        await self.process(envelope)

    # -------------------------------------------------------------------------
    # One envelope
    # -------------------------------------------------------------------------

    async def process(self, envelope: DomainEventEnvelope) -> ForwardingResult:
        """Run one envelope to FORWARDED or DROPPED. Never raises."""
        rule = self._rules.get(envelope.pattern)
        if rule is None:
            logger.debug("No forwarding rule; event dropped", extra={"pattern": envelope.pattern})
            return self._finish(envelope, ForwardingState.DROPPED, reason="no_rule")

        context = CorrelationContext(id=envelope.correlation_id) if envelope.correlation_id else None
        with correlation_scope(context):
            logger.debug(
                "Resolving recipients",
                extra={
                    "state": ForwardingState.RESOLVING.value,
                    "pattern": envelope.pattern,
                    "event_id": envelope.event_id,
                },
            )
            try:
                recipients = await self._resolve(rule, envelope)
            except ResolverUnavailable as exc:
                return self._fail(envelope, exc, "resolver_unavailable")

            if not recipients:
                logger.debug(
                    "No recipients; event dropped",
                    extra={"pattern": envelope.pattern, "event_id": envelope.event_id},
                )
                return self._finish(envelope, ForwardingState.DROPPED, reason="no_recipients")

            ordered = sorted(recipients)
            try:
                event = self._build_event(rule, envelope, ordered)
            except ContractViolation as exc:
                return self._fail(envelope, exc, "contract_violation")
            except Exception as exc:
                return self._fail(envelope, exc, "payload_build_failed")

            try:
                await self._breaker.call_async(
                    self._transport.publish,
                    event.pattern,
                    event.payload,
                    event.recipients,
                    event.headers(),
                )
            except Exception as exc:
                return self._fail(envelope, exc, "transport_failed", event=event)

            logger.info(
                "Event forwarded",
                extra={
                    "state": ForwardingState.FORWARDED.value,
                    "pattern": envelope.pattern,
                    "target": event.pattern,
                    "event_id": envelope.event_id,
                    "recipients": len(event.recipients),
                },
            )
            return self._finish(envelope, ForwardingState.FORWARDED, event=event)

    def _build_event(
        self,
        rule: ForwardingRule,
        envelope: DomainEventEnvelope,
        recipients: list[str],
    ) -> ForwardingEvent:
        validated = self._gateway_registry.validate_payload(
            rule.target, rule.build_payload(envelope, recipients),
        )
        return ForwardingEvent(
            pattern=rule.target,
            correlation_id=envelope.correlation_id,
            payload=self._gateway_registry.dump_payload(rule.target, validated),
            recipients=recipients,
        )

    async def _resolve(self, rule: ForwardingRule, envelope: DomainEventEnvelope) -> set[str]:
        resolver = rule.resolver or self._resolver
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._retry_attempts),
                wait=wait_exponential(multiplier=self._backoff_multiplier, max=self._backoff_max),
                retry=retry_if_exception_type(Exception),
                before_sleep=retry_logger(f"resolver:{rule.source}"),
                reraise=True,
            ):
                with attempt:
                    async with asyncio.timeout(self._resolve_timeout):
                        result = resolver.resolve(envelope.entity, envelope.changes)
                        if inspect.isawaitable(result):
                            result = await result
        except Exception as exc:
            raise ResolverUnavailable(
                f"Recipient resolution for '{envelope.pattern}' failed after "
                f"{self._retry_attempts} attempts: {exc!r}"
            ) from exc
        return {str(recipient) for recipient in result or ()}

    def _fail(
        self,
        envelope: DomainEventEnvelope,
        cause: Exception,
        reason: str,
        event: ForwardingEvent | None = None,
    ) -> ForwardingResult:
        failure = ForwardingFailed(f"Event '{envelope.pattern}' was not forwarded: {reason}")
        failure.__cause__ = cause
        logger.error(
            "Event forwarding failed",
            extra={
                "state": ForwardingState.DROPPED.value,
                "pattern": envelope.pattern,
                "event_id": envelope.event_id,
                "correlation_id": envelope.correlation_id,
                "code": failure.code,
                "reason": reason,
                "error": str(cause),
            },
        )
        return self._finish(envelope, ForwardingState.DROPPED, event=event, error=failure, reason=reason)

    def _finish(
        self,
        envelope: DomainEventEnvelope,
        state: ForwardingState,
        *,
        event: ForwardingEvent | None = None,
        error: ForwardingFailed | None = None,
        reason: str | None = None,
    ) -> ForwardingResult:
        result = ForwardingResult(envelope=envelope, state=state, event=event, error=error, reason=reason)
        if self._on_result is not None:
            try:
                self._on_result(result)
            except Exception:
                logger.exception("Forwarding result callback failed", extra={"event_id": envelope.event_id})
        return result
