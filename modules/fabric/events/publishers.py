"""
Event Publishers.

Domain-specific event publishers. Each publisher validates the entity
against the task events registry, wraps it in a DomainEventEnvelope tagged
with the current correlation id, and hands it to a sink.

Raising is a synchronous hand-off. The sink is EventForwardingPipeline.raise_event
(a queue put) when the worker runs in process, or a BrokerEventSink that
publishes the envelope to the domain channel for the event worker. Call it
only after the mutation has committed; a raised event is never retracted.

Publishers check the events_publish_enabled feature flag before raising.
When disabled, events are silently skipped (no error, no log noise).

Usage:
    from modules.fabric.events.publishers import BrokerEventSink, TaskEventPublisher

    publisher = TaskEventPublisher(pipeline.raise_event)
    publisher.task_updated(task, previous=before, actor=actor)

    # tasks service, worker in another process
    sink = BrokerEventSink.from_config()
    publisher = TaskEventPublisher(sink)
    ...
    await sink.drain()
"""

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

from faststream.redis import RedisBroker

from modules.fabric.contracts.base import ChangeSet, EventActor
from modules.fabric.contracts.correlation import CorrelationContext, current_correlation
from modules.fabric.contracts.registry import ContractRegistry
from modules.fabric.contracts.tasks import (
    CommentDTO,
    TaskDTO,
    TaskEventPattern,
    build_task_events_registry,
)
from modules.fabric.core.logging import get_logger
from modules.fabric.events.changes import diff_task_changes
from modules.fabric.events.schemas import DomainEventEnvelope

logger = get_logger(__name__)

EventSink = Callable[[DomainEventEnvelope], Any]


class TaskEventPublisher:
    """Raises task and comment domain events."""

    def __init__(self, sink: EventSink, registry: ContractRegistry | None = None) -> None:
        self._sink = sink
        self._registry = registry or build_task_events_registry()

    def task_created(
        self,
        task: TaskDTO | Mapping[str, Any],
        *,
        actor: EventActor | None = None,
        context: CorrelationContext | None = None,
    ) -> DomainEventEnvelope | None:
        """Raise a task.created event."""
        return self._raise(TaskEventPattern.CREATED, task, actor=actor, context=context)

    def task_updated(
        self,
        task: TaskDTO | Mapping[str, Any],
        *,
        previous: TaskDTO | Mapping[str, Any] | None = None,
        changes: ChangeSet | None = None,
        actor: EventActor | None = None,
        context: CorrelationContext | None = None,
    ) -> DomainEventEnvelope | None:
        """
        Raise a task.updated event.

        The change-set is computed from `previous` when it is given and no
        explicit `changes` were passed.
        """
        if changes is None and previous is not None:
            changes = diff_task_changes(previous, task)
        return self._raise(
            TaskEventPattern.UPDATED, task, actor=actor, changes=changes, context=context,
        )

    def task_deleted(
        self,
        task: TaskDTO | Mapping[str, Any],
        *,
        actor: EventActor | None = None,
        context: CorrelationContext | None = None,
    ) -> DomainEventEnvelope | None:
        """Raise a task.deleted event."""
        return self._raise(TaskEventPattern.DELETED, task, actor=actor, context=context)

    def comment_created(
        self,
        comment: CommentDTO | Mapping[str, Any],
        *,
        actor: EventActor | None = None,
        context: CorrelationContext | None = None,
    ) -> DomainEventEnvelope | None:
        """Raise a tasks.comment.created event."""
        return self._raise(TaskEventPattern.COMMENT_CREATED, comment, actor=actor, context=context)

    def _raise(
        self,
        pattern: TaskEventPattern,
        entity: Any,
        *,
        actor: EventActor | None = None,
        changes: ChangeSet | None = None,
        context: CorrelationContext | None = None,
    ) -> DomainEventEnvelope | None:
        """Raise an event if the feature flag is enabled."""
        from modules.fabric.core.config import get_app_config

        if not get_app_config().features.events_publish_enabled:
            return None

        validated = self._registry.validate_payload(pattern, entity)
        ctx = context or current_correlation()
        envelope = DomainEventEnvelope(
            pattern=pattern,
            correlation_id=ctx.id if ctx else None,
            entity=self._registry.dump_payload(pattern, validated),
            actor=actor,
            changes=changes,
        )
        self._sink(envelope)
        logger.debug(
            "Event raised",
            extra={
                "pattern": envelope.pattern,
                "event_id": envelope.event_id,
                "correlation_id": envelope.correlation_id,
            },
        )
        return envelope


class BrokerEventSink:
    """
    Publishes raised envelopes to the domain channel.

    Calling the sink schedules the publish and returns at once, so raising
    stays a cheap hand-off. A failed publish is logged; the mutation that
    raised the event has already committed.
    """

    def __init__(self, broker: RedisBroker, channel: str = "tasks:events") -> None:
        self._broker = broker
        self._channel = channel
        self._pending: set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, broker: RedisBroker | None = None) -> "BrokerEventSink":
        """Sink on the shared event broker and events.domain_channel."""
        from modules.fabric.core.config import get_app_config
        from modules.fabric.events.broker import get_event_broker

        return cls(broker or get_event_broker(), get_app_config().events.domain_channel)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def __call__(self, envelope: DomainEventEnvelope) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self.publish(envelope))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def publish(self, envelope: DomainEventEnvelope) -> bool:
        """Publish one envelope. Returns False if the broker refused it."""
        headers = _envelope_headers(envelope)
        try:
            await self._broker.publish(
                envelope.to_wire(),
                channel=self._channel,
                correlation_id=envelope.correlation_id,
                headers=headers,
            )
        except Exception as exc:
            logger.error(
                "Failed to publish domain event",
                extra={
                    "channel": self._channel,
                    "pattern": envelope.pattern,
                    "event_id": envelope.event_id,
                    "correlation_id": envelope.correlation_id,
                    "error": str(exc),
                },
            )
            return False

        logger.debug(
            "Event published",
            extra={"channel": self._channel, "pattern": envelope.pattern, "event_id": envelope.event_id},
        )
        return True

    async def drain(self) -> None:
        """Wait for every scheduled publish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


def _envelope_headers(envelope: DomainEventEnvelope) -> dict[str, str]:
    # The raising scope still knows the parent id; the envelope only keeps the id.
    context = current_correlation()
    if context is None or context.id != envelope.correlation_id:
        if not envelope.correlation_id:
            return {}
        context = CorrelationContext(id=envelope.correlation_id)
    return context.to_headers()
