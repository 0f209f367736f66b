"""
Event Schemas.

Domain event envelopes raised by services after a mutation commits, and the
forwarding events the pipeline derives from them.

    DomainEventEnvelope  what happened: pattern, entity snapshot, actor,
                         change-set, correlation id
    ForwardingEvent      who must hear about it: gateway pattern, payload,
                         non-empty recipient set, correlation id

Usage:
    from modules.fabric.events.schemas import DomainEventEnvelope

    envelope = DomainEventEnvelope(
        pattern=TaskEventPattern.UPDATED,
        correlation_id=ctx.id,
        entity=task.to_wire(),
        changes=diff_task_changes(before, task),
    )
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, StrEnum
from typing import Any

from pydantic import Field, field_validator

from modules.fabric.contracts.base import ChangeSet, ContractModel, EventActor
from modules.fabric.contracts.correlation import REQUEST_ID_HEADER
from modules.fabric.contracts.registry import pattern_key
from modules.fabric.core.exceptions import ApplicationError
from modules.fabric.core.utils import new_id, utc_now


class DomainEventEnvelope(ContractModel):
    """Immutable record of one committed mutation.

    Fields:
        event_id: Unique event identifier (auto-generated UUID)
        pattern: Domain event pattern (e.g. task.updated)
        correlation_id: Id of the operation that caused the mutation
        entity: Wire snapshot of the affected entity after the mutation
        actor: Who performed the mutation, when known
        changes: Structured change-set or opaque map, when known
        occurred_at: UTC timestamp of the mutation
    """

    event_id: str = Field(default_factory=new_id, min_length=1)
    pattern: str = Field(min_length=1)
    correlation_id: str | None = None
    entity: dict[str, Any]
    actor: EventActor | None = None
    changes: ChangeSet | None = None
    occurred_at: datetime = Field(default_factory=utc_now)

    @field_validator("pattern", mode="before")
    @classmethod
    def _pattern_to_str(cls, value: Any) -> Any:
        return pattern_key(value) if isinstance(value, Enum) else value


class ForwardingEvent(ContractModel):
    """Gateway-facing event with its resolved audience.

    recipients is deduplicated and serialised in sorted order; an empty set
    is rejected, such an event is dropped instead of forwarded.
    """

    pattern: str = Field(min_length=1)
    correlation_id: str | None = None
    payload: dict[str, Any]
    recipients: list[str] = Field(min_length=1)

    @field_validator("recipients")
    @classmethod
    def _sorted_unique(cls, value: list[str]) -> list[str]:
        return sorted(set(value))

    def headers(self) -> dict[str, str]:
        """Transport headers carrying the correlation id."""
        if not self.correlation_id:
            return {}
        return {REQUEST_ID_HEADER: self.correlation_id}


class ForwardingState(StrEnum):
    RAISED = "raised"
    RESOLVING = "resolving"
    FORWARDED = "forwarded"
    DROPPED = "dropped"


@dataclass(frozen=True)
class ForwardingResult:
    """Terminal outcome of one envelope's trip through the pipeline."""

    envelope: DomainEventEnvelope
    state: ForwardingState
    event: ForwardingEvent | None = None
    error: ApplicationError | None = None
    reason: str | None = None

    @property
    def forwarded(self) -> bool:
        return self.state is ForwardingState.FORWARDED
