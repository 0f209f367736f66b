"""
Gateway Event Contracts.

Forwarding events delivered to the gateway that faces realtime clients.
Each payload repeats the resolved recipient ids so the gateway can filter
sockets without another lookup.

Event contract map:
    task.created  TaskForwardPayload
    task.updated  TaskForwardPayload
    task.deleted  TaskForwardPayload
    comment.new   CommentNewPayload

The same strings as some task domain events (task.created, ...) are used
here on purpose; they belong to a different domain registry.
"""

from enum import StrEnum

from pydantic import Field

from modules.fabric.contracts.base import ChangeSet, ContractModel, EventActor
from modules.fabric.contracts.registry import ContractEntry, ContractRegistry
from modules.fabric.contracts.tasks import CommentDTO, TaskDTO

GATEWAY_DOMAIN = "gateway"


class GatewayEventPattern(StrEnum):
    TASK_CREATED = "task.created"
    TASK_UPDATED = "task.updated"
    TASK_DELETED = "task.deleted"
    COMMENT_NEW = "comment.new"


class TaskForwardPayload(ContractModel):
    task: TaskDTO
    recipients: list[str] = Field(min_length=1)
    actor: EventActor | None = None
    changes: ChangeSet | None = None


class CommentNewPayload(ContractModel):
    comment: CommentDTO
    recipients: list[str] = Field(min_length=1)


GATEWAY_EVENT_CONTRACTS: tuple[ContractEntry, ...] = (
    ContractEntry(GatewayEventPattern.TASK_CREATED, TaskForwardPayload),
    ContractEntry(GatewayEventPattern.TASK_UPDATED, TaskForwardPayload),
    ContractEntry(GatewayEventPattern.TASK_DELETED, TaskForwardPayload),
    ContractEntry(GatewayEventPattern.COMMENT_NEW, CommentNewPayload),
)


def build_gateway_events_registry() -> ContractRegistry:
    """Frozen registry of gateway-facing forwarding events."""
    return ContractRegistry.from_entries(GATEWAY_DOMAIN, GATEWAY_EVENT_CONTRACTS)


def socket_event_name(pattern: str) -> str:
    """Client-facing socket event name: task.updated → task:updated."""
    return pattern.replace(".", ":")
