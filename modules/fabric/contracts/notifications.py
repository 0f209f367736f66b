"""
Notifications Domain Contracts.

RPC contract map:
    notifications.findAll         NotificationsFindAllPayload        → PaginatedEnvelope[NotificationDTO]
    notifications.markAsRead      NotificationsMarkAsReadPayload     → NotificationDTO
    notifications.markManyAsRead  NotificationsMarkManyAsReadPayload → MarkManyAsReadResultDTO
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, Field, model_validator

from modules.fabric.contracts.base import ContractModel
from modules.fabric.contracts.registry import ContractEntry, ContractRegistry
from modules.fabric.core.pagination import PaginatedEnvelope

NOTIFICATIONS_DOMAIN = "notifications"


class NotificationChannel(StrEnum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    IN_APP = "in_app"


class NotificationStatus(StrEnum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class NotificationDTO(ContractModel):
    id: str
    recipient_id: str
    channel: NotificationChannel
    status: NotificationStatus
    message: str
    metadata: dict[str, Any] | None = None
    created_at: datetime
    sent_at: datetime | None = None
    read_at: datetime | None = None


class NotificationsFindAllPayload(ContractModel):
    recipient_id: str = Field(min_length=1)
    status: NotificationStatus | None = None
    channel: NotificationChannel | None = None
    search: str | None = None
    task_id: str | None = None
    from_: datetime | None = Field(default=None, alias="from")
    to: datetime | None = None
    page: int | None = None
    size: int | None = Field(default=None, validation_alias=AliasChoices("size", "limit"))


class NotificationsMarkAsReadPayload(ContractModel):
    notification_id: str = Field(min_length=1)
    recipient_id: str = Field(min_length=1)


class NotificationsMarkManyAsReadPayload(ContractModel):
    """Mark by explicit ids, by cut-off time, or both."""

    recipient_id: str = Field(min_length=1)
    notification_ids: list[str] | None = None
    before: datetime | None = None

    @model_validator(mode="after")
    def _has_selector(self) -> "NotificationsMarkManyAsReadPayload":
        if not self.notification_ids and self.before is None:
            raise ValueError("either notificationIds or before is required")
        return self


class MarkManyAsReadResultDTO(ContractModel):
    updated: int = Field(ge=0)


class NotificationsPattern(StrEnum):
    FIND_ALL = "notifications.findAll"
    MARK_AS_READ = "notifications.markAsRead"
    MARK_MANY_AS_READ = "notifications.markManyAsRead"


NOTIFICATIONS_CONTRACTS: tuple[ContractEntry, ...] = (
    ContractEntry(NotificationsPattern.FIND_ALL, NotificationsFindAllPayload, PaginatedEnvelope[NotificationDTO]),
    ContractEntry(NotificationsPattern.MARK_AS_READ, NotificationsMarkAsReadPayload, NotificationDTO),
    ContractEntry(NotificationsPattern.MARK_MANY_AS_READ, NotificationsMarkManyAsReadPayload, MarkManyAsReadResultDTO),
)


def build_notifications_registry() -> ContractRegistry:
    """Frozen RPC registry for the notifications domain."""
    return ContractRegistry.from_entries(NOTIFICATIONS_DOMAIN, NOTIFICATIONS_CONTRACTS)
