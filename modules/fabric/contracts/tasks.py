"""
Tasks Domain Contracts.

RPC patterns served by the task-management service, the DTOs they carry,
and the domain event patterns the service raises after a mutation commits.

RPC contract map:
    tasks.create           CreateTaskDTO             → TaskDTO
    tasks.findAll          TaskListFiltersDTO        → PaginatedEnvelope[TaskDTO]
    tasks.findById         TaskIdPayload             → TaskDTO
    tasks.update           TasksUpdatePayload        → TaskDTO
    tasks.remove           TaskIdPayload             → TaskDTO
    tasks.comment.create   CreateCommentDTO          → CommentDTO
    tasks.comment.findAll  CommentListFiltersDTO     → PaginatedEnvelope[CommentDTO]
    tasks.audit.findAll    TaskAuditLogListFiltersDTO → PaginatedEnvelope[TaskAuditLogDTO]

Domain events (payload shape = entity snapshot):
    task.created           TaskDTO
    task.updated           TaskDTO
    task.deleted           TaskDTO
    tasks.comment.created  CommentDTO
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, Field, model_validator

from modules.fabric.contracts.base import ContractModel
from modules.fabric.contracts.registry import ContractEntry, ContractRegistry
from modules.fabric.core.pagination import PaginatedEnvelope

TASKS_DOMAIN = "tasks"
TASK_EVENTS_DOMAIN = "tasks.events"


class TaskStatus(StrEnum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    REVIEW = "REVIEW"
    DONE = "DONE"


class TaskPriority(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


# =============================================================================
# Tasks
# =============================================================================


class TaskAssigneeDTO(ContractModel):
    id: str = Field(min_length=1)
    username: str
    name: str | None = None
    email: str | None = None


class TaskDTO(ContractModel):
    id: str
    title: str
    description: str | None = None
    status: TaskStatus
    priority: TaskPriority
    due_date: datetime | None = None
    assignees: list[TaskAssigneeDTO] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class CreateTaskDTO(ContractModel):
    title: str = Field(min_length=1)
    description: str | None = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime | None = None
    assignees: list[TaskAssigneeDTO] = Field(default_factory=list)


class UpdateTaskDTO(ContractModel):
    """Partial update. At least one field must be present."""

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None
    assignees: list[TaskAssigneeDTO] | None = None

    @model_validator(mode="after")
    def _not_empty(self) -> "UpdateTaskDTO":
        if not self.model_fields_set:
            raise ValueError("update must change at least one field")
        return self


class TaskListFiltersDTO(ContractModel):
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    search: str | None = None
    assignee_id: str | None = None
    page: int | None = None
    size: int | None = Field(default=None, validation_alias=AliasChoices("size", "limit"))


class TaskIdPayload(ContractModel):
    id: str = Field(min_length=1)


class TasksUpdatePayload(ContractModel):
    id: str = Field(min_length=1)
    data: UpdateTaskDTO


# =============================================================================
# Comments
# =============================================================================


class CommentDTO(ContractModel):
    id: str
    task_id: str
    author_id: str
    author_name: str | None = None
    message: str
    created_at: datetime
    updated_at: datetime


class CreateCommentDTO(ContractModel):
    task_id: str = Field(min_length=1)
    author_id: str = Field(min_length=1)
    author_name: str | None = None
    message: str = Field(min_length=1)


class CommentListFiltersDTO(ContractModel):
    task_id: str = Field(min_length=1)
    page: int | None = None
    size: int | None = Field(default=None, validation_alias=AliasChoices("size", "limit"))


# =============================================================================
# Audit log
# =============================================================================


class TaskAuditLogActorDTO(ContractModel):
    id: str
    display_name: str | None = None


class TaskAuditLogChangeDTO(ContractModel):
    field: str = Field(min_length=1)
    previous_value: Any = None
    current_value: Any = None


class TaskAuditLogDTO(ContractModel):
    id: str
    task_id: str
    action: str
    actor: TaskAuditLogActorDTO | None = None
    changes: list[TaskAuditLogChangeDTO] | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime


class TaskAuditLogListFiltersDTO(ContractModel):
    task_id: str = Field(min_length=1)
    page: int | None = None
    size: int | None = Field(default=None, validation_alias=AliasChoices("size", "limit"))


# =============================================================================
# Patterns and registries
# =============================================================================


class TasksPattern(StrEnum):
    CREATE = "tasks.create"
    FIND_ALL = "tasks.findAll"
    FIND_BY_ID = "tasks.findById"
    UPDATE = "tasks.update"
    REMOVE = "tasks.remove"
    COMMENT_CREATE = "tasks.comment.create"
    COMMENT_FIND_ALL = "tasks.comment.findAll"
    AUDIT_FIND_ALL = "tasks.audit.findAll"


class TaskEventPattern(StrEnum):
    CREATED = "task.created"
    UPDATED = "task.updated"
    DELETED = "task.deleted"
    COMMENT_CREATED = "tasks.comment.created"


TASKS_CONTRACTS: tuple[ContractEntry, ...] = (
    ContractEntry(TasksPattern.CREATE, CreateTaskDTO, TaskDTO),
    ContractEntry(TasksPattern.FIND_ALL, TaskListFiltersDTO, PaginatedEnvelope[TaskDTO]),
    ContractEntry(TasksPattern.FIND_BY_ID, TaskIdPayload, TaskDTO),
    ContractEntry(TasksPattern.UPDATE, TasksUpdatePayload, TaskDTO),
    ContractEntry(TasksPattern.REMOVE, TaskIdPayload, TaskDTO),
    ContractEntry(TasksPattern.COMMENT_CREATE, CreateCommentDTO, CommentDTO),
    ContractEntry(TasksPattern.COMMENT_FIND_ALL, CommentListFiltersDTO, PaginatedEnvelope[CommentDTO]),
    ContractEntry(TasksPattern.AUDIT_FIND_ALL, TaskAuditLogListFiltersDTO, PaginatedEnvelope[TaskAuditLogDTO]),
)

TASK_EVENT_CONTRACTS: tuple[ContractEntry, ...] = (
    ContractEntry(TaskEventPattern.CREATED, TaskDTO),
    ContractEntry(TaskEventPattern.UPDATED, TaskDTO),
    ContractEntry(TaskEventPattern.DELETED, TaskDTO),
    ContractEntry(TaskEventPattern.COMMENT_CREATED, CommentDTO),
)


def build_tasks_registry() -> ContractRegistry:
    """Frozen RPC registry for the tasks domain."""
    return ContractRegistry.from_entries(TASKS_DOMAIN, TASKS_CONTRACTS)


def build_task_events_registry() -> ContractRegistry:
    """Frozen registry of the domain events raised by the tasks service."""
    return ContractRegistry.from_entries(TASK_EVENTS_DOMAIN, TASK_EVENT_CONTRACTS)
