"""
Recipient Resolvers.

A resolver computes which users must observe a domain event. The pipeline
treats it as a pure function of (entity snapshot, change-set) that may
answer synchronously or asynchronously and may read external state.

Resolvers raise whatever their data source raises; the pipeline retries
and, on exhaustion, drops the event.
"""

import inspect
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol

from modules.fabric.contracts.base import ChangeSet
from modules.fabric.core.logging import get_logger
from modules.fabric.events.changes import removed_assignee_ids

logger = get_logger(__name__)


class RecipientResolver(Protocol):
    def resolve(
        self, entity: Mapping[str, Any], changes: ChangeSet | None = None,
    ) -> set[str] | Awaitable[set[str]]: ...


TaskLoader = Callable[[str], Any]


def _assignee_ids(task: Any) -> set[str]:
    if hasattr(task, "assignees"):
        assignees = task.assignees
    elif isinstance(task, Mapping):
        assignees = task.get("assignees") or []
    else:
        return set()

    ids: set[str] = set()
    for assignee in assignees:
        value = assignee.get("id") if isinstance(assignee, Mapping) else getattr(assignee, "id", None)
        if isinstance(value, str) and value.strip():
            ids.add(value.strip())
    return ids


class TaskAudienceResolver:
    """Task events reach the current assignees and any assignee just removed."""

    def resolve(self, entity: Mapping[str, Any], changes: ChangeSet | None = None) -> set[str]:
        return _assignee_ids(entity) | removed_assignee_ids(changes)


class CommentAudienceResolver:
    """
    Comment events reach the comment author plus the task's assignees.

    The task is read through `load_task(task_id)`, sync or async, returning a
    TaskDTO or a wire dict.
    """

    def __init__(self, load_task: TaskLoader) -> None:
        self._load_task = load_task

    async def resolve(self, entity: Mapping[str, Any], changes: ChangeSet | None = None) -> set[str]:
        recipients: set[str] = set()
        author_id = entity.get("authorId")
        if isinstance(author_id, str) and author_id.strip():
            recipients.add(author_id.strip())

        task_id = entity.get("taskId")
        if not task_id:
            logger.debug("Comment without task id; author only", extra={"comment_id": entity.get("id")})
            return recipients

        task = self._load_task(task_id)
        if inspect.isawaitable(task):
            task = await task
        if task is None:
            return recipients
        return recipients | _assignee_ids(task)
