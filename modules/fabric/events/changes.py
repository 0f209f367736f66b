"""
Task Change-Sets.

Structured diff between two task states, used both for task.updated events
and for the task audit trail. Values are normalised before comparison so
that cosmetic differences are not reported as changes:

    - missing and None are the same; blank description is None
    - dueDate compares as an ISO 8601 UTC string
    - assignees compare as a list sorted by id, string fields trimmed

Field names in the change-set are the wire (camelCase) names.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from modules.fabric.contracts.base import FieldChange
from modules.fabric.core.utils import to_iso

TRACKED_FIELDS: tuple[tuple[str, str], ...] = (
    ("title", "title"),
    ("description", "description"),
    ("status", "status"),
    ("priority", "priority"),
    ("dueDate", "due_date"),
    ("assignees", "assignees"),
)


def _as_mapping(task: BaseModel | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(task, BaseModel):
        return task.model_dump(mode="json", by_alias=True)
    return task


def _lookup(task: Mapping[str, Any], wire_name: str, attr_name: str) -> Any:
    if wire_name in task:
        return task[wire_name]
    return task.get(attr_name)


def _trimmed_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _normalize_assignee(assignee: Any) -> dict[str, Any] | None:
    if isinstance(assignee, BaseModel):
        assignee = assignee.model_dump(mode="json", by_alias=True)
    if not isinstance(assignee, Mapping) or not isinstance(assignee.get("id"), str):
        return None

    normalized: dict[str, Any] = {
        "id": assignee["id"].strip(),
        "username": _trimmed_or_none(assignee.get("username")),
    }
    for optional in ("name", "email"):
        value = _trimmed_or_none(assignee.get(optional))
        if value is not None:
            normalized[optional] = value
    return normalized


def _normalize(field: str, value: Any) -> Any:
    if field == "assignees":
        if not isinstance(value, (list, tuple)):
            return []
        assignees = [a for a in (_normalize_assignee(item) for item in value) if a is not None]
        return sorted(assignees, key=lambda a: a["id"])
    if value is None:
        return None
    if field == "dueDate":
        return to_iso(value)
    if field == "description":
        return _trimmed_or_none(value)
    if field in ("status", "priority"):
        return getattr(value, "value", value)
    return value if isinstance(value, str) else str(value)


def diff_task_changes(
    previous: BaseModel | Mapping[str, Any],
    current: BaseModel | Mapping[str, Any],
) -> list[FieldChange]:
    """
    Fields whose normalised value differs between two task states.

    Args:
        previous: Task before the mutation (TaskDTO or wire/attribute dict)
        current: Task after the mutation

    Returns:
        One FieldChange per changed field, in tracked-field order
    """
    before = _as_mapping(previous)
    after = _as_mapping(current)

    changes: list[FieldChange] = []
    for wire_name, attr_name in TRACKED_FIELDS:
        old = _normalize(wire_name, _lookup(before, wire_name, attr_name))
        new = _normalize(wire_name, _lookup(after, wire_name, attr_name))
        if old != new:
            changes.append(FieldChange(field=wire_name, old_value=old, new_value=new))
    return changes


def removed_assignee_ids(changes: list[FieldChange] | Mapping[str, Any] | None) -> set[str]:
    """Ids present in the old assignee list of a change-set but not the new one."""
    if not isinstance(changes, list):
        return set()
    for change in changes:
        if change.field != "assignees":
            continue
        old = {a["id"] for a in change.old_value or [] if isinstance(a, Mapping) and "id" in a}
        new = {a["id"] for a in change.new_value or [] if isinstance(a, Mapping) and "id" in a}
        return old - new
    return set()
