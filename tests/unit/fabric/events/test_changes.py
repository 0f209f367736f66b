"""Unit tests for task change-sets."""

from datetime import datetime, timezone

from modules.fabric.contracts.base import FieldChange
from modules.fabric.contracts.tasks import TaskDTO, TaskStatus
from modules.fabric.events.changes import diff_task_changes, removed_assignee_ids


class TestDiffTaskChanges:
    def test_scalar_and_date_fields(self, make_task):
        previous = make_task()
        current = make_task(
            title="Publish release notes",
            status="IN_PROGRESS",
            dueDate="2024-05-21T09:30:00Z",
        )

        changes = diff_task_changes(previous, current)

        assert changes == [
            FieldChange(field="title", old_value="Write release notes", new_value="Publish release notes"),
            FieldChange(field="status", old_value="TODO", new_value="IN_PROGRESS"),
            FieldChange(
                field="dueDate",
                old_value="2024-05-20T12:00:00+00:00",
                new_value="2024-05-21T09:30:00+00:00",
            ),
        ]

    def test_identical_states_and_reordered_assignees(self, make_task):
        previous = make_task()
        current = make_task(assignees=list(reversed(previous["assignees"])))
        assert diff_task_changes(previous, current) == []

    def test_none_and_missing_are_equal(self, make_task):
        previous = make_task(description="Something", dueDate=None, assignees=[])
        current = make_task(description=None, dueDate=None)
        del current["assignees"]

        changes = diff_task_changes(previous, current)

        assert changes == [FieldChange(field="description", old_value="Something", new_value=None)]

    def test_blank_description_is_none(self, make_task):
        assert diff_task_changes(make_task(description=None), make_task(description="   ")) == []

    def test_equivalent_timestamps(self, make_task):
        previous = make_task(dueDate="2024-05-20T12:00:00Z")
        current = make_task(dueDate=datetime(2024, 5, 20, 12, tzinfo=timezone.utc))
        assert diff_task_changes(previous, current) == []

    def test_snake_case_and_models(self, make_task):
        previous = TaskDTO.model_validate(make_task())
        current = {**make_task(status="DONE"), "due_date": None}
        del current["dueDate"]

        fields = [change.field for change in diff_task_changes(previous, current)]

        assert fields == ["status", "dueDate"]

    def test_enum_values(self, make_task):
        previous = make_task()
        current = {**make_task(), "status": TaskStatus.TODO}
        assert diff_task_changes(previous, current) == []

    def test_assignee_change_is_sorted(self, make_task):
        previous = make_task(assignees=[{"id": "u1", "username": "ana"}])
        current = make_task(assignees=[{"id": "u3", "username": " caio "}, {"id": "u1", "username": "ana"}])

        (change,) = diff_task_changes(previous, current)

        assert change.field == "assignees"
        assert change.new_value == [
            {"id": "u1", "username": "ana"},
            {"id": "u3", "username": "caio"},
        ]


class TestRemovedAssigneeIds:
    def test_removed(self, make_task):
        previous = make_task()
        current = make_task(assignees=[{"id": "u2", "username": "beto"}])
        assert removed_assignee_ids(diff_task_changes(previous, current)) == {"u1"}

    def test_no_assignee_change(self, make_task):
        assert removed_assignee_ids(diff_task_changes(make_task(), make_task(title="x"))) == set()

    def test_opaque_or_missing_changes(self):
        assert removed_assignee_ids({"assignees": "changed"}) == set()
        assert removed_assignee_ids(None) == set()
