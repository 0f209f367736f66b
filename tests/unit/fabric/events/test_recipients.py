"""Unit tests for recipient resolvers."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from modules.fabric.contracts.tasks import TaskDTO
from modules.fabric.events.changes import diff_task_changes
from modules.fabric.events.recipients import CommentAudienceResolver, TaskAudienceResolver


class TestTaskAudienceResolver:
    def test_current_assignees(self, make_task):
        assert TaskAudienceResolver().resolve(make_task()) == {"u1", "u2"}

    def test_removed_assignees_are_notified(self, make_task):
        previous = make_task()
        current = make_task(assignees=[{"id": "u3", "username": "caio"}])

        recipients = TaskAudienceResolver().resolve(current, diff_task_changes(previous, current))

        assert recipients == {"u1", "u2", "u3"}

    def test_no_assignees(self, make_task):
        assert TaskAudienceResolver().resolve(make_task(assignees=[])) == set()

    def test_blank_ids_ignored(self, make_task):
        task = make_task(assignees=[{"id": "  ", "username": "x"}, {"id": "u1", "username": "ana"}])
        assert TaskAudienceResolver().resolve(task) == {"u1"}


class TestCommentAudienceResolver:
    @pytest.mark.asyncio
    async def test_author_and_assignees(self, make_comment, make_task):
        load_task = AsyncMock(return_value=TaskDTO.model_validate(make_task()))

        recipients = await CommentAudienceResolver(load_task).resolve(make_comment())

        assert recipients == {"u9", "u1", "u2"}
        load_task.assert_awaited_once_with("task-1")

    @pytest.mark.asyncio
    async def test_sync_loader(self, make_comment, make_task):
        load_task = MagicMock(return_value=make_task(assignees=[{"id": "u9", "username": "rui"}]))
        assert await CommentAudienceResolver(load_task).resolve(make_comment()) == {"u9"}

    @pytest.mark.asyncio
    async def test_missing_task(self, make_comment):
        resolver = CommentAudienceResolver(MagicMock(return_value=None))
        assert await resolver.resolve(make_comment()) == {"u9"}

    @pytest.mark.asyncio
    async def test_without_task_id(self, make_comment):
        load_task = MagicMock()
        comment = make_comment()
        del comment["taskId"]

        assert await CommentAudienceResolver(load_task).resolve(comment) == {"u9"}
        load_task.assert_not_called()

    @pytest.mark.asyncio
    async def test_loader_errors_propagate(self, make_comment):
        resolver = CommentAudienceResolver(AsyncMock(side_effect=ConnectionError("down")))
        with pytest.raises(ConnectionError):
            await resolver.resolve(make_comment())
