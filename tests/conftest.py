"""
Root Pytest Fixtures.

Shared fixtures available to all test types.

Sample entities are wire-form (camelCase) dicts, the shape every service
sees coming off the transport.
"""

from collections.abc import Callable
from typing import Any

import pytest
import structlog


# =============================================================================
# Logging Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Context bound by one test must not leak into the next."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


# =============================================================================
# Sample Entities
# =============================================================================


@pytest.fixture
def make_task() -> Callable[..., dict[str, Any]]:
    """
    Factory for wire-form task dicts.

    Usage:
        def test_something(make_task):
            task = make_task(assignees=[{"id": "u1", "username": "ana"}])
    """

    def _make(**overrides: Any) -> dict[str, Any]:
        task = {
            "id": "task-1",
            "title": "Write release notes",
            "description": "Summarise the sprint",
            "status": "TODO",
            "priority": "MEDIUM",
            "dueDate": "2024-05-20T12:00:00+00:00",
            "assignees": [
                {"id": "u2", "username": "beto"},
                {"id": "u1", "username": "ana"},
            ],
            "createdAt": "2024-05-01T09:00:00+00:00",
            "updatedAt": "2024-05-01T09:00:00+00:00",
        }
        task.update(overrides)
        return task

    return _make


@pytest.fixture
def make_comment() -> Callable[..., dict[str, Any]]:
    """Factory for wire-form comment dicts."""

    def _make(**overrides: Any) -> dict[str, Any]:
        comment = {
            "id": "comment-1",
            "taskId": "task-1",
            "authorId": "u9",
            "authorName": "Rui",
            "message": "Looks good",
            "createdAt": "2024-05-02T10:00:00+00:00",
            "updatedAt": "2024-05-02T10:00:00+00:00",
        }
        comment.update(overrides)
        return comment

    return _make
