"""
RPC Test Fixtures.

A small in-memory tasks service wired to an RpcDispatcher, mounted on an
InMemoryTransport, with a client for the same registry.
"""

from typing import Any

import pytest

from modules.fabric.contracts.correlation import CorrelationContext
from modules.fabric.contracts.tasks import (
    CreateTaskDTO,
    TaskDTO,
    TaskIdPayload,
    TasksPattern,
    build_tasks_registry,
)
from modules.fabric.core.exceptions import NotFoundError
from modules.fabric.core.utils import utc_now
from modules.fabric.rpc.client import RpcClient
from modules.fabric.rpc.dispatcher import RpcDispatcher


class TaskStore:
    """Records calls and the correlation context each one ran under."""

    def __init__(self) -> None:
        self.tasks: dict[str, TaskDTO] = {}
        self.contexts: list[CorrelationContext] = []

    def create(self, payload: CreateTaskDTO) -> TaskDTO:
        now = utc_now()
        task = TaskDTO(
            id=f"task-{len(self.tasks) + 1}",
            title=payload.title,
            description=payload.description,
            status=payload.status,
            priority=payload.priority,
            due_date=payload.due_date,
            assignees=payload.assignees,
            created_at=now,
            updated_at=now,
        )
        self.tasks[task.id] = task
        return task


@pytest.fixture
def registry():
    return build_tasks_registry()


@pytest.fixture
def store() -> TaskStore:
    return TaskStore()


@pytest.fixture
def dispatcher(registry, store) -> RpcDispatcher:
    dispatcher = RpcDispatcher(registry)

    @dispatcher.handler(TasksPattern.CREATE)
    async def create(payload: CreateTaskDTO, context: CorrelationContext) -> TaskDTO:
        store.contexts.append(context)
        return store.create(payload)

    @dispatcher.handler(TasksPattern.FIND_BY_ID)
    async def find_by_id(payload: TaskIdPayload, context: CorrelationContext) -> Any:
        store.contexts.append(context)
        task = store.tasks.get(payload.id)
        if task is None:
            raise NotFoundError(f"Task {payload.id} not found")
        return task

    return dispatcher


@pytest.fixture
def client(registry, transport, dispatcher) -> RpcClient:
    transport.mount(dispatcher)
    return RpcClient(registry, transport, timeout=1.0)
