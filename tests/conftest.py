"""Shared fixtures: node registry with test nodes, temporary database, fake channel."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from helpers import TEST_NODES, CountingNode, FlakyNode
from nodeflow.core.config import settings
from nodeflow.db.session import create_session_factory, init_db
from nodeflow.engine.hooks import WorkflowHooks
from nodeflow.engine.node_execute_functions import AdditionalData
from nodeflow.engine.node_registry import NodeRegistryClass, node_registry, register_all_nodes
from nodeflow.services.active_executions import ActiveExecutions
from nodeflow.services.push_service import PushService
from nodeflow.services.workflow_runner import WorkflowRunner


@pytest.fixture(autouse=True)
def reset_node_state():
    FlakyNode.calls.clear()
    CountingNode.calls.clear()
    yield


@pytest.fixture
def registry() -> NodeRegistryClass:
    """Built-in nodes plus the test nodes, on the process-wide registry."""
    register_all_nodes()
    for node_class in TEST_NODES:
        node_registry.register(node_class)
    return node_registry


@pytest.fixture
def fast_settings(monkeypatch):
    """Keep timings short and everything in-process."""
    monkeypatch.setattr(settings, "executions_process", "main")
    monkeypatch.setattr(settings, "graceful_shutdown_timeout", 2)
    monkeypatch.setattr(settings, "save_execution_progress", False)
    monkeypatch.setattr(settings, "executions_timeout", -1)
    return settings


@pytest.fixture
async def session_factory(tmp_path):
    """Session factory on a fresh SQLite file."""
    db_engine, factory = create_session_factory(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(db_engine)
    yield factory
    await db_engine.dispose()


@pytest.fixture
def runner(session_factory, fast_settings, registry) -> WorkflowRunner:
    """Coordinator running everything in this process."""
    return WorkflowRunner(ActiveExecutions(), PushService(), session_factory, executions_process="main")


class RecordingHooks:
    """Collects every hook invocation as ``(name, parameters)``."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def hooks(self, execution_id: str = "test-execution") -> WorkflowHooks:
        hooks = WorkflowHooks(execution_id=execution_id)
        for name in (
            "nodeExecuteBefore",
            "nodeExecuteAfter",
            "workflowExecuteBefore",
            "workflowExecuteAfter",
            "sendResponse",
        ):
            hooks.add_handler(name, self._recorder(name))
        return hooks

    def _recorder(self, name: str):
        def record(*parameters: Any) -> None:
            self.calls.append((name, parameters))

        return record

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def nodes(self, hook: str = "nodeExecuteBefore") -> list[str]:
        return [parameters[0] for name, parameters in self.calls if name == hook]


@pytest.fixture
def recording_hooks() -> RecordingHooks:
    return RecordingHooks()


@pytest.fixture
def additional_data(recording_hooks) -> AdditionalData:
    return AdditionalData(execution_id="test-execution", hooks=recording_hooks.hooks())


class FakeChannel:
    """Worker channel that records sent messages instead of writing to stdout."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self._waiters: list[tuple[str, asyncio.Future]] = []

    async def send(self, message_type: str, data: dict[str, Any] | None = None) -> None:
        self.sent.append({"type": message_type, "data": data or {}})
        for waiter in list(self._waiters):
            if waiter[0] == message_type and not waiter[1].done():
                waiter[1].set_result(data or {})
                self._waiters.remove(waiter)

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]

    def of_type(self, message_type: str) -> list[dict[str, Any]]:
        return [m["data"] for m in self.sent if m["type"] == message_type]

    async def wait_for(self, message_type: str, timeout: float = 5.0) -> dict[str, Any]:
        existing = self.of_type(message_type)
        if existing:
            return existing[0]
        future = asyncio.get_running_loop().create_future()
        self._waiters.append((message_type, future))
        return await asyncio.wait_for(future, timeout)


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()
