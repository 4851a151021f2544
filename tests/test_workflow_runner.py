"""Tests for the coordinator running executions in-process."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from helpers import load_execution, make_workflow, output_json, reload, store
from nodeflow.core.exceptions import ExecutionNotFoundError
from nodeflow.engine.execution_payload import WorkflowExecutionPayload
from nodeflow.engine.types import ExecutionStatus
from nodeflow.engine.workflow import WorkflowSettings
from nodeflow.repositories import ExecutionRepository


def linear(**kwargs):
    nodes = [("Start", "Start"), ("Set", "Set", {"fields": [{"name": "ok", "value": True}]})]
    return make_workflow(nodes, [("Start", "Set")], **kwargs)


async def test_run_and_wait_persists_final_state(runner, session_factory):
    execution_id, state = await runner.run_and_wait(WorkflowExecutionPayload(workflow=linear()))

    assert state.status == ExecutionStatus.SUCCESS
    assert output_json(state, "Set")[0]["ok"] is True
    assert not runner.active_executions.is_active(execution_id)

    record = await load_execution(session_factory, execution_id)
    assert record.state.status == ExecutionStatus.SUCCESS
    assert record.state.finished is True
    assert record.state.data.result_data.last_node_executed == "Set"
    assert record.state.started_at.tzinfo is not None
    assert record.state.stopped_at.utcoffset() == timedelta(0)


async def test_static_data_is_saved_to_the_workflow(runner, session_factory):
    stored = await store(
        session_factory,
        make_workflow([("Start", "Start"), ("Count", "StaticCounter")], [("Start", "Count")]),
    )

    await runner.run_and_wait(WorkflowExecutionPayload(workflow=stored.workflow))
    assert (await reload(session_factory, stored.id)).static_data == {"global": {"count": 1}}

    # The next run starts from what the previous one stored
    await runner.run_and_wait(
        WorkflowExecutionPayload(workflow=await reload(session_factory, stored.id))
    )
    assert (await reload(session_factory, stored.id)).static_data == {"global": {"count": 2}}


async def test_stop_cancels_a_running_execution(runner, session_factory):
    workflow = make_workflow(
        [("Start", "Start"), ("Slow", "Slow", {"seconds": 5}), ("After", "Counting")],
        [("Start", "Slow"), ("Slow", "After")],
    )
    execution_id = await runner.run(WorkflowExecutionPayload(workflow=workflow))
    await asyncio.sleep(0.1)

    state = await runner.stop_execution(execution_id)

    assert state.status == ExecutionStatus.CANCELED
    assert state.stopped_at is not None
    assert "After" not in state.run_data
    record = await load_execution(session_factory, execution_id)
    assert record.state.status == ExecutionStatus.CANCELED
    assert record.state.stopped_at is not None


async def test_stop_unknown_execution_raises(runner):
    with pytest.raises(ExecutionNotFoundError):
        await runner.stop_execution("exec_missing")


async def test_workflow_timeout_stops_the_run(runner):
    workflow = make_workflow(
        [("Start", "Start"), ("Slow", "Slow", {"seconds": 3})],
        [("Start", "Slow")],
        settings=WorkflowSettings(execution_timeout=1),
    )

    _, state = await runner.run_and_wait(WorkflowExecutionPayload(workflow=workflow))

    assert state.status == ExecutionStatus.ERROR
    assert state.error.name == "WorkflowTimeoutError"


async def test_sub_workflow_gets_its_own_execution(runner, session_factory):
    child = await store(
        session_factory,
        make_workflow(
            [
                ("Trigger", "ExecuteWorkflowTrigger"),
                ("Mark", "Set", {"fields": [{"name": "child", "value": True}]}),
            ],
            [("Trigger", "Mark")],
            name="Child",
        ),
    )
    parent = make_workflow(
        [("Start", "Start"), ("Call", "ExecuteWorkflow", {"workflowId": child.id})],
        [("Start", "Call")],
        name="Parent",
    )

    execution_id, state = await runner.run_and_wait(WorkflowExecutionPayload(workflow=parent))

    assert state.status == ExecutionStatus.SUCCESS
    assert output_json(state, "Call")[0]["child"] is True

    async with session_factory() as session:
        records = await ExecutionRepository(session).list(workflow_id=child.id)
    assert len(records) == 1
    assert records[0].parent_execution_id == execution_id
    assert records[0].state.mode == "integrated"
    assert records[0].state.status == ExecutionStatus.SUCCESS


async def test_stop_finishes_a_running_sub_workflow(runner, session_factory):
    child = await store(
        session_factory,
        make_workflow(
            [("Trigger", "ExecuteWorkflowTrigger"), ("Slow", "Slow", {"seconds": 5})],
            [("Trigger", "Slow")],
            name="Child",
        ),
    )
    parent = make_workflow(
        [("Start", "Start"), ("Call", "ExecuteWorkflow", {"workflowId": child.id})],
        [("Start", "Call")],
        name="Parent",
    )
    execution_id = await runner.run(WorkflowExecutionPayload(workflow=parent))
    await asyncio.sleep(0.5)

    state = await runner.stop_execution(execution_id)

    assert state.status == ExecutionStatus.CANCELED
    async with session_factory() as session:
        records = await ExecutionRepository(session).list(workflow_id=child.id)
    assert [r.parent_execution_id for r in records] == [execution_id]
    assert records[0].state.status == ExecutionStatus.CANCELED
    assert records[0].state.stopped_at is not None


async def test_invalid_sub_workflow_gets_a_failed_record(runner, session_factory):
    child = await store(
        session_factory,
        make_workflow([("Trigger", "ExecuteWorkflowTrigger")], [("Trigger", "Missing")], name="Broken"),
    )
    parent = make_workflow(
        [("Start", "Start"), ("Call", "ExecuteWorkflow", {"workflowId": child.id})],
        [("Start", "Call")],
    )

    _, state = await runner.run_and_wait(WorkflowExecutionPayload(workflow=parent))

    assert state.status == ExecutionStatus.ERROR
    assert state.error.node_name == "Call"
    async with session_factory() as session:
        records = await ExecutionRepository(session).list(workflow_id=child.id)
    assert records[0].state.status == ExecutionStatus.ERROR
    assert records[0].state.error.name == "ValidationError"


async def test_caller_policy_none_fails_the_parent(runner, session_factory):
    child = await store(
        session_factory,
        make_workflow(
            [("Trigger", "ExecuteWorkflowTrigger")],
            name="Private",
            settings=WorkflowSettings(caller_policy="none"),
        ),
    )
    parent = make_workflow(
        [("Start", "Start"), ("Call", "ExecuteWorkflow", {"workflowId": child.id})],
        [("Start", "Call")],
        id="wf-parent",
    )

    _, state = await runner.run_and_wait(WorkflowExecutionPayload(workflow=parent))

    assert state.status == ExecutionStatus.ERROR
    assert state.error.node_name == "Call"
    assert "cannot be called" in state.error.message


async def test_excluded_node_type_fails_before_running(runner, fast_settings, monkeypatch):
    monkeypatch.setattr(fast_settings, "nodes_exclude", ["HttpRequest"])
    workflow = make_workflow(
        [("Start", "Start"), ("Fetch", "HttpRequest", {"url": "https://example.com"})],
        [("Start", "Fetch")],
    )

    _, state = await runner.run_and_wait(WorkflowExecutionPayload(workflow=workflow))

    assert state.status == ExecutionStatus.ERROR
    assert state.error.name == "WorkflowPermissionError"
    assert state.error.node_name == "Fetch"
    # Nothing ran; the offending node carries the error
    assert list(state.run_data) == ["Fetch"]
    assert state.run_data["Fetch"][0].error is not None


async def test_shutdown_stops_active_executions(runner):
    workflow = make_workflow([("Start", "Start"), ("Slow", "Slow", {"seconds": 5})], [("Start", "Slow")])
    execution_id = await runner.run(WorkflowExecutionPayload(workflow=workflow))
    future = runner.active_executions.get_post_execute_future(execution_id)
    await asyncio.sleep(0.1)

    await runner.shutdown()

    assert (await future).status == ExecutionStatus.CANCELED
    assert runner.active_executions.get_active_ids() == []
