"""Tests for the graph execution engine."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta, timezone

import pytest

from helpers import CountingNode, FlakyNode, items, make_workflow, output_json
from nodeflow.core.exceptions import ValidationError
from nodeflow.engine.serialization import from_jsonable, to_jsonable
from nodeflow.engine.types import ExecutionState, ExecutionStatus, PairedItem
from nodeflow.engine.workflow import NodeDefinition, WorkflowSettings
from nodeflow.engine.workflow_execute import WorkflowExecute


@pytest.fixture
def execute(registry, additional_data) -> WorkflowExecute:
    return WorkflowExecute(additional_data, "manual", registry=registry)


def linear_workflow():
    return make_workflow(
        [
            ("Start", "Start"),
            ("Set", "Set", {"fields": [{"name": "doubled", "value": "={{ $json.value * 2 }}"}]}),
            ("Done", "NoOp"),
        ],
        [("Start", "Set"), ("Set", "Done")],
    )


async def test_linear_run_succeeds(execute):
    state = await execute.run(linear_workflow(), trigger_data=items({"value": 1}, {"value": 4}))

    assert state.status == ExecutionStatus.SUCCESS
    assert state.finished is True
    assert state.stopped_at is not None
    assert state.data.result_data.last_node_executed == "Done"
    assert output_json(state, "Done") == [{"value": 1, "doubled": 2}, {"value": 4, "doubled": 8}]
    assert [len(state.run_data[name]) for name in ("Start", "Set", "Done")] == [1, 1, 1]


async def test_hooks_fire_in_lifecycle_order(execute, recording_hooks):
    await execute.run(linear_workflow(), trigger_data=items({"value": 1}))

    assert recording_hooks.names() == [
        "workflowExecuteBefore",
        "nodeExecuteBefore",
        "nodeExecuteAfter",
        "nodeExecuteBefore",
        "nodeExecuteAfter",
        "nodeExecuteBefore",
        "nodeExecuteAfter",
        "workflowExecuteAfter",
    ]
    assert recording_hooks.nodes() == ["Start", "Set", "Done"]
    final_state, new_static_data = recording_hooks.calls[-1][1]
    assert final_state.status == ExecutionStatus.SUCCESS
    assert new_static_data is None


async def test_failing_hook_does_not_fail_the_run(execute, additional_data):
    def broken(*args):
        raise RuntimeError("hook exploded")

    additional_data.hooks.add_handler("nodeExecuteAfter", broken)

    state = await execute.run(linear_workflow(), trigger_data=items({"value": 1}))

    assert state.status == ExecutionStatus.SUCCESS


async def test_node_error_stops_the_run(execute):
    workflow = make_workflow(
        [("Start", "Start"), ("Fail", "StopAndError", {"message": "bad input"}), ("After", "NoOp")],
        [("Start", "Fail"), ("Fail", "After")],
    )

    state = await execute.run(workflow)

    assert state.status == ExecutionStatus.ERROR
    assert state.finished is False
    assert state.error.message == "bad input"
    assert state.error.node_name == "Fail"
    assert state.data.result_data.last_node_executed == "Fail"
    assert state.run_data["Fail"][0].error.message == "bad input"
    assert "After" not in state.run_data


async def test_unknown_node_type_fails_on_that_node(execute):
    workflow = make_workflow([("Start", "Start"), ("Mystery", "DoesNotExist")], [("Start", "Mystery")])

    state = await execute.run(workflow)

    assert state.status == ExecutionStatus.ERROR
    assert state.error.node_name == "Mystery"
    assert state.error.name == "NodeNotFoundError"


async def test_continue_on_fail_emits_error_items(execute):
    workflow = make_workflow(
        [
            ("Start", "Start"),
            NodeDefinition(name="Flaky", type="Flaky", parameters={"failTimes": 10}, continue_on_fail=True),
            ("After", "NoOp"),
        ],
        [("Start", "Flaky"), ("Flaky", "After")],
    )

    state = await execute.run(workflow, trigger_data=items({"a": 1}, {"a": 2}))

    assert state.status == ExecutionStatus.SUCCESS
    assert output_json(state, "After") == [{"error": "attempt 1 failed"}] * 2
    error_items = state.run_data["Flaky"][0].data[0]
    assert [item.paired_item for item in error_items] == [PairedItem(item=0), PairedItem(item=1)]


async def test_retry_on_fail_retries_until_success(execute):
    workflow = make_workflow(
        [
            ("Start", "Start"),
            NodeDefinition(
                name="Flaky",
                type="Flaky",
                parameters={"failTimes": 2},
                retry_on_fail=True,
                max_tries=3,
                wait_between_tries=0,
            ),
        ],
        [("Start", "Flaky")],
    )

    state = await execute.run(workflow)

    assert state.status == ExecutionStatus.SUCCESS
    assert FlakyNode.calls["Flaky"] == 3
    assert len(state.run_data["Flaky"]) == 1


async def test_retry_on_fail_gives_up_after_max_tries(execute):
    workflow = make_workflow(
        [
            ("Start", "Start"),
            NodeDefinition(
                name="Flaky",
                type="Flaky",
                parameters={"failTimes": 10},
                retry_on_fail=True,
                max_tries=2,
                wait_between_tries=0,
            ),
        ],
        [("Start", "Flaky")],
    )

    state = await execute.run(workflow)

    assert state.status == ExecutionStatus.ERROR
    assert FlakyNode.calls["Flaky"] == 2
    assert state.error.message == "attempt 2 failed"


async def test_if_routes_items_to_both_branches(execute):
    workflow = make_workflow(
        [
            ("Start", "Start"),
            ("If", "If", {"field": "value", "operation": "gt", "value": 5}),
            ("High", "NoOp"),
            ("Low", "NoOp"),
        ],
        [("Start", "If"), ("If", "High", 0, 0), ("If", "Low", 1, 0)],
    )

    state = await execute.run(workflow, trigger_data=items({"value": 10}, {"value": 1}))

    assert output_json(state, "High") == [{"value": 10}]
    assert output_json(state, "Low") == [{"value": 1}]


async def test_empty_branch_is_not_executed(execute):
    workflow = make_workflow(
        [
            ("Start", "Start"),
            ("If", "If", {"field": "value", "operation": "gt", "value": 5}),
            ("High", "NoOp"),
            ("Low", "NoOp"),
        ],
        [("Start", "If"), ("If", "High", 0, 0), ("If", "Low", 1, 0)],
    )

    state = await execute.run(workflow, trigger_data=items({"value": 10}))

    assert "High" in state.run_data
    assert "Low" not in state.run_data
    assert output_json(state, "If", output=1) is None


async def test_merge_waits_for_both_inputs(execute):
    workflow = make_workflow(
        [
            ("Start", "Start"),
            ("A", "Set", {"fields": [{"name": "branch", "value": "a"}]}),
            ("B", "Set", {"fields": [{"name": "branch", "value": "b"}]}),
            ("Merge", "Merge", {"mode": "append"}),
        ],
        [("Start", "A"), ("Start", "B"), ("A", "Merge", 0, 0), ("B", "Merge", 0, 1)],
    )

    state = await execute.run(workflow, trigger_data=items({"n": 1}))

    assert len(state.run_data["Merge"]) == 1
    assert output_json(state, "Merge") == [{"n": 1, "branch": "a"}, {"n": 1, "branch": "b"}]
    assert state.run_data["Merge"][0].source[0].previous_node == "A"
    assert state.run_data["Merge"][0].source[1].previous_node == "B"
    assert state.data.execution_data.waiting_execution == {}


async def test_every_root_runs_without_a_trigger(execute):
    workflow = make_workflow(
        [
            ("First", "Set", {"fields": [{"name": "root", "value": 1}]}),
            ("Second", "Set", {"fields": [{"name": "root", "value": 2}]}),
        ]
    )

    state = await execute.run(workflow)

    assert state.status == ExecutionStatus.SUCCESS
    assert output_json(state, "First") == [{"root": 1}]
    assert output_json(state, "Second") == [{"root": 2}]
    assert state.data.result_data.last_node_executed == "Second"


async def test_two_roots_feed_both_merge_inputs(execute):
    workflow = make_workflow(
        [
            ("A", "Set", {"fields": [{"name": "branch", "value": "a"}]}),
            ("B", "Set", {"fields": [{"name": "branch", "value": "b"}]}),
            ("Merge", "Merge", {"mode": "append"}),
        ],
        [("A", "Merge", 0, 0), ("B", "Merge", 0, 1)],
    )

    state = await execute.run(workflow)

    assert state.status == ExecutionStatus.SUCCESS
    assert output_json(state, "Merge") == [{"branch": "a"}, {"branch": "b"}]
    assert state.data.execution_data.waiting_execution == {}


async def test_merge_runs_with_partial_input_once_nothing_else_can_run(execute):
    workflow = make_workflow(
        [
            ("Start", "Start"),
            ("If", "If", {"field": "ok", "operation": "isTrue"}),
            ("Merge", "Merge", {"mode": "append"}),
        ],
        [("Start", "If"), ("If", "Merge", 0, 0), ("If", "Merge", 1, 1)],
    )

    state = await execute.run(workflow, trigger_data=items({"ok": True}))

    assert state.status == ExecutionStatus.SUCCESS
    assert output_json(state, "Merge") == [{"ok": True}]


async def test_loop_runs_node_repeatedly(execute):
    workflow = make_workflow(
        [("Start", "Start"), ("Loop", "Loop", {"times": 3}), ("Done", "Counting")],
        [("Start", "Loop"), ("Loop", "Loop", 0, 0), ("Loop", "Done", 1, 0)],
    )

    state = await execute.run(workflow)

    assert state.status == ExecutionStatus.SUCCESS
    assert len(state.run_data["Loop"]) == 3
    assert [t.source[0].previous_node for t in state.run_data["Loop"]] == ["Start", "Loop", "Loop"]
    assert state.run_data["Loop"][2].source[0].previous_node_run == 1
    assert CountingNode.calls["Done"] == 1


async def test_max_node_executions_stops_runaway_loops(execute):
    workflow = make_workflow(
        [("Start", "Start"), ("Loop", "Loop", {"times": 1000})],
        [("Start", "Loop"), ("Loop", "Loop", 0, 0)],
        settings=WorkflowSettings(max_node_executions=5),
    )

    state = await execute.run(workflow)

    assert state.status == ExecutionStatus.ERROR
    assert "Maximum number of node executions (5)" in state.error.message
    assert len(state.run_data["Loop"]) == 4


async def test_pin_data_replaces_node_output(execute):
    workflow = linear_workflow()

    state = await execute.run(
        workflow, trigger_data=items({"value": 1}), pin_data={"Set": items({"pinned": True})}
    )

    assert output_json(state, "Set") == [{"pinned": True}]
    assert output_json(state, "Done") == [{"pinned": True}]


async def test_disabled_node_passes_items_through(execute):
    workflow = make_workflow(
        [
            ("Start", "Start"),
            NodeDefinition(name="Fail", type="StopAndError", disabled=True),
            ("Done", "NoOp"),
        ],
        [("Start", "Fail"), ("Fail", "Done")],
    )

    state = await execute.run(workflow, trigger_data=items({"x": 1}))

    assert state.status == ExecutionStatus.SUCCESS
    assert output_json(state, "Done") == [{"x": 1}]


async def test_destination_node_stops_the_run(execute):
    workflow = make_workflow(
        [("Start", "Start"), ("A", "NoOp"), ("B", "NoOp"), ("C", "NoOp")],
        [("Start", "A"), ("A", "B"), ("B", "C")],
    )

    state = await execute.run(workflow, destination_node="B")

    assert state.status == ExecutionStatus.SUCCESS
    assert state.data.result_data.last_node_executed == "B"
    assert "C" not in state.run_data


async def test_unknown_start_node_is_rejected(execute):
    with pytest.raises(ValidationError):
        await execute.run(linear_workflow(), start_node="Nope")


async def test_partial_run_reuses_earlier_results(registry, additional_data):
    workflow = make_workflow(
        [
            ("Start", "Start"),
            ("Set", "Set", {"fields": [{"name": "tag", "value": "x"}]}),
            ("Count", "Counting"),
        ],
        [("Start", "Set"), ("Set", "Count")],
    )
    first = await WorkflowExecute(additional_data, "manual", registry=registry).run(
        workflow, trigger_data=items({"value": 1})
    )

    second = await WorkflowExecute(additional_data, "manual", registry=registry).run_partial_workflow(
        workflow, first.run_data, ["Count"]
    )
    third = await WorkflowExecute(additional_data, "manual", registry=registry).run_partial_workflow(
        workflow, second.run_data, ["Count"]
    )

    assert CountingNode.calls["Count"] == 3
    assert output_json(second, "Count") == output_json(first, "Count")
    assert output_json(third, "Count") == output_json(first, "Count")
    assert len(third.run_data["Count"]) == 1
    assert len(third.run_data["Set"]) == 1


async def test_partial_run_without_parent_data_is_rejected(execute):
    with pytest.raises(ValidationError):
        await execute.run_partial_workflow(linear_workflow(), {}, ["Done"])


async def test_cancel_takes_effect_before_next_node(execute):
    workflow = make_workflow(
        [("Start", "Start"), ("Slow", "Slow", {"seconds": 0.3}), ("After", "NoOp")],
        [("Start", "Slow"), ("Slow", "After")],
    )

    task = asyncio.create_task(execute.run(workflow))
    await asyncio.sleep(0.1)
    execute.cancel()
    state = await task

    assert state.status == ExecutionStatus.CANCELED
    assert state.error.name == "WorkflowCanceledError"
    assert "Slow" in state.run_data
    assert "After" not in state.run_data


async def test_deadline_fails_the_run(execute, additional_data):
    additional_data.execution_timeout_at = time.time() + 0.1
    workflow = make_workflow(
        [("Start", "Start"), ("Slow", "Slow", {"seconds": 0.3}), ("After", "NoOp")],
        [("Start", "Slow"), ("Slow", "After")],
    )

    state = await execute.run(workflow)

    assert state.status == ExecutionStatus.ERROR
    assert state.error.name == "WorkflowTimeoutError"
    assert "After" not in state.run_data


async def test_finalizing_twice_keeps_the_first_result(execute, recording_hooks):
    state = await execute.run(linear_workflow())

    again = await execute.process_success_execution(execute.started_at, execute.workflow)

    assert again is state
    assert recording_hooks.names().count("workflowExecuteAfter") == 1


async def test_short_wait_sleeps_in_process(execute):
    workflow = make_workflow(
        [("Start", "Start"), ("Wait", "Wait", {"amount": 0.01}), ("After", "NoOp")],
        [("Start", "Wait"), ("Wait", "After")],
    )

    state = await execute.run(workflow)

    assert state.status == ExecutionStatus.SUCCESS
    assert state.wait_till is None
    assert "After" in state.run_data


async def test_long_wait_parks_and_resumes(registry, additional_data):
    workflow = make_workflow(
        [("Start", "Start"), ("Wait", "Wait", {"amount": 2, "unit": "minutes"}), ("After", "Counting")],
        [("Start", "Wait"), ("Wait", "After")],
    )

    parked = await WorkflowExecute(additional_data, "manual", registry=registry).run(
        workflow, trigger_data=items({"id": 7})
    )

    assert parked.status == ExecutionStatus.WAITING
    assert parked.finished is False
    assert parked.wait_till is not None
    assert parked.wait_till > datetime.now(timezone.utc) + timedelta(seconds=100)
    assert "After" not in parked.run_data
    assert [job.node for job in parked.data.execution_data.node_execution_stack] == ["After"]

    # Resume from the persisted form, as the wait tracker does
    stored = from_jsonable(to_jsonable(parked, ExecutionState), ExecutionState)
    resume = WorkflowExecute(additional_data, "manual", registry=registry)
    resume.run_execution_data = stored.data
    state = await resume.process_run_execution_data(workflow)

    assert state.status == ExecutionStatus.SUCCESS
    assert state.wait_till is None
    assert len(state.run_data["Wait"]) == 1
    assert output_json(state, "After") == [{"id": 7}]


async def test_changed_static_data_is_reported_on_success(execute, recording_hooks):
    workflow = make_workflow([("Start", "Start"), ("Counter", "StaticCounter")], [("Start", "Counter")])

    await execute.run(workflow)

    _, new_static_data = recording_hooks.calls[-1][1]
    assert new_static_data == {"global": {"count": 1}}


async def test_single_input_item_gets_paired_item(execute):
    state = await execute.run(linear_workflow(), trigger_data=items({"value": 3}))

    assert state.run_data["Done"][0].data[0][0].paired_item == PairedItem(item=0)
