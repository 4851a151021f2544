"""Test node types and small builders for workflows and items."""

from __future__ import annotations

import asyncio
from typing import Any

from nodeflow.core.exceptions import NodeExecutionError
from nodeflow.engine.types import ExecutionItem
from nodeflow.engine.workflow import Connection, NodeDefinition, Workflow
from nodeflow.nodes.base import BaseNode, NodeOutputDefinition, NodeTypeDescription
from nodeflow.repositories import ExecutionRepository, WorkflowRepository


class FlakyNode(BaseNode):
    """Fails the first ``failTimes`` calls, then passes items through."""

    calls: dict[str, int] = {}

    node_description = NodeTypeDescription(
        name="Flaky", display_name="Flaky", description="Fails a given number of times"
    )

    async def execute(self, context):
        key = context.node.name
        FlakyNode.calls[key] = FlakyNode.calls.get(key, 0) + 1
        if FlakyNode.calls[key] <= int(context.get_node_parameter("failTimes", default=0)):
            raise NodeExecutionError(context.node.name, f"attempt {FlakyNode.calls[key]} failed")
        return self.output(context.get_input_data())


class CountingNode(BaseNode):
    """Counts invocations per node name, passes items through."""

    calls: dict[str, int] = {}

    node_description = NodeTypeDescription(
        name="Counting", display_name="Counting", description="Counts invocations"
    )

    async def execute(self, context):
        CountingNode.calls[context.node.name] = CountingNode.calls.get(context.node.name, 0) + 1
        return self.output(context.get_input_data())


class SlowNode(BaseNode):
    node_description = NodeTypeDescription(
        name="Slow", display_name="Slow", description="Sleeps before passing items through"
    )

    async def execute(self, context):
        await asyncio.sleep(float(context.get_node_parameter("seconds", default=0.2)))
        return self.output(context.get_input_data())


class LoopNode(BaseNode):
    """Emits on output 0 until ``times`` runs, then on output 1."""

    node_description = NodeTypeDescription(
        name="Loop",
        display_name="Loop",
        description="Runs itself a number of times",
        outputs=[
            NodeOutputDefinition(name="loop", display_name="Loop"),
            NodeOutputDefinition(name="done", display_name="Done"),
        ],
    )

    async def execute(self, context):
        items = context.get_input_data()
        if context.run_index + 1 < int(context.get_node_parameter("times", default=3)):
            return self.outputs(items, None)
        return self.outputs(None, items)


class StaticCounterNode(BaseNode):
    node_description = NodeTypeDescription(
        name="StaticCounter", display_name="Static Counter", description="Counts runs in static data"
    )

    async def execute(self, context):
        static = context.get_workflow_static_data("global")
        static["count"] = static.get("count", 0) + 1
        return self.output(context.get_input_data())


TEST_NODES = [FlakyNode, CountingNode, SlowNode, LoopNode, StaticCounterNode]


def make_workflow(
    nodes: list[tuple[str, str] | tuple[str, str, dict[str, Any]] | NodeDefinition],
    connections: list[tuple] | None = None,
    **kwargs: Any,
) -> Workflow:
    """
    Build a workflow from short tuples.

    Nodes are ``(name, type)`` or ``(name, type, parameters)``; connections
    are ``(source, target)`` or ``(source, target, source_output, target_input)``.
    """
    definitions = []
    for node in nodes:
        if isinstance(node, NodeDefinition):
            definitions.append(node)
        elif len(node) == 2:
            definitions.append(NodeDefinition(name=node[0], type=node[1]))
        else:
            definitions.append(NodeDefinition(name=node[0], type=node[1], parameters=node[2]))
    return Workflow(
        name=kwargs.pop("name", "Test workflow"),
        nodes=definitions,
        connections=[Connection(*c) for c in connections or []],
        **kwargs,
    )


def items(*payloads: dict[str, Any]) -> list[ExecutionItem]:
    return [ExecutionItem(json=dict(p)) for p in payloads]


def output_json(state, node_name: str, run: int = -1, output: int = 0) -> list[dict[str, Any]] | None:
    """JSON of one node output in a finished run."""
    tasks = state.run_data[node_name]
    data = tasks[run].data
    if data is None or output >= len(data) or data[output] is None:
        return None
    return [item.json for item in data[output]]


async def store(session_factory, workflow: Workflow):
    async with session_factory() as session:
        return await WorkflowRepository(session).create(workflow)


async def reload(session_factory, workflow_id: str) -> Workflow:
    async with session_factory() as session:
        return (await WorkflowRepository(session).get(workflow_id)).workflow


async def load_execution(session_factory, execution_id: str):
    async with session_factory() as session:
        return await ExecutionRepository(session).get(execution_id)


async def wait_for_status(session_factory, execution_id: str, status, timeout: float = 5.0):
    """Poll the stored record until it reaches ``status``."""
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        record = await load_execution(session_factory, execution_id)
        if record is not None and record.state.status == status:
            return record
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError(f"{execution_id} never reached {status}")
        await asyncio.sleep(0.05)
