"""
Workflow execution engine.

Drives a workflow graph node by node from a single execution stack. Nodes
with several connected inputs are parked in ``waiting_execution`` until every
input has received data. Cancellation and the execution deadline are only
observed between two node invocations.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from ..core.config import settings
from ..core.exceptions import (
    NodeExecutionError,
    ValidationError,
    WorkflowCanceledError,
    WorkflowOperationError,
    WorkflowTimeoutError,
)
from ..nodes.base import NodeKind
from .hooks import WorkflowHooks
from .node_execute_functions import AdditionalData, NodeExecutionContext
from .types import (
    ExecuteJob,
    ExecutionData,
    ExecutionError,
    ExecutionItem,
    ExecutionMode,
    ExecutionState,
    ExecutionStatus,
    PairedItem,
    PendingInput,
    ResultData,
    RunData,
    RunExecutionData,
    StartData,
    TaskData,
    TaskDataSource,
    WaitingExecution,
    check_transition,
)

if TYPE_CHECKING:
    from .node_registry import NodeRegistryClass
    from .workflow import Connection, NodeDefinition, Workflow

logger = logging.getLogger(__name__)

NodeOutputs = list[list[ExecutionItem] | None]


class WorkflowExecute:
    """Executes one run of a workflow."""

    def __init__(
        self,
        additional_data: AdditionalData,
        mode: ExecutionMode,
        run_execution_data: RunExecutionData | None = None,
        registry: NodeRegistryClass | None = None,
    ) -> None:
        if registry is None:
            from .node_registry import node_registry

            registry = node_registry
        self._registry = registry
        self.additional_data = additional_data
        if additional_data.hooks is None:
            additional_data.hooks = WorkflowHooks(mode=mode, execution_id=additional_data.execution_id)
        self.hooks = additional_data.hooks
        self.mode = mode
        self.run_execution_data = run_execution_data or RunExecutionData()
        self.status = ExecutionStatus.NEW
        self.started_at = datetime.now(timezone.utc)
        self.workflow: Workflow | None = None

        self._canceled = False
        self._finalized: ExecutionState | None = None
        self._node_executions = 0
        self._static_data_snapshot: dict[str, Any] | None = None

    # --- Entry points ---

    async def run(
        self,
        workflow: Workflow,
        start_node: str | None = None,
        destination_node: str | None = None,
        pin_data: dict[str, list[ExecutionItem]] | None = None,
        trigger_data: list[ExecutionItem] | None = None,
    ) -> ExecutionState:
        """
        Run a workflow from its start node.

        Args:
            workflow: The workflow to execute
            start_node: Node to start from (defaults to the trigger node, else
                every node without incoming connections)
            destination_node: Stop as soon as this node has produced output
            pin_data: Fixed output per node name, overriding live execution
            trigger_data: Items handed to the start node

        Returns:
            The final ExecutionState. Node failures end up in
            ``data.result_data.error`` and are never raised.
        """
        workflow.validate()
        starts = self._resolve_start_nodes(workflow, start_node)

        run_node_filter = None
        if destination_node is not None:
            if workflow.get_node(destination_node) is None:
                raise ValidationError(
                    f'Destination node "{destination_node}" not found', field="destination_node"
                )
            run_node_filter = [*workflow.get_all_parent_nodes(destination_node), destination_node]

        self.run_execution_data = RunExecutionData(
            start_data=StartData(destination_node=destination_node, run_node_filter=run_node_filter),
            result_data=ResultData(pin_data=pin_data if pin_data is not None else workflow.pin_data),
            execution_data=ExecutionData(
                node_execution_stack=[
                    ExecuteJob(node=start.name, data=[trigger_data or [ExecutionItem()]], source=[None])
                    for start in starts
                ]
            ),
        )
        return await self.process_run_execution_data(workflow)

    async def run_partial_workflow(
        self,
        workflow: Workflow,
        run_data: RunData,
        start_nodes: list[str],
        destination_node: str | None = None,
        pin_data: dict[str, list[ExecutionItem]] | None = None,
    ) -> ExecutionState:
        """
        Re-run a workflow from ``start_nodes`` on top of earlier results.

        Each start node gets its input from the last recorded output of its
        parents in ``run_data``. Results of the start nodes and everything
        downstream of them are discarded and recomputed.
        """
        workflow.validate()
        if not start_nodes:
            raise ValidationError("At least one start node is required", field="start_nodes")

        rerun: set[str] = set()
        for name in start_nodes:
            if workflow.get_node(name) is None:
                raise ValidationError(f'Start node "{name}" not found', field="start_nodes")
            rerun.add(name)
            rerun.update(workflow.get_all_child_nodes(name))
        kept: RunData = {name: list(tasks) for name, tasks in run_data.items() if name not in rerun}

        stack = [self._partial_start_job(workflow, name, kept) for name in start_nodes]

        run_node_filter = None
        if destination_node is not None:
            run_node_filter = [*workflow.get_all_parent_nodes(destination_node), destination_node]

        self.run_execution_data = RunExecutionData(
            start_data=StartData(destination_node=destination_node, run_node_filter=run_node_filter),
            result_data=ResultData(
                run_data=kept,
                pin_data=pin_data if pin_data is not None else workflow.pin_data,
            ),
            execution_data=ExecutionData(node_execution_stack=stack),
        )
        return await self.process_run_execution_data(workflow)

    async def process_run_execution_data(self, workflow: Workflow) -> ExecutionState:
        """Work through the execution stack, then finalize the run."""
        self.workflow = workflow
        self.started_at = datetime.now(timezone.utc)
        self._static_data_snapshot = copy.deepcopy(workflow.static_data)

        run_execution_data = self.run_execution_data
        self.status = (
            ExecutionStatus.WAITING if run_execution_data.wait_till else ExecutionStatus.NEW
        )
        run_execution_data.wait_till = None
        self._transition(ExecutionStatus.RUNNING)

        await self.hooks.execute_hook_functions("workflowExecuteBefore", workflow, run_execution_data)

        execution_error: ExecutionError | None = None
        try:
            await self._process_stack(workflow)
        except WorkflowOperationError as e:
            logger.info("Execution %s stopped: %s", self.additional_data.execution_id, e.message)
            execution_error = ExecutionError.from_exception(
                e, run_execution_data.result_data.last_node_executed
            )
        except Exception as e:
            logger.exception("Execution %s failed", self.additional_data.execution_id)
            execution_error = ExecutionError.from_exception(
                e, run_execution_data.result_data.last_node_executed
            )

        return await self.process_success_execution(self.started_at, workflow, execution_error)

    def get_full_run_data(self, started_at: datetime | None = None) -> ExecutionState:
        """Snapshot of the run as it stands now."""
        return ExecutionState(
            mode=self.mode,
            started_at=started_at or self.started_at,
            status=self.status,
            data=self.run_execution_data,
            finished=self.status == ExecutionStatus.SUCCESS,
            wait_till=self.run_execution_data.wait_till,
        )

    async def process_success_execution(
        self,
        started_at: datetime,
        workflow: Workflow,
        execution_error: ExecutionError | None = None,
    ) -> ExecutionState:
        """
        Finalize the run and fire ``workflowExecuteAfter``.

        Safe to call more than once (a stop request and the run itself may
        both try); only the first call has any effect.
        """
        if self._finalized is not None:
            return self._finalized

        result_data = self.run_execution_data.result_data
        if execution_error is not None:
            result_data.error = execution_error

        if result_data.error is not None:
            status = (
                ExecutionStatus.CANCELED
                if result_data.error.name == WorkflowCanceledError.__name__
                else ExecutionStatus.ERROR
            )
        elif self.run_execution_data.wait_till is not None:
            status = ExecutionStatus.WAITING
        else:
            status = ExecutionStatus.SUCCESS
        self._transition(status)

        full_run_data = self.get_full_run_data(started_at)
        full_run_data.stopped_at = datetime.now(timezone.utc)
        self._finalized = full_run_data

        new_static_data = None
        if status == ExecutionStatus.SUCCESS and workflow.static_data != self._static_data_snapshot:
            new_static_data = workflow.static_data

        await self.hooks.execute_hook_functions("workflowExecuteAfter", full_run_data, new_static_data)
        return full_run_data

    def cancel(self) -> None:
        """Request cancellation; takes effect before the next node starts."""
        self._canceled = True

    @property
    def finalized(self) -> bool:
        return self._finalized is not None

    # --- Stack processing ---

    async def _process_stack(self, workflow: Workflow) -> None:
        run_execution_data = self.run_execution_data
        stack = run_execution_data.execution_data.node_execution_stack
        result_data = run_execution_data.result_data
        start_data = run_execution_data.start_data
        max_node_executions = (
            workflow.settings.max_node_executions or settings.max_node_executions
        )

        while True:
            if not stack:
                forced = self._pop_ready_waiting_job(workflow)
                if forced is None:
                    break
                stack.append(forced)

            self._check_stop_conditions()
            job = stack.pop(0)

            if start_data.run_node_filter is not None and job.node not in start_data.run_node_filter:
                logger.debug('Skipping node "%s" outside of the node filter', job.node)
                continue

            node = workflow.get_node(job.node)
            if node is None:
                raise WorkflowOperationError(f'Node "{job.node}" is not part of the workflow')

            self._node_executions += 1
            if self._node_executions > max_node_executions:
                raise WorkflowOperationError(
                    f"Maximum number of node executions ({max_node_executions}) exceeded"
                )

            run_index = len(result_data.run_data.get(node.name, []))
            await self.hooks.execute_hook_functions("nodeExecuteBefore", node.name)

            task_data = TaskData(start_time=datetime.now(timezone.utc), source=list(job.source))
            started = time.monotonic()
            try:
                outputs = await self._run_node_with_retries(workflow, job, node, run_index)
            except Exception as e:
                logger.warning('Node "%s" failed: %s', node.name, e)
                task_data.error = ExecutionError.from_exception(e, node.name)
                task_data.execution_time = (time.monotonic() - started) * 1000
                result_data.run_data.setdefault(node.name, []).append(task_data)
                result_data.last_node_executed = node.name
                result_data.error = task_data.error
                await self.hooks.execute_hook_functions(
                    "nodeExecuteAfter", node.name, task_data, run_execution_data
                )
                return

            task_data.data = outputs
            task_data.execution_time = (time.monotonic() - started) * 1000
            result_data.run_data.setdefault(node.name, []).append(task_data)
            result_data.last_node_executed = node.name
            await self.hooks.execute_hook_functions(
                "nodeExecuteAfter", node.name, task_data, run_execution_data
            )

            if start_data.destination_node == node.name:
                logger.debug('Destination node "%s" reached', node.name)
                return

            self._route_outputs(workflow, node, outputs, run_index)

            if run_execution_data.wait_till is not None:
                return

    def _check_stop_conditions(self) -> None:
        if self._canceled:
            raise WorkflowCanceledError()
        deadline = self.additional_data.execution_timeout_at
        if deadline is not None and time.time() >= deadline:
            raise WorkflowTimeoutError()

    async def _run_node_with_retries(
        self, workflow: Workflow, job: ExecuteJob, node: NodeDefinition, run_index: int
    ) -> NodeOutputs:
        tries = min(max(node.max_tries, 2), 5) if node.retry_on_fail else 1
        wait_between = min(max(node.wait_between_tries, 0), 5000) / 1000

        last_error: Exception | None = None
        for attempt in range(tries):
            try:
                return await self.run_node(workflow, job, node, run_index)
            except Exception as e:
                last_error = e
                if attempt + 1 < tries:
                    logger.info(
                        'Node "%s" failed (try %d of %d), retrying: %s',
                        node.name,
                        attempt + 1,
                        tries,
                        e,
                    )
                    if wait_between:
                        await asyncio.sleep(wait_between)

        assert last_error is not None
        if node.continue_on_fail:
            return [self._error_items(job, last_error)]
        raise last_error

    def _error_items(self, job: ExecuteJob, error: Exception) -> list[ExecutionItem]:
        """One error-carrying item per input item, in input order."""
        message = error.message if isinstance(error, NodeExecutionError) else str(error)
        message = message or type(error).__name__
        input_items = job.data[0] if job.data and job.data[0] else []
        if not input_items:
            return [ExecutionItem(json={"error": message})]
        return [
            ExecutionItem(json={"error": message}, paired_item=PairedItem(item=index))
            for index in range(len(input_items))
        ]

    async def run_node(
        self, workflow: Workflow, job: ExecuteJob, node: NodeDefinition, run_index: int
    ) -> NodeOutputs:
        """Produce the outputs of one node invocation."""
        pin_data = self.run_execution_data.result_data.pin_data or {}
        if node.name in pin_data:
            return [copy.deepcopy(pin_data[node.name])]

        input_items = job.data[0] if job.data else None
        if node.disabled:
            return [input_items]

        node_type = self._registry.get(node.type, node.type_version)
        context = NodeExecutionContext(
            workflow=workflow,
            node=node,
            input_data=job.data,
            run_execution_data=self.run_execution_data,
            run_index=run_index,
            additional_data=self.additional_data,
            mode=self.mode,
        )

        if node_type.kind is NodeKind.EXECUTE:
            result = await node_type.execute(context)
        elif node_type.kind is NodeKind.POLL and self.mode == "manual":
            result = await node_type.poll(context)
        elif node_type.kind is NodeKind.TRIGGER and self.mode == "manual":
            result = await node_type.trigger(context)
        else:
            # Trigger and webhook data is already the input of the node
            return [input_items or [ExecutionItem()]]

        outputs: NodeOutputs = list(result.outputs) if result is not None else []
        if node.always_output_data and not any(outputs):
            outputs = [[ExecutionItem()]] + outputs[1:]

        if input_items is not None and len(input_items) == 1:
            for items in outputs:
                for item in items or []:
                    if item.paired_item is None:
                        item.paired_item = PairedItem(item=0)
        return outputs

    # --- Routing ---

    def _route_outputs(
        self, workflow: Workflow, node: NodeDefinition, outputs: NodeOutputs, run_index: int
    ) -> None:
        for output_index, items in enumerate(outputs):
            if not items:
                continue
            source = TaskDataSource(
                previous_node=node.name,
                previous_node_output=output_index,
                previous_node_run=run_index,
            )
            for conn in workflow.outgoing(node.name, output_index):
                self._add_to_stack(workflow, conn, items, source)

    def _add_to_stack(
        self,
        workflow: Workflow,
        conn: Connection,
        items: list[ExecutionItem],
        source: TaskDataSource,
    ) -> None:
        execution_data = self.run_execution_data.execution_data
        connected = workflow.connected_inputs(conn.target_node)

        if len(connected) <= 1:
            input_count = conn.target_input + 1
            data: list[list[ExecutionItem] | None] = [None] * input_count
            sources: list[TaskDataSource | None] = [None] * input_count
            data[conn.target_input] = items
            sources[conn.target_input] = source
            execution_data.node_execution_stack.append(
                ExecuteJob(node=conn.target_node, data=data, source=sources)
            )
            return

        waiting = execution_data.waiting_execution.setdefault(conn.target_node, [])
        entry = next(
            (
                w
                for w in waiting
                if not w.has_contribution(
                    source.previous_node, source.previous_node_output, conn.target_input
                )
            ),
            None,
        )
        if entry is None:
            entry = WaitingExecution(node=conn.target_node)
            waiting.append(entry)
        entry.pending.append(
            PendingInput(
                input_index=conn.target_input,
                order=workflow.connection_index(conn),
                source=source,
                items=items,
            )
        )

        if set(connected) <= entry.arrived_inputs():
            self._release_waiting(conn.target_node, entry)
            execution_data.node_execution_stack.append(
                entry.to_job(self._input_count(workflow, conn.target_node))
            )

    def _pop_ready_waiting_job(self, workflow: Workflow) -> ExecuteJob | None:
        """A parked node whose missing inputs are all optional, if any."""
        waiting_execution = self.run_execution_data.execution_data.waiting_execution
        for node_name, entries in list(waiting_execution.items()):
            optional = self._optional_inputs(workflow, node_name)
            for entry in list(entries):
                missing = set(workflow.connected_inputs(node_name)) - entry.arrived_inputs()
                if missing <= optional:
                    self._release_waiting(node_name, entry)
                    return entry.to_job(self._input_count(workflow, node_name))
        return None

    def _release_waiting(self, node_name: str, entry: WaitingExecution) -> None:
        waiting_execution = self.run_execution_data.execution_data.waiting_execution
        entries = waiting_execution.get(node_name, [])
        if entry in entries:
            entries.remove(entry)
        if not entries:
            waiting_execution.pop(node_name, None)

    def _optional_inputs(self, workflow: Workflow, node_name: str) -> set[int]:
        node = workflow.get_node(node_name)
        if node is None:
            return set()
        optional = set(node.optional_inputs)
        if self._registry.has(node.type, node.type_version):
            optional |= self._registry.get(node.type, node.type_version).optional_inputs
        return optional

    def _input_count(self, workflow: Workflow, node_name: str) -> int:
        count = max(workflow.connected_inputs(node_name), default=0) + 1
        node = workflow.get_node(node_name)
        if node is not None and self._registry.has(node.type, node.type_version):
            count = max(count, self._registry.get(node.type, node.type_version).input_count)
        return count

    # --- Helpers ---

    def _resolve_start_nodes(
        self, workflow: Workflow, start_node: str | None
    ) -> list[NodeDefinition]:
        """Explicit start node, else the first trigger, else every root in declaration order."""
        if start_node is not None:
            node = workflow.get_node(start_node)
            if node is None:
                raise ValidationError(f'Start node "{start_node}" not found', field="start_node")
            return [node]

        for node in workflow.nodes:
            if node.disabled or not self._registry.has(node.type, node.type_version):
                continue
            if self._registry.get(node.type, node.type_version).is_trigger:
                return [node]

        candidates = workflow.nodes_without_inputs()
        if not candidates:
            raise ValidationError("Workflow has no node to start from", field="nodes")
        return candidates

    def _partial_start_job(self, workflow: Workflow, node_name: str, run_data: RunData) -> ExecuteJob:
        incoming = workflow.incoming(node_name)
        if not incoming:
            return ExecuteJob(node=node_name, data=[[ExecutionItem()]], source=[None])

        input_count = self._input_count(workflow, node_name)
        data: list[list[ExecutionItem] | None] = [None] * input_count
        sources: list[TaskDataSource | None] = [None] * input_count
        for conn in incoming:
            tasks = run_data.get(conn.source_node)
            if not tasks or not tasks[-1].data or conn.source_output >= len(tasks[-1].data):
                continue
            items = tasks[-1].data[conn.source_output]
            if not items:
                continue
            data[conn.target_input] = (data[conn.target_input] or []) + copy.deepcopy(items)
            if sources[conn.target_input] is None:
                sources[conn.target_input] = TaskDataSource(
                    previous_node=conn.source_node,
                    previous_node_output=conn.source_output,
                    previous_node_run=len(tasks) - 1,
                )

        if all(items is None for items in data):
            raise ValidationError(
                f'No input data for start node "{node_name}" in the given run data',
                field="run_data",
            )
        return ExecuteJob(node=node_name, data=data, source=sources)

    def _transition(self, status: ExecutionStatus) -> None:
        self.status = check_transition(self.status, status)


def build_failed_execution(
    mode: ExecutionMode,
    error: Exception,
    node: NodeDefinition | None = None,
    started_at: datetime | None = None,
) -> ExecutionState:
    """A terminal ``error`` run for failures raised before the engine started."""
    execution_error = ExecutionError.from_exception(error, node.name if node else None)
    run_data: RunData = {}
    if node is not None:
        run_data[node.name] = [
            TaskData(start_time=started_at or datetime.now(timezone.utc), error=execution_error)
        ]
    return ExecutionState(
        mode=mode,
        started_at=started_at or datetime.now(timezone.utc),
        status=ExecutionStatus.ERROR,
        stopped_at=datetime.now(timezone.utc),
        data=RunExecutionData(
            result_data=ResultData(
                run_data=run_data,
                last_node_executed=execution_error.node_name,
                error=execution_error,
            ),
            execution_data=ExecutionData(),
        ),
    )


def build_canceled_execution(
    mode: ExecutionMode,
    error: WorkflowOperationError,
    run_execution_data: RunExecutionData | None = None,
    started_at: datetime | None = None,
) -> ExecutionState:
    """A terminal run for a stop or timeout that arrived before the engine started."""
    run_execution_data = run_execution_data or RunExecutionData()
    run_execution_data.result_data.error = ExecutionError.from_exception(error)
    status = (
        ExecutionStatus.CANCELED
        if isinstance(error, WorkflowCanceledError)
        else ExecutionStatus.ERROR
    )
    return ExecutionState(
        mode=mode,
        started_at=started_at or datetime.now(timezone.utc),
        status=status,
        stopped_at=datetime.now(timezone.utc),
        data=run_execution_data,
    )


def sub_workflow_output(state: ExecutionState) -> list[list[ExecutionItem] | None]:
    """Output of the last node a sub-workflow executed; raises if the sub-workflow failed."""
    result_data = state.data.result_data
    if result_data.error is not None:
        raise NodeExecutionError(
            result_data.error.node_name or "",
            result_data.error.message,
            description=result_data.error.description,
        )
    last_node = result_data.last_node_executed
    if last_node is None or not result_data.run_data.get(last_node):
        return [None]
    return result_data.run_data[last_node][-1].data or [None]
