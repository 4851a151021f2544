"""
Worker side of out-of-process execution.

The worker owns no database or UI connection. Every lifecycle hook is
forwarded to the coordinator as a ``processHook`` message, and nested
sub-workflows are requested from the coordinator but executed here.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Protocol

import httpx

from ..binary_data.service import binary_data_service
from ..core.config import settings
from ..core.exceptions import (
    TransportError,
    WorkflowCanceledError,
    WorkflowEngineError,
    WorkflowPermissionError,
    WorkflowTimeoutError,
)
from ..engine.execution_payload import WorkflowExecutionPayload, start_workflow_execute
from ..engine.hooks import HOOK_NAMES, WorkflowHooks
from ..engine.node_execute_functions import AdditionalData
from ..engine.permissions import check_permissions
from ..engine.serialization import dump_hook_parameters, from_jsonable, to_jsonable
from ..engine.types import ExecutionError, ExecutionItem, ExecutionMode, ExecutionState
from ..engine.workflow import Workflow
from ..engine.workflow_execute import (
    WorkflowExecute,
    build_canceled_execution,
    build_failed_execution,
    sub_workflow_output,
)
from . import channel as messages
from .channel import ExecutionIdCorrelation

logger = logging.getLogger(__name__)


class Channel(Protocol):
    async def send(self, message_type: str, data: dict[str, Any] | None = None) -> None: ...


class WorkflowRunnerProcess:
    """Runs one execution (plus its nested sub-workflows) inside a worker."""

    def __init__(self, channel: Channel, exit_process: Callable[[int], Any]) -> None:
        self.channel = channel
        self._exit_process = exit_process

        self.execution_id: str | None = None
        self.mode: ExecutionMode = "manual"
        self.workflow: Workflow | None = None
        self.workflow_execute: WorkflowExecute | None = None
        self.started_at = datetime.now(timezone.utc)

        # child execution id -> (engine, workflow) of running sub-workflows
        self.child_executions: dict[str, tuple[WorkflowExecute, Workflow]] = {}
        self._finished_children: set[str] = set()
        self.correlation = ExecutionIdCorrelation()

        self._run_task: asyncio.Task | None = None
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    async def send(self, message_type: str, data: dict[str, Any] | None = None) -> None:
        """Send to the coordinator; failures are logged, never raised."""
        try:
            await self.channel.send(message_type, data)
        except TransportError as e:
            logger.error("%s", e.message)

    async def handle_message(self, message: dict[str, Any]) -> None:
        message_type = message.get("type")
        data = message.get("data") or {}

        if message_type == messages.START_WORKFLOW:
            await self.send(messages.START)
            self._run_task = asyncio.create_task(self.run_workflow(data))
        elif message_type == messages.EXECUTION_ID:
            self.correlation.resolve(data.get("requestId", ""), data)
        elif message_type in (messages.STOP_EXECUTION, messages.TIMEOUT):
            await self.stop(timeout=message_type == messages.TIMEOUT)
        else:
            logger.warning("Ignoring unknown message type %r", message_type)

    async def run_workflow(self, data: dict[str, Any]) -> None:
        try:
            payload = from_jsonable(data["payload"], WorkflowExecutionPayload)
            self.execution_id = data["executionId"]
            self.mode = payload.mode
            self.workflow = payload.workflow
            self.started_at = datetime.now(timezone.utc)

            await binary_data_service.init(
                settings.binary_data_mode,
                settings.binary_data_modes,
                settings.binary_data_storage_path,
            )

            hooks = self._get_process_forward_hooks(self.execution_id, payload.workflow)
            additional_data = AdditionalData(
                execution_id=self.execution_id,
                hooks=hooks,
                execution_timeout_at=data.get("executionTimeoutAt"),
                restart_execution_id=self.execution_id if payload.execution_data else None,
                user_id=payload.user_id,
                send_data_to_ui=self._send_data_to_ui if payload.mode == "manual" else None,
                execute_workflow=self._execute_sub_workflow,
                binary_data=binary_data_service,
            )

            try:
                check_permissions(payload.workflow)
            except WorkflowPermissionError as e:
                node = payload.workflow.get_node(e.node_name) if e.node_name else None
                failed = build_failed_execution(payload.mode, e, node, self.started_at)
                await hooks.execute_hook_functions("workflowExecuteAfter", failed, None)
                await self._finish(messages.END, failed)
                return

            self.workflow_execute = WorkflowExecute(additional_data, payload.mode)
            async with httpx.AsyncClient(follow_redirects=True, timeout=30.0) as client:
                additional_data.http_client = client
                state = await start_workflow_execute(self.workflow_execute, payload)
            await self._finish(messages.END, state)
        except Exception as e:
            logger.exception("Worker failed to run execution %s", self.execution_id)
            await self.send(
                messages.PROCESS_ERROR,
                {"executionError": to_jsonable(ExecutionError.from_exception(e), ExecutionError)},
            )
            self._exit(1)

    async def stop(self, timeout: bool = False) -> None:
        """Finalize every in-flight execution as canceled or timed out, reply and exit."""
        if self._done:
            return
        error = WorkflowTimeoutError() if timeout else WorkflowCanceledError()
        execution_error = ExecutionError.from_exception(error)

        for child_id, (execute, workflow) in list(self.child_executions.items()):
            execute.cancel()
            state = await execute.process_success_execution(
                execute.started_at, workflow, execution_error
            )
            await self._send_finish_execution(child_id, state)
        self.child_executions.clear()

        if self.workflow_execute is not None and self.workflow is not None:
            self.workflow_execute.cancel()
            state = await self.workflow_execute.process_success_execution(
                self.workflow_execute.started_at, self.workflow, execution_error
            )
        else:
            state = build_canceled_execution(self.mode, error, started_at=self.started_at)

        await self._finish(messages.TIMEOUT if timeout else messages.END, state)

    async def _finish(self, message_type: str, state: ExecutionState) -> None:
        """Send the final state exactly once, then exit."""
        if self._done:
            return
        self._done = True
        await self.send(message_type, {"runData": to_jsonable(state, ExecutionState)})
        self.correlation.cancel_all()
        if self._run_task is not None and self._run_task is not asyncio.current_task():
            self._run_task.cancel()
        self._exit(0)

    def _exit(self, code: int) -> None:
        self._done = True
        self._exit_process(code)

    # --- Hooks ---

    def _get_process_forward_hooks(self, execution_id: str, workflow: Workflow) -> WorkflowHooks:
        hooks = WorkflowHooks(mode=self.mode, execution_id=execution_id, workflow=workflow)
        for name in HOOK_NAMES:
            if name == "sendResponse":
                hooks.add_handler(name, self._send_response)
            else:
                hooks.add_handler(name, self._forwarder(execution_id, name))
        return hooks

    def _forwarder(self, execution_id: str, hook_name: str) -> Callable[..., Awaitable[None]]:
        async def forward(*parameters: Any) -> None:
            await self.send(
                messages.PROCESS_HOOK,
                {
                    "executionId": execution_id,
                    "hook": hook_name,
                    "parameters": dump_hook_parameters(hook_name, parameters),
                },
            )

        return forward

    async def _send_response(self, response: dict[str, Any]) -> None:
        await self.send(messages.SEND_RESPONSE, {"response": response})

    def _send_data_to_ui(self, message_type: str, data: Any) -> None:
        asyncio.get_running_loop().create_task(
            self.send(messages.SEND_DATA_TO_UI, {"type": message_type, "data": data})
        )

    # --- Sub-workflows ---

    async def _execute_sub_workflow(
        self,
        workflow_info: dict[str, Any],
        additional_data: AdditionalData,
        input_data: list[ExecutionItem],
        parent_workflow_id: str | None,
    ) -> list[list[ExecutionItem] | None]:
        request_id, future = self.correlation.register()
        await self.send(
            messages.START_EXECUTION,
            {
                "requestId": request_id,
                "parentExecutionId": additional_data.execution_id,
                "workflowInfo": workflow_info,
                "inputData": to_jsonable(input_data, list[ExecutionItem]),
                "parentWorkflowId": parent_workflow_id,
            },
        )
        try:
            reply = await future
        finally:
            self.correlation.discard(request_id)

        if reply.get("error"):
            raise WorkflowEngineError(reply["error"])

        child_id: str = reply["executionId"]
        workflow = from_jsonable(reply["workflowData"], Workflow)

        child_additional = AdditionalData(
            execution_id=child_id,
            hooks=self._get_process_forward_hooks(child_id, workflow),
            execution_timeout_at=additional_data.execution_timeout_at,
            user_id=additional_data.user_id,
            send_data_to_ui=additional_data.send_data_to_ui,
            execute_workflow=self._execute_sub_workflow,
            binary_data=additional_data.binary_data,
            http_client=additional_data.http_client,
        )
        execute = WorkflowExecute(child_additional, "integrated")
        self.child_executions[child_id] = (execute, workflow)

        try:
            check_permissions(workflow, parent_workflow_id)
            state = await execute.run(workflow, trigger_data=input_data)
        except Exception as e:
            failed = build_failed_execution("integrated", e)
            await self._send_finish_execution(child_id, failed)
            raise
        finally:
            self.child_executions.pop(child_id, None)

        await self._send_finish_execution(child_id, state)
        return sub_workflow_output(state)

    async def _send_finish_execution(self, execution_id: str, state: ExecutionState) -> None:
        if execution_id in self._finished_children:
            return
        self._finished_children.add(execution_id)
        await self.send(
            messages.FINISH_EXECUTION,
            {"executionId": execution_id, "result": to_jsonable(state, ExecutionState)},
        )
