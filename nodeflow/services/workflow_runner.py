"""
Coordinator: starts executions in this process or in a worker process.

In ``own`` mode every execution gets a fresh ``python -m nodeflow.worker``
subprocess. The worker forwards its lifecycle hooks over stdout and the
coordinator replays them against the real persistence and push handlers.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from typing import TYPE_CHECKING, Any

import httpx

from ..binary_data.service import binary_data_service
from ..core.config import settings
from ..core.exceptions import (
    ExecutionNotFoundError,
    ValidationError,
    WorkflowCanceledError,
    WorkflowEngineError,
    WorkflowNotFoundError,
    WorkflowOperationError,
    WorkflowPermissionError,
    WorkflowTimeoutError,
)
from ..engine.execution_payload import WorkflowExecutionPayload, start_workflow_execute
from ..engine.hooks import WorkflowHooks
from ..engine.node_execute_functions import AdditionalData
from ..engine.permissions import check_permissions
from ..engine.serialization import from_jsonable, load_hook_parameters, to_jsonable
from ..engine.types import (
    ExecutionError,
    ExecutionItem,
    ExecutionMode,
    ExecutionState,
    ExecutionStatus,
    utc_now,
)
from ..engine.workflow import Workflow
from ..engine.workflow_execute import (
    WorkflowExecute,
    build_canceled_execution,
    build_failed_execution,
    sub_workflow_output,
)
from ..repositories import ExecutionRepository, WorkflowRepository
from ..worker import channel as messages
from ..worker.channel import MAX_MESSAGE_SIZE, decode_message, encode_message
from .lifecycle_hooks import get_lifecycle_hooks

if TYPE_CHECKING:
    from sqlalchemy.orm import sessionmaker

    from .active_executions import ActiveExecutions
    from .push_service import PushService

logger = logging.getLogger(__name__)

CRASH_MESSAGE = "Workflow did not finish, possible out-of-memory issue"


def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        # Exited between the check and the signal
        pass


class WorkflowRunner:
    """Starts, stops and supervises executions."""

    def __init__(
        self,
        active_executions: ActiveExecutions,
        push: PushService,
        session_factory: sessionmaker | None = None,
        executions_process: str | None = None,
    ) -> None:
        if session_factory is None:
            from ..db.session import async_session_factory

            session_factory = async_session_factory
        self.active_executions = active_executions
        self.push = push
        self.session_factory = session_factory
        self.executions_process = executions_process or settings.executions_process
        # Why an execution is being stopped, set before the worker is told
        self._stop_reasons: dict[str, WorkflowOperationError] = {}
        # In-process sub-workflow engines by the execution id of their caller
        self._child_executions: dict[str, dict[str, tuple[WorkflowExecute, Workflow]]] = {}

    async def run(
        self,
        payload: WorkflowExecutionPayload,
        execution_id: str | None = None,
        response_future: asyncio.Future | None = None,
    ) -> str:
        """
        Start an execution and return its id without waiting for it.

        Pass ``execution_id`` to resume an existing (waiting) execution.
        Use ``ActiveExecutions.get_post_execute_future`` to await the result.
        """
        if execution_id is None:
            execution_id = await self._create_execution(
                payload.workflow, payload.mode, retry_of=payload.retry_of
            )

        self.active_executions.add(
            execution_id, payload.workflow, payload.mode, response_future=response_future
        )
        hooks = self._get_hooks(execution_id, payload.workflow, payload.mode, payload)

        task = asyncio.create_task(self._execute(execution_id, payload, hooks))
        self.active_executions.attach_task(execution_id, task)
        logger.info(
            'Started execution %s of workflow "%s" (mode %s, process %s)',
            execution_id,
            payload.workflow.name,
            payload.mode,
            self.executions_process,
        )
        return execution_id

    async def run_and_wait(
        self, payload: WorkflowExecutionPayload, execution_id: str | None = None
    ) -> tuple[str, ExecutionState | None]:
        execution_id = await self.run(payload, execution_id)
        future = self.active_executions.get_post_execute_future(execution_id)
        return execution_id, await future

    async def stop_execution(self, execution_id: str) -> ExecutionState | None:
        """Stop a running execution and return its final state."""
        active = self.active_executions.get(execution_id)
        if active is None:
            raise ExecutionNotFoundError(execution_id)

        future = self.active_executions.get_post_execute_future(execution_id)
        if active.process is not None:
            await self._stop_process(execution_id, WorkflowCanceledError())
        else:
            await self._stop_main(execution_id, WorkflowCanceledError())
        return await future

    async def shutdown(self) -> None:
        """Stop everything still running, waiting at most the graceful timeout."""
        ids = self.active_executions.get_active_ids()
        if not ids:
            return
        logger.info("Stopping %d active execution(s)", len(ids))
        futures = [self.active_executions.get_post_execute_future(i) for i in ids]
        for execution_id in ids:
            try:
                await self.stop_execution(execution_id)
            except ExecutionNotFoundError:
                continue
        await asyncio.wait(futures, timeout=settings.graceful_shutdown_timeout)

    # --- Execution ---

    async def _execute(
        self, execution_id: str, payload: WorkflowExecutionPayload, hooks: WorkflowHooks
    ) -> ExecutionState:
        state: ExecutionState | None = None
        try:
            if self.executions_process == "own":
                state = await self._run_own_process(execution_id, payload, hooks)
            else:
                state = await self._run_main_process(execution_id, payload, hooks)
        except Exception as e:
            logger.exception("Execution %s failed to run", execution_id)
            state = build_failed_execution(payload.mode, e)
            await hooks.execute_hook_functions("workflowExecuteAfter", state, None)
        finally:
            self._stop_reasons.pop(execution_id, None)
            self.active_executions.remove(execution_id, state)
        return state

    def _get_timeout(self, workflow: Workflow) -> int:
        timeout = workflow.settings.execution_timeout
        if timeout is None:
            timeout = settings.executions_timeout
        if timeout > 0:
            timeout = min(timeout, settings.executions_max_timeout)
        return timeout

    async def _run_main_process(
        self, execution_id: str, payload: WorkflowExecutionPayload, hooks: WorkflowHooks
    ) -> ExecutionState:
        timeout = self._get_timeout(payload.workflow)
        additional_data = AdditionalData(
            execution_id=execution_id,
            hooks=hooks,
            execution_timeout_at=time.time() + timeout if timeout > 0 else None,
            restart_execution_id=execution_id if payload.execution_data else None,
            user_id=payload.user_id,
            send_data_to_ui=self._ui_sender(execution_id) if payload.mode == "manual" else None,
            execute_workflow=self._execute_sub_workflow,
            binary_data=binary_data_service,
        )

        try:
            check_permissions(payload.workflow)
        except WorkflowPermissionError as e:
            return await self._fail_unauthorized(payload, hooks, e)

        execute = WorkflowExecute(additional_data, payload.mode)
        self.active_executions.attach_workflow_execute(execution_id, execute)
        if execution_id in self._stop_reasons:
            execute.cancel()

        loop = asyncio.get_running_loop()
        watchdog = None
        if timeout > 0:
            watchdog = loop.call_later(
                timeout,
                lambda: loop.create_task(self._stop_main(execution_id, WorkflowTimeoutError())),
            )
        try:
            async with httpx.AsyncClient(follow_redirects=True, timeout=30.0) as client:
                additional_data.http_client = client
                return await start_workflow_execute(execute, payload)
        finally:
            if watchdog is not None:
                watchdog.cancel()

    async def _stop_main(self, execution_id: str, error: WorkflowOperationError) -> None:
        active = self.active_executions.get(execution_id)
        if active is None:
            return
        execute = active.workflow_execute
        if execute is None:
            # Not started yet; picked up before the first node runs
            self._stop_reasons.setdefault(execution_id, error)
            return
        if execute.finalized:
            return

        execute.cancel()
        execution_error = ExecutionError.from_exception(error)
        await self._finish_child_executions(execution_id, execution_error)
        state = await execute.process_success_execution(
            execute.started_at, active.workflow, execution_error
        )
        if active.task is not None and active.task is not asyncio.current_task():
            active.task.cancel()
        self.active_executions.remove(execution_id, state)
        logger.info("Execution %s stopped: %s", execution_id, error.message)

    async def _finish_child_executions(
        self, execution_id: str, execution_error: ExecutionError
    ) -> None:
        """Finalize the sub-workflows still running under ``execution_id``, deepest first."""
        children = self._child_executions.pop(execution_id, {})
        for child_id, (execute, workflow) in list(children.items()):
            await self._finish_child_executions(child_id, execution_error)
            execute.cancel()
            await execute.process_success_execution(execute.started_at, workflow, execution_error)
            logger.info("Sub-workflow execution %s stopped with its caller", child_id)

    async def _fail_unauthorized(
        self,
        payload: WorkflowExecutionPayload,
        hooks: WorkflowHooks,
        error: WorkflowPermissionError,
    ) -> ExecutionState:
        node = payload.workflow.get_node(error.node_name) if error.node_name else None
        state = build_failed_execution(payload.mode, error, node)
        await hooks.execute_hook_functions("workflowExecuteAfter", state, None)
        return state

    # --- Worker process ---

    async def _run_own_process(
        self, execution_id: str, payload: WorkflowExecutionPayload, hooks: WorkflowHooks
    ) -> ExecutionState:
        timeout = self._get_timeout(payload.workflow)
        process = await asyncio.create_subprocess_exec(
            sys.executable,
            "-m",
            "nodeflow.worker",
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            limit=MAX_MESSAGE_SIZE,
        )
        self.active_executions.attach_process(execution_id, process)

        await self._send_to_process(
            process,
            messages.START_WORKFLOW,
            {
                "executionId": execution_id,
                "payload": to_jsonable(payload, WorkflowExecutionPayload),
                "executionTimeoutAt": time.time() + timeout if timeout > 0 else None,
            },
        )

        loop = asyncio.get_running_loop()
        watchdog = None
        if timeout > 0:
            watchdog = loop.call_later(
                timeout,
                lambda: loop.create_task(self._stop_process(execution_id, WorkflowTimeoutError())),
            )
        try:
            return await self._process_messages(execution_id, process, payload, hooks)
        finally:
            if watchdog is not None:
                watchdog.cancel()
            _kill(process)
            await process.wait()

    async def _process_messages(
        self,
        execution_id: str,
        process: asyncio.subprocess.Process,
        payload: WorkflowExecutionPayload,
        hooks: WorkflowHooks,
    ) -> ExecutionState:
        assert process.stdout is not None
        result: ExecutionState | None = None
        finalized = False
        child_hooks: dict[str, WorkflowHooks] = {}
        finished_children: set[str] = set()

        while True:
            line = await process.stdout.readline()
            if not line:
                break
            try:
                message = decode_message(line)
            except ValueError:
                logger.warning("Execution %s: ignoring malformed worker output", execution_id)
                continue

            message_type, data = message["type"], message["data"]

            if message_type == messages.PROCESS_HOOK:
                target_id = data.get("executionId", execution_id)
                target = hooks if target_id == execution_id else child_hooks.get(target_id)
                if target is None:
                    logger.warning("Hook %s for unknown execution %s", data.get("hook"), target_id)
                    continue
                hook_name = data["hook"]
                parameters = load_hook_parameters(hook_name, data.get("parameters", []))
                await target.execute_hook_functions(hook_name, *parameters)
                if hook_name == "workflowExecuteAfter":
                    if target_id == execution_id:
                        finalized = True
                    else:
                        finished_children.add(target_id)
            elif message_type == messages.SEND_RESPONSE:
                self.active_executions.resolve_response(execution_id, data.get("response") or {})
            elif message_type == messages.SEND_DATA_TO_UI:
                self.push.send_to_ui(execution_id, data.get("type", ""), data.get("data"))
            elif message_type == messages.START_EXECUTION:
                reply = await self._start_child_execution(data, child_hooks)
                await self._send_to_process(process, messages.EXECUTION_ID, reply)
            elif message_type == messages.FINISH_EXECUTION:
                child_id = data.get("executionId")
                if child_id in finished_children or child_id not in child_hooks:
                    continue
                finished_children.add(child_id)
                state = from_jsonable(data["result"], ExecutionState)
                await child_hooks[child_id].execute_hook_functions("workflowExecuteAfter", state, None)
            elif message_type == messages.PROCESS_ERROR:
                error = from_jsonable(data["executionError"], ExecutionError)
                logger.error("Worker of execution %s reported: %s", execution_id, error.message)
                result = build_failed_execution(payload.mode, WorkflowEngineError(error.message))
                result.data.result_data.error = error
            elif message_type in (messages.END, messages.TIMEOUT):
                result = from_jsonable(data["runData"], ExecutionState)
            elif message_type != messages.START:
                logger.warning("Execution %s: unknown message type %r", execution_id, message_type)

        for child_id, child in child_hooks.items():
            if child_id not in finished_children:
                await child.execute_hook_functions(
                    "workflowExecuteAfter", self._unfinished_state(execution_id, "integrated"), None
                )

        if result is None:
            result = self._unfinished_state(execution_id, payload.mode)
        if not finalized:
            await hooks.execute_hook_functions("workflowExecuteAfter", result, None)
        return result

    def _unfinished_state(self, execution_id: str, mode: ExecutionMode) -> ExecutionState:
        """State of a run whose worker went away without reporting back."""
        reason = self._stop_reasons.get(execution_id)
        if reason is not None:
            return build_canceled_execution(mode, reason)
        return build_failed_execution(mode, WorkflowEngineError(CRASH_MESSAGE))

    async def _stop_process(self, execution_id: str, error: WorkflowOperationError) -> None:
        active = self.active_executions.get(execution_id)
        if active is None or active.process is None:
            return
        process = active.process
        self._stop_reasons.setdefault(execution_id, error)
        message_type = messages.TIMEOUT if isinstance(error, WorkflowTimeoutError) else messages.STOP_EXECUTION
        await self._send_to_process(process, message_type)

        def kill() -> None:
            if process.returncode is None:
                logger.warning("Killing worker of execution %s", execution_id)
                _kill(process)

        asyncio.get_running_loop().call_later(settings.graceful_shutdown_timeout, kill)

    async def _send_to_process(
        self,
        process: asyncio.subprocess.Process,
        message_type: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        if process.stdin is None or process.stdin.is_closing():
            return
        try:
            process.stdin.write(encode_message(message_type, data))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.warning('Could not send "%s" to worker: %s', message_type, e)

    # --- Sub-workflows ---

    async def _start_child_execution(
        self, data: dict[str, Any], child_hooks: dict[str, WorkflowHooks]
    ) -> dict[str, Any]:
        """Answer a worker's ``startExecution`` request with a fresh execution id."""
        request_id = data.get("requestId")
        try:
            workflow = await self._load_workflow(data.get("workflowInfo") or {})
            child_id = await self._create_execution(
                workflow, "integrated", parent_execution_id=data.get("parentExecutionId")
            )
        except WorkflowEngineError as e:
            return {"requestId": request_id, "error": e.message}

        child_hooks[child_id] = self._get_hooks(child_id, workflow, "integrated")
        return {
            "requestId": request_id,
            "executionId": child_id,
            "workflowData": to_jsonable(workflow, Workflow),
        }

    async def _execute_sub_workflow(
        self,
        workflow_info: dict[str, Any],
        additional_data: AdditionalData,
        input_data: list[ExecutionItem],
        parent_workflow_id: str | None,
    ) -> list[list[ExecutionItem] | None]:
        """In-process sub-workflow run used in ``main`` mode."""
        workflow = await self._load_workflow(workflow_info)
        child_id = await self._create_execution(
            workflow, "integrated", parent_execution_id=additional_data.execution_id
        )
        hooks = self._get_hooks(child_id, workflow, "integrated")

        try:
            check_permissions(workflow, parent_workflow_id)
        except WorkflowPermissionError as e:
            state = build_failed_execution("integrated", e)
            await hooks.execute_hook_functions("workflowExecuteAfter", state, None)
            raise

        child_additional = AdditionalData(
            execution_id=child_id,
            hooks=hooks,
            execution_timeout_at=additional_data.execution_timeout_at,
            user_id=additional_data.user_id,
            send_data_to_ui=additional_data.send_data_to_ui,
            execute_workflow=self._execute_sub_workflow,
            binary_data=additional_data.binary_data,
            http_client=additional_data.http_client,
        )
        execute = WorkflowExecute(child_additional, "integrated")
        siblings = self._child_executions.setdefault(additional_data.execution_id, {})
        siblings[child_id] = (execute, workflow)
        try:
            state = await execute.run(workflow, trigger_data=input_data)
        except asyncio.CancelledError:
            await execute.process_success_execution(
                execute.started_at, workflow, ExecutionError.from_exception(WorkflowCanceledError())
            )
            raise
        except WorkflowEngineError as e:
            await execute.process_success_execution(
                execute.started_at, workflow, ExecutionError.from_exception(e)
            )
            raise
        finally:
            siblings.pop(child_id, None)
            if not siblings and self._child_executions.get(additional_data.execution_id) is siblings:
                del self._child_executions[additional_data.execution_id]
        return sub_workflow_output(state)

    async def _load_workflow(self, workflow_info: dict[str, Any]) -> Workflow:
        if workflow_info.get("id"):
            async with self.session_factory() as session:
                stored = await WorkflowRepository(session).get(workflow_info["id"])
            if stored is None:
                raise WorkflowNotFoundError(workflow_info["id"])
            return stored.workflow
        if workflow_info.get("code"):
            return from_jsonable(workflow_info["code"], Workflow)
        raise ValidationError("Sub-workflow needs either an id or code", field="workflowInfo")

    # --- Helpers ---

    async def _create_execution(
        self,
        workflow: Workflow,
        mode: ExecutionMode,
        retry_of: str | None = None,
        parent_execution_id: str | None = None,
    ) -> str:
        async with self.session_factory() as session:
            record = await ExecutionRepository(session, settings.max_execution_records).create(
                workflow,
                ExecutionState(mode=mode, started_at=utc_now(), status=ExecutionStatus.NEW),
                retry_of=retry_of,
                parent_execution_id=parent_execution_id,
            )
        return record.id

    def _get_hooks(
        self,
        execution_id: str,
        workflow: Workflow,
        mode: ExecutionMode,
        payload: WorkflowExecutionPayload | None = None,
    ) -> WorkflowHooks:
        return get_lifecycle_hooks(
            execution_id,
            workflow,
            mode,
            self.session_factory,
            self.push,
            self.active_executions,
            retry_of=payload.retry_of if payload else None,
            session_id=payload.session_id if payload else None,
        )

    def _ui_sender(self, execution_id: str):
        def send(message_type: str, data: Any) -> None:
            self.push.send_to_ui(execution_id, message_type, data)

        return send
