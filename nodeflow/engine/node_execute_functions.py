"""
Per-invocation context handed to node implementations.

Nodes never touch the engine directly; everything they may read or trigger
(input items, resolved parameters, static data, sub-workflows, binary data,
hooks) goes through ``NodeExecutionContext``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Literal

from ..core.exceptions import NodeExecutionError
from .expression_engine import ExpressionEngine, expression_engine
from .hooks import WorkflowHooks
from .types import BinaryData, ExecutionItem, ExecutionMode, RunExecutionData

if TYPE_CHECKING:
    import httpx

    from ..binary_data.service import BinaryDataService
    from .workflow import NodeDefinition, Workflow

logger = logging.getLogger(__name__)

_MISSING = object()

SubWorkflowOutput = list[list[ExecutionItem] | None]
ExecuteWorkflowFunction = Callable[
    [dict[str, Any], "AdditionalData", list[ExecutionItem], "str | None"],
    Awaitable[SubWorkflowOutput],
]


@dataclass
class AdditionalData:
    """Run-scoped collaborators the engine passes on to every node."""

    execution_id: str | None = None
    hooks: WorkflowHooks | None = None
    # Absolute deadline as a UNIX timestamp
    execution_timeout_at: float | None = None
    restart_execution_id: str | None = None
    user_id: str | None = None
    send_data_to_ui: Callable[[str, Any], Any] | None = None
    execute_workflow: ExecuteWorkflowFunction | None = None
    binary_data: BinaryDataService | None = None
    http_client: httpx.AsyncClient | None = None


class NodeExecutionContext:
    """Everything one node invocation can see and do."""

    def __init__(
        self,
        workflow: Workflow,
        node: NodeDefinition,
        input_data: list[list[ExecutionItem] | None],
        run_execution_data: RunExecutionData,
        run_index: int,
        additional_data: AdditionalData,
        mode: ExecutionMode,
    ) -> None:
        self.workflow = workflow
        self.node = node
        self.input_data = input_data
        self.run_execution_data = run_execution_data
        self.run_index = run_index
        self.additional_data = additional_data
        self.mode = mode

    @property
    def execution_id(self) -> str | None:
        return self.additional_data.execution_id

    @property
    def hooks(self) -> WorkflowHooks:
        return self.additional_data.hooks or WorkflowHooks(mode=self.mode)

    @property
    def http_client(self) -> httpx.AsyncClient | None:
        return self.additional_data.http_client

    def get_input_data(self, input_index: int = 0) -> list[ExecutionItem]:
        """Items on one input slot (empty list if nothing arrived there)."""
        if input_index < len(self.input_data):
            return self.input_data[input_index] or []
        return []

    def get_node_parameter(self, name: str, item_index: int = 0, default: Any = _MISSING) -> Any:
        """
        Resolve a node parameter for one item.

        Expressions are evaluated against the item at ``item_index`` of
        input 0 and the run data produced so far.
        """
        if name in self.node.parameters:
            value = self.node.parameters[name]
        elif default is not _MISSING:
            return default
        else:
            raise NodeExecutionError(self.node.name, f'Could not get parameter "{name}"')

        if not isinstance(value, (str, list, dict)):
            return value

        context = ExpressionEngine.create_context(
            self.get_input_data(0),
            self.run_execution_data.result_data.run_data,
            self.execution_id,
            item_index=item_index,
            run_index=self.run_index,
            mode=self.mode,
            workflow_info={
                "id": self.workflow.id,
                "name": self.workflow.name,
                "active": self.workflow.active,
                "staticData": self.workflow.static_data,
            },
        )
        return expression_engine.resolve(value, context)

    def continue_on_fail(self) -> bool:
        return self.node.continue_on_fail

    def get_workflow_static_data(self, kind: Literal["global", "node"] = "global") -> dict[str, Any]:
        """Mutable static data; changes are persisted when the run succeeds."""
        key = "global" if kind == "global" else f"node:{self.node.name}"
        return self.workflow.static_data.setdefault(key, {})

    async def put_execution_to_wait(self, wait_till: datetime) -> None:
        """Park the run after this node until ``wait_till``."""
        self.run_execution_data.wait_till = wait_till
        logger.debug(
            'Node "%s" parks execution %s until %s',
            self.node.name,
            self.execution_id,
            wait_till.isoformat(),
        )

    async def execute_workflow(
        self, workflow_info: dict[str, Any], input_data: list[ExecutionItem]
    ) -> SubWorkflowOutput:
        """Run another workflow with ``input_data`` and return its last node's output."""
        execute = self.additional_data.execute_workflow
        if execute is None:
            raise NodeExecutionError(
                self.node.name, "Sub-workflow execution is not available in this context"
            )
        return await execute(workflow_info, self.additional_data, input_data, self.workflow.id)

    async def send_response(self, response: dict[str, Any]) -> None:
        """Answer the webhook request that started this run."""
        await self.hooks.execute_hook_functions("sendResponse", response)

    def send_message_to_ui(self, message: Any) -> None:
        send = self.additional_data.send_data_to_ui
        if send is None:
            return
        try:
            send("sendConsoleMessage", {"source": f"Node: {self.node.name}", "message": message})
        except Exception:
            logger.exception('Could not send message to UI from node "%s"', self.node.name)

    async def emit_fetched_data(self) -> None:
        await self.hooks.execute_hook_functions("nodeFetchedData", self.workflow.id, self.node)

    def _binary_service(self) -> BinaryDataService:
        if self.additional_data.binary_data is not None:
            return self.additional_data.binary_data
        from ..binary_data.service import binary_data_service

        return binary_data_service

    async def prepare_binary_data(
        self,
        data: bytes,
        file_name: str | None = None,
        mime_type: str = "application/octet-stream",
    ) -> BinaryData:
        """Store a buffer and return the reference to attach to an item."""
        return await self._binary_service().store(
            data, self.execution_id or "temp", file_name=file_name, mime_type=mime_type
        )

    async def get_binary_data_buffer(
        self, item_index: int, property_name: str = "data", input_index: int = 0
    ) -> bytes:
        items = self.get_input_data(input_index)
        if item_index >= len(items):
            raise NodeExecutionError(
                self.node.name, f"No item at index {item_index}", item_index=item_index
            )
        binary = (items[item_index].binary or {}).get(property_name)
        if binary is None:
            raise NodeExecutionError(
                self.node.name,
                f'Item has no binary property "{property_name}"',
                item_index=item_index,
            )
        return await self._binary_service().get_buffer(binary)
