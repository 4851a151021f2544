"""Execute Workflow node - executes another workflow as a sub-workflow."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from ...core.exceptions import NodeExecutionError
from ...engine.types import ExecutionItem
from ..base import BaseNode, NodeTypeDescription

if TYPE_CHECKING:
    from ...engine.node_execute_functions import NodeExecutionContext
    from ..base import NodeExecutionResult

logger = logging.getLogger(__name__)


class ExecuteWorkflowNode(BaseNode):
    """
    Execute Workflow node - executes another workflow as a sub-workflow.

    ``source`` selects a stored workflow (``database``, by ``workflowId``) or
    an inline definition (``parameter``, ``workflowJson``). In ``once`` mode
    all items go to a single sub-workflow run; in ``each`` mode every item
    gets its own run.
    """

    node_description = NodeTypeDescription(
        name="ExecuteWorkflow",
        display_name="Execute Workflow",
        description="Execute another workflow as a sub-workflow",
        group=["flow"],
    )

    async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
        items = context.get_input_data() or [ExecutionItem()]
        mode = context.get_node_parameter("mode", default="once")

        if mode == "each":
            results: list[ExecutionItem] = []
            for idx, item in enumerate(items):
                try:
                    output = await context.execute_workflow(self._workflow_info(context, idx), [item])
                    results.extend(output[0] or [])
                except Exception as e:
                    if not context.continue_on_fail():
                        raise
                    results.append(ExecutionItem(json={"error": str(e)}))
            return self.output(results)

        output = await context.execute_workflow(self._workflow_info(context, 0), items)
        return self.output(output[0] if output else [])

    def _workflow_info(self, context: NodeExecutionContext, item_index: int) -> dict[str, Any]:
        source = context.get_node_parameter("source", item_index, default="database")
        if source == "parameter":
            code = context.get_node_parameter("workflowJson", item_index)
            if isinstance(code, str):
                code = json.loads(code)
            return {"code": code}

        workflow_id = context.get_node_parameter("workflowId", item_index, default=None)
        if not workflow_id:
            raise NodeExecutionError(context.node.name, "No workflow selected for execution")
        logger.debug('Node "%s" calls workflow %s', context.node.name, workflow_id)
        return {"id": str(workflow_id)}
