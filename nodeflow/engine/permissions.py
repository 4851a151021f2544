"""Pre-execution checks on what a workflow may run and who may call it."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..core.config import settings
from ..core.exceptions import WorkflowPermissionError

if TYPE_CHECKING:
    from .workflow import Workflow


def check_node_types(workflow: Workflow, nodes_exclude: list[str] | None = None) -> None:
    """Reject workflows that use a node type excluded on this instance."""
    excluded = set(settings.nodes_exclude if nodes_exclude is None else nodes_exclude)
    for node in workflow.nodes:
        if node.type in excluded:
            raise WorkflowPermissionError(
                f'The node type "{node.type}" is not allowed on this instance',
                node_name=node.name,
            )


def check_caller_policy(workflow: Workflow, parent_workflow_id: str | None) -> None:
    """Apply the sub-workflow's caller policy to the calling workflow."""
    policy = workflow.settings.caller_policy
    if policy == "any":
        return
    if policy == "workflowsFromAList" and parent_workflow_id in workflow.settings.caller_ids:
        return
    raise WorkflowPermissionError(
        f'Workflow "{workflow.name}" cannot be called by workflow "{parent_workflow_id}"'
    )


def check_permissions(
    workflow: Workflow,
    parent_workflow_id: str | None = None,
    nodes_exclude: list[str] | None = None,
) -> None:
    check_node_types(workflow, nodes_exclude)
    if parent_workflow_id is not None:
        check_caller_policy(workflow, parent_workflow_id)
