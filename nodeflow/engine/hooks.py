"""
Hook dispatcher for execution lifecycle events.

Handlers run sequentially in registration order. A failing handler is logged
and skipped; it never fails the run.
"""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable

if TYPE_CHECKING:
    from .workflow import Workflow

logger = logging.getLogger(__name__)

HOOK_NAMES = (
    "nodeExecuteBefore",
    "nodeExecuteAfter",
    "workflowExecuteBefore",
    "workflowExecuteAfter",
    "nodeFetchedData",
    "sendResponse",
)

HookHandler = Callable[..., "Awaitable[None] | None"]


class WorkflowHooks:
    """Per-run ordered mapping of lifecycle event name to handlers."""

    def __init__(
        self,
        hook_functions: dict[str, list[HookHandler]] | None = None,
        mode: str = "manual",
        execution_id: str | None = None,
        workflow: Workflow | None = None,
        session_id: str | None = None,
        retry_of: str | None = None,
    ) -> None:
        self.hook_functions: dict[str, list[HookHandler]] = {}
        self.mode = mode
        self.execution_id = execution_id
        self.workflow = workflow
        self.session_id = session_id
        self.retry_of = retry_of

        for name, handlers in (hook_functions or {}).items():
            for handler in handlers:
                self.add_handler(name, handler)

    def add_handler(self, name: str, handler: HookHandler) -> None:
        """Append a handler; existing handlers keep running first."""
        self.hook_functions.setdefault(name, []).append(handler)

    def merge(self, other: dict[str, list[HookHandler]]) -> None:
        for name, handlers in other.items():
            for handler in handlers:
                self.add_handler(name, handler)

    async def execute_hook_functions(self, name: str, *parameters: Any) -> None:
        """Invoke every handler registered for ``name``, awaiting each in turn."""
        for handler in list(self.hook_functions.get(name, [])):
            try:
                result = handler(*parameters)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    'Hook "%s" handler failed (execution %s)', name, self.execution_id
                )
