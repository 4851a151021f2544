"""Wait node - delay execution, parking the run for long waits."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from ...core.config import settings
from ..base import BaseNode, NodeTypeDescription

if TYPE_CHECKING:
    from ...engine.node_execute_functions import NodeExecutionContext
    from ..base import NodeExecutionResult

_UNIT_SECONDS = {"seconds": 1, "minutes": 60, "hours": 3600, "days": 86400}


class WaitNode(BaseNode):
    """
    Wait node - delay execution for a duration or until a point in time.

    Short waits sleep in-process. Longer waits park the execution; the wait
    tracker resumes it when it is due.
    """

    node_description = NodeTypeDescription(
        name="Wait",
        display_name="Wait",
        description="Pause execution for a duration or until a specific time",
        group=["flow"],
    )

    async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
        resume = context.get_node_parameter("resume", default="timeInterval")

        if resume == "specificTime":
            value = context.get_node_parameter("dateTime")
            wait_till = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
            # naive values are local time
            wait_till = wait_till.astimezone(timezone.utc)
        else:
            unit = context.get_node_parameter("unit", default="seconds")
            amount = float(context.get_node_parameter("amount", default=1))
            if unit not in _UNIT_SECONDS:
                raise ValueError(f'Unknown wait unit "{unit}"')
            wait_till = datetime.now(timezone.utc) + timedelta(seconds=amount * _UNIT_SECONDS[unit])

        seconds = (wait_till - datetime.now(timezone.utc)).total_seconds()
        if seconds < settings.in_process_wait_threshold:
            await asyncio.sleep(max(seconds, 0))
        else:
            await context.put_execution_to_wait(wait_till)

        return self.output(context.get_input_data())
