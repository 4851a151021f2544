"""
Entry point of a worker process: ``python -m nodeflow.worker``.

stdout is reserved for the message channel, so anything else printed by
node code is redirected to stderr.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

from ..core.config import settings
from ..core.logging_setup import setup_logging
from ..engine.node_registry import register_all_nodes
from .channel import StdioChannel
from .process import WorkflowRunnerProcess

logger = logging.getLogger(__name__)


async def main() -> int:
    setup_logging(settings.log_level, sys.stderr)

    channel_output = sys.stdout
    sys.stdout = sys.stderr

    register_all_nodes()

    loop = asyncio.get_running_loop()
    exit_code: asyncio.Future[int] = loop.create_future()

    def exit_process(code: int) -> None:
        if not exit_code.done():
            exit_code.set_result(code)

    channel = StdioChannel(channel_output)
    await channel.connect()
    runner = WorkflowRunnerProcess(channel, exit_process)

    async def graceful_stop() -> None:
        logger.info("Stopping worker, waiting up to %ss", settings.graceful_shutdown_timeout)
        loop.call_later(settings.graceful_shutdown_timeout, exit_process, 1)
        await runner.stop()

    def _signal_handler(signum, frame) -> None:
        logger.info("Received signal %s", signum)
        loop.call_soon_threadsafe(lambda: loop.create_task(graceful_stop()))

    signal.signal(signal.SIGTERM, _signal_handler)
    signal.signal(signal.SIGINT, _signal_handler)

    async def read_messages() -> None:
        while not runner.done:
            message = await channel.receive()
            if message is None:
                # Coordinator is gone; nobody is left to receive results
                logger.warning("Coordinator closed the channel")
                exit_process(1)
                return
            await runner.handle_message(message)

    reader = asyncio.create_task(read_messages())
    try:
        return await exit_code
    finally:
        reader.cancel()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
