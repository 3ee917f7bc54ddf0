"""
Run Coordinator

Runs the sync loop and the command side by side. Whichever finishes first
decides the outcome of the run; the other task is cancelled and awaited so it
can release what it holds.
"""

import asyncio
import logging
from typing import Any, Optional

from ..commands import Command, command_key
from ..utils.logging_config import get_logger
from .dispatcher import CommandDispatcher
from .sync import SyncLoop

logger = logging.getLogger(__name__)
log = get_logger(__name__)


class RunCoordinator:
    """Races the endless sync loop against one terminating command."""

    def __init__(self, sync_loop: SyncLoop, dispatcher: CommandDispatcher):
        self.sync_loop = sync_loop
        self.dispatcher = dispatcher

    async def run(self, command: Optional[Command]) -> Any:
        """
        Run the command while syncing in the background.

        Returns:
            The command's result (None when no command was given).

        Raises:
            Whatever typed error the command raised, or the sync loop's fatal
            error if it fails first.
        """
        name = " ".join(command_key(command)) if command is not None else "none"
        sync_task = asyncio.create_task(self.sync_loop.run(), name="matrix-cli-sync")
        command_task = asyncio.create_task(self.dispatcher.dispatch(command), name="matrix-cli-command")

        try:
            done, _ = await asyncio.wait({sync_task, command_task}, return_when=asyncio.FIRST_COMPLETED)

            if command_task in done:
                log.debug("command_finished", command=name)
                return command_task.result()

            # The sync loop only ever stops on a fatal error
            log.debug("sync_stopped", command=name)
            sync_task.result()
            logger.warning("RunCoordinator: Sync loop stopped without an error, ending run")
            return None
        finally:
            await self._cancel(sync_task, command_task)

    async def _cancel(self, *tasks: asyncio.Task) -> None:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            logger.debug(f"RunCoordinator: Cancelling {task.get_name()}")
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
