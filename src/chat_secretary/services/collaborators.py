"""Task-status oracle and chat nudge sink used by the completion engine."""

from __future__ import annotations

from abc import ABC, abstractmethod

from chat_secretary.log import get_logger
from chat_secretary.services.process import render_command, run_command

logger = get_logger(__name__)


class TaskStatusOracle(ABC):
    """External, best-effort corroboration that a task has been committed."""

    @abstractmethod
    async def is_task_complete(self, task_id: str) -> bool:
        ...


class NudgeSink(ABC):
    """Posts a message back into the chat host."""

    @abstractmethod
    async def send_message(self, text: str) -> None:
        ...


class CommandTaskOracle(TaskStatusOracle):
    """Asks an external command; exit code 0 means the task is complete."""

    def __init__(self, command: list[str], timeout: float = 30):
        self._command = command
        self._timeout = timeout

    async def is_task_complete(self, task_id: str) -> bool:
        ok, output = await run_command(render_command(self._command, task_id=task_id), timeout=self._timeout)
        logger.debug("oracle_command_result", task_id=task_id, complete=ok, output=output[:200])
        return ok


class CommandNudgeSink(NudgeSink):
    """Delivers messages by running a command with ``{message}`` substituted."""

    def __init__(self, command: list[str], timeout: float = 30):
        self._command = command
        self._timeout = timeout

    async def send_message(self, text: str) -> None:
        ok, output = await run_command(render_command(self._command, message=text), timeout=self._timeout)
        if not ok:
            raise RuntimeError(f"Nudge command failed: {output}")
