"""Tool registry for discovering and managing available tools."""

from __future__ import annotations

from typing import TYPE_CHECKING

from chat_secretary.log import get_logger
from chat_secretary.tools.base import Tool

if TYPE_CHECKING:
    from chat_secretary.storage.archive import TranscriptArchive
    from chat_secretary.storage.session_ledger import SessionLedger
    from chat_secretary.transcript.classifier import DialogClassifier

logger = get_logger(__name__)


class ToolRegistry:
    """Registry of all available tools."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool
        logger.info("tool_registered", tool_name=tool.name)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def all_tools(self) -> list[Tool]:
        return list(self._tools.values())

    async def execute(self, name: str, **kwargs) -> str:
        tool = self.get(name)
        if tool is None:
            return Tool.format_error(f"Unknown tool: {name}")
        return await tool.execute(**kwargs)

    def discover_and_register(
        self,
        ledger: SessionLedger,
        classifier: DialogClassifier,
        archive: TranscriptArchive,
    ) -> None:
        """Register the built-in dialog recall tools."""
        from chat_secretary.tools.dialog_recall import GetFirstRequestTool, GetRequestTool

        self.register(GetFirstRequestTool(ledger))
        self.register(GetRequestTool(ledger, classifier, archive))
