"""Abstract interface for tools exposed to the chat host."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any


class ToolError(Exception):
    """Expected failure reported back to the caller as ``{"success": false}``."""


class Tool(ABC):
    """Base class for host-callable tools returning JSON text."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name advertised to the host."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @property
    @abstractmethod
    def input_schema(self) -> dict[str, Any]:
        """JSON Schema dict describing accepted parameters."""
        ...

    @abstractmethod
    async def call(self, **kwargs: Any) -> dict[str, Any]:
        """Run the tool; raise ToolError for expected failures."""
        ...

    async def execute(self, **kwargs: Any) -> str:
        try:
            payload = await self.call(**kwargs)
        except ToolError as e:
            return self.format_error(str(e))
        except Exception as e:
            return self.format_error(f"Tool failed: {e}")
        return self.format_success(payload)

    @staticmethod
    def format_success(data: dict[str, Any]) -> str:
        return json.dumps({"success": True, **data}, ensure_ascii=False)

    @staticmethod
    def format_error(error: str) -> str:
        return json.dumps({"success": False, "error": error}, ensure_ascii=False)

    def to_api_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }
