"""Abstract lifecycle interface for timer-driven polling services."""

from __future__ import annotations

from abc import ABC, abstractmethod


class PollingService(ABC):
    """Base class for services that poll the chat transcript on an interval."""

    @property
    @abstractmethod
    def service_name(self) -> str:
        ...

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def tick(self) -> None:
        """Run one polling iteration."""
        ...

    @abstractmethod
    def is_active(self) -> bool:
        ...

    async def health_check(self) -> bool:
        return self.is_active()
