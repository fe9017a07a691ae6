"""Lifecycle interface for long-lived I/O services."""

from __future__ import annotations

from abc import ABC, abstractmethod


class Service(ABC):
    """Something that owns a connection pool or client and must be started and stopped."""

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
    async def health_check(self) -> bool:
        ...
