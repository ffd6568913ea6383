"""
Base interface for memory spaces and their units.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from ragweave.models.memory import MemorySpace, MemoryType, MemoryUnit, UnitStatus


class MemoryUnitStore(ABC):
    """Abstract base class for Memory API persistence."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create the schema."""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection."""

    @abstractmethod
    async def create_space(self, space: MemorySpace) -> MemorySpace:
        """
        Insert a memory space.

        Raises:
            ConflictError: If the tenant already has a space with that name
        """

    @abstractmethod
    async def get_space(self, memory_id: str) -> MemorySpace | None:
        """Get a memory space by ID."""

    @abstractmethod
    async def list_spaces(
        self, tenant_id: str, page: int = 1, page_size: int = 30
    ) -> tuple[list[MemorySpace], int]:
        """Spaces of a tenant, newest first, and their total count."""

    @abstractmethod
    async def update_space(self, space: MemorySpace) -> MemorySpace:
        """Replace a space's editable fields."""

    @abstractmethod
    async def delete_space(self, memory_id: str) -> bool:
        """Delete a space and all its units."""

    @abstractmethod
    async def add_unit(self, unit: MemoryUnit) -> MemoryUnit:
        """Insert a unit."""

    @abstractmethod
    async def get_unit(self, unit_id: str) -> MemoryUnit | None:
        """Get a unit by ID."""

    @abstractmethod
    async def list_units(
        self,
        memory_id: str,
        memory_types: list[MemoryType] | None = None,
        status: UnitStatus | None = None,
        agent_id: str | None = None,
        session_id: str | None = None,
    ) -> list[MemoryUnit]:
        """Units of a space ordered by valid_at (oldest first)."""

    @abstractmethod
    async def update_unit(self, unit: MemoryUnit) -> MemoryUnit:
        """Replace status, invalid_at and forget_at of a unit."""

    @abstractmethod
    async def delete_units(self, unit_ids: list[str]) -> int:
        """Delete units by ID. Returns the number deleted."""

    @abstractmethod
    async def delete_forgotten(self, memory_id: str, now: datetime) -> int:
        """Delete units whose forget_at is at or before `now`."""

    @abstractmethod
    async def space_usage(self, memory_id: str) -> int:
        """Content bytes held by a space."""
