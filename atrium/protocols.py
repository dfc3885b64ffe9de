"""Protocol definitions for Atrium's external collaborators.

The pipeline only talks to its cache store and content repository through
these interfaces, so a process can inject Redis in production and an
in-memory implementation in tests without touching the core.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class CacheStore(Protocol):
    """String-keyed store of serialized blobs.

    Entries never expire on their own; they live until overwritten, deleted,
    or flushed externally.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored value, or None when the key is absent.

        Raises:
            TransientIOError: If the store is unreachable.
        """
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store a value with no expiry.

        Raises:
            TransientIOError: If the store is unreachable.
        """
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a key; absent keys are ignored."""
        ...

    @abstractmethod
    async def aclose(self) -> None:
        """Release any connections held by the store."""
        ...


@runtime_checkable
class ContentRepository(Protocol):
    """Read-only query surface over stored content entities."""

    @abstractmethod
    async def find_by_type_and_id(
        self, ref_type: str, ref_id: str
    ) -> dict[str, Any] | None:
        """Fetch one entity.

        Args:
            ref_type: Entity collection, e.g. ``"gallery"``.
            ref_id: Entity identifier within the collection.

        Returns:
            The entity payload, or None when it does not exist.

        Raises:
            ConnectionError: If the backing store is unreachable.
        """
        ...

    @abstractmethod
    async def find_all(self, ref_type: str) -> list[dict[str, Any]]:
        """Fetch every entity of a type, in storage order."""
        ...
