"""
User Repository Interfaces

Abstract repository interfaces following DDD Repository pattern.
Defines the two collaborator contracts consumed by the cached user store.

``find_all`` is declared as a plain method returning an async iterator;
implementations are expected to be async generators.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from .entities import User


class UserStoreRepository(ABC):
    """
    Abstract repository for the store of record.

    Durable and authoritative. Every failure must propagate to the caller.
    """

    @abstractmethod
    def find_all(self) -> AsyncIterator[User]:
        """Iterate over every stored user."""

    @abstractmethod
    async def find_by_id(self, user_id: str) -> Optional[User]:
        """Find user by id, None when absent."""

    @abstractmethod
    async def save(self, user: User) -> User:
        """Insert or overwrite a user, assigning an id when absent."""

    @abstractmethod
    async def delete_by_id(self, user_id: str) -> bool:
        """Delete user by id. Returns False when no user had that id."""

    @abstractmethod
    async def delete_all(self) -> int:
        """Delete every user. Returns the number of users removed."""


class UserCacheRepository(ABC):
    """
    Abstract repository for the user cache.

    Purely advisory: holds copies of stored users keyed by id, with no
    durability guarantee. ``find_all`` yields nothing when the cache was never
    populated or was flushed.
    """

    @abstractmethod
    def find_all(self) -> AsyncIterator[User]:
        """Iterate over every cached user."""

    @abstractmethod
    async def find_by_id(self, user_id: str) -> Optional[User]:
        """Find cached user by id, None on miss."""

    @abstractmethod
    async def save(self, user: User) -> None:
        """Cache a user under its id. The user must have an id."""

    @abstractmethod
    async def delete_by_id(self, user_id: str) -> None:
        """Evict a user. Evicting an absent id is not an error."""

    @abstractmethod
    async def delete_all(self) -> None:
        """Evict every cached user."""
