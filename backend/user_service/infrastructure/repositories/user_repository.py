"""
SQLAlchemy User Repository

Store of record for users. Each operation runs in its own session and
transaction. Failures are logged with context and re-raised unchanged.
"""

from typing import AsyncIterator, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker
import structlog

from ...constants import get_current_timestamp
from ...domain.users.entities import User
from ...domain.users.repository_interfaces import UserStoreRepository
from ...models import UserRecord, generate_user_id

logger = structlog.get_logger()


class SqlAlchemyUserRepository(UserStoreRepository):
    """
    Relational implementation of the user store of record.

    ``save`` is an upsert: unknown ids are inserted, known ids get ``name``
    and ``age`` overwritten while ``created_at`` is kept.
    """

    def __init__(self, session_factory: async_sessionmaker):
        """
        Initialize repository with strict input validation.

        Args:
            session_factory: async_sessionmaker bound to the store of record

        Raises:
            TypeError: If session_factory is not an async_sessionmaker
        """
        if not isinstance(session_factory, async_sessionmaker):
            raise TypeError(
                "session_factory must be async_sessionmaker instance, "
                f"got {type(session_factory).__name__}"
            )

        self.session_factory = session_factory

    async def find_all(self) -> AsyncIterator[User]:
        """Iterate over every user, oldest first."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(UserRecord).order_by(UserRecord.created_at, UserRecord.id)
                )
                records = result.scalars().all()
        except Exception as e:
            logger.error(
                "UserRepository: Failed to list users",
                error=str(e),
                exc_info=True,
            )
            raise

        logger.debug("UserRepository: Users listed", count=len(records))
        for record in records:
            yield record.to_entity()

    async def find_by_id(self, user_id: str) -> Optional[User]:
        """
        Get user by id.

        Args:
            user_id: User id (REQUIRED)

        Returns:
            User if found, None otherwise
        """
        _require_id(user_id)

        try:
            async with self.session_factory() as session:
                record = await session.get(UserRecord, user_id)
                return record.to_entity() if record else None

        except Exception as e:
            logger.error(
                "UserRepository: Failed to get user",
                user_id=user_id,
                error=str(e),
                exc_info=True,
            )
            raise

    async def save(self, user: User) -> User:
        """
        Insert or overwrite a user.

        Args:
            user: User to persist, with or without id

        Returns:
            Persisted user with id and created_at populated
        """
        if user is None:
            raise ValueError("User is required (cannot be None)")

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    record = None
                    if not user.is_new:
                        record = await session.get(UserRecord, user.id)

                    if record is None:
                        record = UserRecord(
                            id=user.id or generate_user_id(),
                            name=user.name,
                            age=user.age,
                            created_at=get_current_timestamp(),
                        )
                        session.add(record)
                        created = True
                    else:
                        record.name = user.name
                        record.age = user.age
                        created = False

                    await session.flush()
                    saved = record.to_entity()

            logger.info(
                "UserRepository: User saved",
                user_id=saved.id,
                created=created,
            )
            return saved

        except Exception as e:
            logger.error(
                "UserRepository: Failed to save user",
                user_id=user.id,
                error=str(e),
                exc_info=True,
            )
            raise

    async def delete_by_id(self, user_id: str) -> bool:
        """
        Delete user by id.

        Returns:
            True if the user was deleted, False if not found
        """
        _require_id(user_id)

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(UserRecord).where(UserRecord.id == user_id)
                    )
            deleted = result.rowcount > 0

        except Exception as e:
            logger.error(
                "UserRepository: Failed to delete user",
                user_id=user_id,
                error=str(e),
                exc_info=True,
            )
            raise

        if deleted:
            logger.info("UserRepository: User deleted", user_id=user_id)
        else:
            logger.warning("UserRepository: User not found for deletion", user_id=user_id)
        return deleted

    async def delete_all(self) -> int:
        """Delete every user. Returns the number of rows removed."""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(delete(UserRecord))

        except Exception as e:
            logger.error(
                "UserRepository: Failed to delete all users",
                error=str(e),
                exc_info=True,
            )
            raise

        logger.info("UserRepository: All users deleted", count=result.rowcount)
        return result.rowcount


def _require_id(user_id: str) -> None:
    if user_id is None or not str(user_id).strip():
        raise ValueError("user_id is required (cannot be empty)")
