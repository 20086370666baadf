"""
Test Data Seeding

Replaces all users with a small fixed data set. Runs at startup when
SEED_TEST_DATA is enabled.
"""

from typing import List, Optional, Tuple

import structlog

from ...domain.users.entities import User
from .cached_user_store import CachedUserStore

logger = structlog.get_logger()

TEST_USERS: Tuple[Tuple[str, Optional[int]], ...] = (
    ("Eun", 31),
    ("Joe", 29),
    ("Sua", 4),
)


async def seed_test_users(store: CachedUserStore) -> List[User]:
    """
    Delete every user, then save the test users.

    Returns:
        The saved users, in insertion order
    """
    logger.info("Seeding test users", count=len(TEST_USERS))

    removed = await store.delete_all()
    saved = []
    for name, age in TEST_USERS:
        saved.append(await store.save(User(name=name, age=age)))

    logger.info(
        "Test users seeded",
        removed=removed,
        user_ids=[user.id for user in saved],
    )
    return saved
