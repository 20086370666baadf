"""
Unit tests for test data seeding.
"""

import pytest

from user_service.domain.users.entities import User
from user_service.services.users.seed import TEST_USERS, seed_test_users


class TestSeedTestUsers:
    """Test seed_test_users."""

    @pytest.mark.asyncio
    async def test_replaces_existing_users(self, cached_store, store_repo):
        stale = await cached_store.save(User(name="Stale", age=99))

        saved = await seed_test_users(cached_store)
        await cached_store.wait_for_pending()

        assert [(u.name, u.age) for u in saved] == list(TEST_USERS)
        assert stale.id not in store_repo.users
        assert len(store_repo.users) == 3

    @pytest.mark.asyncio
    async def test_seeded_users_are_cached(self, cached_store, cache_repo):
        saved = await seed_test_users(cached_store)
        await cached_store.wait_for_pending()

        assert set(cache_repo.entries) == {user.id for user in saved}
        assert cache_repo.completed[0] == "clear"

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, cached_store, store_repo):
        store_repo.fail_with = OSError("database down")

        with pytest.raises(OSError):
            await seed_test_users(cached_store)
