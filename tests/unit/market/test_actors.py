"""
Unit tests for the in-memory actor directory.
"""

import pytest

from arena_market.modules.shared.exceptions import NotFoundError
from tests.factories import HERO_ID, ROGUE_ID, build_actors


@pytest.mark.unit
class TestMemoryActorDirectory:
    """Test balances and inventories held in memory."""

    async def test_grant_then_revoke(self):
        """A revoked item leaves the inventory it was granted to."""
        # Arrange
        actors = build_actors()
        granted_id = await actors.grant_item(HERO_ID, {"id": "copy0001", "name": "Shield"})

        # Act
        revoked = await actors.revoke_item(HERO_ID, granted_id)

        # Assert
        assert revoked is True
        assert actors.inventories[HERO_ID] == []

    async def test_revoke_ignores_other_inventories(self):
        actors = build_actors()
        granted_id = await actors.grant_item(HERO_ID, {"id": "copy0002", "name": "Shield"})

        assert await actors.revoke_item(ROGUE_ID, granted_id) is False
        assert [item["id"] for item in actors.inventories[HERO_ID]] == [granted_id]

    async def test_set_balance_on_unknown_actor(self):
        with pytest.raises(NotFoundError):
            await build_actors().set_balance("actor-ghost", 10)
