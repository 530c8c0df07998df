"""
Unit Tests for the catalog read model
=====================================

Test Coverage
-------------
- Categories per selected pack, configured items only
- Price, stock and control flags per item
- Actor selection
- GM-only activity and reservation panels
"""

import pytest

from arena_market.modules.market.models import AvailabilityMode
from arena_market.modules.market.views import build_catalog_view
from tests.factories import (
    CLOAK_REF,
    HERO_ID,
    OTHER_PACK_ID,
    PACK_ID,
    POTION_REF,
    RELIC_REF,
    ROGUE_ID,
    SHIELD_REF,
    SWORD_REF,
    entry,
    shop_config,
)


def _items(view):
    return {item.ref: item for category in view.categories for item in category.items}


@pytest.mark.unit
class TestCatalogView:
    """Test the shop screen model."""

    async def test_only_configured_items_of_selected_packs(self, gm_session, player_session, hub):
        """Unconfigured items and unselected packs are hidden."""
        # Arrange
        await gm_session.save_config(
            shop_config({POTION_REF: entry(), RELIC_REF: entry()}, compendiums=(PACK_ID,))
        )
        await hub.drain()

        # Act
        view = await build_catalog_view(player_session)

        # Assert
        assert [c.id for c in view.categories] == [PACK_ID]
        assert list(_items(view)) == [POTION_REF]
        assert view.categories[0].label == "Arena Items"

    async def test_empty_categories_are_dropped(self, gm_session, player_session, hub):
        """A selected pack without configured items shows no category."""
        await gm_session.save_config(
            shop_config({POTION_REF: entry()}, compendiums=(PACK_ID, OTHER_PACK_ID))
        )
        await hub.drain()
        view = await build_catalog_view(player_session)
        assert [c.id for c in view.categories] == [PACK_ID]
        assert view.has_categories is True

    async def test_item_flags(self, gm_session, player_session, hub):
        """Price, stock and disabled flags follow the shop rules."""
        # Arrange
        await gm_session.save_config(
            shop_config(
                {
                    POTION_REF: entry(custom_price=25),
                    SWORD_REF: entry(AvailabilityMode.LIMITED, quantity=1, current_stock=0),
                    SHIELD_REF: entry(AvailabilityMode.RESERVATION),
                    CLOAK_REF: entry(),
                }
            )
        )
        await gm_session.set_shop_open(True)
        await hub.drain()

        # Act
        items = _items(await build_catalog_view(player_session, HERO_ID))

        # Assert
        potion = items[POTION_REF]
        assert (potion.price, potion.stock, potion.can_afford, potion.disabled) == (25, None, True, False)
        assert items[SWORD_REF].sold_out is True
        assert items[SWORD_REF].disabled is True
        assert items[CLOAK_REF].can_afford is False
        assert items[CLOAK_REF].disabled is True
        assert items[SHIELD_REF].disabled is False

    async def test_unaffordable_reservation_stays_enabled(self, gm_session, player_session, hub):
        """Reservations do not need funds, so they stay clickable."""
        # Arrange
        await gm_session.save_config(shop_config({CLOAK_REF: entry(AvailabilityMode.RESERVATION)}))
        await gm_session.set_shop_open(True)
        await hub.drain()

        # Act
        cloak = _items(await build_catalog_view(player_session, ROGUE_ID))[CLOAK_REF]

        # Assert
        assert cloak.can_afford is False
        assert cloak.disabled is False

    async def test_reserved_item_is_disabled_for_that_actor(self, gm_session, player_session, hub):
        """An actor cannot reserve the same item again."""
        # Arrange
        await gm_session.save_config(shop_config({SHIELD_REF: entry(AvailabilityMode.RESERVATION)}))
        await gm_session.set_shop_open(True)
        await hub.drain()
        await player_session.reserve(HERO_ID, SHIELD_REF)

        # Act
        shield = _items(await build_catalog_view(player_session, HERO_ID))[SHIELD_REF]

        # Assert
        assert shield.has_reserved is True
        assert shield.disabled is True

    async def test_closed_shop_disables_everything(self, gm_session, player_session, hub):
        """Nothing can be bought while the shop is closed."""
        await gm_session.save_config(shop_config({POTION_REF: entry()}))
        await hub.drain()
        view = await build_catalog_view(player_session)
        assert view.shop_open is False
        assert all(item.disabled for item in _items(view).values())

    async def test_first_owned_character_is_selected(self, player_session):
        """Without an explicit actor the user's first character is used."""
        view = await build_catalog_view(player_session)
        assert view.selected_actor is not None
        assert view.selected_actor.actor_id == HERO_ID
        assert view.balance == 500
        assert view.currency_name == "Ori"

    async def test_gm_sees_activity_and_reservations(self, gm_session, player_session, hub):
        """Activity and reservations are shown to the GM only."""
        # Arrange
        await gm_session.save_config(shop_config({SHIELD_REF: entry(AvailabilityMode.RESERVATION)}))
        await gm_session.set_shop_open(True)
        await hub.drain()
        await player_session.reserve(HERO_ID, SHIELD_REF)

        # Act
        gm_view = await build_catalog_view(gm_session, HERO_ID)
        player_view = await build_catalog_view(player_session, HERO_ID)

        # Assert
        assert len(gm_view.recent_activity) == 1
        assert [r.actor_id for r in gm_view.reservations[SHIELD_REF]] == [HERO_ID]
        assert player_view.recent_activity == ()
        assert player_view.reservations == {}
