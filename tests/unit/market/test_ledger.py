"""
Unit Tests for ShopLedger
=========================

Test Coverage
-------------
- Effective price precedence
- Available stock for each availability mode
- Stock override and decrement
- Reservations: uniqueness, order, clearing
- Shop-open flag and currency label
- Snapshot swap only after a successful commit
"""

import pytest

from arena_market.core.exceptions import StoreError
from arena_market.modules.market.constants import SHOP_CONFIG_KEY, SHOP_OPEN_KEY
from arena_market.modules.market.ledger import ShopLedger
from arena_market.modules.market.models import AvailabilityMode, CatalogEntry
from arena_market.modules.market.repository import MarketRepository
from arena_market.modules.market.store import MemorySettingsStore
from arena_market.modules.shared.exceptions import NotFoundError, ValidationError
from tests.factories import POTION_REF, RELIC_REF, SHIELD_REF, SWORD_REF, entry, shop_config


async def _configured(ledger: ShopLedger, **items: CatalogEntry) -> ShopLedger:
    refs = {"potion": POTION_REF, "sword": SWORD_REF, "shield": SHIELD_REF, "relic": RELIC_REF}
    await ledger.replace_config(shop_config({refs[name]: e for name, e in items.items()}))
    return ledger


@pytest.mark.unit
class TestEffectivePrice:
    """Test price resolution."""

    async def test_custom_price_wins(self, ledger):
        """A set custom price overrides the catalog price."""
        await _configured(ledger, potion=entry(custom_price=30))
        assert ledger.effective_price(POTION_REF, 50) == 30

    async def test_zero_custom_price_wins(self, ledger):
        """A custom price of 0 is honoured."""
        await _configured(ledger, potion=entry(custom_price=0))
        assert ledger.effective_price(POTION_REF, 50) == 0

    async def test_blank_custom_price_falls_back_to_base(self, ledger):
        """Empty custom price means the catalog base price applies."""
        await _configured(ledger, potion=entry(custom_price=""))
        assert ledger.effective_price(POTION_REF, 50) == 50

    async def test_missing_prices_default_to_zero(self, ledger):
        """No custom price and no base price gives 0."""
        await _configured(ledger, potion=entry())
        assert ledger.effective_price(POTION_REF, None) == 0

    async def test_negative_custom_price_is_not_clamped(self, ledger):
        """Range checks are an admin concern; the ledger returns what is set."""
        await _configured(ledger, potion=entry(custom_price=-5))
        assert ledger.effective_price(POTION_REF, 50) == -5


@pytest.mark.unit
class TestAvailableStock:
    """Test stock resolution per availability mode."""

    async def test_unlimited_is_unbounded(self, ledger):
        """Unlimited entries report no bound, whatever stock is stored."""
        await _configured(
            ledger, potion=entry(AvailabilityMode.UNLIMITED, quantity=2, current_stock=0)
        )
        assert ledger.available_stock(POTION_REF) is None

    async def test_unconfigured_is_unbounded(self, ledger):
        """Items without an entry report no bound."""
        assert ledger.available_stock(POTION_REF) is None

    async def test_limited_uses_current_stock(self, ledger):
        """Limited entries report current stock."""
        await _configured(ledger, sword=entry(AvailabilityMode.LIMITED, quantity=5, current_stock=3))
        assert ledger.available_stock(SWORD_REF) == 3

    async def test_limited_falls_back_to_quantity(self, ledger):
        """Without current stock, the initial quantity is available."""
        await ledger.replace_config(
            shop_config({SWORD_REF: CatalogEntry(availability=AvailabilityMode.LIMITED, quantity=4)})
        )
        assert ledger.available_stock(SWORD_REF) == 4

    async def test_limited_without_any_stock_is_zero(self, ledger):
        """Neither stock nor quantity means nothing is available."""
        await ledger.replace_config(
            shop_config({SWORD_REF: CatalogEntry(availability=AvailabilityMode.LIMITED)})
        )
        assert ledger.available_stock(SWORD_REF) == 0


@pytest.mark.unit
class TestStockMutations:
    """Test stock override and decrement."""

    async def test_decrement_reduces_by_exactly_one(self, ledger, store):
        """decrement_stock lowers stock by one and persists the config."""
        # Arrange
        await _configured(ledger, sword=entry(AvailabilityMode.LIMITED, quantity=3))

        # Act
        new_stock = await ledger.decrement_stock(SWORD_REF)

        # Assert
        assert new_stock == 2
        assert ledger.available_stock(SWORD_REF) == 2
        stored = await store.get(SHOP_CONFIG_KEY)
        assert stored["items"][SWORD_REF]["currentStock"] == 2

    async def test_decrement_below_zero_is_refused(self, ledger):
        """Stock never goes negative even if the caller skipped its check."""
        await _configured(ledger, sword=entry(AvailabilityMode.LIMITED, quantity=1, current_stock=0))
        with pytest.raises(ValidationError):
            await ledger.decrement_stock(SWORD_REF)
        assert ledger.available_stock(SWORD_REF) == 0

    async def test_set_stock_overrides(self, ledger, store):
        """set_stock writes the admin value immediately."""
        # Arrange
        await _configured(ledger, sword=entry(AvailabilityMode.LIMITED, quantity=1, current_stock=0))

        # Act
        await ledger.set_stock(SWORD_REF, 10)

        # Assert
        assert ledger.available_stock(SWORD_REF) == 10
        assert (await store.get(SHOP_CONFIG_KEY))["items"][SWORD_REF]["currentStock"] == 10

    async def test_set_stock_rejects_negative(self, ledger):
        """Negative stock overrides are rejected."""
        await _configured(ledger, sword=entry(AvailabilityMode.LIMITED, quantity=1))
        with pytest.raises(ValidationError):
            await ledger.set_stock(SWORD_REF, -1)

    async def test_set_stock_requires_entry(self, ledger):
        """Unconfigured items cannot have their stock set."""
        with pytest.raises(NotFoundError):
            await ledger.set_stock(SWORD_REF, 3)


@pytest.mark.unit
class TestReservations:
    """Test reservation bookkeeping."""

    async def test_one_reservation_per_actor_and_item(self, ledger):
        """A second reservation by the same actor is refused."""
        # Act
        first = await ledger.add_reservation(SHIELD_REF, "hero", "Aria", "Alice")
        second = await ledger.add_reservation(SHIELD_REF, "hero", "Aria", "Alice")

        # Assert
        assert first is True
        assert second is False
        assert len(ledger.list_reservations(SHIELD_REF)) == 1

    async def test_reservations_listed_oldest_first(self, ledger):
        """Different actors reserve the same item in arrival order."""
        # Act
        await ledger.add_reservation(SHIELD_REF, "hero", "Aria", "Alice")
        await ledger.add_reservation(SHIELD_REF, "rogue", "Vex", "Bob")

        # Assert
        assert [r.actor_id for r in ledger.list_reservations(SHIELD_REF)] == ["hero", "rogue"]
        assert ledger.has_reserved(SHIELD_REF, "rogue")
        assert not ledger.has_reserved(SWORD_REF, "rogue")

    async def test_clear_item_reservations(self, ledger):
        """Clearing removes the item's reservations only."""
        # Arrange
        await ledger.add_reservation(SHIELD_REF, "hero", "Aria", "Alice")
        await ledger.add_reservation(SWORD_REF, "hero", "Aria", "Alice")

        # Act
        removed = await ledger.clear_item_reservations(SHIELD_REF)

        # Assert
        assert removed == 1
        assert ledger.list_reservations(SHIELD_REF) == []
        assert len(ledger.list_reservations(SWORD_REF)) == 1
        assert await ledger.clear_item_reservations(SHIELD_REF) == 0


@pytest.mark.unit
class TestShopState:
    """Test shop-open flag, currency label and reloading."""

    async def test_toggle_flips_and_persists(self, ledger, store):
        """toggle_shop returns the new state and stores it."""
        assert ledger.shop_open is False
        assert await ledger.toggle_shop() is True
        assert await store.get(SHOP_OPEN_KEY) is True
        assert await ledger.toggle_shop() is False

    async def test_currency_name_defaults_and_updates(self, ledger):
        """The label defaults to Ori and can be renamed."""
        assert ledger.currency_name == "Ori"
        await ledger.set_currency_name("Gold")
        assert ledger.currency_name == "Gold"
        with pytest.raises(ValidationError):
            await ledger.set_currency_name("  ")

    async def test_refresh_replaces_cache_from_store(self, ledger, repository):
        """A second ledger on the same store sees committed writes after refresh."""
        # Arrange
        other = ShopLedger(repository)
        await _configured(ledger, potion=entry())
        await ledger.set_shop_open(True)

        # Act
        await other.refresh()

        # Assert
        assert other.shop_open is True
        assert other.get_entry(POTION_REF) == ledger.get_entry(POTION_REF)

    async def test_failed_write_leaves_snapshot_untouched(self, mocker):
        """The cache only changes after the store accepted the write."""
        # Arrange
        store = MemorySettingsStore()
        ledger = ShopLedger(MarketRepository(store))
        mocker.patch.object(
            store, "set_many", side_effect=StoreError("set_many", RuntimeError("disk full"))
        )

        # Act & Assert
        with pytest.raises(StoreError):
            await ledger.set_shop_open(True)
        assert ledger.shop_open is False
