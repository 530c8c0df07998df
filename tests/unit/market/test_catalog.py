"""
Unit Tests for catalog sources
==============================

Test Coverage
-------------
- Item references and grant copies
- Base price lookup
- YAML pack loading, including broken files
"""

import textwrap

import pytest

from arena_market.modules.market.catalog import YamlCatalogSource, build_pack, make_item_ref
from tests.factories import PACK_ID, POTION_REF, SWORD_REF


@pytest.mark.unit
class TestCatalogItems:
    """Test items resolved from an in-memory catalog."""

    async def test_lookup_by_reference(self, catalog):
        """Items resolve by their compendium reference."""
        item = await catalog.get_item(POTION_REF)
        assert item is not None
        assert item.name == "Potion of Healing"
        assert item.ref == f"Compendium.{PACK_ID}.Item.potion0000000001"

    async def test_grant_copy_is_a_fresh_independent_item(self, catalog):
        """Each grant gets its own id and its own copy of the item data."""
        # Arrange
        item = await catalog.get_item(SWORD_REF)

        # Act
        first = item.make_grant_copy()
        second = item.make_grant_copy()
        first["system"]["damage"]["parts"].append(["1d6", "fire"])

        # Assert
        assert first["id"] != second["id"]
        assert len(first["id"]) == 16
        assert first["sourceRef"] == SWORD_REF
        assert item.system["damage"]["parts"] == [["1d8", "slashing"]]

    async def test_list_sources_and_refs(self, catalog):
        """Packs are enumerable with their item references."""
        packs = await catalog.list_sources()
        assert [p.id for p in packs] == [PACK_ID, "world.relics"]
        assert POTION_REF in await catalog.list_item_refs(PACK_ID)
        assert await catalog.list_item_refs("unknown") == []

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ({"id": "a", "price": 12}, 12),
            ({"id": "a", "system": {"price": {"value": 7}}}, 7),
            ({"id": "a", "system": {"price": 3}}, 3),
            ({"id": "a"}, 0),
        ],
    )
    def test_base_price_sources(self, raw, expected):
        """The price comes from the item, then from its system data."""
        pack = build_pack({"id": "p", "items": [raw]}, fallback_id="p")
        assert pack.items[0].base_price == expected

    def test_items_without_id_are_skipped(self):
        """Entries that cannot be referenced are dropped."""
        pack = build_pack({"items": [{"name": "Nameless"}, {"_id": "b1", "name": "Kept"}]}, "fallback")
        assert pack.id == "fallback"
        assert [i.ref for i in pack.items] == [make_item_ref("fallback", "b1")]


@pytest.mark.unit
class TestYamlCatalogSource:
    """Test YAML-backed catalog packs."""

    async def test_loads_packs_from_directory(self, tmp_path):
        """Every YAML file becomes one pack; items are found by reference."""
        # Arrange
        (tmp_path / "arena.yaml").write_text(
            textwrap.dedent(
                """
                id: world.arena-items
                label: Arena Items
                items:
                  - id: potion0000000001
                    name: Potion of Healing
                    type: consumable
                    price: 50
                """
            ),
            encoding="utf-8",
        )
        (tmp_path / "relics.yml").write_text(
            "label: Relics\nitems:\n  - id: relic1\n    name: Relic\n", encoding="utf-8"
        )
        source = YamlCatalogSource(tmp_path)

        # Act
        item = await source.get_item(POTION_REF)
        packs = await source.list_sources()

        # Assert
        assert item is not None
        assert item.base_price == 50
        assert {p.id: p.label for p in packs} == {"world.arena-items": "Arena Items", "relics": "Relics"}

    async def test_broken_file_is_skipped(self, tmp_path):
        """A file that does not parse does not block the others."""
        # Arrange
        (tmp_path / "broken.yaml").write_text("id: [unclosed\n", encoding="utf-8")
        (tmp_path / "list.yaml").write_text("- just\n- a list\n", encoding="utf-8")
        (tmp_path / "good.yaml").write_text("id: good\nitems: []\n", encoding="utf-8")
        source = YamlCatalogSource(tmp_path)

        # Act
        loaded = await source.load()

        # Assert
        assert loaded == 1
        assert [p.id for p in await source.list_sources()] == ["good"]

    async def test_missing_directory_is_empty(self, tmp_path):
        """A missing directory yields an empty catalog."""
        source = YamlCatalogSource(tmp_path / "nope")
        assert await source.list_sources() == []
        assert await source.get_item(POTION_REF) is None
