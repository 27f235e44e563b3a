"""
Tests for the item catalog: validation, keys, rate derivation and ordering
"""

import pytest
from decimal import Decimal

from shop_books.storage import InMemoryStorage, PURCHASES
from shop_books.items import (
    ItemType, ItemCatalog, normalize_item, item_key, display_name, display_sort_key,
    derive_rates, valuation_units
)


class TestItemHelpers:

    def test_other_requires_custom_name(self):
        with pytest.raises(ValueError, match="Custom item name is required"):
            normalize_item(ItemType.OTHER, "  ")
        assert normalize_item(ItemType.OTHER, " Glue ") == "Glue"

    def test_standard_items_drop_custom_name(self):
        assert normalize_item(ItemType.BN, "ignored") is None

    def test_item_key_and_display_name(self):
        assert item_key(ItemType.SN) == "SN"
        assert item_key(ItemType.OTHER, "Glue") == "OTHER_Glue"
        assert display_name(ItemType.OTHER, "Glue") == "Glue"
        assert display_name(ItemType.CS) == "CS"

    def test_display_order(self):
        items = [
            (ItemType.OTHER, "Apple"), (ItemType.C, None), (ItemType.ASN, None),
            (ItemType.BN, None), (ItemType.SN, None)
        ]
        ordered = sorted(items, key=lambda i: display_sort_key(*i))
        assert [display_name(*i) for i in ordered] == ["BN", "SN", "C", "ASN", "Apple"]

    def test_derive_rates_round_up(self):
        rates = derive_rates(Decimal('118'))
        assert rates[ItemType.BN] == Decimal('150')
        assert rates[ItemType.C] == Decimal('454')

        rates = derive_rates(Decimal('100'))
        assert rates[ItemType.BN] == Decimal('128')
        assert rates[ItemType.C] == Decimal('385')

    def test_derive_rates_needs_positive_rate(self):
        assert derive_rates(Decimal('0')) == {}

    def test_c_valuation_units(self):
        assert valuation_units(ItemType.C, Decimal('86')) == Decimal('2')
        assert valuation_units(ItemType.BN, Decimal('86')) == Decimal('86')


class TestItemCatalog:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.catalog = ItemCatalog(self.storage)

    def test_register_custom_item_once(self):
        assert self.catalog.register_custom_item("Glue")
        assert not self.catalog.register_custom_item("Glue")
        assert self.catalog.get_custom_items() == ["Glue"]

    def test_register_blank_name_raises(self):
        with pytest.raises(ValueError):
            self.catalog.register_custom_item("   ")

    def test_available_items(self):
        self.catalog.register_custom_item("Tape")
        self.storage.save(PURCHASES, "p1", {
            "id": "p1", "item_type": "OTHER", "custom_item_name": "Glue", "remaining_quantity": "3"
        })
        self.storage.save(PURCHASES, "p2", {
            "id": "p2", "item_type": "OTHER", "custom_item_name": "Wire", "remaining_quantity": "0"
        })
        self.catalog.register_custom_item("Glue")

        items = self.catalog.available_items()
        assert items[:8] == ["BN", "SN", "C", "BNS", "SNS", "CS", "ABN", "ASN"]
        assert items[8:] == ["Glue", "Tape"]
