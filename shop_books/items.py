"""
Item Catalog Module

Item codes stocked by the shop, custom ("OTHER") item names, rate
derivation from the SN purchase rate and the carton valuation rule
for item C.
"""

from decimal import Decimal, ROUND_CEILING
from enum import Enum
from typing import List, Optional

from .storage import StorageInterface, CUSTOM_ITEMS, PURCHASES


class ItemType(Enum):
    """Stock item codes"""
    BN = "BN"
    SN = "SN"
    C = "C"
    BNS = "BNS"
    SNS = "SNS"
    CS = "CS"
    ABN = "ABN"
    ASN = "ASN"
    OTHER = "OTHER"


STANDARD_ITEMS = [t for t in ItemType if t != ItemType.OTHER]

# Display order; anything else sorts alphabetically after these
PRIORITY_ITEMS = [ItemType.BN, ItemType.SN, ItemType.C]

# BN and C rates are derived from the SN rate
SN_RATE_BASE = Decimal('11.8')
BN_RATE_FACTOR = Decimal('15')
C_RATE_FACTOR = Decimal('45.4')

# One priced unit of C is 43 counted units
C_UNITS_PER_PRICED_UNIT = Decimal('43')


def normalize_item(item_type: ItemType, custom_item_name: Optional[str]) -> Optional[str]:
    """
    Validate an item reference and return the custom name to store.

    OTHER requires a non-empty name; standard types never carry one.
    """
    if item_type == ItemType.OTHER:
        name = (custom_item_name or "").strip()
        if not name:
            raise ValueError("Custom item name is required for OTHER items")
        return name
    return None


def item_key(item_type: ItemType, custom_item_name: Optional[str] = None) -> str:
    """Grouping key: the type code, or OTHER_<name> for custom items"""
    if item_type == ItemType.OTHER:
        return f"OTHER_{custom_item_name or ''}"
    return item_type.value


def display_name(item_type: ItemType, custom_item_name: Optional[str] = None) -> str:
    if item_type == ItemType.OTHER and custom_item_name:
        return custom_item_name
    return item_type.value


def display_sort_key(item_type: ItemType, custom_item_name: Optional[str] = None):
    """Sort key putting BN, SN, C first and the rest alphabetically"""
    if item_type in PRIORITY_ITEMS:
        return (0, PRIORITY_ITEMS.index(item_type), "")
    return (1, 0, display_name(item_type, custom_item_name))


def derive_rates(sn_rate: Decimal) -> dict:
    """
    Derive BN and C purchase rates from the SN rate, rounded up to a whole unit.

    Returns an empty dict when the SN rate is not positive.
    """
    if sn_rate <= 0:
        return {}
    bn = (sn_rate / SN_RATE_BASE * BN_RATE_FACTOR).to_integral_value(rounding=ROUND_CEILING)
    c = (sn_rate / SN_RATE_BASE * C_RATE_FACTOR).to_integral_value(rounding=ROUND_CEILING)
    return {ItemType.BN: bn, ItemType.C: c}


def valuation_units(item_type: ItemType, quantity: Decimal) -> Decimal:
    """Number of priced units represented by a counted quantity"""
    if item_type == ItemType.C:
        return quantity / C_UNITS_PER_PRICED_UNIT
    return quantity


class ItemCatalog:
    """Registry of custom item names and the list of sellable items"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = CUSTOM_ITEMS

    def register_custom_item(self, name: str) -> bool:
        """Remember a custom item name; returns False if it was already known"""
        name = name.strip()
        if not name:
            raise ValueError("Custom item name cannot be empty")
        if self.storage.exists(self.table_name, name):
            return False
        self.storage.save(self.table_name, name, {"id": name, "name": name})
        return True

    def get_custom_items(self) -> List[str]:
        return [record["name"] for record in self.storage.load_all(self.table_name)]

    def available_items(self) -> List[str]:
        """Standard codes, then custom items in stock, then registered custom names"""
        names = [t.value for t in STANDARD_ITEMS]

        for purchase in self.storage.load_all(PURCHASES):
            if (purchase.get("item_type") == ItemType.OTHER.value
                    and purchase.get("custom_item_name")
                    and Decimal(purchase["remaining_quantity"]) > 0):
                names.append(purchase["custom_item_name"])

        names.extend(self.get_custom_items())

        # Deduplicate, keep first occurrence
        return list(dict.fromkeys(names))
