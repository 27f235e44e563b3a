"""
Inventory Module

Purchases are recorded as batches (lots). Sales consume batches oldest
first (FIFO) and remember exactly which batches they used, so deleting
or editing a sale puts stock back where it came from.
"""

from decimal import Decimal
from datetime import datetime, date
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
import uuid
import logging

from .currency import Money, Currency, sum_money, to_decimal
from .storage import StorageInterface, StorageRecord, RecordNotFoundError, PURCHASES
from .items import (
    ItemType, ItemCatalog, normalize_item, item_key, display_sort_key, valuation_units,
    C_UNITS_PER_PRICED_UNIT
)
from .logging_config import log_action


logger = logging.getLogger("shop_books.inventory")


class InsufficientStockError(ValueError):
    """Raised when a sale asks for more than the batches hold"""
    pass


@dataclass
class PurchaseItem(StorageRecord):
    """
    One purchased line: a batch of a single item that sales draw down
    """
    date: date
    item_type: ItemType
    quantity: Decimal
    price_per_unit: Money
    supplier: str
    batch_number: str
    remaining_quantity: Decimal
    custom_item_name: Optional[str] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if self.quantity <= 0:
            raise ValueError("Purchase quantity must be positive")
        if not self.price_per_unit.is_positive():
            raise ValueError("Purchase price must be positive")
        if self.remaining_quantity < 0 or self.remaining_quantity > self.quantity:
            raise ValueError("Remaining quantity must be between 0 and the purchased quantity")

    @property
    def total_cost(self) -> Money:
        return self.price_per_unit * self.quantity

    @property
    def consumed_quantity(self) -> Decimal:
        return self.quantity - self.remaining_quantity

    @property
    def key(self) -> str:
        return item_key(self.item_type, self.custom_item_name)

    @property
    def remaining_value(self) -> Money:
        """Value of the unsold stock, honouring the carton rule for C"""
        return self.price_per_unit * valuation_units(self.item_type, self.remaining_quantity)

    @property
    def cost_per_counted_unit(self) -> Money:
        if self.item_type == ItemType.C:
            return self.price_per_unit / C_UNITS_PER_PRICED_UNIT
        return self.price_per_unit


@dataclass
class LineItem:
    """Input line of a purchase or sale submission"""
    item_type: ItemType
    quantity: Decimal
    price_per_unit: Decimal
    custom_item_name: Optional[str] = None


@dataclass
class InventoryItem:
    """Stock on hand for one item, batches in FIFO order"""
    item_type: ItemType
    custom_item_name: Optional[str]
    total_quantity: Decimal
    average_cost: Money
    value: Money
    batches: List[PurchaseItem] = field(default_factory=list)

    @property
    def key(self) -> str:
        return item_key(self.item_type, self.custom_item_name)


class InventoryManager:
    """
    Manages purchase batches and FIFO stock consumption
    """

    def __init__(self, storage: StorageInterface, catalog: ItemCatalog, currency: Currency = Currency.PKR):
        self.storage = storage
        self.catalog = catalog
        self.currency = currency
        self.table_name = PURCHASES

    def record_purchase(
        self,
        purchase_date: date,
        supplier: str,
        lines: List[LineItem]
    ) -> List[PurchaseItem]:
        """
        Record one purchase submission

        Every line becomes its own PurchaseItem; all of them share one
        batch number.

        Args:
            purchase_date: Date goods were bought
            supplier: Supplier name
            lines: Item lines with quantity and unit price

        Returns:
            Created PurchaseItem objects
        """
        if not lines:
            raise ValueError("A purchase needs at least one line")

        batch_number = self._next_batch_number()
        now = datetime.now()
        created = []

        with self.storage.atomic():
            for line in lines:
                custom_name = normalize_item(line.item_type, line.custom_item_name)
                quantity = to_decimal(line.quantity)
                purchase = PurchaseItem(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    date=purchase_date,
                    item_type=line.item_type,
                    custom_item_name=custom_name,
                    quantity=quantity,
                    price_per_unit=Money(to_decimal(line.price_per_unit), self.currency),
                    supplier=supplier,
                    batch_number=batch_number,
                    remaining_quantity=quantity
                )
                self._save_purchase(purchase)
                if custom_name:
                    self.catalog.register_custom_item(custom_name)
                created.append(purchase)

        log_action(
            logger, "info", f"Purchase batch {batch_number} recorded",
            action="purchase_recorded", resource="purchase_batch", resource_id=batch_number,
            extra={"lines": len(created), "supplier": supplier,
                   "total_cost": str(sum_money((p.total_cost for p in created), self.currency).amount)}
        )
        return created

    def get_purchase(self, purchase_id: str) -> Optional[PurchaseItem]:
        data = self.storage.load(self.table_name, purchase_id)
        if data:
            return self._purchase_from_dict(data)
        return None

    def list_purchases(self) -> List[PurchaseItem]:
        """All purchases, newest first"""
        purchases = self._load_purchases()
        purchases.sort(key=lambda p: (p.date, p.created_at), reverse=True)
        return purchases

    def total_purchase_value(self) -> Money:
        return sum_money((p.total_cost for p in self._load_purchases()), self.currency)

    def update_purchase(
        self,
        purchase_id: str,
        quantity: Optional[Decimal] = None,
        price_per_unit: Optional[Decimal] = None,
        supplier: Optional[str] = None,
        purchase_date: Optional[date] = None
    ) -> PurchaseItem:
        """
        Edit a purchase line

        The quantity can shrink only down to what sales have already
        consumed; remaining stock shifts by the same delta.
        """
        purchase = self._require_purchase(purchase_id)

        if quantity is not None:
            quantity = to_decimal(quantity)
            consumed = purchase.consumed_quantity
            if quantity < consumed:
                raise ValueError(
                    f"Quantity cannot go below {consumed}, already sold from batch {purchase.batch_number}"
                )
            purchase.remaining_quantity = quantity - consumed
            purchase.quantity = quantity
        if price_per_unit is not None:
            purchase.price_per_unit = Money(to_decimal(price_per_unit), self.currency)
        if supplier is not None:
            purchase.supplier = supplier
        if purchase_date is not None:
            purchase.date = purchase_date

        purchase.validate()
        purchase.updated_at = datetime.now()
        self._save_purchase(purchase)

        log_action(
            logger, "info", f"Purchase {purchase_id} updated",
            action="purchase_updated", resource="purchase", resource_id=purchase_id
        )
        return purchase

    def delete_purchase(self, purchase_id: str) -> None:
        """Delete a purchase line; refused once any of it has been sold"""
        purchase = self._require_purchase(purchase_id)
        if purchase.consumed_quantity > 0:
            raise ValueError(
                f"Cannot delete batch {purchase.batch_number}: {purchase.consumed_quantity} already sold"
            )
        self.storage.delete(self.table_name, purchase_id)

        log_action(
            logger, "info", f"Purchase {purchase_id} deleted",
            action="purchase_deleted", resource="purchase", resource_id=purchase_id
        )

    def available_quantity(self, item_type: ItemType, custom_item_name: Optional[str] = None) -> Decimal:
        key = item_key(item_type, custom_item_name)
        return sum(
            (p.remaining_quantity for p in self._load_purchases() if p.key == key),
            Decimal('0')
        )

    def allocate(
        self,
        item_type: ItemType,
        custom_item_name: Optional[str],
        quantity: Decimal
    ) -> List[Dict[str, Any]]:
        """
        Consume stock oldest batch first

        Returns:
            batches_used entries: batch_id (batch number), purchase_id, quantity

        Raises:
            InsufficientStockError: If the batches hold less than requested
        """
        if quantity <= 0:
            raise ValueError("Quantity must be positive")

        key = item_key(item_type, custom_item_name)
        batches = [
            p for p in self._load_purchases()
            if p.key == key and p.remaining_quantity > 0
        ]
        batches.sort(key=lambda p: (p.date, p.created_at))

        available = sum((p.remaining_quantity for p in batches), Decimal('0'))
        if available < quantity:
            raise InsufficientStockError(
                f"Insufficient inventory for {custom_item_name or item_type.value}: "
                f"requested {quantity}, available {available}"
            )

        batches_used = []
        to_deduct = quantity
        for batch in batches:
            if to_deduct <= 0:
                break
            taken = min(batch.remaining_quantity, to_deduct)
            batch.remaining_quantity -= taken
            batch.updated_at = datetime.now()
            self._save_purchase(batch)
            batches_used.append({
                "batch_id": batch.batch_number,
                "purchase_id": batch.id,
                "quantity": str(taken)
            })
            to_deduct -= taken

        return batches_used

    def restore(
        self,
        item_type: ItemType,
        custom_item_name: Optional[str],
        quantity: Decimal,
        batches_used: Optional[List[Dict[str, Any]]]
    ) -> None:
        """
        Put stock back after a sale is deleted or edited

        With batches_used, exactly what was taken goes back to each batch.
        Without it, the whole quantity returns to the most recent batch of
        the same item.
        """
        key = item_key(item_type, custom_item_name)

        if batches_used:
            purchases = {p.id: p for p in self._load_purchases()}
            for used in batches_used:
                purchase = purchases.get(used.get("purchase_id"))
                if purchase is None:
                    purchase = next(
                        (p for p in purchases.values()
                         if p.batch_number == used["batch_id"] and p.key == key),
                        None
                    )
                if purchase is None:
                    logger.warning(f"Batch {used['batch_id']} for {key} no longer exists, stock not restored")
                    continue
                purchase.remaining_quantity += Decimal(used["quantity"])
                purchase.updated_at = datetime.now()
                self._save_purchase(purchase)
            return

        candidates = [p for p in self._load_purchases() if p.key == key]
        if not candidates:
            logger.warning(f"No batch of {key} to restore {quantity} into")
            return
        latest = max(candidates, key=lambda p: (p.date, p.created_at))
        latest.remaining_quantity += quantity
        # Legacy restore can push remaining above the original quantity
        latest.quantity = max(latest.quantity, latest.remaining_quantity)
        latest.updated_at = datetime.now()
        self._save_purchase(latest)

    def stock_summary(self) -> List[InventoryItem]:
        """Stock on hand per item in display order, batches oldest first"""
        grouped: Dict[str, List[PurchaseItem]] = {}
        for purchase in self._load_purchases():
            if purchase.remaining_quantity > 0:
                grouped.setdefault(purchase.key, []).append(purchase)

        items = []
        for batches in grouped.values():
            batches.sort(key=lambda p: (p.date, p.created_at))
            first = batches[0]
            total_quantity = sum((b.remaining_quantity for b in batches), Decimal('0'))
            total_cost = sum_money(
                (b.price_per_unit * b.remaining_quantity for b in batches), self.currency
            )
            items.append(InventoryItem(
                item_type=first.item_type,
                custom_item_name=first.custom_item_name,
                total_quantity=total_quantity,
                average_cost=total_cost / total_quantity,
                value=sum_money((b.remaining_value for b in batches), self.currency),
                batches=batches
            ))

        items.sort(key=lambda i: display_sort_key(i.item_type, i.custom_item_name))
        return items

    def inventory_value(self) -> Money:
        return sum_money((item.value for item in self.stock_summary()), self.currency)

    def cost_of_goods_sold(self) -> Money:
        """Consumed quantity of every batch at its purchase price"""
        return sum_money(
            (p.price_per_unit * p.consumed_quantity for p in self._load_purchases()),
            self.currency
        )

    def get_all_purchases(self) -> List[PurchaseItem]:
        return self._load_purchases()

    def _next_batch_number(self) -> str:
        """Record count plus one, skipping past any number already used"""
        purchases = self.storage.load_all(self.table_name)
        highest = len(purchases)
        for data in purchases:
            batch_number = data.get("batch_number", "")
            if batch_number.isdigit():
                highest = max(highest, int(batch_number))
        return str(highest + 1).zfill(3)

    def _require_purchase(self, purchase_id: str) -> PurchaseItem:
        purchase = self.get_purchase(purchase_id)
        if not purchase:
            raise RecordNotFoundError(f"Purchase {purchase_id} not found")
        return purchase

    def _load_purchases(self) -> List[PurchaseItem]:
        return [self._purchase_from_dict(d) for d in self.storage.load_all(self.table_name)]

    def _save_purchase(self, purchase: PurchaseItem) -> None:
        self.storage.save(self.table_name, purchase.id, self._purchase_to_dict(purchase))

    def _purchase_to_dict(self, purchase: PurchaseItem) -> Dict:
        return {
            'id': purchase.id,
            'created_at': purchase.created_at.isoformat(),
            'updated_at': purchase.updated_at.isoformat(),
            'date': purchase.date.isoformat(),
            'item_type': purchase.item_type.value,
            'custom_item_name': purchase.custom_item_name,
            'quantity': str(purchase.quantity),
            'price_per_unit': str(purchase.price_per_unit.amount),
            'total_cost': str(purchase.total_cost.amount),
            'currency': purchase.price_per_unit.currency.code,
            'supplier': purchase.supplier,
            'batch_number': purchase.batch_number,
            'remaining_quantity': str(purchase.remaining_quantity)
        }

    def _purchase_from_dict(self, data: Dict) -> PurchaseItem:
        currency = Currency[data.get('currency', self.currency.code)]
        return PurchaseItem(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            date=date.fromisoformat(data['date']),
            item_type=ItemType(data['item_type']),
            custom_item_name=data.get('custom_item_name'),
            quantity=Decimal(data['quantity']),
            price_per_unit=Money(Decimal(data['price_per_unit']), currency),
            supplier=data.get('supplier', ''),
            batch_number=data['batch_number'],
            remaining_quantity=Decimal(data['remaining_quantity'])
        )
