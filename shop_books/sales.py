"""
Sales Module

Every sale line is stored as its own SaleItem carrying the batches it
drew from. Cash sales are posted to the Shop account; credit sales open
Udhaar records against the customer. Editing or deleting a sale puts the
stock back and applies the compensating cash or credit adjustment.
"""

from decimal import Decimal
from datetime import datetime, date
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
import uuid
import logging

from .currency import Money, Currency, sum_money, to_decimal
from .storage import StorageInterface, StorageRecord, RecordNotFoundError, SALES
from .items import ItemType, normalize_item, item_key
from .inventory import InventoryManager, InsufficientStockError, LineItem
from .customers import Customer, CustomerManager
from .credit import CreditManager
from .finance import CashBook
from .logging_config import log_action


logger = logging.getLogger("shop_books.sales")


@dataclass
class SaleItem(StorageRecord):
    """
    One sold line
    """
    date: date
    item_type: ItemType
    quantity: Decimal
    price_per_unit: Money
    custom_item_name: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: str = ""
    is_credit: bool = False
    payment_status: str = "paid"  # "paid" or "pending"
    batches_used: List[Dict[str, Any]] = field(default_factory=list)

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError("Sale quantity must be positive")
        if not self.price_per_unit.is_positive():
            raise ValueError("Sale price must be positive")

    @property
    def total_amount(self) -> Money:
        return self.price_per_unit * self.quantity

    @property
    def key(self) -> str:
        return item_key(self.item_type, self.custom_item_name)


class SalesManager:
    """
    Records sales and keeps stock, credit and cash in step with them
    """

    def __init__(
        self,
        storage: StorageInterface,
        inventory: InventoryManager,
        customers: CustomerManager,
        credit: CreditManager,
        cash_book: CashBook,
        currency: Currency = Currency.PKR
    ):
        self.storage = storage
        self.inventory = inventory
        self.customers = customers
        self.credit = credit
        self.cash_book = cash_book
        self.currency = currency
        self.table_name = SALES

    def record_sale(
        self,
        sale_date: date,
        lines: List[LineItem],
        is_credit: bool = False,
        customer_name: str = "",
        customer_id: Optional[str] = None,
        customer_phone: str = ""
    ) -> List[SaleItem]:
        """
        Record one sale submission

        All lines are validated and stock is checked for the whole
        submission before anything is written.

        Args:
            sale_date: Date of the sale
            lines: Item lines with quantity and unit price
            is_credit: True for an Udhaar sale
            customer_name: Required for credit sales
            customer_id: Existing customer to charge
            customer_phone: Used when a new customer is created

        Returns:
            Created SaleItem objects, one per line

        Raises:
            InsufficientStockError: If any item lacks stock
        """
        if not lines:
            raise ValueError("A sale needs at least one line")
        if is_credit and not (customer_name or "").strip() and not customer_id:
            raise ValueError("Customer name is required for credit sales")

        prepared = []
        requested: Dict[str, Decimal] = {}
        for line in lines:
            custom_name = normalize_item(line.item_type, line.custom_item_name)
            quantity = to_decimal(line.quantity)
            price = to_decimal(line.price_per_unit)
            if quantity <= 0:
                raise ValueError("Sale quantity must be positive")
            if price <= 0:
                raise ValueError("Sale price must be positive")
            price = Money(price, self.currency)
            if not (price * quantity).is_positive():
                raise ValueError(
                    f"Sale line total for {custom_name or line.item_type.value} rounds to zero; "
                    "increase the quantity or price"
                )
            prepared.append((line.item_type, custom_name, quantity, price))
            key = item_key(line.item_type, custom_name)
            requested[key] = requested.get(key, Decimal('0')) + quantity

        for item_type, custom_name, _, _ in prepared:
            key = item_key(item_type, custom_name)
            available = self.inventory.available_quantity(item_type, custom_name)
            if available < requested[key]:
                raise InsufficientStockError(
                    f"Insufficient inventory for {custom_name or item_type.value}: "
                    f"requested {requested[key]}, available {available}"
                )

        created = []
        with self.storage.atomic():
            customer = self._resolve_customer(customer_name, customer_id, customer_phone, sale_date) \
                if is_credit else None

            now = datetime.now()
            for item_type, custom_name, quantity, price in prepared:
                sale = SaleItem(
                    id=f"SALE-{uuid.uuid4().hex[:12]}",
                    created_at=now,
                    updated_at=now,
                    date=sale_date,
                    item_type=item_type,
                    custom_item_name=custom_name,
                    quantity=quantity,
                    price_per_unit=price,
                    customer_id=customer.id if customer else None,
                    customer_name=customer.name if customer else (customer_name or "").strip(),
                    is_credit=is_credit,
                    payment_status="pending" if is_credit else "paid",
                    batches_used=self.inventory.allocate(item_type, custom_name, quantity)
                )
                self._save_sale(sale)
                created.append(sale)

            total = sum_money((s.total_amount for s in created), self.currency)
            if customer:
                self.credit.record_sale_credits(
                    customer, [(s.id, s.total_amount) for s in created], sale_date
                )
                self.customers.record_credit_purchase(customer.id, total, sale_date)
            else:
                for sale in created:
                    self.cash_book.post_sale(sale.id, sale.total_amount, sale_date)

        log_action(
            logger, "info", f"{'Credit' if is_credit else 'Cash'} sale of {total.to_string()} recorded",
            action="sale_recorded", resource="sale", resource_id=created[0].id,
            extra={"lines": len(created), "customer_id": customer.id if customer else None}
        )
        return created

    def get_sale(self, sale_id: str) -> Optional[SaleItem]:
        data = self.storage.load(self.table_name, sale_id)
        if data:
            return self._sale_from_dict(data)
        return None

    def list_sales(self, start_date: Optional[date] = None, end_date: Optional[date] = None) -> List[SaleItem]:
        """Sales newest first, optionally within inclusive date bounds"""
        sales = []
        for data in self.storage.load_all(self.table_name):
            sale = self._sale_from_dict(data)
            if start_date and sale.date < start_date:
                continue
            if end_date and sale.date > end_date:
                continue
            sales.append(sale)
        sales.sort(key=lambda s: (s.date, s.created_at), reverse=True)
        return sales

    def sales_summary(self, start_date: Optional[date] = None, end_date: Optional[date] = None) -> Dict[str, Any]:
        sales = self.list_sales(start_date, end_date)
        return {
            "total_sales": sum_money((s.total_amount for s in sales), self.currency),
            "cash_sales": sum_money((s.total_amount for s in sales if not s.is_credit), self.currency),
            "credit_sales": sum_money((s.total_amount for s in sales if s.is_credit), self.currency),
            "count": len(sales)
        }

    def update_sale(
        self,
        sale_id: str,
        quantity: Optional[Decimal] = None,
        price_per_unit: Optional[Decimal] = None,
        sale_date: Optional[date] = None,
        today: Optional[date] = None
    ) -> SaleItem:
        """
        Edit a sale line

        A quantity change gives the old stock back and allocates again
        FIFO. A credit sale moves its unpaid credit by the change in
        total (never below what has been paid); a cash sale re-posts its
        Shop entry.
        """
        sale = self._require_sale(sale_id)
        old_total = sale.total_amount
        old_date = sale.date

        with self.storage.atomic():
            if quantity is not None:
                quantity = to_decimal(quantity)
                if quantity <= 0:
                    raise ValueError("Sale quantity must be positive")
                if quantity != sale.quantity:
                    self.inventory.restore(sale.item_type, sale.custom_item_name, sale.quantity, sale.batches_used)
                    sale.batches_used = self.inventory.allocate(sale.item_type, sale.custom_item_name, quantity)
                    sale.quantity = quantity
            if price_per_unit is not None:
                price = to_decimal(price_per_unit)
                if price <= 0:
                    raise ValueError("Sale price must be positive")
                sale.price_per_unit = Money(price, self.currency)
            if sale_date is not None:
                sale.date = sale_date

            sale.updated_at = datetime.now()
            self._save_sale(sale)

            new_total = sale.total_amount
            date_changed = sale.date != old_date
            if sale.is_credit:
                if new_total != old_total or date_changed:
                    self.credit.adjust_sale_credit(
                        sale.id, new_total, sale.date if date_changed else None, today,
                        previous_total=old_total
                    )
            elif new_total != old_total or date_changed:
                self.cash_book.unpost_sale(sale.id)
                self.cash_book.post_sale(sale.id, new_total, sale.date)

        log_action(
            logger, "info", f"Sale {sale_id} updated",
            action="sale_updated", resource="sale", resource_id=sale_id,
            extra={"old_total": str(old_total.amount), "new_total": str(sale.total_amount.amount)}
        )
        # Credit adjustments may have changed the payment status
        return self._require_sale(sale_id)

    def delete_sale(self, sale_id: str) -> SaleItem:
        """
        Delete a sale line and undo its effects

        Raises:
            ValueError: For a credit sale that has already been partly paid
        """
        sale = self._require_sale(sale_id)

        with self.storage.atomic():
            if sale.is_credit:
                self.credit.remove_sale_credits(sale.id)
            else:
                self.cash_book.unpost_sale(sale.id)
            self.inventory.restore(sale.item_type, sale.custom_item_name, sale.quantity, sale.batches_used)
            self.storage.delete(self.table_name, sale.id)

        log_action(
            logger, "info", f"Sale {sale_id} deleted",
            action="sale_deleted", resource="sale", resource_id=sale_id,
            extra={"total": str(sale.total_amount.amount), "is_credit": sale.is_credit}
        )
        return sale

    def _resolve_customer(
        self,
        customer_name: str,
        customer_id: Optional[str],
        customer_phone: str,
        sale_date: date
    ) -> Customer:
        """Existing customer by ID or name, or a new one"""
        if customer_id:
            customer = self.customers.get_customer(customer_id)
            if customer:
                return customer
        customer = self.customers.find_by_name(customer_name)
        if customer:
            return customer
        return self.customers.create_customer(
            name=customer_name,
            phone=customer_phone,
            customer_id=customer_id,
            last_purchase_date=sale_date
        )

    def _require_sale(self, sale_id: str) -> SaleItem:
        sale = self.get_sale(sale_id)
        if not sale:
            raise RecordNotFoundError(f"Sale {sale_id} not found")
        return sale

    def _save_sale(self, sale: SaleItem) -> None:
        self.storage.save(self.table_name, sale.id, self._sale_to_dict(sale))

    def _sale_to_dict(self, sale: SaleItem) -> Dict:
        return {
            'id': sale.id,
            'created_at': sale.created_at.isoformat(),
            'updated_at': sale.updated_at.isoformat(),
            'date': sale.date.isoformat(),
            'item_type': sale.item_type.value,
            'custom_item_name': sale.custom_item_name,
            'quantity': str(sale.quantity),
            'price_per_unit': str(sale.price_per_unit.amount),
            'total_amount': str(sale.total_amount.amount),
            'currency': sale.price_per_unit.currency.code,
            'customer_id': sale.customer_id,
            'customer_name': sale.customer_name,
            'is_credit': sale.is_credit,
            'payment_status': sale.payment_status,
            'batches_used': sale.batches_used
        }

    def _sale_from_dict(self, data: Dict) -> SaleItem:
        currency = Currency[data.get('currency', self.currency.code)]
        return SaleItem(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            date=date.fromisoformat(data['date']),
            item_type=ItemType(data['item_type']),
            custom_item_name=data.get('custom_item_name'),
            quantity=Decimal(data['quantity']),
            price_per_unit=Money(Decimal(data['price_per_unit']), currency),
            customer_id=data.get('customer_id'),
            customer_name=data.get('customer_name', ''),
            is_credit=data.get('is_credit', False),
            payment_status=data.get('payment_status', 'paid'),
            batches_used=data.get('batches_used') or []
        )
