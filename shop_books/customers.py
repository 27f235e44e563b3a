"""
Customer Management Module

Customers are created on their first credit sale. Renaming a customer is
propagated to the credit and sales records that carry the name, and a
customer can only be deleted once nothing is owed.
"""

from decimal import Decimal
from datetime import datetime, date
from dataclasses import dataclass
from typing import Dict, List, Optional
import uuid
import logging

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord, RecordNotFoundError, CUSTOMERS, CREDITS, SALES
from .logging_config import log_action


logger = logging.getLogger("shop_books.customers")

UNPAID_STATUSES = ("pending", "overdue")


@dataclass
class Customer(StorageRecord):
    """
    Credit customer profile
    """
    name: str
    phone: str = ""
    address: str = ""
    total_credit: Optional[Money] = None
    last_purchase_date: Optional[date] = None

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Customer name is required")


class CustomerManager:
    """
    Manages customer profiles
    """

    def __init__(self, storage: StorageInterface, currency: Currency = Currency.PKR):
        self.storage = storage
        self.currency = currency
        self.table_name = CUSTOMERS

    def create_customer(
        self,
        name: str,
        phone: str = "",
        address: str = "",
        customer_id: Optional[str] = None,
        last_purchase_date: Optional[date] = None
    ) -> Customer:
        """
        Create a new customer

        Args:
            name: Customer name
            phone: Phone number
            address: Optional address
            customer_id: Explicit ID, generated when omitted
            last_purchase_date: Date of the purchase that created the customer

        Returns:
            Created Customer object
        """
        now = datetime.now()
        customer = Customer(
            id=customer_id or f"CUST-{uuid.uuid4().hex[:12]}",
            created_at=now,
            updated_at=now,
            name=name.strip(),
            phone=(phone or "").strip(),
            address=address or "",
            total_credit=Money.zero(self.currency),
            last_purchase_date=last_purchase_date
        )
        if self.storage.exists(self.table_name, customer.id):
            raise ValueError(f"Customer {customer.id} already exists")

        self._save_customer(customer)

        log_action(
            logger, "info", f"Customer {customer.name} created",
            action="customer_created", resource="customer", resource_id=customer.id
        )
        return customer

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        """Get customer by ID"""
        data = self.storage.load(self.table_name, customer_id)
        if data:
            return self._customer_from_dict(data)
        return None

    def find_by_name(self, name: str) -> Optional[Customer]:
        """Case-insensitive exact name match"""
        wanted = name.strip().lower()
        for customer in self.get_all_customers():
            if customer.name.lower() == wanted:
                return customer
        return None

    def get_all_customers(self) -> List[Customer]:
        customers = [self._customer_from_dict(d) for d in self.storage.load_all(self.table_name)]
        customers.sort(key=lambda c: c.name.lower())
        return customers

    def search(self, term: str) -> List[Customer]:
        """Customers whose name (case-insensitive) or phone contains the term"""
        term = (term or "").strip()
        if not term:
            return self.get_all_customers()
        lowered = term.lower()
        return [
            c for c in self.get_all_customers()
            if lowered in c.name.lower() or term in c.phone
        ]

    def record_credit_purchase(self, customer_id: str, amount: Money, purchase_date: date) -> Customer:
        """Bump running credit total and last purchase date after a credit sale"""
        customer = self._require_customer(customer_id)
        customer.total_credit = (customer.total_credit or Money.zero(self.currency)) + amount
        if customer.last_purchase_date is None or purchase_date > customer.last_purchase_date:
            customer.last_purchase_date = purchase_date
        customer.updated_at = datetime.now()
        self._save_customer(customer)
        return customer

    def adjust_total_credit(self, customer_id: str, delta: Money) -> Optional[Customer]:
        """Shift the credit total after a debt is edited or removed"""
        customer = self.get_customer(customer_id)
        if not customer:
            return None
        total = (customer.total_credit or Money.zero(self.currency)) + delta
        customer.total_credit = total if not total.is_negative() else Money.zero(self.currency)
        customer.updated_at = datetime.now()
        self._save_customer(customer)
        return customer

    def update_customer(self, customer_id: str, name: str, phone: str) -> Customer:
        """
        Update customer name and phone

        The new name is copied onto every credit and sale of the customer.
        """
        if not name or not name.strip() or not phone or not phone.strip():
            raise ValueError("Please enter customer name and phone number")

        customer = self._require_customer(customer_id)
        old_name = customer.name
        customer.name = name.strip()
        customer.phone = phone.strip()
        customer.updated_at = datetime.now()

        with self.storage.atomic():
            self._save_customer(customer)
            for table in (CREDITS, SALES):
                for record in self.storage.find(table, {"customer_id": customer_id}):
                    record["customer_name"] = customer.name
                    self.storage.save(table, record["id"], record)

        log_action(
            logger, "info", f"Customer {customer_id} updated",
            action="customer_updated", resource="customer", resource_id=customer_id,
            extra={"old_name": old_name, "new_name": customer.name}
        )
        return customer

    def delete_customer(self, customer_id: str) -> None:
        """
        Delete a customer together with their credit history

        Raises:
            ValueError: If the customer still has pending or overdue credit
        """
        self._require_customer(customer_id)
        credits = self.storage.find(CREDITS, {"customer_id": customer_id})
        if any(c.get("status") in UNPAID_STATUSES for c in credits):
            raise ValueError(
                "Cannot delete customer with pending payments. Please clear all payments first."
            )

        with self.storage.atomic():
            for credit in credits:
                self.storage.delete(CREDITS, credit["id"])
            self.storage.delete(self.table_name, customer_id)

        log_action(
            logger, "info", f"Customer {customer_id} deleted",
            action="customer_deleted", resource="customer", resource_id=customer_id,
            extra={"credit_records_removed": len(credits)}
        )

    def _require_customer(self, customer_id: str) -> Customer:
        customer = self.get_customer(customer_id)
        if not customer:
            raise RecordNotFoundError(f"Customer {customer_id} not found")
        return customer

    def _save_customer(self, customer: Customer) -> None:
        self.storage.save(self.table_name, customer.id, self._customer_to_dict(customer))

    def _customer_to_dict(self, customer: Customer) -> Dict:
        total_credit = customer.total_credit or Money.zero(self.currency)
        return {
            'id': customer.id,
            'created_at': customer.created_at.isoformat(),
            'updated_at': customer.updated_at.isoformat(),
            'name': customer.name,
            'phone': customer.phone,
            'address': customer.address,
            'total_credit': str(total_credit.amount),
            'currency': total_credit.currency.code,
            'last_purchase_date': customer.last_purchase_date.isoformat() if customer.last_purchase_date else None
        }

    def _customer_from_dict(self, data: Dict) -> Customer:
        currency = Currency[data.get('currency', self.currency.code)]
        last_purchase_date = None
        if data.get('last_purchase_date'):
            last_purchase_date = date.fromisoformat(data['last_purchase_date'])

        return Customer(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            name=data['name'],
            phone=data.get('phone', ''),
            address=data.get('address', ''),
            total_credit=Money(Decimal(data.get('total_credit', '0')), currency),
            last_purchase_date=last_purchase_date
        )
