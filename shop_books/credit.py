"""
Credit (Udhaar) Ledger Module

Tracks what each customer owes. Every credit sale line opens one pending
credit record; payments settle unpaid records oldest first, splitting a
record when a payment covers only part of it. Each payment is a receipt
with its own ID so it can be reversed as a unit, and every receipt is
mirrored by a cash entry in the Shop account.

The pending amount of a customer is always the sum of their unpaid
records, and the running balance of their history folds to the same
figure.
"""

from decimal import Decimal
from datetime import datetime, date, timedelta
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from enum import Enum
import uuid
import logging

from .currency import Money, Currency, sum_money
from .storage import StorageInterface, StorageRecord, RecordNotFoundError, CREDITS, SALES
from .customers import Customer, CustomerManager
from .finance import CashBook
from .logging_config import log_action


logger = logging.getLogger("shop_books.credit")


class CreditStatus(Enum):
    """Status of a credit record"""
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"  # Pending for longer than the overdue threshold


@dataclass
class CreditTransaction(StorageRecord):
    """
    A debt owed by a customer, or the paid part of one
    """
    customer_id: str
    customer_name: str
    amount: Money
    date: date
    due_date: date
    status: CreditStatus = CreditStatus.PENDING
    sale_id: Optional[str] = None      # None for opening debts
    payment_date: Optional[date] = None
    parent_id: Optional[str] = None    # Record this paid part was split from
    payment_id: Optional[str] = None   # Receipt that settled this record
    note: str = ""

    def __post_init__(self):
        if not self.amount.is_positive():
            raise ValueError("Credit amount must be positive")
        if self.status == CreditStatus.PAID and not self.payment_date:
            raise ValueError("Paid credit requires a payment date")

    @property
    def is_unpaid(self) -> bool:
        return self.status != CreditStatus.PAID

    @property
    def origin_id(self) -> str:
        """Debt this record belongs to: the sale, or the root opening debt"""
        return self.sale_id or self.parent_id or self.id


@dataclass
class PaymentReceipt:
    """Result of receiving a payment against a customer's credit"""
    payment_id: str
    customer_id: str
    amount: Money
    payment_date: date
    settled: List[CreditTransaction] = field(default_factory=list)
    transaction_id: Optional[str] = None


@dataclass
class HistoryEntry:
    """One line of a customer's credit history"""
    date: date
    entry_type: str  # "credit" or "payment"
    credit: Money
    received: Money
    balance: Money
    reference: str


@dataclass
class CustomerCreditSummary:
    """Outstanding position of one customer"""
    customer: Customer
    pending_amount: Money
    overdue_amount: Money
    transaction_count: int
    oldest_unpaid_date: Optional[date] = None
    days_since_oldest_unpaid: int = 0

    @property
    def is_overdue(self) -> bool:
        return self.overdue_amount.is_positive()


class CreditManager:
    """
    Manages the customer credit ledger and keeps it consistent with the
    sales records and the Shop cash account
    """

    def __init__(
        self,
        storage: StorageInterface,
        customer_manager: CustomerManager,
        cash_book: CashBook,
        currency: Currency = Currency.PKR,
        due_days: int = 45,
        overdue_after_days: int = 45
    ):
        self.storage = storage
        self.customer_manager = customer_manager
        self.cash_book = cash_book
        self.currency = currency
        self.due_days = due_days
        self.overdue_after_days = overdue_after_days
        self.table_name = CREDITS

    # Opening debts

    def record_sale_credits(
        self,
        customer: Customer,
        sales: List[Tuple[str, Money]],
        credit_date: date
    ) -> List[CreditTransaction]:
        """
        Open one pending credit per credit sale line

        Args:
            customer: Buyer
            sales: (sale_id, amount) for every line of the sale
            credit_date: Date of the sale
        """
        credits = [
            self.create_sale_credit(customer, sale_id, amount, credit_date)
            for sale_id, amount in sales
        ]
        log_action(
            logger, "info", f"{len(credits)} credit records opened for {customer.name}",
            action="sale_credit_opened", resource="customer", resource_id=customer.id,
            extra={"total": str(sum_money((c.amount for c in credits), self.currency).amount)}
        )
        return credits

    def create_sale_credit(
        self,
        customer: Customer,
        sale_id: str,
        amount: Money,
        credit_date: date
    ) -> CreditTransaction:
        """Open a pending credit for one credit sale line"""
        credit = self._new_credit(customer, amount, credit_date, sale_id=sale_id)
        self._save_credit(credit)
        return credit

    def add_opening_debt(
        self,
        customer_id: str,
        amount: Money,
        debt_date: Optional[date] = None,
        note: str = ""
    ) -> CreditTransaction:
        """
        Record a debt that is not tied to a sale (e.g. brought forward
        from a paper register)
        """
        customer = self._require_customer(customer_id)
        debt_date = debt_date or date.today()

        with self.storage.atomic():
            credit = self._new_credit(customer, amount, debt_date, note=note)
            credit.status = self._status_for(debt_date, date.today())
            self._save_credit(credit)
            self.customer_manager.adjust_total_credit(customer_id, amount)

        log_action(
            logger, "info", f"Opening debt of {amount.to_string()} for {customer.name}",
            action="opening_debt_added", resource="credit", resource_id=credit.id,
            extra={"customer_id": customer_id}
        )
        return credit

    # Queries

    def get_credit(self, credit_id: str) -> Optional[CreditTransaction]:
        data = self.storage.load(self.table_name, credit_id)
        if data:
            return self._credit_from_dict(data)
        return None

    def get_all_credits(self) -> List[CreditTransaction]:
        """All credit records, newest first"""
        credits = self._load_credits()
        credits.sort(key=lambda c: (c.date, c.created_at), reverse=True)
        return credits

    def get_customer_credits(self, customer_id: str) -> List[CreditTransaction]:
        credits = [
            self._credit_from_dict(d)
            for d in self.storage.find(self.table_name, {"customer_id": customer_id})
        ]
        credits.sort(key=lambda c: (c.date, c.created_at))
        return credits

    def get_sale_credits(self, sale_id: str) -> List[CreditTransaction]:
        return [
            self._credit_from_dict(d)
            for d in self.storage.find(self.table_name, {"sale_id": sale_id})
        ]

    def pending_amount(self, customer_id: str) -> Money:
        """Debt minus payments: the sum of unpaid records"""
        return sum_money(
            (c.amount for c in self.get_customer_credits(customer_id) if c.is_unpaid),
            self.currency
        )

    def has_unpaid(self, customer_id: str) -> bool:
        return any(c.is_unpaid for c in self.get_customer_credits(customer_id))

    def totals(self) -> Dict[str, object]:
        """Pending and overdue totals across all customers"""
        credits = self._load_credits()
        pending = [c for c in credits if c.status == CreditStatus.PENDING]
        overdue = [c for c in credits if c.status == CreditStatus.OVERDUE]
        return {
            "total_pending": sum_money((c.amount for c in pending), self.currency),
            "total_overdue": sum_money((c.amount for c in overdue), self.currency),
            "overdue_count": len(overdue),
            "total_outstanding": sum_money((c.amount for c in pending + overdue), self.currency)
        }

    def overdue_credits(self, today: Optional[date] = None) -> List[CreditTransaction]:
        """Unpaid credits that are overdue by status or by age on the given day"""
        today = today or date.today()
        return [
            c for c in self._load_credits()
            if c.status == CreditStatus.OVERDUE
            or (c.status == CreditStatus.PENDING
                and self._status_for(c.date, today) == CreditStatus.OVERDUE)
        ]

    def refresh_overdue(self, today: Optional[date] = None) -> int:
        """
        Mark pending credits older than the threshold as overdue

        Returns:
            Number of records that changed status
        """
        today = today or date.today()
        changed = 0
        with self.storage.atomic():
            for credit in self._load_credits():
                if credit.status != CreditStatus.PENDING:
                    continue
                if self._status_for(credit.date, today) == CreditStatus.OVERDUE:
                    credit.status = CreditStatus.OVERDUE
                    credit.updated_at = datetime.now()
                    self._save_credit(credit)
                    changed += 1

        if changed:
            logger.info(f"{changed} credit records became overdue")
        return changed

    def customer_summary(
        self,
        search: str = "",
        overdue_only: bool = False,
        today: Optional[date] = None
    ) -> List[CustomerCreditSummary]:
        """
        Per-customer position for every customer with credit history

        Args:
            search: Case-insensitive name or phone substring
            overdue_only: Keep only customers with an overdue amount
            today: Reference date for the age of the oldest unpaid credit
        """
        today = today or date.today()
        by_customer: Dict[str, List[CreditTransaction]] = {}
        for credit in self._load_credits():
            by_customer.setdefault(credit.customer_id, []).append(credit)

        summaries = []
        for customer in self.customer_manager.search(search):
            credits = by_customer.get(customer.id, [])
            if not credits:
                continue

            unpaid = sorted((c for c in credits if c.is_unpaid), key=lambda c: (c.date, c.created_at))
            oldest = unpaid[0].date if unpaid else None
            summary = CustomerCreditSummary(
                customer=customer,
                pending_amount=sum_money((c.amount for c in unpaid), self.currency),
                overdue_amount=sum_money(
                    (c.amount for c in credits if c.status == CreditStatus.OVERDUE), self.currency
                ),
                transaction_count=len(credits),
                oldest_unpaid_date=oldest,
                days_since_oldest_unpaid=(today - oldest).days if oldest else 0
            )
            if overdue_only and not summary.is_overdue:
                continue
            summaries.append(summary)

        return summaries

    def customer_history(self, customer_id: str) -> List[HistoryEntry]:
        """
        Time-ordered debts and receipts with a running balance

        Split records are folded back into the debt they came from, and
        every receipt appears once however many records it settled. The
        last balance equals the customer's pending amount.
        """
        debts: Dict[str, Dict] = {}
        receipts: Dict[str, Dict] = {}

        for credit in self.get_customer_credits(customer_id):
            debt = debts.setdefault(credit.origin_id, {
                "date": credit.date, "amount": Money.zero(self.currency), "created_at": credit.created_at
            })
            debt["amount"] = debt["amount"] + credit.amount
            debt["date"] = min(debt["date"], credit.date)

            if credit.status == CreditStatus.PAID:
                key = credit.payment_id or credit.id
                receipt = receipts.setdefault(key, {
                    "date": credit.payment_date, "amount": Money.zero(self.currency),
                    "created_at": credit.updated_at
                })
                receipt["amount"] = receipt["amount"] + credit.amount

        events = []
        for reference, debt in debts.items():
            events.append((debt["date"], 0, debt["created_at"], "credit", debt["amount"], reference))
        for reference, receipt in receipts.items():
            events.append((receipt["date"], 1, receipt["created_at"], "payment", receipt["amount"], reference))
        events.sort(key=lambda e: (e[0], e[1], e[2]))

        zero = Money.zero(self.currency)
        balance = zero
        history = []
        for event_date, _, _, entry_type, amount, reference in events:
            if entry_type == "credit":
                balance = balance + amount
                history.append(HistoryEntry(event_date, entry_type, amount, zero, balance, reference))
            else:
                balance = balance - amount
                history.append(HistoryEntry(event_date, entry_type, zero, amount, balance, reference))
        return history

    # Payments

    def receive_payment(
        self,
        customer_id: str,
        amount: Money,
        payment_date: Optional[date] = None
    ) -> PaymentReceipt:
        """
        Receive money against a customer's credit

        Unpaid records are settled oldest first. When the money left over
        is smaller than the next record, that record keeps the unpaid rest
        and a new paid record is split off for the part covered.

        Raises:
            ValueError: If the amount is not positive or exceeds the pending balance
        """
        payment_date = payment_date or date.today()
        customer = self._require_customer(customer_id)

        if not amount.is_positive():
            raise ValueError("Please enter a valid amount")
        pending = self.pending_amount(customer_id)
        if amount > pending:
            raise ValueError(
                f"Payment amount cannot exceed pending balance of {pending.to_string()}"
            )

        payment_id = f"PAY-{uuid.uuid4().hex[:12]}"
        receipt = PaymentReceipt(
            payment_id=payment_id,
            customer_id=customer_id,
            amount=amount,
            payment_date=payment_date
        )
        unpaid = [c for c in self.get_customer_credits(customer_id) if c.is_unpaid]
        remaining = amount
        touched_sales = set()

        with self.storage.atomic():
            for credit in unpaid:
                if not remaining.is_positive():
                    break

                now = datetime.now()
                if remaining >= credit.amount:
                    credit.status = CreditStatus.PAID
                    credit.payment_date = payment_date
                    credit.payment_id = payment_id
                    credit.updated_at = now
                    self._save_credit(credit)
                    receipt.settled.append(credit)
                    remaining = remaining - credit.amount
                else:
                    credit.amount = credit.amount - remaining
                    credit.updated_at = now
                    self._save_credit(credit)

                    paid_part = CreditTransaction(
                        id=f"{credit.id}-paid-{uuid.uuid4().hex[:8]}",
                        created_at=now,
                        updated_at=now,
                        customer_id=credit.customer_id,
                        customer_name=credit.customer_name,
                        amount=remaining,
                        date=credit.date,
                        due_date=credit.due_date,
                        status=CreditStatus.PAID,
                        sale_id=credit.sale_id,
                        payment_date=payment_date,
                        parent_id=credit.parent_id or credit.id,
                        payment_id=payment_id,
                        note=credit.note
                    )
                    self._save_credit(paid_part)
                    receipt.settled.append(paid_part)
                    remaining = Money.zero(self.currency)

                if credit.sale_id:
                    touched_sales.add(credit.sale_id)

            transaction = self.cash_book.post_credit_payment(payment_id, amount, payment_date, customer.name)
            receipt.transaction_id = transaction.id

            for sale_id in touched_sales:
                self.sync_sale_status(sale_id)

        log_action(
            logger, "info", f"Payment of {amount.to_string()} received from {customer.name}",
            action="credit_payment_received", resource="payment", resource_id=payment_id,
            extra={"customer_id": customer_id, "records_settled": len(receipt.settled)}
        )
        return receipt

    def reverse_payment(self, payment_id: str, today: Optional[date] = None) -> Money:
        """
        Undo a receipt

        Split-off paid parts merge back into an unpaid record of their debt;
        fully settled records reopen with a status derived from their age.
        The Shop account gives the money back.

        Returns:
            Amount reversed
        """
        today = today or date.today()
        records = [
            self._credit_from_dict(d)
            for d in self.storage.find(self.table_name, {"payment_id": payment_id})
        ]
        if not records:
            raise RecordNotFoundError(f"Payment {payment_id} not found")

        touched_sales = set()
        with self.storage.atomic():
            for record in records:
                target = self._merge_target(record)
                if target:
                    target.amount = target.amount + record.amount
                    target.updated_at = datetime.now()
                    self._save_credit(target)
                    self.storage.delete(self.table_name, record.id)
                else:
                    record.status = self._status_for(record.date, today)
                    record.payment_date = None
                    record.payment_id = None
                    record.updated_at = datetime.now()
                    self._save_credit(record)

                if record.sale_id:
                    touched_sales.add(record.sale_id)

            reversed_amount = self.cash_book.unpost_credit_payment(payment_id)

            for sale_id in touched_sales:
                self.sync_sale_status(sale_id)

        log_action(
            logger, "info", f"Payment {payment_id} reversed",
            action="credit_payment_reversed", resource="payment", resource_id=payment_id,
            extra={"amount": str(reversed_amount.amount), "records": len(records)}
        )
        return reversed_amount

    # Edits and deletions

    def update_credit(
        self,
        credit_id: str,
        amount: Optional[Money] = None,
        due_date: Optional[date] = None
    ) -> CreditTransaction:
        """
        Edit an unpaid credit

        The due date can change on any unpaid record. The amount can only
        change on opening debts; sale credits follow their sale.
        """
        credit = self._require_credit(credit_id)
        if not credit.is_unpaid:
            raise ValueError("Paid credit cannot be edited; reverse the payment first")

        with self.storage.atomic():
            if amount is not None:
                if credit.sale_id:
                    raise ValueError("Credit of a sale changes with the sale; edit the sale instead")
                if not amount.is_positive():
                    raise ValueError("Credit amount must be positive")
                delta = amount - credit.amount
                credit.amount = amount
                self.customer_manager.adjust_total_credit(credit.customer_id, delta)
            if due_date is not None:
                credit.due_date = due_date
            credit.updated_at = datetime.now()
            self._save_credit(credit)

        log_action(
            logger, "info", f"Credit {credit_id} updated",
            action="credit_updated", resource="credit", resource_id=credit_id
        )
        return credit

    def delete_credit(self, credit_id: str) -> None:
        """
        Delete an unpaid opening debt

        Raises:
            ValueError: For paid records, sale credits, or debts with
                payments already split off them
        """
        credit = self._require_credit(credit_id)
        if not credit.is_unpaid:
            raise ValueError("Paid credit cannot be deleted; reverse the payment first")
        if credit.sale_id and self.storage.exists(SALES, credit.sale_id):
            raise ValueError("Credit of a sale is removed by deleting the sale")
        if self.storage.find(self.table_name, {"parent_id": credit_id}):
            raise ValueError("Payments have been received against this debt; reverse them first")

        with self.storage.atomic():
            self.storage.delete(self.table_name, credit_id)
            self.customer_manager.adjust_total_credit(credit.customer_id, -credit.amount)

        log_action(
            logger, "info", f"Credit {credit_id} deleted",
            action="credit_deleted", resource="credit", resource_id=credit_id,
            extra={"amount": str(credit.amount.amount)}
        )

    def adjust_sale_credit(
        self,
        sale_id: str,
        new_total: Money,
        new_date: Optional[date] = None,
        today: Optional[date] = None,
        previous_total: Optional[Money] = None
    ) -> Money:
        """
        Bring the credit of a sale in line with its edited total

        Paid parts stay as they are; the unpaid part absorbs the change.
        A sale whose customer (and with it the credit history) was deleted
        has no records left; it may still be re-dated but its total is fixed.

        Returns:
            Change in the amount owed

        Raises:
            ValueError: If the new total is below what has been paid, or the
                total of a sale without credit records changes
        """
        today = today or date.today()
        credits = self.get_sale_credits(sale_id)
        if not credits:
            if previous_total is not None and new_total != previous_total:
                raise ValueError(
                    "The customer's credit history for this sale was deleted; its total cannot change"
                )
            return Money.zero(self.currency)

        paid = sum_money((c.amount for c in credits if not c.is_unpaid), self.currency)
        if new_total < paid:
            raise ValueError(
                f"Sale total cannot go below {paid.to_string()} already paid"
            )
        old_total = sum_money((c.amount for c in credits), self.currency)
        new_unpaid = new_total - paid
        unpaid = sorted((c for c in credits if c.is_unpaid), key=lambda c: (c.date, c.created_at))

        with self.storage.atomic():
            if new_date is not None:
                for credit in credits:
                    credit.date = new_date
                    credit.due_date = new_date + timedelta(days=self.due_days)
                    if credit.is_unpaid:
                        credit.status = self._status_for(new_date, today)
                    credit.updated_at = datetime.now()
                    self._save_credit(credit)

            if unpaid:
                keeper, extras = unpaid[0], unpaid[1:]
                for extra in extras:
                    self.storage.delete(self.table_name, extra.id)
                if new_unpaid.is_positive():
                    keeper.amount = new_unpaid
                    keeper.updated_at = datetime.now()
                    self._save_credit(keeper)
                else:
                    self.storage.delete(self.table_name, keeper.id)
            elif new_unpaid.is_positive():
                template = credits[0]
                customer = self._require_customer(template.customer_id)
                credit = self._new_credit(customer, new_unpaid, new_date or template.date, sale_id=sale_id)
                credit.status = self._status_for(credit.date, today)
                self._save_credit(credit)

            delta = new_total - old_total
            self.customer_manager.adjust_total_credit(credits[0].customer_id, delta)
            self.sync_sale_status(sale_id)

        return delta

    def remove_sale_credits(self, sale_id: str) -> Money:
        """
        Remove the credit of a deleted sale

        Raises:
            ValueError: If any part of the sale has already been paid
        """
        credits = self.get_sale_credits(sale_id)
        if any(not c.is_unpaid for c in credits):
            raise ValueError(
                "Payments have been received for this sale; reverse them before deleting it"
            )

        total = sum_money((c.amount for c in credits), self.currency)
        with self.storage.atomic():
            for credit in credits:
                self.storage.delete(self.table_name, credit.id)
            if credits:
                self.customer_manager.adjust_total_credit(credits[0].customer_id, -total)
        return total

    def sync_sale_status(self, sale_id: str) -> Optional[str]:
        """Mark a credit sale paid once every record of it is paid, pending otherwise"""
        sale = self.storage.load(SALES, sale_id)
        if not sale:
            return None
        credits = self.get_sale_credits(sale_id)
        status = "paid" if credits and all(not c.is_unpaid for c in credits) else "pending"
        if sale.get("payment_status") != status:
            sale["payment_status"] = status
            sale["updated_at"] = datetime.now().isoformat()
            self.storage.save(SALES, sale_id, sale)
        return status

    def _merge_target(self, record: CreditTransaction) -> Optional[CreditTransaction]:
        """Unpaid record of the same root debt a reversed paid part folds back into"""
        if not record.parent_id:
            return None
        parent = self.get_credit(record.parent_id)
        if parent and parent.is_unpaid:
            return parent
        for data in self.storage.find(self.table_name, {"parent_id": record.parent_id}):
            sibling = self._credit_from_dict(data)
            if sibling.id != record.id and sibling.is_unpaid:
                return sibling
        return None

    def _status_for(self, credit_date: date, today: date) -> CreditStatus:
        if (today - credit_date).days > self.overdue_after_days:
            return CreditStatus.OVERDUE
        return CreditStatus.PENDING

    def _new_credit(
        self,
        customer: Customer,
        amount: Money,
        credit_date: date,
        sale_id: Optional[str] = None,
        note: str = ""
    ) -> CreditTransaction:
        now = datetime.now()
        return CreditTransaction(
            id=f"CR-{uuid.uuid4().hex[:12]}",
            created_at=now,
            updated_at=now,
            customer_id=customer.id,
            customer_name=customer.name,
            amount=amount,
            date=credit_date,
            due_date=credit_date + timedelta(days=self.due_days),
            status=CreditStatus.PENDING,
            sale_id=sale_id,
            note=note
        )

    def _require_customer(self, customer_id: str) -> Customer:
        customer = self.customer_manager.get_customer(customer_id)
        if not customer:
            raise RecordNotFoundError(f"Customer {customer_id} not found")
        return customer

    def _require_credit(self, credit_id: str) -> CreditTransaction:
        credit = self.get_credit(credit_id)
        if not credit:
            raise RecordNotFoundError(f"Credit {credit_id} not found")
        return credit

    def _load_credits(self) -> List[CreditTransaction]:
        return [self._credit_from_dict(d) for d in self.storage.load_all(self.table_name)]

    def _save_credit(self, credit: CreditTransaction) -> None:
        self.storage.save(self.table_name, credit.id, self._credit_to_dict(credit))

    def _credit_to_dict(self, credit: CreditTransaction) -> Dict:
        return {
            'id': credit.id,
            'created_at': credit.created_at.isoformat(),
            'updated_at': credit.updated_at.isoformat(),
            'customer_id': credit.customer_id,
            'customer_name': credit.customer_name,
            'sale_id': credit.sale_id,
            'amount': str(credit.amount.amount),
            'currency': credit.amount.currency.code,
            'date': credit.date.isoformat(),
            'due_date': credit.due_date.isoformat(),
            'payment_date': credit.payment_date.isoformat() if credit.payment_date else None,
            'status': credit.status.value,
            'parent_id': credit.parent_id,
            'payment_id': credit.payment_id,
            'note': credit.note
        }

    def _credit_from_dict(self, data: Dict) -> CreditTransaction:
        payment_date = None
        if data.get('payment_date'):
            payment_date = date.fromisoformat(data['payment_date'])

        return CreditTransaction(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            customer_id=data['customer_id'],
            customer_name=data.get('customer_name', ''),
            sale_id=data.get('sale_id'),
            amount=Money(Decimal(data['amount']), Currency[data.get('currency', self.currency.code)]),
            date=date.fromisoformat(data['date']),
            due_date=date.fromisoformat(data['due_date']),
            payment_date=payment_date,
            status=CreditStatus(data['status']),
            parent_id=data.get('parent_id'),
            payment_id=data.get('payment_id'),
            note=data.get('note', '')
        )
