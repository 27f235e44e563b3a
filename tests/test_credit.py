"""
Test suite for the credit (Udhaar) ledger

Tests oldest-first settlement, splitting of partly paid credits, payment
reversal, running-balance history, overdue tracking and the link to the
Shop cash account.
"""

import pytest
from decimal import Decimal
from datetime import date, timedelta

from shop_books.currency import Money, Currency
from shop_books.storage import InMemoryStorage, RecordNotFoundError
from shop_books.customers import CustomerManager
from shop_books.finance import CashBook, AccountType, TransactionType
from shop_books.credit import CreditManager, CreditStatus


def pkr(amount):
    return Money(Decimal(amount), Currency.PKR)


class CreditTestBase:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.customers = CustomerManager(self.storage)
        self.cash_book = CashBook(self.storage)
        self.credit = CreditManager(self.storage, self.customers, self.cash_book)
        self.today = date.today()
        self.customer = self.customers.create_customer("Ali", "0300")

    def days_ago(self, days):
        return self.today - timedelta(days=days)

    def debt(self, amount, days_ago, customer=None):
        customer = customer or self.customer
        return self.credit.add_opening_debt(customer.id, pkr(amount), self.days_ago(days_ago))


class TestOpeningDebts(CreditTestBase):

    def test_opening_debt(self):
        credit = self.debt('500', 10)

        assert credit.status == CreditStatus.PENDING
        assert credit.due_date == credit.date + timedelta(days=45)
        assert credit.sale_id is None
        assert self.credit.pending_amount(self.customer.id) == pkr('500')
        assert self.customers.get_customer(self.customer.id).total_credit == pkr('500')

    def test_old_debt_starts_overdue(self):
        assert self.debt('100', 60).status == CreditStatus.OVERDUE

    def test_unknown_customer(self):
        with pytest.raises(RecordNotFoundError):
            self.credit.add_opening_debt("nope", pkr('100'))

    def test_sale_credits(self):
        credits = self.credit.record_sale_credits(
            self.customer, [("SALE-1", pkr('200')), ("SALE-2", pkr('300'))], self.today
        )

        assert [c.sale_id for c in credits] == ["SALE-1", "SALE-2"]
        assert all(c.due_date == self.today + timedelta(days=45) for c in credits)
        assert self.credit.pending_amount(self.customer.id) == pkr('500')
        assert self.credit.has_unpaid(self.customer.id)


class TestReceivePayment(CreditTestBase):

    def test_settles_oldest_first(self):
        older = self.debt('300', 20)
        newer = self.debt('200', 10)

        receipt = self.credit.receive_payment(self.customer.id, pkr('300'), self.today)

        assert [c.id for c in receipt.settled] == [older.id]
        assert self.credit.get_credit(older.id).status == CreditStatus.PAID
        assert self.credit.get_credit(older.id).payment_id == receipt.payment_id
        assert self.credit.get_credit(newer.id).status == CreditStatus.PENDING
        assert self.credit.pending_amount(self.customer.id) == pkr('200')

    def test_partial_payment_splits_credit(self):
        original = self.debt('500', 10)

        receipt = self.credit.receive_payment(self.customer.id, pkr('200'), self.today)

        remaining = self.credit.get_credit(original.id)
        assert remaining.amount == pkr('300')
        assert remaining.is_unpaid

        paid_part = receipt.settled[0]
        assert paid_part.id != original.id
        assert paid_part.parent_id == original.id
        assert paid_part.amount == pkr('200')
        assert paid_part.status == CreditStatus.PAID
        assert paid_part.payment_date == self.today
        assert self.credit.pending_amount(self.customer.id) == pkr('300')

    def test_payment_spanning_credits(self):
        first = self.debt('300', 20)
        second = self.debt('200', 10)

        receipt = self.credit.receive_payment(self.customer.id, pkr('400'), self.today)

        assert len(receipt.settled) == 2
        assert receipt.settled[0].id == first.id
        assert receipt.settled[1].parent_id == second.id
        assert self.credit.get_credit(second.id).amount == pkr('100')
        assert self.credit.pending_amount(self.customer.id) == pkr('100')

    def test_payment_credits_shop_account(self):
        self.debt('500', 10)

        receipt = self.credit.receive_payment(self.customer.id, pkr('150'), self.today)

        assert self.cash_book.get_balance(AccountType.SHOP) == pkr('150')
        entries = self.cash_book.list_transactions(transaction_type=TransactionType.CREDIT_PAYMENT)
        assert len(entries) == 1
        assert entries[0].reference == receipt.payment_id
        assert entries[0].id == receipt.transaction_id

    def test_overpayment_rejected(self):
        self.debt('500', 10)

        with pytest.raises(ValueError, match="cannot exceed pending balance"):
            self.credit.receive_payment(self.customer.id, pkr('600'), self.today)

        assert self.credit.pending_amount(self.customer.id) == pkr('500')
        assert self.cash_book.get_balance(AccountType.SHOP).is_zero()

    def test_non_positive_payment_rejected(self):
        self.debt('500', 10)
        with pytest.raises(ValueError, match="valid amount"):
            self.credit.receive_payment(self.customer.id, pkr('0'), self.today)


class TestReversePayment(CreditTestBase):

    def test_reverse_partial_payment_merges_back(self):
        original = self.debt('500', 10)
        receipt = self.credit.receive_payment(self.customer.id, pkr('200'), self.today)

        reversed_amount = self.credit.reverse_payment(receipt.payment_id)

        assert reversed_amount == pkr('200')
        credits = self.credit.get_customer_credits(self.customer.id)
        assert [c.id for c in credits] == [original.id]
        assert credits[0].amount == pkr('500')
        assert self.cash_book.get_balance(AccountType.SHOP).is_zero()
        assert self.cash_book.list_transactions() == []

    def test_reverse_full_payment_reopens(self):
        credit = self.debt('300', 10)
        receipt = self.credit.receive_payment(self.customer.id, pkr('300'), self.today)

        self.credit.reverse_payment(receipt.payment_id, today=self.today)

        reopened = self.credit.get_credit(credit.id)
        assert reopened.status == CreditStatus.PENDING
        assert reopened.payment_date is None
        assert reopened.payment_id is None

    def test_reopened_old_credit_is_overdue(self):
        credit = self.debt('300', 50)
        receipt = self.credit.receive_payment(self.customer.id, pkr('300'), self.today)

        self.credit.reverse_payment(receipt.payment_id, today=self.today)

        assert self.credit.get_credit(credit.id).status == CreditStatus.OVERDUE

    def test_reverse_unknown_payment(self):
        with pytest.raises(RecordNotFoundError):
            self.credit.reverse_payment("PAY-missing")

    def test_cash_accounts_reconcile_after_reversal(self):
        self.debt('300', 20)
        self.debt('200', 10)
        first = self.credit.receive_payment(self.customer.id, pkr('350'), self.today)
        self.credit.receive_payment(self.customer.id, pkr('100'), self.today)
        self.credit.reverse_payment(first.payment_id)

        assert self.cash_book.get_balance(AccountType.SHOP) == pkr('100')
        assert all(row["balanced"] for row in self.cash_book.reconcile().values())
        assert self.credit.pending_amount(self.customer.id) == pkr('400')


class TestRepeatedSplits(CreditTestBase):

    def setup_method(self):
        super().setup_method()
        self.original = self.debt('100', 10)
        self.first = self.credit.receive_payment(self.customer.id, pkr('30'), self.days_ago(8))
        self.second = self.credit.receive_payment(self.customer.id, pkr('70'), self.days_ago(6))
        self.credit.reverse_payment(self.first.payment_id, today=self.today)

    def test_split_part_reopens_when_parent_is_paid(self):
        reopened = self.first.settled[0]
        assert reopened.parent_id == self.original.id

        record = self.credit.get_credit(reopened.id)
        assert record.status == CreditStatus.PENDING
        assert record.amount == pkr('30')
        assert record.payment_id is None
        assert self.credit.get_credit(self.original.id).status == CreditStatus.PAID
        assert self.credit.pending_amount(self.customer.id) == pkr('30')

    def test_split_of_reopened_part_points_at_root_debt(self):
        receipt = self.credit.receive_payment(self.customer.id, pkr('10'), self.days_ago(2))

        assert [c.parent_id for c in receipt.settled] == [self.original.id]
        assert self.credit.pending_amount(self.customer.id) == pkr('20')

    def test_history_keeps_one_debt_line(self):
        self.credit.receive_payment(self.customer.id, pkr('10'), self.days_ago(2))

        history = self.credit.customer_history(self.customer.id)

        debts = [e for e in history if e.entry_type == "credit"]
        assert [(e.credit, e.reference) for e in debts] == [(pkr('100'), self.original.id)]
        assert [e.balance for e in history] == [pkr('100'), pkr('30'), pkr('20')]

    def test_reversal_merges_into_unpaid_sibling(self):
        receipt = self.credit.receive_payment(self.customer.id, pkr('10'), self.days_ago(2))

        self.credit.reverse_payment(receipt.payment_id, today=self.today)

        unpaid = [c for c in self.credit.get_customer_credits(self.customer.id) if c.is_unpaid]
        assert [(c.id, c.amount) for c in unpaid] == [(self.first.settled[0].id, pkr('30'))]
        assert self.credit.get_credit(receipt.settled[0].id) is None
        assert self.credit.customer_history(self.customer.id)[-1].balance == pkr('30')
        assert self.cash_book.get_balance(AccountType.SHOP) == pkr('70')


class TestHistoryAndSummary(CreditTestBase):

    def test_history_running_balance(self):
        self.debt('300', 20)
        self.debt('200', 10)
        self.credit.receive_payment(self.customer.id, pkr('350'), self.days_ago(5))

        history = self.credit.customer_history(self.customer.id)

        assert [e.entry_type for e in history] == ["credit", "credit", "payment"]
        assert [e.balance for e in history] == [pkr('300'), pkr('500'), pkr('150')]
        assert history[1].credit == pkr('200')
        assert history[2].received == pkr('350')
        assert history[2].date == self.days_ago(5)
        assert history[-1].balance == self.credit.pending_amount(self.customer.id)

    def test_history_of_fully_paid_customer(self):
        self.debt('300', 20)
        self.credit.receive_payment(self.customer.id, pkr('100'), self.days_ago(10))
        self.credit.receive_payment(self.customer.id, pkr('200'), self.days_ago(5))

        history = self.credit.customer_history(self.customer.id)

        assert [e.entry_type for e in history] == ["credit", "payment", "payment"]
        assert history[-1].balance.is_zero()

    def test_customer_summary(self):
        bilal = self.customers.create_customer("Bilal", "0321")
        self.customers.create_customer("Zara", "0345")  # no credit history
        self.debt('300', 60)
        self.debt('200', 10)
        self.debt('50', 5, customer=bilal)

        summaries = self.credit.customer_summary(today=self.today)

        assert [s.customer.name for s in summaries] == ["Ali", "Bilal"]
        ali = summaries[0]
        assert ali.pending_amount == pkr('500')
        assert ali.overdue_amount == pkr('300')
        assert ali.transaction_count == 2
        assert ali.oldest_unpaid_date == self.days_ago(60)
        assert ali.days_since_oldest_unpaid == 60

        overdue = self.credit.customer_summary(overdue_only=True, today=self.today)
        assert [s.customer.name for s in overdue] == ["Ali"]

        assert [s.customer.name for s in self.credit.customer_summary(search="bil")] == ["Bilal"]

    def test_totals(self):
        self.debt('300', 60)
        self.debt('200', 10)

        totals = self.credit.totals()
        assert totals["total_pending"] == pkr('200')
        assert totals["total_overdue"] == pkr('300')
        assert totals["overdue_count"] == 1
        assert totals["total_outstanding"] == pkr('500')

    def test_refresh_overdue(self):
        credit = self.debt('300', 40)

        assert self.credit.refresh_overdue(self.today) == 0
        assert self.credit.refresh_overdue(self.today + timedelta(days=10)) == 1
        assert self.credit.get_credit(credit.id).status == CreditStatus.OVERDUE

    def test_overdue_credits_by_age(self):
        self.debt('300', 40)
        assert self.credit.overdue_credits(self.today) == []
        assert len(self.credit.overdue_credits(self.today + timedelta(days=10))) == 1


class TestEditsAndDeletes(CreditTestBase):

    def test_update_opening_debt(self):
        credit = self.debt('300', 10)
        new_due = self.today + timedelta(days=90)

        updated = self.credit.update_credit(credit.id, amount=pkr('350'), due_date=new_due)

        assert updated.amount == pkr('350')
        assert updated.due_date == new_due
        assert self.customers.get_customer(self.customer.id).total_credit == pkr('350')

    def test_update_rejects_non_positive_amount(self):
        credit = self.debt('300', 10)
        with pytest.raises(ValueError, match="must be positive"):
            self.credit.update_credit(credit.id, amount=pkr('0'))

    def test_paid_credit_cannot_be_edited(self):
        credit = self.debt('300', 10)
        self.credit.receive_payment(self.customer.id, pkr('300'), self.today)

        with pytest.raises(ValueError, match="reverse the payment first"):
            self.credit.update_credit(credit.id, amount=pkr('100'))

    def test_sale_credit_amount_follows_sale(self):
        credit = self.credit.record_sale_credits(self.customer, [("SALE-1", pkr('200'))], self.today)[0]
        with pytest.raises(ValueError, match="edit the sale"):
            self.credit.update_credit(credit.id, amount=pkr('100'))

    def test_delete_opening_debt(self):
        credit = self.debt('300', 10)

        self.credit.delete_credit(credit.id)

        assert self.credit.get_credit(credit.id) is None
        assert self.customers.get_customer(self.customer.id).total_credit.is_zero()

    def test_delete_refused_after_partial_payment(self):
        credit = self.debt('300', 10)
        self.credit.receive_payment(self.customer.id, pkr('100'), self.today)

        with pytest.raises(ValueError, match="reverse them first"):
            self.credit.delete_credit(credit.id)

    def test_customer_delete_blocked_until_paid(self):
        self.debt('300', 10)
        with pytest.raises(ValueError, match="pending payments"):
            self.customers.delete_customer(self.customer.id)

        self.credit.receive_payment(self.customer.id, pkr('300'), self.today)
        self.customers.delete_customer(self.customer.id)

        assert self.customers.get_customer(self.customer.id) is None
        assert self.credit.get_customer_credits(self.customer.id) == []
