"""
Tests for the sales ledger and its links to stock, credit and cash
"""

import pytest
from decimal import Decimal
from datetime import date, timedelta

from shop_books.currency import Money, Currency
from shop_books.storage import InMemoryStorage, RecordNotFoundError
from shop_books.items import ItemType, ItemCatalog
from shop_books.inventory import InventoryManager, InsufficientStockError, LineItem
from shop_books.customers import CustomerManager
from shop_books.finance import CashBook, AccountType, TransactionType
from shop_books.credit import CreditManager, CreditStatus
from shop_books.sales import SalesManager


def pkr(amount):
    return Money(Decimal(amount), Currency.PKR)


def line(item_type, quantity, price, custom_item_name=None):
    return LineItem(item_type, Decimal(quantity), Decimal(price), custom_item_name)


class SalesTestBase:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.inventory = InventoryManager(self.storage, ItemCatalog(self.storage))
        self.customers = CustomerManager(self.storage)
        self.cash_book = CashBook(self.storage)
        self.credit = CreditManager(self.storage, self.customers, self.cash_book)
        self.sales = SalesManager(self.storage, self.inventory, self.customers, self.credit, self.cash_book)
        self.today = date.today()

        self.old_batch = self.inventory.record_purchase(self.today - timedelta(days=20), "A", [
            line(ItemType.BN, '10', '100'),
        ])[0]
        self.new_batch = self.inventory.record_purchase(self.today - timedelta(days=5), "A", [
            line(ItemType.BN, '10', '110'),
            line(ItemType.SN, '5', '80'),
        ])[0]

    def shop_balance(self):
        return self.cash_book.get_balance(AccountType.SHOP)

    def assert_cash_reconciles(self):
        assert all(row["balanced"] for row in self.cash_book.reconcile().values())


class TestCashSales(SalesTestBase):

    def test_cash_sale(self):
        sales = self.sales.record_sale(self.today, [line(ItemType.BN, '12', '150')])

        sale = sales[0]
        assert sale.total_amount == pkr('1800')
        assert sale.payment_status == "paid"
        assert not sale.is_credit
        assert [b["batch_id"] for b in sale.batches_used] == ["001", "002"]
        assert self.inventory.available_quantity(ItemType.BN) == Decimal('8')
        assert self.shop_balance() == pkr('1800')

        entries = self.cash_book.list_transactions(transaction_type=TransactionType.SALE)
        assert [e.reference for e in entries] == [sale.id]

    def test_one_record_per_line(self):
        sales = self.sales.record_sale(self.today, [
            line(ItemType.BN, '1', '150'),
            line(ItemType.SN, '2', '120'),
        ])

        assert len(sales) == 2
        assert self.shop_balance() == pkr('390')
        assert len(self.sales.list_sales()) == 2

    def test_stock_checked_across_lines_before_writing(self):
        with pytest.raises(InsufficientStockError):
            self.sales.record_sale(self.today, [
                line(ItemType.SN, '3', '120'),
                line(ItemType.SN, '3', '120'),
            ])

        assert self.sales.list_sales() == []
        assert self.inventory.available_quantity(ItemType.SN) == Decimal('5')
        assert self.shop_balance().is_zero()

    def test_invalid_line_rejected(self):
        with pytest.raises(ValueError, match="price must be positive"):
            self.sales.record_sale(self.today, [line(ItemType.BN, '1', '0')])
        with pytest.raises(ValueError, match="at least one line"):
            self.sales.record_sale(self.today, [])

    def test_delete_cash_sale(self):
        sale = self.sales.record_sale(self.today, [line(ItemType.BN, '12', '150')])[0]

        self.sales.delete_sale(sale.id)

        assert self.sales.get_sale(sale.id) is None
        assert self.inventory.get_purchase(self.old_batch.id).remaining_quantity == Decimal('10')
        assert self.inventory.get_purchase(self.new_batch.id).remaining_quantity == Decimal('10')
        assert self.shop_balance().is_zero()
        self.assert_cash_reconciles()

    def test_update_cash_sale(self):
        sale = self.sales.record_sale(self.today, [line(ItemType.BN, '5', '150')])[0]

        updated = self.sales.update_sale(sale.id, quantity=Decimal('12'), price_per_unit=Decimal('140'))

        assert updated.total_amount == pkr('1680')
        assert self.inventory.available_quantity(ItemType.BN) == Decimal('8')
        assert self.shop_balance() == pkr('1680')
        self.assert_cash_reconciles()

    def test_update_beyond_stock_changes_nothing(self):
        sale = self.sales.record_sale(self.today, [line(ItemType.BN, '5', '150')])[0]

        with pytest.raises(InsufficientStockError):
            self.sales.update_sale(sale.id, quantity=Decimal('30'))

        assert self.sales.get_sale(sale.id).quantity == Decimal('5')
        assert self.inventory.available_quantity(ItemType.BN) == Decimal('15')

    def test_missing_sale(self):
        with pytest.raises(RecordNotFoundError):
            self.sales.delete_sale("SALE-missing")

    def test_sales_summary_and_filter(self):
        self.sales.record_sale(self.today - timedelta(days=3), [line(ItemType.BN, '1', '100')])
        self.sales.record_sale(self.today, [line(ItemType.BN, '1', '150')])
        self.sales.record_sale(self.today, [line(ItemType.SN, '1', '90')], is_credit=True, customer_name="Ali")

        summary = self.sales.sales_summary()
        assert summary["total_sales"] == pkr('340')
        assert summary["cash_sales"] == pkr('250')
        assert summary["credit_sales"] == pkr('90')
        assert summary["count"] == 3

        recent = self.sales.list_sales(start_date=self.today)
        assert len(recent) == 2


class TestCreditSales(SalesTestBase):

    def test_credit_sale_requires_customer_name(self):
        with pytest.raises(ValueError, match="Customer name is required"):
            self.sales.record_sale(self.today, [line(ItemType.BN, '1', '150')], is_credit=True)

    def test_credit_sale_creates_customer_and_credits(self):
        sales = self.sales.record_sale(self.today, [
            line(ItemType.BN, '2', '150'),
            line(ItemType.SN, '1', '120'),
        ], is_credit=True, customer_name="Ali", customer_phone="0300")

        customer = self.customers.find_by_name("Ali")
        assert customer.phone == "0300"
        assert customer.total_credit == pkr('420')
        assert customer.last_purchase_date == self.today
        assert all(s.payment_status == "pending" and s.customer_id == customer.id for s in sales)

        credits = self.credit.get_customer_credits(customer.id)
        assert sorted(c.sale_id for c in credits) == sorted(s.id for s in sales)
        assert all(c.due_date == self.today + timedelta(days=45) for c in credits)
        assert self.credit.pending_amount(customer.id) == pkr('420')

        # Credit sales do not touch the till
        assert self.shop_balance().is_zero()

    def test_existing_customer_reused_by_name(self):
        existing = self.customers.create_customer("Ali", "0300")

        sale = self.sales.record_sale(self.today, [line(ItemType.BN, '1', '150')],
                                      is_credit=True, customer_name="ali")[0]

        assert sale.customer_id == existing.id
        assert len(self.customers.get_all_customers()) == 1

    def test_full_payment_marks_sale_paid(self):
        sale = self.sales.record_sale(self.today, [line(ItemType.BN, '2', '150')],
                                      is_credit=True, customer_name="Ali")[0]

        receipt = self.credit.receive_payment(sale.customer_id, pkr('100'), self.today)
        assert self.sales.get_sale(sale.id).payment_status == "pending"

        self.credit.receive_payment(sale.customer_id, pkr('200'), self.today)
        assert self.sales.get_sale(sale.id).payment_status == "paid"

        self.credit.reverse_payment(receipt.payment_id)
        assert self.sales.get_sale(sale.id).payment_status == "pending"

    def test_delete_unpaid_credit_sale(self):
        sale = self.sales.record_sale(self.today, [line(ItemType.BN, '2', '150')],
                                      is_credit=True, customer_name="Ali")[0]

        self.sales.delete_sale(sale.id)

        assert self.credit.get_sale_credits(sale.id) == []
        assert self.customers.get_customer(sale.customer_id).total_credit.is_zero()
        assert self.inventory.available_quantity(ItemType.BN) == Decimal('20')

    def test_delete_partly_paid_credit_sale_refused(self):
        sale = self.sales.record_sale(self.today, [line(ItemType.BN, '2', '150')],
                                      is_credit=True, customer_name="Ali")[0]
        self.credit.receive_payment(sale.customer_id, pkr('100'), self.today)

        with pytest.raises(ValueError, match="reverse them before deleting"):
            self.sales.delete_sale(sale.id)

        assert self.sales.get_sale(sale.id) is not None
        assert self.inventory.available_quantity(ItemType.BN) == Decimal('18')

    def test_update_credit_sale_moves_unpaid_part(self):
        sale = self.sales.record_sale(self.today, [line(ItemType.BN, '2', '100')],
                                      is_credit=True, customer_name="Ali")[0]
        self.credit.receive_payment(sale.customer_id, pkr('150'), self.today)

        self.sales.update_sale(sale.id, price_per_unit=Decimal('120'))

        assert self.credit.pending_amount(sale.customer_id) == pkr('90')
        assert self.customers.get_customer(sale.customer_id).total_credit == pkr('240')
        history = self.credit.customer_history(sale.customer_id)
        assert history[-1].balance == pkr('90')

    def test_update_credit_sale_below_paid_refused(self):
        sale = self.sales.record_sale(self.today, [line(ItemType.BN, '2', '100')],
                                      is_credit=True, customer_name="Ali")[0]
        self.credit.receive_payment(sale.customer_id, pkr('150'), self.today)

        with pytest.raises(ValueError, match="already paid"):
            self.sales.update_sale(sale.id, price_per_unit=Decimal('50'))

        assert self.sales.get_sale(sale.id).price_per_unit == pkr('100')
        assert self.credit.pending_amount(sale.customer_id) == pkr('50')

    def test_update_credit_sale_to_fully_paid(self):
        sale = self.sales.record_sale(self.today, [line(ItemType.BN, '2', '100')],
                                      is_credit=True, customer_name="Ali")[0]
        self.credit.receive_payment(sale.customer_id, pkr('150'), self.today)

        updated = self.sales.update_sale(sale.id, quantity=Decimal('1'), price_per_unit=Decimal('150'))

        assert updated.payment_status == "paid"
        assert self.credit.pending_amount(sale.customer_id).is_zero()
        assert not self.credit.has_unpaid(sale.customer_id)

    def test_backdated_credit_sale_date_change(self):
        sale = self.sales.record_sale(self.today, [line(ItemType.BN, '1', '100')],
                                      is_credit=True, customer_name="Ali")[0]

        self.sales.update_sale(sale.id, sale_date=self.today - timedelta(days=60), today=self.today)

        credit = self.credit.get_sale_credits(sale.id)[0]
        assert credit.date == self.today - timedelta(days=60)
        assert credit.due_date == self.today - timedelta(days=15)
        assert credit.status == CreditStatus.OVERDUE

    def test_settled_sale_of_deleted_customer_can_be_redated(self):
        sale = self.sales.record_sale(self.today, [line(ItemType.BN, '2', '150')],
                                      is_credit=True, customer_name="Ali")[0]
        self.credit.receive_payment(sale.customer_id, pkr('300'), self.today)
        self.customers.delete_customer(sale.customer_id)

        updated = self.sales.update_sale(sale.id, sale_date=self.today - timedelta(days=1))

        assert updated.date == self.today - timedelta(days=1)
        assert self.credit.get_sale_credits(sale.id) == []

    def test_settled_sale_of_deleted_customer_keeps_its_total(self):
        sale = self.sales.record_sale(self.today, [line(ItemType.BN, '2', '150')],
                                      is_credit=True, customer_name="Ali")[0]
        self.credit.receive_payment(sale.customer_id, pkr('300'), self.today)
        self.customers.delete_customer(sale.customer_id)

        with pytest.raises(ValueError, match="credit history") as exc_info:
            self.sales.update_sale(sale.id, price_per_unit=Decimal('200'))

        assert not isinstance(exc_info.value, RecordNotFoundError)
        assert self.sales.get_sale(sale.id).price_per_unit == pkr('150')


class TestSaleLineTotals(SalesTestBase):

    def test_line_total_rounding_to_zero_rejected(self):
        with pytest.raises(ValueError, match="rounds to zero"):
            self.sales.record_sale(self.today, [line(ItemType.BN, '0.001', '1')])

        assert self.sales.list_sales() == []
        assert self.inventory.available_quantity(ItemType.BN) == Decimal('20')
        assert self.shop_balance().is_zero()

    def test_zero_total_line_rejects_whole_credit_sale(self):
        with pytest.raises(ValueError, match="rounds to zero"):
            self.sales.record_sale(self.today, [
                line(ItemType.BN, '1', '150'),
                line(ItemType.SN, '0.001', '2'),
            ], is_credit=True, customer_name="Ali")

        assert self.sales.list_sales() == []
        assert self.customers.get_all_customers() == []
