"""
Tests for the dashboard and stock movement reports
"""

import csv
import io
import json
import pytest
from decimal import Decimal
from datetime import date, timedelta

from shop_books.currency import Money, Currency
from shop_books.storage import InMemoryStorage
from shop_books.items import ItemType, ItemCatalog
from shop_books.inventory import InventoryManager, LineItem
from shop_books.customers import CustomerManager
from shop_books.finance import CashBook
from shop_books.credit import CreditManager
from shop_books.sales import SalesManager
from shop_books.reporting import ReportingEngine, ReportFormat


def pkr(amount):
    return Money(Decimal(amount), Currency.PKR)


def line(item_type, quantity, price):
    return LineItem(item_type, Decimal(quantity), Decimal(price))


class TestReportingEngine:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.inventory = InventoryManager(self.storage, ItemCatalog(self.storage))
        self.customers = CustomerManager(self.storage)
        self.cash_book = CashBook(self.storage)
        self.credit = CreditManager(self.storage, self.customers, self.cash_book)
        self.sales = SalesManager(self.storage, self.inventory, self.customers, self.credit, self.cash_book)
        self.reporting = ReportingEngine(self.inventory, self.sales, self.credit, self.cash_book)
        self.today = date.today()

    def days_ago(self, days):
        return self.today - timedelta(days=days)

    def build_shop(self):
        self.inventory.record_purchase(self.days_ago(90), "A", [line(ItemType.BN, '10', '100')])
        self.inventory.record_purchase(self.days_ago(10), "B", [line(ItemType.SN, '3', '80')])
        self.sales.record_sale(self.days_ago(60), [line(ItemType.BN, '2', '150')],
                               is_credit=True, customer_name="Ali")
        self.sales.record_sale(self.days_ago(5), [line(ItemType.BN, '4', '150')])
        self.cash_book.record_expense(self.today, pkr('100'), "rent")
        self.cash_book.record_expense(self.today, pkr('50'), "owner")

    def test_dashboard_empty_shop(self):
        totals = self.reporting.dashboard_stats(self.today).totals

        assert totals['net_sales'] == Decimal('0')
        assert totals['net_profit'] == Decimal('0')
        assert totals['gross_margin'] == Decimal('0')
        assert totals['shop_expense_percentage'] == Decimal('0')
        assert totals['overdue_credits'] == 0

    def test_dashboard_figures(self):
        self.build_shop()

        result = self.reporting.dashboard_stats(self.today)
        totals = result.totals

        assert totals['net_sales'] == Decimal('900')
        assert totals['cost_of_goods_sold'] == Decimal('600')
        assert totals['gross_profit'] == Decimal('300')
        assert totals['total_expense'] == Decimal('150')
        assert totals['shop_expense'] == Decimal('100')
        assert totals['owners_equity'] == Decimal('50')
        assert totals['net_profit'] == Decimal('150')
        assert totals['average_daily_sales'] == Decimal('20.00')
        assert totals['inventory_value'] == Decimal('640')
        assert totals['pending_credits'] == Decimal('300')
        assert totals['gross_margin'] == Decimal('33.33')
        assert totals['net_margin'] == Decimal('16.67')
        assert totals['shop_expense_percentage'] == Decimal('66.67')
        assert totals['owners_equity_percentage'] == Decimal('33.33')
        assert totals['currency'] == "PKR"

    def test_dashboard_lists_overdue_credit(self):
        self.build_shop()

        result = self.reporting.dashboard_stats(self.today)

        assert result.totals['overdue_credits'] == 1
        row = result.data[0]
        assert row['name'] == "Ali"
        assert row['amount'] == Decimal('300')
        assert row['days_overdue'] == 15

    def test_dashboard_does_not_change_credit_status(self):
        self.build_shop()

        self.reporting.dashboard_stats(self.today)

        assert self.credit.totals()['overdue_count'] == 0

    def test_overdue_list_is_limited(self):
        self.inventory.record_purchase(self.days_ago(100), "A", [line(ItemType.BN, '20', '100')])
        for index in range(7):
            self.sales.record_sale(self.days_ago(50 + index), [line(ItemType.BN, '1', '150')],
                                   is_credit=True, customer_name=f"Customer {index}")

        result = self.reporting.dashboard_stats(self.today)

        assert len(result.data) == 5
        assert [row['days_overdue'] for row in result.data] == [11, 10, 9, 8, 7]

    def test_stock_movement(self):
        self.build_shop()

        result = self.reporting.stock_movement(self.days_ago(30), self.today)

        assert [row['key'] for row in result.data] == ["BN", "SN"]
        bn, sn = result.data
        assert (bn['opening_stock'], bn['purchased_in_period'], bn['sold_in_period'], bn['closing_stock']) == \
            (Decimal('8'), Decimal('0'), Decimal('4'), Decimal('4'))
        assert (sn['opening_stock'], sn['purchased_in_period'], sn['sold_in_period'], sn['closing_stock']) == \
            (Decimal('0'), Decimal('3'), Decimal('0'), Decimal('3'))
        assert result.totals['closing_stock'] == Decimal('7')

    def test_stock_movement_rejects_reversed_period(self):
        with pytest.raises(ValueError, match="End date"):
            self.reporting.stock_movement(self.today, self.days_ago(1))

    def test_export_json(self):
        self.build_shop()
        result = self.reporting.stock_movement(self.days_ago(30), self.today)

        exported = json.loads(self.reporting.export_report(result, ReportFormat.JSON))

        assert exported['report_id'] == "stock_movement"
        assert exported['period_end'] == self.today.isoformat()
        assert exported['data'][0]['closing_stock'] == "4"
        assert exported['metadata'] == {'row_count': 2}

    def test_export_csv(self):
        self.build_shop()
        result = self.reporting.stock_movement(self.days_ago(30), self.today)

        exported = self.reporting.export_report(result, ReportFormat.CSV)

        rows = list(csv.DictReader(io.StringIO(exported)))
        assert [row['name'] for row in rows] == ["BN", "SN"]
        assert rows[1]['purchased_in_period'] == "3"

    def test_export_csv_without_rows(self):
        result = self.reporting.stock_movement(self.days_ago(30), self.today)
        assert self.reporting.export_report(result, ReportFormat.CSV) == ""
