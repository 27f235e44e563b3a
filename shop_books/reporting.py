"""
Reporting Module

Dashboard figures and the stock movement report, computed from the
stored sales, purchases, credits and cash transactions. Reports are
read-only; nothing here mutates the ledgers.
"""

from decimal import Decimal
from datetime import datetime, date, timedelta
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Union
from enum import Enum
import csv
import io
import json
import logging

from .currency import Currency, sum_money
from .items import display_name
from .inventory import InventoryManager
from .sales import SalesManager
from .credit import CreditManager
from .finance import CashBook, TransactionType


logger = logging.getLogger("shop_books.reporting")

# Expense category counted as owner's drawings rather than shop expense
OWNER_CATEGORY = "owner"


class ReportFormat(Enum):
    """Export formats"""
    DICT = "dict"
    JSON = "json"
    CSV = "csv"


@dataclass
class ReportResult:
    """Result of a report run"""
    report_id: str
    generated_at: datetime
    period_start: date
    period_end: date
    data: List[Dict[str, Any]] = field(default_factory=list)
    totals: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.metadata:
            self.metadata = {'row_count': len(self.data)}


def _percentage(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return Decimal('0')
    return (part / whole * 100).quantize(Decimal('0.01'))


class ReportingEngine:
    """
    Shop dashboard and inventory reports
    """

    def __init__(
        self,
        inventory: InventoryManager,
        sales: SalesManager,
        credit: CreditManager,
        cash_book: CashBook,
        currency: Currency = Currency.PKR,
        average_sales_window_days: int = 30,
        overdue_list_limit: int = 5
    ):
        self.inventory = inventory
        self.sales = sales
        self.credit = credit
        self.cash_book = cash_book
        self.currency = currency
        self.average_sales_window_days = average_sales_window_days
        self.overdue_list_limit = overdue_list_limit

    def dashboard_stats(self, today: Optional[date] = None) -> ReportResult:
        """
        Financial summary of the shop

        Totals hold sales, cost of goods sold, profit, expenses split into
        shop and owner, average daily sales over the recent window,
        inventory value, credit outstanding and margins. Data rows are the
        most overdue credits, longest past due date first.
        """
        today = today or date.today()

        all_sales = self.sales.list_sales()
        net_sales = sum_money((s.total_amount for s in all_sales), self.currency)
        cogs = self.inventory.cost_of_goods_sold()
        gross_profit = net_sales - cogs

        expenses = self.cash_book.list_transactions(transaction_type=TransactionType.EXPENSE)
        total_expense = sum_money((t.amount for t in expenses), self.currency)
        owners_equity = sum_money(
            (t.amount for t in expenses if t.category == OWNER_CATEGORY), self.currency
        )
        shop_expense = total_expense - owners_equity
        net_profit = gross_profit - total_expense

        window_start = today - timedelta(days=self.average_sales_window_days)
        recent = sum_money(
            (s.total_amount for s in all_sales if window_start <= s.date <= today), self.currency
        )
        average_daily_sales = recent / Decimal(self.average_sales_window_days)

        credit_totals = self.credit.totals()
        overdue = sorted(
            self.credit.overdue_credits(today),
            key=lambda c: (today - c.due_date).days,
            reverse=True
        )[:self.overdue_list_limit]
        overdue_rows = [
            {
                'customer_id': c.customer_id,
                'name': c.customer_name,
                'amount': c.amount.amount,
                'days_overdue': (today - c.due_date).days
            }
            for c in overdue
        ]

        totals = {
            'net_sales': net_sales.amount,
            'cost_of_goods_sold': cogs.amount,
            'gross_profit': gross_profit.amount,
            'total_expense': total_expense.amount,
            'shop_expense': shop_expense.amount,
            'owners_equity': owners_equity.amount,
            'net_profit': net_profit.amount,
            'average_daily_sales': average_daily_sales.amount,
            'inventory_value': self.inventory.inventory_value().amount,
            'pending_credits': credit_totals['total_outstanding'].amount,
            'overdue_credits': len(overdue_rows),
            'gross_margin': _percentage(gross_profit.amount, net_sales.amount),
            'net_margin': _percentage(net_profit.amount, net_sales.amount),
            'shop_expense_percentage': _percentage(shop_expense.amount, total_expense.amount),
            'owners_equity_percentage': _percentage(owners_equity.amount, total_expense.amount),
            'currency': self.currency.code
        }
        if net_profit.is_negative():
            logger.info(f"Net loss of {(-net_profit).to_string()} as of {today.isoformat()}")

        return ReportResult(
            report_id="dashboard",
            generated_at=datetime.now(),
            period_start=min((s.date for s in all_sales), default=today),
            period_end=today,
            data=overdue_rows,
            totals=totals
        )

    def stock_movement(self, start_date: date, end_date: date) -> ReportResult:
        """
        Opening, purchased, sold and closing stock per item in stock

        Opening stock is everything bought before the period less
        everything sold before it. Rows are sorted by closing stock,
        largest first.
        """
        if end_date < start_date:
            raise ValueError("End date must not be before start date")

        purchases = self.inventory.get_all_purchases()
        sales = self.sales.list_sales()

        rows = []
        for item in self.inventory.stock_summary():
            key = item.key
            opening = purchased = sold = Decimal('0')

            for purchase in purchases:
                if purchase.key != key:
                    continue
                if purchase.date < start_date:
                    opening += purchase.quantity
                elif purchase.date <= end_date:
                    purchased += purchase.quantity

            for sale in sales:
                if sale.key != key:
                    continue
                if sale.date < start_date:
                    opening -= sale.quantity
                elif sale.date <= end_date:
                    sold += sale.quantity

            rows.append({
                'key': key,
                'name': display_name(item.item_type, item.custom_item_name),
                'opening_stock': opening,
                'purchased_in_period': purchased,
                'sold_in_period': sold,
                'closing_stock': opening + purchased - sold
            })

        rows.sort(key=lambda r: r['closing_stock'], reverse=True)

        return ReportResult(
            report_id="stock_movement",
            generated_at=datetime.now(),
            period_start=start_date,
            period_end=end_date,
            data=rows,
            totals={
                'opening_stock': sum((r['opening_stock'] for r in rows), Decimal('0')),
                'purchased_in_period': sum((r['purchased_in_period'] for r in rows), Decimal('0')),
                'sold_in_period': sum((r['sold_in_period'] for r in rows), Decimal('0')),
                'closing_stock': sum((r['closing_stock'] for r in rows), Decimal('0'))
            }
        )

    def export_report(self, result: ReportResult, format: ReportFormat) -> Union[Dict, str]:
        """
        Export report result in specified format
        """
        if format == ReportFormat.DICT:
            return {
                'report_id': result.report_id,
                'generated_at': result.generated_at.isoformat(),
                'period_start': result.period_start.isoformat(),
                'period_end': result.period_end.isoformat(),
                'data': result.data,
                'totals': result.totals,
                'metadata': result.metadata
            }

        elif format == ReportFormat.JSON:
            export_dict = self.export_report(result, ReportFormat.DICT)
            return json.dumps(export_dict, indent=2, default=str)

        elif format == ReportFormat.CSV:
            output = io.StringIO()

            if result.data:
                headers = list(result.data[0].keys())
                writer = csv.DictWriter(output, fieldnames=headers)
                writer.writeheader()
                for row in result.data:
                    writer.writerow(row)

            csv_content = output.getvalue()
            output.close()
            return csv_content

        else:
            raise ValueError(f"Unsupported export format: {format}")
