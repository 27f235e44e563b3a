"""
Wiring of storage and managers shared by the API endpoints
"""

from typing import Optional

from ..config import ShopBooksConfig, get_config
from ..currency import Currency
from ..storage import StorageInterface, create_storage
from ..items import ItemCatalog
from ..inventory import InventoryManager
from ..customers import CustomerManager
from ..finance import CashBook
from ..credit import CreditManager
from ..sales import SalesManager
from ..reporting import ReportingEngine


class ShopBooks:
    """Shop books with all components initialized"""

    def __init__(self, storage: Optional[StorageInterface] = None, settings: Optional[ShopBooksConfig] = None):
        settings = settings or get_config()
        self.config = settings

        # Initialize storage
        if storage is None:
            storage = create_storage(settings.storage_backend, settings.database_path)
        self.storage = storage
        self.currency = Currency[settings.currency.upper()]

        # Initialize components
        self.catalog = ItemCatalog(self.storage)
        self.inventory = InventoryManager(self.storage, self.catalog, self.currency)
        self.customer_manager = CustomerManager(self.storage, self.currency)
        self.cash_book = CashBook(self.storage, self.currency)
        self.cash_book.initialize_accounts()
        self.credit_manager = CreditManager(
            self.storage, self.customer_manager, self.cash_book, self.currency,
            due_days=settings.credit_due_days,
            overdue_after_days=settings.overdue_after_days
        )
        self.sales = SalesManager(
            self.storage, self.inventory, self.customer_manager,
            self.credit_manager, self.cash_book, self.currency
        )
        self.reporting_engine = ReportingEngine(
            self.inventory, self.sales, self.credit_manager, self.cash_book, self.currency,
            average_sales_window_days=settings.average_sales_window_days,
            overdue_list_limit=settings.overdue_list_limit
        )


# Global shop books instance, created on first request
shop_books_system: Optional[ShopBooks] = None


def get_shop_books() -> ShopBooks:
    """Dependency returning the shared ShopBooks instance"""
    global shop_books_system
    if shop_books_system is None:
        shop_books_system = ShopBooks()
    return shop_books_system
