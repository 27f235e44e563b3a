"""
Pydantic schemas for API requests and responses
"""

from datetime import date
from typing import List, Optional
from pydantic import BaseModel, Field

from ..currency import Money, Currency, decimal_from_string
from ..items import ItemType
from ..inventory import LineItem
from ..finance import AccountType


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field(..., description="Currency code (PKR, INR, USD)")

    def to_money(self) -> Money:
        return Money(decimal_from_string(self.amount), Currency[self.currency])

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code)


def parse_date(value: Optional[str]) -> Optional[date]:
    """ISO date string to date; None passes through"""
    if not value:
        return None
    return date.fromisoformat(value)


def parse_account(value: Optional[str]) -> Optional[AccountType]:
    if not value:
        return None
    return AccountType(value.lower())


# Purchase and sale lines
class LineItemModel(BaseModel):
    item_type: str = Field(..., description="Item code (BN, SN, C, ... or OTHER)")
    quantity: Optional[str] = Field(None, description="Decimal quantity as string")
    price_per_unit: Optional[str] = Field(None, description="Decimal unit price as string")
    custom_item_name: Optional[str] = None

    @property
    def is_blank(self) -> bool:
        """A form row without quantity or price is skipped"""
        return not (self.quantity or "").strip() or not (self.price_per_unit or "").strip()

    def to_line_item(self) -> LineItem:
        return LineItem(
            item_type=ItemType(self.item_type.upper()),
            quantity=decimal_from_string(self.quantity),
            price_per_unit=decimal_from_string(self.price_per_unit),
            custom_item_name=self.custom_item_name
        )


def to_line_items(lines: List[LineItemModel]) -> List[LineItem]:
    """Filled-in lines of a submission; blank rows are dropped"""
    items = [line.to_line_item() for line in lines if not line.is_blank]
    if not items:
        raise ValueError("Please enter at least one item with quantity and price")
    return items


# Purchase schemas
class CreatePurchaseRequest(BaseModel):
    supplier: str = ""
    date: Optional[str] = None  # ISO date string, today when omitted
    lines: List[LineItemModel]


class UpdatePurchaseRequest(BaseModel):
    quantity: Optional[str] = None
    price_per_unit: Optional[str] = None
    supplier: Optional[str] = None
    date: Optional[str] = None


# Sale schemas
class CreateSaleRequest(BaseModel):
    date: Optional[str] = None
    lines: List[LineItemModel]
    is_credit: bool = False
    customer_name: str = ""
    customer_id: Optional[str] = None
    customer_phone: str = ""


class UpdateSaleRequest(BaseModel):
    quantity: Optional[str] = None
    price_per_unit: Optional[str] = None
    date: Optional[str] = None


# Customer schemas
class CreateCustomerRequest(BaseModel):
    name: str
    phone: str = ""
    address: str = ""


class UpdateCustomerRequest(BaseModel):
    name: str
    phone: str


# Credit schemas
class OpeningDebtRequest(BaseModel):
    customer_id: str
    amount: str = Field(..., description="Decimal amount as string")
    date: Optional[str] = None
    note: str = ""


class ReceivePaymentRequest(BaseModel):
    customer_id: str
    amount: str = Field(..., description="Decimal amount as string")
    payment_date: Optional[str] = None


class UpdateCreditRequest(BaseModel):
    amount: Optional[str] = None
    due_date: Optional[str] = None


# Cash account schemas
class ExpenseRequest(BaseModel):
    amount: str
    category: str
    from_account: str = "shop"
    date: Optional[str] = None
    description: str = ""


class TransferRequest(BaseModel):
    amount: str
    from_account: str
    to_account: str
    date: Optional[str] = None
    description: str = ""


class DepositRequest(BaseModel):
    amount: str
    to_account: str = "shop"
    date: Optional[str] = None
    description: str = ""
