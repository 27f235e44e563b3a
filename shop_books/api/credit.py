"""
Credit (Udhaar) endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, status

from .system import ShopBooks, get_shop_books
from .schemas import (
    OpeningDebtRequest,
    ReceivePaymentRequest,
    UpdateCreditRequest,
    MoneyModel,
    parse_date
)
from ..currency import Money, decimal_from_string
from ..storage import RecordNotFoundError


router = APIRouter()


def credit_to_dict(credit) -> dict:
    return {
        "id": credit.id,
        "customer_id": credit.customer_id,
        "customer_name": credit.customer_name,
        "sale_id": credit.sale_id,
        "amount": MoneyModel.from_money(credit.amount).model_dump(),
        "date": credit.date.isoformat(),
        "due_date": credit.due_date.isoformat(),
        "payment_date": credit.payment_date.isoformat() if credit.payment_date else None,
        "status": credit.status.value,
        "parent_id": credit.parent_id,
        "payment_id": credit.payment_id,
        "note": credit.note
    }


@router.get("")
async def list_credit_customers(
    search: Optional[str] = None,
    overdue_only: bool = False,
    system: ShopBooks = Depends(get_shop_books)
):
    """Outstanding position of every customer with credit history"""
    summaries = system.credit_manager.customer_summary(search or "", overdue_only)
    return {
        "customers": [
            {
                "customer_id": s.customer.id,
                "name": s.customer.name,
                "phone": s.customer.phone,
                "pending_amount": MoneyModel.from_money(s.pending_amount).model_dump(),
                "overdue_amount": MoneyModel.from_money(s.overdue_amount).model_dump(),
                "transaction_count": s.transaction_count,
                "oldest_unpaid_date": s.oldest_unpaid_date.isoformat() if s.oldest_unpaid_date else None,
                "days_since_oldest_unpaid": s.days_since_oldest_unpaid,
                "is_overdue": s.is_overdue
            }
            for s in summaries
        ]
    }


@router.get("/totals")
async def get_credit_totals(system: ShopBooks = Depends(get_shop_books)):
    """Pending and overdue totals"""
    totals = system.credit_manager.totals()
    return {
        "total_pending": MoneyModel.from_money(totals["total_pending"]).model_dump(),
        "total_overdue": MoneyModel.from_money(totals["total_overdue"]).model_dump(),
        "total_outstanding": MoneyModel.from_money(totals["total_outstanding"]).model_dump(),
        "overdue_count": totals["overdue_count"]
    }


@router.post("/refresh-overdue")
async def refresh_overdue(system: ShopBooks = Depends(get_shop_books)):
    """Mark aged pending credits as overdue"""
    changed = system.credit_manager.refresh_overdue()
    return {"updated": changed, "message": "Overdue status refreshed successfully"}


@router.post("/opening-debt", status_code=status.HTTP_201_CREATED)
async def add_opening_debt(
    request: OpeningDebtRequest,
    system: ShopBooks = Depends(get_shop_books)
):
    """Record a debt not tied to a sale"""
    try:
        credit = system.credit_manager.add_opening_debt(
            customer_id=request.customer_id,
            amount=Money(decimal_from_string(request.amount), system.currency),
            debt_date=parse_date(request.date),
            note=request.note
        )
        return {"credit_id": credit.id, "message": "Opening debt recorded successfully"}

    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/payments", status_code=status.HTTP_201_CREATED)
async def receive_payment(
    request: ReceivePaymentRequest,
    system: ShopBooks = Depends(get_shop_books)
):
    """Receive a payment against a customer's credit"""
    try:
        receipt = system.credit_manager.receive_payment(
            customer_id=request.customer_id,
            amount=Money(decimal_from_string(request.amount), system.currency),
            payment_date=parse_date(request.payment_date)
        )
        return {
            "payment_id": receipt.payment_id,
            "transaction_id": receipt.transaction_id,
            "amount": MoneyModel.from_money(receipt.amount).model_dump(),
            "settled": [credit_to_dict(c) for c in receipt.settled],
            "message": "Payment received successfully"
        }

    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/payments/{payment_id}")
async def reverse_payment(
    payment_id: str,
    system: ShopBooks = Depends(get_shop_books)
):
    """Reverse a received payment"""
    try:
        amount = system.credit_manager.reverse_payment(payment_id)
        return {
            "amount": MoneyModel.from_money(amount).model_dump(),
            "message": "Payment reversed successfully"
        }

    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/customers/{customer_id}/history")
async def get_customer_history(
    customer_id: str,
    system: ShopBooks = Depends(get_shop_books)
):
    """Debts and receipts with running balance"""
    customer = system.customer_manager.get_customer(customer_id)
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")

    history = system.credit_manager.customer_history(customer_id)
    return {
        "customer_id": customer_id,
        "name": customer.name,
        "pending_amount": MoneyModel.from_money(system.credit_manager.pending_amount(customer_id)).model_dump(),
        "entries": [
            {
                "date": entry.date.isoformat(),
                "type": entry.entry_type,
                "credit": MoneyModel.from_money(entry.credit).model_dump(),
                "received": MoneyModel.from_money(entry.received).model_dump(),
                "balance": MoneyModel.from_money(entry.balance).model_dump(),
                "reference": entry.reference
            }
            for entry in history
        ]
    }


@router.get("/customers/{customer_id}/credits")
async def get_customer_credits(
    customer_id: str,
    system: ShopBooks = Depends(get_shop_books)
):
    """All credit records of a customer, oldest first"""
    credits = system.credit_manager.get_customer_credits(customer_id)
    return {"credits": [credit_to_dict(c) for c in credits]}


@router.get("/{credit_id}")
async def get_credit(
    credit_id: str,
    system: ShopBooks = Depends(get_shop_books)
):
    credit = system.credit_manager.get_credit(credit_id)
    if not credit:
        raise HTTPException(status_code=404, detail="Credit not found")
    return credit_to_dict(credit)


@router.put("/{credit_id}")
async def update_credit(
    credit_id: str,
    request: UpdateCreditRequest,
    system: ShopBooks = Depends(get_shop_books)
):
    """Edit an unpaid credit"""
    try:
        amount = None
        if request.amount is not None:
            amount = Money(decimal_from_string(request.amount), system.currency)
        system.credit_manager.update_credit(credit_id, amount, parse_date(request.due_date))
        return {"message": "Credit updated successfully"}

    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{credit_id}")
async def delete_credit(
    credit_id: str,
    system: ShopBooks = Depends(get_shop_books)
):
    """Delete an unpaid opening debt"""
    try:
        system.credit_manager.delete_credit(credit_id)
        return {"message": "Credit deleted successfully"}

    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
