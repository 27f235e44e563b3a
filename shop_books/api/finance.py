"""
Cash account endpoints
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, status

from .system import ShopBooks, get_shop_books
from .schemas import ExpenseRequest, TransferRequest, DepositRequest, MoneyModel, parse_date, parse_account
from ..currency import Money, decimal_from_string
from ..finance import TransactionType
from ..storage import RecordNotFoundError


router = APIRouter()


def transaction_to_dict(transaction) -> dict:
    return {
        "id": transaction.id,
        "date": transaction.date.isoformat(),
        "type": transaction.transaction_type.value,
        "amount": MoneyModel.from_money(transaction.amount).model_dump(),
        "category": transaction.category,
        "description": transaction.description,
        "from_account": transaction.from_account.value if transaction.from_account else None,
        "to_account": transaction.to_account.value if transaction.to_account else None,
        "reference": transaction.reference
    }


@router.get("/accounts")
async def get_accounts(system: ShopBooks = Depends(get_shop_books)):
    """Cash accounts with their balances"""
    return {
        "accounts": [
            {
                "id": account.id,
                "name": account.name,
                "type": account.account_type.value,
                "balance": MoneyModel.from_money(account.balance).model_dump()
            }
            for account in system.cash_book.initialize_accounts()
        ]
    }


@router.post("/expenses", status_code=status.HTTP_201_CREATED)
async def record_expense(
    request: ExpenseRequest,
    system: ShopBooks = Depends(get_shop_books)
):
    """Spend money from an account"""
    try:
        transaction = system.cash_book.record_expense(
            expense_date=parse_date(request.date) or date.today(),
            amount=Money(decimal_from_string(request.amount), system.currency),
            category=request.category,
            from_account=parse_account(request.from_account),
            description=request.description
        )
        return {"transaction_id": transaction.id, "message": "Expense recorded successfully"}

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/transfers", status_code=status.HTTP_201_CREATED)
async def record_transfer(
    request: TransferRequest,
    system: ShopBooks = Depends(get_shop_books)
):
    """Move money between accounts"""
    try:
        transaction = system.cash_book.record_transfer(
            transfer_date=parse_date(request.date) or date.today(),
            amount=Money(decimal_from_string(request.amount), system.currency),
            from_account=parse_account(request.from_account),
            to_account=parse_account(request.to_account),
            description=request.description
        )
        return {"transaction_id": transaction.id, "message": "Transfer recorded successfully"}

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/deposits", status_code=status.HTTP_201_CREATED)
async def record_deposit(
    request: DepositRequest,
    system: ShopBooks = Depends(get_shop_books)
):
    """Add money to an account"""
    try:
        transaction = system.cash_book.record_deposit(
            deposit_date=parse_date(request.date) or date.today(),
            amount=Money(decimal_from_string(request.amount), system.currency),
            to_account=parse_account(request.to_account),
            description=request.description
        )
        return {"transaction_id": transaction.id, "message": "Deposit recorded successfully"}

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/transactions")
async def list_transactions(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    type: Optional[str] = None,
    system: ShopBooks = Depends(get_shop_books)
):
    """Transactions newest first"""
    try:
        transactions = system.cash_book.list_transactions(
            parse_date(start_date),
            parse_date(end_date),
            TransactionType(type) if type else None
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"transactions": [transaction_to_dict(t) for t in transactions]}


@router.delete("/transactions/{transaction_id}")
async def delete_transaction(
    transaction_id: str,
    system: ShopBooks = Depends(get_shop_books)
):
    """Delete an expense, transfer or deposit and reverse it"""
    try:
        system.cash_book.delete_transaction(transaction_id)
        return {"message": "Transaction deleted successfully"}

    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/reconcile")
async def reconcile(system: ShopBooks = Depends(get_shop_books)):
    """Stored balances against balances folded from transactions"""
    report = system.cash_book.reconcile()
    return {
        "accounts": {
            account_type: {
                "stored": MoneyModel.from_money(row["stored"]).model_dump(),
                "derived": MoneyModel.from_money(row["derived"]).model_dump(),
                "difference": MoneyModel.from_money(row["difference"]).model_dump(),
                "balanced": row["balanced"]
            }
            for account_type, row in report.items()
        },
        "balanced": all(row["balanced"] for row in report.values())
    }
