"""
Sales endpoints
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, status

from .system import ShopBooks, get_shop_books
from .schemas import CreateSaleRequest, UpdateSaleRequest, MoneyModel, parse_date, to_line_items
from ..currency import decimal_from_string
from ..storage import RecordNotFoundError


router = APIRouter()


def sale_to_dict(sale) -> dict:
    return {
        "id": sale.id,
        "date": sale.date.isoformat(),
        "item_type": sale.item_type.value,
        "custom_item_name": sale.custom_item_name,
        "quantity": str(sale.quantity),
        "price_per_unit": MoneyModel.from_money(sale.price_per_unit).model_dump(),
        "total_amount": MoneyModel.from_money(sale.total_amount).model_dump(),
        "customer_id": sale.customer_id,
        "customer_name": sale.customer_name,
        "is_credit": sale.is_credit,
        "payment_status": sale.payment_status,
        "batches_used": sale.batches_used
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def record_sale(
    request: CreateSaleRequest,
    system: ShopBooks = Depends(get_shop_books)
):
    """Record a cash or credit sale"""
    try:
        sales = system.sales.record_sale(
            sale_date=parse_date(request.date) or date.today(),
            lines=to_line_items(request.lines),
            is_credit=request.is_credit,
            customer_name=request.customer_name,
            customer_id=request.customer_id,
            customer_phone=request.customer_phone
        )
        return {
            "sale_ids": [s.id for s in sales],
            "customer_id": sales[0].customer_id,
            "message": "Sale recorded successfully"
        }

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("")
async def list_sales(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    system: ShopBooks = Depends(get_shop_books)
):
    """Sales newest first within optional inclusive date bounds"""
    try:
        sales = system.sales.list_sales(parse_date(start_date), parse_date(end_date))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"sales": [sale_to_dict(s) for s in sales]}


@router.get("/summary")
async def get_sales_summary(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    system: ShopBooks = Depends(get_shop_books)
):
    """Total, cash and credit sales"""
    try:
        summary = system.sales.sales_summary(parse_date(start_date), parse_date(end_date))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "total_sales": MoneyModel.from_money(summary["total_sales"]).model_dump(),
        "cash_sales": MoneyModel.from_money(summary["cash_sales"]).model_dump(),
        "credit_sales": MoneyModel.from_money(summary["credit_sales"]).model_dump(),
        "count": summary["count"]
    }


@router.get("/{sale_id}")
async def get_sale(
    sale_id: str,
    system: ShopBooks = Depends(get_shop_books)
):
    sale = system.sales.get_sale(sale_id)
    if not sale:
        raise HTTPException(status_code=404, detail="Sale not found")
    return sale_to_dict(sale)


@router.put("/{sale_id}")
async def update_sale(
    sale_id: str,
    request: UpdateSaleRequest,
    system: ShopBooks = Depends(get_shop_books)
):
    """Edit a sale line"""
    try:
        sale = system.sales.update_sale(
            sale_id,
            quantity=decimal_from_string(request.quantity) if request.quantity else None,
            price_per_unit=decimal_from_string(request.price_per_unit) if request.price_per_unit else None,
            sale_date=parse_date(request.date)
        )
        return {"sale": sale_to_dict(sale), "message": "Sale updated successfully"}

    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{sale_id}")
async def delete_sale(
    sale_id: str,
    system: ShopBooks = Depends(get_shop_books)
):
    """Delete a sale line and undo its stock, cash and credit effects"""
    try:
        system.sales.delete_sale(sale_id)
        return {"message": "Sale deleted successfully"}

    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
