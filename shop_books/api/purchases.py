"""
Purchase endpoints
"""

from datetime import date
from fastapi import APIRouter, HTTPException, Depends, status

from .system import ShopBooks, get_shop_books
from .schemas import CreatePurchaseRequest, UpdatePurchaseRequest, MoneyModel, parse_date, to_line_items
from ..currency import decimal_from_string
from ..items import derive_rates
from ..storage import RecordNotFoundError


router = APIRouter()


def purchase_to_dict(purchase) -> dict:
    return {
        "id": purchase.id,
        "date": purchase.date.isoformat(),
        "item_type": purchase.item_type.value,
        "custom_item_name": purchase.custom_item_name,
        "quantity": str(purchase.quantity),
        "remaining_quantity": str(purchase.remaining_quantity),
        "price_per_unit": MoneyModel.from_money(purchase.price_per_unit).model_dump(),
        "total_cost": MoneyModel.from_money(purchase.total_cost).model_dump(),
        "supplier": purchase.supplier,
        "batch_number": purchase.batch_number
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def record_purchase(
    request: CreatePurchaseRequest,
    system: ShopBooks = Depends(get_shop_books)
):
    """Record a purchase; every line joins one batch"""
    try:
        purchases = system.inventory.record_purchase(
            purchase_date=parse_date(request.date) or date.today(),
            supplier=request.supplier,
            lines=to_line_items(request.lines)
        )
        return {
            "batch_number": purchases[0].batch_number,
            "purchase_ids": [p.id for p in purchases],
            "message": "Purchase recorded successfully"
        }

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("")
async def list_purchases(system: ShopBooks = Depends(get_shop_books)):
    """All purchases, newest first"""
    purchases = system.inventory.list_purchases()
    return {
        "purchases": [purchase_to_dict(p) for p in purchases],
        "total_value": MoneyModel.from_money(system.inventory.total_purchase_value()).model_dump()
    }


@router.get("/derived-rates")
async def get_derived_rates(sn_rate: str):
    """BN and C purchase rates derived from the SN rate"""
    try:
        rates = derive_rates(decimal_from_string(sn_rate))
        return {item_type.value: str(rate) for item_type, rate in rates.items()}

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{purchase_id}")
async def get_purchase(
    purchase_id: str,
    system: ShopBooks = Depends(get_shop_books)
):
    purchase = system.inventory.get_purchase(purchase_id)
    if not purchase:
        raise HTTPException(status_code=404, detail="Purchase not found")
    return purchase_to_dict(purchase)


@router.put("/{purchase_id}")
async def update_purchase(
    purchase_id: str,
    request: UpdatePurchaseRequest,
    system: ShopBooks = Depends(get_shop_books)
):
    """Edit a purchase line"""
    try:
        purchase = system.inventory.update_purchase(
            purchase_id,
            quantity=decimal_from_string(request.quantity) if request.quantity else None,
            price_per_unit=decimal_from_string(request.price_per_unit) if request.price_per_unit else None,
            supplier=request.supplier,
            purchase_date=parse_date(request.date)
        )
        return {"purchase": purchase_to_dict(purchase), "message": "Purchase updated successfully"}

    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{purchase_id}")
async def delete_purchase(
    purchase_id: str,
    system: ShopBooks = Depends(get_shop_books)
):
    """Delete a purchase line nothing has been sold from"""
    try:
        system.inventory.delete_purchase(purchase_id)
        return {"message": "Purchase deleted successfully"}

    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
