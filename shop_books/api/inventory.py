"""
Inventory endpoints
"""

from fastapi import APIRouter, Depends

from .system import ShopBooks, get_shop_books
from .schemas import MoneyModel
from ..items import display_name


router = APIRouter()


@router.get("")
async def get_stock(system: ShopBooks = Depends(get_shop_books)):
    """Stock on hand per item with its FIFO batches"""
    items = system.inventory.stock_summary()
    return {
        "items": [
            {
                "key": item.key,
                "name": display_name(item.item_type, item.custom_item_name),
                "item_type": item.item_type.value,
                "custom_item_name": item.custom_item_name,
                "total_quantity": str(item.total_quantity),
                "average_cost": MoneyModel.from_money(item.average_cost).model_dump(),
                "value": MoneyModel.from_money(item.value).model_dump(),
                "batches": [
                    {
                        "purchase_id": batch.id,
                        "batch_number": batch.batch_number,
                        "date": batch.date.isoformat(),
                        "remaining_quantity": str(batch.remaining_quantity),
                        "price_per_unit": MoneyModel.from_money(batch.price_per_unit).model_dump()
                    }
                    for batch in item.batches
                ]
            }
            for item in items
        ],
        "total_value": MoneyModel.from_money(system.inventory.inventory_value()).model_dump()
    }


@router.get("/items")
async def get_available_items(system: ShopBooks = Depends(get_shop_books)):
    """Item names that can be purchased or sold"""
    return {"items": system.catalog.available_items()}
