"""
Customer management endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, status

from .system import ShopBooks, get_shop_books
from .schemas import CreateCustomerRequest, UpdateCustomerRequest, MoneyModel
from ..storage import RecordNotFoundError


router = APIRouter()


def customer_to_dict(customer, system: ShopBooks) -> dict:
    return {
        "id": customer.id,
        "name": customer.name,
        "phone": customer.phone,
        "address": customer.address,
        "total_credit": MoneyModel.from_money(customer.total_credit).model_dump(),
        "pending_amount": MoneyModel.from_money(
            system.credit_manager.pending_amount(customer.id)
        ).model_dump(),
        "last_purchase_date": customer.last_purchase_date.isoformat() if customer.last_purchase_date else None,
        "created_at": customer.created_at.isoformat()
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_customer(
    request: CreateCustomerRequest,
    system: ShopBooks = Depends(get_shop_books)
):
    """Create a new customer"""
    try:
        customer = system.customer_manager.create_customer(
            name=request.name,
            phone=request.phone,
            address=request.address
        )
        return {"customer_id": customer.id, "message": "Customer created successfully"}

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("")
async def list_customers(
    search: Optional[str] = None,
    system: ShopBooks = Depends(get_shop_books)
):
    """List customers, optionally filtered by name or phone"""
    customers = system.customer_manager.search(search or "")
    return {"customers": [customer_to_dict(c, system) for c in customers]}


@router.get("/{customer_id}")
async def get_customer(
    customer_id: str,
    system: ShopBooks = Depends(get_shop_books)
):
    """Get customer by ID"""
    customer = system.customer_manager.get_customer(customer_id)
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")

    return customer_to_dict(customer, system)


@router.put("/{customer_id}")
async def update_customer(
    customer_id: str,
    request: UpdateCustomerRequest,
    system: ShopBooks = Depends(get_shop_books)
):
    """Update customer name and phone"""
    try:
        system.customer_manager.update_customer(customer_id, request.name, request.phone)
        return {"message": "Customer updated successfully"}

    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{customer_id}")
async def delete_customer(
    customer_id: str,
    system: ShopBooks = Depends(get_shop_books)
):
    """Delete a customer with no outstanding balance"""
    try:
        system.customer_manager.delete_customer(customer_id)
        return {"message": "Customer deleted successfully"}

    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
