from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field


class CartItemIn(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)


class OrderIn(BaseModel):
    user_id: int
    fullname: str = ""
    email: str
    phone_number: str = ""
    address: str = ""
    note: str = ""
    total_money: float = Field(..., ge=0)
    shipping_method: str = ""
    shipping_address: str = ""
    # si no viene, se usa hoy + DEFAULT_SHIPPING_DAYS
    shipping_date: Optional[date] = None
    payment_method: str = ""
    cart_items: List[CartItemIn]


class OrderStatusIn(BaseModel):
    status: str = Field(..., min_length=1)
