from typing import List, Literal, Optional
from uuid import UUID

from pydantic import EmailStr, Field, field_validator

from core.stock import MAX_STOCK
from schemas.common import MAX_AMOUNT, CamelModel, strip_nullable


OrderStatus = Literal["pending", "processing", "shipped", "delivered", "completed", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]


class OrderLineCreate(CamelModel):
    product: UUID
    quantity: int = Field(le=MAX_STOCK)

    @field_validator("quantity")
    @classmethod
    def _quantity_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be a positive integer")
        return v


class CustomerIn(CamelModel):
    name: str
    email: EmailStr
    phone: Optional[str] = None
    address: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Customer name is required")
        return v


class OrderCreate(CamelModel):
    items: List[OrderLineCreate] = Field(min_length=1)
    customer: CustomerIn
    payment_method: str = "credit_card"
    shipping_cost: float = Field(default=0, ge=0, le=MAX_AMOUNT)
    tax: float = Field(default=0, ge=0, le=MAX_AMOUNT)
    discount: float = Field(default=0, ge=0, le=MAX_AMOUNT)
    notes: Optional[str] = None


class OrderStatusUpdate(CamelModel):
    status: OrderStatus
    note: Optional[str] = None

    @field_validator("note")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return strip_nullable(v)


class PaymentStatusUpdate(CamelModel):
    payment_status: PaymentStatus
