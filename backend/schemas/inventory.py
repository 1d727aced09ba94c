from typing import Optional
from uuid import UUID

from pydantic import Field, field_validator

from core.stock import MAX_STOCK, ReduceReason
from schemas.common import CamelModel, strip_nullable


class RestockRequest(CamelModel):
    product_id: UUID
    quantity: int = Field(le=MAX_STOCK)
    reason: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("quantity")
    @classmethod
    def _quantity_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be a positive integer")
        return v

    @field_validator("reason", "notes")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return strip_nullable(v)


class ReduceRequest(CamelModel):
    product_id: UUID
    quantity: int = Field(le=MAX_STOCK)
    reason: ReduceReason
    notes: Optional[str] = None

    @field_validator("quantity")
    @classmethod
    def _quantity_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be a positive integer")
        return v

    @field_validator("notes")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return strip_nullable(v)


class AdjustRequest(CamelModel):
    product_id: UUID
    new_stock: int = Field(le=MAX_STOCK)
    reason: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("new_stock")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("New stock must be a non-negative integer")
        return v

    @field_validator("reason", "notes")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return strip_nullable(v)


class ThresholdUpdate(CamelModel):
    threshold: int = Field(le=MAX_STOCK)

    @field_validator("threshold")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Threshold must be a non-negative integer")
        return v
