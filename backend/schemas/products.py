from typing import Optional
from uuid import UUID

from pydantic import Field, field_validator

from core.config import settings
from core.stock import MAX_STOCK
from schemas.common import MAX_AMOUNT, CamelModel, strip_nullable


class ProductCreate(CamelModel):
    name: str
    description: str
    price: float = Field(ge=0, le=MAX_AMOUNT)
    discount: float = Field(default=0, ge=0, le=100)
    category: UUID
    stock: int = Field(ge=0, le=MAX_STOCK)
    sku: Optional[str] = None
    featured: bool = False
    is_visible: bool = True
    low_stock_threshold: int = Field(default=settings.default_low_stock_threshold, ge=0, le=MAX_STOCK)

    @field_validator("name", "description")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v

    @field_validator("sku")
    @classmethod
    def _strip_sku(cls, v: Optional[str]) -> Optional[str]:
        return strip_nullable(v)


class ProductUpdate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0, le=MAX_AMOUNT)
    discount: Optional[float] = Field(default=None, ge=0, le=100)
    category: Optional[UUID] = None
    stock: Optional[int] = Field(default=None, ge=0, le=MAX_STOCK)
    sku: Optional[str] = None
    featured: Optional[bool] = None
    is_visible: Optional[bool] = None
    low_stock_threshold: Optional[int] = Field(default=None, ge=0, le=MAX_STOCK)

    @field_validator("name", "description")
    @classmethod
    def _strip_optional(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("cannot be empty")
        return v
