import uuid
from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from core.stock import is_low_stock, is_out_of_stock
from .database import Base, utcnow


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("low_stock_threshold >= 0", name="ck_products_threshold_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    discount = Column(Numeric(5, 2), nullable=False, default=0)  # percent, 0..100
    category_id = Column(Uuid, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False, index=True)
    sku = Column(String, nullable=True, unique=True)

    # The balance. Only db.inventory.mutations writes it after creation.
    stock = Column(Integer, nullable=False, default=0)
    low_stock_threshold = Column(Integer, nullable=False, default=10)

    featured = Column(Boolean, nullable=False, default=False)
    is_visible = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    category = relationship("Category")
    ledger_entries = relationship(
        "StockLedgerEntry",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def discounted_price(self) -> float:
        price = float(self.price or 0)
        discount = float(self.discount or 0)
        if discount > 0:
            return round(price - price * discount / 100, 2)
        return price

    @property
    def is_low_stock(self) -> bool:
        return is_low_stock(int(self.stock or 0), int(self.low_stock_threshold or 0))

    @property
    def is_out_of_stock(self) -> bool:
        return is_out_of_stock(int(self.stock or 0))

    @property
    def to_schema(self):
        """Serialize to the camelCase shape the admin dashboard consumes."""
        category = self.__dict__.get("category")
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": float(self.price) if self.price is not None else None,
            "discount": float(self.discount or 0),
            "discountedPrice": self.discounted_price,
            "category": self.category_id,
            "categoryName": category.name if category is not None else None,
            "sku": self.sku,
            "stock": int(self.stock or 0),
            "lowStockThreshold": int(self.low_stock_threshold or 0),
            "isLowStock": self.is_low_stock,
            "isOutOfStock": self.is_out_of_stock,
            "featured": bool(self.featured),
            "isVisible": bool(self.is_visible),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
