import uuid
from fastapi_users_db_sqlalchemy.generics import GUID
from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship
from .database import Base, utcnow


ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "completed", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")


class Order(Base):
    __tablename__ = "orders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number = Column(String, nullable=False, unique=True, index=True)
    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=False, index=True)
    customer_phone = Column(String, nullable=True)
    shipping_address = Column(Text, nullable=True)

    status = Column(Text, nullable=False, default="pending", index=True)  # see ORDER_STATUSES
    payment_status = Column(Text, nullable=False, default="pending", index=True)  # see PAYMENT_STATUSES
    payment_method = Column(String, nullable=False, default="credit_card")

    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    shipping_cost = Column(Numeric(12, 2), nullable=False, default=0)
    tax = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    created_by_user_id = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    status_history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.created_at",
    )

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "orderNumber": self.order_number,
            "customer": {
                "name": self.customer_name,
                "email": self.customer_email,
                "phone": self.customer_phone,
                "address": self.shipping_address,
            },
            "items": [it.to_schema for it in (self.items or [])],
            "status": self.status,
            "statusHistory": [h.to_schema for h in (self.__dict__.get("status_history") or [])],
            "paymentStatus": self.payment_status,
            "paymentMethod": self.payment_method,
            "subtotal": float(self.subtotal or 0),
            "shippingCost": float(self.shipping_cost or 0),
            "tax": float(self.tax or 0),
            "discount": float(self.discount or 0),
            "totalAmount": float(self.total_amount or 0),
            "notes": self.notes,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    # Nulled when the product is deleted; the name/price snapshot stays.
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    name = Column(String, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "product": self.product_id,
            "name": self.name,
            "price": float(self.price),
            "quantity": int(self.quantity),
        }


class OrderStatusHistory(Base):
    """One status transition of an order, oldest first."""
    __tablename__ = "order_status_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Text, nullable=False)
    note = Column(Text, nullable=True)
    changed_by_user_id = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    order = relationship("Order", back_populates="status_history")

    @property
    def to_schema(self):
        return {
            "status": self.status,
            "note": self.note,
            "changedBy": self.changed_by_user_id,
            "timestamp": self.created_at.isoformat() if self.created_at else None,
        }
