import uuid

from fastapi_users_db_sqlalchemy.generics import GUID
from sqlalchemy import CheckConstraint, Column, DateTime, Enum, ForeignKey, Index, Integer, Text, Uuid
from sqlalchemy.orm import relationship

from core.stock import StockChangeType
from ..database import Base, utcnow


class StockLedgerEntry(Base):
    __tablename__ = "inventory_logs"
    __table_args__ = (
        CheckConstraint("new_stock = previous_stock + quantity", name="ck_inventory_logs_balance"),
        CheckConstraint("new_stock >= 0", name="ck_inventory_logs_new_stock_non_negative"),
        Index("ix_inventory_logs_product_created", "product_id", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    product_id = Column(
        Uuid,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )

    change_type = Column(
        Enum(
            StockChangeType,
            name="stock_change_type",
            values_callable=lambda e: [m.value for m in e],
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        index=True,
    )
    quantity = Column(Integer, nullable=False)  # signed delta
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)

    admin_id = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)
    reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    product = relationship("Product", back_populates="ledger_entries")
    admin = relationship("User")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "product": self.product_id,
            "changeType": self.change_type.value if self.change_type else None,
            "quantity": int(self.quantity),
            "previousStock": int(self.previous_stock),
            "newStock": int(self.new_stock),
            "admin": self.admin_id,
            "order": self.order_id,
            "reason": self.reason,
            "notes": self.notes,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
