from fastapi_users.db import SQLAlchemyBaseUserTableUUID
from sqlalchemy import Column, DateTime, String
from .database import Base, utcnow


class User(SQLAlchemyBaseUserTableUUID, Base):
    """Admin/staff account. Superusers hold the super-admin role."""
    __tablename__ = "users"

    name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def to_schema(self):
        """Short form embedded in ledger entries."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
        }
