from typing import Optional
from uuid import UUID

from fastapi_users import schemas
from pydantic import field_validator


class UserRead(schemas.BaseUser[UUID]):
    name: Optional[str] = None


class UserCreate(schemas.BaseUserCreate):
    name: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _lower(cls, v: str) -> str:
        return v.strip().lower()


class UserUpdate(schemas.BaseUserUpdate):
    name: Optional[str] = None
