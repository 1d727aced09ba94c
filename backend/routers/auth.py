import logging
from typing import Dict
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_superuser, superuser_exists
from core.errors import AdminNotFoundError, PersistenceError, StockValidationError, StoreError
from db.database import get_async_session
from db.users import User
from schemas.users import UserRead

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/check-superadmin", response_model=Dict)
async def check_superadmin(db: AsyncSession = Depends(get_async_session)):
    return {"exists": await superuser_exists(db)}


@router.get("/admins", response_model=Dict)
async def list_admins(
    user: User = Depends(current_active_superuser),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(select(User).order_by(User.created_at.desc()))
    data = [UserRead.model_validate(u).model_dump(mode="json") for u in res.scalars().all()]
    return {"success": True, "count": len(data), "data": data}


@router.put("/admins/{admin_id}/toggle-status", response_model=Dict)
async def toggle_admin_status(
    admin_id: UUID,
    user: User = Depends(current_active_superuser),
    db: AsyncSession = Depends(get_async_session),
):
    """Activate or deactivate an account. Deactivated accounts cannot log in."""
    try:
        if admin_id == user.id:
            raise StockValidationError("Cannot deactivate your own account")
        target = (await db.execute(select(User).where(User.id == admin_id))).scalar_one_or_none()
        if target is None:
            raise AdminNotFoundError(admin_id)
        target.is_active = not target.is_active
        await db.commit()
        await db.refresh(target)
    except StoreError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("toggle_admin_status failed for %s", admin_id)
        raise PersistenceError("Error updating admin status", cause=e)

    state = "activated" if target.is_active else "deactivated"
    return {
        "success": True,
        "message": f"Admin {state} successfully",
        "data": UserRead.model_validate(target).model_dump(mode="json"),
    }
