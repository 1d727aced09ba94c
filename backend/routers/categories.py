import logging
import re
from typing import Dict
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_superuser, current_active_user
from core.errors import CategoryNotFoundError, PersistenceError, StockValidationError, StoreError
from db.category import Category as CategoryModel
from db.database import get_async_session
from db.product import Product as ProductModel
from db.users import User
from schemas.categories import CategoryCreate, CategoryUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


def _slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


async def _load_category(db: AsyncSession, category_id: UUID) -> CategoryModel:
    res = await db.execute(select(CategoryModel).where(CategoryModel.id == category_id))
    m = res.scalar_one_or_none()
    if not m:
        raise CategoryNotFoundError(category_id)
    return m


@router.get("", response_model=Dict)
async def list_categories(
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    res = await db.execute(select(CategoryModel).order_by(func.lower(CategoryModel.name).asc()))
    data = [c.to_schema for c in res.scalars().all()]
    return {"success": True, "count": len(data), "data": data}


@router.get("/{category_id}", response_model=Dict)
async def get_category(
    category_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    m = await _load_category(db, category_id)
    return {"success": True, "data": m.to_schema}


@router.post("", response_model=Dict, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    try:
        existing = await db.execute(
            select(CategoryModel).where(func.lower(CategoryModel.name) == payload.name.lower())
        )
        if existing.scalar_one_or_none():
            raise StockValidationError("Category already exists")

        m = CategoryModel(name=payload.name, slug=_slugify(payload.name), description=payload.description)
        db.add(m)
        await db.commit()
        await db.refresh(m)
    except StoreError:
        await db.rollback()
        raise
    except IntegrityError as e:
        await db.rollback()
        raise StockValidationError("Category already exists", cause=e)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("create_category failed")
        raise PersistenceError("Error creating category", cause=e)
    return {"success": True, "message": "Category created successfully", "data": m.to_schema}


@router.put("/{category_id}", response_model=Dict)
async def update_category(
    category_id: UUID,
    payload: CategoryUpdate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    data = payload.model_dump(exclude_unset=True)
    try:
        m = await _load_category(db, category_id)
        name = data.get("name")
        if name is not None and name != m.name:
            clash = await db.execute(
                select(CategoryModel.id).where(
                    func.lower(CategoryModel.name) == name.lower(),
                    CategoryModel.id != category_id,
                )
            )
            if clash.scalar_one_or_none() is not None:
                raise StockValidationError("Category with this name already exists")
            m.name = name
            m.slug = _slugify(name)
        if "description" in data:
            m.description = data["description"]
        if data.get("is_active") is not None:
            m.is_active = data["is_active"]
        await db.commit()
        await db.refresh(m)
    except StoreError:
        await db.rollback()
        raise
    except IntegrityError as e:
        await db.rollback()
        raise StockValidationError("Category with this name already exists", cause=e)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("update_category failed for %s", category_id)
        raise PersistenceError("Error updating category", cause=e)
    return {"success": True, "message": "Category updated successfully", "data": m.to_schema}


@router.delete("/{category_id}", response_model=Dict)
async def delete_category(
    category_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
):
    """Delete a category that no product is assigned to."""
    try:
        m = await _load_category(db, category_id)
        in_use = (
            await db.execute(select(func.count(ProductModel.id)).where(ProductModel.category_id == category_id))
        ).scalar_one()
        if in_use:
            raise StockValidationError(
                f"Cannot delete category. {in_use} products are assigned to this category."
            )
        await db.delete(m)
        await db.commit()
    except StoreError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("delete_category failed for %s", category_id)
        raise PersistenceError("Error deleting category", cause=e)
    return {"success": True, "message": "Category deleted successfully"}


@router.put("/{category_id}/toggle-status", response_model=Dict)
async def toggle_category_status(
    category_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    try:
        m = await _load_category(db, category_id)
        m.is_active = not m.is_active
        await db.commit()
        await db.refresh(m)
    except StoreError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("toggle_category_status failed for %s", category_id)
        raise PersistenceError("Error updating category status", cause=e)
    state = "activated" if m.is_active else "deactivated"
    return {"success": True, "message": f"Category {state} successfully", "data": m.to_schema}
