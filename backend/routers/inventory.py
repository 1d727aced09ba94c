import logging
from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user
from core.errors import PersistenceError, StoreError
from core.pagination import page_offset, paginated
from core.stock import AdjustMode, StockChangeType
from db.category import Category as CategoryModel
from db.database import get_async_session
from db.inventory.ledger import StockLedgerEntry as StockLedgerEntryModel
from db.inventory.mutations import load_product, record_manual_adjustment
from db.product import Product as ProductModel
from db.users import User
from schemas.inventory import AdjustRequest, ReduceRequest, RestockRequest, ThresholdUpdate

logger = logging.getLogger(__name__)

router = APIRouter()

PRODUCT_LOG_LIMIT = 50


def _entry_out(entry: StockLedgerEntryModel, product: Optional[ProductModel] = None, admin: Optional[User] = None) -> dict:
    out = entry.to_schema
    if product is not None:
        out["product"] = {"id": product.id, "name": product.name, "sku": product.sku}
    if admin is not None:
        out["admin"] = {"id": admin.id, "name": admin.name, "email": admin.email}
    return out


async def _adjust(
    db: AsyncSession,
    user: User,
    *,
    product_id: UUID,
    mode: AdjustMode,
    value: int,
    reason: Optional[str],
    notes: Optional[str],
    action: str,
):
    try:
        product = await load_product(db, product_id)
        name = product.name
        entry = await record_manual_adjustment(
            db,
            product_id,
            mode,
            value,
            admin_id=user.id,
            reason=reason,
            notes=notes,
        )
        await db.commit()
    except StoreError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("%s failed for product %s", action, product_id)
        raise PersistenceError(f"Error {action} product stock", cause=e)
    return name, entry


@router.get("", response_model=Dict)
async def inventory_overview(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    stats = (
        await db.execute(
            select(
                func.count(ProductModel.id),
                func.coalesce(func.sum(ProductModel.stock), 0),
                func.coalesce(func.avg(ProductModel.stock), 0),
                func.coalesce(func.min(ProductModel.stock), 0),
                func.coalesce(func.max(ProductModel.stock), 0),
            )
        )
    ).one()
    low_stock_count = (
        await db.execute(
            select(func.count(ProductModel.id)).where(ProductModel.stock <= ProductModel.low_stock_threshold)
        )
    ).scalar_one()
    out_of_stock_count = (
        await db.execute(select(func.count(ProductModel.id)).where(ProductModel.stock == 0))
    ).scalar_one()
    total_products, total_stock, avg_stock, min_stock, max_stock = stats
    return {
        "success": True,
        "data": {
            "totalProducts": int(total_products or 0),
            "totalStock": int(total_stock or 0),
            "avgStock": round(float(avg_stock or 0)),
            "minStock": int(min_stock or 0),
            "maxStock": int(max_stock or 0),
            "lowStockCount": int(low_stock_count or 0),
            "outOfStockCount": int(out_of_stock_count or 0),
        },
    }


@router.get("/logs", response_model=Dict)
async def list_logs(
    product: Optional[UUID] = None,
    change_type: Optional[StockChangeType] = Query(None, alias="changeType"),
    admin: Optional[UUID] = None,
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    filters = []
    if product:
        filters.append(StockLedgerEntryModel.product_id == product)
    if change_type:
        filters.append(StockLedgerEntryModel.change_type == change_type)
    if admin:
        filters.append(StockLedgerEntryModel.admin_id == admin)
    if start_date:
        filters.append(StockLedgerEntryModel.created_at >= start_date)
    if end_date:
        filters.append(StockLedgerEntryModel.created_at <= end_date)

    total = (
        await db.execute(select(func.count(StockLedgerEntryModel.id)).where(*filters))
    ).scalar_one()

    stmt = (
        select(StockLedgerEntryModel, ProductModel, User)
        .join(ProductModel, StockLedgerEntryModel.product_id == ProductModel.id)
        .outerjoin(User, StockLedgerEntryModel.admin_id == User.id)
        .where(*filters)
        .order_by(StockLedgerEntryModel.created_at.desc())
        .offset(page_offset(page, limit))
        .limit(limit)
    )
    rows = (await db.execute(stmt)).all()
    data = [_entry_out(entry, p, a) for (entry, p, a) in rows]
    return paginated(data, total=int(total or 0), page=page, limit=limit)


@router.get("/product/{product_id}", response_model=Dict)
async def product_logs(
    product_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    product = await load_product(db, product_id)
    stmt = (
        select(StockLedgerEntryModel, User)
        .outerjoin(User, StockLedgerEntryModel.admin_id == User.id)
        .where(StockLedgerEntryModel.product_id == product_id)
        .order_by(StockLedgerEntryModel.created_at.desc())
        .limit(PRODUCT_LOG_LIMIT)
    )
    rows = (await db.execute(stmt)).all()
    return {
        "success": True,
        "product": {
            "id": product.id,
            "name": product.name,
            "currentStock": int(product.stock),
            "lowStockThreshold": int(product.low_stock_threshold),
            "isLowStock": product.is_low_stock,
            "isOutOfStock": product.is_out_of_stock,
        },
        "logs": [_entry_out(entry, admin=a) for (entry, a) in rows],
    }


@router.post("/restock", response_model=Dict)
async def restock_product(
    payload: RestockRequest,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    name, entry = await _adjust(
        db,
        user,
        product_id=payload.product_id,
        mode=AdjustMode.RESTOCK,
        value=payload.quantity,
        reason=payload.reason,
        notes=payload.notes,
        action="restocking",
    )
    return {
        "success": True,
        "message": "Product restocked successfully",
        "data": {
            "product": {
                "id": payload.product_id,
                "name": name,
                "previousStock": entry.previous_stock,
                "newStock": entry.new_stock,
                "quantityAdded": payload.quantity,
            }
        },
    }


@router.post("/reduce", response_model=Dict)
async def reduce_product_stock(
    payload: ReduceRequest,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    name, entry = await _adjust(
        db,
        user,
        product_id=payload.product_id,
        mode=AdjustMode.REDUCE,
        value=payload.quantity,
        reason=payload.reason,
        notes=payload.notes,
        action="reducing",
    )
    return {
        "success": True,
        "message": "Product stock reduced successfully",
        "data": {
            "product": {
                "id": payload.product_id,
                "name": name,
                "previousStock": entry.previous_stock,
                "newStock": entry.new_stock,
                "quantityReduced": payload.quantity,
            }
        },
    }


@router.post("/adjust", response_model=Dict)
async def adjust_product_stock(
    payload: AdjustRequest,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    name, entry = await _adjust(
        db,
        user,
        product_id=payload.product_id,
        mode=AdjustMode.SET,
        value=payload.new_stock,
        reason=payload.reason,
        notes=payload.notes,
        action="adjusting",
    )
    return {
        "success": True,
        "message": "Product stock adjusted successfully",
        "data": {
            "product": {
                "id": payload.product_id,
                "name": name,
                "previousStock": entry.previous_stock,
                "newStock": entry.new_stock,
                "quantityChange": entry.quantity,
            }
        },
    }


@router.get("/low-stock", response_model=Dict)
async def low_stock_products(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    is_low = ProductModel.stock <= ProductModel.low_stock_threshold
    total = (await db.execute(select(func.count(ProductModel.id)).where(is_low))).scalar_one()
    stmt = (
        select(ProductModel, CategoryModel.name)
        .outerjoin(CategoryModel, ProductModel.category_id == CategoryModel.id)
        .where(is_low)
        .order_by(ProductModel.stock.asc(), ProductModel.name.asc())
        .offset(page_offset(page, limit))
        .limit(limit)
    )
    rows = (await db.execute(stmt)).all()
    data = [
        {
            "id": p.id,
            "name": p.name,
            "sku": p.sku,
            "category": category_name,
            "currentStock": int(p.stock),
            "threshold": int(p.low_stock_threshold),
            "isOutOfStock": p.is_out_of_stock,
        }
        for (p, category_name) in rows
    ]
    return paginated(data, total=int(total or 0), page=page, limit=limit)


@router.get("/out-of-stock", response_model=Dict)
async def out_of_stock_products(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    is_out = ProductModel.stock == 0
    total = (await db.execute(select(func.count(ProductModel.id)).where(is_out))).scalar_one()
    stmt = (
        select(ProductModel, CategoryModel.name)
        .outerjoin(CategoryModel, ProductModel.category_id == CategoryModel.id)
        .where(is_out)
        .order_by(ProductModel.updated_at.desc())
        .offset(page_offset(page, limit))
        .limit(limit)
    )
    rows = (await db.execute(stmt)).all()
    data = [
        {
            "id": p.id,
            "name": p.name,
            "sku": p.sku,
            "category": category_name,
            "lastUpdated": p.updated_at.isoformat() if p.updated_at else None,
        }
        for (p, category_name) in rows
    ]
    return paginated(data, total=int(total or 0), page=page, limit=limit)


@router.put("/threshold/{product_id}", response_model=Dict)
async def update_threshold(
    product_id: UUID,
    payload: ThresholdUpdate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        product = await load_product(db, product_id)
        product.low_stock_threshold = payload.threshold
        await db.commit()
        await db.refresh(product)
    except StoreError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("update_threshold failed for %s", product_id)
        raise PersistenceError("Error updating low stock threshold", cause=e)
    return {
        "success": True,
        "message": "Low stock threshold updated successfully",
        "data": {
            "id": product.id,
            "name": product.name,
            "lowStockThreshold": int(product.low_stock_threshold),
            "currentStock": int(product.stock),
            "isLowStock": product.is_low_stock,
        },
    }
