import logging
import uuid
from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.auth import current_active_superuser, current_active_user
from core.errors import PersistenceError, ProductNotFoundError, StockValidationError, StoreError
from core.pagination import page_offset, paginated
from core.stock import AdjustMode, DEFAULT_ADJUST_REASON
from db.category import Category as CategoryModel
from db.database import get_async_session
from db.inventory.ledger import StockLedgerEntry as StockLedgerEntryModel
from db.inventory.mutations import load_product, record_initial_stock, record_manual_adjustment
from db.product import Product as ProductModel
from db.users import User
from schemas.products import ProductCreate, ProductUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


async def _load_with_category(db: AsyncSession, product_id: UUID) -> ProductModel:
    res = await db.execute(
        select(ProductModel)
        .options(selectinload(ProductModel.category))
        .where(ProductModel.id == product_id)
        .execution_options(populate_existing=True)
    )
    product = res.scalar_one_or_none()
    if product is None:
        raise ProductNotFoundError(product_id)
    return product


async def _ensure_category(db: AsyncSession, category_id: UUID) -> None:
    res = await db.execute(select(CategoryModel.id).where(CategoryModel.id == category_id))
    if res.scalar_one_or_none() is None:
        raise StockValidationError("Invalid category")


@router.get("", response_model=Dict)
async def list_products(
    search: Optional[str] = None,
    category: Optional[UUID] = None,
    featured: Optional[bool] = None,
    is_visible: Optional[bool] = Query(None, alias="isVisible"),
    low_stock: bool = Query(False, alias="lowStock"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=200),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    filters = []
    if search:
        term = f"%{search.strip().lower()}%"
        filters.append(
            or_(
                func.lower(ProductModel.name).like(term),
                func.lower(ProductModel.description).like(term),
                func.lower(ProductModel.sku).like(term),
            )
        )
    if category:
        filters.append(ProductModel.category_id == category)
    if featured is not None:
        filters.append(ProductModel.featured == featured)
    if is_visible is not None:
        filters.append(ProductModel.is_visible == is_visible)
    if low_stock:
        filters.append(ProductModel.stock <= ProductModel.low_stock_threshold)

    total = (await db.execute(select(func.count(ProductModel.id)).where(*filters))).scalar_one()
    res = await db.execute(
        select(ProductModel)
        .options(selectinload(ProductModel.category))
        .where(*filters)
        .order_by(ProductModel.created_at.desc())
        .offset(page_offset(page, limit))
        .limit(limit)
    )
    data = [p.to_schema for p in res.scalars().all()]
    return paginated(data, total=int(total or 0), page=page, limit=limit)


@router.get("/low-stock", response_model=Dict)
async def list_low_stock_products(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(
        select(ProductModel)
        .options(selectinload(ProductModel.category))
        .where(ProductModel.stock <= ProductModel.low_stock_threshold)
        .order_by(ProductModel.stock.asc())
    )
    data = [p.to_schema for p in res.scalars().all()]
    return {"success": True, "count": len(data), "data": data}


@router.get("/{product_id}", response_model=Dict)
async def get_product(
    product_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    product = await _load_with_category(db, product_id)
    return {"success": True, "data": product.to_schema}


@router.post("", response_model=Dict, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    product_id = uuid.uuid4()
    try:
        await _ensure_category(db, payload.category)
        product = ProductModel(
            id=product_id,
            name=payload.name,
            description=payload.description,
            price=payload.price,
            discount=payload.discount,
            category_id=payload.category,
            sku=payload.sku,
            featured=payload.featured,
            is_visible=payload.is_visible,
            low_stock_threshold=payload.low_stock_threshold,
        )
        await record_initial_stock(db, product, payload.stock, admin_id=user.id)
        await db.commit()
    except StoreError:
        await db.rollback()
        raise
    except IntegrityError as e:
        await db.rollback()
        raise StockValidationError("A product with this SKU already exists", cause=e)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("create_product failed")
        raise PersistenceError("Error creating product", cause=e)

    product = await _load_with_category(db, product_id)
    return {"success": True, "message": "Product created successfully", "data": product.to_schema}


@router.put("/{product_id}", response_model=Dict)
async def update_product(
    product_id: UUID,
    payload: ProductUpdate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    data = payload.model_dump(exclude_unset=True)
    try:
        product = await load_product(db, product_id)

        if data.get("category") is not None and data["category"] != product.category_id:
            await _ensure_category(db, data["category"])
            product.category_id = data["category"]
        for field in ("name", "description", "price", "discount", "featured", "is_visible", "low_stock_threshold"):
            if data.get(field) is not None:
                setattr(product, field, data[field])
        if "sku" in data:
            product.sku = (data["sku"] or "").strip() or None
        await db.flush()

        # Stock edits from the product form are `set` adjustments.
        new_stock = data.get("stock")
        if new_stock is not None and new_stock != int(product.stock):
            await record_manual_adjustment(
                db,
                product_id,
                AdjustMode.SET,
                new_stock,
                admin_id=user.id,
                reason=DEFAULT_ADJUST_REASON,
                notes="Manual stock adjustment",
            )
        await db.commit()
    except StoreError:
        await db.rollback()
        raise
    except IntegrityError as e:
        await db.rollback()
        raise StockValidationError("A product with this SKU already exists", cause=e)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("update_product failed for %s", product_id)
        raise PersistenceError("Error updating product", cause=e)

    product = await _load_with_category(db, product_id)
    return {"success": True, "message": "Product updated successfully", "data": product.to_schema}


@router.delete("/{product_id}", response_model=Dict)
async def delete_product(
    product_id: UUID,
    user: User = Depends(current_active_superuser),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        product = await load_product(db, product_id)
        # The ledger goes with its product and with nothing else.
        await db.execute(delete(StockLedgerEntryModel).where(StockLedgerEntryModel.product_id == product_id))
        await db.delete(product)
        await db.commit()
    except StoreError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("delete_product failed for %s", product_id)
        raise PersistenceError("Error deleting product", cause=e)
    return {"success": True, "message": "Product deleted successfully"}


@router.put("/{product_id}/toggle-visibility", response_model=Dict)
async def toggle_visibility(
    product_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        product = await load_product(db, product_id)
        product.is_visible = not product.is_visible
        await db.commit()
    except StoreError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("toggle_visibility failed for %s", product_id)
        raise PersistenceError("Error updating product visibility", cause=e)

    product = await _load_with_category(db, product_id)
    state = "visible" if product.is_visible else "hidden"
    return {"success": True, "message": f"Product {state} successfully", "data": product.to_schema}


@router.put("/{product_id}/toggle-featured", response_model=Dict)
async def toggle_featured(
    product_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        product = await load_product(db, product_id)
        product.featured = not product.featured
        await db.commit()
    except StoreError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("toggle_featured failed for %s", product_id)
        raise PersistenceError("Error updating featured flag", cause=e)

    product = await _load_with_category(db, product_id)
    if product.featured:
        message = "Product marked as featured successfully"
    else:
        message = "Product removed from featured successfully"
    return {"success": True, "message": message, "data": product.to_schema}
