import logging
import uuid
from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import case, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.auth import current_active_superuser, current_active_user
from core.errors import OrderNotFoundError, PersistenceError, StockValidationError, StoreError
from core.pagination import page_offset, paginated
from db.database import get_async_session, utcnow
from db.inventory.mutations import CANCELLED, lock_products, record_order_sales, reverse_stock_on_cancel
from db.order import Order as OrderModel, OrderItem as OrderItemModel, OrderStatusHistory as OrderStatusHistoryModel
from db.users import User
from schemas.common import MAX_AMOUNT
from schemas.orders import OrderCreate, OrderStatus, OrderStatusUpdate, PaymentStatus, PaymentStatusUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


def _new_order_number() -> str:
    return f"ORD-{utcnow():%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


async def _load_order(db: AsyncSession, order_id: UUID) -> OrderModel:
    res = await db.execute(
        select(OrderModel)
        .options(selectinload(OrderModel.items), selectinload(OrderModel.status_history))
        .where(OrderModel.id == order_id)
        .execution_options(populate_existing=True)
    )
    order = res.scalar_one_or_none()
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


@router.get("", response_model=Dict)
async def list_orders(
    search: Optional[str] = None,
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    payment_status: Optional[PaymentStatus] = Query(None, alias="paymentStatus"),
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
                func.lower(OrderModel.order_number).like(term),
                func.lower(OrderModel.customer_name).like(term),
                func.lower(OrderModel.customer_email).like(term),
            )
        )
    if order_status:
        filters.append(OrderModel.status == order_status)
    if payment_status:
        filters.append(OrderModel.payment_status == payment_status)

    total = (await db.execute(select(func.count(OrderModel.id)).where(*filters))).scalar_one()
    res = await db.execute(
        select(OrderModel)
        .options(selectinload(OrderModel.items), selectinload(OrderModel.status_history))
        .where(*filters)
        .order_by(OrderModel.created_at.desc())
        .offset(page_offset(page, limit))
        .limit(limit)
    )
    data = [o.to_schema for o in res.scalars().all()]
    return paginated(data, total=int(total or 0), page=page, limit=limit)


@router.get("/stats", response_model=Dict)
async def order_stats(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    def _count_status(value: str):
        return func.coalesce(func.sum(case((OrderModel.status == value, 1), else_=0)), 0)

    row = (
        await db.execute(
            select(
                func.count(OrderModel.id),
                _count_status("pending"),
                _count_status("processing"),
                _count_status("completed"),
                _count_status(CANCELLED),
                func.coalesce(
                    func.sum(case((OrderModel.payment_status == "paid", OrderModel.total_amount), else_=0)), 0
                ),
            )
        )
    ).one()
    total, pending, processing, completed, cancelled, revenue = row
    return {
        "success": True,
        "data": {
            "totalOrders": int(total or 0),
            "pendingOrders": int(pending or 0),
            "processingOrders": int(processing or 0),
            "completedOrders": int(completed or 0),
            "cancelledOrders": int(cancelled or 0),
            "totalRevenue": round(float(revenue or 0), 2),
        },
    }


@router.get("/export/json", response_model=Dict)
async def export_orders(
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    filters = []
    if order_status:
        filters.append(OrderModel.status == order_status)
    if start_date:
        filters.append(OrderModel.created_at >= start_date)
    if end_date:
        filters.append(OrderModel.created_at <= end_date)

    res = await db.execute(
        select(OrderModel)
        .options(selectinload(OrderModel.items), selectinload(OrderModel.status_history))
        .where(*filters)
        .order_by(OrderModel.created_at.desc())
    )
    data = [o.to_schema for o in res.scalars().all()]
    return {"success": True, "count": len(data), "data": data}


@router.get("/{order_id}", response_model=Dict)
async def get_order(
    order_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    order = await _load_order(db, order_id)
    return {"success": True, "data": order.to_schema}


@router.post("", response_model=Dict, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Place an order and take its lines out of stock.

    Either every line is sold (one `sale` ledger entry each) or, on an unknown
    product or insufficient stock for any line, nothing is written.
    """
    order_id = uuid.uuid4()
    try:
        products = await lock_products(db, [line.product for line in payload.items])
        for line in payload.items:
            if line.product not in products:
                raise StockValidationError(f"Product not found: {line.product}")

        items = []
        subtotal = 0.0
        for line in payload.items:
            p = products[line.product]
            price = p.discounted_price
            subtotal += price * line.quantity
            items.append(
                OrderItemModel(
                    id=uuid.uuid4(),
                    product_id=p.id,
                    name=p.name,
                    price=price,
                    quantity=line.quantity,
                )
            )
        subtotal = round(subtotal, 2)
        total_amount = round(subtotal + payload.shipping_cost + payload.tax - payload.discount, 2)
        if subtotal > MAX_AMOUNT or abs(total_amount) > MAX_AMOUNT:
            raise StockValidationError("Order total is too large")

        order = OrderModel(
            id=order_id,
            order_number=_new_order_number(),
            customer_name=payload.customer.name,
            customer_email=str(payload.customer.email),
            customer_phone=payload.customer.phone,
            shipping_address=payload.customer.address,
            payment_method=payload.payment_method or "credit_card",
            subtotal=subtotal,
            shipping_cost=payload.shipping_cost,
            tax=payload.tax,
            discount=payload.discount,
            total_amount=total_amount,
            notes=payload.notes,
            created_by_user_id=user.id,
            items=items,
            status_history=[OrderStatusHistoryModel(status="pending", changed_by_user_id=user.id)],
        )
        db.add(order)
        await db.flush()

        await record_order_sales(db, order, admin_id=user.id)
        await db.commit()
    except StoreError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("create_order failed")
        raise PersistenceError("Error creating order", cause=e)

    order = await _load_order(db, order_id)
    return {"success": True, "message": "Order created successfully", "data": order.to_schema}


@router.put("/{order_id}/status", response_model=Dict)
async def update_order_status(
    order_id: UUID,
    payload: OrderStatusUpdate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        order = await _load_order(db, order_id)
        previous = order.status
        if payload.status == CANCELLED:
            await reverse_stock_on_cancel(db, order, admin_id=user.id)
        elif previous == CANCELLED:
            # Reopening would need the returned stock sold again.
            raise StockValidationError("Cancelled orders cannot be reopened")
        else:
            order.status = payload.status

        if order.status != previous:
            order.status_history.append(
                OrderStatusHistoryModel(status=order.status, note=payload.note, changed_by_user_id=user.id)
            )
        elif payload.note and order.status_history:
            order.status_history[-1].note = payload.note
        await db.commit()
    except StoreError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("update_order_status failed for %s", order_id)
        raise PersistenceError("Error updating order status", cause=e)

    order = await _load_order(db, order_id)
    return {"success": True, "message": "Order status updated successfully", "data": order.to_schema}


@router.put("/{order_id}/payment-status", response_model=Dict)
async def update_payment_status(
    order_id: UUID,
    payload: PaymentStatusUpdate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        order = await _load_order(db, order_id)
        order.payment_status = payload.payment_status
        await db.commit()
    except StoreError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("update_payment_status failed for %s", order_id)
        raise PersistenceError("Error updating payment status", cause=e)

    order = await _load_order(db, order_id)
    return {"success": True, "message": "Payment status updated successfully", "data": order.to_schema}


@router.delete("/{order_id}", response_model=Dict)
async def delete_order(
    order_id: UUID,
    user: User = Depends(current_active_superuser),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        order = await _load_order(db, order_id)
        if order.status != CANCELLED:
            raise StockValidationError("Only cancelled orders can be deleted")
        await db.delete(order)
        await db.commit()
    except StoreError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("delete_order failed for %s", order_id)
        raise PersistenceError("Error deleting order", cause=e)
    return {"success": True, "message": "Order deleted successfully"}
