"""
Stock mutation operations.

Every change to Product.stock goes through this module and appends exactly one
StockLedgerEntry in the same transaction. The balance change is a single
conditional UPDATE ... RETURNING, so two concurrent requests cannot both read
the same previous value and overwrite each other. Callers own the transaction:
commit on success, rollback on any raised error.
"""

import logging
import uuid
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import (
    InsufficientStockError,
    ProductNotFoundError,
    StockConflictError,
    StockValidationError,
)
from core.stock import (
    DEFAULT_ADJUST_REASON,
    MAX_STOCK,
    REDUCE_REASONS,
    AdjustMode,
    StockChangeType,
    change_type_for_reduce,
)
from ..database import utcnow
from ..order import Order as OrderModel
from ..product import Product as ProductModel
from .ledger import StockLedgerEntry as StockLedgerEntryModel

logger = logging.getLogger(__name__)

CANCELLED = "cancelled"


def _as_quantity(value, *, what: str = "Quantity", allow_zero: bool = False) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise StockValidationError(f"{what} must be an integer")
    if value < 0 or (value == 0 and not allow_zero):
        qualifier = "non-negative" if allow_zero else "positive"
        raise StockValidationError(f"{what} must be a {qualifier} integer")
    if value > MAX_STOCK:
        raise StockValidationError(f"{what} cannot exceed {MAX_STOCK}")
    return value


async def current_stock(db: AsyncSession, product_id: UUID) -> Optional[int]:
    res = await db.execute(select(ProductModel.stock).where(ProductModel.id == product_id))
    value = res.scalar_one_or_none()
    return int(value) if value is not None else None


async def load_product(db: AsyncSession, product_id: UUID) -> ProductModel:
    res = await db.execute(select(ProductModel).where(ProductModel.id == product_id))
    product = res.scalar_one_or_none()
    if product is None:
        raise ProductNotFoundError(product_id)
    return product


async def _read_stock_for_update(db: AsyncSession, product_id: UUID) -> int:
    res = await db.execute(
        select(ProductModel.stock).where(ProductModel.id == product_id).with_for_update()
    )
    previous = res.scalar_one_or_none()
    if previous is None:
        raise ProductNotFoundError(product_id)
    return int(previous)


async def _shift_stock(db: AsyncSession, product_id: UUID, delta: int) -> int:
    """Add `delta` to the balance unless that would leave it outside 0..MAX_STOCK."""
    stmt = (
        update(ProductModel)
        .where(ProductModel.id == product_id)
        .values(stock=ProductModel.stock + delta, updated_at=utcnow())
        .returning(ProductModel.stock)
        .execution_options(synchronize_session="fetch")
    )
    if delta < 0:
        stmt = stmt.where(ProductModel.stock >= -delta)
    else:
        stmt = stmt.where(ProductModel.stock <= MAX_STOCK - delta)

    new_stock = (await db.execute(stmt)).scalar_one_or_none()
    if new_stock is None:
        available = await current_stock(db, product_id)
        if available is None:
            raise ProductNotFoundError(product_id)
        if delta > 0:
            raise StockValidationError(f"Stock cannot exceed {MAX_STOCK}. Current stock is {available}")
        raise InsufficientStockError(product_id, requested=-delta, available=available)
    return int(new_stock)


async def _append_entry(
    *,
    db: AsyncSession,
    product_id: UUID,
    change_type: StockChangeType,
    delta: int,
    new_stock: int,
    admin_id: Optional[UUID],
    order_id: Optional[UUID] = None,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> StockLedgerEntryModel:
    entry = StockLedgerEntryModel(
        id=uuid.uuid4(),
        product_id=product_id,
        change_type=change_type,
        quantity=delta,
        previous_stock=new_stock - delta,
        new_stock=new_stock,
        admin_id=admin_id,
        order_id=order_id,
        reason=reason,
        notes=notes,
    )
    db.add(entry)
    await db.flush()
    logger.info(
        "stock %s product=%s %+d (%d -> %d)",
        change_type.value, product_id, delta, entry.previous_stock, new_stock,
    )
    return entry


async def record_initial_stock(
    db: AsyncSession,
    product: ProductModel,
    quantity: int,
    *,
    admin_id: Optional[UUID] = None,
    notes: Optional[str] = "Initial stock on product creation",
) -> StockLedgerEntryModel:
    """Persist a new product with its opening balance and the `initial` entry."""
    quantity = _as_quantity(quantity, what="Stock", allow_zero=True)
    if product.id is None:
        product.id = uuid.uuid4()

    history = await db.execute(
        select(func.count()).select_from(StockLedgerEntryModel).where(StockLedgerEntryModel.product_id == product.id)
    )
    if int(history.scalar_one() or 0) > 0:
        raise StockValidationError("Product already has stock history")

    product.stock = quantity
    db.add(product)
    await db.flush()
    return await _append_entry(
        db=db,
        product_id=product.id,
        change_type=StockChangeType.INITIAL,
        delta=quantity,
        new_stock=quantity,
        admin_id=admin_id,
        notes=notes,
    )


async def record_sale(
    db: AsyncSession,
    product_id: UUID,
    quantity: int,
    *,
    admin_id: Optional[UUID] = None,
    order_id: Optional[UUID] = None,
    notes: Optional[str] = "Stock reduced due to order",
) -> StockLedgerEntryModel:
    quantity = _as_quantity(quantity)
    new_stock = await _shift_stock(db, product_id, -quantity)
    return await _append_entry(
        db=db,
        product_id=product_id,
        change_type=StockChangeType.SALE,
        delta=-quantity,
        new_stock=new_stock,
        admin_id=admin_id,
        order_id=order_id,
        notes=notes,
    )


async def record_return(
    db: AsyncSession,
    product_id: UUID,
    quantity: int,
    *,
    admin_id: Optional[UUID] = None,
    order_id: Optional[UUID] = None,
    notes: Optional[str] = "Stock restored due to order cancellation",
) -> StockLedgerEntryModel:
    quantity = _as_quantity(quantity)
    new_stock = await _shift_stock(db, product_id, quantity)
    return await _append_entry(
        db=db,
        product_id=product_id,
        change_type=StockChangeType.RETURN,
        delta=quantity,
        new_stock=new_stock,
        admin_id=admin_id,
        order_id=order_id,
        notes=notes,
    )


async def record_manual_adjustment(
    db: AsyncSession,
    product_id: UUID,
    mode: AdjustMode | str,
    value: int,
    *,
    admin_id: Optional[UUID] = None,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> StockLedgerEntryModel:
    """
    Admin-initiated change.

    - restock: `value` (> 0) is added
    - reduce: `value` (> 0) is subtracted; `reason` must be one of REDUCE_REASONS
    - set: `value` (>= 0) becomes the new balance
    """
    try:
        mode = AdjustMode(mode)
    except ValueError:
        raise StockValidationError(f"Unknown adjustment mode: {mode}")

    if mode is AdjustMode.RESTOCK:
        value = _as_quantity(value)
        new_stock = await _shift_stock(db, product_id, value)
        return await _append_entry(
            db=db,
            product_id=product_id,
            change_type=StockChangeType.RESTOCK,
            delta=value,
            new_stock=new_stock,
            admin_id=admin_id,
            reason=reason,
            notes=notes,
        )

    if mode is AdjustMode.REDUCE:
        value = _as_quantity(value)
        if reason not in REDUCE_REASONS:
            raise StockValidationError("Valid reason is required")
        try:
            new_stock = await _shift_stock(db, product_id, -value)
        except InsufficientStockError as e:
            raise InsufficientStockError(
                product_id,
                requested=value,
                available=e.available,
                message=f"Cannot reduce stock by {value}. Current stock is {e.available}",
            ) from e
        return await _append_entry(
            db=db,
            product_id=product_id,
            change_type=change_type_for_reduce(reason),
            delta=-value,
            new_stock=new_stock,
            admin_id=admin_id,
            reason=reason,
            notes=notes,
        )

    value = _as_quantity(value, what="New stock", allow_zero=True)
    previous = await _read_stock_for_update(db, product_id)

    # Compare-and-swap on the value just read.
    swapped = await db.execute(
        update(ProductModel)
        .where(ProductModel.id == product_id)
        .where(ProductModel.stock == previous)
        .values(stock=value, updated_at=utcnow())
        .returning(ProductModel.stock)
        .execution_options(synchronize_session="fetch")
    )
    if swapped.scalar_one_or_none() is None:
        raise StockConflictError("Stock changed while adjusting; reload and retry")

    return await _append_entry(
        db=db,
        product_id=product_id,
        change_type=StockChangeType.ADJUSTMENT,
        delta=value - int(previous),
        new_stock=value,
        admin_id=admin_id,
        reason=reason or DEFAULT_ADJUST_REASON,
        notes=notes,
    )


async def lock_products(db: AsyncSession, product_ids: Iterable[UUID]) -> Dict[UUID, ProductModel]:
    """Load (and row-lock where supported) the given products with fresh stock values."""
    ids = list(dict.fromkeys(product_ids))
    if not ids:
        return {}
    res = await db.execute(
        select(ProductModel)
        .where(ProductModel.id.in_(ids))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {p.id: p for p in res.scalars().all()}


async def record_order_sales(
    db: AsyncSession,
    order: OrderModel,
    *,
    admin_id: Optional[UUID] = None,
) -> List[StockLedgerEntryModel]:
    """
    Record one `sale` per order line, all or nothing.

    Availability of every product is checked (with repeated products summed)
    before any balance changes. A later failure still raises, and the caller's
    rollback discards the lines already applied.
    """
    required: Dict[UUID, int] = {}
    for item in order.items:
        qty = _as_quantity(item.quantity)
        required[item.product_id] = required.get(item.product_id, 0) + qty

    products = await lock_products(db, required.keys())
    for product_id, qty in required.items():
        product = products.get(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        if int(product.stock) < qty:
            raise InsufficientStockError(
                product_id,
                requested=qty,
                available=int(product.stock),
                message=f"Insufficient stock for {product.name}. Available: {int(product.stock)}",
            )

    entries = []
    for item in order.items:
        entries.append(
            await record_sale(
                db,
                item.product_id,
                item.quantity,
                admin_id=admin_id,
                order_id=order.id,
            )
        )
    return entries


async def reverse_stock_on_cancel(
    db: AsyncSession,
    order: OrderModel,
    *,
    admin_id: Optional[UUID] = None,
) -> List[StockLedgerEntryModel]:
    """
    Move `order` into `cancelled`, returning each line's quantity to stock.

    Does nothing for an order that is already cancelled. Lines whose product
    has since been deleted are skipped. `order.items` must be loaded.
    """
    if order.status == CANCELLED:
        return []

    entries = []
    for item in order.items:
        if item.product_id is None:
            logger.warning("order %s: line %r has no product, not restocking", order.id, item.name)
            continue
        try:
            entries.append(
                await record_return(
                    db,
                    item.product_id,
                    item.quantity,
                    admin_id=admin_id,
                    order_id=order.id,
                )
            )
        except ProductNotFoundError:
            logger.warning("order %s: product %s no longer exists, not restocking", order.id, item.product_id)
    order.status = CANCELLED
    return entries
