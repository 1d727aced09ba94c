import uuid

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from core.stock import StockChangeType
from db.inventory.ledger import StockLedgerEntry
from db.inventory.mutations import current_stock
from db.order import Order
from db.product import Product


def _order_payload(*lines, **extra):
    payload = {
        "items": [{"product": str(pid), "quantity": qty} for pid, qty in lines],
        "customer": {"name": "Dana Levi", "email": "dana@example.com", "address": "1 Main St"},
    }
    payload.update(extra)
    return payload


async def _stock(session_maker, product_id):
    async with session_maker() as s:
        return await current_stock(s, product_id)


async def _count(session_maker, stmt):
    async with session_maker() as s:
        return (await s.execute(stmt)).scalar_one()


async def test_create_order_sells_each_line(client, make_product, session_maker):
    mug = await make_product(stock=10, name="Mug", price=12.5)
    lamp = await make_product(stock=3, name="Lamp", price=40)

    resp = await client.post(
        "/orders",
        json=_order_payload((mug.id, 2), (lamp.id, 3), shippingCost=5, tax=2),
    )

    assert resp.status_code == 201
    order = resp.json()["data"]
    assert order["orderNumber"].startswith("ORD-")
    assert order["status"] == "pending"
    assert order["subtotal"] == 145.0
    assert order["totalAmount"] == 152.0
    assert {i["name"]: i["quantity"] for i in order["items"]} == {"Mug": 2, "Lamp": 3}

    assert await _stock(session_maker, mug.id) == 8
    assert await _stock(session_maker, lamp.id) == 0

    async with session_maker() as s:
        sales = (
            await s.execute(select(StockLedgerEntry).where(StockLedgerEntry.change_type == StockChangeType.SALE))
        ).scalars().all()
    assert len(sales) == 2
    assert {str(e.order_id) for e in sales} == {order["id"]}
    assert sorted(e.quantity for e in sales) == [-3, -2]


async def test_order_uses_discounted_price(client, make_product, session_maker):
    product = await make_product(stock=5, price=100)
    async with session_maker() as s:
        (await s.get(Product, product.id)).discount = 10
        await s.commit()

    resp = await client.post("/orders", json=_order_payload((product.id, 1)))

    assert resp.json()["data"]["items"][0]["price"] == 90.0


async def test_order_with_insufficient_second_line_applies_nothing(client, make_product, session_maker):
    plenty = await make_product(stock=10, name="Plenty")
    scarce = await make_product(stock=1, name="Scarce")

    resp = await client.post("/orders", json=_order_payload((plenty.id, 2), (scarce.id, 5)))

    assert resp.status_code == 400
    assert resp.json()["message"] == "Insufficient stock for Scarce. Available: 1"
    assert await _stock(session_maker, plenty.id) == 10
    assert await _stock(session_maker, scarce.id) == 1
    assert await _count(session_maker, select(func.count(Order.id))) == 0
    assert await _count(
        session_maker, select(func.count(StockLedgerEntry.id)).where(StockLedgerEntry.change_type == StockChangeType.SALE)
    ) == 0


async def test_repeated_product_lines_are_summed(client, make_product, session_maker):
    product = await make_product(stock=3)

    resp = await client.post("/orders", json=_order_payload((product.id, 2), (product.id, 2)))

    assert resp.status_code == 400
    assert await _stock(session_maker, product.id) == 3


async def test_order_with_unknown_product(client, make_product, session_maker):
    product = await make_product(stock=3)
    missing = uuid.uuid4()

    resp = await client.post("/orders", json=_order_payload((product.id, 1), (missing, 1)))

    assert resp.status_code == 400
    assert resp.json()["message"] == f"Product not found: {missing}"
    assert await _stock(session_maker, product.id) == 3


async def test_order_needs_items(client):
    resp = await client.post("/orders", json=_order_payload())
    assert resp.status_code == 400
    assert resp.json()["success"] is False


async def test_cancel_restores_stock_once(client, make_product, session_maker):
    product = await make_product(stock=10)
    order = (await client.post("/orders", json=_order_payload((product.id, 4)))).json()["data"]
    assert await _stock(session_maker, product.id) == 6

    resp = await client.put(f"/orders/{order['id']}/status", json={"status": "cancelled"})
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "cancelled"
    assert await _stock(session_maker, product.id) == 10

    resp = await client.put(f"/orders/{order['id']}/status", json={"status": "cancelled"})
    assert resp.status_code == 200
    assert await _stock(session_maker, product.id) == 10

    returns = await _count(
        session_maker,
        select(func.count(StockLedgerEntry.id)).where(StockLedgerEntry.change_type == StockChangeType.RETURN),
    )
    assert returns == 1


async def test_cancel_skips_deleted_products(client, make_product, session_maker):
    kept = await make_product(stock=5, name="Kept")
    gone = await make_product(stock=5, name="Gone")
    order = (await client.post("/orders", json=_order_payload((kept.id, 1), (gone.id, 2)))).json()["data"]

    assert (await client.delete(f"/products/{gone.id}")).status_code == 200

    resp = await client.put(f"/orders/{order['id']}/status", json={"status": "cancelled"})

    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "cancelled"
    assert await _stock(session_maker, kept.id) == 5
    assert await _stock(session_maker, gone.id) is None


async def test_other_status_changes_leave_stock_alone(client, make_product, session_maker):
    product = await make_product(stock=5)
    order = (await client.post("/orders", json=_order_payload((product.id, 1)))).json()["data"]

    for status in ("processing", "shipped", "delivered"):
        resp = await client.put(f"/orders/{order['id']}/status", json={"status": status})
        assert resp.json()["data"]["status"] == status

    assert await _stock(session_maker, product.id) == 4


async def test_cancelled_order_cannot_be_reopened(client, make_product, session_maker):
    product = await make_product(stock=5)
    order = (await client.post("/orders", json=_order_payload((product.id, 1)))).json()["data"]
    await client.put(f"/orders/{order['id']}/status", json={"status": "cancelled"})

    resp = await client.put(f"/orders/{order['id']}/status", json={"status": "pending"})

    assert resp.status_code == 400
    assert resp.json()["message"] == "Cancelled orders cannot be reopened"
    assert await _stock(session_maker, product.id) == 5


async def test_unknown_status_is_rejected(client, make_product):
    product = await make_product(stock=5)
    order = (await client.post("/orders", json=_order_payload((product.id, 1)))).json()["data"]
    resp = await client.put(f"/orders/{order['id']}/status", json={"status": "lost"})
    assert resp.status_code == 400


async def test_payment_status(client, make_product):
    product = await make_product(stock=5)
    order = (await client.post("/orders", json=_order_payload((product.id, 1)))).json()["data"]

    resp = await client.put(f"/orders/{order['id']}/payment-status", json={"paymentStatus": "paid"})

    assert resp.status_code == 200
    assert resp.json()["data"]["paymentStatus"] == "paid"


async def test_list_and_get(client, make_product):
    product = await make_product(stock=5)
    order = (await client.post("/orders", json=_order_payload((product.id, 1)))).json()["data"]

    listing = (await client.get("/orders", params={"search": "dana"})).json()
    assert listing["total"] == 1
    assert listing["data"][0]["id"] == order["id"]

    assert (await client.get("/orders", params={"status": "cancelled"})).json()["total"] == 0

    resp = await client.get(f"/orders/{order['id']}")
    assert resp.json()["data"]["customer"]["email"] == "dana@example.com"

    resp = await client.get(f"/orders/{uuid.uuid4()}")
    assert resp.status_code == 404
    assert resp.json()["message"] == "Order not found"


async def test_delete_only_cancelled(client, make_product, session_maker):
    product = await make_product(stock=5)
    order = (await client.post("/orders", json=_order_payload((product.id, 1)))).json()["data"]

    resp = await client.delete(f"/orders/{order['id']}")
    assert resp.status_code == 400

    await client.put(f"/orders/{order['id']}/status", json={"status": "cancelled"})
    resp = await client.delete(f"/orders/{order['id']}")
    assert resp.status_code == 200
    assert await _count(session_maker, select(func.count(Order.id))) == 0


async def test_status_history_records_changes_and_notes(client, make_product, admin):
    product = await make_product(stock=5)
    order = (await client.post("/orders", json=_order_payload((product.id, 1)))).json()["data"]
    assert [h["status"] for h in order["statusHistory"]] == ["pending"]
    assert order["statusHistory"][0]["changedBy"] == str(admin.id)

    await client.put(f"/orders/{order['id']}/status", json={"status": "processing", "note": " Packed "})
    resp = await client.put(f"/orders/{order['id']}/status", json={"status": "processing", "note": "Left depot"})
    await client.put(f"/orders/{order['id']}/status", json={"status": "processing"})

    history = resp.json()["data"]["statusHistory"]
    assert [(h["status"], h["note"]) for h in history] == [("pending", None), ("processing", "Left depot")]

    resp = await client.put(f"/orders/{order['id']}/status", json={"status": "cancelled", "note": "Customer asked"})
    history = resp.json()["data"]["statusHistory"]
    assert [h["status"] for h in history] == ["pending", "processing", "cancelled"]
    assert history[-1]["note"] == "Customer asked"


async def test_stats(client, make_product):
    product = await make_product(stock=20, price=10)
    paid = (await client.post("/orders", json=_order_payload((product.id, 2)))).json()["data"]
    await client.put(f"/orders/{paid['id']}/payment-status", json={"paymentStatus": "paid"})
    await client.put(f"/orders/{paid['id']}/status", json={"status": "completed"})
    dropped = (await client.post("/orders", json=_order_payload((product.id, 1)))).json()["data"]
    await client.put(f"/orders/{dropped['id']}/status", json={"status": "cancelled"})
    await client.post("/orders", json=_order_payload((product.id, 3)))

    resp = await client.get("/orders/stats")

    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "data": {
            "totalOrders": 3,
            "pendingOrders": 1,
            "processingOrders": 0,
            "completedOrders": 1,
            "cancelledOrders": 1,
            "totalRevenue": 20.0,
        },
    }


async def test_stats_on_empty_store(client):
    data = (await client.get("/orders/stats")).json()["data"]
    assert data["totalOrders"] == 0
    assert data["totalRevenue"] == 0.0


async def test_export_json(client, make_product):
    product = await make_product(stock=10)
    first = (await client.post("/orders", json=_order_payload((product.id, 1)))).json()["data"]
    await client.post("/orders", json=_order_payload((product.id, 1)))
    await client.put(f"/orders/{first['id']}/status", json={"status": "cancelled"})

    everything = (await client.get("/orders/export/json")).json()
    assert everything["success"] is True
    assert everything["count"] == 2

    cancelled = (await client.get("/orders/export/json", params={"status": "cancelled"})).json()
    assert [o["id"] for o in cancelled["data"]] == [first["id"]]

    future = (await client.get("/orders/export/json", params={"startDate": "2999-01-01T00:00:00"})).json()
    assert future["count"] == 0
    past = (await client.get("/orders/export/json", params={"startDate": "2000-01-01T00:00:00"})).json()
    assert past["count"] == 2


async def test_order_total_is_bounded(client, make_product):
    product = await make_product(stock=5)
    resp = await client.post("/orders", json=_order_payload((product.id, 1), shippingCost=10**12))
    assert resp.status_code == 400
    assert resp.json()["success"] is False


async def test_payment_status_database_failure_is_500(client, make_product, session_maker, monkeypatch):
    product = await make_product(stock=5)
    order = (await client.post("/orders", json=_order_payload((product.id, 1)))).json()["data"]

    async def failing_commit(self):
        raise OperationalError("UPDATE orders", {}, Exception("disk I/O error"))

    monkeypatch.setattr(AsyncSession, "commit", failing_commit)
    resp = await client.put(f"/orders/{order['id']}/payment-status", json={"paymentStatus": "paid"})
    monkeypatch.undo()

    assert resp.status_code == 500
    assert resp.json()["message"] == "Error updating payment status"
    async with session_maker() as s:
        assert (await s.get(Order, uuid.UUID(order["id"]))).payment_status == "pending"
