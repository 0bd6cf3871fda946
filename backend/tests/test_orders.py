"""
Tests for the order endpoints.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from core.cache import MISSING, ORDERS_LIST_KEY, order_detail_key
from db.database import async_session_maker
from db.order import OrderItem
from schemas.inventory import MAX_QUANTITY
from test_inventory import create_item


def order_payload(customer, lines, order_date=None):
    body = {
        "customer_name": customer,
        "items": [{"inventory_item_id": i, "quantity_ordered": q} for i, q in lines],
    }
    if order_date:
        body["order_date"] = order_date
    return body


async def count_order_lines(order_id=None) -> int:
    stmt = select(func.count()).select_from(OrderItem)
    if order_id is not None:
        stmt = stmt.where(OrderItem.order_id == order_id)
    async with async_session_maker() as db:
        return int(await db.scalar(stmt))


@pytest.mark.asyncio
async def test_create_get_delete_order_roundtrip(client, manager_headers):
    item = await create_item(client, manager_headers, name="Crowbar", quantity=100, location="Warehouse 1")

    resp = await client.post("/api/orders", json=order_payload("Han Solo", [(item["id"], 3)]), headers=manager_headers)
    assert resp.status_code == 201
    order_id = resp.json()["id"]
    assert resp.headers["location"] == f"/api/orders/{order_id}"

    resp = await client.get(f"/api/orders/{order_id}", headers=manager_headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["customer_name"] == "Han Solo"
    assert len(data["items"]) == 1
    assert data["items"][0]["quantity_ordered"] == 3
    assert data["items"][0]["inventory_item_name"] == "Crowbar"
    assert data["items"][0]["location"] == "Warehouse 1"
    assert data["item_count"] == 1
    assert data["total_quantity"] == 3
    assert data["summary"].startswith(f"Order #{order_id} for Han Solo on ")

    resp = await client.delete(f"/api/orders/{order_id}", headers=manager_headers)
    assert resp.status_code == 204

    resp = await client.get(f"/api/orders/{order_id}", headers=manager_headers)
    assert resp.status_code == 404
    assert resp.content == b""


@pytest.mark.asyncio
async def test_create_lists_every_missing_inventory_id(client, manager_headers):
    item = await create_item(client, manager_headers)

    resp = await client.post(
        "/api/orders",
        json=order_payload("Han Solo", [(item["id"], 1), (9998, 1), (9999, 2), (9998, 5)]),
        headers=manager_headers,
    )
    assert resp.status_code == 400
    assert resp.json()["detail"]["missing_inventory_item_ids"] == [9998, 9999]
    assert await count_order_lines() == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"customer_name": "", "items": []},
        {"customer_name": "   ", "items": []},
        {"customer_name": "Han Solo"},
        {"customer_name": "Han Solo", "items": [{"inventory_item_id": 1, "quantity_ordered": 0}]},
    ],
)
async def test_create_validation(client, manager_headers, payload):
    resp = await client.post("/api/orders", json=payload, headers=manager_headers)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_employee_can_create_but_not_modify(client, manager_headers, employee_headers):
    item = await create_item(client, manager_headers)
    resp = await client.post("/api/orders", json=order_payload("Luke", [(item["id"], 1)]), headers=employee_headers)
    assert resp.status_code == 201
    order_id = resp.json()["id"]

    resp = await client.put(
        f"/api/orders/{order_id}", json=order_payload("Luke", [(item["id"], 2)]), headers=employee_headers
    )
    assert resp.status_code == 403
    assert (await client.delete(f"/api/orders/{order_id}", headers=employee_headers)).status_code == 403


@pytest.mark.asyncio
async def test_customer_reads_only(client, manager_headers, customer_headers):
    item = await create_item(client, manager_headers)
    resp = await client.post("/api/orders", json=order_payload("Rey", [(item["id"], 1)]), headers=customer_headers)
    assert resp.status_code == 403

    assert (await client.get("/api/orders", headers=customer_headers)).status_code == 200


@pytest.mark.asyncio
async def test_list_ordered_by_date_descending(client, manager_headers):
    item = await create_item(client, manager_headers)
    for customer, day in (("Jan", "2024-01-15T10:00:00Z"), ("Mar", "2024-03-15T10:00:00Z"), ("Feb", "2024-02-15T10:00:00Z")):
        resp = await client.post(
            "/api/orders", json=order_payload(customer, [(item["id"], 1)], order_date=day), headers=manager_headers
        )
        assert resp.status_code == 201

    resp = await client.get("/api/orders", headers=manager_headers)
    assert [o["customer_name"] for o in resp.json()] == ["Mar", "Feb", "Jan"]


@pytest.mark.asyncio
async def test_list_includes_lines_and_totals(client, manager_headers):
    crowbar = await create_item(client, manager_headers, name="Crowbar")
    jack = await create_item(client, manager_headers, name="Pallet Jack", location="Warehouse A")
    await client.post(
        "/api/orders", json=order_payload("Han Solo", [(crowbar["id"], 2), (jack["id"], 4)]), headers=manager_headers
    )

    (order,) = (await client.get("/api/orders", headers=manager_headers)).json()
    assert order["item_count"] == 2
    assert order["total_quantity"] == 6
    assert {i["inventory_item_name"] for i in order["items"]} == {"Crowbar", "Pallet Jack"}


@pytest.mark.asyncio
async def test_update_replaces_all_lines(client, manager_headers):
    crowbar = await create_item(client, manager_headers, name="Crowbar")
    jack = await create_item(client, manager_headers, name="Pallet Jack")
    resp = await client.post(
        "/api/orders", json=order_payload("Han Solo", [(crowbar["id"], 2), (jack["id"], 4)]), headers=manager_headers
    )
    order_id = resp.json()["id"]
    await client.get(f"/api/orders/{order_id}", headers=manager_headers)

    resp = await client.put(
        f"/api/orders/{order_id}", json=order_payload("Leia Organa", [(jack["id"], 7)]), headers=manager_headers
    )
    assert resp.status_code == 200
    assert resp.json()["customer_name"] == "Leia Organa"

    data = (await client.get(f"/api/orders/{order_id}", headers=manager_headers)).json()
    assert data["customer_name"] == "Leia Organa"
    assert [(i["inventory_item_name"], i["quantity_ordered"]) for i in data["items"]] == [("Pallet Jack", 7)]
    assert await count_order_lines(order_id) == 1


@pytest.mark.asyncio
async def test_update_rejects_missing_ids_and_keeps_lines(client, manager_headers):
    item = await create_item(client, manager_headers)
    order_id = (
        await client.post("/api/orders", json=order_payload("Han Solo", [(item["id"], 2)]), headers=manager_headers)
    ).json()["id"]

    resp = await client.put(
        f"/api/orders/{order_id}", json=order_payload("Han Solo", [(4242, 1)]), headers=manager_headers
    )
    assert resp.status_code == 400
    assert resp.json()["detail"]["missing_inventory_item_ids"] == [4242]
    assert await count_order_lines(order_id) == 1


@pytest.mark.asyncio
async def test_update_unknown_order(client, manager_headers):
    item = await create_item(client, manager_headers)
    resp = await client.put("/api/orders/777", json=order_payload("Han", [(item["id"], 1)]), headers=manager_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_delete_cascades_lines(client, manager_headers):
    crowbar = await create_item(client, manager_headers, name="Crowbar")
    jack = await create_item(client, manager_headers, name="Pallet Jack")
    order_id = (
        await client.post(
            "/api/orders", json=order_payload("Han Solo", [(crowbar["id"], 1), (jack["id"], 1)]), headers=manager_headers
        )
    ).json()["id"]
    assert await count_order_lines(order_id) == 2

    assert (await client.delete(f"/api/orders/{order_id}", headers=manager_headers)).status_code == 204
    assert await count_order_lines() == 0


@pytest.mark.asyncio
async def test_writes_invalidate_order_cache(client, cache, manager_headers):
    item = await create_item(client, manager_headers)
    assert (await client.get("/api/orders", headers=manager_headers)).json() == []
    assert cache.get(ORDERS_LIST_KEY) == []

    order_id = (
        await client.post("/api/orders", json=order_payload("Han Solo", [(item["id"], 1)]), headers=manager_headers)
    ).json()["id"]
    assert len((await client.get("/api/orders", headers=manager_headers)).json()) == 1

    await client.get(f"/api/orders/{order_id}", headers=manager_headers)
    assert cache.get(order_detail_key(order_id)) is not None

    await client.delete(f"/api/orders/{order_id}", headers=manager_headers)
    assert (await client.get("/api/orders", headers=manager_headers)).json() == []


@pytest.mark.asyncio
async def test_order_dates_are_normalized_to_utc(client, manager_headers):
    item = await create_item(client, manager_headers)
    # 21:00Z on the 15th, written with a +05:00 offset
    early = await client.post(
        "/api/orders",
        json=order_payload("Early", [(item["id"], 1)], order_date="2024-01-16T02:00:00+05:00"),
        headers=manager_headers,
    )
    late = await client.post(
        "/api/orders",
        json=order_payload("Late", [(item["id"], 1)], order_date="2024-01-15T23:00:00Z"),
        headers=manager_headers,
    )
    assert early.status_code == 201 and late.status_code == 201

    resp = await client.get("/api/orders", headers=manager_headers)
    orders = resp.json()
    assert [o["customer_name"] for o in orders] == ["Late", "Early"]

    early_date = datetime.fromisoformat(orders[1]["order_date"].replace("Z", "+00:00"))
    assert early_date == datetime(2024, 1, 15, 21, 0, tzinfo=timezone.utc)
    assert early_date.utcoffset() == timedelta(0)
    assert " on 2024-01-15 " in orders[1]["summary"]


@pytest.mark.asyncio
async def test_naive_order_date_is_taken_as_utc(client, manager_headers):
    item = await create_item(client, manager_headers)
    resp = await client.post(
        "/api/orders",
        json=order_payload("Naive", [(item["id"], 1)], order_date="2024-01-15T10:00:00"),
        headers=manager_headers,
    )
    assert resp.status_code == 201
    order_date = datetime.fromisoformat(resp.json()["order_date"].replace("Z", "+00:00"))
    assert order_date == datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_quantity_ordered_above_bound_is_rejected(client, manager_headers):
    item = await create_item(client, manager_headers)
    resp = await client.post(
        "/api/orders", json=order_payload("Big", [(item["id"], 2**70)]), headers=manager_headers
    )
    assert resp.status_code == 400

    resp = await client.post(
        "/api/orders", json=order_payload("Max", [(item["id"], MAX_QUANTITY)]), headers=manager_headers
    )
    assert resp.status_code == 201


@pytest.mark.asyncio
async def test_order_not_found_is_cached_and_cleared_by_create(client, cache, manager_headers):
    item = await create_item(client, manager_headers)
    assert (await client.get("/api/orders/1", headers=manager_headers)).status_code == 404
    assert cache.get(order_detail_key(1)) is None

    resp = await client.post("/api/orders", json=order_payload("Han Solo", [(item["id"], 2)]), headers=manager_headers)
    assert resp.json()["id"] == 1
    assert cache.get(order_detail_key(1)) is MISSING

    resp = await client.get("/api/orders/1", headers=manager_headers)
    assert resp.status_code == 200
    assert resp.json()["customer_name"] == "Han Solo"
