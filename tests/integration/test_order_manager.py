import asyncio

import pytest

from checkout.customers.service import ensure_customer
from checkout.infra.session_storage import CUSTOMER_KEY, ORDER_KEY
from checkout.orders.service import (
    add_articles,
    add_value_cards,
    ensure_order_created,
    on_page_load,
)

@pytest.mark.asyncio
async def test_concurrent_requests_create_exactly_one_order(ready_session, backend):
    backend.create_delay = 0.02
    ids = await asyncio.gather(*[ensure_order_created(ready_session, f"caller-{i}") for i in range(5)])
    assert ids == [9001] * 5
    creates = backend.calls_to("POST", "/api/orders")
    assert len(creates) == 1
    assert creates[0][2] == {"customer": 1001, "businessUnit": 5}

@pytest.mark.asyncio
async def test_existing_order_is_reused(ready_session, backend):
    assert await ensure_order_created(ready_session) == 9001
    assert await ensure_order_created(ready_session) == 9001
    assert len(backend.calls_to("POST", "/api/orders")) == 1

@pytest.mark.asyncio
async def test_missing_prerequisites_return_none_without_network(session, backend):
    assert await ensure_order_created(session) is None
    session.customer_id = 1001
    assert await ensure_order_created(session) is None
    assert backend.calls == []

@pytest.mark.asyncio
async def test_concurrent_customer_creation_is_single_flight(session, backend, storage):
    session.selected_business_unit = 5
    data = {"email": "jane@example.com", "firstName": "Jane", "lastName": "Doe"}
    ids = await asyncio.gather(ensure_customer(session, data), ensure_customer(session, data))
    assert ids == [1001, 1001]
    posts = backend.calls_to("POST", "/api/customers")
    assert len(posts) == 1
    assert posts[0][2]["customer"]["businessUnit"] == 5
    assert (await storage.get_json("s1", CUSTOMER_KEY))["id"] == 1001

@pytest.mark.asyncio
async def test_snapshot_restored_on_payment_return(make_session, backend, storage):
    first = make_session("s1")
    first.selected_business_unit = 5
    first.membership_plan_id = "membership-134"
    await ensure_customer(first, {"email": "jane@example.com", "firstName": "Jane", "lastName": "Doe"})
    await ensure_order_created(first)
    assert (await storage.get_json("s1", ORDER_KEY))["orderId"] == 9001

    # Même session après la redirection vers le prestataire (nouveau contexte)
    back = make_session("s1")
    snapshot = await on_page_load(back, is_payment_return=True)
    assert snapshot["orderId"] == 9001
    assert back.order_id == 9001
    assert back.customer_id == 1001
    assert back.membership_plan_id == "membership-134"
    assert back.selected_business_unit == 5

@pytest.mark.asyncio
async def test_plain_reload_clears_order_state(ready_session, storage):
    await ensure_order_created(ready_session)
    assert await on_page_load(ready_session, is_payment_return=False) is None
    assert ready_session.order_id is None
    assert await storage.get_json("s1", ORDER_KEY) is None

@pytest.mark.asyncio
async def test_value_cards_and_articles_added_once(ready_session, backend):
    ready_session.value_card_quantities = {"punch-12": 2, "13": 0}
    ready_session.addon_ids = {"7"}
    await ensure_order_created(ready_session)

    assert await add_value_cards(ready_session) == 1
    assert await add_value_cards(ready_session) == 0
    assert await add_articles(ready_session) == 1
    assert await add_articles(ready_session) == 0

    posts = backend.calls_to("POST", "/api/orders/9001/items/valuecards")
    assert posts == [("POST", "/api/orders/9001/items/valuecards", {"productId": 12, "quantity": 2, "businessUnit": 5})]
    assert backend.orders[9001]["articleItems"][0]["articleProduct"] == {"id": 7}

@pytest.mark.asyncio
async def test_value_card_failure_is_not_fatal(ready_session, backend):
    ready_session.value_card_quantities = {"12": 1}
    await ensure_order_created(ready_session)
    backend.overrides[("POST", "/api/orders/9001/items/valuecards")] = (400, {"error": "Invalid product"})
    assert await add_value_cards(ready_session) == 0
    assert ready_session.value_cards_added_order_id is None
