import asyncio

import pytest

from checkout.catalog.service import load_catalog
from checkout.errors import BackendAPIError, ProductNotAllowedError
from checkout.session import AttachmentState
from checkout.subscriptions.service import ensure_subscription_attached, select_membership_plan

SUBS = r"/api/orders/9001/items/subscriptions"
DELETES = r"/api/orders/9001/items/subscriptions/\d+"

def _ignores_start_once(payload, attempt):
    # Défaut backend: la date de début est ignorée au premier ajout
    if attempt == 1:
        return 46900, "2026-12-01"
    return 15633, "2026-11-21"

async def _membership(session, plan="membership-134"):
    session.membership_plan_id = plan
    session.catalog = await load_catalog(session.api, 5)
    return session

@pytest.mark.asyncio
async def test_repair_restores_prorated_price(ready_session, backend, sleeper):
    await _membership(ready_session)
    backend.subscription_pricer = _ignores_start_once

    assert await ensure_subscription_attached(ready_session, "test") == 9001

    assert ready_session.attachment_state == AttachmentState.REPAIR_FIXED
    assert abs(ready_session.order.price - 15633) <= 100
    assert ready_session.pricing_diagnostic is None
    assert len(backend.calls_to("DELETE", DELETES)) == 1
    assert sleeper.delays == [1.0]
    first_attach = backend.calls_to("POST", SUBS)[0][2]
    assert first_attach == {"subscriptionProduct": 134, "businessUnit": 5, "startDate": "2026-11-21", "subscriber": 1001}

@pytest.mark.asyncio
async def test_correct_attachment_is_not_repaired_and_not_repeated(ready_session, backend, sleeper):
    await _membership(ready_session)
    backend.subscription_pricer = lambda payload, attempt: (15633, "2026-11-21")

    assert await ensure_subscription_attached(ready_session) == 9001
    assert await ensure_subscription_attached(ready_session) == 9001

    assert ready_session.attachment_state == AttachmentState.ATTACHED_CORRECT
    assert len(backend.calls_to("POST", SUBS)) == 1
    assert backend.calls_to("DELETE", DELETES) == []
    assert sleeper.delays == []

@pytest.mark.asyncio
async def test_ignored_start_within_tolerance_is_accepted(ready_session, backend):
    await _membership(ready_session)
    backend.subscription_pricer = lambda payload, attempt: (15700, "2026-12-01")

    await ensure_subscription_attached(ready_session)
    assert ready_session.attachment_state == AttachmentState.ATTACHED_MISMATCH
    assert backend.calls_to("DELETE", DELETES) == []

@pytest.mark.asyncio
async def test_repair_gives_up_after_four_strategies(ready_session, backend, sleeper):
    await _membership(ready_session)
    ready_session.birth_date = "1990-05-17"
    backend.subscription_pricer = lambda payload, attempt: (46900, "2026-12-01")

    assert await ensure_subscription_attached(ready_session) == 9001

    assert ready_session.attachment_state == AttachmentState.REPAIR_FAILED
    diag = ready_session.pricing_diagnostic.to_dict()
    assert diag == {"order_id": 9001, "product_id": "membership-134", "expected": 15633, "actual": 46900, "attempts": 4}
    assert sleeper.delays == [1.0, 2.0, 2.0, 5.0]
    posts = [c[2] for c in backend.calls_to("POST", SUBS)]
    assert len(posts) == 5
    assert posts[1]["startDate"] == "2026-11-21"
    assert posts[2]["startDate"] == "2026-11-21T00:00:00"
    assert set(posts[3]) == {"subscriptionProduct", "businessUnit", "startDate"}
    assert posts[4]["birthDate"] == "1990-05-17"
    # La commande garde son dernier état: une seule ligne d'abonnement
    assert len(backend.orders[9001]["subscriptionItems"]) == 1
    assert ready_session.subscription_attached_order_id == 9001

@pytest.mark.asyncio
async def test_forbidden_delete_abandons_strategies(ready_session, backend, sleeper):
    await _membership(ready_session)
    backend.subscription_pricer = lambda payload, attempt: (46900, "2026-12-01")
    backend.overrides[("DELETE", "/api/orders/9001/items/subscriptions/1")] = (403, {"error": "Forbidden"})

    await ensure_subscription_attached(ready_session)

    assert ready_session.attachment_state == AttachmentState.REPAIR_FAILED
    assert len(backend.calls_to("POST", SUBS)) == 1
    assert len(backend.calls_to("DELETE", DELETES)) == 4
    assert sleeper.delays == []

@pytest.mark.asyncio
async def test_product_not_allowed_is_informational(ready_session, backend):
    await _membership(ready_session)
    backend.overrides[("POST", "/api/orders/9001/items/subscriptions")] = (
        403, {"error": "Product not allowed for this customer (campaign)"},
    )
    with pytest.raises(ProductNotAllowedError) as exc:
        await ensure_subscription_attached(ready_session)
    assert exc.value.product_id == "membership-134"
    assert ready_session.attachment_state == AttachmentState.NOT_ATTACHED
    assert ready_session.subscription_attached_order_id is None
    # La commande existe toujours pour un autre produit
    assert ready_session.order_id == 9001

@pytest.mark.asyncio
async def test_value_card_selection_bypasses_attachment(ready_session, backend):
    ready_session.membership_plan_id = "punch-12"
    assert await ensure_subscription_attached(ready_session) is None
    assert backend.calls == []

@pytest.mark.asyncio
async def test_no_plan_returns_none(ready_session, backend):
    assert await ensure_subscription_attached(ready_session) is None
    assert backend.calls == []

@pytest.mark.asyncio
async def test_concurrent_attach_submits_once(ready_session, backend):
    await _membership(ready_session)
    backend.subscription_pricer = lambda payload, attempt: (15633, "2026-11-21")
    backend.create_delay = 0.01

    results = await asyncio.gather(*[ensure_subscription_attached(ready_session, f"c{i}") for i in range(3)])
    assert results == [9001, 9001, 9001]
    assert len(backend.calls_to("POST", "/api/orders")) == 1
    assert len(backend.calls_to("POST", SUBS)) == 1

@pytest.mark.asyncio
async def test_backend_error_during_repair_moves_to_next_strategy(ready_session, backend, sleeper):
    await _membership(ready_session)
    backend.subscription_pricer = _ignores_start_once
    backend.subscription_failures = {2: (500, {"error": "Internal Server Error"})}

    assert await ensure_subscription_attached(ready_session) == 9001

    assert ready_session.attachment_state == AttachmentState.REPAIR_FIXED
    assert ready_session.subscription_attached_order_id == 9001
    # Ligne supprimée par la première stratégie: rien à supprimer avant la seconde
    assert len(backend.calls_to("DELETE", DELETES)) == 1
    assert len(backend.calls_to("POST", SUBS)) == 3
    assert sleeper.delays == [1.0, 2.0]
    items = backend.orders[9001]["subscriptionItems"]
    assert len(items) == 1
    assert items[0]["price"]["amount"] == 15633

@pytest.mark.asyncio
async def test_failed_repairs_leave_membership_on_order(ready_session, backend, sleeper):
    await _membership(ready_session)
    backend.subscription_pricer = lambda payload, attempt: (46900, "2026-12-01")
    backend.subscription_failures = {n: (500, {"error": "Internal Server Error"}) for n in (2, 3, 4, 5)}

    assert await ensure_subscription_attached(ready_session) == 9001

    assert ready_session.attachment_state == AttachmentState.REPAIR_FAILED
    assert ready_session.subscription_attached_order_id == 9001
    diag = ready_session.pricing_diagnostic.to_dict()
    assert diag["attempts"] == 4
    assert diag["actual"] == 46900
    assert len(backend.orders[9001]["subscriptionItems"]) == 1
    # 1 ajout initial, 4 tentatives en erreur, 1 ré-ajout de la ligne
    assert len(backend.calls_to("POST", SUBS)) == 6

@pytest.mark.asyncio
async def test_failed_restore_leaves_attachment_retryable(ready_session, backend):
    await _membership(ready_session)
    backend.subscription_pricer = lambda payload, attempt: (46900, "2026-12-01")
    backend.subscription_failures = {n: (500, {"error": "Internal Server Error"}) for n in (2, 3, 4, 5, 6)}

    with pytest.raises(BackendAPIError):
        await ensure_subscription_attached(ready_session)

    assert ready_session.attachment_state == AttachmentState.NOT_ATTACHED
    assert ready_session.subscription_attached_order_id is None
    assert backend.orders[9001]["subscriptionItems"] == []

    backend.subscription_failures = {}
    backend.subscription_pricer = lambda payload, attempt: (15633, "2026-11-21")
    assert await ensure_subscription_attached(ready_session) == 9001
    assert ready_session.attachment_state == AttachmentState.ATTACHED_CORRECT
    assert len(backend.orders[9001]["subscriptionItems"]) == 1

def _prorated(payload, attempt):
    # 10 jours sur 30: 134 => 469,00 DKK/mois, 135 => 500,00 DKK/mois
    return {134: 15633, 135: 16667}[payload["subscriptionProduct"]], "2026-11-21"

@pytest.mark.asyncio
async def test_plan_change_replaces_attached_subscription(ready_session, backend):
    await _membership(ready_session)
    backend.subscription_pricer = _prorated
    assert await ensure_subscription_attached(ready_session) == 9001

    await select_membership_plan(ready_session, "membership-135")

    assert ready_session.subscription_attached_order_id is None
    assert ready_session.attachment_state == AttachmentState.NOT_ATTACHED
    assert backend.orders[9001]["subscriptionItems"] == []

    assert await ensure_subscription_attached(ready_session) == 9001
    posts = [c[2]["subscriptionProduct"] for c in backend.calls_to("POST", SUBS)]
    assert posts == [134, 135]
    items = backend.orders[9001]["subscriptionItems"]
    assert [i["subscriptionProduct"]["id"] for i in items] == [135]
    assert ready_session.order.price == 16667

@pytest.mark.asyncio
async def test_same_plan_keeps_attachment(ready_session, backend):
    await _membership(ready_session)
    backend.subscription_pricer = _prorated
    await ensure_subscription_attached(ready_session)

    await select_membership_plan(ready_session, "membership-134")

    assert ready_session.subscription_attached_order_id == 9001
    assert backend.calls_to("DELETE", DELETES) == []

@pytest.mark.asyncio
async def test_plan_change_with_forbidden_delete_starts_new_order(ready_session, backend):
    await _membership(ready_session)
    backend.subscription_pricer = _prorated
    await ensure_subscription_attached(ready_session)
    backend.overrides[("DELETE", "/api/orders/9001/items/subscriptions/1")] = (403, {"error": "Forbidden"})

    await select_membership_plan(ready_session, "membership-135")

    assert ready_session.order_id is None
    assert await ensure_subscription_attached(ready_session) == 9002
    assert [i["subscriptionProduct"]["id"] for i in backend.orders[9002]["subscriptionItems"]] == [135]

@pytest.mark.asyncio
async def test_punch_card_plan_becomes_value_card_selection(ready_session, backend):
    await _membership(ready_session)
    backend.subscription_pricer = _prorated
    await ensure_subscription_attached(ready_session)

    await select_membership_plan(ready_session, "punch-12")

    assert ready_session.membership_plan_id is None
    assert ready_session.value_card_quantities == {"punch-12": 1}
    assert ready_session.is_value_card_only
    assert backend.orders[9001]["subscriptionItems"] == []
