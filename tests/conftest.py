import asyncio
import json
import re
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient

from checkout.app_setup.factory import create_app
from checkout.infra.api_client import set_http_client
from checkout.infra.session_storage import InMemorySessionStorage
from checkout.session import CheckoutSession

# 10 jours restants sur un mois de 30 jours
TODAY = date(2026, 11, 21)

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)
        elif "tests/functional/" in nodeid:
            item.add_marker(pytest.mark.functional)


def _money(amount: int) -> Dict[str, Any]:
    return {"amount": amount, "currency": "DKK"}


class FakeBackend:
    """
    API backend simulée pour httpx.MockTransport.
    - Commandes, lignes, coupons, lien de paiement et auth gardés en mémoire
    - overrides[(méthode, chemin)] = (status, corps) force une réponse
    - subscription_pricer(payload, tentative) => (prix en øre, date de début ISO)
    """

    def __init__(self):
        self.calls: List[Tuple[str, str, Any]] = []
        self.headers: List[Dict[str, str]] = []
        self.orders: Dict[int, Dict[str, Any]] = {}
        self.next_order_id = 9001
        self.next_customer_id = 1001
        self.next_item_id = 1
        self.create_delay = 0.0
        self.subscription_products = [
            {"id": 134, "name": "Medlemskab", "priceWithInterval": {"price": _money(46900), "interval": {"unit": "MONTH"}}},
            {"id": 135, "name": "Medlemskab Plus", "priceWithInterval": {"price": _money(50000), "interval": {"unit": "MONTH"}}},
        ]
        self.value_card_products = [{"id": 12, "name": "10 klip", "price": _money(120000)}]
        self.subscription_pricer: Callable[[Dict[str, Any], int], Tuple[int, str]] = (
            lambda payload, attempt: (10000, str(payload["startDate"])[:10])
        )
        self.subscription_attempts = 0
        # numéro de tentative d'ajout d'abonnement => (status, corps) renvoyés à la place
        self.subscription_failures: Dict[int, Tuple[int, Any]] = {}
        # code => (montant brut renvoyé, réduction réelle en øre)
        self.coupons: Dict[str, Tuple[Any, int]] = {"SUMMER50": (2500, 2500)}
        self.coupon_errors: Dict[str, Tuple[int, Any]] = {}
        self.overrides: Dict[Tuple[str, str], Tuple[int, Any]] = {}
        self.paid: set = set()
        self.pay_on_finalize = False
        self.payment_url = "https://pay.example.test/session/abc"

    def calls_to(self, method: str, pattern: str) -> List[Tuple[str, str, Any]]:
        return [c for c in self.calls if c[0] == method and re.fullmatch(pattern, c[1])]

    def add_order(self, order_id: int, **fields) -> Dict[str, Any]:
        order = {
            "id": order_id,
            "customer": fields.pop("customer", 1001),
            "businessUnit": fields.pop("businessUnit", 5),
            "subscriptionItems": [],
            "valueCardItems": [],
            "articleItems": [],
            "preliminary": False,
            "couponCode": None,
            "couponDiscount": 0,
            "basePrice": 0,
        }
        order.update(fields)
        self.orders[order_id] = order
        return order

    def order_json(self, order_id: int) -> Dict[str, Any]:
        o = self.orders[order_id]
        subtotal = o["basePrice"]
        subtotal += sum(i["price"]["amount"] for i in o["subscriptionItems"])
        subtotal += sum(i["totalPrice"]["amount"] for i in o["valueCardItems"])
        subtotal += sum(i["price"]["amount"] for i in o["articleItems"])
        price = max(subtotal - o["couponDiscount"], 0)
        paid = order_id in self.paid
        data = {
            "id": order_id,
            "number": f"B-{order_id}",
            "customer": {"id": o["customer"]},
            "businessUnit": {"id": o["businessUnit"]},
            "subscriptionItems": list(o["subscriptionItems"]),
            "valueCardItems": list(o["valueCardItems"]),
            "articleItems": list(o["articleItems"]),
            "subtotal": _money(subtotal),
            "price": _money(price),
            "preliminary": o["preliminary"],
            "leftToPay": _money(0 if paid else price),
            "orderStatus": {"id": 2, "name": "Betalet"} if paid else {"id": 1, "name": "Oprettet"},
        }
        if o["couponCode"]:
            data["couponCode"] = o["couponCode"]
            data["couponDiscount"] = _money(o["couponDiscount"])
        return data

    async def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path
        body = json.loads(request.content) if request.content else None
        self.calls.append((method, path, body))
        self.headers.append(dict(request.headers))

        override = self.overrides.get((method, path))
        if override is not None:
            status, payload = override
            return httpx.Response(status, json=payload)

        if method == "POST" and path == "/api/customers":
            customer_id = self.next_customer_id
            self.next_customer_id += 1
            return httpx.Response(201, json={"success": True, "data": {"id": customer_id, **(body or {}).get("customer", {})}})

        if method == "POST" and path == "/api/orders":
            if self.create_delay:
                await asyncio.sleep(self.create_delay)
            order_id = self.next_order_id
            self.next_order_id += 1
            self.add_order(order_id, customer=body["customer"], businessUnit=body["businessUnit"])
            return httpx.Response(201, json={"data": self.order_json(order_id)})

        m = re.fullmatch(r"/api/orders/(\d+)", path)
        if m:
            order_id = int(m.group(1))
            if order_id not in self.orders:
                return httpx.Response(404, json={"error": "Order not found"})
            if method == "PUT":
                self.orders[order_id].update(body or {})
                if self.pay_on_finalize and body and body.get("preliminary") is False:
                    self.paid.add(order_id)
            return httpx.Response(200, json={"data": self.order_json(order_id)})

        m = re.fullmatch(r"/api/orders/(\d+)/items/subscriptions", path)
        if m and method == "POST":
            order = self.orders[int(m.group(1))]
            self.subscription_attempts += 1
            failure = self.subscription_failures.get(self.subscription_attempts)
            if failure is not None:
                return httpx.Response(failure[0], json=failure[1])
            price, start = self.subscription_pricer(body, self.subscription_attempts)
            item = {
                "id": self.next_item_id,
                "subscriptionProduct": {"id": body["subscriptionProduct"]},
                "startDate": start,
                "initialPaymentPeriod": {"start": start, "end": start},
                "price": _money(price),
            }
            self.next_item_id += 1
            order["subscriptionItems"].append(item)
            return httpx.Response(201, json={"data": item})

        m = re.fullmatch(r"/api/orders/(\d+)/items/subscriptions/(\d+)", path)
        if m and method == "DELETE":
            order = self.orders[int(m.group(1))]
            item_id = int(m.group(2))
            before = len(order["subscriptionItems"])
            order["subscriptionItems"] = [i for i in order["subscriptionItems"] if i["id"] != item_id]
            if len(order["subscriptionItems"]) == before:
                return httpx.Response(404, json={"error": "Item not found"})
            return httpx.Response(204)

        m = re.fullmatch(r"/api/orders/(\d+)/items/valuecards", path)
        if m and method == "POST":
            product = next((p for p in self.value_card_products if str(p["id"]) == str(body["productId"])), None)
            if product is None:
                return httpx.Response(404, json={"error": "Value card product not found"})
            item = {
                "id": self.next_item_id,
                "valueCardProduct": {"id": product["id"]},
                "quantity": body["quantity"],
                "totalPrice": _money(product["price"]["amount"] * body["quantity"]),
            }
            self.next_item_id += 1
            self.orders[int(m.group(1))]["valueCardItems"].append(item)
            return httpx.Response(201, json={"data": item})

        m = re.fullmatch(r"/api/orders/(\d+)/items/articles", path)
        if m and method == "POST":
            item = {"id": self.next_item_id, "articleProduct": {"id": body["productId"]}, "price": _money(5000)}
            self.next_item_id += 1
            self.orders[int(m.group(1))]["articleItems"].append(item)
            return httpx.Response(201, json={"data": item})

        m = re.fullmatch(r"/api/orders/(\d+)/coupons", path)
        if m and method == "POST":
            code = body["code"]
            if code in self.coupon_errors:
                status, payload = self.coupon_errors[code]
                return httpx.Response(status, json=payload)
            if code not in self.coupons:
                return httpx.Response(404, json={"error": "Coupon not found"})
            raw, effect = self.coupons[code]
            order = self.orders[int(m.group(1))]
            order["couponCode"] = code
            order["couponDiscount"] = effect
            return httpx.Response(200, json={"success": True, "discount": {"amount": raw}})

        if method == "POST" and path == "/api/payment/generate-link":
            return httpx.Response(200, json={"data": {"url": self.payment_url}})

        if method == "GET" and path == "/api/products/subscriptions":
            return httpx.Response(200, json=self.subscription_products)
        if method == "GET" and path == "/api/products/valuecards":
            return httpx.Response(200, json={"data": self.value_card_products})

        if method == "POST" and path == "/api/auth/login":
            if body.get("password") != "secret":
                return httpx.Response(401, json={"error": "Invalid credentials"})
            return httpx.Response(
                200,
                json={"data": {"accessToken": "at-1", "refreshToken": "rt-1", "expiresIn": 3600, "username": body["username"]}},
            )
        if method == "POST" and path == "/api/auth/refresh":
            return httpx.Response(200, json={"data": {"accessToken": "at-2", "expiresIn": 3600}})
        if method == "GET" and path == "/api/auth/validate":
            return httpx.Response(200, json={"valid": True})

        return httpx.Response(404, json={"error": f"No route for {method} {path}"})


class FakeSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()

@pytest.fixture
def http_client(backend) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(backend.handler), base_url="https://api.test")

@pytest.fixture
def sleeper() -> FakeSleep:
    return FakeSleep()

@pytest.fixture
def storage() -> InMemorySessionStorage:
    return InMemorySessionStorage()

@pytest.fixture
def make_session(http_client, storage, sleeper):
    def _make(session_id: str = "s1", today: date = TODAY, clock: Optional[Callable[[], int]] = None) -> CheckoutSession:
        return CheckoutSession(session_id, storage, http_client, today=lambda: today, sleep=sleeper, clock=clock)
    return _make

@pytest.fixture
def session(make_session) -> CheckoutSession:
    return make_session()

@pytest.fixture
def ready_session(session) -> CheckoutSession:
    """Client 1001, salle 5: prérequis de création de commande réunis."""
    session.customer_id = 1001
    session.selected_business_unit = 5
    session.customer_email = "jane+gym@example.com"
    return session

@pytest.fixture
def app(monkeypatch, http_client):
    monkeypatch.setenv("USE_FAKE_REDIS_FOR_TESTS", "1")
    set_http_client(http_client)
    application = create_app()
    yield application
    set_http_client(None)

@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
