"""
Accès aux commandes du backend (/api/orders/*).
"""
from typing import Any, Dict

from checkout.infra.api_client import BackendClient

# module checkout.orders.repository
async def create_order(api: BackendClient, customer_id: Any, business_unit: Any) -> Any:
    return await api.post(
        "/api/orders",
        {"customer": int(customer_id), "businessUnit": business_unit},
        operation="Order creation",
    )

async def get_order(api: BackendClient, order_id: Any) -> Any:
    return await api.get(f"/api/orders/{order_id}", operation="Order")

async def update_order(api: BackendClient, order_id: Any, data: Dict[str, Any]) -> Any:
    return await api.put(f"/api/orders/{order_id}", data, operation="Order update")

async def add_subscription_item(api: BackendClient, order_id: Any, payload: Dict[str, Any]) -> Any:
    return await api.post(f"/api/orders/{order_id}/items/subscriptions", payload, operation="Add subscription item")

async def delete_subscription_item(api: BackendClient, order_id: Any, item_id: Any) -> Any:
    return await api.delete(f"/api/orders/{order_id}/items/subscriptions/{item_id}", operation="Delete subscription item")

async def add_value_card_item(api: BackendClient, order_id: Any, product_id: Any, quantity: int, business_unit: Any) -> Any:
    return await api.post(
        f"/api/orders/{order_id}/items/valuecards",
        {"productId": product_id, "quantity": int(quantity), "businessUnit": business_unit},
        operation="Add value card item",
    )

async def add_article_item(api: BackendClient, order_id: Any, product_id: Any, business_unit: Any) -> Any:
    return await api.post(
        f"/api/orders/{order_id}/items/articles",
        {"productId": product_id, "businessUnit": business_unit},
        operation="Add article item",
    )
