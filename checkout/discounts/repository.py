from typing import Any

from checkout.infra.api_client import BackendClient

async def apply_coupon(api: BackendClient, order_id: Any, code: str) -> Any:
    return await api.post(f"/api/orders/{order_id}/coupons", {"code": code}, operation="Discount code")
