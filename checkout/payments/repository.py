from typing import Any, Dict

from checkout.infra.api_client import BackendClient

async def generate_link(api: BackendClient, payload: Dict[str, Any]) -> Any:
    return await api.post("/api/payment/generate-link", payload, operation="Payment link")
