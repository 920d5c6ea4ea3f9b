from typing import Any, Dict

from checkout.infra.api_client import BackendClient

async def create_customer(api: BackendClient, customer: Dict[str, Any]) -> Any:
    """Le backend attend les données client sous la clé `customer` (erreurs: customer.email, ...)."""
    return await api.post("/api/customers", {"customer": customer}, authenticated=False, operation="Customer creation")
