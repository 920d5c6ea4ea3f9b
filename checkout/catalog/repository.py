"""
Accès aux produits du backend (/api/products/*).
"""
import logging
from typing import Any, Dict, List, Optional

from checkout.infra.api_client import BackendClient

logger = logging.getLogger(__name__)

def _as_list(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("data", "items", "products"):
            if isinstance(payload.get(key), list):
                return payload[key]
    return []

async def fetch_subscriptions(api: BackendClient, business_unit: Optional[Any] = None) -> List[Dict[str, Any]]:
    params = {"businessUnit": business_unit} if business_unit else None
    payload = await api.get("/api/products/subscriptions", params=params, authenticated=False, operation="Subscriptions")
    return _as_list(payload)

async def fetch_value_cards(api: BackendClient) -> List[Dict[str, Any]]:
    payload = await api.get("/api/products/valuecards", authenticated=False, operation="Value cards")
    return _as_list(payload)
