# module checkout.payments.methods
from typing import Any, Dict

DEFAULT_PAYMENT_METHOD_ID = 32

PAYMENT_METHOD_IDS: Dict[str, int] = {
    "card": 32,
    "creditcard": 32,
    "credit_card": 32,
    "debit": 2,
    "mobilepay": 3,
    "mobile_pay": 3,
}

def resolve_payment_method_id(method: Any) -> int:
    """Nom symbolique => id numérique de la passerelle; inconnu => carte (32)."""
    if isinstance(method, int) and not isinstance(method, bool):
        return method
    return PAYMENT_METHOD_IDS.get(str(method or "").strip().lower(), DEFAULT_PAYMENT_METHOD_ID)
