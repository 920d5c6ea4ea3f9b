"""
Taxonomie d'erreurs du checkout.
- CheckoutError: base commune, porte un status_code HTTP et un `kind` stable pour le front.
- BackendAPIError: réponse non-2xx de l'API backend (status, texte brut, payload JSON éventuel).
- Les prérequis manquants (client, salle) ne sont PAS des erreurs: les opérations renvoient None.
"""
from typing import Any, Dict, Optional


class CheckoutError(Exception):
    kind = "checkout_error"
    status_code = 400

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "kind": self.kind}


class BackendAPIError(CheckoutError):
    """Réponse non-2xx renvoyée par l'API backend."""
    kind = "backend_error"

    def __init__(self, status: int, body: str = "", payload: Any = None, *, operation: str = "request"):
        super().__init__(f"{operation} failed: {status} - {body}", status_code=502)
        self.status = status
        self.body = body or ""
        self.payload = payload
        self.operation = operation

    @property
    def is_unauthorized_or_not_found(self) -> bool:
        return self.status in (401, 403, 404)


class UnexpectedResponseShapeError(CheckoutError):
    kind = "unexpected_response"
    status_code = 502


class AuthenticationError(CheckoutError):
    kind = "authentication_failed"
    status_code = 401


class RateLimitedError(CheckoutError):
    kind = "rate_limited"
    status_code = 429

    def __init__(self, operation: str, retry_after_ms: int, message: Optional[str] = None):
        self.operation = operation
        self.retry_after_ms = max(int(retry_after_ms), 0)
        super().__init__(message or f"Too many {operation} attempts. {format_wait(self.retry_after_ms)}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["retry_after_ms"] = self.retry_after_ms
        return data


class ProductNotAllowedError(CheckoutError):
    """Restriction campagne/éligibilité: informatif, bloque uniquement ce produit."""
    kind = "product_not_allowed"
    status_code = 409

    def __init__(self, product_id: Any, message: Optional[str] = None):
        self.product_id = product_id
        super().__init__(message or f"Product {product_id} is not available for this customer.")


class PricingMismatchError(CheckoutError):
    kind = "pricing_mismatch"
    status_code = 409

    def __init__(self, expected: Optional[int], actual: Optional[int], product_id: Any = None, business_unit: Any = None):
        self.expected = expected
        self.actual = actual
        self.product_id = product_id
        self.business_unit = business_unit
        super().__init__(
            "The price on your order could not be confirmed yet. "
            "Please try again in a moment or contact support."
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"expected": self.expected, "actual": self.actual, "product_id": self.product_id})
        return data


class CouponError(CheckoutError):
    kind = "coupon_error"
    status_code = 422

    MESSAGES = {
        "not_applicable": "This discount code cannot be used with your selection.",
        "not_found": "This discount code does not exist.",
        "expired": "This discount code has expired.",
        "already_used": "This discount code has already been used.",
        "forbidden": "You are not allowed to use this discount code.",
        "malformed": "The discount code is not valid.",
    }

    def __init__(self, reason: str, code: str = ""):
        self.reason = reason if reason in self.MESSAGES else "malformed"
        self.code = code
        super().__init__(self.MESSAGES[self.reason])

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["reason"] = self.reason
        return data


class PaymentLinkUnavailableError(CheckoutError):
    """Seule condition fatale: aucun lien de paiement exploitable."""
    kind = "payment_link_unavailable"
    status_code = 502


def format_wait(ms: int) -> str:
    """Texte lisible pour un délai d'attente (minutes arrondies au supérieur, ou secondes)."""
    seconds = max(int(ms) // 1000, 1)
    if seconds < 60:
        return f"Please wait {seconds} second{'s' if seconds != 1 else ''} before trying again."
    minutes = -(-seconds // 60)
    return f"Please wait {minutes} minute{'s' if minutes != 1 else ''} before trying again."
