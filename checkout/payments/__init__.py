"""
Module 'payments' (feature-first): point d'entrée public.
Réunit lien de paiement, table des méthodes, URL de retour et traitement du retour prestataire.
"""
from .adapter import extract_payment_link
from .methods import PAYMENT_METHOD_IDS, resolve_payment_method_id
from .return_url import build_return_url, resolve_return_base, strip_email_tag
from .service import generate_payment_link
from .payment_return import (
    PaymentReturnResult,
    PaymentState,
    handle_payment_return,
    is_payment_confirmed,
    parse_return_order_id,
    poll_payment_status,
)

__all__ = [
    # adapter / methods / return url
    "extract_payment_link",
    "PAYMENT_METHOD_IDS",
    "resolve_payment_method_id",
    "build_return_url",
    "resolve_return_base",
    "strip_email_tag",
    # services
    "generate_payment_link",
    "PaymentReturnResult",
    "PaymentState",
    "handle_payment_return",
    "is_payment_confirmed",
    "parse_return_order_id",
    "poll_payment_status",
]
