"""
Cas d'usage 'payments': génération du lien de paiement.
- Relit la commande juste avant l'appel (prix final, post-réduction / post-réparation)
- Méthode symbolique => id passerelle, URL de retour, email de reçu sans "+tag"
- 403: diagnostic prix commande vs prix attendu pour distinguer un défaut de prix non résolu
  d'un vrai refus d'autorisation
- Aucun lien exploitable => PaymentLinkUnavailableError (condition fatale du checkout)
"""
import logging
from typing import Any, Dict, Optional

from checkout.config import PRICE_TOLERANCE_MINOR_UNITS
from checkout.errors import (
    BackendAPIError,
    CheckoutError,
    PaymentLinkUnavailableError,
    PricingMismatchError,
    UnexpectedResponseShapeError,
)
from checkout.orders.service import persist_order_snapshot, refresh_order
from checkout.subscriptions.pricing import calculate_expected_partial_month_price
from .adapter import extract_payment_link
from .methods import resolve_payment_method_id
from .return_url import build_return_url, strip_email_tag
from . import repository

logger = logging.getLogger(__name__)

def _price_diagnostic(session) -> Dict[str, Any]:
    order = session.order
    actual = order.price if order else None
    expected = None
    if session.membership_plan_id:
        expectation = calculate_expected_partial_month_price(session.membership_plan_id, session.today(), session.catalog)
        expected = expectation.amount_in_minor_units if expectation else None
    if session.pricing_diagnostic is not None:
        expected = session.pricing_diagnostic.expected if expected is None else expected
    # Le prix commande est post-réduction: on compare le montant avant coupon
    comparable = actual + (session.discount_amount or 0) if actual is not None else None
    mismatch = session.pricing_diagnostic is not None or (
        expected is not None and comparable is not None and abs(comparable - expected) > PRICE_TOLERANCE_MINOR_UNITS
    )
    return {
        "order_price": actual,
        "expected_price": expected,
        "product_id": session.membership_plan_id,
        "business_unit": session.selected_business_unit,
        "price_mismatch": mismatch,
    }

async def generate_payment_link(
    session,
    *,
    origin: Optional[str] = None,
    path: Optional[str] = None,
    return_url: Optional[str] = None,
    receipt_email: Optional[str] = None,
) -> str:
    order_id = session.order_id
    if not order_id:
        raise CheckoutError("Order ID is required to generate a payment link.", status_code=409)

    await refresh_order(session)
    return_url = return_url or build_return_url(order_id, origin=origin, path=path)
    payload: Dict[str, Any] = {
        "orderId": order_id,
        "paymentMethodId": resolve_payment_method_id(session.payment_method),
        "businessUnit": session.selected_business_unit,
        "returnUrl": return_url,
    }
    email = strip_email_tag(receipt_email or session.customer_email)
    if email:
        payload["receiptEmail"] = email
    logger.info(
        "payments.service.generate_payment_link order_id=%s method=%s price=%s",
        order_id, payload["paymentMethodId"], session.order.price if session.order else None,
    )

    try:
        response = await repository.generate_link(session.api, payload)
    except BackendAPIError as e:
        if e.status == 403:
            diag = _price_diagnostic(session)
            logger.error("payments.service.generate_payment_link forbidden order_id=%s diagnostic=%s", order_id, diag)
            if diag["price_mismatch"]:
                raise PricingMismatchError(
                    diag["expected_price"], diag["order_price"], diag["product_id"], diag["business_unit"]
                ) from e
            raise PaymentLinkUnavailableError(
                "Payment could not be started: the payment provider refused this order.", status_code=403
            ) from e
        logger.exception("payments.service.generate_payment_link failed order_id=%s status=%s", order_id, e.status)
        raise PaymentLinkUnavailableError("Payment link could not be generated. Please try again.") from e

    try:
        url = extract_payment_link(response)
    except UnexpectedResponseShapeError as e:
        logger.error("payments.service.generate_payment_link bad response order_id=%s error=%s", order_id, e)
        raise PaymentLinkUnavailableError("Payment link could not be generated. Please contact support.") from e

    session.payment_link = url
    session.payment_link_order_id = order_id
    await persist_order_snapshot(session)
    return url
