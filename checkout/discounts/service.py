"""
Réconciliation des codes de réduction.
- Ordre strict: lignes finales présentes AVANT le coupon, coupon AVANT le lien de paiement
- Idempotent: si la commande relue porte déjà le code, il n'est pas re-soumis
- Échec: erreur classée (not_applicable, not_found, expired, already_used, forbidden, malformed),
  prix inchangé, le checkout continue sans réduction
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from checkout.errors import BackendAPIError, CheckoutError, CouponError
from checkout.orders.models import Order
from checkout.orders.service import persist_order_snapshot, refresh_order
from .normalize import normalize_discount
from . import repository

logger = logging.getLogger(__name__)

_CODE_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{1,63}$")


@dataclass(frozen=True)
class DiscountResult:
    order: Optional[Order]
    discount_amount: int
    subtotal: int = 0
    error: Optional[CouponError] = None

    @property
    def total(self) -> int:
        return max(self.subtotal - self.discount_amount, 0)

    @property
    def applied(self) -> bool:
        return self.error is None and self.discount_amount > 0

    def to_dict(self):
        return {
            "order_id": self.order.id if self.order else None,
            "discount_amount": self.discount_amount,
            "subtotal": self.subtotal,
            "total": self.total,
            "error": self.error.to_dict() if self.error else None,
        }


def classify_coupon_error(error: BackendAPIError) -> str:
    text = (error.body or "").lower()
    if "expired" in text:
        return "expired"
    if ("already" in text and "used" in text) or "already_used" in text:
        return "already_used"
    if "not applicable" in text or "not_applicable" in text or "not valid for" in text:
        return "not_applicable"
    if "not found" in text or "not_found" in text or error.status == 404:
        return "not_found"
    if error.status in (401, 403):
        return "forbidden"
    if error.status == 409:
        return "already_used"
    if error.status == 422:
        return "not_applicable"
    return "malformed"

def _order_has_code(order: Optional[Order], code: str) -> bool:
    return bool(order and order.coupon_code and order.coupon_code.strip().upper() == code.strip().upper())

def _check_ordering(session, order_id: Any) -> None:
    if session.payment_link_order_id == order_id:
        raise CheckoutError(
            "The payment link has already been generated for this order; a new discount would not be charged.",
            status_code=409,
        )
    if session.membership_plan_id and session.subscription_attached_order_id != order_id:
        raise CheckoutError("The order is not ready for a discount code yet.", status_code=409)

async def _finish(session, order: Optional[Order], code: str, discount: int, subtotal: int) -> DiscountResult:
    session.discount_applied_code = code
    session.discount_amount = discount
    session.discount_error = None
    session.totals = {**(session.totals or {}), "discount": discount, "cartTotal": max(subtotal - discount, 0)}
    await persist_order_snapshot(session)
    return DiscountResult(order, discount, subtotal)

async def apply_discount_code(session, order_id: Any, code: str) -> DiscountResult:
    """
    Applique un code à une commande complète.
    - Cooldown "coupon" actif ou 429 => RateLimitedError (remonté avec le temps d'attente)
    - Erreur métier du coupon => DiscountResult(error=CouponError), réduction 0
    Retour: commande relue + réduction en øre (plafonnée au sous-total).
    """
    code = (code or "").strip()
    _check_ordering(session, order_id)
    if not _CODE_RE.match(code):
        error = CouponError("malformed", code)
        session.discount_error = error.message
        return DiscountResult(session.order, 0, (session.order.pre_discount_subtotal() or 0) if session.order else 0, error)

    before = await refresh_order(session)
    subtotal = (before.pre_discount_subtotal() if before else None) or 0

    if _order_has_code(before, code):
        logger.info("discounts.service.apply_discount_code already applied order_id=%s code=%s", order_id, code)
        if session.discount_applied_code and session.discount_applied_code.upper() == code.upper():
            return DiscountResult(before, session.discount_amount, subtotal)
        discount = normalize_discount(
            {"discount": before.coupon_discount} if before.coupon_discount is not None else None,
            subtotal_minor=subtotal,
            total_minor=before.price,
        )
        return await _finish(session, before, code, discount, subtotal)

    try:
        response = await session.governor.governed("coupon", lambda: repository.apply_coupon(session.api, order_id, code))
    except BackendAPIError as e:
        reason = classify_coupon_error(e)
        logger.warning("discounts.service.apply_discount_code rejected order_id=%s code=%s reason=%s status=%s", order_id, code, reason, e.status)
        error = CouponError(reason, code)
        session.discount_error = error.message
        return DiscountResult(before, 0, subtotal, error)

    after = await refresh_order(session)
    discount = normalize_discount(response, subtotal_minor=subtotal, total_minor=after.price if after else None)
    logger.info("discounts.service.apply_discount_code applied order_id=%s code=%s discount=%s subtotal=%s", order_id, code, discount, subtotal)
    return await _finish(session, after, code, discount, subtotal)
