"""
Parcours complet de checkout, ordre imposé procéduralement:
  commande -> abonnement (si abonnement) -> cartes à points / articles -> réduction (si code) -> lien de paiement
- Prérequis manquant (client, salle, commande) => résultat "missing_prerequisite", rien n'est levé
- Échec du lien de paiement => erreur fatale remontée, panier intact pour un nouvel essai
"""
import logging
from typing import Any, Dict, Optional

from checkout.catalog.models import is_value_card_plan
from checkout.discounts.service import apply_discount_code
from checkout.errors import PaymentLinkUnavailableError
from checkout.orders.service import add_articles, add_value_cards, ensure_order_created
from checkout.payments.service import generate_payment_link
from checkout.subscriptions.service import ensure_subscription_attached, select_membership_plan

logger = logging.getLogger(__name__)

MISSING_PREREQUISITE = "missing_prerequisite"
READY = "ready"


class CheckoutOutcome:
    def __init__(self, status: str, order_id: Any = None, payment_link: Optional[str] = None, session=None, discount=None):
        self.status = status
        self.order_id = order_id
        self.payment_link = payment_link
        self.discount = discount
        self.pricing_diagnostic = session.pricing_diagnostic if session is not None else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "order_id": self.order_id,
            "payment_link": self.payment_link,
            "discount": self.discount.to_dict() if self.discount else None,
            "pricing_diagnostic": self.pricing_diagnostic.to_dict() if self.pricing_diagnostic else None,
        }


async def _run(session, origin: Optional[str], path: Optional[str]) -> CheckoutOutcome:
    if is_value_card_plan(session.membership_plan_id):
        await select_membership_plan(session, session.membership_plan_id)

    order_id = await ensure_order_created(session, "checkout-flow")
    if not order_id:
        return CheckoutOutcome(MISSING_PREREQUISITE, session=session)

    if session.membership_plan_id:
        attached = await ensure_subscription_attached(session, "checkout-flow")
        if not attached:
            return CheckoutOutcome(MISSING_PREREQUISITE, order_id, session=session)

    await add_value_cards(session)
    await add_articles(session)
    if session.is_value_card_only and session.value_cards_added_order_id != order_id:
        raise PaymentLinkUnavailableError("Your punch cards could not be added to the order. Please try again.")

    discount = None
    if session.discount_code and session.discount_applied_code != session.discount_code:
        discount = await apply_discount_code(session, order_id, session.discount_code)
        if discount.error is not None:
            logger.info("flow.service.run_checkout continuing without discount order_id=%s reason=%s", order_id, discount.error.reason)

    link = await generate_payment_link(session, origin=origin, path=path)
    logger.info("flow.service.run_checkout ready order_id=%s", order_id)
    return CheckoutOutcome(READY, order_id, link, session=session, discount=discount)


async def run_checkout(session, origin: Optional[str] = None, path: Optional[str] = None) -> CheckoutOutcome:
    """Un seul parcours à la fois par session (double clic "payer" => même exécution)."""

    async def _guarded() -> CheckoutOutcome:
        session.checkout_in_progress = True
        try:
            return await _run(session, origin, path)
        finally:
            session.checkout_in_progress = False

    return await session.flights.do(("checkout", session.session_id), _guarded)
