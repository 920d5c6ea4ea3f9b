"""
Coordinateur d'attachement d'abonnement.
- Ajoute l'abonnement (ou pass) à la commande avec une date de début = aujourd'hui
- Détecte le défaut backend connu: date de début ignorée => premier paiement plein mois
- Vérifie le prix au prorata (tolérance 100 øre) puis, si besoin, lance la boucle de réparation
  (4 stratégies max: supprimer la ligne, attendre, ré-ajouter une variante, re-vérifier)
- Échec de réparation: la commande reste en l'état, un diagnostic est posé sur la session
Note: la réparation est un shim de compatibilité "best effort"; le déclencheur exact côté backend
n'est pas documenté, d'où la journalisation détaillée de chaque tentative.
"""
import logging
from typing import Any, Dict, Optional

from checkout.catalog.models import is_value_card_plan, parse_product_id
from checkout.errors import BackendAPIError, CheckoutError, ProductNotAllowedError
from checkout.orders import repository as orders_repository
from checkout.orders.service import clear_stored_order_data, ensure_order_created, persist_order_snapshot, refresh_order
from checkout.session import AttachmentState, PricingDiagnostic
from .pricing import VerificationResult, calculate_expected_partial_month_price, verify_subscription_pricing
from .repair import RepairOutcome, RetryPolicy, StrategyAbandoned, run_policy, subscription_repair_strategies

logger = logging.getLogger(__name__)

_NOT_ALLOWED_MARKERS = ("not allowed", "not_allowed", "notallowed", "not eligible", "not_eligible", "campaign")

def is_product_not_allowed(error: BackendAPIError) -> bool:
    if error.status not in (400, 403, 409, 422):
        return False
    text = (error.body or "").lower()
    return any(marker in text for marker in _NOT_ALLOWED_MARKERS)

def build_subscription_payload(session, today) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "subscriptionProduct": parse_product_id(session.membership_plan_id),
        "businessUnit": session.selected_business_unit,
        "startDate": today.isoformat(),
    }
    if session.customer_id:
        payload["subscriber"] = int(session.customer_id)
    if session.birth_date:
        payload["birthDate"] = session.birth_date
    return payload

async def _submit(session, order_id: Any, payload: Dict[str, Any]) -> None:
    try:
        await orders_repository.add_subscription_item(session.api, order_id, payload)
    except BackendAPIError as e:
        if is_product_not_allowed(e):
            logger.info("subscriptions.service.submit product not allowed product=%s", payload.get("subscriptionProduct"))
            raise ProductNotAllowedError(session.membership_plan_id) from e
        raise

async def _verify(session, today) -> VerificationResult:
    order = await refresh_order(session)
    expected = calculate_expected_partial_month_price(session.membership_plan_id, today, session.catalog)
    result = verify_subscription_pricing(order, session.membership_plan_id, expected, today)
    logger.info(
        "subscriptions.service.verify order_id=%s start_ok=%s price_ok=%s order_price=%s expected=%s diff=%s days_until_start=%s",
        session.order_id,
        result.start_date_correct,
        result.price_correct,
        result.order_price_minor_units,
        result.expected_price_minor_units,
        result.price_difference,
        result.days_until_start,
    )
    return result

async def repair_subscription_pricing(session, order_id: Any, payload: Dict[str, Any], today) -> RepairOutcome:
    """Boucle de réparation bornée (politique déclarative, voir repair.py)."""

    async def prepare(strategy) -> None:
        # Relecture: une tentative précédente a pu supprimer la ligne sans la ré-ajouter
        order = await refresh_order(session)
        item = order.subscription_item if order else None
        if item is None:
            return
        if item.id is None:
            raise StrategyAbandoned("no subscription item id to delete")
        try:
            await orders_repository.delete_subscription_item(session.api, order_id, item.id)
        except BackendAPIError as e:
            if e.status == 403:
                raise StrategyAbandoned(f"delete forbidden for item {item.id}") from e
            raise

    async def execute(strategy, variant: Dict[str, Any]) -> VerificationResult:
        logger.info("subscriptions.service.repair strategy=%s payload=%s", strategy.name, variant)
        await _submit(session, order_id, variant)
        return await _verify(session, today)

    policy = RetryPolicy(
        strategies=subscription_repair_strategies(),
        success_predicate=lambda result: result.is_correct or result.price_correct,
        max_attempts=4,
        retry_on=(BackendAPIError,),
    )
    return await run_policy(policy, payload, execute=execute, sleep=session.sleep, prepare=prepare)

async def _restore_missing_item(session, order_id: Any, payload: Dict[str, Any], today) -> Optional[VerificationResult]:
    """Réparation abandonnée après une suppression: la ligne d'abonnement est ré-ajoutée une fois."""
    order = await refresh_order(session)
    if order is None or order.subscription_item is not None:
        return None
    logger.warning("subscriptions.service.restore_missing_item re-attaching order_id=%s", order_id)
    await _submit(session, order_id, payload)
    return await _verify(session, today)

async def _attach(session, order_id: Any, context: str) -> Any:
    if session.subscription_attached_order_id == order_id:
        return order_id
    session.attachment_state = AttachmentState.ATTACHING
    today = session.today()
    payload = build_subscription_payload(session, today)
    logger.info("subscriptions.service.attach order_id=%s product=%s context=%s", order_id, payload["subscriptionProduct"], context)
    try:
        await _submit(session, order_id, payload)
    except Exception:
        session.attachment_state = AttachmentState.NOT_ATTACHED
        raise

    result = await _verify(session, today)
    if result.start_date_correct:
        session.attachment_state = AttachmentState.ATTACHED_CORRECT
    elif result.price_correct:
        # Date ignorée mais prix dans la tolérance: artefact d'arrondi accepté
        logger.warning("subscriptions.service.attach start date ignored, price within tolerance order_id=%s", order_id)
        session.attachment_state = AttachmentState.ATTACHED_MISMATCH
    else:
        logger.warning(
            "subscriptions.service.attach pricing mismatch order_id=%s order_price=%s expected=%s",
            order_id, result.order_price_minor_units, result.expected_price_minor_units,
        )
        session.attachment_state = AttachmentState.REPAIRING
        try:
            outcome = await repair_subscription_pricing(session, order_id, payload, today)
        except CheckoutError:
            session.attachment_state = AttachmentState.REPAIR_FAILED
            raise
        if outcome.success:
            session.attachment_state = AttachmentState.REPAIR_FIXED
            session.pricing_diagnostic = None
            logger.info("subscriptions.service.attach repaired order_id=%s strategy=%s", order_id, outcome.strategy)
        else:
            last: Optional[VerificationResult] = outcome.result if isinstance(outcome.result, VerificationResult) else result
            try:
                restored = await _restore_missing_item(session, order_id, payload, today)
            except CheckoutError:
                # Commande sans ligne d'abonnement: marqueur non posé, le prochain appel ré-attache
                logger.exception("subscriptions.service.attach restore failed order_id=%s history=%s", order_id, outcome.history)
                session.attachment_state = AttachmentState.NOT_ATTACHED
                raise
            if restored is not None:
                last = restored
            session.attachment_state = AttachmentState.REPAIR_FAILED
            session.pricing_diagnostic = PricingDiagnostic(
                order_id=order_id,
                product_id=session.membership_plan_id,
                expected=last.expected_price_minor_units,
                actual=last.order_price_minor_units,
                attempts=outcome.attempts,
            )
            logger.error(
                "subscriptions.service.attach repair failed order_id=%s attempts=%s history=%s",
                order_id, outcome.attempts, outcome.history,
            )

    session.subscription_attached_order_id = order_id
    session.cart_items = [i for i in session.cart_items if i.get("type") != "subscription"]
    session.cart_items.append({"type": "subscription", "productId": session.membership_plan_id})
    await persist_order_snapshot(session)
    return order_id

async def ensure_subscription_attached(session, context: str = "auto") -> Optional[Any]:
    """
    Attache l'abonnement sélectionné à la commande de la session.
    - Aucun abonnement sélectionné (ou carte à points) => None, composant non concerné
    - Commande impossible à créer (prérequis manquant) => None
    - Déjà attaché à cette commande => id renvoyé sans rappel réseau
    - Attachements concurrents => une seule exécution partagée
    """
    plan = session.membership_plan_id
    if not plan:
        logger.warning("subscriptions.service.ensure_subscription_attached no membership selected context=%s", context)
        return None
    if is_value_card_plan(plan):
        logger.warning("subscriptions.service.ensure_subscription_attached value card is not a subscription plan=%s", plan)
        return None

    order_id = await ensure_order_created(session, f"{context}-subscription")
    if not order_id:
        logger.warning("subscriptions.service.ensure_subscription_attached order missing context=%s", context)
        return None
    if session.subscription_attached_order_id == order_id:
        return order_id

    return await session.flights.do(("subscription", session.session_id), lambda: _attach(session, order_id, context))

def _reset_attachment(session) -> None:
    session.subscription_attached_order_id = None
    session.attachment_state = AttachmentState.NOT_ATTACHED
    session.pricing_diagnostic = None
    session.cart_items = [i for i in session.cart_items if i.get("type") != "subscription"]

async def select_membership_plan(session, plan_id: Any) -> None:
    """
    Change la formule sélectionnée.
    - "punch-<n>": carte à points (quantité 1 si absente), plus aucun abonnement
    - Abonnement déjà attaché à la commande: ligne supprimée, la nouvelle formule sera attachée
      au prochain appel; réduction et lien de paiement à refaire sur le nouveau prix
    - Suppression impossible: la commande est abandonnée, une nouvelle sera créée
    """
    if is_value_card_plan(plan_id):
        if session.value_card_quantities.get(plan_id, 0) <= 0:
            session.value_card_quantities[plan_id] = 1
        plan_id = None
    if plan_id == session.membership_plan_id:
        return
    previous = session.membership_plan_id
    session.membership_plan_id = plan_id
    order_id = session.order_id
    if not order_id or session.subscription_attached_order_id != order_id:
        _reset_attachment(session)
        return

    logger.info("subscriptions.service.select_membership_plan order_id=%s previous=%s plan=%s", order_id, previous, plan_id)
    try:
        order = await refresh_order(session)
        item = order.subscription_item if order else None
        if item is not None and item.id is not None:
            await orders_repository.delete_subscription_item(session.api, order_id, item.id)
            await refresh_order(session)
    except BackendAPIError:
        logger.exception("subscriptions.service.select_membership_plan cannot remove previous plan order_id=%s", order_id)
        await clear_stored_order_data(session, "plan-change")
        return
    if item is not None and item.id is None:
        logger.warning("subscriptions.service.select_membership_plan previous item has no id order_id=%s", order_id)
        await clear_stored_order_data(session, "plan-change")
        return

    _reset_attachment(session)
    session.discount_applied_code = None
    session.discount_amount = 0
    session.payment_link = None
    session.payment_link_order_id = None
    await persist_order_snapshot(session)
