"""
Cas d'usage 'orders': gestionnaire de commande d'une session de checkout.
- ensure_order_created: une seule commande par (client, salle, panier), requêtes concurrentes fusionnées
- Snapshot durable (boulders_checkout_order) pour reprendre la même commande après redirection paiement
- clear_stored_order_data: reset explicite du panier ou rechargement hors retour de paiement
"""
import logging
from typing import Any, Dict, Optional

from checkout.catalog.models import parse_product_id
from checkout.errors import BackendAPIError, UnexpectedResponseShapeError
from checkout.infra.session_storage import CUSTOMER_KEY, ORDER_KEY
from .models import Order
from . import repository

logger = logging.getLogger(__name__)

def _flight_key(session) -> tuple:
    return ("order", session.session_id)

async def persist_order_snapshot(session) -> None:
    if not session.order_id:
        return
    snapshot = {
        "orderId": session.order_id,
        "membershipPlanId": session.membership_plan_id,
        "cartItems": session.cart_items or [],
        "totals": session.totals,
        "selectedBusinessUnit": session.selected_business_unit,
        "subscriptionAttachedOrderId": session.subscription_attached_order_id,
        "discountCode": session.discount_applied_code,
    }
    try:
        await session.storage.set_json(session.session_id, ORDER_KEY, snapshot)
    except Exception:
        # Le stockage est un confort de reprise: la commande reste valide en mémoire
        logger.exception("orders.service.persist_order_snapshot failed sid=%s order_id=%s", session.session_id, session.order_id)

async def restore_order_snapshot(session) -> Optional[Dict[str, Any]]:
    """
    Restaure client + commande depuis le stockage de session (retour du prestataire de paiement).
    Retour: le snapshot commande, ou None s'il n'existe pas.
    """
    customer = await session.storage.get_json(session.session_id, CUSTOMER_KEY)
    if isinstance(customer, dict) and customer.get("id") is not None:
        session.customer_id = customer["id"]
        session.customer_email = customer.get("email") or session.customer_email
    snapshot = await session.storage.get_json(session.session_id, ORDER_KEY)
    if not isinstance(snapshot, dict):
        return None
    session.order_id = snapshot.get("orderId") or session.order_id
    if snapshot.get("membershipPlanId"):
        session.membership_plan_id = snapshot["membershipPlanId"]
    if snapshot.get("cartItems"):
        session.cart_items = snapshot["cartItems"]
    if snapshot.get("totals"):
        session.totals = snapshot["totals"]
    if snapshot.get("selectedBusinessUnit"):
        session.selected_business_unit = snapshot["selectedBusinessUnit"]
    if snapshot.get("subscriptionAttachedOrderId"):
        session.subscription_attached_order_id = snapshot["subscriptionAttachedOrderId"]
    if snapshot.get("discountCode"):
        session.discount_applied_code = snapshot["discountCode"]
    logger.info("orders.service.restore_order_snapshot sid=%s order_id=%s", session.session_id, session.order_id)
    return snapshot

async def clear_stored_order_data(session, reason: str = "manual") -> None:
    logger.info("orders.service.clear_stored_order_data sid=%s reason=%s", session.session_id, reason)
    session.reset_order_state()
    try:
        await session.storage.delete(session.session_id, ORDER_KEY)
    except Exception:
        logger.exception("orders.service.clear_stored_order_data storage failed sid=%s", session.session_id)

async def on_page_load(session, is_payment_return: bool) -> Optional[Dict[str, Any]]:
    """Rechargement: hors retour de paiement, le panier repart de zéro (pas de commande dupliquée)."""
    if is_payment_return:
        return await restore_order_snapshot(session)
    await clear_stored_order_data(session, "page-refresh")
    return None

async def ensure_order_created(session, context: str = "auto") -> Optional[Any]:
    """
    Retourne l'id de la commande de la session, en la créant au besoin.
    - Commande déjà connue => renvoyée telle quelle
    - Création déjà en vol => même future partagée par tous les appelants
    - Client ou salle manquant => None (état attendu en début de parcours, pas une erreur)
    """
    if session.order_id:
        logger.info("orders.service.ensure_order_created reuse order_id=%s context=%s", session.order_id, context)
        await persist_order_snapshot(session)
        return session.order_id

    key = _flight_key(session)
    if not session.flights.in_flight(key):
        if not session.customer_id:
            logger.warning("orders.service.ensure_order_created missing customer context=%s", context)
            return None
        if not session.selected_business_unit:
            logger.warning("orders.service.ensure_order_created missing business unit context=%s", context)
            return None

    async def _create() -> Any:
        if session.order_id:
            return session.order_id
        logger.info("orders.service.ensure_order_created creating sid=%s context=%s", session.session_id, context)
        payload = await repository.create_order(session.api, session.customer_id, session.selected_business_unit)
        order = Order.from_api(payload)
        if order.id is None:
            raise UnexpectedResponseShapeError("Order creation response did not contain an order id")
        session.order = order
        session.order_id = order.id
        session.subscription_attached_order_id = None
        await persist_order_snapshot(session)
        logger.info("orders.service.ensure_order_created ready order_id=%s context=%s", order.id, context)
        return order.id

    return await session.flights.do(key, _create)

async def refresh_order(session) -> Optional[Order]:
    """Relit la commande faisant autorité (prix final, lignes, coupon)."""
    if not session.order_id:
        return None
    order = Order.from_api(await repository.get_order(session.api, session.order_id))
    session.order = order
    return order

async def add_value_cards(session) -> int:
    """
    Ajoute les cartes à points sélectionnées (une ligne par produit, quantité incluse).
    - Idempotent par commande
    - Un échec sur un produit est journalisé, les autres produits sont tout de même ajoutés
    Retour: nombre de lignes ajoutées.
    """
    if not session.order_id or session.value_cards_added_order_id == session.order_id:
        return 0
    added = 0
    for product_id, quantity in session.value_card_quantities.items():
        if quantity <= 0:
            continue
        try:
            await repository.add_value_card_item(
                session.api, session.order_id, parse_product_id(product_id), quantity, session.selected_business_unit
            )
            added += 1
            session.cart_items.append({"type": "valuecard", "productId": product_id, "quantity": quantity})
        except BackendAPIError:
            logger.exception("orders.service.add_value_cards failed order_id=%s product_id=%s", session.order_id, product_id)
    if added:
        session.value_cards_added_order_id = session.order_id
        await persist_order_snapshot(session)
    return added

async def add_articles(session) -> int:
    if not session.order_id or session.articles_added_order_id == session.order_id:
        return 0
    added = 0
    for addon_id in sorted(session.addon_ids, key=str):
        try:
            await repository.add_article_item(session.api, session.order_id, parse_product_id(addon_id), session.selected_business_unit)
            added += 1
            session.cart_items.append({"type": "article", "productId": addon_id})
        except BackendAPIError:
            logger.exception("orders.service.add_articles failed order_id=%s addon_id=%s", session.order_id, addon_id)
    if added:
        session.articles_added_order_id = session.order_id
        await persist_order_snapshot(session)
    return added
