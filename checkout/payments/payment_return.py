"""
Retour depuis le prestataire de paiement (?payment=return&orderId=...).
- Paramètre `error` explicite ou `status` d'échec => échec
- Commande inaccessible (401/403/404) => ÉCHEC, jamais succès: le paiement n'a le plus souvent pas abouti
- Confirmé si leftToPay == 0, ou statut "Betalet" / id 2
- Commande préliminaire => tentative de finalisation (preliminary: false) puis courte attente de leftToPay == 0
- Sinon "en attente"; poll_payment_status interroge ensuite périodiquement (24 × 5 s)
"""
import enum
import logging
from typing import Any, Mapping, Optional

from checkout.errors import BackendAPIError, CheckoutError
from checkout.orders import repository as orders_repository
from checkout.orders.models import Order
from checkout.orders.service import restore_order_snapshot

logger = logging.getLogger(__name__)

PAID_STATUS_NAME = "Betalet"
PAID_STATUS_ID = 2
FAILED_STATUSES = {"failed", "failure", "cancelled", "canceled", "error", "declined", "rejected"}


class PaymentState(str, enum.Enum):
    SUCCESS = "success"
    PENDING = "pending"
    FAILURE = "failure"


class PaymentReturnResult:
    def __init__(self, state: PaymentState, order_id: Any = None, order: Optional[Order] = None, message: str = ""):
        self.state = state
        self.order_id = order_id
        self.order = order
        self.message = message

    def to_dict(self):
        return {
            "state": self.state.value,
            "order_id": self.order_id,
            "order_number": self.order.number if self.order else None,
            "left_to_pay": self.order.left_to_pay if self.order else None,
            "message": self.message,
        }


def parse_return_order_id(raw: Any) -> int:
    """"817247/confirmation" => 817247; non numérique => ValueError."""
    text = str(raw if raw is not None else "").split("/")[0].strip()
    if not text.isdigit():
        raise ValueError(f"Invalid order ID: {raw!r}")
    return int(text)

def is_payment_confirmed(order: Optional[Order]) -> bool:
    if order is None:
        return False
    if order.left_to_pay == 0:
        return True
    return order.status_name == PAID_STATUS_NAME or order.status_id == PAID_STATUS_ID

def _success(order_id, order) -> PaymentReturnResult:
    return PaymentReturnResult(PaymentState.SUCCESS, order_id, order, "Payment confirmed. Welcome aboard!")

def _pending(order_id, order, message: Optional[str] = None) -> PaymentReturnResult:
    return PaymentReturnResult(
        PaymentState.PENDING,
        order_id,
        order,
        message or (
            "Your payment is being processed. We're waiting for confirmation from the payment provider. "
            f"Order #{order_id}"
        ),
    )

def _failure(order_id, message: str) -> PaymentReturnResult:
    return PaymentReturnResult(PaymentState.FAILURE, order_id, None, message)

async def _fetch(session, order_id: int) -> Order:
    order = Order.from_api(await orders_repository.get_order(session.api, order_id))
    session.order = order
    session.order_id = order.id or order_id
    return order

async def finalize_preliminary_order(session, order_id: int, attempts: int = 5, interval: float = 2.0) -> Optional[Order]:
    """Passe la commande en non-préliminaire puis attend brièvement que leftToPay tombe à 0."""
    try:
        await orders_repository.update_order(session.api, order_id, {"preliminary": False})
    except BackendAPIError:
        logger.exception("payments.payment_return.finalize update failed order_id=%s", order_id)
        return None
    order = await _fetch(session, order_id)
    for attempt in range(attempts):
        if order.left_to_pay == 0:
            return order
        await session.sleep(interval)
        try:
            order = await _fetch(session, order_id)
        except BackendAPIError:
            logger.exception("payments.payment_return.finalize poll failed order_id=%s attempt=%s", order_id, attempt + 1)
    return order

async def handle_payment_return(session, params: Mapping[str, Any]) -> PaymentReturnResult:
    raw_order_id = params.get("orderId")
    snapshot = await restore_order_snapshot(session)
    if raw_order_id is None and snapshot:
        raw_order_id = snapshot.get("orderId")
    try:
        order_id = parse_return_order_id(raw_order_id)
    except ValueError:
        logger.warning("payments.payment_return.handle invalid order id raw=%s", raw_order_id)
        return _failure(raw_order_id, "We could not identify your order. Please contact support.")

    error = params.get("error")
    status = str(params.get("status") or "").strip().lower()
    if error or status in FAILED_STATUSES:
        logger.warning("payments.payment_return.handle provider reported failure order_id=%s error=%s status=%s", order_id, error, status)
        return _failure(order_id, "Payment was not completed. Your cart is still saved, please try again.")

    try:
        await session.tokens.validate_on_load()
    except CheckoutError:
        logger.exception("payments.payment_return.handle token validation failed order_id=%s", order_id)

    try:
        order = await _fetch(session, order_id)
    except BackendAPIError as e:
        if e.is_unauthorized_or_not_found:
            logger.warning("payments.payment_return.handle order inaccessible order_id=%s status=%s", order_id, e.status)
            return _failure(order_id, "Payment could not be confirmed for this order. Please try again or contact support.")
        logger.exception("payments.payment_return.handle fetch failed order_id=%s", order_id)
        return _pending(order_id, None)

    if is_payment_confirmed(order):
        return _success(order_id, order)

    if order.preliminary:
        logger.warning("payments.payment_return.handle order preliminary, finalizing order_id=%s", order_id)
        finalized = await finalize_preliminary_order(session, order_id)
        if is_payment_confirmed(finalized):
            return _success(order_id, finalized)
        return _pending(order_id, finalized or order)

    return _pending(order_id, order)

async def poll_payment_status(session, order_id: Any, attempts: int = 24, interval: float = 5.0) -> PaymentReturnResult:
    order_id = parse_return_order_id(order_id)
    order: Optional[Order] = session.order
    for attempt in range(attempts):
        await session.sleep(interval)
        try:
            order = await _fetch(session, order_id)
        except BackendAPIError:
            logger.exception("payments.payment_return.poll failed order_id=%s attempt=%s", order_id, attempt + 1)
            continue
        if is_payment_confirmed(order):
            return _success(order_id, order)
    return _pending(
        order_id,
        order,
        "Payment is still being processed. Please check back in a few minutes or contact support "
        f"if you've completed payment. Order #{order_id}",
    )
