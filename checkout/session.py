"""
Contexte explicite d'une session de checkout.
- Remplace l'état global mutable: chaque composant reçoit la session par référence.
- Porte la sélection utilisateur, la commande faisant autorité, les marqueurs d'idempotence,
  le cache single-flight, l'état de rate limiting et les tokens.
- SessionRegistry: sessions vivantes du process (les futures en vol ne sont pas sérialisables),
  l'état durable restant dans le stockage de session.
"""
import asyncio
import enum
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from checkout.auth.service import TokenManager
from checkout.catalog.models import Catalog
from checkout.config import SESSION_TTL_SECONDS
from checkout.infra.api_client import BackendClient
from checkout.orders.models import Order
from checkout.utils.rate_limit import RetryGovernor
from checkout.utils.single_flight import SingleFlight

logger = logging.getLogger(__name__)


class AttachmentState(str, enum.Enum):
    NOT_ATTACHED = "not_attached"
    ATTACHING = "attaching"
    ATTACHED_CORRECT = "attached_correct"
    ATTACHED_MISMATCH = "attached_mismatch"
    REPAIRING = "repairing"
    REPAIR_FIXED = "repair_fixed"
    REPAIR_FAILED = "repair_failed"


@dataclass(frozen=True)
class PricingDiagnostic:
    """Marqueur posé quand la réparation n'a pas corrigé le prix (affiché plus calmement côté UI)."""
    order_id: Any
    product_id: Any
    expected: Optional[int]
    actual: Optional[int]
    attempts: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CheckoutSession:
    def __init__(
        self,
        session_id: str,
        storage,
        http=None,
        *,
        today: Optional[Callable[[], date]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.session_id = session_id
        self.storage = storage
        self.today = today or date.today
        self.sleep = sleep or asyncio.sleep
        self.governor = RetryGovernor(clock=clock)
        self.flights = SingleFlight()
        self.api = BackendClient(http, token_getter=self._access_token)
        self.tokens = TokenManager(storage, session_id, self.api, self.governor, clock=clock)
        self.catalog = Catalog()

        # Sélection utilisateur
        self.customer_id: Optional[Any] = None
        self.customer_email: Optional[str] = None
        self.selected_business_unit: Optional[Any] = None
        self.membership_plan_id: Optional[Any] = None
        self.value_card_quantities: Dict[Any, int] = {}
        self.addon_ids: Set[Any] = set()
        self.payment_method: str = "card"
        self.discount_code: Optional[str] = None
        self.birth_date: Optional[str] = None
        self.cart_items: List[Dict[str, Any]] = []
        self.totals: Dict[str, Any] = {"cartTotal": 0, "membershipMonthly": 0}

        # Commande et marqueurs d'idempotence
        self.order_id: Optional[Any] = None
        self.order: Optional[Order] = None
        self.subscription_attached_order_id: Optional[Any] = None
        self.attachment_state = AttachmentState.NOT_ATTACHED
        self.pricing_diagnostic: Optional[PricingDiagnostic] = None
        self.value_cards_added_order_id: Optional[Any] = None
        self.articles_added_order_id: Optional[Any] = None

        # Réduction
        self.discount_applied_code: Optional[str] = None
        self.discount_amount: int = 0
        self.discount_error: Optional[str] = None

        # Paiement
        self.payment_link: Optional[str] = None
        self.payment_link_order_id: Optional[Any] = None
        self.checkout_in_progress = False

    async def _access_token(self) -> Optional[str]:
        return await self.tokens.ensure_valid_token()

    @property
    def is_value_card_only(self) -> bool:
        return not self.membership_plan_id and any(q > 0 for q in self.value_card_quantities.values())

    def reset_order_state(self) -> None:
        self.order_id = None
        self.order = None
        self.subscription_attached_order_id = None
        self.attachment_state = AttachmentState.NOT_ATTACHED
        self.pricing_diagnostic = None
        self.value_cards_added_order_id = None
        self.articles_added_order_id = None
        self.discount_applied_code = None
        self.discount_amount = 0
        self.discount_error = None
        self.payment_link = None
        self.payment_link_order_id = None
        self.checkout_in_progress = False
        self.cart_items = []
        self.totals = {"cartTotal": 0, "membershipMonthly": 0}

    def summary(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "customer_id": self.customer_id,
            "business_unit": self.selected_business_unit,
            "membership_plan_id": self.membership_plan_id,
            "value_cards": {str(k): v for k, v in self.value_card_quantities.items()},
            "addons": sorted(str(a) for a in self.addon_ids),
            "payment_method": self.payment_method,
            "order_id": self.order_id,
            "order_price": self.order.price if self.order else None,
            "attachment_state": self.attachment_state.value,
            "pricing_diagnostic": self.pricing_diagnostic.to_dict() if self.pricing_diagnostic else None,
            "discount_code": self.discount_applied_code,
            "discount_amount": self.discount_amount,
            "discount_error": self.discount_error,
            "payment_link": self.payment_link,
        }


class SessionRegistry:
    """
    Sessions vivantes du process, évincées après ttl_seconds sans accès.
    - L'éviction a lieu à chaque create/get (pas de tâche de fond)
    - Une session évincée peut être recréée: l'état durable est relu du stockage
    """

    def __init__(self, storage, http=None, *, ttl_seconds: Optional[float] = None, monotonic: Optional[Callable[[], float]] = None, **session_kwargs):
        self.storage = storage
        self.http = http
        self.ttl_seconds = SESSION_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._monotonic = monotonic or time.monotonic
        self._session_kwargs = session_kwargs
        self._sessions: Dict[str, CheckoutSession] = {}
        self._last_access: Dict[str, float] = {}

    def _prune(self) -> None:
        if not self.ttl_seconds or self.ttl_seconds <= 0:
            return
        deadline = self._monotonic() - self.ttl_seconds
        expired = [sid for sid, seen in self._last_access.items() if seen < deadline]
        for sid in expired:
            self._sessions.pop(sid, None)
            self._last_access.pop(sid, None)
        if expired:
            logger.info("session.registry.prune evicted=%s remaining=%s", len(expired), len(self._sessions))

    def _touch(self, sid: str) -> None:
        self._last_access[sid] = self._monotonic()

    def new_session(self, session_id: Optional[str] = None) -> CheckoutSession:
        """Session non enregistrée (ex: retour de paiement sans sid)."""
        return CheckoutSession(session_id or uuid.uuid4().hex, self.storage, self.http, **self._session_kwargs)

    def create(self, session_id: Optional[str] = None) -> CheckoutSession:
        self._prune()
        session = self.new_session(session_id)
        self._sessions[session.session_id] = session
        self._touch(session.session_id)
        logger.info("session.registry.create sid=%s", session.session_id)
        return session

    def get(self, session_id: str) -> Optional[CheckoutSession]:
        self._prune()
        session = self._sessions.get(session_id)
        if session is not None:
            self._touch(session_id)
        return session

    def get_or_create(self, session_id: str) -> CheckoutSession:
        """Session inconnue du process (redémarrage, éviction): recréée, l'état durable sera restauré du stockage."""
        return self.get(session_id) or self.create(session_id)

    def __len__(self) -> int:
        return len(self._sessions)
