import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, EmailStr

from checkout.session import CheckoutSession, SessionRegistry
from checkout.utils.dependencies import get_registry, request_origin, require_session
from .payment_return import handle_payment_return
from .service import generate_payment_link

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/checkout", tags=["Payments API"])

class PaymentLinkRequest(BaseModel):
    path: Optional[str] = None
    receipt_email: Optional[EmailStr] = None

# module checkout.payments.views
@router.post("/sessions/{session_id}/payment-link")
async def create_payment_link(
    req: PaymentLinkRequest,
    session: CheckoutSession = Depends(require_session),
    origin: str = Depends(request_origin),
):
    url = await generate_payment_link(
        session,
        origin=origin,
        path=req.path,
        receipt_email=str(req.receipt_email) if req.receipt_email else None,
    )
    return {"url": url, "order_id": session.order_id}

@router.get("/payment-return")
async def payment_return(request: Request, sid: Optional[str] = None, registry: SessionRegistry = Depends(get_registry)):
    """
    Retour du prestataire: ?payment=return&orderId=<id>[&error=...][&status=...]
    - sid: session d'origine (recréée après redémarrage, l'état durable est relu du stockage)
    - sans sid: session temporaire, non enregistrée
    - Réponse: {"state": "success" | "pending" | "failure", ...}
    """
    session = registry.get_or_create(sid) if sid else registry.new_session()
    result = await handle_payment_return(session, dict(request.query_params))
    logger.info("payments.views.payment_return order_id=%s state=%s", result.order_id, result.state.value)
    return result.to_dict()
