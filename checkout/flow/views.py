import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field

from checkout.catalog.service import load_catalog
from checkout.customers.service import ensure_customer
from checkout.orders.service import clear_stored_order_data, ensure_order_created, on_page_load
from checkout.session import CheckoutSession, SessionRegistry
from checkout.subscriptions.service import ensure_subscription_attached, select_membership_plan
from checkout.utils.dependencies import get_registry, request_origin, require_session
from .service import MISSING_PREREQUISITE, run_checkout

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/checkout", tags=["Checkout API"])

class SelectionRequest(BaseModel):
    customer_id: Optional[int] = None
    business_unit: Optional[Any] = None
    membership_plan_id: Optional[Any] = None
    value_cards: Dict[str, int] = Field(default_factory=dict)
    addons: List[Any] = Field(default_factory=list)
    payment_method: Optional[str] = None
    discount_code: Optional[str] = None
    birth_date: Optional[str] = None
    email: Optional[EmailStr] = None

class CustomerRequest(BaseModel):
    email: EmailStr
    first_name: str
    last_name: str
    phone: Optional[str] = None
    birth_date: Optional[str] = None
    address: Dict[str, Any] = Field(default_factory=dict)

class PageLoadRequest(BaseModel):
    payment_return: bool = False

def _with_prerequisite_status(body: Dict[str, Any]):
    """Prérequis manquant (client, salle, abonnement): 409 avec le même corps, pas une erreur."""
    if body.get("status") == MISSING_PREREQUISITE:
        return JSONResponse(status_code=409, content=body)
    return body

# module checkout.flow.views
@router.post("/sessions")
async def create_session(registry: SessionRegistry = Depends(get_registry)):
    session = registry.create()
    return {"session_id": session.session_id}

@router.get("/sessions/{session_id}")
async def get_session(session: CheckoutSession = Depends(require_session)):
    return session.summary()

@router.put("/sessions/{session_id}/selection")
async def update_selection(req: SelectionRequest, session: CheckoutSession = Depends(require_session)):
    """
    Met à jour la sélection utilisateur.
    - Changement de salle: recharge le catalogue (prix utilisés par la vérification)
    - Changement de formule: l'abonnement déjà attaché est retiré de la commande
    - Seuls les champs fournis sont modifiés
    """
    fields = req.model_fields_set
    if "customer_id" in fields:
        session.customer_id = req.customer_id
    if "business_unit" in fields and req.business_unit != session.selected_business_unit:
        session.selected_business_unit = req.business_unit
        if req.business_unit:
            session.catalog = await load_catalog(session.api, req.business_unit)
    if "value_cards" in fields:
        session.value_card_quantities = {k: int(v) for k, v in req.value_cards.items()}
    if "membership_plan_id" in fields:
        await select_membership_plan(session, req.membership_plan_id)
    if "addons" in fields:
        session.addon_ids = set(req.addons)
    if req.payment_method:
        session.payment_method = req.payment_method
    if "discount_code" in fields:
        session.discount_code = (req.discount_code or "").strip() or None
    if "birth_date" in fields:
        session.birth_date = req.birth_date
    if req.email:
        session.customer_email = str(req.email)
    return session.summary()

@router.post("/sessions/{session_id}/customer")
async def create_customer(req: CustomerRequest, session: CheckoutSession = Depends(require_session)):
    data: Dict[str, Any] = {
        "email": str(req.email),
        "firstName": req.first_name,
        "lastName": req.last_name,
    }
    if req.phone:
        data["mobilePhone"] = req.phone
    if req.birth_date:
        data["birthDate"] = req.birth_date
        session.birth_date = req.birth_date
    if req.address:
        data["address"] = req.address
    customer_id = await ensure_customer(session, data)
    return {"customer_id": customer_id}

@router.post("/sessions/{session_id}/order")
async def ensure_order(session: CheckoutSession = Depends(require_session)):
    order_id = await ensure_order_created(session, "api")
    return _with_prerequisite_status({"status": "ok" if order_id else MISSING_PREREQUISITE, "order_id": order_id})

@router.post("/sessions/{session_id}/subscription")
async def ensure_subscription(session: CheckoutSession = Depends(require_session)):
    order_id = await ensure_subscription_attached(session, "api")
    return _with_prerequisite_status({
        "status": "ok" if order_id else MISSING_PREREQUISITE,
        "order_id": order_id,
        "attachment_state": session.attachment_state.value,
        "pricing_diagnostic": session.pricing_diagnostic.to_dict() if session.pricing_diagnostic else None,
    })

@router.post("/sessions/{session_id}/checkout")
async def checkout(session: CheckoutSession = Depends(require_session), origin: str = Depends(request_origin)):
    outcome = await run_checkout(session, origin=origin)
    return _with_prerequisite_status(outcome.to_dict())

@router.delete("/sessions/{session_id}/order")
async def reset_order(session: CheckoutSession = Depends(require_session)):
    await clear_stored_order_data(session, "manual")
    return {"status": "cleared"}

@router.post("/sessions/{session_id}/page-load")
async def page_load(req: PageLoadRequest, session: CheckoutSession = Depends(require_session)):
    snapshot = await on_page_load(session, req.payment_return)
    return {"restored": snapshot is not None, "order_id": session.order_id}
