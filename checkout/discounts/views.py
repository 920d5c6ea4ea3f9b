from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from checkout.errors import CheckoutError
from checkout.session import CheckoutSession
from checkout.utils.dependencies import require_session
from .service import apply_discount_code

router = APIRouter(prefix="/api/v1/checkout", tags=["Checkout API"])

class DiscountRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)

@router.post("/sessions/{session_id}/discount")
async def apply_discount(req: DiscountRequest, session: CheckoutSession = Depends(require_session)):
    """
    Applique un code de réduction à la commande de la session.
    - Commande absente => 409
    - Code refusé => 200 avec `error` (le checkout continue sans réduction)
    """
    if not session.order_id:
        raise CheckoutError("Create the order before applying a discount code.", status_code=409)
    session.discount_code = req.code.strip()
    result = await apply_discount_code(session, session.order_id, session.discount_code)
    return result.to_dict()
