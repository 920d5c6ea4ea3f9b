from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr

from checkout.session import CheckoutSession
from checkout.utils.dependencies import require_session

router = APIRouter(prefix="/api/v1/checkout", tags=["Auth API"])

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

@router.post("/sessions/{session_id}/login")
async def login(req: LoginRequest, session: CheckoutSession = Depends(require_session)):
    """Connexion au backend pour la session (429 => cooldown, message d'attente sans appel réseau)."""
    tokens = await session.tokens.login(str(req.email), req.password)
    session.customer_email = session.customer_email or str(req.email)
    return {"authenticated": True, "expires_at": tokens.expires_at}
