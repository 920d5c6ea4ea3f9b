"""
Dépendances FastAPI partagées par les routers du checkout.
- get_registry: registre des sessions vivantes (app.state.registry, posé par le lifespan)
- require_session: session existante, 404 sinon
- request_origin: origine du front (en-tête Origin, sinon base_url) pour l'URL de retour
"""
from fastapi import Depends, HTTPException, Request

from checkout.session import CheckoutSession, SessionRegistry

def get_registry(request: Request) -> SessionRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="Checkout service not ready")
    return registry

def require_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> CheckoutSession:
    session = registry.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Unknown checkout session")
    return session

def request_origin(request: Request) -> str:
    return request.headers.get("origin") or str(request.base_url).rstrip("/")
