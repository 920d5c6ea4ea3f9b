"""
Assemblage de l'application d'orchestration du checkout.
Utilisé par checkout.app, checkout.asgi et les tests (TestClient).
"""
from fastapi import FastAPI

from .exceptions import register_exception_handlers
from .lifespan import lifespan
from .middlewares import register_basic_middlewares, register_no_cache_middleware
from .routers import register_routers

def create_app() -> FastAPI:
    """
    Le lifespan ouvre le stockage de session et le client HTTP backend, puis:
      - CORS et hôtes autorisés, no-cache sur /api/
      - erreurs backend et erreurs checkout converties en JSON
      - routers checkout, réductions, paiement, auth, health
    """
    app = FastAPI(title="Checkout orchestration", lifespan=lifespan)
    register_basic_middlewares(app)
    register_no_cache_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    return app
