"""
Lifespan FastAPI: initialisation/arrêt des ressources partagées.
- Client HTTP du backend (httpx.AsyncClient, pool partagé)
- Stockage de session (Redis, fakeredis en tests, ou mémoire)
- Registre des sessions de checkout vivantes
Variables d'environnement supportées:
  - SESSION_REDIS_URL: URL Redis du stockage de session
  - USE_FAKE_REDIS_FOR_TESTS=1: utilise fakeredis (tests)
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from checkout.infra.api_client import close_http_client, get_http_client
from checkout.infra.session_storage import InMemorySessionStorage, build_session_storage
from checkout.session import SessionRegistry

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Prépare les ressources et gère le fallback mémoire.
    - Redis indisponible à l'init => stockage mémoire (les reprises après redémarrage sont perdues)
    """
    logger = logging.getLogger("uvicorn.error")
    try:
        storage = build_session_storage()
        await storage.ping()
        logger.info("Session storage ready (%s)", type(storage).__name__)
    except Exception as e:
        storage = InMemorySessionStorage()
        logger.warning(f"Session storage falling back to in-memory due to init error: {e}")

    app.state.session_storage = storage
    app.state.registry = SessionRegistry(storage, get_http_client())
    try:
        yield
    finally:
        await storage.close()
        await close_http_client()
