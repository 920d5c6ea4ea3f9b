"""
ASGI entrypoint: `checkout.asgi:app` pour uvicorn (voir `python -m checkout`).
La construction de l'app (lifespan, middlewares, routers) vit dans checkout.app_setup.factory.
"""

from checkout.app import app
