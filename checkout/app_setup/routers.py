"""
Registre central des routers.
- API checkout: sessions/sélection/commande/abonnement, réduction, paiement, auth
- Health
"""
from fastapi import FastAPI

from checkout.auth.views import router as auth_router
from checkout.discounts.views import router as discounts_router
from checkout.flow.views import router as flow_router
from checkout.health.router import router as health_router
from checkout.payments.views import router as payments_router

def register_routers(app: FastAPI) -> None:
    app.include_router(flow_router)
    app.include_router(auth_router)
    app.include_router(discounts_router)
    app.include_router(payments_router)
    app.include_router(health_router)
