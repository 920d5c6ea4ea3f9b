"""
Gestionnaires d'exceptions utilisés par la factory.
- CheckoutError (et sous-classes): JSON {"detail", "kind", ...} avec le status de l'erreur
- BackendAPIError: message utilisateur dérivé du status backend (get_error_message)
- HTTPException: corps JSON FastAPI standard
"""
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from checkout.errors import BackendAPIError, CheckoutError
from checkout.utils.error_messages import get_error_message

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(BackendAPIError)
    async def backend_error(request: Request, exc: BackendAPIError):
        status = 429 if exc.status == 429 else exc.status_code
        return JSONResponse(
            status_code=status,
            content={"detail": get_error_message(exc, exc.operation), "kind": exc.kind, "status": exc.status},
        )

    @app.exception_handler(CheckoutError)
    async def checkout_error(request: Request, exc: CheckoutError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
