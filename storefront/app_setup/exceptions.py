"""
Gestionnaires d'exceptions utilisés par la factory.
- HTTPException: JSON standard {"detail": ...}
- CheckoutError: erreurs métier du checkout rendues en JSON avec leur code HTTP
  (422 moyen de paiement invalide ou désactivé, 400 session absente, 409 tentative terminée, 502 écriture commande/facture impossible)
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from storefront.checkout.errors import CheckoutError

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_as_json(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))

    @app.exception_handler(CheckoutError)
    async def checkout_error_as_json(request: Request, exc: CheckoutError):
        logger.info("checkout error path=%s status=%s detail=%s", request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})
