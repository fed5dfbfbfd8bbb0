import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from storefront.utils.security import get_optional_user, require_user
from storefront.utils.rate_limit import optional_rate_limit
from storefront.checkout import service as checkout_service
from storefront.checkout.errors import CheckoutClosedError, CheckoutError
from storefront.checkout.finalizer import OrderFinalizer
from storefront.checkout.models import CartItem, InvoicePayment
from storefront.checkout.selector import PaymentMethodSelector, coerce_method

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/checkout", tags=["Checkout API"])


class SummaryRequest(BaseModel):
    checkout_token: Optional[str] = None
    cart_items: List[CartItem] = Field(default_factory=list)
    shipping_info: Dict[str, Any] = Field(default_factory=dict)
    coupon_code: Optional[str] = None


class MethodRequest(SummaryRequest):
    checkout_token: str
    method: str


class TokenRequest(BaseModel):
    checkout_token: str


class InstructionsRequest(TokenRequest):
    method: str
    is_pending: bool = False
    is_invoice_payment: bool = False


class InvoiceMethodRequest(BaseModel):
    checkout_token: Optional[str] = None
    method: str
    invoice_number: Optional[str] = None


def _internal_error(action: str) -> HTTPException:
    logger.exception("Erreur checkout.%s", action)
    return HTTPException(status_code=500, detail="Erreur interne du checkout")

# module storefront.checkout.views
@router.post("/summary", dependencies=[Depends(optional_rate_limit(times=30, seconds=60))])
def checkout_summary(body: SummaryRequest):
    """
    Récapitulatif chiffré du panier (sous-total, remise, TVA, livraison, total).
    - Émet le checkout_token de la tentative (ou réutilise celui fourni)
    - shipping_info renvoyé contient payment_reference: le client le renvoie tel quel à /method
    """
    try:
        summary = checkout_service.build_summary(
            body.cart_items, body.shipping_info, coupon_code=body.coupon_code, token=body.checkout_token
        )
        return summary.to_dict()
    except CheckoutError:
        raise
    except Exception:
        raise _internal_error("summary")

@router.post("/method", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def choose_method(
    body: MethodRequest,
    user: Optional[dict] = Depends(get_optional_user),
    selector: PaymentMethodSelector = Depends(checkout_service.get_selector),
):
    """
    Choix du moyen de paiement pour le panier: le PendingOrder est recalculé côté serveur puis
    déposé dans le pont de session. Virement -> coordonnées bancaires; autres -> lien (non ouvert).
    """
    try:
        method = coerce_method(body.method)
        summary = checkout_service.build_summary(
            body.cart_items, body.shipping_info, coupon_code=body.coupon_code, token=body.checkout_token
        )
        if summary.token != body.checkout_token:
            raise CheckoutClosedError("Cette session de paiement est terminée, veuillez recharger le récapitulatif")
        view = selector.choose_method(body.checkout_token, method, pending=summary.to_pending(method), user=user)
        return view.to_dict()
    except CheckoutError:
        raise
    except Exception:
        raise _internal_error("choose_method")

@router.post("/invoices/{invoice_id}/method", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def choose_invoice_method(
    invoice_id: str,
    body: InvoiceMethodRequest,
    user: dict = Depends(require_user),
    selector: PaymentMethodSelector = Depends(checkout_service.get_selector),
):
    """Paiement d'une facture existante: aucune commande créée, seule la facture passe en 'pending'."""
    try:
        token = body.checkout_token or checkout_service.new_checkout_token()
        invoice = InvoicePayment(invoice_id=invoice_id, invoice_number=body.invoice_number)
        view = selector.choose_method(token, body.method, invoice=invoice, user=user)
        return view.to_dict()
    except CheckoutError:
        raise
    except Exception:
        raise _internal_error("choose_invoice_method")

@router.post("/confirm", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def confirm_bank_transfer(
    body: TokenRequest,
    user: Optional[dict] = Depends(get_optional_user),
    selector: PaymentMethodSelector = Depends(checkout_service.get_selector),
):
    try:
        return selector.confirm_bank_transfer(body.checkout_token, user).to_dict()
    except CheckoutError:
        raise
    except Exception:
        raise _internal_error("confirm_bank_transfer")

@router.post("/instructions", dependencies=[Depends(optional_rate_limit(times=20, seconds=60))])
def instructions_mounted(
    body: InstructionsRequest,
    user: Optional[dict] = Depends(get_optional_user),
    selector: PaymentMethodSelector = Depends(checkout_service.get_selector),
):
    """
    Montage de l'écran d'instructions: finalise automatiquement un virement confirmé.
    Appels répétés sans effet (outcome.status='noop').
    """
    try:
        view = selector.instructions_mounted(
            body.checkout_token,
            body.method,
            is_pending=body.is_pending,
            is_invoice_payment=body.is_invoice_payment,
            user=user,
        )
        return view.to_dict()
    except CheckoutError:
        raise
    except Exception:
        raise _internal_error("instructions_mounted")

@router.post("/payment-link", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def open_payment_link(
    body: TokenRequest,
    user: Optional[dict] = Depends(get_optional_user),
    selector: PaymentMethodSelector = Depends(checkout_service.get_selector),
):
    """Finalise la commande puis renvoie le lien externe à ouvrir (carte, PayPal, Revolut)."""
    try:
        return selector.open_payment_link(body.checkout_token, user).to_dict()
    except CheckoutError:
        raise
    except Exception:
        raise _internal_error("open_payment_link")

@router.post("/finalize", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def finalize(
    body: TokenRequest,
    user: Optional[dict] = Depends(get_optional_user),
    finalizer: OrderFinalizer = Depends(checkout_service.get_finalizer),
):
    """Relance explicite (après un échec): idempotent, 'noop' si déjà finalisé."""
    try:
        return finalizer.finalize(body.checkout_token, user).to_dict()
    except CheckoutError:
        raise
    except Exception:
        raise _internal_error("finalize")

@router.post("/change-method")
def change_method(
    body: TokenRequest,
    selector: PaymentMethodSelector = Depends(checkout_service.get_selector),
):
    try:
        return selector.change_method(body.checkout_token).to_dict()
    except CheckoutError:
        raise
    except Exception:
        raise _internal_error("change_method")
