"""
Cas d'usage 'checkout': orchestre pricing, settings, shipping, référence et machine à états.

Une tentative de checkout est identifiée par un jeton de continuation (checkout_token) émis au
récapitulatif et renvoyé par le client à chaque étape suivante; il sert de clé au pont Redis.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging
import secrets

from storefront.checkout import repository as checkout_repo
from storefront.checkout.bridge import CheckoutSessionBridge, get_bridge
from storefront.checkout.errors import CheckoutSessionMissingError
from storefront.checkout.finalizer import OrderFinalizer
from storefront.checkout.links import PaymentLinkBuilder
from storefront.checkout.models import CartItem, CheckoutState, Coupon, PaymentMethod, PendingOrder, ShippingQuote
from storefront.checkout.reference import ensure_payment_reference
from storefront.checkout.selector import PaymentMethodSelector
from storefront.pricing.calculator import PriceBreakdown, compute_breakdown, compute_subtotal, is_coupon_applicable
from storefront.settings import repository as settings_repo
from storefront.shipping import service as shipping_service

logger = logging.getLogger(__name__)

# Tentatives terminées: leur jeton n'est plus réutilisable pour un nouveau panier
CLOSED_STATES = frozenset({CheckoutState.FINALIZED, CheckoutState.CANCELLED})

def new_checkout_token() -> str:
    return secrets.token_urlsafe(16)

def load_coupon(code: Optional[str]) -> Optional[Coupon]:
    row = checkout_repo.fetch_coupon_by_code(code) if code else None
    if not row:
        return None
    try:
        return Coupon.model_validate(row)
    except ValueError:
        logger.exception("checkout.service: coupon illisible code=%s", code)
        return None


@dataclass
class CheckoutSummary:
    token: str
    cart_items: List[CartItem]
    shipping_info: Dict[str, Any]
    coupon: Optional[Coupon]
    coupon_code: Optional[str]
    shipping_quote: ShippingQuote
    breakdown: PriceBreakdown
    payment_methods: List[PaymentMethod] = field(default_factory=list)

    @property
    def payment_reference(self) -> str:
        return self.shipping_info["payment_reference"]

    def to_pending(self, method: PaymentMethod) -> PendingOrder:
        b = self.breakdown
        return PendingOrder(
            cart_items=self.cart_items,
            shipping_info=self.shipping_info,
            subtotal=b.subtotal,
            tax=b.tax,
            shipping=b.effective_shipping,
            coupon_discount=b.coupon_discount,
            applied_coupon=self.coupon,
            total=b.total,
            method=method,
        )

    def to_dict(self) -> Dict[str, Any]:
        b = self.breakdown
        return {
            "checkout_token": self.token,
            "payment_reference": self.payment_reference,
            "shipping_info": self.shipping_info,
            "subtotal": f"{b.subtotal:.2f}",
            "coupon_discount": f"{b.coupon_discount:.2f}",
            "tax": f"{b.tax:.2f}",
            "shipping": f"{b.effective_shipping:.2f}",
            "quoted_shipping": f"{b.quoted_shipping:.2f}",
            "total": f"{b.total:.2f}",
            "coupon_code": self.coupon.code if self.coupon else None,
            "coupon_rejected": bool(self.coupon_code) and self.coupon is None,
            "shipping_is_free": self.shipping_quote.is_free or b.effective_shipping == Decimal("0"),
            "payment_methods": [m.value for m in self.payment_methods],
        }

# module storefront.checkout.service
def build_summary(
    cart_items: List[CartItem],
    shipping_info: Optional[Dict[str, Any]],
    coupon_code: Optional[str] = None,
    token: Optional[str] = None,
    now: Optional[datetime] = None,
    bridge: Optional[CheckoutSessionBridge] = None,
) -> CheckoutSummary:
    """
    Récapitulatif: TVA (site_settings) + devis de livraison + coupon -> PriceBreakdown.
    - La référence de paiement déjà présente dans shipping_info est conservée (rechargements)
    - Un jeton dont la tentative est terminée (finalized/cancelled) est remplacé, avec sa référence:
      le nouveau panier ouvre une nouvelle tentative
    - Un coupon non applicable est ignoré (coupon_rejected=True)
    """
    if not cart_items:
        raise CheckoutSessionMissingError("Panier vide")
    if not shipping_info:
        raise CheckoutSessionMissingError("Informations de livraison manquantes")

    if token and (bridge or get_bridge()).get_state(token) in CLOSED_STATES:
        logger.info("checkout.service: tentative %s terminée, nouveau jeton émis", token)
        token = None
        shipping_info = {k: v for k, v in shipping_info.items() if k != "payment_reference"}

    info, _ = ensure_payment_reference(shipping_info)
    subtotal = compute_subtotal(cart_items)
    coupon = load_coupon(coupon_code)
    if coupon is not None and not is_coupon_applicable(coupon, subtotal, now=now):
        logger.info("checkout.service: coupon non applicable code=%s", coupon.code)
        coupon = None

    product_ids = sorted({str(i.product_id or i.id) for i in cart_items if not i.is_gift_card})
    quote = shipping_service.quote(
        info.get("country"),
        info.get("postal_code") or info.get("postalCode"),
        subtotal,
        product_ids,
    )
    tax_settings = settings_repo.get_tax_settings()
    breakdown = compute_breakdown(cart_items, coupon, tax_settings, quote.cost, now=now)
    return CheckoutSummary(
        token=token or new_checkout_token(),
        cart_items=list(cart_items),
        shipping_info=info,
        coupon=coupon,
        coupon_code=coupon_code,
        shipping_quote=quote,
        breakdown=breakdown,
        payment_methods=settings_repo.enabled_payment_methods(),
    )

def get_finalizer() -> OrderFinalizer:
    return OrderFinalizer(get_bridge())

def get_selector() -> PaymentMethodSelector:
    return PaymentMethodSelector(get_bridge(), get_finalizer(), PaymentLinkBuilder())
