"""
Module 'checkout' (feature-first): point d'entrée public.
Réunit modèles, référence de paiement, pont de session Redis, machine à états du moyen de paiement
et finalisation idempotente des commandes.
"""

from .models import (
    CartItem,
    CheckoutState,
    Coupon,
    DiscountType,
    InvoicePayment,
    PaymentMethod,
    PendingOrder,
    TaxSettings,
)
from .errors import (
    CheckoutError,
    CheckoutClosedError,
    CheckoutSessionMissingError,
    InvalidPaymentMethodError,
    InvoicePaymentError,
    OrderCreationError,
)
from .reference import generate_payment_reference, ensure_payment_reference
from .bridge import CheckoutSessionBridge, get_bridge
from .finalizer import FinalizeOutcome, OrderFinalizer, StepPolicy
from .selector import InstructionsView, PaymentMethodSelector

__all__ = [
    # models
    "CartItem",
    "CheckoutState",
    "Coupon",
    "DiscountType",
    "InvoicePayment",
    "PaymentMethod",
    "PendingOrder",
    "TaxSettings",
    # errors
    "CheckoutError",
    "CheckoutClosedError",
    "CheckoutSessionMissingError",
    "InvalidPaymentMethodError",
    "InvoicePaymentError",
    "OrderCreationError",
    # reference
    "generate_payment_reference",
    "ensure_payment_reference",
    # session
    "CheckoutSessionBridge",
    "get_bridge",
    # finalisation
    "FinalizeOutcome",
    "OrderFinalizer",
    "StepPolicy",
    "InstructionsView",
    "PaymentMethodSelector",
]
