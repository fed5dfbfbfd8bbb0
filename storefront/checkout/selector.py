"""
Machine à états du choix du moyen de paiement.

  idle -> method_chosen -> bank_info_shown            (virement: finalisation après confirmation explicite)
                        -> awaiting_external_redirect (carte/PayPal/Revolut: finalisation au clic sur le lien)
  -> finalizing -> finalized | failed

Paiement d'une facture existante: jamais de nouvelle commande, seule la facture est mise à jour.
Les déclenchements répétés pendant 'finalizing' ou après 'finalized' sont ignorés.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional, Union
import logging

from storefront.checkout import repository as checkout_repo
from storefront.checkout.bridge import CheckoutSessionBridge
from storefront.checkout.errors import (
    CheckoutError,
    CheckoutSessionMissingError,
    InvalidPaymentMethodError,
    InvoicePaymentError,
)
from storefront.checkout.finalizer import FinalizeOutcome, OrderFinalizer
from storefront.checkout.links import PaymentLinkBuilder
from storefront.checkout.models import CheckoutState, InvoicePayment, PaymentMethod, PendingOrder

logger = logging.getLogger(__name__)

LOCKED_STATES = frozenset({CheckoutState.FINALIZING, CheckoutState.FINALIZED})
CHOOSABLE_STATES = frozenset({
    CheckoutState.IDLE,
    CheckoutState.METHOD_CHOSEN,
    CheckoutState.BANK_INFO_SHOWN,
    CheckoutState.AWAITING_EXTERNAL_REDIRECT,
    CheckoutState.FAILED,
    CheckoutState.CANCELLED,
})

def coerce_method(method: Union[str, PaymentMethod, None]) -> PaymentMethod:
    if isinstance(method, PaymentMethod):
        return method
    try:
        return PaymentMethod(str(method or "").strip().lower())
    except ValueError:
        raise InvalidPaymentMethodError(f"Moyen de paiement invalide: {method}")

def _flag(value: Optional[str]) -> bool:
    return value == "1"


@dataclass
class InstructionsView:
    """Ce que l'écran d'instructions doit afficher pour une session de checkout."""
    key: str
    state: CheckoutState
    method: Optional[PaymentMethod] = None
    payment_reference: Optional[str] = None
    total: Optional[Decimal] = None
    is_pending: bool = False
    is_invoice_payment: bool = False
    payment_link: Optional[str] = None
    bank_details: Dict[str, str] = field(default_factory=dict)
    outcome: Optional[FinalizeOutcome] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checkout_token": self.key,
            "state": self.state.value,
            "method": self.method.value if self.method else None,
            "payment_reference": self.payment_reference,
            "total": f"{self.total:.2f}" if self.total is not None else None,
            "is_pending": self.is_pending,
            "is_invoice_payment": self.is_invoice_payment,
            "payment_link": self.payment_link,
            "bank_details": self.bank_details,
            "outcome": self.outcome.to_dict() if self.outcome else None,
        }


class PaymentMethodSelector:
    def __init__(
        self,
        bridge: CheckoutSessionBridge,
        finalizer: OrderFinalizer,
        links: PaymentLinkBuilder,
        repository=checkout_repo,
    ):
        self._bridge = bridge
        self._finalizer = finalizer
        self._links = links
        self._repo = repository

    # --- lecture ---
    def view(self, key: str) -> InstructionsView:
        state = self._bridge.get_state(key)
        meta = self._bridge.get_meta(key)
        method = PaymentMethod(meta["method"]) if meta.get("method") else None
        total = Decimal(meta["total"]) if meta.get("total") else None
        bank_details: Dict[str, str] = {}
        if method is PaymentMethod.BANK_TRANSFER and state is not CheckoutState.IDLE:
            bank_details = self._links.bank_details()
        return InstructionsView(
            key=key,
            state=state,
            method=method,
            payment_reference=meta.get("payment_reference") or None,
            total=total,
            is_pending=_flag(meta.get("is_pending")),
            is_invoice_payment=_flag(meta.get("is_invoice_payment")),
            payment_link=meta.get("payment_link") or None,
            bank_details=bank_details,
        )

    # --- transitions ---
    def choose_method(
        self,
        key: str,
        method: Union[str, PaymentMethod],
        pending: Optional[PendingOrder] = None,
        invoice: Optional[InvoicePayment] = None,
        user: Optional[Dict[str, Any]] = None,
    ) -> InstructionsView:
        method = coerce_method(method)
        if not self._links.is_enabled(method):
            raise InvalidPaymentMethodError(f"Moyen de paiement désactivé: {method.value}")
        if self._bridge.get_state(key) in LOCKED_STATES:
            logger.info("checkout.choose_method ignoré: finalisation en cours ou terminée key=%s", key)
            return self.view(key)
        if invoice is not None:
            return self._choose_for_invoice(key, method, invoice, user)
        if pending is None or not pending.cart_items:
            raise CheckoutSessionMissingError("Aucun panier à payer")

        # 'method_chosen' verrouille la session pendant l'écriture (non revendicable par le finalizer)
        if not self._bridge.compare_and_set_state(key, CHOOSABLE_STATES, CheckoutState.METHOD_CHOSEN):
            return self.view(key)

        pending = pending.model_copy(update={"method": method})
        reference = pending.payment_reference or ""
        link = self._links.build(method, pending.total, reference) if method.needs_external_link else None
        self._bridge.put(key, pending)
        self._bridge.clear_meta(key)
        self._bridge.update_meta(
            key,
            method=method.value,
            payment_reference=reference,
            total=f"{pending.total:.2f}",
            payment_link=link,
            is_pending="0",
            is_invoice_payment="0",
        )
        target = CheckoutState.BANK_INFO_SHOWN if method is PaymentMethod.BANK_TRANSFER else CheckoutState.AWAITING_EXTERNAL_REDIRECT
        if not self._bridge.compare_and_set_state(key, {CheckoutState.METHOD_CHOSEN}, target):
            logger.warning("checkout.choose_method: état modifié pendant l'écriture key=%s", key)
        return self.view(key)

    def _choose_for_invoice(
        self, key: str, method: PaymentMethod, invoice: InvoicePayment, user: Optional[Dict[str, Any]]
    ) -> InstructionsView:
        user_id = (user or {}).get("id")
        if not user_id:
            raise InvoicePaymentError("Connexion requise pour payer une facture")
        row = self._repo.update_invoice_payment(invoice.invoice_id, user_id, method)
        if not row:
            raise InvoicePaymentError("Impossible de mettre à jour la facture")

        number = row.get("invoice_number") or invoice.invoice_number or ""
        raw_total = row.get("total") if row.get("total") is not None else invoice.total
        total = Decimal(str(raw_total if raw_total is not None else 0))
        link = self._links.build(method, total, number) if method.needs_external_link else None
        self._bridge.clear_meta(key)
        self._bridge.update_meta(
            key,
            method=method.value,
            payment_reference=number,
            total=f"{total:.2f}",
            payment_link=link,
            is_pending="0",
            is_invoice_payment="1",
        )
        target = CheckoutState.BANK_INFO_SHOWN if method is PaymentMethod.BANK_TRANSFER else CheckoutState.AWAITING_EXTERNAL_REDIRECT
        self._bridge.set_state(key, target)
        return self.view(key)

    def confirm_bank_transfer(self, key: str, user: Optional[Dict[str, Any]] = None) -> InstructionsView:
        """Action explicite "créer la commande": la finalisation part au montage de l'écran d'instructions."""
        state = self._bridge.get_state(key)
        if state in LOCKED_STATES:
            return self.view(key)
        current = self.view(key)
        if state is not CheckoutState.BANK_INFO_SHOWN or current.method is not PaymentMethod.BANK_TRANSFER:
            raise CheckoutError("Aucun virement en attente de confirmation")
        self._bridge.update_meta(key, is_pending="1")
        current.is_pending = True
        return current

    def instructions_mounted(
        self,
        key: str,
        method: Union[str, PaymentMethod],
        is_pending: bool,
        is_invoice_payment: bool,
        user: Optional[Dict[str, Any]] = None,
    ) -> InstructionsView:
        method = coerce_method(method)
        current = self.view(key)
        if is_invoice_payment or current.is_invoice_payment:
            return current
        if not (is_pending and current.is_pending and method is PaymentMethod.BANK_TRANSFER):
            return current
        outcome = self._finalizer.finalize(key, user)
        current = self.view(key)
        current.outcome = outcome
        return current

    def open_payment_link(self, key: str, user: Optional[Dict[str, Any]] = None) -> InstructionsView:
        """
        Finalise d'abord (succès ou noop comptent comme "tenté"), puis renvoie le lien externe.
        Une erreur fatale remonte: pas de lien.
        """
        current = self.view(key)
        if current.method is None or not current.method.needs_external_link:
            raise InvalidPaymentMethodError("Aucun lien de paiement pour ce moyen de paiement")
        if current.is_invoice_payment:
            return current
        outcome = self._finalizer.finalize(key, user)
        current = self.view(key)
        current.outcome = outcome
        return current

    def change_method(self, key: str) -> InstructionsView:
        """
        Retour à 'idle': les coordonnées affichées sont oubliées.
        Le PendingOrder n'est supprimé que si aucune finalisation n'a été tentée.
        """
        state = self._bridge.get_state(key)
        if state in LOCKED_STATES:
            return self.view(key)
        if not self._bridge.compare_and_set_state(key, {state}, CheckoutState.IDLE):
            return self.view(key)
        if state is not CheckoutState.FAILED:
            self._bridge.delete(key)
        self._bridge.clear_meta(key)
        return self.view(key)
