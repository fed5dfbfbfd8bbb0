"""
Finalisation idempotente: PendingOrder -> orders + order_items + invoices (+ coupon, notifications).

Déroulé (saga):
  0) claim: compare-and-set de l'état de session vers 'finalizing' (refus -> noop)
  1) lecture du PendingOrder (absent -> noop)
  2) étapes, chacune avec sa politique d'échec:
     - FATAL: abandon, état 'failed', le PendingOrder est conservé pour une nouvelle tentative
     - REPORTED: le flux continue, un avertissement est renvoyé à l'appelant
     - SILENT: le flux continue, log uniquement
  3) nettoyage: suppression du PendingOrder, état 'finalized'

Le statut de paiement est toujours 'pending' à la création: la confirmation du paiement
est un processus externe.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import json
import logging

from storefront.config import ADMIN_ORDERS_LINK, FINALIZE_LEASE_SECONDS, INVOICE_DUE_DAYS
from storefront.checkout import repository as checkout_repo
from storefront.checkout.bridge import CheckoutSessionBridge
from storefront.checkout.errors import DuplicateOrderError, OrderCreationError
from storefront.checkout.models import (
    CartItem,
    CheckoutState,
    Invoice,
    Order,
    OrderItem,
    PAYMENT_STATUS_PENDING,
    PendingOrder,
)
from storefront.checkout.reference import ensure_payment_reference
from storefront.notifications import service as notifications
from storefront.pricing import calculator

logger = logging.getLogger(__name__)

# États depuis lesquels une finalisation peut être revendiquée.
# 'method_chosen' en est exclu: le PendingOrder est en cours d'écriture par choose_method.
CLAIMABLE_STATES = frozenset({
    CheckoutState.IDLE,
    CheckoutState.BANK_INFO_SHOWN,
    CheckoutState.AWAITING_EXTERNAL_REDIRECT,
    CheckoutState.FAILED,
})


class StepPolicy(str, Enum):
    FATAL = "fatal"
    REPORTED = "reported"
    SILENT = "silent"


@dataclass
class FinalizeContext:
    key: str
    pending: PendingOrder
    user_id: Optional[str]
    order_number: str
    notes: Optional[str] = None
    customer_name: str = "Client"
    customer_email: Optional[str] = None
    order: Optional[Dict[str, Any]] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def order_id(self) -> Optional[str]:
        return (self.order or {}).get("id")


@dataclass(frozen=True)
class FinalizeStep:
    name: str
    run: Callable[[FinalizeContext], Any]
    policy: StepPolicy
    message: str = ""


@dataclass
class FinalizeOutcome:
    status: str  # "created" | "noop"
    order: Optional[Dict[str, Any]] = None
    order_number: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    clear_cart: bool = False
    reason: Optional[str] = None

    @property
    def created(self) -> bool:
        return self.status == "created"

    @classmethod
    def noop(cls, reason: str, order_number: Optional[str] = None) -> "FinalizeOutcome":
        return cls(status="noop", reason=reason, order_number=order_number)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "order_number": self.order_number,
            "order_id": (self.order or {}).get("id"),
            "warnings": list(self.warnings),
            "clear_cart": self.clear_cart,
            "reason": self.reason,
        }


def _item_annotation(item: CartItem) -> Optional[str]:
    if item.is_gift_card:
        parts = [f"Carte cadeau {item.gift_card_code or ''}".strip()]
        if item.gift_card_recipient:
            parts.append(f"pour {item.gift_card_recipient}")
        if item.gift_card_sender:
            parts.append(f"de la part de {item.gift_card_sender}")
        line = " ".join(parts)
        if item.gift_card_message:
            line += f" - message: {item.gift_card_message}"
        return line
    if item.custom_text:
        return f"{item.name}: texte personnalisé \"{item.custom_text}\""
    return None

def build_order_notes(pending: PendingOrder) -> Optional[str]:
    """Annotations par article puis, si un coupon a été appliqué, la ligne du coupon."""
    lines = [a for a in (_item_annotation(i) for i in pending.cart_items) if a]
    if pending.applied_coupon is not None:
        lines.append(f"Coupon appliqué: {pending.applied_coupon.code} (-€{calculator.round2(pending.coupon_discount):.2f})")
    return "\n".join(lines) or None

def consolidate_order_items(items: List[CartItem], order_id: Optional[str]) -> List[OrderItem]:
    """
    Une ligne par (produit, matériau, couleur, personnalisations); les quantités sont cumulées.
    Les cartes cadeaux n'ont pas de product_id.
    """
    merged: Dict[str, OrderItem] = {}
    for item in items:
        product_id = None if item.is_gift_card else (item.product_id or item.id)
        key = "|".join([
            str(product_id),
            str(item.material_id),
            str(item.color_id),
            json.dumps(item.customization_selections or [], sort_keys=True),
        ])
        existing = merged.get(key)
        if existing:
            existing.quantity += item.quantity
            existing.total_price = existing.unit_price * existing.quantity
            continue
        merged[key] = OrderItem(
            order_id=order_id,
            product_id=product_id,
            product_name=item.name,
            quantity=item.quantity,
            unit_price=item.price,
            total_price=item.price * item.quantity,
            selected_material=item.material_id,
            selected_color=item.color_id,
            custom_text=item.custom_text,
            customization_selections=item.customization_selections,
        )
    return list(merged.values())

def _user_id(user: Optional[Dict[str, Any]]) -> Optional[str]:
    if not user:
        return None
    return user.get("id") or None

def _money(value: Decimal) -> float:
    return float(calculator.round2(value))


class OrderFinalizer:
    def __init__(
        self,
        bridge: CheckoutSessionBridge,
        repository=checkout_repo,
        notifier=notifications,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        invoice_due_days: int = INVOICE_DUE_DAYS,
        lease_seconds: int = FINALIZE_LEASE_SECONDS,
    ):
        self._bridge = bridge
        self._repo = repository
        self._notifier = notifier
        self._clock = clock
        self._invoice_due_days = invoice_due_days
        self._lease_seconds = lease_seconds
        self.steps: List[FinalizeStep] = [
            FinalizeStep("load_profile", self._load_profile, StepPolicy.SILENT),
            FinalizeStep("create_order", self._create_order, StepPolicy.FATAL,
                         "Impossible de créer la commande, veuillez réessayer."),
            FinalizeStep("create_order_items", self._create_order_items, StepPolicy.REPORTED,
                         "Commande créée, mais ses articles n'ont pas pu être enregistrés. Notre équipe va la vérifier."),
            FinalizeStep("apply_coupon", self._apply_coupon, StepPolicy.SILENT),
            FinalizeStep("create_invoice", self._create_invoice, StepPolicy.SILENT),
            FinalizeStep("notify_admin", self._notify_admin, StepPolicy.SILENT),
            FinalizeStep("notify_customer", self._notify_customer, StepPolicy.SILENT),
        ]

    def finalize(self, key: str, user: Optional[Dict[str, Any]] = None) -> FinalizeOutcome:
        if not self._bridge.compare_and_set_state(
            key, CLAIMABLE_STATES, CheckoutState.FINALIZING, ttl=self._lease_seconds
        ):
            logger.info("checkout.finalize: déjà en cours ou terminé key=%s state=%s", key, self._bridge.get_state(key).value)
            return FinalizeOutcome.noop("already_handled")

        # Toute sortie anormale après le claim rend la session à 'failed' (nouvelle tentative possible)
        try:
            return self._finalize_claimed(key, user)
        except OrderCreationError:
            self._release_claim(key)
            raise
        except BaseException:
            logger.exception("checkout.finalize: erreur inattendue key=%s", key)
            self._release_claim(key)
            raise

    def _release_claim(self, key: str) -> None:
        try:
            self._bridge.set_state(key, CheckoutState.FAILED)
        except Exception:
            # Store injoignable: le bail de 'finalizing' expire seul
            logger.exception("checkout.finalize: impossible de repasser key=%s en 'failed'", key)

    def _finalize_claimed(self, key: str, user: Optional[Dict[str, Any]]) -> FinalizeOutcome:
        pending = self._bridge.get(key)
        if pending is None:
            # Déjà finalisé (bridge vidé) ou jamais créé: rien à faire
            self._bridge.set_state(key, CheckoutState.CANCELLED)
            return FinalizeOutcome.noop("no_pending_order")

        shipping_info, order_number = ensure_payment_reference(pending.shipping_info)
        if pending.payment_reference != order_number:
            logger.warning("checkout.finalize: référence absente du pending order, générée %s", order_number)
            pending = pending.model_copy(update={"shipping_info": shipping_info})

        ctx = FinalizeContext(
            key=key,
            pending=pending,
            user_id=_user_id(user),
            order_number=order_number,
            notes=build_order_notes(pending),
            customer_name=shipping_info.get("fullName") or shipping_info.get("full_name") or "Client",
            customer_email=shipping_info.get("email"),
        )

        try:
            for step in self.steps:
                self._run_step(step, ctx)
        except DuplicateOrderError as e:
            logger.info("checkout.finalize: commande %s déjà créée par un autre contexte", e.order_number)
            self._bridge.delete(key)
            self._bridge.set_state(key, CheckoutState.FINALIZED)
            return FinalizeOutcome.noop("duplicate_order", order_number=e.order_number)

        self._bridge.delete(key)
        self._bridge.set_state(key, CheckoutState.FINALIZED)
        logger.info("checkout.finalize: commande %s créée warnings=%s", order_number, len(ctx.warnings))
        return FinalizeOutcome(
            status="created",
            order=ctx.order,
            order_number=order_number,
            warnings=ctx.warnings,
            clear_cart=True,
        )

    def _run_step(self, step: FinalizeStep, ctx: FinalizeContext) -> None:
        error: Optional[BaseException] = None
        try:
            ok = step.run(ctx)
        except DuplicateOrderError:
            raise
        except Exception as e:
            ok, error = False, e
        if ok:
            return

        if step.policy is StepPolicy.FATAL:
            logger.error("checkout.finalize step=%s fatal order_number=%s", step.name, ctx.order_number, exc_info=error)
            raise OrderCreationError(step.message) from error
        if step.policy is StepPolicy.REPORTED:
            logger.warning("checkout.finalize step=%s failed order_number=%s", step.name, ctx.order_number, exc_info=error)
            ctx.warnings.append(step.message)
            return
        logger.warning("checkout.finalize step=%s ignored failure order_number=%s", step.name, ctx.order_number, exc_info=error)

    # --- étapes ---
    def _load_profile(self, ctx: FinalizeContext) -> bool:
        if not ctx.user_id:
            return True
        profile = self._repo.fetch_profile(ctx.user_id)
        if profile is None:
            return False
        ctx.customer_email = profile.get("email") or ctx.customer_email
        ctx.customer_name = profile.get("full_name") or ctx.customer_name
        return True

    def _create_order(self, ctx: FinalizeContext) -> bool:
        p = ctx.pending
        address = {k: v for k, v in ctx.pending.shipping_info.items() if k != "payment_reference"}
        order = Order(
            order_number=ctx.order_number,
            user_id=ctx.user_id,
            subtotal=calculator.round2(p.subtotal),
            tax=calculator.round2(p.tax),
            shipping=calculator.round2(p.shipping),
            discount=calculator.round2(p.coupon_discount),
            total=calculator.round2(p.total),
            payment_method=p.method,
            payment_status=PAYMENT_STATUS_PENDING,
            shipping_address=address,
            billing_address=address,
            notes=ctx.notes,
        )
        ctx.order = self._repo.insert_order(order)
        return bool(ctx.order)

    def _create_order_items(self, ctx: FinalizeContext) -> bool:
        return self._repo.insert_order_items(consolidate_order_items(ctx.pending.cart_items, ctx.order_id))

    def _apply_coupon(self, ctx: FinalizeContext) -> bool:
        coupon = ctx.pending.applied_coupon
        if coupon is None:
            return True
        ok = self._repo.increment_coupon_usage(coupon)
        # Coupon issu d'un échange de points fidélité: usage unique
        if coupon.max_uses == 1:
            ok = self._repo.mark_loyalty_redemption_used(coupon.code) and ok
        return ok

    def _create_invoice(self, ctx: FinalizeContext) -> bool:
        p = ctx.pending
        issued = self._clock()
        invoice = Invoice(
            invoice_number=ctx.order_number,
            order_id=ctx.order_id,
            user_id=ctx.user_id,
            subtotal=calculator.round2(p.subtotal),
            tax=calculator.round2(p.tax),
            shipping=calculator.round2(p.shipping),
            discount=calculator.round2(p.coupon_discount),
            coupon_code=p.applied_coupon.code if p.applied_coupon else None,
            coupon_discount=calculator.round2(p.coupon_discount) if p.applied_coupon else None,
            total=calculator.round2(p.total),
            payment_method=p.method,
            payment_status=PAYMENT_STATUS_PENDING,
            issue_date=issued,
            due_date=issued + timedelta(days=self._invoice_due_days),
            notes=f"Facture pour la commande {ctx.order_number}",
        )
        return bool(self._repo.insert_invoice(invoice))

    def _notify_admin(self, ctx: FinalizeContext) -> bool:
        return self._notifier.notify_admin({
            "type": "order",
            "subject": "Nouvelle commande",
            "message": f"Nouvelle commande de €{calculator.round2(ctx.pending.total):.2f}",
            "order_number": ctx.order_number,
            "customer_name": ctx.customer_name,
            "customer_email": ctx.customer_email,
            "link": ADMIN_ORDERS_LINK,
        })

    def _notify_customer(self, ctx: FinalizeContext) -> bool:
        p = ctx.pending
        return self._notifier.notify_customer({
            "to": ctx.customer_email,
            "order_number": ctx.order_number,
            "subtotal": _money(p.subtotal),
            "tax": _money(p.tax),
            "shipping": _money(p.shipping),
            "discount": _money(p.coupon_discount),
            "total": _money(p.total),
            "customer_name": ctx.customer_name,
            "items": [
                {"product_name": i.name, "quantity": i.quantity, "unit_price": _money(i.price)}
                for i in p.cart_items
            ],
        })
