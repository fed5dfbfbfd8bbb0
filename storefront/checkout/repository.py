"""
Accès aux données pour la feature 'checkout' (client service-role: le checkout invité n'a pas de token).

Convention: les écritures retournent la ligne (dict) / True en cas de succès, None / False en cas d'échec
(l'exception est loggée ici); c'est l'orchestrateur qui décide si l'échec est fatal.
Seule exception: la violation d'unicité sur orders.order_number lève DuplicateOrderError.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from postgrest.exceptions import APIError

import storefront.infra.supabase_client as supabase_client
from storefront.checkout.errors import DuplicateOrderError
from storefront.checkout.models import Coupon, Invoice, Order, OrderItem, PaymentMethod, PAYMENT_STATUS_PENDING

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"

def _row(model) -> Dict[str, Any]:
    # mode="json": Decimal -> str, datetime -> ISO 8601 (acceptés par PostgREST)
    return model.model_dump(mode="json", exclude={"id"})

def _first(res) -> Optional[Dict[str, Any]]:
    rows = res.data or []
    if isinstance(rows, list):
        return rows[0] if rows else None
    return rows or None

# module storefront.checkout.repository
def insert_order(order: Order) -> Optional[Dict[str, Any]]:
    """
    Insère la ligne 'orders'.
    - DuplicateOrderError si order_number existe déjà (contrainte unique)
    - None en cas d'autre échec
    """
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .insert(_row(order))
            .execute()
        )
        return _first(res)
    except APIError as e:
        if str(getattr(e, "code", "") or "") == UNIQUE_VIOLATION:
            logger.warning("checkout.repository.insert_order: order_number déjà présent %s", order.order_number)
            raise DuplicateOrderError(order.order_number)
        logger.exception("checkout.repository.insert_order failed order_number=%s", order.order_number)
        return None
    except Exception:
        logger.exception("checkout.repository.insert_order failed order_number=%s", order.order_number)
        return None

def insert_order_items(items: List[OrderItem]) -> bool:
    if not items:
        return True
    try:
        (
            supabase_client.get_service_supabase()
            .table("order_items")
            .insert([item.model_dump(mode="json") for item in items])
            .execute()
        )
        return True
    except Exception:
        logger.exception("checkout.repository.insert_order_items failed order_id=%s", items[0].order_id)
        return False

def increment_coupon_usage(coupon: Coupon) -> bool:
    """
    times_used + 1 (lecture puis écriture, sans verrou ni version):
    deux commandes concurrentes peuvent consommer un coupon à usage limité au-delà de max_uses.
    """
    try:
        client = supabase_client.get_service_supabase()
        column, value = ("id", coupon.id) if coupon.id else ("code", coupon.code)
        res = client.table("coupons").select("times_used").eq(column, value).limit(1).execute()
        current = _first(res)
        times_used = int((current or {}).get("times_used") or coupon.times_used or 0)
        client.table("coupons").update({"times_used": times_used + 1}).eq(column, value).execute()
        return True
    except Exception:
        logger.exception("checkout.repository.increment_coupon_usage failed code=%s", coupon.code)
        return False

def mark_loyalty_redemption_used(coupon_code: str) -> bool:
    try:
        (
            supabase_client.get_service_supabase()
            .table("loyalty_redemptions")
            .update({"status": "used", "used_at": datetime.now(timezone.utc).isoformat()})
            .eq("coupon_code", coupon_code)
            .execute()
        )
        return True
    except Exception:
        logger.exception("checkout.repository.mark_loyalty_redemption_used failed code=%s", coupon_code)
        return False

def insert_invoice(invoice: Invoice) -> Optional[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("invoices")
            .insert(_row(invoice))
            .execute()
        )
        return _first(res)
    except Exception:
        logger.exception("checkout.repository.insert_invoice failed invoice_number=%s", invoice.invoice_number)
        return None

def update_invoice_payment(invoice_id: str, user_id: str, method: PaymentMethod) -> Optional[Dict[str, Any]]:
    """
    Paiement d'une facture existante: payment_status='pending' + payment_method.
    - Filtré par id ET user_id (une facture d'un autre utilisateur ne matche pas -> None)
    """
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("invoices")
            .update({"payment_status": PAYMENT_STATUS_PENDING, "payment_method": method.value})
            .eq("id", invoice_id)
            .eq("user_id", user_id)
            .execute()
        )
        return _first(res)
    except Exception:
        logger.exception("checkout.repository.update_invoice_payment failed invoice_id=%s", invoice_id)
        return None

def fetch_profile(user_id: str) -> Optional[Dict[str, Any]]:
    if not user_id:
        return None
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("profiles")
            .select("full_name, email")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        return _first(res)
    except Exception:
        logger.exception("checkout.repository.fetch_profile failed user_id=%s", user_id)
        return None

def fetch_coupon_by_code(code: str) -> Optional[Dict[str, Any]]:
    """Coupon par code (insensible à la casse côté saisie: les codes sont stockés en majuscules)."""
    code = (code or "").strip().upper()
    if not code:
        return None
    try:
        res = (
            supabase_client.get_supabase()
            .table("coupons")
            .select("*")
            .eq("code", code)
            .limit(1)
            .execute()
        )
        return _first(res)
    except Exception:
        logger.exception("checkout.repository.fetch_coupon_by_code failed code=%s", code)
        return None
