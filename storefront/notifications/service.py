"""
Notifications de nouvelle commande via les edge functions Supabase.
- send-admin-notification: alerte back-office
- send-order-confirmation: email de confirmation au client
Best-effort: retourne False en cas d'échec (loggé), ne lève jamais.
"""
from typing import Any, Dict
import logging

import storefront.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

ADMIN_FUNCTION = "send-admin-notification"
CUSTOMER_FUNCTION = "send-order-confirmation"

def _invoke(function_name: str, body: Dict[str, Any]) -> bool:
    try:
        supabase_client.get_service_supabase().functions.invoke(
            function_name,
            invoke_options={"body": body},
        )
        return True
    except Exception:
        logger.exception("notifications.%s failed order_number=%s", function_name, body.get("order_number"))
        return False

def notify_admin(payload: Dict[str, Any]) -> bool:
    return _invoke(ADMIN_FUNCTION, payload)

def notify_customer(payload: Dict[str, Any]) -> bool:
    if not payload.get("to"):
        logger.info("notifications: pas d'email client, confirmation ignorée order_number=%s", payload.get("order_number"))
        return True
    return _invoke(CUSTOMER_FUNCTION, payload)
