from unittest.mock import MagicMock

from storefront.notifications import service as notifications

def test_notify_admin_invokes_edge_function(monkeypatch):
    client = MagicMock()
    monkeypatch.setattr("storefront.infra.supabase_client.get_service_supabase", lambda: client)
    assert notifications.notify_admin({"order_number": "482KXM"}) is True
    client.functions.invoke.assert_called_once_with(
        "send-admin-notification", invoke_options={"body": {"order_number": "482KXM"}}
    )

def test_notify_customer_without_email_is_skipped(monkeypatch):
    client = MagicMock()
    monkeypatch.setattr("storefront.infra.supabase_client.get_service_supabase", lambda: client)
    assert notifications.notify_customer({"to": None, "order_number": "482KXM"}) is True
    client.functions.invoke.assert_not_called()

def test_notification_failure_returns_false(monkeypatch):
    client = MagicMock()
    client.functions.invoke.side_effect = Exception("edge function down")
    monkeypatch.setattr("storefront.infra.supabase_client.get_service_supabase", lambda: client)
    assert notifications.notify_customer({"to": "ana@example.com", "order_number": "482KXM"}) is False
