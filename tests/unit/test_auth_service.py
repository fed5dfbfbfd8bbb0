import types
from unittest.mock import MagicMock

from storefront.auth import service as auth_service

def test_get_user_from_token_normalizes_object_user(monkeypatch):
    client = MagicMock()
    client.auth.get_user.return_value = types.SimpleNamespace(
        user=types.SimpleNamespace(id="u1", email="a@b.c", user_metadata={"full_name": "Ana"})
    )
    monkeypatch.setattr("storefront.infra.supabase_client.get_supabase", lambda: client)

    user = auth_service.get_user_from_token("tok")
    assert user == {"id": "u1", "email": "a@b.c", "metadata": {"full_name": "Ana"}, "token": "tok"}
    client.auth.get_user.assert_called_once_with("tok")

def test_get_user_from_token_without_user(monkeypatch):
    client = MagicMock()
    client.auth.get_user.return_value = types.SimpleNamespace(user=None)
    monkeypatch.setattr("storefront.infra.supabase_client.get_supabase", lambda: client)

    user = auth_service.get_user_from_token("tok")
    assert user["id"] is None
    assert user["metadata"] == {}
