import os

# Avant l'import de l'app: pas de Redis réel (rate limiting désactivé, pont de session en fakeredis)
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")
os.environ.setdefault("USE_FAKE_REDIS_FOR_TESTS", "1")

import pytest

from typing import Any, Dict, Generator
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

import fakeredis

from storefront.app import app as fastapi_app
from storefront.checkout import bridge as bridge_mod
from storefront.checkout.bridge import CheckoutSessionBridge
from storefront.utils.security import get_optional_user, require_user
from tests.fakes import FakeCheckoutRepository, FakeNotifier, make_pending

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

@pytest.fixture
def test_user() -> Dict[str, Any]:
    return {"id": "test-user", "email": "test@example.com", "metadata": {"full_name": "Test User"}, "token": "fake-token"}

@pytest.fixture
def authenticated(app, test_user):
    """Utilisateur connecté pour les dépendances require_user / get_optional_user."""
    app.dependency_overrides[require_user] = lambda: test_user
    app.dependency_overrides[get_optional_user] = lambda: test_user
    try:
        yield test_user
    finally:
        app.dependency_overrides.pop(require_user, None)
        app.dependency_overrides.pop(get_optional_user, None)

# Pont de session: un fakeredis neuf par test, aussi servi par get_bridge()
@pytest.fixture(autouse=True)
def bridge(monkeypatch) -> CheckoutSessionBridge:
    b = CheckoutSessionBridge(fakeredis.FakeRedis(decode_responses=True), ttl_seconds=60)
    monkeypatch.setattr(bridge_mod, "_bridge", b)
    return b

# Aucun accès Supabase réel pendant les tests
@pytest.fixture(autouse=True)
def mock_db_dependency(monkeypatch):
    monkeypatch.setattr("storefront.infra.supabase_client.get_supabase", lambda: MagicMock())
    monkeypatch.setattr("storefront.infra.supabase_client.get_service_supabase", lambda: MagicMock())


@pytest.fixture
def fake_repo() -> FakeCheckoutRepository:
    return FakeCheckoutRepository()

@pytest.fixture
def fake_notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def pending_factory():
    return make_pending
