"""Server test fixtures."""

import pytest
from fastapi.testclient import TestClient

from sharepad.config.settings import get_settings
from sharepad.server.deps import set_hub, set_service
from sharepad.server.events import WebSocketHub
from sharepad.server.main import app
from sharepad.service import Sharepad


@pytest.fixture
def hub():
    return WebSocketHub()


@pytest.fixture
def api_service(registry, store, assembler, reaper, hub):
    """Service broadcasting through the WebSocket hub."""
    return Sharepad(registry, store, assembler, reaper, notifier=hub)


@pytest.fixture
def client(api_service, hub, settings):
    """Test client with the service installed (lifespan is not run)."""
    set_service(api_service)
    set_hub(hub)
    app.dependency_overrides[get_settings] = lambda: settings

    yield TestClient(app)

    app.dependency_overrides.clear()
    set_service(None)
    set_hub(None)
