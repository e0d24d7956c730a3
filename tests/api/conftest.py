from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from leadpulse.api.deps import get_context, get_settings
from leadpulse.api.routes import admin_reconcile, analytics, ingest
from leadpulse.app_shell.config import Settings
from leadpulse.app_shell.context import ServiceContext
from leadpulse.rules.models import Rules

ADMIN_TOKEN = "s3cret"


@pytest.fixture
def api_ctx(rules: Rules, clock, directory) -> ServiceContext:
    """In-memory context with a short reconcile timeout."""
    rules.reconciler.exclusive_timeout_seconds = 0.05
    return ServiceContext.create_in_memory(rules, clock=clock, directory=directory)


@pytest.fixture
def settings(tmp_path, monkeypatch) -> Settings:
    monkeypatch.setenv("LEADPULSE_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("LEADPULSE_ADMIN_TOKEN", raising=False)
    monkeypatch.delenv("LEADPULSE_TRUST_PROXY", raising=False)
    return Settings()


@pytest.fixture
def app(api_ctx: ServiceContext, settings: Settings) -> FastAPI:
    """Routers mounted as in the main app, over the in-memory context."""
    app = FastAPI()
    app.include_router(ingest.router, prefix="/api")
    app.include_router(analytics.router, prefix="/api/analytics")
    app.include_router(admin_reconcile.router, prefix="/api/admin/reconcile")
    app.dependency_overrides[get_context] = lambda: api_ctx
    app.dependency_overrides[get_settings] = lambda: settings
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture
def admin_client(app: FastAPI, settings: Settings) -> TestClient:
    """Client for an app that requires the admin token."""
    settings.admin_token = ADMIN_TOKEN
    return TestClient(app, headers={"X-Admin-Token": ADMIN_TOKEN})


@pytest.fixture
def proxied_client(app: FastAPI, settings: Settings) -> TestClient:
    """Client for an app deployed behind a trusted proxy."""
    settings.trust_forwarded_for = True
    return TestClient(app)
