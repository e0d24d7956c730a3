import hmac
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from leadpulse.app_shell.config import Settings
from leadpulse.app_shell.context import ServiceContext
from leadpulse.components.aggregates import AggregateStore
from leadpulse.components.events import EventStorePort
from leadpulse.components.ingestion import DirectoryPort, IngestionService
from leadpulse.components.reconciler import Reconciler
from leadpulse.rules.loader import load_rules
from leadpulse.rules.models import Rules


# --- Settings ---
@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules() -> Rules:
    return load_rules(get_settings().rules_path)


# --- Context ---
@lru_cache
def get_context() -> ServiceContext:
    """Process-wide pipeline; the scope guard and pending queue live here."""
    settings = get_settings()
    return ServiceContext.create(settings.db_path, get_rules())


# --- Component Services ---
def get_ingestion_service(ctx: ServiceContext = Depends(get_context)) -> IngestionService:
    return ctx.ingestion


def get_aggregate_store(ctx: ServiceContext = Depends(get_context)) -> AggregateStore:
    return ctx.aggregates


def get_reconciler(ctx: ServiceContext = Depends(get_context)) -> Reconciler:
    return ctx.reconciler


def get_event_store(ctx: ServiceContext = Depends(get_context)) -> EventStorePort:
    return ctx.event_store


def get_directory(ctx: ServiceContext = Depends(get_context)) -> DirectoryPort:
    return ctx.directory


# --- Request helpers ---
def get_client_ip(request: Request, settings: Settings = Depends(get_settings)) -> str | None:
    """Client IP; the first X-Forwarded-For hop when the proxy is trusted."""
    forwarded = request.headers.get("x-forwarded-for") if settings.trust_forwarded_for else None
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


# --- Admin ---
def require_admin(
    x_admin_token: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
) -> None:
    """Admin routes are open when no token is configured."""
    expected = settings.admin_token
    if expected is None:
        return
    if x_admin_token is None or not hmac.compare_digest(x_admin_token, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token",
        )
