from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from vista_coupons import __version__
from vista_coupons.core.settings import settings
from vista_coupons.db.session import build_engine, build_session_factory, init_models
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.branches import locator_from_settings
from .services.journey import CouponJourney
from .services.ledger import LedgerStore, SqlKeyValueBackend
from .services.promotions import PromotionResolver, load_promotion_calendar
from .services.usage_log import UsageLogger
from .services.validation import IdentityValidationClient

APP_VERSION = __version__
SERVICE_NAME = "vista-coupons"


def _resolve_calendar_path() -> Path:
    path = Path(settings.promotions_path)
    if not path.is_absolute():
        path = Path(__file__).resolve().parent.parent.parent / path
    return path


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine = build_engine()
    await init_models(engine)
    session_factory = build_session_factory(engine)

    calendar_path = _resolve_calendar_path()
    calendar = load_promotion_calendar(calendar_path, default_timezone=settings.timezone)
    zone = ZoneInfo(calendar.timezone)
    resolver = PromotionResolver(calendar.promotions, clock=lambda: datetime.now(zone))

    http_client = httpx.AsyncClient()
    validator = IdentityValidationClient.from_settings(settings, http_client=http_client)
    usage_logger = UsageLogger(
        settings.usage_log_endpoint_url,
        http_client=http_client,
        enabled=settings.usage_log_enabled,
        timeout_seconds=settings.usage_log_timeout_seconds,
        timezone=calendar.timezone,
    )
    journey = CouponJourney.from_settings(
        settings,
        validator=validator,
        resolver=resolver,
        ledger_store=LedgerStore(SqlKeyValueBackend(session_factory)),
        usage_logger=usage_logger,
        branch_locator=locator_from_settings(settings),
    )
    await journey.start()
    app.state.coupon_journey = journey

    logger.info(
        "Promotion calendar loaded",
        calendar_path=str(calendar_path),
        timezone=calendar.timezone,
        promotions=len(calendar.promotions),
    )
    if not settings.validation_endpoint_url:
        logger.warning("Identity validation endpoint not configured; member login will fail")
    if not usage_logger.enabled:
        logger.info("Usage logging disabled", reason="usage_log_endpoint_url unset or usage_log_enabled is false")

    try:
        yield
    finally:
        await journey.aclose()
        await validator.aclose()
        await http_client.aclose()
        await engine.dispose()


def create_app() -> FastAPI:
    """Application factory for the Vista coupon kiosk API."""
    configure_logging(
        service_name=SERVICE_NAME,
        environment=settings.environment,
        version=APP_VERSION,
        device_id=settings.device_id,
    )

    app = FastAPI(
        title="Vista Coupons API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    if settings.tracing_enabled:
        configure_tracing(
            app,
            service_name=SERVICE_NAME,
            service_version=APP_VERSION,
            environment=settings.environment,
            device_id=settings.device_id,
        )

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
