"""
Stock Sync Service
Keeps Shopify inventory consistent across alias groups of SKUs and derives
bundle quantities from their components, driven by inventory webhooks.
"""

from fastapi import FastAPI
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
import os

import uvicorn

from shared.core import ServiceHealth, HealthStatus, check_result, setup_logging, RequestLoggingMiddleware, get_logger
from stock_sync.api.routes import router as webhook_router
from stock_sync.application.rules import load_rules
from stock_sync.application.service import ReconciliationEngine
from stock_sync.core_settings import Settings, get_settings
from stock_sync.domain.errors import ConfigurationError
from stock_sync.domain.models import Rules
from stock_sync.infrastructure.shopify import ShopifyClient

# Service configuration
SERVICE_NAME = "stock-sync"
SERVICE_VERSION = os.getenv("SERVICE_VERSION", "1.0.0")
SERVICE_DESCRIPTION = "Alias-group and bundle inventory sync for Shopify"

logger = get_logger(__name__)

def create_app(settings: Optional[Settings] = None, platform=None, rules: Optional[Rules] = None) -> FastAPI:
    """
    Build the application. `platform` and `rules` replace the Shopify
    client and the rules file when given.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {SERVICE_NAME} version {SERVICE_VERSION}")

        client = platform
        owned_client = None
        if client is None:
            missing = settings.missing_credentials()
            if missing:
                raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")
            owned_client = client = ShopifyClient(
                settings.SHOPIFY_STORE_DOMAIN,
                settings.SHOPIFY_ACCESS_TOKEN,
                api_version=settings.SHOPIFY_API_VERSION,
                page_size=settings.CATALOG_PAGE_SIZE,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            )

        try:
            active_rules = rules if rules is not None else load_rules(settings.RULES_PATH)
            # No traffic is served until the full catalog is indexed
            app.state.engine = await ReconciliationEngine.create(settings, client, active_rules)
            if not settings.WRITE_ENABLED:
                logger.warning("WRITE_ENABLED is false: inventory writes will only be logged")
            logger.info(f"{SERVICE_NAME} started successfully")

            yield
        finally:
            logger.info(f"Shutting down {SERVICE_NAME}")
            app.state.engine = None
            if owned_client is not None:
                await owned_client.aclose()

    app = FastAPI(
        title=SERVICE_NAME,
        description=SERVICE_DESCRIPTION,
        version=SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json"
    )
    app.state.settings = settings
    app.state.engine = None

    app.add_middleware(RequestLoggingMiddleware)

    health_service = ServiceHealth(SERVICE_NAME, SERVICE_VERSION)

    def catalog_check() -> Dict[str, Any]:
        engine = app.state.engine
        if engine is None:
            return check_result(HealthStatus.FAIL, "component", output="Catalog index not loaded")
        return check_result(HealthStatus.PASS, "component", observedValue=len(engine.catalog), observedUnit="items")

    def config_check() -> Dict[str, Any]:
        missing = settings.missing_credentials() if platform is None else []
        if missing:
            return check_result(HealthStatus.FAIL, "configuration",
                                output=f"Missing environment variables: {', '.join(missing)}")
        return check_result(HealthStatus.PASS, "configuration")

    def engine_metrics() -> Dict[str, Any]:
        engine = app.state.engine
        return {"sync": engine.stats()} if engine is not None else {}

    health_service.register_check("catalog:index", catalog_check)
    health_service.register_check("catalog:index", catalog_check, startup=True)
    health_service.register_check("config:environment", config_check, startup=True)
    health_service.register_metrics(engine_metrics)
    app.include_router(health_service.create_health_router())

    app.include_router(webhook_router)

    @app.get("/")
    async def root():
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "status": "running",
            "docs": "/api/docs"
        }

    @app.get("/info")
    async def info():
        engine = app.state.engine
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "description": SERVICE_DESCRIPTION,
            "environment": os.getenv("ENVIRONMENT", "development"),
            "write_enabled": settings.WRITE_ENABLED,
            "allowed_location_id": settings.ALLOWED_LOCATION_ID or None,
            "alias_groups": sorted(engine.rules.alias_groups) if engine else [],
            "sets": [rule.set_group for rule in engine.rules.sets] if engine else [],
            "endpoints": {
                "webhook": "/webhooks/inventory",
                "health": "/health",
                "ready": "/health/ready",
                "live": "/health/live",
                "metrics": "/metrics",
                "docs": "/api/docs"
            }
        }

    return app

# Setup structured logging
setup_logging(
    service_name=SERVICE_NAME,
    level=get_settings().LOG_LEVEL
)

app = create_app()

def run() -> None:
    uvicorn.run("stock_sync.main:app", host="0.0.0.0", port=get_settings().PORT)

if __name__ == "__main__":
    run()
