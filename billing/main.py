"""
FastAPI application entry point.
Configures routes, middleware, and lifecycle events.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from billing.config import settings
from billing.database import close_db
from billing.logging_config import configure_logging
from billing.redis import RedisClient

from billing.api.payments import router as payments_router
from billing.api.services import router as services_router
from billing.api.maintenance import router as maintenance_router
from billing.api.webhooks.paynow import router as paynow_router
from billing.api.admin.services import router as admin_services_router
from billing.api.admin.maintenance import router as admin_maintenance_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifecycle manager."""
    # Startup
    configure_logging()
    logging.info(f"Starting up {settings.app_name}...")

    try:
        RedisClient.get_client()
    except Exception as e:
        logging.warning(f"Failed to initialize Redis: {e}")

    yield

    # Shutdown
    await RedisClient.close()
    await close_db()
    logging.info("Shutting down...")


app = FastAPI(
    title=settings.app_name,
    description="Payment and subscription reconciliation engine",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)


# Global Exception Handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logging.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "Internal Server Error"},
    )


origins = [settings.client_url] if settings.client_url else []
if settings.is_development:
    origins.append("*")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "env": settings.app_env,
    }


app.include_router(payments_router, prefix="/payments", tags=["payments"])
app.include_router(services_router, prefix="/services", tags=["services"])
app.include_router(maintenance_router, prefix="/maintenance", tags=["maintenance"])

# Gateway callbacks
app.include_router(paynow_router, prefix="/webhooks", tags=["webhooks"])

# Admin routes
app.include_router(admin_services_router, prefix="/admin", tags=["admin"])
app.include_router(admin_maintenance_router, prefix="/admin", tags=["admin"])
