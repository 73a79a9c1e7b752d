"""USDC transfer orchestrator - Main FastAPI application."""

import logging
import sys
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy import text

from bridge_api.chains import to_client_key, to_provider_name
from bridge_api.exceptions import (
    AttestationTimeoutError,
    BridgeError,
    InsufficientGasError,
    TransportError,
    UpstreamResponseError,
    ValidationError,
    WalletNotFoundError,
)
from bridge_api.middleware.correlation import CorrelationIDMiddleware
from bridge_api.routes import admin, gateway, transfers, wallets, webhooks
from bridge_api.settings import get_settings

# Configure logging
logging.basicConfig(
    level=get_settings().log_level,
    format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "module": "%(name)s"}',
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

settings = get_settings()

RETRY_AFTER_SECONDS = "30"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting transfer orchestrator API...")
    try:
        settings.validate_production_settings()
    except ValueError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise

    if settings.bootstrap_on_startup:
        from bridge_api.db.session import SessionLocal
        from bridge_api.dependencies import get_wallet_provider
        from bridge_api.registry import bootstrap_admin_wallet

        db = SessionLocal()
        try:
            bootstrap_admin_wallet(db, get_wallet_provider(), settings)
        except BridgeError as e:
            logger.error(f"Admin wallet bootstrap failed: {e}", exc_info=True)
        finally:
            db.close()

    yield
    logger.info("Shutting down transfer orchestrator API...")


app = FastAPI(
    title="USDC Transfer Orchestrator",
    description="Cross-chain USDC transfers over custodial wallets, CCTP and Gateway",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)
app.add_middleware(CorrelationIDMiddleware)

# Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Register routers
app.include_router(transfers.router)
app.include_router(wallets.router)
app.include_router(gateway.router)
app.include_router(admin.router)
app.include_router(webhooks.router)


def insufficient_gas_body(exc: InsufficientGasError) -> dict:
    """Machine-readable body for the gas remediation flow."""
    try:
        blockchain = to_provider_name(exc.chain_id)
        chain = to_client_key(exc.chain_id)
    except ValidationError:
        blockchain, chain = None, str(exc.chain_id)
    return {
        "error": InsufficientGasError.error_code,
        "walletId": exc.wallet_id,
        "walletAddress": exc.address,
        "blockchain": blockchain,
        "chain": chain,
        "message": (
            "Insufficient gas: The wallet that will execute the transaction has no native tokens "
            f"on {chain}."
        ),
    }


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid payload", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(BridgeError)
async def bridge_error_handler(request: Request, exc: BridgeError):
    """Map the orchestrator's error taxonomy onto HTTP responses."""
    if isinstance(exc, InsufficientGasError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=insufficient_gas_body(exc))

    if isinstance(exc, ValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": exc.message, "field": exc.field},
        )

    if isinstance(exc, WalletNotFoundError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": exc.message})

    if isinstance(exc, TransportError) or (isinstance(exc, UpstreamResponseError) and exc.is_retryable):
        logger.warning(f"Upstream unavailable: {exc.message}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"error": "Upstream service unavailable", "details": exc.message},
            headers={"Retry-After": RETRY_AFTER_SECONDS},
        )

    if isinstance(exc, AttestationTimeoutError):
        return JSONResponse(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            content={"error": exc.message, "attempts": exc.attempts},
        )

    logger.error(f"Transfer failed: {exc.message}")
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"error": exc.message, "details": jsonable_encoder(exc.details)},
    )


@app.get("/health")
async def health_check():
    """Health check endpoint (basic liveness)."""
    return {
        "status": "healthy",
        "service": "bridge-api",
        "version": "0.1.0",
    }


@app.get("/ready")
def readiness_check():
    """Readiness check endpoint (database and broker)."""
    from bridge_api.db.session import SessionLocal

    checks = {"database": False, "redis": False}

    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error(f"Database check failed: {e}")
    finally:
        db.close()

    try:
        redis.from_url(settings.redis_url, decode_responses=True).ping()
        checks["redis"] = True
    except redis.RedisError as e:
        logger.error(f"Redis check failed: {e}")

    all_ready = all(checks.values())
    return JSONResponse(
        content={"status": "ready" if all_ready else "not_ready", "checks": checks},
        status_code=200 if all_ready else 503,
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "USDC Transfer Orchestrator",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
