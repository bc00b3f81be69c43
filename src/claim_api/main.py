"""
Mintless Claim API - Main Entry Point

Serves claim payloads and wallet StateInits for a mintless jetton airdrop.
"""

import signal
import sys
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI
from prometheus_client import Gauge, make_asgi_app
from starlette.responses import Response

from claim_api.api.v1 import router as api_v1_router
from claim_api.core.config import settings
from claim_api.core.logging import setup_logging
from claim_api.metrics import get_claim_metrics
from claim_api.services.claim_service import ClaimService

setup_logging()
logger = structlog.get_logger(__name__)

UPSTREAM_PROBE_LAST_RUN = Gauge(
    "claim_api_upstream_probe_last_run_timestamp",
    "Timestamp of last upstream probe",
)

# Scheduler for periodic upstream probes
scheduler = AsyncIOScheduler()

# Global service instance
claim_service: ClaimService | None = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    global claim_service

    logger.info(
        "Starting Mintless Claim API",
        version=settings.VERSION,
        environment=settings.ENV,
        snapshot=settings.SNAPSHOT_PATH,
        minter_file=settings.MINTER_FILE,
        upstream=settings.toncenter_endpoint,
    )

    # Startup fails if the commitment cannot be loaded or verified
    claim_service = ClaimService()
    try:
        await claim_service.initialize()
    except Exception as e:
        logger.critical("Claim service failed to start", error=str(e), error_type=type(e).__name__)
        await claim_service.shutdown()
        raise

    app.state.claim_service = claim_service

    metrics = get_claim_metrics()
    metrics.set_service_info(
        version=settings.VERSION,
        environment=settings.ENV,
        endpoint=settings.toncenter_endpoint,
    )
    metrics.set_upstream_connected(True)

    if settings.SCHEDULER_ENABLED:
        scheduler.add_job(
            run_upstream_probe,
            "interval",
            seconds=settings.UPSTREAM_PROBE_INTERVAL_SECONDS,
            id="upstream_probe",
        )
        scheduler.start()
        logger.info(
            "Scheduler started",
            upstream_probe_interval_seconds=settings.UPSTREAM_PROBE_INTERVAL_SECONDS,
        )

    yield

    # Shutdown
    logger.info("Shutting down Mintless Claim API")

    if settings.SCHEDULER_ENABLED:
        scheduler.shutdown()

    if claim_service:
        await claim_service.shutdown()

    logger.info("Mintless Claim API shutdown complete")


async def run_upstream_probe() -> None:
    """Check that the TON HTTP API still answers."""
    global claim_service

    UPSTREAM_PROBE_LAST_RUN.set(time.time())

    if not claim_service or claim_service.client is None:
        logger.error("Claim service not initialized")
        return

    connected = await claim_service.client.check_health()
    get_claim_metrics().set_upstream_connected(connected)
    if not connected:
        logger.warning("Upstream probe failed", endpoint=claim_service.client.endpoint)


def create_application() -> FastAPI:
    """Create FastAPI application."""
    app = FastAPI(
        title="Mintless Claim API",
        description="Claim payloads and wallet StateInits for mintless jetton airdrops",
        version=settings.VERSION,
        docs_url="/docs" if settings.ENV != "production" else None,
        redoc_url="/redoc" if settings.ENV != "production" else None,
        lifespan=lifespan,
    )

    # Wallets query /wallet/{owner} at the root
    app.include_router(api_v1_router)

    if settings.METRICS_ENABLED:
        metrics_app = make_asgi_app()
        app.mount("/metrics", metrics_app)

    # Health endpoints
    @app.get("/health")
    async def health() -> dict:
        """Overall service health check."""
        global claim_service

        upstream_status = "unknown"
        if claim_service and claim_service.client is not None:
            upstream_status = "connected" if claim_service.client.is_connected else "disconnected"

        return {
            "status": "healthy" if claim_service and claim_service.integrity_ok else "degraded",
            "service": "claim-api",
            "version": settings.VERSION,
            "upstream": upstream_status,
            "testnet": settings.TONCENTER_TESTNET,
        }

    @app.get("/ready")
    async def ready() -> Response:
        """
        Readiness probe for Kubernetes.

        Ready once the commitment is loaded and no served proof has failed
        its integrity check.
        """
        if claim_service and claim_service.is_ready:
            return Response(status_code=200, content="ready")
        return Response(status_code=503, content="not ready")

    @app.get("/live")
    async def live() -> Response:
        """Liveness probe for Kubernetes."""
        return Response(status_code=200, content="alive")

    @app.get("/status")
    async def status() -> dict:
        """Detailed service status."""
        global claim_service

        if claim_service:
            return {
                "service": "claim-api",
                "version": settings.VERSION,
                "environment": settings.ENV,
                "claims": claim_service.status(),
                "scheduler_enabled": settings.SCHEDULER_ENABLED,
            }
        return {
            "service": "claim-api",
            "version": settings.VERSION,
            "error": "Claim service not initialized",
        }

    return app


app = create_application()


def handle_signal(signum: int, frame: object) -> None:
    """Handle shutdown signals."""
    logger.info(f"Received signal {signum}, initiating shutdown")
    sys.exit(0)


def main() -> None:
    """Run the service."""
    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    logger.info(
        "Starting Mintless Claim API",
        host=settings.HOST,
        port=settings.PORT,
        upstream=settings.toncenter_endpoint,
    )

    uvicorn.run(
        "claim_api.main:app",
        host=settings.HOST,
        port=settings.PORT,
        workers=settings.WORKERS,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=False,
    )


if __name__ == "__main__":
    main()
