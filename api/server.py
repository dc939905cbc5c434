"""
Dead man's switch web front-end.

Thin HTTP surface over a running SwitchDaemon: status view and an
authenticated check-in. All check-ins go through the daemon's arbiter.
"""

import logging
import os

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse

from api.auth import require_auth
from api.response_models import CheckInResponse, ErrorResponse, HealthResponse, StatusResponse
from deadman import __version__
from deadman.daemon import SwitchDaemon
from deadman.errors import AlreadyTriggered
from deadman.observability import REGISTRY, CorrelationIdMiddleware

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def _daemon(request: Request) -> SwitchDaemon:
    return request.app.state.daemon


@router.get("/health", response_model=HealthResponse)
def health(request: Request):
    """Unauthenticated liveness probe."""
    daemon = _daemon(request)
    state = "ok" if daemon.running or daemon.engine.is_triggered else "degraded"
    return HealthResponse(status=state, version=__version__)


@router.get("/status", response_model=StatusResponse, dependencies=[Depends(require_auth)])
def status(request: Request):
    """Current phase and countdown."""
    return StatusResponse.from_status(_daemon(request).status())


@router.post(
    "/check-in",
    response_model=CheckInResponse,
    responses={409: {"model": ErrorResponse}},
    dependencies=[Depends(require_auth)],
)
def check_in(request: Request):
    """
    Prove you are alive.

    Sync handler: runs on the threadpool and blocks on the arbiter, so
    concurrent requests coalesce into one engine check-in.
    """
    daemon = _daemon(request)
    client = request.client.host if request.client else "unknown"
    try:
        result = daemon.check_in(source=f"web:{client}")
    except AlreadyTriggered:
        raise HTTPException(
            status_code=409,
            detail="Switch already triggered; check-ins are no longer accepted.",
        ) from None
    return CheckInResponse.from_result(result, daemon.status())


@router.get("/metrics", response_class=PlainTextResponse)
def metrics():
    """Prometheus text exposition of in-process metrics."""
    return REGISTRY.to_prometheus()


def create_app(daemon: SwitchDaemon) -> FastAPI:
    """Build the FastAPI app around an existing daemon."""
    app = FastAPI(
        title="Dead Man's Switch",
        description="Check in to prove you are alive",
        version=__version__,
    )
    app.state.daemon = daemon
    app.state.web_password = daemon.config.web_password
    app.add_middleware(CorrelationIdMiddleware)
    app.include_router(router)
    return app


def serve(daemon: SwitchDaemon, host: str | None = None, port: int | None = None) -> None:
    """Run the daemon and the web app until interrupted."""
    host = host or os.getenv("DEADMAN_WEB_HOST", "127.0.0.1")
    port = port or int(os.getenv("DEADMAN_WEB_PORT", "3000"))

    app = create_app(daemon)
    daemon.start()
    logger.info(f"Web front-end listening on http://{host}:{port}")
    try:
        uvicorn.run(app, host=host, port=port, log_config=None)
    finally:
        daemon.stop()
