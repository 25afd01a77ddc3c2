"""Status and health endpoints of the sync engine."""

import time
import uuid

from fastapi import APIRouter, FastAPI, Request, Response, status

from common.constants import OWNER
from common.logging_config import get_logger
from secretfs.schemas import CommitterStatus, ProbeResponse, RootResponse, StatusResponse
from secretfs.sync.engine import SecretSync

logger = get_logger(__name__)


def create_router(sync: SecretSync) -> APIRouter:
    """
    Build the status routes bound to one engine.

    Args:
        sync: Engine whose state is reported
    """
    router = APIRouter(tags=["Status"])

    @router.get("/", response_model=RootResponse)
    async def root():
        return RootResponse(status="running", service=OWNER)

    @router.get("/healthz", response_model=ProbeResponse)
    async def liveness():
        """Liveness probe."""
        return ProbeResponse(status="alive")

    @router.get("/readyz", response_model=ProbeResponse)
    async def readiness(response: Response):
        """
        Readiness probe.

        Returns 503 until recovery has completed and the committer is serving.
        """
        if sync.state.recovered and sync.committer.running:
            return ProbeResponse(status="ready")
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ProbeResponse(status="not ready")

    @router.get("/status", response_model=StatusResponse)
    async def sync_status():
        stats = sync.committer.stats
        return StatusResponse(
            namespace=sync.config.namespace,
            secret_base_name=sync.config.secret_base_name,
            generation=sync.state.generation,
            recovered=sync.state.recovered,
            metadata_exists=sync.state.metadata_exists,
            tracked_secrets=len(sync.state.index),
            secrets_by_generation=sync.state.index.generations(),
            committer=CommitterStatus(
                running=sync.committer.running,
                pending=sync.committer.pending,
                operations=stats.operations,
                batches=stats.batches,
                cycles_succeeded=stats.cycles_succeeded,
                cycles_failed=stats.cycles_failed,
                cycle_in_flight=stats.cycle_in_flight,
                last_result=stats.last_result,
                last_generation=stats.last_generation,
            ),
        )

    return router


def create_app(sync: SecretSync) -> FastAPI:
    """Create the status FastAPI application for an engine."""
    app = FastAPI(
        title="kube-secret-fs",
        description="Status of the secret-backed filesystem sync engine",
        version="0.1.0"
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """
        Middleware to log all HTTP requests and responses.
        """
        request_id = str(uuid.uuid4())
        start_time = time.time()

        response = await call_next(request)

        duration = time.time() - start_time
        logger.debug(
            f"Request completed: {request.method} {request.url.path} "
            f"status={response.status_code} duration={duration:.3f}s [request_id={request_id}]"
        )
        response.headers["X-Request-ID"] = request_id
        return response

    app.include_router(create_router(sync))
    return app
