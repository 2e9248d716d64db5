"""Health check endpoints for Docker/Kubernetes probes."""

from datetime import UTC, datetime

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

router = APIRouter(prefix="/health", tags=["health"])


class LivenessStatus(BaseModel):
    """Simple liveness probe response."""

    status: str = Field(description="alive or dead")
    timestamp: str = Field(description="ISO timestamp")


class ReadinessStatus(BaseModel):
    """Readiness probe response."""

    status: str = Field(description="ready or not_ready")
    timestamp: str = Field(description="ISO timestamp")
    initial_load_complete: bool = Field(description="First library snapshot is available")
    polling: bool = Field(description="Poll worker running")


@router.get("/live", response_model=LivenessStatus)
async def liveness_probe() -> LivenessStatus:
    """Returns 200 while the process is running. No dependency checks."""
    return LivenessStatus(status="alive", timestamp=datetime.now(UTC).isoformat())


@router.get("/ready", response_model=ReadinessStatus)
async def readiness_probe(request: Request) -> JSONResponse:
    """Returns 200 once the first library snapshot exists, 503 before that."""
    engine = getattr(request.app.state, "engine", None)
    initial_load_complete = engine is not None and engine.get_state().initial_load_complete
    body = ReadinessStatus(
        status="ready" if initial_load_complete else "not_ready",
        timestamp=datetime.now(UTC).isoformat(),
        initial_load_complete=initial_load_complete,
        polling=engine is not None and engine.is_polling,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if initial_load_complete else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(),
    )
