"""Health check endpoints."""

from fastapi import APIRouter
from pydantic import BaseModel

from topoprint.config import get_config
from topoprint.exceptions import ConfigurationError
from topoprint.types import Body
from topoprint.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/health", tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    checks: dict


@router.get("/live")
async def health_live():
    """Basic liveness check."""
    return {"status": "alive"}


@router.get("/ready", response_model=HealthResponse)
async def health_ready():
    """Readiness check: configuration loads and every body is parameterized."""
    checks = {}

    try:
        config = get_config()
    except (ConfigurationError, FileNotFoundError) as e:
        logger.error("Health check failed", error=str(e))
        return HealthResponse(status="not_ready", checks={"config": f"error: {e}"})

    checks["config"] = "ready"
    for body in Body:
        checks[f"body_{body.value}"] = "ready" if body.value in config.bodies else "not_configured"
    checks["ladder"] = "ready" if config.ladder.tiers else "not_configured"

    all_ready = all(value == "ready" for value in checks.values())
    return HealthResponse(status="ready" if all_ready else "not_ready", checks=checks)
