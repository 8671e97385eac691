from fastapi import APIRouter, status
from pydantic import BaseModel
from datetime import datetime, timezone
from testpilot.config.settings import settings
from testpilot.core.database import check_database
from testpilot.template import default_registry

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
    environment: str


@router.get("/", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health_check():
    """Health check endpoint"""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version="1.0.0",
        environment=settings.environment
    )


@router.get("/readiness")
async def readiness_check():
    """Readiness check endpoint"""
    checks = {
        "database": "ok" if check_database() else "unavailable",
        "template_functions": "ok" if len(default_registry) else "empty",
    }
    
    all_ok = all(status == "ok" for status in checks.values())
    
    return {
        "status": "ready" if all_ok else "not_ready",
        "checks": checks,
        "timestamp": datetime.now(timezone.utc)
    }
