from fastapi import APIRouter, Depends, HTTPException, status
import structlog

from testpilot.models.proxy import ProxyRequest, ProxyResponse
from testpilot.services.proxy_service import ProxyService, ProxyError
from testpilot.core.dependencies import get_proxy_service

logger = structlog.get_logger()

router = APIRouter(prefix="/proxy", tags=["proxy"])


@router.post("/request", response_model=ProxyResponse)
async def proxy_request(
    request: ProxyRequest,
    service: ProxyService = Depends(get_proxy_service)
):
    """Forward a request to the target API and pass back its cookies"""
    try:
        return await service.forward(request)
    except ProxyError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error("Proxy error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unknown proxy error"
        )
