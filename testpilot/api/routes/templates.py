from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
import structlog

from testpilot.models.schemas import (
    RenderRequest, RenderResponse,
    ParseRequest, ParseResponse,
    FunctionInfo,
    EvaluateOutputsRequest, EvaluateOutputsResponse,
    EvaluateAssertionsRequest, EvaluateAssertionsResponse,
)
from testpilot.services.template_service import TemplateService, issue_to_schema
from testpilot.services.environment_service import (
    EnvironmentResolutionError,
    ENVIRONMENT_NOT_FOUND,
    ENVIRONMENTS_UNAVAILABLE,
)
from testpilot.core.dependencies import get_template_service
from testpilot.template import TemplateResolutionError

logger = structlog.get_logger()

router = APIRouter(prefix="/templates", tags=["templates"])


_ENVIRONMENT_ERROR_STATUS = {
    ENVIRONMENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ENVIRONMENTS_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _environment_error(e: EnvironmentResolutionError) -> HTTPException:
    return HTTPException(
        status_code=_ENVIRONMENT_ERROR_STATUS.get(e.code, status.HTTP_422_UNPROCESSABLE_ENTITY),
        detail={"message": e.message, "code": e.code},
    )


@router.post("/render", response_model=RenderResponse)
async def render_template(
    request: RenderRequest,
    service: TemplateService = Depends(get_template_service)
):
    """Render a template against responses, derived values, parameters and environment"""
    try:
        return await service.render(request)
    except TemplateResolutionError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": str(e),
                "errors": [issue_to_schema(issue).model_dump() for issue in e.issues],
                "partial": e.partial,
            },
        )
    except EnvironmentResolutionError as e:
        logger.warning("Environment resolution failed", code=e.code, error=e.message)
        raise _environment_error(e)
    except Exception as e:
        logger.error("Failed to render template", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to render template"
        )


@router.post("/parse", response_model=ParseResponse)
async def parse_template(
    request: ParseRequest,
    service: TemplateService = Depends(get_template_service)
):
    """Break a template string into literal, expression and malformed segments"""
    return service.parse(request.template)


@router.get("/functions", response_model=List[FunctionInfo])
async def list_functions(service: TemplateService = Depends(get_template_service)):
    """List the functions available to func: expressions"""
    return service.list_functions()


@router.post("/outputs", response_model=EvaluateOutputsResponse)
async def evaluate_outputs(
    request: EvaluateOutputsRequest,
    service: TemplateService = Depends(get_template_service)
):
    """Evaluate declared flow outputs; an output that fails evaluates to null"""
    try:
        return await service.evaluate_outputs(request)
    except EnvironmentResolutionError as e:
        logger.warning("Environment resolution failed", code=e.code, error=e.message)
        raise _environment_error(e)


@router.post("/assertions", response_model=EvaluateAssertionsResponse)
async def evaluate_assertions(
    request: EvaluateAssertionsRequest,
    service: TemplateService = Depends(get_template_service)
):
    """Check assertions against a step response, stopping at the first failure"""
    try:
        return await service.evaluate_assertions(request)
    except EnvironmentResolutionError as e:
        logger.warning("Environment resolution failed", code=e.code, error=e.message)
        raise _environment_error(e)
