from typing import List, Optional, Dict, Any
import structlog
from testpilot.models.schemas import (
    TemplateContextPayload,
    RenderRequest,
    RenderResponse,
    RenderIssue,
    ParseResponse,
    ParsedSegment,
    FunctionInfo,
    EvaluateOutputsRequest,
    EvaluateOutputsResponse,
    EvaluateAssertionsRequest,
    EvaluateAssertionsResponse,
)
from testpilot.services.environment_service import (
    EnvironmentService,
    EnvironmentResolutionError,
    ENVIRONMENTS_UNAVAILABLE,
    SUB_ENVIRONMENT_NOT_FOUND,
)
from testpilot.services.assertion_evaluator import AssertionEvaluator
from testpilot.services.output_evaluator import FlowOutputEvaluator
from testpilot.template import (
    TemplateContext,
    TemplateEngine,
    TemplateResolutionError,
    FunctionRegistry,
    build_context,
    default_registry,
    prepare_parameters,
    parse,
)
from testpilot.template.errors import ResolutionIssue
from testpilot.template.parser import Expression, Malformed

logger = structlog.get_logger()


def issue_to_schema(issue: ResolutionIssue) -> RenderIssue:
    return RenderIssue(**issue.to_dict())


class TemplateService:
    """Business logic service for rendering templates against flow state"""

    def __init__(
        self,
        engine: TemplateEngine,
        environment_service: Optional[EnvironmentService] = None,
        functions: Optional[FunctionRegistry] = None,
    ):
        self.engine = engine
        self.environment_service = environment_service
        self.functions = functions if functions is not None else default_registry

    async def build_context(self, payload: TemplateContextPayload) -> TemplateContext:
        """Turn the request payload into a read-only template context.

        Environment variables come from the stored environment (when
        ``environment_id`` is given) overlaid with the explicit
        ``environment`` map. Parameters follow the usual precedence:
        explicit value, mapped environment variable, default.
        """
        environment: Dict[str, Any] = {}
        defaults: Dict[str, Any] = {}

        if payload.environment_id is not None:
            if self.environment_service is None:
                raise EnvironmentResolutionError(
                    "Stored environments are not available", ENVIRONMENTS_UNAVAILABLE
                )
            if not payload.sub_environment:
                raise EnvironmentResolutionError(
                    f"No sub-environment selected for environment {payload.environment_id}",
                    SUB_ENVIRONMENT_NOT_FOUND,
                )
            resolved = await self.environment_service.resolve(payload.environment_id, payload.sub_environment)
            environment.update(resolved.variables)
            defaults.update(resolved.defaults)

        environment.update(payload.environment)

        overrides = {
            definition.name: definition.value
            for definition in payload.parameter_definitions
            if definition.value is not None
        }
        overrides.update(payload.parameters)
        values, missing = prepare_parameters(
            payload.parameter_definitions, environment, payload.parameter_mappings, overrides
        )
        if missing:
            logger.warning("Required parameters have no value", parameters=missing)

        parameters = dict(payload.parameters)
        parameters.update(values)

        return build_context(
            responses=payload.responses,
            processed=payload.processed,
            parameters=parameters,
            environment=environment,
            environment_defaults=defaults,
            functions=self.functions,
        )

    async def render(self, request: RenderRequest) -> RenderResponse:
        """Render the request template; raises TemplateResolutionError on failures"""
        context = await self.build_context(request)

        if request.json_text and isinstance(request.template, str):
            value = self.engine.render_json_text(request.template, context)
            logger.info("Template rendered", mode="json_text")
            return RenderResponse(value=value)

        result = await self.engine.resolve_async(request.template, context)
        if not result.ok:
            logger.warning(
                "Template rendering failed",
                unresolved=len(result.issues),
                expressions=[issue.expression for issue in result.issues],
            )
            raise TemplateResolutionError(result.issues, result.value)

        logger.info("Template rendered", warnings=len(result.warnings))
        return RenderResponse(
            value=result.value,
            warnings=[issue_to_schema(warning) for warning in result.warnings],
        )

    def parse(self, template: str) -> ParseResponse:
        segments: List[ParsedSegment] = []
        for segment in parse(template):
            if isinstance(segment, Expression):
                segments.append(
                    ParsedSegment(
                        type="expression",
                        raw=segment.raw,
                        position=segment.position,
                        namespace=segment.namespace.value,
                        path=segment.path,
                        preserve_type=segment.preserve_type,
                    )
                )
            elif isinstance(segment, Malformed):
                segments.append(
                    ParsedSegment(type="malformed", raw=segment.raw, position=segment.position, reason=segment.reason)
                )
            else:
                segments.append(ParsedSegment(type="literal", raw=segment.raw, position=segment.position))
        return ParseResponse(segments=segments)

    def list_functions(self) -> List[FunctionInfo]:
        return [FunctionInfo(**description) for description in self.functions.describe()]

    async def evaluate_outputs(self, request: EvaluateOutputsRequest) -> EvaluateOutputsResponse:
        context = await self.build_context(request)
        evaluator = FlowOutputEvaluator(self.engine, context)
        return EvaluateOutputsResponse(outputs=await evaluator.evaluate(request.outputs))

    async def evaluate_assertions(self, request: EvaluateAssertionsRequest) -> EvaluateAssertionsResponse:
        context = await self.build_context(request)
        evaluator = AssertionEvaluator(self.engine, context)
        return await evaluator.run(request.assertions, request.response, request.transformed_data)
