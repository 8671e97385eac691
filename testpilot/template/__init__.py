from testpilot.template.context import TemplateContext, build_context, prepare_parameters
from testpilot.template.engine import RenderResult, TemplateEngine, render, resolve
from testpilot.template.errors import ErrorKind, ResolutionError, ResolutionIssue, TemplateResolutionError
from testpilot.template.functions import FunctionRegistry, TemplateFunction, build_default_registry, default_registry
from testpilot.template.parser import Expression, Namespace, has_expressions, parse

__all__ = [
    "TemplateContext",
    "build_context",
    "prepare_parameters",
    "RenderResult",
    "TemplateEngine",
    "render",
    "resolve",
    "ErrorKind",
    "ResolutionError",
    "ResolutionIssue",
    "TemplateResolutionError",
    "FunctionRegistry",
    "TemplateFunction",
    "build_default_registry",
    "default_registry",
    "Expression",
    "Namespace",
    "has_expressions",
    "parse",
]
