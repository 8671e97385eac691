"""Resolution context handed to the template engine.

The flow runner owns the data; the engine only reads it. Mappings are wrapped
read-only when the context is built so a render pass cannot mutate the
caller's state.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import structlog

from testpilot.template.functions import FunctionRegistry, default_registry

logger = structlog.get_logger()


def _frozen(mapping: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class TemplateContext:
    responses: Mapping[str, Any] = field(default_factory=dict)
    processed: Mapping[str, Any] = field(default_factory=dict)
    parameters: Mapping[str, Any] = field(default_factory=dict)
    environment: Mapping[str, Any] = field(default_factory=dict)
    environment_defaults: Mapping[str, Any] = field(default_factory=dict)
    functions: FunctionRegistry = field(default_factory=lambda: default_registry)


def build_context(
    responses: Optional[Mapping[str, Any]] = None,
    processed: Optional[Mapping[str, Any]] = None,
    parameters: Optional[Mapping[str, Any]] = None,
    environment: Optional[Mapping[str, Any]] = None,
    environment_defaults: Optional[Mapping[str, Any]] = None,
    functions: Optional[FunctionRegistry] = None,
) -> TemplateContext:
    """Assemble a context from the current execution state of a flow.

    ``responses`` is keyed by the author-chosen ``store_response_as`` alias,
    ``processed`` by the alias of the step that produced the derived values.
    """
    return TemplateContext(
        responses=_frozen(responses),
        processed=_frozen(processed),
        parameters=_frozen(parameters),
        environment=_frozen(environment),
        environment_defaults=_frozen(environment_defaults),
        functions=functions if functions is not None else default_registry,
    )


def _field(definition: Any, name: str, default: Any = None) -> Any:
    if isinstance(definition, Mapping):
        return definition.get(name, default)
    return getattr(definition, name, default)


def prepare_parameters(
    definitions: Iterable[Any],
    environment: Optional[Mapping[str, Any]] = None,
    parameter_mappings: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> Tuple[Dict[str, Any], List[str]]:
    """Work out the value of every declared flow parameter.

    Precedence: an explicit override, then the environment variable the
    parameter is mapped to, then the parameter's default value. Returns the
    resolved values and the names of required parameters left without one.
    ``definitions`` may be mappings or objects with ``name``,
    ``default_value`` and ``required`` attributes.
    """
    environment = environment or {}
    parameter_mappings = parameter_mappings or {}
    overrides = overrides or {}

    values: Dict[str, Any] = {}
    missing: List[str] = []

    for definition in definitions:
        name = _field(definition, "name")
        value = None
        source = "none"

        if overrides.get(name) is not None:
            value = overrides[name]
            source = "override"
        elif name in parameter_mappings:
            variable = parameter_mappings[name]
            if environment.get(variable) is not None:
                value = environment[variable]
                source = f"environment:{variable}"
            else:
                logger.warning(
                    "Mapped environment variable missing, falling back to default",
                    parameter=name,
                    variable=variable,
                )

        if value is None and _field(definition, "default_value") is not None:
            value = _field(definition, "default_value")
            source = "default"

        if value is not None:
            values[name] = value
            logger.debug("Parameter resolved", parameter=name, source=source)
        elif _field(definition, "required", False):
            missing.append(name)

    if missing:
        logger.info("Required parameters without a value", parameters=missing)
    return values, missing
