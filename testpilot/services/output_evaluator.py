import json
import re
from typing import List, Dict, Any
import structlog
from testpilot.models.schemas import FlowOutput, VariableType
from testpilot.template import TemplateContext, TemplateEngine
from testpilot.template.values import is_number

logger = structlog.get_logger()


_LEADING_FLOAT = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def cast_to_number(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if is_number(value):
        return value
    if isinstance(value, str):
        match = _LEADING_FLOAT.match(value.strip())
        if match:
            text = match.group(0)
            return int(text) if text.lstrip("+-").isdigit() else float(text)
    return None


def cast_to_string(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def cast_to_boolean(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1"):
            return True
        if lowered in ("false", "0", ""):
            return False
        return True
    return bool(value)


def cast_to_object(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def cast_to_array(value: Any) -> Any:
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return [value]
        return parsed if isinstance(parsed, list) else [value]
    return value if isinstance(value, list) else [value]


_CASTS = {
    VariableType.STRING: cast_to_string,
    VariableType.NUMBER: cast_to_number,
    VariableType.BOOLEAN: cast_to_boolean,
    VariableType.OBJECT: cast_to_object,
    VariableType.ARRAY: cast_to_array,
    VariableType.NULL: lambda value: None,
}


class FlowOutputEvaluator:
    """Evaluates the declared outputs of a flow once its steps have run"""

    def __init__(self, engine: TemplateEngine, context: TemplateContext):
        self.engine = engine
        self.context = context

    async def evaluate(self, outputs: List[FlowOutput]) -> Dict[str, Any]:
        results: Dict[str, Any] = {}
        if not outputs:
            return results

        logger.info("Evaluating flow outputs", count=len(outputs))
        for output in outputs:
            try:
                if output.is_template and output.value:
                    result = await self.engine.render_async(output.value, self.context, location=output.name)
                    if output.cast_to_type and output.type:
                        result = _CASTS[output.type](result)
                        logger.debug("Output cast", output=output.name, type=output.type.value)
                else:
                    result = output.value
                results[output.name] = result
                logger.debug("Output evaluated", output=output.name)
            except Exception as e:
                logger.error("Failed to evaluate output", output=output.name, error=str(e))
                results[output.name] = None
        return results
