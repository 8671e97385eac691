import json
import re
from typing import Any, Callable, Dict, List, Optional
import structlog
from testpilot.models.schemas import (
    Assertion,
    AssertionDataSource,
    AssertionOperator,
    AssertionResult,
    AssertionType,
    EvaluateAssertionsResponse,
    StepResponse,
)
from testpilot.template import (
    ResolutionError,
    TemplateContext,
    TemplateEngine,
    TemplateResolutionError,
    has_expressions,
)
from testpilot.template.jsonpath import MISSING, extract
from testpilot.template.values import is_number

logger = structlog.get_logger()


def _same(a: Any, b: Any) -> bool:
    if is_number(a) and is_number(b):
        return a == b
    return type(a) is type(b) and a == b


def _includes(items: List[Any], value: Any) -> bool:
    return any(_same(item, value) for item in items)


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value, default=str)


def loose_equals(actual: Any, expected: Any) -> bool:
    """Equality where a number also matches its string form (``200 == "200"``)"""
    if actual is None or expected is None:
        return actual is None and expected is None
    if (isinstance(actual, str) and is_number(expected)) or (is_number(actual) and isinstance(expected, str)):
        try:
            return float(actual) == float(expected)
        except ValueError:
            return False
    return actual == expected


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, str):
        return _as_text(expected) in actual
    if isinstance(actual, list):
        return _includes(actual, expected)
    return False


def _not_contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, (str, list)):
        return not _contains(actual, expected)
    return True


def _matches_regex(actual: Any, expected: Any) -> bool:
    if not isinstance(actual, str) or not isinstance(expected, str):
        return False
    try:
        return re.search(expected, actual) is not None
    except re.error:
        logger.debug("Invalid assertion pattern", pattern=expected)
        return False


def _is_empty(actual: Any) -> bool:
    if actual is None:
        return True
    if isinstance(actual, (str, list, dict)):
        return len(actual) == 0
    return False


def _compare(check: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    return lambda actual, expected: is_number(actual) and is_number(expected) and check(actual, expected)


def _bounds(expected: Any) -> Optional[tuple]:
    if isinstance(expected, list) and len(expected) == 2 and all(is_number(bound) for bound in expected):
        return expected[0], expected[1]
    return None


def _between(actual: Any, expected: Any) -> bool:
    bounds = _bounds(expected)
    return is_number(actual) and bounds is not None and bounds[0] <= actual <= bounds[1]


def _not_between(actual: Any, expected: Any) -> bool:
    bounds = _bounds(expected)
    return is_number(actual) and bounds is not None and (actual < bounds[0] or actual > bounds[1])


def _length(check: Callable[[int, Any], bool]) -> Callable[[Any, Any], bool]:
    return lambda actual, expected: (
        isinstance(actual, (str, list)) and is_number(expected) and check(len(actual), expected)
    )


def _array_check(check: Callable[[List[Any], List[Any]], bool]) -> Callable[[Any, Any], bool]:
    return lambda actual, expected: isinstance(actual, list) and isinstance(expected, list) and check(actual, expected)


_TYPE_CHECKS = {
    "string": lambda value: isinstance(value, str),
    "number": is_number,
    "boolean": lambda value: isinstance(value, bool),
    "array": lambda value: isinstance(value, list),
    "object": lambda value: isinstance(value, dict),
    "null": lambda value: value is None,
}


def _is_type(actual: Any, expected: Any) -> bool:
    check = _TYPE_CHECKS.get(expected) if isinstance(expected, str) else None
    return bool(check and check(actual))


OPERATORS: Dict[AssertionOperator, Callable[[Any, Any], bool]] = {
    AssertionOperator.EQUALS: loose_equals,
    AssertionOperator.NOT_EQUALS: lambda actual, expected: not loose_equals(actual, expected),
    AssertionOperator.CONTAINS: _contains,
    AssertionOperator.NOT_CONTAINS: _not_contains,
    AssertionOperator.EXISTS: lambda actual, expected: actual is not None,
    AssertionOperator.STARTS_WITH: lambda actual, expected: (
        isinstance(actual, str) and isinstance(expected, str) and actual.startswith(expected)
    ),
    AssertionOperator.ENDS_WITH: lambda actual, expected: (
        isinstance(actual, str) and isinstance(expected, str) and actual.endswith(expected)
    ),
    AssertionOperator.MATCHES_REGEX: _matches_regex,
    AssertionOperator.IS_EMPTY: lambda actual, expected: _is_empty(actual),
    AssertionOperator.IS_NOT_EMPTY: lambda actual, expected: actual is not None and not _is_empty(actual),
    AssertionOperator.GREATER_THAN: _compare(lambda a, b: a > b),
    AssertionOperator.GREATER_THAN_OR_EQUAL: _compare(lambda a, b: a >= b),
    AssertionOperator.LESS_THAN: _compare(lambda a, b: a < b),
    AssertionOperator.LESS_THAN_OR_EQUAL: _compare(lambda a, b: a <= b),
    AssertionOperator.BETWEEN: _between,
    AssertionOperator.NOT_BETWEEN: _not_between,
    AssertionOperator.HAS_LENGTH: _length(lambda size, expected: size == expected),
    AssertionOperator.LENGTH_GREATER_THAN: _length(lambda size, expected: size > expected),
    AssertionOperator.LENGTH_LESS_THAN: _length(lambda size, expected: size < expected),
    AssertionOperator.CONTAINS_ALL: _array_check(lambda actual, expected: all(_includes(actual, i) for i in expected)),
    AssertionOperator.CONTAINS_ANY: _array_check(lambda actual, expected: any(_includes(actual, i) for i in expected)),
    AssertionOperator.NOT_CONTAINS_ANY: _array_check(
        lambda actual, expected: not any(_includes(actual, i) for i in expected)
    ),
    AssertionOperator.ONE_OF: lambda actual, expected: isinstance(expected, list) and _includes(expected, actual),
    AssertionOperator.NOT_ONE_OF: lambda actual, expected: isinstance(expected, list) and not _includes(expected, actual),
    AssertionOperator.IS_TYPE: _is_type,
    AssertionOperator.IS_NULL: lambda actual, expected: actual is None,
    AssertionOperator.IS_NOT_NULL: lambda actual, expected: actual is not None,
}


def extract_actual_value(
    assertion: Assertion, response: StepResponse, transformed_data: Optional[Dict[str, Any]] = None
) -> Any:
    """Pick the value an assertion checks out of a step response.

    ``json_body`` assertions read ``data_id`` as a JSONPath into the body, or
    into ``transformed_data`` when that is the data source and it is present.
    An absent path or header yields ``None``.
    """
    if assertion.assertion_type is AssertionType.STATUS_CODE:
        return response.status
    if assertion.assertion_type is AssertionType.RESPONSE_TIME:
        return response.response_time_ms
    if assertion.assertion_type is AssertionType.HEADER:
        name = assertion.data_id.lower()
        for key, value in response.headers.items():
            if key.lower() == name:
                return value
        return None

    source = response.body
    if assertion.data_source is AssertionDataSource.TRANSFORMED_DATA and transformed_data is not None:
        source = transformed_data
    value = extract(source, assertion.data_id)
    return None if value is MISSING else value


class AssertionEvaluator:
    """Checks step assertions against a captured response; stops at the first failure"""

    def __init__(self, engine: TemplateEngine, context: TemplateContext):
        self.engine = engine
        self.context = context

    async def resolve_expected(self, assertion: Assertion) -> Any:
        expected = assertion.expected_value
        if not assertion.is_template_expression or not isinstance(expected, str) or not has_expressions(expected):
            return expected
        return await self.engine.render_async(
            expected, self.context, location=f"assertions.{assertion.id or assertion.data_id}"
        )

    async def evaluate(self, assertion: Assertion, actual: Any) -> AssertionResult:
        original = assertion.expected_value if assertion.is_template_expression else None
        try:
            expected = await self.resolve_expected(assertion)
        except TemplateResolutionError as e:
            logger.warning("Assertion expected value did not render", assertion=assertion.id, error=str(e))
            return AssertionResult(
                assertion_id=assertion.id,
                passed=False,
                actual_value=actual,
                expected_value=assertion.expected_value,
                original_expected_value=original,
                error=f"Template resolution failed: {e}",
            )

        try:
            passed = bool(OPERATORS[assertion.operator](actual, expected))
        except Exception as e:
            logger.error("Failed to evaluate assertion", assertion=assertion.id, error=str(e))
            return AssertionResult(
                assertion_id=assertion.id,
                passed=False,
                actual_value=actual,
                expected_value=expected,
                original_expected_value=original,
                message=f"Error evaluating assertion: {e}",
            )

        shown = json.dumps(expected, default=str)
        if original is not None:
            shown = f"{original} → {shown}"
        description = f"{assertion.assertion_type.value} {assertion.data_id} {assertion.operator.value} {shown}"
        if passed:
            message = f"Assertion passed: {description}"
        else:
            message = f"Assertion failed: {description}, actual value: {json.dumps(actual, default=str)}"
        return AssertionResult(
            assertion_id=assertion.id,
            passed=passed,
            actual_value=actual,
            expected_value=expected,
            original_expected_value=original,
            message=message,
        )

    async def run(
        self,
        assertions: List[Assertion],
        response: StepResponse,
        transformed_data: Optional[Dict[str, Any]] = None,
    ) -> EvaluateAssertionsResponse:
        results: List[AssertionResult] = []
        enabled = [assertion for assertion in assertions if assertion.enabled]
        logger.info("Evaluating assertions", count=len(enabled), skipped=len(assertions) - len(enabled))

        for assertion in enabled:
            try:
                actual = extract_actual_value(assertion, response, transformed_data)
            except ResolutionError as e:
                message = f"Error extracting assertion value: {e.message}"
                logger.warning("Failed to extract assertion value", assertion=assertion.id, error=str(e))
                results.append(
                    AssertionResult(
                        assertion_id=assertion.id,
                        passed=False,
                        expected_value=assertion.expected_value,
                        original_expected_value=(
                            assertion.expected_value if assertion.is_template_expression else None
                        ),
                        message=message,
                    )
                )
                return EvaluateAssertionsResponse(passed=False, results=results, failure_message=message)

            result = await self.evaluate(assertion, actual)
            results.append(result)
            if not result.passed:
                logger.info("Assertion failed", assertion=assertion.id, operator=assertion.operator.value)
                return EvaluateAssertionsResponse(
                    passed=False, results=results, failure_message=result.message or result.error
                )

        return EvaluateAssertionsResponse(passed=True, results=results)
