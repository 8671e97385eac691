import pytest

from testpilot.models.schemas import Assertion, AssertionOperator, StepResponse
from testpilot.services.assertion_evaluator import (
    OPERATORS,
    AssertionEvaluator,
    extract_actual_value,
    loose_equals,
)
from testpilot.template import TemplateEngine

RESPONSE = StepResponse(
    status=201,
    headers={"Content-Type": "application/json", "X-Request-Id": "req-9"},
    body={"id": 42, "name": "Ada Lovelace", "tags": ["admin", "editor"], "meta": {}, "score": 7.5},
    response_time_ms=120,
)


def _assertion(operator, expected=None, assertion_type="json_body", data_id="", **kwargs):
    return Assertion(
        operator=operator, expected_value=expected, assertion_type=assertion_type, data_id=data_id, **kwargs
    )


def test_every_operator_has_a_handler():
    assert set(OPERATORS) == set(AssertionOperator)


@pytest.mark.parametrize(
    "actual,expected,equal",
    [(200, 200, True), (200, "200", True), ("1.5", 1.5, True), ("abc", 1, False),
     (None, None, True), (None, "", False), ({"a": [1]}, {"a": [1]}, True), (True, "true", False)],
)
def test_loose_equals(actual, expected, equal):
    assert loose_equals(actual, expected) is equal


@pytest.mark.parametrize(
    "operator,actual,expected,passed",
    [
        ("contains", "Ada Lovelace", "Love", True),
        ("contains", ["admin", "editor"], "admin", True),
        ("contains", [1, 2], "1", False),
        ("contains", 12, 1, False),
        ("not_contains", ["admin"], "guest", True),
        ("not_contains", None, "x", True),
        ("starts_with", "Ada Lovelace", "Ada", True),
        ("ends_with", "Ada Lovelace", "Ada", False),
        ("matches_regex", "req-9", r"^req-\d+$", True),
        ("matches_regex", "req-9", "(", False),
        ("is_empty", {}, None, True),
        ("is_empty", 0, None, False),
        ("is_not_empty", "x", None, True),
        ("is_not_empty", None, None, False),
        ("greater_than", 5, 3, True),
        ("greater_than", "5", 3, False),
        ("greater_than_or_equal", 3, 3, True),
        ("less_than", 2.5, 3, True),
        ("less_than_or_equal", 4, 3, False),
        ("between", 5, [1, 10], True),
        ("between", 5, [1], False),
        ("not_between", 11, [1, 10], True),
        ("has_length", ["a", "b"], 2, True),
        ("has_length", {"a": 1}, 1, False),
        ("length_greater_than", "abc", 2, True),
        ("length_less_than", [], 1, True),
        ("contains_all", ["a", "b", "c"], ["a", "c"], True),
        ("contains_all", ["a"], ["a", "z"], False),
        ("contains_any", ["a"], ["z", "a"], True),
        ("not_contains_any", ["a"], ["z"], True),
        ("one_of", "b", ["a", "b"], True),
        ("one_of", 1, [True], False),
        ("not_one_of", "c", ["a", "b"], True),
        ("is_type", [], "array", True),
        ("is_type", {}, "object", True),
        ("is_type", True, "number", False),
        ("is_type", None, "null", True),
        ("is_type", "x", "text", False),
        ("is_null", None, None, True),
        ("is_not_null", 0, None, True),
        ("exists", False, None, True),
    ],
)
def test_operators(operator, actual, expected, passed):
    assert OPERATORS[AssertionOperator(operator)](actual, expected) is passed


def test_extract_actual_value():
    assert extract_actual_value(_assertion("equals", assertion_type="status_code"), RESPONSE) == 201
    assert extract_actual_value(_assertion("equals", assertion_type="response_time"), RESPONSE) == 120
    assert extract_actual_value(
        _assertion("equals", assertion_type="header", data_id="x-request-id"), RESPONSE
    ) == "req-9"
    assert extract_actual_value(_assertion("equals", assertion_type="header", data_id="etag"), RESPONSE) is None
    assert extract_actual_value(_assertion("equals", data_id="$.tags[1]"), RESPONSE) == "editor"
    assert extract_actual_value(_assertion("equals", data_id="missing.path"), RESPONSE) is None


def test_extract_from_transformed_data():
    assertion = _assertion("equals", data_id="total", data_source="transformed_data")
    assert extract_actual_value(assertion, RESPONSE, {"total": 3}) == 3
    assert extract_actual_value(assertion, RESPONSE, None) is None


@pytest.mark.asyncio
async def test_run_passes_all_assertions(context):
    assertions = [
        _assertion("equals", 201, assertion_type="status_code", id="status"),
        _assertion("less_than", 500, assertion_type="response_time", id="fast"),
        _assertion("equals", "{{{res:login.body.user.id}}}", data_id="id", is_template_expression=True, id="id"),
        _assertion("contains", "admin", data_id="tags", id="tags"),
        _assertion("equals", "never checked", enabled=False, id="disabled"),
    ]

    result = await AssertionEvaluator(TemplateEngine(), context).run(assertions, RESPONSE)

    assert result.passed is True
    assert result.failure_message is None
    assert [r.assertion_id for r in result.results] == ["status", "fast", "id", "tags"]
    templated = result.results[2]
    assert templated.expected_value == 42
    assert templated.original_expected_value == "{{{res:login.body.user.id}}}"
    assert templated.message.startswith("Assertion passed: json_body id equals")


@pytest.mark.asyncio
async def test_run_stops_at_first_failure(context):
    assertions = [
        _assertion("equals", 200, assertion_type="status_code", id="status"),
        _assertion("exists", data_id="id", id="id"),
    ]

    result = await AssertionEvaluator(TemplateEngine(), context).run(assertions, RESPONSE)

    assert result.passed is False
    (only,) = result.results
    assert only.actual_value == 201
    assert only.message == "Assertion failed: status_code  equals 200, actual value: 201"
    assert result.failure_message == only.message


@pytest.mark.asyncio
async def test_expected_value_that_does_not_render_fails(context):
    assertion = _assertion("equals", "{{param:nope}}", data_id="name", is_template_expression=True, id="name")

    result = await AssertionEvaluator(TemplateEngine(), context).run([assertion], RESPONSE)

    assert result.passed is False
    (failed,) = result.results
    assert failed.actual_value == "Ada Lovelace"
    assert failed.error.startswith("Template resolution failed")
    assert failed.original_expected_value == "{{param:nope}}"
    assert result.failure_message == failed.error


@pytest.mark.asyncio
async def test_template_text_is_literal_unless_flagged(context):
    assertion = _assertion("equals", "{{param:x}}", data_id="name")
    result = await AssertionEvaluator(TemplateEngine(), context).run([assertion], RESPONSE)
    assert result.results[0].expected_value == "{{param:x}}"
    assert result.results[0].original_expected_value is None


@pytest.mark.asyncio
async def test_malformed_body_path_is_reported(context):
    assertion = _assertion("exists", data_id="items[*].id", id="items")

    result = await AssertionEvaluator(TemplateEngine(), context).run([assertion], RESPONSE)

    assert result.passed is False
    assert result.failure_message.startswith("Error extracting assertion value")
    assert result.results[0].actual_value is None
