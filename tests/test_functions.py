import random
import re

import pytest

from testpilot.template.errors import ErrorKind, ResolutionError
from testpilot.template.functions import (
    FunctionRegistry,
    TemplateFunction,
    build_default_registry,
    default_registry,
    format_date_pattern,
)


def test_registry_is_enumerable_mapping(fixed_registry):
    names = set(fixed_registry)
    for expected in (
        "upper", "lower", "trim", "concat", "replace", "substring", "length",
        "add", "subtract", "multiply", "divide", "round",
        "timestamp", "isoDate", "dateFormat", "dateISO", "dateRFC3339", "formatDatePattern", "relativeDate",
        "uuid", "randomInt", "randomString",
        "base64Encode", "base64Decode", "urlEncode", "urlDecode", "jsonPath",
    ):
        assert expected in names
    assert len(fixed_registry) == len(names)


def test_non_deterministic_functions_are_marked(fixed_registry):
    assert fixed_registry["uuid"].deterministic is False
    assert fixed_registry["timestamp"].deterministic is False
    assert fixed_registry["upper"].deterministic is True


@pytest.mark.parametrize(
    "name,args,expected",
    [
        ("upper", ["abc"], "ABC"),
        ("lower", ["ABC"], "abc"),
        ("trim", ["  x  "], "x"),
        ("concat", ["a", 1, True, None], "a1true"),
        ("replace", ["a-b-c", "-", "+"], "a+b+c"),
        ("substring", ["abcdef", 1, 3], "bc"),
        ("substring", ["abcdef", 2], "cdef"),
        ("length", ["abcd"], 4),
        ("length", [[1, 2]], 2),
        ("add", [1, 2, 3.5], 6.5),
        ("subtract", [10, 4], 6),
        ("multiply", [2, 3, 4], 24),
        ("divide", [9, 2], 4.5),
        ("round", [2.567, 2], 2.57),
        ("round", [2.5], 2),
        ("base64Encode", ["hello"], "aGVsbG8="),
        ("base64Decode", ["aGVsbG8="], "hello"),
        ("urlEncode", ["a b&c=d"], "a%20b%26c%3Dd"),
        ("urlDecode", ["a%20b%26c"], "a b&c"),
        ("jsonPath", [{"a": [1, {"b": 2}]}, "a[1].b"], 2),
        ("jsonPath", [{"a": 1}, "missing"], None),
    ],
)
def test_deterministic_functions(fixed_registry, name, args, expected):
    assert fixed_registry.call(name, args) == expected


def test_date_functions_use_injected_clock(fixed_registry, fixed_now):
    assert fixed_registry.call("timestamp", []) == int(fixed_now.timestamp() * 1000)
    assert fixed_registry.call("isoDate", []) == "2024-03-05T14:07:09.123Z"
    assert fixed_registry.call("dateFormat", []) == "2024-03-05"
    assert fixed_registry.call("dateFormat", [1, "DD/MM/YYYY HH:mm"]) == "06/03/2024 14:07"
    assert fixed_registry.call("dateISO", [-5]) == "2024-02-29"
    assert fixed_registry.call("dateRFC3339", [0]) == "2024-03-05T14:07:09.123Z"
    assert fixed_registry.call("relativeDate", [2, "hours"]) == "2024-03-05T16:07:09.123Z"


def test_format_date_pattern(fixed_registry, fixed_now):
    assert format_date_pattern(fixed_now, "yyyy-MM-dd HH:mm:ss.SSS") == "2024-03-05 14:07:09.123"
    assert format_date_pattern(fixed_now, "d/M/yy h:m a") == "5/3/24 2:7 PM"
    assert fixed_registry.call("formatDatePattern", ["yyyyMMdd"]) == "20240305"
    assert fixed_registry.call("formatDatePattern", ["yyyy-MM-dd", 0]) == "1970-01-01"


def test_random_functions_use_injected_rng():
    first = build_default_registry(rng=random.Random(7))
    second = build_default_registry(rng=random.Random(7))

    assert first.call("uuid", []) == second.call("uuid", [])
    assert first.call("randomInt", [1, 6]) == second.call("randomInt", [1, 6])
    assert first.call("randomString", [12]) == second.call("randomString", [12])


def test_random_values_have_expected_shape(fixed_registry):
    value = fixed_registry.call("uuid", [])
    assert re.fullmatch(r"[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}", value)

    number = fixed_registry.call("randomInt", [5, 9])
    assert 5 <= number <= 9
    assert 0 <= fixed_registry.call("randomInt", []) <= 100

    text = fixed_registry.call("randomString", [6, "ab"])
    assert len(text) == 6 and set(text) <= {"a", "b"}
    assert len(fixed_registry.call("randomString", [])) == 10


def test_unknown_function_names_it():
    with pytest.raises(ResolutionError) as exc_info:
        default_registry.call("doesNotExist", [])
    assert exc_info.value.kind is ErrorKind.UNKNOWN_FUNCTION
    assert "doesNotExist" in exc_info.value.message


@pytest.mark.parametrize(
    "name,args",
    [
        ("upper", []),
        ("upper", ["a", "b"]),
        ("upper", [1]),
        ("add", [1, "2"]),
        ("add", [True, 1]),
        ("substring", ["abc", 1.5]),
        ("divide", [1, 0]),
        ("base64Decode", ["not base64!"]),
        ("randomInt", [10, 1]),
        ("relativeDate", [1, "weeks"]),
        ("length", [5]),
    ],
)
def test_invalid_arguments(name, args):
    with pytest.raises(ResolutionError) as exc_info:
        default_registry.call(name, args)
    assert exc_info.value.kind is ErrorKind.INVALID_FUNCTION_ARGUMENTS
    assert name in exc_info.value.message


def test_with_overrides_returns_new_registry():
    registry = default_registry.with_overrides(
        TemplateFunction("shout", lambda s: s.upper() + "!", 1, 1),
        uuid=lambda: "fixed-uuid",
    )

    assert registry.call("shout", ["hi"]) == "HI!"
    assert registry.call("uuid", []) == "fixed-uuid"
    assert registry["uuid"].arity == "0"
    assert "shout" not in default_registry
    assert default_registry.call("uuid", []) != "fixed-uuid"


def test_describe_lists_every_function():
    described = FunctionRegistry([TemplateFunction("concat", lambda *a: "", 1, None)]).describe()
    assert described == [
        {"name": "concat", "arity": "1+", "arg_types": [], "deterministic": True, "description": ""}
    ]
