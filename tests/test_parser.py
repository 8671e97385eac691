import pytest

from testpilot.template.parser import (
    Expression,
    Literal,
    Malformed,
    Namespace,
    has_expressions,
    parse,
)


def _raw(segments):
    return "".join(segment.raw for segment in segments)


def test_empty_string_is_single_empty_literal():
    assert parse("") == [Literal("", 0)]


def test_plain_text_is_one_literal():
    assert parse("hello world") == [Literal("hello world", 0)]


def test_stringify_expression():
    segments = parse("{{res:login.body.token}}")
    assert segments == [
        Expression(
            raw="{{res:login.body.token}}",
            preserve_type=False,
            namespace=Namespace.RESPONSE,
            path="login.body.token",
            position=0,
        )
    ]


def test_preserve_type_expression():
    (segment,) = parse("{{{param:limit}}}")
    assert segment.preserve_type is True
    assert segment.namespace is Namespace.PARAMETER
    assert segment.path == "limit"


def test_mixed_segments_keep_order_and_positions():
    text = "Bearer {{res:login.body.token}} for {{param:x}}!"
    segments = parse(text)

    assert [type(s) for s in segments] == [Literal, Expression, Literal, Expression, Literal]
    assert segments[1].position == text.index("{{res")
    assert segments[3].position == text.index("{{param")
    assert _raw(segments) == text


def test_first_close_terminates_token():
    segments = parse("{{param:a}}}}")
    assert segments[0].path == "a"
    assert segments[1] == Literal("}}", 11)


@pytest.mark.parametrize(
    "prefix,namespace",
    [
        ("res", Namespace.RESPONSE),
        ("response", Namespace.RESPONSE),
        ("proc", Namespace.PROCESSED),
        ("transform", Namespace.PROCESSED),
        ("process", Namespace.PROCESSED),
        ("param", Namespace.PARAMETER),
        ("var", Namespace.PARAMETER),
        ("env", Namespace.ENVIRONMENT),
        ("environment", Namespace.ENVIRONMENT),
        ("func", Namespace.FUNCTION),
        ("FUNCTION", Namespace.FUNCTION),
    ],
)
def test_prefix_aliases(prefix, namespace):
    (segment,) = parse(f"{{{{ {prefix}:value }}}}")
    assert segment.namespace is namespace
    assert segment.path == "value"


def test_unknown_prefix_is_literal_expression():
    (segment,) = parse("{{foo:bar}}")
    assert isinstance(segment, Expression)
    assert segment.namespace is Namespace.LITERAL
    assert segment.is_literal


def test_missing_prefix_is_literal_expression():
    (segment,) = parse("{{just text}}")
    assert segment.namespace is Namespace.LITERAL
    assert segment.path == "just text"


def test_unterminated_expression_is_malformed():
    text = "ok {{res:login.body"
    segments = parse(text)
    assert segments[0] == Literal("ok ", 0)
    assert isinstance(segments[1], Malformed)
    assert segments[1].position == 3
    assert segments[1].raw == "{{res:login.body"
    assert _raw(segments) == text


def test_empty_expression_is_malformed():
    (segment,) = parse("{{ }}")
    assert isinstance(segment, Malformed)
    assert segment.reason == "empty expression"


def test_missing_path_is_malformed():
    (segment,) = parse("{{env:}}")
    assert isinstance(segment, Malformed)
    assert "env" in segment.reason


def test_triple_open_without_triple_close_is_stringify():
    segments = parse("{{{param:x}}")
    assert segments[0] == Literal("{", 0)
    assert isinstance(segments[1], Expression)
    assert segments[1].preserve_type is False
    assert segments[1].position == 1


def test_has_expressions():
    assert has_expressions("a {{b}}")
    assert not has_expressions("a {b}")
    assert not has_expressions(42)
