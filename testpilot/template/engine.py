"""Template engine: substitutes every expression inside a JSON-like value.

Rules for a string leaf:

- exactly one ``{{{expr}}}`` and nothing else (optionally wrapped in double
  quotes, ``"{{{expr}}}"``) resolves to the raw typed value;
- anything else resolves to the concatenation of its literal text and the
  string form of each expression, left to right.

Objects and arrays are rebuilt bottom-up; keys and non-string leaves are
copied as they are. Failures are collected per expression and surfaced
together once the whole value has been visited.
"""
import inspect
import json
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, List, Optional, Tuple

import structlog

from testpilot.template.context import TemplateContext
from testpilot.template.errors import ErrorKind, ResolutionError, ResolutionIssue, TemplateResolutionError
from testpilot.template.parser import Expression, Literal, Malformed, Segment, has_expressions, parse
from testpilot.template.resolver import NamespaceResolver, discard_awaitable
from testpilot.template.values import stringify

logger = structlog.get_logger()


class _Failed:
    def __repr__(self):
        return "FAILED"


_FAILED = _Failed()


@dataclass
class RenderResult:
    value: Any
    issues: List[ResolutionIssue] = field(default_factory=list)
    warnings: List[ResolutionIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues


@dataclass
class _PassState:
    issues: List[ResolutionIssue] = field(default_factory=list)
    warnings: List[ResolutionIssue] = field(default_factory=list)

    def fail(self, location: str, segment: Segment, kind: ErrorKind, message: str) -> _Failed:
        self.issues.append(ResolutionIssue(location, segment.raw, segment.position, kind, message))
        return _FAILED


def child_location(location: str, key: Any) -> str:
    if isinstance(key, int):
        return f"{location}[{key}]"
    return f"{location}.{key}" if location else str(key)


class TemplateEngine:
    """Renders template values against a ``TemplateContext``.

    With ``strict_prefixes`` an expression whose prefix is not a known
    namespace is reported as malformed instead of being kept as literal text.
    """

    def __init__(self, resolver: Optional[NamespaceResolver] = None, strict_prefixes: bool = False):
        self.resolver = resolver or NamespaceResolver()
        self.strict_prefixes = strict_prefixes

    # Public API

    def resolve(self, value: Any, context: TemplateContext, location: str = "") -> RenderResult:
        """Render ``value`` without raising; issues are returned on the result"""
        state = _PassState()
        rendered = self._walk(value, context, location, state)
        return RenderResult(rendered, state.issues, state.warnings)

    def render(self, value: Any, context: TemplateContext, location: str = "") -> Any:
        result = self.resolve(value, context, location)
        return self._unwrap(result)

    async def resolve_async(self, value: Any, context: TemplateContext, location: str = "") -> RenderResult:
        """Like ``resolve`` but awaits asynchronous function results in order"""
        state = _PassState()
        rendered = await self._walk_async(value, context, location, state)
        return RenderResult(rendered, state.issues, state.warnings)

    async def render_async(self, value: Any, context: TemplateContext, location: str = "") -> Any:
        result = await self.resolve_async(value, context, location)
        return self._unwrap(result)

    def render_json_text(self, text: str, context: TemplateContext, location: str = "") -> str:
        """Render a JSON document held as text.

        A quoted preserve-type token (``"{{{expr}}}"``) is replaced, quotes
        included, by the JSON encoding of its value, so numbers, booleans,
        arrays and objects keep their type in the document. Stringified
        values are JSON-escaped.
        """
        state = _PassState()
        if not has_expressions(text):
            return text

        segments = parse(text)
        out: List[str] = []
        strip_quote = False
        for index, segment in enumerate(segments):
            if isinstance(segment, Literal):
                piece = segment.text
                if strip_quote and piece.startswith('"'):
                    piece = piece[1:]
                strip_quote = False
                out.append(piece)
                continue

            strip_quote = False
            value = self._evaluate(segment, context, location, state)
            if value is _FAILED:
                out.append(segment.raw)
                continue

            if isinstance(segment, Expression) and segment.preserve_type and not segment.is_literal:
                quoted = (
                    index > 0
                    and isinstance(segments[index - 1], Literal)
                    and out[-1].endswith('"')
                    and index + 1 < len(segments)
                    and isinstance(segments[index + 1], Literal)
                    and segments[index + 1].text.startswith('"')
                )
                if quoted:
                    out[-1] = out[-1][:-1]
                    strip_quote = True
                    out.append(json.dumps(value, ensure_ascii=False, default=str))
                elif isinstance(value, str):
                    out.append(value)
                else:
                    out.append(json.dumps(value, ensure_ascii=False, default=str))
            else:
                out.append(json.dumps(stringify(value), ensure_ascii=False)[1:-1])

        rendered = "".join(out)
        return self._unwrap(RenderResult(rendered, state.issues, state.warnings))

    # Traversal

    def _unwrap(self, result: RenderResult) -> Any:
        if not result.ok:
            logger.debug(
                "Template resolution failed",
                issues=[issue.to_dict() for issue in result.issues],
            )
            raise TemplateResolutionError(result.issues, result.value)
        return result.value

    def _walk(self, value: Any, context: TemplateContext, location: str, state: _PassState) -> Any:
        if isinstance(value, str):
            return self._render_string(value, context, location, state)
        if isinstance(value, Mapping):
            return {
                key: self._walk(child, context, child_location(location, key), state)
                for key, child in value.items()
            }
        if isinstance(value, (list, tuple)):
            return [
                self._walk(child, context, child_location(location, index), state)
                for index, child in enumerate(value)
            ]
        return value

    async def _walk_async(self, value: Any, context: TemplateContext, location: str, state: _PassState) -> Any:
        if isinstance(value, str):
            return await self._render_string_async(value, context, location, state)
        if isinstance(value, Mapping):
            rendered = {}
            for key, child in value.items():
                rendered[key] = await self._walk_async(child, context, child_location(location, key), state)
            return rendered
        if isinstance(value, (list, tuple)):
            items = []
            for index, child in enumerate(value):
                items.append(await self._walk_async(child, context, child_location(location, index), state))
            return items
        return value

    # Strings

    def _plan(self, text: str) -> Tuple[List[Segment], bool]:
        """Parse ``text``; the flag says whether it is a single typed expression"""
        segments = parse(text)
        if len(segments) == 1 and isinstance(segments[0], Expression) and segments[0].preserve_type:
            return segments, True

        if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
            inner = parse(text[1:-1])
            if len(inner) == 1 and isinstance(inner[0], Expression) and inner[0].preserve_type:
                return [replace(inner[0], position=inner[0].position + 1)], True

        return segments, False

    def _assemble(self, text: str, segments: List[Segment], typed: bool, values: List[Any]) -> Any:
        if typed:
            return text if values[0] is _FAILED else values[0]

        parts = []
        for segment, value in zip(segments, values):
            if isinstance(segment, Literal):
                parts.append(segment.text)
            elif value is _FAILED:
                parts.append(segment.raw)
            else:
                parts.append(stringify(value))
        return "".join(parts)

    def _render_string(self, text: str, context: TemplateContext, location: str, state: _PassState) -> Any:
        if not has_expressions(text):
            return text
        segments, typed = self._plan(text)
        values = []
        for segment in segments:
            value = self._evaluate(segment, context, location, state)
            if inspect.isawaitable(value):
                discard_awaitable(value)
                value = state.fail(
                    location, segment, ErrorKind.ASYNC_FUNCTION_IN_SYNC_RENDER,
                    "Function returned an awaitable; use render_async",
                )
            values.append(value)
        return self._assemble(text, segments, typed, values)

    async def _render_string_async(
        self, text: str, context: TemplateContext, location: str, state: _PassState
    ) -> Any:
        if not has_expressions(text):
            return text
        segments, typed = self._plan(text)
        values = []
        for segment in segments:
            value = self._evaluate(segment, context, location, state)
            if inspect.isawaitable(value):
                value = await self._await(value, segment, location, state)
            values.append(value)
        return self._assemble(text, segments, typed, values)

    # Expressions

    def _evaluate(self, segment: Segment, context: TemplateContext, location: str, state: _PassState) -> Any:
        if isinstance(segment, Literal):
            return segment.text
        if isinstance(segment, Malformed):
            return state.fail(
                location, segment, ErrorKind.MALFORMED_EXPRESSION,
                f"Malformed template fragment at position {segment.position}: {segment.reason}",
            )
        if segment.is_literal and self.strict_prefixes:
            return state.fail(
                location, segment, ErrorKind.MALFORMED_EXPRESSION,
                f"Unknown namespace prefix in expression: {segment.raw}",
            )

        misses: List[str] = []
        try:
            value = self.resolver.resolve_expression(segment, context, misses)
        except ResolutionError as e:
            return state.fail(location, segment, e.kind, e.message)

        for miss in misses:
            state.warnings.append(
                ResolutionIssue(location, segment.raw, segment.position, ErrorKind.PATH_NOT_FOUND,
                                f"Path not found: {miss}")
            )
        return value

    async def _await(self, awaitable: Any, segment: Segment, location: str, state: _PassState) -> Any:
        try:
            return await awaitable
        except ResolutionError as e:
            return state.fail(location, segment, e.kind, e.message)
        except Exception as e:
            return state.fail(
                location, segment, ErrorKind.INVALID_FUNCTION_ARGUMENTS,
                f"Function call {segment.raw} failed: {type(e).__name__}: {e}",
            )


_default_engine = TemplateEngine()


def render(value: Any, context: TemplateContext) -> Any:
    """Render ``value`` with the shared default engine"""
    return _default_engine.render(value, context)


def resolve(value: Any, context: TemplateContext) -> RenderResult:
    return _default_engine.resolve(value, context)
