import inspect
import json
import re
from typing import Any, Callable, Dict, List, Optional

from testpilot.template.context import TemplateContext
from testpilot.template.errors import ErrorKind, ResolutionError
from testpilot.template.jsonpath import MISSING, extract, split_alias
from testpilot.template.parser import Expression, Namespace, split_reference


_CALL_RE = re.compile(r"^([A-Za-z0-9_]+)\s*\((.*)\)$", re.DOTALL)


def split_arguments(text: str) -> List[str]:
    """Split a function argument list on top-level commas.

    Commas inside quotes, parentheses, brackets or braces do not split.
    """
    if not text.strip():
        return []

    args: List[str] = []
    depth = 0
    quote: Optional[str] = None
    escaped = False
    start = 0
    for i, char in enumerate(text):
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
        elif char == "," and depth == 0:
            args.append(text[start:i].strip())
            start = i + 1
    args.append(text[start:].strip())
    return args


class NamespaceResolver:
    """Looks up one namespaced reference against a ``TemplateContext``.

    Pure: the result depends only on (namespace, path, context). Path misses
    on an existing alias are soft: they return ``None`` and, when a
    ``misses`` list is given, the missed reference is appended to it.
    """

    def __init__(self):
        self._dispatch: Dict[Namespace, Callable[[str, TemplateContext, Optional[List[str]]], Any]] = {
            Namespace.RESPONSE: self._resolve_response,
            Namespace.PROCESSED: self._resolve_processed,
            Namespace.PARAMETER: self._resolve_parameter,
            Namespace.ENVIRONMENT: self._resolve_environment,
            Namespace.FUNCTION: self._resolve_function,
        }
        unhandled = set(Namespace) - set(self._dispatch) - {Namespace.LITERAL}
        if unhandled:
            raise RuntimeError(f"No resolver for namespaces: {sorted(n.value for n in unhandled)}")

    def resolve_expression(
        self, expression: Expression, context: TemplateContext, misses: Optional[List[str]] = None
    ) -> Any:
        if expression.is_literal:
            return expression.raw
        try:
            return self.resolve(expression.namespace, expression.path, context, misses)
        except ResolutionError as e:
            e.expression = expression.raw
            raise

    def resolve(
        self, namespace: Namespace, path: str, context: TemplateContext, misses: Optional[List[str]] = None
    ) -> Any:
        return self._dispatch[namespace](path, context, misses)

    def _lookup(self, source: Any, path: str, reference: str, misses: Optional[List[str]]) -> Any:
        value = extract(source, path)
        if value is MISSING:
            if misses is not None:
                misses.append(reference)
            return None
        return value

    def _resolve_response(self, path: str, context: TemplateContext, misses: Optional[List[str]]) -> Any:
        alias, rest = split_alias(path)
        if alias not in context.responses:
            available = ", ".join(context.responses.keys())
            raise ResolutionError(
                ErrorKind.UNKNOWN_RESPONSE_ALIAS,
                f"Response data not found for: {alias}. Available keys: {available}",
            )
        return self._lookup(context.responses[alias], rest, f"res:{path}", misses)

    def _resolve_processed(self, path: str, context: TemplateContext, misses: Optional[List[str]]) -> Any:
        alias, rest = split_alias(path)
        if alias not in context.processed:
            available = ", ".join(context.processed.keys())
            raise ResolutionError(
                ErrorKind.UNKNOWN_PROCESSED_ALIAS,
                f"Transformation data not found for: {alias}. Available keys: {available}",
            )
        return self._lookup(context.processed[alias], rest, f"proc:{path}", misses)

    def _resolve_parameter(self, name: str, context: TemplateContext, misses: Optional[List[str]]) -> Any:
        if name not in context.parameters:
            available = ", ".join(context.parameters.keys())
            raise ResolutionError(
                ErrorKind.UNKNOWN_PARAMETER,
                f"Parameter not found: {name}. Available parameters: {available}",
            )
        return context.parameters[name]

    def _resolve_environment(self, name: str, context: TemplateContext, misses: Optional[List[str]]) -> Any:
        if name in context.environment:
            return context.environment[name]
        if name in context.environment_defaults:
            return context.environment_defaults[name]
        raise ResolutionError(
            ErrorKind.UNKNOWN_ENVIRONMENT_VARIABLE,
            f"Environment variable not found: {name}",
        )

    def _resolve_function(self, call: str, context: TemplateContext, misses: Optional[List[str]]) -> Any:
        match = _CALL_RE.match(call.strip())
        if not match:
            raise ResolutionError(
                ErrorKind.MALFORMED_EXPRESSION,
                f"Invalid function template format: {call}",
            )
        name, args_text = match.group(1), match.group(2)
        args = [self._argument(arg, context, misses) for arg in split_arguments(args_text)]
        return context.functions.call(name, args)

    def _argument(self, raw: str, context: TemplateContext, misses: Optional[List[str]]) -> Any:
        if not raw:
            raise ResolutionError(ErrorKind.MALFORMED_EXPRESSION, "Empty function argument")

        if len(raw) >= 2 and raw[0] == raw[-1] == "'":
            return raw[1:-1]

        try:
            return json.loads(raw)
        except ValueError:
            pass

        if len(raw) >= 2 and raw[0] == raw[-1] == '"':
            return raw[1:-1]

        reference = split_reference(raw)
        if reference is not None:
            namespace, path = reference
            value = self.resolve(namespace, path, context, misses)
            if inspect.isawaitable(value):
                discard_awaitable(value)
                raise ResolutionError(
                    ErrorKind.ASYNC_FUNCTION_IN_SYNC_RENDER,
                    f"Asynchronous function result cannot be used as an argument: {raw}",
                )
            return value

        # Bare words are plain strings
        return raw


def discard_awaitable(awaitable: Any) -> None:
    close = getattr(awaitable, "close", None)
    if close is not None:
        close()
