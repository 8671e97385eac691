"""Tokenizer for ``{{expr}}`` / ``{{{expr}}}`` template strings.

A template string is split into an ordered list of segments:

- ``Literal``: plain text copied through unchanged
- ``Expression``: one ``{{...}}`` (stringify) or ``{{{...}}}`` (preserve type) token
- ``Malformed``: an opening ``{{`` that never closes, or an empty token

Concatenating the raw text of all segments always reproduces the input.
"""
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union


OPEN = "{{"
CLOSE = "}}"
OPEN_TYPED = "{{{"
CLOSE_TYPED = "}}}"


class Namespace(str, Enum):
    RESPONSE = "res"
    PROCESSED = "proc"
    PARAMETER = "param"
    ENVIRONMENT = "env"
    FUNCTION = "func"
    LITERAL = "literal"


# Long-form prefixes accepted by older flows
PREFIX_ALIASES = {
    "res": Namespace.RESPONSE,
    "response": Namespace.RESPONSE,
    "proc": Namespace.PROCESSED,
    "process": Namespace.PROCESSED,
    "transform": Namespace.PROCESSED,
    "param": Namespace.PARAMETER,
    "parameter": Namespace.PARAMETER,
    "var": Namespace.PARAMETER,
    "env": Namespace.ENVIRONMENT,
    "environment": Namespace.ENVIRONMENT,
    "func": Namespace.FUNCTION,
    "function": Namespace.FUNCTION,
}


@dataclass(frozen=True)
class Literal:
    text: str
    position: int = 0

    @property
    def raw(self) -> str:
        return self.text


@dataclass(frozen=True)
class Expression:
    raw: str
    preserve_type: bool
    namespace: Namespace
    path: str
    position: int = 0

    @property
    def is_literal(self) -> bool:
        return self.namespace is Namespace.LITERAL


@dataclass(frozen=True)
class Malformed:
    raw: str
    position: int
    reason: str


Segment = Union[Literal, Expression, Malformed]


def lookup_namespace(prefix: str) -> Optional[Namespace]:
    return PREFIX_ALIASES.get(prefix.strip().lower())


def split_reference(content: str) -> Optional[tuple]:
    """Split ``prefix:path`` into (Namespace, path); None if the prefix is unknown."""
    head, sep, rest = content.partition(":")
    if not sep:
        return None
    namespace = lookup_namespace(head)
    if namespace is None:
        return None
    return namespace, rest.strip()


def has_expressions(text: str) -> bool:
    """True when the string contains at least one opening ``{{``."""
    return isinstance(text, str) and OPEN in text


def _build_token(content: str, raw: str, preserve_type: bool, position: int) -> Segment:
    if not content.strip():
        return Malformed(raw=raw, position=position, reason="empty expression")

    reference = split_reference(content)
    if reference is None:
        # Unknown or missing prefix: kept as literal text
        return Expression(
            raw=raw,
            preserve_type=preserve_type,
            namespace=Namespace.LITERAL,
            path=content.strip(),
            position=position,
        )

    namespace, path = reference
    if not path:
        return Malformed(raw=raw, position=position, reason=f"missing path after '{namespace.value}:'")
    return Expression(
        raw=raw,
        preserve_type=preserve_type,
        namespace=namespace,
        path=path,
        position=position,
    )


def parse(text: str) -> List[Segment]:
    """Split ``text`` into literal, expression and malformed segments, in order.

    Tokens close at the first matching close braces; nested braces inside a
    token are not supported. An unterminated ``{{`` consumes the rest of the
    string as a single ``Malformed`` segment.
    """
    if not text:
        return [Literal("", 0)]

    segments: List[Segment] = []
    literal_start = 0
    pos = 0

    def flush_literal(end: int) -> None:
        if end > literal_start:
            segments.append(Literal(text[literal_start:end], literal_start))

    while True:
        start = text.find(OPEN, pos)
        if start == -1:
            break

        if text.startswith(OPEN_TYPED, start):
            close = text.find(CLOSE_TYPED, start + len(OPEN_TYPED))
            if close != -1:
                flush_literal(start)
                end = close + len(CLOSE_TYPED)
                segments.append(
                    _build_token(text[start + len(OPEN_TYPED):close], text[start:end], True, start)
                )
                pos = literal_start = end
                continue
            # No triple close: the first brace is plain text
            start += 1

        close = text.find(CLOSE, start + len(OPEN))
        if close == -1:
            flush_literal(start)
            segments.append(Malformed(raw=text[start:], position=start, reason="unterminated expression"))
            literal_start = pos = len(text)
            break

        flush_literal(start)
        end = close + len(CLOSE)
        segments.append(_build_token(text[start + len(OPEN):close], text[start:end], False, start))
        pos = literal_start = end

    flush_literal(len(text))
    if not segments:
        segments.append(Literal("", 0))
    return segments
