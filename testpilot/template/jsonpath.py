"""Simplified JSONPath accessor used by ``res:`` / ``proc:`` expressions.

Grammar (whitespace around the path is ignored)::

    path     := ["$"] [name] segment*
    segment  := "." name | "[" index "]" | "[" quoted "]"
    name     := one or more characters other than "." and "["
    index    := ["-"] digits          (negative counts from the end)
    quoted   := "'" chars "'" | '"' chars '"'

A name made only of digits is a "bare numeric" segment: it indexes a list,
or is used as a string key on an object. Wildcards and filter expressions
are not part of the grammar and are rejected as malformed.
"""
import re
from collections.abc import Mapping, Sequence
from typing import Any, List, Tuple

from testpilot.template.errors import ErrorKind, ResolutionError


KEY = "key"
INDEX = "index"
BARE = "bare"

_INDEX_RE = re.compile(r"^-?\d+$")


class _Missing:
    """Sentinel for a path that does not resolve"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "MISSING"

    def __bool__(self):
        return False


MISSING = _Missing()


def _malformed(path: str, reason: str) -> ResolutionError:
    return ResolutionError(ErrorKind.MALFORMED_EXPRESSION, f"Invalid path '{path}': {reason}")


def _read_name(path: str, i: int) -> Tuple[str, int]:
    j = i
    while j < len(path) and path[j] not in ".[":
        j += 1
    return path[i:j], j


def _name_token(name: str) -> Tuple[str, Any]:
    if name == "*":
        raise ValueError("wildcards are not supported")
    if name.isdigit():
        return (BARE, name)
    return (KEY, name)


def tokenize(path: str) -> List[Tuple[str, Any]]:
    """Turn a path into a list of (kind, value) access tokens."""
    original = path
    path = path.strip()
    tokens: List[Tuple[str, Any]] = []
    i = 0
    if path.startswith("$"):
        i = 1

    try:
        if i < len(path) and path[i] not in ".[":
            name, i = _read_name(path, i)
            tokens.append(_name_token(name))

        while i < len(path):
            char = path[i]
            if char == ".":
                name, i = _read_name(path, i + 1)
                if not name:
                    raise ValueError("empty segment")
                tokens.append(_name_token(name))
            elif char == "[":
                if i + 1 < len(path) and path[i + 1] in ("'", '"'):
                    quote = path[i + 1]
                    end = path.find(quote + "]", i + 2)
                    if end == -1:
                        raise ValueError("unterminated quoted key")
                    tokens.append((KEY, path[i + 2:end]))
                    i = end + 2
                else:
                    end = path.find("]", i)
                    if end == -1:
                        raise ValueError("unterminated index")
                    inner = path[i + 1:end].strip()
                    if not _INDEX_RE.match(inner):
                        raise ValueError(f"unsupported index '{inner}'")
                    tokens.append((INDEX, int(inner)))
                    i = end + 1
            else:
                raise ValueError(f"unexpected character '{char}' at {i}")
    except ValueError as e:
        raise _malformed(original, str(e))

    return tokens


def _is_list(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def _index(value: Any, index: int) -> Any:
    if not _is_list(value) or not -len(value) <= index < len(value):
        return MISSING
    return value[index]


def extract(data: Any, path: str) -> Any:
    """Return the value at ``path`` inside ``data``, or ``MISSING``.

    A present ``null`` is returned as ``None``; only an absent field,
    an out-of-range index or a type mismatch yields ``MISSING``.
    """
    if path is None or not path.strip() or path.strip() == "$":
        return data

    current = data
    for kind, value in tokenize(path):
        if current is MISSING:
            return MISSING
        if kind == INDEX:
            current = _index(current, value)
        elif kind == BARE and _is_list(current):
            current = _index(current, int(value))
        elif isinstance(current, Mapping):
            current = current[value] if value in current else MISSING
        else:
            return MISSING
    return current


def split_alias(reference: str) -> Tuple[str, str]:
    """Split ``alias.rest.of.path`` into ``("alias", "rest.of.path")``.

    The alias runs to the first ``.`` or ``[``; aliases may contain ``-``
    (e.g. ``login-0``) but not dots.
    """
    reference = reference.strip()
    for i, char in enumerate(reference):
        if char == ".":
            return reference[:i], reference[i + 1:]
        if char == "[":
            return reference[:i], reference[i:]
    return reference, ""
