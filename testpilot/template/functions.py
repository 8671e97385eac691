"""Utility functions callable from ``{{func:name(args)}}`` expressions.

The registry is an explicit table handed to the template context, so callers
(and tests) can swap in their own clock, random source or individual
functions without touching module state.
"""
import base64
import random
import re
import string
import uuid as uuid_lib
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
from urllib.parse import quote, unquote

from testpilot.template.errors import ErrorKind, ResolutionError
from testpilot.template.jsonpath import MISSING, extract
from testpilot.template.values import is_integer, is_number, stringify


STRING = "string"
NUMBER = "number"
INTEGER = "integer"
ANY = "any"

_TYPE_CHECKS: Dict[str, Callable[[Any], bool]] = {
    STRING: lambda value: isinstance(value, str),
    NUMBER: is_number,
    INTEGER: is_integer,
    ANY: lambda value: True,
}

ALPHANUMERIC = string.ascii_uppercase + string.ascii_lowercase + string.digits


@dataclass(frozen=True)
class TemplateFunction:
    name: str
    fn: Callable[..., Any]
    min_args: int = 0
    max_args: Optional[int] = 0
    arg_types: Tuple[str, ...] = ()
    deterministic: bool = True
    description: str = ""

    @property
    def variadic(self) -> bool:
        return self.max_args is None

    @property
    def arity(self) -> str:
        if self.variadic:
            return f"{self.min_args}+"
        if self.min_args == self.max_args:
            return str(self.min_args)
        return f"{self.min_args}-{self.max_args}"

    def expected_type(self, index: int) -> str:
        if not self.arg_types:
            return ANY
        if index < len(self.arg_types):
            return self.arg_types[index]
        return self.arg_types[-1]

    def check(self, args: Sequence[Any]) -> None:
        count = len(args)
        if count < self.min_args or (self.max_args is not None and count > self.max_args):
            raise ResolutionError(
                ErrorKind.INVALID_FUNCTION_ARGUMENTS,
                f"Function '{self.name}' expects {self.arity} argument(s), received {count}: {list(args)!r}",
            )
        for index, value in enumerate(args):
            expected = self.expected_type(index)
            if not _TYPE_CHECKS[expected](value):
                raise ResolutionError(
                    ErrorKind.INVALID_FUNCTION_ARGUMENTS,
                    f"Function '{self.name}' argument {index + 1} must be {expected}, "
                    f"received {value!r} in {list(args)!r}",
                )

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "arity": self.arity,
            "arg_types": list(self.arg_types),
            "deterministic": self.deterministic,
            "description": self.description,
        }


class FunctionRegistry(Mapping):
    """Read-only, enumerable table of template functions"""

    def __init__(self, functions: Iterable[TemplateFunction] = ()):
        self._functions: Dict[str, TemplateFunction] = {f.name: f for f in functions}

    def __getitem__(self, name: str) -> TemplateFunction:
        return self._functions[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._functions)

    def __len__(self) -> int:
        return len(self._functions)

    def __repr__(self):
        return f"<FunctionRegistry({len(self)} functions)>"

    def with_overrides(self, *functions: TemplateFunction, **callables: Callable[..., Any]) -> "FunctionRegistry":
        """Return a new registry with some functions added or replaced.

        Keyword callables replace the implementation of an existing function
        while keeping its declared arity and argument types.
        """
        merged = dict(self._functions)
        for function in functions:
            merged[function.name] = function
        for name, fn in callables.items():
            if name in merged:
                merged[name] = replace(merged[name], fn=fn)
            else:
                merged[name] = TemplateFunction(name=name, fn=fn, max_args=None)
        return FunctionRegistry(merged.values())

    def call(self, name: str, args: Sequence[Any]) -> Any:
        function = self._functions.get(name)
        if function is None:
            available = ", ".join(sorted(self._functions))
            raise ResolutionError(
                ErrorKind.UNKNOWN_FUNCTION,
                f"Function not found: {name}. Available functions: {available}",
            )
        function.check(args)
        try:
            return function.fn(*args)
        except ResolutionError:
            raise
        except Exception as e:
            raise ResolutionError(
                ErrorKind.INVALID_FUNCTION_ARGUMENTS,
                f"Function '{name}' failed for arguments {list(args)!r}: {type(e).__name__}: {e}",
            )

    def describe(self) -> List[Dict[str, Any]]:
        return [self._functions[name].describe() for name in sorted(self._functions)]


# Date formatting

_SIMPLE_TOKENS = re.compile(r"YYYY|MM|DD|HH|mm|ss")
_PATTERN_TOKENS = re.compile(r"yyyy|yy|MM|M|dd|d|HH|H|hh|h|mm|m|SSS|ss|s|a")


def _format_simple(moment: datetime, fmt: str) -> str:
    values = {
        "YYYY": f"{moment.year:04d}",
        "MM": f"{moment.month:02d}",
        "DD": f"{moment.day:02d}",
        "HH": f"{moment.hour:02d}",
        "mm": f"{moment.minute:02d}",
        "ss": f"{moment.second:02d}",
    }
    return _SIMPLE_TOKENS.sub(lambda m: values[m.group(0)], fmt)


def format_date_pattern(moment: datetime, pattern: str) -> str:
    """Format with ``yyyy-MM-dd HH:mm:ss`` style tokens (single left-to-right pass)"""
    hour12 = moment.hour % 12 or 12
    values = {
        "yyyy": f"{moment.year:04d}",
        "yy": f"{moment.year % 100:02d}",
        "MM": f"{moment.month:02d}",
        "M": str(moment.month),
        "dd": f"{moment.day:02d}",
        "d": str(moment.day),
        "HH": f"{moment.hour:02d}",
        "H": str(moment.hour),
        "hh": f"{hour12:02d}",
        "h": str(hour12),
        "mm": f"{moment.minute:02d}",
        "m": str(moment.minute),
        "SSS": f"{moment.microsecond // 1000:03d}",
        "ss": f"{moment.second:02d}",
        "s": str(moment.second),
        "a": "AM" if moment.hour < 12 else "PM",
    }
    return _PATTERN_TOKENS.sub(lambda m: values[m.group(0)], pattern)


def _iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


_RELATIVE_UNITS = ("days", "hours", "minutes", "seconds")


def build_default_registry(
    clock: Optional[Callable[[], datetime]] = None,
    rng: Optional[random.Random] = None,
) -> FunctionRegistry:
    """Build the standard function table.

    ``clock`` must return an aware datetime; it defaults to the current UTC
    time. ``rng`` defaults to ``random.SystemRandom``.
    """
    now = clock or (lambda: datetime.now(timezone.utc))
    rand = rng or random.SystemRandom()

    def shifted(day_offset=0) -> datetime:
        return now() + timedelta(days=day_offset)

    def relative_date(amount, unit):
        if unit not in _RELATIVE_UNITS:
            raise ValueError(f"unit must be one of {', '.join(_RELATIVE_UNITS)}")
        return _iso(now() + timedelta(**{unit: amount}))

    def random_int(low=0, high=100):
        if low > high:
            raise ValueError("min must not be greater than max")
        return rand.randint(low, high)

    def random_string(length=10, charset=ALPHANUMERIC):
        if length < 0 or not charset:
            raise ValueError("length must be non-negative and charset non-empty")
        return "".join(rand.choice(charset) for _ in range(length))

    def pattern_date(pattern, epoch_ms=None):
        moment = now() if epoch_ms is None else datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
        return format_date_pattern(moment, pattern)

    def substring(value, start, end=None):
        return value[start:end]

    def length(value):
        if value is None or is_number(value) or isinstance(value, bool):
            raise TypeError("length() needs a string, array or object")
        return len(value)

    def divide(a, b):
        return a / b

    def json_path(data, path):
        result = extract(data, path)
        return None if result is MISSING else result

    return FunctionRegistry([
        # strings
        TemplateFunction("upper", lambda s: s.upper(), 1, 1, (STRING,), description="Convert to upper case"),
        TemplateFunction("lower", lambda s: s.lower(), 1, 1, (STRING,), description="Convert to lower case"),
        TemplateFunction("trim", lambda s: s.strip(), 1, 1, (STRING,), description="Strip surrounding whitespace"),
        TemplateFunction("concat", lambda *parts: "".join(stringify(p) for p in parts), 1, None, (ANY,),
                         description="Join the string forms of all arguments"),
        TemplateFunction("replace", lambda s, old, new: s.replace(old, new), 3, 3, (STRING, STRING, STRING),
                         description="Replace every occurrence of a substring"),
        TemplateFunction("substring", substring, 2, 3, (STRING, INTEGER, INTEGER),
                         description="Slice a string by start and optional end index"),
        TemplateFunction("length", length, 1, 1, (ANY,), description="Length of a string, array or object"),
        # numbers
        TemplateFunction("add", lambda *n: sum(n), 2, None, (NUMBER,), description="Sum of all arguments"),
        TemplateFunction("subtract", lambda a, b: a - b, 2, 2, (NUMBER, NUMBER), description="a - b"),
        TemplateFunction("multiply", _product, 2, None, (NUMBER,), description="Product of all arguments"),
        TemplateFunction("divide", divide, 2, 2, (NUMBER, NUMBER), description="a / b"),
        TemplateFunction("round", lambda x, digits=0: round(x, digits) if digits else round(x), 1, 2,
                         (NUMBER, INTEGER), description="Round to the given number of digits"),
        # dates
        TemplateFunction("timestamp", lambda: int(now().timestamp() * 1000), deterministic=False,
                         description="Current time in epoch milliseconds"),
        TemplateFunction("isoDate", lambda: _iso(now()), deterministic=False,
                         description="Current time as an ISO-8601 string"),
        TemplateFunction("dateFormat", lambda day_offset=0, fmt="YYYY-MM-DD": _format_simple(shifted(day_offset), fmt),
                         0, 2, (INTEGER, STRING), deterministic=False,
                         description="Today plus an optional day offset, formatted with YYYY MM DD HH mm ss"),
        TemplateFunction("dateISO", lambda day_offset=0: shifted(day_offset).date().isoformat(), 0, 1, (INTEGER,),
                         deterministic=False, description="Date part (YYYY-MM-DD) with an optional day offset"),
        TemplateFunction("dateRFC3339", lambda day_offset=0: _iso(shifted(day_offset)), 0, 1, (INTEGER,),
                         deterministic=False, description="RFC 3339 timestamp with an optional day offset"),
        TemplateFunction("formatDatePattern", pattern_date, 1, 2, (STRING, NUMBER), deterministic=False,
                         description="Format now (or an epoch-ms value) with a yyyy-MM-dd style pattern"),
        TemplateFunction("relativeDate", relative_date, 2, 2, (NUMBER, STRING), deterministic=False,
                         description="Now shifted by an amount of days, hours, minutes or seconds"),
        # random values
        TemplateFunction("uuid", lambda: str(uuid_lib.UUID(int=rand.getrandbits(128), version=4)),
                         deterministic=False, description="Random UUID v4"),
        TemplateFunction("randomInt", random_int, 0, 2, (INTEGER, INTEGER), deterministic=False,
                         description="Random integer between min and max, inclusive"),
        TemplateFunction("randomString", random_string, 0, 2, (INTEGER, STRING), deterministic=False,
                         description="Random string of the given length"),
        # encoding
        TemplateFunction("base64Encode", lambda s: base64.b64encode(s.encode("utf-8")).decode("ascii"), 1, 1,
                         (STRING,), description="Base64-encode a UTF-8 string"),
        TemplateFunction("base64Decode", lambda s: base64.b64decode(s, validate=True).decode("utf-8"), 1, 1,
                         (STRING,), description="Decode a base64 string to UTF-8"),
        TemplateFunction("urlEncode", lambda s: quote(s, safe="-_.!~*'()"), 1, 1, (STRING,),
                         description="Percent-encode a URI component"),
        TemplateFunction("urlDecode", unquote, 1, 1, (STRING,), description="Decode a percent-encoded string"),
        # data
        TemplateFunction("jsonPath", json_path, 2, 2, (ANY, STRING),
                         description="Extract a value from data with a simplified JSONPath"),
    ])


def _product(*numbers):
    result = 1
    for number in numbers:
        result *= number
    return result


default_registry = build_default_registry()
