"""Value semantics shared by selector filters and validation functions.

Rulesets in the wild are written against JavaScript tooling, so truthiness,
equality, text coercion and regex literals follow JavaScript rules here.
"""

from __future__ import annotations

import math
import re
from functools import lru_cache
from typing import Any

from .errors import FunctionEvaluationError


class _Missing:
    """Marker for an absent value (JavaScript `undefined`)."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

_REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    # g/u/y have no Python equivalent that changes search semantics.
    "g": 0,
    "u": 0,
    "y": 0,
}
_DELIMITED_RE = re.compile(r"^/(?P<source>.+)/(?P<flags>[a-z]*)$", re.DOTALL)
_NAMED_GROUP_RE = re.compile(r"\(\?<(?=[A-Za-z_])")


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_truthy(value: Any) -> bool:
    """JavaScript truthiness: containers are truthy even when empty."""
    if value is MISSING or value is None or value is False:
        return False
    if is_number(value):
        return not (value == 0 or (isinstance(value, float) and math.isnan(value)))
    if isinstance(value, str):
        return value != ""
    return True


def to_text(value: Any) -> str:
    """Coerce a value to text the way JavaScript's String() does for scalars."""
    if value is MISSING:
        return "undefined"
    if value is None:
        return "null"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return ",".join("" if v is None or v is MISSING else to_text(v) for v in value)
    if isinstance(value, dict):
        return "[object Object]"
    return str(value)


def to_number(value: Any) -> float:
    """JavaScript Number() coercion for scalars; NaN when not convertible."""
    if is_number(value):
        return float(value)
    if value is True:
        return 1.0
    if value is False or value is None:
        return 0.0
    if isinstance(value, str):
        text = value.strip()
        if text == "":
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def strict_equals(left: Any, right: Any) -> bool:
    """JavaScript `===`: no coercion, booleans never equal numbers."""
    if is_number(left) and is_number(right):
        return left == right
    if isinstance(left, bool) or isinstance(right, bool):
        return left is right
    if left is MISSING or right is MISSING:
        return left is right
    if left is None or right is None:
        return left is right
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if isinstance(left, (dict, list)) or isinstance(right, (dict, list)):
        return left is right
    return type(left) is type(right) and left == right


def value_equals(left: Any, right: Any) -> bool:
    """Structural equality with strict scalar comparison.

    Used for enumeration membership where allowed values may be containers.
    """
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(value_equals(left[k], right[k]) for k in left)
    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(value_equals(a, b) for a, b in zip(left, right))
    if isinstance(left, (dict, list)) or isinstance(right, (dict, list)):
        return False
    return strict_equals(left, right)


def loose_equals(left: Any, right: Any) -> bool:
    """JavaScript `==` for the scalar cases rulesets rely on."""
    nullish = (None, MISSING)
    if left in nullish or right in nullish:
        return left in nullish and right in nullish
    if type(left) is type(right) or (is_number(left) and is_number(right)):
        return strict_equals(left, right)
    if isinstance(left, (dict, list)) or isinstance(right, (dict, list)):
        return left is right
    return to_number(left) == to_number(right)


@lru_cache(maxsize=512)
def compile_regex(source: str) -> re.Pattern[str]:
    """Compile a pattern, accepting JavaScript-style `/source/flags` literals.

    Raises:
        FunctionEvaluationError: If the pattern does not compile.
    """
    flags = 0
    body = source
    m = _DELIMITED_RE.match(source)
    if m:
        body = m.group("source")
        for flag in m.group("flags"):
            if flag not in _REGEX_FLAGS:
                raise FunctionEvaluationError(f"unsupported regex flag {flag!r} in {source!r}")
            flags |= _REGEX_FLAGS[flag]
    body = _NAMED_GROUP_RE.sub("(?P<", body)
    try:
        return re.compile(body, flags)
    except re.error as e:
        raise FunctionEvaluationError(f"invalid regular expression {source!r}: {e}") from e
