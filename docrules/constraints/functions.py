"""Validation functions: the code half of "rules as data, functions as code".

Every function receives the (projected) matched value, the rule's options and
a context, and returns error details. An empty list means the value passed.
Rule severity and message templates are applied by the engine, never here.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError, ValidationError, best_match
from jsonschema.validators import validator_for

from .errors import FunctionEvaluationError
from .selector import Path
from .values import MISSING, compile_regex, is_number, is_truthy, to_text, value_equals


@dataclass(frozen=True)
class FunctionContext:
    rule_id: str
    # Location of the value being checked (may point at an absent field).
    path: Path
    document: Any = None


ValidationFn = Callable[[Any, dict[str, Any], FunctionContext], list[str]]
OptionsValidator = Callable[[dict[str, Any]], list[str]]


@dataclass(frozen=True)
class FunctionSpec:
    name: str
    fn: ValidationFn
    validate_options: OptionsValidator
    # Called even when a targeted field is absent (receives MISSING).
    handles_missing: bool = False


def _subject(ctx: FunctionContext) -> str:
    if ctx.path:
        return f'"{ctx.path[-1]}" property'
    return "Document"


def _quote(value: Any) -> str:
    return f'"{to_text(value)}"'


# ---------------------------------------------------------------------------
# Option validators
# ---------------------------------------------------------------------------


def _no_options(options: dict[str, Any]) -> list[str]:
    if options:
        return [f"does not accept options (got {', '.join(sorted(map(str, options)))})"]
    return []


def _unexpected(options: dict[str, Any], allowed: set[str]) -> list[str]:
    extra = sorted(str(k) for k in options if k not in allowed)
    return [f"unknown option(s): {', '.join(extra)}"] if extra else []


def _pattern_options(options: dict[str, Any]) -> list[str]:
    problems = _unexpected(options, {"match", "notMatch"})
    if "match" not in options and "notMatch" not in options:
        problems.append('requires at least one of "match" or "notMatch"')
    for key in ("match", "notMatch"):
        if key in options and not isinstance(options[key], str):
            problems.append(f'"{key}" must be a string')
    return problems


def _enumeration_options(options: dict[str, Any]) -> list[str]:
    problems = _unexpected(options, {"values"})
    if not isinstance(options.get("values"), list):
        problems.append('"values" must be a list')
    return problems


def _schema_options(options: dict[str, Any]) -> list[str]:
    problems = _unexpected(options, {"schema", "allErrors"})
    if not isinstance(options.get("schema"), (dict, bool)):
        problems.append('"schema" must be a mapping')
    if "allErrors" in options and not isinstance(options["allErrors"], bool):
        problems.append('"allErrors" must be a boolean')
    return problems


def _length_options(options: dict[str, Any]) -> list[str]:
    problems = _unexpected(options, {"min", "max"})
    if "min" not in options and "max" not in options:
        problems.append('requires at least one of "min" or "max"')
    for key in ("min", "max"):
        if key in options and not is_number(options[key]):
            problems.append(f'"{key}" must be a number')
    return problems


def _casing_options(options: dict[str, Any]) -> list[str]:
    problems = _unexpected(options, {"type", "disallowDigits"})
    if options.get("type") not in _CASINGS:
        problems.append(f'"type" must be one of: {", ".join(_CASINGS)}')
    if "disallowDigits" in options and not isinstance(options["disallowDigits"], bool):
        problems.append('"disallowDigits" must be a boolean')
    return problems


def _xor_options(options: dict[str, Any]) -> list[str]:
    problems = _unexpected(options, {"properties"})
    props = options.get("properties")
    if not isinstance(props, list) or len(props) < 2 or not all(isinstance(p, str) for p in props):
        problems.append('"properties" must be a list of at least two property names')
    return problems


def _alphabetical_options(options: dict[str, Any]) -> list[str]:
    problems = _unexpected(options, {"keyedBy"})
    if "keyedBy" in options and not isinstance(options["keyedBy"], str):
        problems.append('"keyedBy" must be a string')
    return problems


# ---------------------------------------------------------------------------
# Functions
# ---------------------------------------------------------------------------


def fn_truthy(value: Any, options: dict[str, Any], ctx: FunctionContext) -> list[str]:
    if is_truthy(value):
        return []
    return [f"{_subject(ctx)} must be truthy"]


def fn_falsy(value: Any, options: dict[str, Any], ctx: FunctionContext) -> list[str]:
    if not is_truthy(value):
        return []
    return [f"{_subject(ctx)} must be falsy"]


def fn_undefined(value: Any, options: dict[str, Any], ctx: FunctionContext) -> list[str]:
    if value is MISSING:
        return []
    return [f"{_subject(ctx)} must be undefined"]


def fn_defined(value: Any, options: dict[str, Any], ctx: FunctionContext) -> list[str]:
    if value is not MISSING:
        return []
    return [f"{_subject(ctx)} must be defined"]


def fn_pattern(value: Any, options: dict[str, Any], ctx: FunctionContext) -> list[str]:
    text = to_text(value)
    errors: list[str] = []

    match = options.get("match")
    if match is not None and compile_regex(match).search(text) is None:
        errors.append(f"{_quote(value)} must match the pattern {_quote(match)}")

    not_match = options.get("notMatch")
    if not_match is not None and compile_regex(not_match).search(text) is not None:
        errors.append(f"{_quote(value)} must not match the pattern {_quote(not_match)}")

    return errors


def fn_enumeration(value: Any, options: dict[str, Any], ctx: FunctionContext) -> list[str]:
    allowed = options.get("values", [])
    if any(value_equals(value, candidate) for candidate in allowed):
        return []
    listed = ", ".join(_quote(v) for v in allowed)
    return [f"{_quote(value)} must be equal to one of the allowed values: {listed}"]


@lru_cache(maxsize=256)
def _compiled_validator(schema_json: str) -> Any:
    schema = json.loads(schema_json)
    cls = validator_for(schema, default=Draft7Validator)
    try:
        cls.check_schema(schema)
    except SchemaError as e:
        raise FunctionEvaluationError(f"invalid schema: {e.message}") from e
    return cls(schema)


def _schema_error_message(error: ValidationError) -> str:
    if error.path:
        location = ".".join(str(p) for p in error.path)
        return f'"{location}" property {error.message}'
    return error.message


def fn_schema(value: Any, options: dict[str, Any], ctx: FunctionContext) -> list[str]:
    try:
        schema_json = json.dumps(options.get("schema", {}), sort_keys=True)
    except (TypeError, ValueError) as e:
        raise FunctionEvaluationError(f"schema is not JSON-serializable: {e}") from e
    validator = _compiled_validator(schema_json)

    errors = list(validator.iter_errors(value))
    if not errors:
        return []
    if options.get("allErrors"):
        return [_schema_error_message(e) for e in errors]

    # One entry per top-level failure: group by first path element, or by the
    # failing keyword for errors on the value itself.
    groups: dict[Any, list[ValidationError]] = {}
    for error in errors:
        key = ("path", error.path[0]) if error.path else ("keyword", error.validator)
        groups.setdefault(key, []).append(error)
    return [_schema_error_message(best_match(group)) for group in groups.values()]


def _length_of(value: Any) -> float | None:
    if isinstance(value, (str, list, dict)):
        return len(value)
    if is_number(value):
        return value
    return None


def fn_length(value: Any, options: dict[str, Any], ctx: FunctionContext) -> list[str]:
    size = _length_of(value)
    if size is None:
        return []
    errors: list[str] = []
    if "min" in options and size < options["min"]:
        errors.append(f"{_subject(ctx)} must not be shorter than {to_text(options['min'])}")
    if "max" in options and size > options["max"]:
        errors.append(f"{_subject(ctx)} must not be longer than {to_text(options['max'])}")
    return errors


_CASINGS: dict[str, str] = {
    "flat": r"^[a-z][a-z{d}]*$",
    "camel": r"^[a-z][a-z{d}]*(?:[A-Z{d}](?:[a-z{d}]+|$))*$",
    "pascal": r"^[A-Z][a-z{d}]*(?:[A-Z{d}](?:[a-z{d}]+|$))*$",
    "kebab": r"^[a-z][a-z{d}]*(?:-[a-z{d}]+)*$",
    "cobol": r"^[A-Z][A-Z{d}]*(?:-[A-Z{d}]+)*$",
    "snake": r"^[a-z][a-z{d}]*(?:_[a-z{d}]+)*$",
    "macro": r"^[A-Z][A-Z{d}]*(?:_[A-Z{d}]+)*$",
}


@lru_cache(maxsize=32)
def _casing_regex(kind: str, allow_digits: bool) -> re.Pattern[str]:
    return re.compile(_CASINGS[kind].replace("{d}", "0-9" if allow_digits else ""))


def fn_casing(value: Any, options: dict[str, Any], ctx: FunctionContext) -> list[str]:
    if not isinstance(value, str) or value == "":
        return []
    kind = options["type"]
    if _casing_regex(kind, not options.get("disallowDigits", False)).fullmatch(value):
        return []
    return [f"{_quote(value)} must be {kind} case"]


def fn_xor(value: Any, options: dict[str, Any], ctx: FunctionContext) -> list[str]:
    if not isinstance(value, dict):
        return []
    props = options["properties"]
    present = [p for p in props if p in value]
    if len(present) == 1:
        return []
    names = " and ".join(_quote(p) for p in props)
    return [f"{names} must not be both defined or both undefined"]


def _sort_key(item: Any, keyed_by: str | None) -> Any:
    if keyed_by is not None and isinstance(item, dict):
        item = item.get(keyed_by, MISSING)
    if is_number(item):
        return (0, item, "")
    return (1, 0, to_text(item))


def fn_alphabetical(value: Any, options: dict[str, Any], ctx: FunctionContext) -> list[str]:
    if isinstance(value, dict):
        items: list[Any] = list(value.keys())
        keyed_by = None
    elif isinstance(value, list):
        items = value
        keyed_by = options.get("keyedBy")
    else:
        return []

    for i in range(len(items) - 1):
        a, b = items[i], items[i + 1]
        if _sort_key(a, keyed_by) > _sort_key(b, keyed_by):
            shown_a = a.get(keyed_by) if keyed_by and isinstance(a, dict) else a
            shown_b = b.get(keyed_by) if keyed_by and isinstance(b, dict) else b
            return [f"{_quote(shown_a)} must be placed after {_quote(shown_b)}"]
    return []


FUNCTIONS: dict[str, FunctionSpec] = {
    "truthy": FunctionSpec("truthy", fn_truthy, _no_options, handles_missing=True),
    "falsy": FunctionSpec("falsy", fn_falsy, _no_options, handles_missing=True),
    "undefined": FunctionSpec("undefined", fn_undefined, _no_options, handles_missing=True),
    "undefined-check": FunctionSpec("undefined-check", fn_undefined, _no_options, handles_missing=True),
    "defined": FunctionSpec("defined", fn_defined, _no_options, handles_missing=True),
    "pattern": FunctionSpec("pattern", fn_pattern, _pattern_options),
    "enumeration": FunctionSpec("enumeration", fn_enumeration, _enumeration_options),
    "schema": FunctionSpec("schema", fn_schema, _schema_options),
    "length": FunctionSpec("length", fn_length, _length_options),
    "casing": FunctionSpec("casing", fn_casing, _casing_options),
    "xor": FunctionSpec("xor", fn_xor, _xor_options),
    "alphabetical": FunctionSpec("alphabetical", fn_alphabetical, _alphabetical_options),
}


def register_function(spec: FunctionSpec) -> None:
    """Register a function by name, replacing any existing entry."""
    FUNCTIONS[spec.name] = spec


def get_function(name: str) -> FunctionSpec | None:
    return FUNCTIONS.get(name)


def list_functions() -> list[str]:
    return sorted(FUNCTIONS)
