from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from .errors import (
    DocrulesError,
    InvalidFunctionOptionsError,
    RuleDefinitionError,
    RulesetValidationError,
    SelectorSyntaxError,
    UnknownFunctionError,
)
from .functions import get_function
from .schema import RULESET_FORMAT_VERSION, FunctionCall, RuleDef, RulesetDef, Severity
from .selector import Selector, parse_selector

logger = logging.getLogger(__name__)

RULESET_FILENAMES = (".docrules.yaml", ".docrules.yml", ".docrules.json", ".docrules.toml")

_RULESET_KEYS = {"version", "name", "description", "rules"}
_RULE_KEYS = {"id", "description", "message", "severity", "formats", "given", "then", "type", "documentationUrl"}
_THEN_KEYS = {"function", "field", "functionOptions"}

_SEVERITY_ALIASES: dict[Any, Severity] = {
    "error": "error",
    "warning": "warning",
    "warn": "warning",
    "info": "info",
    "information": "info",
    "hint": "hint",
    "off": "off",
    -1: "off",
    0: "error",
    1: "warning",
    2: "info",
    3: "hint",
}


def normalize_severity(raw: Any, *, rule_id: str | None = None) -> Severity:
    """Map an authored severity (name, alias or number) to its canonical name."""
    key = raw.strip().lower() if isinstance(raw, str) else raw
    if isinstance(key, bool) or not isinstance(key, (str, int)) or key not in _SEVERITY_ALIASES:
        raise RuleDefinitionError(rule_id, f"invalid severity {raw!r}")
    return _SEVERITY_ALIASES[key]


def _optional_str(raw: dict[str, Any], key: str, rule_id: str, errors: list[DocrulesError]) -> str | None:
    value = raw.get(key)
    if value is None or isinstance(value, str):
        return value
    errors.append(RuleDefinitionError(rule_id, f'"{key}" must be a string'))
    return None


def _parse_given(rule_id: str, raw: Any, errors: list[DocrulesError]) -> tuple[Selector, ...]:
    expressions = raw if isinstance(raw, list) else [raw]
    if raw is None or not expressions:
        errors.append(RuleDefinitionError(rule_id, '"given" is required'))
        return ()

    selectors: list[Selector] = []
    for expression in expressions:
        try:
            selectors.append(parse_selector(expression))
        except SelectorSyntaxError as e:
            errors.append(e.for_rule(rule_id))
    return tuple(selectors)


def _parse_then(rule_id: str, raw: Any, errors: list[DocrulesError]) -> tuple[FunctionCall, ...]:
    entries = raw if isinstance(raw, list) else [raw]
    if raw is None or not entries:
        errors.append(RuleDefinitionError(rule_id, '"then" is required'))
        return ()

    calls: list[FunctionCall] = []
    for entry in entries:
        if not isinstance(entry, dict):
            errors.append(RuleDefinitionError(rule_id, '"then" entries must be mappings'))
            continue

        unknown = sorted(str(k) for k in entry if k not in _THEN_KEYS)
        if unknown:
            errors.append(RuleDefinitionError(rule_id, f"unknown key(s) in then: {', '.join(unknown)}"))

        name = entry.get("function")
        if not isinstance(name, str) or not name.strip():
            errors.append(RuleDefinitionError(rule_id, '"then.function" must be a function name'))
            continue
        name = name.strip()

        options = entry.get("functionOptions")
        if options is None:
            options = {}
        elif not isinstance(options, dict):
            errors.append(RuleDefinitionError(rule_id, '"functionOptions" must be a mapping'))
            continue

        spec = get_function(name)
        if spec is None:
            errors.append(UnknownFunctionError(name, rule_id=rule_id))
            continue
        problems = spec.validate_options(options)
        if problems:
            errors.append(InvalidFunctionOptionsError(name, problems, rule_id=rule_id))
            continue

        field = entry.get("field")
        field_selector = None
        if field is not None:
            if not isinstance(field, str) or not field:
                errors.append(RuleDefinitionError(rule_id, '"then.field" must be a non-empty string'))
                continue
            if field.startswith("$"):
                try:
                    field_selector = parse_selector(field)
                except SelectorSyntaxError as e:
                    errors.append(e.for_rule(rule_id))
                    continue

        calls.append(FunctionCall(function=name, field=field, options=options, field_selector=field_selector))
    return tuple(calls)


def _parse_formats(rule_id: str, raw: Any, errors: list[DocrulesError]) -> frozenset[str]:
    if raw is None:
        return frozenset()
    values = [raw] if isinstance(raw, str) else raw
    if not isinstance(values, list) or not all(isinstance(v, str) and v.strip() for v in values):
        errors.append(RuleDefinitionError(rule_id, '"formats" must be a list of format names'))
        return frozenset()
    return frozenset(v.strip() for v in values)


def _parse_rule(rule_id: str, raw: Any) -> tuple[RuleDef | None, list[DocrulesError]]:
    errors: list[DocrulesError] = []
    if not isinstance(raw, dict):
        return None, [RuleDefinitionError(rule_id, "rule definition must be a mapping")]

    unknown = sorted(str(k) for k in raw if k not in _RULE_KEYS)
    if unknown:
        errors.append(RuleDefinitionError(rule_id, f"unknown key(s): {', '.join(unknown)}"))

    severity: Severity = "warning"
    if raw.get("severity") is not None:
        try:
            severity = normalize_severity(raw["severity"], rule_id=rule_id)
        except RuleDefinitionError as e:
            errors.append(e)

    description = _optional_str(raw, "description", rule_id, errors)
    message = _optional_str(raw, "message", rule_id, errors)
    rule_type = _optional_str(raw, "type", rule_id, errors)
    documentation_url = _optional_str(raw, "documentationUrl", rule_id, errors)
    formats = _parse_formats(rule_id, raw.get("formats"), errors)
    given = _parse_given(rule_id, raw.get("given"), errors)
    then = _parse_then(rule_id, raw.get("then"), errors)

    if errors:
        return None, errors
    return (
        RuleDef(
            id=rule_id,
            given=given,
            then=then,
            severity=severity,
            description=description,
            message=message,
            formats=formats,
            rule_type=rule_type,
            documentation_url=documentation_url,
        ),
        [],
    )


def _rule_entries(raw_rules: Any, errors: list[DocrulesError]) -> list[tuple[str, Any]]:
    if raw_rules is None:
        return []
    if isinstance(raw_rules, dict):
        return [(str(rule_id), body) for rule_id, body in raw_rules.items()]
    if not isinstance(raw_rules, list):
        errors.append(RuleDefinitionError(None, '"rules" must be a mapping or a list'))
        return []

    entries: list[tuple[str, Any]] = []
    for i, body in enumerate(raw_rules):
        rule_id = body.get("id") if isinstance(body, dict) else None
        if not isinstance(rule_id, str) or not rule_id.strip():
            errors.append(RuleDefinitionError(None, f"rule #{i} is missing an id"))
            continue
        entries.append((rule_id.strip(), body))
    return entries


def load_ruleset_data(data: Any) -> RulesetDef:
    """
    Build a ruleset from already-parsed data.

    Every rule is validated, including disabled ones, before anything is
    returned; all problems are reported together.

    Raises:
        RulesetValidationError: If the ruleset or any of its rules is invalid.
            Per-rule problems (`SelectorSyntaxError`, `UnknownFunctionError`,
            `InvalidFunctionOptionsError`, `RuleDefinitionError`) are collected
            on its `errors` list rather than raised; see `errors_of`.
    """
    if not isinstance(data, dict):
        raise RulesetValidationError(reason="ruleset must be a mapping")

    version = data.get("version", RULESET_FORMAT_VERSION)
    if isinstance(version, bool) or version != RULESET_FORMAT_VERSION:
        raise RulesetValidationError(reason=f"unsupported ruleset version {version!r} (expected {RULESET_FORMAT_VERSION})")

    errors: list[DocrulesError] = []
    unknown = sorted(str(k) for k in data if k not in _RULESET_KEYS)
    if unknown:
        errors.append(RuleDefinitionError(None, f"unknown ruleset key(s): {', '.join(unknown)}"))

    rules: list[RuleDef] = []
    seen: set[str] = set()
    for rule_id, body in _rule_entries(data.get("rules"), errors):
        if rule_id in seen:
            errors.append(RuleDefinitionError(rule_id, "duplicate rule id"))
            continue
        seen.add(rule_id)
        rule, rule_errors = _parse_rule(rule_id, body)
        errors.extend(rule_errors)
        if rule is not None:
            rules.append(rule)

    if errors:
        raise RulesetValidationError(errors)

    name = data.get("name")
    description = data.get("description")
    return RulesetDef(
        rules=tuple(rules),
        name=str(name) if isinstance(name, str) else None,
        description=str(description) if isinstance(description, str) else None,
    )


def _parse_file(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    if suffix == ".json":
        return json.loads(text)
    if suffix == ".toml":
        import tomllib

        return tomllib.loads(text)
    return yaml.safe_load(text)


def load_ruleset(path: Path) -> RulesetDef:
    """
    Load a ruleset from a YAML, JSON or TOML file.

    The format is picked by file extension; anything else is read as YAML.
    """
    try:
        data = _parse_file(path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise RulesetValidationError(reason=f"cannot read ruleset {path}: {e}") from e

    ruleset = load_ruleset_data(data)
    if ruleset.name is None:
        ruleset = RulesetDef(rules=ruleset.rules, name=path.stem, description=ruleset.description)
    logger.debug("Loaded ruleset %s (%d rules) from %s", ruleset.name, len(ruleset.rules), path)
    return ruleset


def find_ruleset(start: Path) -> Path | None:
    """Find the nearest project ruleset file by walking up from `start`."""
    cur = start.resolve()
    for p in (cur, *cur.parents):
        for name in RULESET_FILENAMES:
            candidate = p / name
            if candidate.is_file():
                return candidate
    return None
