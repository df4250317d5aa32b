from __future__ import annotations

import logging
import re
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace
from typing import Any, Iterable

from .applicability import applies
from .errors import RuleDefinitionError
from .functions import FunctionContext, get_function
from .load import normalize_severity
from .report import Report, Violation, aggregate
from .schema import Document, FunctionCall, RuleDef, RulesetDef, Severity
from .selector import Match, Path, evaluate, format_path, lookup
from .values import MISSING, to_text

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"{{\s*(\w+)\s*}}")


@dataclass(frozen=True)
class LintOptions:
    """Per-run options for `lint`.

    Attributes:
        severities: Keep only these severities in the report (post-hoc filter)
        formats: Format tags the document declares, added to its own
        workers: Number of threads evaluating rules
        rule_timeout: Seconds to wait for each rule's result before reporting
            a synthetic error for it
        severity_overrides: Rule id -> severity, applied before applicability
    """

    severities: Iterable[str] | None = None
    formats: Iterable[str] = ()
    workers: int = 1
    rule_timeout: float | None = None
    severity_overrides: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class _Target:
    # Where the checked value lives (may name an absent field).
    path: Path
    # Where a violation is reported: the deepest existing location.
    report_path: Path
    value: Any


def render_message(template: str, variables: dict[str, str]) -> str:
    """Substitute `{{name}}` placeholders; unknown names render empty."""
    return _PLACEHOLDER_RE.sub(lambda m: variables.get(m.group(1), ""), template)


def _message(rule: RuleDef, detail: str, target: _Target) -> str:
    prop = to_text(target.path[-1]) if target.path else ""
    if rule.message is None:
        return rule.description or detail or prop or rule.id
    variables = {
        "description": rule.description or "",
        "error": detail,
        "property": prop,
        "path": format_path(target.report_path),
        "value": "" if target.value is MISSING else to_text(target.value),
    }
    return render_message(rule.message, variables)


def _evaluation_error(rule: RuleDef, path: Path, reason: str) -> Violation:
    return Violation(
        rule=rule.id,
        path=path,
        message=f"Rule evaluation failed: {reason}",
        severity="error",
        evaluation_error=True,
    )


def _field_target(match: Match, field_name: str) -> _Target:
    value = match.value
    if isinstance(value, dict) and field_name in value:
        parts: tuple[Any, ...] = (field_name,)
    else:
        parts = tuple(field_name.split("."))

    existing: list[Any] = []
    for part in parts:
        actual, value = lookup(value, part)
        if value is MISSING:
            missing = parts[len(existing) :]
            return _Target(match.path + tuple(existing) + missing, match.path + tuple(existing), MISSING)
        existing.append(actual)
    path = match.path + tuple(existing)
    return _Target(path, path, value)


def _targets(call: FunctionCall, match: Match) -> list[_Target]:
    if call.field_selector is not None:
        found = evaluate(match.value, call.field_selector)
        if not found:
            return [_Target(match.path, match.path, MISSING)]
        return [_Target(match.path + m.path, match.path + m.path, m.value) for m in found]
    if call.field is not None:
        return [_field_target(match, call.field)]
    return [_Target(match.path, match.path, match.value)]


def _select(rule: RuleDef, document: Document) -> list[Match]:
    seen: set[Path] = set()
    matches: list[Match] = []
    for selector in rule.given:
        for m in evaluate(document, selector):
            if m.path not in seen:
                seen.add(m.path)
                matches.append(m)
    return matches


def _apply_call(rule: RuleDef, call: FunctionCall, match: Match, document: Document) -> list[Violation]:
    spec = get_function(call.function)
    violations: list[Violation] = []
    for target in _targets(call, match):
        if spec is None:
            violations.append(_evaluation_error(rule, target.report_path, f"function {call.function!r} is not registered"))
            continue
        if target.value is MISSING and not spec.handles_missing:
            continue

        ctx = FunctionContext(rule_id=rule.id, path=target.path, document=document.data)
        try:
            details = spec.fn(target.value, call.options, ctx)
        except Exception as e:
            logger.warning("Rule %s: function %s failed at %s: %s", rule.id, call.function, format_path(target.report_path) or "$", e)
            violations.append(_evaluation_error(rule, target.report_path, f"{call.function}: {e}"))
            continue

        for detail in details:
            violations.append(
                Violation(
                    rule=rule.id,
                    path=target.report_path,
                    message=_message(rule, detail, target),
                    severity=rule.severity,
                )
            )
    return violations


def run_rule(rule: RuleDef, document: Document) -> list[Violation]:
    """Evaluate one rule against a document, without applicability checks."""
    try:
        matches = _select(rule, document)
    except Exception as e:
        logger.warning("Rule %s: selector evaluation failed: %s", rule.id, e)
        return [_evaluation_error(rule, (), f"selector: {e}")]

    violations: list[Violation] = []
    for match in matches:
        for call in rule.then:
            violations.extend(_apply_call(rule, call, match, document))
    logger.debug("Rule %s: %d match(es), %d violation(s)", rule.id, len(matches), len(violations))
    return violations


def _with_overrides(rules: tuple[RuleDef, ...], overrides: dict[str, Any]) -> tuple[RuleDef, ...]:
    if not overrides:
        return rules
    unknown = sorted(set(overrides) - {r.id for r in rules})
    if unknown:
        raise RuleDefinitionError(unknown[0], "severity override for a rule that is not in the ruleset")

    out: list[RuleDef] = []
    for rule in rules:
        if rule.id in overrides:
            severity: Severity = normalize_severity(overrides[rule.id], rule_id=rule.id)
            rule = replace(rule, severity=severity)
        out.append(rule)
    return tuple(out)


def _run_parallel(rules: list[RuleDef], document: Document, options: LintOptions) -> list[Violation]:
    """Run rules on a thread pool, at most `options.workers` at a time.

    Each rule's deadline starts when it is handed to a worker. A rule that
    misses it is abandoned: its thread cannot be interrupted, so it stops
    counting against `workers` and the pool grows by one thread to keep the
    remaining rules running.
    """
    workers = max(1, options.workers)
    timeout = options.rule_timeout
    # Spare threads for abandoned rules, so queued rules never wait on one.
    max_threads = workers if timeout is None else workers + len(rules)
    executor = ThreadPoolExecutor(max_workers=max(1, max_threads), thread_name_prefix="docrules")

    violations: list[Violation] = []
    queue = deque(rules)
    running: dict[Future[list[Violation]], tuple[RuleDef, float | None]] = {}
    try:
        while queue or running:
            while queue and len(running) < workers:
                rule = queue.popleft()
                deadline = None if timeout is None else time.monotonic() + timeout
                running[executor.submit(run_rule, rule, document)] = (rule, deadline)

            deadlines = [d for _, d in running.values() if d is not None]
            wait_for = max(0.0, min(deadlines) - time.monotonic()) if deadlines else None
            done, _ = wait(running, timeout=wait_for, return_when=FIRST_COMPLETED)

            # Results are merged once per rule; ordering is settled by aggregate().
            for future in done:
                running.pop(future)
                violations.extend(future.result())

            now = time.monotonic()
            for future, (rule, deadline) in list(running.items()):
                if deadline is not None and now >= deadline:
                    del running[future]
                    logger.warning("Rule %s: no result within %ss", rule.id, timeout)
                    violations.append(_evaluation_error(rule, (), f"no result within {timeout}s"))
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
    return violations


def lint(document: Document | Any, ruleset: RulesetDef, options: LintOptions | None = None) -> Report:
    """
    Evaluate a ruleset against a document.

    Rules run in declaration order (or concurrently with `options.workers`);
    the report order depends only on the document and the violations found.

    Args:
        document: A `Document`, or raw data declaring no formats
        ruleset: A loaded ruleset
        options: Run options (see `LintOptions`)

    Returns:
        The aggregated report.
    """
    options = options or LintOptions()
    doc = document if isinstance(document, Document) else Document(data=document)
    if options.formats:
        doc = replace(doc, formats=doc.formats | frozenset(options.formats))

    rules = _with_overrides(ruleset.rules, options.severity_overrides)
    active: list[RuleDef] = []
    for rule in rules:
        if applies(rule, doc):
            active.append(rule)
        else:
            logger.debug("Skipping rule %s (severity=%s, formats=%s)", rule.id, rule.severity, sorted(rule.formats))

    if options.workers > 1 or options.rule_timeout is not None:
        violations = _run_parallel(active, doc, options)
    else:
        violations = [v for rule in active for v in run_rule(rule, doc)]

    report = aggregate(violations, doc.data, source=doc.source)
    if options.severities is not None:
        report = report.filter(normalize_severity(s) for s in options.severities)
    logger.debug("Evaluated %d of %d rules: %d violation(s)", len(active), len(rules), len(report))
    return report
