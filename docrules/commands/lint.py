"""Lint command implementation."""

import json
from pathlib import Path
from typing import Any

import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..constraints import (
    Document,
    LintOptions,
    Report,
    RulesetDef,
    RulesetValidationError,
    find_ruleset,
    lint,
    load_ruleset,
)
from ..constraints.functions import list_functions

_LEVEL_STYLES = {
    "error": ("ERROR", "bold red"),
    "warning": ("WARN", "yellow"),
    "info": ("INFO", "cyan"),
    "hint": ("HINT", "dim"),
}


def _load_ruleset(console: Console, ruleset_path: Path | None) -> RulesetDef | None:
    if ruleset_path is None:
        ruleset_path = find_ruleset(Path.cwd())
        if ruleset_path is None:
            console.print("No ruleset found. Pass --ruleset or add a .docrules.yaml file.", style="bold red")
            return None
        console.print(f"Using ruleset {ruleset_path}", style="dim")

    try:
        return load_ruleset(ruleset_path)
    except RulesetValidationError as e:
        if e.errors:
            console.print(f"Invalid ruleset {ruleset_path}:", style="bold red")
            for err in e.errors:
                console.print(f"  - {escape(str(err))}", style="red")
        else:
            console.print(escape(str(e)), style="bold red")
        return None


def _load_document(console: Console, document_path: Path) -> tuple[bool, Any]:
    try:
        return True, yaml.safe_load(document_path.read_text(encoding="utf-8"))
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"Cannot read document {document_path}: {escape(str(e))}", style="bold red")
        return False, None


def run_lint(
    document_path: Path,
    ruleset_path: Path | None = None,
    formats: tuple[str, ...] = (),
    severities: tuple[str, ...] = (),
    fail_on: str = "error",
    output_json: bool = False,
    workers: int = 1,
    rule_timeout: float | None = None,
) -> int:
    """Lint a YAML or JSON document against a ruleset.

    Args:
        document_path: Document to validate
        ruleset_path: Ruleset file (defaults to the nearest .docrules.* file)
        formats: Format tags to declare (auto-detected when empty)
        severities: Only report these severities (all when empty)
        fail_on: Exit with error if this level or higher is reported
        output_json: Output the report as JSON instead of human-readable
        workers: Number of threads evaluating rules
        rule_timeout: Seconds to wait for each rule

    Returns:
        Exit code (0 = success, 1 = violations found, 2 = could not run)
    """
    console = Console(stderr=True)

    ruleset = _load_ruleset(console, ruleset_path)
    if ruleset is None:
        return 2

    ok, data = _load_document(console, document_path)
    if not ok:
        return 2

    document = Document.from_data(
        data,
        formats=set(formats),
        detect=not formats,
        source=str(document_path),
    )
    options = LintOptions(
        severities=severities or None,
        workers=workers,
        rule_timeout=rule_timeout,
    )
    report = lint(document, ruleset, options)

    if output_json:
        print(json.dumps(report.to_dict(), indent=2, default=str))
    else:
        _print_human_output(console, report, document)

    return 1 if report.count_at_or_above(fail_on) > 0 else 0


def _print_human_output(console: Console, report: Report, document: Document) -> None:
    """Print one line per violation followed by a summary."""
    formats = ", ".join(sorted(document.formats)) or "none"
    console.print(f"{document.source} (formats: {formats})", style="bold")

    for v in report.violations:
        prefix, style = _LEVEL_STYLES.get(v.severity, ("INFO", "dim"))
        marker = " (evaluation error)" if v.evaluation_error else ""
        console.print(f"{prefix}: {v.location or '$'} [{v.rule}]{marker} - {v.message}", style=style, markup=False, highlight=False)

    console.print()
    counts = report.counts
    if counts["error"] > 0:
        console.print(f"❌ {counts['error']} error(s)", style="bold red")
    if counts["warning"] > 0:
        console.print(f"⚠️  {counts['warning']} warning(s)", style="yellow")
    if counts["info"] > 0:
        console.print(f"ℹ️  {counts['info']} info(s)", style="cyan")
    if counts["hint"] > 0:
        console.print(f"{counts['hint']} hint(s)", style="dim")

    if counts["error"] == 0 and counts["warning"] == 0:
        console.print("✅ No errors or warnings", style="bold green")


def run_rules(ruleset_path: Path | None = None) -> int:
    """List the rules of a ruleset.

    Returns:
        Exit code (0 = success, 2 = ruleset could not be loaded)
    """
    console = Console()
    ruleset = _load_ruleset(Console(stderr=True), ruleset_path)
    if ruleset is None:
        return 2

    table = Table(title=f"Ruleset: {ruleset.name or 'unnamed'}")
    table.add_column("Rule", style="cyan")
    table.add_column("Severity")
    table.add_column("Formats")
    table.add_column("Functions")
    table.add_column("Description")

    for rule in ruleset.rules:
        _, style = _LEVEL_STYLES.get(rule.severity, ("", "dim"))
        table.add_row(
            escape(rule.id),
            f"[{style}]{rule.severity}[/]",
            ", ".join(sorted(rule.formats)) or "any",
            ", ".join(call.function for call in rule.then),
            escape(rule.description or ""),
        )

    console.print(table)
    enabled = sum(1 for r in ruleset.rules if r.enabled)
    console.print(f"{len(ruleset.rules)} rule(s), {enabled} enabled", style="dim")
    console.print(f"Available functions: {', '.join(list_functions())}", style="dim")
    return 0


def run_explain(rule_id: str, ruleset_path: Path | None = None) -> int:
    """Explain a single rule of a ruleset.

    Returns:
        Exit code (0 = success, 1 = rule not found, 2 = ruleset could not be loaded)
    """
    from rich.markdown import Markdown

    console = Console()
    ruleset = _load_ruleset(Console(stderr=True), ruleset_path)
    if ruleset is None:
        return 2

    rule = ruleset.get(rule_id.strip())
    if rule is None:
        console.print(f"Unknown rule: {rule_id}", style="bold red")
        console.print()
        console.print("Known rules:", style="bold")
        for r in ruleset.rules:
            console.print(f"  - {r.id}")
        return 1

    lines = [f"# {rule.id}", ""]
    if rule.description:
        lines += [rule.description, ""]
    lines.append(f"- **Severity:** {rule.severity}")
    lines.append(f"- **Formats:** {', '.join(sorted(rule.formats)) or 'any'}")
    for selector in rule.given:
        lines.append(f"- **Given:** `{selector.expression}`")
    for call in rule.then:
        target = f" on field `{call.field}`" if call.field else ""
        options = f" with `{json.dumps(call.options, default=str)}`" if call.options else ""
        lines.append(f"- **Then:** `{call.function}`{target}{options}")
    if rule.message:
        lines.append(f"- **Message:** {rule.message}")
    if rule.documentation_url:
        lines.append(f"- **Documentation:** {rule.documentation_url}")

    console.print(Markdown("\n".join(lines)))
    return 0
