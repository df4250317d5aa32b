"""CLI entrypoint for docrules."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .constraints.schema import SEVERITIES


@click.group()
@click.version_option(__version__, prog_name="docrules")
@click.option(
    "--ruleset",
    "-r",
    type=click.Path(exists=True, file_okay=True, dir_okay=False, path_type=Path),
    default=None,
    help="Ruleset file (defaults to the nearest .docrules.yaml/.yml/.json/.toml)",
)
@click.option("--verbose", is_flag=True, help="Log rule evaluation details to stderr")
@click.pass_context
def cli(ctx: click.Context, ruleset: Path | None, verbose: bool) -> None:
    """docrules - Declarative validation rules for structured documents.

    Run a ruleset (style guide) against YAML or JSON documents such as API
    descriptions.
    """
    ctx.ensure_object(dict)
    ctx.obj["ruleset"] = ruleset.resolve() if ruleset else None

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@cli.command()
@click.argument(
    "document",
    type=click.Path(exists=True, file_okay=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--format",
    "formats",
    multiple=True,
    metavar="TAG",
    help="Format tag the document declares (repeatable; auto-detected when omitted)",
)
@click.option(
    "--severity",
    "severities",
    multiple=True,
    type=click.Choice(list(SEVERITIES)),
    help="Only report this severity (repeatable)",
)
@click.option(
    "--fail-on",
    type=click.Choice(list(SEVERITIES)),
    default="error",
    show_default=True,
    help="Exit with error if this level or higher found",
)
@click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output results as JSON",
)
@click.option("--workers", type=click.IntRange(min=1), default=1, show_default=True, help="Threads evaluating rules")
@click.option(
    "--timeout",
    "rule_timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds to wait for each rule before reporting it as failed",
)
@click.pass_context
def lint(
    ctx: click.Context,
    document: Path,
    formats: tuple[str, ...],
    severities: tuple[str, ...],
    fail_on: str,
    output_json: bool,
    workers: int,
    rule_timeout: float | None,
) -> None:
    """Validate DOCUMENT against the ruleset.

    Exit code is 1 when a violation at or above --fail-on is reported and 2
    when the ruleset or document cannot be loaded.
    """
    from .commands.lint import run_lint

    exit_code = run_lint(
        document,
        ruleset_path=ctx.obj["ruleset"],
        formats=formats,
        severities=severities,
        fail_on=fail_on,
        output_json=output_json,
        workers=workers,
        rule_timeout=rule_timeout,
    )
    sys.exit(exit_code)


@cli.command()
@click.pass_context
def rules(ctx: click.Context) -> None:
    """List the rules of the ruleset."""
    from .commands.lint import run_rules

    sys.exit(run_rules(ctx.obj["ruleset"]))


@cli.command()
@click.argument("rule_id")
@click.pass_context
def explain(ctx: click.Context, rule_id: str) -> None:
    """Explain a single rule (selector, functions, message)."""
    from .commands.lint import run_explain

    sys.exit(run_explain(rule_id, ctx.obj["ruleset"]))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
