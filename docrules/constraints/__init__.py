"""Declarative document-validation engine (rules as data, functions as code)."""

from .engine import LintOptions, lint, run_rule
from .errors import (
    DocrulesError,
    FunctionEvaluationError,
    InvalidFunctionOptionsError,
    RuleDefinitionError,
    RulesetValidationError,
    SelectorSyntaxError,
    UnknownFunctionError,
)
from .load import find_ruleset, load_ruleset, load_ruleset_data
from .report import Report, Violation
from .schema import Document, FunctionCall, RuleDef, RulesetDef

__all__ = [
    "Document",
    "DocrulesError",
    "FunctionCall",
    "FunctionEvaluationError",
    "InvalidFunctionOptionsError",
    "LintOptions",
    "Report",
    "RuleDefinitionError",
    "RuleDef",
    "RulesetDef",
    "RulesetValidationError",
    "SelectorSyntaxError",
    "UnknownFunctionError",
    "Violation",
    "find_ruleset",
    "lint",
    "load_ruleset",
    "load_ruleset_data",
    "run_rule",
]
