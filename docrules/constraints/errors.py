"""Error taxonomy for ruleset loading and rule evaluation."""

from __future__ import annotations

from typing import TypeVar


class DocrulesError(ValueError):
    """Base class for all docrules errors."""


E = TypeVar("E", bound=DocrulesError)


class RuleDefinitionError(DocrulesError):
    """A single rule could not be validated at load time."""

    def __init__(self, rule_id: str | None, reason: str):
        self.rule_id = rule_id
        self.reason = reason
        prefix = f"rule {rule_id!r}: " if rule_id else ""
        super().__init__(f"{prefix}{reason}")


class SelectorSyntaxError(RuleDefinitionError):
    """A selector expression is malformed."""

    def __init__(self, expression: str, position: int, reason: str, *, rule_id: str | None = None):
        self.expression = expression
        self.position = position
        self.detail = reason
        super().__init__(rule_id, f"invalid selector {expression!r} at position {position}: {reason}")

    def for_rule(self, rule_id: str) -> SelectorSyntaxError:
        """Return a copy attributed to `rule_id`."""
        return SelectorSyntaxError(self.expression, self.position, self.detail, rule_id=rule_id)


class UnknownFunctionError(RuleDefinitionError):
    """A rule references a function that is not registered."""

    def __init__(self, function: str, *, rule_id: str | None = None):
        self.function = function
        super().__init__(rule_id, f"unknown function {function!r}")


class InvalidFunctionOptionsError(RuleDefinitionError):
    """A rule passes options that its function does not accept."""

    def __init__(self, function: str, problems: list[str], *, rule_id: str | None = None):
        self.function = function
        self.problems = list(problems)
        super().__init__(rule_id, f"invalid options for {function!r}: {'; '.join(self.problems)}")


class RulesetValidationError(DocrulesError):
    """A ruleset failed load-time validation.

    Carries every problem found in a single pass over the ruleset in `errors`.
    Individual rule errors are never raised on their own by the loader; use
    `errors_of(SelectorSyntaxError)` and friends to pick them out.
    """

    def __init__(self, errors: list[DocrulesError] | None = None, reason: str | None = None):
        self.errors = list(errors or [])
        if reason is None:
            count = len(self.errors)
            lines = "\n".join(f"  - {e}" for e in self.errors)
            reason = f"ruleset has {count} invalid rule(s):\n{lines}"
        super().__init__(reason)

    def errors_of(self, kind: type[E]) -> list[E]:
        """Return the collected errors that are instances of `kind`, in order."""
        return [e for e in self.errors if isinstance(e, kind)]


class FunctionEvaluationError(DocrulesError):
    """A validation function failed while evaluating a value."""
