from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from .selector import Selector


Severity = Literal["error", "warning", "info", "hint", "off"]

# Most severe first; "off" never reaches a report.
SEVERITIES: tuple[str, ...] = ("error", "warning", "info", "hint")

RULESET_FORMAT_VERSION = 1


@dataclass(frozen=True)
class FunctionCall:
    function: str
    field: str | None = None
    options: dict[str, Any] = dataclass_field(default_factory=dict)
    # Parsed form of `field` when it is a relative selector ("$...").
    field_selector: Selector | None = None


@dataclass(frozen=True)
class RuleDef:
    id: str
    given: tuple[Selector, ...]
    then: tuple[FunctionCall, ...]
    severity: Severity = "warning"
    description: str | None = None
    message: str | None = None
    formats: frozenset[str] = frozenset()
    rule_type: str | None = None
    documentation_url: str | None = None

    @property
    def enabled(self) -> bool:
        return self.severity != "off"


@dataclass(frozen=True)
class RulesetDef:
    rules: tuple[RuleDef, ...] = ()
    name: str | None = None
    description: str | None = None
    version: int = RULESET_FORMAT_VERSION

    def get(self, rule_id: str) -> RuleDef | None:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None


@dataclass(frozen=True)
class Document:
    """A parsed document plus the format tags describing its dialect."""

    data: Any
    formats: frozenset[str] = frozenset()
    source: str | None = None

    @classmethod
    def from_data(
        cls,
        data: Any,
        *,
        formats: set[str] | frozenset[str] | None = None,
        detect: bool = False,
        source: str | None = None,
    ) -> Document:
        """Wrap raw data, optionally detecting its formats.

        Args:
            data: Parsed document tree
            formats: Format tags the caller knows the document declares
            detect: Also run the registered format detectors
            source: Label used in reports (usually a file path)
        """
        tags = set(formats or ())
        if detect:
            from .formats import detect_formats

            tags |= detect_formats(data)
        return cls(data=data, formats=frozenset(tags), source=source)
