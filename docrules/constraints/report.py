"""Violations and the aggregated report."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from .schema import SEVERITIES, Severity
from .selector import Path, format_path


@dataclass(frozen=True)
class Violation:
    """A single failure of a rule at one location."""

    rule: str
    path: Path
    message: str
    severity: Severity
    # Set for synthetic violations raised by a failing function or timeout.
    evaluation_error: bool = False

    @property
    def location(self) -> str:
        return format_path(self.path)

    def __str__(self) -> str:
        loc = self.location or "$"
        return f"{self.severity.upper()}: [{self.rule}] {loc} - {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule": self.rule,
            "severity": self.severity,
            "path": list(self.path),
            "location": self.location,
            "message": self.message,
            "evaluation_error": self.evaluation_error,
        }


def _empty_counts() -> dict[str, int]:
    return {s: 0 for s in SEVERITIES}


@dataclass(frozen=True)
class Report:
    violations: tuple[Violation, ...] = ()
    counts: dict[str, int] = field(default_factory=_empty_counts)
    source: str | None = None

    def __len__(self) -> int:
        return len(self.violations)

    def __iter__(self):
        return iter(self.violations)

    def filter(self, severities: Iterable[str]) -> Report:
        """Return a report restricted to `severities`, with recounted totals."""
        wanted = set(severities)
        kept = tuple(v for v in self.violations if v.severity in wanted)
        return Report(violations=kept, counts=_count(kept), source=self.source)

    def count_at_or_above(self, severity: str) -> int:
        """Number of violations at least as severe as `severity`."""
        if severity not in SEVERITIES:
            raise ValueError(f"unknown severity {severity!r}")
        cutoff = SEVERITIES.index(severity)
        return sum(self.counts[s] for s in SEVERITIES[: cutoff + 1])

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "violations": [v.to_dict() for v in self.violations],
            "counts": {s: self.counts.get(s, 0) for s in SEVERITIES},
        }


def _count(violations: Iterable[Violation]) -> dict[str, int]:
    counts = _empty_counts()
    for v in violations:
        counts[v.severity] = counts.get(v.severity, 0) + 1
    return counts


class _TraversalOrder:
    """Sort keys that follow depth-first document order rather than key names."""

    def __init__(self, root: Any):
        self.root = root
        self._positions: dict[int, dict[Any, int]] = {}

    def _position(self, container: dict[Any, Any], key: Any) -> int | None:
        positions = self._positions.get(id(container))
        if positions is None:
            positions = {k: i for i, k in enumerate(container)}
            self._positions[id(container)] = positions
        return positions.get(key)

    def key(self, path: Path) -> tuple[tuple[int, str], ...]:
        parts: list[tuple[int, str]] = []
        value = self.root
        for element in path:
            if isinstance(value, dict):
                pos = self._position(value, element)
                if pos is None:
                    parts.append((len(value), str(element)))
                    value = None
                else:
                    parts.append((pos, ""))
                    value = value[element]
            elif isinstance(value, list) and isinstance(element, int) and 0 <= element < len(value):
                parts.append((element, ""))
                value = value[element]
            else:
                parts.append((0, str(element)))
                value = None
        return tuple(parts)


def aggregate(violations: Iterable[Violation], document: Any = None, *, source: str | None = None) -> Report:
    """
    Merge violations into a report.

    Exact (location, rule, message) duplicates are dropped; the rest are
    sorted by document traversal order of their location, then rule id.

    Args:
        violations: Violations from every rule, in any order
        document: Document data, used to order locations by traversal order
        source: Optional label for the document (e.g. its file path)
    """
    seen: set[tuple[Path, str, str]] = set()
    unique: list[Violation] = []
    for v in violations:
        identity = (v.path, v.rule, v.message)
        if identity in seen:
            continue
        seen.add(identity)
        unique.append(v)

    order = _TraversalOrder(document)
    unique.sort(key=lambda v: (order.key(v.path), v.rule, v.message))
    return Report(violations=tuple(unique), counts=_count(unique), source=source)
