"""JSONPath-style selectors over plain document trees.

Selectors are parsed once, at ruleset load time, into a tuple of segments and
then evaluated against each document. Supported syntax:

    $                   root
    .name  ['name']     child property (also [name] and "name" unions)
    [0]  [-1]  [1:3]    array index / slice
    .*  [*]             every child
    ..                  recursive descent (applies the next segment at any depth)
    ~                   select the property name instead of its value
    ^                   parent of each match
    [?(expr)]           children for which `expr` is truthy (see filters.py)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterator, NamedTuple

from .errors import SelectorSyntaxError
from .filters import FilterContext, Node, matches_filter, parse_filter
from .values import MISSING

PathElement = str | int
Path = tuple[PathElement, ...]


class Match(NamedTuple):
    path: Path
    value: Any


@dataclass(frozen=True)
class Child:
    keys: tuple[PathElement, ...]


@dataclass(frozen=True)
class Wildcard:
    pass


@dataclass(frozen=True)
class Slice:
    start: int | None
    stop: int | None
    step: int | None


@dataclass(frozen=True)
class Filter:
    source: str
    expression: Node


@dataclass(frozen=True)
class Descendants:
    pass


@dataclass(frozen=True)
class KeyName:
    pass


@dataclass(frozen=True)
class Parent:
    pass


Segment = Child | Wildcard | Slice | Filter | Descendants | KeyName | Parent


@dataclass(frozen=True)
class Selector:
    expression: str
    segments: tuple[Segment, ...]

    def __str__(self) -> str:
        return self.expression


_NAME_RE = re.compile(r"[^.\[\]~^\s*]+")
_INDEX_LIST_RE = re.compile(r"^\s*-?\d+\s*(?:,\s*-?\d+\s*)*$")
_SLICE_RE = re.compile(r"^\s*(-?\d+)?\s*:\s*(-?\d+)?\s*(?::\s*(-?\d+)?\s*)?$")


class _Parser:
    def __init__(self, expression: str):
        self.text = expression
        self.pos = 0
        self.segments: list[Segment] = []

    def error(self, reason: str, pos: int | None = None) -> SelectorSyntaxError:
        return SelectorSyntaxError(self.text, self.pos if pos is None else pos, reason)

    def parse(self) -> Selector:
        text = self.text
        if not text.startswith("$"):
            raise self.error("selector must start with '$'")
        self.pos = 1

        while self.pos < len(text):
            ch = text[self.pos]
            if text.startswith("..", self.pos):
                self.pos += 2
                self.segments.append(Descendants())
                self._dotted_target(after="..")
            elif ch == ".":
                self.pos += 1
                self._dotted_target(after=".")
            elif ch == "[":
                self._bracket()
            elif ch == "~":
                self.segments.append(KeyName())
                self.pos += 1
                if self.pos != len(text):
                    raise self.error("'~' must be the last segment")
            elif ch == "^":
                self.segments.append(Parent())
                self.pos += 1
            else:
                raise self.error(f"unexpected character {ch!r}")

        if self.segments and isinstance(self.segments[-1], Descendants):
            raise self.error("recursive descent needs a target")
        return Selector(expression=text, segments=tuple(self.segments))

    def _dotted_target(self, *, after: str) -> None:
        text = self.text
        if self.pos >= len(text):
            raise self.error(f"expected a property name after {after!r}")
        ch = text[self.pos]
        if ch == "[":
            # `.[` is accepted as a plain bracket segment.
            return
        if ch == "*":
            self.segments.append(Wildcard())
            self.pos += 1
            return
        m = _NAME_RE.match(text, self.pos)
        if m is None:
            raise self.error(f"expected a property name after {after!r}")
        self.segments.append(Child((m.group(),)))
        self.pos = m.end()

    def _bracket(self) -> None:
        text = self.text
        start = self.pos
        self.pos += 1
        self._skip_ws()

        if text.startswith("?(", self.pos):
            expression, self.pos = parse_filter(text, self.pos + 2)
            self._skip_ws()
            self._expect_close(start)
            self.segments.append(Filter(source=text[start : self.pos], expression=expression))
            return

        if self.pos < len(text) and text[self.pos] in "'\"":
            self.segments.append(Child(self._quoted_union(start)))
            return

        end = text.find("]", self.pos)
        if end == -1:
            raise self.error("unterminated '['", start)
        content = text[self.pos : end]
        self.pos = end + 1

        if content.strip() == "*":
            self.segments.append(Wildcard())
        elif _INDEX_LIST_RE.match(content):
            self.segments.append(Child(tuple(int(p) for p in content.split(","))))
        elif (m := _SLICE_RE.match(content)) is not None:
            start_i, stop_i, step_i = (int(g) if g is not None else None for g in m.groups())
            if step_i == 0:
                raise self.error("slice step cannot be zero", start)
            self.segments.append(Slice(start_i, stop_i, step_i))
        elif content.startswith("?"):
            raise self.error("filter must be written as [?(expression)]", start)
        elif not content.strip() or "[" in content:
            raise self.error("empty or malformed bracket segment", start)
        else:
            # Unquoted property name, e.g. $.paths[/health]
            self.segments.append(Child((content.strip(),)))

    def _quoted_union(self, start: int) -> tuple[PathElement, ...]:
        text = self.text
        keys: list[PathElement] = []
        while True:
            self._skip_ws()
            if self.pos >= len(text) or text[self.pos] not in "'\"":
                raise self.error("expected a quoted property name", self.pos)
            keys.append(self._quoted())
            self._skip_ws()
            if self.pos < len(text) and text[self.pos] == ",":
                self.pos += 1
                continue
            self._expect_close(start)
            return tuple(keys)

    def _quoted(self) -> str:
        text = self.text
        quote = text[self.pos]
        out: list[str] = []
        i = self.pos + 1
        while i < len(text):
            ch = text[i]
            if ch == "\\" and i + 1 < len(text):
                out.append(text[i + 1])
                i += 2
                continue
            if ch == quote:
                self.pos = i + 1
                return "".join(out)
            out.append(ch)
            i += 1
        raise self.error("unterminated string", self.pos)

    def _skip_ws(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def _expect_close(self, start: int) -> None:
        if self.pos >= len(self.text) or self.text[self.pos] != "]":
            raise self.error("expected ']'", self.pos if self.pos < len(self.text) else start)
        self.pos += 1


def parse_selector(expression: str) -> Selector:
    """Parse a selector expression.

    Raises:
        SelectorSyntaxError: If the expression is malformed.
    """
    if not isinstance(expression, str) or not expression.strip():
        raise SelectorSyntaxError(str(expression), 0, "selector must be a non-empty string")
    return _Parser(expression.strip()).parse()


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _children(value: Any) -> Iterator[tuple[PathElement, Any]]:
    if isinstance(value, dict):
        yield from value.items()
    elif isinstance(value, list):
        yield from enumerate(value)


def lookup(value: Any, key: PathElement) -> tuple[PathElement | None, Any]:
    """Resolve one step; YAML may load numeric-looking keys as ints and vice versa."""
    if isinstance(value, dict):
        if key in value:
            return key, value[key]
        alt: PathElement | None = None
        if isinstance(key, int):
            alt = str(key)
        elif key.lstrip("-").isdigit():
            alt = int(key)
        if alt is not None and alt in value:
            return alt, value[alt]
        return None, MISSING
    if isinstance(value, list):
        if isinstance(key, str):
            if not key.lstrip("-").isdigit():
                return None, MISSING
            key = int(key)
        index = key + len(value) if key < 0 else key
        if 0 <= index < len(value):
            return index, value[index]
    return None, MISSING


def resolve(root: Any, path: Path) -> Any:
    """Return the value at `path`, or MISSING."""
    value = root
    for key in path:
        _, value = lookup(value, key)
        if value is MISSING:
            return MISSING
    return value


def _descendants(match: Match) -> Iterator[Match]:
    # Pre-order walk on an explicit stack; documents may nest deeper than the recursion limit.
    stack = [match]
    while stack:
        current = stack.pop()
        yield current
        children = [Match(current.path + (key,), child) for key, child in _children(current.value)]
        stack.extend(reversed(children))


def _apply(segment: Segment, match: Match, root: Any) -> Iterator[Match]:
    if isinstance(segment, Child):
        for key in segment.keys:
            actual, value = lookup(match.value, key)
            if value is not MISSING:
                yield Match(match.path + (actual,), value)
    elif isinstance(segment, Wildcard):
        for key, value in _children(match.value):
            yield Match(match.path + (key,), value)
    elif isinstance(segment, Slice):
        if isinstance(match.value, list):
            indices = range(len(match.value))[segment.start : segment.stop : segment.step]
            for i in indices:
                yield Match(match.path + (i,), match.value[i])
    elif isinstance(segment, Filter):
        parent_key = match.path[-1] if match.path else None
        is_mapping = isinstance(match.value, dict)
        for key, value in _children(match.value):
            # Mapping keys are always strings to filter expressions.
            shown = str(key) if is_mapping else key
            ctx = FilterContext(value=value, key=shown, parent=match.value, parent_key=parent_key, root=root)
            if matches_filter(segment.expression, ctx):
                yield Match(match.path + (key,), value)
    elif isinstance(segment, Descendants):
        yield from _descendants(match)
    elif isinstance(segment, KeyName):
        if match.path:
            yield Match(match.path, match.path[-1])
    elif isinstance(segment, Parent):
        if match.path:
            parent = match.path[:-1]
            yield Match(parent, resolve(root, parent))


def _unique(matches: Iterator[Match]) -> list[Match]:
    seen: set[Path] = set()
    out: list[Match] = []
    for m in matches:
        if m.path in seen:
            continue
        seen.add(m.path)
        out.append(m)
    return out


def evaluate(document: Any, selector: Selector | str) -> list[Match]:
    """Resolve `selector` against a document.

    Args:
        document: A `Document` or raw document data.
        selector: A parsed selector or an expression to parse.

    Returns:
        Matches in document traversal order, unique by location. A selector
        that finds nothing yields an empty list.
    """
    from .schema import Document

    if isinstance(selector, str):
        selector = parse_selector(selector)
    root = document.data if isinstance(document, Document) else document

    matches = [Match((), root)]
    for segment in selector.segments:
        if not matches:
            break
        matches = _unique(m for current in matches for m in _apply(segment, current, root))
    return matches


def format_path(path: Path) -> str:
    """Render a location as dot-separated keys, e.g. `paths./users.get`."""
    return ".".join(str(p) for p in path)
