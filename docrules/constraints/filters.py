"""Filter expressions used inside `[?(...)]` selector segments.

A filter is parsed once into a small expression tree and evaluated for every
candidate child. The language is the JavaScript subset that rulesets use:

    @property === "name" && (@ === "id" || @.match(/(_id|Id)$/))
    @.in == 'header'
    @property.indexOf('json') === -1
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from .errors import FunctionEvaluationError, SelectorSyntaxError
from .values import (
    MISSING,
    compile_regex,
    is_number,
    is_truthy,
    loose_equals,
    strict_equals,
    to_number,
    to_text,
)


@dataclass(frozen=True)
class FilterContext:
    value: Any
    key: str | int | None
    parent: Any = MISSING
    parent_key: str | int | None = None
    root: Any = MISSING


class Node:
    def evaluate(self, ctx: FilterContext) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class Literal(Node):
    value: Any

    def evaluate(self, ctx: FilterContext) -> Any:
        return self.value


@dataclass(frozen=True)
class RegexLiteral(Node):
    source: str
    pattern: re.Pattern[str] = field(compare=False)

    def evaluate(self, ctx: FilterContext) -> Any:
        return self.pattern


@dataclass(frozen=True)
class Current(Node):
    """`@`, `@property`, `@parent`, `@parentProperty` or `@root`."""

    name: str

    def evaluate(self, ctx: FilterContext) -> Any:
        if self.name == "":
            return ctx.value
        if self.name == "property":
            return ctx.key
        if self.name == "parent":
            return ctx.parent
        if self.name == "parentProperty":
            return ctx.parent_key
        return ctx.root


@dataclass(frozen=True)
class Member(Node):
    target: Node
    name: Node

    def evaluate(self, ctx: FilterContext) -> Any:
        return _member(self.target.evaluate(ctx), self.name.evaluate(ctx))


@dataclass(frozen=True)
class Call(Node):
    target: Node
    method: str
    args: tuple[Node, ...]

    def evaluate(self, ctx: FilterContext) -> Any:
        target = self.target.evaluate(ctx)
        args = [a.evaluate(ctx) for a in self.args]
        return _call(target, self.method, args)


@dataclass(frozen=True)
class Unary(Node):
    op: str
    operand: Node

    def evaluate(self, ctx: FilterContext) -> Any:
        value = self.operand.evaluate(ctx)
        if self.op == "!":
            return not is_truthy(value)
        return -to_number(value)


@dataclass(frozen=True)
class Binary(Node):
    op: str
    left: Node
    right: Node

    def evaluate(self, ctx: FilterContext) -> Any:
        if self.op == "&&":
            left = self.left.evaluate(ctx)
            return self.right.evaluate(ctx) if is_truthy(left) else left
        if self.op == "||":
            left = self.left.evaluate(ctx)
            return left if is_truthy(left) else self.right.evaluate(ctx)

        left = self.left.evaluate(ctx)
        right = self.right.evaluate(ctx)
        if self.op == "===":
            return strict_equals(left, right)
        if self.op == "!==":
            return not strict_equals(left, right)
        if self.op == "==":
            return loose_equals(left, right)
        if self.op == "!=":
            return not loose_equals(left, right)
        return _compare(self.op, left, right)


def _member(target: Any, name: Any) -> Any:
    if isinstance(target, dict):
        key = name if isinstance(name, str) else to_text(name)
        return target.get(key, MISSING)
    if isinstance(target, (list, str)):
        if name == "length":
            return len(target)
        if is_number(name) and float(name).is_integer():
            index = int(name)
            if 0 <= index < len(target):
                return target[index]
    return MISSING


def _call(target: Any, method: str, args: list[Any]) -> Any:
    arg = args[0] if args else MISSING

    if isinstance(target, re.Pattern):
        if method == "test":
            return target.search(to_text(arg)) is not None
        return MISSING

    if isinstance(target, list):
        if method == "indexOf":
            for i, item in enumerate(target):
                if strict_equals(item, arg):
                    return i
            return -1
        if method == "includes":
            return any(strict_equals(item, arg) for item in target)
        return MISSING

    if not isinstance(target, str):
        return MISSING

    if method == "match":
        pattern = arg if isinstance(arg, re.Pattern) else compile_regex(to_text(arg))
        m = pattern.search(target)
        if m is None:
            return None
        return [m.group(0), *m.groups()]
    if method == "indexOf":
        return target.find(to_text(arg))
    if method == "includes":
        return to_text(arg) in target
    if method == "startsWith":
        return target.startswith(to_text(arg))
    if method == "endsWith":
        return target.endswith(to_text(arg))
    if method == "toLowerCase":
        return target.lower()
    if method == "toUpperCase":
        return target.upper()
    if method == "trim":
        return target.strip()
    return MISSING


def _compare(op: str, left: Any, right: Any) -> bool:
    if isinstance(left, str) and isinstance(right, str):
        a: Any = left
        b: Any = right
    else:
        a, b = to_number(left), to_number(right)
        if a != a or b != b:  # NaN
            return False
    if op == "<":
        return a < b
    if op == "<=":
        return a <= b
    if op == ">":
        return a > b
    return a >= b


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
    |(?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
    |(?P<number>\d+(?:\.\d+)?)
    |(?P<regex>/(?:[^/\\\n]|\\.)+/[a-z]*)
    |(?P<op>===|!==|==|!=|<=|>=|&&|\|\||[<>!()\[\].,@-])
    |(?P<ident>[A-Za-z_$][\w$]*)
    """,
    re.VERBOSE,
)

_KEYWORDS = {"true": True, "false": False, "null": None, "undefined": MISSING}
_CURRENT_NAMES = {"property", "parent", "parentProperty", "root"}
_METHODS = {
    "match",
    "test",
    "indexOf",
    "includes",
    "startsWith",
    "endsWith",
    "toLowerCase",
    "toUpperCase",
    "trim",
}
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}


def _unquote(raw: str) -> str:
    out: list[str] = []
    chars = iter(raw[1:-1])
    for ch in chars:
        if ch == "\\":
            nxt = next(chars, "")
            out.append(_ESCAPES.get(nxt, nxt))
        else:
            out.append(ch)
    return "".join(out)


@dataclass
class _Token:
    kind: str
    text: str
    pos: int


class FilterParser:
    """Recursive-descent parser for one filter expression.

    Parsing starts just after `[?(` in `text` and stops at the matching `)`.
    """

    def __init__(self, text: str, pos: int):
        self.text = text
        self.pos = pos
        self._peeked: _Token | None = None

    def parse(self) -> tuple[Node, int]:
        """Parse the expression.

        Returns:
            The expression tree and the offset just past the closing `)`.
        """
        node = self._or()
        self._expect(")")
        return node, self.pos

    def _error(self, pos: int, reason: str) -> SelectorSyntaxError:
        return SelectorSyntaxError(self.text, pos, reason)

    def _next(self) -> _Token:
        if self._peeked is not None:
            tok, self._peeked = self._peeked, None
            return tok
        while True:
            if self.pos >= len(self.text):
                return _Token("eof", "", self.pos)
            m = _TOKEN_RE.match(self.text, self.pos)
            if m is None:
                raise self._error(self.pos, f"unexpected character {self.text[self.pos]!r} in filter")
            start, self.pos = self.pos, m.end()
            if m.lastgroup != "ws":
                return _Token(m.lastgroup or "", m.group(), start)

    def _peek(self) -> _Token:
        if self._peeked is None:
            self._peeked = self._next()
        return self._peeked

    def _accept(self, *texts: str) -> _Token | None:
        tok = self._peek()
        if tok.kind == "op" and tok.text in texts:
            return self._next()
        return None

    def _expect(self, text: str) -> _Token:
        tok = self._next()
        if tok.kind != "op" or tok.text != text:
            found = tok.text or "end of selector"
            raise self._error(tok.pos, f"expected {text!r} in filter, found {found!r}")
        return tok

    def _or(self) -> Node:
        node = self._and()
        while self._accept("||"):
            node = Binary("||", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._equality()
        while self._accept("&&"):
            node = Binary("&&", node, self._equality())
        return node

    def _equality(self) -> Node:
        node = self._relational()
        while (tok := self._accept("===", "!==", "==", "!=")) is not None:
            node = Binary(tok.text, node, self._relational())
        return node

    def _relational(self) -> Node:
        node = self._unary()
        while (tok := self._accept("<", "<=", ">", ">=")) is not None:
            node = Binary(tok.text, node, self._unary())
        return node

    def _unary(self) -> Node:
        tok = self._accept("!", "-")
        if tok is not None:
            return Unary(tok.text, self._unary())
        return self._postfix(self._primary())

    def _postfix(self, node: Node) -> Node:
        while True:
            if self._accept("."):
                tok = self._next()
                if tok.kind != "ident":
                    raise self._error(tok.pos, "expected a property name after '.'")
                if self._accept("("):
                    node = self._call(node, tok)
                else:
                    node = Member(node, Literal(tok.text))
            elif self._accept("["):
                index = self._or()
                self._expect("]")
                node = Member(node, index)
            else:
                return node

    def _call(self, target: Node, name: _Token) -> Node:
        if name.text not in _METHODS:
            raise self._error(name.pos, f"unsupported method {name.text!r}")
        args: list[Node] = []
        if not self._accept(")"):
            args.append(self._or())
            while self._accept(","):
                args.append(self._or())
            self._expect(")")
        if name.text == "match" and args and isinstance(args[0], Literal) and isinstance(args[0].value, str):
            # String arguments to match() are regex sources; compile them now.
            args[0] = self._regex(args[0].value, name.pos)
        return Call(target, name.text, tuple(args))

    def _regex(self, source: str, pos: int) -> RegexLiteral:
        try:
            return RegexLiteral(source, compile_regex(source))
        except FunctionEvaluationError as e:
            raise self._error(pos, str(e)) from e

    def _primary(self) -> Node:
        tok = self._next()
        if tok.kind == "op" and tok.text == "@":
            nxt = self._peek()
            # `@property` is written without a dot; `@.property` is member access.
            if nxt.kind == "ident" and nxt.pos == tok.pos + 1 and nxt.text in _CURRENT_NAMES:
                self._next()
                return Current(nxt.text)
            return Current("")
        if tok.kind == "op" and tok.text == "(":
            node = self._or()
            self._expect(")")
            return node
        if tok.kind == "string":
            return Literal(_unquote(tok.text))
        if tok.kind == "number":
            value = float(tok.text)
            return Literal(int(value) if value.is_integer() and "." not in tok.text else value)
        if tok.kind == "regex":
            return self._regex(tok.text, tok.pos)
        if tok.kind == "ident" and tok.text in _KEYWORDS:
            return Literal(_KEYWORDS[tok.text])
        found = tok.text or "end of selector"
        raise self._error(tok.pos, f"unexpected {found!r} in filter")


def parse_filter(text: str, pos: int) -> tuple[Node, int]:
    """Parse the filter expression starting at `pos` (just after `[?(`)."""
    return FilterParser(text, pos).parse()


def matches_filter(node: Node, ctx: FilterContext) -> bool:
    return is_truthy(node.evaluate(ctx))
