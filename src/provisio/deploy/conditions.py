# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/deploy/conditions.py
"""
Inclusion predicates.

A descriptor's ``condition`` is a small boolean expression over the
deployment flags::

    enableVpnGateway
    environment == prod and not enableDevShortcuts
    (tier = 'premium' || replicas != 1) && !disableCache

Bare words on the left of a comparison (and standalone) are flag names;
bare words on the right are string literals. ``true``/``false`` and
numbers are literals everywhere.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from ..config.models import DeploymentConfig, LiteralValue, OutputRef, ResourceDescriptor
from ..errors import InvalidCondition

_TOKEN = re.compile(
    r"""\s*(?:
        (?P<lparen>\()
      | (?P<rparen>\))
      | (?P<op>==|!=|=|&&|\|\||!)
      | (?P<string>'[^']*'|"[^"]*")
      | (?P<number>-?\d+(?:\.\d+)?(?![\w.-]))
      | (?P<word>[A-Za-z_][\w.\-]*)
    )""",
    re.VERBOSE,
)

_KEYWORDS = {"and": "&&", "or": "||", "not": "!"}
_INT = re.compile(r"-?\d+")
_FLOAT = re.compile(r"-?\d+\.\d+")

Evaluator = Callable[[DeploymentConfig], Any]


def _tokenize(text: str) -> List[Tuple[str, str]]:
    tokens: List[Tuple[str, str]] = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        m = _TOKEN.match(text, pos)
        if not m or m.end() == pos:
            raise ValueError(f"unexpected character at position {pos}: {text[pos:]!r}")
        pos = m.end()
        kind = m.lastgroup
        value = m.group(kind)
        if kind == "word" and value.lower() in _KEYWORDS:
            kind, value = "op", _KEYWORDS[value.lower()]
        tokens.append((kind, value))
    return tokens


def _truthy(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() not in ("", "false", "0", "no", "off")


def _normalize(value: Any) -> Any:
    if isinstance(value, str):
        text = value.strip()
        if text.lower() in ("true", "false"):
            return text.lower() == "true"
        if _INT.fullmatch(text):
            return int(text)
        if _FLOAT.fullmatch(text):
            return float(text)
    return value


def _equals(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    return _normalize(left) == _normalize(right)


class _Parser:
    def __init__(self, text: str):
        self.tokens = _tokenize(text)
        self.pos = 0
        self.flags: Set[str] = set()

    def peek(self) -> Optional[Tuple[str, str]]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self) -> Tuple[str, str]:
        tok = self.peek()
        if tok is None:
            raise ValueError("unexpected end of expression")
        self.pos += 1
        return tok

    def accept(self, kind: str, value: Optional[str] = None) -> bool:
        tok = self.peek()
        if tok and tok[0] == kind and (value is None or tok[1] == value):
            self.pos += 1
            return True
        return False

    def parse(self) -> Evaluator:
        fn = self.parse_or()
        if self.peek() is not None:
            raise ValueError(f"unexpected token {self.peek()[1]!r}")
        return fn

    def parse_or(self) -> Evaluator:
        left = self.parse_and()
        while self.accept("op", "||"):
            right = self.parse_and()
            left = (lambda a, b: lambda cfg: _truthy(a(cfg)) or _truthy(b(cfg)))(left, right)
        return left

    def parse_and(self) -> Evaluator:
        left = self.parse_unary()
        while self.accept("op", "&&"):
            right = self.parse_unary()
            left = (lambda a, b: lambda cfg: _truthy(a(cfg)) and _truthy(b(cfg)))(left, right)
        return left

    def parse_unary(self) -> Evaluator:
        if self.accept("op", "!"):
            inner = self.parse_unary()
            return lambda cfg: not _truthy(inner(cfg))
        return self.parse_comparison()

    def parse_comparison(self) -> Evaluator:
        left = self.parse_operand(flag_words=True)
        tok = self.peek()
        if tok and tok[0] == "op" and tok[1] in ("=", "==", "!="):
            self.pos += 1
            right = self.parse_operand(flag_words=False)
            if tok[1] == "!=":
                return lambda cfg: not _equals(left(cfg), right(cfg))
            return lambda cfg: _equals(left(cfg), right(cfg))
        return left

    def parse_operand(self, flag_words: bool) -> Evaluator:
        if self.accept("lparen"):
            inner = self.parse_or()
            if not self.accept("rparen"):
                raise ValueError("missing closing parenthesis")
            return inner
        kind, value = self.take()
        if kind == "string":
            literal = value[1:-1]
            return lambda cfg: literal
        if kind == "number":
            number = float(value) if "." in value else int(value)
            return lambda cfg: number
        if kind == "word":
            if value.lower() in ("true", "false"):
                flag = value.lower() == "true"
                return lambda cfg: flag
            if not flag_words:
                return lambda cfg: value
            self.flags.add(value)
            return lambda cfg: cfg.lookup(value)
        raise ValueError(f"unexpected token {value!r}")


@dataclass(frozen=True)
class Condition:
    """A compiled inclusion predicate. The empty predicate always holds."""

    text: str
    flags: frozenset
    _fn: Optional[Evaluator] = field(default=None, repr=False, compare=False)

    @classmethod
    def compile(cls, text: str) -> "Condition":
        text = (text or "").strip()
        if not text:
            return cls(text="", flags=frozenset())
        parser = _Parser(text)
        fn = parser.parse()
        return cls(text=text, flags=frozenset(parser.flags), _fn=fn)

    def evaluate(self, config: DeploymentConfig) -> bool:
        if self._fn is None:
            return True
        return _truthy(self._fn(config))


@dataclass
class FilterResult:
    kept: List[ResourceDescriptor]
    excluded: Dict[str, str]     # id -> reason, in exclusion order


def _compile_all(descriptors: Sequence[ResourceDescriptor]) -> Dict[str, Condition]:
    compiled: Dict[str, Condition] = {}
    for d in descriptors:
        try:
            compiled[d.id] = Condition.compile(d.condition)
        except ValueError as exc:
            raise InvalidCondition(
                f"Resource '{d.id}' has an invalid condition {d.condition!r}: {exc}", [d.id]
            ) from exc
    return compiled


def _prune(d: ResourceDescriptor, excluded: Dict[str, str]) -> ResourceDescriptor:
    """Drop edges to excluded descriptors and fall back to output defaults."""
    depends_on = tuple(x for x in d.depends_on if x not in excluded)
    params = {}
    changed = depends_on != d.depends_on
    for key, value in d.parameters.items():
        if isinstance(value, OutputRef) and value.resource in excluded:
            params[key] = LiteralValue(value=value.default)
            changed = True
        else:
            params[key] = value
    if not changed:
        return d
    return d.model_copy(update={"depends_on": depends_on, "parameters": params})


def filter_descriptors(
    descriptors: Sequence[ResourceDescriptor],
    config: DeploymentConfig,
) -> FilterResult:
    """
    Evaluate every inclusion predicate against *config*.

    A descriptor is excluded when its own predicate is false, or when it
    reads an output of an excluded descriptor without a default to fall
    back on; the latter propagates transitively. Plain ordering edges
    (``depends_on``) to excluded descriptors are simply dropped.
    """
    conditions = _compile_all(descriptors)
    excluded: Dict[str, str] = {}

    for d in sorted(descriptors, key=lambda x: x.id):
        if not conditions[d.id].evaluate(config):
            excluded[d.id] = f"condition '{conditions[d.id].text}' is false"

    changed = True
    while changed:
        changed = False
        for d in sorted(descriptors, key=lambda x: x.id):
            if d.id in excluded:
                continue
            for ref in d.output_refs():
                if ref.resource in excluded and not ref.has_default:
                    excluded[d.id] = (
                        f"requires output '{ref.label()}' of excluded resource '{ref.resource}'"
                    )
                    changed = True
                    break

    kept = [_prune(d, excluded) for d in descriptors if d.id not in excluded]
    return FilterResult(kept=kept, excluded=excluded)
