"""
Delay rules for network condition simulation.

A rule pairs a URL regular expression with an action. Rules are written on
the command line as ``<ms>:<regex>``:

    500:\\.js$        delay matching requests by 500 ms
    0:/api/           hold matching requests for the "very large" delay
    -1:ads\\.         block matching requests

Rules are evaluated in declaration order and the first match wins.
"""

import re
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from enum import Enum

from harcap.errors import RuleSpecError

BIG_DELAY_SENTINEL = 0
BLOCK_SENTINEL = -1


class ActionKind(str, Enum):
    """What to do with a matching request."""

    DELAY = "delay"
    BIG_DELAY = "big_delay"
    BLOCK = "block"


@dataclass(frozen=True)
class RuleAction:
    """Action attached to a rule.

    Attributes:
        kind: Action kind.
        delay_ms: Literal delay for DELAY actions, None otherwise.
    """

    kind: ActionKind
    delay_ms: int | None = None

    @classmethod
    def delay(cls, delay_ms: int) -> "RuleAction":
        if delay_ms <= 0:
            raise ValueError("delay_ms must be positive")
        return cls(ActionKind.DELAY, delay_ms)

    @classmethod
    def big_delay(cls) -> "RuleAction":
        return cls(ActionKind.BIG_DELAY)

    @classmethod
    def block(cls) -> "RuleAction":
        return cls(ActionKind.BLOCK)

    def resolve_delay(self, big_delay_ms: int) -> int | None:
        """Return the delay to apply in ms, or None for BLOCK."""
        if self.kind == ActionKind.DELAY:
            return self.delay_ms
        if self.kind == ActionKind.BIG_DELAY:
            return big_delay_ms
        return None

    def __str__(self) -> str:
        if self.kind == ActionKind.DELAY:
            return f"delay({self.delay_ms}ms)"
        return self.kind.value


@dataclass(frozen=True)
class Rule:
    """A URL pattern with its action."""

    pattern: re.Pattern[str]
    action: RuleAction

    def matches(self, url: str) -> bool:
        return self.pattern.search(url) is not None


@dataclass(frozen=True)
class Decision:
    """Result of evaluating a URL against the rule table."""

    rule_index: int
    rule: Rule

    @property
    def action(self) -> RuleAction:
        return self.rule.action


def parse_rule(spec: str) -> Rule:
    """Parse a ``<ms>:<regex>`` rule specification.

    The value is split off at the first colon so that patterns may contain
    colons themselves (``100:https://cdn\\.``).

    Args:
        spec: Rule specification.

    Returns:
        Parsed Rule.

    Raises:
        RuleSpecError: If the separator is missing, the delay is not an
            integer (or is negative other than -1), or the pattern is invalid.
    """
    value, sep, expr = spec.partition(":")
    if not sep:
        raise RuleSpecError(spec, "missing ':' separator")

    try:
        delay_ms = int(value.strip())
    except ValueError:
        raise RuleSpecError(spec, f"delay {value!r} is not an integer") from None

    if delay_ms == BLOCK_SENTINEL:
        action = RuleAction.block()
    elif delay_ms == BIG_DELAY_SENTINEL:
        action = RuleAction.big_delay()
    elif delay_ms > 0:
        action = RuleAction.delay(delay_ms)
    else:
        raise RuleSpecError(spec, f"delay {delay_ms} is negative (use -1 to block)")

    try:
        pattern = re.compile(expr)
    except re.error as e:
        raise RuleSpecError(spec, f"invalid pattern: {e}") from e

    return Rule(pattern=pattern, action=action)


class RuleTable(Sequence[Rule]):
    """Ordered, immutable collection of rules."""

    def __init__(self, rules: Iterable[Rule] = ()):
        self._rules: tuple[Rule, ...] = tuple(rules)

    @classmethod
    def from_specs(cls, specs: Iterable[str]) -> "RuleTable":
        """Build a table from ``<ms>:<regex>`` strings, keeping their order."""
        return cls(parse_rule(spec) for spec in specs)

    def decide(self, url: str) -> Decision | None:
        """Return the first rule matching the URL, or None to pass through."""
        for index, rule in enumerate(self._rules):
            if rule.matches(url):
                return Decision(rule_index=index, rule=rule)
        return None

    def __getitem__(self, index):  # type: ignore[override]
        return self._rules[index]

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __repr__(self) -> str:
        rules = ", ".join(f"{r.action}:{r.pattern.pattern}" for r in self._rules)
        return f"RuleTable([{rules}])"
