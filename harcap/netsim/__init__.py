"""
Network condition simulation: delay/block rules and request interception.
"""

from harcap.netsim.interception import InterceptionEngine, MatchLedger
from harcap.netsim.rules import (
    ActionKind,
    Decision,
    Rule,
    RuleAction,
    RuleTable,
    parse_rule,
)

__all__ = [
    "ActionKind",
    "Decision",
    "InterceptionEngine",
    "MatchLedger",
    "Rule",
    "RuleAction",
    "RuleTable",
    "parse_rule",
]
