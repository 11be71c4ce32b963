"""Applicability filtering for rules."""

from typing import Iterable, List

from ..schemas.rules import FilterContext, Rule


def applies(rule: Rule, context: FilterContext) -> bool:
    """True when the rule is active and its scope lists admit the context."""
    if not rule.is_active:
        return False
    if context.surface and rule.surfaces and context.surface not in rule.surfaces:
        return False
    if context.channel and rule.channels and context.channel not in rule.channels:
        return False
    if rule.locales and context.locale not in rule.locales:
        return False
    return True


def filter_rules(rules: Iterable[Rule], context: FilterContext) -> List[Rule]:
    """Return the rules applicable to ``context``, preserving input order."""
    return [rule for rule in rules if applies(rule, context)]
