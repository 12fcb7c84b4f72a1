"""Diagnostic rule catalog, grouped by operator family."""

from starrocks_profile_analyzer.analyzers.rules import (
    aggregate,
    common,
    exchange,
    fragment,
    join,
    project,
    query,
    scan,
    sink,
    sort,
)
from starrocks_profile_analyzer.analyzers.rules.base import (
    CatalogRule,
    FragmentRule,
    FragmentRuleContext,
    NodeCatalogRule,
    NodeRule,
    QueryRule,
    QueryRuleContext,
    RuleContext,
    RuleSettings,
    RuleText,
)

NODE_RULES = (
    *common.RULES,
    *scan.RULES,
    *join.RULES,
    *aggregate.RULES,
    *sort.RULES,
    *exchange.RULES,
    *project.RULES,
    *sink.RULES,
)
FRAGMENT_RULES = fragment.RULES
QUERY_RULES = query.RULES

__all__ = [
    "FRAGMENT_RULES",
    "NODE_RULES",
    "QUERY_RULES",
    "CatalogRule",
    "FragmentRule",
    "FragmentRuleContext",
    "NodeCatalogRule",
    "NodeRule",
    "QueryRule",
    "QueryRuleContext",
    "RuleContext",
    "RuleSettings",
    "RuleText",
]
