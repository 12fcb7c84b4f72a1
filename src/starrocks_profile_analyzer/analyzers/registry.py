from starrocks_profile_analyzer.analyzers.rules import (
    FRAGMENT_RULES,
    NODE_RULES,
    QUERY_RULES,
    FragmentRule,
    NodeRule,
    QueryRule,
)


class RuleRegistry:
    """Rule catalog keyed by rule id, kept in declaration order."""

    def __init__(self) -> None:
        self._node_rules: dict[str, NodeRule] = {}
        self._query_rules: dict[str, QueryRule] = {}
        self._fragment_rules: dict[str, FragmentRule] = {}

    @classmethod
    def default(cls) -> "RuleRegistry":
        registry = cls()
        for rule_type in QUERY_RULES:
            registry.register_query_rule(rule_type())
        for rule_type in FRAGMENT_RULES:
            registry.register_fragment_rule(rule_type())
        for rule_type in NODE_RULES:
            registry.register(rule_type())
        return registry

    def register(self, rule: NodeRule) -> None:
        self._check_unique(rule.rule_id)
        self._node_rules[rule.rule_id] = rule

    def register_query_rule(self, rule: QueryRule) -> None:
        self._check_unique(rule.rule_id)
        self._query_rules[rule.rule_id] = rule

    def register_fragment_rule(self, rule: FragmentRule) -> None:
        self._check_unique(rule.rule_id)
        self._fragment_rules[rule.rule_id] = rule

    def get(self, rule_id: str) -> NodeRule | QueryRule | FragmentRule | None:
        return (
            self._node_rules.get(rule_id)
            or self._query_rules.get(rule_id)
            or self._fragment_rules.get(rule_id)
        )

    def __contains__(self, rule_id: object) -> bool:
        return isinstance(rule_id, str) and self.get(rule_id) is not None

    def __len__(self) -> int:
        return len(self._node_rules) + len(self._query_rules) + len(self._fragment_rules)

    @property
    def node_rules(self) -> tuple[NodeRule, ...]:
        return tuple(self._node_rules.values())

    @property
    def query_rules(self) -> tuple[QueryRule, ...]:
        return tuple(self._query_rules.values())

    @property
    def fragment_rules(self) -> tuple[FragmentRule, ...]:
        return tuple(self._fragment_rules.values())

    def _check_unique(self, rule_id: str) -> None:
        if rule_id in self:
            raise ValueError(f"Rule {rule_id} is already registered")
