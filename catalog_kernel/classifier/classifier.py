"""
Node Classifier — assigns exactly one role to each node.

Behavioral Contract:
- Accepts a Node (identity + facts)
- Evaluates rules in a fixed order: exact certname, then pattern, then
  fact-only rules; declaration order within each tier
- Falls back to the default role, if one is configured
- Raises UnclassifiedNodeError when nothing matches
- Deterministic: the same facts always produce the same role
"""

import logging
import re
from typing import List, Optional

from catalog_kernel.errors import UnclassifiedNodeError
from catalog_kernel.models.classification import ClassificationRule
from catalog_kernel.models.node import Node
from catalog_kernel.models.role import Role
from catalog_kernel.roles.resolver import RoleResolver

logger = logging.getLogger(__name__)


def _rule_matches(rule: ClassificationRule, node: Node) -> bool:
    """Every criterion present on the rule must hold for the node."""
    if rule.certname is not None and rule.certname != node.certname:
        return False
    if rule.pattern is not None and not re.search(rule.pattern, node.certname):
        return False
    for path, expected in rule.facts.items():
        if not node.has_fact(path) or node.fact(path) != expected:
            return False
    return True


class NodeClassifier:
    """Maps nodes to roles known to a RoleResolver."""

    def __init__(
        self,
        resolver: RoleResolver,
        rules: Optional[List[ClassificationRule]] = None,
        default_role: Optional[str] = None,
    ):
        self.resolver = resolver
        self.default_role = default_role
        self._rules: List[ClassificationRule] = []
        for rule in rules or []:
            self.add_rule(rule)

    @property
    def rules(self) -> List[ClassificationRule]:
        """Rules in evaluation order."""
        # sorted() is stable, so declaration order survives within a tier
        return sorted(self._rules, key=lambda r: r.tier)

    def add_rule(self, rule: ClassificationRule) -> None:
        self._rules.append(rule)

    def match(self, node: Node) -> Optional[str]:
        """Name of the role the node classifies into, or None."""
        for rule in self.rules:
            if _rule_matches(rule, node):
                return rule.role
        return self.default_role

    def classify(self, node: Node) -> Role:
        """Return the node's role. Raises UnclassifiedNodeError or UnknownRoleError."""
        role_name = self.match(node)
        if role_name is None:
            raise UnclassifiedNodeError(
                node.certname,
                f"Node {node.certname} matches no classification rule "
                f"and no default role is configured.",
            )
        role = self.resolver.get(role_name)
        logger.info("Classified %s as %s", node.certname, role.name)
        return role
