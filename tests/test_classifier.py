"""Tests for the Node Classifier."""

import pytest

from catalog_kernel.classifier.classifier import NodeClassifier
from catalog_kernel.errors import UnclassifiedNodeError, UnknownRoleError
from catalog_kernel.models.classification import ClassificationRule
from catalog_kernel.models.node import Node
from catalog_kernel.models.role import ProfileRef, Role
from catalog_kernel.roles.resolver import RoleResolver


def _make_resolver() -> RoleResolver:
    return RoleResolver([
        Role(name="role::base", units=[ProfileRef(name="profile::base")]),
        Role(name="role::jenkins::master", units=[ProfileRef(name="profile::jenkins::master")]),
        Role(name="role::jenkins::agent", units=[ProfileRef(name="profile::jenkins::agent")]),
        Role(name="role::web", units=[ProfileRef(name="profile::nginx")]),
    ])


class TestNodeClassifier:
    def setup_method(self):
        self.resolver = _make_resolver()

    def test_exact_certname_beats_pattern(self):
        """An exact certname rule wins even when declared after a matching pattern."""
        classifier = NodeClassifier(self.resolver, [
            ClassificationRule(pattern=r"^ci\d+\.", role="role::jenkins::agent"),
            ClassificationRule(certname="ci01.example.com", role="role::jenkins::master"),
        ])
        role = classifier.classify(Node(certname="ci01.example.com"))
        assert role.name == "role::jenkins::master"

    def test_pattern_beats_fact_rule(self):
        classifier = NodeClassifier(self.resolver, [
            ClassificationRule(facts={"group": "ci"}, role="role::jenkins::agent"),
            ClassificationRule(pattern=r"^web\d+", role="role::web"),
        ])
        node = Node(certname="web03.example.com", facts={"group": "ci"})
        assert classifier.classify(node).name == "role::web"

    def test_fact_rule_with_dotted_path(self):
        classifier = NodeClassifier(self.resolver, [
            ClassificationRule(facts={"trusted.pp_role": "jenkins_agent"}, role="role::jenkins::agent"),
        ])
        node = Node(certname="build7", facts={"trusted": {"pp_role": "jenkins_agent"}})
        assert classifier.classify(node).name == "role::jenkins::agent"

    def test_all_criteria_must_match(self):
        classifier = NodeClassifier(self.resolver, [
            ClassificationRule(pattern=r"^ci", facts={"stage": "production"}, role="role::jenkins::master"),
        ], default_role="role::base")
        staging = Node(certname="ci02", facts={"stage": "staging"})
        assert classifier.classify(staging).name == "role::base"

    def test_declaration_order_within_tier(self):
        classifier = NodeClassifier(self.resolver, [
            ClassificationRule(pattern=r"^web", role="role::web"),
            ClassificationRule(pattern=r"\.example\.com$", role="role::base"),
        ])
        assert classifier.classify(Node(certname="web1.example.com")).name == "role::web"

    def test_default_role(self):
        classifier = NodeClassifier(self.resolver, [], default_role="role::base")
        assert classifier.classify(Node(certname="anything")).name == "role::base"

    def test_unclassified_node(self):
        classifier = NodeClassifier(self.resolver, [
            ClassificationRule(pattern=r"^web", role="role::web"),
        ])
        with pytest.raises(UnclassifiedNodeError) as exc:
            classifier.classify(Node(certname="db01"))
        assert exc.value.subject == "db01"
        assert exc.value.code == "unclassified_node"

    def test_rule_pointing_at_unknown_role(self):
        classifier = NodeClassifier(self.resolver, [
            ClassificationRule(certname="db01", role="role::database"),
        ])
        with pytest.raises(UnknownRoleError):
            classifier.classify(Node(certname="db01"))

    def test_classification_is_deterministic(self):
        classifier = NodeClassifier(self.resolver, [
            ClassificationRule(facts={"group": "ci"}, role="role::jenkins::agent"),
            ClassificationRule(pattern=r"^ci", role="role::jenkins::master"),
        ], default_role="role::base")
        node = Node(certname="ci05", facts={"group": "ci"})
        results = {classifier.classify(node).name for _ in range(20)}
        assert results == {"role::jenkins::master"}
