"""End-to-end tests for the Catalog Compiler."""

import time

import pytest

from catalog_kernel.errors import (
    CompileTimeoutError,
    DuplicateResourceError,
    UnclassifiedNodeError,
    UnknownUnitError,
)
from catalog_kernel.models.classification import ClassificationRule
from catalog_kernel.models.node import Node
from catalog_kernel.models.role import ProfileRef, Role
from catalog_kernel.units.profile import Profile

from sample_site import make_compiler, make_node, make_registry, make_roles


class SlowProfile(Profile):
    name = "profile::slow"

    def build(self, ctx, params):
        time.sleep(0.05)
        ctx.declare("file", "/tmp/slow")


class ClashingMotdProfile(Profile):
    name = "profile::motd::clash"

    def build(self, ctx, params):
        ctx.declare("file", "/etc/motd", content="something else")


class TestJenkinsMasterCatalog:
    def setup_method(self):
        self.compiler = make_compiler()
        self.catalog = self.compiler.compile(make_node())

    def test_role_and_unit_order(self):
        assert self.catalog.certname == "ci01.example.com"
        assert self.catalog.role == "role::jenkins::master"
        assert self.catalog.units == [
            "profile::base",
            "profile::java",
            "profile::jenkins::master::backup",
            "profile::jenkins::master",
        ]

    def test_resources(self):
        assert [r.ref for r in self.catalog.resources] == [
            "Package[openssh-server]",
            "File[/etc/motd]",
            "Package[openjdk-17-jdk]",
            "File[/etc/profile.d/java_heap.sh]",
            "File[/srv/backups/jenkins]",
            "Cron[jenkins-backup]",
            "Package[jenkins]",
            "File[/etc/default/jenkins]",
            "Service[jenkins]",
            "File[/etc/logrotate.d/jenkins]",
        ]

    def test_heap_derived_from_memory(self):
        defaults = self.catalog.get("file", "/etc/default/jenkins")
        assert defaults.attributes["content"] == "JAVA_ARGS=-Xmx12288m\nHTTP_PORT=8080\n"
        assert defaults.attributes["owner"] == "jenkins"

    def test_per_node_data(self):
        assert self.catalog.get("file", "/etc/motd").attributes["content"] == "CI master"

    def test_jenkins_package_requires_java(self):
        jenkins = self.catalog.get("package", "jenkins")
        assert jenkins.requires == ["Package[openjdk-17-jdk]"]

    def test_collected_resource_realized(self):
        logrotate = self.catalog.get("file", "/etc/logrotate.d/jenkins")
        assert logrotate.tags == ["logrotate"]
        assert logrotate.declared_by == "profile::jenkins::master"

    def test_compile_is_deterministic(self):
        again = self.compiler.compile(make_node())
        assert again.digest == self.catalog.digest
        assert [r.model_dump_json() for r in again.resources] == [
            r.model_dump_json() for r in self.catalog.resources
        ]


class TestNodeVariations:
    def test_smaller_host_gets_half_memory(self):
        catalog = make_compiler().compile(make_node("ci02.example.com", memory_mb=8192))
        defaults = catalog.get("file", "/etc/default/jenkins")
        assert "-Xmx4096m" in defaults.attributes["content"]
        assert catalog.get("file", "/etc/motd").attributes["content"] == "Managed by catalog kernel"

    def test_other_stage_uses_common_backup_dir(self):
        catalog = make_compiler().compile(make_node("ci03.example.com", stage="staging"))
        assert catalog.get("file", "/var/backups/jenkins") is not None
        assert catalog.get("file", "/srv/backups/jenkins") is None

    def test_missing_memory_fact_uses_default(self):
        node = make_node("ci04.example.com")
        facts = dict(node.facts)
        del facts["memory"]
        node = Node(certname=node.certname, facts=facts)
        data = {"common": {
            "profile::java::heap_mb": 1024,
            "profile::jenkins::master::backup_dir": "/b",
        }}
        catalog = make_compiler(data=data).compile(node)
        assert "-Xmx2048m" in catalog.get("file", "/etc/default/jenkins").attributes["content"]
        assert catalog.get("file", "/etc/profile.d/java_heap.sh").attributes["content"] == (
            "export JAVA_HEAP_MB=1024\n"
        )

    def test_base_role_does_not_realize_collected_resources(self):
        catalog = make_compiler(default_role="role::base").compile(make_node("web01.example.com"))
        assert catalog.role == "role::base"
        assert catalog.units == ["profile::base"]
        assert catalog.get("file", "/etc/logrotate.d/jenkins") is None


class TestCompileFailures:
    def test_unclassified_node(self):
        with pytest.raises(UnclassifiedNodeError):
            make_compiler().compile(make_node("db01.example.com"))

    def test_unknown_unit_in_role(self):
        roles = make_roles() + [Role(name="role::db", units=[ProfileRef(name="profile::postgres")])]
        rules = [ClassificationRule(pattern=r"^db", role="role::db")]
        with pytest.raises(UnknownUnitError):
            make_compiler(roles=roles, rules=rules).compile(make_node("db01.example.com"))

    def test_conflicting_resources_abort_compile(self):
        roles = [Role(
            name="role::clash",
            units=[ProfileRef(name="profile::base"), ProfileRef(name="profile::motd::clash")],
        )]
        rules = [ClassificationRule(certname="ci01.example.com", role="role::clash")]
        compiler = make_compiler(
            registry=make_registry([ClashingMotdProfile]), roles=roles, rules=rules,
        )
        with pytest.raises(DuplicateResourceError) as exc:
            compiler.compile(make_node())
        assert exc.value.subject == "File[/etc/motd]"

    def test_timeout(self):
        roles = [Role(
            name="role::slow",
            units=[ProfileRef(name="profile::slow"), ProfileRef(name="profile::base")],
        )]
        rules = [ClassificationRule(certname="ci01.example.com", role="role::slow")]
        compiler = make_compiler(
            registry=make_registry([SlowProfile]), roles=roles, rules=rules,
            timeout_seconds=0.01,
        )
        with pytest.raises(CompileTimeoutError) as exc:
            compiler.compile(make_node())
        assert exc.value.subject == "profile::base"
