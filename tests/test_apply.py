"""Tests for the Apply Engine."""

from datetime import datetime, timezone
from typing import List

import pytest

from catalog_kernel.apply.engine import ApplyEngine, SystemStateStore, apply_order
from catalog_kernel.errors import DependencyCycleError
from catalog_kernel.models.catalog import Catalog, digest_resources
from catalog_kernel.models.report import ResourceOutcome
from catalog_kernel.models.resource import ResourceAssertion


def _make_catalog(resources: List[ResourceAssertion]) -> Catalog:
    return Catalog(
        certname="ci01.example.com",
        role="role::test",
        units=["profile::test"],
        resources=resources,
        compiled_at=datetime.now(timezone.utc),
        digest=digest_resources(resources),
    )


def _jenkins_resources() -> List[ResourceAssertion]:
    return [
        ResourceAssertion(
            kind="service", identifier="jenkins",
            attributes={"ensure": "running"}, requires=["File[/etc/default/jenkins]"],
        ),
        ResourceAssertion(
            kind="file", identifier="/etc/default/jenkins",
            attributes={"mode": "0644"}, requires=["Package[jenkins]"],
        ),
        ResourceAssertion(kind="package", identifier="jenkins", attributes={"ensure": "installed"}),
        ResourceAssertion(kind="file", identifier="/etc/motd", attributes={"content": "hi"}),
    ]


class TestApplyOrder:
    def test_dependencies_first(self):
        ordered = apply_order(_jenkins_resources())
        assert [r.ref for r in ordered] == [
            "Package[jenkins]",
            "File[/etc/default/jenkins]",
            "Service[jenkins]",
            "File[/etc/motd]",
        ]

    def test_independent_resources_keep_catalog_order(self):
        resources = [
            ResourceAssertion(kind="file", identifier="/b"),
            ResourceAssertion(kind="file", identifier="/a"),
        ]
        assert [r.identifier for r in apply_order(resources)] == ["/b", "/a"]

    def test_cycle_detected(self):
        resources = [
            ResourceAssertion(kind="file", identifier="/a", requires=["File[/b]"]),
            ResourceAssertion(kind="file", identifier="/b", requires=["File[/a]"]),
            ResourceAssertion(kind="file", identifier="/c"),
        ]
        with pytest.raises(DependencyCycleError) as exc:
            apply_order(resources)
        assert exc.value.subject == "File[/a]"
        assert "File[/b]" in exc.value.detail


class TestApplyEngine:
    def setup_method(self):
        self.engine = ApplyEngine()
        self.catalog = _make_catalog(_jenkins_resources())

    def test_first_apply_changes_everything(self):
        statuses = self.engine.apply(self.catalog)
        assert all(s.outcome == ResourceOutcome.CHANGED for s in statuses)
        assert self.engine.state.get("package", "jenkins") == {"ensure": "installed"}
        package = next(s for s in statuses if s.ref == "Package[jenkins]")
        assert package.changes == {"ensure": {"from": None, "to": "installed"}}

    def test_second_apply_is_unchanged(self):
        self.engine.apply(self.catalog)
        statuses = self.engine.apply(self.catalog)
        assert all(s.outcome == ResourceOutcome.UNCHANGED for s in statuses)
        assert all(s.changes == {} for s in statuses)

    def test_noop_reports_without_writing(self):
        statuses = self.engine.apply(self.catalog, noop=True)
        assert all(s.outcome == ResourceOutcome.NOOP for s in statuses)
        assert self.engine.state.snapshot() == {}

    def test_drift_is_corrected(self):
        self.engine.apply(self.catalog)
        self.engine.state.set("file", "/etc/motd", {"content": "edited by hand"})

        statuses = self.engine.apply(self.catalog)
        changed = [s.ref for s in statuses if s.outcome == ResourceOutcome.CHANGED]
        assert changed == ["File[/etc/motd]"]
        assert self.engine.state.get("file", "/etc/motd") == {"content": "hi"}

    def test_resource_without_attributes_is_created_once(self):
        catalog = _make_catalog([ResourceAssertion(kind="user", identifier="jenkins")])
        first = self.engine.apply(catalog)
        second = self.engine.apply(catalog)
        assert first[0].changes == {"ensure": {"from": "absent", "to": "present"}}
        assert second[0].outcome == ResourceOutcome.UNCHANGED

    def test_failure_skips_dependents(self):
        def broken_package(state, assertion, noop):
            raise RuntimeError("apt-get exited with 100")

        self.engine.register_provider("Package", broken_package)
        statuses = {s.ref: s for s in self.engine.apply(self.catalog)}

        assert statuses["Package[jenkins]"].outcome == ResourceOutcome.FAILED
        assert statuses["Package[jenkins]"].message == "apt-get exited with 100"
        assert statuses["File[/etc/default/jenkins]"].outcome == ResourceOutcome.SKIPPED
        assert statuses["Service[jenkins]"].outcome == ResourceOutcome.SKIPPED
        assert statuses["File[/etc/motd]"].outcome == ResourceOutcome.CHANGED

    def test_custom_provider(self):
        calls = []

        def service_provider(state, assertion, noop):
            calls.append((assertion.identifier, noop))
            return {}

        self.engine.register_provider("service", service_provider)
        statuses = {s.ref: s for s in self.engine.apply(self.catalog)}
        assert calls == [("jenkins", False)]
        assert statuses["Service[jenkins]"].outcome == ResourceOutcome.UNCHANGED

    def test_cycle_applies_nothing(self):
        catalog = _make_catalog([
            ResourceAssertion(kind="file", identifier="/a", attributes={"x": 1}, requires=["File[/b]"]),
            ResourceAssertion(kind="file", identifier="/b", attributes={"x": 1}, requires=["File[/a]"]),
        ])
        with pytest.raises(DependencyCycleError):
            self.engine.apply(catalog)
        assert self.engine.state.snapshot() == {}


class TestSystemStateStore:
    def test_snapshot_uses_refs(self):
        state = SystemStateStore()
        state.set("Package", "git", {"ensure": "installed"})
        state.update("package", "git", {"version": "2.43"})
        assert state.snapshot() == {"Package[git]": {"ensure": "installed", "version": "2.43"}}
        assert state.remove("package", "git") is True
        assert state.remove("package", "git") is False
