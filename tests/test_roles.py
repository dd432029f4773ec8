"""Tests for the Role Resolver."""

import pytest

from catalog_kernel.errors import (
    ConflictingInclusionError,
    CyclicBundleError,
    PrivateUnitReuseError,
    UnknownRoleError,
)
from catalog_kernel.models.role import PrivateUnitRef, ProfileRef, Role
from catalog_kernel.roles.resolver import RoleResolver


def _names(refs):
    return [r.name for r in refs]


class TestRoleResolver:
    def test_includes_expand_first(self):
        resolver = RoleResolver([
            Role(name="role::base", units=[ProfileRef(name="profile::base"), ProfileRef(name="profile::ssh")]),
            Role(
                name="role::jenkins::master",
                includes=["role::base"],
                units=[ProfileRef(name="profile::jenkins::master")],
            ),
        ])
        refs = resolver.resolve(resolver.get("role::jenkins::master"))
        assert _names(refs) == ["profile::base", "profile::ssh", "profile::jenkins::master"]

    def test_duplicate_profiles_keep_first_position(self):
        resolver = RoleResolver([
            Role(name="role::base", units=[ProfileRef(name="profile::base")]),
            Role(
                name="role::app",
                includes=["role::base"],
                units=[ProfileRef(name="profile::app"), ProfileRef(name="profile::base")],
            ),
        ])
        refs = resolver.resolve(resolver.get("role::app"))
        assert _names(refs) == ["profile::base", "profile::app"]

    def test_diamond_inclusion_expands_shared_role_once(self):
        resolver = RoleResolver([
            Role(name="role::base", units=[PrivateUnitRef(name="profile::base::hardening")]),
            Role(name="role::a", includes=["role::base"], units=[ProfileRef(name="profile::a")]),
            Role(name="role::b", includes=["role::base"], units=[ProfileRef(name="profile::b")]),
            Role(name="role::ab", includes=["role::a", "role::b"]),
        ])
        refs = resolver.resolve(resolver.get("role::ab"))
        assert _names(refs) == ["profile::base::hardening", "profile::a", "profile::b"]

    def test_private_unit_reached_twice(self):
        resolver = RoleResolver([
            Role(name="role::a", units=[PrivateUnitRef(name="profile::secret")]),
            Role(
                name="role::b",
                includes=["role::a"],
                units=[PrivateUnitRef(name="profile::secret")],
            ),
        ])
        with pytest.raises(PrivateUnitReuseError) as exc:
            resolver.resolve(resolver.get("role::b"))
        assert exc.value.subject == "profile::secret"
        assert isinstance(exc.value, ConflictingInclusionError)

    def test_cyclic_roles(self):
        resolver = RoleResolver([
            Role(name="role::a", includes=["role::b"]),
            Role(name="role::b", includes=["role::c"]),
            Role(name="role::c", includes=["role::a"]),
        ])
        with pytest.raises(CyclicBundleError) as exc:
            resolver.resolve(resolver.get("role::a"))
        assert exc.value.path == ["role::a", "role::b", "role::c", "role::a"]

    def test_self_inclusion_is_cyclic(self):
        resolver = RoleResolver([Role(name="role::loop", includes=["role::loop"])])
        with pytest.raises(CyclicBundleError):
            resolver.resolve(resolver.get("role::loop"))

    def test_unknown_included_role(self):
        resolver = RoleResolver([Role(name="role::a", includes=["role::missing"])])
        with pytest.raises(UnknownRoleError) as exc:
            resolver.resolve(resolver.get("role::a"))
        assert exc.value.subject == "role::missing"

    def test_register_replaces(self):
        resolver = RoleResolver()
        resolver.register(Role(name="role::a", units=[ProfileRef(name="profile::one")]))
        resolver.register(Role(name="role::a", units=[ProfileRef(name="profile::two")]))
        assert len(resolver.roles()) == 1
        assert _names(resolver.resolve(resolver.get("role::a"))) == ["profile::two"]
