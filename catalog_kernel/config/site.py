"""
Site definitions from YAML — roles and classification rules.

Profiles are code; roles and node classification are data::

    default_role: role::base
    roles:
      - name: role::base
        units: [profile::base]
      - name: role::jenkins::master
        includes: [role::base]
        units:
          - profile::jenkins::master
          - {kind: private, name: profile::jenkins::master::backup}
    classification:
      - {certname: ci01.example.com, role: role::jenkins::master}
      - {pattern: '^web\\d+\\.', role: role::web}
      - {facts: {group: ci}, role: role::jenkins::agent}
"""

from pathlib import Path
from typing import Tuple, Union

import yaml

from catalog_kernel.classifier.classifier import NodeClassifier
from catalog_kernel.models.classification import ClassificationRule
from catalog_kernel.models.role import Role
from catalog_kernel.roles.resolver import RoleResolver


def _normalize_units(units: list) -> list:
    # A bare string is shorthand for a shared profile
    return [{"kind": "profile", "name": u} if isinstance(u, str) else u for u in units]


def build_site(data: dict) -> Tuple[RoleResolver, NodeClassifier]:
    """Build the resolver and classifier from an already-parsed mapping."""
    resolver = RoleResolver()
    for entry in data.get("roles") or []:
        entry = dict(entry)
        entry["units"] = _normalize_units(entry.get("units") or [])
        resolver.register(Role.model_validate(entry))

    rules = [ClassificationRule.model_validate(r) for r in data.get("classification") or []]
    classifier = NodeClassifier(resolver, rules, default_role=data.get("default_role"))
    return resolver, classifier


def load_site(path: Union[str, Path]) -> Tuple[RoleResolver, NodeClassifier]:
    """Parse a site YAML file."""
    with Path(path).open(encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping at the top level")
    return build_site(data)
