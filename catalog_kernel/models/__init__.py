"""Catalog Kernel data models."""

from catalog_kernel.models.agent import AgentConfig
from catalog_kernel.models.catalog import Catalog, SiteDefaults, digest_resources
from catalog_kernel.models.classification import ClassificationRule
from catalog_kernel.models.node import Node
from catalog_kernel.models.report import (
    ResourceOutcome,
    ResourceStatus,
    RunReport,
    RunStatus,
)
from catalog_kernel.models.resource import (
    ResourceAssertion,
    ResourceTemplate,
    parse_ref,
    resource_ref,
)
from catalog_kernel.models.role import PrivateUnitRef, ProfileRef, Role, UnitRef

__all__ = [
    "AgentConfig",
    "Catalog",
    "ClassificationRule",
    "Node",
    "PrivateUnitRef",
    "ProfileRef",
    "ResourceAssertion",
    "ResourceOutcome",
    "ResourceStatus",
    "ResourceTemplate",
    "Role",
    "RunReport",
    "RunStatus",
    "SiteDefaults",
    "UnitRef",
    "digest_resources",
    "parse_ref",
    "resource_ref",
]
