"""
Catalog errors — every failure that aborts a node's run.

Each error carries a machine-readable ``code`` and the ``subject`` it is about
(a certname, a role or unit name, or a ``Kind[identifier]`` reference), so
reports and API responses can state what broke without parsing messages.
"""

from typing import List, Optional


class CatalogError(Exception):
    """Base class. Fatal for the run of the affected node."""

    code = "catalog_error"

    def __init__(self, subject: str, detail: Optional[str] = None):
        self.subject = subject
        self.detail = detail or f"{self.code}: {subject}"
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {"code": self.code, "subject": self.subject, "detail": self.detail}


class UnclassifiedNodeError(CatalogError):
    """No classification rule matched the node and there is no default role."""

    code = "unclassified_node"


class UnknownRoleError(CatalogError):
    code = "unknown_role"


class CyclicBundleError(CatalogError):
    """A role includes itself, directly or through other roles."""

    code = "cyclic_bundle"

    def __init__(self, path: List[str]):
        self.path = path
        super().__init__(path[-1], "Cyclic role inclusion: " + " -> ".join(path))


class UnknownUnitError(CatalogError):
    code = "unknown_unit"


class CyclicUnitError(CatalogError):
    """A profile includes itself, directly or through other profiles."""

    code = "cyclic_unit"

    def __init__(self, path: List[str]):
        self.path = path
        super().__init__(path[-1], "Cyclic unit inclusion: " + " -> ".join(path))


class ConflictingInclusionError(CatalogError):
    """A unit was included twice with different effective parameters."""

    code = "conflicting_inclusion"


class PrivateUnitReuseError(ConflictingInclusionError):
    """A private unit was referenced more than once."""

    code = "private_unit_reuse"


class ParameterResolutionError(CatalogError):
    code = "parameter_resolution"


class DuplicateResourceError(CatalogError):
    """Two assertions share kind and identifier but disagree on attributes."""

    code = "duplicate_resource"


class UnresolvedReferenceError(CatalogError):
    code = "unresolved_reference"


class DependencyCycleError(CatalogError):
    code = "dependency_cycle"


class LookupKeyError(CatalogError):
    code = "lookup_key_missing"


class LookupTypeError(CatalogError):
    code = "lookup_type_mismatch"


class CompileTimeoutError(CatalogError, TimeoutError):
    code = "compile_timeout"


class InvalidUnitReferenceError(CatalogError):
    """A private unit referenced as a profile, or the other way round."""

    code = "invalid_unit_reference"


class UnitDefinitionError(CatalogError):
    """A profile's own code failed while building, e.g. a malformed ``requires``."""

    code = "unit_definition"
