"""
Catalog Builder — assembles the final assertion set for a node.

Behavioral Contract:
- (kind, identifier) is unique across the catalog
- An identical duplicate (same attributes and dependencies) merges silently;
  the tags of both declarations are kept
- A conflicting duplicate raises DuplicateResourceError naming the resource
- Every ``requires`` reference must name a resource in the catalog
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from catalog_kernel.errors import DuplicateResourceError, UnresolvedReferenceError
from catalog_kernel.models.catalog import Catalog, digest_resources
from catalog_kernel.models.resource import ResourceAssertion, parse_ref

logger = logging.getLogger(__name__)


class CatalogBuilder:
    """Accumulates assertions, detecting identifier collisions as they arrive."""

    def __init__(self):
        self._resources: Dict[Tuple[str, str], ResourceAssertion] = {}

    def add(self, assertion: ResourceAssertion) -> ResourceAssertion:
        existing = self._resources.get(assertion.key)
        if existing is None:
            self._resources[assertion.key] = assertion
            return assertion

        if not existing.same_state(assertion):
            raise DuplicateResourceError(
                assertion.ref,
                f"{assertion.ref} is declared by {existing.declared_by or 'unknown'} "
                f"with {existing.attributes} and by {assertion.declared_by or 'unknown'} "
                f"with {assertion.attributes}.",
            )

        merged_tags = list(existing.tags)
        merged_tags.extend(t for t in assertion.tags if t not in merged_tags)
        merged = existing.model_copy(update={"tags": merged_tags})
        self._resources[assertion.key] = merged
        logger.debug("Merged identical declarations of %s", assertion.ref)
        return merged

    def add_all(self, assertions: Iterable[ResourceAssertion]) -> None:
        for assertion in assertions:
            self.add(assertion)

    @property
    def resources(self) -> List[ResourceAssertion]:
        return list(self._resources.values())

    def check_references(self) -> None:
        for assertion in self._resources.values():
            for ref in assertion.requires:
                if parse_ref(ref) not in self._resources:
                    raise UnresolvedReferenceError(
                        ref,
                        f"{assertion.ref} requires {ref}, which is not in the catalog.",
                    )

    def build(
        self,
        certname: str,
        role: str,
        units: List[str],
        compiled_at: Optional[datetime] = None,
        duration: float = 0.0,
    ) -> Catalog:
        self.check_references()
        resources = self.resources
        return Catalog(
            certname=certname,
            role=role,
            units=units,
            resources=resources,
            compiled_at=compiled_at or datetime.now(timezone.utc),
            compile_duration_seconds=duration,
            digest=digest_resources(resources),
        )
