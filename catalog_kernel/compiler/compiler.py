"""
Catalog Compiler — node in, catalog out.

  classify -> resolve role -> evaluate units -> realize collected
  resources -> build catalog

Any CatalogError aborts the compile. A catalog is either complete and
consistent or not produced at all.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from catalog_kernel.catalog.builder import CatalogBuilder
from catalog_kernel.catalog.collector import ResourceCollector
from catalog_kernel.classifier.classifier import NodeClassifier
from catalog_kernel.errors import CatalogError
from catalog_kernel.lookup.service import Hierarchy
from catalog_kernel.models.catalog import Catalog, SiteDefaults
from catalog_kernel.models.node import Node
from catalog_kernel.roles.resolver import RoleResolver
from catalog_kernel.units.evaluator import UnitEvaluator
from catalog_kernel.units.registry import UnitRegistry

logger = logging.getLogger(__name__)


class CatalogCompiler:
    """Wires classifier, resolver, hierarchy and units together."""

    def __init__(
        self,
        classifier: NodeClassifier,
        resolver: RoleResolver,
        registry: UnitRegistry,
        hierarchy: Hierarchy,
        site: Optional[SiteDefaults] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.classifier = classifier
        self.resolver = resolver
        self.registry = registry
        self.hierarchy = hierarchy
        self.site = site or SiteDefaults()
        self.timeout_seconds = timeout_seconds

    def evaluator_for(self, node: Node, deadline: Optional[float] = None) -> UnitEvaluator:
        """A fresh evaluator for one run on ``node``."""
        return UnitEvaluator(
            registry=self.registry,
            node=node,
            lookup=self.hierarchy.for_node(node),
            site=self.site,
            collector=ResourceCollector(),
            deadline=deadline,
        )

    def compile(self, node: Node) -> Catalog:
        """Compile the catalog for a node. Raises CatalogError on any failure."""
        start = time.monotonic()
        deadline = start + self.timeout_seconds if self.timeout_seconds else None
        logger.info("Compiling catalog for %s", node.certname)

        try:
            role = self.classifier.classify(node)
            refs = self.resolver.resolve(role)

            evaluator = self.evaluator_for(node, deadline)
            for ref in refs:
                evaluator.evaluate_ref(ref)

            builder = CatalogBuilder()
            builder.add_all(evaluator.resources)
            builder.add_all(evaluator.collector.realize())

            catalog = builder.build(
                certname=node.certname,
                role=role.name,
                units=evaluator.evaluated_units,
                compiled_at=datetime.now(timezone.utc),
                duration=round(time.monotonic() - start, 3),
            )
        except CatalogError as e:
            logger.warning(
                "Compile failed for %s: %s (%s)", node.certname, e.code, e.subject
            )
            raise

        logger.info(
            "Compiled %s for %s: %d units, %d resources in %.3fs",
            catalog.role, node.certname, len(catalog.units),
            len(catalog.resources), catalog.compile_duration_seconds,
        )
        return catalog
