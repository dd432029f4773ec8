"""
Resource Collector — publish/subscribe by tag.

Units publish resource templates under a tag; other units subscribe to the
tag. Nothing is realized while units evaluate. The final assembly step asks
the collector for every template whose tag has a subscriber.
"""

from typing import List, Set

from catalog_kernel.models.resource import ResourceAssertion, ResourceTemplate


class ResourceCollector:
    """Collects published templates and subscriptions for one run."""

    def __init__(self):
        self._templates: List[ResourceTemplate] = []
        self._subscriptions: Set[str] = set()

    def publish(self, template: ResourceTemplate) -> None:
        self._templates.append(template)

    def subscribe(self, tag: str) -> None:
        self._subscriptions.add(tag)

    @property
    def subscriptions(self) -> List[str]:
        return sorted(self._subscriptions)

    def published(self, tag: str) -> List[ResourceTemplate]:
        return [t for t in self._templates if t.tag == tag]

    def realize(self) -> List[ResourceAssertion]:
        """Assertions for subscribed templates, in publication order."""
        return [
            t.to_assertion()
            for t in self._templates
            if t.tag in self._subscriptions
        ]
