"""
Apply Engine — in-memory stand-in for the reconciliation engine.

Receives a finished catalog and makes actual state match desired state,
one assertion at a time, reporting a status per assertion. Real systems plug
package managers, file writers and service managers in as providers; the
default provider just records attributes in a SystemStateStore.

Behavioral Contract:
- Accepts only complete catalogs (the compiler never hands over partial ones)
- Applies in dependency order; ties keep catalog order
- A dependency cycle is detected before anything is applied
- A provider failure fails that resource and skips everything depending on it
- noop runs report what would change without writing
"""

import heapq
import logging
from typing import Callable, Dict, List, Optional, Protocol, Set, Tuple

from catalog_kernel.errors import DependencyCycleError
from catalog_kernel.models.catalog import Catalog
from catalog_kernel.models.report import ResourceOutcome, ResourceStatus
from catalog_kernel.models.resource import ResourceAssertion, parse_ref

logger = logging.getLogger(__name__)

Provider = Callable[["SystemStateStore", ResourceAssertion, bool], Dict[str, dict]]


class ReconciliationEngine(Protocol):
    """Anything that can reconcile a catalog against a system."""

    def apply(self, catalog: Catalog, noop: bool = False) -> List[ResourceStatus]: ...


class SystemStateStore:
    """Actual state of managed resources, keyed by (kind, identifier)."""

    def __init__(self):
        self._state: Dict[Tuple[str, str], dict] = {}

    def get(self, kind: str, identifier: str) -> Optional[dict]:
        current = self._state.get((kind.lower(), identifier))
        return dict(current) if current is not None else None

    def set(self, kind: str, identifier: str, attributes: dict) -> None:
        self._state[(kind.lower(), identifier)] = dict(attributes)

    def update(self, kind: str, identifier: str, updates: dict) -> None:
        current = self._state.setdefault((kind.lower(), identifier), {})
        current.update(updates)

    def remove(self, kind: str, identifier: str) -> bool:
        return self._state.pop((kind.lower(), identifier), None) is not None

    def snapshot(self) -> Dict[str, dict]:
        """Serializable view: ``Kind[identifier]`` -> attributes."""
        return {
            f"{kind.capitalize()}[{identifier}]": dict(attrs)
            for (kind, identifier), attrs in sorted(self._state.items())
        }


def sync_attributes(
    state: SystemStateStore, assertion: ResourceAssertion, noop: bool
) -> Dict[str, dict]:
    """Default provider: write every attribute that differs."""
    current = state.get(assertion.kind, assertion.identifier) or {}
    changes = {
        name: {"from": current.get(name), "to": desired}
        for name, desired in assertion.attributes.items()
        if current.get(name) != desired
    }
    if state.get(assertion.kind, assertion.identifier) is None and not changes:
        changes = {"ensure": {"from": "absent", "to": "present"}}
    if changes and not noop:
        state.update(assertion.kind, assertion.identifier, dict(assertion.attributes))
    return changes


def apply_order(resources: List[ResourceAssertion]) -> List[ResourceAssertion]:
    """
    Dependencies first; among ready resources, catalog order first.
    Raises DependencyCycleError when no order exists.
    """
    index = {r.key: i for i, r in enumerate(resources)}
    dependents: Dict[int, List[int]] = {i: [] for i in range(len(resources))}
    pending = [0] * len(resources)
    for i, r in enumerate(resources):
        for ref in r.requires:
            dep = index.get(parse_ref(ref))
            if dep is None:
                continue
            dependents[dep].append(i)
            pending[i] += 1

    ready = [i for i, count in enumerate(pending) if count == 0]
    heapq.heapify(ready)
    ordered: List[ResourceAssertion] = []
    while ready:
        i = heapq.heappop(ready)
        ordered.append(resources[i])
        for j in dependents[i]:
            pending[j] -= 1
            if pending[j] == 0:
                heapq.heappush(ready, j)

    if len(ordered) != len(resources):
        stuck = [resources[i].ref for i, count in enumerate(pending) if count > 0]
        raise DependencyCycleError(
            stuck[0], "Dependency cycle among: " + ", ".join(stuck)
        )
    return ordered


class ApplyEngine:
    """Applies catalogs against a SystemStateStore through per-kind providers."""

    def __init__(self, state: Optional[SystemStateStore] = None):
        self.state = state or SystemStateStore()
        self._providers: Dict[str, Provider] = {}

    def register_provider(self, kind: str, provider: Provider) -> None:
        """Register a custom provider for a resource kind."""
        self._providers[kind.lower()] = provider

    def apply(self, catalog: Catalog, noop: bool = False) -> List[ResourceStatus]:
        ordered = apply_order(catalog.resources)
        failed: Set[str] = set()
        statuses: List[ResourceStatus] = []

        for assertion in ordered:
            blocked = [ref for ref in assertion.requires if _canonical(ref) in failed]
            if blocked:
                failed.add(assertion.ref)
                statuses.append(ResourceStatus(
                    ref=assertion.ref,
                    outcome=ResourceOutcome.SKIPPED,
                    message=f"Skipped because of failed dependencies: {', '.join(blocked)}",
                ))
                continue

            status = self._apply_one(assertion, noop)
            if status.outcome == ResourceOutcome.FAILED:
                failed.add(assertion.ref)
            statuses.append(status)

        logger.info(
            "Applied catalog %s for %s: %d resources, %d failed%s",
            catalog.digest[:12], catalog.certname, len(statuses),
            sum(1 for s in statuses if s.outcome == ResourceOutcome.FAILED),
            " (noop)" if noop else "",
        )
        return statuses

    def _apply_one(self, assertion: ResourceAssertion, noop: bool) -> ResourceStatus:
        provider = self._providers.get(assertion.kind, sync_attributes)
        try:
            changes = provider(self.state, assertion, noop)
        except Exception as e:
            logger.warning("Provider failed for %s: %s", assertion.ref, e)
            return ResourceStatus(
                ref=assertion.ref,
                outcome=ResourceOutcome.FAILED,
                message=str(e),
            )

        if not changes:
            outcome = ResourceOutcome.UNCHANGED
        elif noop:
            outcome = ResourceOutcome.NOOP
        else:
            outcome = ResourceOutcome.CHANGED
            logger.debug("Changed %s: %s", assertion.ref, sorted(changes))
        return ResourceStatus(ref=assertion.ref, outcome=outcome, changes=changes or {})


def _canonical(ref: str) -> str:
    kind, identifier = parse_ref(ref)
    return f"{kind.capitalize()}[{identifier}]"
