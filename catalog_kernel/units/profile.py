"""
Profiles — parameterized, composable declarations of desired resource state.

A profile is a class with a name, a list of Parameters, and a ``build``
method that declares resources through a ProfileContext. Parameter values
come from exactly one source, tried in a fixed order:

  1. constant    — hardcoded in the profile; lookup is never consulted
  2. fact-derived — a function of the node's facts
  3. lookup      — ``<profile name>::<parameter name>`` in the hierarchy
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from catalog_kernel.lookup.service import NO_DEFAULT, LookupService
from catalog_kernel.models.catalog import SiteDefaults
from catalog_kernel.models.node import Node
from catalog_kernel.models.resource import ResourceAssertion, ResourceTemplate

if TYPE_CHECKING:
    from catalog_kernel.units.evaluator import UnitEvaluator


def from_fact(path: str, transform: Optional[Callable[[Any], Any]] = None) -> Callable[[Node], Any]:
    """
    Derive a parameter from one fact. Yields None (unresolved) when the
    fact is missing, so resolution can fall through to lookup.
    """

    def _derive(node: Node) -> Any:
        value = node.fact(path)
        if value is None:
            return None
        return transform(value) if transform else value

    _derive.__name__ = f"from_fact_{path.replace('.', '_')}"
    return _derive


class Parameter:
    """A declared profile parameter and the sources it may resolve from."""

    def __init__(
        self,
        name: str,
        expected_type: Any = Any,
        constant: Any = NO_DEFAULT,
        derive: Optional[Callable[[Node], Any]] = None,
        lookup: Optional[bool] = None,
        default: Any = NO_DEFAULT,
    ):
        self.name = name
        self.expected_type = expected_type
        self.constant = constant
        self.derive = derive
        self.default = default

        if self.is_constant:
            if lookup or derive is not None or default is not NO_DEFAULT:
                raise ValueError(
                    f"Parameter {name} is hardcoded; it cannot also be "
                    f"derived or looked up."
                )
            self.lookup = False
        else:
            # lookup=False with no derive or default: the includer must pass it
            self.lookup = True if lookup is None else lookup

    @property
    def is_constant(self) -> bool:
        return self.constant is not NO_DEFAULT

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT

    def __repr__(self) -> str:
        if self.is_constant:
            source = f"constant={self.constant!r}"
        else:
            sources = []
            if self.derive is not None:
                sources.append("fact")
            if self.lookup:
                sources.append("lookup")
            if self.has_default:
                sources.append("default")
            source = "+".join(sources) or "required"
        return f"Parameter({self.name!r}, {source})"


class Profile:
    """
    Base class for configuration units.

    Subclasses set ``name`` and ``parameters`` and implement ``build``.
    Private profiles may be included only once per run.
    """

    name: str = ""
    parameters: List[Parameter] = []
    private: bool = False
    description: str = ""

    def build(self, ctx: "ProfileContext", params: Dict[str, Any]) -> None:
        raise NotImplementedError

    def parameter(self, name: str) -> Optional[Parameter]:
        return next((p for p in self.parameters if p.name == name), None)


class ProfileContext:
    """What a profile sees while it builds: the node, data, and declaration helpers."""

    def __init__(self, evaluator: "UnitEvaluator", profile: Profile):
        self._evaluator = evaluator
        self.profile = profile
        self.declared: List[ResourceAssertion] = []

    @property
    def node(self) -> Node:
        return self._evaluator.node

    @property
    def lookup(self) -> LookupService:
        return self._evaluator.lookup

    @property
    def site(self) -> SiteDefaults:
        return self._evaluator.site

    def declare(
        self,
        kind: str,
        identifier: str,
        requires: Optional[List[str]] = None,
        tags: Optional[List[str]] = None,
        **attributes: Any,
    ) -> ResourceAssertion:
        """Declare a resource. The profile name is added to its tags."""
        assertion = ResourceAssertion(
            kind=kind,
            identifier=identifier,
            attributes=attributes,
            tags=[self.profile.name] + list(tags or []),
            requires=list(requires or []),
            declared_by=self.profile.name,
        )
        self.declared.append(assertion)
        return assertion

    def include(self, name: str, **params: Any) -> List[ResourceAssertion]:
        """Include another unit. Parameters given here override its lookups."""
        return self._evaluator.evaluate(name, params or None)

    def include_private(self, name: str, **params: Any) -> List[ResourceAssertion]:
        """Include a private unit; a second inclusion anywhere in the run fails."""
        return self._evaluator.evaluate_private(name, params or None)

    def publish(
        self,
        tag: str,
        kind: str,
        identifier: str,
        requires: Optional[List[str]] = None,
        **attributes: Any,
    ) -> ResourceTemplate:
        """Offer a resource to whichever unit collects ``tag``."""
        template = ResourceTemplate(
            tag=tag,
            kind=kind,
            identifier=identifier,
            attributes=attributes,
            requires=list(requires or []),
            published_by=self.profile.name,
        )
        self._evaluator.collector.publish(template)
        return template

    def collect(self, tag: str) -> None:
        """Realize every resource published under ``tag`` in this run."""
        self._evaluator.collector.subscribe(tag)
