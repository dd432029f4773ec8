"""
Unit Evaluator — turns profiles into resource assertions for one node.

Behavioral Contract:
- One evaluator per node per run; nothing carries over between runs
- Parameters resolve constant -> fact-derived -> lookup, first hit wins
- A shared profile is evaluated once per run. Including it again with the
  same effective parameters is a no-op that returns the same assertions;
  with different parameters it is a ConflictingInclusionError
- A private profile is never memoized and may be included only once
- Inclusion forms a DAG; a cycle is a CyclicUnitError
- Every resolved parameter value is strictly type-checked
- Anything a profile raises that is not a CatalogError becomes a
  UnitDefinitionError naming the unit
"""

import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from catalog_kernel.catalog.collector import ResourceCollector
from catalog_kernel.errors import (
    CatalogError,
    CompileTimeoutError,
    ConflictingInclusionError,
    CyclicUnitError,
    InvalidUnitReferenceError,
    LookupKeyError,
    ParameterResolutionError,
    PrivateUnitReuseError,
    UnitDefinitionError,
)
from catalog_kernel.lookup.service import LookupService, type_adapter
from catalog_kernel.models.catalog import SiteDefaults
from catalog_kernel.models.node import Node
from catalog_kernel.models.resource import ResourceAssertion
from catalog_kernel.models.role import PrivateUnitRef, UnitRef
from catalog_kernel.units.profile import Parameter, Profile, ProfileContext
from catalog_kernel.units.registry import UnitRegistry

logger = logging.getLogger(__name__)


class _Evaluation:
    """A finished evaluation: the effective parameters and what was declared."""

    def __init__(self, params: Dict[str, Any], resources: List[ResourceAssertion]):
        self.params = params
        self.resources = resources


class UnitEvaluator:
    """Evaluates units for one node within a single run."""

    def __init__(
        self,
        registry: UnitRegistry,
        node: Node,
        lookup: LookupService,
        site: Optional[SiteDefaults] = None,
        collector: Optional[ResourceCollector] = None,
        deadline: Optional[float] = None,
    ):
        self.registry = registry
        self.node = node
        self.lookup = lookup
        self.site = site or SiteDefaults()
        self.collector = collector or ResourceCollector()
        self.deadline = deadline                # time.monotonic() value

        self._evaluated: Dict[str, _Evaluation] = {}
        self._private_included: Dict[str, List[ResourceAssertion]] = {}
        self._stack: List[str] = []
        self._order: List[str] = []
        self._resources: List[ResourceAssertion] = []

    @property
    def evaluated_units(self) -> List[str]:
        """Unit names in the order their evaluation finished."""
        return list(self._order)

    @property
    def resources(self) -> List[ResourceAssertion]:
        """Every assertion declared in this run, in declaration order."""
        return list(self._resources)

    def evaluate_ref(self, ref: UnitRef) -> List[ResourceAssertion]:
        """Evaluate a unit as referenced by a role."""
        if isinstance(ref, PrivateUnitRef):
            return self.evaluate_private(ref.name)
        return self.evaluate(ref.name)

    def evaluate(
        self, unit_name: str, params: Optional[Dict[str, Any]] = None
    ) -> List[ResourceAssertion]:
        """Evaluate a shared profile, or return its earlier result."""
        unit = self.registry.get(unit_name)
        if unit.private:
            raise InvalidUnitReferenceError(
                unit_name,
                f"Unit {unit_name} is private; include it with include_private.",
            )
        self._check_cycle(unit_name)

        effective = self._resolve_parameters(unit, params or {})
        previous = self._evaluated.get(unit_name)
        if previous is not None:
            if previous.params != effective:
                raise ConflictingInclusionError(
                    unit_name,
                    f"Unit {unit_name} is already included with parameters "
                    f"{_diff(previous.params, effective)}; refusing to include "
                    f"it again with different values.",
                )
            logger.debug("Unit %s already evaluated; reusing result", unit_name)
            return list(previous.resources)

        resources = self._run(unit, effective)
        self._evaluated[unit_name] = _Evaluation(effective, resources)
        return list(resources)

    def evaluate_private(
        self, unit_name: str, params: Optional[Dict[str, Any]] = None
    ) -> List[ResourceAssertion]:
        """Evaluate a private unit. A second inclusion is a PrivateUnitReuseError."""
        unit = self.registry.get(unit_name)
        if not unit.private:
            raise InvalidUnitReferenceError(
                unit_name,
                f"Unit {unit_name} is not private; include it with include.",
            )
        self._check_cycle(unit_name)
        if unit_name in self._private_included:
            raise PrivateUnitReuseError(
                unit_name,
                f"Private unit {unit_name} was already included in this run.",
            )

        effective = self._resolve_parameters(unit, params or {})
        # Marked before building so a nested re-inclusion is caught too
        self._private_included[unit_name] = []
        resources = self._run(unit, effective)
        self._private_included[unit_name] = resources
        return list(resources)

    def _run(self, unit: Profile, params: Dict[str, Any]) -> List[ResourceAssertion]:
        self._check_deadline(unit.name)
        ctx = ProfileContext(self, unit)
        self._stack.append(unit.name)
        try:
            unit.build(ctx, params)
        except CatalogError:
            raise
        except Exception as e:
            raise UnitDefinitionError(
                unit.name,
                f"Unit {unit.name} failed while building for "
                f"{self.node.certname}: {type(e).__name__}: {e}",
            ) from e
        finally:
            self._stack.pop()

        self._order.append(unit.name)
        self._resources.extend(ctx.declared)
        logger.debug(
            "Evaluated %s for %s: %d resources",
            unit.name, self.node.certname, len(ctx.declared),
        )
        return list(ctx.declared)

    def _check_cycle(self, unit_name: str) -> None:
        if unit_name in self._stack:
            path = self._stack[self._stack.index(unit_name):] + [unit_name]
            raise CyclicUnitError(path)

    def _check_deadline(self, unit_name: str) -> None:
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise CompileTimeoutError(
                unit_name,
                f"Compile time limit reached before evaluating {unit_name} "
                f"for {self.node.certname}.",
            )

    def _resolve_parameters(
        self, unit: Profile, overrides: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Effective parameters: constant, then override, fact, lookup, default."""
        for name in overrides:
            param = unit.parameter(name)
            if param is None:
                raise ParameterResolutionError(
                    f"{unit.name}::{name}",
                    f"Unit {unit.name} has no parameter {name}.",
                )
            if param.is_constant:
                raise ParameterResolutionError(
                    f"{unit.name}::{name}",
                    f"Parameter {name} of {unit.name} is hardcoded and "
                    f"cannot be set by an includer.",
                )

        values: Dict[str, Any] = {}
        for param in unit.parameters:
            if param.is_constant:
                values[param.name] = param.constant
                continue
            value, source = self._resolve_one(unit, param, overrides)
            _check_parameter_type(unit, param, value, source)
            values[param.name] = value
        return values

    def _resolve_one(
        self, unit: Profile, param: Parameter, overrides: Dict[str, Any]
    ) -> Tuple[Any, str]:
        """Value of a non-constant parameter and where it came from."""
        subject = f"{unit.name}::{param.name}"
        if param.name in overrides:
            return overrides[param.name], "includer"
        if param.derive is not None:
            try:
                derived = param.derive(self.node)
            except (TypeError, ValueError) as e:
                raise ParameterResolutionError(
                    subject,
                    f"Deriving {param.name} of {unit.name} from facts "
                    f"failed: {e}",
                ) from e
            if derived is not None:
                return derived, "facts"
        if param.lookup:
            try:
                value = self.lookup.lookup_parameter(
                    unit.name, param.name, param.expected_type, param.default
                )
            except LookupKeyError as e:
                raise ParameterResolutionError(
                    subject,
                    f"Parameter {param.name} of {unit.name} has no value: "
                    f"{e.detail}",
                ) from e
            return value, "lookup"
        if param.has_default:
            return param.default, "default"
        raise ParameterResolutionError(
            subject,
            f"Parameter {param.name} of {unit.name} has no value; "
            f"it was not passed by the includer and has no other source.",
        )


def _check_parameter_type(unit: Profile, param: Parameter, value: Any, source: str) -> None:
    if param.expected_type is Any:
        return
    try:
        type_adapter(param.expected_type).validate_python(value, strict=True)
    except ValidationError as e:
        raise ParameterResolutionError(
            f"{unit.name}::{param.name}",
            f"Parameter {param.name} of {unit.name} from {source} does not "
            f"match {getattr(param.expected_type, '__name__', param.expected_type)}: "
            f"{e.errors()[0]['msg']}",
        ) from e


def _diff(before: Dict[str, Any], after: Dict[str, Any]) -> str:
    keys = sorted(set(before) | set(after))
    changed = [
        f"{k}={before.get(k)!r} (now {after.get(k)!r})"
        for k in keys
        if before.get(k) != after.get(k)
    ]
    return ", ".join(changed)
