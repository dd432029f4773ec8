"""
Role Resolver — expands a role into the ordered units it stands for.

Pure composition: included roles are expanded depth-first, in order, before
the role's own units. Shared profiles appear once, at their first position.
Private units may appear only once in the whole expansion.
"""

import logging
from typing import Dict, List, Optional, Set

from catalog_kernel.errors import CyclicBundleError, PrivateUnitReuseError, UnknownRoleError
from catalog_kernel.models.role import PrivateUnitRef, Role, UnitRef

logger = logging.getLogger(__name__)


class RoleResolver:
    """Registry of role definitions plus their expansion."""

    def __init__(self, roles: Optional[List[Role]] = None):
        self._roles: Dict[str, Role] = {}
        for role in roles or []:
            self.register(role)

    def register(self, role: Role) -> None:
        """Register (or replace) a role definition."""
        self._roles[role.name] = role

    def get(self, name: str) -> Role:
        role = self._roles.get(name)
        if role is None:
            raise UnknownRoleError(name, f"Role {name} is not defined.")
        return role

    def roles(self) -> List[Role]:
        return list(self._roles.values())

    def resolve(self, role: Role) -> List[UnitRef]:
        """Ordered, de-duplicated unit references for the role."""
        resolved: List[UnitRef] = []
        seen_profiles: Set[str] = set()
        seen_private: Set[str] = set()
        self._expand(role, [], set(), resolved, seen_profiles, seen_private)
        logger.debug(
            "Resolved %s to %s", role.name, [ref.name for ref in resolved]
        )
        return resolved

    def _expand(
        self,
        role: Role,
        stack: List[str],
        expanded: Set[str],
        resolved: List[UnitRef],
        seen_profiles: Set[str],
        seen_private: Set[str],
    ) -> None:
        if role.name in stack:
            raise CyclicBundleError(stack[stack.index(role.name):] + [role.name])
        if role.name in expanded:
            return
        stack.append(role.name)

        for included in role.includes:
            self._expand(
                self.get(included), stack, expanded, resolved, seen_profiles, seen_private
            )

        for ref in role.units:
            if isinstance(ref, PrivateUnitRef):
                if ref.name in seen_private:
                    raise PrivateUnitReuseError(
                        ref.name,
                        f"Private unit {ref.name} is referenced more than once "
                        f"while resolving role {stack[0]}.",
                    )
                seen_private.add(ref.name)
                resolved.append(ref)
            elif ref.name not in seen_profiles:
                seen_profiles.add(ref.name)
                resolved.append(ref)

        stack.pop()
        expanded.add(role.name)
