"""Unit Registry — maps unit names to profile definitions."""

from typing import Dict, List, Optional, Type, Union

from catalog_kernel.errors import UnknownUnitError
from catalog_kernel.units.profile import Profile


class UnitRegistry:
    """Name -> Profile. Usable as a class decorator via ``register``."""

    def __init__(self, profiles: Optional[List[Union[Profile, Type[Profile]]]] = None):
        self._units: Dict[str, Profile] = {}
        for profile in profiles or []:
            self.register(profile)

    def register(self, profile: Union[Profile, Type[Profile]]):
        """Register a profile class or instance. Returns its argument."""
        instance = profile() if isinstance(profile, type) else profile
        if not instance.name:
            raise ValueError(f"{type(instance).__name__} has no name")
        if instance.name in self._units:
            raise ValueError(f"Unit {instance.name} is already registered")
        self._units[instance.name] = instance
        return profile

    def get(self, name: str) -> Profile:
        unit = self._units.get(name)
        if unit is None:
            raise UnknownUnitError(name, f"Unit {name} is not registered.")
        return unit

    def names(self) -> List[str]:
        return sorted(self._units)

    def __contains__(self, name: str) -> bool:
        return name in self._units

    def __len__(self) -> int:
        return len(self._units)
