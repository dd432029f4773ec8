"""Role — a parameterless bundle of configuration units assigned to a node."""

from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ProfileRef(BaseModel):
    """Reference to a shared profile. Including it twice is a no-op."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["profile"] = "profile"
    name: str


class PrivateUnitRef(BaseModel):
    """Reference to a private unit. Allowed at most once per bundle."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["private"] = "private"
    name: str


UnitRef = Annotated[Union[ProfileRef, PrivateUnitRef], Field(discriminator="kind")]


class Role(BaseModel):
    """
    A desired-state bundle. Lists units and other roles, nothing else:
    no parameters and no resources.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str                               # e.g., "role::jenkins::master"
    units: List[UnitRef] = []
    includes: List[str] = []                # Other role names, expanded first
    description: str = ""

    @model_validator(mode="after")
    def _private_units_once(self) -> "Role":
        seen = set()
        for ref in self.units:
            if isinstance(ref, PrivateUnitRef):
                if ref.name in seen:
                    raise ValueError(
                        f"Private unit {ref.name} is referenced more than once "
                        f"in role {self.name}"
                    )
                seen.add(ref.name)
        return self
