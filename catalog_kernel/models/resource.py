"""Resource assertions — single desired-state facts about managed items."""

import re
from typing import Any, Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, field_validator


_REF_PATTERN = re.compile(r"^(?P<kind>[A-Za-z][\w:]*)\[(?P<identifier>.+)\]$")


def resource_ref(kind: str, identifier: str) -> str:
    """Render a reference in the ``Kind[identifier]`` form, e.g. ``File[/etc/motd]``."""
    return f"{kind.capitalize()}[{identifier}]"


def parse_ref(ref: str) -> Tuple[str, str]:
    """Split ``Kind[identifier]`` into ``(kind, identifier)`` with a lowercase kind."""
    match = _REF_PATTERN.match(ref)
    if not match:
        raise ValueError(f"Malformed resource reference: {ref!r}")
    return match.group("kind").lower(), match.group("identifier")


class ResourceAssertion(BaseModel):
    """
    One desired state: (kind, identifier, attributes).

    ``kind`` is lowercase ("file", "package", "service", "user").
    ``requires`` holds references to assertions that must be applied first.
    """

    model_config = ConfigDict(frozen=True)

    kind: str
    identifier: str                         # e.g., a path, a package name
    attributes: Dict[str, Any] = {}         # e.g., owner, group, mode, source
    tags: List[str] = []
    requires: List[str] = []                # e.g., ["Package[openjdk-17-jdk]"]
    declared_by: str = ""                   # Unit that declared it

    @field_validator("kind")
    @classmethod
    def _lowercase_kind(cls, v: str) -> str:
        return v.lower()

    @field_validator("requires")
    @classmethod
    def _well_formed_refs(cls, v: List[str]) -> List[str]:
        for ref in v:
            parse_ref(ref)
        return v

    @property
    def key(self) -> Tuple[str, str]:
        return (self.kind, self.identifier)

    @property
    def ref(self) -> str:
        return resource_ref(self.kind, self.identifier)

    def same_state(self, other: "ResourceAssertion") -> bool:
        """True when both assert the same desired state, regardless of who declared it."""
        return (
            self.key == other.key
            and self.attributes == other.attributes
            and sorted(self.requires) == sorted(other.requires)
        )


class ResourceTemplate(BaseModel):
    """A resource published under a tag, realized only if some unit collects that tag."""

    model_config = ConfigDict(frozen=True)

    tag: str
    kind: str
    identifier: str
    attributes: Dict[str, Any] = {}
    requires: List[str] = []
    published_by: str = ""

    def to_assertion(self) -> ResourceAssertion:
        return ResourceAssertion(
            kind=self.kind,
            identifier=self.identifier,
            attributes=self.attributes,
            tags=[self.tag],
            requires=self.requires,
            declared_by=self.published_by,
        )
