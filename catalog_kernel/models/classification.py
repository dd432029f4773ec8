"""Classification rules — how a node is matched to its role."""

import re
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class ClassificationRule(BaseModel):
    """
    Assigns ``role`` to nodes matching every criterion given.

    ``certname`` is an exact match, ``pattern`` a regular expression searched
    in the certname, ``facts`` a set of dotted fact paths with required values.
    """

    model_config = ConfigDict(frozen=True)

    role: str
    certname: Optional[str] = None
    pattern: Optional[str] = None
    facts: Dict[str, Any] = {}

    @field_validator("pattern")
    @classmethod
    def _compiles(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"Invalid pattern {v!r}: {e}") from e
        return v

    @model_validator(mode="after")
    def _has_criterion(self) -> "ClassificationRule":
        if self.certname is None and self.pattern is None and not self.facts:
            raise ValueError(
                f"Rule for role {self.role} has no criteria; use default_role instead"
            )
        return self

    @property
    def tier(self) -> int:
        """Specificity tier: 0 exact certname, 1 pattern, 2 facts only."""
        if self.certname is not None:
            return 0
        if self.pattern is not None:
            return 1
        return 2
