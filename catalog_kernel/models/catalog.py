"""Catalog — the complete, conflict-free assertion set compiled for one node."""

import hashlib
import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from catalog_kernel.models.resource import ResourceAssertion


def digest_resources(resources: List[ResourceAssertion]) -> str:
    """sha256 over the canonical JSON of the resources, in catalog order."""
    payload = [r.model_dump(mode="json", exclude={"declared_by"}) for r in resources]
    raw = json.dumps(payload, sort_keys=True, default=str).encode()
    return hashlib.sha256(raw).hexdigest()


class SiteDefaults(BaseModel):
    """
    Site-wide defaults shared by every profile.

    Passed explicitly into each evaluation instead of living in a global
    "params" class that every profile reads from.
    """

    model_config = ConfigDict(frozen=True)

    environment: str = "production"
    admin_user: str = "root"
    admin_group: str = "root"
    file_mode: str = "0644"
    service_provider: Optional[str] = None
    extra: Dict[str, Any] = {}


class Catalog(BaseModel):
    """Output of one compile. Handed as a whole to the reconciliation engine."""

    certname: str
    role: str
    units: List[str]                        # Evaluation order
    resources: List[ResourceAssertion]      # Declaration order
    compiled_at: datetime
    compile_duration_seconds: float = 0.0
    digest: str = ""

    def get(self, kind: str, identifier: str) -> Optional[ResourceAssertion]:
        kind = kind.lower()
        return next(
            (r for r in self.resources if r.kind == kind and r.identifier == identifier),
            None,
        )

    def by_kind(self, kind: str) -> List[ResourceAssertion]:
        kind = kind.lower()
        return [r for r in self.resources if r.kind == kind]
